#cyk.py
"""
Viterbi CYK chart parser.

The chart maps a span (i, j) to a cell, a dict label -> (log probability,
backpointer) holding the best derivation of words[i:j] from each label.
Backpointers are

	('lex', word)
	('unary', child)
	('binary', split, left, right)

Scores are sums of rule log probabilities. A cell entry is only replaced
by a strictly better score, and cells are filled visiting split points
left to right and rules in rule order, so among equal derivations the
first one found wins.
"""

import math
from collections import defaultdict

import grammar
import utility
from utility import NoParse


class CYKParser:
	"""
	Parser for a grammar of lexical, unary and binary rules.

	Unit rules are closed over within every cell, so the grammar does not
	need to be in Chomsky normal form.
	"""

	def __init__(self, rules):
		self.nonterminals = grammar.non_terminals(rules)
		nts = self.nonterminals
		self.lexical = defaultdict(list)
		self.unary = defaultdict(list)
		self.binary = defaultdict(list)
		for rule in rules:
			lp = grammar.log_probability(rule)
			if lp == -math.inf:
				continue
			if grammar.is_lexical(rule, nts):
				self.lexical[rule.rhs[0]].append((rule.lhs, lp))
			elif grammar.is_unary(rule, nts):
				self.unary[rule.rhs[0]].append((rule.lhs, lp))
			elif grammar.is_binary(rule, nts):
				self.binary[rule.rhs].append((rule.lhs, lp))
			else:
				raise utility.InvalidHyperparameter(
					"Rule %s -> %s is not lexical, unary or binary" % (rule.lhs, " ".join(rule.rhs)))

	def knows(self, word):
		return word in self.lexical

	def unary_closure(self, cell):
		changed = True
		while changed:
			changed = False
			for child, (score, _) in list(cell.items()):
				for lhs, lp in self.unary.get(child, ()):
					s = score + lp
					if not lhs in cell or s > cell[lhs][0]:
						cell[lhs] = (s, ('unary', child))
						changed = True

	def prune(self, cell, beam_width):
		if beam_width <= 0 or len(cell) <= beam_width:
			return cell
		# sorted is stable so ties keep insertion order
		best = sorted(cell.items(), key=lambda item: -item[1][0])[:beam_width]
		return dict(best)

	def chart(self, words, extra_lexical=None, beam_width=0):
		"""
		Fill the chart for words.

		extra_lexical maps a position to a list of (label, log probability)
		entries added to that word's cell.
		"""
		n = len(words)
		chart = {}
		for i, word in enumerate(words):
			cell = {}
			entries = list(self.lexical.get(word, ()))
			if extra_lexical and i in extra_lexical:
				entries.extend(extra_lexical[i])
			for lhs, lp in entries:
				if not lhs in cell or lp > cell[lhs][0]:
					cell[lhs] = (lp, ('lex', word))
			cell = self.prune(cell, beam_width)
			self.unary_closure(cell)
			chart[(i, i + 1)] = cell
		for span in range(2, n + 1):
			for i in range(0, n - span + 1):
				j = i + span
				cell = {}
				for k in range(i + 1, j):
					left = chart[(i, k)]
					right = chart[(k, j)]
					if not left or not right:
						continue
					for b, (lb, _) in left.items():
						for c, (lc, _) in right.items():
							for a, lp in self.binary.get((b, c), ()):
								s = lp + lb + lc
								if not a in cell or s > cell[a][0]:
									cell[a] = (s, ('binary', k, b, c))
				cell = self.prune(cell, beam_width)
				self.unary_closure(cell)
				chart[(i, j)] = cell
		return chart

	def build_tree(self, chart, i, j, label):
		_, bp = chart[(i, j)][label]
		if bp[0] == 'lex':
			return (label, bp[1])
		if bp[0] == 'unary':
			return (label, self.build_tree(chart, i, j, bp[1]))
		_, k, b, c = bp
		return (label, self.build_tree(chart, i, k, b), self.build_tree(chart, k, j, c))

	def parse(self, words, start, extra_lexical=None, beam_width=0):
		"""
		(tree, log probability) of the best derivation of words from start.
		Raises NoParse when there is none.
		"""
		words = list(words)
		n = len(words)
		if n == 0:
			raise NoParse("Cannot parse an empty sentence")
		chart = self.chart(words, extra_lexical, beam_width)
		top = chart[(0, n)]
		if not start in top:
			raise NoParse("No derivation of %r from %s" % (" ".join(words), start))
		return self.build_tree(chart, 0, n, start), top[start][0]
