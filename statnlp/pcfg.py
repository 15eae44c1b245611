#pcfg.py
"""
Probabilistic context free grammar estimated from a treebank and parsed
with Viterbi CYK.

Rule probabilities are relative frequencies of the productions in the
training trees, optionally add-k smoothed over the rules seen for each
lhs. By default the grammar is converted to Chomsky normal form after
estimation; unit chains removed by the conversion no longer show up as
nodes in the returned trees.
"""

import logging
import math
from collections import defaultdict, namedtuple

import cyk
import grammar
import persistence
import utility
from grammar import Rule
from utility import DimensionMismatch, NoParse

## Log probability of a lexical entry guessed from a supplied tag when no
## smoothing is configured.
UNKNOWN_WORD_LOG_PROB = math.log(1e-10)


class Parse(namedtuple('Parse', ['tree', 'log_probability'])):
	__slots__ = ()

	@property
	def probability(self):
		return math.exp(self.log_probability)


def counted_rule(key, count):
	"""Rule holding a count, from a flat production or a (lhs, rhs, lexical) key."""
	if len(key) == 3 and isinstance(key[1], tuple):
		lhs, rhs, lexical = key
		return Rule(lhs, rhs, float(count), lexical)
	return Rule(key[0], tuple(key[1:]), float(count))


def check_rule(rule):
	"""
	Accept Rule, (lhs, rhs, probability) or (lhs, rhs, probability,
	lexical); rhs may be a single string.
	"""
	lhs, rhs, p = rule[:3]
	lexical = rule[3] if len(rule) > 3 else None
	if isinstance(rhs, str):
		rhs = (rhs,)
	rhs = tuple(rhs)
	if len(rhs) == 0:
		raise utility.InvalidHyperparameter("Rule for %s has an empty right hand side" % lhs)
	if isinstance(p, bool) or not isinstance(p, (int, float)) or math.isnan(p) or p < 0:
		raise utility.InvalidHyperparameter("Rule %s -> %s has invalid probability %r" % (lhs, " ".join(rhs), p))
	if lexical and len(rhs) != 1:
		raise utility.InvalidHyperparameter("Lexical rule for %s must rewrite to a single word" % lhs)
	return Rule(lhs, rhs, float(p), None if lexical is None else bool(lexical))


@persistence.register
class PCFG:
	"""
	A PCFG with a designated start symbol. PCFG() is an empty grammar;
	train, train_from_counts and from_rules return new grammars.
	"""

	KIND = 'pcfg'

	def __init__(self, start_symbol='S', smoothing_k=0.0):
		self.start_symbol = start_symbol
		self.smoothing_k = utility.check_smoothing(smoothing_k)
		self.metadata = {}
		self.set_rules([])

	def set_rules(self, rules):
		self.rules = list(rules)
		self.rule_index = grammar.index_by_lhs(self.rules)
		self.non_terminals = grammar.non_terminals(self.rules)
		self.lexicon = defaultdict(list)
		for rule in self.rules:
			if grammar.is_lexical(rule, self.non_terminals):
				self.lexicon[rule.rhs[0]].append(rule.lhs)
		self.lexicon = dict(self.lexicon)
		self.parser = cyk.CYKParser(grammar.parsing_rules(self.rules))

	@classmethod
	def from_rules(cls, rules, start_symbol='S', smoothing_k=0.0, convert_to_cnf=False, normalize=False):
		"""
		Grammar from explicit rules. With normalize the probabilities are
		rescaled per lhs first.
		"""
		rules = [ check_rule(rule) for rule in rules ]
		if normalize:
			rules = grammar.normalize(rules)
		for rule in rules:
			if rule.probability > 1.0:
				raise utility.InvalidHyperparameter(
					"Rule %s -> %s has probability %f > 1" % (rule.lhs, " ".join(rule.rhs), rule.probability))
		return cls._build(rules, start_symbol, smoothing_k, convert_to_cnf, {})

	@classmethod
	def _build(cls, rules, start_symbol, smoothing_k, convert_to_cnf, metadata):
		model = cls(start_symbol, smoothing_k)
		if convert_to_cnf:
			rules = grammar.to_cnf(rules)
		model.set_rules(rules)
		model.metadata = dict(metadata)
		model.metadata.update({
			'num_rules': len(model.rules),
			'num_non_terminals': len(model.non_terminals),
			'cnf': bool(convert_to_cnf),
		})
		if not start_symbol in model.non_terminals:
			logging.warning("Start symbol %s has no rules", start_symbol)
		return model

	@classmethod
	def train_from_counts(cls, counts, start_symbol='S', smoothing_k=0.0, convert_to_cnf=True, training_size=None):
		"""
		Grammar from production counts. Keys are flat productions such as
		('NP', 'Det', 'Noun'), or (lhs, rhs, lexical) triples as made by
		utility.count_tree_productions.
		"""
		smoothing_k = utility.check_smoothing(smoothing_k)
		if len(counts) == 0:
			raise utility.EmptyTrainingSet("No productions to estimate from")
		rules = [ counted_rule(key, c) for key, c in counts.items() ]
		rules = grammar.apply_smoothing(rules, smoothing_k)
		metadata = {
			'trained_at': persistence.timestamp(),
			'training_size': training_size,
			'num_productions': len(counts),
			'smoothing_k': smoothing_k,
		}
		return cls._build(rules, start_symbol, smoothing_k, convert_to_cnf, metadata)

	def train(self, examples, smoothing_k=None, convert_to_cnf=True, workers=1):
		"""
		Estimate a grammar from (tokens, tree) examples. Trees are tuple
		trees or bracketed strings, and each tree's yield must be its tokens.
		"""
		examples = utility.check_examples(examples)
		smoothing_k = self.smoothing_k if smoothing_k is None else utility.check_smoothing(smoothing_k)
		utility.check_workers(workers)
		trees = []
		for i, (tokens, tree) in enumerate(examples):
			if isinstance(tree, str):
				tree = utility.string_to_tree(tree)
			words = utility.collect_yield(tree)
			if words != list(tokens):
				raise DimensionMismatch("Example %d: tree yield %r differs from tokens %r" % (i, words, list(tokens)))
			trees.append(tree)
		counts = utility.parallel_map_reduce(utility.count_tree_productions, trees, workers)
		model = PCFG.train_from_counts(counts, self.start_symbol, smoothing_k, convert_to_cnf, len(trees))
		logging.info("Trained PCFG on %d trees: %d rules, %d nonterminals",
			len(trees), len(model.rules), len(model.non_terminals))
		return model

	def unknown_entries(self, tokens, tags):
		"""Lexical entries for words outside the lexicon, taken from tags."""
		if len(tags) != len(tokens):
			raise DimensionMismatch("%d tokens but %d tags" % (len(tokens), len(tags)))
		if self.smoothing_k > 0:
			lp = math.log(self.smoothing_k / (self.smoothing_k + 1.0))
		else:
			lp = UNKNOWN_WORD_LOG_PROB
		extra = {}
		for i, (word, tag) in enumerate(zip(tokens, tags)):
			if tag is not None and not self.parser.knows(word):
				extra[i] = [(tag, lp)]
		return extra

	def predict(self, tokens, start_symbol=None, tags=None, beam_width=0):
		"""
		Best parse of tokens as a Parse(tree, log_probability).

		Raises NoParse if the start symbol cannot derive the tokens.
		"""
		tokens = list(tokens)
		start = self.start_symbol if start_symbol is None else start_symbol
		if isinstance(beam_width, bool) or not isinstance(beam_width, int) or beam_width < 0:
			raise utility.InvalidHyperparameter("beam_width must be a non-negative integer, got %r" % (beam_width,))
		if len(self.rules) == 0:
			raise NoParse("The grammar has no rules")
		extra = self.unknown_entries(tokens, list(tags)) if tags is not None else None
		tree, lp = self.parser.parse(tokens, start, extra, beam_width)
		return Parse(utility.unbinarize_tree(tree), lp)

	def parse(self, tokens, **kwargs):
		return self.predict(tokens, **kwargs)

	def log_probability(self, tokens, **kwargs):
		"""Log probability of the best derivation, -inf if there is none."""
		try:
			return self.predict(tokens, **kwargs).log_probability
		except NoParse:
			return -math.inf

	def to_dict(self):
		return {
			'start_symbol': self.start_symbol,
			'smoothing_k': self.smoothing_k,
			'rules': [ [rule.lhs, list(rule.rhs), rule.probability, rule.lexical] for rule in self.rules ],
		}

	@classmethod
	def from_dict(cls, data, metadata=None):
		model = cls(data['start_symbol'], data['smoothing_k'])
		model.set_rules([ check_rule(rule) for rule in data['rules'] ])
		model.metadata = dict(metadata or {})
		return model

	def save(self, path):
		persistence.save_model(self, path)

	@classmethod
	def load(cls, path):
		return persistence.load_model(path, kind=cls.KIND)
