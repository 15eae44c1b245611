#grammar.py
"""
Rules of a probabilistic context free grammar and the transformations
into Chomsky normal form.

A rule is Rule(lhs, rhs, probability, lexical) with rhs a tuple of
symbols. Rules read off trees say whether they rewrite a preterminal as
a word, so a word may share its spelling with a label, as in (. .). When
lexical is None a symbol is taken to be a nonterminal exactly when it is
the lhs of some rule, and every other symbol is a terminal (a word). The
same functions work on rules that carry counts instead of probabilities.
"""

import logging
import math
from collections import defaultdict, namedtuple

import utility

Rule = namedtuple('Rule', ['lhs', 'rhs', 'probability', 'lexical'], defaults=(None,))

## Prefix of the preterminals introduced for terminals inside longer rules.
TERMINAL_PREFIX = 'T_'


def non_terminals(rules):
	return set(rule.lhs for rule in rules)


def terminals(rules):
	nts = non_terminals(rules)
	words = set()
	for rule in rules:
		if is_lexical(rule, nts):
			words.add(rule.rhs[0])
		else:
			words.update(s for s in rule.rhs if not s in nts)
	return words


def is_lexical(rule, nts):
	if rule.lexical is not None:
		return rule.lexical
	return len(rule.rhs) == 1 and not rule.rhs[0] in nts


def is_unary(rule, nts):
	return len(rule.rhs) == 1 and rule.rhs[0] in nts and not is_lexical(rule, nts)


def is_binary(rule, nts):
	return len(rule.rhs) == 2 and rule.rhs[0] in nts and rule.rhs[1] in nts


def index_by_lhs(rules):
	"""lhs -> list of rules, both in first occurrence order."""
	index = defaultdict(list)
	for rule in rules:
		index[rule.lhs].append(rule)
	return dict(index)


def lhs_totals(rules):
	totals = defaultdict(float)
	for rule in rules:
		totals[rule.lhs] += rule.probability
	return dict(totals)


def normalize(rules):
	"""
	Scale so that the rules of each lhs sum to one.
	Left hand sides with total zero are left alone.
	"""
	totals = lhs_totals(rules)
	result = []
	for rule in rules:
		total = totals[rule.lhs]
		if total > 0:
			result.append(rule._replace(probability=rule.probability / total))
		else:
			result.append(rule)
	return result


def apply_smoothing(rules, k):
	"""
	Rules hold counts; add k to each and renormalise per lhs.
	"""
	k = utility.check_smoothing(k)
	return normalize([ rule._replace(probability=rule.probability + k) for rule in rules ])


def merge_duplicates(rules):
	"""Sum the probabilities of rules with the same lhs, rhs and kind."""
	nts = non_terminals(rules)
	merged = {}
	for rule in rules:
		key = (rule.lhs, rule.rhs, is_lexical(rule, nts))
		if key in merged:
			merged[key] = merged[key]._replace(probability=merged[key].probability + rule.probability)
		else:
			merged[key] = rule
	return list(merged.values())


def extract_mixed_terminals(rules):
	"""
	Replace each terminal a inside a rhs of length > 1 by a new
	preterminal T_a with the rule T_a -> a (probability 1).
	"""
	nts = non_terminals(rules)
	result = []
	added = []
	seen = set()
	for rule in rules:
		if len(rule.rhs) < 2 or all(s in nts for s in rule.rhs):
			result.append(rule)
			continue
		rhs = []
		for s in rule.rhs:
			if s in nts:
				rhs.append(s)
			else:
				pt = TERMINAL_PREFIX + s
				rhs.append(pt)
				if not pt in seen:
					seen.add(pt)
					added.append(Rule(pt, (s,), 1.0, True))
		result.append(rule._replace(rhs=tuple(rhs)))
	return result + added


def intermediate_symbol(lhs, rest):
	return lhs + utility.BINARIZATION_MARKER + "-".join(rest) + ">"


def binarize(rules):
	"""
	A -> B C D (p) becomes A -> B A|<C-D> (p) and A|<C-D> -> C D (1).

	Chains for the same lhs share their intermediate symbols.
	"""
	result = []
	added = []
	seen = set()
	for rule in rules:
		if len(rule.rhs) <= 2:
			result.append(rule)
			continue
		rest = rule.rhs[1:]
		symbol = intermediate_symbol(rule.lhs, rest)
		result.append(rule._replace(rhs=(rule.rhs[0], symbol)))
		while len(rest) > 2:
			next_symbol = intermediate_symbol(rule.lhs, rest[1:])
			if not symbol in seen:
				seen.add(symbol)
				added.append(Rule(symbol, (rest[0], next_symbol), 1.0))
			symbol = next_symbol
			rest = rest[1:]
		if not symbol in seen:
			seen.add(symbol)
			added.append(Rule(symbol, tuple(rest), 1.0))
	return result + added


def unit_closure(rules):
	"""
	For every nonterminal A, the best probability of deriving each B
	from A through unit rules alone (A itself with probability 1).
	"""
	nts = non_terminals(rules)
	closure = { a : { a : 1.0 } for a in sorted(nts) }
	units = [ rule for rule in rules if is_unary(rule, nts) ]
	changed = True
	while changed:
		changed = False
		for a in closure:
			reach = closure[a]
			for rule in units:
				if rule.lhs in reach:
					p = reach[rule.lhs] * rule.probability
					b = rule.rhs[0]
					if p > reach.get(b, 0.0):
						reach[b] = p
						changed = True
	return closure


def remove_unit_rules(rules):
	"""
	Replace unit rules A -> B by A -> x for every non unit rule B -> x,
	weighted by the best unit chain from A to B. Handles chains and cycles.
	"""
	nts = non_terminals(rules)
	closure = unit_closure(rules)
	by_lhs = index_by_lhs(rules)
	result = []
	for rule in rules:
		if is_unary(rule, nts):
			continue
		result.append(rule)
	for a in index_by_lhs(rules):
		for b, weight in closure[a].items():
			if b == a:
				continue
			for rule in by_lhs.get(b, []):
				if not is_unary(rule, nts):
					result.append(rule._replace(lhs=a, probability=weight * rule.probability))
	result = merge_duplicates(result)
	# Drop rules that mention a nonterminal left without any rule.
	lost = nts - non_terminals(result)
	while lost:
		logging.warning("Unit rule removal left nonterminals without rules: %s", sorted(lost))
		result = [ rule for rule in result
			if is_lexical(rule, nts) or not any(s in lost for s in rule.rhs) ]
		nts = nts - lost
		lost = nts - non_terminals(result)
	return result


def to_cnf(rules):
	"""Chomsky normal form: every rule is A -> B C or A -> a."""
	return remove_unit_rules(binarize(extract_mixed_terminals(rules)))


def parsing_rules(rules):
	"""
	The rules in the shape the chart parser takes: lexical, unary or
	binary. Unit rules are kept.
	"""
	return binarize(extract_mixed_terminals(rules))


def check_cnf(rules):
	nts = non_terminals(rules)
	return all(is_binary(rule, nts) or is_lexical(rule, nts) for rule in rules)


def log_probability(rule):
	return utility.safe_log(rule.probability)


def check_normalised(rules, epsilon=1e-6):
	for lhs, total in lhs_totals(rules).items():
		if math.fabs(total - 1.0) > epsilon:
			return False
	return True
