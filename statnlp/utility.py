#utility.py
"""Shared helpers: the error taxonomy, tuple trees, log-space arithmetic.

Trees are nested tuples. An internal node is (label, child, child, ...)
and a preterminal is (label, 'word'), so the tree for "the cat" is

    ('S', ('NP', ('Det', 'the'), ('Noun', 'cat')))

Productions are flat tuples too: ('NP', 'Det', 'Noun') and ('Det', 'the').
"""

import math
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from scipy.special import logsumexp


## Label/word used for the symbols that pad a sequence on the left.
START = '<START>'
## Marker used in the names of intermediate binarisation nonterminals.
BINARIZATION_MARKER = '|<'

METHODS = ('sgd', 'momentum')


class StatNLPError(Exception):
	"""Base class for everything the models raise."""
	pass


class EmptyTrainingSet(StatNLPError, ValueError):
	pass


class DimensionMismatch(StatNLPError, ValueError):
	"""A token sequence and its labels (or tree yield) differ in length."""
	pass


class UnknownLabel(StatNLPError, ValueError):
	"""A label outside the closed label set of a model."""
	pass


class InvalidHyperparameter(StatNLPError, ValueError):
	pass


class NoParse(StatNLPError):
	"""
	The grammar cannot derive the input.

	This is an ordinary outcome of parsing, not a crash; callers are
	expected to catch it.
	"""
	pass


# Older name, kept since it reads better next to the parsing code.
ParseFailureException = NoParse


class SerializationError(StatNLPError):
	"""A persisted model is corrupt or was written by an incompatible version."""
	pass


## Hyperparameter checks. All of these run before any computation.

def check_smoothing(k, allow_zero=True):
	if isinstance(k, bool) or not isinstance(k, (int, float)) or math.isnan(k):
		raise InvalidHyperparameter(f"smoothing_k must be a number, got {k!r}")
	if k < 0 or (k == 0 and not allow_zero):
		bound = ">= 0" if allow_zero else "> 0"
		raise InvalidHyperparameter(f"smoothing_k must be {bound}, got {k}")
	return float(k)


def check_iterations(iterations):
	if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)) or iterations <= 0:
		raise InvalidHyperparameter(f"iterations must be a positive integer, got {iterations!r}")
	return int(iterations)


def check_method(method):
	if method not in METHODS:
		raise InvalidHyperparameter(f"method must be one of {METHODS}, got {method!r}")
	return method


def check_non_negative(name, value):
	if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or value < 0:
		raise InvalidHyperparameter(f"{name} must be >= 0, got {value!r}")
	return float(value)


def check_positive(name, value):
	if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or value <= 0:
		raise InvalidHyperparameter(f"{name} must be > 0, got {value!r}")
	return float(value)


def check_workers(workers):
	if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
		raise InvalidHyperparameter(f"workers must be a positive integer, got {workers!r}")
	return workers


def check_examples(examples):
	"""
	Materialise the training examples and reject an empty set.
	"""
	examples = list(examples)
	if len(examples) == 0:
		raise EmptyTrainingSet("No training examples supplied")
	return examples


def check_lengths(examples):
	"""
	Every (tokens, labels) pair must have the same length on both sides.
	"""
	for i, (tokens, labels) in enumerate(examples):
		if len(tokens) != len(labels):
			raise DimensionMismatch(
				f"Example {i} has {len(tokens)} tokens but {len(labels)} labels")


## Log space arithmetic

def safe_log(p):
	if p <= 0:
		return -math.inf
	return math.log(p)


def log_sum_exp(values):
	"""
	log(sum(exp(values))) without overflow; -inf for empty input.
	"""
	a = np.asarray(list(values), dtype=float)
	if a.size == 0 or np.all(np.isneginf(a)):
		return -math.inf
	return float(logsumexp(a))


def smoothed_log_probabilities(counts, k, domain_size):
	"""
	Add-k relative frequency estimate, in log space.

	P(x) = (count(x) + k) / (sum of counts + k * domain_size)

	Returns (log_probs, floor): the log probability of every key of
	counts, and the log probability of an outcome in the domain that was
	never counted.
	"""
	total = sum(counts.values())
	denominator = total + k * domain_size
	if denominator <= 0:
		return { x : -math.inf for x in counts }, -math.inf
	log_probs = { x : safe_log((c + k) / denominator) for x, c in counts.items() }
	return log_probs, safe_log(k / denominator)


def smoothed_log_distribution(counts, domain, k):
	"""
	Dense version of smoothed_log_probabilities over an explicit domain.
	"""
	domain = list(domain)
	restricted = { x : counts.get(x, 0) for x in domain }
	log_probs, floor = smoothed_log_probabilities(restricted, k, len(domain))
	return { x : log_probs.get(x, floor) for x in domain }


## Parallel accumulation

def chunk(items, parts):
	"""Split items into at most parts contiguous, nearly equal chunks."""
	size = int(math.ceil(len(items) / parts))
	return [ items[i:i + size] for i in range(0, len(items), size) ]


def parallel_map_reduce(function, items, workers=1):
	"""
	Map function over contiguous chunks of items and add the results.

	function takes a list of items and returns an accumulator that supports +.
	The partial accumulators are combined in chunk order so the result
	only depends on the items and the number of workers.
	"""
	items = list(items)
	check_workers(workers)
	if workers == 1 or len(items) < 2:
		return function(items)
	chunks = chunk(items, workers)
	with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
		partials = list(executor.map(function, chunks))
	result = partials[0]
	for partial in partials[1:]:
		result = result + partial
	return result


## Trees

def is_preterminal(tree):
	return len(tree) == 2 and isinstance(tree[1], str)


def collect_yield(tree):
	"""The list of words at the leaves of the tree, left to right."""
	if is_preterminal(tree):
		return [tree[1]]
	result = []
	for child in tree[1:]:
		result.extend(collect_yield(child))
	return result


def count_productions(tree, counter):
	"""
	Add every production used in the tree to counter, keyed by
	(lhs, rhs, lexical). Preterminal leaves give the lexical productions,
	so (. .) counts as a word under a label of the same spelling.
	"""
	if is_preterminal(tree):
		counter[(tree[0], (tree[1],), True)] += 1
		return counter
	counter[(tree[0], tuple(child[0] for child in tree[1:]), False)] += 1
	for child in tree[1:]:
		count_productions(child, counter)
	return counter


def count_tree_productions(trees):
	counter = Counter()
	for tree in trees:
		count_productions(tree, counter)
	return counter


def tree_depth(tree):
	if is_preterminal(tree):
		return 1
	return 1 + max(tree_depth(child) for child in tree[1:])


def collect_labeled_spans(tree):
	"""
	List of (label, start, end) for every node including the preterminals.
	"""
	spans = []

	def visit(node, start):
		if is_preterminal(node):
			spans.append((node[0], start, start + 1))
			return start + 1
		end = start
		for child in node[1:]:
			end = visit(child, end)
		spans.append((node[0], start, end))
		return end

	visit(tree, 0)
	return spans


def collect_unlabeled_spans(tree):
	"""
	Set of (start, end) for the constituents of length more than one,
	excluding the span of the whole sentence which every tree shares.
	"""
	spans = collect_labeled_spans(tree)
	n = max(end for _, _, end in spans)
	return set((i, j) for _, i, j in spans if j - i > 1 and not (i == 0 and j == n))


def unbinarize_tree(tree, marker=BINARIZATION_MARKER):
	"""
	Splice out the intermediate nodes introduced by binarisation, so that
	A -> B A|<C-D> with A|<C-D> -> C D becomes A -> B C D again.
	"""
	if is_preterminal(tree):
		return tree
	children = []
	for child in tree[1:]:
		child = unbinarize_tree(child, marker)
		if marker in child[0] and not is_preterminal(child):
			children.extend(child[1:])
		else:
			children.append(child)
	return (tree[0],) + tuple(children)


def string_to_tree(s):
	"""
	Read a bracketed tree such as "(S (NP (Det the) (Noun cat)))".
	"""
	tokens = s.replace('(', ' ( ').replace(')', ' ) ').split()
	if not tokens:
		raise ValueError("Empty tree string")
	position = 0

	def read():
		nonlocal position
		if tokens[position] != '(':
			raise ValueError(f"Expected '(' at token {position} of {s!r}")
		position += 1
		label = tokens[position]
		position += 1
		children = []
		while tokens[position] != ')':
			if tokens[position] == '(':
				children.append(read())
			else:
				children.append(tokens[position])
				position += 1
		position += 1
		if len(children) == 1 and isinstance(children[0], str):
			return (label, children[0])
		if any(isinstance(c, str) for c in children) or not children:
			raise ValueError(f"Node {label} mixes words and subtrees in {s!r}")
		return (label,) + tuple(children)

	try:
		tree = read()
	except IndexError:
		raise ValueError(f"Unbalanced brackets in {s!r}") from None
	if position != len(tokens):
		raise ValueError(f"Trailing material after tree in {s!r}")
	return tree


def tree_to_string(tree):
	if is_preterminal(tree):
		return "(%s %s)" % tree
	return "(%s %s)" % (tree[0], " ".join(tree_to_string(child) for child in tree[1:]))
