#evaluation.py

# Scores for taggers against gold label sequences and for parsers against
# gold trees.

import logging
from collections import Counter, defaultdict

import numpy as np

import utility
from utility import DimensionMismatch, NoParse


def flatten(sequences):
	"""Accepts a flat sequence of labels or a list of label sequences."""
	sequences = list(sequences)
	if sequences and not isinstance(sequences[0], str) and hasattr(sequences[0], '__len__'):
		return [ x for s in sequences for x in s ]
	return sequences


def check_pair(gold, predicted):
	gold = flatten(gold)
	predicted = flatten(predicted)
	if len(gold) != len(predicted):
		raise DimensionMismatch("%d gold labels but %d predicted" % (len(gold), len(predicted)))
	return gold, predicted


def accuracy(gold, predicted):
	gold, predicted = check_pair(gold, predicted)
	if len(gold) == 0:
		return 0.0
	return sum(1 for g, p in zip(gold, predicted) if g == p) / len(gold)


def prf(tp, fp, fn):
	"""(precision, recall, f1) with 0 for empty denominators."""
	precision = tp / (tp + fp) if tp + fp > 0 else 0.0
	recall = tp / (tp + fn) if tp + fn > 0 else 0.0
	f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0
	return precision, recall, f1


def label_order(gold, predicted):
	"""Labels in order of first occurrence, gold first."""
	return list(dict.fromkeys(list(gold) + list(predicted)))


def per_label_metrics(gold, predicted, labels=None):
	"""
	label -> dict with precision, recall, f1, support and the raw counts.
	"""
	gold, predicted = check_pair(gold, predicted)
	if labels is None:
		labels = label_order(gold, predicted)
	tp = Counter()
	fp = Counter()
	fn = Counter()
	for g, p in zip(gold, predicted):
		if g == p:
			tp[g] += 1
		else:
			fp[p] += 1
			fn[g] += 1
	result = {}
	for label in labels:
		precision, recall, f1 = prf(tp[label], fp[label], fn[label])
		result[label] = { 'precision' : precision, 'recall' : recall, 'f1' : f1,
			'support' : tp[label] + fn[label],
			'tp' : tp[label], 'fp' : fp[label], 'fn' : fn[label] }
	return result


def classification_report(gold, predicted, labels=None):
	"""Per label metrics plus accuracy and macro, micro and weighted averages."""
	per_label = per_label_metrics(gold, predicted, labels)
	report = { 'accuracy' : accuracy(gold, predicted), 'per_label' : per_label }
	n = len(per_label)
	if n > 0:
		report['macro'] = { m : sum(v[m] for v in per_label.values()) / n for m in ('precision', 'recall', 'f1') }
	else:
		report['macro'] = { 'precision' : 0.0, 'recall' : 0.0, 'f1' : 0.0 }
	tp = sum(v['tp'] for v in per_label.values())
	fp = sum(v['fp'] for v in per_label.values())
	fn = sum(v['fn'] for v in per_label.values())
	precision, recall, f1 = prf(tp, fp, fn)
	report['micro'] = { 'precision' : precision, 'recall' : recall, 'f1' : f1 }
	support = sum(v['support'] for v in per_label.values())
	if support > 0:
		report['weighted'] = { m : sum(v[m] * v['support'] for v in per_label.values()) / support
			for m in ('precision', 'recall', 'f1') }
	else:
		report['weighted'] = dict(report['macro'])
	return report


def format_report(report):
	lines = [ "%-12s %9s %9s %9s %9s" % ('label', 'precision', 'recall', 'f1', 'support') ]
	for label, v in report['per_label'].items():
		lines.append("%-12s %9.4f %9.4f %9.4f %9d" % (label, v['precision'], v['recall'], v['f1'], v['support']))
	for avg in ('macro', 'micro', 'weighted'):
		v = report[avg]
		lines.append("%-12s %9.4f %9.4f %9.4f" % (avg, v['precision'], v['recall'], v['f1']))
	lines.append("accuracy %.4f" % report['accuracy'])
	return "\n".join(lines)


def confusion_matrix(gold, predicted, labels=None):
	"""
	(matrix, labels) where matrix[i, j] counts tokens with gold label
	labels[i] predicted as labels[j].
	"""
	gold, predicted = check_pair(gold, predicted)
	if labels is None:
		labels = label_order(gold, predicted)
	index = { l : i for i, l in enumerate(labels) }
	matrix = np.zeros((len(labels), len(labels)), dtype=int)
	for g, p in zip(gold, predicted):
		if g in index and p in index:
			matrix[index[g], index[p]] += 1
	return matrix, list(labels)


## Entities

def extract_entities(labels, outside='O'):
	"""
	Spans (type, start, end) from a label sequence.

	Labels of the form B-X and I-X are read as BIO; any other label other
	than outside marks a span of consecutive tokens with the same label.
	"""
	entities = []
	current = None
	start = 0
	for i, label in enumerate(list(labels) + [outside]):
		if label == outside:
			kind, begin = None, False
		elif len(label) > 2 and label[1] == '-' and label[0] in 'BI':
			kind, begin = label[2:], label[0] == 'B'
		else:
			kind, begin = label, False
		if current is not None and (kind != current or begin):
			entities.append((current, start, i))
			current = None
		if kind is not None and current is None:
			current = kind
			start = i
	return entities


def entity_metrics(gold_entities, predicted_entities):
	"""Exact match precision, recall and f1 over sets of entity spans."""
	gold = set(gold_entities)
	predicted = set(predicted_entities)
	tp = len(gold & predicted)
	precision, recall, f1 = prf(tp, len(predicted) - tp, len(gold) - tp)
	return { 'precision' : precision, 'recall' : recall, 'f1' : f1,
		'gold' : len(gold), 'predicted' : len(predicted), 'correct' : tp }


## Trees

def labeled_brackets(tree):
	"""Counter of (label, start, end) over constituents longer than one word."""
	return Counter((l, i, j) for l, i, j in utility.collect_labeled_spans(tree) if j - i > 1)


def bracket_scores(gold_tree, predicted_tree):
	"""
	Labeled bracket counts for one sentence: (matched, gold, predicted).
	predicted_tree may be None for a sentence that did not parse.
	"""
	gold = labeled_brackets(gold_tree)
	if predicted_tree is None:
		return 0, sum(gold.values()), 0
	predicted = labeled_brackets(predicted_tree)
	matched = sum((gold & predicted).values())
	return matched, sum(gold.values()), sum(predicted.values())


def parseval(pairs):
	"""
	Labeled PARSEVAL over (gold_tree, predicted_tree) pairs. Sentences
	with predicted_tree None count towards recall but not precision.
	"""
	scores = defaultdict(float)
	for gold, predicted in pairs:
		matched, g, p = bracket_scores(gold, predicted)
		scores['matched'] += matched
		scores['gold'] += g
		scores['predicted'] += p
		scores['sentences'] += 1
		if predicted is None:
			scores['failures'] += 1
		elif predicted == gold:
			scores['exact_match'] += 1
		if predicted is not None and utility.collect_unlabeled_spans(gold) == utility.collect_unlabeled_spans(predicted):
			scores['unlabeled_exact_match'] += 1
	precision, recall, f1 = prf(scores['matched'], scores['predicted'] - scores['matched'], scores['gold'] - scores['matched'])
	scores['precision'] = precision
	scores['recall'] = recall
	scores['f1'] = f1
	if scores['sentences'] > 0:
		scores['exact_match'] /= scores['sentences']
		scores['unlabeled_exact_match'] /= scores['sentences']
	return dict(scores)


## Driving the models

def evaluate_tagger(model, examples):
	"""Any model with predict(tokens) -> labels, on (tokens, labels) examples."""
	gold = []
	predicted = []
	for tokens, labels in examples:
		if len(tokens) != len(labels):
			raise DimensionMismatch("%d tokens but %d labels" % (len(tokens), len(labels)))
		gold.append(list(labels))
		predicted.append(model.predict(tokens))
	report = classification_report(gold, predicted)
	report['entities'] = entity_metrics(
		[ (k, s, e, n) for n, g in enumerate(gold) for k, s, e in extract_entities(g) ],
		[ (k, s, e, n) for n, p in enumerate(predicted) for k, s, e in extract_entities(p) ])
	return report


def evaluate_parser(model, examples, **kwargs):
	"""
	PARSEVAL of model.predict on (tokens, gold_tree) examples. A sentence
	that does not parse is a failure, not an error.
	"""
	pairs = []
	for tokens, gold in examples:
		if isinstance(gold, str):
			gold = utility.string_to_tree(gold)
		try:
			predicted = model.predict(tokens, **kwargs).tree
		except NoParse:
			logging.info("No parse for %s", " ".join(tokens))
			predicted = None
		pairs.append((gold, predicted))
	return parseval(pairs)
