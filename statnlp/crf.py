"""Linear-chain conditional random field.

The score of a labelling y of tokens x is

    s(x, y) = sum_i sum_{f in features(x, i)} W[f, y_i] + sum_i A[y_{i-1}, y_i]

and P(y | x) = exp(s(x, y)) / Z(x). W is a dense (features x labels)
matrix over the feature strings seen in training; features that were
never seen weigh zero. Training maximises the average log likelihood
minus (regularization / 2) ||w||^2 by gradient ascent, with exact
expected counts from forward-backward.
"""

import functools
import logging
from collections.abc import Mapping

import numpy as np
from scipy.special import logsumexp

import features
import optimizer
import persistence
import utility
from utility import DimensionMismatch, UnknownLabel


def forward_backward(emissions, transitions):
    """
    emissions: (n, L) per-position label scores; transitions: (L, L).

    Returns (log_Z, node_marginals (n, L), edge_marginals (n-1, L, L)).
    """
    n, L = emissions.shape
    alpha = np.empty((n, L))
    beta = np.zeros((n, L))
    alpha[0] = emissions[0]
    for i in range(1, n):
        alpha[i] = logsumexp(alpha[i - 1][:, np.newaxis] + transitions, axis=0) + emissions[i]
    for i in range(n - 2, -1, -1):
        beta[i] = logsumexp(transitions + (emissions[i + 1] + beta[i + 1])[np.newaxis, :], axis=1)
    log_z = float(logsumexp(alpha[n - 1]))
    nodes = np.exp(alpha + beta - log_z)
    edges = np.empty((max(n - 1, 0), L, L))
    for i in range(n - 1):
        edges[i] = np.exp(alpha[i][:, np.newaxis] + transitions
                          + (emissions[i + 1] + beta[i + 1])[np.newaxis, :] - log_z)
    return log_z, nodes, edges


def viterbi(emissions, transitions):
    """Best label index sequence; ties go to the lowest label index."""
    n, L = emissions.shape
    delta = emissions[0].copy()
    backpointers = []
    for i in range(1, n):
        scores = delta[:, np.newaxis] + transitions
        best = np.argmax(scores, axis=0)
        delta = scores[best, np.arange(L)] + emissions[i]
        backpointers.append(best)
    path = [int(np.argmax(delta))]
    for best in reversed(backpointers):
        path.append(int(best[path[-1]]))
    path.reverse()
    return path


def sequence_score(emissions, transitions, path):
    total = float(sum(emissions[i, y] for i, y in enumerate(path)))
    for i in range(1, len(path)):
        total += float(transitions[path[i - 1], path[i]])
    return total


class CRFGradient:
    """
    Observed minus expected counts summed over some examples, with their
    log likelihood. Partial gradients add up with +.
    """

    def __init__(self, num_features, num_labels):
        self.features = np.zeros((num_features, num_labels))
        self.transitions = np.zeros((num_labels, num_labels))
        self.log_likelihood = 0.0
        self.count = 0

    def add_example(self, rows, labels, feature_weights, transition_weights):
        self.count += 1
        n = len(labels)
        if n == 0:
            return
        emissions = emission_scores(rows, feature_weights)
        log_z, nodes, edges = forward_backward(emissions, transition_weights)
        self.log_likelihood += sequence_score(emissions, transition_weights, labels) - log_z
        for i, y in enumerate(labels):
            self.features[rows[i], y] += 1
            self.features[rows[i]] -= nodes[i]
        for i in range(1, n):
            self.transitions[labels[i - 1], labels[i]] += 1
        self.transitions -= edges.sum(axis=0)

    def __add__(self, other):
        result = CRFGradient(*self.features.shape)
        result.features = self.features + other.features
        result.transitions = self.transitions + other.transitions
        result.log_likelihood = self.log_likelihood + other.log_likelihood
        result.count = self.count + other.count
        return result


def emission_scores(rows, feature_weights):
    L = feature_weights.shape[1]
    scores = np.zeros((len(rows), L))
    for i, r in enumerate(rows):
        if len(r) > 0:
            scores[i] = feature_weights[r].sum(axis=0)
    return scores


def batch_gradient(batch, feature_weights, transition_weights):
    gradient = CRFGradient(*feature_weights.shape)
    for rows, labels in batch:
        gradient.add_example(rows, labels, feature_weights, transition_weights)
    return gradient


class FeatureWeights(Mapping):
    """Read-only view feature -> {label: weight} over the weight matrix."""

    def __init__(self, crf):
        self._crf = crf

    def __getitem__(self, feature):
        row = self._crf.feature_index[feature]
        return { label : float(w) for label, w in zip(self._crf.labels, self._crf._weights[row]) }

    def __iter__(self):
        return iter(self._crf.feature_index)

    def __len__(self):
        return len(self._crf.feature_index)


@persistence.register
class CRF:
    """
    A linear-chain CRF over a fixed, ordered label set.

    The label order is the order labels are given in; Viterbi ties go to
    the label that comes first.
    """

    KIND = 'crf'

    def __init__(self, labels, **feature_options):
        self.labels = list(dict.fromkeys(labels))
        if len(self.labels) == 0:
            raise utility.InvalidHyperparameter("A CRF needs at least one label")
        self.label_index = { label : i for i, label in enumerate(self.labels) }
        self.feature_options = features.check_options(feature_options)
        self.feature_index = {}
        L = len(self.labels)
        self._weights = np.zeros((0, L))
        self._transitions = np.zeros((L, L))
        self.metadata = {}

    @property
    def feature_weights(self):
        return FeatureWeights(self)

    @property
    def transition_weights(self):
        return { (a, b) : float(self._transitions[i, j])
                 for i, a in enumerate(self.labels) for j, b in enumerate(self.labels) }

    def feature_weight(self, feature, label):
        """0.0 for a feature that was never seen."""
        if label not in self.label_index:
            raise UnknownLabel(f"Unknown label {label!r}")
        row = self.feature_index.get(feature)
        if row is None:
            return 0.0
        return float(self._weights[row, self.label_index[label]])

    def transition_weight(self, previous, label):
        for l in (previous, label):
            if l not in self.label_index:
                raise UnknownLabel(f"Unknown label {l!r}")
        return float(self._transitions[self.label_index[previous], self.label_index[label]])

    def _copy(self):
        model = CRF(self.labels, **self.feature_options)
        model.feature_index = dict(self.feature_index)
        model._weights = self._weights.copy()
        model._transitions = self._transitions.copy()
        model.metadata = dict(self.metadata)
        return model

    def _encode(self, tokens, grow=False):
        """Feature rows per position. With grow, unseen features get new rows."""
        rows = []
        for position in features.extract_sequence(tokens, **self.feature_options):
            r = []
            for f in position:
                index = self.feature_index.get(f)
                if index is None and grow:
                    index = len(self.feature_index)
                    self.feature_index[f] = index
                if index is not None:
                    r.append(index)
            rows.append(np.array(r, dtype=int))
        return rows

    def _emission_scores(self, tokens):
        return emission_scores(self._encode(tokens), self._weights)

    def _label_indices(self, labels):
        try:
            return [ self.label_index[label] for label in labels ]
        except KeyError as e:
            raise UnknownLabel(f"Unknown label {e.args[0]!r}") from None

    def train(self, examples, iterations=100, method='momentum', regularization=1.0,
              learning_rate=0.1, momentum=0.9, batch_size=None,
              convergence_threshold=None, workers=1, log_every=10,
              clip_norm=None, schedule='constant', decay=None, decay_steps=10):
        """
        Fit the weights to (tokens, labels) examples and return a new CRF.

        Training starts from this model's weights. It makes exactly
        iterations passes over the data unless convergence_threshold is
        set and the gradient norm drops below it first. The learning rate
        follows schedule per iteration, and with clip_norm each update uses
        the gradient scaled down to at most that norm.
        """
        examples = utility.check_examples(examples)
        utility.check_lengths(examples)
        for i, (_, labels) in enumerate(examples):
            for label in labels:
                if label not in self.label_index:
                    raise UnknownLabel(f"Example {i} uses label {label!r} outside the label set")
        iterations = utility.check_iterations(iterations)
        regularization = utility.check_non_negative('regularization', regularization)
        updater = optimizer.Optimizer(method, learning_rate, momentum, clip_norm,
                                      schedule, decay, decay_steps)
        if batch_size is not None:
            batch_size = int(utility.check_positive('batch_size', batch_size))
        if convergence_threshold is not None:
            utility.check_positive('convergence_threshold', convergence_threshold)
        utility.check_workers(workers)

        model = self._copy()
        encoded = [ (model._encode(tokens, grow=True), model._label_indices(labels))
                    for tokens, labels in examples ]
        F, L = len(model.feature_index), len(model.labels)
        weights = np.zeros((F, L))
        weights[:model._weights.shape[0]] = model._weights
        parameters = {'features': weights, 'transitions': model._transitions}
        if batch_size is None:
            batches = [encoded]
        else:
            batches = [ encoded[i:i + batch_size] for i in range(0, len(encoded), batch_size) ]

        logging.info("Training CRF on %d sequences, %d features, %d labels",
                     len(encoded), F, L)
        loss_history = []
        iterations_run = 0
        norm = 0.0
        for iteration in range(iterations):
            log_likelihood = 0.0
            for batch in batches:
                gradient = utility.parallel_map_reduce(
                    functools.partial(batch_gradient,
                                      feature_weights=parameters['features'],
                                      transition_weights=parameters['transitions']),
                    batch, workers)
                m = max(gradient.count, 1)
                log_likelihood += gradient.log_likelihood
                g = {'features': gradient.features / m, 'transitions': gradient.transitions / m}
                g = optimizer.regularized_gradient(g, parameters, regularization)
                norm = optimizer.gradient_norm(g)
                updater.step(parameters, g, iteration)
            iterations_run += 1
            loss = (-log_likelihood / len(encoded)
                    + optimizer.regularization_penalty(parameters, regularization))
            loss_history.append(loss)
            if log_every and (iteration + 1) % log_every == 0:
                logging.info("Iteration %d loss %f gradient norm %f", iteration + 1, loss, norm)
            if optimizer.converged(g, convergence_threshold):
                logging.info("Converged after %d iterations", iterations_run)
                break

        model._weights = parameters['features']
        model._transitions = parameters['transitions']
        model.metadata = {
            'trained_at': persistence.timestamp(),
            'training_size': len(encoded),
            'iterations': iterations_run,
            'method': method,
            'learning_rate': updater.learning_rate,
            'momentum': updater.momentum,
            'regularization': regularization,
            'batch_size': batch_size,
            'clip_norm': updater.clip_norm,
            'schedule': updater.schedule,
            'decay': updater.decay,
            'final_learning_rate': updater.rate(iterations_run - 1),
            'loss_history': loss_history,
            'final_loss': loss_history[-1],
            'num_features': F,
        }
        return model

    def predict(self, tokens):
        tokens = list(tokens)
        if len(tokens) == 0:
            return []
        path = viterbi(self._emission_scores(tokens), self._transitions)
        return [ self.labels[i] for i in path ]

    def marginals(self, tokens):
        """Per position, a dict label -> posterior probability."""
        tokens = list(tokens)
        if len(tokens) == 0:
            return []
        _, nodes, _ = forward_backward(self._emission_scores(tokens), self._transitions)
        return [ { label : float(p) for label, p in zip(self.labels, row) } for row in nodes ]

    def score(self, tokens, labels):
        """Unnormalised score s(x, y)."""
        tokens = list(tokens)
        if len(tokens) != len(labels):
            raise DimensionMismatch(f"{len(tokens)} tokens but {len(labels)} labels")
        if len(tokens) == 0:
            return 0.0
        return sequence_score(self._emission_scores(tokens), self._transitions,
                              self._label_indices(labels))

    def log_likelihood(self, tokens, labels):
        """log P(labels | tokens)"""
        tokens = list(tokens)
        if len(tokens) != len(labels):
            raise DimensionMismatch(f"{len(tokens)} tokens but {len(labels)} labels")
        if len(tokens) == 0:
            return 0.0
        emissions = self._emission_scores(tokens)
        log_z, _, _ = forward_backward(emissions, self._transitions)
        return sequence_score(emissions, self._transitions, self._label_indices(labels)) - log_z

    def to_dict(self):
        features_in_order = sorted(self.feature_index, key=self.feature_index.get)
        return {
            'labels': self.labels,
            'feature_options': self.feature_options,
            'features': features_in_order,
            'feature_weights': self._weights.tolist(),
            'transition_weights': self._transitions.tolist(),
        }

    @classmethod
    def from_dict(cls, data, metadata=None):
        model = cls(data['labels'], **data['feature_options'])
        L = len(model.labels)
        model.feature_index = { f : i for i, f in enumerate(data['features']) }
        model._weights = np.array(data['feature_weights'], dtype=float).reshape(len(data['features']), L)
        model._transitions = np.array(data['transition_weights'], dtype=float).reshape(L, L)
        model.metadata = dict(metadata or {})
        return model

    def save(self, path):
        persistence.save_model(self, path)

    @classmethod
    def load(cls, path):
        return persistence.load_model(path, kind=cls.KIND)
