"""Trigram hidden Markov model tagger.

The model generates tag t_i given the two previous tags and word w_i
given t_i. All parameters are add-k smoothed relative frequencies stored
as natural logs:

    P(t3 | t1, t2) = (c(t1, t2, t3) + k) / (c(t1, t2) + k * |T|)
    P(w | t)       = (c(t, w) + k)       / (c(t) + k * (|V| + 1))

The extra slot in the emission denominator is the unknown word, so every
emission row is a proper distribution over the vocabulary plus one
out-of-vocabulary event and no (tag, word) pair has probability zero.
Sequences are padded on the left with two <START> pseudo-tags.

Decoding is Viterbi over states that are pairs of adjacent tags:

    delta[i][(t1, t2)] = max_t0 delta[i-1][(t0, t1)]
                         + log P(t2 | t0, t1) + log P(w_i | t2)
"""

import functools
import logging
import math
from collections import Counter, defaultdict

import numpy as np

import persistence
import utility
from utility import START, DimensionMismatch, UnknownLabel


class HMMCounts:
    """Sufficient statistics of a tagged corpus. Partial counts add up with +."""

    def __init__(self):
        self.initial = Counter()        # first tag of a sentence
        self.transitions = Counter()    # (t1, t2, t3), padded with START
        self.emissions = Counter()      # (tag, word)
        self.tags = {}                  # ordered by first occurrence
        self.words = {}
        self.examples = 0

    def add_example(self, words, tags):
        self.examples += 1
        for tag in tags:
            self.tags.setdefault(tag, None)
        for word in words:
            self.words.setdefault(word, None)
        for word, tag in zip(words, tags):
            self.emissions[(tag, word)] += 1
        if len(tags) > 0:
            self.initial[tags[0]] += 1
        padded = [START, START] + list(tags)
        for i in range(len(tags)):
            self.transitions[tuple(padded[i:i + 3])] += 1

    def __add__(self, other):
        result = HMMCounts()
        result.initial = self.initial + other.initial
        result.transitions = self.transitions + other.transitions
        result.emissions = self.emissions + other.emissions
        result.tags = dict(self.tags)
        result.tags.update(other.tags)
        result.words = dict(self.words)
        result.words.update(other.words)
        result.examples = self.examples + other.examples
        return result


def count_examples(examples, lowercase=True):
    counts = HMMCounts()
    for words, tags in examples:
        if lowercase:
            words = [w.lower() for w in words]
        counts.add_example(words, list(tags))
    return counts


@persistence.register
class HMMTagger:
    """
    Trained trigram HMM. Build one with HMMTagger.train; instances are
    not modified afterwards, so one tagger can decode from many threads.
    """

    KIND = 'hmm'

    def __init__(self, tags, vocabulary, initial_log_probs, transition_log_probs,
                 emission_log_probs, unknown_log_probs, smoothing_k=0.001,
                 lowercase=True, metadata=None):
        self.tags = list(tags)
        self.vocabulary = set(vocabulary)
        self.initial_log_probs = dict(initial_log_probs)
        # (t1, t2) -> t3 -> log P(t3 | t1, t2); contexts may contain START
        self.transition_log_probs = { context : dict(row) for context, row in transition_log_probs.items() }
        # tag -> word -> log P(word | tag) for the pairs seen in training;
        # any other word gets unknown_log_probs[tag]
        self.emission_log_probs = { tag : dict(row) for tag, row in emission_log_probs.items() }
        self.unknown_log_probs = dict(unknown_log_probs)
        self.smoothing_k = smoothing_k
        self.lowercase = lowercase
        self.metadata = dict(metadata or {})
        if len(self.tags) == 0:
            raise utility.InvalidHyperparameter("An HMM needs at least one tag")
        self._compile()

    @classmethod
    def train(cls, examples, smoothing_k=0.001, tags=None, lowercase=True, workers=1):
        """
        Estimate a tagger from (tokens, tags) pairs.

        tags, if given, fixes the closed tag set (and its order); otherwise
        it is the set of tags in the data, in order of first occurrence.
        """
        examples = utility.check_examples(examples)
        smoothing_k = utility.check_smoothing(smoothing_k, allow_zero=False)
        utility.check_workers(workers)
        utility.check_lengths(examples)
        if tags is not None:
            tags = list(dict.fromkeys(tags))
            allowed = set(tags)
            for i, (_, labels) in enumerate(examples):
                for label in labels:
                    if label not in allowed:
                        raise UnknownLabel(f"Example {i} uses tag {label!r} outside the tag set")

        counts = utility.parallel_map_reduce(
            functools.partial(count_examples, lowercase=lowercase), examples, workers)
        tag_list = tags if tags is not None else list(counts.tags)
        if len(tag_list) == 0:
            raise utility.EmptyTrainingSet("Training examples contain no tags")
        vocabulary = set(counts.words)
        k = smoothing_k

        initial = utility.smoothed_log_distribution(counts.initial, tag_list, k)

        by_context = defaultdict(Counter)
        for (t1, t2, t3), c in counts.transitions.items():
            by_context[(t1, t2)][t3] += c
        transitions = {}
        for t1 in [START] + tag_list:
            for t2 in [START] + tag_list:
                transitions[(t1, t2)] = utility.smoothed_log_distribution(
                    by_context.get((t1, t2), {}), tag_list, k)

        by_tag = defaultdict(Counter)
        for (tag, word), c in counts.emissions.items():
            by_tag[tag][word] += c
        emissions = {}
        unknown = {}
        for tag in tag_list:
            emissions[tag], unknown[tag] = utility.smoothed_log_probabilities(
                by_tag.get(tag, Counter()), k, len(vocabulary) + 1)

        metadata = {
            'trained_at': persistence.timestamp(),
            'training_size': counts.examples,
            'num_tags': len(tag_list),
            'vocab_size': len(vocabulary),
            'smoothing_k': k,
        }
        logging.info("Trained HMM on %d sentences: %d tags, %d word types",
                     counts.examples, len(tag_list), len(vocabulary))
        return cls(tag_list, vocabulary, initial, transitions, emissions, unknown,
                   smoothing_k=k, lowercase=lowercase, metadata=metadata)

    def _compile(self):
        """Dense numpy copies of the parameters for decoding."""
        T = len(self.tags)
        self.tag_index = { t : i for i, t in enumerate(self.tags) }
        words = sorted(self.vocabulary)
        self.word_index = { w : i for i, w in enumerate(words) }
        uniform = -math.log(T)

        self._initial = np.array([ self.initial_log_probs.get(t, uniform) for t in self.tags ])

        # Index T stands for START in the first two axes.
        states = self.tags + [START]
        self._transitions = np.full((T + 1, T + 1, T), uniform)
        for a, t1 in enumerate(states):
            for b, t2 in enumerate(states):
                row = self.transition_log_probs.get((t1, t2))
                if row is None:
                    continue
                for c, t3 in enumerate(self.tags):
                    if t3 in row:
                        self._transitions[a, b, c] = row[t3]

        # Last column is the unknown word.
        V = len(words)
        self._emissions = np.empty((T, V + 1))
        for i, tag in enumerate(self.tags):
            self._emissions[i, :] = self.unknown_log_probs[tag]
            for word, lp in self.emission_log_probs.get(tag, {}).items():
                j = self.word_index.get(word)
                if j is not None:
                    self._emissions[i, j] = lp

    def _normalise(self, word):
        return word.lower() if self.lowercase else word

    def _column(self, word):
        return self.word_index.get(self._normalise(word), len(self.word_index))

    def emission_log_prob(self, tag, word):
        if tag not in self.tag_index:
            raise UnknownLabel(f"Unknown tag {tag!r}")
        return float(self._emissions[self.tag_index[tag], self._column(word)])

    def transition_log_prob(self, t1, t2, t3):
        """log P(t3 | t1, t2); t1 and t2 may be START."""
        def context_index(t):
            if t == START:
                return len(self.tags)
            if t not in self.tag_index:
                raise UnknownLabel(f"Unknown tag {t!r}")
            return self.tag_index[t]

        if t3 not in self.tag_index:
            raise UnknownLabel(f"Unknown tag {t3!r}")
        return float(self._transitions[context_index(t1), context_index(t2), self.tag_index[t3]])

    def score(self, tokens, tags):
        """Joint log probability of tokens with the given tagging."""
        if len(tokens) != len(tags):
            raise DimensionMismatch(f"{len(tokens)} tokens but {len(tags)} tags")
        for tag in tags:
            if tag not in self.tag_index:
                raise UnknownLabel(f"Unknown tag {tag!r}")
        total = 0.0
        history = (START, START)
        for i, (word, tag) in enumerate(zip(tokens, tags)):
            if i == 0:
                total += self.initial_log_probs[tag]
            else:
                total += self.transition_log_prob(history[0], history[1], tag)
            total += self.emission_log_prob(tag, word)
            history = (history[1], tag)
        return total

    def predict(self, tokens):
        """Most probable tag sequence for tokens; [] for empty input."""
        tokens = list(tokens)
        n = len(tokens)
        if n == 0:
            return []
        T = len(self.tags)
        emissions = self._emissions[:, [ self._column(w) for w in tokens ]]

        # delta[a, b]: best log score of a prefix whose last two tags are
        # a (row T for START) and b.
        delta = np.full((T + 1, T), -np.inf)
        delta[T, :] = self._initial + emissions[:, 0]
        transitions = self._transitions[:, :T, :]
        backpointers = []
        for i in range(1, n):
            # scores[t0, t1, t2]
            scores = delta[:, :, np.newaxis] + transitions
            best = np.argmax(scores, axis=0)
            new = np.take_along_axis(scores, best[np.newaxis], axis=0)[0]
            delta = np.full((T + 1, T), -np.inf)
            delta[:T, :] = new + emissions[:, i][np.newaxis, :]
            backpointers.append(best)

        t1, t2 = divmod(int(np.argmax(delta)), T)
        path = [t2]
        for best in reversed(backpointers):
            t0 = int(best[t1, t2])
            path.append(t1)
            t1, t2 = t0, t1
        path.reverse()
        return [ self.tags[i] for i in path ]

    def to_dict(self):
        return {
            'tags': self.tags,
            'vocabulary': sorted(self.vocabulary),
            'initial_log_probs': self.initial_log_probs,
            'transition_log_probs': [ [t1, t2, row] for (t1, t2), row in self.transition_log_probs.items() ],
            'emission_log_probs': self.emission_log_probs,
            'unknown_log_probs': self.unknown_log_probs,
            'smoothing_k': self.smoothing_k,
            'lowercase': self.lowercase,
        }

    @classmethod
    def from_dict(cls, data, metadata=None):
        transitions = { (t1, t2) : row for t1, t2, row in data['transition_log_probs'] }
        return cls(data['tags'], data['vocabulary'], data['initial_log_probs'],
                   transitions, data['emission_log_probs'], data['unknown_log_probs'],
                   smoothing_k=data['smoothing_k'], lowercase=data['lowercase'],
                   metadata=metadata)

    def save(self, path):
        persistence.save_model(self, path)

    @classmethod
    def load(cls, path):
        return persistence.load_model(path, kind=cls.KIND)
