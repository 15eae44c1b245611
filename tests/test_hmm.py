"""Tests for hmm.py - trigram HMM training and Viterbi decoding."""

import itertools
import math
import os
import sys
import pytest
from concurrent.futures import ThreadPoolExecutor

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'statnlp'))

from hmm import HMMTagger, HMMCounts, count_examples
from utility import (
    START,
    EmptyTrainingSet,
    DimensionMismatch,
    UnknownLabel,
    InvalidHyperparameter,
)


class TestScenario:
    """The basic det noun verb scenario."""

    def test_predicts_pattern(self, pos_examples):
        tagger = HMMTagger.train(pos_examples, smoothing_k=0.001)
        assert tagger.predict(["The", "dog", "runs"]) == ["det", "noun", "verb"]

    def test_tags_in_order_of_appearance(self, pos_examples):
        tagger = HMMTagger.train(pos_examples)
        assert tagger.tags == ["det", "noun", "verb"]

    def test_metadata(self, pos_examples):
        tagger = HMMTagger.train(pos_examples, smoothing_k=0.01)
        assert tagger.metadata['training_size'] == 2
        assert tagger.metadata['num_tags'] == 3
        assert tagger.metadata['vocab_size'] == 6
        assert tagger.metadata['smoothing_k'] == 0.01
        assert 'trained_at' in tagger.metadata


class TestTrainingErrors:
    """Structural errors are raised before any counting."""

    def test_empty(self):
        with pytest.raises(EmptyTrainingSet):
            HMMTagger.train([])

    def test_mismatch(self):
        with pytest.raises(DimensionMismatch):
            HMMTagger.train([(["a", "b"], ["x"])])

    @pytest.mark.parametrize("k", [0, 0.0, -1.0])
    def test_bad_smoothing(self, pos_examples, k):
        with pytest.raises(InvalidHyperparameter):
            HMMTagger.train(pos_examples, smoothing_k=k)

    def test_closed_tag_set(self, pos_examples):
        with pytest.raises(UnknownLabel):
            HMMTagger.train(pos_examples, tags=["det", "noun"])

    def test_closed_tag_set_with_unused_tag(self, pos_examples):
        tagger = HMMTagger.train(pos_examples, tags=["adj", "det", "noun", "verb"])
        assert tagger.tags == ["adj", "det", "noun", "verb"]
        assert len(tagger.predict(["the", "cat"])) == 2

    def test_bad_workers(self, pos_examples):
        with pytest.raises(InvalidHyperparameter):
            HMMTagger.train(pos_examples, workers=0)


class TestCounts:
    """The count accumulator."""

    def test_counts(self, pos_examples):
        counts = count_examples(pos_examples)
        assert counts.examples == 2
        assert counts.initial['det'] == 2
        assert counts.transitions[(START, START, 'det')] == 2
        assert counts.transitions[(START, 'det', 'noun')] == 2
        assert counts.transitions[('det', 'noun', 'verb')] == 2
        assert counts.emissions[('det', 'the')] == 1

    def test_addition(self, pos_examples):
        left = count_examples(pos_examples[:1])
        right = count_examples(pos_examples[1:])
        both = left + right
        whole = count_examples(pos_examples)
        assert both.transitions == whole.transitions
        assert both.emissions == whole.emissions
        assert list(both.tags) == list(whole.tags)
        assert list(both.words) == list(whole.words)
        assert both.examples == 2

    def test_empty_sentence(self):
        counts = HMMCounts()
        counts.add_example([], [])
        assert counts.examples == 1
        assert len(counts.transitions) == 0


class TestSmoothing:
    """Every conditional distribution sums to one with no -inf entries."""

    def test_emissions(self, tagged_corpus):
        tagger = HMMTagger.train(tagged_corpus, smoothing_k=0.001)
        for tag in tagger.tags:
            probs = [ math.exp(tagger.emission_log_prob(tag, w)) for w in tagger.vocabulary ]
            unknown = math.exp(tagger.emission_log_prob(tag, "never-seen-word"))
            assert unknown == pytest.approx(math.exp(tagger.unknown_log_probs[tag]))
            assert sum(probs) + unknown == pytest.approx(1.0)
            assert all(p > 0 for p in probs)

    def test_transitions(self, tagged_corpus):
        tagger = HMMTagger.train(tagged_corpus, smoothing_k=0.5)
        contexts = [START] + tagger.tags
        for t1 in contexts:
            for t2 in contexts:
                lps = [ tagger.transition_log_prob(t1, t2, t3) for t3 in tagger.tags ]
                assert all(math.isfinite(lp) for lp in lps)
                assert sum(math.exp(lp) for lp in lps) == pytest.approx(1.0)

    def test_initial(self, tagged_corpus):
        tagger = HMMTagger.train(tagged_corpus)
        assert sum(math.exp(lp) for lp in tagger.initial_log_probs.values()) == pytest.approx(1.0)

    def test_unknown_tag(self, pos_examples):
        tagger = HMMTagger.train(pos_examples)
        with pytest.raises(UnknownLabel):
            tagger.emission_log_prob("adj", "big")
        with pytest.raises(UnknownLabel):
            tagger.transition_log_prob("det", "noun", START)
        with pytest.raises(UnknownLabel):
            tagger.transition_log_prob("adj", "noun", "verb")


class TestDecoding:
    """Viterbi decoding."""

    def test_empty_input(self, pos_examples):
        assert HMMTagger.train(pos_examples).predict([]) == []

    @pytest.mark.parametrize("tokens", [
        ["cat"],
        ["the", "cat"],
        ["unknown", "words", "only", "here"],
        ["the", "dog", "saw", "a", "cat", "run", "home", "again"],
    ])
    def test_length(self, tagged_corpus, tokens):
        tagger = HMMTagger.train(tagged_corpus)
        tags = tagger.predict(tokens)
        assert len(tags) == len(tokens)
        assert all(t in tagger.tags for t in tags)

    @pytest.mark.parametrize("tokens", [
        ["the", "cat", "ran"],
        ["dogs", "saw"],
        ["a", "run", "home"],
        ["run"],
    ])
    def test_optimal(self, tagged_corpus, tokens):
        """The prediction scores as well as every other tagging."""
        tagger = HMMTagger.train(tagged_corpus, smoothing_k=0.1)
        predicted = tagger.predict(tokens)
        best = max(tagger.score(tokens, list(tags))
                   for tags in itertools.product(tagger.tags, repeat=len(tokens)))
        assert tagger.score(tokens, predicted) == pytest.approx(best)

    def test_score_errors(self, pos_examples):
        tagger = HMMTagger.train(pos_examples)
        with pytest.raises(DimensionMismatch):
            tagger.score(["the"], ["det", "noun"])
        with pytest.raises(UnknownLabel):
            tagger.score(["the"], ["adj"])

    def test_lowercase(self, pos_examples):
        tagger = HMMTagger.train(pos_examples)
        assert tagger.emission_log_prob("det", "THE") == tagger.emission_log_prob("det", "the")

    def test_cased(self, pos_examples):
        tagger = HMMTagger.train(pos_examples, lowercase=False)
        assert "The" in tagger.vocabulary
        assert "the" not in tagger.vocabulary
        assert tagger.emission_log_prob("det", "the") == tagger.unknown_log_probs["det"]

    def test_repeatable(self, tagged_corpus):
        tagger = HMMTagger.train(tagged_corpus)
        tokens = ["the", "dog", "ran", "home"]
        assert tagger.predict(tokens) == tagger.predict(tokens)

    def test_shared_across_threads(self, tagged_corpus):
        tagger = HMMTagger.train(tagged_corpus)
        sentences = [ tokens for tokens, _ in tagged_corpus ] * 10 + [["a", "zebra", "ran"], ["cat"]]
        serial = [ tagger.predict(tokens) for tokens in sentences ]
        with ThreadPoolExecutor(max_workers=4) as executor:
            assert list(executor.map(tagger.predict, sentences)) == serial

    def test_workers(self, tagged_corpus):
        one = HMMTagger.train(tagged_corpus, workers=1)
        three = HMMTagger.train(tagged_corpus, workers=3)
        assert one.tags == three.tags
        assert one.emission_log_probs == three.emission_log_probs
        assert one.transition_log_probs == three.transition_log_probs
        for tokens, _ in tagged_corpus:
            assert one.predict(tokens) == three.predict(tokens)


class TestPersistence:
    """Saved taggers decode exactly like the original."""

    def test_round_trip(self, tagged_corpus, tmp_model_path):
        tagger = HMMTagger.train(tagged_corpus, smoothing_k=0.01)
        tagger.save(tmp_model_path)
        loaded = HMMTagger.load(tmp_model_path)
        assert loaded.tags == tagger.tags
        assert loaded.vocabulary == tagger.vocabulary
        assert loaded.metadata == tagger.metadata
        for tokens in (["the", "cat", "ran", "home"], ["zebras", "run"]):
            assert loaded.predict(tokens) == tagger.predict(tokens)
            assert loaded.score(tokens, tagger.predict(tokens)) == tagger.score(tokens, tagger.predict(tokens))
