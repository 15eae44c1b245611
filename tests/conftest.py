"""Shared fixtures and test utilities for the statnlp test suite."""

import os
import sys
import tempfile
import pytest
import numpy as np

# Add statnlp to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'statnlp'))

import utility
from grammar import Rule


@pytest.fixture
def pos_examples():
    """
    Two tagged sentences with the same tag pattern.

    det noun verb
    """
    return [
        (["The", "cat", "sat"], ["det", "noun", "verb"]),
        (["A", "dog", "ran"], ["det", "noun", "verb"]),
    ]


@pytest.fixture
def tagged_corpus():
    """A slightly larger tagged corpus with some ambiguity."""
    return [
        (["the", "cat", "sat"], ["det", "noun", "verb"]),
        (["a", "dog", "ran", "home"], ["det", "noun", "verb", "noun"]),
        (["the", "dog", "saw", "a", "cat"], ["det", "noun", "verb", "det", "noun"]),
        (["dogs", "run"], ["noun", "verb"]),
        (["the", "run", "ended"], ["det", "noun", "verb"]),
    ]


@pytest.fixture
def entity_examples():
    """Capitalised multi-token spans labelled person or org."""
    return [
        (["John", "Smith", "works", "at", "Acme", "Corp"], ["person", "person", "O", "O", "org", "org"]),
        (["Mary", "Jones", "joined", "Globex", "Inc"], ["person", "person", "O", "org", "org"]),
    ]


@pytest.fixture
def scenario_rules():
    """
    S -> NP (1.0)
    NP -> Det Noun (1.0)
    Det -> the (1.0)
    Noun -> cat (0.5)
    Noun -> dog (0.5)
    """
    return [
        Rule('S', ('NP',), 1.0),
        Rule('NP', ('Det', 'Noun'), 1.0),
        Rule('Det', ('the',), 1.0),
        Rule('Noun', ('cat',), 0.5),
        Rule('Noun', ('dog',), 0.5),
    ]


@pytest.fixture
def treebank():
    """(tokens, bracketed tree) examples."""
    trees = [
        "(S (NP (Det the) (Noun cat)) (VP (Verb sat)))",
        "(S (NP (Det the) (Noun dog)) (VP (Verb saw) (NP (Det a) (Noun cat))))",
        "(S (NP (Det a) (Noun dog)) (VP (Verb ran)))",
    ]
    return [ (utility.collect_yield(utility.string_to_tree(t)), t) for t in trees ]


@pytest.fixture
def tmp_model_path():
    """A temporary filename for a saved model, removed afterwards."""
    fd, path = tempfile.mkstemp(suffix='.json.gz')
    os.close(fd)
    yield path
    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
def rng():
    """A seeded random number generator for reproducible weights."""
    return np.random.default_rng(42)
