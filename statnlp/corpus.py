"""Plain text corpus formats.

Tagged sentences, one per line:      The/det cat/noun sat/verb
Treebank, one tree per line:         (S (NP (Det the) (Noun cat)))
Plain sentences, one per line:       the cat sat

Blank lines and lines starting with # are skipped by every reader.
"""

import logging

import utility


def _lines(filename):
    with open(filename, encoding='utf-8') as inf:
        for number, line in enumerate(inf, start=1):
            line = line.strip()
            if line and not line.startswith('#'):
                yield number, line


def parse_tagged_line(line, separator='/'):
    """Split "word/TAG" tokens on the last separator of each token."""
    tokens = []
    tags = []
    for item in line.split():
        word, sep, tag = item.rpartition(separator)
        if not sep or not word or not tag:
            raise ValueError(f"Token {item!r} is not of the form word{separator}tag")
        tokens.append(word)
        tags.append(tag)
    return tokens, tags


def read_tagged(filename, separator='/'):
    """List of (tokens, tags)."""
    examples = []
    for number, line in _lines(filename):
        try:
            examples.append(parse_tagged_line(line, separator))
        except ValueError as e:
            raise ValueError(f"{filename}:{number}: {e}") from e
    logging.info("Read %d tagged sentences from %s", len(examples), filename)
    return examples


def write_tagged(filename, examples, separator='/'):
    with open(filename, 'w', encoding='utf-8') as outf:
        for tokens, tags in examples:
            if len(tokens) != len(tags):
                raise utility.DimensionMismatch(f"{len(tokens)} tokens but {len(tags)} tags")
            outf.write(" ".join(w + separator + t for w, t in zip(tokens, tags)) + "\n")


def read_treebank(filename):
    """List of (tokens, tree)."""
    examples = []
    for number, line in _lines(filename):
        try:
            tree = utility.string_to_tree(line)
        except ValueError as e:
            raise ValueError(f"{filename}:{number}: {e}") from e
        examples.append((utility.collect_yield(tree), tree))
    logging.info("Read %d trees from %s", len(examples), filename)
    return examples


def write_treebank(filename, trees):
    with open(filename, 'w', encoding='utf-8') as outf:
        for tree in trees:
            outf.write(utility.tree_to_string(tree) + "\n")


def read_sentences(filename):
    return [ line.split() for _, line in _lines(filename) ]


def write_sentences(filename, sentences):
    with open(filename, 'w', encoding='utf-8') as outf:
        for tokens in sentences:
            outf.write(" ".join(tokens) + "\n")
