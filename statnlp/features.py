"""Per-token features for the CRF.

Every feature is a string "name=value". Features only look at the
characters of the token and its neighbours, never at any external
resource, so they work the same for every language that separates words.
"""

import re
import string

from utility import START, InvalidHyperparameter

END = '<END>'

DEFAULT_OPTIONS = {
    'max_affix_length': 3,
    'use_context': True,
    'use_affixes': True,
    'use_shape': True,
}

PATTERNS = [
    ('all_digits', re.compile(r'^\d+$')),
    ('year', re.compile(r'^\d{4}$')),
    ('decimal', re.compile(r'^\d+[.,]\d+$')),
    ('initial', re.compile(r'^[A-Z]\.$')),
    ('acronym', re.compile(r'^[A-Z]{2,}$')),
]

_PUNCTUATION = set(string.punctuation)


def check_options(options):
    """Fill in defaults and reject options this module does not know."""
    unknown = set(options) - set(DEFAULT_OPTIONS)
    if unknown:
        raise InvalidHyperparameter(f"Unknown feature options {sorted(unknown)}")
    result = dict(DEFAULT_OPTIONS)
    result.update(options)
    affix = result['max_affix_length']
    if isinstance(affix, bool) or not isinstance(affix, int) or affix < 0:
        raise InvalidHyperparameter(f"max_affix_length must be a non-negative integer, got {affix!r}")
    return result


def word_shape(word):
    """Xxxx for Word, dd.d for 12.5 and so on."""
    shape = []
    for c in word:
        if c.isupper():
            shape.append('X')
        elif c.islower():
            shape.append('x')
        elif c.isdigit():
            shape.append('d')
        else:
            shape.append(c)
    return ''.join(shape)


def short_word_shape(word):
    """word_shape with runs of the same character collapsed: Xxxx -> Xx."""
    shape = word_shape(word)
    result = []
    for c in shape:
        if not result or result[-1] != c:
            result.append(c)
    return ''.join(result)


def is_capitalized(word):
    return len(word) > 0 and word[0].isupper()


def is_all_caps(word):
    return word.isupper()


def is_title_case(word):
    return len(word) > 1 and word.istitle()


def has_punctuation(word):
    return any(c in _PUNCTUATION for c in word)


def length_bucket(word):
    n = len(word)
    if n == 1:
        return '1'
    if n <= 3:
        return 'short'
    if n >= 10:
        return 'long'
    return 'medium'


def token_features(word, options):
    features = [
        'bias',
        'word=' + word,
        'lower=' + word.lower(),
        'capitalized=%s' % is_capitalized(word),
        'all_caps=%s' % is_all_caps(word),
        'title_case=%s' % is_title_case(word),
        'has_digit=%s' % any(c.isdigit() for c in word),
        'has_hyphen=%s' % ('-' in word),
        'has_punctuation=%s' % has_punctuation(word),
        'length=' + length_bucket(word),
    ]
    if options['use_shape']:
        features.append('shape=' + word_shape(word))
        features.append('short_shape=' + short_word_shape(word))
    if options['use_affixes']:
        lower = word.lower()
        for n in range(1, min(options['max_affix_length'], len(lower)) + 1):
            features.append('prefix%d=%s' % (n, lower[:n]))
            features.append('suffix%d=%s' % (n, lower[-n:]))
    for name, pattern in PATTERNS:
        if pattern.match(word):
            features.append('pattern=' + name)
    return features


def extract_sequence(tokens, **options):
    """
    One list of feature strings per token.

    Within a list features are unique and in a fixed order, so the same
    tokens always give the same lists.
    """
    options = check_options(options)
    tokens = list(tokens)
    n = len(tokens)
    result = []
    for i, word in enumerate(tokens):
        features = token_features(word, options)
        if options['use_context']:
            prev_word = tokens[i - 1] if i > 0 else None
            next_word = tokens[i + 1] if i < n - 1 else None
            features.append('prev_word=' + (prev_word.lower() if prev_word is not None else START))
            features.append('next_word=' + (next_word.lower() if next_word is not None else END))
            if prev_word is not None:
                features.append('prev_capitalized=%s' % is_capitalized(prev_word))
            if next_word is not None:
                features.append('next_capitalized=%s' % is_capitalized(next_word))
        if i == 0:
            features.append('first')
        if i == n - 1:
            features.append('last')
        result.append(list(dict.fromkeys(features)))
    return result
