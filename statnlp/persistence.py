"""Save and load models.

Every model is written as one gzip-compressed JSON document:

    {"format": "statnlp-model", "version": 1, "kind": "hmm",
     "metadata": {...}, "model": {...}}

The payload only holds labels, numbers and strings, so files can be read
on any platform and loading never executes code. A model class takes part
by defining KIND, to_dict() and from_dict(data, metadata), and registering
itself with @register.
"""

import datetime
import gzip
import importlib
import json
import logging
import zlib

from utility import SerializationError

FORMAT = 'statnlp-model'
VERSION = 1

_REGISTRY = {}
# Module that defines each kind, imported on demand by load_model.
_MODULES = {'hmm': 'hmm', 'crf': 'crf', 'pcfg': 'pcfg'}


def register(cls):
    """Class decorator adding a model class to the registry."""
    _REGISTRY[cls.KIND] = cls
    return cls


def model_class(kind):
    if not isinstance(kind, str):
        raise SerializationError(f"Unknown model kind {kind!r}")
    if kind not in _REGISTRY and kind in _MODULES:
        importlib.import_module(_MODULES[kind])
    if kind not in _REGISTRY:
        raise SerializationError(f"Unknown model kind {kind!r}")
    return _REGISTRY[kind]


def timestamp():
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def save_model(model, path):
    """Write model to path. Blocks until the file is closed."""
    document = {
        'format': FORMAT,
        'version': VERSION,
        'kind': model.KIND,
        'metadata': model.metadata,
        'model': model.to_dict(),
    }
    with gzip.open(path, 'wt', encoding='utf-8') as f:
        json.dump(document, f)
    logging.info("Saved %s model to %s", model.KIND, path)


def read_document(path):
    """Read and validate the envelope of a model file."""
    try:
        with gzip.open(path, 'rt', encoding='utf-8') as f:
            document = json.load(f)
    except FileNotFoundError:
        raise
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
        raise SerializationError(f"Cannot read model file {path}: {e}") from e

    if not isinstance(document, dict) or document.get('format') != FORMAT:
        raise SerializationError(f"{path} is not a model file")
    version = document.get('version')
    if version != VERSION:
        raise SerializationError(
            f"{path} has format version {version!r}; this code reads version {VERSION}")
    for key in ('kind', 'metadata', 'model'):
        if key not in document:
            raise SerializationError(f"{path} is missing the {key!r} section")
    if not isinstance(document['kind'], str):
        raise SerializationError(f"{path} has malformed kind {document['kind']!r}")
    if not isinstance(document['metadata'], dict):
        raise SerializationError(f"{path} has malformed metadata")
    return document


def load_model(path, kind=None):
    """
    Load a model saved with save_model.

    With kind given, the file must hold a model of that kind; otherwise
    the stored kind decides which class is built.
    """
    document = read_document(path)
    stored = document['kind']
    if kind is not None and stored != kind:
        raise SerializationError(f"{path} holds a {stored!r} model, expected {kind!r}")
    cls = model_class(stored)
    try:
        model = cls.from_dict(document['model'], document['metadata'])
    except SerializationError:
        raise
    except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
        raise SerializationError(f"Malformed {stored} model in {path}: {e!r}") from e
    logging.info("Loaded %s model from %s", stored, path)
    return model
