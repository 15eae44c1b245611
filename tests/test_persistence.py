"""Tests for persistence.py - the model file format."""

import gzip
import json
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'statnlp'))

import persistence
from persistence import save_model, load_model
from utility import SerializationError
from hmm import HMMTagger
from crf import CRF
from pcfg import PCFG


def write_document(path, document):
    with gzip.open(path, 'wt', encoding='utf-8') as f:
        json.dump(document, f)


class TestEnvelope:
    """The envelope written around every model."""

    def test_document_fields(self, pos_examples, tmp_model_path):
        tagger = HMMTagger.train(pos_examples)
        save_model(tagger, tmp_model_path)
        document = persistence.read_document(tmp_model_path)
        assert document['format'] == persistence.FORMAT
        assert document['version'] == persistence.VERSION
        assert document['kind'] == 'hmm'
        assert document['metadata']['training_size'] == 2

    def test_dispatch_on_kind(self, pos_examples, tmp_model_path):
        save_model(HMMTagger.train(pos_examples), tmp_model_path)
        model = load_model(tmp_model_path)
        assert isinstance(model, HMMTagger)

    def test_registry(self):
        assert persistence.model_class('hmm') is HMMTagger
        assert persistence.model_class('crf') is CRF
        assert persistence.model_class('pcfg') is PCFG
        with pytest.raises(SerializationError):
            persistence.model_class('maxent')


class TestFailures:
    """Every kind of bad file is a SerializationError."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_model(str(tmp_path / 'nothing.json.gz'))

    def test_not_gzip(self, tmp_model_path):
        with open(tmp_model_path, 'w') as f:
            f.write("this is not a model")
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_truncated(self, pos_examples, tmp_model_path):
        save_model(HMMTagger.train(pos_examples), tmp_model_path)
        with open(tmp_model_path, 'rb') as f:
            data = f.read()
        with open(tmp_model_path, 'wb') as f:
            f.write(data[:len(data) // 2])
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_invalid_json(self, tmp_model_path):
        with gzip.open(tmp_model_path, 'wt') as f:
            f.write("{not json")
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_wrong_format(self, tmp_model_path):
        write_document(tmp_model_path, {'format': 'something-else', 'version': 1})
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_unsupported_version(self, tmp_model_path):
        write_document(tmp_model_path, {'format': persistence.FORMAT, 'version': 99,
                                        'kind': 'hmm', 'metadata': {}, 'model': {}})
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_wrong_kind(self, pos_examples, tmp_model_path):
        HMMTagger.train(pos_examples).save(tmp_model_path)
        with pytest.raises(SerializationError):
            CRF.load(tmp_model_path)

    def test_missing_fields(self, tmp_model_path):
        write_document(tmp_model_path, {'format': persistence.FORMAT, 'version': 1,
                                        'kind': 'hmm', 'metadata': {}, 'model': {'tags': ['a']}})
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_ill_typed_fields(self, tmp_model_path):
        write_document(tmp_model_path, {'format': persistence.FORMAT, 'version': 1,
                                        'kind': 'pcfg', 'metadata': {},
                                        'model': {'start_symbol': 'S', 'smoothing_k': 0.0,
                                                  'rules': [['S', [], 'high']]}})
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_bad_metadata(self, tmp_model_path):
        write_document(tmp_model_path, {'format': persistence.FORMAT, 'version': 1,
                                        'kind': 'hmm', 'metadata': [], 'model': {}})
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)

    def test_unhashable_kind(self, tmp_model_path):
        write_document(tmp_model_path, {'format': persistence.FORMAT, 'version': 1,
                                        'kind': ['hmm'], 'metadata': {}, 'model': {}})
        with pytest.raises(SerializationError):
            load_model(tmp_model_path)
        with pytest.raises(SerializationError):
            HMMTagger.load(tmp_model_path)

    def test_model_class_rejects_non_strings(self):
        with pytest.raises(SerializationError):
            persistence.model_class({'kind': 'hmm'})
