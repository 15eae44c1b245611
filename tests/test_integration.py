"""End to end tests of the command line scripts."""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'statnlp'))

import corpus
import persistence
import train_hmm
import train_crf
import train_pcfg
import tag_sentences
import parse_sentences
import evaluate_model
import plot_training
from hmm import HMMTagger
from pcfg import PCFG


@pytest.fixture
def files(tmp_path, tagged_corpus, treebank):
    paths = {
        'tagged': str(tmp_path / 'tagged.txt'),
        'trees': str(tmp_path / 'trees.txt'),
        'plain': str(tmp_path / 'plain.txt'),
        'dir': tmp_path,
    }
    corpus.write_tagged(paths['tagged'], tagged_corpus)
    with open(paths['trees'], 'w') as f:
        for _, tree in treebank:
            f.write(tree + "\n")
    corpus.write_sentences(paths['plain'], [["the", "dog", "sat"], ["a", "zebra"]])
    return paths


class TestHMMPipeline:

    def test_train_tag_evaluate(self, files, capsys):
        model = str(files['dir'] / 'hmm.json.gz')
        train_hmm.main([files['tagged'], model, '--smoothing', '0.01'])
        tagger = HMMTagger.load(model)
        assert tagger.smoothing_k == 0.01

        output = str(files['dir'] / 'tagged_out.txt')
        tag_sentences.main([model, files['plain'], output])
        tagged = corpus.read_tagged(output)
        assert [ t for t, _ in tagged ] == [["the", "dog", "sat"], ["a", "zebra"]]
        assert all(len(t) == len(l) for t, l in tagged)

        evaluate_model.main([model, files['tagged'], '--json', str(files['dir'] / 'scores.json')])
        assert 'accuracy' in capsys.readouterr().out
        assert os.path.exists(str(files['dir'] / 'scores.json'))


class TestCRFPipeline:

    def test_train_plot_tag(self, files, capsys):
        model = str(files['dir'] / 'crf.json.gz')
        train_crf.main([files['tagged'], model, '--iterations', '5', '--method', 'sgd'])
        document = persistence.read_document(model)
        assert document['kind'] == 'crf'
        assert len(document['metadata']['loss_history']) == 5

        image = str(files['dir'] / 'loss.png')
        plot_training.main([model, '--output', image])
        assert os.path.getsize(image) > 0

        tag_sentences.main([model, files['plain']])
        lines = capsys.readouterr().out.strip().split("\n")
        assert lines[-2].startswith("the/")

    def test_clip_and_schedule_flags(self, files):
        model = str(files['dir'] / 'crf_sched.json.gz')
        train_crf.main([files['tagged'], model, '--iterations', '3', '--clip', '2.5',
                        '--schedule', 'step', '--decay', '0.5', '--decay_steps', '1'])
        metadata = persistence.read_document(model)['metadata']
        assert metadata['clip_norm'] == 2.5
        assert metadata['schedule'] == 'step'
        assert metadata['final_learning_rate'] == pytest.approx(0.1 * 0.5 ** 2)

    def test_warm_start(self, files):
        first = str(files['dir'] / 'crf1.json.gz')
        second = str(files['dir'] / 'crf2.json.gz')
        train_crf.main([files['tagged'], first, '--iterations', '2'])
        train_crf.main([files['tagged'], second, '--iterations', '2', '--warm_start', first])
        assert persistence.load_model(second).labels == persistence.load_model(first).labels


class TestPCFGPipeline:

    def test_train_parse_evaluate(self, files, capsys):
        model = str(files['dir'] / 'pcfg.json.gz')
        train_pcfg.main([files['trees'], model])
        g = PCFG.load(model)
        assert g.metadata['cnf']

        output = str(files['dir'] / 'parsed.txt')
        parse_sentences.main([model, files['plain'], output])
        assert "Parsed 1 of 2 sentences" in capsys.readouterr().out
        with open(output) as f:
            lines = f.read().split("\n")
        assert lines[0].startswith("(S ")
        assert lines[1] == ""

        evaluate_model.main([model, files['trees']])
        assert 'f1' in capsys.readouterr().out

    def test_tagger_script_rejects_pcfg(self, files):
        model = str(files['dir'] / 'pcfg.json.gz')
        train_pcfg.main([files['trees'], model, '--nocnf'])
        with pytest.raises(SystemExit):
            tag_sentences.main([model, files['plain']])
