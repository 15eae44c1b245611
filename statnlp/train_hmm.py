#train_hmm.py
#
# Train a trigram HMM tagger on a file of word/TAG sentences and save it.

import argparse
import logging

import corpus
import hmm


def main(argv=None):
	parser = argparse.ArgumentParser(description='Train a trigram HMM tagger')
	parser.add_argument('input', type=str, help='tagged training file, one sentence of word/TAG tokens per line')
	parser.add_argument('output', type=str, help='filename of the saved model')
	parser.add_argument('--smoothing', type=float, default=0.001,
		help='add-k smoothing constant, must be > 0 (default 0.001)')
	parser.add_argument('--cased', action='store_true', help='keep the case of words (default lowercase them)')
	parser.add_argument('--workers', type=int, default=1, help='threads used for counting (default 1)')
	parser.add_argument('--verbose', action='store_true', help='Print out some useful information')
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

	examples = corpus.read_tagged(args.input)
	tagger = hmm.HMMTagger.train(examples, smoothing_k=args.smoothing,
		lowercase=not args.cased, workers=args.workers)
	tagger.save(args.output)
	print("Trained on %d sentences: %d tags, %d word types" % (
		tagger.metadata['training_size'], tagger.metadata['num_tags'], tagger.metadata['vocab_size']))


if __name__ == '__main__':
	main()
