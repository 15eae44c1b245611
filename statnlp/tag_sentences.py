#tag_sentences.py
#
# Tag a file of plain sentences with a saved HMM or CRF model and write
# word/TAG lines.

import argparse
import logging
import sys

import corpus
import persistence


def main(argv=None):
	parser = argparse.ArgumentParser(description='Tag sentences with a saved HMM or CRF')
	parser.add_argument('model', type=str, help='filename of a saved hmm or crf model')
	parser.add_argument('input', type=str, help='plain text file, one tokenised sentence per line')
	parser.add_argument('output', type=str, nargs='?', default=None, help='output file (default stdout)')
	parser.add_argument('--verbose', action='store_true', help='Print out some useful information')
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

	model = persistence.load_model(args.model)
	if model.KIND not in ('hmm', 'crf'):
		parser.error("%s holds a %s model, not a tagger" % (args.model, model.KIND))
	sentences = corpus.read_sentences(args.input)
	tagged = [ (tokens, model.predict(tokens)) for tokens in sentences ]
	if args.output:
		corpus.write_tagged(args.output, tagged)
	else:
		for tokens, tags in tagged:
			sys.stdout.write(" ".join(w + "/" + t for w, t in zip(tokens, tags)) + "\n")


if __name__ == '__main__':
	main()
