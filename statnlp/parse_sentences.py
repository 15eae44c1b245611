#parse_sentences.py
#
# Parse a file of plain sentences with a saved PCFG. Sentences without a
# parse are written as an empty line and counted.

import argparse
import logging

import corpus
import pcfg
import utility
from utility import NoParse


def main(argv=None):
	parser = argparse.ArgumentParser(description='Viterbi parse sentences with a saved PCFG')
	parser.add_argument('model', type=str, help='filename of a saved pcfg model')
	parser.add_argument('input', type=str, help='plain text file, one tokenised sentence per line')
	parser.add_argument('output', type=str, help='output file, one bracketed tree per line')
	parser.add_argument('--start', type=str, default=None, help='start symbol (default the model\'s)')
	parser.add_argument('--beam', type=int, default=0, help='entries kept per chart cell, 0 for all (default 0)')
	parser.add_argument('--verbose', action='store_true', help='Print out some useful information')
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

	model = pcfg.PCFG.load(args.model)
	failures = 0
	sentences = corpus.read_sentences(args.input)
	with open(args.output, 'w', encoding='utf-8') as outf:
		for tokens in sentences:
			try:
				parse = model.predict(tokens, start_symbol=args.start, beam_width=args.beam)
				outf.write(utility.tree_to_string(parse.tree) + "\n")
			except NoParse:
				failures += 1
				outf.write("\n")
	print("Parsed %d of %d sentences" % (len(sentences) - failures, len(sentences)))


if __name__ == '__main__':
	main()
