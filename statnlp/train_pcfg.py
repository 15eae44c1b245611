#train_pcfg.py
#
# Estimate a PCFG from a treebank with one bracketed tree per line.

import argparse
import logging

import corpus
import pcfg


def main(argv=None):
	parser = argparse.ArgumentParser(description='Estimate a PCFG from a treebank')
	parser.add_argument('input', type=str, help='treebank file, one bracketed tree per line')
	parser.add_argument('output', type=str, help='filename of the saved model')
	parser.add_argument('--start', type=str, default='S', help='start symbol (default S)')
	parser.add_argument('--smoothing', type=float, default=0.0, help='add-k smoothing of rule counts (default 0)')
	parser.add_argument('--nocnf', action='store_true', help='keep the grammar as read off the trees')
	parser.add_argument('--workers', type=int, default=1, help='threads used for counting (default 1)')
	parser.add_argument('--verbose', action='store_true', help='Print out some useful information')
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

	examples = corpus.read_treebank(args.input)
	model = pcfg.PCFG(start_symbol=args.start, smoothing_k=args.smoothing)
	model = model.train(examples, convert_to_cnf=not args.nocnf, workers=args.workers)
	model.save(args.output)
	print("Estimated %d rules over %d nonterminals from %d trees" % (
		len(model.rules), len(model.non_terminals), len(examples)))


if __name__ == '__main__':
	main()
