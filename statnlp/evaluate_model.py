#evaluate_model.py
#
# Score a saved model against gold data: tagged sentences for an HMM or
# CRF, a treebank for a PCFG.

import argparse
import json
import logging

import corpus
import evaluation
import persistence


def main(argv=None):
	parser = argparse.ArgumentParser(description='Evaluate a saved model against gold data')
	parser.add_argument('model', type=str, help='filename of a saved model')
	parser.add_argument('gold', type=str, help='word/TAG file for taggers, treebank for a pcfg')
	parser.add_argument('--json', help='Filename to store a json version of the evaluation in.')
	parser.add_argument('--verbose', action='store_true', help='Print out some useful information')
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

	model = persistence.load_model(args.model)
	if model.KIND == 'pcfg':
		scores = evaluation.evaluate_parser(model, corpus.read_treebank(args.gold))
		for key in ('precision', 'recall', 'f1', 'exact_match', 'failures'):
			print("%s %f" % (key, scores.get(key, 0.0)))
	else:
		scores = evaluation.evaluate_tagger(model, corpus.read_tagged(args.gold))
		print(evaluation.format_report(scores))
		print("entity f1 %f" % scores['entities']['f1'])
	if args.json:
		with open(args.json, 'w') as outf:
			json.dump(scores, outf, sort_keys=True, indent=4)


if __name__ == '__main__':
	main()
