#train_crf.py
#
# Train a linear-chain CRF on a file of word/LABEL sentences and save it.

import argparse
import logging

import corpus
import crf


def main(argv=None):
	parser = argparse.ArgumentParser(description='Train a linear-chain CRF')
	parser.add_argument('input', type=str, help='labelled training file, one sentence of word/LABEL tokens per line')
	parser.add_argument('output', type=str, help='filename of the saved model')
	parser.add_argument('--labels', type=str, nargs='*', default=None,
		help='label set in tie breaking order (default: labels of the data in order of appearance)')
	parser.add_argument('--iterations', type=int, default=100, help='passes over the data (default 100)')
	parser.add_argument('--method', choices=['sgd', 'momentum'], default='momentum', help='update rule (default momentum)')
	parser.add_argument('--regularization', type=float, default=1.0, help='L2 penalty (default 1.0)')
	parser.add_argument('--lr', type=float, default=0.1, help='learning rate (default 0.1)')
	parser.add_argument('--momentum', type=float, default=0.9, help='momentum coefficient (default 0.9)')
	parser.add_argument('--batchsize', type=int, default=None, help='mini-batch size (default full batch)')
	parser.add_argument('--threshold', type=float, default=None,
		help='stop early when the gradient norm falls below this (default off)')
	parser.add_argument('--clip', type=float, default=None, help='clip the gradient to this norm before each update (default off)')
	parser.add_argument('--schedule', choices=['constant', 'step', 'exponential', 'inverse'], default='constant',
		help='learning rate schedule (default constant)')
	parser.add_argument('--decay', type=float, default=None,
		help='decay of the schedule (default 0.9 step, 0.95 exponential, 0.01 inverse)')
	parser.add_argument('--decay_steps', type=int, default=10, help='iterations between step decays (default 10)')
	parser.add_argument('--max_affix_length', type=int, default=3, help='longest prefix and suffix feature (default 3)')
	parser.add_argument('--workers', type=int, default=1, help='threads used for the gradient (default 1)')
	parser.add_argument('--warm_start', type=str, default=None, help='continue training a saved model')
	parser.add_argument('--verbose', action='store_true', help='Print out some useful information')
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

	examples = corpus.read_tagged(args.input)
	if args.warm_start:
		model = crf.CRF.load(args.warm_start)
	else:
		labels = args.labels
		if not labels:
			labels = list(dict.fromkeys(l for _, ls in examples for l in ls))
		model = crf.CRF(labels, max_affix_length=args.max_affix_length)
	model = model.train(examples, iterations=args.iterations, method=args.method,
		regularization=args.regularization, learning_rate=args.lr, momentum=args.momentum,
		batch_size=args.batchsize, convergence_threshold=args.threshold, workers=args.workers,
		clip_norm=args.clip, schedule=args.schedule, decay=args.decay, decay_steps=args.decay_steps)
	model.save(args.output)
	print("Trained for %d iterations, final loss %f" % (model.metadata['iterations'], model.metadata['final_loss']))


if __name__ == '__main__':
	main()
