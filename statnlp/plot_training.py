#plot_training.py
"""Plot the loss curve stored in the metadata of saved CRF models."""

import argparse
import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

import persistence


def plot_loss_histories(histories, output, log_scale=False):
	"""histories: list of (name, losses)."""
	fig, ax = plt.subplots(figsize=(8, 5))
	for name, losses in histories:
		ax.plot(range(1, len(losses) + 1), losses, label=name)
	ax.set_xlabel('iteration')
	ax.set_ylabel('regularised negative log likelihood')
	if log_scale:
		ax.set_yscale('log')
	ax.legend()
	ax.grid(True, alpha=0.3)
	fig.tight_layout()
	fig.savefig(output, dpi=150)
	plt.close(fig)


def main(argv=None):
	parser = argparse.ArgumentParser(description='Plot CRF training loss curves')
	parser.add_argument('models', type=str, nargs='+', help='saved crf models')
	parser.add_argument('--output', type=str, default='loss.png', help='image file (default loss.png)')
	parser.add_argument('--log', action='store_true', help='log scale on the loss axis')
	args = parser.parse_args(argv)

	histories = []
	for filename in args.models:
		document = persistence.read_document(filename)
		history = document['metadata'].get('loss_history')
		if not history:
			print("No loss history in %s" % filename)
			continue
		histories.append((os.path.basename(filename), history))
	if histories:
		plot_loss_histories(histories, args.output, log_scale=args.log)
		print("Saved", args.output)


if __name__ == '__main__':
	main()
