"""Gradient ascent on the regularised log likelihood.

Parameters and gradients are dicts of numpy arrays with the same keys, so
the CRF can keep its feature and transition weights as separate matrices.
The gradient passed to step() is the ascent direction of the objective
with the L2 term already subtracted.
"""

import math

import numpy as np

import utility

SCHEDULES = ('constant', 'step', 'exponential', 'inverse')
# Decay used by each schedule when none is given.
DEFAULT_DECAY = {'constant': None, 'step': 0.9, 'exponential': 0.95, 'inverse': 0.01}


def learning_rate_schedule(learning_rate, iteration, schedule='constant', decay=None, decay_steps=10):
    """
    Learning rate for a 0-based iteration.

    constant:     lr
    step:         lr * decay ** (iteration // decay_steps)
    exponential:  lr * decay ** iteration
    inverse:      lr / (1 + decay * iteration)
    """
    if decay is None:
        decay = DEFAULT_DECAY.get(schedule)
    if schedule == 'step':
        return learning_rate * math.pow(decay, iteration // decay_steps)
    if schedule == 'exponential':
        return learning_rate * math.pow(decay, iteration)
    if schedule == 'inverse':
        return learning_rate / (1.0 + decay * iteration)
    return learning_rate


def check_schedule(schedule, decay, decay_steps):
    if not schedule in SCHEDULES:
        raise utility.InvalidHyperparameter(
            f"schedule must be one of {', '.join(SCHEDULES)}, got {schedule!r}")
    if isinstance(decay_steps, bool) or not isinstance(decay_steps, int) or decay_steps < 1:
        raise utility.InvalidHyperparameter(f"decay_steps must be a positive integer, got {decay_steps!r}")
    if decay is None:
        return DEFAULT_DECAY[schedule]
    if schedule in ('step', 'exponential'):
        decay = utility.check_positive('decay', decay)
        if decay > 1:
            raise utility.InvalidHyperparameter(f"decay must be at most 1 for the {schedule} schedule, got {decay}")
    elif schedule == 'inverse':
        decay = utility.check_non_negative('decay', decay)
    return decay


def clip_gradient(gradients, max_norm):
    """Scale the whole gradient down so its norm is at most max_norm."""
    norm = gradient_norm(gradients)
    if max_norm is None or norm <= max_norm:
        return gradients
    scale = max_norm / norm
    return { key : g * scale for key, g in gradients.items() }


class Optimizer:
    """
    sgd:       w <- w + lr_t * g
    momentum:  v <- momentum * v + lr_t * g;  w <- w + v

    lr_t follows the learning rate schedule, and g is first clipped to
    norm clip_norm when that is set.
    """

    def __init__(self, method='momentum', learning_rate=0.1, momentum=0.9,
                 clip_norm=None, schedule='constant', decay=None, decay_steps=10):
        self.method = utility.check_method(method)
        self.learning_rate = utility.check_positive('learning_rate', learning_rate)
        self.momentum = utility.check_non_negative('momentum', momentum)
        if self.momentum >= 1:
            raise utility.InvalidHyperparameter(f"momentum must be < 1, got {momentum}")
        self.clip_norm = None if clip_norm is None else utility.check_positive('clip_norm', clip_norm)
        self.decay = check_schedule(schedule, decay, decay_steps)
        self.schedule = schedule
        self.decay_steps = decay_steps
        self.velocity = {}

    def rate(self, iteration):
        return learning_rate_schedule(self.learning_rate, iteration, self.schedule,
                                      self.decay, self.decay_steps)

    def step(self, parameters, gradients, iteration=0):
        """Update parameters in place and return them."""
        gradients = clip_gradient(gradients, self.clip_norm)
        learning_rate = self.rate(iteration)
        for key, gradient in gradients.items():
            if self.method == 'sgd':
                parameters[key] += learning_rate * gradient
            else:
                velocity = self.velocity.get(key)
                if velocity is None or velocity.shape != gradient.shape:
                    velocity = np.zeros_like(gradient)
                velocity = self.momentum * velocity + learning_rate * gradient
                self.velocity[key] = velocity
                parameters[key] += velocity
        return parameters


def regularized_gradient(gradients, parameters, regularization):
    """g - regularization * w for every parameter block."""
    return { key : gradients[key] - regularization * parameters[key] for key in gradients }


def regularization_penalty(parameters, regularization):
    """(regularization / 2) * ||w||^2"""
    return 0.5 * regularization * sum(float(np.sum(p * p)) for p in parameters.values())


def gradient_norm(gradients):
    return float(np.sqrt(sum(float(np.sum(g * g)) for g in gradients.values())))


def converged(gradients, threshold):
    """True when the gradient norm falls below threshold; never for None."""
    if threshold is None:
        return False
    return gradient_norm(gradients) < threshold
