"""
Common configuration utilities and shared constants.
"""

import torch

BOUNDARIES = ('torus', 'zero')
OPTIMIZERS = ('adam', 'sgd', 'rmsprop')
LOSSES = ('mse', 'bce')


def get_device():
    if torch.backends.mps.is_available():
        return 'mps'
    if torch.cuda.is_available():
        return 'cuda'
    return 'cpu'
