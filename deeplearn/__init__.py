"""
DeepLearn
=========
Greedy layer-wise pretraining of feed-forward networks with stacked
autocoders, followed by fine-tuning of the whole network.

This package provides:
    1. A training controller that pretrains one hidden layer at a time,
       promotes each layer once its autocoder converges, and then
       fine-tunes the full network
    2. A constant-memory error history for long training runs
    3. A flat binary save/load format and a field-by-field comparison
       that makes training resumable and verifiable

Quick Start:
    >>> from deeplearn.learner import DeepLearner
    >>> learner = DeepLearner(10, 4, 2, 2, [0.1, 0.1, 0.1], seed=123)
    >>> learner.set_inputs([0.5] * 10)
    >>> learner.update()

Subpackages:
    - deeplearn.model    — The backprop network engine
    - deeplearn.training — Training loop with logging and checkpoints
"""

__version__ = "0.1.0"
