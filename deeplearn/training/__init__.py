"""
deeplearn.training — Training Loop
===================================
Feeds training samples to a DeepLearner step by step:

    samples → Trainer → learner.update() × N → learner.bin + history.dat

Components:
    - trainer.py — Trainer (sample cycling, logging, checkpointing)
"""

from deeplearn.training.trainer import Trainer
