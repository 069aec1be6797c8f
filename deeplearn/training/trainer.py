"""
DeepLearn Trainer
===================
Drives a DeepLearner over a fixed set of training samples until it
reports completion or a step budget runs out. Handles the surrounding
concerns so the learner can focus on WHAT to train next rather than
HOW the run is fed, logged and checkpointed.

What This Handles:
    - Cycling through the samples, one learner.update() per sample
    - Presenting targets only once the learner is fine-tuning
      (pretraining is unsupervised)
    - Periodic logging (phase, error, steps per layer)
    - Periodic checkpointing (keeping only the latest)
    - Progress bar
    - Writing the final checkpoint and error history

Usage:
    >>> learner = DeepLearner.from_config(config)
    >>> trainer = Trainer(learner, config, samples)
    >>> results = trainer.train(output_dir="outputs")
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Sequence

from tqdm import tqdm

from deeplearn.config import DeepLearnConfig
from deeplearn.learner import DeepLearner, FineTuning

logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "learner.bin"
HISTORY_NAME = "history.dat"


class Trainer:
    """
    Training loop around a DeepLearner.

    Parameters
    ----------
    learner : DeepLearner
        The learner to train (fresh or resumed from a checkpoint).

    config : DeepLearnConfig
        Full configuration; only the training section is used here.

    samples : sequence of (inputs, targets)
        Training patterns. inputs must have n_inputs values and targets
        n_outputs values.

    name : str
        Human-readable name for this training run (for logging).
    """

    def __init__(
        self,
        learner: DeepLearner,
        config: DeepLearnConfig,
        samples: Sequence[tuple[Sequence[float], Sequence[float]]],
        name: str = "deeplearn",
    ):
        if not samples:
            raise ValueError("Trainer needs at least one training sample")

        n_inputs, _, _, n_outputs = learner.net.shape
        for i, (inputs, targets) in enumerate(samples):
            if len(inputs) != n_inputs or len(targets) != n_outputs:
                raise ValueError(
                    f"Sample {i} has {len(inputs)} inputs and {len(targets)} "
                    f"targets, expected {n_inputs} and {n_outputs}"
                )

        self.learner = learner
        self.config = config
        self.samples = samples
        self.name = name

        logger.info(
            f"Trainer '{name}' initialized with {len(samples)} samples, "
            f"starting at step {learner.step_count} ({learner.phase})"
        )

    def train(self, output_dir: str = "outputs") -> dict:
        """
        Run the learner until training is complete or max_steps updates
        have been made in this call.

        Parameters
        ----------
        output_dir : str
            Directory to save checkpoints and the error history.

        Returns
        -------
        dict
            Training results containing:
            - steps: updates made in this call
            - total_steps: the learner's lifetime step count
            - training_complete: whether the learner finished
            - final_error: last running-average error (or None)
            - layer_steps: updates spent in each phase, keyed by layer
              index (hidden_layers = fine-tuning)
            - total_time_seconds: wall-clock time
            - checkpoint_path: path of the final checkpoint
            - history_path: path of the written error history
        """
        cfg = self.config.training
        learner = self.learner
        output = Path(output_dir)
        output.mkdir(parents=True, exist_ok=True)

        layer_steps = {layer: 0 for layer in range(learner.hidden_layers + 1)}
        start_time = time.time()
        steps = 0

        progress = tqdm(
            total=cfg.max_steps,
            desc=self.name,
            disable=not cfg.show_progress,
        )
        try:
            while steps < cfg.max_steps and not learner.training_complete:
                inputs, targets = self.samples[steps % len(self.samples)]
                learner.set_inputs(inputs)
                if learner.phase == FineTuning():
                    learner.set_outputs(targets)
                learner.update()

                steps += 1
                layer_steps[learner.current_hidden_layer] += 1
                progress.update(1)

                if cfg.log_every > 0 and steps % cfg.log_every == 0:
                    self._log_progress(steps)
                    progress.set_postfix(
                        layer=learner.current_hidden_layer,
                        error=learner.current_error,
                    )

                if cfg.checkpoint_every > 0 and steps % cfg.checkpoint_every == 0:
                    learner.save_checkpoint(output / CHECKPOINT_NAME)
        finally:
            progress.close()

        checkpoint_path = output / CHECKPOINT_NAME
        learner.save_checkpoint(checkpoint_path)
        history_path = output / HISTORY_NAME
        learner.history.write_data(history_path)

        total_time = time.time() - start_time
        results = {
            "steps": steps,
            "total_steps": learner.step_count,
            "training_complete": learner.training_complete,
            "final_error": learner.current_error,
            "layer_steps": layer_steps,
            "total_time_seconds": total_time,
            "checkpoint_path": str(checkpoint_path),
            "history_path": str(history_path),
        }

        if learner.training_complete:
            logger.info(
                f"[{self.name}] Training complete in {steps} steps "
                f"({total_time:.1f}s), final_error={learner.current_error:.5f}"
            )
        else:
            logger.warning(
                f"[{self.name}] Stopped after {steps} steps without converging "
                f"({learner.phase}, error={learner.current_error})"
            )
        return results

    def _log_progress(self, steps: int) -> None:
        learner = self.learner
        error = learner.current_error
        error_str = "unknown" if error is None else f"{error:.5f}"
        logger.info(
            f"[{self.name}] step={steps}, phase={learner.phase}, "
            f"error={error_str}, history={learner.history}"
        )

    def __repr__(self) -> str:
        return (
            f"Trainer(name={self.name}, samples={len(self.samples)}, "
            f"step={self.learner.step_count})"
        )
