"""
DeepLearn Configuration System
================================
Centralized configuration for the learner and its training loop using
Python dataclasses. Network shape, thresholds, and loop settings all
live here.

Think of this as the "blueprint" for one training run. Change a value
here and it propagates to the learner, the trainer and the CLI.

Usage:
    # Load from YAML file:
    >>> config = DeepLearnConfig.from_yaml("configs/default.yaml")

    # Create programmatically:
    >>> config = DeepLearnConfig(
    ...     network=NetworkConfig(n_inputs=10, hidden_layers=2),
    ...     training=TrainingConfig(error_thresholds=[0.1, 0.1, 0.1]),
    ... )

    # Save to YAML:
    >>> config.to_yaml("configs/my_run.yaml")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# Network Configuration
# =============================================================================

@dataclass
class NetworkConfig:
    """
    Shape and numeric hyperparameters of the target network.

    Parameters
    ----------
    n_inputs : int
        Number of input units.

    n_hiddens : int
        Number of units in every hidden layer. Each layer's autocoder
        uses the same width for its hidden layer.

    hidden_layers : int
        Number of hidden layers. Each one is pretrained separately
        before the whole network is fine-tuned.

    n_outputs : int
        Number of output units.

    learning_rate : float
        Step size of each training update, in (0, 1].

    dropout_percent : float
        Percentage of hidden units dropped on each training step,
        in [0, 100).

    seed : int
        Random seed for weight initialisation and dropout masks.
        Same seed = same network.
    """
    n_inputs: int = 10
    n_hiddens: int = 4
    hidden_layers: int = 2
    n_outputs: int = 2
    learning_rate: float = 0.2
    dropout_percent: float = 0.0
    seed: int = 123

    def validate(self) -> None:
        """
        Check that all network parameters are valid.

        Raises
        ------
        ValueError
            If any parameter is out of range.
        """
        for name in ("n_inputs", "n_hiddens", "hidden_layers", "n_outputs"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")
        if not 0.0 < self.learning_rate <= 1.0:
            raise ValueError(
                f"learning_rate must be in (0, 1], got {self.learning_rate}"
            )
        if not 0.0 <= self.dropout_percent < 100.0:
            raise ValueError(
                f"dropout_percent must be in [0, 100), got {self.dropout_percent}"
            )


# =============================================================================
# Training Configuration
# =============================================================================

@dataclass
class TrainingConfig:
    """
    Convergence criteria and training-loop settings.

    Parameters
    ----------
    error_thresholds : list[float]
        Running-average error below which a layer counts as trained:
        one entry per hidden layer plus one for the output layer.

    warmup_steps : int
        Minimum number of steps an autocoder must take before its layer
        can be promoted. Keeps a transient dip in the running average
        from promoting a layer too early.

    history_capacity : int
        Number of error samples kept in the history trace. When full,
        the trace is halved and its time resolution doubles.

    max_steps : int
        Upper bound on learner updates in one Trainer.train() call.

    log_every : int
        Log training stats every N steps. 0 disables periodic logging.

    checkpoint_every : int
        Save a checkpoint every N steps. 0 = only save at the end.

    show_progress : bool
        Whether to display a tqdm progress bar.
    """
    error_thresholds: list[float] = field(
        default_factory=lambda: [0.1, 0.1, 0.1]
    )
    warmup_steps: int = 100
    history_capacity: int = 1024
    max_steps: int = 10000
    log_every: int = 1000
    checkpoint_every: int = 0
    show_progress: bool = True

    def validate(self) -> None:
        """Validate training parameters."""
        if not self.error_thresholds:
            raise ValueError("error_thresholds must not be empty")
        if any(t < 0 for t in self.error_thresholds):
            raise ValueError(
                f"error_thresholds must be >= 0, got {self.error_thresholds}"
            )
        if self.warmup_steps < 0:
            raise ValueError(
                f"warmup_steps must be >= 0, got {self.warmup_steps}"
            )
        if self.history_capacity < 2 or self.history_capacity % 2 != 0:
            raise ValueError(
                f"history_capacity must be an even number >= 2, got "
                f"{self.history_capacity}"
            )
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {self.max_steps}")


# =============================================================================
# Master Configuration
# =============================================================================

@dataclass
class DeepLearnConfig:
    """
    Master configuration combining the network and training sections.

    Usage:
        # From YAML file:
        >>> config = DeepLearnConfig.from_yaml("configs/default.yaml")

        # Programmatic:
        >>> config = DeepLearnConfig()
        >>> config.validate()

        # Save:
        >>> config.to_yaml("configs/my_run.yaml")
    """
    network: NetworkConfig = field(default_factory=NetworkConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)

    def validate(self) -> None:
        """
        Validate both sections and their consistency with each other.

        Raises
        ------
        ValueError
            If any parameter is invalid or the sections disagree.
        """
        self.network.validate()
        self.training.validate()

        expected = self.network.hidden_layers + 1
        if len(self.training.error_thresholds) != expected:
            raise ValueError(
                f"error_thresholds has {len(self.training.error_thresholds)} "
                f"entries but the network needs {expected}: one per hidden "
                f"layer plus one for the output layer."
            )

        logger.info(
            f"Config validated: {self.network.n_inputs}-"
            f"{self.network.n_hiddens}x{self.network.hidden_layers}-"
            f"{self.network.n_outputs} network, "
            f"thresholds={self.training.error_thresholds}"
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> DeepLearnConfig:
        """
        Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        DeepLearnConfig
            Loaded and validated configuration.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        yaml.YAMLError
            If the YAML file is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is None:
            raise ValueError(f"Config file is empty: {path}")

        config = cls(
            network=NetworkConfig(**raw.get("network", {})),
            training=TrainingConfig(**raw.get("training", {})),
        )

        config.validate()
        return config

    def to_yaml(self, path: str | Path) -> None:
        """
        Save configuration to a YAML file, creating parent directories.

        Parameters
        ----------
        path : str or Path
            Output YAML file path.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.to_dict(),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

        logger.info(f"Config saved to {path}")

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)

    @classmethod
    def for_smoke_test(cls) -> DeepLearnConfig:
        """
        Create a small configuration that trains to completion quickly.

        Returns
        -------
        DeepLearnConfig
            Smoke-test configuration.
        """
        return cls(
            network=NetworkConfig(
                n_inputs=6,
                n_hiddens=4,
                hidden_layers=2,
                n_outputs=2,
                learning_rate=0.5,
                dropout_percent=0.0,
                seed=123,
            ),
            training=TrainingConfig(
                error_thresholds=[0.1, 0.1, 0.1],
                warmup_steps=20,
                history_capacity=64,
                max_steps=20000,
                log_every=500,
                checkpoint_every=0,
                show_progress=False,
            ),
        )

    def __repr__(self) -> str:
        """Pretty-print the configuration."""
        net = self.network
        lines = [
            "DeepLearnConfig(",
            f"  Network:  {net.n_inputs} inputs, {net.hidden_layers} x "
            f"{net.n_hiddens} hidden, {net.n_outputs} outputs",
            f"  Numeric:  lr={net.learning_rate}, "
            f"dropout={net.dropout_percent}%, seed={net.seed}",
            f"  Training: thresholds={self.training.error_thresholds}, "
            f"warmup={self.training.warmup_steps}, "
            f"max_steps={self.training.max_steps}",
            ")",
        ]
        return "\n".join(lines)
