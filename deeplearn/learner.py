"""
DeepLearn Learner
===================
The training controller. Owns the target network and, while a hidden
layer is being pretrained, that layer's autocoder, and decides on every
step what to train next.

Training Schedule (greedy layer-wise pretraining):

    Pretraining(0) ──promote──▶ Pretraining(1) ──promote──▶ ... ──▶ FineTuning
         │                           │                                  │
    train autocoder 0           train autocoder 1               train whole net
                                                                        │
                                                       error < threshold ▼
                                                               training_complete

    A layer is promoted when its autocoder's running-average error is
    known, below that layer's threshold, and the autocoder has taken
    more than `warmup_steps` steps. Promotion copies the autocoder's
    encoder into the target network, discards the autocoder, and
    creates the next layer's autocoder if there is one.

Analogy:
    Like an apprenticeship: each hidden layer first learns its job alone
    (the autocoder), is signed off once its error stays low, and only
    when every layer is signed off does the whole team train together
    on the real task.

Persistence:
    save()/load() use a flat little-endian layout (see DeepLearner.save)
    and compare() is the round-trip oracle, reporting which field
    differs first.

Usage:
    >>> learner = DeepLearner(10, 4, 2, 2, [0.1, 0.1, 0.1], seed=123)
    >>> while not learner.training_complete:
    ...     learner.set_inputs(pattern)
    ...     if learner.phase == FineTuning():
    ...         learner.set_outputs(target)
    ...     learner.update()
    >>> learner.save_checkpoint("outputs/learner.bin")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Optional, Sequence, Union

import numpy as np

from deeplearn.config import DeepLearnConfig
from deeplearn.errors import InvalidConfigError
from deeplearn.history import DEFAULT_HISTORY_CAPACITY, ErrorHistory
from deeplearn.model.network import UINT32_MAX, BackpropNetwork
from deeplearn.serialization import (
    float32_bits,
    read_error,
    read_float32_array,
    read_int32,
    read_uint32,
    write_error,
    write_float32_array,
    write_int32,
    write_uint32,
)

logger = logging.getLogger(__name__)

DEFAULT_WARMUP_STEPS = 100


# =============================================================================
# Training Phase
# =============================================================================

@dataclass(frozen=True)
class Pretraining:
    """The autocoder for hidden layer `layer` is being trained."""
    layer: int


@dataclass(frozen=True)
class FineTuning:
    """Every hidden layer is promoted; the whole network is trained."""


Phase = Union[Pretraining, FineTuning]


class Comparison(IntEnum):
    """
    Result of DeepLearner.compare(): EQUAL, or the first field that
    differs. Fields are checked in the order of their (negative) codes.
    """
    EQUAL = 1
    HIDDEN_LAYER = -1
    CURRENT_ERROR = -2
    NETWORK = -3
    AUTOCODER_PRESENCE = -4
    HISTORY_INDEX = -5
    HISTORY_COUNTER = -6
    HISTORY_STRIDE = -7
    HISTORY_SAMPLES = -8
    STEP_COUNT = -9
    THRESHOLDS = -10


_HISTORY_MISMATCH = {
    "write_index": Comparison.HISTORY_INDEX,
    "stride_counter": Comparison.HISTORY_COUNTER,
    "sample_stride": Comparison.HISTORY_STRIDE,
    "samples": Comparison.HISTORY_SAMPLES,
}


# =============================================================================
# Learner
# =============================================================================

class DeepLearner:
    """
    Greedy layer-wise pretraining followed by fine-tuning.

    Parameters
    ----------
    n_inputs : int
        Number of input units.

    n_hiddens : int
        Number of units in each hidden layer.

    hidden_layers : int
        Number of hidden layers.

    n_outputs : int
        Number of output units.

    error_thresholds : sequence of float
        Running-average error below which each hidden layer (and finally
        the output layer) counts as trained. Must have exactly
        hidden_layers + 1 entries. Stored as float32.

    seed : int
        Random seed for the target network.

    warmup_steps : int
        Steps an autocoder must exceed before its layer can be promoted.

    history_capacity : int
        Capacity of the error history trace.

    learning_rate : float
        Initial learning rate of the network and its autocoders.

    dropout_percent : float
        Initial dropout percentage of the network and its autocoders.

    Raises
    ------
    InvalidConfigError
        If the threshold count does not match hidden_layers + 1 or a unit
        count is not positive. No network is allocated in that case.
    """

    def __init__(
        self,
        n_inputs: int,
        n_hiddens: int,
        hidden_layers: int,
        n_outputs: int,
        error_thresholds: Sequence[float],
        seed: int = 0,
        *,
        warmup_steps: int = DEFAULT_WARMUP_STEPS,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        learning_rate: float = 0.2,
        dropout_percent: float = 0.0,
    ):
        if len(error_thresholds) != hidden_layers + 1:
            raise InvalidConfigError(
                f"Expected {hidden_layers + 1} error thresholds (one per "
                f"hidden layer plus the output layer), got "
                f"{len(error_thresholds)}"
            )
        for name, value in (
            ("n_inputs", n_inputs),
            ("n_hiddens", n_hiddens),
            ("hidden_layers", hidden_layers),
            ("n_outputs", n_outputs),
        ):
            if value < 1:
                raise InvalidConfigError(f"{name} must be >= 1, got {value}")

        self.warmup_steps = warmup_steps
        self.error_threshold = np.array(error_thresholds, dtype=np.float32)
        self.training_complete = False
        self.step_count = 0
        self.current_hidden_layer = 0
        self.current_error: Optional[float] = None
        self.history = ErrorHistory(history_capacity)

        self.net = BackpropNetwork(
            n_inputs,
            n_hiddens,
            hidden_layers,
            n_outputs,
            seed=seed,
            learning_rate=learning_rate,
            dropout_percent=dropout_percent,
        )
        self.autocoder: Optional[BackpropNetwork] = self.net.create_autocoder(0)

        logger.info(
            f"DeepLearner initialized: {n_inputs}-{n_hiddens}x{hidden_layers}-"
            f"{n_outputs}, thresholds={self.error_threshold.tolist()}, "
            f"seed={seed}"
        )

    @classmethod
    def from_config(cls, config: DeepLearnConfig) -> DeepLearner:
        """Build a learner from a validated configuration."""
        net, training = config.network, config.training
        return cls(
            net.n_inputs,
            net.n_hiddens,
            net.hidden_layers,
            net.n_outputs,
            training.error_thresholds,
            seed=net.seed,
            warmup_steps=training.warmup_steps,
            history_capacity=training.history_capacity,
            learning_rate=net.learning_rate,
            dropout_percent=net.dropout_percent,
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def hidden_layers(self) -> int:
        return self.net.hidden_layers

    @property
    def phase(self) -> Phase:
        if self.current_hidden_layer < self.hidden_layers:
            return Pretraining(self.current_hidden_layer)
        return FineTuning()

    @property
    def has_autocoder(self) -> bool:
        return self.autocoder is not None

    @property
    def error_thresholds(self) -> list[float]:
        return self.error_threshold.tolist()

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def update(self) -> None:
        """
        Advance training by one step.

        Pretrains the current layer's autocoder (promoting the layer once
        it has converged) or, once every layer is promoted, trains the
        whole network. Does nothing after training is complete.
        """
        if self.training_complete:
            return

        phase = self.phase
        if isinstance(phase, Pretraining):
            self._pretrain_step(phase.layer)
        elif isinstance(phase, FineTuning):
            self._fine_tune_step()
        else:
            raise AssertionError(f"Unknown training phase: {phase!r}")

        self.history.record(0.0 if self.current_error is None else self.current_error)
        if self.step_count < UINT32_MAX:
            self.step_count += 1

    def _pretrain_step(self, layer: int) -> None:
        autocoder = self.autocoder
        self.net.pretrain(autocoder, layer)
        self.current_error = autocoder.running_average_error

        if (
            self.current_error is not None
            and self.current_error < self.error_threshold[layer]
            and autocoder.iterations > self.warmup_steps
        ):
            self._promote(layer)

    def _promote(self, layer: int) -> None:
        self.net.update_from_autocoder(self.autocoder, layer)
        logger.info(
            f"Layer {layer} pretrained after {self.autocoder.iterations} steps "
            f"(error={self.current_error:.5f})"
        )
        self.autocoder = None
        self.current_hidden_layer = layer + 1
        if self.current_hidden_layer < self.hidden_layers:
            self.autocoder = self.net.create_autocoder(self.current_hidden_layer)
        else:
            logger.info("All hidden layers pretrained, fine-tuning network")
        self.current_error = None

    def _fine_tune_step(self) -> None:
        self.net.update()
        self.current_error = self.net.running_average_error

        threshold = self.error_threshold[self.hidden_layers]
        if self.current_error is not None and self.current_error < threshold:
            self.training_complete = True
            logger.info(
                f"Training complete after {self.step_count + 1} steps "
                f"(error={self.current_error:.5f})"
            )

    def feed_forward(self) -> None:
        """Compute the target network's outputs for the current inputs."""
        self.net.feed_forward()

    # -------------------------------------------------------------------------
    # Accessors and hyperparameters
    # -------------------------------------------------------------------------

    def set_input(self, index: int, value: float) -> None:
        self.net.set_input(index, value)

    def set_inputs(self, values: Sequence[float]) -> None:
        self.net.set_inputs(values)

    def set_output(self, index: int, value: float) -> None:
        """Set the training target of one output unit."""
        self.net.set_output(index, value)

    def set_outputs(self, values: Sequence[float]) -> None:
        self.net.set_outputs(values)

    def get_output(self, index: int) -> float:
        return self.net.get_output(index)

    def set_learning_rate(self, rate: float) -> None:
        """Set the learning rate of the network and the active autocoder."""
        for net in self._networks():
            net.learning_rate = rate

    def set_dropouts(self, dropout_percent: float) -> None:
        """Set the dropout percentage of the network and the active autocoder."""
        for net in self._networks():
            net.dropout_percent = dropout_percent

    def _networks(self) -> list[BackpropNetwork]:
        if self.autocoder is None:
            return [self.net]
        return [self.net, self.autocoder]

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, stream: BinaryIO) -> int:
        """
        Write the learner to a binary stream.

        Layout (little-endian, no padding):
            training_complete   int32
            step_count          uint32
            current_hidden_layer int32
            current_error       float32 (-9999 when unknown)
            target network      BackpropNetwork.save
            has_autocoder       int32
            autocoder           BackpropNetwork.save, only if present
            error thresholds    float32 × (hidden_layers + 1)
            history             ErrorHistory.save

        Returns
        -------
        int
            Number of bytes written.
        """
        n_bytes = write_int32(stream, int(self.training_complete))
        n_bytes += write_uint32(stream, self.step_count)
        n_bytes += write_int32(stream, self.current_hidden_layer)
        n_bytes += write_error(stream, self.current_error)

        n_bytes += self.net.save(stream)
        n_bytes += write_int32(stream, int(self.autocoder is not None))
        if self.autocoder is not None:
            n_bytes += self.autocoder.save(stream)

        n_bytes += write_float32_array(stream, self.error_threshold)
        n_bytes += self.history.save(stream)
        return n_bytes

    @classmethod
    def load(
        cls,
        stream: BinaryIO,
        *,
        warmup_steps: int = DEFAULT_WARMUP_STEPS,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
    ) -> DeepLearner:
        """
        Read a learner written by save().

        warmup_steps and history_capacity are not part of the stored
        layout. They come from the arguments here, so a learner saved
        with non-default values must be loaded with the same values to
        keep its promotion schedule; compare() does not check them.

        The stream is trusted to be internally consistent: a saved
        autocoder flag that contradicts the saved layer is not checked.
        Use compare() against a known learner to verify a round trip.

        Raises
        ------
        CorruptStateError
            If the stream ends before every field is read.
        """
        learner = cls.__new__(cls)
        learner.warmup_steps = warmup_steps

        learner.training_complete = read_int32(stream) != 0
        learner.step_count = read_uint32(stream)
        learner.current_hidden_layer = read_int32(stream)
        learner.current_error = read_error(stream)

        learner.net = BackpropNetwork.load(stream)
        has_autocoder = read_int32(stream) == 1
        learner.autocoder = BackpropNetwork.load(stream) if has_autocoder else None

        learner.error_threshold = read_float32_array(
            stream, learner.net.hidden_layers + 1
        )
        learner.history = ErrorHistory.load(stream, history_capacity)

        logger.info(
            f"DeepLearner loaded: layer={learner.current_hidden_layer}, "
            f"steps={learner.step_count}, complete={learner.training_complete}, "
            f"warmup_steps={warmup_steps}, history_capacity={history_capacity}"
        )
        return learner

    def save_checkpoint(self, path: str | Path) -> int:
        """Save to a file, creating parent directories. Returns bytes written."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            n_bytes = self.save(f)
        logger.info(f"Checkpoint saved: {path} ({n_bytes} bytes)")
        return n_bytes

    @classmethod
    def load_checkpoint(cls, path: str | Path, **kwargs) -> DeepLearner:
        """
        Load from a file written by save_checkpoint().

        Keyword arguments (warmup_steps, history_capacity) are passed to
        load(); pass the values the learner was built with.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Checkpoint not found: {path}")
        with open(path, "rb") as f:
            learner = cls.load(f, **kwargs)
        logger.info(
            f"Checkpoint loaded: {path} (layer {learner.current_hidden_layer}, "
            f"step {learner.step_count})"
        )
        return learner

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def compare(self, other: DeepLearner) -> Comparison:
        """
        Compare two learners field by field, stopping at the first
        difference. Floating-point fields compare bit for bit; for the
        autocoder only its presence is compared.
        """
        if self.current_hidden_layer != other.current_hidden_layer:
            return Comparison.HIDDEN_LAYER
        if float32_bits(self.current_error) != float32_bits(other.current_error):
            return Comparison.CURRENT_ERROR
        if not self.net.equals(other.net):
            return Comparison.NETWORK
        if (self.autocoder is None) != (other.autocoder is None):
            return Comparison.AUTOCODER_PRESENCE
        mismatch = self.history.compare(other.history)
        if mismatch is not None:
            return _HISTORY_MISMATCH[mismatch]
        if self.step_count != other.step_count:
            return Comparison.STEP_COUNT
        if not np.array_equal(
            self.error_threshold.view(np.uint32),
            other.error_threshold.view(np.uint32),
        ):
            return Comparison.THRESHOLDS
        return Comparison.EQUAL

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DeepLearner):
            return NotImplemented
        return self.compare(other) is Comparison.EQUAL

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"DeepLearner(phase={self.phase}, step={self.step_count}, "
            f"error={self.current_error}, complete={self.training_complete})"
        )
