"""
DeepLearn Backprop Network
============================
A small fully-connected sigmoid network: the numeric engine the learner
drives. The same class serves both as the target network and as the
single-hidden-layer autocoder used to pretrain one of its layers.

Architecture:
    Input (n_inputs)
      → [Linear → Sigmoid] × hidden_layers     (n_hiddens units each)
      → Linear → Sigmoid
    Output (n_outputs)

    An autocoder for hidden layer k is the same architecture with one
    hidden layer whose outputs reconstruct its own inputs:
        width(k) → n_hiddens → width(k)
    where width(0) = n_inputs and width(k > 0) = n_hiddens.

Analogy:
    Pretraining is like teaching each floor of a building to summarise
    what it receives from the floor below, one floor at a time. The
    autocoder is the practice room for the current floor; once it can
    reproduce its input from the summary, the summary is installed in
    the building and the next floor starts practising.

Training Step:
    forward (with dropout) → loss = ½ Σ (output − target)² → backward →
    plain SGD at learning_rate. The per-step error is the mean absolute
    output error; running_average_error smooths it exponentially and
    stays None until the first step has been taken.

Usage:
    >>> net = BackpropNetwork(n_inputs=10, n_hiddens=4, hidden_layers=2,
    ...                       n_outputs=2, seed=123)
    >>> net.set_inputs([0.1] * 10)
    >>> net.set_outputs([0.9, 0.1])
    >>> net.update()
    >>> net.running_average_error
"""

from __future__ import annotations

import logging
import math
from typing import BinaryIO, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from deeplearn.errors import CorruptStateError
from deeplearn.serialization import (
    bytes_remaining,
    float32_bits,
    read_error,
    read_exact,
    read_float32,
    read_float32_array,
    read_int32,
    read_uint32,
    to_float32,
    write_error,
    write_float32,
    write_float32_array,
    write_int32,
    write_uint32,
)

logger = logging.getLogger(__name__)

UINT32_MAX = 2**32 - 1

# Weight of the newest sample in the running-average error
ERROR_AVERAGE_RATE = 0.01

# Most weights and biases load() will allocate (1 GiB of float32)
MAX_STORED_PARAMETERS = 2**28


def parameter_count(
    n_inputs: int, n_hiddens: int, hidden_layers: int, n_outputs: int
) -> int:
    """Number of weights and biases in a network of the given shape."""
    first = (n_inputs + 1) * n_hiddens
    deeper = (hidden_layers - 1) * (n_hiddens + 1) * n_hiddens
    output = (n_hiddens + 1) * n_outputs
    return first + deeper + output


class BackpropNetwork(nn.Module):
    """
    Feed-forward sigmoid network trained one pattern at a time.

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

    seed : int
        Seed for the network's private random generator, used for
        weight initialisation, dropout masks, and autocoder seeds.

    learning_rate : float
        SGD step size.

    dropout_percent : float
        Percentage of hidden units zeroed on each training step.
    """

    def __init__(
        self,
        n_inputs: int,
        n_hiddens: int,
        hidden_layers: int,
        n_outputs: int,
        seed: int = 0,
        learning_rate: float = 0.2,
        dropout_percent: float = 0.0,
    ):
        super().__init__()

        for name, value in (
            ("n_inputs", n_inputs),
            ("n_hiddens", n_hiddens),
            ("hidden_layers", hidden_layers),
            ("n_outputs", n_outputs),
        ):
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")

        self.n_inputs = n_inputs
        self.n_hiddens = n_hiddens
        self.hidden_layers = hidden_layers
        self.n_outputs = n_outputs
        self.learning_rate = to_float32(learning_rate)
        self.dropout_percent = to_float32(dropout_percent)

        self.generator = torch.Generator().manual_seed(seed)

        widths = [n_inputs] + [n_hiddens] * hidden_layers
        self.hiddens = nn.ModuleList([
            nn.Linear(widths[i], n_hiddens) for i in range(hidden_layers)
        ])
        self.output_layer = nn.Linear(n_hiddens, n_outputs)

        # Unit buffers: what the caller sets and reads back
        self.register_buffer("inputs", torch.zeros(n_inputs))
        self.register_buffer("targets", torch.zeros(n_outputs))
        self.register_buffer("outputs", torch.zeros(n_outputs))

        self.iterations = 0
        self.running_average_error: Optional[float] = None

        self._init_weights()

    def _init_weights(self) -> None:
        """
        Draw every weight and bias uniformly from ±1/sqrt(fan_in) using
        the network's own generator, so the result depends only on seed.
        """
        with torch.no_grad():
            for layer in list(self.hiddens) + [self.output_layer]:
                bound = 1.0 / math.sqrt(layer.in_features)
                for param in (layer.weight, layer.bias):
                    noise = torch.rand(param.shape, generator=self.generator)
                    param.copy_((noise * 2.0 - 1.0) * bound)

    # -------------------------------------------------------------------------
    # Forward pass
    # -------------------------------------------------------------------------

    def _dropout(self, x: torch.Tensor) -> torch.Tensor:
        keep = 1.0 - self.dropout_percent / 100.0
        mask = torch.rand(x.shape, generator=self.generator) < keep
        return x * mask / keep

    def hidden_activations(
        self,
        x: torch.Tensor,
        n_layers: int,
        dropout: bool = False,
    ) -> torch.Tensor:
        """
        Propagate x through the first n_layers hidden layers.

        Parameters
        ----------
        x : torch.Tensor
            Input activations, shape (n_inputs,).
        n_layers : int
            How many hidden layers to apply (0 returns x unchanged).
        dropout : bool
            Whether to apply dropout after each hidden layer.
        """
        for layer in self.hiddens[:n_layers]:
            x = torch.sigmoid(layer(x))
            if dropout and self.dropout_percent > 0:
                x = self._dropout(x)
        return x

    def forward(self, x: torch.Tensor, dropout: bool = False) -> torch.Tensor:
        h = self.hidden_activations(x, self.hidden_layers, dropout=dropout)
        return torch.sigmoid(self.output_layer(h))

    def feed_forward(self) -> None:
        """Compute the outputs for the current inputs without training."""
        with torch.no_grad():
            self.outputs.copy_(self(self.inputs))

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def update(self) -> float:
        """
        Take one training step on the current inputs and targets.

        Returns
        -------
        float
            The mean absolute output error of this step (before the
            weight update).
        """
        self.zero_grad(set_to_none=True)

        outputs = self(self.inputs, dropout=True)
        loss = 0.5 * ((outputs - self.targets) ** 2).sum()
        loss.backward()

        with torch.no_grad():
            for param in self.parameters():
                if param.grad is not None:
                    param.sub_(self.learning_rate * param.grad)
            self.outputs.copy_(outputs)
            error = (outputs - self.targets).abs().mean().item()

        self._record_error(error)
        if self.iterations < UINT32_MAX:
            self.iterations += 1
        return error

    def _record_error(self, error: float) -> None:
        error = to_float32(error)
        if self.running_average_error is None:
            self.running_average_error = error
        else:
            self.running_average_error = to_float32(
                self.running_average_error * (1.0 - ERROR_AVERAGE_RATE)
                + error * ERROR_AVERAGE_RATE
            )

    # -------------------------------------------------------------------------
    # Autocoders
    # -------------------------------------------------------------------------

    def _check_layer(self, layer: int) -> None:
        if not 0 <= layer < self.hidden_layers:
            raise IndexError(
                f"Hidden layer {layer} out of range "
                f"[0, {self.hidden_layers})"
            )

    def create_autocoder(self, layer: int) -> BackpropNetwork:
        """
        Create an autocoder for pretraining the given hidden layer.

        The autocoder's encoder starts from the layer's current weights
        and it shares this network's learning rate and dropout.

        Parameters
        ----------
        layer : int
            Index of the hidden layer to pretrain.

        Returns
        -------
        BackpropNetwork
            A single-hidden-layer network mapping width(layer) back onto
            itself.
        """
        self._check_layer(layer)
        width = self.hiddens[layer].in_features
        seed = int(torch.randint(0, 2**31 - 1, (1,), generator=self.generator))

        autocoder = BackpropNetwork(
            n_inputs=width,
            n_hiddens=self.n_hiddens,
            hidden_layers=1,
            n_outputs=width,
            seed=seed,
            learning_rate=self.learning_rate,
            dropout_percent=self.dropout_percent,
        )
        with torch.no_grad():
            autocoder.hiddens[0].weight.copy_(self.hiddens[layer].weight)
            autocoder.hiddens[0].bias.copy_(self.hiddens[layer].bias)

        logger.debug(f"Created autocoder {width}-{self.n_hiddens}-{width} for layer {layer}")
        return autocoder

    def pretrain(self, autocoder: BackpropNetwork, layer: int) -> float:
        """
        Take one autocoder training step for the given hidden layer.

        The current inputs are fed through the layers below `layer` and
        the resulting activations become both the input and the target
        of the autocoder.

        Returns
        -------
        float
            The autocoder's reconstruction error for this step.
        """
        self._check_layer(layer)
        with torch.no_grad():
            features = self.hidden_activations(self.inputs, layer)
        if features.numel() != autocoder.n_inputs:
            raise ValueError(
                f"Autocoder expects {autocoder.n_inputs} inputs but layer "
                f"{layer} receives {features.numel()}"
            )
        autocoder.inputs.copy_(features)
        autocoder.targets.copy_(features)
        return autocoder.update()

    def update_from_autocoder(self, autocoder: BackpropNetwork, layer: int) -> None:
        """Install a trained autocoder's encoder as the given hidden layer."""
        self._check_layer(layer)
        with torch.no_grad():
            self.hiddens[layer].weight.copy_(autocoder.hiddens[0].weight)
            self.hiddens[layer].bias.copy_(autocoder.hiddens[0].bias)

    # -------------------------------------------------------------------------
    # Unit access
    # -------------------------------------------------------------------------

    def set_input(self, index: int, value: float) -> None:
        self.inputs[index] = value

    def set_inputs(self, values: Sequence[float]) -> None:
        self.inputs.copy_(torch.as_tensor(values, dtype=torch.float32))

    def set_output(self, index: int, value: float) -> None:
        """Set the training target of one output unit."""
        self.targets[index] = value

    def set_outputs(self, values: Sequence[float]) -> None:
        self.targets.copy_(torch.as_tensor(values, dtype=torch.float32))

    def get_output(self, index: int) -> float:
        return float(self.outputs[index])

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, stream: BinaryIO) -> int:
        """
        Write the network to a binary stream.

        Layout: n_inputs, n_hiddens, hidden_layers, n_outputs (int32),
        iterations (uint32), learning_rate, dropout_percent,
        running_average_error (float32), generator state length (int32)
        and bytes, then every parameter tensor as float32 in
        self.parameters() order.

        Returns
        -------
        int
            Number of bytes written.
        """
        n_bytes = 0
        for value in (self.n_inputs, self.n_hiddens, self.hidden_layers, self.n_outputs):
            n_bytes += write_int32(stream, value)
        n_bytes += write_uint32(stream, self.iterations)
        n_bytes += write_float32(stream, self.learning_rate)
        n_bytes += write_float32(stream, self.dropout_percent)
        n_bytes += write_error(stream, self.running_average_error)

        rng_state = self.generator.get_state().numpy().tobytes()
        n_bytes += write_int32(stream, len(rng_state))
        n_bytes += stream.write(rng_state)

        for param in self.parameters():
            n_bytes += write_float32_array(stream, param.detach().cpu().numpy())
        return n_bytes

    @classmethod
    def load(cls, stream: BinaryIO) -> BackpropNetwork:
        """
        Read a network written by save().

        Raises
        ------
        CorruptStateError
            If the stream ends early or holds impossible values.
        """
        shape = [read_int32(stream) for _ in range(4)]
        if any(v < 1 for v in shape):
            raise CorruptStateError(f"Invalid network shape in stream: {shape}")
        iterations = read_uint32(stream)
        learning_rate = read_float32(stream)
        dropout_percent = read_float32(stream)
        running_average_error = read_error(stream)

        state_len = read_int32(stream)
        if state_len < 0:
            raise CorruptStateError(f"Invalid generator state length: {state_len}")
        rng_state = read_exact(stream, state_len)

        # Size the weights from the header before allocating them
        n_values = parameter_count(*shape)
        if n_values > MAX_STORED_PARAMETERS:
            raise CorruptStateError(
                f"Network shape {shape} needs {n_values} parameters, "
                f"more than the {MAX_STORED_PARAMETERS} allowed"
            )
        remaining = bytes_remaining(stream)
        if remaining is not None and remaining < 4 * n_values:
            raise CorruptStateError(
                f"Network shape {shape} needs {4 * n_values} parameter bytes, "
                f"only {remaining} left in stream"
            )

        net = cls(
            *shape,
            learning_rate=learning_rate,
            dropout_percent=dropout_percent,
        )
        try:
            net.generator.set_state(
                torch.from_numpy(np.frombuffer(rng_state, dtype=np.uint8).copy())
            )
        except RuntimeError as e:
            raise CorruptStateError(f"Invalid generator state: {e}") from e

        with torch.no_grad():
            for param in net.parameters():
                values = read_float32_array(stream, param.numel())
                param.copy_(torch.from_numpy(values).view_as(param))

        net.iterations = iterations
        net.running_average_error = running_average_error
        return net

    def equals(self, other: BackpropNetwork) -> bool:
        """
        True if both networks have the same shape, step count, running
        error (bit for bit) and identical weights.
        """
        if self.shape != other.shape:
            return False
        if self.iterations != other.iterations:
            return False
        if float32_bits(self.running_average_error) != float32_bits(
            other.running_average_error
        ):
            return False
        return all(
            torch.equal(a, b)
            for a, b in zip(self.parameters(), other.parameters())
        )

    @property
    def shape(self) -> tuple[int, int, int, int]:
        """(n_inputs, n_hiddens, hidden_layers, n_outputs)."""
        return (self.n_inputs, self.n_hiddens, self.hidden_layers, self.n_outputs)

    @property
    def n_params(self) -> int:
        """Total number of weights and biases."""
        return sum(p.numel() for p in self.parameters())

    def __repr__(self) -> str:
        return (
            f"BackpropNetwork("
            f"{self.n_inputs}-{self.n_hiddens}x{self.hidden_layers}-{self.n_outputs}, "
            f"params={self.n_params}, iterations={self.iterations})"
        )
