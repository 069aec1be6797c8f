#!/usr/bin/env python3
"""
Tests for DeepLearn configuration, error history, network engine,
learner state machine, persistence, and the training loop.

Run all tests:
    python -m pytest tests/ -v --tb=short
"""

import io
import logging
import struct
import sys
from pathlib import Path

import numpy as np
import pytest
import torch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


N_INPUTS = 10
N_HIDDENS = 4
HIDDEN_LAYERS = 2
N_OUTPUTS = 2


def ramp(n):
    return [0.25 + i * 0.5 / n for i in range(n)]


def make_learner(thresholds=(0.1, 0.1, 0.1), **kwargs):
    from deeplearn.learner import DeepLearner
    return DeepLearner(
        N_INPUTS, N_HIDDENS, HIDDEN_LAYERS, N_OUTPUTS,
        list(thresholds), seed=123, **kwargs,
    )


def round_trip(learner, **kwargs):
    from deeplearn.learner import DeepLearner
    buffer = io.BytesIO()
    learner.save(buffer)
    buffer.seek(0)
    return DeepLearner.load(buffer, **kwargs)


def pretrain(learner, max_steps=10000):
    """Feed the input ramp until every hidden layer is promoted.
    Returns the number of steps spent on each layer."""
    steps = [0] * (learner.hidden_layers + 1)
    for _ in range(max_steps):
        learner.set_inputs(ramp(N_INPUTS))
        learner.update()
        steps[learner.current_hidden_layer] += 1
        if learner.current_hidden_layer == learner.hidden_layers:
            break
    return steps


# =============================================================================
# Config Tests
# =============================================================================

class TestConfig:
    """Tests for the configuration system."""

    def test_default_config_loads(self):
        """Default config should validate without errors."""
        from deeplearn.config import DeepLearnConfig
        config = DeepLearnConfig()
        config.validate()

    def test_smoke_test_config(self):
        from deeplearn.config import DeepLearnConfig
        config = DeepLearnConfig.for_smoke_test()
        config.validate()
        assert config.network.hidden_layers == 2
        assert len(config.training.error_thresholds) == 3

    def test_threshold_count_mismatch(self):
        """One threshold per hidden layer plus one for the output layer."""
        from deeplearn.config import DeepLearnConfig, NetworkConfig, TrainingConfig
        config = DeepLearnConfig(
            network=NetworkConfig(hidden_layers=3),
            training=TrainingConfig(error_thresholds=[0.1, 0.1, 0.1]),
        )
        with pytest.raises(ValueError, match="error_thresholds"):
            config.validate()

    def test_invalid_learning_rate(self):
        from deeplearn.config import NetworkConfig
        with pytest.raises(ValueError, match="learning_rate"):
            NetworkConfig(learning_rate=0.0).validate()

    def test_odd_history_capacity(self):
        from deeplearn.config import TrainingConfig
        with pytest.raises(ValueError, match="history_capacity"):
            TrainingConfig(history_capacity=7).validate()

    def test_yaml_round_trip(self, tmp_path):
        """Config should save to YAML and load back identically."""
        from deeplearn.config import DeepLearnConfig
        config = DeepLearnConfig.for_smoke_test()

        yaml_path = tmp_path / "test_config.yaml"
        config.to_yaml(yaml_path)

        loaded = DeepLearnConfig.from_yaml(yaml_path)
        assert loaded.to_dict() == config.to_dict()

    def test_missing_yaml(self, tmp_path):
        from deeplearn.config import DeepLearnConfig
        with pytest.raises(FileNotFoundError):
            DeepLearnConfig.from_yaml(tmp_path / "missing.yaml")


# =============================================================================
# Error History Tests
# =============================================================================

class TestErrorHistory:
    """Tests for the bounded, decimating error trace."""

    def test_records_every_step_initially(self):
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=8)
        for v in (0.5, 0.25, 0.125):
            history.record(v)
        assert len(history) == 3
        assert history.sample_stride == 1
        assert history.stride_counter == 0
        assert history.values.tolist() == [0.5, 0.25, 0.125]

    def test_compaction_keeps_even_samples(self):
        """A full buffer keeps indices 0, 2, 4, ... and doubles the stride."""
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=8)
        for i in range(8):
            history.record(float(i))

        assert history.write_index == 4
        assert history.sample_stride == 2
        assert history.values.tolist() == [0.0, 2.0, 4.0, 6.0]

    def test_stride_gates_recording(self):
        """After compaction only every second value is stored."""
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=8)
        for i in range(8):
            history.record(float(i))

        history.record(8.0)
        assert history.write_index == 4
        assert history.stride_counter == 1

        history.record(9.0)
        assert history.write_index == 5
        assert history.stride_counter == 0
        assert history.values[-1] == 9.0

    def test_bounded_under_long_runs(self):
        """Storage never exceeds capacity; stride stays a power of two."""
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=16)
        for i in range(10000):
            history.record(float(i % 7))
            assert history.write_index < history.capacity
            stride = history.sample_stride
            assert stride & (stride - 1) == 0

        assert history.sample_stride > 1

    def test_series_x_coordinates(self):
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=4)
        for i in range(4):
            history.record(float(i))
        # compacted to [0, 2] with stride 2
        assert history.series() == [(0, 0.0), (2, 2.0)]

    def test_write_data(self, tmp_path):
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=8)
        history.record(0.5)
        history.record(0.25)

        path = tmp_path / "plots" / "history.dat"
        history.write_data(path)
        lines = path.read_text().splitlines()
        assert lines == ["0    0.5000000000", "1    0.2500000000"]

    def test_invalid_capacity(self):
        from deeplearn.history import ErrorHistory
        with pytest.raises(ValueError):
            ErrorHistory(capacity=5)

    def test_save_load(self):
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=8)
        for i in range(11):
            history.record(i / 10)

        buffer = io.BytesIO()
        n_bytes = history.save(buffer)
        assert n_bytes == 12 + 4 * history.write_index

        buffer.seek(0)
        loaded = ErrorHistory.load(buffer, capacity=8)
        assert history.compare(loaded) is None

    def test_load_overfull_history(self):
        from deeplearn.errors import CorruptStateError
        from deeplearn.history import ErrorHistory
        history = ErrorHistory(capacity=16)
        for i in range(10):
            history.record(float(i))

        buffer = io.BytesIO()
        history.save(buffer)
        buffer.seek(0)
        with pytest.raises(CorruptStateError):
            ErrorHistory.load(buffer, capacity=8)

    def test_compare_reports_first_difference(self):
        from deeplearn.history import ErrorHistory
        a, b = ErrorHistory(capacity=8), ErrorHistory(capacity=8)
        a.record(0.5)
        b.record(0.5)
        assert a.compare(b) is None

        b.samples[0] = 0.25
        assert a.compare(b) == "samples"

        b.record(0.5)
        assert a.compare(b) == "write_index"


# =============================================================================
# Network Tests
# =============================================================================

class TestBackpropNetwork:
    """Tests for the network engine the learner drives."""

    def test_same_seed_same_network(self):
        from deeplearn.model.network import BackpropNetwork
        a = BackpropNetwork(10, 4, 2, 2, seed=7)
        b = BackpropNetwork(10, 4, 2, 2, seed=7)
        c = BackpropNetwork(10, 4, 2, 2, seed=8)
        assert a.equals(b)
        assert not a.equals(c)

    def test_update_reduces_error(self):
        """Repeated steps on one pattern should drive the error down."""
        from deeplearn.model.network import BackpropNetwork
        net = BackpropNetwork(10, 4, 2, 2, seed=1)
        net.set_inputs(ramp(10))
        net.set_outputs([0.7, 0.3])

        assert net.running_average_error is None
        first = net.update()
        for _ in range(500):
            last = net.update()

        assert net.iterations == 501
        assert last < first
        assert net.running_average_error is not None

    def test_feed_forward_sets_outputs(self):
        from deeplearn.model.network import BackpropNetwork
        net = BackpropNetwork(10, 4, 2, 2, seed=1)
        net.set_inputs(ramp(10))
        net.feed_forward()
        outputs = [net.get_output(i) for i in range(2)]
        assert all(0.0 < v < 1.0 for v in outputs)
        assert net.iterations == 0

    def test_autocoder_shapes(self):
        """Layer 0 reconstructs the inputs; deeper layers the hidden units."""
        from deeplearn.model.network import BackpropNetwork
        net = BackpropNetwork(10, 4, 3, 2, seed=1)

        first = net.create_autocoder(0)
        assert first.shape == (10, 4, 1, 10)
        assert torch.equal(first.hiddens[0].weight, net.hiddens[0].weight)

        deeper = net.create_autocoder(2)
        assert deeper.shape == (4, 4, 1, 4)

    def test_autocoder_layer_out_of_range(self):
        from deeplearn.model.network import BackpropNetwork
        net = BackpropNetwork(10, 4, 2, 2, seed=1)
        with pytest.raises(IndexError):
            net.create_autocoder(2)

    def test_pretrain_and_promote(self):
        """Pretraining trains only the autocoder; promotion copies its encoder."""
        from deeplearn.model.network import BackpropNetwork
        net = BackpropNetwork(10, 4, 2, 2, seed=1)
        before = net.hiddens[0].weight.clone()
        autocoder = net.create_autocoder(0)

        net.set_inputs(ramp(10))
        for _ in range(10):
            net.pretrain(autocoder, 0)

        assert autocoder.iterations == 10
        assert net.iterations == 0
        assert torch.equal(net.hiddens[0].weight, before)
        assert torch.equal(autocoder.targets, net.inputs)

        net.update_from_autocoder(autocoder, 0)
        assert torch.equal(net.hiddens[0].weight, autocoder.hiddens[0].weight)
        assert torch.equal(net.hiddens[0].bias, autocoder.hiddens[0].bias)

    def test_save_load(self):
        from deeplearn.model.network import BackpropNetwork
        net = BackpropNetwork(10, 4, 2, 2, seed=3, dropout_percent=20.0)
        net.set_inputs(ramp(10))
        net.set_outputs([0.7, 0.3])
        for _ in range(25):
            net.update()

        buffer = io.BytesIO()
        n_bytes = net.save(buffer)
        assert n_bytes == len(buffer.getvalue())

        buffer.seek(0)
        loaded = BackpropNetwork.load(buffer)
        assert loaded.equals(net)
        assert loaded.dropout_percent == net.dropout_percent

        # The restored generator continues the same dropout sequence
        loaded.set_inputs(ramp(10))
        loaded.set_outputs([0.7, 0.3])
        net.update()
        loaded.update()
        assert loaded.equals(net)

    def test_truncated_stream(self):
        from deeplearn.errors import CorruptStateError
        from deeplearn.model.network import BackpropNetwork
        buffer = io.BytesIO()
        BackpropNetwork(10, 4, 2, 2, seed=3).save(buffer)
        data = buffer.getvalue()

        with pytest.raises(CorruptStateError):
            BackpropNetwork.load(io.BytesIO(data[:-2]))

    def test_parameter_count_matches_network(self):
        from deeplearn.model.network import BackpropNetwork, parameter_count
        for shape in [(10, 4, 2, 2), (6, 4, 1, 3), (3, 7, 4, 1)]:
            assert parameter_count(*shape) == BackpropNetwork(*shape).n_params

    def test_oversized_shape_rejected(self):
        """A header claiming more weights than the stream holds fails
        before the network is allocated."""
        from deeplearn.errors import CorruptStateError
        from deeplearn.model.network import BackpropNetwork
        buffer = io.BytesIO()
        BackpropNetwork(10, 4, 2, 2, seed=3).save(buffer)
        data = buffer.getvalue()

        for n_inputs, n_hiddens in [(2**20, 2**20), (1000, 1000)]:
            corrupt = struct.pack("<ii", n_inputs, n_hiddens) + data[8:]
            with pytest.raises(CorruptStateError):
                BackpropNetwork.load(io.BytesIO(corrupt))


# =============================================================================
# Learner Tests
# =============================================================================

class TestDeepLearner:
    """Tests for the pretraining / fine-tuning state machine."""

    def test_initial_state(self):
        from deeplearn.learner import Pretraining
        learner = make_learner()
        assert learner.phase == Pretraining(0)
        assert learner.has_autocoder
        assert learner.current_error is None
        assert learner.step_count == 0
        assert not learner.training_complete
        assert len(learner.history) == 0

    def test_threshold_count_mismatch(self, monkeypatch):
        """A short threshold list fails before any network is allocated."""
        from deeplearn.errors import InvalidConfigError
        from deeplearn.learner import DeepLearner

        created = []
        monkeypatch.setattr(
            "deeplearn.learner.BackpropNetwork",
            lambda *args, **kwargs: created.append(args),
        )
        with pytest.raises(InvalidConfigError):
            DeepLearner(10, 4, 2, 2, [0.1, 0.1], seed=123)
        assert created == []

    def test_invalid_config_is_value_error(self):
        from deeplearn.learner import DeepLearner
        with pytest.raises(ValueError):
            DeepLearner(0, 4, 2, 2, [0.1, 0.1, 0.1])

    def test_pretrains_every_layer(self):
        """10-4x2-2 on an input ramp promotes both layers within 10k steps,
        and neither promotion is immediate."""
        from deeplearn.learner import FineTuning
        learner = make_learner()
        steps = pretrain(learner)

        assert learner.current_hidden_layer == HIDDEN_LAYERS
        assert learner.phase == FineTuning()
        assert steps[0] > 4
        assert steps[1] > 4
        assert not learner.has_autocoder

    def test_warmup_gates_promotion(self):
        """No layer is promoted before the autocoder exceeds warmup_steps."""
        learner = make_learner(warmup_steps=300)
        steps = pretrain(learner)
        assert steps[0] >= 300
        assert steps[1] >= 300

    def test_promotion_and_autocoder_lifecycle(self):
        """Layers only advance, and an autocoder exists iff pretraining."""
        learner = make_learner()
        previous = 0
        for _ in range(3000):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()

            layer = learner.current_hidden_layer
            assert layer >= previous
            assert learner.has_autocoder == (layer < learner.hidden_layers)
            if layer > previous:
                assert learner.current_error is None
            previous = layer

        assert learner.current_hidden_layer == HIDDEN_LAYERS

    def test_fine_tuning_completes(self):
        learner = make_learner()
        pretrain(learner)

        for _ in range(10000):
            learner.set_inputs(ramp(N_INPUTS))
            learner.set_outputs([0.7, 0.3])
            learner.update()
            if learner.training_complete:
                break

        assert learner.training_complete
        assert learner.current_error < 0.1
        outputs = [learner.get_output(i) for i in range(N_OUTPUTS)]
        assert outputs[0] != outputs[1]

    def test_fine_tuning_uses_last_threshold(self):
        """Completion is judged against the fine-tuning threshold, not a
        hidden layer's looser one."""
        learner = make_learner(thresholds=[0.5, 0.5, 0.05])
        pretrain(learner)
        assert learner.current_hidden_layer == HIDDEN_LAYERS

        above_last = 0
        for _ in range(50000):
            learner.set_inputs(ramp(N_INPUTS))
            learner.set_outputs([0.7, 0.3])
            learner.update()
            if learner.training_complete:
                break
            error = learner.current_error
            if error is not None and 0.05 <= error < 0.5:
                above_last += 1

        assert above_last > 0
        assert learner.training_complete
        assert learner.current_error < 0.05

    def test_unknown_error_recorded_as_zero(self):
        """The promotion step leaves the error unknown, which the
        history stores as 0.0."""
        learner = make_learner(history_capacity=1024)
        for _ in range(1000):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()
            if learner.current_hidden_layer == 1:
                break

        assert learner.current_hidden_layer == 1
        assert learner.current_error is None
        assert learner.history.sample_stride == 1
        assert len(learner.history) == learner.step_count
        assert learner.history.values[-1] == 0.0
        assert learner.history.values[-2] > 0.0

        learner.set_inputs(ramp(N_INPUTS))
        learner.update()
        assert learner.current_error is not None
        assert learner.history.values[-1] == np.float32(learner.current_error)

    def test_completion_is_terminal(self):
        """Once complete, update() changes nothing."""
        learner = make_learner()
        pretrain(learner)
        learner.training_complete = True

        before = round_trip(learner)
        learner.set_inputs(ramp(N_INPUTS))
        learner.update()
        assert learner.training_complete
        assert learner.compare(before) == 1

    def test_step_count_saturates(self):
        from deeplearn.model.network import UINT32_MAX
        learner = make_learner()
        learner.step_count = UINT32_MAX
        learner.set_inputs(ramp(N_INPUTS))
        learner.update()
        assert learner.step_count == UINT32_MAX

    def test_history_follows_steps(self):
        learner = make_learner(history_capacity=64)
        for _ in range(200):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()

        assert learner.step_count == 200
        assert len(learner.history) <= 64
        assert learner.history.sample_stride >= 4
        assert all(v >= 0.0 for v in learner.history.values)

    def test_hyperparameters_reach_autocoder(self):
        learner = make_learner()
        learner.set_learning_rate(0.05)
        learner.set_dropouts(10.0)
        for net in (learner.net, learner.autocoder):
            assert net.learning_rate == 0.05
            assert net.dropout_percent == 10.0

    def test_from_config(self):
        from deeplearn.config import DeepLearnConfig
        from deeplearn.learner import DeepLearner
        config = DeepLearnConfig.for_smoke_test()
        learner = DeepLearner.from_config(config)
        assert learner.net.shape == (6, 4, 2, 2)
        assert learner.warmup_steps == config.training.warmup_steps
        assert learner.history.capacity == config.training.history_capacity


# =============================================================================
# Persistence Tests
# =============================================================================

class TestPersistence:
    """Tests for save/load and the comparison oracle."""

    def test_fresh_round_trip(self):
        from deeplearn.learner import Comparison, DeepLearner
        learner = DeepLearner(10, 4, 3, 3, [0.01] * 4, seed=123)
        loaded = round_trip(learner)
        assert learner.compare(loaded) is Comparison.EQUAL
        assert learner == loaded

    def test_mid_pretraining_round_trip(self):
        from deeplearn.learner import Comparison
        learner = make_learner(history_capacity=16)
        for _ in range(40):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()

        loaded = round_trip(learner, history_capacity=16)
        assert learner.compare(loaded) is Comparison.EQUAL
        assert loaded.has_autocoder
        assert loaded.autocoder.equals(learner.autocoder)

    def test_fine_tuning_round_trip(self):
        from deeplearn.learner import Comparison
        learner = make_learner()
        pretrain(learner)
        for _ in range(50):
            learner.set_inputs(ramp(N_INPUTS))
            learner.set_outputs([0.7, 0.3])
            learner.update()

        loaded = round_trip(learner)
        assert learner.compare(loaded) is Comparison.EQUAL
        assert not loaded.has_autocoder
        assert loaded.training_complete == learner.training_complete

    def test_save_returns_byte_count(self):
        learner = make_learner()
        buffer = io.BytesIO()
        assert learner.save(buffer) == len(buffer.getvalue())

    def test_header_layout(self):
        """The first four fields are complete, steps, layer, error."""
        import struct
        learner = make_learner()
        for _ in range(3):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()

        buffer = io.BytesIO()
        learner.save(buffer)
        complete, steps, layer, error = struct.unpack("<iIif", buffer.getvalue()[:16])
        assert (complete, steps, layer) == (0, 3, 0)
        assert np.float32(error) == np.float32(learner.current_error)

    def test_unknown_error_survives_round_trip(self):
        learner = make_learner()
        assert round_trip(learner).current_error is None

    def test_compare_codes(self):
        from deeplearn.learner import Comparison
        learner = make_learner()
        for _ in range(5):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()

        cases = [
            (lambda other: setattr(other, "current_hidden_layer", 1), Comparison.HIDDEN_LAYER),
            (lambda other: setattr(other, "current_error", 0.5), Comparison.CURRENT_ERROR),
            (lambda other: setattr(other.net, "iterations", 99), Comparison.NETWORK),
            (lambda other: setattr(other, "autocoder", None), Comparison.AUTOCODER_PRESENCE),
            (lambda other: other.history.record(0.5), Comparison.HISTORY_INDEX),
            (lambda other: setattr(other.history, "stride_counter", 3), Comparison.HISTORY_COUNTER),
            (lambda other: setattr(other.history, "sample_stride", 4), Comparison.HISTORY_STRIDE),
            (lambda other: other.history.samples.__setitem__(0, 9.0), Comparison.HISTORY_SAMPLES),
            (lambda other: setattr(other, "step_count", 6), Comparison.STEP_COUNT),
            (lambda other: other.error_threshold.__setitem__(2, 0.2), Comparison.THRESHOLDS),
        ]
        for mutate, expected in cases:
            other = round_trip(learner)
            mutate(other)
            assert learner.compare(other) is expected

    def test_compare_short_circuits(self):
        """The earliest differing field is the one reported."""
        from deeplearn.learner import Comparison
        learner = make_learner()
        other = round_trip(learner)
        other.step_count = 10
        other.current_hidden_layer = 1
        assert learner.compare(other) is Comparison.HIDDEN_LAYER

    def test_truncated_stream(self):
        from deeplearn.errors import CorruptStateError
        from deeplearn.learner import DeepLearner
        learner = make_learner()
        buffer = io.BytesIO()
        learner.save(buffer)
        data = buffer.getvalue()

        for cut in (0, 10, len(data) // 2, len(data) - 1):
            with pytest.raises(CorruptStateError):
                DeepLearner.load(io.BytesIO(data[:cut]))

    def test_checkpoint_files(self, tmp_path):
        from deeplearn.learner import Comparison, DeepLearner
        learner = make_learner()
        for _ in range(20):
            learner.set_inputs(ramp(N_INPUTS))
            learner.update()

        path = tmp_path / "ckpt" / "learner.bin"
        n_bytes = learner.save_checkpoint(path)
        assert path.stat().st_size == n_bytes

        loaded = DeepLearner.load_checkpoint(path)
        assert learner.compare(loaded) is Comparison.EQUAL

    def test_schedule_comes_from_load_arguments(self, tmp_path, caplog):
        """warmup_steps and history_capacity are not stored; load uses
        and logs the values it is given."""
        from deeplearn.learner import DeepLearner
        learner = make_learner(warmup_steps=20, history_capacity=64)
        path = tmp_path / "learner.bin"
        learner.save_checkpoint(path)

        with caplog.at_level(logging.INFO, logger="deeplearn.learner"):
            defaults = DeepLearner.load_checkpoint(path)
        assert defaults.warmup_steps == 100
        assert defaults.history.capacity == 1024
        assert "warmup_steps=100" in caplog.text
        assert "history_capacity=1024" in caplog.text

        kept = DeepLearner.load_checkpoint(
            path, warmup_steps=20, history_capacity=64
        )
        assert kept.warmup_steps == 20
        assert kept.history.capacity == 64

    def test_missing_checkpoint(self, tmp_path):
        from deeplearn.learner import DeepLearner
        with pytest.raises(FileNotFoundError):
            DeepLearner.load_checkpoint(tmp_path / "nope.bin")


# =============================================================================
# Trainer Tests
# =============================================================================

class TestTrainer:
    """Tests for the training loop."""

    def _samples(self, config, targets=(0.7, 0.3)):
        n_in = config.network.n_inputs
        return [(ramp(n_in), list(targets))]

    def test_trains_to_completion(self, tmp_path):
        from deeplearn.config import DeepLearnConfig
        from deeplearn.learner import Comparison, DeepLearner
        from deeplearn.training.trainer import Trainer

        config = DeepLearnConfig.for_smoke_test()
        learner = DeepLearner.from_config(config)
        trainer = Trainer(learner, config, self._samples(config))
        results = trainer.train(output_dir=str(tmp_path))

        assert results["training_complete"]
        assert results["steps"] == learner.step_count
        assert results["layer_steps"][0] >= config.training.warmup_steps
        assert results["layer_steps"][1] > config.training.warmup_steps
        assert results["layer_steps"][2] > 0
        assert Path(results["history_path"]).exists()

        loaded = DeepLearner.load_checkpoint(
            results["checkpoint_path"],
            history_capacity=config.training.history_capacity,
        )
        assert learner.compare(loaded) is Comparison.EQUAL
        assert loaded.training_complete

    def test_resume_continues_step_count(self, tmp_path):
        from deeplearn.config import DeepLearnConfig
        from deeplearn.learner import DeepLearner
        from deeplearn.training.trainer import Trainer

        config = DeepLearnConfig.for_smoke_test()
        config.training.max_steps = 30
        config.training.checkpoint_every = 10

        first = Trainer(DeepLearner.from_config(config), config, self._samples(config, (0.95, 0.05)))
        results = first.train(output_dir=str(tmp_path))
        assert results["steps"] == 30
        assert not results["training_complete"]

        resumed = DeepLearner.load_checkpoint(
            results["checkpoint_path"],
            warmup_steps=config.training.warmup_steps,
            history_capacity=config.training.history_capacity,
        )
        second = Trainer(resumed, config, self._samples(config, (0.95, 0.05)))
        results = second.train(output_dir=str(tmp_path))
        assert results["total_steps"] == 60

    def test_rejects_mismatched_samples(self):
        from deeplearn.config import DeepLearnConfig
        from deeplearn.learner import DeepLearner
        from deeplearn.training.trainer import Trainer

        config = DeepLearnConfig.for_smoke_test()
        learner = DeepLearner.from_config(config)
        with pytest.raises(ValueError, match="Sample 0"):
            Trainer(learner, config, [([0.5] * 3, [0.5, 0.5])])


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
