#!/usr/bin/env python3
"""
DeepLearn — Training Script
=============================
Pretrains each hidden layer with its autocoder, then fine-tunes the
whole network on a set of input/target samples. Writes the final
learner checkpoint and its error history to the output directory.

Usage:
    python scripts/train.py --config configs/default.yaml --data samples.json
    python scripts/train.py --smoke-test
    python scripts/train.py --config configs/default.yaml --data samples.json \
        --resume outputs/learner.bin

Data file format (JSON):
    [{"inputs": [0.1, 0.2, ...], "targets": [0.9, 0.1]}, ...]
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from deeplearn.config import DeepLearnConfig
from deeplearn.learner import DeepLearner
from deeplearn.training.trainer import Trainer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def load_samples(path: Path) -> list[tuple[list[float], list[float]]]:
    """Load (inputs, targets) training samples from a JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Training data not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return [(item["inputs"], item["targets"]) for item in raw]


def ramp_samples(config: DeepLearnConfig) -> list[tuple[list[float], list[float]]]:
    """A single fixed input ramp and target ramp, for smoke testing."""
    n_in = config.network.n_inputs
    n_out = config.network.n_outputs
    inputs = [0.25 + i * 0.5 / n_in for i in range(n_in)]
    targets = [0.8 - i * 0.6 / max(n_out - 1, 1) for i in range(n_out)]
    return [(inputs, targets)]


def main():
    parser = argparse.ArgumentParser(
        description="DeepLearn Training",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Full training:
    python scripts/train.py --config configs/default.yaml --data samples.json

    # Quick smoke test:
    python scripts/train.py --smoke-test

    # Resume from an existing checkpoint:
    python scripts/train.py --data samples.json --resume outputs/learner.bin
        """,
    )
    parser.add_argument(
        "--config", type=str, default="configs/default.yaml",
    )
    parser.add_argument(
        "--smoke-test", action="store_true",
    )
    parser.add_argument(
        "--data", type=str, default=None,
        help="JSON file of {inputs, targets} samples",
    )
    parser.add_argument(
        "--output-dir", type=str, default="outputs",
    )
    parser.add_argument(
        "--resume", type=str, default=None,
        help="Continue training from this learner checkpoint",
    )
    parser.add_argument(
        "--max-steps", type=int, default=None,
        help="Override training.max_steps",
    )
    args = parser.parse_args()

    # Load config
    if args.smoke_test:
        config = DeepLearnConfig.for_smoke_test()
    else:
        config = DeepLearnConfig.from_yaml(args.config)
    if args.max_steps is not None:
        config.training.max_steps = args.max_steps
    config.validate()

    # Load data
    if args.data:
        samples = load_samples(Path(args.data))
    elif args.smoke_test:
        samples = ramp_samples(config)
    else:
        parser.error("--data is required unless --smoke-test is given")

    # Build or resume the learner
    if args.resume:
        learner = DeepLearner.load_checkpoint(
            args.resume,
            warmup_steps=config.training.warmup_steps,
            history_capacity=config.training.history_capacity,
        )
    else:
        learner = DeepLearner.from_config(config)

    output_dir = Path(args.output_dir)
    config.to_yaml(output_dir / "config.yaml")

    trainer = Trainer(learner, config, samples)
    results = trainer.train(output_dir=str(output_dir))

    with open(output_dir / "results.json", "w") as f:
        json.dump(
            {
                "steps": results["steps"],
                "total_steps": results["total_steps"],
                "training_complete": results["training_complete"],
                "final_error": results["final_error"],
                "layer_steps": results["layer_steps"],
                "time_seconds": results["total_time_seconds"],
            },
            f,
            indent=2,
        )

    logger.info(
        f"\nTraining finished!"
        f"\n  Complete: {results['training_complete']}"
        f"\n  Steps: {results['total_steps']}"
        f"\n  Outputs: {output_dir}/"
    )


if __name__ == "__main__":
    main()
