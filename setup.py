"""
DeepLearn — Setup Script
=========================
Installs DeepLearn as a local editable package so that all internal
imports (e.g. `from deeplearn.learner import DeepLearner`) work from
any script or notebook.

Usage:
    cd /path/to/deeplearn
    pip install -e .
"""

from setuptools import setup, find_packages

setup(
    name="deeplearn",
    version="0.1.0",
    description=(
        "DeepLearn: greedy layer-wise pretraining with stacked autocoders, "
        "resumable checkpoints and a constant-memory error history"
    ),
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["deeplearn", "deeplearn.*"]),
    python_requires=">=3.10",
    install_requires=[
        "torch>=2.1.0",
        "numpy>=1.24.0",
        "tqdm>=4.65.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
