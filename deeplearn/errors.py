"""
DeepLearn Errors
=================
Exceptions raised to the immediate caller by the learner and its
persistence layer. Neither is ever retried or recovered internally.
"""


class InvalidConfigError(ValueError):
    """Raised when a learner is constructed with inconsistent settings,
    e.g. an error-threshold list whose length is not hidden_layers + 1."""


class CorruptStateError(IOError):
    """Raised when a saved learner or network cannot be read back,
    typically because the stream ended before every field was read."""
