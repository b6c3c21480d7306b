"""
Exception types raised by the cellular automaton core.
"""


class NCAError(Exception):
    """Base class for all errors raised by the nca package."""


class ConfigurationError(NCAError, ValueError):
    """Malformed target, mismatched parameter shapes or missing collaborator."""


class NotInitializedError(NCAError, RuntimeError):
    """The network was used before initialize() was called."""


class RuntimeStepError(NCAError, RuntimeError):
    """A cellular automaton step failed (for example non-finite outputs)."""
