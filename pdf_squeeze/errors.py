"""
errors.py - Exceptions raised by the compression engine.

Only DocumentUnreadable escapes CompressionOrchestrator.run(); the rest are
soft conditions that end up as warnings on the result. An unmet byte budget
or an output already over the exact size is not an exception at all: it is
reported through SearchOutcome.met and PadOutcome.
"""

from typing import Optional


class CompressionError(Exception):
    """Base class for engine errors."""


class BackendUnavailable(CompressionError):
    """No usable external compressor was found."""


class BackendExecutionFailed(CompressionError):
    """A single backend invocation failed (exit status, timeout, no output)."""

    def __init__(
        self,
        message: str,
        backend: str = "",
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.backend = backend
        self.returncode = returncode
        self.stderr = stderr


class DocumentUnreadable(CompressionError):
    """No backend can parse the input document."""


class UnknownPreset(CompressionError, KeyError):
    """Preset name not present in the preset table."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
