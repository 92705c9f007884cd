"""
batchcoder.errors
~~~~~~~~~~~~~~~~~
Exception types raised by the public API.

Callers can catch ``ConversionError`` for anything this package raises, or
one of the subclasses to react to a specific category.
"""


class ConversionError(Exception):
    """Base class for every error raised by batchcoder."""

    prefix = "Conversion error"

    def __str__(self) -> str:
        detail = super().__str__()
        return f"{self.prefix}: {detail}" if detail else self.prefix


class ShellError(ConversionError):
    """An external tool could not be launched, or an OS call on it failed."""

    prefix = "Shell command failed"


class ProbeError(ConversionError):
    """ffprobe failed or produced output that could not be decoded."""

    prefix = "Probe failed"


class NotFoundError(ConversionError):
    """No active process is registered for the requested job id."""

    prefix = "Not found"


class InvalidInputError(ConversionError):
    """
    A request was rejected before anything was started.

    Raised for missing or non-regular source files, malformed encode
    settings, a zero concurrency limit, or a job id that is still in use.
    """

    prefix = "Invalid input"


class WorkerError(ConversionError):
    """An encoder process ended with a non-zero exit code."""

    prefix = "Worker process error"
