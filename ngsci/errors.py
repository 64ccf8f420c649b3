"""Errors raised by the complexity index engine."""


class ComplexityIndexError(Exception):
    """Base class for every error raised by ngsci."""


class ConfigurationError(ComplexityIndexError, ValueError):
    """Invalid run configuration (strand chemistry, worker count, block size...).

    Always raised before any block is scanned.
    """


class AlignmentIOError(ComplexityIndexError, OSError):
    """An alignment store or reference is missing, empty or unreadable."""


class InvariantViolation(ComplexityIndexError, AssertionError):
    """An internal invariant does not hold (bad read coordinates, negative score)."""
