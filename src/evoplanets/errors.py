"""
Exceptions raised by the planet evolution engine.

Construction problems (too few control points, ragged or empty grids) are
fatal and raised immediately.  Operators that produce an invalid surface do
*not* raise; they report failure through their return value and leave the
planet untouched.
"""

from typing import Optional


class EvoPlanetsError(Exception):
    """Base exception for evoplanets errors."""
    pass


class InsufficientControlPointsError(EvoPlanetsError, ValueError):
    """Fewer control points than a direction needs (``degree + 1`` unless ``minimum`` is given)."""

    def __init__(self, count: int, degree: int, direction: str = "", minimum: Optional[int] = None):
        self.count = count
        self.degree = degree
        self.direction = direction
        self.minimum = minimum if minimum is not None else degree + 1
        where = f" along {direction}" if direction else ""
        super().__init__(
            f"{count} control points{where} cannot support degree {degree} "
            f"(need at least {self.minimum})"
        )


class InvalidTopologyError(EvoPlanetsError, ValueError):
    """Empty control grid or rows of different lengths."""
    pass


class DegenerateFitnessError(EvoPlanetsError, ArithmeticError):
    """Every fitness sample of an individual was NaN."""

    def __init__(self, samples: int, index: Optional[int] = None):
        self.samples = samples
        self.index = index
        who = f"individual {index}" if index is not None else "individual"
        super().__init__(f"{who}: all {samples} fitness samples are degenerate")


class GAStateError(EvoPlanetsError, RuntimeError):
    """Operation not allowed in the current algorithm state."""
    pass


class PopulationFileError(EvoPlanetsError, OSError):
    """Base error for population snapshot files."""

    def __init__(self, message: str, path=None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class BadMagicError(PopulationFileError):
    """The file does not start with the population magic."""
    pass


class SizeMismatchError(PopulationFileError):
    """Header length and file size disagree."""
    pass


class ChecksumMismatchError(PopulationFileError):
    """Payload checksum does not match the header."""
    pass


class TruncatedPayloadError(PopulationFileError):
    """The payload ended before all declared records were read."""
    pass


__all__ = [
    'EvoPlanetsError',
    'InsufficientControlPointsError',
    'InvalidTopologyError',
    'DegenerateFitnessError',
    'GAStateError',
    'PopulationFileError',
    'BadMagicError',
    'SizeMismatchError',
    'ChecksumMismatchError',
    'TruncatedPayloadError',
]
