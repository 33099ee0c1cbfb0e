"""
Exception types raised by the digit counting pipeline.
"""

from __future__ import annotations


class FitError(ValueError):
    """Normalisation statistics could not be computed from the reference set."""


class DimensionalityError(ValueError):
    """A vector does not match the dimensionality of the fitted reference data."""


class ReferenceDataError(ValueError):
    """The reference dataset could not be loaded or is malformed."""


class ExtractionError(ValueError):
    """A single image could not be turned into a feature vector."""

    def __init__(self, source: str, cause: str) -> None:
        super().__init__(f"{source}: {cause}")
        self.source = source
        self.cause = cause
