"""
Error types raised by the stitching pipeline.

Only InputContractViolation escapes the pipeline. The other two are raised
by the fitting code and absorbed by the estimators, which fall back to a
simpler model or to the identity transform.
"""


class StitchingError(Exception):
    """Base class for all panochain errors."""


class InputContractViolation(StitchingError, ValueError):
    """The caller passed something the pipeline cannot work with."""


class InsufficientCorrespondences(StitchingError):
    """Fewer matched points than the requested model needs."""

    def __init__(self, required, available):
        self.required = required
        self.available = available
        super().__init__(
            f"Need at least {required} correspondences, got {available}"
        )


class NumericalDegeneracy(StitchingError):
    """A fit was singular or too badly conditioned to trust."""
