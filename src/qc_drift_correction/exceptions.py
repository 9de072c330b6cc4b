"""
Error types raised by the drift correction pipeline.

Each error also derives from the closest built-in exception, so callers that
catch ValueError or RuntimeError keep working.
"""


class DriftCorrectionError(Exception):
    """Base class for all drift correction errors."""


class InvalidInputError(DriftCorrectionError, ValueError):
    """Malformed feature matrix, injection sequence, sample groups or configuration."""


class FittingFailedError(DriftCorrectionError, RuntimeError):
    """No clustering candidate converged, or a drift curve could not be fitted."""


class ReferenceModeUnsupportedError(DriftCorrectionError, NotImplementedError):
    """Requested reference mode is not implemented (multiple reference series)."""


class DimensionMismatchError(DriftCorrectionError, ValueError):
    """Feature sets of the QC, test and reference matrices diverge."""
