"""
Exceptions for the Conjugate-Gradient Inversion
================================================

Every failure that makes a reconstruction unusable derives from
``InversionError`` so callers can abort a run with a single handler.
"""


class InversionError(Exception):
    """Base class for fatal inversion failures."""


class InputDimensionError(InversionError, ValueError):
    """Measured/incident fields and Green matrices have inconsistent shapes."""


class SingularOperatorError(InversionError):
    """(I - gd·C) could not be inverted for the current contrast."""


class StepLengthError(InversionError):
    """The step-length solve produced an invalid (non-positive curvature) step."""
