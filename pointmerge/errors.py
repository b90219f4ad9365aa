#!/usr/bin/env python3
"""
Error types raised by the registration pipeline.

Input validation errors subclass ValueError so callers that only know about
the standard library still catch them. Empty results and numerical failures
are separate branches because the multi-view driver treats them differently
when it decides whether a cloud can be skipped.

Author: Reconstruction Team
"""


class RegistrationError(Exception):
    """Base class for every error raised by pointmerge."""
    pass


class InputValidationError(RegistrationError, ValueError):
    """Inputs were rejected before any numeric work was done."""
    pass


class EmptyInputError(InputValidationError):
    """A point list or cloud was empty."""
    pass


class DimensionMismatchError(InputValidationError):
    """Point sets differ in length or per-point dimension."""
    pass


class UnsupportedDimensionError(InputValidationError):
    """Point dimension is not 2 or 3."""
    pass


class InsufficientPointsError(InputValidationError):
    """Too few correspondences for a stable solve."""
    pass


class InvalidArgumentError(InputValidationError):
    """A numeric parameter is outside its allowed range."""
    pass


class EmptyResultError(RegistrationError):
    """A stage produced no points."""
    pass


class NoClusterFoundError(EmptyResultError):
    """Density clustering found no cluster at all."""
    pass


class ConvergenceError(RegistrationError, RuntimeError):
    """The SVD iteration did not converge. Not recoverable."""
    pass


class ConfigurationError(RegistrationError):
    """Configuration file missing, unreadable or invalid."""
    pass
