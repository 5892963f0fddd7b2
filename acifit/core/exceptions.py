"""
Exception and warning types used across acifit.

Input problems are raised as InputError; optimizer trouble is described by
ConvergenceFailure and carried inside a failed estimation outcome; fits that
complete but look physiologically implausible produce ModelDomainWarning.
"""


class InputError(ValueError):
    """Curve data cannot be fitted (missing columns, too few points)."""


class ConvergenceFailure(RuntimeError):
    """Nonlinear least squares did not converge."""


class ModelDomainWarning(UserWarning):
    """Fit completed but the estimates are implausible or poorly constrained."""
