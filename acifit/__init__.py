"""
acifit: fitting A-Ci curves with the Farquhar-von Caemmerer-Berry model.

Estimates Vcmax, Jmax, Rd (and optionally TPU) for single curves or batches
of curves, by nonlinear least squares with an automatic fallback to the
bilinear method, and fits Ball-Berry type stomatal conductance models.
"""

__version__ = "0.3.0"

from acifit.core.data_structures import Curve, VarNames, curve_from_dataframe
from acifit.core.c3_calculations import (
    ParameterSet,
    calculate_rates,
    calculate_assimilation,
    identify_limiting_process,
)
from acifit.core.temperature import TemperatureCoefficients, KineticConstants
from acifit.core.exceptions import InputError, ConvergenceFailure, ModelDomainWarning
from acifit.analysis.options import FitOptions
from acifit.analysis.estimators import Strategy
from acifit.analysis.c3_fitting import CurveFitter, FitResult, fit_aci
from acifit.analysis.batch import BatchFitter, BatchResult, fit_acis
from acifit.analysis.stomatal import fit_bb, fit_bbs
from acifit.io.tables import read_gas_exchange

__all__ = [
    # Data
    "Curve",
    "VarNames",
    "curve_from_dataframe",
    "read_gas_exchange",
    # Model
    "ParameterSet",
    "calculate_rates",
    "calculate_assimilation",
    "identify_limiting_process",
    "TemperatureCoefficients",
    "KineticConstants",
    # Fitting
    "FitOptions",
    "Strategy",
    "CurveFitter",
    "FitResult",
    "fit_aci",
    "BatchFitter",
    "BatchResult",
    "fit_acis",
    "fit_bb",
    "fit_bbs",
    # Errors
    "InputError",
    "ConvergenceFailure",
    "ModelDomainWarning",
    # Version
    "__version__",
]
