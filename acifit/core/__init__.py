"""
Core modules for acifit.

Data structures, temperature responses and the FvCB model equations.
"""

from acifit.core.data_structures import (
    Curve,
    VarNames,
    curve_from_dataframe,
    split_curves,
    MIN_POINTS,
    MISSING_GROUP,
)
from acifit.core.temperature import (
    TemperatureCoefficients,
    KineticConstants,
    DEFAULT_TEMPERATURE_COEFFICIENTS,
    DEFAULT_KINETIC_CONSTANTS,
    arrhenius_response,
    peaked_arrhenius_response,
    vcmax_temperature_factor,
    jmax_temperature_factor,
    gamma_star,
    michaelis_menten,
)
from acifit.core.c3_calculations import (
    ParameterSet,
    ModelRates,
    calculate_rates,
    calculate_assimilation,
    identify_limiting_process,
    electron_transport_rate,
    jmax_from_electron_transport,
    transition_ci,
)
from acifit.core.exceptions import InputError, ConvergenceFailure, ModelDomainWarning

__all__ = [
    # Data structures
    "Curve",
    "VarNames",
    "curve_from_dataframe",
    "split_curves",
    "MIN_POINTS",
    "MISSING_GROUP",
    # Temperature response
    "TemperatureCoefficients",
    "KineticConstants",
    "DEFAULT_TEMPERATURE_COEFFICIENTS",
    "DEFAULT_KINETIC_CONSTANTS",
    "arrhenius_response",
    "peaked_arrhenius_response",
    "vcmax_temperature_factor",
    "jmax_temperature_factor",
    "gamma_star",
    "michaelis_menten",
    # FvCB model
    "ParameterSet",
    "ModelRates",
    "calculate_rates",
    "calculate_assimilation",
    "identify_limiting_process",
    "electron_transport_rate",
    "jmax_from_electron_transport",
    "transition_ci",
    # Errors
    "InputError",
    "ConvergenceFailure",
    "ModelDomainWarning",
]
