"""
Fitting options for A-Ci curves.

FitOptions is immutable; use ``options.replace(...)`` to derive variants.
"""

from dataclasses import dataclass, field, replace, fields
from typing import Any, Dict, Optional

from ..core.data_structures import VarNames
from ..core.temperature import (
    TemperatureCoefficients,
    KineticConstants,
    DEFAULT_TEMPERATURE_COEFFICIENTS,
    DEFAULT_KINETIC_CONSTANTS,
)
from ..core.c3_calculations import DEFAULT_ALPHA, DEFAULT_THETA

FIT_METHODS = ('default', 'bilinear')


@dataclass(frozen=True)
class FitOptions:
    """
    Options controlling how one A-Ci curve is fitted.

    Attributes:
        fitmethod: 'default' (nonlinear least squares) or 'bilinear'
        Tcorrect: Report Vcmax and Jmax at 25 °C instead of leaf temperature
        temperature: Temperature coefficients (EaV, EdVC, delsC, EaJ, EdVJ, delsJ)
        kinetics: Kinetic constants used for GammaStar and Km
        fitTPU: Also estimate the TPU limitation
        alphag: Glycolate carbon fraction in the TPU model (0 gives Ap = 3*TPU)
        gmeso: Mesophyll conductance (mol m⁻² s⁻¹ bar⁻¹); when given, Vcmax
            and Jmax are chloroplastic rates
        fixVcmax: Fixed Vcmax instead of estimating it
        fixJmax: Fixed Jmax instead of estimating it
        fixRd: Fixed Rd instead of estimating it
        useRd: Use the mean of the measured Rd column as a fixed Rd
        GammaStar: Fixed GammaStar overriding the temperature function
        Km: Fixed Km overriding the temperature function
        Patm: Atmospheric pressure (kPa)
        alpha: Quantum yield of electron transport
        theta: Curvature of the light response
        citransition: Fixed Ci separating Rubisco- and RuBP-limited points in
            the bilinear method
        max_nfev: Cap on model evaluations of the nonlinear optimizer
        varnames: Column mapping of the input table
    """
    fitmethod: str = 'default'
    Tcorrect: bool = True
    temperature: TemperatureCoefficients = DEFAULT_TEMPERATURE_COEFFICIENTS
    kinetics: KineticConstants = DEFAULT_KINETIC_CONSTANTS
    fitTPU: bool = False
    alphag: float = 0.0
    gmeso: Optional[float] = None
    fixVcmax: Optional[float] = None
    fixJmax: Optional[float] = None
    fixRd: Optional[float] = None
    useRd: bool = False
    GammaStar: Optional[float] = None
    Km: Optional[float] = None
    Patm: float = 100.0
    alpha: float = DEFAULT_ALPHA
    theta: float = DEFAULT_THETA
    citransition: Optional[float] = None
    max_nfev: int = 2000
    varnames: VarNames = field(default_factory=VarNames)

    def __post_init__(self):
        if self.fitmethod not in FIT_METHODS:
            raise ValueError(
                f"Unknown fitmethod: '{self.fitmethod}'. Use one of {FIT_METHODS}"
            )
        if self.gmeso is not None and self.gmeso <= 0:
            raise ValueError(f"gmeso must be positive, got {self.gmeso}")
        if self.Patm <= 0:
            raise ValueError(f"Patm must be positive, got {self.Patm}")
        if not 0 <= self.alphag < 1:
            raise ValueError(f"alphag must be in [0, 1), got {self.alphag}")
        if not 0 < self.theta <= 1:
            raise ValueError(f"theta must be in (0, 1], got {self.theta}")
        if self.alpha <= 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")
        if self.max_nfev < 1:
            raise ValueError(f"max_nfev must be at least 1, got {self.max_nfev}")
        if self.useRd and self.fixRd is not None:
            raise ValueError("Use either useRd or fixRd, not both")
        if isinstance(self.varnames, dict):
            object.__setattr__(self, 'varnames', VarNames.from_dict(self.varnames))

    @classmethod
    def from_kwargs(cls, **kwargs: Any) -> 'FitOptions':
        """Build options from keyword arguments, rejecting unknown names."""
        known = {f.name for f in fields(cls)}
        unknown = set(kwargs) - known
        if unknown:
            raise TypeError(f"Unknown fitting options: {sorted(unknown)}")
        return cls(**kwargs)

    def replace(self, **changes: Any) -> 'FitOptions':
        return replace(self, **changes)

    @property
    def fixed_parameters(self) -> Dict[str, float]:
        fixed = {'Vcmax': self.fixVcmax, 'Jmax': self.fixJmax, 'Rd': self.fixRd}
        return {name: value for name, value in fixed.items() if value is not None}

    def model_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for acifit.core.c3_calculations.calculate_rates."""
        return {
            'Tcorrect': self.Tcorrect,
            'temperature': self.temperature,
            'kinetics': self.kinetics,
            'Patm': self.Patm,
            'alpha': self.alpha,
            'theta': self.theta,
            'alphag': self.alphag,
            'GammaStar': self.GammaStar,
            'Km': self.Km,
        }
