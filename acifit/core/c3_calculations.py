"""
C3 photosynthesis calculations using the Farquhar-von Caemmerer-Berry model.

This module implements the FvCB model as used for A-Ci curve fitting:
- Rubisco-limited gross assimilation (Ac)
- Electron-transport (RuBP regeneration) limited gross assimilation (Aj)
- TPU-limited gross assimilation (Ap), only when TPU is supplied
- Net assimilation An = min(Ac, Aj, Ap) - Rd

Optionally, a finite mesophyll conductance is accounted for with the
quadratic solutions of Ethier & Livingston (2004).
"""

import numpy as np
from typing import Dict, Optional, Union
from dataclasses import dataclass, asdict

from .temperature import (
    TemperatureCoefficients,
    KineticConstants,
    DEFAULT_TEMPERATURE_COEFFICIENTS,
    DEFAULT_KINETIC_CONSTANTS,
    gamma_star,
    michaelis_menten,
    vcmax_temperature_factor,
    jmax_temperature_factor,
)

DEFAULT_ALPHA = 0.24  # quantum yield of electron transport (mol mol⁻¹)
DEFAULT_THETA = 0.85  # curvature of the light response

LIMITATIONS = ('Rubisco', 'RuBP', 'TPU')


@dataclass(frozen=True)
class ParameterSet:
    """
    Biochemical parameters of one leaf.

    Vcmax and Jmax are at 25 °C when temperature correction is on, otherwise
    at measurement temperature. Rd is always at measurement temperature.
    TPU is None when the TPU limitation is not modelled.
    """
    Vcmax: float
    Jmax: float
    Rd: float
    TPU: Optional[float] = None

    def to_dict(self) -> Dict[str, float]:
        values = asdict(self)
        if self.TPU is None:
            del values['TPU']
        return values


@dataclass
class ModelRates:
    """Container for FvCB model output at each observation."""
    An: np.ndarray  # Net assimilation (µmol m⁻² s⁻¹)
    Ac: np.ndarray  # Rubisco-limited gross assimilation
    Aj: np.ndarray  # Electron-transport-limited gross assimilation
    Ap: np.ndarray  # TPU-limited gross assimilation (inf when not modelled)
    Rd: float
    J: np.ndarray  # Electron transport rate at the measured PPFD
    Vcmax_tl: np.ndarray  # Vcmax at leaf temperature
    Jmax_tl: np.ndarray  # Jmax at leaf temperature
    GammaStar: np.ndarray
    Km: np.ndarray
    Cc: np.ndarray  # CO2 at the site of carboxylation (equals Ci without gmeso)


def electron_transport_rate(
    ppfd: Union[float, np.ndarray],
    jmax: Union[float, np.ndarray],
    alpha: float = DEFAULT_ALPHA,
    theta: float = DEFAULT_THETA
) -> Union[float, np.ndarray]:
    """
    Electron transport rate from the non-rectangular hyperbola.

    J = (alpha*I + Jmax - sqrt((alpha*I + Jmax)^2 - 4*alpha*theta*I*Jmax)) / (2*theta)

    Args:
        ppfd: Photosynthetic photon flux density (µmol m⁻² s⁻¹)
        jmax: Maximum electron transport rate (µmol m⁻² s⁻¹)
        alpha: Quantum yield of electron transport
        theta: Curvature parameter (0 < theta <= 1)

    Returns:
        J (µmol m⁻² s⁻¹)
    """
    ai = alpha * np.asarray(ppfd, dtype=float)
    term = ai + jmax
    discriminant = np.maximum(term**2 - 4.0 * theta * ai * jmax, 0.0)
    return (term - np.sqrt(discriminant)) / (2.0 * theta)


def jmax_from_electron_transport(
    j: Union[float, np.ndarray],
    ppfd: Union[float, np.ndarray],
    alpha: float = DEFAULT_ALPHA,
    theta: float = DEFAULT_THETA
) -> Union[float, np.ndarray]:
    """
    Invert the light response: Jmax giving electron transport rate J.

    Jmax = J * (alpha*I - theta*J) / (alpha*I - J)

    The light response saturates at alpha*I, so no finite Jmax exists when
    J >= alpha*I; NaN is returned there.
    """
    ai = alpha * np.asarray(ppfd, dtype=float)
    j = np.asarray(j, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        jmax = j * (ai - theta * j) / (ai - j)
    jmax = np.where((j < ai) & (j >= 0), jmax, np.nan)
    return jmax if jmax.ndim else float(jmax)


def rubisco_transform(ci, gamma_star_value, km):
    """(Ci - GammaStar) / (Ci + Km): Ac = Vcmax times this."""
    return (ci - gamma_star_value) / (ci + km)


def electron_transport_transform(ci, gamma_star_value):
    """(Ci - GammaStar) / (Ci + 2*GammaStar): Aj = J/4 times this."""
    return (ci - gamma_star_value) / (ci + 2.0 * gamma_star_value)


def tpu_transform(ci, gamma_star_value, alphag: float = 0.0) -> np.ndarray:
    """(Ci - GammaStar) / (Ci - (1 + 3*alphag)*GammaStar); NaN where the denominator is not positive."""
    ci = np.asarray(ci, dtype=float)
    if alphag == 0:
        return np.ones(ci.shape)
    denominator = ci - (1.0 + 3.0 * alphag) * gamma_star_value
    z = np.full(ci.shape, np.nan)
    valid = denominator > 0
    z[valid] = ((ci - gamma_star_value) / np.where(valid, denominator, 1.0))[valid]
    return z


def tpu_limited_rate(
    ci: np.ndarray,
    tpu: Optional[float],
    gamma_star_value: np.ndarray,
    alphag: float = 0.0
) -> np.ndarray:
    """
    TPU-limited gross assimilation.

    Ap = 3*TPU*(Ci - GammaStar) / (Ci - (1 + 3*alphag)*GammaStar), which is
    3*TPU for alphag = 0. Returns inf where TPU is not modelled or the
    denominator is not positive.
    """
    ci = np.asarray(ci, dtype=float)
    ap = np.full(ci.shape, np.inf)
    if tpu is None:
        return ap
    z = tpu_transform(ci, gamma_star_value, alphag)
    valid = np.isfinite(z)
    ap[valid] = 3.0 * tpu * z[valid]
    return ap


def _mesophyll_limited_rate(ci, vmax, rd, k, gamma_star_value, gm):
    """
    Net assimilation with finite mesophyll conductance (Ethier & Livingston 2004).

    Solves A = gm*(Ci - Cc) together with A + Rd = vmax*(Cc - G*)/(Cc + k)
    for the smaller root of A^2 - B*A - C = 0.
    """
    b = vmax - rd + gm * (ci + k)
    c = gm * (rd * (ci + k) - vmax * (ci - gamma_star_value))
    return (b - np.sqrt(np.maximum(b**2 + 4.0 * c, 0.0))) / 2.0


def calculate_rates(
    ci: np.ndarray,
    parameters: ParameterSet,
    tleaf: Optional[np.ndarray] = None,
    ppfd: Optional[np.ndarray] = None,
    Tcorrect: bool = True,
    temperature: TemperatureCoefficients = DEFAULT_TEMPERATURE_COEFFICIENTS,
    kinetics: KineticConstants = DEFAULT_KINETIC_CONSTANTS,
    Patm: float = 100.0,
    alpha: float = DEFAULT_ALPHA,
    theta: float = DEFAULT_THETA,
    alphag: float = 0.0,
    GammaStar: Optional[float] = None,
    Km: Optional[float] = None,
    gmeso: Optional[float] = None
) -> ModelRates:
    """
    Evaluate the FvCB model at each Ci.

    Args:
        ci: Intercellular CO2 concentration (µmol mol⁻¹)
        parameters: Vcmax, Jmax, Rd and optional TPU
        tleaf: Leaf temperature (°C); 25 °C when None
        ppfd: Photosynthetic photon flux density; 1800 when None
        Tcorrect: Whether Vcmax and Jmax are given at 25 °C and need scaling
        temperature: Vcmax / Jmax temperature coefficients
        kinetics: Kinetic constants for GammaStar and Km
        Patm: Atmospheric pressure (kPa)
        alpha: Quantum yield of electron transport
        theta: Curvature of the light response
        alphag: Fraction of glycolate carbon not returned to the chloroplast
        GammaStar: Fixed GammaStar overriding the temperature function
        Km: Fixed Km overriding the temperature function
        gmeso: Mesophyll conductance (mol m⁻² s⁻¹ bar⁻¹); Ci is used as
            the chloroplastic CO2 concentration when None

    Returns:
        ModelRates with candidate rates and net assimilation
    """
    ci = np.maximum(np.atleast_1d(np.asarray(ci, dtype=float)), 0.0)
    n = ci.size
    tleaf = np.full(n, 25.0) if tleaf is None else np.broadcast_to(
        np.asarray(tleaf, dtype=float), (n,))
    ppfd = np.full(n, 1800.0) if ppfd is None else np.broadcast_to(
        np.asarray(ppfd, dtype=float), (n,))

    gstar = np.full(n, GammaStar, dtype=float) if GammaStar is not None else \
        gamma_star(tleaf, Patm, kinetics)
    km = np.full(n, Km, dtype=float) if Km is not None else \
        michaelis_menten(tleaf, Patm, kinetics)

    if Tcorrect:
        vcmax_tl = parameters.Vcmax * vcmax_temperature_factor(tleaf, temperature)
        jmax_tl = parameters.Jmax * jmax_temperature_factor(tleaf, temperature)
    else:
        vcmax_tl = np.full(n, parameters.Vcmax, dtype=float)
        jmax_tl = np.full(n, parameters.Jmax, dtype=float)

    j = electron_transport_rate(ppfd, jmax_tl, alpha, theta)
    rd = parameters.Rd

    if gmeso is None:
        cc = ci
        ac = vcmax_tl * rubisco_transform(ci, gstar, km)
        aj = j / 4.0 * electron_transport_transform(ci, gstar)
        ap = tpu_limited_rate(ci, parameters.TPU, gstar, alphag)
    else:
        gm = gmeso * Patm / 100.0
        ac = _mesophyll_limited_rate(ci, vcmax_tl, rd, km, gstar, gm) + rd
        aj = _mesophyll_limited_rate(ci, j / 4.0, rd, 2.0 * gstar, gstar, gm) + rd
        ap = tpu_limited_rate(ci, parameters.TPU, gstar, alphag)
        if parameters.TPU is not None and alphag > 0:
            # TPU term depends on Cc; a few fixed-point steps converge quickly
            for _ in range(5):
                cc_p = ci - np.where(np.isfinite(ap), ap - rd, 0.0) / gm
                ap = tpu_limited_rate(cc_p, parameters.TPU, gstar, alphag)
        gross = np.minimum(np.minimum(ac, aj), ap)
        cc = ci - (gross - rd) / gm

    an = np.minimum(np.minimum(ac, aj), ap) - rd

    return ModelRates(
        An=an, Ac=ac, Aj=aj, Ap=ap, Rd=rd, J=j,
        Vcmax_tl=vcmax_tl, Jmax_tl=jmax_tl,
        GammaStar=gstar, Km=km, Cc=cc
    )


def calculate_assimilation(ci: np.ndarray, parameters: ParameterSet, **kwargs) -> np.ndarray:
    """Net assimilation only; see calculate_rates for the keyword arguments."""
    return calculate_rates(ci, parameters, **kwargs).An


def identify_limiting_process(rates: ModelRates) -> np.ndarray:
    """
    Identify which process limits photosynthesis at each point.

    The minimum candidate rate wins; ties go to Rubisco, then RuBP, then TPU.

    Args:
        rates: ModelRates from calculate_rates

    Returns:
        Array of 'Rubisco', 'RuBP' or 'TPU' for each point
    """
    ac, aj, ap = rates.Ac, rates.Aj, rates.Ap
    rubisco = (ac <= aj) & (ac <= ap)
    rubp = ~rubisco & (aj <= ap)
    return np.where(rubisco, 'Rubisco', np.where(rubp, 'RuBP', 'TPU')).astype(object)


def transition_ci(
    vcmax: float,
    j: float,
    gamma_star_value: float,
    km: float
) -> float:
    """
    Ci at which Rubisco- and electron-transport-limited rates are equal.

    Returns NaN when the two curves do not cross at positive Ci.
    """
    slope_diff = vcmax - j / 4.0
    if slope_diff <= 0:
        return np.nan
    ci = (j / 4.0 * km - 2.0 * gamma_star_value * vcmax) / slope_diff
    return float(ci) if ci > 0 else np.nan
