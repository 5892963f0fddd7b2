
import numpy as np
from typing import Dict, Tuple
from dataclasses import dataclass
from scipy import stats

from ..core.data_structures import Curve
from ..core.temperature import (
    gamma_star,
    michaelis_menten,
    vcmax_temperature_factor,
    jmax_temperature_factor,
)
from ..core.c3_calculations import (
    rubisco_transform,
    electron_transport_transform,
    jmax_from_electron_transport,
)
from .options import FitOptions

N_EDGE_POINTS = 3


@dataclass
class CurveKinetics:
    """Per-point constants needed to linearize the FvCB equations."""
    gamma_star: np.ndarray
    km: np.ndarray
    vcmax_factor: np.ndarray  # Vcmax(T) / Vcmax reported
    jmax_factor: np.ndarray  # Jmax(T) / Jmax reported


def curve_kinetics(curve: Curve, options: FitOptions) -> CurveKinetics:
    """
    Evaluate GammaStar, Km and the temperature factors at each observation.

    Args:
        curve: Curve to fit
        options: Fitting options

    Returns:
        CurveKinetics aligned with the curve's observations
    """
    n = len(curve)
    if options.GammaStar is not None:
        gstar = np.full(n, float(options.GammaStar))
    else:
        gstar = gamma_star(curve.Tleaf, options.Patm, options.kinetics)
    if options.Km is not None:
        km = np.full(n, float(options.Km))
    else:
        km = michaelis_menten(curve.Tleaf, options.Patm, options.kinetics)

    if options.Tcorrect:
        fv = vcmax_temperature_factor(curve.Tleaf, options.temperature)
        fj = jmax_temperature_factor(curve.Tleaf, options.temperature)
    else:
        fv = np.ones(n)
        fj = np.ones(n)

    return CurveKinetics(gamma_star=gstar, km=km, vcmax_factor=fv, jmax_factor=fj)


def estimate_rd(a: np.ndarray) -> float:
    """
    Rough day respiration from the assimilation data alone.

    Args:
        a: Assimilation rates

    Returns:
        Estimated Rd value
    """
    a_min = np.min(a)
    if a_min < 0:
        rd_guess = abs(a_min)
    elif np.any(a > 0):
        rd_guess = 0.05 * np.mean(a[a > 0])
    else:
        rd_guess = 1.0

    return float(np.clip(rd_guess, 0.5, 5.0))


def estimate_vcmax_and_rd(
    curve: Curve,
    kinetics: CurveKinetics,
    options: FitOptions,
    n_points: int = N_EDGE_POINTS
) -> Tuple[float, float]:
    """
    Estimate Vcmax and Rd from the lowest-Ci points.

    At low Ci photosynthesis is Rubisco limited, so A is linear in
    (Ci - GammaStar) / (Ci + Km) with slope Vcmax and intercept -Rd.

    Args:
        curve: Curve sorted by Ci
        kinetics: Per-point constants from curve_kinetics
        options: Fitting options (fixed Vcmax / Rd are honoured)
        n_points: Number of low-Ci points used

    Returns:
        Tuple of (Vcmax, Rd)
    """
    low = slice(0, min(n_points, len(curve)))
    x = kinetics.vcmax_factor[low] * rubisco_transform(
        curve.Ci[low], kinetics.gamma_star[low], kinetics.km[low]
    )
    a = curve.A[low]

    vcmax, rd = options.fixVcmax, options.fixRd
    if vcmax is None and rd is None:
        if np.ptp(x) > 0:
            fit = stats.linregress(x, a)
            vcmax, rd = fit.slope, -fit.intercept
        if vcmax is None or not np.isfinite(vcmax) or vcmax <= 0:
            vcmax = 4.0 * max(np.max(curve.A), 1.0)
            rd = estimate_rd(curve.A)
    elif vcmax is None:
        vcmax = np.sum(x * (a + rd)) / np.sum(x**2)
        if not np.isfinite(vcmax) or vcmax <= 0:
            vcmax = 4.0 * max(np.max(curve.A), 1.0)
    elif rd is None:
        rd = float(np.mean(vcmax * x - a))

    return float(vcmax), float(rd)


def estimate_jmax(
    curve: Curve,
    kinetics: CurveKinetics,
    options: FitOptions,
    rd: float,
    vcmax: float,
    n_points: int = N_EDGE_POINTS
) -> float:
    """
    Estimate Jmax from the highest-Ci points.

    At high Ci photosynthesis is electron-transport limited:
    A + Rd = J/4 * (Ci - GammaStar) / (Ci + 2*GammaStar). J is converted to
    Jmax by inverting the light response at the mean PPFD.

    Args:
        curve: Curve sorted by Ci
        kinetics: Per-point constants from curve_kinetics
        options: Fitting options
        rd: Day respiration estimate
        vcmax: Vcmax estimate, used for the fallback
        n_points: Number of high-Ci points used

    Returns:
        Estimated Jmax
    """
    if options.fixJmax is not None:
        return float(options.fixJmax)

    high = slice(max(len(curve) - n_points, 0), len(curve))
    y = electron_transport_transform(curve.Ci[high], kinetics.gamma_star[high])
    a = curve.A[high]

    jmax = np.nan
    valid = y > 0
    if np.any(valid):
        j = np.median(4.0 * (a[valid] + rd) / y[valid])
        if j > 0:
            ppfd = np.mean(curve.PPFD[high])
            jmax = jmax_from_electron_transport(j, ppfd, options.alpha, options.theta)
            jmax = jmax / np.mean(kinetics.jmax_factor[high])

    if not np.isfinite(jmax) or jmax <= 0:
        # J is typically about twice Vcmax
        jmax = 2.0 * vcmax
    return float(jmax)


def estimate_initial_parameters(curve: Curve, options: FitOptions) -> Dict[str, float]:
    """
    Starting values for nonlinear fitting of one A-Ci curve.

    Vcmax and Rd come from a linear regression on the three lowest-Ci points,
    Jmax from the three highest-Ci points. TPU, when requested, starts at the
    level that would just limit the highest observed rate.

    Args:
        curve: Curve to fit (Ci may be chloroplastic CO2)
        options: Fitting options

    Returns:
        Dictionary of initial parameter values
    """
    curve = curve.sorted_by_ci()
    kinetics = curve_kinetics(curve, options)

    vcmax, rd = estimate_vcmax_and_rd(curve, kinetics, options)
    jmax = estimate_jmax(curve, kinetics, options, rd, vcmax)

    initial = {'Vcmax': vcmax, 'Jmax': jmax, 'Rd': rd}
    if options.fitTPU:
        initial['TPU'] = max((np.max(curve.A) + rd) / 3.0, 0.1)
    return initial


def estimate_parameter_bounds(options: FitOptions) -> Dict[str, Tuple[float, float]]:
    """
    Bounds for the nonlinear optimizer.

    Rd is left unbounded so that negative estimates can be reported.
    """
    bounds = {
        'Vcmax': (0.0, np.inf),
        'Jmax': (0.0, np.inf),
        'Rd': (-np.inf, np.inf),
    }
    if options.fitTPU:
        bounds['TPU'] = (0.0, np.inf)
    return bounds
