"""
Parameter estimation strategies for A-Ci curves.

Two interchangeable strategies share the ``estimate(curve, options)``
contract and return an explicit outcome, either Converged or Failed:

- NonlinearEstimator fits all free parameters at once by least squares on
  the full FvCB model (lmfit, Levenberg-Marquardt) and reports asymptotic
  standard errors from the covariance matrix.
- BilinearEstimator splits the Ci-sorted points into Rubisco- and
  RuBP-limited groups (and optionally TPU), fits each group by linear
  regression after linearizing its equation, and keeps the split with the
  least squared error. It is fast and never iterates, but the Vcmax
  standard error is understated and Jmax has none.
"""

import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple, Union

import numpy as np
import lmfit
from scipy import stats

from ..core.c3_calculations import (
    ParameterSet,
    calculate_assimilation,
    electron_transport_rate,
    electron_transport_transform,
    jmax_from_electron_transport,
    rubisco_transform,
    tpu_transform,
)
from ..core.data_structures import Curve
from ..core.exceptions import ConvergenceFailure, InputError
from .initial_guess import (
    curve_kinetics,
    estimate_initial_parameters,
    estimate_parameter_bounds,
)
from .options import FitOptions


class Strategy(str, Enum):
    """Estimation strategy; ``Strategy('default')`` is the nonlinear one."""
    NONLINEAR = 'nonlinear'
    BILINEAR = 'bilinear'

    @classmethod
    def _missing_(cls, value):
        if value == 'default':
            return cls.NONLINEAR
        return None


@dataclass(frozen=True)
class Converged:
    """Successful estimation."""
    parameters: ParameterSet
    stderr: Dict[str, float]
    strategy: Strategy
    message: str = ''
    nfev: int = 0
    warnings: Tuple[str, ...] = ()
    success: ClassVar[bool] = True


@dataclass(frozen=True)
class Failed:
    """Estimation that produced no usable parameters."""
    reason: str
    strategy: Strategy
    error: Optional[Exception] = field(default=None, compare=False)
    success: ClassVar[bool] = False


EstimationOutcome = Union[Converged, Failed]


class ParameterEstimator(ABC):
    """Common interface of the estimation strategies."""

    strategy: Strategy

    @abstractmethod
    def estimate(self, curve: Curve, options: FitOptions) -> EstimationOutcome:
        """
        Estimate Vcmax, Jmax, Rd (and TPU) for one curve.

        Args:
            curve: Curve to fit; Ci is the CO2 concentration the model sees
            options: Fitting options

        Returns:
            Converged or Failed
        """

    def _check_curve(self, curve: Curve) -> Optional[Failed]:
        try:
            curve.check_fittable()
        except InputError as e:
            return Failed(str(e), self.strategy, e)
        return None


class NonlinearEstimator(ParameterEstimator):
    """Least-squares fit of the full piecewise FvCB model."""

    strategy = Strategy.NONLINEAR

    def estimate(self, curve: Curve, options: FitOptions) -> EstimationOutcome:
        failed = self._check_curve(curve)
        if failed is not None:
            return failed

        initial = estimate_initial_parameters(curve, options)
        bounds = estimate_parameter_bounds(options)
        fixed = options.fixed_parameters

        params = lmfit.Parameters()
        for name, value in initial.items():
            lower, upper = bounds[name]
            params.add(name, value=value, min=lower, max=upper, vary=name not in fixed)

        free = [name for name in params if params[name].vary]
        model_kwargs = options.model_kwargs()

        def residual(p):
            values = p.valuesdict()
            parameter_set = ParameterSet(
                Vcmax=values['Vcmax'], Jmax=values['Jmax'], Rd=values['Rd'],
                TPU=values.get('TPU'),
            )
            model = calculate_assimilation(
                curve.Ci, parameter_set, tleaf=curve.Tleaf, ppfd=curve.PPFD, **model_kwargs
            )
            return model - curve.A

        if not free:
            return Converged(
                parameters=_parameter_set(initial),
                stderr={name: np.nan for name in initial},
                strategy=self.strategy,
                message='All parameters fixed',
                warnings=('All parameters were fixed - no optimization performed',),
            )

        try:
            with warnings.catch_warnings():
                warnings.simplefilter('ignore', RuntimeWarning)
                result = lmfit.minimize(
                    residual, params, method='leastsq', max_nfev=options.max_nfev
                )
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            return Failed(f"Nonlinear fit raised an error: {e}", self.strategy, e)

        if not result.success:
            message = f"Nonlinear fit did not converge: {result.message}"
            return Failed(message, self.strategy, ConvergenceFailure(message))

        values = {name: float(result.params[name].value) for name in initial}
        if not all(np.isfinite(v) for v in values.values()):
            message = "Nonlinear fit returned non-finite estimates"
            return Failed(message, self.strategy, ConvergenceFailure(message))

        stderr = {}
        for name in initial:
            se = result.params[name].stderr
            stderr[name] = float(se) if (name in free and se is not None) else np.nan

        notes: List[str] = []
        if not result.errorbars:
            notes.append("Standard errors could not be estimated (singular covariance)")
        for name in free:
            lower, upper = bounds[name]
            if np.isclose(values[name], lower, atol=1e-6):
                notes.append(f"{name} converged to its lower bound ({lower:g})")

        return Converged(
            parameters=_parameter_set(values),
            stderr=stderr,
            strategy=self.strategy,
            message=str(result.message),
            nfev=int(result.nfev),
            warnings=tuple(notes),
        )


@dataclass
class _Split:
    """Estimates for one assignment of points to limitation regimes."""
    n_rubisco: int
    n_rubp: int
    vcmax: float
    rd: float
    j: float
    tpu: Optional[float]
    sse: float
    vcmax_se: float
    rd_se: float
    tpu_se: float


class BilinearEstimator(ParameterEstimator):
    """Two-stage linear estimation after linearizing each limitation."""

    strategy = Strategy.BILINEAR

    def estimate(self, curve: Curve, options: FitOptions) -> EstimationOutcome:
        failed = self._check_curve(curve)
        if failed is not None:
            return failed

        curve = curve.sorted_by_ci()
        kinetics = curve_kinetics(curve, options)
        n = len(curve)

        # Ac = Vcmax * x, Aj = J/4 * y, Ap = 3*TPU * z
        x = kinetics.vcmax_factor * rubisco_transform(curve.Ci, kinetics.gamma_star, kinetics.km)
        y = electron_transport_transform(curve.Ci, kinetics.gamma_star)
        z = tpu_transform(curve.Ci, kinetics.gamma_star, options.alphag)
        fixed_j = None
        if options.fixJmax is not None:
            fixed_j = electron_transport_rate(
                curve.PPFD, options.fixJmax * kinetics.jmax_factor, options.alpha, options.theta
            )

        best: Optional[_Split] = None
        for n_c, n_j in self._candidate_splits(curve, options):
            split = self._fit_split(curve.A, x, y, z, fixed_j, n_c, n_j, options)
            if split is None:
                continue
            if options.fixJmax is None:
                jmax = self._jmax(split, curve, kinetics, options)
                if not np.isfinite(jmax):
                    continue
            if best is None or split.sse < best.sse:
                best = split

        if best is None:
            if n < 4:
                reason = "Too few points for the bilinear method"
            else:
                reason = "No split of the curve gave finite bilinear estimates"
            return Failed(reason, self.strategy, InputError(reason))

        jmax = options.fixJmax if options.fixJmax is not None else \
            self._jmax(best, curve, kinetics, options)

        values = {'Vcmax': best.vcmax, 'Jmax': float(jmax), 'Rd': best.rd}
        stderr = {
            'Vcmax': np.nan if options.fixVcmax is not None else best.vcmax_se,
            'Jmax': np.nan,
            'Rd': np.nan if options.fixRd is not None else best.rd_se,
        }
        if options.fitTPU:
            values['TPU'] = best.tpu
            stderr['TPU'] = best.tpu_se

        n_tpu = n - best.n_rubisco - best.n_rubp
        message = (
            f"{best.n_rubisco} Rubisco-limited, {best.n_rubp} RuBP-limited"
            + (f", {n_tpu} TPU-limited" if options.fitTPU else "")
            + " points"
        )
        return Converged(
            parameters=_parameter_set(values),
            stderr=stderr,
            strategy=self.strategy,
            message=message,
            warnings=(
                "Bilinear method: standard error of Vcmax is understated and "
                "Jmax has no standard error",
            ),
        )

    @staticmethod
    def _candidate_splits(curve: Curve, options: FitOptions) -> List[Tuple[int, int]]:
        """(number of Rubisco-limited, number of RuBP-limited) points per candidate."""
        n = len(curve)
        # one point per free parameter of the Rubisco regression
        min_c = int(options.fixVcmax is None) + int(options.fixRd is None)
        min_j = 1 if options.fixJmax is None else 0
        min_p = 1 if options.fitTPU else 0

        if options.citransition is not None:
            c_range = [int(np.sum(curve.Ci < options.citransition))]
        else:
            c_range = range(min_c, n - min_j - min_p + 1)

        splits = []
        for n_c in c_range:
            if options.fitTPU:
                j_range = range(min_j, n - n_c - min_p + 1)
            else:
                j_range = [n - n_c]
            for n_j in j_range:
                if n_c >= min_c and n_j >= min_j and n - n_c - n_j >= min_p:
                    splits.append((n_c, n_j))
        return splits

    @staticmethod
    def _fit_split(a, x, y, z, fixed_j, n_c, n_j, options) -> Optional[_Split]:
        ac_a, ac_x = a[:n_c], x[:n_c]
        vcmax, rd = options.fixVcmax, options.fixRd
        vcmax_se = rd_se = np.nan

        if vcmax is None and rd is None:
            if np.ptp(ac_x) <= 0:
                return None
            fit = stats.linregress(ac_x, ac_a)
            vcmax, rd = fit.slope, -fit.intercept
            if n_c > 2:
                vcmax_se, rd_se = fit.stderr, fit.intercept_stderr
        elif vcmax is None:
            vcmax = np.sum(ac_x * (ac_a + rd)) / np.sum(ac_x**2)
            if n_c > 1:
                resid = ac_a + rd - vcmax * ac_x
                vcmax_se = np.sqrt(np.sum(resid**2) / (n_c - 1) / np.sum(ac_x**2))
        elif rd is None:
            rd = float(np.mean(vcmax * ac_x - ac_a))
            if n_c > 1:
                rd_se = float(np.std(vcmax * ac_x - ac_a, ddof=1) / np.sqrt(n_c))

        if not (np.isfinite(vcmax) and np.isfinite(rd)) or vcmax <= 0:
            return None

        rubp = slice(n_c, n_c + n_j)
        aj_a, aj_y = a[rubp], y[rubp]
        if fixed_j is None:
            if np.sum(aj_y**2) <= 0:
                return None
            j4 = np.sum(aj_y * (aj_a + rd)) / np.sum(aj_y**2)
            if not np.isfinite(j4) or j4 <= 0:
                return None
            pred_j = j4 * aj_y
            j = 4.0 * j4
        else:
            pred_j = fixed_j[rubp] / 4.0 * aj_y
            j = np.nan

        tpu = None
        tpu_se = np.nan
        pred_p = np.array([])
        tpu_a = a[n_c + n_j:]
        if options.fitTPU:
            ap_p = 3.0 * z[n_c + n_j:]
            if not np.all(np.isfinite(ap_p)) or np.sum(ap_p**2) <= 0:
                return None
            tpu = float(np.sum(ap_p * (tpu_a + rd)) / np.sum(ap_p**2))
            if tpu <= 0:
                return None
            pred_p = tpu * ap_p
            if len(tpu_a) > 1:
                resid = tpu_a + rd - pred_p
                tpu_se = float(np.sqrt(
                    np.sum(resid**2) / (len(tpu_a) - 1) / np.sum(ap_p**2)
                ))

        predicted = np.concatenate([vcmax * ac_x, pred_j, pred_p]) - rd
        observed = np.concatenate([ac_a, aj_a, tpu_a if options.fitTPU else np.array([])])
        sse = float(np.sum((observed - predicted)**2))

        return _Split(
            n_rubisco=n_c, n_rubp=n_j, vcmax=float(vcmax), rd=float(rd), j=float(j),
            tpu=tpu, sse=sse, vcmax_se=float(vcmax_se), rd_se=float(rd_se),
            tpu_se=tpu_se,
        )

    @staticmethod
    def _jmax(split: _Split, curve: Curve, kinetics, options: FitOptions) -> float:
        """Back-substitute Jmax from J at the mean PPFD and temperature of RuBP points."""
        rubp = slice(split.n_rubisco, split.n_rubisco + split.n_rubp)
        ppfd = np.mean(curve.PPFD[rubp])
        jmax_tl = jmax_from_electron_transport(split.j, ppfd, options.alpha, options.theta)
        return float(jmax_tl / np.mean(kinetics.jmax_factor[rubp]))


def _parameter_set(values: Dict[str, float]) -> ParameterSet:
    return ParameterSet(
        Vcmax=values['Vcmax'], Jmax=values['Jmax'], Rd=values['Rd'], TPU=values.get('TPU')
    )


_ESTIMATORS = {
    Strategy.NONLINEAR: NonlinearEstimator,
    Strategy.BILINEAR: BilinearEstimator,
}


def get_estimator(strategy: Union[Strategy, str]) -> ParameterEstimator:
    """Return the estimator for a strategy or its method name."""
    return _ESTIMATORS[Strategy(strategy)]()
