"""
Fitting the FvCB model to a single A-Ci curve.

CurveFitter runs one curve through an explicit state machine:

    Pending -> Fitting(nonlinear) -> Converged
                                  -> Failed -> Fitting(bilinear) -> Converged | Failed

With ``fitmethod='bilinear'`` the nonlinear stage is skipped. The visited
states are kept in ``FitResult.history``. A curve that cannot be fitted at
all (missing columns, too few points) gives a FitResult with
``success=False`` instead of raising.
"""

import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from ..core.c3_calculations import (
    ParameterSet,
    calculate_rates,
    identify_limiting_process,
    rubisco_transform,
    transition_ci,
)
from ..core.data_structures import Curve, curve_from_dataframe
from ..core.exceptions import InputError, ModelDomainWarning
from .estimators import Converged, EstimationOutcome, Strategy, get_estimator
from .options import FitOptions

NARROW_CI_RANGE = 200.0  # µmol mol⁻¹

PARAMETER_UNITS = {
    'Vcmax': 'µmol m⁻² s⁻¹',
    'Jmax': 'µmol m⁻² s⁻¹',
    'Rd': 'µmol m⁻² s⁻¹',
    'TPU': 'µmol m⁻² s⁻¹',
}


class FitState(str, Enum):
    PENDING = 'Pending'
    FITTING = 'Fitting'
    CONVERGED = 'Converged'
    FAILED = 'Failed'

    def label(self, strategy: Optional[Strategy] = None) -> str:
        return self.value if strategy is None else f"{self.value}({strategy.value})"


def _read_only(values) -> np.ndarray:
    values = np.array(values)
    values.setflags(write=False)
    return values


@dataclass(frozen=True, eq=False)
class FitResult:
    """
    Result of fitting one A-Ci curve.

    Vcmax and Jmax are at 25 °C when ``options.Tcorrect`` is on, and are
    chloroplastic rates when ``options.gmeso`` is given. Standard errors are
    NaN where a strategy cannot provide them. For a failed fit ``parameters``
    is None and the arrays are empty.
    """
    parameters: Optional[ParameterSet]
    stderr: Dict[str, float]
    strategy: Optional[Strategy]
    success: bool
    r_squared: float
    rmse: float
    residuals: np.ndarray  # observed - fitted
    fitted_A: np.ndarray
    observed_A: np.ndarray
    ci: np.ndarray
    limiting_process: np.ndarray  # 'Rubisco', 'RuBP' or 'TPU' per point
    warnings: Tuple[str, ...]
    message: str
    n_points: int
    history: Tuple[str, ...]
    GammaStar: float = np.nan
    Km: float = np.nan
    ci_transition: float = np.nan
    curve: Optional[Curve] = field(default=None, repr=False)
    options: FitOptions = field(default_factory=FitOptions, repr=False)

    @property
    def curve_id(self) -> Optional[str]:
        return None if self.curve is None else self.curve.curve_id

    @property
    def parameter_names(self) -> List[str]:
        names = ['Vcmax', 'Jmax', 'Rd']
        if self.options.fitTPU:
            names.append('TPU')
        return names

    def coefficients(self) -> pd.Series:
        """Estimated parameters; NaN for a failed fit."""
        if self.parameters is None:
            values = {name: np.nan for name in self.parameter_names}
        else:
            values = self.parameters.to_dict()
        return pd.Series(values, name=self.curve_id, dtype=float)

    def standard_errors(self) -> pd.Series:
        return pd.Series(
            {name: self.stderr.get(name, np.nan) for name in self.parameter_names},
            name=self.curve_id, dtype=float
        )

    def summary(self) -> pd.DataFrame:
        """
        Table of estimates, standard errors and goodness of fit.

        Returns:
            DataFrame with columns Parameter, Value, SE and Unit
        """
        summary_data = {'Parameter': [], 'Value': [], 'SE': [], 'Unit': []}

        coefficients = self.coefficients()
        stderr = self.standard_errors()
        for name in self.parameter_names:
            summary_data['Parameter'].append(name)
            summary_data['Value'].append(coefficients[name])
            summary_data['SE'].append(stderr[name])
            summary_data['Unit'].append(PARAMETER_UNITS[name])

        fit_stats = {
            'RMSE': (self.rmse, 'µmol m⁻² s⁻¹'),
            'R²': (self.r_squared, ''),
            'GammaStar': (self.GammaStar, 'µmol mol⁻¹'),
            'Km': (self.Km, 'µmol mol⁻¹'),
            'Ci_transition': (self.ci_transition, 'µmol mol⁻¹'),
        }
        for name, (value, unit) in fit_stats.items():
            summary_data['Parameter'].append(name)
            summary_data['Value'].append(value)
            summary_data['SE'].append(np.nan)
            summary_data['Unit'].append(unit)

        return pd.DataFrame(summary_data)

    def confint(self, level: float = 0.95) -> pd.DataFrame:
        """
        Confidence intervals from the standard errors (normal approximation).

        Args:
            level: Confidence level, between 0 and 1

        Returns:
            DataFrame indexed by parameter with columns lower and upper
        """
        if not 0 < level < 1:
            raise ValueError(f"level must be between 0 and 1, got {level}")
        z = stats.norm.ppf(0.5 + level / 2.0)
        estimate = self.coefficients()
        se = self.standard_errors()
        return pd.DataFrame({'lower': estimate - z * se, 'upper': estimate + z * se})

    def predict(
        self,
        Ci,
        Tleaf: Optional[float] = None,
        PPFD: Optional[float] = None
    ) -> np.ndarray:
        """
        Net assimilation predicted by the fitted parameters.

        Tleaf and PPFD default to the mean of the fitted curve.
        """
        if self.parameters is None:
            raise ValueError("Cannot predict from a failed fit")
        return self._rates(Ci, Tleaf, PPFD).An

    def fitted_curve(self, n: int = 101) -> pd.DataFrame:
        """
        Smooth model curve over the observed Ci range, for plotting.

        Ac, Aj and Ap are net rates (gross minus Rd) so they overlay the
        observations; Ap is NaN when TPU is not modelled.

        Args:
            n: Number of Ci values

        Returns:
            DataFrame with columns Ci, Amodel, Ac, Aj, Ap
        """
        if self.parameters is None:
            raise ValueError("No fitted curve for a failed fit")
        ci = np.linspace(np.min(self.ci), np.max(self.ci), n)
        rates = self._rates(ci)
        ap = np.where(np.isfinite(rates.Ap), rates.Ap - rates.Rd, np.nan)
        return pd.DataFrame({
            'Ci': ci,
            'Amodel': rates.An,
            'Ac': rates.Ac - rates.Rd,
            'Aj': rates.Aj - rates.Rd,
            'Ap': ap,
        })

    def _rates(self, ci, tleaf=None, ppfd=None):
        if tleaf is None:
            tleaf = np.mean(self.curve.Tleaf) if self.curve is not None else 25.0
        if ppfd is None:
            ppfd = np.mean(self.curve.PPFD) if self.curve is not None else 1800.0
        return calculate_rates(
            ci, self.parameters, tleaf=tleaf, ppfd=ppfd,
            gmeso=self.options.gmeso, **self.options.model_kwargs()
        )

    def __str__(self) -> str:
        label = f" '{self.curve_id}'" if self.curve_id is not None else ""
        if not self.success:
            return f"A-Ci fit{label} failed: {self.message}"
        method = self.strategy.value if self.strategy is not None else '-'
        parts = []
        for name, value in self.parameters.to_dict().items():
            se = self.stderr.get(name, np.nan)
            se_text = f" (SE {se:.2f})" if np.isfinite(se) else ""
            parts.append(f"{name} = {value:.2f}{se_text}")
        return (
            f"A-Ci fit{label} ({method}), n = {self.n_points}, R² = {self.r_squared:.3f}\n"
            f"  " + ", ".join(parts)
        )


class CurveFitter:
    """
    Fit one A-Ci curve with automatic nonlinear -> bilinear fallback.

    Args:
        options: FitOptions; keyword arguments build or update it

    Example:
        >>> fitter = CurveFitter(Tcorrect=False, fitTPU=True)
        >>> result = fitter.fit(df)
        >>> print(result)
    """

    def __init__(self, options: Optional[FitOptions] = None, **kwargs):
        if options is None:
            options = FitOptions.from_kwargs(**kwargs)
        elif kwargs:
            options = options.replace(**kwargs)
        self.options = options

    def strategies(self) -> List[Strategy]:
        if Strategy(self.options.fitmethod) is Strategy.BILINEAR:
            return [Strategy.BILINEAR]
        return [Strategy.NONLINEAR, Strategy.BILINEAR]

    def fit(
        self,
        data: Union[Curve, pd.DataFrame],
        curve_id: Optional[str] = None
    ) -> FitResult:
        """
        Fit the curve.

        Args:
            data: Curve, or DataFrame with the columns named in options.varnames
            curve_id: Identifier used in messages (DataFrame input only)

        Returns:
            FitResult; ``success`` is False when no strategy produced estimates
        """
        options = self.options
        history = [FitState.PENDING.label()]

        try:
            curve = self._prepare_curve(data, curve_id)
            estimation_options, notes = self._estimation_options(curve)
        except InputError as e:
            label = data.curve_id if isinstance(data, Curve) and curve_id is None else curve_id
            return self._failed_result(str(e), history, None, label)

        fit_curve = self._fitting_curve(curve)

        outcome: Optional[EstimationOutcome] = None
        for strategy in self.strategies():
            history.append(FitState.FITTING.label(strategy))
            outcome = get_estimator(strategy).estimate(fit_curve, estimation_options)
            if outcome.success:
                history.append(FitState.CONVERGED.label(strategy))
                break
            history.append(FitState.FAILED.label(strategy))
            notes.append(f"{strategy.value.capitalize()} fit failed: {outcome.reason}")

        if not outcome.success:
            return self._failed_result(
                outcome.reason, history, curve, curve.curve_id, tuple(notes)
            )

        return self._converged_result(curve, outcome, history, notes)

    def _prepare_curve(self, data, curve_id) -> Curve:
        if isinstance(data, Curve):
            curve = data
            curve.check_fittable()
        elif isinstance(data, pd.DataFrame):
            curve = curve_from_dataframe(
                data, self.options.varnames, curve_id=curve_id,
                require_rd=self.options.useRd
            )
        else:
            raise InputError(
                f"Expected a DataFrame or Curve, got {type(data).__name__}"
            )
        if self.options.useRd and curve.Rd is None:
            raise InputError("useRd requires a measured Rd column")
        return curve

    def _estimation_options(self, curve: Curve) -> Tuple[FitOptions, List[str]]:
        """Options seen by the estimators: measured Rd fixed, gmeso handled by Cc."""
        notes = list(curve.notes)
        changes = {'gmeso': None}
        if self.options.useRd:
            measured = curve.Rd[np.isfinite(curve.Rd)]
            if measured.size == 0:
                raise InputError("useRd requires at least one measured Rd value")
            rd = float(np.mean(measured))
            if rd < 0:
                rd = -rd
                notes.append("Measured Rd was negative; its absolute value was used")
            changes.update(fixRd=rd, useRd=False)
        return self.options.replace(**changes), notes

    def _fitting_curve(self, curve: Curve) -> Curve:
        """Replace Ci by chloroplastic CO2 when a mesophyll conductance is given."""
        if self.options.gmeso is None:
            return curve
        gm = self.options.gmeso * self.options.Patm / 100.0
        return Curve(
            A=curve.A,
            Ci=curve.Ci - curve.A / gm,
            Tleaf=curve.Tleaf,
            PPFD=curve.PPFD,
            Rd=curve.Rd,
            curve_id=curve.curve_id,
            tleaf_measured=curve.tleaf_measured,
            ppfd_measured=curve.ppfd_measured,
            notes=curve.notes,
        )

    def _converged_result(
        self,
        curve: Curve,
        outcome: Converged,
        history: List[str],
        notes: List[str]
    ) -> FitResult:
        options = self.options
        parameters = outcome.parameters
        rates = calculate_rates(
            curve.Ci, parameters, tleaf=curve.Tleaf, ppfd=curve.PPFD,
            gmeso=options.gmeso, **options.model_kwargs()
        )
        fitted = rates.An
        residuals = curve.A - fitted
        ss_res = np.sum(residuals**2)
        ss_tot = np.sum((curve.A - np.mean(curve.A))**2)
        r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0
        rmse = float(np.sqrt(np.mean(residuals**2)))
        limiting = identify_limiting_process(rates)

        gstar = float(np.mean(rates.GammaStar))
        km = float(np.mean(rates.Km))
        vcmax_tl = float(np.mean(rates.Vcmax_tl))
        ci_transition = transition_ci(vcmax_tl, float(np.mean(rates.J)), gstar, km)
        if options.gmeso is not None and np.isfinite(ci_transition):
            # crossing found in Cc; Ci = Cc + A/gm
            a_transition = vcmax_tl * rubisco_transform(ci_transition, gstar, km) - parameters.Rd
            ci_transition = float(
                ci_transition + a_transition / (options.gmeso * options.Patm / 100.0)
            )

        domain = self._domain_warnings(curve, parameters, rates, limiting, outcome)
        for message in tuple(outcome.warnings) + tuple(domain):
            warnings.warn(
                f"{curve.curve_id}: {message}" if curve.curve_id is not None else message,
                ModelDomainWarning, stacklevel=3
            )

        stderr = {name: outcome.stderr.get(name, np.nan) for name in parameters.to_dict()}
        return FitResult(
            parameters=parameters,
            stderr=stderr,
            strategy=outcome.strategy,
            success=True,
            r_squared=float(r_squared),
            rmse=rmse,
            residuals=_read_only(residuals),
            fitted_A=_read_only(fitted),
            observed_A=_read_only(curve.A),
            ci=_read_only(curve.Ci),
            limiting_process=_read_only(limiting),
            warnings=tuple(notes) + tuple(outcome.warnings) + tuple(domain),
            message=outcome.message,
            n_points=len(curve),
            history=tuple(history),
            GammaStar=gstar,
            Km=km,
            ci_transition=ci_transition,
            curve=curve,
            options=options,
        )

    def _domain_warnings(self, curve, parameters, rates, limiting, outcome) -> List[str]:
        messages = []
        if parameters.Rd < 0:
            messages.append(f"Negative Rd estimate ({parameters.Rd:.3g})")
        if np.ptp(curve.Ci) < NARROW_CI_RANGE:
            messages.append(
                f"Ci range ({np.ptp(curve.Ci):.0f}) is too narrow to separate limitations"
            )
        for process in ('Rubisco', 'RuBP'):
            if not np.any(limiting == process):
                messages.append(f"No points are {process}-limited")
        if self.options.fixJmax is None:
            light_limit = self.options.alpha * np.mean(curve.PPFD)
            if np.mean(rates.J) >= 0.99 * light_limit:
                messages.append(
                    "Jmax is not identifiable: J is at the light-limited maximum"
                )
        return messages

    def failed_result(self, reason: str, curve_id: Optional[str] = None) -> FitResult:
        """FitResult for a curve that could not be fitted at all."""
        return self._failed_result(reason, [FitState.PENDING.label()], None, curve_id)

    def _failed_result(
        self,
        reason: str,
        history: List[str],
        curve: Optional[Curve],
        curve_id: Optional[str],
        notes: Tuple[str, ...] = ()
    ) -> FitResult:
        history = list(history)
        if len(history) == 1:
            history.append(FitState.FAILED.label())
        if curve is None and curve_id is not None:
            curve = Curve(A=[], Ci=[], Tleaf=[], PPFD=[], curve_id=curve_id)
        empty = _read_only(np.array([], dtype=float))
        return FitResult(
            parameters=None,
            stderr={},
            strategy=None,
            success=False,
            r_squared=np.nan,
            rmse=np.nan,
            residuals=empty,
            fitted_A=empty,
            observed_A=empty if curve is None else _read_only(curve.A),
            ci=empty if curve is None else _read_only(curve.Ci),
            limiting_process=_read_only(np.array([], dtype=object)),
            warnings=tuple(notes),
            message=reason,
            n_points=0 if curve is None else len(curve),
            history=tuple(history),
            curve=curve,
            options=self.options,
        )


def fit_aci(
    data: Union[Curve, pd.DataFrame],
    options: Optional[FitOptions] = None,
    **kwargs
) -> FitResult:
    """
    Fit the FvCB model to one A-Ci curve.

    Args:
        data: DataFrame (columns named by ``varnames``) or Curve
        options: FitOptions; keyword arguments such as ``fitmethod``,
            ``Tcorrect``, ``fitTPU``, ``gmeso``, ``fixRd`` build or update it

    Returns:
        FitResult

    Example:
        >>> result = fit_aci(df, varnames={'A': 'Anet'}, fitTPU=True)
        >>> result.coefficients()
    """
    return CurveFitter(options, **kwargs).fit(data)
