"""
Ball-Berry type models of stomatal conductance.

Four model variants are fitted to observations of stomatal conductance (gs),
net photosynthesis (A), CO2 at the leaf surface (Ca) and vapour pressure
deficit (VPD) or relative humidity (RH):

- BBOpti: gs = g0 + 1.6 * (1 + g1 / sqrt(VPD)) * A / Ca  (Medlyn et al. 2011)
- BBOptiFull: gs = g0 + 1.6 * (1 + g1 / VPD^(1 - gk)) * A / Ca  (Duursma et al. 2013)
- BBLeuning: gs = g0 + g1 * A / Ca / (1 + VPD / D0)  (Leuning 1995)
- BallBerry: gs = g0 + g1 * A * RH / Ca  (Ball et al. 1987)

The CO2 compensation point is not included; replace Ca by a corrected value
if it is needed. g0 is only estimated with ``fitg0=True`` and is 0 otherwise.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
import lmfit

from ..core.data_structures import split_curves
from ..core.exceptions import InputError

GS_MODELS = ('BBOpti', 'BBLeuning', 'BallBerry', 'BBOptiFull')

G1_START = 4.0
G0_START = 0.005
GK_START = 0.5
D0_START = 1.5


@dataclass(frozen=True)
class BBVarNames:
    """Column names of the stomatal conductance data (LI-6400 headers by default)."""
    A: str = "Photo"
    gs: str = "Cond"
    VPD: str = "VpdL"
    Ca: str = "CO2S"
    RH: str = "RH"


def bb_opti(aleaf, ca, vpd, g0=0.0, g1=G1_START):
    return g0 + 1.6 * (1.0 + g1 / np.sqrt(vpd)) * (aleaf / ca)


def bb_opti_full(aleaf, ca, vpd, g0=0.0, g1=G1_START, gk=GK_START):
    return g0 + 1.6 * (1.0 + g1 / vpd**(1.0 - gk)) * (aleaf / ca)


def bb_leuning(aleaf, ca, vpd, g0=0.0, g1=G1_START, D0=D0_START):
    return g0 + aleaf * g1 / ca / (1.0 + vpd / D0)


def ball_berry(aleaf, ca, rh, g0=0.0, g1=G1_START):
    return g0 + g1 * aleaf * rh / ca


_MODEL_FUNCTIONS = {
    'BBOpti': (bb_opti, ('aleaf', 'ca', 'vpd')),
    'BBOptiFull': (bb_opti_full, ('aleaf', 'ca', 'vpd')),
    'BBLeuning': (bb_leuning, ('aleaf', 'ca', 'vpd')),
    'BallBerry': (ball_berry, ('aleaf', 'ca', 'rh')),
}


@dataclass(frozen=True, eq=False)
class BBFit:
    """
    Result of fitting one Ball-Berry type model.

    ``fit`` holds the lmfit ModelResult for further inspection (confidence
    intervals, fit report) and is None when the fit failed.
    """
    gsmodel: str
    fitg0: bool
    success: bool
    n: int
    coefficients: pd.Series
    stderr: pd.Series
    message: str = ''
    notes: Tuple[str, ...] = ()
    fit: Optional[lmfit.model.ModelResult] = field(default=None, repr=False)

    def coef(self) -> pd.Series:
        """Coefficients with g0 first (g0 = 0 when it was not estimated)."""
        return self.coefficients

    def predict(self, **data) -> np.ndarray:
        """
        Predicted gs for new data.

        Keyword arguments are the model's independent variables
        (aleaf, ca and vpd, or aleaf, ca and rh).
        """
        if not self.success:
            raise ValueError("Cannot predict from a failed fit")
        func, _ = _MODEL_FUNCTIONS[self.gsmodel]
        return func(**data, **self.coefficients.to_dict())

    def __str__(self) -> str:
        lines = ["Result of fit_bb.", f"Model : {self.gsmodel}"]
        if self.fitg0:
            lines.append("Both g0 and g1 were estimated.")
        else:
            lines.append("Only g1 was estimated (g0 = 0).")
        if not self.success:
            lines.append(f"Fit failed: {self.message}")
            return "\n".join(lines)
        names = list(self.coefficients.index)
        lines.append("Coefficients:")
        lines.append("  ".join(names))
        lines.append("  ".join(f"{self.coefficients[name]:.3g}" for name in names))
        return "\n".join(lines)


def _column(data: pd.DataFrame, name: str) -> np.ndarray:
    return pd.to_numeric(data[name], errors='coerce').to_numpy(dtype=float)


def fit_bb(
    data: pd.DataFrame,
    varnames: Optional[Union[BBVarNames, Dict[str, str]]] = None,
    gsmodel: str = 'BBOpti',
    fitg0: bool = False,
    D0: Optional[float] = None
) -> BBFit:
    """
    Fit a Ball-Berry type model of stomatal conductance.

    Args:
        data: Table with the columns named in ``varnames``
        varnames: Column mapping; RH is only needed for BallBerry
        gsmodel: One of 'BBOpti', 'BBLeuning', 'BallBerry', 'BBOptiFull'
        fitg0: Also estimate the intercept g0
        D0: Fixed D0 for BBLeuning; estimated when None

    Returns:
        BBFit. A failed optimization gives ``success=False`` rather than an error.

    Raises:
        ValueError: Unknown gsmodel
        InputError: A required column is missing

    Example:
        >>> fit = fit_bb(df, gsmodel='BBOpti', fitg0=True)
        >>> fit.coef()
    """
    if gsmodel not in GS_MODELS:
        raise ValueError(f"Unknown gsmodel: '{gsmodel}'. Use one of {GS_MODELS}")
    if isinstance(varnames, dict):
        varnames = BBVarNames(**varnames)
    varnames = varnames or BBVarNames()

    func, independent = _MODEL_FUNCTIONS[gsmodel]
    columns = {'gs': varnames.gs, 'aleaf': varnames.A, 'ca': varnames.Ca}
    if 'vpd' in independent:
        columns['vpd'] = varnames.VPD
    else:
        columns['rh'] = varnames.RH
    missing = [col for col in columns.values() if col not in data.columns]
    if missing:
        raise InputError(f"Missing required columns: {', '.join(missing)}")

    values = {key: _column(data, col) for key, col in columns.items()}
    keep = np.all([np.isfinite(v) for v in values.values()], axis=0)
    values = {key: v[keep] for key, v in values.items()}

    notes: List[str] = []
    if not np.all(keep):
        notes.append(f"{int(np.sum(~keep))} rows with missing values were removed")
    if 'rh' in values and values['rh'].size and np.max(values['rh']) > 1:
        notes.append("RH provided in % converted to relative units")
        values['rh'] = values['rh'] / 100.0

    model = lmfit.Model(func, independent_vars=list(independent))
    params = model.make_params(g0=0.0, g1=G1_START)
    params['g0'].set(value=G0_START if fitg0 else 0.0, vary=fitg0)
    if gsmodel == 'BBOptiFull':
        params['gk'].set(value=GK_START)
    if gsmodel == 'BBLeuning':
        if D0 is None:
            params['D0'].set(value=D0_START)
        else:
            params['D0'].set(value=float(D0), vary=False)

    gs = values.pop('gs')
    names = list(params)
    n = int(gs.size)
    n_free = sum(1 for p in params.values() if p.vary)
    if n <= n_free:
        return _failed_bb(
            gsmodel, fitg0, n, names,
            f"{n} observations are not enough to estimate {n_free} parameters", notes
        )
    try:
        fit = model.fit(gs, params, **values)
    except (ValueError, TypeError, ArithmeticError, np.linalg.LinAlgError) as e:
        return _failed_bb(gsmodel, fitg0, n, names, str(e), notes)

    if not fit.success:
        return _failed_bb(gsmodel, fitg0, n, names, fit.message, notes)

    coefficients = pd.Series({name: fit.params[name].value for name in names}, dtype=float)
    stderr = pd.Series(
        {name: fit.params[name].stderr if fit.params[name].stderr is not None else np.nan
         for name in names},
        dtype=float
    )
    return BBFit(
        gsmodel=gsmodel, fitg0=fitg0, success=True, n=n,
        coefficients=coefficients, stderr=stderr, message=fit.message,
        notes=tuple(notes), fit=fit,
    )


def _failed_bb(gsmodel, fitg0, n, names, message, notes) -> BBFit:
    empty = pd.Series({name: np.nan for name in names}, dtype=float)
    return BBFit(
        gsmodel=gsmodel, fitg0=fitg0, success=False, n=n,
        coefficients=empty, stderr=empty.copy(), message=message, notes=tuple(notes),
    )


def fit_bbs(
    data: pd.DataFrame,
    group: Union[str, List[str]],
    **kwargs
) -> pd.DataFrame:
    """
    Fit a Ball-Berry type model separately for each group.

    Args:
        data: Table with all groups
        group: Column name(s) identifying the groups
        **kwargs: Passed to fit_bb

    Returns:
        DataFrame indexed by group with the coefficients, ``success`` and ``n``
    """
    rows = {}
    for group_id, rows_data in split_curves(data, group).items():
        fit = fit_bb(rows_data, **kwargs)
        row = fit.coef().to_dict()
        row['success'] = fit.success
        row['n'] = fit.n
        rows[group_id] = row
    return pd.DataFrame.from_dict(rows, orient='index').rename_axis('group')
