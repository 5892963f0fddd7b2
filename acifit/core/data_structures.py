"""
Data structures for acifit: column mapping and the immutable Curve.

A Curve holds the observations of one A-Ci response (one leaf, plant or
replicate) as read-only numpy arrays, extracted from a pandas DataFrame
through an explicit VarNames column mapping.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
import numpy as np
import pandas as pd

from .exceptions import InputError


MIN_POINTS = 4
DEFAULT_TLEAF = 25.0  # °C
DEFAULT_PPFD = 1800.0  # µmol m⁻² s⁻¹
MISSING_GROUP = "<missing>"


@dataclass(frozen=True)
class VarNames:
    """
    Mapping from model variables to column names in the input table.

    Defaults follow LI-6400 output headers.

    Attributes:
        A: Net assimilation rate (µmol m⁻² s⁻¹)
        Ci: Intercellular CO2 concentration (µmol mol⁻¹)
        Tleaf: Leaf temperature (°C)
        PPFD: Photosynthetic photon flux density (µmol m⁻² s⁻¹)
        Rd: Measured day respiration (µmol m⁻² s⁻¹), only used with useRd
    """
    A: str = "Photo"
    Ci: str = "Ci"
    Tleaf: str = "Tleaf"
    PPFD: str = "PARi"
    Rd: str = "Rd"

    @classmethod
    def from_dict(cls, mapping: Dict[str, str]) -> 'VarNames':
        """Build a mapping from a plain dict, keeping defaults for missing keys."""
        unknown = set(mapping) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown variable names: {sorted(unknown)}")
        return cls(**mapping)


def _frozen(values: np.ndarray) -> np.ndarray:
    values = np.array(values, dtype=float)
    values.setflags(write=False)
    return values


@dataclass(frozen=True, eq=False)
class Curve:
    """
    One A-Ci curve.

    All arrays have the same length and are read-only. Tleaf and PPFD are
    always populated; when absent from the data they hold the defaults and
    the corresponding ``*_measured`` flag is False.
    """
    A: np.ndarray
    Ci: np.ndarray
    Tleaf: np.ndarray
    PPFD: np.ndarray
    Rd: Optional[np.ndarray] = None
    curve_id: Optional[str] = None
    tleaf_measured: bool = True
    ppfd_measured: bool = True
    notes: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for name in ("A", "Ci", "Tleaf", "PPFD"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))
        if self.Rd is not None:
            object.__setattr__(self, "Rd", _frozen(self.Rd))

        n = len(self.A)
        lengths = {len(self.Ci), len(self.Tleaf), len(self.PPFD)}
        if lengths != {n}:
            raise InputError("Curve arrays must all have the same length")

    def __len__(self) -> int:
        return len(self.A)

    @property
    def n_distinct_ci(self) -> int:
        return int(np.unique(self.Ci).size)

    def check_fittable(self) -> None:
        """
        Raise InputError if the curve cannot support a fit.

        Raises:
            InputError: fewer than MIN_POINTS points or distinct Ci values
        """
        label = f"Curve '{self.curve_id}'" if self.curve_id is not None else "Curve"
        if len(self) < MIN_POINTS:
            raise InputError(
                f"{label} has {len(self)} usable points; at least {MIN_POINTS} are required"
            )
        if self.n_distinct_ci < MIN_POINTS:
            raise InputError(
                f"{label} has only {self.n_distinct_ci} distinct Ci values; "
                f"at least {MIN_POINTS} are required"
            )

    def sorted_by_ci(self) -> 'Curve':
        """Return a copy with observations ordered by increasing Ci."""
        order = np.argsort(self.Ci, kind="stable")
        return Curve(
            A=self.A[order],
            Ci=self.Ci[order],
            Tleaf=self.Tleaf[order],
            PPFD=self.PPFD[order],
            Rd=None if self.Rd is None else self.Rd[order],
            curve_id=self.curve_id,
            tleaf_measured=self.tleaf_measured,
            ppfd_measured=self.ppfd_measured,
            notes=self.notes,
        )

    def to_dataframe(self, varnames: Optional[VarNames] = None) -> pd.DataFrame:
        """Convert back to a DataFrame using the given column names."""
        varnames = varnames or VarNames()
        data = {
            varnames.A: self.A,
            varnames.Ci: self.Ci,
            varnames.Tleaf: self.Tleaf,
            varnames.PPFD: self.PPFD,
        }
        if self.Rd is not None:
            data[varnames.Rd] = self.Rd
        return pd.DataFrame(data)


def curve_from_dataframe(
    data: pd.DataFrame,
    varnames: Optional[VarNames] = None,
    curve_id: Optional[str] = None,
    require_rd: bool = False,
    check: bool = True
) -> Curve:
    """
    Extract a Curve from a DataFrame.

    Rows with missing A, Ci (or Tleaf/PPFD where those columns exist) are
    dropped. A missing Tleaf column means 25 °C is assumed; a missing PPFD
    column means 1800 µmol m⁻² s⁻¹ is assumed. Both assumptions are recorded
    in ``Curve.notes``.

    Args:
        data: Table with one row per observation
        varnames: Column mapping (defaults to VarNames())
        curve_id: Identifier stored on the curve
        require_rd: Whether the measured Rd column must be present
        check: Validate point counts with Curve.check_fittable

    Returns:
        Curve built from the table

    Raises:
        InputError: If required columns are missing or too few points remain
    """
    varnames = varnames or VarNames()

    required = [varnames.A, varnames.Ci]
    if require_rd:
        required.append(varnames.Rd)
    missing = [col for col in required if col not in data.columns]
    if missing:
        raise InputError(f"Missing required columns: {', '.join(missing)}")

    notes: List[str] = []
    columns = [varnames.A, varnames.Ci]
    has_tleaf = varnames.Tleaf in data.columns
    has_ppfd = varnames.PPFD in data.columns
    if has_tleaf:
        columns.append(varnames.Tleaf)
    else:
        notes.append(f"Tleaf not in dataset; assuming Tleaf = {DEFAULT_TLEAF:g}")
    if has_ppfd:
        columns.append(varnames.PPFD)
    else:
        notes.append(f"PPFD not in dataset; assuming PPFD = {DEFAULT_PPFD:g}")

    table = data[columns].apply(pd.to_numeric, errors="coerce")
    keep = table.notna().all(axis=1).values
    n_dropped = int((~keep).sum())
    if n_dropped:
        notes.append(f"{n_dropped} rows with missing values were removed")
    table = table[keep]

    n = len(table)
    rd = None
    if require_rd:
        rd = pd.to_numeric(data[varnames.Rd], errors="coerce").values[keep]

    curve = Curve(
        A=table[varnames.A].values,
        Ci=table[varnames.Ci].values,
        Tleaf=table[varnames.Tleaf].values if has_tleaf else np.full(n, DEFAULT_TLEAF),
        PPFD=table[varnames.PPFD].values if has_ppfd else np.full(n, DEFAULT_PPFD),
        Rd=rd,
        curve_id=curve_id,
        tleaf_measured=has_tleaf,
        ppfd_measured=has_ppfd,
        notes=tuple(notes),
    )
    if check:
        curve.check_fittable()
    return curve


def split_curves(
    data: Union[pd.DataFrame, Dict[str, pd.DataFrame]],
    group: Optional[Union[str, List[str]]] = None
) -> Dict[str, pd.DataFrame]:
    """
    Split a table into one frame per curve identifier.

    Rows with a missing identifier are collected under MISSING_GROUP
    rather than dropped.

    Args:
        data: A DataFrame (grouped by ``group``) or an id -> DataFrame mapping
        group: Column name(s) identifying curves

    Returns:
        Ordered mapping of curve id to its rows
    """
    if isinstance(data, dict):
        return {str(k): v for k, v in data.items()}

    if not isinstance(data, pd.DataFrame):
        raise ValueError("Data must be a DataFrame or a dictionary of DataFrames")

    if group is None:
        return {"curve_1": data}

    group_cols = [group] if isinstance(group, str) else list(group)
    missing = [col for col in group_cols if col not in data.columns]
    if missing:
        raise InputError(f"Grouping column(s) not in data: {', '.join(missing)}")

    curves = {}
    for name, rows in data.groupby(group_cols if len(group_cols) > 1 else group_cols[0],
                                   sort=False, dropna=False):
        parts = name if isinstance(name, tuple) else (name,)
        if any(pd.isna(part) for part in parts):
            curve_id = MISSING_GROUP
        else:
            curve_id = "_".join(str(part) for part in parts)
        if curve_id in curves:
            rows = pd.concat([curves[curve_id], rows])
        curves[curve_id] = rows.reset_index(drop=True)
    return curves
