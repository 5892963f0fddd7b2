
import pandas as pd
import numpy as np
from typing import Dict, List, Optional, Union, Tuple
from concurrent.futures import ProcessPoolExecutor, as_completed
from tqdm import tqdm
import multiprocessing

from ..core.data_structures import MISSING_GROUP, Curve, split_curves
from .c3_fitting import CurveFitter, FitResult
from .options import FitOptions


class BatchResult:
    """Container for batch fitting results."""

    def __init__(self):
        self.results: Dict[str, FitResult] = {}
        self.summary_df: Optional[pd.DataFrame] = None
        self.failed_curves: List[str] = []
        self.warnings: Dict[str, List[str]] = {}

    def add_result(self, curve_id: str, result: FitResult):
        """
        Add the fit of one curve.

        A result with ``success=False`` is kept in ``results`` and its id is
        recorded in ``failed_curves``.

        Args:
            curve_id: Unique identifier for the curve
            result: FitResult from CurveFitter
        """
        self.results[curve_id] = result
        if not result.success:
            self.add_failure(curve_id, result.message)
        for message in result.warnings:
            self.add_warning(curve_id, message)

    def add_failure(self, curve_id: str, error_msg: str):
        """
        Record a curve that could not be fitted even after fallback.

        Args:
            curve_id: Unique identifier for the curve
            error_msg: Description of the failure
        """
        if curve_id not in self.failed_curves:
            self.failed_curves.append(curve_id)
        self.add_warning(curve_id, f"Fitting failed: {error_msg}")

    def add_warning(self, curve_id: str, warning_msg: str):
        """
        Add a warning for a curve without marking it as failed.

        Args:
            curve_id: Unique identifier for the curve
            warning_msg: Warning message (e.g., "Negative Rd estimate")
        """
        self.warnings.setdefault(curve_id, []).append(warning_msg)

    @property
    def n_success(self) -> int:
        return sum(1 for result in self.results.values() if result.success)

    def generate_summary(self) -> pd.DataFrame:
        """
        Summary table with one row per curve.

        Columns: curve_id, the parameters, their standard errors
        (``<parameter>_SE``), method, success, r_squared, rmse, n_points.
        """
        summary_data = []

        for curve_id, result in self.results.items():
            row = {'curve_id': curve_id}
            row.update(result.coefficients().to_dict())
            for param, se in result.standard_errors().items():
                row[f'{param}_SE'] = se
            row['method'] = result.strategy.value if result.strategy is not None else None
            row['success'] = result.success
            row['r_squared'] = result.r_squared
            row['rmse'] = result.rmse
            row['n_points'] = result.n_points
            summary_data.append(row)

        self.summary_df = pd.DataFrame(summary_data)
        return self.summary_df

    def coefficients(self) -> pd.DataFrame:
        """Parameter estimates only, indexed by curve id."""
        if not self.results:
            return pd.DataFrame()
        return pd.DataFrame(
            {curve_id: result.coefficients() for curve_id, result in self.results.items()}
        ).T.rename_axis('curve_id')

    def failure_report(self) -> str:
        """Message listing the curves that could not be fitted."""
        n_total = len(self.results)
        if not self.failed_curves:
            return f"All {n_total} curves were fitted."
        lines = [
            f"{len(self.failed_curves)} of {n_total} curves could not be fitted:"
        ]
        for curve_id in self.failed_curves:
            lines.append(f"  {curve_id}: {self.results[curve_id].message}")
        return "\n".join(lines)

    def __getitem__(self, curve_id: str) -> FitResult:
        return self.results[curve_id]

    def __len__(self) -> int:
        return len(self.results)


def process_single_curve(
    curve_data: Union[pd.DataFrame, Curve],
    curve_id: str,
    options: FitOptions
) -> Tuple[str, FitResult]:
    """
    Fit a single A-Ci curve.

    Designed to be used with parallel processing: any unexpected exception
    is converted into a failed FitResult so it never reaches the caller.

    Args:
        curve_data: Data for a single curve
        curve_id: Identifier for the curve
        options: Fitting options

    Returns:
        Tuple of (curve_id, FitResult)
    """
    fitter = CurveFitter(options)
    try:
        return curve_id, fitter.fit(curve_data, curve_id=curve_id)
    except Exception as e:
        return curve_id, fitter.failed_result(f"{type(e).__name__}: {e}", curve_id)


class BatchFitter:
    """
    Fit many A-Ci curves with the same options.

    Each curve runs through CurveFitter independently; failures are recorded
    per curve and never abort the batch.

    Args:
        options: FitOptions shared by all curves; keyword arguments build or update it
        n_jobs: Number of worker processes (-1 for all CPUs)
        progress_bar: Show a tqdm progress bar
        quiet: Suppress the progress bar and the printed summary
    """

    def __init__(
        self,
        options: Optional[FitOptions] = None,
        n_jobs: int = 1,
        progress_bar: bool = True,
        quiet: bool = False,
        **kwargs
    ):
        if options is None:
            options = FitOptions.from_kwargs(**kwargs)
        elif kwargs:
            options = options.replace(**kwargs)
        self.options = options
        self.n_jobs = multiprocessing.cpu_count() if n_jobs == -1 else n_jobs
        if self.n_jobs < 1:
            raise ValueError(f"n_jobs must be positive or -1, got {n_jobs}")
        self.progress_bar = progress_bar and not quiet
        self.quiet = quiet

    def fit_all(
        self,
        data: Union[pd.DataFrame, Dict[str, pd.DataFrame]],
        group: Optional[Union[str, List[str]]] = None
    ) -> BatchResult:
        """
        Fit every curve in ``data``.

        Args:
            data: DataFrame with several curves (split by ``group``) or a
                mapping of curve id to DataFrame or Curve
            group: Column name(s) identifying curves

        Returns:
            BatchResult with results in the order of the groups; rows
            without a curve id give a failed entry under MISSING_GROUP
        """
        curves_dict = split_curves(data, group)
        unlabelled = None
        if isinstance(data, pd.DataFrame):
            unlabelled = curves_dict.pop(MISSING_GROUP, None)

        if self.n_jobs == 1 or len(curves_dict) < 2:
            fitted = self._fit_sequential(curves_dict)
        else:
            fitted = self._fit_parallel(curves_dict)

        batch_result = BatchResult()
        for curve_id in curves_dict:
            batch_result.add_result(curve_id, fitted[curve_id])
        if unlabelled is not None:
            batch_result.add_result(MISSING_GROUP, CurveFitter(self.options).failed_result(
                f"{len(unlabelled)} rows have no value in the grouping column(s)",
                MISSING_GROUP
            ))
        batch_result.generate_summary()

        if not self.quiet:
            self._print_summary(batch_result)
        return batch_result

    def _fit_sequential(self, curves_dict) -> Dict[str, FitResult]:
        fitted = {}
        iterator = curves_dict.items()
        if self.progress_bar:
            iterator = tqdm(iterator, desc="Fitting curves", total=len(curves_dict))
        for curve_id, curve_data in iterator:
            _, fitted[curve_id] = process_single_curve(curve_data, curve_id, self.options)
        return fitted

    def _fit_parallel(self, curves_dict) -> Dict[str, FitResult]:
        fitted = {}
        with ProcessPoolExecutor(max_workers=self.n_jobs) as executor:
            futures = {
                executor.submit(process_single_curve, curve_data, curve_id, self.options): curve_id
                for curve_id, curve_data in curves_dict.items()
            }

            iterator = as_completed(futures)
            if self.progress_bar:
                iterator = tqdm(iterator, desc="Fitting curves", total=len(futures))

            for future in iterator:
                curve_id = futures[future]
                try:
                    _, fitted[curve_id] = future.result()
                except Exception as e:
                    fitted[curve_id] = CurveFitter(self.options).failed_result(
                        f"{type(e).__name__}: {e}", curve_id
                    )
        return fitted

    @staticmethod
    def _print_summary(batch_result: BatchResult):
        n_total = len(batch_result)
        n_failed = len(batch_result.failed_curves)
        n_bilinear = sum(
            1 for result in batch_result.results.values()
            if result.success and result.strategy is not None
            and result.strategy.value == 'bilinear'
        )

        print(f"\nBatch fitting complete:")
        print(f"  Total curves: {n_total}")
        print(f"  Successful: {n_total - n_failed}")
        if n_bilinear:
            print(f"  Fitted with the bilinear method: {n_bilinear}")
        print(f"  Failed: {n_failed}")
        if n_failed:
            print(f"  Failed curves: {', '.join(batch_result.failed_curves)}")


def fit_acis(
    data: Union[pd.DataFrame, Dict[str, pd.DataFrame]],
    group: Optional[Union[str, List[str]]] = None,
    options: Optional[FitOptions] = None,
    n_jobs: int = 1,
    progress_bar: bool = True,
    quiet: bool = False,
    **kwargs
) -> BatchResult:
    """
    Fit multiple A-Ci curves in batch.

    Args:
        data: DataFrame with several curves or a mapping id -> DataFrame
        group: Column name(s) identifying curves (DataFrame input)
        options: FitOptions; keyword arguments build or update it
        n_jobs: Number of worker processes (-1 for all CPUs)
        progress_bar: Show a progress bar
        quiet: Suppress progress bar and printed summary

    Returns:
        BatchResult

    Examples:
        results = fit_acis(df, group='Curve', fitTPU=True)
        print(results.failure_report())
        results.coefficients()
    """
    fitter = BatchFitter(
        options, n_jobs=n_jobs, progress_bar=progress_bar, quiet=quiet, **kwargs
    )
    return fitter.fit_all(data, group)


def analyze_parameter_variability(
    batch_result: BatchResult,
    parameters: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Analyze parameter variability across successful fits of a batch.

    Args:
        batch_result: Results from fit_acis
        parameters: Parameters to analyze (None for all fitted parameters)

    Returns:
        DataFrame with parameter statistics including mean, std, CV%, min, max, and n

    Example:
        >>> results = fit_acis(df, group='Plant')
        >>> analyze_parameter_variability(results, ['Vcmax', 'Jmax'])
        #   parameter   mean    std   cv    min    max  n_curves
        # 0     Vcmax   95.3    8.2  8.6   82.1  108.5        12
        # 1      Jmax  185.7   15.3  8.2  162.3  210.1        12
    """
    if batch_result.summary_df is None:
        batch_result.generate_summary()

    summary = batch_result.summary_df
    if summary.empty:
        return pd.DataFrame(columns=['parameter', 'mean', 'std', 'cv', 'min', 'max', 'n_curves'])
    df = summary[summary['success']]

    if parameters is None:
        parameters = [p for p in ('Vcmax', 'Jmax', 'Rd', 'TPU') if p in df.columns]

    stats_data = []
    for param in parameters:
        if param in df.columns:
            param_data = df[param].dropna()
            mean = param_data.mean()
            stats_data.append({
                'parameter': param,
                'mean': mean,
                'std': param_data.std(),
                'cv': param_data.std() / mean * 100 if mean != 0 else np.nan,
                'min': param_data.min(),
                'max': param_data.max(),
                'n_curves': len(param_data),
            })

    return pd.DataFrame(stats_data)
