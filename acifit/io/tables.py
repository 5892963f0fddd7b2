"""
Tabular input and output.

Gas exchange data are read from CSV or Excel into a pandas DataFrame; fit
results are written as CSV, Excel (openpyxl) or JSON.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from ..core.data_structures import split_curves
from ..analysis.c3_fitting import FitResult
from ..analysis.batch import BatchResult, analyze_parameter_variability

EXPORT_FORMATS = ('csv', 'excel', 'json')


def detect_format(filepath: Union[str, Path]) -> str:
    """
    Detect whether a file is CSV-like text or an Excel workbook.

    Args:
        filepath: Path to the file

    Returns:
        "csv" or "excel"
    """
    filepath = Path(filepath)
    ext = filepath.suffix.lower()

    if ext in [".csv", ".txt", ".dat"]:
        return "csv"
    if ext in [".xlsx", ".xls"]:
        return "excel"

    with open(filepath, 'rb') as f:
        header = f.read(8)
    if header[:4] == b'\x50\x4b\x03\x04':  # XLSX
        return "excel"
    if header[:8] == b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1':  # XLS
        return "excel"
    return "csv"


def read_gas_exchange(
    filepath: Union[str, Path],
    group: Optional[Union[str, List[str]]] = None,
    sheet_name: Union[str, int] = 0,
    **kwargs
) -> Union[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """
    Read a table of gas exchange measurements.

    Column names are stripped of surrounding whitespace and unnamed columns
    are dropped.

    Args:
        filepath: CSV or Excel file
        group: Optional column(s) to split the table into curves
        sheet_name: Worksheet for Excel files
        **kwargs: Passed to pandas.read_csv / pandas.read_excel

    Returns:
        DataFrame, or a curve id -> DataFrame mapping when ``group`` is given

    Raises:
        FileNotFoundError: If the file does not exist
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    if detect_format(filepath) == "excel":
        df = pd.read_excel(filepath, sheet_name=sheet_name, engine='openpyxl', **kwargs)
    else:
        df = pd.read_csv(filepath, **kwargs)

    df.columns = [str(col).strip() for col in df.columns]
    df = df.loc[:, ~df.columns.str.contains('^Unnamed')]

    if group is not None:
        return split_curves(df, group)
    return df


def _fit_result_record(result: FitResult) -> Dict:
    return {
        'curve_id': result.curve_id,
        'parameters': {k: _json_number(v) for k, v in result.coefficients().items()},
        'standard_errors': {k: _json_number(v) for k, v in result.standard_errors().items()},
        'statistics': {
            'rmse': _json_number(result.rmse),
            'r_squared': _json_number(result.r_squared),
            'n_points': result.n_points,
            'success': result.success,
            'method': result.strategy.value if result.strategy is not None else None,
            'GammaStar': _json_number(result.GammaStar),
            'Km': _json_number(result.Km),
            'Ci_transition': _json_number(result.ci_transition),
        },
        'history': list(result.history),
        'warnings': list(result.warnings),
        'message': result.message,
    }


def _json_number(value) -> Optional[float]:
    value = float(value)
    return value if np.isfinite(value) else None


def _fitted_values(result: FitResult) -> pd.DataFrame:
    return pd.DataFrame({
        'Ci': result.ci,
        'A_observed': result.observed_A,
        'A_fitted': result.fitted_A,
        'residual': result.residuals,
        'limiting_process': result.limiting_process,
    })


def export_fit_result(
    result: FitResult,
    output_dir: Union[str, Path],
    base_name: str = "aci_fit",
    formats: List[str] = ('csv', 'json')
) -> Dict[str, Path]:
    """
    Export a single fitting result to multiple formats.

    Args:
        result: FitResult to export
        output_dir: Directory to save files
        base_name: Base name for output files
        formats: Any of 'csv', 'excel', 'json'

    Returns:
        Dictionary mapping format to output file path
    """
    unknown = set(formats) - set(EXPORT_FORMATS)
    if unknown:
        raise ValueError(f"Unknown export formats: {sorted(unknown)}")

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    output_files = {}

    if 'json' in formats:
        json_path = output_dir / f"{base_name}_results.json"
        export_data = _fit_result_record(result)
        export_data['metadata'] = {'timestamp': datetime.now().isoformat()}
        with open(json_path, 'w') as f:
            json.dump(export_data, f, indent=2)
        output_files['json'] = json_path

    if 'csv' in formats:
        csv_path = output_dir / f"{base_name}_fitted_values.csv"
        _fitted_values(result).to_csv(csv_path, index=False)
        output_files['csv'] = csv_path

    if 'excel' in formats:
        excel_path = output_dir / f"{base_name}_results.xlsx"
        with pd.ExcelWriter(excel_path, engine='openpyxl') as writer:
            result.summary().to_excel(writer, sheet_name='Parameters', index=False)
            if result.success:
                _fitted_values(result).to_excel(writer, sheet_name='Fitted_Values', index=False)
                result.fitted_curve().to_excel(writer, sheet_name='Fitted_Curve', index=False)
            pd.DataFrame({'warning': list(result.warnings)}).to_excel(
                writer, sheet_name='Warnings', index=False
            )
        output_files['excel'] = excel_path

    return output_files


def export_batch_results(
    batch_result: BatchResult,
    output_dir: Union[str, Path],
    base_name: str = "batch_results",
    include_individual: bool = False,
    formats: List[str] = ('csv', 'excel')
) -> Dict[str, Path]:
    """
    Export batch fitting results.

    Args:
        batch_result: BatchResult to export
        output_dir: Directory to save files
        base_name: Base name for output files
        include_individual: Also export every curve with export_fit_result
        formats: Any of 'csv', 'excel', 'json' for the summary

    Returns:
        Dictionary mapping output kind to file path
    """
    unknown = set(formats) - set(EXPORT_FORMATS)
    if unknown:
        raise ValueError(f"Unknown export formats: {sorted(unknown)}")

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    output_files = {}

    if batch_result.summary_df is None:
        batch_result.generate_summary()

    if 'csv' in formats:
        csv_path = output_dir / f"{base_name}_summary.csv"
        batch_result.summary_df.to_csv(csv_path, index=False)
        output_files['summary_csv'] = csv_path

    if 'json' in formats:
        json_path = output_dir / f"{base_name}_summary.json"
        export_data = {
            'curves': [_fit_result_record(r) for r in batch_result.results.values()],
            'failed_curves': list(batch_result.failed_curves),
            'metadata': {'timestamp': datetime.now().isoformat()},
        }
        with open(json_path, 'w') as f:
            json.dump(export_data, f, indent=2)
        output_files['summary_json'] = json_path

    if 'excel' in formats:
        excel_path = output_dir / f"{base_name}_summary.xlsx"
        with pd.ExcelWriter(excel_path, engine='openpyxl') as writer:
            batch_result.summary_df.to_excel(writer, sheet_name='Summary', index=False)

            if batch_result.failed_curves:
                failed_df = pd.DataFrame({
                    'curve_id': batch_result.failed_curves,
                    'message': [batch_result[cid].message for cid in batch_result.failed_curves],
                })
                failed_df.to_excel(writer, sheet_name='Failed_Curves', index=False)

            stats_df = analyze_parameter_variability(batch_result)
            if not stats_df.empty:
                stats_df.to_excel(writer, sheet_name='Parameter_Statistics', index=False)

        output_files['summary_excel'] = excel_path

    if include_individual:
        individual_dir = output_dir / 'individual_curves'
        individual_dir.mkdir(exist_ok=True)

        for curve_id, result in batch_result.results.items():
            curve_files = export_fit_result(
                result,
                individual_dir,
                base_name=f"{curve_id}_fit",
                formats=['csv', 'json'],
            )
            output_files[f'individual_{curve_id}'] = curve_files

    return output_files
