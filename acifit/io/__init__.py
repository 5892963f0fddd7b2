"""
Input/Output utilities for acifit.

Reading gas exchange tables and exporting fit results.
"""

from acifit.io.tables import (
    read_gas_exchange,
    detect_format,
    export_fit_result,
    export_batch_results,
)

__all__ = [
    "read_gas_exchange",
    "detect_format",
    "export_fit_result",
    "export_batch_results",
]
