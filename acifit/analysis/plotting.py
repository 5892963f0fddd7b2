import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from typing import Dict, Optional, List, Tuple

from .c3_fitting import FitResult
from .batch import BatchResult

LIMITATION_COLORS = {'Rubisco': '#1f77b4', 'RuBP': '#2ca02c', 'TPU': '#d62728'}
LIMITATION_LABELS = {'Rubisco': 'Rubisco-limited', 'RuBP': 'RuBP-limited', 'TPU': 'TPU-limited'}
AXIS_LABELS = {
    'Ci': "$\\mathit{C_i}$ (µmol mol⁻¹)",
    'A': "$\\mathit{A}$ (µmol m⁻² s⁻¹)",
}


def setup_plot_style():
    if 'seaborn-v0_8-whitegrid' in plt.style.available:
        plt.style.use('seaborn-v0_8-whitegrid')

    sns.set_palette("husl")
    plt.rcParams['figure.dpi'] = 100
    plt.rcParams['savefig.dpi'] = 300
    plt.rcParams['font.size'] = 12
    plt.rcParams['axes.labelsize'] = 14
    plt.rcParams['axes.labelweight'] = 'bold'
    plt.rcParams['xtick.labelsize'] = 12
    plt.rcParams['ytick.labelsize'] = 12
    plt.rcParams['legend.fontsize'] = 12
    plt.rcParams['axes.linewidth'] = 1.5
    plt.rcParams['axes.edgecolor'] = 'black'


def plot_aci_fit(
    fit_result: FitResult,
    show_limitations: bool = True,
    show_parameters: bool = True,
    show_residuals: bool = True,
    n_points: int = 101,
    fig_size: Tuple[float, float] = (10, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot an A-Ci curve fit: observations, fitted Ac/Aj/Ap and net assimilation.

    Args:
        fit_result: Successful FitResult
        show_limitations: Colour observations by limiting process
        show_parameters: Show fitted parameter values
        show_residuals: Include residual subplot
        n_points: Number of Ci values of the smooth model curve
        fig_size: Figure size
        save_path: Path to save figure (optional)

    Returns:
        Matplotlib figure object
    """
    if not fit_result.success:
        raise ValueError(f"Cannot plot a failed fit: {fit_result.message}")

    setup_plot_style()

    if show_residuals:
        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=fig_size,
                                       gridspec_kw={'height_ratios': [3, 1]})
    else:
        fig, ax1 = plt.subplots(1, 1, figsize=(fig_size[0], fig_size[1] * 0.6))

    curve = fit_result.fitted_curve(n_points)

    ax1.plot(curve['Ci'], curve['Ac'], color=LIMITATION_COLORS['Rubisco'],
             linestyle='--', linewidth=1.5, label='$A_c$')
    ax1.plot(curve['Ci'], curve['Aj'], color=LIMITATION_COLORS['RuBP'],
             linestyle='--', linewidth=1.5, label='$A_j$')
    if curve['Ap'].notna().any():
        ax1.plot(curve['Ci'], curve['Ap'], color=LIMITATION_COLORS['TPU'],
                 linestyle='--', linewidth=1.5, label='$A_p$')
    ax1.plot(curve['Ci'], curve['Amodel'], color='black', linewidth=2.5, label='Fitted')

    if show_limitations:
        for process in ('Rubisco', 'RuBP', 'TPU'):
            mask = fit_result.limiting_process == process
            if np.any(mask):
                ax1.scatter(fit_result.ci[mask], fit_result.observed_A[mask],
                            color=LIMITATION_COLORS[process], s=64, alpha=0.8,
                            label=LIMITATION_LABELS[process], zorder=3,
                            edgecolors='black', linewidth=0.5)
    else:
        ax1.scatter(fit_result.ci, fit_result.observed_A, color='black', s=64, alpha=0.7,
                    label='Observed', zorder=3, edgecolors='black', linewidth=0.5)

    ax1.set_xlabel(AXIS_LABELS['Ci'])
    ax1.set_ylabel(AXIS_LABELS['A'])
    ax1.legend(loc='lower right')
    ax1.grid(True, alpha=0.3)

    if show_parameters:
        ax1.text(0.05, 0.95, _format_parameters_text(fit_result), transform=ax1.transAxes,
                 verticalalignment='top', horizontalalignment='left',
                 bbox=dict(boxstyle='round,pad=0.5', facecolor='white',
                           edgecolor='gray', alpha=0.9))

    if show_residuals:
        ax2.scatter(fit_result.ci, fit_result.residuals, color='black', s=36, alpha=0.7)
        ax2.axhline(y=0, color='red', linestyle='--', alpha=0.5)
        ax2.set_xlabel(AXIS_LABELS['Ci'])
        ax2.set_ylabel('Residuals')
        ax2.grid(True, alpha=0.3)
        ax2.text(0.95, 0.95, f"RMSE = {fit_result.rmse:.2f}",
                 transform=ax2.transAxes,
                 verticalalignment='top', horizontalalignment='right',
                 bbox=dict(boxstyle='round,pad=0.3', facecolor='white', alpha=0.8))

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def plot_parameter_distributions(
    batch_result: BatchResult,
    parameters: Optional[List[str]] = None,
    fig_size: Tuple[float, float] = (12, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histograms of fitted parameters across the successful curves of a batch.

    Args:
        batch_result: Result of fit_acis
        parameters: Parameters to plot (default: all fitted)
        fig_size: Figure size
        save_path: Path to save figure

    Returns:
        Matplotlib figure object
    """
    setup_plot_style()

    coefficients = batch_result.coefficients()
    successful = [cid for cid in coefficients.index if batch_result[cid].success]
    coefficients = coefficients.loc[successful]
    if parameters is None:
        parameters = list(coefficients.columns)

    n_params = len(parameters)
    n_cols = min(2, n_params)
    n_rows = (n_params + n_cols - 1) // n_cols

    fig, axes = plt.subplots(n_rows, n_cols, figsize=fig_size, squeeze=False)
    axes = axes.flatten()

    for ax, param in zip(axes, parameters):
        values = coefficients[param].dropna().astype(float)
        sns.histplot(values, ax=ax, edgecolor='black', alpha=0.7)
        ax.axvline(values.mean(), color='red', linestyle='--',
                   label=f'Mean = {values.mean():.1f}')
        ax.text(0.95, 0.95, f'SD = {values.std():.1f}',
                transform=ax.transAxes,
                verticalalignment='top', horizontalalignment='right')
        ax.set_xlabel(param)
        ax.set_ylabel('Count')
        ax.grid(True, alpha=0.3)

    for ax in axes[n_params:]:
        ax.set_visible(False)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def _format_parameters_text(fit_result: FitResult) -> str:
    """Format parameter values for display."""
    lines = []

    param_formats: Dict[str, Tuple[str, str]] = {
        'Vcmax': ('$V_{cmax}$', '.1f'),
        'Jmax': ('$J_{max}$', '.1f'),
        'Rd': ('$R_d$', '.2f'),
        'TPU': ('$TPU$', '.2f'),
    }

    values = fit_result.parameters.to_dict()
    for param, (display_name, fmt) in param_formats.items():
        if param in values:
            line = f"{display_name} = {values[param]:{fmt}}"
            se = fit_result.stderr.get(param, np.nan)
            if np.isfinite(se):
                line += f" ± {se:{fmt}}"
            lines.append(line)

    lines.append("")
    lines.append(f"R² = {fit_result.r_squared:.3f}")
    lines.append(f"RMSE = {fit_result.rmse:.2f}")
    lines.append(f"Method: {fit_result.strategy.value}")

    return "\n".join(lines)
