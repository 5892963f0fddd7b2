from .options import FitOptions, FIT_METHODS
from .initial_guess import (
    estimate_initial_parameters,
    estimate_parameter_bounds,
    curve_kinetics,
)
from .estimators import (
    Strategy,
    Converged,
    Failed,
    NonlinearEstimator,
    BilinearEstimator,
    get_estimator,
)
from .c3_fitting import CurveFitter, FitResult, FitState, fit_aci
from .batch import (
    BatchResult,
    BatchFitter,
    fit_acis,
    process_single_curve,
    analyze_parameter_variability
)
from .stomatal import BBFit, BBVarNames, fit_bb, fit_bbs
from .plotting import plot_aci_fit, plot_parameter_distributions

__all__ = [
    'FitOptions',
    'FIT_METHODS',
    'estimate_initial_parameters',
    'estimate_parameter_bounds',
    'curve_kinetics',
    # Estimation strategies
    'Strategy',
    'Converged',
    'Failed',
    'NonlinearEstimator',
    'BilinearEstimator',
    'get_estimator',
    # Single curve
    'CurveFitter',
    'FitResult',
    'FitState',
    'fit_aci',
    # Batch processing
    'BatchResult',
    'BatchFitter',
    'fit_acis',
    'process_single_curve',
    'analyze_parameter_variability',
    # Stomatal conductance
    'BBFit',
    'BBVarNames',
    'fit_bb',
    'fit_bbs',
    # Plotting
    'plot_aci_fit',
    'plot_parameter_distributions',
]
