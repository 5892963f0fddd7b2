"""
Tests for starting values of the nonlinear fit.
"""

import numpy as np
import pytest

from acifit.analysis.initial_guess import (
    curve_kinetics,
    estimate_rd,
    estimate_initial_parameters,
    estimate_parameter_bounds,
)
from acifit.analysis.options import FitOptions
from acifit.core.data_structures import curve_from_dataframe


class TestEstimateRd:

    def test_negative_minimum(self):
        assert np.isclose(estimate_rd(np.array([-2.0, 5.0, 10.0])), 2.0)

    def test_clipped(self):
        assert estimate_rd(np.array([-20.0, 5.0])) == 5.0
        assert estimate_rd(np.array([1.0, 2.0])) == 0.5


class TestCurveKinetics:

    def test_reference_temperature(self, aci_data):
        kinetics = curve_kinetics(curve_from_dataframe(aci_data), FitOptions())
        assert np.allclose(kinetics.gamma_star, 42.75)
        assert np.allclose(kinetics.vcmax_factor, 1.0)
        assert np.allclose(kinetics.jmax_factor, 1.0)

    def test_overrides(self, aci_data):
        options = FitOptions(GammaStar=40.0, Km=650.0, Tcorrect=False)
        curve = curve_from_dataframe(aci_data.assign(Tleaf=32.0))
        kinetics = curve_kinetics(curve, options)
        assert np.allclose(kinetics.gamma_star, 40.0)
        assert np.allclose(kinetics.km, 650.0)
        assert np.allclose(kinetics.vcmax_factor, 1.0)


class TestInitialParameters:
    """Test the low-Ci / high-Ci heuristic."""

    def test_noise_free_curve(self, aci_data):
        """Lowest and highest three points are in a single regime each."""
        initial = estimate_initial_parameters(curve_from_dataframe(aci_data), FitOptions())
        assert initial['Vcmax'] == pytest.approx(50.0, rel=1e-6)
        assert initial['Rd'] == pytest.approx(1.0, rel=1e-6)
        assert initial['Jmax'] == pytest.approx(100.0, rel=1e-6)
        assert 'TPU' not in initial

    def test_unsorted_input(self, aci_data):
        shuffled = aci_data.sample(frac=1.0, random_state=1)
        initial = estimate_initial_parameters(curve_from_dataframe(shuffled), FitOptions())
        assert initial['Vcmax'] == pytest.approx(50.0, rel=1e-6)

    def test_fixed_values_honoured(self, aci_data):
        options = FitOptions(fixVcmax=55.0, fixJmax=120.0)
        initial = estimate_initial_parameters(curve_from_dataframe(aci_data), options)
        assert initial['Vcmax'] == 55.0
        assert initial['Jmax'] == 120.0

    def test_fixed_rd(self, aci_data):
        initial = estimate_initial_parameters(
            curve_from_dataframe(aci_data), FitOptions(fixRd=1.0)
        )
        assert initial['Rd'] == 1.0
        assert initial['Vcmax'] == pytest.approx(50.0, rel=1e-6)

    def test_tpu_start(self, aci_data):
        initial = estimate_initial_parameters(
            curve_from_dataframe(aci_data), FitOptions(fitTPU=True)
        )
        assert initial['TPU'] > 0

    def test_positive_on_noisy_data(self, noisy_aci_data):
        initial = estimate_initial_parameters(curve_from_dataframe(noisy_aci_data), FitOptions())
        assert initial['Vcmax'] > 0
        assert initial['Jmax'] > 0


class TestParameterBounds:

    def test_bounds(self):
        bounds = estimate_parameter_bounds(FitOptions())
        assert bounds['Vcmax'] == (0.0, np.inf)
        assert bounds['Rd'] == (-np.inf, np.inf)
        assert 'TPU' not in bounds

    def test_tpu_bounds(self):
        assert 'TPU' in estimate_parameter_bounds(FitOptions(fitTPU=True))
