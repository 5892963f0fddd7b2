"""
Tests for the nonlinear and bilinear estimation strategies.
"""

import numpy as np
import pytest

from acifit.analysis.estimators import (
    Strategy,
    Converged,
    Failed,
    NonlinearEstimator,
    BilinearEstimator,
    get_estimator,
)
from acifit.analysis.options import FitOptions
from acifit.core.c3_calculations import ParameterSet
from acifit.core.data_structures import curve_from_dataframe
from acifit.tests.conftest import CI_GRID, make_aci_frame

TPU_CI_GRID = np.concatenate([CI_GRID, [1800.0, 2000.0]])


@pytest.fixture
def curve(aci_data):
    return curve_from_dataframe(aci_data)


@pytest.fixture
def tpu_curve():
    """6 Rubisco-, 3 RuBP- and 4 TPU-limited points."""
    parameters = ParameterSet(Vcmax=50.0, Jmax=100.0, Rd=1.0, TPU=7.0)
    return curve_from_dataframe(make_aci_frame(parameters, ci=TPU_CI_GRID))


class TestStrategy:

    def test_method_names(self):
        assert Strategy('default') is Strategy.NONLINEAR
        assert Strategy('nonlinear') is Strategy.NONLINEAR
        assert Strategy('bilinear') is Strategy.BILINEAR

    def test_unknown(self):
        with pytest.raises(ValueError):
            Strategy('simplex')

    def test_factory(self):
        assert isinstance(get_estimator('default'), NonlinearEstimator)
        assert isinstance(get_estimator(Strategy.BILINEAR), BilinearEstimator)


class TestNonlinearEstimator:
    """Test least-squares estimation on the full model."""

    def test_noise_free_recovery(self, curve):
        outcome = NonlinearEstimator().estimate(curve, FitOptions())
        assert isinstance(outcome, Converged)
        assert outcome.success
        assert outcome.strategy is Strategy.NONLINEAR
        values = outcome.parameters
        assert values.Vcmax == pytest.approx(50.0, rel=1e-3)
        assert values.Jmax == pytest.approx(100.0, rel=1e-3)
        assert values.Rd == pytest.approx(1.0, abs=1e-3)

    def test_noisy_recovery(self, noisy_aci_data):
        outcome = NonlinearEstimator().estimate(
            curve_from_dataframe(noisy_aci_data), FitOptions()
        )
        assert outcome.success
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=0.05)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=0.05)
        assert outcome.parameters.Rd == pytest.approx(1.0, abs=0.5)
        for name in ('Vcmax', 'Jmax', 'Rd'):
            assert np.isfinite(outcome.stderr[name])
            assert outcome.stderr[name] > 0

    def test_iteration_cap(self, curve):
        """Too few evaluations gives a Failed outcome instead of an exception."""
        outcome = NonlinearEstimator().estimate(curve, FitOptions(max_nfev=2))
        assert isinstance(outcome, Failed)
        assert not outcome.success
        assert outcome.strategy is Strategy.NONLINEAR
        assert outcome.reason

    def test_fixed_parameter(self, curve):
        outcome = NonlinearEstimator().estimate(curve, FitOptions(fixJmax=100.0))
        assert outcome.success
        assert outcome.parameters.Jmax == 100.0
        assert np.isnan(outcome.stderr['Jmax'])
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=1e-3)

    def test_all_fixed(self, curve):
        options = FitOptions(fixVcmax=50.0, fixJmax=100.0, fixRd=1.0)
        outcome = NonlinearEstimator().estimate(curve, options)
        assert outcome.success
        assert outcome.nfev == 0
        assert outcome.parameters == ParameterSet(Vcmax=50.0, Jmax=100.0, Rd=1.0)

    def test_tpu(self, tpu_curve):
        outcome = NonlinearEstimator().estimate(tpu_curve, FitOptions(fitTPU=True))
        assert outcome.success
        assert outcome.parameters.TPU == pytest.approx(7.0, rel=1e-3)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=1e-2)

    def test_too_few_points(self, aci_data):
        curve = curve_from_dataframe(aci_data.iloc[:3], check=False)
        outcome = NonlinearEstimator().estimate(curve, FitOptions())
        assert isinstance(outcome, Failed)


class TestBilinearEstimator:
    """Test the split-and-regress strategy."""

    def test_noise_free_recovery(self, curve):
        outcome = BilinearEstimator().estimate(curve, FitOptions(fitmethod='bilinear'))
        assert isinstance(outcome, Converged)
        assert outcome.strategy is Strategy.BILINEAR
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=1e-6)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=1e-6)
        assert outcome.parameters.Rd == pytest.approx(1.0, abs=1e-6)
        assert outcome.message.startswith('6 Rubisco-limited, 5 RuBP-limited')

    def test_standard_errors(self, noisy_aci_data):
        """Jmax has no standard error and the limitation is reported."""
        outcome = BilinearEstimator().estimate(
            curve_from_dataframe(noisy_aci_data), FitOptions()
        )
        assert outcome.success
        assert np.isnan(outcome.stderr['Jmax'])
        assert np.isfinite(outcome.stderr['Vcmax'])
        assert any('understated' in w for w in outcome.warnings)

    def test_noisy_recovery(self, noisy_aci_data):
        outcome = BilinearEstimator().estimate(
            curve_from_dataframe(noisy_aci_data), FitOptions()
        )
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=0.1)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=0.1)

    def test_fixed_rd(self, curve):
        outcome = BilinearEstimator().estimate(curve, FitOptions(fixRd=1.0))
        assert outcome.parameters.Rd == 1.0
        assert np.isnan(outcome.stderr['Rd'])
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=1e-6)

    def test_fixed_jmax(self, curve):
        outcome = BilinearEstimator().estimate(curve, FitOptions(fixJmax=100.0))
        assert outcome.success
        assert outcome.parameters.Jmax == 100.0
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=1e-6)

    def test_citransition(self, curve):
        """A caller-supplied transition fixes the split."""
        outcome = BilinearEstimator().estimate(curve, FitOptions(citransition=250.0))
        assert outcome.success
        assert outcome.message.startswith('4 Rubisco-limited, 7 RuBP-limited')

    def test_tpu(self, tpu_curve):
        outcome = BilinearEstimator().estimate(tpu_curve, FitOptions(fitTPU=True))
        assert outcome.success
        assert outcome.parameters.TPU == pytest.approx(7.0, rel=1e-6)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=1e-6)
        assert '4 TPU-limited' in outcome.message

    def test_tpu_with_alphag(self):
        """TPU is recovered when Ap declines with Ci (glycolate export)."""
        parameters = ParameterSet(Vcmax=50.0, Jmax=100.0, Rd=1.0, TPU=7.0)
        curve = curve_from_dataframe(make_aci_frame(parameters, ci=TPU_CI_GRID, alphag=0.3))
        outcome = BilinearEstimator().estimate(curve, FitOptions(fitTPU=True, alphag=0.3))
        assert outcome.success
        assert outcome.message.startswith('6 Rubisco-limited, 4 RuBP-limited, 3 TPU-limited')
        assert outcome.parameters.TPU == pytest.approx(7.0, rel=1e-6)
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=1e-6)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=1e-6)
        assert outcome.parameters.Rd == pytest.approx(1.0, rel=1e-6)

    def test_temperature_corrected(self):
        """Vcmax and Jmax are reported at 25 °C for a warm leaf."""
        # Ci = 50 lies below GammaStar at 30 °C
        curve = curve_from_dataframe(make_aci_frame(tleaf=30.0, ci=CI_GRID[1:]))
        outcome = BilinearEstimator().estimate(curve, FitOptions())
        assert outcome.parameters.Vcmax == pytest.approx(50.0, rel=1e-6)
        assert outcome.parameters.Jmax == pytest.approx(100.0, rel=1e-6)

    def test_identical_ci(self, aci_data):
        """Degenerate input is the only way to make the bilinear method fail."""
        df = aci_data.assign(Ci=400.0)
        curve = curve_from_dataframe(df, check=False)
        outcome = BilinearEstimator().estimate(curve, FitOptions())
        assert isinstance(outcome, Failed)
        assert outcome.strategy is Strategy.BILINEAR
