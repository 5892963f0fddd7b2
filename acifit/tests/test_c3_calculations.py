"""
Tests for the FvCB model equations and limitation classification.
"""

import numpy as np
import pytest
from acifit.core.c3_calculations import (
    ParameterSet,
    ModelRates,
    calculate_rates,
    calculate_assimilation,
    identify_limiting_process,
    electron_transport_rate,
    jmax_from_electron_transport,
    tpu_limited_rate,
    tpu_transform,
    transition_ci,
    DEFAULT_ALPHA,
    DEFAULT_THETA,
)
from acifit.core.temperature import gamma_star, michaelis_menten
from acifit.tests.conftest import CI_GRID, TRUE_PARAMETERS


class TestElectronTransport:
    """Test the non-rectangular light response and its inverse."""

    def test_light_response(self):
        ai = DEFAULT_ALPHA * 1500
        expected = (ai + 100 - np.sqrt((ai + 100)**2 - 4 * DEFAULT_THETA * ai * 100)) / (2 * DEFAULT_THETA)
        assert np.isclose(electron_transport_rate(1500, 100), expected)
        assert np.isclose(expected, 94.904, atol=1e-3)

    def test_inverse_round_trip(self):
        """Jmax recovered from J at the same PPFD."""
        j = electron_transport_rate(1500, 100)
        assert np.isclose(jmax_from_electron_transport(j, 1500), 100)

    def test_inverse_undefined_above_light_limit(self):
        """No finite Jmax exists when J reaches alpha * PPFD."""
        assert np.isnan(jmax_from_electron_transport(DEFAULT_ALPHA * 500, 500))
        assert np.isnan(jmax_from_electron_transport(200, 500))

    def test_saturating_light(self):
        """J approaches Jmax at high light."""
        assert np.isclose(electron_transport_rate(1e6, 100), 100, rtol=1e-3)


class TestCalculateRates:
    """Test the piecewise FvCB model."""

    def test_net_assimilation_is_minimum(self):
        rates = calculate_rates(CI_GRID, TRUE_PARAMETERS, ppfd=1500)
        expected = np.minimum(rates.Ac, rates.Aj) - 1.0
        assert np.allclose(rates.An, expected)

    def test_rubisco_rate(self):
        """Ac follows Vcmax * (Ci - GammaStar) / (Ci + Km)."""
        rates = calculate_rates(np.array([200.0]), TRUE_PARAMETERS)
        gs, km = gamma_star(25.0), michaelis_menten(25.0)
        assert np.isclose(rates.Ac[0], 50 * (200 - gs) / (200 + km))

    def test_electron_transport_rate(self):
        """Aj follows J/4 * (Ci - GammaStar) / (Ci + 2 GammaStar)."""
        rates = calculate_rates(np.array([800.0]), TRUE_PARAMETERS, ppfd=1500)
        gs = gamma_star(25.0)
        j = electron_transport_rate(1500, 100)
        assert np.isclose(rates.Aj[0], j / 4 * (800 - gs) / (800 + 2 * gs))

    def test_tpu_not_modelled(self):
        """Without TPU the TPU rate never limits."""
        rates = calculate_rates(CI_GRID, TRUE_PARAMETERS)
        assert np.all(np.isinf(rates.Ap))

    def test_tpu_limitation(self):
        """With alphag = 0 the TPU rate is 3 * TPU."""
        parameters = ParameterSet(Vcmax=50, Jmax=100, Rd=1, TPU=7)
        rates = calculate_rates(CI_GRID, parameters, ppfd=1500)
        assert np.allclose(rates.Ap, 21.0)
        assert np.isclose(rates.An[-1], 20.0)

    def test_tpu_with_alphag(self):
        """Glycolate export makes the TPU rate decline towards 3 * TPU."""
        gs = np.full(3, 42.75)
        ap = tpu_limited_rate(np.array([400.0, 800.0, 1600.0]), 7.0, gs, alphag=0.3)
        assert np.all(ap > 21.0)
        assert np.all(np.diff(ap) < 0)

    def test_tpu_transform(self):
        """The TPU transform is 1 without glycolate export and undefined near GammaStar."""
        ci = np.array([50.0, 400.0, 1600.0])
        assert np.array_equal(tpu_transform(ci, 42.75), np.ones(3))
        z = tpu_transform(ci, 42.75, alphag=0.3)
        assert np.isnan(z[0])
        assert np.isclose(z[1], (400 - 42.75) / (400 - 1.9 * 42.75))
        ap = tpu_limited_rate(ci, 7.0, 42.75, alphag=0.3)
        assert np.isinf(ap[0])
        assert np.allclose(ap[1:], 21.0 * z[1:])

    def test_below_compensation_point(self):
        """Below GammaStar net assimilation is finite and below -Rd."""
        ci = np.array([0.0, 10.0, 30.0])
        an = calculate_assimilation(ci, TRUE_PARAMETERS)
        assert np.all(np.isfinite(an))
        assert np.all(an < -1.0)

    def test_negative_ci_clamped(self):
        an_negative = calculate_assimilation(np.array([-20.0]), TRUE_PARAMETERS)
        an_zero = calculate_assimilation(np.array([0.0]), TRUE_PARAMETERS)
        assert np.isclose(an_negative[0], an_zero[0])

    def test_temperature_correction(self):
        """Vcmax and Jmax are scaled to leaf temperature only with Tcorrect."""
        corrected = calculate_rates(CI_GRID, TRUE_PARAMETERS, tleaf=30.0)
        uncorrected = calculate_rates(CI_GRID, TRUE_PARAMETERS, tleaf=30.0, Tcorrect=False)
        assert np.all(corrected.Vcmax_tl > 50)
        assert np.allclose(uncorrected.Vcmax_tl, 50)
        assert np.allclose(uncorrected.Jmax_tl, 100)

    def test_fixed_gamma_star_and_km(self):
        rates = calculate_rates(CI_GRID, TRUE_PARAMETERS, GammaStar=40.0, Km=700.0)
        assert np.allclose(rates.GammaStar, 40.0)
        assert np.allclose(rates.Km, 700.0)
        assert np.isclose(rates.Ac[0], 50 * (50 - 40) / (50 + 700))

    def test_mesophyll_conductance_lowers_assimilation(self):
        """Finite gm reduces A where assimilation is positive."""
        without = calculate_assimilation(CI_GRID, TRUE_PARAMETERS)
        with_gm = calculate_assimilation(CI_GRID, TRUE_PARAMETERS, gmeso=0.2)
        positive = without > 0
        assert np.all(with_gm[positive] < without[positive])

    def test_large_mesophyll_conductance(self):
        """Very large gm recovers the Ci-based model."""
        without = calculate_assimilation(CI_GRID, TRUE_PARAMETERS)
        with_gm = calculate_assimilation(CI_GRID, TRUE_PARAMETERS, gmeso=1e6)
        assert np.allclose(with_gm, without, atol=1e-3)

    def test_mesophyll_chloroplastic_co2(self):
        """Cc satisfies A = gm * (Ci - Cc)."""
        rates = calculate_rates(CI_GRID, TRUE_PARAMETERS, gmeso=0.2)
        assert np.allclose(rates.An, 0.2 * (CI_GRID - rates.Cc))


class TestLimitingProcess:
    """Test the limitation classifier."""

    def test_regimes_of_synthetic_curve(self):
        rates = calculate_rates(CI_GRID, TRUE_PARAMETERS, ppfd=1500)
        limiting = identify_limiting_process(rates)
        assert list(limiting) == ['Rubisco'] * 6 + ['RuBP'] * 5

    def test_consistent_with_net_assimilation(self):
        """The labelled rate is the one giving An."""
        parameters = ParameterSet(Vcmax=50, Jmax=100, Rd=1, TPU=7)
        ci = np.linspace(20, 2000, 60)
        rates = calculate_rates(ci, parameters, ppfd=1500)
        limiting = identify_limiting_process(rates)
        chosen = np.select(
            [limiting == 'Rubisco', limiting == 'RuBP', limiting == 'TPU'],
            [rates.Ac, rates.Aj, rates.Ap]
        )
        assert np.allclose(chosen - rates.Rd, rates.An)
        assert set(limiting) == {'Rubisco', 'RuBP', 'TPU'}

    def test_ties(self):
        """Ties are resolved Rubisco, then RuBP, then TPU."""
        ones = np.ones(3)
        rates = ModelRates(
            An=ones, Ac=np.array([1.0, 2.0, 3.0]), Aj=np.array([1.0, 1.0, 2.0]),
            Ap=np.array([5.0, 1.0, 2.0]), Rd=0.0, J=ones, Vcmax_tl=ones,
            Jmax_tl=ones, GammaStar=ones, Km=ones, Cc=ones
        )
        assert list(identify_limiting_process(rates)) == ['Rubisco', 'RuBP', 'RuBP']


class TestTransitionCi:
    """Test the Ac = Aj crossing point."""

    def test_transition_of_synthetic_curve(self):
        gs, km = gamma_star(25.0), michaelis_menten(25.0)
        j = electron_transport_rate(1500, 100)
        ci = transition_ci(50, j, gs, km)
        assert 470 < ci < 490

        rates = calculate_rates(np.array([ci]), TRUE_PARAMETERS, ppfd=1500)
        assert np.isclose(rates.Ac[0], rates.Aj[0])

    def test_no_crossing(self):
        """No transition when RuBP regeneration never limits."""
        assert np.isnan(transition_ci(10, 100, 42.75, 710))


class TestParameterSet:

    def test_to_dict_without_tpu(self):
        assert TRUE_PARAMETERS.to_dict() == {'Vcmax': 50.0, 'Jmax': 100.0, 'Rd': 1.0}

    def test_to_dict_with_tpu(self):
        parameters = ParameterSet(Vcmax=50, Jmax=100, Rd=1, TPU=7)
        assert parameters.to_dict()['TPU'] == 7
