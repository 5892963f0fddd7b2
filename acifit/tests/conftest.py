"""
Shared synthetic A-Ci data for the test suite.
"""

import numpy as np
import pandas as pd
import pytest

from acifit.core.c3_calculations import ParameterSet, calculate_assimilation

# Ci grid giving 6 Rubisco-limited and 5 RuBP-limited points for the
# default parameters below (transition near Ci = 479 at 25 °C, PPFD 1500)
CI_GRID = np.array([50, 100, 150, 200, 300, 400, 600, 800, 1000, 1200, 1500], dtype=float)
TRUE_PARAMETERS = ParameterSet(Vcmax=50.0, Jmax=100.0, Rd=1.0)


def make_aci_frame(
    parameters=TRUE_PARAMETERS,
    ci=CI_GRID,
    tleaf=25.0,
    ppfd=1500.0,
    noise=0.0,
    seed=42,
    **model_kwargs
):
    """Simulate an A-Ci curve with LI-6400 column names."""
    ci = np.asarray(ci, dtype=float)
    tleaf = np.full_like(ci, tleaf)
    ppfd = np.full_like(ci, ppfd)
    a = calculate_assimilation(ci, parameters, tleaf=tleaf, ppfd=ppfd, **model_kwargs)
    if noise > 0:
        rng = np.random.default_rng(seed)
        a = a + rng.normal(0, noise, ci.size)
    return pd.DataFrame({'Photo': a, 'Ci': ci, 'Tleaf': tleaf, 'PARi': ppfd})


@pytest.fixture
def aci_data():
    """Noise-free curve generated with Vcmax=50, Jmax=100, Rd=1 at 25 °C."""
    return make_aci_frame()


@pytest.fixture
def noisy_aci_data():
    """Same curve with Gaussian noise (sd 0.1)."""
    return make_aci_frame(noise=0.1)


@pytest.fixture
def batch_data():
    """Three good curves and one curve with only two points."""
    frames = []
    for curve_id, vcmax in [('A', 45.0), ('B', 50.0), ('C', 60.0)]:
        df = make_aci_frame(ParameterSet(Vcmax=vcmax, Jmax=2 * vcmax, Rd=1.0))
        df['Curve'] = curve_id
        frames.append(df)
    bad = make_aci_frame(ci=[100.0, 400.0])
    bad['Curve'] = 'bad'
    frames.append(bad)
    return pd.concat(frames, ignore_index=True)
