"""
Smoke tests for the plotting helpers.
"""

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pytest

from acifit.analysis.batch import fit_acis
from acifit.analysis.c3_fitting import fit_aci
from acifit.analysis.plotting import (
    _format_parameters_text,
    plot_aci_fit,
    plot_parameter_distributions,
)
from acifit.core.c3_calculations import ParameterSet
from acifit.tests.conftest import CI_GRID, make_aci_frame


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def test_plot_aci_fit(noisy_aci_data, tmp_path):
    result = fit_aci(noisy_aci_data)
    path = tmp_path / 'fit.png'

    fig = plot_aci_fit(result, save_path=str(path))

    assert len(fig.axes) == 2
    assert path.exists()


def test_plot_without_residuals(aci_data):
    fig = plot_aci_fit(fit_aci(aci_data), show_residuals=False, show_limitations=False)
    assert len(fig.axes) == 1


def test_plot_tpu_curve():
    parameters = ParameterSet(Vcmax=50.0, Jmax=100.0, Rd=1.0, TPU=7.0)
    data = make_aci_frame(parameters, ci=np.concatenate([CI_GRID, [1800.0, 2000.0]]))
    fig = plot_aci_fit(fit_aci(data, fitTPU=True))
    labels = [line.get_label() for line in fig.axes[0].get_lines()]
    assert '$A_p$' in labels


def test_plot_failed_fit(aci_data):
    with pytest.raises(ValueError):
        plot_aci_fit(fit_aci(aci_data.iloc[:2]))


def test_parameters_text(aci_data):
    text = _format_parameters_text(fit_aci(aci_data, fitmethod='bilinear'))
    assert 'Method: bilinear' in text
    assert '$J_{max}$' in text


def test_plot_parameter_distributions(batch_data):
    results = fit_acis(batch_data, group='Curve', quiet=True)
    fig = plot_parameter_distributions(results, parameters=['Vcmax', 'Jmax', 'Rd'])
    visible = [ax for ax in fig.axes if ax.get_visible()]
    assert len(visible) == 3
