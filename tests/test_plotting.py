"""
Smoke Tests for Plotting
========================
"""

import matplotlib.pyplot as plt
import pytest

from partialpool.plotting import (
    PlotStyle,
    plot_model_comparison,
    plot_slope_posteriors,
    plot_trace,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def test_slope_posteriors_one_row_per_group(hierarchical_fit, dataset):
    fig = plot_slope_posteriors(hierarchical_fit, dataset)
    ax = fig.axes[0]

    assert len(ax.get_yticks()) == 8
    assert 'hierarchical' in ax.get_title()


def test_model_comparison_one_panel_per_model(hierarchical_fit, regular_fit, dataset):
    fig = plot_model_comparison([regular_fit, hierarchical_fit], dataset)
    assert len(fig.axes) == 2


def test_model_comparison_requires_results(dataset):
    with pytest.raises(ValueError):
        plot_model_comparison({}, dataset)


def test_trace_plot_saved(regular_fit, tmp_path):
    path = tmp_path / 'figures' / 'trace.png'
    fig = plot_trace(regular_fit, var_names=['alpha', 'sigma'], filepath=path)

    assert isinstance(fig, plt.Figure)
    assert path.exists()


def test_style_colors():
    assert PlotStyle.color_for('hierarchical') == PlotStyle.COLORS['hierarchical']
    assert PlotStyle.color_for('something_else', index=1).startswith('#')
