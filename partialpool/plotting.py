"""
Plotting for model comparison figures.

Trace plots, half-eye posterior plots of the group slopes with the true
slopes overlaid, and side-by-side interval plots across models.

"""

from pathlib import Path
from typing import Iterable, Mapping, Optional, Tuple, Union

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
from scipy.stats import gaussian_kde

from .models.fitter import FitResult
from .simulation import SimulatedDataset


class PlotStyle:
    """
    Consistent figure styling for every partialpool figure.

    Examples
    --------
    >>> PlotStyle.apply()
    >>> fig = plot_slope_posteriors(result, dataset)
    >>> PlotStyle.save_figure(fig, 'results/figures/slopes.png')
    """

    FIGSIZE_MAIN = (10, 6)
    FIGSIZE_WIDE = (14, 6)

    DPI = 300

    COLORS = {
        'regular': '#2ca02c',
        'unpooled': '#ff7f0e',
        'hierarchical': '#1f77b4',
        'complete_pooling': '#9467bd',
        'truth': '#d62728',
        'population': '#7f7f7f',
    }

    FONTSIZE_TITLE = 14
    FONTSIZE_LABEL = 12
    FONTSIZE_TICK = 10
    FONTSIZE_LEGEND = 10

    @classmethod
    def apply(cls) -> None:
        """Apply the style to matplotlib globally."""
        plt.rcParams['figure.figsize'] = cls.FIGSIZE_MAIN
        plt.rcParams['figure.dpi'] = 100
        plt.rcParams['savefig.dpi'] = cls.DPI

        plt.rcParams['font.size'] = cls.FONTSIZE_TICK
        plt.rcParams['axes.titlesize'] = cls.FONTSIZE_TITLE
        plt.rcParams['axes.labelsize'] = cls.FONTSIZE_LABEL
        plt.rcParams['legend.fontsize'] = cls.FONTSIZE_LEGEND

        plt.rcParams['grid.alpha'] = 0.3
        plt.rcParams['grid.linestyle'] = '--'

    @classmethod
    def color_for(cls, model_name: str, index: int = 0) -> str:
        if model_name in cls.COLORS:
            return cls.COLORS[model_name]
        cycle = plt.rcParams['axes.prop_cycle'].by_key()['color']
        return cycle[index % len(cycle)]

    @classmethod
    def save_figure(
        cls,
        fig: plt.Figure,
        filepath: Union[str, Path],
        dpi: Optional[int] = None,
        verbose: bool = True
    ) -> None:
        """Save ``fig`` at publication resolution, creating parent directories."""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(filepath, dpi=dpi if dpi is not None else cls.DPI, bbox_inches='tight')
        if verbose:
            print(f"✓ Figure saved: {filepath}")


def plot_trace(
    result: FitResult,
    var_names: Optional[Iterable[str]] = None,
    filepath: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """
    Trace and marginal density per parameter (``arviz.plot_trace``).

    Parameters
    ----------
    result : FitResult
        Fitted model
    var_names : Iterable[str], optional
        Parameters to show; defaults to all
    filepath : str or Path, optional
        If given, the figure is saved there

    Returns
    -------
    fig : plt.Figure
    """
    axes = az.plot_trace(
        result.trace,
        var_names=list(var_names) if var_names is not None else None,
        compact=True,
    )
    fig = np.ravel(axes)[0].figure
    fig.suptitle(f"Trace: {result.model_name}", fontsize=PlotStyle.FONTSIZE_TITLE)
    fig.tight_layout()

    if filepath is not None:
        PlotStyle.save_figure(fig, filepath)
    return fig


def _half_eye(
    ax: plt.Axes,
    values: np.ndarray,
    row: float,
    color: str,
    height: float = 0.8
) -> None:
    """Density ridge above ``row`` with 50% and 95% interval bars on it."""
    if np.ptp(values) > 0:
        grid = np.linspace(values.min(), values.max(), 200)
        density = gaussian_kde(values)(grid)
        density = density / density.max() * height
        ax.fill_between(grid, row, row + density, color=color, alpha=0.35, linewidth=0)

    q025, q25, q50, q75, q975 = np.quantile(values, [0.025, 0.25, 0.5, 0.75, 0.975])
    ax.hlines(row, q025, q975, color=color, linewidth=1.5)
    ax.hlines(row, q25, q75, color=color, linewidth=4)
    ax.plot(q50, row, 'o', color=color, markersize=5)


def plot_slope_posteriors(
    result: FitResult,
    dataset: SimulatedDataset,
    ax: Optional[plt.Axes] = None,
    filepath: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """
    Half-eye plot of every group slope with the true slope marked.

    Parameters
    ----------
    result : FitResult
        Fitted model
    dataset : SimulatedDataset
        Provides the true slopes and group sizes
    ax : plt.Axes, optional
        Axes to draw on; a new figure is created if None
    filepath : str or Path, optional
        If given, the figure is saved there

    Returns
    -------
    fig : plt.Figure
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=PlotStyle.FIGSIZE_MAIN)
    else:
        fig = ax.figure

    beta = result.draws('beta')
    color = PlotStyle.color_for(result.model_name)
    counts = dataset.group_counts()

    for j in range(dataset.n_groups):
        _half_eye(ax, beta[:, j], row=j, color=color)
        ax.plot(dataset.true_slopes[j], j, 'x', color=PlotStyle.COLORS['truth'],
                markersize=9, markeredgewidth=2,
                label='True slope' if j == 0 else None)

    if 'beta_mu' in result.trace.posterior:
        ax.axvline(result.draws('beta_mu').mean(), color=PlotStyle.COLORS['population'],
                   linestyle='--', linewidth=1, label='Posterior mean of beta_mu')

    ax.set_yticks(np.arange(dataset.n_groups))
    ax.set_yticklabels([f"Group {g} (n={counts[g]})" for g in sorted(counts)])
    ax.set_xlabel('Slope')
    ax.set_title(f"Group slopes: {result.model_name}", fontsize=PlotStyle.FONTSIZE_TITLE)
    ax.grid(True, axis='x', alpha=0.3, linestyle='--')
    ax.legend(loc='best', fontsize=PlotStyle.FONTSIZE_LEGEND)

    if filepath is not None:
        PlotStyle.save_figure(fig, filepath)
    return fig


def plot_model_comparison(
    results: Union[Mapping[str, FitResult], Iterable[FitResult]],
    dataset: SimulatedDataset,
    figsize: Optional[Tuple[float, float]] = None,
    filepath: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """
    One half-eye panel per model, sharing the slope axis.

    Returns
    -------
    fig : plt.Figure
    """
    if not isinstance(results, Mapping):
        results = {r.model_name: r for r in results}
    if not results:
        raise ValueError("No fitted models to plot")

    fig, axes = plt.subplots(
        1, len(results),
        figsize=figsize if figsize is not None else PlotStyle.FIGSIZE_WIDE,
        sharex=True, sharey=True, squeeze=False,
    )

    for ax, result in zip(axes[0], results.values()):
        plot_slope_posteriors(result, dataset, ax=ax)

    fig.tight_layout()

    if filepath is not None:
        PlotStyle.save_figure(fig, filepath)
    return fig
