"""
Posterior Summaries

Reduce retained MCMC draws to summary tables and expose the draws in long
format for plotting. Nothing here modifies the draws held by a ``FitResult``.

"""

from typing import Dict, Iterable, Mapping, Union

import arviz as az
import numpy as np
import pandas as pd

from ..models.fitter import FitResult, compute_ols_estimates
from ..simulation import SimulatedDataset

INTERVAL_KINDS = ('eti', 'hdi')


def _interval(values: np.ndarray, ci_prob: float, kind: str):
    if kind == 'hdi':
        lower, upper = az.hdi(values, hdi_prob=ci_prob)
        return float(lower), float(upper)
    tail = (1.0 - ci_prob) / 2.0
    lower, upper = np.quantile(values, [tail, 1.0 - tail])
    return float(lower), float(upper)


def _check_interval_args(ci_prob: float, kind: str) -> None:
    if not 0 < ci_prob < 1:
        raise ValueError(f"ci_prob must be in (0, 1). Got: {ci_prob}")
    if kind not in INTERVAL_KINDS:
        raise ValueError(f"kind must be one of {INTERVAL_KINDS}. Got: '{kind}'")


def summarize_posterior(
    result: FitResult,
    ci_prob: float = 0.95,
    kind: str = 'eti'
) -> pd.DataFrame:
    """
    Per-parameter posterior summary.

    Parameters
    ----------
    result : FitResult
        Fitted model
    ci_prob : float, optional (default=0.95)
        Credible interval mass
    kind : str, optional (default='eti')
        ``'eti'`` for equal-tailed quantile intervals, ``'hdi'`` for
        highest-density intervals

    Returns
    -------
    summary : pd.DataFrame
        Columns ``model``, ``parameter``, ``mean``, ``sd``, ``ci_lower``,
        ``ci_upper``, ``r_hat``, ``ess_bulk``; one row per scalar
        parameter (``beta[1]`` ... ``beta[m]``)
    """
    _check_interval_args(ci_prob, kind)

    rows = []
    for name in result.parameter_names:
        values = result.draws(name)
        if values.ndim == 1:
            columns = [(name, values)]
        else:
            groups = result.trace.posterior[name].coords['group'].values
            columns = [(f"{name}[{g}]", values[:, j]) for j, g in enumerate(groups)]

        for label, column in columns:
            lower, upper = _interval(column, ci_prob, kind)
            rows.append({
                'model': result.model_name,
                'parameter': label,
                'mean': float(np.mean(column)),
                'sd': float(np.std(column, ddof=1)) if len(column) > 1 else 0.0,
                'ci_lower': lower,
                'ci_upper': upper,
            })

    summary = pd.DataFrame(rows)
    diagnostics = result.diagnostics.table[['parameter', 'r_hat', 'ess_bulk']]
    return summary.merge(diagnostics, on='parameter', how='left')


def slope_draws(result: FitResult) -> pd.DataFrame:
    """
    Every retained slope draw in long format.

    Returns
    -------
    draws : pd.DataFrame
        Columns ``model``, ``chain``, ``draw``, ``group``, ``slope``
    """
    beta = result.trace.posterior['beta']
    values = np.array(beta.values, copy=True)  # (chain, draw, group)
    n_chains, n_draws, n_groups = values.shape

    chain, draw, group = np.meshgrid(
        np.arange(n_chains),
        np.arange(n_draws),
        beta.coords['group'].values,
        indexing='ij',
    )

    return pd.DataFrame({
        'model': result.model_name,
        'chain': chain.ravel(),
        'draw': draw.ravel(),
        'group': group.ravel(),
        'slope': values.ravel(),
    })


def _as_mapping(results: Union[Mapping[str, FitResult], Iterable[FitResult]]) -> Dict[str, FitResult]:
    if isinstance(results, Mapping):
        return dict(results)
    return {r.model_name: r for r in results}


def compare_slopes(
    results: Union[Mapping[str, FitResult], Iterable[FitResult]],
    dataset: SimulatedDataset,
    ci_prob: float = 0.95
) -> pd.DataFrame:
    """
    Compare per-group slope posteriors across models against the truth.

    Parameters
    ----------
    results : Mapping[str, FitResult] or Iterable[FitResult]
        Fitted models
    dataset : SimulatedDataset
        Dataset the models were fitted to (provides true slopes)
    ci_prob : float, optional (default=0.95)
        Equal-tailed credible interval mass

    Returns
    -------
    comparison : pd.DataFrame
        One row per (model, group): ``n_obs``, ``true_slope``,
        ``ols_slope``, ``mean``, ``sd``, ``ci_lower``, ``ci_upper``,
        ``covers_truth``, ``abs_error``
    """
    _check_interval_args(ci_prob, 'eti')

    ols = compute_ols_estimates(dataset)
    counts = dataset.group_counts()

    rows = []
    for name, result in _as_mapping(results).items():
        beta = result.draws('beta')
        for j in range(dataset.n_groups):
            column = beta[:, j]
            lower, upper = _interval(column, ci_prob, 'eti')
            truth = float(dataset.true_slopes[j])
            mean = float(np.mean(column))
            rows.append({
                'model': name,
                'group': j + 1,
                'n_obs': counts.get(j + 1, 0),
                'true_slope': truth,
                'ols_slope': float(ols[j]),
                'mean': mean,
                'sd': float(np.std(column, ddof=1)) if len(column) > 1 else 0.0,
                'ci_lower': lower,
                'ci_upper': upper,
                'covers_truth': bool(lower <= truth <= upper),
                'abs_error': abs(mean - truth),
            })

    return pd.DataFrame(rows)


def shrinkage_table(
    result: FitResult,
    dataset: SimulatedDataset
) -> pd.DataFrame:
    """
    Shrinkage of hierarchical slope estimates toward the population mean.

    The shrinkage weight of group j is

        1 - (E[β_j] - E[β_mu]) / (β̂_j^OLS - E[β_mu])

    0 means the group keeps its own least-squares estimate; 1 means it is
    pulled all the way to the population mean. Small groups shrink more.

    Raises
    ------
    ValueError
        If ``result`` is not a hierarchical fit
    """
    if 'beta_mu' not in result.trace.posterior:
        raise ValueError(
            f"Shrinkage requires a hierarchical model; '{result.model_name}' "
            "has no beta_mu"
        )

    ols = compute_ols_estimates(dataset)
    posterior_mean = result.draws('beta').mean(axis=0)
    beta_mu_mean = float(result.draws('beta_mu').mean())
    counts = dataset.group_counts()

    with np.errstate(divide='ignore', invalid='ignore'):
        weight = 1.0 - (posterior_mean - beta_mu_mean) / (ols - beta_mu_mean)

    return pd.DataFrame({
        'group': np.arange(1, dataset.n_groups + 1),
        'n_obs': [counts.get(j + 1, 0) for j in range(dataset.n_groups)],
        'true_slope': np.array(dataset.true_slopes),
        'ols_slope': ols,
        'posterior_mean': posterior_mean,
        'beta_mu_mean': beta_mu_mean,
        'shrinkage': weight,
    })
