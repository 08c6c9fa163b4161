"""
Unit Tests for Posterior Summaries
==================================
"""

import numpy as np
import pandas as pd
import pytest

from partialpool.posterior import (
    compare_slopes,
    shrinkage_table,
    slope_draws,
    summarize_posterior,
)


# ============================================================================
# Test 1: summarize_posterior
# ============================================================================

def test_summary_columns_and_rows(hierarchical_fit):
    summary = summarize_posterior(hierarchical_fit)

    expected_cols = {'model', 'parameter', 'mean', 'sd', 'ci_lower', 'ci_upper',
                     'r_hat', 'ess_bulk'}
    assert set(summary.columns) >= expected_cols
    assert len(summary) == 12
    assert (summary['model'] == 'hierarchical').all()


def test_summary_sd_non_negative(hierarchical_fit, regular_fit):
    for fit in (hierarchical_fit, regular_fit):
        summary = summarize_posterior(fit)
        assert (summary['sd'] >= 0).all()
        assert (summary['ci_lower'] <= summary['ci_upper']).all()


def test_summary_matches_draws(regular_fit):
    summary = summarize_posterior(regular_fit).set_index('parameter')
    sigma = regular_fit.draws('sigma')

    assert summary.loc['sigma', 'mean'] == pytest.approx(sigma.mean())
    assert summary.loc['sigma', 'ci_lower'] == pytest.approx(np.quantile(sigma, 0.025))
    assert summary.loc['sigma', 'ci_lower'] > 0


def test_hdi_interval(hierarchical_fit):
    eti = summarize_posterior(hierarchical_fit, ci_prob=0.9, kind='eti')
    hdi = summarize_posterior(hierarchical_fit, ci_prob=0.9, kind='hdi')

    width_eti = (eti['ci_upper'] - eti['ci_lower']).to_numpy()
    width_hdi = (hdi['ci_upper'] - hdi['ci_lower']).to_numpy()
    assert np.all(width_hdi > 0)
    assert np.allclose(width_hdi, width_eti, rtol=0.5)
    assert np.allclose(hdi['mean'], eti['mean'])


@pytest.mark.parametrize('kwargs', [
    {'ci_prob': 0.0},
    {'ci_prob': 1.0},
    {'kind': 'hpd'},
])
def test_summary_invalid_arguments(regular_fit, kwargs):
    with pytest.raises(ValueError):
        summarize_posterior(regular_fit, **kwargs)


# ============================================================================
# Test 2: slope_draws
# ============================================================================

def test_slope_draws_long_format(hierarchical_fit):
    draws = slope_draws(hierarchical_fit)

    n = hierarchical_fit.n_chains * hierarchical_fit.draws_per_chain * 8
    assert len(draws) == n
    assert list(draws.columns) == ['model', 'chain', 'draw', 'group', 'slope']
    assert sorted(draws['group'].unique()) == list(range(1, 9))


def test_slope_draws_match_posterior(hierarchical_fit):
    draws = slope_draws(hierarchical_fit)
    group3 = draws.loc[draws['group'] == 3, 'slope'].to_numpy()

    assert np.allclose(np.sort(group3), np.sort(hierarchical_fit.draws('beta')[:, 2]))


def test_slope_draws_do_not_mutate_result(hierarchical_fit):
    before = hierarchical_fit.draws('beta').copy()
    draws = slope_draws(hierarchical_fit)
    draws['slope'] = 0.0

    assert np.array_equal(hierarchical_fit.draws('beta'), before)


# ============================================================================
# Test 3: Model Comparison and Shrinkage
# ============================================================================

def test_compare_slopes(hierarchical_fit, regular_fit, unpooled_fit, dataset):
    comparison = compare_slopes([regular_fit, unpooled_fit, hierarchical_fit], dataset)

    assert isinstance(comparison, pd.DataFrame)
    assert len(comparison) == 24
    assert list(comparison['model'].unique()) == ['regular', 'unpooled', 'hierarchical']
    assert (comparison['sd'] >= 0).all()
    assert comparison['covers_truth'].dtype == bool


def test_compare_slopes_accepts_mapping(hierarchical_fit, dataset):
    comparison = compare_slopes({'h': hierarchical_fit}, dataset)
    assert set(comparison['model']) == {'h'}


def test_partial_pooling_narrows_slope_posteriors(hierarchical_fit, regular_fit, dataset):
    comparison = compare_slopes([regular_fit, hierarchical_fit], dataset)
    mean_sd = comparison.groupby('model')['sd'].mean()

    assert mean_sd['hierarchical'] < mean_sd['regular']


def test_shrinkage_table(hierarchical_fit, dataset):
    table = shrinkage_table(hierarchical_fit, dataset)

    assert len(table) == 8
    assert set(table.columns) >= {'group', 'n_obs', 'ols_slope', 'posterior_mean',
                                  'beta_mu_mean', 'shrinkage'}
    assert table['beta_mu_mean'].nunique() == 1


def test_shrinkage_requires_hierarchical(regular_fit, dataset):
    with pytest.raises(ValueError):
        shrinkage_table(regular_fit, dataset)
