"""
Unit Tests for the Model Fitter and Convergence Checks
======================================================
"""

import dataclasses
import warnings

import arviz as az
import numpy as np
import pandas as pd
import pytest

from partialpool import SamplerConfig, SamplerNonConvergence
from partialpool.models import ModelFitter, compute_ols_estimates, fit_model
from partialpool.models.specification import (
    complete_pooling_model,
    hierarchical_model,
    regular_model,
)


# ============================================================================
# Test 1: FitResult Structure
# ============================================================================

def test_fit_result_holds_inference_data(hierarchical_fit, quick_config):
    assert isinstance(hierarchical_fit.trace, az.InferenceData)
    assert hierarchical_fit.model_name == 'hierarchical'
    assert hierarchical_fit.n_chains == quick_config.n_chains
    assert hierarchical_fit.draws_per_chain == quick_config.draws_per_chain == 750


def test_posterior_variables(hierarchical_fit, regular_fit):
    assert set(hierarchical_fit.parameter_names) == {
        'alpha', 'beta', 'sigma', 'beta_mu', 'sigma_beta'
    }
    assert set(regular_fit.parameter_names) == {'alpha', 'beta', 'sigma'}


def test_beta_has_group_coordinate(hierarchical_fit):
    beta = hierarchical_fit.trace.posterior['beta']
    assert list(beta.coords['group'].values) == list(range(1, 9))


def test_observed_data_attached(hierarchical_fit, dataset):
    observed = hierarchical_fit.trace.observed_data['y'].values
    assert np.array_equal(observed, dataset.y)


def test_fit_result_is_frozen(regular_fit):
    with pytest.raises(dataclasses.FrozenInstanceError):
        regular_fit.model_name = 'other'


def test_draws_returns_copy(regular_fit):
    before = regular_fit.draws('sigma')
    before[:] = -1.0
    after = regular_fit.draws('sigma')

    assert np.all(after > 0)


def test_draws_unknown_parameter(regular_fit):
    with pytest.raises(KeyError):
        regular_fit.draws('beta_mu')


def test_sampler_stats_recorded(hierarchical_fit):
    assert 'sigma_acceptance' in hierarchical_fit.sampler_stats
    assert 'sigma_beta_acceptance' in hierarchical_fit.sampler_stats


# ============================================================================
# Test 2: Convergence Diagnostics
# ============================================================================

def test_diagnostics_table(hierarchical_fit):
    table = hierarchical_fit.diagnostics.table

    assert isinstance(table, pd.DataFrame)
    assert set(table.columns) >= {'parameter', 'r_hat', 'ess_bulk'}
    # alpha, beta[1..8], sigma, beta_mu, sigma_beta
    assert len(table) == 12
    assert 'beta[8]' in set(table['parameter'])
    assert (table['r_hat'] > 0).all()
    assert (table['ess_bulk'] > 0).all()


def test_regular_model_converges(regular_fit):
    diagnostics = regular_fit.diagnostics
    assert diagnostics.rhat_max < 1.05
    assert diagnostics.to_dict()['all_ok'] == diagnostics.converged


def test_default_hierarchical_fit_reaches_ess_threshold(dataset):
    """Full-length default run of the hierarchical model passes both checks."""
    config = SamplerConfig()

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = fit_model(hierarchical_model(), dataset, config, verbose=False)

    table = result.diagnostics.table.set_index('parameter')
    assert table.loc['sigma_beta', 'ess_bulk'] > config.ess_threshold
    assert table.loc['beta_mu', 'ess_bulk'] > config.ess_threshold
    assert result.diagnostics.ess_ok
    assert result.diagnostics.rhat_ok
    assert not any(issubclass(w.category, SamplerNonConvergence) for w in caught)


def test_short_chain_warns_non_convergence(dataset):
    config = SamplerConfig(n_iter=60, n_burnin=10, n_thin=1, n_chains=2,
                           ess_threshold=1e6)

    with pytest.warns(SamplerNonConvergence):
        result = fit_model(regular_model(), dataset, config, verbose=False)

    assert not result.converged
    assert not result.diagnostics.ess_ok


def test_check_convergence_on_existing_trace(regular_fit, quick_config):
    fitter = ModelFitter(regular_model(), quick_config.with_options(rhat_threshold=0.5))

    with pytest.warns(SamplerNonConvergence):
        diagnostics = fitter.check_convergence(regular_fit.trace, verbose=False)

    assert not diagnostics.rhat_ok


def test_verbose_fit_prints_progress(dataset, capsys):
    config = SamplerConfig(n_iter=200, n_burnin=50, n_thin=1, ess_threshold=10)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        fit_model(complete_pooling_model(), dataset, config, verbose=True)

    out = capsys.readouterr().out
    assert 'MCMC SAMPLING: COMPLETE_POOLING' in out
    assert 'CONVERGENCE DIAGNOSTICS' in out


# ============================================================================
# Test 3: Least-Squares Reference
# ============================================================================

def test_ols_estimates(dataset):
    slopes = compute_ols_estimates(dataset)

    assert slopes.shape == (8,)
    assert np.all(np.isfinite(slopes))
    # Large low-noise groups are close to the truth
    assert np.all(np.abs(slopes[:2] - dataset.true_slopes[:2]) < 0.75)
