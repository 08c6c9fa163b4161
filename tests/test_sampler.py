"""
Unit Tests for the Gibbs Sampler
================================
"""

import warnings

import numpy as np
import pytest

from partialpool import SamplerConfig, SamplerRuntimeFailure, SimulatedDataset, SimulationConfig
from partialpool.models import fit_model
from partialpool.models.gibbs import GibbsSampler, run_gibbs
from partialpool.models.specification import (
    complete_pooling_model,
    hierarchical_model,
    regular_model,
)


@pytest.fixture
def small_config():
    return SamplerConfig(n_iter=1003, n_burnin=100, n_thin=4, n_chains=2, random_seed=7)


# ============================================================================
# Test 1: Draw Layout
# ============================================================================

def test_retained_draws_follow_burnin_and_thinning(dataset, small_config):
    draws, _ = run_gibbs(regular_model(), dataset, small_config)

    assert draws['alpha'].shape == (2, 225)
    assert draws['sigma'].shape == (2, 225)
    assert draws['beta'].shape == (2, 225, 8)
    assert 'beta_mu' not in draws


def test_hierarchical_draws_include_hyperparameters(dataset, small_config):
    draws, acceptance = run_gibbs(hierarchical_model(), dataset, small_config)

    assert draws['beta_mu'].shape == (2, 225)
    assert draws['sigma_beta'].shape == (2, 225)
    assert set(acceptance) == {'sigma', 'sigma_beta'}
    assert len(acceptance['sigma']) == 2


def test_single_chain(dataset):
    config = SamplerConfig(n_iter=400, n_burnin=100, n_thin=3, n_chains=1)
    draws, _ = run_gibbs(regular_model(), dataset, config)
    assert draws['beta'].shape == (1, 100, 8)


# ============================================================================
# Test 2: Support and Determinism
# ============================================================================

def test_scale_draws_strictly_positive(dataset, small_config):
    draws, _ = run_gibbs(hierarchical_model(), dataset, small_config)

    assert np.all(draws['sigma'] > 0)
    assert np.all(draws['sigma'] < 30)  # Uniform(0, 30) support
    assert np.all(draws['sigma_beta'] > 0)


def test_same_seed_same_draws(dataset, small_config):
    a, _ = run_gibbs(hierarchical_model(), dataset, small_config)
    b, _ = run_gibbs(hierarchical_model(), dataset, small_config)

    for name in a:
        assert np.array_equal(a[name], b[name])


def test_chains_differ(dataset, small_config):
    draws, _ = run_gibbs(regular_model(), dataset, small_config)
    assert not np.array_equal(draws['alpha'][0], draws['alpha'][1])


def test_complete_pooling_shares_one_slope(dataset, small_config):
    draws, _ = run_gibbs(complete_pooling_model(), dataset, small_config)
    beta = draws['beta']

    assert np.allclose(beta, beta[..., :1])


def test_acceptance_rates_reasonable(dataset, small_config):
    sampler = GibbsSampler(hierarchical_model(), dataset, small_config)
    sampler.run()

    for rates in sampler.acceptance_.values():
        for rate in rates:
            assert 0.05 < rate < 0.95


def test_interweaving_keeps_standardised_slopes(dataset):
    sampler = GibbsSampler(hierarchical_model(), dataset, SamplerConfig(random_seed=3))
    rng = np.random.default_rng(3)
    state = sampler._initial_state(rng)
    z_before = (state['beta'] - state['beta_mu']) / state['sigma_beta']

    for _ in range(20):
        sampler._interweave(state, rng)

    z_after = (state['beta'] - state['beta_mu']) / state['sigma_beta']
    assert np.allclose(z_after, z_before)
    assert state['sigma_beta'] > 0
    assert np.isfinite(sampler._log_posterior(state))


# ============================================================================
# Test 3: Posterior Sanity
# ============================================================================

def test_hierarchical_population_slope_near_truth(dataset):
    config = SamplerConfig(n_iter=4000, n_burnin=1000, n_thin=2, n_chains=2, random_seed=11)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        result = fit_model(hierarchical_model(), dataset, config, verbose=False)

    beta_mu_mean = result.draws('beta_mu').mean()
    assert abs(beta_mu_mean - 2.0) < 0.75


def test_slope_posteriors_recover_large_groups(regular_fit, dataset):
    # Groups 1-2 have 14 observations with sigma = 0.5
    means = regular_fit.draws('beta').mean(axis=0)
    assert np.all(np.abs(means[:2] - dataset.true_slopes[:2]) < 0.75)


# ============================================================================
# Test 4: Failures
# ============================================================================

def test_non_finite_data_raises():
    y = np.zeros(6)
    y[2] = np.nan
    bad = SimulatedDataset(
        x=np.linspace(-1, 1, 6),
        y=y,
        group=[1, 1, 1, 2, 2, 2],
        true_slopes=[2.0, 2.0],
        config=SimulationConfig(),
    )

    with pytest.raises(SamplerRuntimeFailure):
        GibbsSampler(regular_model(), bad, SamplerConfig())


def test_runtime_failure_is_runtime_error():
    assert issubclass(SamplerRuntimeFailure, RuntimeError)
