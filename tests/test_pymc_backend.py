"""
Tests for the PyMC Backend
==========================

Short NUTS runs only; they check wiring (variables, thinning, support), not
posterior accuracy.
"""

import warnings

import numpy as np
import pymc as pm
import pytest

from partialpool import SamplerConfig, SamplerRuntimeFailure
from partialpool.models import fit_model
from partialpool.models.pymc_backend import build_pymc_model, prior_to_pymc, run_pymc
from partialpool.models.specification import (
    HalfStudentT,
    Normal,
    Uniform,
    complete_pooling_model,
    hierarchical_model,
    regular_model,
)


def test_build_hierarchical_model(dataset):
    model = build_pymc_model(hierarchical_model(), dataset)
    names = {rv.name for rv in model.free_RVs}

    assert names == {'alpha', 'beta_mu', 'sigma_beta', 'beta_raw', 'sigma'}
    assert 'beta' in {d.name for d in model.deterministics}
    assert list(model.coords['group']) == list(range(1, 9))


def test_build_independent_model(dataset):
    model = build_pymc_model(regular_model(), dataset)
    names = {rv.name for rv in model.free_RVs}

    assert names == {'alpha', 'beta', 'sigma'}


def test_build_pooled_model(dataset):
    model = build_pymc_model(complete_pooling_model(), dataset)
    names = {rv.name for rv in model.free_RVs}

    assert names == {'alpha', 'beta_shared', 'sigma'}


def test_prior_to_pymc_rejects_unknown_prior():
    with pm.Model():
        with pytest.raises(ValueError):
            prior_to_pymc(object(), 'x')


def test_pymc_fit_thins_draws(dataset):
    config = SamplerConfig(n_iter=300, n_burnin=200, n_thin=2, n_chains=2,
                           backend='pymc', random_seed=5, ess_threshold=10)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        result = fit_model(hierarchical_model(), dataset, config, verbose=False)

    assert result.draws_per_chain == 50
    assert set(result.parameter_names) == {'alpha', 'beta', 'sigma', 'beta_mu', 'sigma_beta'}
    assert np.all(result.draws('sigma') > 0)
    assert np.all(result.draws('sigma_beta') > 0)
    assert len(result.sampler_stats['divergences']) == 2


def test_priors_create_pymc_variables():
    with pm.Model() as model:
        Normal(0.0, 10.0).to_pymc('a')
        Uniform(0.0, 30.0).to_pymc('b')
        HalfStudentT(3.0, 2.5).to_pymc('c')

    assert {rv.name for rv in model.free_RVs} == {'a', 'b', 'c'}


def test_sampling_error_is_wrapped(dataset, monkeypatch):
    def failing_sample(*args, **kwargs):
        raise pm.exceptions.SamplingError("Initial evaluation of model at starting point failed!")

    monkeypatch.setattr(pm, 'sample', failing_sample)
    config = SamplerConfig(n_iter=300, n_burnin=200, n_thin=2, backend='pymc')

    with pytest.raises(SamplerRuntimeFailure, match="PyMC sampling failed for model 'regular'"):
        run_pymc(regular_model(), dataset, config)

    with pytest.raises(SamplerRuntimeFailure):
        fit_model(regular_model(), dataset, config, verbose=False)
