"""Shared fixtures: one simulated dataset and short-chain fits reused across tests."""

import warnings

import matplotlib
matplotlib.use('Agg')

import pytest

from partialpool import GroupedDataSimulator, SamplerConfig
from partialpool.models import fit_model, hierarchical_model, regular_model, unpooled_model


@pytest.fixture(scope='session')
def dataset():
    """Reference dataset (seed 28, 94 observations)."""
    return GroupedDataSimulator().simulate()


@pytest.fixture(scope='session')
def quick_config():
    """Short chains for fast tests."""
    return SamplerConfig(n_iter=2000, n_burnin=500, n_thin=2, n_chains=2,
                         random_seed=1, ess_threshold=100)


@pytest.fixture(scope='session')
def hierarchical_fit(dataset, quick_config):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return fit_model(hierarchical_model(), dataset, quick_config, verbose=False)


@pytest.fixture(scope='session')
def regular_fit(dataset, quick_config):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return fit_model(regular_model(), dataset, quick_config, verbose=False)


@pytest.fixture(scope='session')
def unpooled_fit(dataset, quick_config):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return fit_model(unpooled_model(), dataset, quick_config, verbose=False)
