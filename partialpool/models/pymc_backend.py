"""
PyMC Backend

Builds a ``pymc.Model`` equivalent to a ``ModelSpec`` and samples it with
NUTS. Burn-in maps onto NUTS tuning; thinning is applied to the returned
draws so that both backends hand back the same number of draws per chain.

"""

from typing import Dict, Tuple

import numpy as np
import pymc as pm
import pytensor.tensor as pt

from ..exceptions import ModelSpecificationError, SamplerRuntimeFailure
from ..simulation import SimulatedDataset
from .config import SamplerConfig
from .specification import (
    HIERARCHICAL,
    POOLED,
    HalfNormal,
    HalfStudentT,
    ModelSpec,
    Normal,
    Uniform,
)


def prior_to_pymc(prior, name: str, **kwargs):
    """Create the PyMC random variable for ``prior`` inside the active model."""
    if isinstance(prior, Normal):
        return pm.Normal(name, mu=prior.mu, sigma=prior.sigma, **kwargs)
    if isinstance(prior, Uniform):
        return pm.Uniform(name, lower=prior.lower, upper=prior.upper, **kwargs)
    if isinstance(prior, HalfNormal):
        return pm.HalfNormal(name, sigma=prior.sigma, **kwargs)
    if isinstance(prior, HalfStudentT):
        return pm.HalfStudentT(name, nu=prior.nu, sigma=prior.sigma, **kwargs)
    raise ModelSpecificationError(f"No PyMC distribution for prior {prior!r}")


def build_pymc_model(spec: ModelSpec, dataset: SimulatedDataset) -> pm.Model:
    """
    Specify the grouped regression model in PyMC.

    The hierarchical model uses a non-centered parameterization
    (β_j = β_mu + σ_beta · z_j, z_j ~ Normal(0, 1)) to avoid the funnel
    geometry between σ_beta and the group slopes.

    Parameters
    ----------
    spec : ModelSpec
        Model to build
    dataset : SimulatedDataset
        Observed data

    Returns
    -------
    model : pm.Model
        Model with variables ``alpha``, ``beta`` (dims ``group``), ``sigma``
        and, for hierarchical models, ``beta_mu`` and ``sigma_beta``
    """

    x = np.asarray(dataset.x, dtype=np.float64)
    y = np.asarray(dataset.y, dtype=np.float64)
    g = np.asarray(dataset.group_index, dtype=np.int32)

    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise SamplerRuntimeFailure("Non-finite values found in x or y")

    coords = {
        'group': np.arange(1, dataset.n_groups + 1),
        'obs_id': np.arange(dataset.n_obs),
    }

    with pm.Model(coords=coords) as model:
        x_const = pt.as_tensor_variable(x)
        g_const = pt.as_tensor_variable(g)

        alpha = spec.intercept_prior.to_pymc('alpha')

        if spec.slope_structure == HIERARCHICAL:
            beta_mu = spec.slope_mu_prior.to_pymc('beta_mu')
            sigma_beta = spec.slope_sigma_prior.to_pymc('sigma_beta')
            beta_raw = pm.Normal('beta_raw', mu=0.0, sigma=1.0, dims='group')
            beta = pm.Deterministic('beta', beta_mu + sigma_beta * beta_raw, dims='group')
        elif spec.slope_structure == POOLED:
            beta_shared = spec.slope_prior.to_pymc('beta_shared')
            beta = pm.Deterministic(
                'beta', beta_shared * pt.ones(dataset.n_groups), dims='group'
            )
        else:
            beta = spec.slope_prior.to_pymc('beta', dims='group')

        sigma = spec.sigma_prior.to_pymc('sigma')

        mu = alpha + beta[g_const] * x_const
        pm.Normal('y_obs', mu=mu, sigma=sigma, observed=y, dims='obs_id')

    return model


def run_pymc(
    spec: ModelSpec,
    dataset: SimulatedDataset,
    config: SamplerConfig,
    verbose: bool = False
) -> Tuple[Dict[str, np.ndarray], Dict[str, list]]:
    """
    Sample ``spec`` with NUTS and return thinned draws.

    Returns
    -------
    draws : Dict[str, np.ndarray]
        Same layout as the Gibbs backend: (chains, draws[, n_groups])
    stats : Dict[str, list]
        Per-chain mean acceptance rate and divergence count

    Raises
    ------
    SamplerRuntimeFailure
        If the model cannot be compiled or initialised
    """
    try:
        model = build_pymc_model(spec, dataset)
        with model:
            trace = pm.sample(
                draws=config.n_iter - config.n_burnin,
                tune=config.n_burnin,
                chains=config.n_chains,
                cores=1,
                target_accept=config.target_accept,
                random_seed=config.random_seed,
                progressbar=verbose,
                compute_convergence_checks=False,
                return_inferencedata=True,
            )
    except SamplerRuntimeFailure:
        raise
    except (pm.exceptions.SamplingError, ValueError, RuntimeError) as exc:
        raise SamplerRuntimeFailure(
            f"PyMC sampling failed for model '{spec.name}': {exc}"
        ) from exc

    names = ['alpha', 'beta', 'sigma']
    if spec.is_hierarchical:
        names += ['beta_mu', 'sigma_beta']

    # Keep the last draw of every thinning window, as the Gibbs backend does
    thin = slice(config.n_thin - 1, None, config.n_thin)
    draws = {
        name: np.asarray(trace.posterior[name].values[:, thin], dtype=np.float64)
        for name in names
    }

    sample_stats = trace.sample_stats
    stats = {
        'acceptance_rate': [
            float(v) for v in sample_stats['acceptance_rate'].mean(dim='draw').values
        ],
        'divergences': [
            int(v) for v in sample_stats['diverging'].sum(dim='draw').values
        ],
    }

    return draws, stats
