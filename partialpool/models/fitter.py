"""
Model Fitter

Runs one ``ModelSpec`` against a ``SimulatedDataset`` with the configured
backend, packages the draws as ``arviz.InferenceData`` and checks
convergence with R̂ and ESS.

"""

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import arviz as az
import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from ..exceptions import SamplerNonConvergence
from ..simulation import SimulatedDataset
from .config import SamplerConfig
from .gibbs import GibbsSampler
from .specification import ModelSpec


@dataclass(frozen=True)
class ConvergenceDiagnostics:
    """
    Convergence summary for one fit.

    Attributes
    ----------
    rhat_max : float
        Largest R̂ over every scalar parameter
    ess_min : float
        Smallest bulk effective sample size
    rhat_ok : bool
        ``rhat_max`` below the configured threshold
    ess_ok : bool
        ``ess_min`` above the configured threshold
    table : pd.DataFrame
        Per-parameter ``parameter``, ``r_hat``, ``ess_bulk``
    """

    rhat_max: float
    ess_min: float
    rhat_ok: bool
    ess_ok: bool
    table: pd.DataFrame = field(repr=False, compare=False)

    @property
    def converged(self) -> bool:
        return self.rhat_ok and self.ess_ok

    def to_dict(self) -> Dict[str, float]:
        return {
            'rhat_ok': self.rhat_ok,
            'rhat_max': self.rhat_max,
            'ess_ok': self.ess_ok,
            'ess_min': self.ess_min,
            'all_ok': self.converged,
        }


@dataclass(frozen=True)
class FitResult:
    """
    Posterior draws and diagnostics of one model fit.

    Attributes
    ----------
    model_name : str
        Name of the fitted ``ModelSpec``
    spec : ModelSpec
        Fitted model
    config : SamplerConfig
        Sampler settings used
    trace : az.InferenceData
        Retained draws; posterior variables ``alpha``, ``beta`` (dim
        ``group``), ``sigma`` and, for hierarchical models, ``beta_mu``
        and ``sigma_beta``
    diagnostics : ConvergenceDiagnostics
        R̂ / ESS summary
    sampler_stats : Dict[str, list]
        Backend-specific per-chain statistics (acceptance rates, divergences)
    """

    model_name: str
    spec: ModelSpec = field(repr=False)
    config: SamplerConfig = field(repr=False)
    trace: az.InferenceData = field(repr=False)
    diagnostics: ConvergenceDiagnostics
    sampler_stats: Dict[str, list] = field(default_factory=dict, repr=False)

    @property
    def converged(self) -> bool:
        return self.diagnostics.converged

    @property
    def n_chains(self) -> int:
        return int(self.trace.posterior.sizes['chain'])

    @property
    def draws_per_chain(self) -> int:
        return int(self.trace.posterior.sizes['draw'])

    @property
    def parameter_names(self) -> List[str]:
        return list(self.trace.posterior.data_vars)

    def draws(self, name: str) -> np.ndarray:
        """
        Copy of the pooled draws of one variable.

        Returns
        -------
        values : np.ndarray
            Shape (chains * draws,) for scalars, (chains * draws, n_groups)
            for ``beta``
        """
        if name not in self.trace.posterior:
            raise KeyError(
                f"Unknown parameter '{name}' for model '{self.model_name}'. "
                f"Available: {self.parameter_names}"
            )
        values = self.trace.posterior[name].values
        return np.array(values.reshape((-1,) + values.shape[2:]), copy=True)


class ModelFitter:
    """
    Fit a grouped regression model via MCMC.

    Parameters
    ----------
    spec : ModelSpec
        Model to fit
    config : SamplerConfig, optional
        Sampler settings; defaults to 10000 iterations, 2000 burn-in,
        thinning 4, two chains with the Gibbs backend

    Examples
    --------
    >>> fitter = ModelFitter(hierarchical_model())
    >>> result = fitter.fit(dataset)
    >>> result.diagnostics.rhat_max
    1.001...
    """

    def __init__(
        self,
        spec: ModelSpec,
        config: Optional[SamplerConfig] = None
    ):
        self.spec = spec
        self.config = config if config is not None else SamplerConfig()

    def fit(
        self,
        dataset: SimulatedDataset,
        verbose: bool = True
    ) -> FitResult:
        """
        Sample the posterior and check convergence.

        Parameters
        ----------
        dataset : SimulatedDataset
            Observations to condition on (not modified)
        verbose : bool, optional (default=True)
            If True, print configuration, progress and diagnostics

        Returns
        -------
        result : FitResult
            Immutable result holding draws and diagnostics

        Raises
        ------
        SamplerRuntimeFailure
            If the sampler cannot be initialised

        Warns
        -----
        SamplerNonConvergence
            If R̂ or ESS fail their thresholds
        """
        cfg = self.config

        if verbose:
            print(f"\n{'=' * 80}")
            print(f"MCMC SAMPLING: {self.spec.name.upper()}")
            print(f"{'=' * 80}")
            print(self.spec.describe())
            print(f"\nMCMC Configuration:")
            print(f"  Backend: {cfg.backend}")
            print(f"  Chains: {cfg.n_chains}")
            print(f"  Iterations per chain: {cfg.n_iter}")
            print(f"  Burn-in (discarded): {cfg.n_burnin}")
            print(f"  Thinning: {cfg.n_thin}")
            print(f"  Retained draws per chain: {cfg.draws_per_chain}")
            print(f"Start time: {pd.Timestamp.now().strftime('%H:%M:%S')}")

        draws, stats = self._sample(dataset, verbose=verbose)
        trace = _to_inference_data(draws, dataset)

        if verbose:
            print(f"End time: {pd.Timestamp.now().strftime('%H:%M:%S')}")
            print(f"\n✓ MCMC sampling completed")
            print(f"  Total retained draws: {cfg.total_draws}")

        diagnostics = self.check_convergence(trace, verbose=verbose)

        return FitResult(
            model_name=self.spec.name,
            spec=self.spec,
            config=cfg,
            trace=trace,
            diagnostics=diagnostics,
            sampler_stats=stats,
        )

    def check_convergence(
        self,
        trace: az.InferenceData,
        verbose: bool = True
    ) -> ConvergenceDiagnostics:
        """
        Check MCMC convergence using R̂ and bulk ESS.

        Non-convergence is reported with a ``SamplerNonConvergence`` warning
        and recorded in the returned diagnostics; it does not raise.

        Parameters
        ----------
        trace : az.InferenceData
            Retained draws
        verbose : bool, optional (default=True)
            If True, print the convergence summary

        Returns
        -------
        diagnostics : ConvergenceDiagnostics
        """
        cfg = self.config

        rhat = _flatten(az.rhat(trace))
        ess = _flatten(az.ess(trace, method='bulk'))

        table = pd.DataFrame({
            'parameter': [name for name, _ in rhat],
            'r_hat': [value for _, value in rhat],
            'ess_bulk': [value for _, value in ess],
        })

        rhat_values = table['r_hat'].to_numpy(dtype=float)
        ess_values = table['ess_bulk'].to_numpy(dtype=float)

        # R̂ and ESS are NaN for constant draws
        rhat_max = float(np.nanmax(rhat_values)) if np.any(np.isfinite(rhat_values)) else np.nan
        ess_min = float(np.nanmin(ess_values)) if np.any(np.isfinite(ess_values)) else np.nan

        rhat_ok = bool(np.isfinite(rhat_max) and rhat_max < cfg.rhat_threshold)
        ess_ok = bool(np.isfinite(ess_min) and ess_min > cfg.ess_threshold)

        diagnostics = ConvergenceDiagnostics(
            rhat_max=rhat_max,
            ess_min=ess_min,
            rhat_ok=rhat_ok,
            ess_ok=ess_ok,
            table=table,
        )

        if verbose:
            print(f"\n{'=' * 80}")
            print("CONVERGENCE DIAGNOSTICS")
            print(f"{'=' * 80}")
            print(f"\n1. R̂ (Gelman-Rubin Statistic)")
            print(f"   Criterion: R̂ < {cfg.rhat_threshold} for all parameters")
            print(f"   Max R̂: {rhat_max:.6f}")
            print(f"   Status: {'✓ PASS' if rhat_ok else '✗ FAIL'}")
            print(f"\n2. ESS (Effective Sample Size)")
            print(f"   Criterion: ESS > {cfg.ess_threshold:.0f} for all parameters")
            print(f"   Min ESS: {ess_min:.0f}")
            print(f"   Status: {'✓ PASS' if ess_ok else '✗ FAIL'}")
            print(f"{'=' * 80}")

        if not diagnostics.converged:
            problems = []
            if not rhat_ok:
                problems.append(f"max R̂ = {rhat_max:.4f} (threshold {cfg.rhat_threshold})")
            if not ess_ok:
                problems.append(f"min ESS = {ess_min:.0f} (threshold {cfg.ess_threshold:.0f})")
            warnings.warn(
                f"Model '{self.spec.name}' has not converged: {'; '.join(problems)}. "
                "Increase n_iter or n_burnin and re-run.",
                SamplerNonConvergence,
                stacklevel=2,
            )

        return diagnostics

    def _sample(
        self,
        dataset: SimulatedDataset,
        verbose: bool
    ) -> Tuple[Dict[str, np.ndarray], Dict[str, list]]:
        if self.config.backend == 'pymc':
            from .pymc_backend import run_pymc
            return run_pymc(self.spec, dataset, self.config, verbose=verbose)

        sampler = GibbsSampler(self.spec, dataset, self.config)
        draws = sampler.run(verbose=verbose)
        stats = {
            f'{name}_acceptance': rates for name, rates in sampler.acceptance_.items()
        }
        return draws, stats


def fit_model(
    spec: ModelSpec,
    dataset: SimulatedDataset,
    config: Optional[SamplerConfig] = None,
    verbose: bool = True
) -> FitResult:
    """Fit ``spec`` to ``dataset``; see ``ModelFitter.fit``."""
    return ModelFitter(spec, config).fit(dataset, verbose=verbose)


def compute_ols_estimates(dataset: SimulatedDataset) -> np.ndarray:
    """
    Per-group least-squares slopes (no pooling, no priors).

    Each group gets its own intercept and slope, fitted with scikit-learn's
    ``LinearRegression``. Used as the reference point for shrinkage.

    Returns
    -------
    slopes : np.ndarray, shape (n_groups,)
        NaN for groups with fewer than two observations
    """
    x = np.asarray(dataset.x)
    y = np.asarray(dataset.y)
    slopes = np.full(dataset.n_groups, np.nan)

    for j in range(dataset.n_groups):
        mask = dataset.group_index == j
        if mask.sum() < 2:
            continue
        lr = LinearRegression(fit_intercept=True)
        lr.fit(x[mask].reshape(-1, 1), y[mask])
        slopes[j] = lr.coef_[0]

    return slopes


def _to_inference_data(
    draws: Dict[str, np.ndarray],
    dataset: SimulatedDataset
) -> az.InferenceData:
    return az.from_dict(
        posterior={name: np.array(values, copy=True) for name, values in draws.items()},
        observed_data={'y': np.array(dataset.y)},
        constant_data={'x': np.array(dataset.x), 'group_label': np.array(dataset.group)},
        coords={
            'group': np.arange(1, dataset.n_groups + 1),
            'obs_id': np.arange(dataset.n_obs),
        },
        dims={
            'beta': ['group'],
            'y': ['obs_id'],
            'x': ['obs_id'],
            'group_label': ['obs_id'],
        },
    )


def _flatten(ds) -> List[Tuple[str, float]]:
    """Flatten an xarray Dataset of per-parameter statistics into labelled scalars."""
    out = []
    for var in ds.data_vars:
        values = np.atleast_1d(ds[var].values)
        if values.size == 1 and ds[var].ndim == 0:
            out.append((var, float(values[0])))
            continue
        labels = ds[var].coords['group'].values if 'group' in ds[var].dims else \
            np.arange(values.size)
        for label, value in zip(labels, values.ravel()):
            out.append((f"{var}[{label}]", float(value)))
    return out
