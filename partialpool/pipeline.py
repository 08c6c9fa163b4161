"""partialpool Pipeline - simulate, fit every model, summarize"""

import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

import pandas as pd

from .exceptions import SamplerRuntimeFailure
from .models.config import SamplerConfig
from .models.fitter import FitResult, fit_model
from .models.specification import ModelSpec, default_model_specs
from .posterior.summary import compare_slopes, shrinkage_table, summarize_posterior
from .simulation import GroupedDataSimulator, SimulatedDataset, SimulationConfig


@dataclass(frozen=True)
class ComparisonResults:
    """
    Outcome of one pipeline run.

    Attributes
    ----------
    dataset : SimulatedDataset
        The simulated data every model was fitted to
    fits : Dict[str, FitResult]
        Successful fits keyed by model name, in fitting order
    failures : Dict[str, str]
        Models whose sampler failed, with the error message
    """

    dataset: SimulatedDataset
    fits: Dict[str, FitResult] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def unconverged(self) -> list:
        return [name for name, fit in self.fits.items() if not fit.converged]

    def summary_table(self, ci_prob: float = 0.95, kind: str = 'eti') -> pd.DataFrame:
        """Concatenated ``summarize_posterior`` output for every fitted model."""
        if not self.fits:
            raise RuntimeError("No model was fitted successfully.")
        return pd.concat(
            [summarize_posterior(fit, ci_prob=ci_prob, kind=kind) for fit in self.fits.values()],
            ignore_index=True,
        )

    def slope_comparison(self, ci_prob: float = 0.95) -> pd.DataFrame:
        if not self.fits:
            raise RuntimeError("No model was fitted successfully.")
        return compare_slopes(self.fits, self.dataset, ci_prob=ci_prob)

    def shrinkage(self, model_name: str = 'hierarchical') -> pd.DataFrame:
        if model_name not in self.fits:
            raise KeyError(f"Model '{model_name}' was not fitted.")
        return shrinkage_table(self.fits[model_name], self.dataset)

    def diagnostics_table(self) -> pd.DataFrame:
        """One row per model: max R̂, min ESS and convergence flags."""
        rows = []
        for name, fit in self.fits.items():
            row = {'model': name}
            row.update(fit.diagnostics.to_dict())
            rows.append(row)
        return pd.DataFrame(rows)


class ComparisonPipeline:
    """
    End-to-end comparison of regular, unpooled and hierarchical models.

    Simulates one dataset, fits each model to it in turn and exposes the
    summaries. Each fit gets its own immutable ``FitResult``; nothing is
    shared between fits except the read-only dataset.

    Parameters
    ----------
    simulation_config : SimulationConfig, optional
        Generative parameters; defaults reproduce the reference dataset
    sampler_config : SamplerConfig, optional
        MCMC settings; defaults to 10000 iterations, 2000 burn-in, thin 4
    quick_mode : bool, default=False
        If True and no sampler_config is given, uses short chains
        (2000 iterations, 500 burn-in, thin 2) for prototyping
    verbose : bool, default=True
        Print progress and diagnostics

    Examples
    --------
    >>> from partialpool import ComparisonPipeline
    >>> pipeline = ComparisonPipeline(quick_mode=True)
    >>> results = pipeline.run()
    >>> results.summary_table()
    """

    def __init__(
        self,
        simulation_config: Optional[SimulationConfig] = None,
        sampler_config: Optional[SamplerConfig] = None,
        quick_mode: bool = False,
        verbose: bool = True
    ):
        self.simulation_config = (
            simulation_config if simulation_config is not None else SimulationConfig()
        )
        if sampler_config is None:
            sampler_config = SamplerConfig.quick() if quick_mode else SamplerConfig()
        self.sampler_config = sampler_config
        self.quick_mode = quick_mode
        self.verbose = verbose

    def simulate(self) -> SimulatedDataset:
        """Generate the dataset. Configuration errors propagate and stop the run."""
        return GroupedDataSimulator(self.simulation_config).simulate(verbose=self.verbose)

    def run(
        self,
        specs: Optional[Iterable[ModelSpec]] = None,
        dataset: Optional[SimulatedDataset] = None
    ) -> ComparisonResults:
        """
        Simulate (unless ``dataset`` is given) and fit every model in order.

        Parameters
        ----------
        specs : Iterable[ModelSpec], optional
            Models to fit; defaults to regular, unpooled, hierarchical
        dataset : SimulatedDataset, optional
            Pre-simulated data to reuse

        Returns
        -------
        results : ComparisonResults
            A model whose sampler fails is listed in ``failures`` and the
            remaining models are still fitted
        """
        specs = list(specs) if specs is not None else default_model_specs()

        names = [spec.name for spec in specs]
        if len(set(names)) != len(names):
            raise ValueError(f"Model names must be unique. Got: {names}")

        if self.verbose:
            print(f"\n{'=' * 80}")
            print(f"partialpool: comparing {len(specs)} models")
            print(f"{'=' * 80}")

        if dataset is None:
            dataset = self.simulate()

        fits = {}
        failures = {}

        for i, spec in enumerate(specs, start=1):
            if self.verbose:
                print(f"\n[Model {i}/{len(specs)}] Fitting '{spec.name}'...")
            try:
                fits[spec.name] = fit_model(
                    spec, dataset, self.sampler_config, verbose=self.verbose
                )
            except SamplerRuntimeFailure as exc:
                failures[spec.name] = str(exc)
                warnings.warn(f"Model '{spec.name}' failed and was skipped: {exc}")
                if self.verbose:
                    print(f"  ✗ Sampler failed: {exc}")
                continue

            if self.verbose:
                status = '✓ converged' if fits[spec.name].converged else '✗ NOT converged'
                print(f"  {status}")

        results = ComparisonResults(dataset=dataset, fits=fits, failures=failures)

        if self.verbose:
            print(f"\n{'=' * 80}")
            print(f"✓ Fitted {len(fits)}/{len(specs)} models")
            if failures:
                print(f"  Failed: {', '.join(failures)}")
            if results.unconverged:
                print(f"  Not converged: {', '.join(results.unconverged)}")
            print(f"{'=' * 80}\n")

        return results
