"""MCMC run configuration shared by every sampler backend."""

from dataclasses import dataclass, replace

BACKENDS = ("gibbs", "pymc")


@dataclass(frozen=True)
class SamplerConfig:
    """
    Length, burn-in, thinning and diagnostics thresholds for one MCMC run.

    Parameters
    ----------
    n_iter : int, optional (default=10000)
        Total iterations per chain, burn-in included
    n_burnin : int, optional (default=2000)
        Initial iterations discarded (PyMC: tuning steps)
    n_thin : int, optional (default=4)
        Keep every ``n_thin``-th post-burn-in draw
    n_chains : int, optional (default=2)
        Independent chains; at least two are needed for R-hat
    random_seed : int, optional (default=28)
        Seed for chain initialisation and sampling
    backend : str, optional (default='gibbs')
        ``'gibbs'`` (built-in sampler) or ``'pymc'`` (NUTS)
    rhat_threshold : float, optional (default=1.01)
        Convergence requires max R-hat below this value
    ess_threshold : float, optional (default=400)
        Convergence requires min bulk ESS above this value
    target_accept : float, optional (default=0.90)
        NUTS target acceptance rate (PyMC backend only)
    """

    n_iter: int = 10000
    n_burnin: int = 2000
    n_thin: int = 4
    n_chains: int = 2
    random_seed: int = 28
    backend: str = "gibbs"
    rhat_threshold: float = 1.01
    ess_threshold: float = 400.0
    target_accept: float = 0.90

    def __post_init__(self):
        if self.n_burnin < 0:
            raise ValueError(f"n_burnin must be >= 0. Got: {self.n_burnin}")
        if self.n_iter <= self.n_burnin:
            raise ValueError(
                f"n_iter must exceed n_burnin. Got n_iter={self.n_iter}, "
                f"n_burnin={self.n_burnin}"
            )
        if self.n_thin < 1:
            raise ValueError(f"n_thin must be >= 1. Got: {self.n_thin}")
        if self.n_chains < 1:
            raise ValueError(f"n_chains must be >= 1. Got: {self.n_chains}")
        if self.draws_per_chain < 1:
            raise ValueError(
                f"No draws retained: (n_iter - n_burnin) / n_thin = "
                f"({self.n_iter} - {self.n_burnin}) / {self.n_thin} < 1"
            )
        if self.backend not in BACKENDS:
            raise ValueError(
                f"Unknown backend '{self.backend}'. Expected one of {BACKENDS}"
            )
        if not 0 < self.target_accept < 1:
            raise ValueError(
                f"target_accept must be in (0, 1). Got: {self.target_accept}"
            )

    @property
    def draws_per_chain(self) -> int:
        """Retained draws per chain: floor((n_iter - n_burnin) / n_thin)."""
        return (self.n_iter - self.n_burnin) // self.n_thin

    @property
    def total_draws(self) -> int:
        return self.draws_per_chain * self.n_chains

    @classmethod
    def quick(cls, **overrides) -> "SamplerConfig":
        """Short chains for prototyping and tests."""
        params = dict(n_iter=2000, n_burnin=500, n_thin=2, ess_threshold=100.0)
        params.update(overrides)
        return cls(**params)

    def with_options(self, **changes) -> "SamplerConfig":
        return replace(self, **changes)
