"""
Typed Model Specifications

Prior distributions and model specifications for the grouped regression
models. A ``ModelSpec`` is consumed by either sampler backend (the built-in
Gibbs sampler or PyMC) so that both fit exactly the same model.

Common likelihood for every model:

    y_i ~ Normal(α + β_{group(i)} x_i, σ²)

"""

import math
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np
from scipy import stats

from ..exceptions import ModelSpecificationError


def _to_pymc(prior, name: str, **kwargs):
    # PyMC is only imported when a PyMC model is being built
    from .pymc_backend import prior_to_pymc
    return prior_to_pymc(prior, name, **kwargs)


def _check_positive(value: float, name: str) -> None:
    if not np.isfinite(value) or value <= 0:
        raise ModelSpecificationError(f"{name} must be positive. Got: {value}")


@dataclass(frozen=True)
class Normal:
    """Normal(mu, sigma²) prior on a real-valued parameter."""

    mu: float = 0.0
    sigma: float = 1.0

    def __post_init__(self):
        if not np.isfinite(self.mu):
            raise ModelSpecificationError(f"Normal mu must be finite. Got: {self.mu}")
        _check_positive(self.sigma, "Normal sigma")

    def logpdf(self, value):
        return stats.norm.logpdf(value, loc=self.mu, scale=self.sigma)

    def to_pymc(self, name: str, **kwargs):
        """Create this prior as a PyMC random variable inside the active model."""
        return _to_pymc(self, name, **kwargs)

    def __str__(self):
        return f"Normal({self.mu:g}, {self.sigma:g}^2)"


@dataclass(frozen=True)
class Uniform:
    """Uniform(lower, upper) prior on a positive scale parameter."""

    lower: float = 0.0
    upper: float = 30.0

    def __post_init__(self):
        if not (np.isfinite(self.lower) and np.isfinite(self.upper)):
            raise ModelSpecificationError(
                f"Uniform bounds must be finite. Got: ({self.lower}, {self.upper})"
            )
        if self.lower < 0:
            raise ModelSpecificationError(
                f"Uniform lower bound must be >= 0 for a scale prior. Got: {self.lower}"
            )
        if self.upper <= self.lower:
            raise ModelSpecificationError(
                f"Uniform upper bound must exceed lower bound. "
                f"Got: ({self.lower}, {self.upper})"
            )

    def logpdf(self, value):
        return stats.uniform.logpdf(value, loc=self.lower, scale=self.upper - self.lower)

    def initial_value(self) -> float:
        midpoint = 0.5 * (self.lower + self.upper)
        if self.lower < 1.0:
            return min(1.0, midpoint)
        return midpoint

    def to_pymc(self, name: str, **kwargs):
        """Create this prior as a PyMC random variable inside the active model."""
        return _to_pymc(self, name, **kwargs)

    def __str__(self):
        return f"Uniform({self.lower:g}, {self.upper:g})"


@dataclass(frozen=True)
class HalfNormal:
    """HalfNormal(sigma) prior on a positive scale parameter."""

    sigma: float = 1.0

    def __post_init__(self):
        _check_positive(self.sigma, "HalfNormal sigma")

    def logpdf(self, value):
        value = np.asarray(value, dtype=float)
        out = stats.halfnorm.logpdf(value, scale=self.sigma)
        return np.where(value > 0, out, -np.inf)[()]

    def initial_value(self) -> float:
        return float(self.sigma)

    def to_pymc(self, name: str, **kwargs):
        """Create this prior as a PyMC random variable inside the active model."""
        return _to_pymc(self, name, **kwargs)

    def __str__(self):
        return f"HalfNormal({self.sigma:g})"


@dataclass(frozen=True)
class HalfStudentT:
    """Student-t(nu, 0, sigma) prior truncated to positive values."""

    nu: float = 3.0
    sigma: float = 1.0

    def __post_init__(self):
        _check_positive(self.nu, "HalfStudentT nu")
        _check_positive(self.sigma, "HalfStudentT sigma")

    def logpdf(self, value):
        value = np.asarray(value, dtype=float)
        out = math.log(2.0) + stats.t.logpdf(value, df=self.nu, scale=self.sigma)
        return np.where(value > 0, out, -np.inf)[()]

    def initial_value(self) -> float:
        return float(self.sigma)

    def to_pymc(self, name: str, **kwargs):
        """Create this prior as a PyMC random variable inside the active model."""
        return _to_pymc(self, name, **kwargs)

    def __str__(self):
        return f"HalfStudentT({self.nu:g}, {self.sigma:g})"


ScalePrior = Union[Uniform, HalfNormal, HalfStudentT]
Prior = Union[Normal, Uniform, HalfNormal, HalfStudentT]

SCALE_PRIORS = (Uniform, HalfNormal, HalfStudentT)

INDEPENDENT = "independent"
HIERARCHICAL = "hierarchical"
POOLED = "pooled"

SLOPE_STRUCTURES = (INDEPENDENT, HIERARCHICAL, POOLED)


@dataclass(frozen=True)
class ModelSpec:
    """
    Full specification of one grouped regression model.

    Parameters
    ----------
    name : str
        Model name, used to label results and plots
    slope_structure : str
        ``'independent'`` (β_j ~ slope_prior independently),
        ``'hierarchical'`` (β_j ~ Normal(β_mu, σ_beta²)) or
        ``'pooled'`` (a single slope shared by every group)
    intercept_prior : Normal
        Prior on the shared intercept α
    sigma_prior : Uniform, HalfNormal or HalfStudentT
        Prior on the shared residual scale σ
    slope_prior : Normal, optional
        Prior on each slope (independent and pooled structures)
    slope_mu_prior : Normal, optional
        Hyper-prior on β_mu (hierarchical only)
    slope_sigma_prior : Uniform, HalfNormal or HalfStudentT, optional
        Hyper-prior on σ_beta (hierarchical only)

    Raises
    ------
    ModelSpecificationError
        If a required prior is missing, a prior is set for the wrong
        structure, or a scale parameter gets a prior with real support
    """

    name: str
    slope_structure: str
    intercept_prior: Normal
    sigma_prior: ScalePrior
    slope_prior: Optional[Normal] = None
    slope_mu_prior: Optional[Normal] = None
    slope_sigma_prior: Optional[ScalePrior] = None

    def __post_init__(self):
        if self.slope_structure not in SLOPE_STRUCTURES:
            raise ModelSpecificationError(
                f"Unknown slope_structure '{self.slope_structure}'. "
                f"Expected one of {SLOPE_STRUCTURES}"
            )

        if not isinstance(self.intercept_prior, Normal):
            raise ModelSpecificationError("intercept_prior must be a Normal prior")

        if not isinstance(self.sigma_prior, SCALE_PRIORS):
            raise ModelSpecificationError(
                "sigma_prior must be a positive-scale prior "
                "(Uniform, HalfNormal or HalfStudentT)"
            )

        if self.is_hierarchical:
            if not isinstance(self.slope_mu_prior, Normal):
                raise ModelSpecificationError(
                    "Hierarchical model requires a Normal slope_mu_prior"
                )
            if not isinstance(self.slope_sigma_prior, SCALE_PRIORS):
                raise ModelSpecificationError(
                    "Hierarchical model requires a positive-scale slope_sigma_prior"
                )
            if self.slope_prior is not None:
                raise ModelSpecificationError(
                    "slope_prior is implied by the hyper-priors in a hierarchical model"
                )
        else:
            if not isinstance(self.slope_prior, Normal):
                raise ModelSpecificationError(
                    f"'{self.slope_structure}' model requires a Normal slope_prior"
                )
            if self.slope_mu_prior is not None or self.slope_sigma_prior is not None:
                raise ModelSpecificationError(
                    "Hyper-priors are only valid for hierarchical models"
                )

    @property
    def is_hierarchical(self) -> bool:
        return self.slope_structure == HIERARCHICAL

    @property
    def parameter_names(self) -> List[str]:
        names = ['alpha', 'beta', 'sigma']
        if self.is_hierarchical:
            names += ['beta_mu', 'sigma_beta']
        return names

    def describe(self) -> str:
        """Readable multi-line description of the priors."""
        lines = [
            f"Model: {self.name} ({self.slope_structure})",
            "  y_i ~ Normal(alpha + beta[group_i] * x_i, sigma^2)",
            f"  alpha ~ {self.intercept_prior}",
        ]
        if self.is_hierarchical:
            lines.append("  beta_j ~ Normal(beta_mu, sigma_beta^2)")
            lines.append(f"  beta_mu ~ {self.slope_mu_prior}")
            lines.append(f"  sigma_beta ~ {self.slope_sigma_prior}")
        elif self.slope_structure == POOLED:
            lines.append(f"  beta (shared) ~ {self.slope_prior}")
        else:
            lines.append(f"  beta_j ~ {self.slope_prior}")
        lines.append(f"  sigma ~ {self.sigma_prior}")
        return "\n".join(lines)


def regular_model() -> ModelSpec:
    """Independent weak priors on every group slope."""
    return ModelSpec(
        name="regular",
        slope_structure=INDEPENDENT,
        intercept_prior=Normal(0.0, 100.0),
        sigma_prior=Uniform(0.0, 30.0),
        slope_prior=Normal(0.0, 10.0),
    )


def unpooled_model() -> ModelSpec:
    """Same independent slope prior as ``regular_model`` with a tighter intercept prior."""
    return ModelSpec(
        name="unpooled",
        slope_structure=INDEPENDENT,
        intercept_prior=Normal(0.0, 10.0),
        sigma_prior=Uniform(0.0, 30.0),
        slope_prior=Normal(0.0, 10.0),
    )


def hierarchical_model() -> ModelSpec:
    """Partial pooling: group slopes share a Normal(β_mu, σ_beta²) prior."""
    return ModelSpec(
        name="hierarchical",
        slope_structure=HIERARCHICAL,
        intercept_prior=Normal(0.0, 100.0),
        sigma_prior=Uniform(0.0, 30.0),
        slope_mu_prior=Normal(0.0, 10.0),
        slope_sigma_prior=HalfStudentT(3.0, 2.5),
    )


def complete_pooling_model() -> ModelSpec:
    """One slope shared by every group."""
    return ModelSpec(
        name="complete_pooling",
        slope_structure=POOLED,
        intercept_prior=Normal(0.0, 100.0),
        sigma_prior=Uniform(0.0, 30.0),
        slope_prior=Normal(0.0, 10.0),
    )


def default_model_specs() -> List[ModelSpec]:
    """The three models compared by default: regular, unpooled, hierarchical."""
    return [regular_model(), unpooled_model(), hierarchical_model()]
