"""
partialpool: Independent, Pooled and Hierarchical Bayesian Regression

Simulate grouped linear-regression data, fit regular (independent),
unpooled and hierarchical (partially pooled) models by MCMC, and compare
the group slope posteriors against the known truth.
"""

from .version import __version__, __author__, __description__
from .exceptions import (
    ModelSpecificationError,
    SamplerNonConvergence,
    SamplerRuntimeFailure,
    SimulationConfigurationError,
)
from .simulation import GroupedDataSimulator, SimulatedDataset, SimulationConfig
from .models import (
    FitResult,
    ModelFitter,
    ModelSpec,
    SamplerConfig,
    default_model_specs,
    fit_model,
)
from .pipeline import ComparisonPipeline, ComparisonResults

__all__ = [
    'ComparisonPipeline',
    'ComparisonResults',
    'FitResult',
    'GroupedDataSimulator',
    'ModelFitter',
    'ModelSpec',
    'ModelSpecificationError',
    'SamplerConfig',
    'SamplerNonConvergence',
    'SamplerRuntimeFailure',
    'SimulatedDataset',
    'SimulationConfig',
    'SimulationConfigurationError',
    'default_model_specs',
    'fit_model',
    '__version__',
    '__author__',
    '__description__',
]
