"""Model specifications, sampler backends and the model fitter"""

from .config import SamplerConfig
from .fitter import (
    ConvergenceDiagnostics,
    FitResult,
    ModelFitter,
    compute_ols_estimates,
    fit_model,
)
from .gibbs import GibbsSampler
from .specification import (
    HalfNormal,
    HalfStudentT,
    ModelSpec,
    Normal,
    Uniform,
    complete_pooling_model,
    default_model_specs,
    hierarchical_model,
    regular_model,
    unpooled_model,
)

__all__ = [
    'SamplerConfig',
    'ConvergenceDiagnostics',
    'FitResult',
    'ModelFitter',
    'compute_ols_estimates',
    'fit_model',
    'GibbsSampler',
    'HalfNormal',
    'HalfStudentT',
    'ModelSpec',
    'Normal',
    'Uniform',
    'complete_pooling_model',
    'default_model_specs',
    'hierarchical_model',
    'regular_model',
    'unpooled_model',
]
