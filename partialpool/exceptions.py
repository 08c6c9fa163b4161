"""Exception and warning types raised by partialpool."""


class SimulationConfigurationError(ValueError):
    """Invalid group sizes, slope spread or noise scales for the simulator."""


class ModelSpecificationError(ValueError):
    """A prior or model specification that cannot be sampled."""


class SamplerRuntimeFailure(RuntimeError):
    """The sampler could not initialise or crashed while drawing samples."""


class SamplerNonConvergence(UserWarning):
    """Chain diagnostics (R-hat, ESS) indicate an unconverged posterior."""
