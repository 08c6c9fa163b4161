"""Version information for partialpool."""

__version__ = "0.1.0"
__author__ = "partialpool contributors"
__email__ = "partialpool@users.noreply.github.com"
__description__ = "Independent, pooled and hierarchical Bayesian regression on grouped data"
__url__ = "https://github.com/partialpool/partialpool"
