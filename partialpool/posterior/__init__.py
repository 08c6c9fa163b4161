"""Posterior summaries and model comparison tables"""

from .summary import compare_slopes, shrinkage_table, slope_draws, summarize_posterior

__all__ = [
    'compare_slopes',
    'shrinkage_table',
    'slope_draws',
    'summarize_posterior',
]
