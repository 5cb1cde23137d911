"""
The two analyses behind the command-line programs.

- **mixed_likelihoods**: site likelihoods decomposed over the classes of a
  mixed substitution model
- **pop_stats**: population genetics statistics on ingroup/outgroup data
"""

from .mixed_likelihoods import (
    SiteTable,
    compute_mixed_likelihoods,
    decompose_mixture_of_a_model,
    decompose_mixture_of_models,
    select_mixed_model,
)
from .pop_stats import PopStatsAnalysis, StatsLog, compute_pop_stats

__all__ = [
    "SiteTable",
    "compute_mixed_likelihoods",
    "decompose_mixture_of_models",
    "decompose_mixture_of_a_model",
    "select_mixed_model",
    "PopStatsAnalysis",
    "StatsLog",
    "compute_pop_stats",
]
