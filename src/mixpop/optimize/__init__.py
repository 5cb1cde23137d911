"""
Parameter optimization for phylogenetic models.
"""

from mixpop.optimize.optimizer import ModelOptimizer, optimize_parameters

__all__ = ["ModelOptimizer", "optimize_parameters"]
