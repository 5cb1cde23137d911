"""
Core numerical routines: matrix exponentials, discrete distributions and
the tree likelihood.
"""

from mixpop.core.distributions import DiscreteDistribution, build_distribution
from mixpop.core.likelihood import ModelCollection, PhyloLikelihood, fix_likelihood
from mixpop.core.matrix import matrix_exponential, transition_probabilities

__all__ = [
    "DiscreteDistribution",
    "build_distribution",
    "ModelCollection",
    "PhyloLikelihood",
    "fix_likelihood",
    "matrix_exponential",
    "transition_probabilities",
]
