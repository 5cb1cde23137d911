"""
Distance estimation and distance-based tree reconstruction.
"""

from mixpop.distance.bionj import bionj_tree
from mixpop.distance.pairwise import pairwise_ml_distance, similarity_distance_matrix

__all__ = ["bionj_tree", "pairwise_ml_distance", "similarity_distance_matrix"]
