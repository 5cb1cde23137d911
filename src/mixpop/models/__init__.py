"""
Substitution models for phylogenetic likelihood calculation.

- **Nucleotide models**: JC69, K80, T92, HKY85
- **Codon models**: YN98 with F0/F1X4/F3X4 frequencies
- **Mixed models**: mixtures of models, mixtures of one model with
  distributed parameters, and the YNGP site-class models (M1, M2, M3, M7, M8)
"""

from mixpop.models.base import SubstitutionModel
from mixpop.models.biblio import BiblioMixedModel
from mixpop.models.codon import YN98, compute_codon_frequencies
from mixpop.models.factory import build_model, build_rate_distribution
from mixpop.models.mixed import MixedModel, MixtureOfAModel, MixtureOfModels
from mixpop.models.nucleotide import HKY85, JC69, K80, T92

__all__ = [
    "SubstitutionModel",
    "JC69",
    "K80",
    "T92",
    "HKY85",
    "YN98",
    "compute_codon_frequencies",
    "MixedModel",
    "MixtureOfModels",
    "MixtureOfAModel",
    "BiblioMixedModel",
    "build_model",
    "build_rate_distribution",
]
