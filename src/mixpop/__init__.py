"""
mixpop: site likelihoods under mixed substitution models and population
genetics statistics.

Two command-line programs driven by ``key=value`` parameters:

- ``mixpop mixed-likelihoods`` writes, for each site of an alignment, the
  log-likelihood under each class of a mixed model and the posterior
  probability of each class;
- ``mixpop pop-stats`` computes summary statistics (Watterson's theta,
  Tajima's D, Fu and Li's D* and F*, piN/piS, dN/dS, McDonald-Kreitman table)
  on an ingroup, with an optional outgroup.

Examples
--------
>>> from mixpop.config import Params
>>> from mixpop.cli.display import Display
>>> from mixpop.analysis import compute_pop_stats
>>> params = Params.from_args([
...     "alphabet=DNA", "input.sequence.file=aln.fasta", "pop.stats=TajimaD",
... ])
>>> analysis = compute_pop_stats(params, Display(quiet=True))
"""

__version__ = "0.1.0"

from mixpop.config import Params, ParameterError
from mixpop.io import Alignment, GeneticCode, Tree, get_alphabet
from mixpop.core import ModelCollection, PhyloLikelihood
from mixpop.models import build_model
from mixpop.popgen import PolymorphismAlignment

__all__ = [
    "Params",
    "ParameterError",
    "Alignment",
    "GeneticCode",
    "Tree",
    "get_alphabet",
    "ModelCollection",
    "PhyloLikelihood",
    "build_model",
    "PolymorphismAlignment",
]
