"""
Population genetics: polymorphism containers, codon site tools and summary
statistics.
"""

from mixpop.popgen.container import (
    PolymorphismAlignment,
    non_synonymous_sites,
    synonymous_sites,
)
from mixpop.popgen import codon_sites, statistics

__all__ = [
    "PolymorphismAlignment",
    "synonymous_sites",
    "non_synonymous_sites",
    "codon_sites",
    "statistics",
]
