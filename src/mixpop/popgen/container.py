"""
Polymorphism data: an alignment whose sequences are split into an ingroup
and an outgroup.
"""

from typing import Optional

import numpy as np

from . import codon_sites
from ..io.alphabet import GeneticCode
from ..io.sequences import Alignment, stop_codon_mask


class PolymorphismAlignment:
    """
    Alignment with outgroup membership of each sequence.

    Parameters
    ----------
    alignment : Alignment
        All sequences
    outgroup : array-like of bool, optional
        True for outgroup sequences (default: none)
    """

    def __init__(self, alignment: Alignment, outgroup: Optional[np.ndarray] = None):
        self.alignment = alignment
        if outgroup is None:
            outgroup = np.zeros(alignment.n_species, dtype=bool)
        self.outgroup = np.asarray(outgroup, dtype=bool).copy()
        if len(self.outgroup) != alignment.n_species:
            raise ValueError("Outgroup flags do not match the number of sequences")

    @property
    def n_sites(self) -> int:
        return self.alignment.n_sites

    @property
    def has_outgroup(self) -> bool:
        return bool(self.outgroup.any())

    def set_as_outgroup_member(self, sequence) -> None:
        """Flag a sequence, given by 0-based index or by name, as outgroup."""
        if isinstance(sequence, str):
            index = self.alignment.index(sequence)
        else:
            index = int(sequence)
            if not 0 <= index < self.alignment.n_species:
                raise ValueError(
                    f"Sequence index {index + 1} out of range "
                    f"(alignment has {self.alignment.n_species} sequences)"
                )
        self.outgroup[index] = True

    def append_outgroup(self, other: Alignment) -> None:
        """Add sequences as outgroup members."""
        self.alignment = self.alignment.append(other)
        self.outgroup = np.concatenate([self.outgroup, np.ones(other.n_species, dtype=bool)])

    def _select(self, mask: np.ndarray) -> Alignment:
        names = [n for n, keep in zip(self.alignment.names, mask) if keep]
        return self.alignment.subset(names)

    def extract_ingroup(self) -> Alignment:
        return self._select(~self.outgroup)

    def extract_outgroup(self) -> Alignment:
        return self._select(self.outgroup)

    def delete_site(self, index: int) -> None:
        self.alignment = self.alignment.delete_site(index)

    def last_site_has_stop(self, genetic_code: GeneticCode) -> bool:
        return codon_sites.has_stop(self.alignment.sequences[:, -1], genetic_code)

    def remove_sites_with_stop_codons(self, genetic_code: GeneticCode) -> int:
        """Remove sites containing a stop codon; returns the number removed."""
        mask = stop_codon_mask(self.alignment, genetic_code)
        if mask.any():
            self.alignment = self.alignment.filter_sites(~mask)
        return int(mask.sum())


def complete_sites(alignment: Alignment) -> Alignment:
    return alignment.complete_sites()


def synonymous_sites(alignment: Alignment, genetic_code: GeneticCode) -> Alignment:
    """Complete sites that are polymorphic at one position, synonymously."""
    alignment = alignment.complete_sites()
    mask = np.array([
        codon_sites.is_synonymous_polymorphic(alignment.sequences[:, j], genetic_code)
        for j in range(alignment.n_sites)
    ], dtype=bool)
    return alignment.filter_sites(mask)


def non_synonymous_sites(alignment: Alignment, genetic_code: GeneticCode) -> Alignment:
    """Complete polymorphic sites that are not synonymous polymorphic."""
    alignment = alignment.complete_sites()
    mask = np.array([
        len(codon_sites.allele_counts(alignment.sequences[:, j])) > 1
        and not codon_sites.is_synonymous_polymorphic(alignment.sequences[:, j], genetic_code)
        for j in range(alignment.n_sites)
    ], dtype=bool)
    return alignment.filter_sites(mask)
