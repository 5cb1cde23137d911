"""
Codon-level tools for polymorphism analysis.

A site is a column of codon codes (one per sequence). Gaps and unresolved
codons are ignored by every function here.
"""

from functools import lru_cache
from itertools import permutations

import numpy as np

from ..io.alphabet import GeneticCode, codon_from_positions, codon_positions, is_transition


@lru_cache(maxsize=None)
def _genetic_code(name: str) -> GeneticCode:
    return GeneticCode(name)


def resolved_codons(column: np.ndarray) -> np.ndarray:
    """Codons of a site, without gaps and unresolved codons."""
    column = np.asarray(column, dtype=int)
    return column[(column >= 0) & (column < 64)]


def allele_counts(column: np.ndarray) -> dict[int, int]:
    """Number of occurrences of each resolved codon, in code order."""
    values, counts = np.unique(resolved_codons(column), return_counts=True)
    return {int(v): int(c) for v, c in zip(values, counts)}


def number_of_differences(codon1: int, codon2: int) -> int:
    """Number of nucleotide positions at which two codons differ."""
    p1 = codon_positions(codon1)
    p2 = codon_positions(codon2)
    return sum(a != b for a, b in zip(p1, p2))


@lru_cache(maxsize=None)
def _synonymous_differences(codon1: int, codon2: int, code_name: str, min_change: bool) -> float:
    gc = _genetic_code(code_name)
    p1 = codon_positions(codon1)
    p2 = codon_positions(codon2)
    diffs = [k for k in range(3) if p1[k] != p2[k]]
    if not diffs:
        return 0.0

    path_counts = []
    for order in permutations(diffs):
        current = list(p1)
        previous = codon1
        n_syn = 0
        valid = True
        for step, k in enumerate(order):
            current[k] = p2[k]
            codon = codon_from_positions(*current)
            # Paths through an intermediate stop codon are not possible
            if step < len(order) - 1 and gc.is_stop(codon):
                valid = False
                break
            if not gc.is_stop(previous) and not gc.is_stop(codon) and gc.are_synonymous(previous, codon):
                n_syn += 1
            previous = codon
        if valid:
            path_counts.append(n_syn)

    if not path_counts:
        return 0.0
    if min_change:
        return float(max(path_counts))
    return float(np.mean(path_counts))


def number_of_synonymous_differences(codon1: int, codon2: int, genetic_code: GeneticCode,
                                     min_change: bool = False) -> float:
    """
    Number of synonymous differences between two codons.

    When codons differ at several positions, all mutational paths avoiding
    intermediate stop codons are considered. The result is the mean over
    paths, or with ``min_change`` the path with fewest non-synonymous steps.
    """
    return _synonymous_differences(int(codon1), int(codon2), genetic_code.name, bool(min_change))


@lru_cache(maxsize=None)
def _synonymous_positions(codon: int, code_name: str, kappa: float) -> float:
    gc = _genetic_code(code_name)
    if gc.is_stop(codon):
        return 0.0
    positions = codon_positions(codon)
    n_syn = 0.0
    for k in range(3):
        for nuc in range(4):
            if nuc == positions[k]:
                continue
            mutant = list(positions)
            mutant[k] = nuc
            mutant = codon_from_positions(*mutant)
            if gc.is_stop(mutant) or not gc.are_synonymous(codon, mutant):
                continue
            n_syn += kappa if is_transition(positions[k], nuc) else 1.0
    return n_syn / (kappa + 2.0)


def number_of_synonymous_positions(codon: int, genetic_code: GeneticCode, kappa: float = 1.0) -> float:
    """
    Number of synonymous positions of a codon (Nei and Gojobori 1986).

    Each single-nucleotide change to a synonymous codon counts for 1, or for
    kappa when it is a transition; the sum is divided by kappa + 2, so that
    the synonymous and non-synonymous positions add up to 3.
    """
    return _synonymous_positions(int(codon), genetic_code.name, float(kappa))


def mean_number_of_synonymous_positions(column: np.ndarray, genetic_code: GeneticCode,
                                        kappa: float = 1.0) -> float:
    counts = allele_counts(column)
    n = sum(counts.values())
    if n == 0:
        return 0.0
    return sum(
        c * number_of_synonymous_positions(codon, genetic_code, kappa)
        for codon, c in counts.items()
    ) / n


def pi_synonymous(column: np.ndarray, genetic_code: GeneticCode, min_change: bool = False) -> float:
    """Synonymous nucleotide diversity of a codon site."""
    return _site_pi(column, genetic_code, min_change, synonymous=True)


def pi_non_synonymous(column: np.ndarray, genetic_code: GeneticCode, min_change: bool = False) -> float:
    """Non-synonymous nucleotide diversity of a codon site."""
    return _site_pi(column, genetic_code, min_change, synonymous=False)


def _site_pi(column, genetic_code, min_change, synonymous):
    counts = allele_counts(column)
    n = sum(counts.values())
    if n < 2 or len(counts) < 2:
        return 0.0
    freqs = {codon: c / n for codon, c in counts.items()}
    pi = 0.0
    for c1, f1 in freqs.items():
        for c2, f2 in freqs.items():
            if c1 == c2:
                continue
            n_syn = number_of_synonymous_differences(c1, c2, genetic_code, min_change)
            if synonymous:
                pi += f1 * f2 * n_syn
            else:
                pi += f1 * f2 * (number_of_differences(c1, c2) - n_syn)
    return pi * n / (n - 1.0)


def is_mono_site_polymorphic(column: np.ndarray) -> bool:
    """True if the codons of a site differ at exactly one nucleotide position."""
    codons = list(allele_counts(column))
    if len(codons) < 2:
        return False
    varying = {
        k for k in range(3)
        if len({codon_positions(c)[k] for c in codons}) > 1
    }
    return len(varying) == 1


def is_synonymous_polymorphic(column: np.ndarray, genetic_code: GeneticCode) -> bool:
    """
    True if a site is polymorphic at one position and all its codons
    encode the same amino acid.
    """
    codons = list(allele_counts(column))
    if len(codons) < 2:
        return False
    amino_acids = {genetic_code.translate(c) for c in codons}
    if len(amino_acids) != 1 or "*" in amino_acids:
        return False
    return is_mono_site_polymorphic(column)


def is_four_fold_degenerated(column: np.ndarray, genetic_code: GeneticCode) -> bool:
    """
    True if every codon of the site is four-fold degenerated and the site
    varies, if at all, at the third position only.
    """
    codons = list(allele_counts(column))
    if not codons:
        return False
    if len(codons) > 1:
        if not is_synonymous_polymorphic(column, genetic_code):
            return False
        if len({codon_positions(c)[2] for c in codons}) == 1:
            return False
    return all(genetic_code.is_four_fold_degenerated(c) for c in codons)


def has_stop(column: np.ndarray, genetic_code: GeneticCode) -> bool:
    return any(genetic_code.is_stop(c) for c in resolved_codons(column))


def major_codon(column: np.ndarray) -> int:
    """Most frequent resolved codon (lowest code on ties), -1 if none."""
    counts = allele_counts(column)
    if not counts:
        return -1
    return max(counts, key=lambda c: (counts[c], -c))
