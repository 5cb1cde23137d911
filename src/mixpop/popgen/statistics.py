"""
Population genetics summary statistics.

All statistics are computed on the complete sites of an alignment (sites
without gaps or unresolved characters), with sequences as samples.

References
----------
- Watterson (1975) Theor. Popul. Biol. 7:256-276
- Tajima (1983) Genetics 105:437-460; Tajima (1989) Genetics 123:585-595
- Fu and Li (1993) Genetics 133:693-709, with the variances of
  Simonsen, Churchill and Aquadro (1995) Genetics 141:413-429
- McDonald and Kreitman (1991) Nature 351:652-654
"""

import numpy as np

from . import codon_sites
from ..io.alphabet import GeneticCode, codon_from_positions, codon_positions
from ..io.sequences import Alignment


def _site_counts(alignment: Alignment) -> list[np.ndarray]:
    """Allele counts of each complete site."""
    complete = alignment.complete_sites()
    return [
        np.unique(complete.sequences[:, j], return_counts=True)[1]
        for j in range(complete.n_sites)
    ]


def _harmonic(n: int, power: int = 1) -> float:
    return float(np.sum(1.0 / np.arange(1, n) ** power))


def number_of_complete_sites(alignment: Alignment) -> int:
    return alignment.complete_sites().n_sites


def number_of_polymorphic_sites(alignment: Alignment) -> int:
    """Number of segregating sites."""
    return sum(1 for counts in _site_counts(alignment) if len(counts) > 1)


def number_of_singletons(alignment: Alignment) -> int:
    """Number of alleles found in exactly one sequence, over polymorphic sites."""
    return int(sum(np.sum(counts == 1) for counts in _site_counts(alignment) if len(counts) > 1))


def total_number_of_mutations(alignment: Alignment) -> int:
    """Minimum number of mutations: number of alleles minus one, summed over sites."""
    return int(sum(len(counts) - 1 for counts in _site_counts(alignment)))


def number_of_singleton_mutations(alignment: Alignment) -> int:
    """Mutations on external branches: singleton alleles, at most alleles - 1 per site."""
    return int(sum(
        min(int(np.sum(counts == 1)), len(counts) - 1)
        for counts in _site_counts(alignment) if len(counts) > 1
    ))


def watterson75(alignment: Alignment, total_mutations: bool = True, scaled: bool = True) -> float:
    """
    Watterson's (1975) estimator of theta.

    Parameters
    ----------
    alignment : Alignment
        Ingroup sequences
    total_mutations : bool
        Count all mutations at polyallelic sites instead of segregating sites
    scaled : bool
        Divide by the number of complete sites
    """
    n = alignment.n_species
    if n < 2:
        return float("nan")
    S = total_number_of_mutations(alignment) if total_mutations else number_of_polymorphic_sites(alignment)
    theta = S / _harmonic(n)
    if scaled:
        n_sites = number_of_complete_sites(alignment)
        theta = theta / n_sites if n_sites else float("nan")
    return theta


def tajima83(alignment: Alignment, scaled: bool = True) -> float:
    """
    Tajima's (1983) estimator of theta: mean number of pairwise differences.

    Each site contributes its unbiased heterozygosity n/(n-1) (1 - sum f^2).
    """
    n = alignment.n_species
    if n < 2:
        return float("nan")
    pi = 0.0
    for counts in _site_counts(alignment):
        if len(counts) > 1:
            f = counts / n
            pi += n / (n - 1.0) * (1.0 - np.sum(f ** 2))
    if scaled:
        n_sites = number_of_complete_sites(alignment)
        pi = pi / n_sites if n_sites else float("nan")
    return pi


def tajima_d(alignment: Alignment) -> float:
    """
    Tajima's (1989) D, computed with the number of segregating sites.

    Returns NaN with fewer than 3 sequences or no segregating site.
    """
    n = alignment.n_species
    if n < 3:
        return float("nan")
    S = number_of_polymorphic_sites(alignment)
    pi = tajima83(alignment, scaled=False)

    a1 = _harmonic(n)
    a2 = _harmonic(n, 2)
    b1 = (n + 1.0) / (3.0 * (n - 1.0))
    b2 = 2.0 * (n ** 2 + n + 3.0) / (9.0 * n * (n - 1.0))
    c1 = b1 - 1.0 / a1
    c2 = b2 - (n + 2.0) / (a1 * n) + a2 / a1 ** 2
    e1 = c1 / a1
    e2 = c2 / (a1 ** 2 + a2)
    variance = e1 * S + e2 * S * (S - 1.0)
    if S == 0 or variance <= 0:
        return float("nan")
    return (pi - S / a1) / np.sqrt(variance)


def _fu_li_constants(n: int) -> tuple[float, float, float]:
    a_n = _harmonic(n)
    b_n = _harmonic(n, 2)
    a_n1 = a_n + 1.0 / n
    return a_n, b_n, a_n1


def fu_li_d_star(alignment: Alignment, use_segregating_sites: bool = False) -> float:
    """
    Fu and Li's (1993) D* statistic (no outgroup).

    Parameters
    ----------
    alignment : Alignment
        Ingroup sequences
    use_segregating_sites : bool
        Use the number of segregating sites instead of the total number of
        mutations
    """
    n = alignment.n_species
    if n < 3:
        return float("nan")
    eta = number_of_polymorphic_sites(alignment) if use_segregating_sites else total_number_of_mutations(alignment)
    eta_s = number_of_singleton_mutations(alignment)

    a_n, b_n, a_n1 = _fu_li_constants(n)
    r = n / (n - 1.0)
    c_n = 2.0 * (n * a_n - 2.0 * (n - 1.0)) / ((n - 1.0) * (n - 2.0))
    d_n = (
        c_n + (n - 2.0) / (n - 1.0) ** 2
        + 2.0 / (n - 1.0) * (1.5 - (2.0 * a_n1 - 3.0) / (n - 2.0) - 1.0 / n)
    )
    v = (r ** 2 * b_n + a_n ** 2 * d_n - 2.0 * n * a_n * (a_n + 1.0) / (n - 1.0) ** 2) / (a_n ** 2 + b_n)
    u = r * (a_n - r) - v
    denominator = u * eta + v * eta ** 2
    if eta == 0 or denominator <= 0:
        return float("nan")
    return (r * eta - a_n * eta_s) / np.sqrt(denominator)


def fu_li_f_star(alignment: Alignment, use_segregating_sites: bool = False) -> float:
    """Fu and Li's (1993) F* statistic (no outgroup)."""
    n = alignment.n_species
    if n < 3:
        return float("nan")
    eta = number_of_polymorphic_sites(alignment) if use_segregating_sites else total_number_of_mutations(alignment)
    eta_s = number_of_singleton_mutations(alignment)
    pi = tajima83(alignment, scaled=False)

    a_n, b_n, a_n1 = _fu_li_constants(n)
    v = (
        (2.0 * n ** 3 + 110.0 * n ** 2 - 255.0 * n + 153.0) / (9.0 * n ** 2 * (n - 1.0))
        + 2.0 * (n - 1.0) * a_n / n ** 2
        - 8.0 * b_n / n
    ) / (a_n ** 2 + b_n)
    u = (
        (4.0 * n ** 2 + 19.0 * n + 3.0 - 12.0 * (n + 1.0) * a_n1) / (3.0 * n * (n - 1.0))
    ) / a_n - v
    denominator = u * eta + v * eta ** 2
    if eta == 0 or denominator <= 0:
        return float("nan")
    return (pi - (n - 1.0) / n * eta_s) / np.sqrt(denominator)


def _codon_columns(alignment: Alignment):
    if not alignment.alphabet.is_codon:
        raise ValueError("A codon alignment is required")
    complete = alignment.complete_sites()
    return [complete.sequences[:, j] for j in range(complete.n_sites)]


def pi_synonymous(alignment: Alignment, genetic_code: GeneticCode, min_change: bool = False) -> float:
    """Synonymous nucleotide diversity, summed over complete sites."""
    return float(sum(
        codon_sites.pi_synonymous(column, genetic_code, min_change)
        for column in _codon_columns(alignment)
    ))


def pi_non_synonymous(alignment: Alignment, genetic_code: GeneticCode, min_change: bool = False) -> float:
    """Non-synonymous nucleotide diversity, summed over complete sites."""
    return float(sum(
        codon_sites.pi_non_synonymous(column, genetic_code, min_change)
        for column in _codon_columns(alignment)
    ))


def mean_number_of_synonymous_sites(alignment: Alignment, genetic_code: GeneticCode,
                                    kappa: float = 1.0) -> float:
    return float(sum(
        codon_sites.mean_number_of_synonymous_positions(column, genetic_code, kappa)
        for column in _codon_columns(alignment)
    ))


def mean_number_of_non_synonymous_sites(alignment: Alignment, genetic_code: GeneticCode,
                                        kappa: float = 1.0) -> float:
    return float(sum(
        3.0 - codon_sites.mean_number_of_synonymous_positions(column, genetic_code, kappa)
        for column in _codon_columns(alignment)
    ))


def _is_synonymous_change(codon: int, position: int, nucleotide: int, genetic_code: GeneticCode) -> bool:
    positions = list(codon_positions(codon))
    positions[position] = nucleotide
    mutant = codon_from_positions(*positions)
    return (
        not genetic_code.is_stop(codon)
        and not genetic_code.is_stop(mutant)
        and genetic_code.are_synonymous(codon, mutant)
    )


def mk_table(ingroup: Alignment, outgroup: Alignment, genetic_code: GeneticCode) -> list[int]:
    """
    McDonald-Kreitman table.

    Polymorphisms are counted in the ingroup: each alternative nucleotide at
    a codon position is one mutation of the major codon. Fixed differences
    are positions where ingroup and outgroup share no nucleotide; each is one
    mutation of the ingroup major codon towards the outgroup major nucleotide.
    Only sites complete in both groups are used.

    Returns
    -------
    list[int]
        [Pa, Ps, Da, Ds]: non-synonymous and synonymous polymorphisms, then
        non-synonymous and synonymous fixed differences
    """
    if ingroup.n_sites != outgroup.n_sites:
        raise ValueError("Ingroup and outgroup alignments have different lengths")
    if not ingroup.alphabet.is_codon:
        raise ValueError("A codon alignment is required")

    both = np.vstack([ingroup.sequences, outgroup.sequences])
    complete = ~((both < 0) | (both >= ingroup.alphabet.n_states)).any(axis=0)

    pa = ps = da = ds = 0
    for j in np.flatnonzero(complete):
        column_in = ingroup.sequences[:, j]
        column_out = outgroup.sequences[:, j]
        major_in = codon_sites.major_codon(column_in)
        major_out = codon_sites.major_codon(column_out)
        major_in_positions = codon_positions(major_in)
        for k in range(3):
            nucs_in = {codon_positions(c)[k] for c in column_in}
            nucs_out = {codon_positions(c)[k] for c in column_out}
            for nuc in sorted(nucs_in - {major_in_positions[k]}):
                if _is_synonymous_change(major_in, k, nuc, genetic_code):
                    ps += 1
                else:
                    pa += 1
            if nucs_in.isdisjoint(nucs_out):
                nuc = codon_positions(major_out)[k]
                if _is_synonymous_change(major_in, k, nuc, genetic_code):
                    ds += 1
                else:
                    da += 1
    return [pa, ps, da, ds]
