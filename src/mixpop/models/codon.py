"""
Codon substitution models.
"""

from functools import lru_cache
from typing import Optional

import numpy as np

from .base import SubstitutionModel
from ..io.alphabet import (
    Alphabet,
    GeneticCode,
    CODONS,
    codon_positions,
    is_transition,
)
from ..io.sequences import Alignment


@lru_cache(maxsize=None)
def _codon_change_masks(code_name: str) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Boolean matrices over sense codons for single-nucleotide changes.

    Returns
    -------
    tuple
        (single_change, transition, non_synonymous)
    """
    gc = GeneticCode(code_name)
    sense = gc.sense_codons
    n = len(sense)
    single = np.zeros((n, n), dtype=bool)
    transition = np.zeros((n, n), dtype=bool)
    nonsyn = np.zeros((n, n), dtype=bool)

    for i, ci in enumerate(sense):
        pos_i = codon_positions(ci)
        for j, cj in enumerate(sense):
            if i == j:
                continue
            pos_j = codon_positions(cj)
            diffs = [k for k in range(3) if pos_i[k] != pos_j[k]]
            if len(diffs) != 1:
                # Only single nucleotide changes allowed
                continue
            k = diffs[0]
            single[i, j] = True
            transition[i, j] = is_transition(pos_i[k], pos_j[k])
            nonsyn[i, j] = not gc.are_synonymous(ci, cj)

    return single, transition, nonsyn


def compute_codon_frequencies(
    alignment: Optional[Alignment], genetic_code: GeneticCode, method: str = "F3X4"
) -> np.ndarray:
    """
    Equilibrium frequencies of the sense codons.

    Parameters
    ----------
    alignment : Alignment or None
        Codon alignment the frequencies are estimated from
    genetic_code : GeneticCode
        Genetic code defining the sense codons
    method : str
        'F0' (uniform), 'F1X4' (pooled nucleotide frequencies) or 'F3X4'
        (nucleotide frequencies at each codon position)

    Returns
    -------
    np.ndarray, shape (n_sense,)
        Codon frequencies
    """
    n_sense = genetic_code.n_sense
    if method in ("F0", "Fixed") or alignment is None:
        return np.ones(n_sense) / n_sense
    if method not in ("F1X4", "F3X4"):
        raise ValueError(f"Unknown codon frequencies method: {method}")
    if not alignment.alphabet.is_codon:
        raise ValueError(f"{method} requires a codon alignment")

    # Count nucleotide frequencies at each codon position, sense codons only
    nuc_counts = np.zeros((3, 4))
    codes = alignment.sequences.ravel()
    for code in codes[(codes >= 0) & (codes < 64)]:
        if genetic_code.is_stop(code):
            continue
        for pos, nuc in enumerate(codon_positions(code)):
            nuc_counts[pos, nuc] += 1

    # Pseudocount keeps every sense codon reachable
    nuc_counts += 0.5
    if method == "F1X4":
        pooled = nuc_counts.sum(axis=0)
        nuc_counts = np.tile(pooled, (3, 1))
    pi_nuc = nuc_counts / nuc_counts.sum(axis=1, keepdims=True)

    pi_codon = np.array([
        pi_nuc[0, p[0]] * pi_nuc[1, p[1]] * pi_nuc[2, p[2]]
        for p in (codon_positions(c) for c in genetic_code.sense_codons)
    ])
    return pi_codon / pi_codon.sum()


class YN98(SubstitutionModel):
    """
    Yang and Nielsen (1998) codon model.

    The substitution rate between sense codons differing at one position
    depends on:
    - kappa (transition/transversion ratio)
    - omega (non-synonymous/synonymous ratio)
    - codon frequencies (pi)

    Parameters
    ----------
    alphabet : Alphabet
        Codon alphabet
    genetic_code : GeneticCode
        Genetic code defining sense codons and synonymy
    pi : np.ndarray, optional
        Sense codon frequencies. If None, uniform frequencies are used.
    """

    name = "YN98"

    def __init__(
        self,
        alphabet: Alphabet,
        genetic_code: GeneticCode,
        pi: Optional[np.ndarray] = None,
        **parameters,
    ):
        if not alphabet.is_codon:
            raise ValueError(f"YN98 requires a codon alphabet, got {alphabet.name}")
        self.genetic_code = genetic_code
        n_sense = genetic_code.n_sense
        if pi is None:
            self.pi = np.ones(n_sense) / n_sense
        else:
            pi = np.asarray(pi, dtype=float)
            if len(pi) != n_sense:
                raise ValueError(f"pi must have length {n_sense}, got {len(pi)}")
            self.pi = pi / pi.sum()
        super().__init__(alphabet, **parameters)

    def default_parameters(self) -> dict[str, float]:
        return {"kappa": 1.0, "omega": 1.0}

    def _check_parameters(self) -> None:
        super()._check_parameters()
        for key in ("kappa", "omega"):
            if self.parameters[key] < 0:
                raise ValueError(f"{key} must be non-negative, got {self.parameters[key]}")

    @property
    def n_states(self) -> int:
        return self.genetic_code.n_sense

    def state_map(self) -> np.ndarray:
        mapping = np.full(len(CODONS), -1, dtype=int)
        for k, codon in enumerate(self.genetic_code.sense_codons):
            mapping[codon] = k
        return mapping

    def frequencies(self) -> np.ndarray:
        return self.pi

    def exchangeabilities(self) -> np.ndarray:
        single, transition, nonsyn = _codon_change_masks(self.genetic_code.name)
        S = single.astype(float)
        S[transition] *= self.parameters["kappa"]
        S[nonsyn] *= self.parameters["omega"]
        return S
