"""
Pairwise distances between aligned sequences.
"""

import numpy as np
from scipy.optimize import minimize

from ..core.matrix import transition_probabilities
from ..io.sequences import Alignment


def similarity_distance_matrix(alignment: Alignment) -> np.ndarray:
    """
    Compute pairwise dissimilarities (1 - proportion of identical states).

    Positions where either sequence has a gap or an unresolved character are
    ignored. Pairs without any comparable position get distance 1.

    Parameters
    ----------
    alignment : Alignment
        Sequence alignment

    Returns
    -------
    np.ndarray
        Matrix of pairwise distances (n_species x n_species)
    """
    n_seqs = alignment.n_species
    sequences = alignment.sequences
    distances = np.zeros((n_seqs, n_seqs))

    valid_mask = ~alignment.unresolved_mask()

    for i in range(n_seqs):
        for j in range(i + 1, n_seqs):
            both_valid = valid_mask[i] & valid_mask[j]
            valid_sites = both_valid.sum()
            if valid_sites > 0:
                identical = ((sequences[i] == sequences[j]) & both_valid).sum()
                d = 1.0 - identical / valid_sites
            else:
                d = 1.0
            distances[i, j] = d
            distances[j, i] = d

    return distances


def pairwise_ml_distance(
    model,
    seq1: np.ndarray,
    seq2: np.ndarray,
    estimate: tuple = (),
    init_distance: float = 0.1,
    maxiter: int = 500,
):
    """
    Maximum likelihood distance between two sequences.

    The likelihood of each site is pi[x] * P(t)[x, y] where x and y are the
    model states of the two sequences. Sites where either sequence is not
    a resolved model state are skipped.

    Parameters
    ----------
    model : SubstitutionModel
        Model; parameters named in ``estimate`` are fitted along with t
    seq1, seq2 : np.ndarray
        Alphabet codes of the two sequences
    estimate : tuple[str]
        Model parameters estimated jointly with the distance
    init_distance : float
        Starting distance

    Returns
    -------
    tuple
        (distance, fitted model, log-likelihood)
    """
    n_alphabet_states = model.alphabet.n_states
    state_map = model.state_map()
    seq1 = np.asarray(seq1, dtype=int)
    seq2 = np.asarray(seq2, dtype=int)
    resolved = (seq1 >= 0) & (seq1 < n_alphabet_states) & (seq2 >= 0) & (seq2 < n_alphabet_states)
    x = state_map[seq1[resolved]]
    y = state_map[seq2[resolved]]
    keep = (x >= 0) & (y >= 0)
    x, y = x[keep], y[keep]
    if len(x) == 0:
        raise ValueError("No comparable site between the two sequences")

    # Count site patterns once
    n = model.n_states
    counts = np.zeros((n, n))
    np.add.at(counts, (x, y), 1.0)
    observed = counts > 0

    def build(params: np.ndarray):
        values = {name: float(np.exp(v)) for name, v in zip(estimate, params[1:])}
        return model.clone(**values) if values else model

    def negative_log_likelihood(params: np.ndarray) -> float:
        t = np.exp(params[0])
        candidate = build(params)
        pi = candidate.frequencies()
        P = transition_probabilities(candidate.get_Q_matrix(), pi, [t])[0]
        joint = pi[:, np.newaxis] * P
        with np.errstate(divide="ignore"):
            ll = np.sum(counts[observed] * np.log(joint[observed]))
        if not np.isfinite(ll):
            return 1e10
        return -ll

    init = [np.log(init_distance)] + [
        np.log(max(model.get_parameter(name), 1e-4)) for name in estimate
    ]
    bounds = [(np.log(1e-6), np.log(10.0))] + [(np.log(1e-4), np.log(999.0))] * len(estimate)
    result = minimize(
        negative_log_likelihood,
        np.array(init),
        method="L-BFGS-B",
        bounds=bounds,
        options={"maxiter": maxiter},
    )
    return float(np.exp(result.x[0])), build(result.x), -float(result.fun)
