"""
Rate matrices and transition probabilities.

Reversible rate matrices are built from exchangeabilities and equilibrium
frequencies. Transition matrices for all branches of a model are obtained
from one eigendecomposition.
"""

import numpy as np
from scipy.linalg import expm


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """P(t) = exp(Q*t) for any rate matrix, used when some frequency is zero."""
    return expm(Q * t)


def eigen_decompose_rev(Q: np.ndarray, pi: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Q = U @ diag(eigenvalues) @ V for a reversible Q.

    The symmetric matrix diag(sqrt(pi)) Q diag(1/sqrt(pi)) is decomposed with
    ``eigh``; every frequency must be positive.

    Returns
    -------
    tuple
        (eigenvalues, U, V)
    """
    sqrt_pi = np.sqrt(pi)

    # Symmetric if Q satisfies detailed balance
    Q_sym = Q * sqrt_pi[:, np.newaxis] / sqrt_pi[np.newaxis, :]
    Q_sym = (Q_sym + Q_sym.T) / 2.0

    eigenvalues, eigenvectors = np.linalg.eigh(Q_sym)

    U = eigenvectors / sqrt_pi[:, np.newaxis]
    V = eigenvectors.T * sqrt_pi[np.newaxis, :]

    return eigenvalues, U, V


def transition_probabilities(
    Q: np.ndarray, pi: np.ndarray, lengths: np.ndarray
) -> np.ndarray:
    """
    Transition matrices of a reversible model for several branch lengths.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Reversible rate matrix
    pi : ndarray, shape (n,)
        Stationary distribution
    lengths : ndarray, shape (m,)
        Branch lengths

    Returns
    -------
    ndarray, shape (m, n, n)
        P(t) for each length
    """
    lengths = np.atleast_1d(np.asarray(lengths, dtype=float))
    if np.any(pi <= 0):
        return np.array([matrix_exponential(Q, t) for t in lengths])

    eigenvalues, U, V = eigen_decompose_rev(Q, pi)
    # P(t) = U @ diag(exp(lambda * t)) @ V for every t at once
    exp_terms = np.exp(lengths[:, np.newaxis] * eigenvalues[np.newaxis, :])
    P = np.einsum('ik,mk,kj->mij', U, exp_terms, V)
    # Round-off can produce tiny negative entries
    np.clip(P, 0.0, None, out=P)
    return P


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeability rates and stationary distribution.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeability matrix (r[i,j] = r[j,i])
    pi : ndarray, shape (n,)
        Stationary distribution (equilibrium frequencies)
    normalize : bool, default=True
        If True, scale Q so that expected rate is 1 substitution per time unit

    Returns
    -------
    Q : ndarray, shape (n, n)
        Reversible rate matrix satisfying detailed balance

    Examples
    --------
    >>> # JC69 model
    >>> rates = np.ones((4, 4)) - np.eye(4)
    >>> pi = np.ones(4) / 4
    >>> Q = create_reversible_Q(rates, pi)
    """
    Q = rates * pi[np.newaxis, :]

    np.fill_diagonal(Q, 0.0)
    row_sums = np.sum(Q, axis=1)
    np.fill_diagonal(Q, -row_sums)

    if normalize:
        Q /= expected_rate(Q, pi)

    return Q


def expected_rate(Q: np.ndarray, pi: np.ndarray) -> float:
    """Expected number of substitutions per time unit, -sum(pi_i * Q[i,i])."""
    return float(-np.dot(pi, Q.diagonal()))


def check_detailed_balance(Q: np.ndarray, pi: np.ndarray, rtol: float = 1e-10) -> bool:
    """True when pi_i * Q[i, j] == pi_j * Q[j, i] for all i, j."""
    flux = pi[:, np.newaxis] * Q
    return bool(np.allclose(flux, flux.T, rtol=rtol, atol=1e-14))
