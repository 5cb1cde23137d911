"""
Nucleotide substitution models.

States follow the alphabet order T, C, A, G.
"""

import numpy as np

from .base import SubstitutionModel
from ..io.alphabet import Alphabet, is_transition


def _transition_mask() -> np.ndarray:
    mask = np.zeros((4, 4), dtype=bool)
    for i in range(4):
        for j in range(4):
            mask[i, j] = is_transition(i, j)
    return mask


_TRANSITIONS = _transition_mask()


class JC69(SubstitutionModel):
    """
    Equal rates between all states (Jukes and Cantor 1969).

    Valid for any non-codon alphabet (for proteins this is the Poisson model).
    """

    name = "JC69"

    def __init__(self, alphabet: Alphabet, **parameters):
        if alphabet.is_codon:
            raise ValueError("JC69 cannot be used with a codon alphabet")
        super().__init__(alphabet, **parameters)

    def exchangeabilities(self) -> np.ndarray:
        n = self.n_states
        return np.ones((n, n)) - np.eye(n)


class _NucleotideModel(SubstitutionModel):
    """Models with a transition/transversion ratio."""

    def __init__(self, alphabet: Alphabet, **parameters):
        if not alphabet.is_nucleic:
            raise ValueError(f"{self.name} requires a nucleotide alphabet, got {alphabet.name}")
        super().__init__(alphabet, **parameters)

    def _check_parameters(self) -> None:
        super()._check_parameters()
        if self.parameters["kappa"] <= 0:
            raise ValueError(f"kappa must be positive, got {self.parameters['kappa']}")
        for key in ("theta", "theta1", "theta2"):
            if key in self.parameters and not 0 < self.parameters[key] < 1:
                raise ValueError(f"{key} must be in (0, 1), got {self.parameters[key]}")

    def exchangeabilities(self) -> np.ndarray:
        S = np.ones((4, 4)) - np.eye(4)
        S[_TRANSITIONS] = self.parameters["kappa"]
        return S


class K80(_NucleotideModel):
    """Kimura (1980) two-parameter model."""

    name = "K80"

    def default_parameters(self) -> dict[str, float]:
        return {"kappa": 1.0}


class T92(_NucleotideModel):
    """Tamura (1992) model; theta is the GC content."""

    name = "T92"

    def default_parameters(self) -> dict[str, float]:
        return {"kappa": 1.0, "theta": 0.5}

    def frequencies(self) -> np.ndarray:
        theta = self.parameters["theta"]
        # T, C, A, G
        return np.array([(1 - theta) / 2, theta / 2, (1 - theta) / 2, theta / 2])


class HKY85(_NucleotideModel):
    """
    Hasegawa, Kishino and Yano (1985) model.

    Frequencies are parametrized by the GC content (theta), the A/(A+T)
    ratio (theta1) and the G/(G+C) ratio (theta2).
    """

    name = "HKY85"

    def default_parameters(self) -> dict[str, float]:
        return {"kappa": 1.0, "theta": 0.5, "theta1": 0.5, "theta2": 0.5}

    def frequencies(self) -> np.ndarray:
        theta = self.parameters["theta"]
        theta1 = self.parameters["theta1"]
        theta2 = self.parameters["theta2"]
        pi_a = theta1 * (1 - theta)
        pi_t = (1 - theta1) * (1 - theta)
        pi_g = theta2 * theta
        pi_c = (1 - theta2) * theta
        return np.array([pi_t, pi_c, pi_a, pi_g])
