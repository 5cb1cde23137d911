"""
Base class for substitution models.
"""

import copy

import numpy as np

from ..core.matrix import create_reversible_Q, expected_rate
from ..io.alphabet import Alphabet


class SubstitutionModel:
    """
    Reversible substitution model over the states of an alphabet.

    Subclasses define the exchangeabilities and equilibrium frequencies
    from the model parameters. Parameters are plain floats stored by name.

    Attributes
    ----------
    name : str
        Model name (e.g. 'K80', 'YN98')
    alphabet : Alphabet
        Alphabet of the data the model applies to
    parameters : dict[str, float]
        Current parameter values
    """

    name = "Model"
    is_mixed = False

    def __init__(self, alphabet: Alphabet, **parameters):
        self.alphabet = alphabet
        self.parameters = {}
        for key, value in self.default_parameters().items():
            self.parameters[key] = float(parameters.pop(key, value))
        if parameters:
            raise ValueError(
                f"Unknown parameter(s) for model {self.name}: {', '.join(sorted(parameters))}"
            )
        self._check_parameters()

    def default_parameters(self) -> dict[str, float]:
        return {}

    def _check_parameters(self) -> None:
        for key, value in self.parameters.items():
            if not np.isfinite(value):
                raise ValueError(f"Parameter {key} of model {self.name} is not finite")

    @property
    def n_states(self) -> int:
        return self.alphabet.n_states

    def state_map(self) -> np.ndarray:
        """
        Model state of each resolved alphabet state (-1 if not a model state).
        """
        return np.arange(self.alphabet.n_states)

    def exchangeabilities(self) -> np.ndarray:
        raise NotImplementedError

    def frequencies(self) -> np.ndarray:
        return np.ones(self.n_states) / self.n_states

    def unnormalized_Q(self) -> np.ndarray:
        """Rate matrix before scaling to one substitution per time unit."""
        return create_reversible_Q(self.exchangeabilities(), self.frequencies(), normalize=False)

    def get_Q_matrix(self) -> np.ndarray:
        """
        Construct the rate matrix Q.

        Returns
        -------
        np.ndarray, shape (n_states, n_states)
            Rate matrix Q (normalized to one substitution per time unit)
        """
        Q = self.unnormalized_Q()
        return Q / expected_rate(Q, self.frequencies())

    def has_parameter(self, name: str) -> bool:
        return name in self.parameters

    def get_parameter(self, name: str) -> float:
        if name not in self.parameters:
            raise ValueError(f"Model {self.name} has no parameter '{name}'")
        return self.parameters[name]

    def set_parameter(self, name: str, value: float) -> None:
        if name not in self.parameters:
            raise ValueError(f"Model {self.name} has no parameter '{name}'")
        self.parameters[name] = float(value)
        self._check_parameters()

    def parameter_names(self) -> list[str]:
        return list(self.parameters)

    def clone(self, **parameters) -> "SubstitutionModel":
        """Copy of the model, with some parameters changed."""
        other = copy.copy(self)
        other.parameters = dict(self.parameters)
        for key, value in parameters.items():
            other.set_parameter(key, value)
        return other

    def description(self) -> str:
        if not self.parameters:
            return self.name
        args = ", ".join(f"{k}={v:g}" for k, v in self.parameters.items())
        return f"{self.name}({args})"

    def __repr__(self) -> str:
        return self.description()
