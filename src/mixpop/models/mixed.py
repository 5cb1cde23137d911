"""
Mixed substitution models.

A mixed model is a finite mixture of sub-models, each with a probability.
Two kinds are supported:

- **Mixture of models**: an explicit list of (possibly different) models.
- **Mixture of one model**: a single base model whose parameters follow
  discrete distributions; there is one sub-model per combination of
  parameter categories.

Sub-model rate matrices are computed once, from the probabilities the model
is built with. Changing the probabilities afterwards (to condition on a
class) leaves the rate matrices, and so the time scale, unchanged.
"""

from itertools import product
from typing import Optional

import numpy as np

from .base import SubstitutionModel
from ..core.distributions import DiscreteDistribution
from ..core.matrix import expected_rate


class MixedModel:
    """
    Mixture of substitution models.

    Attributes
    ----------
    name : str
        Model name
    submodels : list[SubstitutionModel]
        Sub-models, all over the same alphabet and states
    probabilities : np.ndarray
        Current sub-model probabilities
    """

    is_mixed = True
    is_biblio = False

    def __init__(self, name: str, submodels: list[SubstitutionModel], probabilities):
        if not submodels:
            raise ValueError(f"{name}: a mixed model needs at least one sub-model")
        probabilities = np.asarray(probabilities, dtype=float)
        if len(probabilities) != len(submodels):
            raise ValueError(
                f"{name}: {len(submodels)} sub-models but {len(probabilities)} probabilities"
            )
        n_states = {m.n_states for m in submodels}
        if len(n_states) != 1:
            raise ValueError(f"{name}: sub-models have different numbers of states")

        self.name = name
        self.submodels = list(submodels)
        self.alphabet = submodels[0].alphabet
        self.set_probabilities(probabilities)
        self._normalization_probabilities = self.probabilities.copy()
        self._Q_cache = None

    @property
    def n_submodels(self) -> int:
        return len(self.submodels)

    @property
    def n_states(self) -> int:
        return self.submodels[0].n_states

    @property
    def mixed_model(self) -> "MixedModel":
        """The underlying mixture (itself, except for literature models)."""
        return self

    def state_map(self) -> np.ndarray:
        return self.submodels[0].state_map()

    def set_probabilities(self, probabilities) -> None:
        """Replace the sub-model probabilities (rate matrices are kept)."""
        probabilities = np.asarray(probabilities, dtype=float)
        if len(probabilities) != len(self.submodels):
            raise ValueError(
                f"{self.name}: expected {len(self.submodels)} probabilities, "
                f"got {len(probabilities)}"
            )
        if np.any(probabilities < 0) or not np.isclose(probabilities.sum(), 1.0, atol=1e-6):
            raise ValueError(f"{self.name}: invalid probabilities {probabilities.tolist()}")
        self.probabilities = probabilities

    def submodel_name(self, index: int) -> str:
        return self.submodels[index].name

    def frequencies(self, index: int) -> np.ndarray:
        return self.submodels[index].frequencies()

    def mean_frequencies(self) -> np.ndarray:
        return sum(p * m.frequencies() for p, m in zip(self.probabilities, self.submodels))

    def _normalization_factors(self) -> np.ndarray:
        """Divisor applied to each unnormalized sub-model rate matrix."""
        return np.array([
            expected_rate(m.unnormalized_Q(), m.frequencies()) for m in self.submodels
        ])

    def get_Q_matrices(self) -> list[np.ndarray]:
        if self._Q_cache is None:
            factors = self._normalization_factors()
            self._Q_cache = [
                m.unnormalized_Q() / f for m, f in zip(self.submodels, factors)
            ]
        return self._Q_cache

    @property
    def rates(self) -> np.ndarray:
        """Mean substitution rate of each sub-model relative to the mixture."""
        return np.array([
            expected_rate(Q, m.frequencies())
            for Q, m in zip(self.get_Q_matrices(), self.submodels)
        ])

    def has_parameter(self, name: str) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{self.name}(n_submodels={self.n_submodels})"


class MixtureOfModels(MixedModel):
    """
    Mixture of explicitly given models.

    Each sub-model is normalized on its own, so all sub-models have rate 1.
    """

    def __init__(self, submodels: list[SubstitutionModel], probabilities=None,
                 names: Optional[list[str]] = None):
        if probabilities is None:
            probabilities = np.full(len(submodels), 1.0 / max(len(submodels), 1))
        super().__init__("Mixture", submodels, probabilities)

        if names is None:
            names = [m.name for m in submodels]
        # Sub-model names label output columns and must be unique
        if len(set(names)) != len(names):
            names = [f"{n}_{k + 1}" for k, n in enumerate(names)]
        self.names = list(names)

    def submodel_name(self, index: int) -> str:
        return self.names[index]

    def has_parameter(self, name: str) -> bool:
        return any(m.has_parameter(name) for m in self.submodels)


class MixtureOfAModel(MixedModel):
    """
    Mixture of one model with parameters following discrete distributions.

    All sub-models are normalized jointly: following PAML's approach, each
    rate matrix is divided by the probability-weighted average of the
    sub-model rates, so the mixture as a whole has rate 1.

    Parameters
    ----------
    base_model : SubstitutionModel
        Model whose parameters are distributed
    distributions : dict[str, DiscreteDistribution]
        Distribution of each mixed parameter, in declaration order
    """

    def __init__(self, base_model: SubstitutionModel,
                 distributions: dict[str, DiscreteDistribution], name: str = "MixedModel"):
        for parameter in distributions:
            if not base_model.has_parameter(parameter):
                raise ValueError(
                    f"Model {base_model.name} has no parameter '{parameter}' to distribute"
                )
        self.base_model = base_model
        self.distributions = dict(distributions)

        # One sub-model per combination of categories, last parameter varying fastest
        names = list(self.distributions)
        category_sets = [range(self.distributions[p].n) for p in names]
        self.categories = [dict(zip(names, combo)) for combo in product(*category_sets)]

        submodels = []
        probabilities = []
        for combo in self.categories:
            values = {p: self.distributions[p].values[k] for p, k in combo.items()}
            submodels.append(base_model.clone(**values))
            probabilities.append(
                np.prod([self.distributions[p].probabilities[k] for p, k in combo.items()])
            )
        super().__init__(name, submodels, probabilities)

    def _normalization_factors(self) -> np.ndarray:
        factors = super()._normalization_factors()
        weighted = float(np.dot(self._normalization_probabilities, factors))
        return np.full(len(factors), weighted)

    def distribution(self, parameter: str) -> Optional[DiscreteDistribution]:
        return self.distributions.get(parameter)

    def distributed_parameters(self) -> list[str]:
        return list(self.distributions)

    def has_parameter(self, name: str) -> bool:
        return self.base_model.has_parameter(name)

    def submodel_numbers(self, name: str) -> list[int]:
        """
        Sub-models in which a parameter takes a given category.

        Parameters
        ----------
        name : str
            ``<parameter>_<k>`` with k the 1-based category index

        Returns
        -------
        list[int]
            Indices of the matching sub-models (empty if none). A parameter
            of the base model that is not distributed has a single category
            covering all sub-models.
        """
        if "_" not in name:
            return []
        parameter, _, index = name.rpartition("_")
        try:
            k = int(index) - 1
        except ValueError:
            return []
        if parameter in self.distributions:
            if not 0 <= k < self.distributions[parameter].n:
                return []
            return [i for i, combo in enumerate(self.categories) if combo[parameter] == k]
        if self.base_model.has_parameter(parameter) and k == 0:
            return list(range(self.n_submodels))
        return []

    def submodel_name(self, index: int) -> str:
        combo = self.categories[index]
        return "_".join(f"{p}{k + 1}" for p, k in combo.items()) or self.base_model.name
