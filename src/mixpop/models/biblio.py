"""
Codon site-class models from the literature.

Each model is a mixture of one YN98 model in which omega follows a discrete
distribution (Yang, Nielsen, Goldman and Pedersen 2000):

- M1 (NearlyNeutral): omega0 < 1 with proportion p0, omega = 1 otherwise
- M2 (PositiveSelection): omega0 < 1, omega = 1, omega2 > 1
- M3 (discrete): n free omega classes
- M7 (beta): omega ~ Beta(p, q) discretized into n classes
- M8 (beta & omega): M7 with proportion p0, plus omegas > 1
"""

import numpy as np

from .codon import YN98
from .mixed import MixtureOfAModel
from ..core.distributions import beta_distribution, simple_distribution


class BiblioMixedModel(MixtureOfAModel):
    """
    Literature site-class model over YN98.

    Attributes
    ----------
    biblio_parameters : dict[str, float]
        Parameters of the literature parametrization (p0, omega0, p, q, ...)
    """

    is_biblio = True
    mixed_parameter = "omega"

    def __init__(self, name: str, base_model: YN98, proportions: list[float],
                 omegas: list[float], biblio_parameters: dict[str, float]):
        self.biblio_parameters = dict(biblio_parameters)
        distribution = simple_distribution(omegas, proportions)
        super().__init__(base_model, {self.mixed_parameter: distribution}, name=name)

    def has_parameter(self, name: str) -> bool:
        return name in self.biblio_parameters or super().has_parameter(name)

    def pmodel_parameter_name(self, name: str) -> str:
        """
        Name of the mixture parameter behind a literature parameter.

        All proportion and omega parameters define the omega distribution;
        the other parameters (kappa) belong to the base model.
        """
        if name in self.biblio_parameters and name != "kappa":
            return self.mixed_parameter
        return name


def _check_proportion(name: str, value: float) -> float:
    if not 0 <= value <= 1:
        raise ValueError(f"{name} must be in [0, 1], got {value}")
    return value


def yngp_m1(base_model: YN98, p0: float = 0.5, omega: float = 0.5) -> BiblioMixedModel:
    """M1a (NearlyNeutral) codon model: two site classes, omega0 < 1 and omega1 = 1."""
    _check_proportion("p0", p0)
    if not 0 <= omega < 1:
        raise ValueError(f"omega must be in [0, 1) for YNGP_M1, got {omega}")
    return BiblioMixedModel(
        "YNGP_M1", base_model, [p0, 1.0 - p0], [omega, 1.0],
        {"kappa": base_model.get_parameter("kappa"), "p0": p0, "omega": omega},
    )


def yngp_m2(base_model: YN98, p0: float = 0.5, p1: float = 0.3,
            omega0: float = 0.5, omega2: float = 2.0) -> BiblioMixedModel:
    """M2a (PositiveSelection) codon model: omega0 < 1, omega1 = 1, omega2 > 1."""
    _check_proportion("p0", p0)
    _check_proportion("p1", p1)
    if p0 + p1 > 1:
        raise ValueError(f"p0 + p1 must not exceed 1, got {p0 + p1}")
    if not 0 <= omega0 < 1:
        raise ValueError(f"omega0 must be in [0, 1), got {omega0}")
    if omega2 <= 1:
        raise ValueError(f"omega2 must be > 1, got {omega2}")
    return BiblioMixedModel(
        "YNGP_M2", base_model, [p0, p1, 1.0 - p0 - p1], [omega0, 1.0, omega2],
        {"kappa": base_model.get_parameter("kappa"), "p0": p0, "p1": p1,
         "omega0": omega0, "omega2": omega2},
    )


def yngp_m3(base_model: YN98, omegas: list[float] = None,
            proportions: list[float] = None) -> BiblioMixedModel:
    """M3 (discrete) codon model: K site classes with free omega values."""
    if omegas is None:
        omegas = [0.5, 1.0, 2.0]
    if proportions is None:
        proportions = [1.0 / len(omegas)] * len(omegas)
    if len(omegas) != len(proportions):
        raise ValueError("omegas and proportions must have same length")

    proportions = np.asarray(proportions, dtype=float)
    proportions = proportions / proportions.sum()

    params = {"kappa": base_model.get_parameter("kappa")}
    for k, (omega, p) in enumerate(zip(omegas, proportions)):
        params[f"omega{k}"] = float(omega)
        params[f"p{k}"] = float(p)
    return BiblioMixedModel("YNGP_M3", base_model, proportions.tolist(), list(omegas), params)


def yngp_m7(base_model: YN98, p: float = 0.5, q: float = 0.5, n: int = 10) -> BiblioMixedModel:
    """M7 (beta) codon model: omega ~ Beta(p, q) discretized into n classes."""
    beta = beta_distribution(n, p, q)
    return BiblioMixedModel(
        "YNGP_M7", base_model, beta.probabilities.tolist(), beta.values.tolist(),
        {"kappa": base_model.get_parameter("kappa"), "p": p, "q": q},
    )


def yngp_m8(base_model: YN98, p0: float = 0.9, p: float = 0.5, q: float = 0.5,
            omegas: float = 2.0, n: int = 10) -> BiblioMixedModel:
    """
    M8 (beta & omega > 1) codon model.

    Beta classes carry a total proportion p0; the extra class omegas > 1
    carries 1 - p0.
    """
    _check_proportion("p0", p0)
    if omegas < 1:
        raise ValueError(f"omegas must be >= 1, got {omegas}")
    beta = beta_distribution(n, p, q)
    proportions = (beta.probabilities * p0).tolist() + [1.0 - p0]
    values = beta.values.tolist() + [omegas]
    return BiblioMixedModel(
        "YNGP_M8", base_model, proportions, values,
        {"kappa": base_model.get_parameter("kappa"), "p0": p0, "p": p, "q": q,
         "omegas": omegas},
    )
