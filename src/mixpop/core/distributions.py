"""
Discrete distributions over model parameter values.

A mixed model spreads one or more parameters of a substitution model over a
small number of categories. Each category has a value and a probability.
"""

import numpy as np
from scipy.special import gammainc
from scipy.stats import beta as beta_dist
from scipy.stats import gamma as gamma_dist

from ..config import ParameterError, parse_procedure, parse_vector


class DiscreteDistribution:
    """
    Distribution with a finite number of categories.

    Parameters
    ----------
    name : str
        Distribution name, as used in model descriptions
    values : array-like
        Category values
    probabilities : array-like
        Category probabilities (must sum to 1)
    parameters : dict, optional
        Parameters the categories were computed from
    """

    def __init__(self, name: str, values, probabilities, parameters: dict = None):
        self.name = name
        self.values = np.asarray(values, dtype=float)
        self.probabilities = np.asarray(probabilities, dtype=float)
        self.parameters = dict(parameters or {})

        if self.values.shape != self.probabilities.shape:
            raise ValueError(
                f"{name}: {len(self.values)} values but {len(self.probabilities)} probabilities"
            )
        if self.values.size == 0:
            raise ValueError(f"{name}: empty distribution")
        if np.any(self.probabilities < 0):
            raise ValueError(f"{name}: negative probability")
        if not np.isclose(self.probabilities.sum(), 1.0, atol=1e-6):
            raise ValueError(
                f"{name}: probabilities sum to {self.probabilities.sum():g}, not 1"
            )

    @property
    def n(self) -> int:
        return len(self.values)

    @property
    def is_constant(self) -> bool:
        return self.n == 1

    def mean(self) -> float:
        return float(np.dot(self.values, self.probabilities))

    def __repr__(self) -> str:
        return f"{self.name}(n={self.n}, values={self.values.tolist()})"


def constant_distribution(value: float) -> DiscreteDistribution:
    return DiscreteDistribution("Constant", [value], [1.0], {"value": value})


def simple_distribution(values, probabilities) -> DiscreteDistribution:
    return DiscreteDistribution("Simple", values, probabilities)


def gamma_distribution(n: int, alpha: float, beta: float = None) -> DiscreteDistribution:
    """
    Discretized gamma distribution, one value per category (category mean).

    Categories have equal probability; the value of each is the mean of the
    gamma density over the category (Yang 1994).
    """
    if beta is None:
        beta = alpha
    if n < 1 or alpha <= 0 or beta <= 0:
        raise ValueError(f"Invalid gamma distribution: n={n}, alpha={alpha}, beta={beta}")
    if n == 1:
        return DiscreteDistribution("Gamma", [alpha / beta], [1.0],
                                    {"n": n, "alpha": alpha, "beta": beta})

    cuts = gamma_dist.ppf(np.arange(1, n) / n, alpha, scale=1.0 / beta)
    bounds = np.concatenate([[0.0], cuts, [np.inf]])
    # Integral of x*f(x) over a category, via the incomplete gamma of alpha+1
    upper = gammainc(alpha + 1, bounds[1:] * beta)
    lower = gammainc(alpha + 1, bounds[:-1] * beta)
    values = (upper - lower) * (alpha / beta) * n
    return DiscreteDistribution("Gamma", values, np.full(n, 1.0 / n),
                                {"n": n, "alpha": alpha, "beta": beta})


def exponential_distribution(n: int, lambda_: float) -> DiscreteDistribution:
    """Discretized exponential distribution (category means)."""
    dist = gamma_distribution(n, 1.0, lambda_)
    return DiscreteDistribution("Exponential", dist.values, dist.probabilities,
                                {"n": n, "lambda": lambda_})


def beta_distribution(n: int, alpha: float, beta: float) -> DiscreteDistribution:
    """
    Discretized beta distribution.

    Uses beta distribution quantiles at median points of n equal bins,
    following PAML's DiscreteNSsites implementation.
    """
    if n < 1 or alpha <= 0 or beta <= 0:
        raise ValueError(f"Invalid beta distribution: n={n}, alpha={alpha}, beta={beta}")
    points = (np.arange(n) * 2.0 + 1) / (2.0 * n)
    values = beta_dist.ppf(points, alpha, beta)
    return DiscreteDistribution("Beta", values, np.full(n, 1.0 / n),
                                {"n": n, "alpha": alpha, "beta": beta})


def build_distribution(description: str) -> DiscreteDistribution:
    """
    Build a discrete distribution from its description.

    Examples
    --------
    >>> build_distribution("Simple(values=(0.1, 1.0), probas=(0.4, 0.6))").n
    2
    >>> build_distribution("Gamma(n=4, alpha=0.5)").n
    4
    """
    name, args = parse_procedure(description)
    try:
        if name == "Constant":
            return constant_distribution(float(args.get("value", 1.0)))
        if name == "Simple":
            if "values" not in args or "probas" not in args:
                raise ParameterError("Simple distribution needs 'values' and 'probas'")
            values = [float(v) for v in parse_vector(args["values"])]
            probabilities = [float(p) for p in parse_vector(args["probas"])]
            return simple_distribution(values, probabilities)
        if name == "Gamma":
            alpha = float(args.get("alpha", 1.0))
            return gamma_distribution(int(args.get("n", 4)), alpha, float(args.get("beta", alpha)))
        if name == "Beta":
            return beta_distribution(
                int(args.get("n", 4)), float(args.get("alpha", 1.0)), float(args.get("beta", 1.0))
            )
        if name == "Exponential":
            return exponential_distribution(int(args.get("n", 4)), float(args.get("lambda", 1.0)))
    except ValueError as e:
        if isinstance(e, ParameterError):
            raise
        raise ParameterError(f"Invalid distribution '{description}': {e}")
    raise ParameterError(f"Unknown distribution: {name}")
