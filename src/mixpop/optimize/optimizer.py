"""
Maximum likelihood estimation of model parameters and branch lengths.
"""

from typing import Callable, Optional

import numpy as np
from scipy.optimize import minimize

from ..config import Params, ParameterError, parse_procedure
from ..core.likelihood import PhyloLikelihood


# Parameters in (0, 1) are optimized on their own scale, the others in log space
_PROPORTION_PARAMETERS = {"theta", "theta1", "theta2"}

_LOG_BOUNDS = (np.log(1e-4), np.log(999.0))
_PROPORTION_BOUNDS = (0.001, 0.999)
_BRANCH_BOUNDS = (np.log(1e-6), np.log(50.0))


class ModelOptimizer:
    """
    Optimize model parameters and branch lengths of a likelihood.

    The likelihood's collection is updated in place: optimized models replace
    the original ones and branch lengths are written into the tree.

    Parameters
    ----------
    likelihood : PhyloLikelihood
        Likelihood to maximize
    parameters : list[tuple[int, str]], optional
        (model number, parameter name) pairs to estimate; by default every
        parameter of every non-mixed model
    optimize_branch_lengths : bool
        Estimate branch lengths too
    """

    def __init__(
        self,
        likelihood: PhyloLikelihood,
        parameters: Optional[list[tuple[int, str]]] = None,
        optimize_branch_lengths: bool = True,
    ):
        self.likelihood = likelihood
        self.collection = likelihood.collection
        if parameters is None:
            parameters = [
                (number, name)
                for number, model in self.collection.models.items()
                if not model.is_mixed
                for name in model.parameter_names()
            ]
        for number, name in parameters:
            model = self.collection.model(number)
            if model.is_mixed:
                raise ValueError(f"Parameters of mixed model {number} cannot be optimized")
            if not model.has_parameter(name):
                raise ValueError(f"Model {number} has no parameter '{name}'")
        self.parameters = list(parameters)
        self.optimize_branch_lengths = optimize_branch_lengths
        self.branch_nodes = likelihood.tree.branch_nodes()
        self.n_evaluations = 0

    def _to_vector(self) -> tuple[np.ndarray, list[tuple[float, float]]]:
        values = []
        bounds = []
        for number, name in self.parameters:
            value = self.collection.model(number).get_parameter(name)
            if name in _PROPORTION_PARAMETERS:
                values.append(np.clip(value, *_PROPORTION_BOUNDS))
                bounds.append(_PROPORTION_BOUNDS)
            else:
                values.append(np.clip(np.log(max(value, 1e-10)), *_LOG_BOUNDS))
                bounds.append(_LOG_BOUNDS)
        if self.optimize_branch_lengths:
            for node in self.branch_nodes:
                values.append(np.clip(np.log(max(node.branch_length, 1e-10)), *_BRANCH_BOUNDS))
                bounds.append(_BRANCH_BOUNDS)
        return np.array(values, dtype=float), bounds

    def _apply(self, x: np.ndarray) -> None:
        """Write a parameter vector into the models and the tree."""
        updates = {}
        for value, (number, name) in zip(x, self.parameters):
            if name not in _PROPORTION_PARAMETERS:
                value = np.exp(value)
            updates.setdefault(number, {})[name] = float(value)
        for number, values in updates.items():
            self.collection.models[number] = self.collection.model(number).clone(**values)

        if self.optimize_branch_lengths:
            offset = len(self.parameters)
            for k, node in enumerate(self.branch_nodes):
                node.branch_length = float(np.exp(x[offset + k]))
        self.likelihood.invalidate()

    def negative_log_likelihood(self, x: np.ndarray) -> float:
        """
        Objective function.

        Parameters
        ----------
        x : np.ndarray
            [model parameters..., log(branch lengths)...]

        Returns
        -------
        float
            Negative log-likelihood (1e10 where the likelihood is null)
        """
        self._apply(x)
        self.n_evaluations += 1
        log_likelihood = self.likelihood.log_likelihood()
        if not np.isfinite(log_likelihood):
            return 1e10
        return -log_likelihood

    def optimize(self, max_evaluations: int = 10000, tolerance: float = 1e-6) -> float:
        """
        Run L-BFGS-B from the current values.

        Returns
        -------
        float
            Maximized log-likelihood
        """
        x0, bounds = self._to_vector()
        if len(x0) == 0:
            return self.likelihood.log_likelihood()

        self.n_evaluations = 0
        result = minimize(
            self.negative_log_likelihood,
            x0,
            method="L-BFGS-B",
            bounds=bounds,
            options={"maxfun": max_evaluations, "ftol": tolerance},
        )
        # Leave the models in the optimal state, not the last evaluated one
        self._apply(result.x)
        return self.likelihood.log_likelihood()


def optimize_parameters(
    likelihood: PhyloLikelihood,
    params: Params,
    display: Optional[Callable[[str, object], None]] = None,
) -> float:
    """
    Optimize a likelihood as described by the ``optimization`` options.

    Options
    -------
    optimization
        ``None`` to skip, otherwise ``FullD`` (default)
    optimization.max_number_f_eval
        Maximum number of likelihood evaluations (default 1000000)
    optimization.tolerance
        Stopping tolerance on the log-likelihood (default 1e-6)
    optimization.ignore_parameters
        Parameters kept fixed, e.g. ``kappa`` or ``BrLen``

    Returns
    -------
    float
        Log-likelihood after optimization
    """
    method, _ = parse_procedure(params.get_string("optimization", "FullD"))
    if method == "None":
        return likelihood.log_likelihood()
    if method not in ("FullD", "D-Brent", "D-BFGS"):
        raise ParameterError(f"Unknown optimization method: {method}")

    ignored = set(params.get_vector("optimization.ignore_parameters", []))
    max_evaluations = params.get_int("optimization.max_number_f_eval", 1000000)
    tolerance = params.get_float("optimization.tolerance", 1e-6)

    parameters = [
        (number, name)
        for number, model in likelihood.collection.models.items()
        if not model.is_mixed
        for name in model.parameter_names()
        if name not in ignored and f"{name}_{number}" not in ignored
    ]
    optimizer = ModelOptimizer(
        likelihood, parameters, optimize_branch_lengths="BrLen" not in ignored
    )
    if display is not None:
        display("Optimization method", method)
        display("Max # ML evaluations", max_evaluations)
        display("Tolerance", tolerance)
    log_likelihood = optimizer.optimize(max_evaluations, tolerance)
    if display is not None:
        display("Performed", f"{optimizer.n_evaluations} function evaluations.")
    return log_likelihood
