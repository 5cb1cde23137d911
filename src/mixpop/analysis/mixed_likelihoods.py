"""
Site likelihoods decomposed over the classes of a mixed model.

For a mixture of models, each sub-model is a class. For a mixture of one
model, each value of a distributed parameter is a class gathering all
sub-models where the parameter takes this value. For every class, the site
likelihoods are computed with the mixture restricted to the class, and the
posterior probability of the class at each site is derived from them.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
from scipy.special import logsumexp

from ..cli.display import Display, format_value
from ..config import Params, ParameterError
from ..core.likelihood import ModelCollection, PhyloLikelihood, fix_likelihood
from ..io.alphabet import GeneticCode, get_alphabet
from ..io.sequences import load_alignment
from ..io.trees import load_tree
from ..models.mixed import MixtureOfAModel, MixtureOfModels


@dataclass
class SiteTable:
    """Tab-separated table of per-site values."""

    columns: list[str]
    rows: list[list[str]] = field(default_factory=list)

    def write(self, path: Path | str) -> None:
        with open(path, "w") as f:
            f.write("\t".join(self.columns) + "\n")
            for row in self.rows:
                f.write("\t".join(row) + "\n")


def _split_number(name: str) -> tuple[str, Optional[int]]:
    """Split ``omega_2`` into ('omega', 2); names without a numeric suffix are kept."""
    prefix, sep, suffix = name.rpartition("_")
    if not sep:
        return name, None
    try:
        return prefix, int(suffix)
    except ValueError:
        return name, None


def _is_mixture_of_a_model(model) -> bool:
    return isinstance(model.mixed_model, MixtureOfAModel)


def select_mixed_model(params: Params, collection: ModelCollection) -> tuple[int, str, str]:
    """
    Choose the mixed model to decompose.

    Returns
    -------
    tuple
        (model number, parameter name as given with its model number,
        parameter name without model number); names are empty when not
        needed to find the model
    """
    mixed = collection.mixed_model_numbers()
    if not mixed:
        raise ValueError("No mixture models found.")

    real_name = ""
    name = ""
    if len(mixed) == 1:
        return mixed[0], real_name, name

    number = params.get_int("likelihoods.model_number", 0)
    if number:
        return number, real_name, name

    real_name = params.get_string("likelihoods.parameter_name", "")
    if real_name == "":
        raise ParameterError("Missing parameter name.")
    name, suffix = _split_number(real_name)
    number = suffix or 0

    if number == 0:
        # Only mixtures of one model can own the parameter
        for n in mixed:
            model = collection.model(n)
            if not model.has_parameter(name) or not _is_mixture_of_a_model(model):
                continue
            if number != 0:
                raise ValueError(f"Ambiguous model numbers for parameter {name}:{number} & {n}")
            number = n
        if number == 0:
            raise ValueError(f"Unknown parameter {real_name}")
        real_name = f"{name}_{number}"
    return number, real_name, name


def _log_normalize(log_values: np.ndarray) -> np.ndarray:
    """Normalize rows of log weights over axis 0 into probabilities."""
    with np.errstate(invalid="ignore"):
        return np.exp(log_values - logsumexp(log_values, axis=0))


def _log_column(values: np.ndarray) -> list[str]:
    return [format_value(v) for v in values]


def decompose_mixture_of_models(
    likelihood: PhyloLikelihood, mixture: MixtureOfModels, display: Display
) -> SiteTable:
    """
    Site likelihoods and posterior probabilities of each sub-model.

    Columns: ``Sites``, ``Ll``, ``Ll_<name>`` for each sub-model, then
    ``Pr_<name>`` for each sub-model.
    """
    n = mixture.n_submodels
    names = [mixture.submodel_name(i) for i in range(n)]
    alignment = likelihood.alignment

    table = SiteTable(["Sites", "Ll"] + [f"Ll_{x}" for x in names] + [f"Pr_{x}" for x in names])
    total = likelihood.log_likelihood_per_site()

    probabilities = mixture.probabilities.copy()
    class_ll = np.zeros((n, likelihood.n_sites))
    try:
        for i in range(n):
            mixture.set_probabilities(np.eye(n)[i])
            class_ll[i] = likelihood.log_likelihood_per_site()
            display.message()
            display.message(f"Model {names[i]}:")
            display.result("Log likelihood", float(np.sum(class_ll[i])), precision=15)
            display.result("Probability", float(probabilities[i]), precision=15)
    finally:
        mixture.set_probabilities(probabilities)

    with np.errstate(divide="ignore"):
        posterior = _log_normalize(np.log(probabilities)[:, np.newaxis] + class_ll)

    for j in range(likelihood.n_sites):
        row = [f"[{alignment.positions[j]}]", format_value(total[j])]
        row += _log_column(class_ll[:, j])
        row += _log_column(posterior[:, j])
        table.rows.append(row)
    return table


def decompose_mixture_of_a_model(
    likelihood: PhyloLikelihood,
    mixture: MixtureOfAModel,
    parameter: str,
    real_name: str,
    display: Display,
) -> SiteTable:
    """
    Site likelihoods and posterior probabilities of each value of a parameter.

    Columns: ``Sites``, ``Ll``, ``Ll_<par>=<value>`` and ``Pr_<par>=<value>``
    for each value, and ``mean``, the posterior mean of the parameter.
    """
    classes = []
    for k in range(mixture.n_submodels):
        submodels = mixture.submodel_numbers(f"{parameter}_{k + 1}")
        if not submodels:
            break
        classes.append(submodels)
    if len(classes) <= 1:
        raise ValueError(f"Parameter {real_name} is not mixed.")

    probabilities = mixture.probabilities.copy()
    rates = mixture.rates
    class_probabilities = np.array([probabilities[s].sum() for s in classes])
    values = np.array([mixture.submodels[s[0]].get_parameter(parameter) for s in classes])

    labels = [f"{real_name}={format_value(v)}" for v in values]
    table = SiteTable(
        ["Sites", "Ll"] + [f"Ll_{x}" for x in labels] + [f"Pr_{x}" for x in labels] + ["mean"]
    )
    total = likelihood.log_likelihood_per_site()

    class_ll = np.zeros((len(classes), likelihood.n_sites))
    try:
        for i, submodels in enumerate(classes):
            restricted = np.zeros(mixture.n_submodels)
            if class_probabilities[i] > 0:
                restricted[submodels] = probabilities[submodels] / class_probabilities[i]
            else:
                restricted[submodels] = 1.0 / len(submodels)
            mixture.set_probabilities(restricted)
            class_ll[i] = likelihood.log_likelihood_per_site()

            class_rate = float(np.dot(restricted, rates))
            display.message()
            display.message(
                f"Parameter {real_name}_{i + 1}={format_value(values[i])} "
                f"with rate={format_value(class_rate)}"
            )
            display.result("Log likelihood", float(np.sum(class_ll[i])), precision=15)
            display.result("Probability", float(class_probabilities[i]), precision=15)
    finally:
        mixture.set_probabilities(probabilities)

    with np.errstate(divide="ignore"):
        posterior = _log_normalize(np.log(class_probabilities)[:, np.newaxis] + class_ll)
    means = values @ posterior

    for j in range(likelihood.n_sites):
        row = [str(likelihood.alignment.positions[j]), format_value(total[j])]
        row += _log_column(class_ll[:, j])
        row += _log_column(posterior[:, j])
        row.append(format_value(means[j]))
        table.rows.append(row)
    return table


def resolve_parameter_name(params: Params, model, number: int, real_name: str, name: str) -> tuple[str, str]:
    """
    Check the parameter name against the chosen mixture of one model.

    Returns
    -------
    tuple
        (name with model number, name of the distributed parameter)
    """
    if real_name == "":
        real_name = params.get_string("likelihoods.parameter_name", "")
        name = real_name

    if "_" in real_name:
        base, suffix = _split_number(real_name)
        if suffix is not None:
            name = base
            if suffix != number:
                raise ValueError(f"Mismatch between model & parameter numbers: {number} ({suffix})")
        real_name = f"{name}_{number}"

    if model.is_biblio and name != "":
        name = model.pmodel_parameter_name(name)

    if name == "":
        mixture = model.mixed_model
        for parameter in mixture.distributed_parameters():
            if not mixture.distribution(parameter).is_constant:
                name = parameter
                real_name = f"{name}_{number}"
                break
    if name == "":
        raise ParameterError("Argument likelihoods.parameter_name is required.")
    return real_name, name


def compute_mixed_likelihoods(params: Params, display: Display) -> SiteTable:
    """
    Run the whole analysis and write the table to ``output.likelihoods.file``.

    Options
    -------
    alphabet, genetic_code
        Data type
    input.sequence.*, input.tree.*, init.brlen.method
        Data and tree
    model, model1, model2, ..., rate_distribution
        Models, assigned to branches with ``#n`` tree labels
    output.likelihoods.file
        Output table (required)
    likelihoods.model_number, likelihoods.parameter_name
        Which mixed model and which parameter to decompose
    """
    alphabet = get_alphabet(params.get_string("alphabet", required=True))
    display.result("Alphabet", alphabet.name)
    genetic_code = None
    if alphabet.is_codon:
        genetic_code = GeneticCode(params.get_string("genetic_code", "Standard"))
        display.result("Genetic Code", genetic_code.name)

    if "input.sequence.file2" in params:
        raise ValueError("Only one alignment possible.")
    alignment = load_alignment(params, alphabet, genetic_code=genetic_code)
    display.result("Number of sequences", alignment.n_species)
    display.result("Number of sites", alignment.n_sites)

    tree = load_tree(params)
    collection = ModelCollection.from_params(params, alphabet, tree, genetic_code, alignment)
    for number, model in collection.models.items():
        display.result(f"Model {number}", model.name)

    likelihood = PhyloLikelihood(alignment, tree, collection)
    likelihood = fix_likelihood(likelihood, params, display.message)
    display.result("Initial log likelihood", likelihood.log_likelihood(), precision=15)

    output = params.get_file_path("output.likelihoods.file", required=True, must_exist=False)
    display.result("Output file for likelihoods", output)

    number, real_name, name = select_mixed_model(params, collection)
    model = collection.model(number)
    if not model.is_mixed:
        raise ValueError(f"Model {number} is not a Mixed Model.")

    mixture = model.mixed_model
    if isinstance(mixture, MixtureOfModels):
        table = decompose_mixture_of_models(likelihood, mixture, display)
    else:
        real_name, name = resolve_parameter_name(params, model, number, real_name, name)
        display.result("likelihoods.parameter_name", real_name)
        table = decompose_mixture_of_a_model(likelihood, mixture, name, real_name, display)

    table.write(output)
    display.message()
    return table
