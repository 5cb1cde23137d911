"""
Model construction from textual descriptions.

Descriptions use the nested procedure syntax of the parameter files, e.g.::

    K80(kappa=2.5)
    YN98(frequencies=F3X4, kappa=2, omega=0.4)
    Mixture(model1=K80(kappa=2), model2=K80(kappa=8), probas=(0.3, 0.7))
    MixedModel(model=YN98(frequencies=F0, kappa=2),
               omega=Simple(values=(0.1, 1, 3), probas=(0.5, 0.3, 0.2)))
    YNGP_M8(n=4, frequencies=F3X4, kappa=2, p0=0.9, p=0.5, q=1, omegas=2.5)
"""

from typing import Optional

from .base import SubstitutionModel
from .biblio import yngp_m1, yngp_m2, yngp_m3, yngp_m7, yngp_m8
from .codon import YN98, compute_codon_frequencies
from .mixed import MixedModel, MixtureOfAModel, MixtureOfModels
from .nucleotide import HKY85, JC69, K80, T92
from ..config import ParameterError, parse_procedure, parse_vector
from ..core.distributions import (
    DiscreteDistribution,
    build_distribution,
    constant_distribution,
    gamma_distribution,
)
from ..io.alphabet import Alphabet, GeneticCode
from ..io.sequences import Alignment


_NUCLEOTIDE_MODELS = {"JC69": JC69, "K80": K80, "T92": T92, "HKY85": HKY85}

_DISTRIBUTIONS = {"Constant", "Simple", "Gamma", "Beta", "Exponential"}

_BIBLIO_MODELS = {"YNGP_M1", "YNGP_M2", "YNGP_M3", "YNGP_M7", "YNGP_M8"}


def _is_distribution(value: str) -> bool:
    return "(" in value and value.split("(", 1)[0].strip() in _DISTRIBUTIONS


def _float_args(model_name: str, args: dict[str, str]) -> dict[str, float]:
    values = {}
    for key, value in args.items():
        try:
            values[key] = float(value)
        except ValueError:
            raise ParameterError(f"Invalid value for {model_name}.{key}: '{value}'")
    return values


def _build_yn98(args: dict[str, str], alphabet: Alphabet,
                genetic_code: Optional[GeneticCode], alignment: Optional[Alignment]) -> YN98:
    if genetic_code is None:
        raise ParameterError("Codon models need a genetic code")
    args = dict(args)
    method = args.pop("frequencies", args.pop("initFreqs", "F0"))
    method, _ = parse_procedure(method)
    pi = compute_codon_frequencies(alignment, genetic_code, method)
    return YN98(alphabet, genetic_code, pi=pi, **_float_args("YN98", args))


def _build_simple(name: str, args: dict[str, str], alphabet: Alphabet,
                  genetic_code: Optional[GeneticCode],
                  alignment: Optional[Alignment]) -> SubstitutionModel:
    if name in _NUCLEOTIDE_MODELS:
        return _NUCLEOTIDE_MODELS[name](alphabet, **_float_args(name, args))
    if name == "YN98":
        return _build_yn98(args, alphabet, genetic_code, alignment)
    raise ParameterError(f"Unknown substitution model: {name}")


def _build_mixture(args: dict[str, str], alphabet: Alphabet,
                   genetic_code: Optional[GeneticCode],
                   alignment: Optional[Alignment]) -> MixtureOfModels:
    args = dict(args)
    probas = args.pop("probas", None)
    keys = sorted(
        (k for k in args if k.startswith("model") and k[5:].isdigit()),
        key=lambda k: int(k[5:]),
    )
    unknown = set(args) - set(keys)
    if unknown:
        raise ParameterError(f"Unknown argument(s) for Mixture: {', '.join(sorted(unknown))}")
    if not keys:
        raise ParameterError("Mixture needs at least one argument model1=...")
    expected = [f"model{k + 1}" for k in range(len(keys))]
    if keys != expected:
        raise ParameterError(f"Mixture sub-models must be numbered from 1: got {', '.join(keys)}")

    submodels = []
    for key in keys:
        model = build_model(args[key], alphabet, genetic_code, alignment)
        if model.is_mixed:
            raise ParameterError("Mixture sub-models cannot be mixed models")
        submodels.append(model)

    probabilities = None
    if probas is not None:
        probabilities = [float(p) for p in parse_vector(probas)]
    return MixtureOfModels(submodels, probabilities)


def _build_mixed_model(args: dict[str, str], alphabet: Alphabet,
                       genetic_code: Optional[GeneticCode],
                       alignment: Optional[Alignment]) -> MixtureOfAModel:
    args = dict(args)
    if "model" not in args:
        raise ParameterError("MixedModel needs an argument model=...")

    # Distributions may be given on the base model or on MixedModel itself
    base_name, base_args = parse_procedure(args.pop("model"))
    distributions = {}
    plain_args = {}
    for key, value in list(base_args.items()) + list(args.items()):
        if _is_distribution(value):
            distributions[key] = build_distribution(value)
        else:
            plain_args[key] = value

    base = _build_simple(base_name, plain_args, alphabet, genetic_code, alignment)
    if not distributions:
        raise ParameterError("MixedModel needs at least one parameter with a distribution")
    return MixtureOfAModel(base, distributions)


def _build_biblio(name: str, args: dict[str, str], alphabet: Alphabet,
                  genetic_code: Optional[GeneticCode],
                  alignment: Optional[Alignment]) -> MixedModel:
    args = dict(args)
    base_args = {}
    for key in ("frequencies", "initFreqs", "kappa"):
        if key in args:
            base_args[key] = args.pop(key)
    base = _build_yn98(base_args, alphabet, genetic_code, alignment)

    values = _float_args(name, args)
    try:
        if name == "YNGP_M1":
            return yngp_m1(base, **values)
        if name == "YNGP_M2":
            return yngp_m2(base, **values)
        if name == "YNGP_M7":
            n = int(values.pop("n", 10))
            return yngp_m7(base, n=n, **values)
        if name == "YNGP_M8":
            n = int(values.pop("n", 10))
            return yngp_m8(base, n=n, **values)
        # YNGP_M3: omega0, omega1, ... and p0, p1, ...
        n = int(values.pop("n", 3))
        omegas = [values.pop(f"omega{k}", 0.5 * (k + 1)) for k in range(n)]
        proportions = [values.pop(f"p{k}", 1.0 / n) for k in range(n)]
        if values:
            raise ParameterError(
                f"Unknown argument(s) for {name}: {', '.join(sorted(values))}"
            )
        return yngp_m3(base, omegas, proportions)
    except TypeError as e:
        raise ParameterError(f"Invalid arguments for {name}: {e}")


def build_model(
    description: str,
    alphabet: Alphabet,
    genetic_code: Optional[GeneticCode] = None,
    alignment: Optional[Alignment] = None,
):
    """
    Build a substitution model from its description.

    Parameters
    ----------
    description : str
        Model description (see module docstring)
    alphabet : Alphabet
        Alphabet of the data
    genetic_code : GeneticCode, optional
        Needed for codon models
    alignment : Alignment, optional
        Data used to estimate codon frequencies (F1X4, F3X4)

    Returns
    -------
    SubstitutionModel or MixedModel
    """
    name, args = parse_procedure(description)
    if name == "Mixture":
        return _build_mixture(args, alphabet, genetic_code, alignment)
    if name == "MixedModel":
        return _build_mixed_model(args, alphabet, genetic_code, alignment)
    if name in _BIBLIO_MODELS:
        return _build_biblio(name, args, alphabet, genetic_code, alignment)

    distributed = {k: v for k, v in args.items() if _is_distribution(v)}
    if distributed:
        # 'YN98(omega=Simple(...))' is shorthand for a mixture of one model
        plain = {k: v for k, v in args.items() if k not in distributed}
        base = _build_simple(name, plain, alphabet, genetic_code, alignment)
        return MixtureOfAModel(
            base, {k: build_distribution(v) for k, v in distributed.items()}
        )
    return _build_simple(name, args, alphabet, genetic_code, alignment)


def build_rate_distribution(description: str = "Constant") -> DiscreteDistribution:
    """
    Rate distribution across sites.

    ``Constant`` or ``Gamma(n=4, alpha=0.5)`` (mean rate 1).
    """
    name, args = parse_procedure(description)
    if name == "Constant":
        return constant_distribution(1.0)
    if name == "Gamma":
        alpha = float(args.get("alpha", 1.0))
        return gamma_distribution(int(args.get("n", 4)), alpha, alpha)
    raise ParameterError(f"Unknown rate distribution: {description}")
