"""
Unit tests for substitution models and mixed models.
"""

import numpy as np
import pytest

from mixpop.config import ParameterError
from mixpop.core.distributions import simple_distribution
from mixpop.core.matrix import check_detailed_balance, expected_rate
from mixpop.io.alphabet import CODONS
from mixpop.io.sequences import Alignment
from mixpop.models import (
    HKY85,
    JC69,
    K80,
    YN98,
    BiblioMixedModel,
    MixtureOfAModel,
    MixtureOfModels,
    build_model,
    build_rate_distribution,
    compute_codon_frequencies,
)
from mixpop.models.biblio import yngp_m1, yngp_m8


class TestNucleotideModels:
    """Test nucleotide substitution models."""

    def test_q_matrix_properties(self, dna):
        """Rows sum to zero and the mean rate is one."""
        model = HKY85(dna, kappa=3.0, theta=0.6, theta1=0.4, theta2=0.7)
        Q = model.get_Q_matrix()
        pi = model.frequencies()

        assert Q.shape == (4, 4)
        assert np.allclose(Q.sum(axis=1), 0)
        assert expected_rate(Q, pi) == pytest.approx(1.0)
        assert check_detailed_balance(Q, pi)

    def test_k80_transition_ratio(self, dna):
        Q = K80(dna, kappa=4.0).get_Q_matrix()
        # T<->C is a transition, T<->A a transversion
        assert Q[0, 1] / Q[0, 2] == pytest.approx(4.0)

    def test_unknown_parameter(self, dna):
        with pytest.raises(ValueError, match="Unknown parameter"):
            K80(dna, omega=2.0)

    def test_invalid_kappa(self, dna):
        with pytest.raises(ValueError, match="kappa"):
            K80(dna, kappa=-1.0)

    def test_clone(self, dna):
        model = K80(dna, kappa=2.0)
        other = model.clone(kappa=5.0)
        assert model.get_parameter("kappa") == 2.0
        assert other.get_parameter("kappa") == 5.0

    def test_jc69_rejects_codons(self, codons):
        with pytest.raises(ValueError):
            JC69(codons)


class TestYN98:
    """Test the codon model."""

    def test_q_matrix_shape(self, codons, standard_code):
        model = YN98(codons, standard_code, kappa=2.0, omega=0.4)
        Q = model.get_Q_matrix()
        assert Q.shape == (61, 61)
        assert np.allclose(Q.sum(axis=1), 0)

    def test_state_map_excludes_stops(self, codons, standard_code):
        mapping = YN98(codons, standard_code).state_map()
        assert mapping[CODONS.index("TAA")] == -1
        assert mapping[CODONS.index("TTT")] == 0
        assert (mapping >= 0).sum() == 61

    def test_omega_scales_non_synonymous_rates(self, codons, standard_code):
        model = YN98(codons, standard_code, kappa=1.0, omega=0.5)
        Q = model.unnormalized_Q()
        index = model.state_map()
        ctt, ctc, att = (index[CODONS.index(c)] for c in ("CTT", "CTC", "ATT"))
        # CTT->CTC synonymous transition, CTT->ATT non-synonymous transversion
        assert Q[ctt, ctc] / Q[ctt, att] == pytest.approx(2.0)
        assert Q[ctt, index[CODONS.index("AAA")]] == 0.0

    def test_f3x4_frequencies(self, codons, standard_code):
        aln = Alignment.from_sequences(["a", "b"], ["ATGCTG", "ATGCTT"], codons)
        pi = compute_codon_frequencies(aln, standard_code, "F3X4")
        assert len(pi) == 61
        assert pi.sum() == pytest.approx(1.0)
        index = YN98(codons, standard_code).state_map()
        assert pi[index[CODONS.index("ATG")]] > pi[index[CODONS.index("GGG")]]

    def test_requires_codon_alphabet(self, dna, standard_code):
        with pytest.raises(ValueError, match="codon alphabet"):
            YN98(dna, standard_code)


class TestMixedModels:
    """Test mixtures of models and mixtures of one model."""

    def test_mixture_of_models_names(self, dna):
        mixture = MixtureOfModels([K80(dna, kappa=1.0), K80(dna, kappa=8.0)], [0.4, 0.6])
        assert mixture.names == ["K80_1", "K80_2"]
        assert mixture.n_submodels == 2
        # Each sub-model is normalized on its own
        assert np.allclose(mixture.rates, 1.0)

    def test_mixture_of_a_model_joint_normalization(self, dna):
        mixture = MixtureOfAModel(
            K80(dna), {"kappa": simple_distribution([1.0, 8.0], [0.4, 0.6])}
        )
        assert mixture.n_submodels == 2
        assert np.dot(mixture.probabilities, mixture.rates) == pytest.approx(1.0)

    def test_set_probabilities_keeps_rate_matrices(self, dna):
        mixture = MixtureOfAModel(
            K80(dna), {"kappa": simple_distribution([1.0, 8.0], [0.4, 0.6])}
        )
        before = [Q.copy() for Q in mixture.get_Q_matrices()]
        mixture.set_probabilities([1.0, 0.0])
        after = mixture.get_Q_matrices()
        assert all(np.allclose(a, b) for a, b in zip(before, after))

    def test_set_probabilities_validation(self, dna):
        mixture = MixtureOfModels([K80(dna), JC69(dna)])
        with pytest.raises(ValueError):
            mixture.set_probabilities([0.5, 0.6])
        with pytest.raises(ValueError):
            mixture.set_probabilities([1.0])

    def test_submodel_numbers(self, codons, standard_code):
        mixture = MixtureOfAModel(
            YN98(codons, standard_code),
            {
                "kappa": simple_distribution([1.0, 4.0], [0.5, 0.5]),
                "omega": simple_distribution([0.1, 1.0, 3.0], [0.5, 0.3, 0.2]),
            },
        )
        assert mixture.n_submodels == 6
        # Last parameter varies fastest
        assert mixture.submodel_numbers("omega_2") == [1, 4]
        assert mixture.submodel_numbers("kappa_2") == [3, 4, 5]
        assert mixture.submodel_numbers("omega_4") == []
        assert mixture.submodel_numbers("omega") == []
        assert mixture.probabilities[0] == pytest.approx(0.25)

    def test_undistributed_parameter_has_one_category(self, dna):
        mixture = MixtureOfAModel(
            HKY85(dna), {"kappa": simple_distribution([1.0, 8.0], [0.4, 0.6])}
        )
        assert mixture.submodel_numbers("theta_1") == [0, 1]
        assert mixture.submodel_numbers("theta_2") == []

    def test_unknown_distributed_parameter(self, dna):
        with pytest.raises(ValueError, match="no parameter"):
            MixtureOfAModel(K80(dna), {"omega": simple_distribution([1.0], [1.0])})


class TestBiblioModels:
    """Test the YNGP site-class models."""

    def test_m1(self, codons, standard_code):
        model = yngp_m1(YN98(codons, standard_code, kappa=2.0), p0=0.7, omega=0.2)
        assert isinstance(model, BiblioMixedModel)
        assert model.distribution("omega").values.tolist() == [0.2, 1.0]
        assert model.probabilities.tolist() == pytest.approx([0.7, 0.3])
        assert model.pmodel_parameter_name("p0") == "omega"
        assert model.pmodel_parameter_name("kappa") == "kappa"

    def test_m8_classes(self, codons, standard_code):
        model = yngp_m8(YN98(codons, standard_code), p0=0.8, p=1.0, q=2.0, omegas=3.0, n=4)
        assert model.n_submodels == 5
        assert model.probabilities[-1] == pytest.approx(0.2)
        assert model.distribution("omega").values[-1] == 3.0

    def test_m1_invalid_omega(self, codons, standard_code):
        with pytest.raises(ValueError, match="omega"):
            yngp_m1(YN98(codons, standard_code), omega=1.5)


class TestFactory:
    """Test model construction from descriptions."""

    def test_simple_model(self, dna):
        model = build_model("K80(kappa=2.5)", dna)
        assert isinstance(model, K80)
        assert model.get_parameter("kappa") == 2.5

    def test_mixture(self, dna):
        model = build_model(
            "Mixture(model1=K80(kappa=1), model2=HKY85(kappa=4), probas=(0.3, 0.7))", dna
        )
        assert isinstance(model, MixtureOfModels)
        assert model.names == ["K80", "HKY85"]
        assert model.probabilities.tolist() == pytest.approx([0.3, 0.7])

    def test_mixed_model(self, codons, standard_code):
        model = build_model(
            "MixedModel(model=YN98(frequencies=F0, kappa=2), "
            "omega=Simple(values=(0.1, 1, 3), probas=(0.5, 0.3, 0.2)))",
            codons, standard_code,
        )
        assert isinstance(model, MixtureOfAModel)
        assert model.distributed_parameters() == ["omega"]
        assert model.base_model.get_parameter("kappa") == 2.0

    def test_distribution_shorthand(self, dna):
        model = build_model("K80(kappa=Simple(values=(1, 8), probas=(0.4, 0.6)))", dna)
        assert isinstance(model, MixtureOfAModel)
        assert model.n_submodels == 2

    def test_biblio(self, codons, standard_code):
        model = build_model("YNGP_M7(n=4, kappa=2, p=0.5, q=1)", codons, standard_code)
        assert model.is_biblio
        assert model.n_submodels == 4

    def test_codon_model_needs_genetic_code(self, codons):
        with pytest.raises(ParameterError, match="genetic code"):
            build_model("YN98", codons)

    def test_unknown_model(self, dna):
        with pytest.raises(ParameterError, match="Unknown substitution model"):
            build_model("GTR(a=1)", dna)

    def test_mixture_numbering(self, dna):
        with pytest.raises(ParameterError):
            build_model("Mixture(model2=K80)", dna)

    def test_rate_distribution(self):
        assert build_rate_distribution("Constant").is_constant
        dist = build_rate_distribution("Gamma(n=4, alpha=0.5)")
        assert dist.n == 4
        assert dist.mean() == pytest.approx(1.0)
        with pytest.raises(ParameterError):
            build_rate_distribution("Invariant")
