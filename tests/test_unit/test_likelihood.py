"""
Unit tests for likelihood calculation.
"""

import numpy as np
import pytest
from scipy.special import logsumexp

from mixpop.config import Params, ParameterError
from mixpop.core.distributions import gamma_distribution
from mixpop.core.likelihood import ModelCollection, PhyloLikelihood, fix_likelihood
from mixpop.io.sequences import Alignment
from mixpop.io.trees import Tree
from mixpop.models import JC69, K80, YN98, MixtureOfModels


FOUR_TAXA = "((s1:0.05,s2:0.08):0.02,s3:0.03,s4:0.04);"


def make_likelihood(alignment, newick, models, rate_distribution=None):
    tree = Tree.from_newick(newick)
    if not isinstance(models, dict):
        models = {1: models}
    return PhyloLikelihood(alignment, tree, ModelCollection(models, tree, rate_distribution))


@pytest.fixture
def four_taxa(dna):
    return Alignment.from_sequences(
        ["s1", "s2", "s3", "s4"],
        ["ACGTACGTAC", "ACGTACGTAA", "ACGAACGTAC", "ACGAACGTAC"],
        dna,
    )


class TestPruning:
    """Test Felsenstein pruning against closed forms."""

    def test_jc69_two_sequences(self, dna):
        """Two leaves under JC69 reduce to one branch of length 0.3."""
        aln = Alignment.from_sequences(["a", "b"], ["AA", "AC"], dna)
        lik = make_likelihood(aln, "(a:0.1,b:0.2);", JC69(dna))

        decay = np.exp(-4.0 * 0.3 / 3.0)
        expected = np.log([0.25 * (0.25 + 0.75 * decay), 0.25 * (0.25 - 0.25 * decay)])
        assert np.allclose(lik.log_likelihood_per_site(), expected)
        assert lik.log_likelihood() == pytest.approx(expected.sum())
        assert np.allclose(lik.likelihood_per_site(), np.exp(expected))

    def test_gaps_are_uninformative(self, dna):
        aln = Alignment.from_sequences(["a", "b"], ["A", "-"], dna)
        lik = make_likelihood(aln, "(a:0.1,b:0.2);", JC69(dna))
        assert lik.log_likelihood() == pytest.approx(np.log(0.25))

    def test_ambiguous_characters(self, dna):
        """R at a leaf sums over A and G."""
        aln_r = Alignment.from_sequences(["a", "b"], ["A", "R"], dna)
        aln_a = Alignment.from_sequences(["a", "b"], ["A", "A"], dna)
        aln_g = Alignment.from_sequences(["a", "b"], ["A", "G"], dna)
        lik = {
            name: make_likelihood(aln, "(a:0.1,b:0.2);", K80(dna, kappa=3.0)).log_likelihood()
            for name, aln in (("R", aln_r), ("A", aln_a), ("G", aln_g))
        }
        assert np.exp(lik["R"]) == pytest.approx(np.exp(lik["A"]) + np.exp(lik["G"]))

    def test_rate_distribution(self, four_taxa, dna):
        constant = make_likelihood(four_taxa, FOUR_TAXA, K80(dna, kappa=2.0))
        gamma = make_likelihood(four_taxa, FOUR_TAXA, K80(dna, kappa=2.0),
                                gamma_distribution(4, 0.5))
        assert np.isfinite(gamma.log_likelihood())
        assert gamma.log_likelihood() != pytest.approx(constant.log_likelihood())

    def test_sequence_names_must_match_tree(self, dna):
        aln = Alignment.from_sequences(["a", "c"], ["A", "A"], dna)
        with pytest.raises(ValueError, match="No sequence found"):
            make_likelihood(aln, "(a:0.1,b:0.2);", JC69(dna))


class TestMixtures:
    """Test site and branch mixtures."""

    def test_site_mixture_is_weighted_sum(self, four_taxa, dna):
        weak, strong = K80(dna, kappa=1.0), K80(dna, kappa=8.0)
        mixture = MixtureOfModels([weak, strong], [0.4, 0.6])
        lik = make_likelihood(four_taxa, FOUR_TAXA, mixture)

        separate = np.array([
            make_likelihood(four_taxa, FOUR_TAXA, m).log_likelihood_per_site()
            for m in (weak, strong)
        ])
        expected = logsumexp(separate + np.log([[0.4], [0.6]]), axis=0)
        assert np.allclose(lik.log_likelihood_per_site(), expected)
        assert np.allclose(lik.class_log_likelihoods_per_site(), separate)

    def test_class_posteriors(self, four_taxa, dna):
        mixture = MixtureOfModels([K80(dna, kappa=1.0), K80(dna, kappa=8.0)], [0.4, 0.6])
        lik = make_likelihood(four_taxa, FOUR_TAXA, mixture)
        posteriors = lik.class_posteriors_per_site()
        assert posteriors.shape == (2, 10)
        assert np.allclose(posteriors.sum(axis=0), 1.0)

    def test_probabilities_change_without_recomputing_classes(self, four_taxa, dna):
        mixture = MixtureOfModels([K80(dna, kappa=1.0), K80(dna, kappa=8.0)], [0.4, 0.6])
        lik = make_likelihood(four_taxa, FOUR_TAXA, mixture)
        class_ll = lik.class_log_likelihoods_per_site()
        mixture.set_probabilities([1.0, 0.0])
        assert np.allclose(lik.log_likelihood_per_site(), class_ll[0])

    def test_branch_mixture(self, four_taxa, dna):
        """A mixture of identical models on some branches changes nothing."""
        model = K80(dna, kappa=2.0)
        mixture = MixtureOfModels([K80(dna, kappa=2.0), K80(dna, kappa=2.0)], [0.3, 0.7])
        labelled = "((s1:0.05 #2,s2:0.08 #2):0.02,s3:0.03,s4:0.04);"
        reference = make_likelihood(four_taxa, FOUR_TAXA, model)
        mixed = make_likelihood(four_taxa, labelled, {1: model, 2: mixture})

        assert mixed.collection.site_mixture_number() is None
        assert mixed.log_likelihood() == pytest.approx(reference.log_likelihood())
        assert mixed.class_log_likelihoods_per_site().shape == (1, 10)

    def test_undefined_branch_model(self, dna):
        tree = Tree.from_newick("(a:0.1 #3,b:0.2);")
        with pytest.raises(ParameterError, match="not defined"):
            ModelCollection({1: JC69(dna)}, tree)


class TestModelCollection:
    """Test model reading from parameters."""

    def test_numbered_models(self, dna):
        tree = Tree.from_newick("(a:0.1 #2,b:0.2);")
        params = Params({"model1": "JC69", "model2": "K80(kappa=Simple(values=(1, 8), probas=(0.4, 0.6)))"})
        collection = ModelCollection.from_params(params, dna, tree)
        assert collection.model_numbers == [1, 2]
        assert collection.mixed_model_numbers() == [2]
        with pytest.raises(ValueError, match="Unknown number of model 5"):
            collection.model(5)

    def test_model_and_model1_conflict(self, dna):
        tree = Tree.from_newick("(a:0.1,b:0.2);")
        with pytest.raises(ParameterError, match="cannot be used together"):
            ModelCollection.from_params(Params({"model": "JC69", "model1": "K80"}), dna, tree)

    def test_missing_model(self, dna):
        tree = Tree.from_newick("(a:0.1,b:0.2);")
        with pytest.raises(ParameterError, match="'model' not found"):
            ModelCollection.from_params(Params(), dna, tree)


class TestAncestralStates:
    """Test marginal reconstruction at internal nodes."""

    def test_posterior_sums_to_one(self, four_taxa, dna):
        lik = make_likelihood(four_taxa, FOUR_TAXA, K80(dna, kappa=2.0))
        node = lik.tree.leaf("s1").parent
        posterior = lik.posterior_at_node(node)
        assert posterior.shape == (10, 4)
        assert np.allclose(posterior.sum(axis=1), 1.0)

    def test_conserved_sites(self, four_taxa, dna):
        lik = make_likelihood(four_taxa, FOUR_TAXA, K80(dna, kappa=2.0))
        ancestor = lik.ancestral_sequence(lik.tree.leaf("s1").parent)
        assert dna.decode_sequence(ancestor)[:3] == "ACG"
        # s1 and s2 share T at site 4
        assert dna.char(ancestor[3]) == "T"


class TestNullLikelihood:
    """Test sites with a null likelihood."""

    @pytest.fixture
    def stop_codon_likelihood(self, codons, standard_code):
        aln = Alignment.from_sequences(["a", "b"], ["ATGTAA", "ATGCAA"], codons)
        return make_likelihood(aln, "(a:0.1,b:0.2);", YN98(codons, standard_code, kappa=2.0))

    def test_null_sites_detected(self, stop_codon_likelihood):
        assert stop_codon_likelihood.null_likelihood_sites().tolist() == [1]

    def test_null_sites_raise(self, stop_codon_likelihood):
        with pytest.raises(ValueError, match="null at 1 site"):
            fix_likelihood(stop_codon_likelihood, Params())

    def test_null_sites_removed(self, stop_codon_likelihood):
        messages = []
        params = Params({"input.sequence.remove_saturated_sites": "yes"})
        fixed = fix_likelihood(stop_codon_likelihood, params, messages.append)
        assert fixed.n_sites == 1
        assert fixed.alignment.positions.tolist() == [1]
        assert messages[1] == "!!! Site 2: TAA CAA"
