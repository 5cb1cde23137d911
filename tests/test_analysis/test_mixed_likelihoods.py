"""
Tests for site likelihood decomposition over mixed model classes.
"""

import numpy as np
import pytest
from scipy.special import logsumexp

from mixpop.analysis import compute_mixed_likelihoods, select_mixed_model
from mixpop.config import Params, ParameterError
from mixpop.core.likelihood import ModelCollection, PhyloLikelihood
from mixpop.io.sequences import read_alignment
from mixpop.io.trees import Tree


MIXTURE = "Mixture(model1=K80(kappa=1), model2=K80(kappa=8), probas=(0.4, 0.6))"
KAPPA_MIXTURE = "K80(kappa=Simple(values=(1, 8), probas=(0.4, 0.6)))"


@pytest.fixture
def dna_params(dna_ingroup_file, dna_tree_file, tmp_path):
    def make(**values):
        params = {
            "alphabet": "DNA",
            "input.sequence.file": str(dna_ingroup_file),
            "input.tree.file": str(dna_tree_file),
            "output.likelihoods.file": str(tmp_path / "site_likelihoods.txt"),
        }
        params.update(values)
        return Params(params)
    return make


@pytest.fixture
def labelled_tree_file(tmp_path):
    tree_file = tmp_path / "labelled.nwk"
    tree_file.write_text("((s1:0.05,s2:0.08):0.02,s3:0.03 #2,s4:0.04 #2);\n")
    return tree_file


def column(table, name):
    return np.array([float(row[table.columns.index(name)]) for row in table.rows])


class TestMixtureOfModels:
    """Decomposition over the sub-models of a mixture."""

    def test_columns_and_rows(self, dna_params, quiet_display, tmp_path):
        table = compute_mixed_likelihoods(dna_params(model=MIXTURE), quiet_display)

        assert table.columns == ["Sites", "Ll", "Ll_K80_1", "Ll_K80_2", "Pr_K80_1", "Pr_K80_2"]
        assert len(table.rows) == 10
        assert table.rows[0][0] == "[1]"
        assert table.rows[9][0] == "[10]"

        lines = (tmp_path / "site_likelihoods.txt").read_text().splitlines()
        assert lines[0] == "\t".join(table.columns)
        assert len(lines) == 11

    def test_values_are_consistent(self, dna_params, quiet_display):
        table = compute_mixed_likelihoods(dna_params(model=MIXTURE), quiet_display)

        ll = column(table, "Ll")
        class_ll = np.array([column(table, "Ll_K80_1"), column(table, "Ll_K80_2")])
        posterior = np.array([column(table, "Pr_K80_1"), column(table, "Pr_K80_2")])

        # Values are written with 6 significant digits
        expected = logsumexp(class_ll + np.log([[0.4], [0.6]]), axis=0)
        assert np.allclose(ll, expected, rtol=1e-4)
        assert np.allclose(posterior.sum(axis=0), 1.0, atol=1e-5)

    def test_output_messages(self, dna_params, capsys):
        from mixpop.cli.display import Display

        compute_mixed_likelihoods(dna_params(model=MIXTURE), Display())
        err = capsys.readouterr().err
        assert "Model K80_1:" in err
        assert "Model K80_2:" in err
        assert "Initial log likelihood" in err
        assert "Probability" + "." * 19 + ": 0.4" in err


class TestMixtureOfAModel:
    """Decomposition over the values of a distributed parameter."""

    def test_default_parameter(self, dna_params, quiet_display):
        table = compute_mixed_likelihoods(dna_params(model=KAPPA_MIXTURE), quiet_display)

        assert table.columns == [
            "Sites", "Ll", "Ll_kappa_1=1", "Ll_kappa_1=8",
            "Pr_kappa_1=1", "Pr_kappa_1=8", "mean",
        ]
        assert table.rows[0][0] == "1"
        means = column(table, "mean")
        assert np.all((means >= 1.0 - 1e-6) & (means <= 8.0 + 1e-6))

    def test_probabilities_restored(self, dna_params, quiet_display):
        params = dna_params(model=KAPPA_MIXTURE)
        table = compute_mixed_likelihoods(params, quiet_display)
        posterior = column(table, "Pr_kappa_1=1") + column(table, "Pr_kappa_1=8")
        assert np.allclose(posterior, 1.0, atol=1e-5)

    def test_rate_message(self, dna_params, capsys):
        from mixpop.cli.display import Display

        compute_mixed_likelihoods(dna_params(model=KAPPA_MIXTURE), Display())
        err = capsys.readouterr().err
        assert "Parameter kappa_1_1=1 with rate=" in err
        assert "Parameter kappa_1_2=8 with rate=" in err

    def test_parameter_not_mixed(self, dna_params, quiet_display):
        params = dna_params(
            model="HKY85(kappa=Simple(values=(1, 8), probas=(0.4, 0.6)))",
            **{"likelihoods.parameter_name": "theta"},
        )
        with pytest.raises(ValueError, match="Parameter theta is not mixed"):
            compute_mixed_likelihoods(params, quiet_display)

    def test_biblio_model(self, codon_file, codon_tree_file, tmp_path, quiet_display):
        params = Params({
            "alphabet": "Codon(letter=DNA)",
            "genetic_code": "Standard",
            "input.sequence.file": str(codon_file),
            "input.tree.file": str(codon_tree_file),
            "model": "YNGP_M1(frequencies=F0, kappa=2, p0=0.6, omega=0.3)",
            "output.likelihoods.file": str(tmp_path / "m1.txt"),
        })
        table = compute_mixed_likelihoods(params, quiet_display)
        assert table.columns[2:4] == ["Ll_omega_1=0.3", "Ll_omega_1=1"]
        assert len(table.rows) == 4


class TestBranchMixture:
    """Mixture attached to the s3 and s4 branches only."""

    @pytest.fixture
    def table(self, dna_params, labelled_tree_file, quiet_display):
        params = dna_params(**{
            "input.tree.file": str(labelled_tree_file),
            "model1": "K80(kappa=2)",
            "model2": MIXTURE,
        })
        return compute_mixed_likelihoods(params, quiet_display)

    def site_likelihoods(self, dna_ingroup_file, dna, newick, models):
        alignment = read_alignment(dna_ingroup_file, dna)
        tree = Tree.from_newick(newick)
        collection = ModelCollection.from_params(
            Params({f"model{i + 1}": m for i, m in enumerate(models)}), dna, tree
        )
        return PhyloLikelihood(alignment, tree, collection).log_likelihood_per_site()

    def test_columns(self, table):
        assert table.columns == ["Sites", "Ll", "Ll_K80_1", "Ll_K80_2", "Pr_K80_1", "Pr_K80_2"]
        posterior = column(table, "Pr_K80_1") + column(table, "Pr_K80_2")
        assert np.allclose(posterior, 1.0, atol=1e-5)

    def test_classes_match_single_models(self, table, labelled_tree_file, dna_ingroup_file, dna):
        newick = labelled_tree_file.read_text().strip()
        for name, kappa in (("Ll_K80_1", 1), ("Ll_K80_2", 8)):
            expected = self.site_likelihoods(
                dna_ingroup_file, dna, newick, ["K80(kappa=2)", f"K80(kappa={kappa})"]
            )
            assert np.allclose(column(table, name), expected, rtol=1e-5)

    def test_total_averages_matrices_per_branch(self, table, dna_ingroup_file, dna):
        # Likelihood is linear in the transition matrix of each mixed branch
        newick = "((s1:0.05,s2:0.08):0.02,s3:0.03 #2,s4:0.04 #3);"
        weights = {1: 0.4, 8: 0.6}
        terms = []
        for kappa3, w3 in weights.items():
            for kappa4, w4 in weights.items():
                ll = self.site_likelihoods(
                    dna_ingroup_file, dna, newick,
                    ["K80(kappa=2)", f"K80(kappa={kappa3})", f"K80(kappa={kappa4})"],
                )
                terms.append(ll + np.log(w3 * w4))
        expected = logsumexp(np.array(terms), axis=0)
        assert np.allclose(column(table, "Ll"), expected, rtol=1e-5)


class TestModelSelection:
    """Choosing which mixed model to decompose."""

    def test_two_mixtures_need_a_name(self, dna_params, labelled_tree_file, quiet_display):
        params = dna_params(**{
            "input.tree.file": str(labelled_tree_file),
            "model1": KAPPA_MIXTURE,
            "model2": KAPPA_MIXTURE,
        })
        with pytest.raises(ParameterError, match="Missing parameter name"):
            compute_mixed_likelihoods(params, quiet_display)

    def test_ambiguous_parameter(self, dna_params, labelled_tree_file, quiet_display):
        params = dna_params(**{
            "input.tree.file": str(labelled_tree_file),
            "model1": KAPPA_MIXTURE,
            "model2": KAPPA_MIXTURE,
            "likelihoods.parameter_name": "kappa",
        })
        with pytest.raises(ValueError, match="Ambiguous model numbers for parameter kappa:1 & 2"):
            compute_mixed_likelihoods(params, quiet_display)

    def test_parameter_with_model_number(self, dna_params, labelled_tree_file, quiet_display):
        params = dna_params(**{
            "input.tree.file": str(labelled_tree_file),
            "model1": KAPPA_MIXTURE,
            "model2": KAPPA_MIXTURE,
            "likelihoods.parameter_name": "kappa_2",
        })
        table = compute_mixed_likelihoods(params, quiet_display)
        assert "Ll_kappa_2=8" in table.columns

    def test_mismatched_numbers(self, dna_params, labelled_tree_file, quiet_display):
        params = dna_params(**{
            "input.tree.file": str(labelled_tree_file),
            "model1": KAPPA_MIXTURE,
            "model2": KAPPA_MIXTURE,
            "likelihoods.model_number": "2",
            "likelihoods.parameter_name": "kappa_1",
        })
        with pytest.raises(ValueError, match=r"Mismatch between model & parameter numbers: 2 \(1\)"):
            compute_mixed_likelihoods(params, quiet_display)

    def test_unknown_parameter(self, dna):
        tree = Tree.from_newick("((s1:0.05,s2:0.08):0.02,s3:0.03 #2,s4:0.04 #2);")
        collection = ModelCollection.from_params(
            Params({"model1": KAPPA_MIXTURE, "model2": MIXTURE}), dna, tree
        )
        params = Params({"likelihoods.parameter_name": "omega"})
        with pytest.raises(ValueError, match="Unknown parameter omega"):
            select_mixed_model(params, collection)

    def test_single_mixture(self, dna):
        tree = Tree.from_newick("((s1:0.05,s2:0.08):0.02,s3:0.03 #2,s4:0.04 #2);")
        collection = ModelCollection.from_params(
            Params({"model1": "K80", "model2": MIXTURE}), dna, tree
        )
        assert select_mixed_model(Params(), collection) == (2, "", "")


class TestErrors:
    """Invalid runs."""

    def test_no_mixed_model(self, dna_params, quiet_display):
        with pytest.raises(ValueError, match="No mixture models found"):
            compute_mixed_likelihoods(dna_params(model="K80(kappa=2)"), quiet_display)

    def test_second_alignment(self, dna_params, dna_ingroup_file, quiet_display):
        params = dna_params(model=MIXTURE, **{"input.sequence.file2": str(dna_ingroup_file)})
        with pytest.raises(ValueError, match="Only one alignment possible"):
            compute_mixed_likelihoods(params, quiet_display)

    def test_output_file_required(self, dna_ingroup_file, dna_tree_file, quiet_display):
        params = Params({
            "alphabet": "DNA",
            "input.sequence.file": str(dna_ingroup_file),
            "input.tree.file": str(dna_tree_file),
            "model": MIXTURE,
        })
        with pytest.raises(ParameterError, match="output.likelihoods.file"):
            compute_mixed_likelihoods(params, quiet_display)

    def test_alphabet_required(self, dna_params, quiet_display):
        params = dna_params(model=MIXTURE)
        params.values.pop("alphabet")
        with pytest.raises(ParameterError, match="alphabet"):
            compute_mixed_likelihoods(params, quiet_display)
