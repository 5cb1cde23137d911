"""
Unit tests for parameter optimization and console output.
"""

import io

import numpy as np
import pytest

from mixpop.cli.display import Display, format_value
from mixpop.config import Params, ParameterError
from mixpop.core.likelihood import ModelCollection, PhyloLikelihood
from mixpop.io.sequences import Alignment
from mixpop.io.trees import Tree
from mixpop.models import JC69, K80
from mixpop.optimize.optimizer import ModelOptimizer, optimize_parameters


def two_leaf_likelihood(dna, model, seq_a, seq_b):
    aln = Alignment.from_sequences(["a", "b"], [seq_a, seq_b], dna)
    tree = Tree.from_newick("(a:0.1,b:0.2);")
    return PhyloLikelihood(aln, tree, ModelCollection({1: model}, tree))


class TestOptimizer:
    """Test maximum likelihood estimation."""

    def test_jc69_distance(self, dna):
        """Only the sum of the two branch lengths is identifiable."""
        lik = two_leaf_likelihood(dna, JC69(dna), "A" * 100, "C" * 10 + "A" * 90)
        ModelOptimizer(lik).optimize()
        total = sum(node.branch_length for node in lik.tree.branch_nodes())
        assert total == pytest.approx(-0.75 * np.log(1.0 - 4.0 / 3.0 * 0.1), rel=1e-2)

    def test_kappa_estimation_improves_likelihood(self, dna):
        lik = two_leaf_likelihood(dna, K80(dna, kappa=1.0), "A" * 40 + "C" * 40,
                                  "G" * 8 + "A" * 32 + "A" + "C" * 39)
        before = lik.log_likelihood()
        after = optimize_parameters(lik, Params())
        assert after >= before
        assert lik.collection.model(1).get_parameter("kappa") > 1.0

    def test_display_and_ignored_branch_lengths(self, dna):
        lik = two_leaf_likelihood(dna, K80(dna, kappa=1.0), "ACGTACGT", "ACGCACGT")
        shown = {}
        params = Params({"optimization.ignore_parameters": "BrLen", "optimization.tolerance": "1e-4"})
        optimize_parameters(lik, params, lambda label, value: shown.setdefault(label, value))

        assert [node.branch_length for node in lik.tree.branch_nodes()] == [0.1, 0.2]
        assert shown["Optimization method"] == "FullD"
        assert shown["Tolerance"] == 1e-4
        assert shown["Performed"].endswith("function evaluations.")

    def test_no_optimization(self, dna):
        lik = two_leaf_likelihood(dna, K80(dna, kappa=3.0), "ACGT", "ACGA")
        before = lik.log_likelihood()
        assert optimize_parameters(lik, Params({"optimization": "None"})) == before
        assert lik.collection.model(1).get_parameter("kappa") == 3.0

    def test_unknown_method(self, dna):
        lik = two_leaf_likelihood(dna, JC69(dna), "ACGT", "ACGA")
        with pytest.raises(ParameterError, match="Unknown optimization method"):
            optimize_parameters(lik, Params({"optimization": "Simplex"}))


class TestDisplay:
    """Test console formatting."""

    @pytest.mark.parametrize("value,expected", [
        (True, "1"),
        (3, "3"),
        (0.123456789, "0.123457"),
        (float("nan"), "nan"),
        ("Fasta", "Fasta"),
    ])
    def test_format_value(self, value, expected):
        assert format_value(value) == expected

    def test_result_alignment(self):
        stream = io.StringIO()
        Display(stream=stream).result("Kappa", 2.5)
        assert stream.getvalue() == "Kappa" + "." * 25 + ": 2.5\n"

    def test_quiet(self):
        stream = io.StringIO()
        display = Display(quiet=True, stream=stream)
        display.result("Kappa", 2.5)
        display.warning("careful")
        display.error("broken")
        assert stream.getvalue() == "ERROR!!! broken\n"
