"""
Pytest configuration and shared fixtures.
"""

import pytest
from typer.testing import CliRunner

from mixpop.cli.display import Display
from mixpop.io.alphabet import GeneticCode, codon_alphabet, dna_alphabet
from mixpop.io.sequences import Alignment


# Four ingroup sequences: site 4 is T/A (2/2), site 10 is C/A (singleton)
DNA_INGROUP = {
    "s1": "ACGTACGTAC",
    "s2": "ACGTACGTAA",
    "s3": "ACGAACGTAC",
    "s4": "ACGAACGTAC",
}

# Codon data: Leu synonymous polymorphism, Lys synonymous fixed difference,
# Asp/Ala non-synonymous fixed difference, Met/Ile non-synonymous polymorphism
CODON_INGROUP = {
    "in1": "CTTAAAGATATG",
    "in2": "CTCAAAGATATA",
    "in3": "CTTAAAGATATG",
}
CODON_OUTGROUP = {
    "out": "CTTAAGGCTATG",
}


def write_fasta(path, sequences: dict):
    path.write_text("".join(f">{name}\n{seq}\n" for name, seq in sequences.items()))
    return path


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


@pytest.fixture
def quiet_display():
    return Display(quiet=True)


@pytest.fixture
def dna():
    return dna_alphabet()


@pytest.fixture
def codons():
    return codon_alphabet()


@pytest.fixture
def standard_code():
    return GeneticCode("Standard")


@pytest.fixture
def dna_ingroup_file(tmp_path):
    return write_fasta(tmp_path / "ingroup.fasta", DNA_INGROUP)


@pytest.fixture
def dna_tree_file(tmp_path):
    """Tree over the four DNA ingroup sequences."""
    tree_file = tmp_path / "tree.nwk"
    tree_file.write_text("((s1:0.05,s2:0.08):0.02,s3:0.03,s4:0.04);\n")
    return tree_file


@pytest.fixture
def codon_file(tmp_path):
    """Ingroup and outgroup codon sequences in a single file, outgroup last."""
    return write_fasta(tmp_path / "codons.fasta", {**CODON_INGROUP, **CODON_OUTGROUP})


@pytest.fixture
def codon_ingroup_file(tmp_path):
    return write_fasta(tmp_path / "codons_in.fasta", CODON_INGROUP)


@pytest.fixture
def codon_outgroup_file(tmp_path):
    return write_fasta(tmp_path / "codons_out.fasta", CODON_OUTGROUP)


@pytest.fixture
def codon_tree_file(tmp_path):
    tree_file = tmp_path / "codon_tree.nwk"
    tree_file.write_text("((in1:0.1,in2:0.1):0.05,in3:0.1,out:0.3);\n")
    return tree_file


@pytest.fixture
def dna_sample(dna):
    """The DNA ingroup as an alignment."""
    return Alignment.from_sequences(list(DNA_INGROUP), list(DNA_INGROUP.values()), dna)


@pytest.fixture
def codon_ingroup(codons):
    return Alignment.from_sequences(list(CODON_INGROUP), list(CODON_INGROUP.values()), codons)


@pytest.fixture
def codon_outgroup(codons):
    return Alignment.from_sequences(list(CODON_OUTGROUP), list(CODON_OUTGROUP.values()), codons)
