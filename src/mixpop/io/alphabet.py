"""
Alphabets and genetic codes.

States of every alphabet are integer-encoded. Resolved states are numbered
from 0; the gap character is ``GAP_CODE`` and unresolved characters
(ambiguity codes, ``N``, ``X``, codons containing them) get codes following
the resolved states.
"""

from itertools import product

import numpy as np

from ..config import parse_procedure, ParameterError


GAP_CODE = -1

# PAML nucleotide order, kept for codon numbering: T=0, C=1, A=2, G=3
NUCLEOTIDES = "TCAG"

_DNA_AMBIGUITIES = {
    "R": "AG", "Y": "CT", "K": "GT", "M": "AC", "S": "CG", "W": "AT",
    "B": "CGT", "D": "AGT", "H": "ACT", "V": "ACG", "N": "ACGT",
}

AMINO_ACIDS = "ARNDCQEGHILKMFPSTWYV"

_PROTEIN_AMBIGUITIES = {
    "B": "ND", "Z": "QE", "J": "IL", "X": AMINO_ACIDS,
}

_GAP_CHARS = {"-", "."}

# NCBI translation tables, codons in TCAG order
_STANDARD_TABLE = "FFLLSSSSYY**CC*WLLLLPPPPHHQQRRRRIIIMTTTTNNKKSSRRVVVVAAAADDEEGGGG"

_CODE_CHANGES = {
    "Standard": {},
    "VertebrateMitochondrial": {"AGA": "*", "AGG": "*", "ATA": "M", "TGA": "W"},
    "YeastMitochondrial": {
        "ATA": "M", "CTT": "T", "CTC": "T", "CTA": "T", "CTG": "T", "TGA": "W",
    },
    "MoldMitochondrial": {"TGA": "W"},
    "InvertebrateMitochondrial": {"AGA": "S", "AGG": "S", "ATA": "M", "TGA": "W"},
    "CiliateNuclear": {"TAA": "Q", "TAG": "Q"},
    "EchinodermMitochondrial": {"AAA": "N", "AGA": "S", "AGG": "S", "TGA": "W"},
}

CODONS = ["".join(c) for c in product(NUCLEOTIDES, repeat=3)]


class Alphabet:
    """
    Sequence alphabet.

    Attributes
    ----------
    name : str
        Alphabet name ('DNA', 'RNA', 'Protein', 'Codon')
    states : list[str]
        Resolved states, each 1 or 3 characters long
    width : int
        Number of characters per state (3 for codons)
    """

    def __init__(self, name: str, states: list[str], ambiguities: dict[str, list[int]], width: int = 1):
        self.name = name
        self.states = list(states)
        self.width = width
        self.state_to_code = {s: i for i, s in enumerate(self.states)}

        # Unresolved characters are numbered after the resolved states
        self.unresolved_chars = list(ambiguities)
        self._resolutions = {}
        for k, char in enumerate(self.unresolved_chars):
            code = len(self.states) + k
            self.state_to_code[char] = code
            self._resolutions[code] = list(ambiguities[char])

        self.unknown_char = self.unresolved_chars[-1] if self.unresolved_chars else "?"
        self.unknown_code = self.state_to_code.get(self.unknown_char, len(self.states))

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def n_codes(self) -> int:
        """Number of non-gap codes (resolved and unresolved)."""
        return len(self.states) + len(self.unresolved_chars)

    @property
    def is_codon(self) -> bool:
        return self.width == 3

    @property
    def is_nucleic(self) -> bool:
        return self.name in ("DNA", "RNA")

    def encode(self, text: str) -> int:
        """Encode a single state (one character, or a triplet for codons)."""
        text = text.upper()
        if self.name == "RNA" or self.is_codon:
            text = text.replace("U", "T")
        if all(c in _GAP_CHARS for c in text):
            return GAP_CODE
        if text in self.state_to_code:
            return self.state_to_code[text]
        if self.is_codon:
            # Partially gapped or ambiguous codon
            return self.unknown_code
        raise ValueError(f"Invalid character '{text}' for alphabet {self.name}")

    def encode_sequence(self, sequence: str) -> np.ndarray:
        """Encode a whole sequence; its length must be a multiple of the state width."""
        sequence = sequence.replace(" ", "")
        if len(sequence) % self.width != 0:
            raise ValueError(
                f"Sequence length {len(sequence)} not divisible by {self.width}"
            )
        n = len(sequence) // self.width
        encoded = np.empty(n, dtype=np.int16)
        for j in range(n):
            encoded[j] = self.encode(sequence[j * self.width:(j + 1) * self.width])
        return encoded

    def char(self, code: int) -> str:
        """Character(s) for a code."""
        code = int(code)
        if code == GAP_CODE:
            return "-" * self.width
        if code < self.n_states:
            return self.states[code]
        if code < self.n_codes:
            char = self.unresolved_chars[code - self.n_states]
            return char if self.width == 1 else "NNN"
        raise ValueError(f"Invalid code {code} for alphabet {self.name}")

    def decode_sequence(self, codes: np.ndarray) -> str:
        return "".join(self.char(c) for c in codes)

    def is_gap(self, code: int) -> bool:
        return int(code) == GAP_CODE

    def is_unresolved(self, code: int) -> bool:
        return int(code) >= self.n_states

    def is_resolved(self, code: int) -> bool:
        return 0 <= int(code) < self.n_states

    def resolve(self, code: int) -> list[int]:
        """Resolved states compatible with a code (all states for gaps)."""
        code = int(code)
        if 0 <= code < self.n_states:
            return [code]
        if code in self._resolutions:
            return self._resolutions[code]
        return list(range(self.n_states))

    def __repr__(self) -> str:
        return f"Alphabet('{self.name}', n_states={self.n_states})"


def _nucleic_alphabet(name: str) -> Alphabet:
    states = list(NUCLEOTIDES) if name == "DNA" else list(NUCLEOTIDES.replace("T", "U"))
    lookup = {n: i for i, n in enumerate("TCAG")}
    ambiguities = {
        char: [lookup[n] for n in resolved] for char, resolved in _DNA_AMBIGUITIES.items()
    }
    return Alphabet(name, states, ambiguities)


def dna_alphabet() -> Alphabet:
    return _nucleic_alphabet("DNA")


def protein_alphabet() -> Alphabet:
    ambiguities = {
        char: [AMINO_ACIDS.index(a) for a in resolved]
        for char, resolved in _PROTEIN_AMBIGUITIES.items()
    }
    return Alphabet("Protein", list(AMINO_ACIDS), ambiguities)


def codon_alphabet() -> Alphabet:
    """All 64 triplets in TCAG order; stop codons are valid states."""
    return Alphabet("Codon", CODONS, {"NNN": list(range(64))}, width=3)


def get_alphabet(description: str) -> Alphabet:
    """
    Build an alphabet from its description.

    Accepted: ``DNA``, ``RNA``, ``Protein``, ``Codon(letter=DNA)``.
    """
    name, args = parse_procedure(description)
    if name == "DNA":
        return dna_alphabet()
    if name == "RNA":
        return _nucleic_alphabet("RNA")
    if name == "Protein":
        return protein_alphabet()
    if name == "Codon":
        letter = args.get("letter", "DNA")
        if letter not in ("DNA", "RNA"):
            raise ParameterError(f"Invalid letter for codon alphabet: {letter}")
        return codon_alphabet()
    raise ParameterError(f"Alphabet not known: {description}")


class GeneticCode:
    """
    Genetic code over the 64-codon alphabet.

    Parameters
    ----------
    name : str
        One of the supported NCBI code names ('Standard',
        'VertebrateMitochondrial', ...)
    """

    def __init__(self, name: str = "Standard"):
        if name not in _CODE_CHANGES:
            raise ParameterError(
                f"Unknown genetic code: {name}. "
                f"Available: {', '.join(sorted(_CODE_CHANGES))}"
            )
        self.name = name
        table = dict(zip(CODONS, _STANDARD_TABLE))
        table.update(_CODE_CHANGES[name])
        self.table = table
        self.amino_acids = [table[c] for c in CODONS]
        self.sense_codons = [i for i, c in enumerate(CODONS) if table[c] != "*"]
        self.sense_index = {c: k for k, c in enumerate(self.sense_codons)}

    @property
    def n_sense(self) -> int:
        return len(self.sense_codons)

    def translate(self, codon: int) -> str:
        return self.amino_acids[int(codon)]

    def is_stop(self, codon: int) -> bool:
        return self.amino_acids[int(codon)] == "*"

    def are_synonymous(self, codon1: int, codon2: int) -> bool:
        return self.amino_acids[int(codon1)] == self.amino_acids[int(codon2)]

    def is_four_fold_degenerated(self, codon: int) -> bool:
        """True if every third-position change keeps the amino acid."""
        codon = int(codon)
        if self.is_stop(codon):
            return False
        base = codon - codon % 4
        aa = self.amino_acids[codon]
        return all(self.amino_acids[base + k] == aa for k in range(4))

    def __repr__(self) -> str:
        return f"GeneticCode('{self.name}')"


def codon_positions(codon: int) -> tuple[int, int, int]:
    """Nucleotide indices (TCAG order) of a codon index."""
    codon = int(codon)
    return codon // 16, (codon // 4) % 4, codon % 4


def codon_from_positions(n0: int, n1: int, n2: int) -> int:
    return n0 * 16 + n1 * 4 + n2


def is_transition(nuc1: int, nuc2: int) -> bool:
    """Check if a nucleotide change is a transition (C<->T or A<->G)."""
    # Pyrimidines are 0,1 and purines 2,3 in TCAG order
    return nuc1 != nuc2 and (nuc1 < 2) == (nuc2 < 2)
