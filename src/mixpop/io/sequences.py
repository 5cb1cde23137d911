"""
Sequence file parsing and alignment handling.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np

from .alphabet import Alphabet, GeneticCode, GAP_CODE
from ..config import Params, ParameterError, parse_procedure


@dataclass
class Alignment:
    """
    Multiple sequence alignment.

    Attributes
    ----------
    names : list[str]
        Sequence names/labels
    sequences : ndarray, shape (n_species, n_sites)
        Encoded sequences as integer arrays
    alphabet : Alphabet
        Alphabet used for encoding
    positions : ndarray, shape (n_sites,)
        1-based position of each site in the original file
    """

    names: list[str]
    sequences: np.ndarray
    alphabet: Alphabet
    positions: Optional[np.ndarray] = field(default=None)

    def __post_init__(self):
        self.sequences = np.asarray(self.sequences, dtype=np.int16)
        if self.sequences.ndim != 2:
            raise ValueError("Alignment sequences must be a 2-dimensional array")
        if len(self.names) != self.sequences.shape[0]:
            raise ValueError(
                f"Got {len(self.names)} names for {self.sequences.shape[0]} sequences"
            )
        if len(set(self.names)) != len(self.names):
            raise ValueError("Duplicated sequence names in alignment")
        if self.positions is None:
            self.positions = np.arange(1, self.sequences.shape[1] + 1)
        else:
            self.positions = np.asarray(self.positions, dtype=int)

    @property
    def n_species(self) -> int:
        return self.sequences.shape[0]

    @property
    def n_sites(self) -> int:
        return self.sequences.shape[1]

    @classmethod
    def from_sequences(
        cls, names: list[str], sequences: list[str], alphabet: Alphabet
    ) -> "Alignment":
        """
        Build an alignment from raw sequence strings.

        Examples
        --------
        >>> from mixpop.io.alphabet import dna_alphabet
        >>> aln = Alignment.from_sequences(["a", "b"], ["ACGT", "ACGA"], dna_alphabet())
        >>> aln.n_sites
        4
        """
        if not names:
            raise ValueError("No sequences found")

        sequences_clean = [re.sub(r'\s', '', seq) for seq in sequences]
        seq_lengths = {len(seq) for seq in sequences_clean}
        if len(seq_lengths) > 1:
            raise ValueError(
                f"Sequences have different lengths: {sorted(seq_lengths)}"
            )

        encoded = np.array(
            [alphabet.encode_sequence(seq) for seq in sequences_clean], dtype=np.int16
        )
        return cls(names=list(names), sequences=encoded, alphabet=alphabet)

    @classmethod
    def from_fasta(cls, filepath: Path | str, alphabet: Alphabet) -> "Alignment":
        """
        Parse FASTA format alignment file.

        Parameters
        ----------
        filepath : Path or str
            Path to FASTA format file
        alphabet : Alphabet
            Alphabet used to encode the sequences

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        names = []
        sequences_raw = []

        with open(filepath, 'r') as f:
            current_name = None
            current_seq = []

            for line in f:
                line = line.strip()

                if not line or line.startswith(';'):
                    continue

                if line.startswith('>'):
                    if current_name is not None:
                        names.append(current_name)
                        sequences_raw.append(''.join(current_seq))

                    # Name stops at the first whitespace
                    header = line[1:].strip()
                    current_name = header.split()[0] if header else ""
                    current_seq = []
                else:
                    if current_name is None:
                        raise ValueError(f"Sequence data before first header in {filepath}")
                    current_seq.append(line.upper())

            if current_name is not None:
                names.append(current_name)
                sequences_raw.append(''.join(current_seq))

        if not names:
            raise ValueError(f"No sequences found in FASTA file {filepath}")

        return cls.from_sequences(names, sequences_raw, alphabet)

    @classmethod
    def from_phylip(
        cls, filepath: Path | str, alphabet: Alphabet, order: str = "sequential"
    ) -> "Alignment":
        """
        Parse PHYLIP format alignment file.

        The first line contains n_sequences and sequence_length (in
        characters). In sequential order, a name is either followed by its
        sequence on the same line or stands alone on its line (PAML style).
        In interleaved order, the first block carries the names and the
        following blocks continue the sequences in the same order.

        Parameters
        ----------
        filepath : Path or str
            Path to PHYLIP format file
        alphabet : Alphabet
            Alphabet used to encode the sequences
        order : str
            'sequential' or 'interleaved'
        """
        filepath = Path(filepath)

        with open(filepath, 'r') as f:
            lines = [line.rstrip() for line in f.readlines()]

        lines = [line for line in lines if line.strip()]
        if not lines:
            raise ValueError(f"Empty PHYLIP file {filepath}")

        header = lines[0].strip().split()
        try:
            n_species = int(header[0])
            n_chars = int(header[1])
        except (IndexError, ValueError):
            raise ValueError(f"Invalid PHYLIP header in {filepath}: '{lines[0]}'")

        names = []
        sequences_raw = []

        if order == "interleaved":
            body = lines[1:]
            for k, line in enumerate(body):
                if k < n_species:
                    parts = line.strip().split(None, 1)
                    names.append(parts[0])
                    sequences_raw.append(re.sub(r'\s', '', parts[1]).upper() if len(parts) > 1 else "")
                else:
                    sequences_raw[k % n_species] += re.sub(r'\s', '', line).upper()
        elif order == "sequential":
            i = 1
            while i < len(lines) and len(names) < n_species:
                parts = lines[i].strip().split(None, 1)
                i += 1
                names.append(parts[0])
                seq_data = re.sub(r'\s', '', parts[1]).upper() if len(parts) > 1 else ""

                # Continuation lines until the sequence is complete
                while len(seq_data) < n_chars and i < len(lines):
                    seq_data += re.sub(r'\s', '', lines[i]).upper()
                    i += 1
                sequences_raw.append(seq_data)
        else:
            raise ValueError(f"Unknown PHYLIP order: {order}")

        if len(names) != n_species:
            raise ValueError(f"Expected {n_species} sequences, found {len(names)}")

        for name, seq in zip(names, sequences_raw):
            if len(seq) != n_chars:
                raise ValueError(
                    f"Sequence {name} has length {len(seq)}, expected {n_chars}"
                )

        return cls.from_sequences(names, sequences_raw, alphabet)

    def sequence_string(self, index: int) -> str:
        return self.alphabet.decode_sequence(self.sequences[index])

    def index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise ValueError(f"Sequence not found: {name}")

    def subset(self, names: list[str]) -> "Alignment":
        """Alignment restricted to the given sequences, in the given order."""
        rows = [self.index(name) for name in names]
        return Alignment(
            names=list(names),
            sequences=self.sequences[rows].copy(),
            alphabet=self.alphabet,
            positions=self.positions.copy(),
        )

    def filter_sites(self, mask: np.ndarray) -> "Alignment":
        """Alignment restricted to the sites where mask is True."""
        mask = np.asarray(mask, dtype=bool)
        return Alignment(
            names=list(self.names),
            sequences=self.sequences[:, mask].copy(),
            alphabet=self.alphabet,
            positions=self.positions[mask].copy(),
        )

    def delete_site(self, index: int) -> "Alignment":
        mask = np.ones(self.n_sites, dtype=bool)
        mask[index] = False
        return self.filter_sites(mask)

    def append(self, other: "Alignment") -> "Alignment":
        """Alignment with the sequences of another one added below."""
        if other.n_sites != self.n_sites:
            raise ValueError(
                f"Cannot append an alignment of {other.n_sites} sites "
                f"to one of {self.n_sites} sites"
            )
        return Alignment(
            names=list(self.names) + list(other.names),
            sequences=np.vstack([self.sequences, other.sequences]),
            alphabet=self.alphabet,
            positions=self.positions.copy(),
        )

    def gap_mask(self) -> np.ndarray:
        """Boolean matrix, True where the character is a gap."""
        return self.sequences == GAP_CODE

    def unresolved_mask(self) -> np.ndarray:
        """Boolean matrix, True for gaps and unresolved characters."""
        return (self.sequences == GAP_CODE) | (self.sequences >= self.alphabet.n_states)

    def complete_sites(self) -> "Alignment":
        """Sites without gaps or unresolved characters."""
        return self.filter_sites(~self.unresolved_mask().any(axis=0))

    def consensus(self) -> np.ndarray:
        """
        Majority state of each site, ignoring gaps.

        Unresolved characters are counted as states of their own. Ties are
        broken in favour of the lowest code; sites made only of gaps give a
        gap.
        """
        result = np.full(self.n_sites, GAP_CODE, dtype=np.int16)
        for j in range(self.n_sites):
            column = self.sequences[:, j]
            column = column[column != GAP_CODE]
            if column.size == 0:
                continue
            values, counts = np.unique(column, return_counts=True)
            result[j] = values[np.argmax(counts)]
        return result

    def __repr__(self) -> str:
        return (
            f"Alignment(n_species={self.n_species}, n_sites={self.n_sites}, "
            f"alphabet='{self.alphabet.name}')"
        )


def read_alignment(path: Path | str, alphabet: Alphabet, format_description: str = "Fasta") -> Alignment:
    """
    Read an alignment given a format description.

    Supported: ``Fasta``, ``Phylip(order=sequential|interleaved)``.
    """
    name, args = parse_procedure(format_description)
    if name.lower() == "fasta":
        return Alignment.from_fasta(path, alphabet)
    if name.lower() == "phylip":
        return Alignment.from_phylip(path, alphabet, order=args.get("order", "sequential"))
    raise ParameterError(f"Unknown sequence format: {format_description}")


def _max_gaps(description: str, n_species: int) -> float:
    """Maximum number of gaps allowed in a site, from '50%' or '3'."""
    description = description.strip()
    try:
        if description.endswith("%"):
            return float(description[:-1]) / 100.0 * n_species
        return float(description)
    except ValueError:
        raise ParameterError(f"Invalid value for max_gap_allowed: '{description}'")


def stop_codon_mask(alignment: Alignment, genetic_code: GeneticCode) -> np.ndarray:
    """Boolean vector, True for sites containing at least one stop codon."""
    stops = np.array([genetic_code.is_stop(c) for c in range(64)] + [False])
    codes = alignment.sequences.astype(int)
    # Gaps and unknown codons never count as stops
    codes = np.where((codes < 0) | (codes >= 64), 64, codes)
    return stops[codes].any(axis=0)


def load_alignment(
    params: Params,
    alphabet: Alphabet,
    suffix: str = "",
    genetic_code: Optional[GeneticCode] = None,
    sites_to_use: str = "complete",
) -> Alignment:
    """
    Read and filter the alignment described by ``input.sequence.*<suffix>``.

    Options
    -------
    input.sequence.file<suffix>
        Path of the alignment file (required)
    input.sequence.format<suffix>
        ``Fasta`` (default) or ``Phylip(order=...)``
    input.sequence.sites_to_use<suffix>
        ``all``, ``nogap`` or ``complete`` (default given by sites_to_use)
    input.sequence.max_gap_allowed<suffix>
        With ``all``, sites with more gaps are removed (default ``100%``)
    input.sequence.remove_stop_codons<suffix>
        Remove sites containing stop codons (codon alphabets, default no)
    """
    path = params.get_file_path(f"input.sequence.file{suffix}")
    format_description = params.get_string(
        f"input.sequence.format{suffix}", params.get_string("input.sequence.format", "Fasta")
    )
    alignment = read_alignment(path, alphabet, format_description)

    sites_to_use = params.get_string(
        f"input.sequence.sites_to_use{suffix}",
        params.get_string("input.sequence.sites_to_use", sites_to_use),
    )
    if sites_to_use == "all":
        max_gaps = _max_gaps(
            params.get_string(f"input.sequence.max_gap_allowed{suffix}", "100%"),
            alignment.n_species,
        )
        n_gaps = alignment.gap_mask().sum(axis=0)
        alignment = alignment.filter_sites(n_gaps <= max_gaps)
    elif sites_to_use == "nogap":
        alignment = alignment.filter_sites(~alignment.gap_mask().any(axis=0))
    elif sites_to_use == "complete":
        alignment = alignment.complete_sites()
    else:
        raise ParameterError(f"Unknown value for sites_to_use: '{sites_to_use}'")

    if alphabet.is_codon and params.get_bool(f"input.sequence.remove_stop_codons{suffix}", False):
        if genetic_code is None:
            raise ParameterError("A genetic code is needed to remove stop codons")
        alignment = alignment.filter_sites(~stop_codon_mask(alignment, genetic_code))

    if alignment.n_sites == 0:
        raise ValueError(f"No site left in alignment {path} after filtering")

    return alignment
