"""
Input/Output modules for sequence alignments and phylogenetic trees.

This module provides classes for reading and working with:

- **Alphabets and genetic codes**: DNA, RNA, protein and codon states
- **Sequence alignments**: FASTA and PHYLIP formats
- **Phylogenetic trees**: Newick format, with ``#n`` model labels on branches
"""

from mixpop.io.alphabet import Alphabet, GeneticCode, get_alphabet
from mixpop.io.sequences import Alignment, load_alignment
from mixpop.io.trees import Tree, TreeNode, load_tree

__all__ = [
    "Alphabet",
    "GeneticCode",
    "get_alphabet",
    "Alignment",
    "load_alignment",
    "Tree",
    "TreeNode",
    "load_tree",
]
