"""Mixed-likelihoods command implementation."""

import sys
from pathlib import Path

from mixpop.analysis.mixed_likelihoods import compute_mixed_likelihoods
from mixpop.cli.display import Display
from mixpop.config import Params

HELP = """\
Usage: mixpop mixed-likelihoods [key=value ...] [--param FILE]

Main parameters:
  alphabet                  DNA, RNA, Protein or Codon(letter=DNA)
  genetic_code              genetic code of codon alphabets (default Standard)
  input.sequence.file       alignment file
  input.sequence.format     Fasta (default) or Phylip(order=sequential)
  input.tree.file           tree file, Newick
  model                     mixed model, e.g. MixedModel(model=..., omega=Simple(...))
  model1, model2, ...       several models assigned to branches with #n labels
  rate_distribution         Constant (default) or Gamma(n=4, alpha=0.5)
  output.likelihoods.file   output table of site likelihoods
  likelihoods.model_number  number of the mixed model to decompose
  likelihoods.parameter_name  distributed parameter to decompose
"""


def run_mixed_likelihoods(args: list[str], param_files: list[Path], quiet: bool):
    """Decompose site likelihoods over the classes of a mixed model."""
    display = Display(quiet=quiet)
    if not args and not param_files:
        print(HELP, file=sys.stderr)
        return

    display.banner("Bio++ Mixed Likelihoods")

    try:
        params = Params.from_args(args, param_files)
        compute_mixed_likelihoods(params, display)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    display.done("mixpop mixed-likelihoods")
