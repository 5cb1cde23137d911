"""Pop-stats command implementation."""

import sys
from pathlib import Path

from mixpop.analysis.pop_stats import compute_pop_stats
from mixpop.cli.display import Display
from mixpop.config import Params

HELP = """\
Usage: mixpop pop-stats [key=value ...] [--param FILE]

Main parameters:
  alphabet                        DNA, RNA or Codon(letter=DNA)
  genetic_code                    genetic code of codon alphabets (default Standard)
  input.sequence.file             alignment with all sequences
  input.sequence.outgroup.index   1-based indices of outgroup sequences
  input.sequence.outgroup.name    names of outgroup sequences
  input.sequence.file.ingroup     ingroup alignment (instead of input.sequence.file)
  input.sequence.file.outgroup    outgroup alignment
  input.sequence.stop_codons_policy  Keep (default), RemoveIfLast or RemoveAll
  estimate.kappa, estimate.ancestor  fit a model before computing statistics
  kappa                           fixed or initial Ts/Tv ratio (default 1)
  pop.stats                       statistics: SiteFrequencies, Watterson75, Tajima83,
                                  TajimaD, FuAndLiDStar, FuAndLiFStar, PiN_PiS,
                                  dN_dS, MKT, CodonSiteStatistics(output.file=...)
  logfile                         file where results are written
"""


def run_pop_stats(args: list[str], param_files: list[Path], quiet: bool):
    """Compute population genetics statistics."""
    display = Display(quiet=quiet)
    if not args and not param_files:
        print(HELP, file=sys.stderr)
        return

    display.banner("Bio++ Population Statistics")

    try:
        params = Params.from_args(args, param_files)
        compute_pop_stats(params, display)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    display.done("mixpop pop-stats")
