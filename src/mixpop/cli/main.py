"""Main CLI application for mixpop."""

import typer
from pathlib import Path
from typing import List, Optional

app = typer.Typer(
    name="mixpop",
    help="Site likelihoods under mixed substitution models and population genetics statistics",
    no_args_is_help=True,
)


@app.command(name="mixed-likelihoods")
def mixed_likelihoods(
    args: Optional[List[str]] = typer.Argument(
        None,
        help="Parameters as key=value pairs",
        show_default=False,
    ),
    param: Optional[List[Path]] = typer.Option(
        None,
        "--param", "-p",
        help="Option file of key = value lines (can be repeated)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Only report errors",
    ),
):
    """
    Decompose site likelihoods over the classes of a mixed model.

    Writes, for each site, the log-likelihood under each sub-model (or each
    value of a distributed parameter) and the posterior probability of each
    class.

    Example:
        mixpop mixed-likelihoods alphabet=Codon(letter=DNA) \\
            input.sequence.file=aln.fasta input.tree.file=tree.nwk \\
            "model=YNGP_M8(kappa=2, p0=0.9, p=0.5, q=1, omegas=2.5)" \\
            output.likelihoods.file=sites.tsv
    """
    from .commands.mixed_likelihoods import run_mixed_likelihoods

    run_mixed_likelihoods(args=args or [], param_files=param or [], quiet=quiet)


@app.command(name="pop-stats")
def pop_stats(
    args: Optional[List[str]] = typer.Argument(
        None,
        help="Parameters as key=value pairs",
        show_default=False,
    ),
    param: Optional[List[Path]] = typer.Option(
        None,
        "--param", "-p",
        help="Option file of key = value lines (can be repeated)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Only report errors",
    ),
):
    """
    Compute population genetics statistics on an alignment.

    Example:
        mixpop pop-stats alphabet=Codon(letter=DNA) \\
            input.sequence.file=aln.fasta input.sequence.outgroup.name=out \\
            "pop.stats=SiteFrequencies, TajimaD, PiN_PiS, MKT" logfile=stats.log
    """
    from .commands.pop_stats import run_pop_stats

    run_pop_stats(args=args or [], param_files=param or [], quiet=quiet)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
