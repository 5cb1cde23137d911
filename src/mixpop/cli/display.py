"""Console output shared by the commands."""

import sys
import time

import numpy as np


def format_value(value, precision: int = 6) -> str:
    """Format a value the way results are written: numbers with 6 significant digits."""
    if isinstance(value, (bool, np.bool_)):
        return "1" if value else "0"
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        return f"{float(value):.{precision}g}"
    return str(value)


class Display:
    """
    Progress and results on stderr.

    Parameters
    ----------
    quiet : bool
        Suppress all output except errors
    """

    LABEL_WIDTH = 30

    def __init__(self, quiet: bool = False, stream=None):
        self.quiet = quiet
        self.stream = stream
        self._start = time.time()

    def _print(self, text: str = "") -> None:
        print(text, file=self.stream or sys.stderr)

    def message(self, text: str = "") -> None:
        if not self.quiet:
            self._print(text)

    def result(self, label: str, value, precision: int = 6) -> None:
        """Print ``label.......: value``."""
        if not self.quiet:
            dots = "." * max(self.LABEL_WIDTH - len(label), 0)
            self._print(f"{label}{dots}: {format_value(value, precision)}")

    def warning(self, text: str) -> None:
        if not self.quiet:
            self._print(f"WARNING!!! {text}")

    def error(self, text: str) -> None:
        self._print(f"ERROR!!! {text}")

    def task(self, label: str) -> None:
        if not self.quiet:
            dots = "." * max(self.LABEL_WIDTH - len(label), 0)
            print(f"{label}{dots}: ", end="", file=self.stream or sys.stderr)

    def task_done(self) -> None:
        self.message("Done.")

    def banner(self, title: str) -> None:
        if not self.quiet:
            self._print("*" * 66)
            self._print(f"*{title:^64}*")
            self._print("*" * 66)
            self._print()

    def done(self, program: str) -> None:
        """Report completion and elapsed time."""
        elapsed = time.time() - self._start
        self.message(f"{program}'s done. Bye.")
        hours, rest = divmod(int(elapsed), 3600)
        minutes, seconds = divmod(rest, 60)
        self.result("Total execution time", f"{hours}h {minutes}m {seconds}s.")
