"""
Parameter handling for the key=value command-line convention.

Both programs are driven by a flat set of named parameters given as
``key=value`` tokens on the command line or read from option files with
``param=options.bpp``. Values may reference other parameters with
``$(NAME)``, and structured values use a nested procedure syntax such as
``YN98(kappa=2, omega=0.4)``.
"""

import re
from pathlib import Path
from typing import Optional


class ParameterError(ValueError):
    """Raised when a parameter is missing or cannot be interpreted."""


_TRUE_VALUES = {"true", "yes", "1", "on", "t", "y"}
_FALSE_VALUES = {"false", "no", "0", "off", "f", "n"}

_VARIABLE_PATTERN = re.compile(r"\$\(([^()]+)\)")


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """
    Split a string on a separator, ignoring separators nested in parentheses.

    Parameters
    ----------
    text : str
        String to split
    separator : str
        Single-character separator

    Returns
    -------
    list[str]
        Stripped, non-empty fields

    Examples
    --------
    >>> split_top_level("a=1, b=F(x=1, y=2)")
    ['a=1', 'b=F(x=1, y=2)']
    """
    fields = []
    depth = 0
    current = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ParameterError(f"Unbalanced parentheses in '{text}'")
        if char == separator and depth == 0:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise ParameterError(f"Unbalanced parentheses in '{text}'")
    fields.append("".join(current).strip())
    return [field for field in fields if field]


def parse_procedure(description: str) -> tuple[str, dict[str, str]]:
    """
    Parse a procedure description ``Name(key1=value1, key2=value2)``.

    Values may themselves be procedures; they are returned unparsed.

    Returns
    -------
    tuple
        (name, arguments)

    Examples
    --------
    >>> parse_procedure("TajimaD(positions=synonymous)")
    ('TajimaD', {'positions': 'synonymous'})
    >>> parse_procedure("K80")
    ('K80', {})
    """
    description = description.strip()
    if "(" not in description:
        if ")" in description:
            raise ParameterError(f"Invalid procedure description: '{description}'")
        return description, {}

    if not description.endswith(")"):
        raise ParameterError(f"Invalid procedure description: '{description}'")

    name = description[: description.index("(")].strip()
    body = description[description.index("(") + 1 : -1]

    args = {}
    for field in split_top_level(body):
        if "=" not in field:
            raise ParameterError(
                f"Invalid argument '{field}' in procedure '{name}': expected key=value"
            )
        key, value = field.split("=", 1)
        args[key.strip()] = value.strip()
    return name, args


def parse_vector(value: str, separator: str = ",") -> list[str]:
    """Parse ``(a, b, c)`` or ``a, b, c`` into a list of strings."""
    value = value.strip()
    if value.startswith("(") and value.endswith(")"):
        value = value[1:-1]
    return split_top_level(value, separator)


def to_bool(value: str) -> bool:
    """Interpret a textual boolean."""
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ParameterError(f"Invalid boolean value: '{value}'")


def read_option_file(path: Path | str) -> dict[str, str]:
    """
    Read an option file of ``key = value`` lines.

    Lines starting with ``#`` are comments, a trailing backslash continues a
    value on the next line, and nested ``param=other_file`` entries are
    followed relative to the current working directory.
    """
    path = Path(path)
    if not path.exists():
        raise ParameterError(f"Parameter file not found: {path}")

    params = {}
    pending = ""
    with open(path, "r") as f:
        for raw_line in f:
            line = raw_line.rstrip("\n")
            stripped = line.strip()
            if not pending and (not stripped or stripped.startswith("#")):
                continue
            if stripped.endswith("\\"):
                pending += stripped[:-1]
                continue
            stripped = pending + stripped
            pending = ""
            if "=" not in stripped:
                raise ParameterError(f"Invalid line in {path}: '{stripped}'")
            key, value = stripped.split("=", 1)
            key, value = key.strip(), value.strip()
            if key == "param":
                params.update(read_option_file(value))
            else:
                params[key] = value
    if pending:
        raise ParameterError(f"Unterminated continuation line in {path}")
    return params


class Params:
    """
    Named parameters of a program run.

    Parameters
    ----------
    values : dict[str, str], optional
        Initial raw values

    Examples
    --------
    >>> params = Params.from_args(["alphabet=DNA", "kappa=2.5"])
    >>> params.get_float("kappa", 1.0)
    2.5
    """

    def __init__(self, values: Optional[dict[str, str]] = None):
        self.values = dict(values or {})

    @classmethod
    def from_args(
        cls, args: list[str], param_files: Optional[list[Path]] = None
    ) -> "Params":
        """
        Build parameters from ``key=value`` tokens and option files.

        Option files are read first; command-line tokens override them.
        """
        values = {}
        for path in param_files or []:
            values.update(read_option_file(path))

        overrides = {}
        for token in args:
            if "=" not in token:
                raise ParameterError(f"Invalid argument '{token}': expected key=value")
            key, value = token.split("=", 1)
            key, value = key.strip(), value.strip()
            if key == "param":
                values.update(read_option_file(value))
            else:
                overrides[key] = value
        values.update(overrides)
        return cls(values)

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def __len__(self) -> int:
        return len(self.values)

    def set(self, name: str, value: str) -> None:
        self.values[name] = value

    def _resolve(self, value: str, seen: tuple = ()) -> str:
        """Replace ``$(NAME)`` references by the referenced values."""
        def replace(match):
            name = match.group(1).strip()
            if name in seen:
                raise ParameterError(f"Circular reference to parameter '{name}'")
            if name not in self.values:
                raise ParameterError(f"Unknown parameter referenced: '{name}'")
            return self._resolve(self.values[name], seen + (name,))

        return _VARIABLE_PATTERN.sub(replace, value)

    def raw(self, name: str) -> Optional[str]:
        """Resolved value of a parameter, or None if it is not set."""
        if name not in self.values:
            return None
        return self._resolve(self.values[name], (name,))

    def get_string(
        self, name: str, default: Optional[str] = None, required: bool = False
    ) -> str:
        value = self.raw(name)
        if value is None:
            if required:
                raise ParameterError(f"Parameter '{name}' not found.")
            return default
        return value

    def get_float(self, name: str, default: Optional[float] = None, required: bool = False) -> float:
        value = self.get_string(name, None, required)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            raise ParameterError(f"Parameter '{name}' should be a number, got '{value}'")

    def get_int(self, name: str, default: Optional[int] = None, required: bool = False) -> int:
        value = self.get_string(name, None, required)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ParameterError(f"Parameter '{name}' should be an integer, got '{value}'")

    def get_bool(self, name: str, default: bool = False, required: bool = False) -> bool:
        value = self.get_string(name, None, required)
        if value is None:
            return default
        return to_bool(value)

    def get_vector(
        self, name: str, default: Optional[list[str]] = None, separator: str = ",",
        required: bool = False
    ) -> list[str]:
        value = self.get_string(name, None, required)
        if value is None:
            return list(default or [])
        return parse_vector(value, separator)

    def get_file_path(
        self, name: str, required: bool = True, must_exist: bool = True,
        default: str = "none"
    ) -> str:
        """
        Get a file path parameter.

        Returns ``"none"`` when the parameter is unset or explicitly ``none``
        and not required.
        """
        value = self.get_string(name, None, False)
        if value is None or value == "none":
            if required:
                raise ParameterError(f"You must specify a file for parameter '{name}'.")
            return default
        if must_exist and not Path(value).exists():
            raise ParameterError(f"File does not exist: {value}")
        return value

    def __repr__(self) -> str:
        return f"Params({self.values!r})"
