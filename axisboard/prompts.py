"""
Terminal implementation of the edit prompt used by drop resolution.
"""

from typing import Any, Callable, Optional

import typer

from .frontmatter import parse_number, parse_value
from .types import label_key


def parse_input(text: str) -> Any:
    """Parse typed input: a number if it reads as one, otherwise the text."""
    trimmed = text.strip()
    number = parse_number(trimmed)
    return trimmed if number is None else number


def readings(text: str, candidates: list[Any]) -> list[Any]:
    """
    Values an answer may stand for, most likely first.

    The answer takes the type of the existing values when there are any;
    otherwise numbers are inferred. The plain text is always a fallback.
    """
    sample = next((c for c in candidates if c is not None), None)
    typed = parse_input(text) if sample is None else parse_value(text, sample)
    plain = text.strip()
    if type(typed) is str:
        return [typed]
    return [typed, plain]


class TerminalPrompt:
    """
    Asks for drop values on the terminal.

    An empty answer cancels. For transformed axes the answer is checked
    with ``check`` (if given) and re-asked while it maps to another bucket.
    """

    def __init__(self, check: Optional[Callable[[str, str, Any], Optional[str]]] = None):
        self._check = check

    def choose_value(self, axis: str, target_label: str, candidates: list[Any]) -> Optional[Any]:
        typer.echo(f'Value for "{axis}" in group "{target_label}"')
        if candidates:
            shown = ", ".join(label_key(c) for c in sorted(candidates, key=label_key))
            typer.echo(f"  existing values: {shown}")
        while True:
            answer = typer.prompt("Value (empty to cancel)", default="", show_default=False)
            if not answer.strip():
                return None
            problems = []
            for value in readings(answer, candidates):
                problem = self._check(axis, target_label, value) if self._check else None
                if problem is None:
                    return value
                problems.append(problem)
            typer.echo(f"  {problems[0]}", err=True)

    def choose_exact(
        self,
        axis: str,
        target_label: str,
        low: float,
        high: float,
    ) -> Optional[float]:
        typer.echo(f'Exact value for "{axis}" ({label_key(low)} .. {label_key(high)})')
        while True:
            answer = typer.prompt(
                "Value (empty to cancel)", default="", show_default=False
            )
            if not answer.strip():
                return None
            try:
                value = float(answer)
            except ValueError:
                typer.echo("  Please enter a number", err=True)
                continue
            if low <= value <= high:
                return int(value) if value == int(value) else value
            typer.echo(
                f"  Value must be between {label_key(low)} and {label_key(high)}", err=True
            )
