"""
Parser for board blocks.

A board block is a list of ``key: value`` lines::

    source: "Projects"
    x: status
    y: priority
    y-values: [1..5]
    x-transform: lambda v: v.upper()
    where: status != "Archived"
    sort: due desc

Several synonyms are accepted per key. Function-valued keys may span
multiple lines while brackets are unbalanced.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ConfigError
from .types import AxisSpec, BoardSpec, SortSpec, label_key

logger = logging.getLogger(__name__)

# Upper bound on the number of buckets a range expression may produce
MAX_RANGE_VALUES = 10_000

_NUMBER = r"(-?\d+(?:\.\d+)?)"
_RANGE_PATTERN = re.compile(
    r"^\[\s*" + _NUMBER + r"\s*\.\.\s*" + _NUMBER
    + r"\s*(?:,\s*step\s+" + _NUMBER + r")?\s*\]$",
    re.IGNORECASE,
)
_EXACT_PATTERN = re.compile(r",?\s*\bexact\b", re.IGNORECASE)

# Canonical field name -> accepted keys
KEY_SYNONYMS: dict[str, tuple[str, ...]] = {
    "title": ("title", "heading"),
    "source": ("source", "from"),
    "x": ("x", "x-axis", "xaxis"),
    "y": ("y", "y-axis", "yaxis"),
    "x_values": ("x-values", "xvalues", "x-options"),
    "y_values": ("y-values", "yvalues", "y-options"),
    "x_exact": ("x-exact", "xexact"),
    "y_exact": ("y-exact", "yexact"),
    "x_label": ("x-label", "xlabel"),
    "y_label": ("y-label", "ylabel"),
    "x_readonly": ("x-readonly", "xreadonly"),
    "y_readonly": ("y-readonly", "yreadonly"),
    "readonly": ("readonly",),
    "x_transform": ("x-transform", "x-transformation", "xtransform"),
    "y_transform": ("y-transform", "y-transformation", "ytransform"),
    "card_style": ("card-style", "cardstyle", "style"),
    "set_filter": ("set-filter", "filter-fn"),
    "display": ("display", "show"),
    "sort": ("sort",),
    "where": ("where", "filter"),
    "theme": ("theme", "design"),
    "hide_unassigned": ("hide-unassigned", "hideunassigned"),
}

_KEY_LOOKUP = {key: name for name, keys in KEY_SYNONYMS.items() for key in keys}

# Fields whose values are expressions and may continue across lines
FUNCTION_FIELDS = frozenset({"x_transform", "y_transform", "card_style", "set_filter"})


@dataclass(frozen=True)
class AxisValues:
    """Result of parsing an axis values expression."""
    values: list[str]
    exact: bool = False
    step: Optional[float] = None


def _unbalanced(text: str) -> int:
    """Count of unclosed brackets of any kind; > 0 while an expression continues."""
    depth = 0
    for ch in text:
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
    return depth


def _flag(value: str) -> bool:
    """Boolean block values are true unless they read 'false' or '0'."""
    return value.strip().lower() not in ("false", "0")


def _range_values(start: float, stop: float, step: float) -> list[str]:
    """Inclusive range from start toward stop, formatted as labels."""
    if step <= 0:
        return [label_key(round(start, 9))]

    direction = 1 if start <= stop else -1
    tolerance = step * 1e-9
    values: list[str] = []
    i = 0
    while True:
        v = start + direction * i * step
        if direction > 0 and v > stop + tolerance:
            break
        if direction < 0 and v < stop - tolerance:
            break
        values.append(label_key(round(v, 9)))
        i += 1
        if len(values) > MAX_RANGE_VALUES:
            raise ConfigError(
                f"Range produces more than {MAX_RANGE_VALUES} values; use a larger step"
            )
    return values


def parse_axis_values(value: str) -> AxisValues:
    """
    Parse an axis values expression.

    Accepts either a range ``[from..to]`` / ``[from..to, Step n]`` or a
    comma-separated list. An ``exact`` keyword anywhere in the text sets the
    exact flag and is removed before parsing.

    Examples:
        [0..100, Step 10]  -> "0", "10", ..., "100"
        [1..5]             -> "1", "2", "3", "4", "5"
        [100..0, Step 25]  -> "100", "75", "50", "25", "0"
        Todo, Doing, Done  -> "Todo", "Doing", "Done"
    """
    exact = False
    if _EXACT_PATTERN.search(value):
        exact = True
        value = _EXACT_PATTERN.sub("", value).strip()

    match = _RANGE_PATTERN.match(value.strip())
    if match:
        start = float(match.group(1))
        stop = float(match.group(2))
        step = float(match.group(3)) if match.group(3) else 1.0
        return AxisValues(_range_values(start, stop, step), exact, step)

    values = [part.strip() for part in value.split(",")]
    return AxisValues([v for v in values if v], exact)


def expand_range(value: str) -> list[str]:
    """Bucket labels of an axis values expression."""
    return parse_axis_values(value).values


_FENCE_RE = re.compile(r"^```axisboard[ \t]*\n(.*?)^```", re.DOTALL | re.MULTILINE)


def extract_block(text: str) -> str:
    """Content of the first ```axisboard fence in a note, or the whole text."""
    match = _FENCE_RE.search(text)
    return match.group(1) if match else text


def _read_fields(text: str) -> dict[str, str]:
    """Collect raw field values keyed by canonical field name."""
    lines = text.strip().splitlines()
    fields: dict[str, str] = {}
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        i += 1
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        name = _KEY_LOOKUP.get(key.strip().lower())
        if name is None:
            logger.debug("Ignoring unknown block key: %s", key.strip())
            continue
        value = value.strip()

        if name in FUNCTION_FIELDS:
            while _unbalanced(value) > 0 and i < len(lines):
                value += "\n" + lines[i]
                i += 1

        fields[name] = value
    return fields


def _build_axis(name: str, fields: dict[str, Any]) -> Optional[AxisSpec]:
    path = fields.get(name, "").strip()
    if not path:
        return None

    values = None
    exact = False
    step = None
    if fields.get(f"{name}_values"):
        parsed = parse_axis_values(fields[f"{name}_values"])
        values = tuple(parsed.values)
        exact = parsed.exact
        step = parsed.step
    if f"{name}_exact" in fields:
        exact = _flag(fields[f"{name}_exact"])

    readonly = False
    if "readonly" in fields:
        readonly = _flag(fields["readonly"])
    if f"{name}_readonly" in fields:
        readonly = _flag(fields[f"{name}_readonly"])

    return AxisSpec(
        path=path,
        values=values,
        exact=exact,
        step=step,
        transform=fields.get(f"{name}_transform") or None,
        readonly=readonly,
        label=fields.get(f"{name}_label") or None,
    )


def _parse_sort(value: str) -> Optional[SortSpec]:
    parts = value.split()
    if not parts:
        return None
    order = "desc" if len(parts) > 1 and parts[1].lower() == "desc" else "asc"
    return SortSpec(by=parts[0], order=order)


def parse_block(text: str) -> BoardSpec:
    """
    Parse board block text into a BoardSpec.

    Raises:
        ConfigError: If source is missing or neither axis is given
    """
    fields = _read_fields(text)

    source = fields.get("source", "").strip()
    if not source:
        raise ConfigError("Missing required field: source")

    x = _build_axis("x", fields)
    y = _build_axis("y", fields)
    if x is None and y is None:
        raise ConfigError("At least one axis is required (x or y)")

    display = tuple(
        part.strip() for part in fields.get("display", "").split(",") if part.strip()
    )

    return BoardSpec(
        source=source,
        x=x,
        y=y,
        where=fields.get("where") or None,
        set_filter=fields.get("set_filter") or None,
        sort=_parse_sort(fields.get("sort", "")),
        display=display,
        card_style=fields.get("card_style") or None,
        title=fields.get("title") or None,
        theme=fields["theme"].lower() if fields.get("theme") else None,
        hide_unassigned=_flag(fields["hide_unassigned"]) if "hide_unassigned" in fields else False,
    )
