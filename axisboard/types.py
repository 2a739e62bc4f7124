"""
Data types for axisboard queries.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional


# Reserved namespace for file-derived properties (file.name, file.tags, ...)
FILE_NAMESPACE = "file"


def get_property(properties: Mapping, path: str) -> Any:
    """Look up a property by dotted path.

    A key that literally contains dots wins over nested traversal, so a
    declared ``author.name`` key is found before ``author -> name``.
    Returns None when any segment is absent; never raises.
    """
    if not path:
        return None
    if path in properties:
        return properties[path]
    value: Any = properties
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def is_sequence(value: Any) -> bool:
    """True for list-like property values (multi-valued properties)."""
    return isinstance(value, (list, tuple))


def label_key(value: Any) -> str:
    """Canonical string form of a value, used for bucket identity.

    Integral floats render without a fractional part so that ``10.0`` and
    the range label ``"10"`` name the same bucket.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value == int(value):
            return str(int(value))
        return repr(value)
    if is_sequence(value):
        return ",".join(label_key(v) for v in value)
    return str(value)


@dataclass(frozen=True)
class SortSpec:
    """Sort configuration: dotted property path and direction."""
    by: str
    order: str = "asc"


@dataclass(frozen=True)
class AxisSpec:
    """
    One grouping dimension of a board.

    Attributes:
        path: Dotted property path backing the axis
        values: Explicit bucket domain (after range expansion), or None
        exact: Require precise numeric values on edit
        step: Step of the range the domain was expanded from, if any
        transform: Transform expression text, or None
        readonly: Never write this axis on drop
        label: Display label
    """
    path: str
    values: Optional[tuple[str, ...]] = None
    exact: bool = False
    step: Optional[float] = None
    transform: Optional[str] = None
    readonly: bool = False
    label: Optional[str] = None


@dataclass(frozen=True)
class BoardSpec:
    """
    Immutable query description parsed from a board block.

    Parsed once per query invocation; never mutated afterwards.
    """
    source: str
    x: Optional[AxisSpec] = None
    y: Optional[AxisSpec] = None
    where: Optional[str] = None
    set_filter: Optional[str] = None
    sort: Optional[SortSpec] = None
    display: tuple[str, ...] = ()
    card_style: Optional[str] = None
    title: Optional[str] = None
    theme: Optional[str] = None
    hide_unassigned: bool = False

    def axis(self, name: str) -> Optional[AxisSpec]:
        """Return the axis named 'x' or 'y'."""
        if name == "x":
            return self.x
        if name == "y":
            return self.y
        raise ValueError(f"Unknown axis: {name!r}")


@dataclass
class Document:
    """
    A document with its property bag.

    ``path`` is the opaque handle used to reach the document through the
    repository and the property store.
    """
    path: str
    name: str
    properties: dict[str, Any] = field(default_factory=dict)

    def get(self, path: str, default: Any = None) -> Any:
        """Property value by dotted path, or default when absent."""
        value = get_property(self.properties, path)
        return default if value is None else value

    @property
    def tags(self) -> list[str]:
        return list(get_property(self.properties, f"{FILE_NAMESPACE}.tags") or [])


@dataclass
class QueryResult:
    """
    Result of a query pass.

    Raw-value lists keep duplicates and one entry per element of a
    multi-valued property; bucket sets hold canonical labels.
    """
    documents: list[Document] = field(default_factory=list)
    x_buckets: set[str] = field(default_factory=set)
    y_buckets: set[str] = field(default_factory=set)
    x_raw_values: list[Any] = field(default_factory=list)
    y_raw_values: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def buckets(self, axis: str) -> set[str]:
        return self.x_buckets if axis == "x" else self.y_buckets

    def raw_values(self, axis: str) -> list[Any]:
        return self.x_raw_values if axis == "x" else self.y_raw_values
