"""
Board: a query result laid out on one or two axes, with drop resolution.

A drop reassigns a document to a target bucket on one or both axes. For an
untransformed axis the bucket label itself is written. For a transformed
axis the label may stand for many raw values, so the user picks one (seeded
with the raw values seen under that label) and the choice is accepted only
if the transform maps it back to the target label.

Writes are all-or-nothing per drop: if any axis is cancelled, nothing is
written for either axis.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .config import EngineSettings
from .engine import QueryEngine, axis_values, build_reverse_map
from .errors import PersistenceError
from .expressions import Compiled, Expression
from .frontmatter import parse_value
from .index import ChangeIndex
from .protocol import EditPrompt, PropertyStore
from .types import AxisSpec, BoardSpec, Document, QueryResult, label_key

logger = logging.getLogger(__name__)

AXES = ("x", "y")


class _Cancelled(Exception):
    """Resolution of one axis was cancelled."""


@dataclass
class DropOutcome:
    """
    Result of resolving (and optionally applying) a drop.

    Attributes:
        updates: Property path -> value to write
        cancelled: True if any axis was cancelled; updates is then empty
        reason: Why the drop was cancelled
        written: True once the store accepted the write
        acknowledged: Whether the change index confirmed the write in time
        error: Store failure message, if the write failed
    """
    updates: dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False
    reason: Optional[str] = None
    written: bool = False
    acknowledged: Optional[bool] = None
    error: Optional[str] = None


def _numeric_sort_key(label: str) -> float:
    return float(label)


def sort_labels(labels: set[str]) -> list[str]:
    """Discovered labels: numeric order when all are numbers, else lexical."""
    labels = [label for label in labels if label != ""]
    try:
        return sorted(labels, key=_numeric_sort_key)
    except ValueError:
        return sorted(labels)


class Board:
    """
    A board over a query result.

    Holds the latest result and the reverse maps built from it; both are
    rebuilt together by refresh().
    """

    def __init__(
        self,
        spec: BoardSpec,
        engine: QueryEngine,
        *,
        store: Optional[PropertyStore] = None,
        prompt: Optional[EditPrompt] = None,
        index: Optional[ChangeIndex] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.spec = spec
        self.engine = engine
        self.store = store
        self.prompt = prompt
        self.index = index
        self.settings = settings or engine.settings
        self.transforms: dict[str, Expression] = engine.transforms(spec)
        self.result = QueryResult()
        self._reverse_maps: dict[str, dict[str, list[Any]]] = {}
        self._pending: set[str] = set()
        self.refresh()

    # -------------------------------------------------------------------------
    # Query and layout
    # -------------------------------------------------------------------------

    def refresh(self) -> QueryResult:
        """Re-run the query and rebuild the reverse maps."""
        self.result = self.engine.execute(self.spec)
        self._reverse_maps = {
            name: build_reverse_map(self.result.raw_values(name), transform)
            for name, transform in self.transforms.items()
            if transform.active
        }
        return self.result

    @property
    def documents(self) -> list[Document]:
        return self.result.documents

    @property
    def errors(self) -> list[str]:
        return self.result.errors

    def reverse_map(self, axis: str) -> dict[str, list[Any]]:
        """Label -> raw values for a transformed axis ({} when untransformed)."""
        return self._reverse_maps.get(axis, {})

    def domain(self, axis: str) -> list[str]:
        """Ordered bucket labels: the explicit domain or the discovered labels."""
        spec = self.spec.axis(axis)
        if spec is None:
            return []
        if spec.values is not None:
            return list(spec.values)
        return sort_labels(self.result.buckets(axis))

    @property
    def x_domain(self) -> list[str]:
        return self.domain("x")

    @property
    def y_domain(self) -> list[str]:
        return self.domain("y")

    def labels_for(self, doc: Document, axis: str) -> set[str]:
        """Bucket labels a document belongs to on an axis."""
        spec = self.spec.axis(axis)
        if spec is None:
            return set()
        transform = self.transforms[axis]
        return {label_key(transform.apply(v)) for v in axis_values(doc, spec.path)}

    def cells(self) -> dict[tuple[Optional[str], Optional[str]], list[Document]]:
        """
        Documents per (x label, y label) cell, in domain order.

        A document with a multi-valued property appears in every matching
        cell. A missing axis is represented by None.
        """
        xs: list[Optional[str]] = self.x_domain if self.spec.x else [None]
        ys: list[Optional[str]] = self.y_domain if self.spec.y else [None]
        grid: dict[tuple[Optional[str], Optional[str]], list[Document]] = {
            (x, y): [] for y in ys for x in xs
        }
        for doc in self.documents:
            x_labels = self.labels_for(doc, "x")
            y_labels = self.labels_for(doc, "y")
            for (x, y), docs in grid.items():
                if (x is None or x in x_labels) and (y is None or y in y_labels):
                    docs.append(doc)
        return grid

    def unassigned(self) -> list[Document]:
        """Documents with a missing value or no bucket on some axis."""
        if self.spec.hide_unassigned:
            return []
        domains = {name: set(self.domain(name)) for name in AXES if self.spec.axis(name)}
        return [
            doc for doc in self.documents
            if any(not (self.labels_for(doc, name) & domain) for name, domain in domains.items())
        ]

    def display_values(self, doc: Document) -> dict[str, Any]:
        """Values of the configured display properties."""
        return {path: doc.get(path) for path in self.spec.display}

    def card_style(self, doc: Document) -> dict[str, Any]:
        """Evaluate the card-style function; {} when absent or failing."""
        fn = self.engine.compile(self.spec.card_style)
        if not isinstance(fn, Compiled):
            return {}
        try:
            style = fn(doc.properties)
        except Exception as e:
            logger.warning("Card style failed for %s: %s", doc.path, e)
            return {}
        return dict(style) if isinstance(style, dict) else {}

    def draggable(self, doc: Document) -> bool:
        """Documents can be moved unless every configured axis is readonly."""
        return any(
            axis is not None and not axis.readonly
            for axis in (self.spec.x, self.spec.y)
        )

    # -------------------------------------------------------------------------
    # Drop resolution
    # -------------------------------------------------------------------------

    def exact_bounds(self, axis: str, label: str) -> Optional[tuple[float, float]]:
        """
        [low, high] of a bucket in exact mode, or None outside exact mode.

        Exact mode needs a range domain and an active transform. A bucket
        spans one step from its label toward the end of the range, clamped
        to the range.
        """
        spec = self.spec.axis(axis)
        if spec is None or not spec.exact or spec.step is None or not spec.values:
            return None
        if label not in spec.values or not self.transforms[axis].active:
            return None
        first, last = float(spec.values[0]), float(spec.values[-1])
        start = float(label)
        step = abs(spec.step)
        if first <= last:
            return start, min(start + step, last)
        return max(start - step, last), start

    def check_choice(self, axis_display: str, label: str, value: Any) -> Optional[str]:
        """Why a chosen value would be rejected for a bucket, or None if it fits."""
        for name in AXES:
            spec = self.spec.axis(name)
            if spec is None or (spec.label or spec.path) != axis_display:
                continue
            transform = self.transforms[name]
            if transform.active:
                mapped = label_key(transform.apply(value))
                if mapped != label:
                    return f"Value {label_key(value)} belongs to group {mapped!r}, not {label!r}"
        return None

    def _ask(self, method: str, *args) -> Any:
        if self.prompt is None:
            raise _Cancelled("no prompt available")
        chosen = getattr(self.prompt, method)(*args)
        if chosen is None:
            raise _Cancelled("cancelled by user")
        return chosen

    def _validate(self, transform: Expression, chosen: Any, label: str) -> None:
        if transform.active and label_key(transform.apply(chosen)) != label:
            raise _Cancelled(
                f"value {chosen!r} maps to {label_key(transform.apply(chosen))!r}, not {label!r}"
            )

    def _resolve_axis(self, doc: Document, name: str, axis: AxisSpec, target: Any) -> Any:
        """Raw value to write for one axis; raises _Cancelled."""
        transform = self.transforms[name]
        label = label_key(target)
        axis_name = axis.label or axis.path

        bounds = self.exact_bounds(name, label)
        if bounds is not None:
            low, high = bounds
            chosen = self._ask("choose_exact", axis_name, label, low, high)
            try:
                in_range = low <= float(chosen) <= high
            except (TypeError, ValueError):
                in_range = False
            if not in_range:
                raise _Cancelled(f"value {chosen!r} outside {low}..{high}")
            self._validate(transform, chosen, label)
            return chosen

        if not transform.active:
            return parse_value(label, doc.get(axis.path))

        candidates = list(self.reverse_map(name).get(label, []))
        chosen = self._ask("choose_value", axis_name, label, candidates)
        self._validate(transform, chosen, label)
        return chosen

    def resolve_drop(
        self,
        doc: Document,
        x_target: Any = None,
        y_target: Any = None,
    ) -> DropOutcome:
        """
        Decide which raw values to write when a document is dropped.

        Readonly axes, unconfigured axes and axes without a target are
        skipped. If any remaining axis is cancelled, the outcome is
        cancelled and carries no updates.
        """
        if doc.path in self._pending:
            logger.info("Drop refused for %s: resolution already pending", doc.path)
            return DropOutcome(cancelled=True, reason="pending")

        self._pending.add(doc.path)
        try:
            updates: dict[str, Any] = {}
            for name, target in (("x", x_target), ("y", y_target)):
                axis = self.spec.axis(name)
                if axis is None or axis.readonly or target is None:
                    continue
                try:
                    updates[axis.path] = self._resolve_axis(doc, name, axis, target)
                except _Cancelled as e:
                    logger.info("Drop of %s cancelled on %s axis: %s", doc.path, name, e)
                    return DropOutcome(cancelled=True, reason=f"{name}: {e}")
            return DropOutcome(updates=updates)
        finally:
            self._pending.discard(doc.path)

    def apply_drop(
        self,
        doc: Document,
        x_target: Any = None,
        y_target: Any = None,
    ) -> DropOutcome:
        """
        Resolve a drop, write the updates in one store call, wait for the
        change acknowledgment (bounded by settings.refresh_timeout) and
        refresh the board.
        """
        outcome = self.resolve_drop(doc, x_target, y_target)
        if outcome.cancelled or not outcome.updates:
            return outcome
        if self.store is None:
            raise RuntimeError("Board has no property store; cannot apply drops")

        baseline = self.index.version(doc.path) if self.index is not None else None
        try:
            self.store.write(doc.path, outcome.updates)
        except PersistenceError as e:
            logger.warning("Failed to update %s: %s", doc.path, e)
            outcome.error = str(e)
            return outcome
        outcome.written = True

        if self.index is not None:
            outcome.acknowledged = self.index.wait_for(
                doc.path, after=baseline, timeout=self.settings.refresh_timeout
            )
        self.refresh()
        return outcome

    def find(self, handle: str) -> Optional[Document]:
        """Document of the current result by handle or name."""
        for doc in self.documents:
            if doc.path == handle or doc.name == handle:
                return doc
        return None
