"""
Query engine: source resolution, filtering, axis grouping and sorting.

execute(spec) runs one query pass:

    repository.list(source) -> properties per document -> where filter
    -> axis extraction and grouping -> set filter (full recomputation)
    -> sort

Failures local to a document or a value never abort the pass; any other
failure is recorded in QueryResult.errors and the partial result returned.
"""

import functools
import logging
from pathlib import PurePosixPath
from typing import Any, Optional

from .config import EngineSettings
from .errors import QueryError
from .expressions import (
    Compiled,
    Expression,
    ExpressionRegistry,
    compile_expression,
    get_registry,
)
from .filters import apply_set_filter, matches_where
from .protocol import DocumentRepository
from .types import (
    FILE_NAMESPACE,
    BoardSpec,
    Document,
    QueryResult,
    SortSpec,
    get_property,
    is_sequence,
    label_key,
)

logger = logging.getLogger(__name__)


def axis_values(doc: Document, path: str) -> list[Any]:
    """Raw axis values of a document: one per element of a multi-valued property."""
    value = doc.get(path)
    if value is None:
        return []
    if is_sequence(value):
        return [v for v in value if v is not None]
    return [value]


def build_reverse_map(raw_values: list[Any], transform: Expression) -> dict[str, list[Any]]:
    """
    Map each bucket label to the distinct raw values observed under it.

    Raw values keep first-seen order; duplicates are ignored.
    """
    reverse: dict[str, list[Any]] = {}
    for raw in raw_values:
        seen = reverse.setdefault(label_key(transform.apply(raw)), [])
        if not any(type(v) is type(raw) and v == raw for v in seen):
            seen.append(raw)
    return reverse


def _compare(a: Any, b: Any) -> int:
    """Native ordering; equal or incomparable values tie."""
    try:
        if a < b:
            return -1
        if a > b:
            return 1
    except TypeError:
        pass
    return 0


def sort_documents(docs: list[Document], sort: SortSpec) -> list[Document]:
    """Stable sort of documents by a property path."""
    sign = -1 if sort.order == "desc" else 1

    def compare(a: Document, b: Document) -> int:
        return sign * _compare(a.get(sort.by), b.get(sort.by))

    return sorted(docs, key=functools.cmp_to_key(compare))


class QueryEngine:
    """
    Executes board queries against a document repository.

    Compiled expressions are cached by text, so an expression that fails to
    compile stays untransformed for the lifetime of the engine.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        settings: Optional[EngineSettings] = None,
        *,
        registry: Optional[ExpressionRegistry] = None,
    ):
        self.repository = repository
        self.settings = settings or EngineSettings()
        self._registry = registry
        # Fail fast on an unknown evaluator name
        (registry or get_registry()).evaluator(self.settings.evaluator)
        self._compiled: dict[str, Expression] = {}

    def compile(self, text: Optional[str]) -> Expression:
        """Compile an expression with the configured evaluator (cached)."""
        key = text or ""
        if key not in self._compiled:
            self._compiled[key] = compile_expression(
                text, evaluator=self.settings.evaluator, registry=self._registry
            )
        return self._compiled[key]

    def transforms(self, spec: BoardSpec) -> dict[str, Expression]:
        """Transform per configured axis name."""
        return {
            name: self.compile(axis.transform)
            for name, axis in (("x", spec.x), ("y", spec.y))
            if axis is not None
        }

    def load(self, handle: str) -> Optional[Document]:
        """Load a document through the repository, or None if unavailable."""
        try:
            properties = self.repository.properties(handle)
        except Exception as e:
            raise QueryError(f"Failed to load {handle}: {e}") from e
        if properties is None:
            return None
        name = get_property(properties, f"{FILE_NAMESPACE}.name") or PurePosixPath(handle).stem
        return Document(path=handle, name=str(name), properties=properties)

    def default_sort(self, spec: BoardSpec) -> Optional[SortSpec]:
        """Explicit sort, else the first axis with the default order."""
        if spec.sort is not None:
            return spec.sort
        axis = spec.x or spec.y
        if axis is None:
            return None
        return SortSpec(by=axis.path, order=self.settings.default_sort)

    def execute(self, spec: BoardSpec) -> QueryResult:
        """Run one query pass. Never raises; errors are in result.errors."""
        result = QueryResult()
        try:
            self._run(spec, result)
        except Exception as e:
            logger.warning("Query failed for source %r: %s", spec.source, e)
            result.errors.append(f"Query error: {e}")
        return result

    def _run(self, spec: BoardSpec, result: QueryResult) -> None:
        transforms = self.transforms(spec)

        try:
            handles = self.repository.list(spec.source)
        except Exception as e:
            raise QueryError(f"Failed to resolve source {spec.source!r}: {e}") from e
        logger.debug("Source %r selected %d documents", spec.source, len(handles))

        for handle in handles:
            doc = self.load(handle)
            if doc is None:
                continue
            if not matches_where(doc, spec.where):
                continue
            result.documents.append(doc)
            self._collect(result, doc, spec, transforms)

        if spec.set_filter:
            self._apply_set_filter(result, spec, transforms)

        sort = self.default_sort(spec)
        if sort is not None:
            result.documents = sort_documents(result.documents, sort)

    def _collect(
        self,
        result: QueryResult,
        doc: Document,
        spec: BoardSpec,
        transforms: dict[str, Expression],
    ) -> None:
        """Add a document's raw axis values and their bucket labels."""
        for name, axis in (("x", spec.x), ("y", spec.y)):
            if axis is None:
                continue
            transform = transforms[name]
            raw_values = result.raw_values(name)
            buckets = result.buckets(name)
            for raw in axis_values(doc, axis.path):
                raw_values.append(raw)
                buckets.add(label_key(transform.apply(raw)))

    def _apply_set_filter(
        self,
        result: QueryResult,
        spec: BoardSpec,
        transforms: dict[str, Expression],
    ) -> None:
        """Apply the whole-set filter; on success recompute every axis collection."""
        fn = self.compile(spec.set_filter)
        if not isinstance(fn, Compiled):
            reason = getattr(fn, "reason", "not a function")
            result.errors.append(f"Filter error: {reason}")
            return
        try:
            filtered = apply_set_filter(result.documents, fn)
        except Exception as e:
            logger.warning("Set filter failed: %s", e)
            result.errors.append(f"Filter error: {e}")
            return
        if filtered is None:
            return

        result.documents = filtered
        for name in ("x", "y"):
            result.raw_values(name).clear()
            result.buckets(name).clear()
        for doc in filtered:
            self._collect(result, doc, spec, transforms)
