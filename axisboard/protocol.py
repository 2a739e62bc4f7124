"""
Protocol definitions for the collaborators of the query engine.

- DocumentRepository: lists documents under a source and loads their properties
- PropertyStore: durable read/write of a document's structured properties
- EditPrompt: asks the user for the raw value to write on a drop

Documents are addressed by opaque handles (vault-relative paths).
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class DocumentRepository(Protocol):
    """
    Source of documents for a query.

    Implemented by:
    - MarkdownVault (a directory of markdown notes)
    """

    def list(self, source: str) -> list[str]:
        """Handles of the documents selected by a source specifier."""
        ...

    def properties(self, handle: str) -> Optional[dict[str, Any]]:
        """Property bag of a document, or None if it is unavailable."""
        ...


@runtime_checkable
class PropertyStore(Protocol):
    """
    Durable storage of document properties.

    Implemented by:
    - FrontmatterStore (YAML frontmatter in markdown files)
    """

    def read(self, handle: str) -> dict[str, Any]: ...

    def write(self, handle: str, updates: dict[str, Any]) -> None:
        """Merge updates into the stored properties.

        Raises PersistenceError on failure. Unrelated properties are kept.
        """
        ...


@runtime_checkable
class EditPrompt(Protocol):
    """
    Asks the user which raw value to write when a drop needs one.

    Both methods return None when the user cancels.
    """

    def choose_value(
        self,
        axis: str,
        target_label: str,
        candidates: list[Any],
    ) -> Optional[Any]:
        """Pick a raw value for a transformed bucket, seeded with candidates."""
        ...

    def choose_exact(
        self,
        axis: str,
        target_label: str,
        low: float,
        high: float,
    ) -> Optional[float]:
        """Pick a precise number within [low, high]."""
        ...
