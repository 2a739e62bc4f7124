"""
Document filters.

Two stages:

1. ``where``: a per-document filter in a tiny DSL::

       status = "Done"
       status != "Done"
       tags contains "urgent"

   A filter string that matches neither shape includes every document.

2. ``set-filter``: a lambda over the whole filtered document list, applied
   once. It may return a new list of documents.
"""

import logging
import re
from typing import Optional

from .expressions import Compiled
from .types import Document, is_sequence, label_key

logger = logging.getLogger(__name__)

_CONTAINS_RE = re.compile(r'(\S+)\s+contains\s+"([^"]+)"', re.IGNORECASE)
_EQUALS_RE = re.compile(r'([^\s!=]+)\s*(!?=)\s*"([^"]+)"')


def matches_where(doc: Document, where: Optional[str]) -> bool:
    """Evaluate a per-document filter string against a document."""
    if not where:
        return True

    match = _CONTAINS_RE.search(where)
    if match:
        path, needle = match.groups()
        value = doc.get(path)
        if is_sequence(value):
            return any(needle in label_key(v) for v in value)
        return needle in label_key(value)

    match = _EQUALS_RE.search(where)
    if match:
        path, operator, expected = match.groups()
        is_equal = label_key(doc.get(path)) == expected
        return not is_equal if operator == "!=" else is_equal

    logger.debug("Unrecognized filter %r, including all documents", where)
    return True


def apply_set_filter(docs: list[Document], fn: Compiled) -> Optional[list[Document]]:
    """
    Apply a whole-set filter function.

    Returns the new document list, or None if the function returned
    something other than a list or tuple. Exceptions raised by the function
    propagate to the caller.

    Raises:
        TypeError: If the returned sequence contains non-documents
    """
    filtered = fn(list(docs))
    if not isinstance(filtered, (list, tuple)):
        logger.debug("Set filter returned %s, ignoring", type(filtered).__name__)
        return None
    for item in filtered:
        if not isinstance(item, Document):
            raise TypeError(f"Set filter must return documents, got {type(item).__name__}")
    return list(filtered)
