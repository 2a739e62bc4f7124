"""
Change acknowledgment for written documents.

The property store notifies the index after each successful write; a board
waits (bounded) for the notification of the document it just wrote before
refreshing. External watchers may notify too.
"""

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class ChangeIndex:
    """Per-document change counters with blocking waits."""

    def __init__(self):
        self._versions: dict[str, int] = {}
        self._changed = threading.Condition()

    def version(self, handle: str) -> int:
        """Current change counter for a document (0 if never changed)."""
        with self._changed:
            return self._versions.get(handle, 0)

    def notify(self, handle: str) -> None:
        """Record a change of a document and wake up waiters."""
        with self._changed:
            self._versions[handle] = self._versions.get(handle, 0) + 1
            self._changed.notify_all()
        logger.debug("Change acknowledged for %s", handle)

    def wait_for(
        self,
        handle: str,
        *,
        after: Optional[int] = None,
        timeout: float = 2.0,
    ) -> bool:
        """
        Wait until a document changes past a known version.

        Args:
            handle: Document to wait for
            after: Version observed before the write (defaults to current)
            timeout: Seconds to wait at most

        Returns:
            True if the change was acknowledged, False on timeout
        """
        with self._changed:
            baseline = self._versions.get(handle, 0) if after is None else after
            acknowledged = self._changed.wait_for(
                lambda: self._versions.get(handle, 0) > baseline,
                timeout=timeout,
            )
        if not acknowledged:
            logger.info("No change acknowledgment for %s after %.1fs", handle, timeout)
        return acknowledged
