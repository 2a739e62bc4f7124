"""
Error types and error logging utilities for axisboard.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class AxisboardError(Exception):
    """Base class for axisboard errors."""


class ConfigError(AxisboardError, ValueError):
    """A query block is missing a required field (source, or both axes)."""


class QueryError(AxisboardError):
    """Unexpected failure while resolving, loading or grouping documents."""


class PersistenceError(AxisboardError):
    """The property store could not write a document's properties."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting AXISBOARD_HOME."""
    home = os.environ.get("AXISBOARD_HOME")
    if home:
        return Path(home) / "axisboard-errors.log"
    return Path.home() / ".axisboard" / "axisboard-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
