"""
Property store backed by YAML frontmatter in markdown files.

Reads parse the ``---`` fenced block at the top of a file. Writes touch only
the lines of the updated top-level keys so that comments, key order and
formatting of unrelated properties survive; the body is never changed.
"""

import copy
import logging
import math
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import PersistenceError
from .index import ChangeIndex
from .types import label_key

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n(.*?)^---[ \t]*$\n?", re.DOTALL | re.MULTILINE)


def split_frontmatter(text: str) -> tuple[Optional[str], str]:
    """Split text into (frontmatter source, body). Frontmatter is None if absent."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    return match.group(1), text[match.end():]


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """
    Parse YAML frontmatter from text, return (properties, body).

    Raises:
        yaml.YAMLError: If the frontmatter is not valid YAML
        ValueError: If the frontmatter is not a mapping
    """
    source, body = split_frontmatter(text)
    if source is None:
        return {}, text
    data = yaml.safe_load(source)
    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise ValueError("Frontmatter must be a mapping")
    return data, body


def parse_value(text: str, original: Any = None) -> Any:
    """
    Parse user input into a value, matching the type of the original value.

    Without an original value, numbers and booleans are inferred from the
    text; anything else stays a string.
    """
    trimmed = text.strip()
    lowered = trimmed.lower()

    if isinstance(original, bool):
        return lowered in ("true", "1", "yes")

    if isinstance(original, (int, float)):
        number = parse_number(trimmed)
        return trimmed if number is None else number

    if isinstance(original, (list, tuple)):
        if trimmed.startswith("[") and trimmed.endswith("]"):
            try:
                parsed = yaml.safe_load(trimmed)
            except yaml.YAMLError:
                parsed = None
            if isinstance(parsed, list):
                return parsed
            trimmed = trimmed[1:-1]
        return [part.strip() for part in trimmed.split(",") if part.strip()]

    if isinstance(original, str):
        return trimmed

    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    number = parse_number(trimmed)
    return trimmed if number is None else number


def parse_number(text: str) -> Optional[int | float]:
    """Number whose canonical form is exactly the text, else None."""
    try:
        value = int(text)
        if str(value) == text:
            return value
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value if label_key(value) == text or repr(value) == text else None


def _render(key: str, value: Any) -> list[str]:
    """Render one top-level key as YAML lines."""
    rendered = yaml.safe_dump(
        {key: value},
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
        width=4096,
    )
    return rendered.rstrip("\n").split("\n")


def _key_of(line: str) -> Optional[str]:
    """Top-level key defined on a frontmatter line, if any."""
    if not line or line[0] in " \t-#":
        return None
    key, sep, _ = line.partition(":")
    if not sep:
        return None
    key = key.strip()
    if len(key) >= 2 and key[0] == key[-1] and key[0] in "'\"":
        key = key[1:-1]
    return key


def _replace_key(lines: list[str], key: str, new_lines: list[str]) -> list[str]:
    """Replace the block of a top-level key, or append it."""
    for start, line in enumerate(lines):
        if _key_of(line) != key:
            continue
        end = start + 1
        while end < len(lines) and (
            not lines[end].strip() or lines[end][0] in " \t" or lines[end].startswith("-")
        ):
            end += 1
        # Blank lines after the block belong to the layout, not the value
        while end > start + 1 and not lines[end - 1].strip():
            end -= 1
        return lines[:start] + new_lines + lines[end:]
    return lines + new_lines


def _set_nested(mapping: dict, parts: list[str], value: Any) -> None:
    for part in parts[:-1]:
        child = mapping.get(part)
        if not isinstance(child, dict):
            child = {}
            mapping[part] = child
        mapping = child
    mapping[parts[-1]] = value


class FrontmatterStore:
    """
    Reads and writes document properties stored as YAML frontmatter.

    Handles are paths relative to the vault root.
    """

    def __init__(self, root: Path, index: Optional[ChangeIndex] = None):
        self._root = Path(root)
        self.index = index

    def _path(self, handle: str) -> Path:
        path = (self._root / handle).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise PersistenceError(f"Path outside vault: {handle}")
        return path

    def read(self, handle: str) -> dict[str, Any]:
        """Frontmatter properties of a document ({} without frontmatter)."""
        text = self._path(handle).read_text(encoding="utf-8")
        data, _ = parse_frontmatter(text)
        return data

    def write(self, handle: str, updates: dict[str, Any]) -> None:
        """
        Merge updates into a document's frontmatter.

        Keys are property paths. A dotted path whose first segment names an
        existing mapping updates that mapping; otherwise the path is used as
        a literal top-level key.

        Raises:
            PersistenceError: If the file can't be read, parsed or written
        """
        if not updates:
            return
        path = self._path(handle)
        try:
            text = path.read_text(encoding="utf-8")
            data, body = parse_frontmatter(text)
        except (OSError, UnicodeDecodeError, yaml.YAMLError, ValueError) as e:
            raise PersistenceError(f"Cannot read {handle}: {e}") from e

        source, _ = split_frontmatter(text)
        lines = source.rstrip("\n").split("\n") if source and source.strip() else []

        for prop, value in updates.items():
            key, rendered_value = prop, value
            if prop not in data and "." in prop:
                head, *rest = prop.split(".")
                if isinstance(data.get(head), dict):
                    nested = copy.deepcopy(data[head])
                    _set_nested(nested, rest, value)
                    key, rendered_value = head, nested
            data[key] = rendered_value
            lines = _replace_key(lines, key, _render(key, rendered_value))

        frontmatter = "\n".join(lines)
        try:
            yaml.safe_load(frontmatter)
        except yaml.YAMLError as e:
            raise PersistenceError(f"Update would corrupt frontmatter of {handle}: {e}") from e

        if source is None:
            new_text = f"---\n{frontmatter}\n---\n\n{body}"
        else:
            new_text = f"---\n{frontmatter}\n---\n{body}"

        try:
            path.write_text(new_text, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot write {handle}: {e}") from e

        logger.info("Updated %s: %s", handle, ", ".join(updates))
        if self.index is not None:
            self.index.notify(handle)
