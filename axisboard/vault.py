"""
Document repository over a directory of markdown notes.

Resolves source specifiers to document handles and loads each document's
property bag: declared frontmatter properties plus file-derived properties
under the reserved ``file`` namespace.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .config import EngineSettings
from .frontmatter import parse_frontmatter
from .types import FILE_NAMESPACE, get_property

logger = logging.getLogger(__name__)

# Source specifiers that select every document
ALL_SOURCES = frozenset({"all", "every", "*"})

# Inline #tags: at least one non-digit, may contain / for hierarchy
_INLINE_TAG_RE = re.compile(r"(?<![\w/#&])#([\w\-/]*[A-Za-z_\-/][\w\-/]*)")
_FENCED_CODE_RE = re.compile(r"^```.*?^```", re.DOTALL | re.MULTILINE)
_INLINE_CODE_RE = re.compile(r"`[^`\n]*`")


def normalize_tag(tag: str) -> str:
    """Tag in '#name' form without surrounding whitespace."""
    tag = str(tag).strip()
    return tag if tag.startswith("#") else f"#{tag}"


def tag_matches(tag: str, query: str) -> bool:
    """Case-insensitive exact or hierarchical-prefix tag match."""
    tag = tag.lower()
    query = query.lower()
    return tag == query or tag.startswith(query + "/")


def extract_tags(frontmatter: dict[str, Any], body: str) -> list[str]:
    """Frontmatter 'tags' plus inline #tags of the body, de-duplicated in order."""
    declared = frontmatter.get("tags")
    if isinstance(declared, str):
        declared = [t for t in re.split(r"[,\s]+", declared) if t]
    elif not isinstance(declared, (list, tuple)):
        declared = []

    body = _FENCED_CODE_RE.sub("", body)
    body = _INLINE_CODE_RE.sub("", body)
    inline = _INLINE_TAG_RE.findall(body)

    tags: list[str] = []
    seen: set[str] = set()
    for tag in [*declared, *inline]:
        if tag is None or not str(tag).strip():
            continue
        tag = normalize_tag(tag)
        if tag.lower() not in seen:
            seen.add(tag.lower())
            tags.append(tag)
    return tags


class MarkdownVault:
    """
    Serves markdown documents under a root directory.

    Handles are vault-relative POSIX paths. Hidden files and directories
    (names starting with '.') are skipped.
    """

    def __init__(self, root: Path, settings: Optional[EngineSettings] = None):
        self.root = Path(root).expanduser().resolve()
        self.settings = settings or EngineSettings()

    def _supported(self, path: Path) -> bool:
        return path.suffix.lstrip(".").lower() in self.settings.extensions

    def _collect(self, folder: Path) -> list[str]:
        """Supported documents beneath a folder, recursively, sorted by path."""
        handles = []
        for path in folder.rglob("*"):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path.is_symlink() or not path.is_file() or not self._supported(path):
                continue
            handles.append(rel.as_posix())
        return sorted(handles)

    def _folder(self, name: str) -> Optional[Path]:
        """Resolve a folder specifier inside the vault, or None."""
        folder = (self.root / name.strip().strip("/")).resolve()
        if not folder.is_relative_to(self.root):
            logger.warning("Source folder outside vault: %s", name)
            return None
        if not folder.is_dir():
            logger.debug("Source folder not found: %s", name)
            return None
        return folder

    def list(self, source: str) -> list[str]:
        """
        Handles of the documents selected by a source specifier.

        Recognizes, in order:
        - 'all', 'every' or '*': every supported document
        - '#tag': documents with the tag or a sub-tag (tag/...)
        - a quoted or bare folder path: documents beneath the folder

        A folder that doesn't exist selects nothing.
        """
        source = source.strip()

        if source.lower() in ALL_SOURCES:
            return self._collect(self.root)

        if source.startswith("#"):
            matches = []
            for handle in self._collect(self.root):
                props = self.properties(handle)
                if props is None:
                    continue
                tags = get_property(props, f"{FILE_NAMESPACE}.tags") or []
                if any(tag_matches(tag, source) for tag in tags):
                    matches.append(handle)
            return matches

        if len(source) >= 2 and source[0] == source[-1] and source[0] in "\"'":
            source = source[1:-1]

        folder = self._folder(source)
        if folder is None:
            return []
        return self._collect(folder)

    def properties(self, handle: str) -> Optional[dict[str, Any]]:
        """
        Property bag of a document, or None if it can't be loaded.

        Declared frontmatter properties and the reserved 'file' mapping
        (name, path, ctime, mtime, size, tags) share one bag; the 'file'
        mapping always replaces a declared 'file' property.
        """
        path = self.root / handle
        try:
            stat = path.stat()
            if stat.st_size > self.settings.max_file_size:
                logger.warning(
                    "Skipping %s: %d bytes exceeds limit of %d",
                    handle, stat.st_size, self.settings.max_file_size,
                )
                return None
            text = path.read_text(encoding="utf-8")
            frontmatter, body = parse_frontmatter(text)
        except (OSError, UnicodeDecodeError, yaml.YAMLError, ValueError) as e:
            logger.warning("Skipping %s: %s", handle, e)
            return None

        try:
            created = stat.st_birthtime
        except AttributeError:
            created = stat.st_ctime

        properties = dict(frontmatter)
        properties[FILE_NAMESPACE] = {
            "name": path.stem,
            "path": handle,
            "ctime": int(created * 1000),
            "mtime": int(stat.st_mtime * 1000),
            "size": stat.st_size,
            "tags": extract_tags(frontmatter, body),
        }
        return properties
