"""
Engine settings for an axisboard vault.

The settings are stored as a TOML file in the vault root. They are read once
and passed explicitly to the vault, the query engine and boards.
"""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore


CONFIG_FILENAME = "axisboard.toml"
CONFIG_VERSION = 1

SORT_ORDERS = ("asc", "desc")


@dataclass(frozen=True)
class EngineSettings:
    """Settings threaded into the engine at construction."""
    default_sort: str = "asc"
    refresh_timeout: float = 2.0
    extensions: tuple[str, ...] = ("md",)
    max_file_size: int = 10_000_000
    evaluator: str = "lambda"
    version: int = CONFIG_VERSION

    def __post_init__(self):
        if self.default_sort not in SORT_ORDERS:
            raise ValueError(
                f"default_sort must be one of {', '.join(SORT_ORDERS)}: {self.default_sort!r}"
            )
        if self.refresh_timeout < 0:
            raise ValueError(f"refresh_timeout must not be negative: {self.refresh_timeout}")


def load_settings(root: Path) -> EngineSettings:
    """
    Load settings from a vault directory.

    Raises:
        FileNotFoundError: If the settings file doesn't exist
        ValueError: If the settings are invalid
    """
    config_path = root / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    section = data.get("settings", {})
    version = section.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    defaults = EngineSettings()
    extensions = section.get("extensions", list(defaults.extensions))
    if isinstance(extensions, str):
        extensions = [extensions]

    return EngineSettings(
        default_sort=str(section.get("default_sort", defaults.default_sort)).lower(),
        refresh_timeout=float(section.get("refresh_timeout", defaults.refresh_timeout)),
        extensions=tuple(e.lstrip(".").lower() for e in extensions),
        max_file_size=int(section.get("max_file_size", defaults.max_file_size)),
        evaluator=section.get("evaluator", defaults.evaluator),
        version=version,
    )


def save_settings(root: Path, settings: EngineSettings) -> None:
    """
    Save settings to the vault directory.

    Creates the directory if it doesn't exist.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save settings. Install with: pip install tomli-w")

    root.mkdir(parents=True, exist_ok=True)

    data = {
        "settings": {
            "version": settings.version,
            "default_sort": settings.default_sort,
            "refresh_timeout": settings.refresh_timeout,
            "extensions": list(settings.extensions),
            "max_file_size": settings.max_file_size,
            "evaluator": settings.evaluator,
        },
    }

    with open(root / CONFIG_FILENAME, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_settings(root: Path) -> EngineSettings:
    """
    Load existing settings or create the file with defaults.

    This is the main entry point for settings management.
    """
    if (root / CONFIG_FILENAME).exists():
        return load_settings(root)
    settings = EngineSettings()
    save_settings(root, settings)
    return settings
