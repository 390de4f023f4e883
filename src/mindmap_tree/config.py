"""Configuration constants for the mind-map tree engine."""

import os
from pathlib import Path

# Layout geometry, in canvas pixels.
LEVEL_SPACING: int = 250
SIBLING_SPACING: int = 80
ROOT_START_X: int = 200
ROOT_START_Y: int = 200
MIN_VERTICAL_SPACING: int = 60

# Address tokens.
ROOT_ADDRESS: str = "root"
FLOAT_PREFIX: str = "float"
ADDRESS_SEPARATOR: str = "-"

# Directory with the database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/mindmap-tree").expanduser(),
    Path("~/.mindmap-tree").expanduser(),
]

DATA_DIR_ENV: str = "MINDMAP_DATA_DIR"
DATABASE_FILENAME: str = "mindmaps.db"

# Persists slower than this are logged as a warning.
SLOW_PERSIST_MS: int = 1000

EXPORT_FORMAT_VERSION: str = "1.0"


def resolve_data_directory() -> Path:
    """Return the database directory.

    The ``MINDMAP_DATA_DIR`` environment variable wins; otherwise the first
    existing entry of DATA_DIRECTORIES, falling back to the first entry.
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]
