from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs

logger = logging.getLogger(__name__)

APP_NAME = "chestshop"

# Environment variable override (useful for tests and server operators)
ENV_DATA_DIR = "CHESTSHOP_DATA_DIR"


def default_data_dir(app_name: str = APP_NAME) -> Path:
    """Return the directory holding ``shops.json`` and ``config.json``.

    Linux: ~/.local/share/chestshop (or $XDG_DATA_HOME/chestshop)
    macOS: ~/Library/Application Support/chestshop
    Windows: %LOCALAPPDATA%\\chestshop

    The ``CHESTSHOP_DATA_DIR`` environment variable takes precedence.
    """
    override = os.getenv(ENV_DATA_DIR)
    if override:
        return Path(override).expanduser().resolve()
    dirs = PlatformDirs(appname=app_name, appauthor=False)
    return Path(dirs.user_data_dir).expanduser().resolve()


def ensure_dir(path: Path) -> Path:
    """Create the directory if it doesn't exist. Log and raise on failure."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to create directory '%s': %s", path, exc)
        raise
    return path


def resolve_data_dir(data_dir: Optional[Path] = None) -> Path:
    return ensure_dir(Path(data_dir) if data_dir else default_data_dir())
