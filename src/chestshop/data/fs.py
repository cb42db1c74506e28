from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``text`` so readers see the old file or the new one.

    The text is staged in a hidden sibling (``.<name>.<random>.partial``) and
    synced before the rename. A failed write leaves ``path`` untouched and no
    staging file behind.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    staged = tempfile.NamedTemporaryFile(
        mode="w",
        encoding=encoding,
        newline="\n",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".partial",
        delete=False,
    )
    staged_path = Path(staged.name)
    committed = False
    try:
        with staged:
            staged.write(text)
            staged.flush()
            os.fsync(staged.fileno())
        staged_path.replace(path)
        committed = True
    finally:
        if not committed:
            _discard(staged_path)


def _discard(staged_path: Path) -> None:
    try:
        staged_path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not remove staging file %s", staged_path, exc_info=True)
