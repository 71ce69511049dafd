"""Atomic JSON file primitives."""

import contextlib
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from wagerbot.exceptions import PersistenceFailureError

logger = logging.getLogger(__name__)


def tmp_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def atomic_write_json(path: Path, data: Any) -> None:
    """Write ``data`` to ``<path>.tmp`` then rename over ``path``.

    Readers see either the previous document or the new one, never a
    partial write. The temp file is removed if anything fails.
    """
    temp_path = tmp_path_for(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        shutil.move(str(temp_path), str(path))
        logger.debug(f"Saved {path}")

    except (OSError, TypeError, ValueError) as e:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to write {path}: {e}")
        raise PersistenceFailureError(f"Failed to write {path}: {e}")


def read_json(path: Path) -> Any | None:
    """Return the decoded document, or None when the file does not exist."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read {path}: {e}")
        raise PersistenceFailureError(f"Failed to read {path}: {e}")
