from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Optional, Union

BaseDir = Union[str, "os.PathLike[str]", Callable[[], Union[str, "os.PathLike[str]"]], None]

DEFAULT_DIR_NAME = "ringlog-data"

logger = logging.getLogger(__name__)


def default_base_dir() -> Path:
    return Path(os.environ.get("RINGLOG_DIR") or DEFAULT_DIR_NAME)


def resolve_base_dir(base_dir: BaseDir = None) -> Path:
    """Turn a path, a zero-argument resolver, or ``None`` into a directory path."""
    if base_dir is None:
        return default_base_dir()
    if callable(base_dir):
        return Path(base_dir())
    return Path(base_dir)


def get_or_create_file(base_dir: BaseDir, name: str) -> Optional[Path]:
    """Return ``<base_dir>/<name>``, creating the directory and an empty file if absent.

    Returns None when the directory or file cannot be created.
    """
    try:
        directory = resolve_base_dir(base_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        if not path.exists():
            path.touch()
        return path
    except OSError:
        logger.debug("get_or_create_file: cannot create %s", name, exc_info=True)
        return None


def create_truncated_file(base_dir: BaseDir, name: str) -> Optional[Path]:
    path = get_or_create_file(base_dir, name)
    if path is None:
        return None
    try:
        path.write_bytes(b"")
    except OSError:
        logger.debug("create_truncated_file: cannot truncate %s", path, exc_info=True)
        return None
    return path


__all__ = ["BaseDir", "create_truncated_file", "default_base_dir", "get_or_create_file", "resolve_base_dir"]
