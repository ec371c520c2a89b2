from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .storage import DEFAULT_DIR_NAME

DEFAULT_MAX_BYTES = 64_000
DEFAULT_LOCK_POLL_SEC = 0.05


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    try:
        value = int(env.get(key, default))
    except Exception:
        logging.debug("_env_int: failed to parse int env %s", key, exc_info=True)
        return default
    return value if value > 0 else default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    v = env.get(key)
    if v is None or v == "":
        return default
    try:
        value = float(v)
    except Exception:
        logging.debug("_env_float: failed to parse float env %s", key, exc_info=True)
        return default
    return value if value > 0 else default


def _env_level(env: Mapping[str, str], key: str, default: str) -> str:
    v = (env.get(key) or default).strip().upper()
    return v if isinstance(logging.getLevelName(v), int) else default


@dataclass(frozen=True, slots=True)
class Settings:
    base_dir: Path
    max_bytes: int = DEFAULT_MAX_BYTES
    merge_max_bytes: int = DEFAULT_MAX_BYTES
    lock_poll_interval: float = DEFAULT_LOCK_POLL_SEC
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read RINGLOG_* overrides; unparsable values fall back to the defaults."""
        env = os.environ if environ is None else environ
        max_bytes = _env_int(env, "RINGLOG_MAX_BYTES", DEFAULT_MAX_BYTES)
        return cls(
            base_dir=Path(env.get("RINGLOG_DIR") or DEFAULT_DIR_NAME),
            max_bytes=max_bytes,
            merge_max_bytes=_env_int(env, "RINGLOG_MERGE_MAX_BYTES", max_bytes),
            lock_poll_interval=_env_float(env, "RINGLOG_LOCK_POLL_SEC", DEFAULT_LOCK_POLL_SEC),
            log_level=_env_level(env, "RINGLOG_LOG_LEVEL", "WARNING"),
        )


__all__ = ["Settings"]
