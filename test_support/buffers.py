"""Shared helpers for store tests.

Usage::

    from test_support.buffers import make_store, raw_buffers
    store = make_store(tmp_path, "app", 100)
    primary, secondary = raw_buffers(store)
"""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

from ringlog.log_store import RotatingLogStore


def make_store(base_dir: Path, name: str = "app", max_size_bytes: int = 100, **kwargs) -> RotatingLogStore:
    return RotatingLogStore(name, max_size_bytes, base_dir=base_dir, **kwargs)


def raw_buffers(store: RotatingLogStore) -> Tuple[bytes, bytes]:
    primary, secondary = store.buffers()
    return primary.read_bytes(), secondary.read_bytes()


def output_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


__all__ = ["FakeClock", "make_store", "output_lines", "raw_buffers"]
