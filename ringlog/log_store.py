"""
Size-bounded, append-only named log backed by two files.

Each store owns ``<name>`` (primary) and ``<name>.backup`` (secondary) under a base
directory. Appends go to primary; when the next entry would push primary past the
byte budget, the whole primary content is copied over secondary and primary is
emptied before the entry is written. Primary therefore never exceeds the budget at
rest and secondary always holds the previous full primary.

Entries are ``SEPARATOR + message`` encoded as UTF-8 with no trailing delimiter.
Messages that contain the separator are not escaped and will split on read.

Failure policy:
- oversized entries and unavailable files turn the append into a silent no-op
- I/O failures while holding the store lock are logged and swallowed; no rollback
- cancellation (AppendCancelledError) is always re-raised
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .errors import AppendCancelledError, EntryTooLargeError, ResourceUnavailableError
from .lazy_cache import LazyHandleCache, ResettableLazy
from .storage import BaseDir, get_or_create_file

# Die face one plus newline; rare enough in real messages to act as a delimiter.
SEPARATOR = "⚀\n"
SEPARATOR_BYTES = SEPARATOR.encode("utf-8")
BACKUP_SUFFIX = ".backup"
BUFFERS = ("primary", "secondary")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogIdentity:
    name: str
    max_size_bytes: int

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("log name must be a non-empty string")
        if "/" in self.name or "\\" in self.name:
            raise ValueError(f"log name must not contain path separators: {self.name!r}")
        if isinstance(self.max_size_bytes, bool) or not isinstance(self.max_size_bytes, int):
            raise ValueError("max_size_bytes must be an integer")
        if self.max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")

    @property
    def backup_name(self) -> str:
        return self.name + BACKUP_SUFFIX


def encode_entry(message: str) -> bytes:
    # lone surrogates (e.g. from os.fsdecode) become "?"
    return SEPARATOR_BYTES + message.encode("utf-8", errors="replace")


def split_entries(content: bytes) -> List[str]:
    """Split raw buffer content into messages, oldest first.

    The empty fragment before the first separator is dropped; a leading fragment
    without a separator (torn or foreign content) is kept as a message.
    """
    parts = content.split(SEPARATOR_BYTES)
    if parts and parts[0] == b"":
        parts = parts[1:]
    return [p.decode("utf-8", errors="replace") for p in parts]


class RotatingLogStore:
    """One named log with dual-buffer rotation and self-healing file handles."""

    def __init__(
        self,
        name: str,
        max_size_bytes: int,
        *,
        base_dir: BaseDir = None,
        lock_poll_interval: float = 0.05,
    ) -> None:
        self.identity = LogIdentity(name, max_size_bytes)
        self.base_dir = base_dir
        self._lock_poll_interval = lock_poll_interval
        self._lock = threading.Lock()
        self._primary: ResettableLazy[Optional[Path]] = LazyHandleCache(
            lambda: get_or_create_file(self.base_dir, self.identity.name)
        )
        self._secondary: ResettableLazy[Optional[Path]] = LazyHandleCache(
            lambda: get_or_create_file(self.base_dir, self.identity.backup_name)
        )

    @classmethod
    def from_identity(cls, identity: LogIdentity, **kwargs) -> "RotatingLogStore":
        return cls(identity.name, identity.max_size_bytes, **kwargs)

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def max_size_bytes(self) -> int:
        return self.identity.max_size_bytes

    @property
    def primary_path(self) -> Optional[Path]:
        return self._primary.get()

    @property
    def secondary_path(self) -> Optional[Path]:
        return self._secondary.get()

    def __repr__(self) -> str:
        return f"RotatingLogStore(name={self.name!r}, max_size_bytes={self.max_size_bytes})"

    # ----- recovery -----
    def recover_from_error_if_possible(self) -> None:
        for handle in (self._primary, self._secondary):
            path = handle.get()
            if path is None or not path.exists():
                handle.reset()

    def buffers(self) -> Tuple[Path, Path]:
        """Recover, then return (primary, secondary) or raise ResourceUnavailableError."""
        self.recover_from_error_if_possible()
        primary = self._primary.get()
        secondary = self._secondary.get()
        if primary is None or secondary is None:
            raise ResourceUnavailableError(f"buffers for log {self.name!r} are unavailable")
        return primary, secondary

    def is_available(self) -> bool:
        try:
            self.buffers()
        except ResourceUnavailableError:
            return False
        return True

    # ----- locking -----
    @contextmanager
    def exclusive(self, cancel: Optional[threading.Event] = None) -> Iterator[None]:
        """Hold the store's append lock; waiting is cancellable through ``cancel``."""
        if cancel is None:
            self._lock.acquire()
        else:
            while True:
                if cancel.is_set():
                    raise AppendCancelledError(f"cancelled while waiting for log {self.name!r}")
                if self._lock.acquire(timeout=self._lock_poll_interval):
                    break
        try:
            yield
        finally:
            self._lock.release()

    # ----- mutation -----
    def append(self, message: str, *, cancel: Optional[threading.Event] = None) -> None:
        entry = encode_entry(message)
        try:
            if len(entry) > self.max_size_bytes:
                raise EntryTooLargeError(len(entry), self.max_size_bytes)
            primary, secondary = self.buffers()
        except (EntryTooLargeError, ResourceUnavailableError) as e:
            logger.debug("append to %s dropped: %s", self.name, e)
            return
        with self.exclusive(cancel):
            try:
                self._write_entry(primary, secondary, entry, cancel)
            except AppendCancelledError:
                raise
            except Exception:
                logger.exception("append to log %s failed", self.name)

    def _write_entry(self, primary: Path, secondary: Path, entry: bytes, cancel: Optional[threading.Event]) -> None:
        projected = primary.stat().st_size + len(entry)
        if projected > self.max_size_bytes:
            secondary.write_bytes(primary.read_bytes())
            if cancel is not None and cancel.is_set():
                raise AppendCancelledError(f"cancelled during rotation of log {self.name!r}")
            primary.write_bytes(b"")
        with primary.open("ab") as f:
            f.write(entry)

    # ----- reading -----
    def read_entries(self, buffer: str = "primary") -> List[str]:
        """Messages held in ``buffer`` ('primary' or 'secondary'), oldest first.

        Does not take the append lock. Raises ResourceUnavailableError or OSError.
        """
        if buffer not in BUFFERS:
            raise ValueError(f"unknown buffer {buffer!r}; expected one of {BUFFERS}")
        primary, secondary = self.buffers()
        path = primary if buffer == "primary" else secondary
        return split_entries(path.read_bytes())

    def copy_contents(self, output_name: str) -> Optional[Path]:
        """Bounded snapshot of this store into ``output_name``; the store is not modified."""
        from .merge import merge_log_stores

        return merge_log_stores(output_name, self.max_size_bytes, [self], base_dir=self.base_dir)


__all__ = [
    "BACKUP_SUFFIX",
    "LogIdentity",
    "RotatingLogStore",
    "SEPARATOR",
    "SEPARATOR_BYTES",
    "encode_entry",
    "split_entries",
]
