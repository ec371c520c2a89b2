from __future__ import annotations


class RingLogError(Exception):
    """Base class for ringlog failures."""


class ResourceUnavailableError(RingLogError):
    """A backing file or its directory could not be created or accessed."""


class EntryTooLargeError(RingLogError):
    """Raised when a single encoded entry exceeds the store's byte budget."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"entry of {size} bytes exceeds budget of {limit} bytes")
        self.size = size
        self.limit = limit


class MergeUnavailableError(RingLogError):
    """A store taking part in a merge could not recover its buffers."""


class AppendCancelledError(RingLogError):
    """Cancellation observed while waiting for, or holding, a store lock.

    Never reported as an I/O failure; always re-raised to the caller.
    """


__all__ = [
    "AppendCancelledError",
    "EntryTooLargeError",
    "MergeUnavailableError",
    "ResourceUnavailableError",
    "RingLogError",
]
