"""
Resettable lazy values used to hold backing file handles.

A cache is either Uninitialized or Valid(value, created_at). ``get()`` takes an
unguarded fast path when the cache is Valid and falls back to a locked
recheck-then-initialize path on a miss, so concurrent first callers run the
initializer exactly once per generation. ``reset()`` moves the cache back to
Uninitialized; the next ``get()`` computes a fresh value.

Usage:
- handle = resettable_lazy(lambda: open_something())
- handle.get()              # computes once
- handle.reset()            # next get() recomputes
- cached = resettable_lazy_time_expired(30.0, loader)   # recomputes after 30s
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

T = TypeVar("T")

_NOT_INITIALIZED = "Lazy value not initialized yet."


@dataclass(frozen=True, slots=True)
class _Valid(Generic[T]):
    value: T
    created_at: float


class ResettableLazy(Protocol[T]):  # pragma: no cover - structural
    @property
    def value(self) -> T: ...  # noqa: E704

    def get(self) -> T: ...  # noqa: E704

    def is_initialized(self) -> bool: ...  # noqa: E704

    def reset(self) -> None: ...  # noqa: E704


class LazyHandleCache(Generic[T]):
    """Thread-safe lazy value with reset and optional time-based expiry.

    ``ttl`` is in seconds of ``clock`` time; ``None`` disables expiry. A shared
    ``lock`` may be passed so several caches initialize under one mutex.
    Initializer exceptions propagate to the ``get()`` caller and leave the cache
    Uninitialized.
    """

    def __init__(
        self,
        initializer: Callable[[], T],
        *,
        ttl: Optional[float] = None,
        lock: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl is not None and ttl < 0:
            raise ValueError("ttl must be non-negative")
        self._initializer = initializer
        self._ttl = ttl
        self._lock = lock if lock is not None else threading.Lock()
        self._clock = clock
        self._state: Optional[_Valid[T]] = None

    @property
    def value(self) -> T:
        return self.get()

    def _expired(self, state: _Valid[T]) -> bool:
        return self._ttl is not None and (self._clock() - state.created_at) > self._ttl

    def get(self) -> T:
        state = self._state
        if state is not None:
            if not self._expired(state):
                return state.value
            self.reset()
        with self._lock:
            state = self._state
            if state is not None and not self._expired(state):
                return state.value
            value = self._initializer()
            self._state = _Valid(value, self._clock())
            return value

    def reset(self) -> None:
        with self._lock:
            self._state = None

    def is_initialized(self) -> bool:
        return self._state is not None

    def __repr__(self) -> str:
        state = self._state
        return repr(state.value) if state is not None else _NOT_INITIALIZED


class UnsynchronizedLazyHandleCache(Generic[T]):
    """Lock-free variant of :class:`LazyHandleCache` for single-threaded call sites."""

    def __init__(self, initializer: Callable[[], T]) -> None:
        self._initializer = initializer
        self._state: Optional[_Valid[T]] = None

    @property
    def value(self) -> T:
        return self.get()

    def get(self) -> T:
        if self._state is None:
            self._state = _Valid(self._initializer(), time.monotonic())
        return self._state.value

    def reset(self) -> None:
        self._state = None

    def is_initialized(self) -> bool:
        return self._state is not None

    def __repr__(self) -> str:
        return repr(self._state.value) if self._state is not None else _NOT_INITIALIZED


def resettable_lazy(initializer: Callable[[], T], lock: Optional[Any] = None) -> LazyHandleCache[T]:
    return LazyHandleCache(initializer, lock=lock)


def resettable_lazy_time_expired(ttl: float, initializer: Callable[[], T]) -> LazyHandleCache[T]:
    return LazyHandleCache(initializer, ttl=ttl)


def resettable_lazy_unsynchronized(initializer: Callable[[], T]) -> UnsynchronizedLazyHandleCache[T]:
    return UnsynchronizedLazyHandleCache(initializer)


__all__ = [
    "LazyHandleCache",
    "ResettableLazy",
    "UnsynchronizedLazyHandleCache",
    "resettable_lazy",
    "resettable_lazy_time_expired",
    "resettable_lazy_unsynchronized",
]
