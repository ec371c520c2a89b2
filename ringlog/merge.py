from __future__ import annotations

import logging
from contextlib import nullcontext
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from .errors import MergeUnavailableError
from .log_store import BUFFERS, RotatingLogStore
from .storage import BaseDir, create_truncated_file, resolve_base_dir

logger = logging.getLogger(__name__)


def _check_stores(stores: Sequence[RotatingLogStore]) -> None:
    for store in stores:
        store.recover_from_error_if_possible()
    for store in stores:
        if not store.is_available():
            raise MergeUnavailableError(f"log {store.name!r} could not recover its buffers")


def _overwrites_store(output: Path, stores: Sequence[RotatingLogStore]) -> bool:
    target = output.resolve()
    paths = [p for store in stores for p in (store.primary_path, store.secondary_path) if p is not None]
    return any(p.resolve() == target for p in paths)


def _emit_buffer(out: BinaryIO, messages: Sequence[str], written: int, max_size_bytes: int) -> int:
    # newest first; the running total keeps refused lines, so later buffers stop at once
    for message in reversed(messages):
        line = (message + "\n").encode("utf-8", errors="replace")
        written += len(line)
        if written > max_size_bytes:
            break
        out.write(line)
    return written


def merge_log_stores(
    output_name: str,
    max_size_bytes: int,
    stores: Sequence[RotatingLogStore],
    *,
    base_dir: BaseDir = None,
    locked: bool = False,
) -> Optional[Path]:
    """Write a bounded, newest-first text view of ``stores`` to ``output_name``.

    Stores are visited in the given order, primary then secondary buffer each, one
    message per line. Output is capped at ``max_size_bytes``: the first line that
    would cross the cap ends the current buffer and every buffer after it.
    Ordering across stores is caller order, not global recency.

    Returns the output path, or None when a store cannot recover its buffers, the
    output cannot be created, or the output would be one of the stores' own files.
    I/O failures after writing began are logged and the partial output is returned. With ``locked=True`` each store's append lock is
    held while that store is read; otherwise reads may observe an in-flight append.
    """
    if isinstance(max_size_bytes, bool) or not isinstance(max_size_bytes, int) or max_size_bytes <= 0:
        raise ValueError("max_size_bytes must be a positive integer")
    try:
        _check_stores(stores)
    except MergeUnavailableError as e:
        logger.debug("merge into %s skipped: %s", output_name, e)
        return None
    if _overwrites_store(resolve_base_dir(base_dir) / output_name, stores):
        logger.debug("merge into %s skipped: output is a backing file of a merged log", output_name)
        return None
    output = create_truncated_file(base_dir, output_name)
    if output is None:
        logger.debug("merge into %s skipped: output could not be created", output_name)
        return None
    written = 0
    try:
        with output.open("ab") as out:
            for store in stores:
                with store.exclusive() if locked else nullcontext():
                    for buffer in BUFFERS:
                        written = _emit_buffer(out, store.read_entries(buffer), written, max_size_bytes)
    except Exception:
        logger.exception("merge into %s failed after writing started", output)
    return output


__all__ = ["merge_log_stores"]
