import logging
import random
import threading
from pathlib import Path

import pytest

from ringlog.errors import AppendCancelledError
from ringlog.log_store import (
    SEPARATOR,
    SEPARATOR_BYTES,
    LogIdentity,
    RotatingLogStore,
    encode_entry,
    split_entries,
)
from test_support.buffers import make_store, output_lines, raw_buffers


class _CancelAfter:
    """Event stand-in that reports cancellation from the n-th check on."""

    def __init__(self, n: int) -> None:
        self.checks = 0
        self.n = n

    def is_set(self) -> bool:
        self.checks += 1
        return self.checks >= self.n


def test_separator_encoding():
    assert SEPARATOR_BYTES == b"\xe2\x9a\x80\n"
    assert encode_entry("hi") == SEPARATOR_BYTES + b"hi"
    assert len(encode_entry("")) == 4


def test_backing_files_layout(tmp_path):
    store = make_store(tmp_path / "logs", "app", 100)
    store.append("hello")
    assert (tmp_path / "logs" / "app").read_bytes() == encode_entry("hello")
    assert (tmp_path / "logs" / "app.backup").exists()
    assert store.primary_path == tmp_path / "logs" / "app"
    assert store.secondary_path == tmp_path / "logs" / "app.backup"


@pytest.mark.parametrize(
    "name,size",
    [("", 10), ("a/b", 10), ("ok", 0), ("ok", -5), ("ok", True), ("ok", 1.5)],
)
def test_identity_validation(name, size):
    with pytest.raises(ValueError):
        LogIdentity(name, size)


def test_identity_is_immutable():
    ident = LogIdentity("app", 10)
    assert ident.backup_name == "app.backup"
    with pytest.raises(Exception):
        ident.name = "other"  # type: ignore[misc]


def test_from_identity(tmp_path):
    store = RotatingLogStore.from_identity(LogIdentity("x", 42), base_dir=tmp_path)
    assert store.name == "x" and store.max_size_bytes == 42
    assert "x" in repr(store)


def test_primary_never_exceeds_budget(tmp_path):
    rng = random.Random(7)
    store = make_store(tmp_path, "bounded", 50)
    for i in range(300):
        msg = "m" * rng.randint(0, 46)
        store.append(msg)
        primary, _ = raw_buffers(store)
        assert len(primary) <= 50, i


def test_oversized_entry_leaves_buffers_untouched(tmp_path):
    store = make_store(tmp_path, "big", 10)
    store.append("12345")
    store.append("6")
    before = raw_buffers(store)
    store.append("1234567")  # 4 + 7 = 11 bytes
    assert raw_buffers(store) == before


def test_entry_exactly_at_budget_is_written(tmp_path):
    store = make_store(tmp_path, "edge", 10)
    store.append("123456")
    primary, secondary = raw_buffers(store)
    assert primary == encode_entry("123456")
    assert secondary == b""


def test_budget_counts_encoded_bytes(tmp_path):
    store = make_store(tmp_path, "utf", 8)
    store.append("ééé")  # 7 characters but 10 bytes
    assert raw_buffers(store) == (b"", b"")
    store.append("éé")  # 8 bytes
    assert raw_buffers(store)[0] == encode_entry("éé")


def test_lone_surrogate_is_written_not_raised(tmp_path):
    store = make_store(tmp_path, "fs", 100)
    store.append("bad \udc80 byte")
    assert raw_buffers(store)[0] == SEPARATOR_BYTES + b"bad ? byte"
    assert store.copy_contents("fs-copy").read_text(encoding="utf-8") == "bad ? byte\n"


def test_rotation_copies_whole_primary(tmp_path):
    store = make_store(tmp_path, "rot", 12)
    store.append("aaaa")
    pre_primary, _ = raw_buffers(store)
    store.append("bbbb")
    primary, secondary = raw_buffers(store)
    assert secondary == pre_primary
    assert primary == encode_entry("bbbb")
    store.append("cc")  # 8 + 6 > 12
    assert raw_buffers(store) == (encode_entry("cc"), encode_entry("bbbb"))
    store.append("dd")  # 6 + 6 == 12, fits
    assert raw_buffers(store) == (encode_entry("cc") + encode_entry("dd"), encode_entry("bbbb"))
    store.append("e")  # 12 + 5 > 12
    primary, secondary = raw_buffers(store)
    assert secondary == encode_entry("cc") + encode_entry("dd")
    assert primary == encode_entry("e")


def test_recovers_after_external_deletion(tmp_path):
    store = make_store(tmp_path, "gone", 100)
    store.append("first")
    store.primary_path.unlink()
    store.secondary_path.unlink()
    store.recover_from_error_if_possible()
    store.append("second")
    primary, secondary = raw_buffers(store)
    assert primary == encode_entry("second")
    assert secondary == b""


def test_recovers_after_directory_removed(tmp_path):
    base = tmp_path / "nested" / "dir"
    store = make_store(base, "gone", 100)
    store.append("first")
    for p in base.iterdir():
        p.unlink()
    base.rmdir()
    store.append("second")
    assert (base / "gone").read_bytes() == encode_entry("second")


def test_unavailable_storage_is_silent_then_heals(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = make_store(blocker, "app", 100)
    store.append("lost")
    assert store.is_available() is False
    blocker.unlink()
    store.append("kept")
    assert store.is_available() is True
    assert (blocker / "app").read_bytes() == encode_entry("kept")


def test_callable_base_dir_resolver(tmp_path):
    calls = []

    def resolver():
        calls.append(1)
        return tmp_path / "resolved"

    store = RotatingLogStore("app", 100, base_dir=resolver)
    store.append("x")
    assert (tmp_path / "resolved" / "app").exists()
    assert calls


def test_default_base_dir_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("RINGLOG_DIR", str(tmp_path / "env-dir"))
    store = RotatingLogStore("app", 100)
    store.append("x")
    assert (tmp_path / "env-dir" / "app").read_bytes() == encode_entry("x")


def test_io_failure_is_logged_and_swallowed(tmp_path, monkeypatch, caplog):
    store = make_store(tmp_path, "io", 100)

    def boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(RotatingLogStore, "_write_entry", boom)
    with caplog.at_level(logging.ERROR, logger="ringlog.log_store"):
        store.append("x")
    assert any("append to log io failed" in r.getMessage() for r in caplog.records)
    monkeypatch.undo()
    # lock was released
    store.append("y")
    assert raw_buffers(store)[0] == encode_entry("y")


def test_failed_truncate_leaves_partial_rotation_that_heals(tmp_path, monkeypatch, caplog):
    store = make_store(tmp_path, "half", 12)
    store.append("aaaa")
    primary_path = store.primary_path
    real_write_bytes = Path.write_bytes

    def write_bytes(self, data):
        if self == primary_path and data == b"":
            raise OSError("truncate failed")
        return real_write_bytes(self, data)

    monkeypatch.setattr(Path, "write_bytes", write_bytes)
    with caplog.at_level(logging.ERROR, logger="ringlog.log_store"):
        store.append("bbbb")
    monkeypatch.undo()
    assert any("append to log half failed" in r.getMessage() for r in caplog.records)
    # secondary already holds the snapshot, primary was neither cleared nor appended to
    assert raw_buffers(store) == (encode_entry("aaaa"), encode_entry("aaaa"))
    store.append("bbbb")
    assert raw_buffers(store) == (encode_entry("bbbb"), encode_entry("aaaa"))


def test_cancellation_at_rotation_checkpoint_propagates(tmp_path, caplog):
    store = make_store(tmp_path, "cancel", 12)
    store.append("aaaa")
    pre_primary, _ = raw_buffers(store)
    with caplog.at_level(logging.ERROR, logger="ringlog.log_store"):
        with pytest.raises(AppendCancelledError):
            store.append("bbbb", cancel=_CancelAfter(2))
    assert not caplog.records
    primary, secondary = raw_buffers(store)
    assert secondary == pre_primary
    assert primary == pre_primary
    store.append("bbbb")
    assert raw_buffers(store) == (encode_entry("bbbb"), pre_primary)


def test_cancellation_before_lock_propagates(tmp_path):
    store = make_store(tmp_path, "cancel", 100)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(AppendCancelledError):
        store.append("x", cancel=cancel)
    assert raw_buffers(store) == (b"", b"")


def test_cancellation_while_waiting_for_lock(tmp_path):
    store = make_store(tmp_path, "busy", 100, lock_poll_interval=0.01)
    cancel = threading.Event()
    errors = []

    def worker():
        try:
            store.append("late", cancel=cancel)
        except AppendCancelledError as e:
            errors.append(e)

    with store.exclusive():
        t = threading.Thread(target=worker)
        t.start()
        t.join(0.1)
        assert t.is_alive()
        cancel.set()
        t.join(2)
    assert not t.is_alive()
    assert len(errors) == 1
    assert raw_buffers(store) == (b"", b"")


def test_split_entries_variants():
    assert split_entries(b"") == []
    assert split_entries(encode_entry("a") + encode_entry("") + encode_entry("b")) == ["a", "", "b"]
    assert split_entries(b"torn" + encode_entry("a")) == ["torn", "a"]


def test_read_entries(tmp_path):
    store = make_store(tmp_path, "read", 12)
    for m in ("a", "b", "c"):
        store.append(m)
    # "c" pushes primary to 15 bytes, so "a" and "b" rotate out
    assert store.read_entries() == ["c"]
    assert store.read_entries("secondary") == ["a", "b"]
    with pytest.raises(ValueError):
        store.read_entries("tertiary")


def test_message_containing_separator_splits(tmp_path):
    store = make_store(tmp_path, "collide", 100)
    store.append(f"left{SEPARATOR}right")
    assert store.read_entries() == ["left", "right"]


def test_copy_contents_newest_first(tmp_path):
    store = make_store(tmp_path, "abc", 100)
    for m in ("a", "b", "c"):
        store.append(m)
    before = raw_buffers(store)
    out = store.copy_contents("abc-copy")
    assert out == tmp_path / "abc-copy"
    assert output_lines(out) == ["c", "b", "a"]
    assert raw_buffers(store) == before


def test_independent_stores_append_concurrently(tmp_path):
    stores = [make_store(tmp_path, f"s{i}", 10_000) for i in range(4)]

    def worker(store):
        for i in range(50):
            store.append(f"{store.name}-{i}")

    threads = [threading.Thread(target=worker, args=(s,)) for s in stores]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    for s in stores:
        assert s.read_entries() == [f"{s.name}-{i}" for i in range(50)]
