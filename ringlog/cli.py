from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from .log_store import RotatingLogStore
from .merge import merge_log_stores
from .settings import Settings

DEMO_MESSAGES = 1000
DEMO_MAX_BYTES = 1000


def _emit(payload: dict) -> None:
    print(json.dumps({"schema": 1, "ts": time.time(), **payload}))


def _size(path: Optional[Path]) -> Optional[int]:
    return path.stat().st_size if path is not None and path.exists() else None


def _store(args: argparse.Namespace, name: str) -> RotatingLogStore:
    return RotatingLogStore(name, args.max_bytes, base_dir=args.log_dir, lock_poll_interval=args.lock_poll_interval)


def _cmd_append(args: argparse.Namespace) -> int:
    store = _store(args, args.name)
    for message in args.messages:
        store.append(message)
    _emit({"log": store.name, "primary_bytes": _size(store.primary_path), "secondary_bytes": _size(store.secondary_path)})
    return 0


def _cmd_copy(args: argparse.Namespace) -> int:
    out = _store(args, args.name).copy_contents(args.output)
    _emit({"log": args.name, "output": str(out) if out else None, "bytes": _size(out)})
    return 0 if out is not None else 2


def _cmd_merge(args: argparse.Namespace) -> int:
    stores = [_store(args, name) for name in args.names]
    out = merge_log_stores(args.output, args.merge_max_bytes, stores, base_dir=args.log_dir, locked=args.locked)
    _emit({"logs": args.names, "output": str(out) if out else None, "bytes": _size(out)})
    return 0 if out is not None else 2


def _cmd_show(args: argparse.Namespace) -> int:
    store = _store(args, args.name)
    if not store.is_available():
        _emit({"log": store.name, "error": "buffers unavailable"})
        return 2
    newest_first = list(reversed(store.read_entries("primary"))) + list(reversed(store.read_entries("secondary")))
    _emit({"log": store.name, "messages": newest_first})
    return 0


def _cmd_demo(args: argparse.Namespace) -> int:
    store = RotatingLogStore("test", DEMO_MAX_BYTES, base_dir=args.log_dir)
    for i in range(DEMO_MESSAGES):
        store.append(f"test {i}")
    out = store.copy_contents("test2")
    _emit({"log": store.name, "output": str(out) if out else None, "bytes": _size(out)})
    return 0 if out is not None else 2


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ringlog", description="Size-bounded dual-buffer logs")
    parser.add_argument("--log-dir", default=str(settings.base_dir))
    parser.add_argument("--max-bytes", type=int, default=settings.max_bytes)
    parser.add_argument("--lock-poll-interval", type=float, default=settings.lock_poll_interval)
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("append", help="append messages to a log")
    p.add_argument("name")
    p.add_argument("messages", nargs="+")
    p.set_defaults(func=_cmd_append)

    p = sub.add_parser("copy", help="bounded snapshot of one log")
    p.add_argument("name")
    p.add_argument("output")
    p.set_defaults(func=_cmd_copy)

    p = sub.add_parser("merge", help="merge logs, newest first per buffer, in the given order")
    p.add_argument("output")
    p.add_argument("names", nargs="+")
    p.add_argument("--merge-max-bytes", type=int, default=settings.merge_max_bytes)
    p.add_argument("--locked", action="store_true", help="hold each log's append lock while reading it")
    p.set_defaults(func=_cmd_merge)

    p = sub.add_parser("show", help="print a log's messages newest first")
    p.add_argument("name")
    p.set_defaults(func=_cmd_show)

    p = sub.add_parser("demo", help="append 1000 messages to 'test' and copy it to 'test2'")
    p.set_defaults(func=_cmd_demo)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    settings = Settings.from_env()
    args = build_parser(settings).parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else settings.log_level)
    if args.max_bytes <= 0 or getattr(args, "merge_max_bytes", 1) <= 0:
        _emit({"error": "byte budgets must be positive"})
        return 2
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
