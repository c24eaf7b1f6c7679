#!/usr/bin/env python3
"""
Restore a snapshot written by redisdump into a running Redis server.

Usage:
  redisrestore redis.json --host localhost --port 6379

Per key type:
  string  SET, overwriting whatever is there
  hash    HSETNX per field, existing fields win
  list    RPUSH of every element, in captured order
  set     SADD
  zset    ZADD with the captured scores, or 0, 1, 2, ... in rank order
Keys captured with a TTL get a PEXPIRE counted from the time of the restore.

Nothing is checked after the restore; failed keys only show up in the log.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from redis_cli_common import (
    add_connection_args,
    close_quietly,
    connect,
    log_reports,
    setup_logging,
    version_banner,
)
from redis_snapshot import SnapshotError, load_snapshot
from redis_transfer import TransferError, restore_instance


logger = logging.getLogger("redisrestore")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="redisrestore",
        description="Restore backups generated with redisdump to a running server.",
    )
    # Optional so that `--version` alone works; the count is checked in main().
    p.add_argument("filename", nargs="*", help="Snapshot file written by redisdump")
    add_connection_args(p)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(version_banner())
        return 0

    if len(args.filename) != 1:
        parser.error(f"requires exactly 1 argument, got {len(args.filename)}")
    path = args.filename[0]

    setup_logging(args.log_level)
    try:
        instance = load_snapshot(path)
    except SnapshotError as e:
        raise SystemExit(f"Cannot load file: {path}, error: {e}")

    r = connect(args)
    logger.info("Restore %d databases, %d keys", len(instance.databases), instance.key_count)
    try:
        reports = restore_instance(r, instance)
    except TransferError as e:
        raise SystemExit(f"Cannot restore, error: {e}")
    finally:
        close_quietly(r)

    log_reports(reports, "restore")
    logger.info("Restore done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
