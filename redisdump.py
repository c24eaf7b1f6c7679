#!/usr/bin/env python3
"""
Export the content of a running Redis server into a JSON snapshot.

Every database listed by `INFO keyspace` is selected in turn and its keys
(string, hash, list, set, zset) are captured together with their remaining
TTL.

Usage:
  redisdump --host localhost --port 6379 --out redis.json

Notes:
- Keys are enumerated with a single SCAN page sized from the keyspace count.
  On a database that grows while it is being dumped some keys can be missed;
  pass --full-scan to follow the SCAN cursor to the end instead.
- zset scores are not kept unless --with-scores is given; without them the
  restore assigns scores 0, 1, 2, ... in rank order.
- The dump is not a point-in-time snapshot of a server under write load.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

import redis

from redis_cli_common import (
    add_connection_args,
    close_quietly,
    connect,
    log_reports,
    setup_logging,
    version_banner,
)
from redis_keyspace import approx_key_count, keyspace_from_info
from redis_snapshot import SnapshotError, dump_snapshot
from redis_transfer import TransferError, dump_instance


logger = logging.getLogger("redisdump")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="redisdump",
        description="Export the content of a running server into a .json file.",
    )
    add_connection_args(p)
    p.add_argument("--out", default="redis.json", help="Output file (default: redis.json)")
    p.add_argument(
        "--full-scan",
        action="store_true",
        help="Follow the SCAN cursor until the whole database has been listed",
    )
    p.add_argument(
        "--with-scores",
        action="store_true",
        help="Keep zset scores in the snapshot",
    )
    p.add_argument("--indent", type=int, default=None, help="Pretty-print the JSON output")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(version_banner())
        return 0

    setup_logging(args.log_level)
    r = connect(args)
    try:
        try:
            info = r.info("keyspace")
        except redis.exceptions.RedisError as e:
            raise SystemExit(f"Cannot get keyspace info, error: {e}")

        keyspaces = keyspace_from_info(info)
        logger.info(
            "Dump %d databases, about %d keys", len(keyspaces), approx_key_count(keyspaces)
        )

        try:
            instance, reports = dump_instance(
                r, keyspaces, full_scan=args.full_scan, with_scores=args.with_scores
            )
        except TransferError as e:
            raise SystemExit(f"Cannot load from redis, error: {e}")
    finally:
        close_quietly(r)

    log_reports(reports, "dump")

    try:
        dump_snapshot(instance, args.out, indent=args.indent)
    except SnapshotError as e:
        raise SystemExit(f"Cannot dump, error: {e}")

    logger.info("wrote: %s (%d keys)", args.out, instance.key_count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
