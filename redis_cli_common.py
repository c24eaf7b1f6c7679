"""
Plumbing shared by the redisdump and redisrestore commands.

Connection defaults can be set through the environment:

  REDIS_HOST      (default: localhost)
  REDIS_PORT      (default: 6379)
  REDIS_PASSWORD  (default: none)
"""

from __future__ import annotations

import argparse
import logging
import os
import platform
from typing import Any, List, Optional

import redis

from redis_transfer import DatabaseReport, OutcomeStatus


__version__ = "1.0.0"
GIT_COMMIT = os.getenv("REDIS_TOOLS_GIT_COMMIT", "")

DEFAULT_TIMEOUT_S = 3.0

logger = logging.getLogger(__name__)


def version_banner() -> str:
    rows = [
        ("Version", f"v{__version__}"),
        ("Git Version", GIT_COMMIT),
        ("Python Version", platform.python_version()),
    ]
    return "\n".join(f"{label:<14} {value}" for label, value in rows)


def add_connection_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--host",
        default=os.getenv("REDIS_HOST", "localhost"),
        help="Server hostname (default: $REDIS_HOST or localhost)",
    )
    p.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("REDIS_PORT", "6379")),
        help="Server port (default: $REDIS_PORT or 6379)",
    )
    p.add_argument(
        "--password",
        default=os.getenv("REDIS_PASSWORD") or None,
        help="Password to use when connecting to the server",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_S,
        help=f"Connect and socket timeout in seconds (default: {DEFAULT_TIMEOUT_S:g})",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    p.add_argument("-v", "--version", action="store_true", help="Print version information")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def connect(args: argparse.Namespace) -> "redis.Redis":
    """Open a single-connection client and make sure the server answers."""
    r = redis.Redis(
        host=args.host,
        port=args.port,
        password=args.password,
        socket_timeout=args.timeout,
        socket_connect_timeout=args.timeout,
        # SELECT must stick to the one connection every command goes through.
        single_connection_client=True,
        decode_responses=True,
        # Non-UTF-8 bytes become lone surrogates and are encoded back on write.
        encoding_errors="surrogateescape",
    )
    try:
        r.ping()
    except redis.exceptions.RedisError as e:
        raise SystemExit(f"Cannot connect to the server {args.host}:{args.port}, error: {e}")
    return r


def log_reports(reports: List[DatabaseReport], action: str) -> None:
    for report in reports:
        for outcome in report.failures():
            if outcome.status is OutcomeStatus.FAILED:
                logger.warning("%s db %d key %r failed: %s", action, report.db, outcome.name, outcome.error)
            else:
                logger.info("%s db %d key %r skipped: %s", action, report.db, outcome.name, outcome.error)
        logger.info("%s %s", action, report.summary())


def close_quietly(r: Optional[Any]) -> None:
    if r is None:
        return
    try:
        r.close()
    except redis.exceptions.RedisError as e:
        logger.debug("error closing connection: %s", e)
