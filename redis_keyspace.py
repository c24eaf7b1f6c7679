"""
Parse the `INFO keyspace` summary of a Redis server into database records.

Each database with at least one key is reported as a line like:

  db0:keys=2,expires=0,avg_ttl=0

Lines that do not match are ignored, so the whole INFO reply (including the
`# Keyspace` header) can be passed in as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping


_KEYSPACE_RE = re.compile(
    r"db(?P<db>[0-9]+):keys=(?P<keys>[0-9]+),expires=(?P<expires>[0-9]+),avg_ttl=(?P<avg_ttl>[0-9]+)"
)


@dataclass(frozen=True)
class KeySpace:
    db: int
    keys: int
    expires: int
    avg_ttl: int


def parse_keyspace(text: str) -> List[KeySpace]:
    """Return one KeySpace per well-formed `db<N>:...` entry, in textual order.

    Duplicate or unsorted database numbers are returned as they appear.
    """
    return [
        KeySpace(
            db=int(m.group("db")),
            keys=int(m.group("keys")),
            expires=int(m.group("expires")),
            avg_ttl=int(m.group("avg_ttl")),
        )
        for m in _KEYSPACE_RE.finditer(text)
    ]


def _render_info_entry(name: str, stats: Mapping[str, Any]) -> str:
    fields = ",".join(f"{k}={stats.get(k, 0)}" for k in ("keys", "expires", "avg_ttl"))
    return f"{name}:{fields}"


def keyspace_from_info(info: Mapping[str, Any]) -> List[KeySpace]:
    # redis-py parses `INFO keyspace` into {"db0": {"keys": 2, ...}}; render it
    # back to the wire form so both inputs go through the same grammar.
    lines: List[str] = []
    for name, stats in info.items():
        if isinstance(stats, dict):
            lines.append(_render_info_entry(str(name), stats))
    return parse_keyspace("\n".join(lines))


def approx_key_count(keyspaces: List[KeySpace]) -> int:
    return sum(ks.keys for ks in keyspaces)

