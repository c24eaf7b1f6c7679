"""
Move keys between a live Redis connection and an in-memory snapshot.

Dump walks every database reported by `INFO keyspace`; restore walks every
database in a snapshot. Both run strictly sequentially on one connection.

Failures come in two tiers:
  - database selection and key enumeration raise (TransferError); the run is
    over at that point.
  - anything that goes wrong with a single key is recorded as a KeyOutcome in
    the DatabaseReport and the walk moves on to the next key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from redis.exceptions import RedisError

from redis_keyspace import KeySpace
from redis_snapshot import (
    NANOS_PER_MILLI,
    Database,
    HashKey,
    Instance,
    Key,
    KeyKind,
    ListKey,
    SetKey,
    SortedSetKey,
    StringKey,
    UnsupportedKey,
    kind_of,
)


class TransferError(Exception):
    """A failure that invalidates the rest of the run."""


class DatabaseSelectError(TransferError):
    pass


class ScanError(TransferError):
    pass


class OutcomeStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class KeyOutcome:
    name: str
    status: OutcomeStatus
    error: Optional[str] = None

    @classmethod
    def ok(cls, name: str) -> "KeyOutcome":
        return cls(name, OutcomeStatus.OK)

    @classmethod
    def failed(cls, name: str, error: str) -> "KeyOutcome":
        return cls(name, OutcomeStatus.FAILED, error)

    @classmethod
    def skipped(cls, name: str, reason: str) -> "KeyOutcome":
        return cls(name, OutcomeStatus.SKIPPED, reason)


@dataclass
class DatabaseReport:
    """Per-database tally of key outcomes."""

    db: int
    outcomes: List[KeyOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.OK)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    def failures(self) -> List[KeyOutcome]:
        return [o for o in self.outcomes if o.status is not OutcomeStatus.OK]

    def summary(self) -> str:
        return (
            f"db {self.db}: {len(self.outcomes)} keys, "
            f"{self.succeeded} ok, {self.failed} failed, {self.skipped} skipped"
        )


def select_db(conn: Any, db: int) -> None:
    try:
        conn.execute_command("SELECT", db)
    except RedisError as e:
        raise DatabaseSelectError(f"cannot change database to {db}: {e}") from e


# ---- dump ----


def scan_keys(conn: Any, count: int, full_scan: bool = False) -> List[str]:
    """Enumerate key names in the selected database.

    By default this is one SCAN page of up to `count` keys; keys beyond that
    page are not returned. With `full_scan` the cursor is followed to the end
    and the (possibly repeated) names are de-duplicated in first-seen order.
    """
    try:
        cursor, keys = conn.scan(cursor=0, match="*", count=count)
        if not full_scan:
            return list(keys)
        seen: Dict[str, None] = dict.fromkeys(keys)
        while int(cursor) != 0:
            cursor, batch = conn.scan(cursor=cursor, match="*", count=count)
            for k in batch:
                seen.setdefault(k, None)
        return list(seen)
    except RedisError as e:
        raise ScanError(f"cannot scan keys: {e}") from e


def _read_value(conn: Any, name: str, kind: KeyKind, with_scores: bool) -> Tuple[Any, Optional[List[float]]]:
    if kind is KeyKind.STRING:
        return conn.get(name), None
    if kind is KeyKind.HASH:
        return dict(conn.hgetall(name)), None
    if kind is KeyKind.LIST:
        length = conn.llen(name)
        return list(conn.lrange(name, 0, length)), None
    if kind is KeyKind.SET:
        return sorted(conn.smembers(name)), None
    length = conn.zcard(name)
    if not with_scores:
        return list(conn.zrange(name, 0, length)), None
    pairs = conn.zrange(name, 0, length, withscores=True)
    return [m for m, _ in pairs], [float(s) for _, s in pairs]


def _read_ttl(conn: Any, name: str) -> int:
    pttl = int(conn.pttl(name))
    # -1: no expiry, -2: key vanished since the scan.
    return pttl * NANOS_PER_MILLI if pttl > 0 else 0


def capture_key(conn: Any, name: str, with_scores: bool = False) -> Tuple[Key, KeyOutcome]:
    """Read one key's type, value and TTL. Never raises on server errors."""
    errors: List[str] = []

    try:
        type_name = conn.type(name)
    except RedisError as e:
        type_name = "none"
        errors.append(f"type: {e}")

    kind = kind_of(type_name)
    value: Any = None
    scores: Optional[List[float]] = None
    if kind is not None:
        try:
            value, scores = _read_value(conn, name, kind, with_scores)
        except RedisError as e:
            value, scores = None, None
            errors.append(f"read {kind.value}: {e}")

    try:
        ttl = _read_ttl(conn, name)
    except RedisError as e:
        ttl = 0
        errors.append(f"ttl: {e}")

    key: Key
    if kind is None:
        key = UnsupportedKey(name=name, ttl=ttl, type_label=type_name)
    elif kind is KeyKind.STRING:
        key = StringKey(name=name, ttl=ttl, value=value)
    elif kind is KeyKind.HASH:
        key = HashKey(name=name, ttl=ttl, value=value)
    elif kind is KeyKind.LIST:
        key = ListKey(name=name, ttl=ttl, value=value)
    elif kind is KeyKind.SET:
        key = SetKey(name=name, ttl=ttl, value=value)
    else:
        key = SortedSetKey(name=name, ttl=ttl, value=value, scores=scores)

    if errors:
        return key, KeyOutcome.failed(name, "; ".join(errors))
    if kind is None:
        return key, KeyOutcome.skipped(name, f"unsupported type {type_name!r}")
    return key, KeyOutcome.ok(name)


def dump_database(
    conn: Any,
    keyspace: KeySpace,
    full_scan: bool = False,
    with_scores: bool = False,
) -> Tuple[Database, DatabaseReport]:
    select_db(conn, keyspace.db)
    names = scan_keys(conn, keyspace.keys + 1, full_scan=full_scan)

    report = DatabaseReport(db=keyspace.db)
    keys: List[Key] = []
    for name in names:
        key, outcome = capture_key(conn, name, with_scores=with_scores)
        keys.append(key)
        report.outcomes.append(outcome)
    return Database(db=keyspace.db, size=keyspace.keys, keys=keys), report


def dump_instance(
    conn: Any,
    keyspaces: List[KeySpace],
    full_scan: bool = False,
    with_scores: bool = False,
) -> Tuple[Instance, List[DatabaseReport]]:
    databases: List[Database] = []
    reports: List[DatabaseReport] = []
    for ks in keyspaces:
        database, report = dump_database(conn, ks, full_scan=full_scan, with_scores=with_scores)
        databases.append(database)
        reports.append(report)
    return Instance(databases=databases), reports


# ---- restore ----


def expire_millis(ttl: int) -> int:
    """Round a nanosecond TTL up to whole milliseconds (at least 1)."""
    return max(1, -(-ttl // NANOS_PER_MILLI))


def _write_value(conn: Any, key: Key) -> Optional[str]:
    """Issue the write for `key`. Returns a skip reason when nothing was written."""
    if isinstance(key, UnsupportedKey):
        return f"unsupported type {key.type_name!r}"
    if not key.captured:
        return "value was not captured"

    if isinstance(key, StringKey):
        conn.set(key.name, key.value)
        return None

    if not key.value_to_json():
        return "empty value"

    if isinstance(key, HashKey):
        for fname, fvalue in (key.value or {}).items():
            conn.hsetnx(key.name, fname, fvalue)
    elif isinstance(key, ListKey):
        conn.rpush(key.name, *(key.value or []))
    elif isinstance(key, SetKey):
        conn.sadd(key.name, *(key.value or []))
    elif isinstance(key, SortedSetKey):
        members = key.value or []
        scores = key.scores if key.scores is not None else [float(i) for i in range(len(members))]
        conn.zadd(key.name, dict(zip(members, scores)))
    return None


def restore_key(conn: Any, key: Key) -> KeyOutcome:
    """Write one key and, when it has a TTL, expire it relative to now.

    The expire is issued whenever the TTL is positive, even after a failed or
    skipped write, so partially written data does not outlive its TTL.
    """
    errors: List[str] = []
    skip: Optional[str] = None
    try:
        skip = _write_value(conn, key)
    except RedisError as e:
        errors.append(f"write {key.type_name}: {e}")

    if key.ttl > 0:
        try:
            conn.pexpire(key.name, expire_millis(key.ttl))
        except RedisError as e:
            errors.append(f"expire: {e}")

    if errors:
        return KeyOutcome.failed(key.name, "; ".join(errors))
    if skip is not None:
        return KeyOutcome.skipped(key.name, skip)
    return KeyOutcome.ok(key.name)


def restore_database(conn: Any, database: Database) -> DatabaseReport:
    select_db(conn, database.db)
    report = DatabaseReport(db=database.db)
    for key in database.keys:
        report.outcomes.append(restore_key(conn, key))
    return report


def restore_instance(conn: Any, instance: Instance) -> List[DatabaseReport]:
    return [restore_database(conn, database) for database in instance.databases]
