"""
In-memory snapshot of a Redis instance and its JSON file format.

File shape:

  {"databases": [
    {"db_name": 0, "db_size": 2, "keys": [
      {"name": "foo", "type": "string", "value": "bar", "ttl": 0},
      {"name": "rank", "type": "zset", "value": ["a", "b"], "ttl": 5000000000}
    ]}
  ]}

`ttl` is the remaining time-to-live in nanoseconds at capture time (0 means
no expiry). zset keys may also carry an optional "scores" list, parallel to
"value", when they were captured with their scores; infinite scores are
written as the strings "inf" and "-inf" so the file stays strict JSON.

Non-UTF-8 bytes travel as lone surrogates (see redis_cli_common.connect); the
file is written ASCII-escaped so those survive the JSON encoder.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type


class SnapshotError(Exception):
    """Snapshot file could not be read, parsed or written."""


class KeyKind(str, Enum):
    STRING = "string"
    HASH = "hash"
    LIST = "list"
    SET = "set"
    ZSET = "zset"


# Accepted on load only; always written back as "zset".
_KIND_ALIASES = {"sortedset": KeyKind.ZSET}

NANOS_PER_MILLI = 1_000_000


@dataclass(frozen=True)
class Key:
    """One captured key. Use the per-kind subclasses below."""

    name: str
    ttl: int = 0

    kind: ClassVar[Optional[KeyKind]] = None

    @property
    def type_name(self) -> str:
        return self.kind.value if self.kind is not None else "none"

    @property
    def captured(self) -> bool:
        return getattr(self, "value", None) is not None

    def value_to_json(self) -> Any:
        return getattr(self, "value", None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type_name,
            "value": self.value_to_json(),
            "ttl": self.ttl,
        }


@dataclass(frozen=True)
class StringKey(Key):
    value: Optional[str] = None

    kind: ClassVar[Optional[KeyKind]] = KeyKind.STRING


@dataclass(frozen=True)
class HashKey(Key):
    value: Optional[Dict[str, str]] = None

    kind: ClassVar[Optional[KeyKind]] = KeyKind.HASH


@dataclass(frozen=True)
class ListKey(Key):
    value: Optional[List[str]] = None

    kind: ClassVar[Optional[KeyKind]] = KeyKind.LIST


@dataclass(frozen=True)
class SetKey(Key):
    value: Optional[List[str]] = None

    kind: ClassVar[Optional[KeyKind]] = KeyKind.SET


@dataclass(frozen=True)
class SortedSetKey(Key):
    """Members in rank order. `scores`, when present, is parallel to `value`."""

    value: Optional[List[str]] = None
    scores: Optional[List[float]] = None

    kind: ClassVar[Optional[KeyKind]] = KeyKind.ZSET

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.scores is not None:
            d["scores"] = [_score_to_json(s) for s in self.scores]
        return d


@dataclass(frozen=True)
class UnsupportedKey(Key):
    """A key of a type this tool does not transfer (stream, module types)."""

    type_label: str = ""

    @property
    def type_name(self) -> str:
        return self.type_label

    def value_to_json(self) -> Any:
        return None


def _score_to_json(score: float) -> Any:
    # JSON has no infinity; zsets allow -inf/+inf scores.
    if math.isinf(score):
        return "inf" if score > 0 else "-inf"
    return score


KEY_CLASSES: Dict[KeyKind, Type[Key]] = {
    KeyKind.STRING: StringKey,
    KeyKind.HASH: HashKey,
    KeyKind.LIST: ListKey,
    KeyKind.SET: SetKey,
    KeyKind.ZSET: SortedSetKey,
}


def kind_of(type_name: str) -> Optional[KeyKind]:
    if type_name in _KIND_ALIASES:
        return _KIND_ALIASES[type_name]
    try:
        return KeyKind(type_name)
    except ValueError:
        return None


@dataclass(frozen=True)
class Database:
    db: int
    size: int
    keys: List[Key] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "db_name": self.db,
            "db_size": self.size,
            "keys": [k.to_dict() for k in self.keys],
        }


@dataclass(frozen=True)
class Instance:
    databases: List[Database] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"databases": [d.to_dict() for d in self.databases]}

    @property
    def key_count(self) -> int:
        return sum(len(d.keys) for d in self.databases)


# ---- decoding ----


def _scalar(v: Any, where: str) -> str:
    if isinstance(v, str):
        return v
    # Hand-edited files sometimes hold bare numbers; the server stores strings.
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    raise SnapshotError(f"{where}: expected a string, got {type(v).__name__}")


def _str_list(v: Any, where: str) -> List[str]:
    if not isinstance(v, list):
        raise SnapshotError(f"{where}: expected a list, got {type(v).__name__}")
    return [_scalar(item, where) for item in v]


def _decode_value(kind: KeyKind, v: Any, where: str) -> Any:
    if v is None:
        return None
    if kind is KeyKind.STRING:
        return _scalar(v, where)
    if kind is KeyKind.HASH:
        if not isinstance(v, dict):
            raise SnapshotError(f"{where}: expected an object, got {type(v).__name__}")
        return {str(f): _scalar(fv, where) for f, fv in v.items()}
    return _str_list(v, where)


_INF_SCORES = {"inf", "+inf", "-inf"}


def _is_score(s: Any) -> bool:
    if isinstance(s, str):
        return s in _INF_SCORES
    return isinstance(s, (int, float)) and not isinstance(s, bool) and not math.isnan(s)


def _decode_scores(v: Any, members: Optional[List[str]], where: str) -> Optional[List[float]]:
    if v is None:
        return None
    if not isinstance(v, list) or not all(_is_score(s) for s in v):
        raise SnapshotError(f"{where}: scores must be a list of numbers")
    if members is None or len(v) != len(members):
        raise SnapshotError(f"{where}: scores must be parallel to value")
    return [float(s) for s in v]


def key_from_dict(entry: Any, where: str = "key") -> Key:
    if not isinstance(entry, dict):
        raise SnapshotError(f"{where}: expected an object")
    name = entry.get("name")
    type_name = entry.get("type")
    if not isinstance(name, str):
        raise SnapshotError(f"{where}: missing or non-string 'name'")
    if not isinstance(type_name, str):
        raise SnapshotError(f"{where}: missing or non-string 'type'")
    where = f"{where} {name!r}"

    ttl = entry.get("ttl", 0)
    if ttl is None:
        ttl = 0
    if not isinstance(ttl, int) or isinstance(ttl, bool):
        raise SnapshotError(f"{where}: 'ttl' must be an integer")

    kind = kind_of(type_name)
    if kind is None:
        return UnsupportedKey(name=name, ttl=ttl, type_label=type_name)

    value = _decode_value(kind, entry.get("value"), where)
    if kind is KeyKind.ZSET:
        scores = _decode_scores(entry.get("scores"), value, where)
        return SortedSetKey(name=name, ttl=ttl, value=value, scores=scores)
    return KEY_CLASSES[kind](name=name, ttl=ttl, value=value)  # type: ignore[call-arg]


def database_from_dict(entry: Any, where: str = "database") -> Database:
    if not isinstance(entry, dict):
        raise SnapshotError(f"{where}: expected an object")
    db = entry.get("db_name")
    size = entry.get("db_size", 0)
    if not isinstance(db, int) or isinstance(db, bool):
        raise SnapshotError(f"{where}: 'db_name' must be an integer")
    if not isinstance(size, int) or isinstance(size, bool):
        raise SnapshotError(f"{where}: 'db_size' must be an integer")
    raw_keys = entry.get("keys")
    if raw_keys is None:
        raw_keys = []
    if not isinstance(raw_keys, list):
        raise SnapshotError(f"{where}: 'keys' must be a list")
    where = f"db {db}"
    keys = [key_from_dict(k, f"{where} key #{i}") for i, k in enumerate(raw_keys)]
    return Database(db=db, size=size, keys=keys)


def instance_from_dict(doc: Any) -> Instance:
    if not isinstance(doc, dict):
        raise SnapshotError("snapshot root must be an object")
    raw_dbs = doc.get("databases")
    if raw_dbs is None:
        raw_dbs = []
    if not isinstance(raw_dbs, list):
        raise SnapshotError("'databases' must be a list")
    return Instance(
        databases=[database_from_dict(d, f"database #{i}") for i, d in enumerate(raw_dbs)]
    )


# ---- file I/O ----


def dump_snapshot(instance: Instance, path: str, indent: Optional[int] = None) -> None:
    # Encode fully before touching the file so a bad value leaves no partial output.
    try:
        data = json.dumps(instance.to_dict(), indent=indent, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SnapshotError(f"cannot encode snapshot: {e}") from e
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(data)
    except OSError as e:
        raise SnapshotError(f"cannot write snapshot {path}: {e}") from e


def load_snapshot(path: str) -> Instance:
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, ValueError) as e:
        raise SnapshotError(f"cannot read snapshot {path}: {e}") from e
    return instance_from_dict(doc)
