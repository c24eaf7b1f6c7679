"""
Shared fixtures: an in-memory stand-in for a single Redis connection.

FakeRedis implements only the commands the transfer code issues, records
every call in `calls`, and raises a configured error for chosen
(command, key) pairs.
"""

from typing import Any, Dict, List, Optional, Tuple

import pytest
from redis.exceptions import ResponseError


class FakeRedis:
    def __init__(self) -> None:
        # db -> key -> (type, value)
        self.data: Dict[int, Dict[str, Tuple[str, Any]]] = {}
        # db -> key -> remaining ms
        self.ttls: Dict[int, Dict[str, int]] = {}
        self.db = 0
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self.closed = False

    # ---- test helpers ----

    def put(self, db: int, key: str, type_name: str, value: Any, ttl_ms: int = -1) -> None:
        self.data.setdefault(db, {})[key] = (type_name, value)
        if ttl_ms > 0:
            self.ttls.setdefault(db, {})[key] = ttl_ms

    def fail(self, command: str, key: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.failures[(command, key)] = error or ResponseError(f"{command} failed")

    def calls_of(self, command: str) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == command]

    def _record(self, command: str, key: Optional[str] = None, *args: Any) -> None:
        self.calls.append((command, key) + args)
        err = self.failures.get((command, key))
        if err is not None:
            raise err

    @property
    def _keys(self) -> Dict[str, Tuple[str, Any]]:
        return self.data.setdefault(self.db, {})

    def _value(self, key: str, default: Any) -> Any:
        entry = self._keys.get(key)
        return entry[1] if entry else default

    # ---- connection ----

    def ping(self) -> bool:
        self._record("PING")
        return True

    def close(self) -> None:
        self.closed = True

    def info(self, section: str) -> Dict[str, Any]:
        self._record("INFO", section)
        out: Dict[str, Any] = {}
        for db in sorted(self.data):
            if self.data[db]:
                out[f"db{db}"] = {
                    "keys": len(self.data[db]),
                    "expires": len(self.ttls.get(db, {})),
                    "avg_ttl": 0,
                }
        return out

    def execute_command(self, *args: Any) -> Any:
        if args[0] == "SELECT":
            self._record("SELECT", None, args[1])
            self.db = int(args[1])
            return True
        raise NotImplementedError(args[0])

    # ---- reads ----

    def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None):
        self._record("SCAN", None, cursor, count)
        names = list(self._keys)
        start = int(cursor)
        end = start + (count or 10)
        page = names[start:end]
        return (end if end < len(names) else 0), page

    def type(self, key: str) -> str:
        self._record("TYPE", key)
        entry = self._keys.get(key)
        return entry[0] if entry else "none"

    def get(self, key: str) -> Optional[str]:
        self._record("GET", key)
        return self._value(key, None)

    def hgetall(self, key: str) -> Dict[str, str]:
        self._record("HGETALL", key)
        return dict(self._value(key, {}))

    def llen(self, key: str) -> int:
        self._record("LLEN", key)
        return len(self._value(key, []))

    def lrange(self, key: str, start: int, end: int) -> List[str]:
        self._record("LRANGE", key, start, end)
        return list(self._value(key, []))[start : end + 1]

    def smembers(self, key: str) -> set:
        self._record("SMEMBERS", key)
        return set(self._value(key, set()))

    def zcard(self, key: str) -> int:
        self._record("ZCARD", key)
        return len(self._value(key, {}))

    def zrange(self, key: str, start: int, end: int, withscores: bool = False):
        self._record("ZRANGE", key, start, end)
        ranked = sorted(self._value(key, {}).items(), key=lambda kv: (kv[1], kv[0]))
        ranked = ranked[start : end + 1]
        if withscores:
            return [(m, float(s)) for m, s in ranked]
        return [m for m, _ in ranked]

    def pttl(self, key: str) -> int:
        self._record("PTTL", key)
        if key not in self._keys:
            return -2
        return self.ttls.get(self.db, {}).get(key, -1)

    # ---- writes ----

    def set(self, key: str, value: str) -> bool:
        self._record("SET", key, value)
        self._keys[key] = ("string", value)
        return True

    def hsetnx(self, key: str, field: str, value: str) -> int:
        self._record("HSETNX", key, field, value)
        h = self._keys.setdefault(key, ("hash", {}))[1]
        if field in h:
            return 0
        h[field] = value
        return 1

    def rpush(self, key: str, *values: str) -> int:
        self._record("RPUSH", key, *values)
        lst = self._keys.setdefault(key, ("list", []))[1]
        lst.extend(values)
        return len(lst)

    def sadd(self, key: str, *members: str) -> int:
        self._record("SADD", key, *members)
        s = self._keys.setdefault(key, ("set", set()))[1]
        before = len(s)
        s.update(members)
        return len(s) - before

    def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        self._record("ZADD", key, mapping)
        z = self._keys.setdefault(key, ("zset", {}))[1]
        added = len(set(mapping) - set(z))
        z.update(mapping)
        return added

    def pexpire(self, key: str, ms: int) -> bool:
        self._record("PEXPIRE", key, ms)
        self.ttls.setdefault(self.db, {})[key] = ms
        return True


@pytest.fixture
def fake_redis():
    """Create an empty fake connection."""
    return FakeRedis()


@pytest.fixture
def populated_redis(fake_redis):
    """Fake connection holding one key of each kind in db 0 and one in db 3."""
    fake_redis.put(0, "greeting", "string", "hello")
    fake_redis.put(0, "user:1", "hash", {"name": "alice", "role": "admin"})
    fake_redis.put(0, "queue", "list", ["a", "b", "c"], ttl_ms=5000)
    fake_redis.put(0, "tags", "set", {"x", "y"})
    fake_redis.put(0, "board", "zset", {"p1": 10.0, "p2": 20.5, "p3": 30.0})
    fake_redis.put(3, "other", "string", "db3")
    return fake_redis


@pytest.fixture
def target_redis():
    """Second empty fake connection, for restores next to a populated source."""
    return FakeRedis()
