from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import json
import logging
import re
import threading

import requests

log = logging.getLogger("aml.records")

Snapshot = List[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Subscription:
    def close(self) -> None:
        raise NotImplementedError


class RecordStore:
    """Read side of the document store: ordered queries and live queries."""

    def query(self, collection: str, where: Dict[str, Any],
              order_by: Optional[str] = None, descending: bool = False) -> Snapshot:
        raise NotImplementedError

    def subscribe(self, collection: str, where: Dict[str, Any], on_snapshot: SnapshotCallback,
                  order_by: Optional[str] = None, descending: bool = False) -> Subscription:
        raise NotImplementedError

    def healthy(self) -> bool:
        return True


def _sort_rows(rows: Snapshot, order_by: Optional[str], descending: bool) -> Snapshot:
    if not order_by:
        return list(rows)
    # sorted() is stable, so ties keep insertion order
    return sorted(rows, key=lambda r: r.get(order_by) if r.get(order_by) is not None else 0, reverse=descending)


class _MemorySubscription(Subscription):
    def __init__(self, store: "MemoryRecordStore", key: int):
        self._store = store
        self._key = key

    def close(self) -> None:
        self._store._unsubscribe(self._key)


class MemoryRecordStore(RecordStore):
    """In-process store. Subscriptions are pushed on every add/update."""

    def __init__(self, collections: Optional[Dict[str, Snapshot]] = None):
        self._data: Dict[str, Snapshot] = {k: [dict(r) for r in v] for k, v in (collections or {}).items()}
        self._lock = threading.Lock()
        self._subs: Dict[int, tuple] = {}
        self._next = 0

    def add(self, collection: str, row: Dict[str, Any]) -> None:
        with self._lock:
            self._data.setdefault(collection, []).append(dict(row))
        self._notify(collection)

    def update(self, collection: str, where: Dict[str, Any], values: Dict[str, Any]) -> int:
        n = 0
        with self._lock:
            for row in self._data.get(collection, []):
                if all(row.get(k) == v for k, v in where.items()):
                    row.update(values)
                    n += 1
        if n:
            self._notify(collection)
        return n

    def query(self, collection: str, where: Dict[str, Any],
              order_by: Optional[str] = None, descending: bool = False) -> Snapshot:
        with self._lock:
            rows = [dict(r) for r in self._data.get(collection, [])
                    if all(r.get(k) == v for k, v in where.items())]
        return _sort_rows(rows, order_by, descending)

    def subscribe(self, collection: str, where: Dict[str, Any], on_snapshot: SnapshotCallback,
                  order_by: Optional[str] = None, descending: bool = False) -> Subscription:
        with self._lock:
            key = self._next
            self._next += 1
            self._subs[key] = (collection, dict(where), on_snapshot, order_by, descending)
        on_snapshot(self.query(collection, where, order_by, descending))
        return _MemorySubscription(self, key)

    def _unsubscribe(self, key: int) -> None:
        with self._lock:
            self._subs.pop(key, None)

    def _notify(self, collection: str) -> None:
        with self._lock:
            subs = [s for s in self._subs.values() if s[0] == collection]
        for coll, where, cb, order_by, descending in subs:
            try:
                cb(self.query(coll, where, order_by, descending))
            except Exception:
                log.exception("subscriber of %s failed", coll)


class PollingSubscription(Subscription):
    """Re-runs a query on a background thread and reports changed snapshots."""

    def __init__(self, fetch: Callable[[], Snapshot], on_snapshot: SnapshotCallback,
                 poll_seconds: float = 5.0, name: str = "records-poll"):
        self._fetch = fetch
        self._cb = on_snapshot
        self._poll = float(poll_seconds)
        self._stop = threading.Event()
        self._last: Optional[Snapshot] = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "PollingSubscription":
        self._thread.start()
        return self

    def poll_once(self) -> bool:
        rows = self._fetch()
        if rows == self._last:
            return False
        self._cb(rows)
        self._last = rows
        return True

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception as e:
                log.warning("poll failed: %s", e)
            self._stop.wait(self._poll)

    def close(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._poll + 1.0)


class ClickHouseRecordStore(RecordStore):
    """Record store backed by ClickHouse over its HTTP interface.

    Collections map to tables of ``database``. Filters are bound as query
    parameters. When sorting, ``name`` is a secondary key so that rows sharing
    the same sort value come back in a stable order.
    """

    def __init__(self, http_url: str = "http://localhost:8123", database: str = "automl",
                 user: str = "default", password: str = "", timeout: float = 10.0,
                 poll_seconds: float = 5.0):
        self.http_url = http_url.rstrip("/")
        self.database = database
        self.auth = (user, password) if password else None
        self.timeout = float(timeout)
        self.poll_seconds = float(poll_seconds)

    def build_select(self, collection: str, where: Dict[str, Any],
                     order_by: Optional[str] = None, descending: bool = False) -> tuple:
        for ident in [collection, *(where or {}).keys(), *([order_by] if order_by else [])]:
            if not _IDENT.match(ident):
                raise ValueError(f"invalid identifier: {ident!r}")

        params: Dict[str, Any] = {}
        conds: List[str] = []
        for i, (col, val) in enumerate((where or {}).items()):
            pname = f"p{i}"
            ptype = "Int64" if isinstance(val, int) and not isinstance(val, bool) else "String"
            if isinstance(val, bool):
                ptype = "UInt8"
                val = int(val)
            conds.append(f"{col} = {{{pname}:{ptype}}}")
            params[f"param_{pname}"] = val

        sql = f"SELECT * FROM {self.database}.{collection}"
        if conds:
            sql += " WHERE " + " AND ".join(conds)
        if order_by:
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
            if order_by != "name":
                sql += ", name ASC"
        return sql, params

    def select(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Snapshot:
        q = {"database": self.database}
        q.update(params or {})
        r = requests.post(f"{self.http_url}/", params=q, data=sql + " FORMAT JSONEachRow",
                          auth=self.auth, timeout=self.timeout)
        r.raise_for_status()
        return [json.loads(line) for line in r.text.strip().splitlines() if line.strip()]

    def query(self, collection: str, where: Dict[str, Any],
              order_by: Optional[str] = None, descending: bool = False) -> Snapshot:
        sql, params = self.build_select(collection, where, order_by, descending)
        return self.select(sql, params)

    def subscribe(self, collection: str, where: Dict[str, Any], on_snapshot: SnapshotCallback,
                  order_by: Optional[str] = None, descending: bool = False) -> Subscription:
        sql, params = self.build_select(collection, where, order_by, descending)
        sub = PollingSubscription(lambda: self.select(sql, params), on_snapshot,
                                  poll_seconds=self.poll_seconds, name=f"poll-{collection}")
        return sub.start()

    def insert(self, collection: str, row: Dict[str, Any]) -> None:
        if not _IDENT.match(collection):
            raise ValueError(f"invalid identifier: {collection!r}")
        sql = f"INSERT INTO {self.database}.{collection} FORMAT JSONEachRow\n" + json.dumps(row, ensure_ascii=False)
        r = requests.post(f"{self.http_url}/", params={"database": self.database}, data=sql.encode("utf-8"),
                          auth=self.auth, timeout=self.timeout)
        r.raise_for_status()

    def healthy(self) -> bool:
        try:
            r = requests.get(f"{self.http_url}/ping", timeout=self.timeout)
            return r.status_code == 200
        except requests.RequestException:
            return False
