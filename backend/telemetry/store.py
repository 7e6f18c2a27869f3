from __future__ import annotations

import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from telemetry.sql import (
    CREATE_SELECTIONS_TABLE_SQL,
    INSERT_SELECTIONS_SQL,
    SUMMARY_SQL_TEMPLATE,
)

logger = logging.getLogger(__name__)


def _safe_float(v) -> float | None:
    try:
        if v is None:
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass
class TelemetryStore:
    """
    DuckDB file of selection outcomes.

    `record()` only enqueues; a single writer thread batches inserts so request
    handlers never wait on the database.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[dict[str, Any]]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)
    # Rows accepted by record() but not yet written.
    _pending: int = field(default=0, repr=False)
    _pending_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_SELECTIONS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """
        Stop the writer thread; queued rows are flushed before it exits.
        """
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        map_id: str,
        kind: str,
        result: str,
        matched: int,
        selected: int,
        view_zoom: float,
        stats: dict[str, Any],
    ) -> None:
        self.start()
        with self._pending_lock:
            self._pending += 1
        try:
            self._q.put_nowait(
                {
                    "ts_ms": int(time.time() * 1000),
                    "map_id": str(map_id),
                    "kind": str(kind),
                    "result": str(result),
                    "matched": int(matched),
                    "selected": int(selected),
                    "view_zoom": float(view_zoom),
                    "stats_json": json.dumps(stats, ensure_ascii=False),
                }
            )
        except queue.Full:
            # drop telemetry on overload
            with self._pending_lock:
                self._pending -= 1

    def flush(self, *, timeout_s: float = 2.0) -> None:
        """
        Wait until queued rows are written (used by tests).
        """
        if self._worker is None:
            return
        deadline = time.time() + timeout_s
        while time.time() < deadline:
            with self._pending_lock:
                if self._pending <= 0:
                    return
            time.sleep(0.01)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        """
        Run a read query on the writer's connection.

        DuckDB holds a file lock, so other processes cannot open the file while the
        backend runs; reads go through the API instead.
        """
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(
        self,
        *,
        map_id: str | None = None,
        kind: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        where = []
        params: list[Any] = []
        if map_id:
            where.append("map_id = ?")
            params.append(map_id)
        if kind:
            where.append("kind = ?")
            params.append(kind)
        if since_ms is not None:
            where.append("ts_ms >= ?")
            params.append(int(since_ms))

        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)

        out: list[dict[str, Any]] = []
        for kind_v, result_v, n, avg_m, avg_s, max_m, avg_ms, p95_ms in rows:
            out.append(
                {
                    "kind": kind_v,
                    "result": result_v,
                    "n": int(n),
                    "avgMatched": _safe_float(avg_m),
                    "avgSelected": _safe_float(avg_s),
                    "maxMatched": int(max_m) if max_m is not None else None,
                    "avgElapsedMs": _safe_float(avg_ms),
                    "p95ElapsedMs": _safe_float(p95_ms),
                }
            )
        return out

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            self.conn.close()
            self.path.unlink(missing_ok=True)

    def _run(self) -> None:
        try:
            self.ensure_schema()
        except Exception:
            # Inserts below fail and get dropped too; keep draining the queue.
            logger.exception("Failed to create telemetry schema at %s", self.path)
        batch: list[dict[str, Any]] = []
        last_flush = time.time()

        def flush_batch() -> None:
            nonlocal batch
            if not batch:
                return
            try:
                with self._lock:
                    self.conn.executemany(
                        INSERT_SELECTIONS_SQL,
                        [
                            (
                                e["ts_ms"],
                                e["map_id"],
                                e["kind"],
                                e["result"],
                                e["matched"],
                                e["selected"],
                                e["view_zoom"],
                                e["stats_json"],
                            )
                            for e in batch
                        ],
                    )
                    # Make rows visible to readers immediately.
                    self.conn.execute("CHECKPOINT;")
            except Exception:
                logger.exception("Dropping %d telemetry rows", len(batch))
            finally:
                with self._pending_lock:
                    self._pending -= len(batch)
                batch = []

        while not self._stop.is_set():
            try:
                e = self._q.get(timeout=0.1)
            except queue.Empty:
                e = None

            if e is not None:
                batch.append(e)
                self._q.task_done()

            # Flush on size or time.
            now = time.time()
            if len(batch) >= 250 or (batch and (now - last_flush) >= 0.5):
                flush_batch()
                last_flush = now

        try:
            while True:
                e = self._q.get_nowait()
                batch.append(e)
                self._q.task_done()
        except queue.Empty:
            pass
        flush_batch()
