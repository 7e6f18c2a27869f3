from __future__ import annotations

import logging
import time

from telemetry.singleton import get_store, reset_store
from telemetry.store import TelemetryStore


def test_telemetry_disabled_returns_no_store(monkeypatch):
    monkeypatch.setenv("LISTMAP_TELEMETRY", "off")
    assert get_store() is None


def test_telemetry_store_writes_rows(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("LISTMAP_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("LISTMAP_TELEMETRY", "1")

    store = get_store()
    assert store is not None

    store.record(
        map_id="boston_airbnb",
        kind="rectangle",
        result="selected",
        matched=3,
        selected=3,
        view_zoom=12.0,
        stats={"elapsedMs": 1.5, "warning": None},
    )
    store.flush(timeout_s=2.0)

    # Use the existing connection; DuckDB disallows opening the same file with different configs.
    n = int(store.conn.execute("select count(*) from selections").fetchone()[0])
    assert n == 1

    row = store.conn.execute("select map_id, kind, result from selections limit 1").fetchone()
    assert row == ("boston_airbnb", "rectangle", "selected")
    reset_store()


def test_telemetry_summary_groups_by_kind_and_result(tmp_path, monkeypatch):
    monkeypatch.setenv("LISTMAP_TELEMETRY_PATH", str(tmp_path / "summary.duckdb"))
    monkeypatch.setenv("LISTMAP_TELEMETRY", "1")

    store = get_store()
    assert store is not None
    for matched, result in ((2, "selected"), (4, "selected"), (1200, "rejected")):
        store.record(
            map_id="boston_airbnb",
            kind="rectangle",
            result=result,
            matched=matched,
            selected=matched if result == "selected" else 0,
            view_zoom=12.0,
            stats={"elapsedMs": 2.0},
        )
    store.flush(timeout_s=2.0)

    rows = {(r["kind"], r["result"]): r for r in store.summary(map_id="boston_airbnb")}
    assert rows[("rectangle", "selected")]["n"] == 2
    assert rows[("rectangle", "selected")]["avgMatched"] == 3.0
    assert rows[("rectangle", "rejected")]["maxMatched"] == 1200
    assert rows[("rectangle", "rejected")]["avgElapsedMs"] == 2.0
    assert store.summary(map_id="other") == []
    reset_store()


def test_telemetry_reset_deletes_db(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("LISTMAP_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("LISTMAP_TELEMETRY", "1")

    store = get_store()
    assert store is not None
    store.record(
        map_id="boston_airbnb",
        kind="reset",
        result="cleared",
        matched=0,
        selected=0,
        view_zoom=12.0,
        stats={},
    )
    assert store.path.resolve() == db_path.resolve()

    reset_store()
    assert not db_path.exists()


class _FailingConnection:
    def execute(self, sql, params=None):
        return self

    def executemany(self, sql, rows):
        raise RuntimeError("disk full")


def test_failed_write_is_logged_and_writer_keeps_running(tmp_path, caplog):
    store = TelemetryStore(path=tmp_path / "broken.duckdb", conn=_FailingConnection())
    caplog.set_level(logging.ERROR, logger="telemetry.store")

    for _ in range(2):
        store.record(
            map_id="boston_airbnb",
            kind="polygon",
            result="selected",
            matched=1,
            selected=1,
            view_zoom=12.0,
            stats={},
        )
        started = time.time()
        store.flush(timeout_s=10.0)
        # Returns once the failed batch is dropped, not at the timeout.
        assert time.time() - started < 5.0
        assert store._pending == 0
        assert store._worker is not None and store._worker.is_alive()

    dropped = [r for r in caplog.records if "Dropping" in r.getMessage()]
    assert len(dropped) == 2
    assert dropped[0].exc_info is not None
    store.stop()
