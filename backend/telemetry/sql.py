from __future__ import annotations

CREATE_SELECTIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS selections (
  ts_ms BIGINT,
  map_id TEXT,
  kind TEXT,
  result TEXT,
  matched INTEGER,
  selected INTEGER,
  view_zoom DOUBLE,
  stats_json TEXT
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  kind,
  result,
  COUNT(*) AS n,
  AVG(matched) AS avg_matched,
  AVG(selected) AS avg_selected,
  MAX(matched) AS max_matched,
  AVG(try_cast(json_extract(stats_json, '$.elapsedMs') AS DOUBLE)) AS avg_elapsed_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.elapsedMs') AS DOUBLE), 0.95) AS p95_elapsed_ms
FROM selections
{where_sql}
GROUP BY kind, result
ORDER BY kind, result
"""

INSERT_SELECTIONS_SQL = """
INSERT INTO selections
  (ts_ms, map_id, kind, result, matched, selected, view_zoom, stats_json)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""
