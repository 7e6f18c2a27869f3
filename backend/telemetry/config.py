from __future__ import annotations

import os
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def telemetry_path() -> Path:
    # Kept under the repo so selection stats are easy to query locally.
    return Path(
        os.getenv("LISTMAP_TELEMETRY_PATH")
        or (_repo_root() / "data" / "telemetry" / "telemetry.duckdb")
    )


def telemetry_enabled() -> bool:
    v = (os.getenv("LISTMAP_TELEMETRY") or "1").strip().lower()
    return v not in {"0", "false", "no", "off"}
