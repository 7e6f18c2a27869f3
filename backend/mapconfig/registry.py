from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from mapconfig.types import MapConfig

DEFAULT_MAP_ID = "boston_airbnb"


def _repo_root() -> Path:
    # .../backend/mapconfig/registry.py -> repo root is 2 levels up
    return Path(__file__).resolve().parents[2]


def _maps_root() -> Path:
    return Path(os.getenv("LISTMAP_MAPS_ROOT") or (_repo_root() / "maps"))


@dataclass(frozen=True)
class MapEntry:
    config: MapConfig
    # Absolute path to map.yaml on disk (useful for debugging).
    path: Path


def _iter_map_yaml_files() -> Iterable[Path]:
    root = _maps_root()
    if not root.exists():
        return []
    # Convention: maps/*/map.yaml
    return root.glob("*/map.yaml")


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid map yaml root: {path}")
    return data


@lru_cache(maxsize=1)
def get_registry() -> dict[str, MapEntry]:
    out: dict[str, MapEntry] = {}
    for p in sorted(_iter_map_yaml_files(), key=lambda x: str(x)):
        cfg = MapConfig.model_validate(_load_yaml(p))
        if cfg.id in out:
            raise ValueError(f"Duplicate map id '{cfg.id}': {p}")
        out[cfg.id] = MapEntry(config=cfg, path=p)
    return out


def default_map_id() -> str:
    env = (os.getenv("LISTMAP_MAP_ID") or "").strip()
    if env:
        return env
    reg = get_registry()
    if DEFAULT_MAP_ID in reg or not reg:
        return DEFAULT_MAP_ID
    return next(iter(reg.keys()))


def list_maps() -> list[MapConfig]:
    return [e.config for e in get_registry().values() if e.config.enabled]


def get_map(map_id: str | None = None) -> MapEntry:
    reg = get_registry()
    if not reg:
        raise RuntimeError("No maps discovered under `maps/*/map.yaml`")
    mid = (map_id or "").strip() or default_map_id()
    if mid not in reg:
        raise KeyError(f"Unknown map id: {mid}")
    return reg[mid]


def resolve_source(source: str) -> str:
    """
    Turn a configured source into something `fetch_text` understands.

    URLs pass through; anything else is treated as repo-relative
    (both "data/..." and "/data/..." are accepted).
    """
    s = (source or "").strip()
    if s.startswith(("http://", "https://")):
        return s
    p = Path(s)
    if p.is_absolute() and p.exists():
        return str(p)
    return str(_repo_root() / s.lstrip("/"))


def token_source(cfg: MapConfig) -> str:
    return resolve_source(os.getenv("LISTMAP_TOKEN_SOURCE") or cfg.sources.token)


def dataset_source(cfg: MapConfig) -> str:
    return resolve_source(os.getenv("LISTMAP_DATA_SOURCE") or cfg.sources.dataset)


def clear_registry_cache() -> None:
    """
    Clear in-memory map registry cache.

    Map YAML changes are otherwise not picked up until the backend process restarts.
    """
    get_registry.cache_clear()
