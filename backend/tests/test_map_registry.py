from __future__ import annotations

import pytest
from pydantic import ValidationError

from mapconfig import registry
from mapconfig.registry import (
    clear_registry_cache,
    dataset_source,
    get_map,
    list_maps,
    token_source,
)


@pytest.fixture(autouse=True)
def _fresh_registry():
    clear_registry_cache()
    yield
    clear_registry_cache()


def _write_map(root, map_id: str, extra: str = "") -> None:
    d = root / map_id
    d.mkdir(parents=True)
    (d / "map.yaml").write_text(
        f"""
id: {map_id}
title: Test {map_id}
defaultView:
  center: {{lat: 42.0, lon: -71.0}}
  zoom: 11
sources:
  token: data/token
  dataset: data/listings.csv
{extra}
""",
        encoding="utf-8",
    )


def test_bundled_boston_map_is_the_default():
    entry = get_map()
    cfg = entry.config
    assert cfg.id == "boston_airbnb"
    assert cfg.style == "mapbox://styles/mapbox/light-v10"
    assert cfg.defaultView.center.lon == pytest.approx(-71.104081)
    assert cfg.defaultView.center.lat == pytest.approx(42.365554)
    assert cfg.defaultView.zoom == 12
    assert cfg.selection.maxFeatures == 1000
    assert cfg.selection.modifier == "shift"
    assert "boston_airbnb" in {m.id for m in list_maps()}


def test_sources_resolve_against_repo_root():
    cfg = get_map("boston_airbnb").config
    assert token_source(cfg).endswith("data/access-token")
    assert dataset_source(cfg).endswith("data/boston-airbnb-listings.csv")


def test_env_overrides_sources(monkeypatch):
    monkeypatch.setenv("LISTMAP_DATA_SOURCE", "https://example.test/listings.csv")
    cfg = get_map("boston_airbnb").config
    assert dataset_source(cfg) == "https://example.test/listings.csv"


def test_custom_maps_root_and_map_id(tmp_path, monkeypatch):
    _write_map(tmp_path, "a_map")
    _write_map(tmp_path, "b_map", "selection:\n  maxFeatures: 50\n  modifier: alt\n")
    monkeypatch.setenv("LISTMAP_MAPS_ROOT", str(tmp_path))
    monkeypatch.setenv("LISTMAP_MAP_ID", "b_map")

    cfg = get_map().config
    assert cfg.id == "b_map"
    assert cfg.selection.maxFeatures == 50
    assert cfg.selection.modifier == "alt"
    with pytest.raises(KeyError):
        get_map("nope")


def test_invalid_yaml_is_rejected(tmp_path, monkeypatch):
    _write_map(tmp_path, "bad", "selection:\n  modifier: hyper\n")
    monkeypatch.setenv("LISTMAP_MAPS_ROOT", str(tmp_path))
    with pytest.raises(ValidationError):
        registry.get_registry()


def test_no_maps_is_an_error(tmp_path, monkeypatch):
    monkeypatch.setenv("LISTMAP_MAPS_ROOT", str(tmp_path))
    with pytest.raises(RuntimeError):
        get_map()
