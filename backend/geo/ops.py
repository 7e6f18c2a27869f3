from __future__ import annotations

from typing import Any, Iterable

from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.ops import unary_union

from geo.aoi import BBox

Area = Polygon | MultiPolygon


def polygon_from_rings(rings: list[list[tuple[float, float]]]) -> Area | None:
    """
    Build a valid shapely area from GeoJSON-style rings ([outer, *holes]).

    Returns None for rings that cannot enclose an area (fewer than 3 distinct vertices).
    """
    if not rings:
        return None
    outer = _ensure_closed(rings[0])
    if len(outer) < 4:
        return None
    holes = [_ensure_closed(r) for r in rings[1:] if len(r) >= 3]
    poly: Area = Polygon(outer, holes=holes if holes else None)
    if not poly.is_valid:
        # Free-hand drawing easily produces self-intersections; buffer(0) may
        # split a bow-tie into a MultiPolygon.
        poly = poly.buffer(0)
    if poly.is_empty:
        return None
    return poly


def polygons_from_geojson(features: Iterable[dict[str, Any]]) -> list[Area]:
    """
    Extract areas from draw-control GeoJSON features (Polygon/MultiPolygon).
    """
    out: list[Area] = []
    for feature in features:
        geom = (feature or {}).get("geometry") or {}
        gtype = geom.get("type")
        coords = geom.get("coordinates") or []
        if gtype == "Polygon":
            poly = polygon_from_rings([_to_ring(r) for r in coords])
            if poly is not None:
                out.append(poly)
        elif gtype == "MultiPolygon":
            for part in coords:
                poly = polygon_from_rings([_to_ring(r) for r in part])
                if poly is not None:
                    out.append(poly)
    return out


def areas_bbox(areas: list[Area]) -> BBox | None:
    if not areas:
        return None
    u = unary_union(areas) if len(areas) > 1 else areas[0]
    return BBox.from_bounds(u.bounds)


def covers_lon_lat(area: Area, lon: float, lat: float) -> bool:
    # covers() treats points on the boundary as inside.
    return bool(area.covers(Point(lon, lat)))


def _to_ring(ring: Any) -> list[tuple[float, float]]:
    out: list[tuple[float, float]] = []
    for p in ring or []:
        if not p or len(p) < 2:
            continue
        out.append((float(p[0]), float(p[1])))
    return out


def _ensure_closed(ring: list[tuple[float, float]]) -> list[tuple[float, float]]:
    if not ring:
        return ring
    if ring[0] != ring[-1]:
        return [*ring, ring[0]]
    return ring
