from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pyproj import Transformer

# Half the Web Mercator world extent in meters (EPSG:3857).
MERCATOR_HALF_EXTENT_M = 20037508.342789244

# Mapbox GL renders vector tiles at 512px per tile.
TILE_SIZE_PX = 512


@lru_cache(maxsize=1)
def transformer_4326_to_3857() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@lru_cache(maxsize=1)
def transformer_3857_to_4326() -> Transformer:
    return Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


@dataclass(frozen=True)
class ScreenPoint:
    """Pixel position relative to the top-left corner of the map canvas."""

    x: float
    y: float


@dataclass(frozen=True)
class ScreenRect:
    """
    Axis-aligned pixel rectangle given by two opposite corners.

    Corners may come in any order (a drag can go in any direction); use
    `normalized()` before comparing against positions.
    """

    a: ScreenPoint
    b: ScreenPoint

    def normalized(self) -> "ScreenRect":
        return ScreenRect(
            a=ScreenPoint(min(self.a.x, self.b.x), min(self.a.y, self.b.y)),
            b=ScreenPoint(max(self.a.x, self.b.x), max(self.a.y, self.b.y)),
        )

    @property
    def width(self) -> float:
        return abs(self.b.x - self.a.x)

    @property
    def height(self) -> float:
        return abs(self.b.y - self.a.y)

    def contains(self, p: ScreenPoint) -> bool:
        r = self.normalized()
        return r.a.x <= p.x <= r.b.x and r.a.y <= p.y <= r.b.y


@dataclass(frozen=True)
class MapView:
    """
    Camera of the client map: center, zoom and the canvas size in pixels.

    Projection is plain Web Mercator without rotation or pitch.
    """

    center_lon: float
    center_lat: float
    zoom: float
    width: int = 900
    height: int = 600

    def world_size(self) -> float:
        return TILE_SIZE_PX * (2.0 ** float(self.zoom))

    def project(self, lon: float, lat: float) -> ScreenPoint:
        nx, ny = _normalized_mercator(lon, lat)
        cx, cy = _normalized_mercator(self.center_lon, self.center_lat)
        ws = self.world_size()
        return ScreenPoint(
            x=(nx - cx) * ws + self.width / 2.0,
            y=(ny - cy) * ws + self.height / 2.0,
        )

    def unproject(self, p: ScreenPoint) -> tuple[float, float]:
        cx, cy = _normalized_mercator(self.center_lon, self.center_lat)
        ws = self.world_size()
        nx = cx + (p.x - self.width / 2.0) / ws
        ny = cy + (p.y - self.height / 2.0) / ws
        mx = nx * 2.0 * MERCATOR_HALF_EXTENT_M - MERCATOR_HALF_EXTENT_M
        my = MERCATOR_HALF_EXTENT_M - ny * 2.0 * MERCATOR_HALF_EXTENT_M
        lon, lat = transformer_3857_to_4326().transform(mx, my)
        return float(lon), float(lat)


def _normalized_mercator(lon: float, lat: float) -> tuple[float, float]:
    # Clamp to the Web Mercator latitude limit; pyproj returns inf at the poles.
    lat = max(-85.0511287798, min(85.0511287798, float(lat)))
    mx, my = transformer_4326_to_3857().transform(float(lon), lat)
    nx = (mx + MERCATOR_HALF_EXTENT_M) / (2.0 * MERCATOR_HALF_EXTENT_M)
    ny = (MERCATOR_HALF_EXTENT_M - my) / (2.0 * MERCATOR_HALF_EXTENT_M)
    return nx, ny
