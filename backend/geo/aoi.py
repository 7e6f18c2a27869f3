from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_bounds(cls, bounds: tuple[float, float, float, float]) -> "BBox":
        # Shapely `.bounds` order: (minx, miny, maxx, maxy)
        min_lon, min_lat, max_lon, max_lat = bounds
        return cls(
            min_lon=float(min_lon),
            min_lat=float(min_lat),
            max_lon=float(max_lon),
            max_lat=float(max_lat),
        )

    def normalized(self) -> "BBox":
        min_lon = min(self.min_lon, self.max_lon)
        max_lon = max(self.min_lon, self.max_lon)
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def south_west(self) -> tuple[float, float]:
        b = self.normalized()
        return (b.min_lon, b.min_lat)

    def north_east(self) -> tuple[float, float]:
        b = self.normalized()
        return (b.max_lon, b.max_lat)

