from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal

LayerType = Literal["heatmap", "circle"]
Visibility = Literal["visible", "none"]


@dataclass(frozen=True)
class PointFeature:
    id: str
    lon: float
    lat: float
    props: dict[str, Any]


@dataclass(frozen=True)
class LayerSpec:
    """
    One Mapbox GL style layer bound to a source.

    Paint/layout values are style-spec expressions kept as plain JSON data, so the
    same declaration feeds the Mapbox client and the Plotly builder.
    """

    id: str
    type: LayerType
    source: str
    paint: dict[str, Any] = field(default_factory=dict)
    layout: dict[str, Any] = field(default_factory=dict)
    filter: list[Any] | None = None
    maxzoom: float | None = None

    @property
    def visibility(self) -> Visibility:
        return "none" if self.layout.get("visibility") == "none" else "visible"

    def with_layout(self, name: str, value: Any) -> "LayerSpec":
        return replace(self, layout={**self.layout, name: value})

    def with_filter(self, expr: list[Any] | None) -> "LayerSpec":
        return replace(self, filter=None if expr is None else list(expr))

    def to_style(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "paint": self.paint,
        }
        if self.layout:
            out["layout"] = self.layout
        if self.filter is not None:
            out["filter"] = self.filter
        if self.maxzoom is not None:
            out["maxzoom"] = self.maxzoom
        return out
