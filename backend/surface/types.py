from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from geo.projection import ScreenPoint, ScreenRect
from layers.types import LayerSpec

ModifierName = str  # "shift" | "alt" | "ctrl" | "meta"


@dataclass(frozen=True)
class MapEvent:
    """
    A pointer/keyboard event in canvas pixel coordinates.

    `features` is filled for layer-scoped events (mouseenter/mouseleave).
    """

    type: str
    x: float = 0.0
    y: float = 0.0
    button: int = 0
    shift_key: bool = False
    alt_key: bool = False
    ctrl_key: bool = False
    meta_key: bool = False
    key: str | None = None
    features: tuple["RenderedFeature", ...] = ()

    @property
    def point(self) -> ScreenPoint:
        return ScreenPoint(self.x, self.y)

    def modifier(self, name: ModifierName) -> bool:
        return bool(getattr(self, f"{name}_key", False))


EventHandler = Callable[[MapEvent], None]


@dataclass(frozen=True)
class RenderedFeature:
    layer_id: str
    lon: float
    lat: float
    props: dict[str, Any]
    screen: ScreenPoint


@dataclass
class OverlayElement:
    """A positioned element over the canvas (the drag box)."""

    class_name: str
    style: dict[str, str] = field(default_factory=dict)
    attached: bool = True


@dataclass
class Popup:
    lon: float
    lat: float
    html: str
    offset: tuple[float, float] = (0.0, 0.0)
    open: bool = True

    def remove(self) -> None:
        self.open = False


class MapSurface(Protocol):
    """
    What the controllers need from the client map.

    Mirrors the subset of the Mapbox GL map API this app uses.
    """

    def add_source(self, source_id: str, spec: dict[str, Any]) -> None: ...

    def add_layer(self, layer: LayerSpec) -> None: ...

    def get_layer(self, layer_id: str) -> LayerSpec: ...

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None: ...

    def set_filter(self, layer_id: str, expr: list[Any] | None) -> None: ...

    def get_filter(self, layer_id: str) -> list[Any] | None: ...

    def project(self, lon: float, lat: float) -> ScreenPoint: ...

    def unproject(self, point: ScreenPoint) -> tuple[float, float]: ...

    def query_rendered_features(
        self, geometry: ScreenPoint | ScreenRect, *, layers: list[str]
    ) -> list[RenderedFeature]: ...

    def enable_drag_pan(self) -> None: ...

    def disable_drag_pan(self) -> None: ...

    def disable_box_zoom(self) -> None: ...

    def add_control(self, name: str) -> None: ...

    def create_overlay(self, class_name: str) -> OverlayElement: ...

    def remove_overlay(self, element: OverlayElement) -> None: ...

    def add_popup(
        self, lon: float, lat: float, html: str, *, offset: tuple[float, float]
    ) -> Popup: ...

    def set_cursor(self, cursor: str) -> None: ...

    def on(self, event_type: str, handler: EventHandler, *, layer_id: str | None = None) -> None: ...

    def off(self, event_type: str, handler: EventHandler, *, layer_id: str | None = None) -> None: ...
