from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from geo.projection import MapView, ScreenPoint, ScreenRect
from layers.expressions import eval_filter, eval_stops
from layers.features import points_from_collection
from layers.types import LayerSpec, PointFeature
from surface.types import (
    EventHandler,
    MapEvent,
    OverlayElement,
    Popup,
    RenderedFeature,
)

# Extra pixels around a circle that still count as "under the pointer".
HIT_TOLERANCE_PX = 1.0

_HOVER_EVENTS = ("mouseenter", "mouseleave")


@dataclass
class InMemoryMapSurface:
    """
    Server-side mirror of the client map.

    Keeps sources, layer declarations, the camera and transient UI state (drag box,
    popup, cursor, pan handler) so selection and tooltip logic can run and be tested
    without a browser. Rendered-feature queries use the same rules as the client:
    hidden layers, layers beyond their maxzoom and filtered-out features are not
    rendered.
    """

    view: MapView
    _sources: dict[str, list[PointFeature]] = field(default_factory=dict, repr=False)
    _source_specs: dict[str, dict[str, Any]] = field(default_factory=dict, repr=False)
    _layers: dict[str, LayerSpec] = field(default_factory=dict, repr=False)
    _handlers: dict[tuple[str, str | None], list[EventHandler]] = field(
        default_factory=dict, repr=False
    )
    _hovered: dict[str, bool] = field(default_factory=dict, repr=False)

    overlays: list[OverlayElement] = field(default_factory=list)
    popups: list[Popup] = field(default_factory=list)
    controls: list[str] = field(default_factory=list)
    cursor: str = ""
    drag_pan_enabled: bool = True
    box_zoom_enabled: bool = True

    # --- sources and layers -------------------------------------------------

    def add_source(self, source_id: str, spec: dict[str, Any]) -> None:
        if source_id in self._sources:
            raise ValueError(f"Source already exists: {source_id}")
        if spec.get("type") != "geojson":
            raise ValueError(f"Unsupported source type: {spec.get('type')}")
        self._source_specs[source_id] = spec
        self._sources[source_id] = points_from_collection(spec.get("data") or {})

    def get_source(self, source_id: str) -> dict[str, Any]:
        return self._source_specs[source_id]

    def source_features(self, source_id: str) -> list[PointFeature]:
        return self._sources.get(source_id, [])

    def add_layer(self, layer: LayerSpec) -> None:
        if layer.id in self._layers:
            raise ValueError(f"Layer already exists: {layer.id}")
        if layer.source not in self._sources:
            raise ValueError(f"Layer '{layer.id}' references unknown source: {layer.source}")
        self._layers[layer.id] = layer

    def get_layer(self, layer_id: str) -> LayerSpec:
        try:
            return self._layers[layer_id]
        except KeyError:
            raise KeyError(f"Unknown layer: {layer_id}") from None

    def layers(self) -> list[LayerSpec]:
        # Insertion order is drawing order (last is on top).
        return list(self._layers.values())

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None:
        self._layers[layer_id] = self.get_layer(layer_id).with_layout(name, value)

    def set_filter(self, layer_id: str, expr: list[Any] | None) -> None:
        self._layers[layer_id] = self.get_layer(layer_id).with_filter(expr)

    def get_filter(self, layer_id: str) -> list[Any] | None:
        return self.get_layer(layer_id).filter

    # --- camera ---------------------------------------------------------------

    def set_view(self, view: MapView) -> None:
        self.view = view

    def project(self, lon: float, lat: float) -> ScreenPoint:
        return self.view.project(lon, lat)

    def unproject(self, point: ScreenPoint) -> tuple[float, float]:
        return self.view.unproject(point)

    # --- queries --------------------------------------------------------------

    def is_rendered(self, layer: LayerSpec) -> bool:
        if layer.visibility == "none":
            return False
        if layer.maxzoom is not None and self.view.zoom >= layer.maxzoom:
            return False
        return True

    def rendered_features(self, layer_id: str) -> list[PointFeature]:
        """Features of a layer that pass its filter, in drawing order."""
        layer = self.get_layer(layer_id)
        if not self.is_rendered(layer):
            return []
        return [
            f
            for f in self._sources.get(layer.source, [])
            if eval_filter(layer.filter, f.props)
        ]

    def query_rendered_features(
        self, geometry: ScreenPoint | ScreenRect, *, layers: list[str]
    ) -> list[RenderedFeature]:
        """
        Features rendered at a pixel or inside a pixel box, top-most first.

        A box matches features whose center falls inside it; a pixel matches circles
        whose painted radius covers it.
        """
        out: list[RenderedFeature] = []
        for layer in reversed(self.layers()):
            if layer.id not in layers:
                continue
            for f in reversed(self.rendered_features(layer.id)):
                screen = self.project(f.lon, f.lat)
                if isinstance(geometry, ScreenRect):
                    hit = geometry.contains(screen)
                else:
                    hit = _within_radius(layer, f, screen, geometry)
                if hit:
                    out.append(
                        RenderedFeature(
                            layer_id=layer.id,
                            lon=f.lon,
                            lat=f.lat,
                            props=f.props,
                            screen=screen,
                        )
                    )
        return out

    # --- interaction handlers ---------------------------------------------------

    def enable_drag_pan(self) -> None:
        self.drag_pan_enabled = True

    def disable_drag_pan(self) -> None:
        self.drag_pan_enabled = False

    def disable_box_zoom(self) -> None:
        self.box_zoom_enabled = False

    def add_control(self, name: str) -> None:
        if name not in self.controls:
            self.controls.append(name)

    # --- DOM-like overlays ------------------------------------------------------

    def create_overlay(self, class_name: str) -> OverlayElement:
        el = OverlayElement(class_name=class_name)
        self.overlays.append(el)
        return el

    def remove_overlay(self, element: OverlayElement) -> None:
        element.attached = False
        self.overlays = [e for e in self.overlays if e is not element]

    def add_popup(
        self, lon: float, lat: float, html: str, *, offset: tuple[float, float]
    ) -> Popup:
        popup = Popup(lon=lon, lat=lat, html=html, offset=offset)
        self.popups = [*self.open_popups(), popup]
        return popup

    def open_popups(self) -> list[Popup]:
        return [p for p in self.popups if p.open]

    def set_cursor(self, cursor: str) -> None:
        self.cursor = cursor

    # --- events -----------------------------------------------------------------

    def on(self, event_type: str, handler: EventHandler, *, layer_id: str | None = None) -> None:
        self._handlers.setdefault((event_type, layer_id), []).append(handler)

    def off(self, event_type: str, handler: EventHandler, *, layer_id: str | None = None) -> None:
        handlers = self._handlers.get((event_type, layer_id))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def listener_count(self, event_type: str, *, layer_id: str | None = None) -> int:
        return len(self._handlers.get((event_type, layer_id), []))

    def fire(self, event: MapEvent) -> None:
        """
        Dispatch a client event to registered handlers.

        Pointer moves also drive mouseenter/mouseleave for layers that listen for them.
        """
        # Copy: handlers may deregister themselves while running.
        for handler in list(self._handlers.get((event.type, None), [])):
            handler(event)
        if event.type == "mousemove":
            self._dispatch_hover(event)

    def _dispatch_hover(self, event: MapEvent) -> None:
        layer_ids = sorted(
            {lid for (etype, lid) in self._handlers if etype in _HOVER_EVENTS and lid}
        )
        for layer_id in layer_ids:
            feats = self.query_rendered_features(event.point, layers=[layer_id])
            was_hovered = self._hovered.get(layer_id, False)
            if feats and not was_hovered:
                self._hovered[layer_id] = True
                self._emit_layer("mouseenter", layer_id, event, tuple(feats))
            elif not feats and was_hovered:
                self._hovered[layer_id] = False
                self._emit_layer("mouseleave", layer_id, event, ())

    def _emit_layer(
        self,
        event_type: str,
        layer_id: str,
        source: MapEvent,
        features: tuple[RenderedFeature, ...],
    ) -> None:
        ev = MapEvent(
            type=event_type,
            x=source.x,
            y=source.y,
            button=source.button,
            shift_key=source.shift_key,
            alt_key=source.alt_key,
            ctrl_key=source.ctrl_key,
            meta_key=source.meta_key,
            features=features,
        )
        for handler in list(self._handlers.get((event_type, layer_id), [])):
            handler(ev)


def _within_radius(
    layer: LayerSpec, feature: PointFeature, screen: ScreenPoint, p: ScreenPoint
) -> bool:
    radius = 0.0
    if layer.type == "circle":
        fn = layer.paint.get("circle-radius", 5.0)
        prop = fn.get("property") if isinstance(fn, dict) else None
        value = feature.props.get(prop) if prop else None
        radius = float(eval_stops(fn, value) or 0.0)
        radius += float(layer.paint.get("circle-stroke-width", 0) or 0)
    dx = screen.x - p.x
    dy = screen.y - p.y
    return (dx * dx + dy * dy) ** 0.5 <= radius + HIT_TOLERANCE_PX
