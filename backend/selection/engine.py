from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Literal

from geo.ops import Area, areas_bbox, covers_lon_lat, polygons_from_geojson
from geo.projection import ScreenRect
from layers.manager import CIRCLES_LAYER_ID, KEY_PROPERTY, RenderLayerManager
from selection.machine import (
    IDLE,
    AttachGestureListeners,
    ClearHighlight,
    CreateBox,
    DetachGestureListeners,
    DisablePan,
    DrawCreate,
    DrawDelete,
    DrawModeChange,
    DrawUpdate,
    Effect,
    EnablePan,
    KeyDown,
    MoveBox,
    PointerDown,
    PointerMove,
    PointerUp,
    RemoveBox,
    ResolveAreas,
    ResolveRectangle,
    SelectionEvent,
    SelectionState,
    settle,
    transition,
)
from surface.types import MapEvent, MapSurface, OverlayElement, RenderedFeature

logger = logging.getLogger(__name__)

# Box selections at or above this many rendered features are rejected to keep the UI responsive.
SELECTION_FEATURE_CEILING = 1000
BOX_CLASS_NAME = "boxdraw"

SelectionKind = Literal["rectangle", "polygon", "reset"]
SelectionResult = Literal["selected", "rejected", "cleared"]


@dataclass(frozen=True)
class SelectionOutcome:
    kind: SelectionKind
    result: SelectionResult
    matched: int
    selected: int
    elapsed_ms: float
    warning: str | None = None


class SelectionController:
    """
    Region selection over the listings circles.

    Feeds client events through the pure `transition()` and performs the emitted
    effects on the map surface. Side effects stay within the drag-box overlay, the
    pan handler and the highlight filter.
    """

    def __init__(
        self,
        surface: MapSurface,
        layers: RenderLayerManager,
        *,
        max_features: int = SELECTION_FEATURE_CEILING,
        modifier: str = "shift",
        overload_message: str = "Select a smaller number of features",
        on_outcome: Callable[[SelectionOutcome], None] | None = None,
    ):
        self.surface = surface
        self.layers = layers
        self.max_features = int(max_features)
        self.modifier = modifier
        self.overload_message = overload_message
        self.on_outcome = on_outcome

        self.state: SelectionState = IDLE
        self.selected: tuple[str, ...] = ()
        self.warning: str | None = None
        self.last_outcome: SelectionOutcome | None = None
        self._box: OverlayElement | None = None

    def install(self) -> None:
        # Box-zoom shares the modifier-drag gesture; selection takes it over.
        self.surface.disable_box_zoom()
        self.surface.on("mousedown", self._on_mouse_down)

    @property
    def box(self) -> OverlayElement | None:
        return self._box

    # --- event entry points -----------------------------------------------------

    def handle(self, event: SelectionEvent) -> SelectionState:
        t = transition(self.state, event)
        if t.state.phase != self.state.phase:
            logger.debug("Selection %s -> %s", self.state.phase.value, t.state.phase.value)
        if t.effects and isinstance(event, (PointerDown, DrawCreate, DrawUpdate)):
            self.warning = None
        self.state = t.state
        for effect in t.effects:
            self._apply(effect)
        if t.cancelled:
            logger.info("Box selection cancelled")
        self.state = settle(self.state)
        return self.state

    def handle_draw_event(
        self,
        event_type: str,
        *,
        features: list[dict[str, Any]] | None = None,
        mode: str | None = None,
    ) -> SelectionState:
        """
        Translate a draw-control event (`draw.create`, `draw.update`, `draw.delete`,
        `draw.modechange`) into a selection event.
        """
        if event_type in {"draw.create", "draw.update"}:
            areas = tuple(polygons_from_geojson(features or []))
            ev: SelectionEvent = (
                DrawCreate(areas) if event_type == "draw.create" else DrawUpdate(areas)
            )
        elif event_type == "draw.delete":
            ev = DrawDelete()
        elif event_type == "draw.modechange":
            ev = DrawModeChange(mode or "")
        else:
            raise ValueError(f"Unknown draw event: {event_type}")
        return self.handle(ev)

    def _on_mouse_down(self, e: MapEvent) -> None:
        self.handle(PointerDown(e.point, button=e.button, modifier=e.modifier(self.modifier)))

    def _on_mouse_move(self, e: MapEvent) -> None:
        self.handle(PointerMove(e.point))

    def _on_mouse_up(self, e: MapEvent) -> None:
        self.handle(PointerUp(e.point))

    def _on_key_down(self, e: MapEvent) -> None:
        self.handle(KeyDown(e.key or ""))

    # --- effects --------------------------------------------------------------

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, DisablePan):
            self.surface.disable_drag_pan()
        elif isinstance(effect, EnablePan):
            self.surface.enable_drag_pan()
        elif isinstance(effect, AttachGestureListeners):
            self.surface.on("mousemove", self._on_mouse_move)
            self.surface.on("mouseup", self._on_mouse_up)
            self.surface.on("keydown", self._on_key_down)
        elif isinstance(effect, DetachGestureListeners):
            self.surface.off("mousemove", self._on_mouse_move)
            self.surface.off("mouseup", self._on_mouse_up)
            self.surface.off("keydown", self._on_key_down)
        elif isinstance(effect, CreateBox):
            if self._box is None:
                self._box = self.surface.create_overlay(BOX_CLASS_NAME)
        elif isinstance(effect, MoveBox):
            if self._box is not None:
                _place_box(self._box, effect.rect)
        elif isinstance(effect, RemoveBox):
            if self._box is not None:
                self.surface.remove_overlay(self._box)
                self._box = None
        elif isinstance(effect, ResolveRectangle):
            self.resolve_rectangle(effect.rect)
        elif isinstance(effect, ResolveAreas):
            self.resolve_areas(list(effect.areas))
        elif isinstance(effect, ClearHighlight):
            self._commit([])
            self._report(SelectionOutcome("reset", "cleared", 0, 0, 0.0))
        else:
            raise TypeError(f"Unknown selection effect: {effect!r}")

    # --- resolution -------------------------------------------------------------

    def resolve_rectangle(self, rect: ScreenRect) -> SelectionOutcome:
        t0 = time.perf_counter()
        features = self.surface.query_rendered_features(rect, layers=[CIRCLES_LAYER_ID])
        if len(features) >= self.max_features:
            self.warning = self.overload_message
            logger.warning(
                "Box selection rejected: %d features (limit %d)",
                len(features),
                self.max_features,
            )
            return self._report(
                SelectionOutcome(
                    "rectangle",
                    "rejected",
                    len(features),
                    len(self.selected),
                    _elapsed_ms(t0),
                    warning=self.overload_message,
                )
            )

        keys = _keys(features)
        self._commit(keys)
        return self._report(
            SelectionOutcome("rectangle", "selected", len(features), len(keys), _elapsed_ms(t0))
        )

    def resolve_areas(self, areas: list[Area]) -> SelectionOutcome:
        """
        Two-phase polygon query: rendered features inside the screen projection of the
        polygons' bbox, then an exact point-in-polygon test on each candidate.
        """
        t0 = time.perf_counter()
        bbox = areas_bbox(areas)
        if bbox is None:
            self._commit([])
            return self._report(SelectionOutcome("polygon", "selected", 0, 0, _elapsed_ms(t0)))

        sw = self.surface.project(*bbox.south_west())
        ne = self.surface.project(*bbox.north_east())
        candidates = self.surface.query_rendered_features(
            ScreenRect(sw, ne).normalized(), layers=[CIRCLES_LAYER_ID]
        )
        inside = [
            f for f in candidates if any(covers_lon_lat(a, f.lon, f.lat) for a in areas)
        ]
        keys = _keys(inside)
        self._commit(keys)
        return self._report(
            SelectionOutcome("polygon", "selected", len(candidates), len(keys), _elapsed_ms(t0))
        )

    def _commit(self, keys: list[str]) -> None:
        self.selected = tuple(keys)
        self.layers.set_highlight(self.selected)

    def _report(self, outcome: SelectionOutcome) -> SelectionOutcome:
        self.last_outcome = outcome
        if outcome.result == "selected":
            logger.info(
                "%s selection: %d matched, %d highlighted",
                outcome.kind.capitalize(),
                outcome.matched,
                outcome.selected,
            )
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome


def _keys(features: list[RenderedFeature]) -> list[str]:
    return [str(f.props.get(KEY_PROPERTY)) for f in features]


def _place_box(box: OverlayElement, rect: ScreenRect) -> None:
    r = rect.normalized()
    box.style["transform"] = f"translate({r.a.x:g}px, {r.a.y:g}px)"
    box.style["width"] = f"{r.width:g}px"
    box.style["height"] = f"{r.height:g}px"


def _elapsed_ms(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000.0
