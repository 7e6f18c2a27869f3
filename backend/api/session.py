from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from geo.projection import MapView
from layers.manager import SOURCE_ID, RenderLayerManager
from listings.load import load_listing_data
from listings.types import Listing
from mapconfig.registry import dataset_source, token_source
from mapconfig.types import MapConfig
from plotting.build_map import build_map_plot
from selection.engine import SelectionController, SelectionOutcome
from surface.memory import InMemoryMapSurface
from surface.types import MapEvent
from telemetry.singleton import get_store
from tooltip.controller import TooltipController

logger = logging.getLogger(__name__)

NAVIGATION_CONTROL = "navigation"


@dataclass
class MapSession:
    """
    One map with its listings, layers and interaction controllers.

    The process serves a single session. FastAPI runs the sync endpoints on
    worker threads, so every entry point holds `_lock` while it touches the
    surface or the controllers.
    """

    config: MapConfig
    token: str
    listings: list[Listing]
    surface: InMemoryMapSurface
    layers: RenderLayerManager
    selection: SelectionController
    tooltip: TooltipController
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    # --- client events --------------------------------------------------------

    def dispatch(self, event: MapEvent) -> dict[str, Any]:
        with self._lock:
            self.surface.fire(event)
            return self.snapshot()

    def draw(
        self,
        event_type: str,
        *,
        features: list[dict[str, Any]] | None = None,
        mode: str | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            self.selection.handle_draw_event(event_type, features=features, mode=mode)
            return self.snapshot()

    def toggle_layers(self) -> dict[str, Any]:
        with self._lock:
            self.layers.toggle()
            return self.snapshot()

    def set_view(
        self,
        *,
        center_lon: float,
        center_lat: float,
        zoom: float,
        width: int | None = None,
        height: int | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            current = self.surface.view
            self.surface.set_view(
                MapView(
                    center_lon=center_lon,
                    center_lat=center_lat,
                    zoom=zoom,
                    width=int(width or current.width),
                    height=int(height or current.height),
                )
            )
            return self.snapshot()

    # --- payloads ---------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> dict[str, Any]:
        popup = self.tooltip.popup
        box = self.selection.box
        return {
            "phase": self.selection.state.phase.value,
            "selected": list(self.selection.selected),
            "filter": self.layers.highlight_filter(),
            "warning": self.selection.warning,
            "activeLayer": self.layers.current_layer,
            "visibility": self.layers.visibility(),
            "box": dict(box.style) if box is not None else None,
            "popup": (
                {
                    "lon": popup.lon,
                    "lat": popup.lat,
                    "html": popup.html,
                    "offset": list(popup.offset),
                }
                if popup is not None
                else None
            ),
            "cursor": self.surface.cursor,
            "dragPan": self.surface.drag_pan_enabled,
        }

    def style_document(self) -> dict[str, Any]:
        """
        Everything a Mapbox GL client needs to draw the map.
        """
        with self._lock:
            view = self.surface.view
            return {
                "id": self.config.id,
                "title": self.config.title,
                "accessToken": self.token,
                "style": self.config.style,
                "center": [view.center_lon, view.center_lat],
                "zoom": view.zoom,
                "boxZoom": self.surface.box_zoom_enabled,
                "controls": list(self.surface.controls),
                "sources": {SOURCE_ID: self.surface.get_source(SOURCE_ID)},
                "layers": [layer.to_style() for layer in self.surface.layers()],
            }

    def plot(self) -> dict[str, Any]:
        with self._lock:
            if self.layers.domains is None:
                raise RuntimeError("Listing layers are not installed")
            return build_map_plot(
                self.surface,
                domains=self.layers.domains,
                style=self.config.style,
                access_token=self.token,
                selection=self.selection,
            )


async def create_session(config: MapConfig) -> MapSession:
    """
    Load token and listings (in that order), then build the map.

    Nothing touches the map until both fetches have succeeded; StartupError
    propagates to the caller.
    """
    data = await load_listing_data(
        token_source(config),
        dataset_source(config),
        duplicate_urls=config.duplicateUrls,
    )

    view = config.defaultView
    surface = InMemoryMapSurface(
        view=MapView(
            center_lon=view.center.lon,
            center_lat=view.center.lat,
            zoom=view.zoom,
            width=config.viewport.width,
            height=config.viewport.height,
        )
    )
    layers = RenderLayerManager(surface)
    layers.install(data.listings)
    surface.add_control(NAVIGATION_CONTROL)

    tooltip = TooltipController(surface)
    tooltip.install()

    selection = SelectionController(
        surface,
        layers,
        max_features=config.selection.maxFeatures,
        modifier=config.selection.modifier,
        overload_message=config.selection.overloadMessage,
    )
    session = MapSession(
        config=config,
        token=data.token,
        listings=data.listings,
        surface=surface,
        layers=layers,
        selection=selection,
        tooltip=tooltip,
    )
    selection.on_outcome = session_telemetry(session)
    selection.install()
    logger.info("Map '%s' ready with %d listings", config.id, len(data.listings))
    return session


def session_telemetry(session: MapSession):
    def record(outcome: SelectionOutcome) -> None:
        # Best-effort: a telemetry failure never fails a selection.
        try:
            store = get_store()
            if store is None:
                return
            store.record(
                map_id=session.config.id,
                kind=outcome.kind,
                result=outcome.result,
                matched=outcome.matched,
                selected=outcome.selected,
                view_zoom=session.surface.view.zoom,
                stats={
                    "elapsedMs": round(outcome.elapsed_ms, 3),
                    "warning": outcome.warning,
                },
            )
        except Exception:
            logger.exception("Failed to record selection telemetry")

    return record
