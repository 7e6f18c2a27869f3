from __future__ import annotations

import html
from typing import Any

from layers.manager import CIRCLES_LAYER_ID
from surface.types import MapEvent, MapSurface, Popup

POPUP_OFFSET = (0.0, -15.0)


def tooltip_html(props: dict[str, Any]) -> str:
    name = html.escape(str(props.get("name") or ""))
    # Prices arrive as "$1,250.00"; the label supplies its own currency sign.
    price = html.escape(str(props.get("price") or "").lstrip("$"))
    rating = props.get("rating")
    rating_s = html.escape("" if rating is None else f"{rating:g}")
    return f"<h3>{name}</h3><p>Price: ${price}</p><p>Rating: {rating_s}</p>"


class TooltipController:
    """
    Popup for the listing under the pointer.

    The popup handle is optional: a leave without a prior enter is a no-op.
    """

    def __init__(self, surface: MapSurface, *, layer_id: str = CIRCLES_LAYER_ID):
        self.surface = surface
        self.layer_id = layer_id
        self.popup: Popup | None = None

    def install(self) -> None:
        self.surface.on("mouseenter", self.on_enter, layer_id=self.layer_id)
        self.surface.on("mouseleave", self.on_leave, layer_id=self.layer_id)

    def on_enter(self, e: MapEvent) -> None:
        features = self.surface.query_rendered_features(e.point, layers=[self.layer_id])
        if not features:
            return
        feature = features[0]
        self._remove_popup()
        self.surface.set_cursor("pointer")
        self.popup = self.surface.add_popup(
            feature.lon, feature.lat, tooltip_html(feature.props), offset=POPUP_OFFSET
        )

    def on_leave(self, e: MapEvent) -> None:
        self.surface.set_cursor("")
        self._remove_popup()

    def _remove_popup(self) -> None:
        if self.popup is not None:
            self.popup.remove()
            self.popup = None
