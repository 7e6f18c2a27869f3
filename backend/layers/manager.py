from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from layers.expressions import (
    PRICE_COLOR_HIGH,
    PRICE_COLOR_LOW,
    filter_values,
    heatmap_color_expr,
    in_filter,
    interpolate_linear,
    property_stops,
    zoom_stops,
)
from layers.features import build_feature_collection
from layers.types import LayerSpec
from listings.stats import Domain, nan_domain
from listings.types import Listing
from surface.types import MapSurface

logger = logging.getLogger(__name__)

SOURCE_ID = "listings"
HEATMAP_LAYER_ID = "listings-heatmap"
CIRCLES_LAYER_ID = "listings-circles"
HIGHLIGHT_LAYER_ID = "listings-circles-highlighted"
KEY_PROPERTY = "listing_url"

HEATMAP_MAXZOOM = 15.0
CIRCLE_RADIUS_PX = (2.0, 10.0)
CIRCLE_OPACITY = 0.8


@dataclass(frozen=True)
class StyleDomains:
    rating: Domain
    price_log: Domain


def style_domains(listings: list[Listing]) -> StyleDomains:
    """
    Rating and log-price domains for radius/color scaling.

    NaN prices are skipped. Empty or single-valued domains are widened so stop
    inputs stay strictly increasing (the client rejects equal stops).
    """
    rating = nan_domain(x.rating for x in listings) or Domain(lo=0.0, hi=1.0)
    price = nan_domain(x.price_log_num for x in listings) or Domain(lo=0.0, hi=1.0)
    return StyleDomains(rating=_widen(rating), price_log=_widen(price))


def heatmap_layer(domains: StyleDomains) -> LayerSpec:
    return LayerSpec(
        id=HEATMAP_LAYER_ID,
        type="heatmap",
        source=SOURCE_ID,
        maxzoom=HEATMAP_MAXZOOM,
        paint={
            # Weight grows with rating.
            "heatmap-weight": property_stops(
                "rating", [(0.0, 0), (max(domains.rating.hi, 1e-9), 1)], type="exponential"
            ),
            # Multiplier on top of the weight, stronger when zoomed in.
            "heatmap-intensity": zoom_stops([(0, 1), (15, 3)]),
            "heatmap-color": heatmap_color_expr(),
            "heatmap-radius": zoom_stops([(0, 2), (15, 20)]),
            # Fade out between z14 and z15 where the circles take over.
            "heatmap-opacity": zoom_stops([(14, 1), (15, 0)], default=1),
        },
    )


def circle_radius(domains: StyleDomains) -> dict[str, Any]:
    lo, hi = CIRCLE_RADIUS_PX
    return property_stops("rating", [(domains.rating.lo, lo), (domains.rating.hi, hi)])


def circles_layer(domains: StyleDomains) -> LayerSpec:
    return LayerSpec(
        id=CIRCLES_LAYER_ID,
        type="circle",
        source=SOURCE_ID,
        paint={
            "circle-radius": circle_radius(domains),
            "circle-color": interpolate_linear(
                ["get", "price_log_num"],
                [
                    (domains.price_log.lo, PRICE_COLOR_LOW),
                    (domains.price_log.hi, PRICE_COLOR_HIGH),
                ],
            ),
            "circle-opacity": CIRCLE_OPACITY,
        },
    )


def highlight_layer(domains: StyleDomains) -> LayerSpec:
    return LayerSpec(
        id=HIGHLIGHT_LAYER_ID,
        type="circle",
        source=SOURCE_ID,
        paint={
            "circle-radius": circle_radius(domains),
            "circle-color": "rgba(255, 255, 255, 0)",
            "circle-stroke-color": PRICE_COLOR_HIGH,
            "circle-stroke-width": 1,
            "circle-opacity": CIRCLE_OPACITY,
        },
        # Nothing highlighted until a selection completes.
        filter=in_filter(KEY_PROPERTY, []),
    )


class RenderLayerManager:
    """
    Owns the listings source and its three layers on a map surface.

    Exactly one of {heatmap, circles + highlight} is visible at a time.
    """

    def __init__(self, surface: MapSurface):
        self.surface = surface
        self.current_layer = CIRCLES_LAYER_ID
        self.domains: StyleDomains | None = None

    def install(self, listings: list[Listing]) -> None:
        self.domains = style_domains(listings)
        self.surface.add_source(
            SOURCE_ID, {"type": "geojson", "data": build_feature_collection(listings)}
        )
        self.surface.add_layer(heatmap_layer(self.domains))
        self.surface.add_layer(circles_layer(self.domains))
        self.surface.add_layer(highlight_layer(self.domains))
        self.show_points()
        logger.info(
            "Installed %d listings (rating %.2f..%.2f, log-price %.3f..%.3f)",
            len(listings),
            self.domains.rating.lo,
            self.domains.rating.hi,
            self.domains.price_log.lo,
            self.domains.price_log.hi,
        )

    def show_points(self) -> None:
        self.surface.set_layout_property(HEATMAP_LAYER_ID, "visibility", "none")
        self.surface.set_layout_property(CIRCLES_LAYER_ID, "visibility", "visible")
        self.surface.set_layout_property(HIGHLIGHT_LAYER_ID, "visibility", "visible")
        self.current_layer = CIRCLES_LAYER_ID

    def show_heatmap(self) -> None:
        self.surface.set_layout_property(HEATMAP_LAYER_ID, "visibility", "visible")
        self.surface.set_layout_property(CIRCLES_LAYER_ID, "visibility", "none")
        self.surface.set_layout_property(HIGHLIGHT_LAYER_ID, "visibility", "none")
        self.current_layer = HEATMAP_LAYER_ID

    def toggle(self) -> str:
        if self.current_layer == HEATMAP_LAYER_ID:
            self.show_points()
        else:
            self.show_heatmap()
        logger.debug("Active layer: %s", self.current_layer)
        return self.current_layer

    def visibility(self) -> dict[str, str]:
        return {
            layer_id: self.surface.get_layer(layer_id).visibility
            for layer_id in (HEATMAP_LAYER_ID, CIRCLES_LAYER_ID, HIGHLIGHT_LAYER_ID)
        }

    def set_highlight(self, urls: list[str] | tuple[str, ...]) -> None:
        # Rebuilt from scratch: the filter always lists exactly the selected keys.
        self.surface.set_filter(HIGHLIGHT_LAYER_ID, in_filter(KEY_PROPERTY, list(urls)))

    def clear_highlight(self) -> None:
        self.set_highlight([])

    def highlight_filter(self) -> list[Any] | None:
        return self.surface.get_filter(HIGHLIGHT_LAYER_ID)

    def highlighted_keys(self) -> tuple[str, ...]:
        return filter_values(self.highlight_filter())


def _widen(d: Domain) -> Domain:
    if d.hi > d.lo:
        return d
    return Domain(lo=d.lo - 0.5, hi=d.hi + 0.5)
