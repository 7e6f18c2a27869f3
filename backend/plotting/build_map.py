from __future__ import annotations

from typing import Any

from layers.expressions import eval_filter, filter_values
from layers.manager import (
    CIRCLES_LAYER_ID,
    HEATMAP_LAYER_ID,
    HIGHLIGHT_LAYER_ID,
    StyleDomains,
)
from plotting.traces import (
    rect_corners,
    trace_circles,
    trace_heatmap,
    trace_highlight,
    trace_selection_box,
)
from selection.engine import SelectionController
from surface.memory import InMemoryMapSurface

# Plotly's token-free fallback when no Mapbox token is configured.
FALLBACK_STYLE = "carto-positron"


def build_map_plot(
    surface: InMemoryMapSurface,
    *,
    domains: StyleDomains,
    style: str,
    access_token: str | None = None,
    selection: SelectionController | None = None,
) -> dict[str, Any]:
    view = surface.view
    heatmap = surface.get_layer(HEATMAP_LAYER_ID)
    circles = surface.get_layer(CIRCLES_LAYER_ID)
    highlight = surface.get_layer(HIGHLIGHT_LAYER_ID)
    points = surface.source_features(circles.source)
    highlighted = [p for p in points if eval_filter(highlight.filter, p.props)]

    traces: list[dict[str, Any]] = [
        trace_heatmap(
            heatmap, points, zoom=view.zoom, visible=surface.is_rendered(heatmap)
        ),
        # Rings first so the circles paint over their centers.
        trace_highlight(highlight, highlighted, visible=surface.is_rendered(highlight)),
        trace_circles(
            circles,
            points,
            price_domain=(domains.price_log.lo, domains.price_log.hi),
            visible=surface.is_rendered(circles),
        ),
    ]

    rect = selection.state.rect() if selection is not None else None
    if rect is not None and selection is not None and selection.box is not None:
        corners = [surface.unproject(p) for p in rect_corners(rect)]
        traces.append(trace_selection_box(corners))

    mapbox: dict[str, Any] = {
        "center": {"lat": view.center_lat, "lon": view.center_lon},
        "zoom": view.zoom,
        "style": style if access_token else FALLBACK_STYLE,
    }
    if access_token:
        mapbox["accesstoken"] = access_token

    meta: dict[str, Any] = {
        "visibility": {layer.id: layer.visibility for layer in (heatmap, circles, highlight)},
        "highlight": {
            "layerId": HIGHLIGHT_LAYER_ID,
            "filter": highlight.filter,
            "featureIds": list(filter_values(highlight.filter)),
        },
        "stats": {
            "listings": len(points),
            "renderedPoints": len(surface.rendered_features(CIRCLES_LAYER_ID)),
            "highlightRequested": len(filter_values(highlight.filter)),
            "highlightRendered": len(surface.rendered_features(HIGHLIGHT_LAYER_ID)),
        },
    }
    if selection is not None:
        meta["selection"] = {
            "phase": selection.state.phase.value,
            "selected": list(selection.selected),
            "warning": selection.warning,
        }

    return {
        "data": traces,
        "layout": {
            "mapbox": mapbox,
            # The client pans unless a box selection has taken over the drag.
            "dragmode": "pan" if surface.drag_pan_enabled else False,
            "showlegend": True,
            "legend": {
                "x": 0.99,
                "y": 0.99,
                "xanchor": "right",
                "yanchor": "top",
                "bgcolor": "rgba(255, 255, 255, 0.75)",
                "bordercolor": "rgba(120, 120, 120, 0.35)",
                "borderwidth": 1,
                "font": {"size": 11},
            },
            "margin": {"l": 0, "r": 0, "t": 0, "b": 0},
            "meta": meta,
        },
    }
