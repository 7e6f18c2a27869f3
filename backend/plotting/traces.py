from __future__ import annotations

from typing import Any

from geo.projection import ScreenPoint, ScreenRect
from layers.expressions import HEATMAP_COLOR_RAMP, PRICE_COLOR_HIGH, PRICE_COLOR_LOW, eval_stops
from layers.types import LayerSpec, PointFeature


def _customdata(p: PointFeature) -> list[Any]:
    props = p.props or {}
    rating = props.get("rating")
    return [
        str(props.get("listing_url") or ""),
        str(props.get("name") or ""),
        str(props.get("price") or ""),
        "" if rating is None else rating,
    ]


HOVER_TEMPLATE = (
    "<b>%{customdata[1]}</b><br>Price: %{customdata[2]}<br>"
    "Rating: %{customdata[3]}<extra></extra>"
)


def trace_heatmap(
    layer: LayerSpec, points: list[PointFeature], *, zoom: float, visible: bool
) -> dict[str, Any]:
    paint = layer.paint
    weight_fn = paint.get("heatmap-weight")
    intensity = float(eval_stops(paint.get("heatmap-intensity", 1), zoom) or 1.0)
    return {
        "type": "densitymapbox",
        "name": "Listings density",
        "lon": [p.lon for p in points],
        "lat": [p.lat for p in points],
        "z": [
            float(eval_stops(weight_fn, (p.props or {}).get("rating")) or 0.0) * intensity
            for p in points
        ],
        "radius": float(eval_stops(paint.get("heatmap-radius", 30), zoom)),
        "opacity": float(eval_stops(paint.get("heatmap-opacity", 1), zoom)),
        "colorscale": [[stop, color] for stop, color in HEATMAP_COLOR_RAMP],
        "showscale": False,
        "hoverinfo": "skip",
        "visible": visible,
    }


def marker_sizes(layer: LayerSpec, points: list[PointFeature], *, stroke: bool = False) -> list[float]:
    # Plotly marker size is a diameter; Mapbox circle-radius is a radius.
    fn = layer.paint.get("circle-radius", 5)
    extra = float(layer.paint.get("circle-stroke-width", 0) or 0) if stroke else 0.0
    return [
        2.0 * (float(eval_stops(fn, (p.props or {}).get("rating")) or 0.0) + extra)
        for p in points
    ]


def trace_circles(
    layer: LayerSpec,
    points: list[PointFeature],
    *,
    price_domain: tuple[float, float],
    visible: bool,
) -> dict[str, Any]:
    lo, hi = price_domain
    return {
        "type": "scattermapbox",
        "name": "Listings",
        "lon": [p.lon for p in points],
        "lat": [p.lat for p in points],
        "mode": "markers",
        "customdata": [_customdata(p) for p in points],
        "marker": {
            "size": marker_sizes(layer, points),
            # Listings without a numeric price take the low end of the scale.
            "color": [
                lo if (p.props or {}).get("price_log_num") is None else p.props["price_log_num"]
                for p in points
            ],
            "colorscale": [[0.0, PRICE_COLOR_LOW], [1.0, PRICE_COLOR_HIGH]],
            "cmin": lo,
            "cmax": hi,
            "opacity": float(layer.paint.get("circle-opacity", 1.0)),
        },
        "hovertemplate": HOVER_TEMPLATE,
        "visible": visible,
    }


def trace_highlight(
    layer: LayerSpec, points: list[PointFeature], *, visible: bool
) -> dict[str, Any]:
    """
    Selected listings as a ring: a slightly larger stroke-colored marker drawn
    underneath the listing circles (scattermapbox has no marker outline).
    """
    return {
        "type": "scattermapbox",
        "name": "Selected listings",
        "lon": [p.lon for p in points],
        "lat": [p.lat for p in points],
        "mode": "markers",
        "customdata": [_customdata(p) for p in points],
        "marker": {
            "size": marker_sizes(layer, points, stroke=True),
            "color": layer.paint.get("circle-stroke-color") or PRICE_COLOR_HIGH,
            "opacity": float(layer.paint.get("circle-opacity", 1.0)),
        },
        "hoverinfo": "skip",
        "visible": visible,
    }


def trace_selection_box(corners: list[tuple[float, float]]) -> dict[str, Any]:
    lons = [lon for lon, _ in corners] + [corners[0][0]]
    lats = [lat for _, lat in corners] + [corners[0][1]]
    return {
        "type": "scattermapbox",
        "name": "Selection",
        "lon": lons,
        "lat": lats,
        "mode": "lines",
        "fill": "toself",
        "fillcolor": "rgba(56, 135, 190, 0.1)",
        "line": {"color": "rgba(56, 135, 190, 0.9)", "width": 2},
        "hoverinfo": "skip",
        "showlegend": False,
    }


def rect_corners(rect: ScreenRect) -> list[ScreenPoint]:
    r = rect.normalized()
    return [
        ScreenPoint(r.a.x, r.a.y),
        ScreenPoint(r.b.x, r.a.y),
        ScreenPoint(r.b.x, r.b.y),
        ScreenPoint(r.a.x, r.b.y),
    ]
