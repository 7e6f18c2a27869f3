from __future__ import annotations

import math
from typing import Any

# Six-stop heatmap ramp over heatmap-density [0, 1]. The 0-stop is transparent
# so sparse areas blur out instead of painting the whole map.
HEATMAP_COLOR_RAMP: tuple[tuple[float, str], ...] = (
    (0.0, "rgba(33,102,172,0)"),
    (0.2, "rgb(103,169,207)"),
    (0.4, "rgb(209,229,240)"),
    (0.6, "rgb(253,219,199)"),
    (0.8, "rgb(239,138,98)"),
    (1.0, "rgb(178,24,43)"),
)

PRICE_COLOR_LOW = "#fff7ec"
PRICE_COLOR_HIGH = "#7f0000"


def zoom_stops(stops: list[tuple[float, float]], *, default: float | None = None) -> dict[str, Any]:
    """Legacy zoom function: `{"stops": [[zoom, value], ...]}`."""
    fn: dict[str, Any] = {"stops": [[float(z), v] for z, v in stops]}
    if default is not None:
        fn["default"] = default
    return fn


def property_stops(
    prop: str,
    stops: list[tuple[float, float]],
    *,
    type: str | None = None,
) -> dict[str, Any]:
    """Legacy property function: `{"property": ..., "stops": [[value, out], ...]}`."""
    fn: dict[str, Any] = {"property": prop, "stops": [[float(x), y] for x, y in stops]}
    if type is not None:
        fn["type"] = type
    return fn


def interpolate_linear(input_expr: list[Any], stops: list[tuple[float, Any]]) -> list[Any]:
    out: list[Any] = ["interpolate", ["linear"], input_expr]
    for x, y in stops:
        out.extend([float(x), y])
    return out


def heatmap_color_expr() -> list[Any]:
    return interpolate_linear(["heatmap-density"], list(HEATMAP_COLOR_RAMP))


def in_filter(prop: str, values: list[str] | tuple[str, ...]) -> list[Any]:
    """
    Legacy membership filter `["in", prop, v1, v2, ...]`.

    With no values it matches nothing.
    """
    return ["in", prop, *values]


def filter_values(expr: list[Any] | None) -> tuple[str, ...]:
    if not expr or expr[0] != "in":
        return ()
    return tuple(str(v) for v in expr[2:])


def eval_filter(expr: list[Any] | None, props: dict[str, Any]) -> bool:
    """
    Evaluate the subset of filters this app declares. No filter means "everything".
    """
    if expr is None:
        return True
    op = expr[0] if expr else None
    if op == "in" and len(expr) >= 2:
        return props.get(expr[1]) in expr[2:]
    raise ValueError(f"Unsupported filter expression: {expr!r}")


def eval_stops(fn: Any, value: float | None) -> Any:
    """
    Evaluate a legacy stops function (or a constant) at `value`.

    Linear between stops (exponential base 1), clamped outside the stop range.
    A missing input falls back to `default`, then to the first stop output.
    """
    if not isinstance(fn, dict):
        return fn
    stops = fn.get("stops") or []
    if not stops:
        return fn.get("default")
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return fn.get("default", stops[0][1])
    base = float(fn.get("base", 1.0))

    x = float(value)
    if x <= stops[0][0]:
        return stops[0][1]
    if x >= stops[-1][0]:
        return stops[-1][1]
    for (x0, y0), (x1, y1) in zip(stops, stops[1:]):
        if x0 <= x <= x1:
            if x1 == x0:
                return y1
            t = _interpolation_factor(x, x0, x1, base)
            return y0 + (y1 - y0) * t
    return stops[-1][1]


def _interpolation_factor(x: float, x0: float, x1: float, base: float) -> float:
    span = x1 - x0
    progress = x - x0
    if base == 1.0:
        return progress / span
    return (base**progress - 1.0) / (base**span - 1.0)
