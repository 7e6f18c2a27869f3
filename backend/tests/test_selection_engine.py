from __future__ import annotations

import pytest

from geo.projection import ScreenPoint
from layers.manager import RenderLayerManager
from selection.engine import BOX_CLASS_NAME, SelectionController
from selection.machine import Phase
from surface.memory import InMemoryMapSurface
from surface.types import MapEvent


def _setup(view, listings, **kwargs):
    surface = InMemoryMapSurface(view=view)
    layers = RenderLayerManager(surface)
    layers.install(listings)
    outcomes = []
    ctl = SelectionController(surface, layers, on_outcome=outcomes.append, **kwargs)
    ctl.install()
    return surface, layers, ctl, outcomes


def _drag(surface, a, b, *, shift=True):
    surface.fire(MapEvent("mousedown", x=a[0], y=a[1], shift_key=shift))
    surface.fire(MapEvent("mousemove", x=b[0], y=b[1], shift_key=shift))
    surface.fire(MapEvent("mouseup", x=b[0], y=b[1], shift_key=shift))


def _polygon_feature(surface, pixels):
    ring = [list(surface.unproject(ScreenPoint(x, y))) for x, y in pixels]
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {"type": "Polygon", "coordinates": [ring + [ring[0]]]},
    }


def test_install_disables_box_zoom(view, listing_at):
    surface, _, _, _ = _setup(view, [listing_at("a", 10, 10)])
    assert surface.box_zoom_enabled is False


def test_shift_drag_highlights_listings_inside_box(view, listing_at):
    surface, layers, ctl, outcomes = _setup(
        view, [listing_at("a", 10, 10), listing_at("b", 500, 500)]
    )
    _drag(surface, (0, 0), (100, 100))

    assert ctl.selected == ("a",)
    assert layers.highlight_filter() == ["in", "listing_url", "a"]
    assert ctl.state.phase == Phase.idle
    assert surface.overlays == []
    assert surface.drag_pan_enabled is True
    assert outcomes[-1].kind == "rectangle"
    assert outcomes[-1].result == "selected"


def test_drag_in_reverse_direction_selects_the_same(view, listing_at):
    surface, layers, ctl, _ = _setup(
        view, [listing_at("a", 10, 10), listing_at("b", 500, 500)]
    )
    _drag(surface, (100, 100), (0, 0))
    assert ctl.selected == ("a",)


def test_drag_without_shift_does_nothing(view, listing_at):
    surface, layers, ctl, outcomes = _setup(view, [listing_at("a", 10, 10)])
    _drag(surface, (0, 0), (100, 100), shift=False)
    assert ctl.selected == ()
    assert layers.highlight_filter() == ["in", "listing_url"]
    assert outcomes == []


def test_empty_box_sets_empty_filter(view, listing_at):
    surface, layers, ctl, _ = _setup(
        view, [listing_at("a", 10, 10), listing_at("b", 500, 500)]
    )
    _drag(surface, (0, 0), (100, 100))
    _drag(surface, (200, 200), (250, 250))
    assert ctl.selected == ()
    assert layers.highlight_filter() == ["in", "listing_url"]


def test_box_overlay_tracks_the_drag(view, listing_at):
    surface, _, ctl, _ = _setup(view, [listing_at("a", 10, 10)])
    surface.fire(MapEvent("mousedown", x=100, y=100, shift_key=True))
    assert surface.drag_pan_enabled is False
    assert surface.overlays == []

    surface.fire(MapEvent("mousemove", x=40, y=160, shift_key=True))
    assert len(surface.overlays) == 1
    box = surface.overlays[0]
    assert box.class_name == BOX_CLASS_NAME
    assert box.style["transform"] == "translate(40px, 100px)"
    assert box.style["width"] == "60px"
    assert box.style["height"] == "60px"

    surface.fire(MapEvent("mouseup", x=40, y=160, shift_key=True))
    assert surface.overlays == []
    assert box.attached is False


def test_overload_keeps_previous_filter_and_warns(view, listing_at):
    listings = [listing_at("a", 10, 10)] + [
        listing_at(f"crowd-{i}", 300 + (i % 10), 300 + (i // 10)) for i in range(40)
    ]
    surface, layers, ctl, outcomes = _setup(view, listings, max_features=40)
    _drag(surface, (0, 0), (20, 20))
    assert layers.highlight_filter() == ["in", "listing_url", "a"]

    _drag(surface, (290, 290), (320, 320))
    assert layers.highlight_filter() == ["in", "listing_url", "a"]
    assert ctl.warning == "Select a smaller number of features"
    assert outcomes[-1].result == "rejected"
    assert outcomes[-1].matched == 40
    # Pan is restored after a rejected selection too.
    assert surface.drag_pan_enabled is True
    assert ctl.state.phase == Phase.idle


def test_one_below_ceiling_is_accepted(view, listing_at):
    listings = [listing_at(f"p-{i}", 300 + (i % 10), 300 + (i // 10)) for i in range(39)]
    surface, layers, ctl, _ = _setup(view, listings, max_features=40)
    _drag(surface, (290, 290), (320, 320))
    assert len(ctl.selected) == 39
    assert ctl.warning is None


def test_default_ceiling_rejects_a_thousand_features(view, listing_at):
    listings = [
        listing_at(f"p-{i}", 100 + (i % 40) * 5, 100 + (i // 40) * 5) for i in range(1000)
    ]
    surface, layers, ctl, outcomes = _setup(view, listings)
    _drag(surface, (90, 90), (400, 400))
    assert outcomes[-1].result == "rejected"
    assert layers.highlight_filter() == ["in", "listing_url"]


def test_escape_cancels_drag(view, listing_at):
    surface, layers, ctl, outcomes = _setup(view, [listing_at("a", 10, 10)])
    surface.fire(MapEvent("mousedown", x=0, y=0, shift_key=True))
    surface.fire(MapEvent("mousemove", x=100, y=100, shift_key=True))
    surface.fire(MapEvent("keydown", key="Escape"))

    assert surface.overlays == []
    assert layers.highlight_filter() == ["in", "listing_url"]
    assert surface.drag_pan_enabled is True
    assert outcomes == []
    # The release after escape is not a selection.
    surface.fire(MapEvent("mouseup", x=100, y=100, shift_key=True))
    assert ctl.selected == ()


def test_gesture_listeners_do_not_accumulate(view, listing_at):
    surface, _, _, _ = _setup(view, [listing_at("a", 10, 10)])
    for _ in range(5):
        _drag(surface, (0, 0), (100, 100))
    assert surface.listener_count("mousedown") == 1
    assert surface.listener_count("mousemove") == 0
    assert surface.listener_count("mouseup") == 0
    assert surface.listener_count("keydown") == 0


def test_polygon_selection_excludes_bbox_corners(view, listing_at):
    # "c" is inside the triangle's bbox but outside the triangle.
    surface, layers, ctl, outcomes = _setup(
        view,
        [listing_at("in", 110, 180), listing_at("c", 190, 110), listing_at("far", 600, 500)],
    )
    tri = _polygon_feature(surface, [(100, 100), (100, 200), (200, 200)])
    ctl.handle_draw_event("draw.create", features=[tri])

    assert ctl.selected == ("in",)
    assert layers.highlight_filter() == ["in", "listing_url", "in"]
    assert outcomes[-1].kind == "polygon"
    assert outcomes[-1].matched == 2
    assert ctl.state.phase == Phase.idle


def test_polygon_update_replaces_selection(view, listing_at):
    surface, layers, ctl, _ = _setup(
        view, [listing_at("a", 110, 110), listing_at("b", 410, 410)]
    )
    ctl.handle_draw_event(
        "draw.create",
        features=[_polygon_feature(surface, [(100, 100), (100, 150), (150, 150), (150, 100)])],
    )
    assert ctl.selected == ("a",)
    ctl.handle_draw_event(
        "draw.update",
        features=[_polygon_feature(surface, [(400, 400), (400, 450), (450, 450), (450, 400)])],
    )
    assert ctl.selected == ("b",)


def test_polygon_selection_ignores_hidden_circles(view, listing_at):
    surface, layers, ctl, _ = _setup(view, [listing_at("a", 110, 110)])
    layers.show_heatmap()
    ctl.handle_draw_event(
        "draw.create",
        features=[_polygon_feature(surface, [(100, 100), (100, 150), (150, 150), (150, 100)])],
    )
    assert ctl.selected == ()


def test_delete_and_mode_change_reset_highlight(view, listing_at):
    surface, layers, ctl, outcomes = _setup(view, [listing_at("a", 10, 10)])
    _drag(surface, (0, 0), (100, 100))
    assert ctl.selected == ("a",)

    ctl.handle_draw_event("draw.delete")
    assert layers.highlight_filter() == ["in", "listing_url"]
    assert outcomes[-1].kind == "reset"

    _drag(surface, (0, 0), (100, 100))
    ctl.handle_draw_event("draw.modechange", mode="draw_polygon")
    assert ctl.selected == ()
    assert ctl.state.phase == Phase.drawing


def test_unknown_draw_event_is_rejected(view, listing_at):
    _, _, ctl, _ = _setup(view, [listing_at("a", 10, 10)])
    with pytest.raises(ValueError):
        ctl.handle_draw_event("draw.combine")


def test_polygon_tool_phase_survives_selection(view, listing_at):
    surface, layers, ctl, _ = _setup(view, [listing_at("a", 110, 110)])
    ctl.handle_draw_event("draw.modechange", mode="draw_polygon")
    ctl.handle_draw_event(
        "draw.create",
        features=[_polygon_feature(surface, [(100, 100), (100, 150), (150, 150), (150, 100)])],
    )
    assert ctl.selected == ("a",)
    assert ctl.state.phase == Phase.drawing

    _drag(surface, (0, 0), (200, 200))
    assert ctl.state.phase == Phase.drawing
