from __future__ import annotations

from layers.manager import RenderLayerManager
from surface.memory import InMemoryMapSurface
from surface.types import MapEvent
from tooltip.controller import POPUP_OFFSET, TooltipController, tooltip_html


def _setup(view, listings):
    surface = InMemoryMapSurface(view=view)
    layers = RenderLayerManager(surface)
    layers.install(listings)
    tooltip = TooltipController(surface)
    tooltip.install()
    return surface, layers, tooltip


def test_tooltip_html_escapes_and_formats():
    html = tooltip_html({"name": "<b>Loft</b>", "price": "$1,250.00", "rating": 97.0})
    assert html == (
        "<h3>&lt;b&gt;Loft&lt;/b&gt;</h3><p>Price: $1,250.00</p><p>Rating: 97</p>"
    )


def test_tooltip_html_blank_rating():
    assert "<p>Rating: </p>" in tooltip_html({"name": "Room", "price": "$80.00"})


def test_hover_opens_single_popup_at_listing(view, listing_at):
    a = listing_at("a", 200, 200, name="Loft")
    surface, _, tooltip = _setup(view, [a, listing_at("b", 400, 400)])

    surface.fire(MapEvent("mousemove", x=201, y=200))
    popups = surface.open_popups()
    assert len(popups) == 1
    assert (popups[0].lon, popups[0].lat) == (a.longitude, a.latitude)
    assert popups[0].offset == POPUP_OFFSET
    assert "<h3>Loft</h3>" in popups[0].html
    assert surface.cursor == "pointer"

    # Moving within the same circle does not stack popups.
    surface.fire(MapEvent("mousemove", x=200, y=201))
    assert len(surface.open_popups()) == 1


def test_leave_closes_popup_and_resets_cursor(view, listing_at):
    surface, _, tooltip = _setup(view, [listing_at("a", 200, 200)])
    surface.fire(MapEvent("mousemove", x=200, y=200))
    surface.fire(MapEvent("mousemove", x=300, y=300))
    assert surface.open_popups() == []
    assert tooltip.popup is None
    assert surface.cursor == ""


def test_leave_without_popup_is_a_noop(view, listing_at):
    surface, _, tooltip = _setup(view, [listing_at("a", 200, 200)])
    tooltip.on_leave(MapEvent("mouseleave", x=0, y=0))
    tooltip.on_leave(MapEvent("mouseleave", x=0, y=0))
    assert tooltip.popup is None
    assert surface.open_popups() == []


def test_overlapping_listings_show_top_most(view, listing_at):
    surface, _, _ = _setup(
        view,
        [listing_at("under", 200, 200, name="Under"), listing_at("over", 200, 200, name="Over")],
    )
    surface.fire(MapEvent("mousemove", x=200, y=200))
    assert "<h3>Over</h3>" in surface.open_popups()[0].html


def test_no_popup_over_hidden_circles(view, listing_at):
    surface, layers, _ = _setup(view, [listing_at("a", 200, 200)])
    layers.show_heatmap()
    surface.fire(MapEvent("mousemove", x=200, y=200))
    assert surface.open_popups() == []
