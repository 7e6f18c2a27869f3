from .memory import InMemoryMapSurface
from .types import MapEvent, MapSurface, OverlayElement, Popup, RenderedFeature

__all__ = [
    "InMemoryMapSurface",
    "MapEvent",
    "MapSurface",
    "OverlayElement",
    "Popup",
    "RenderedFeature",
]
