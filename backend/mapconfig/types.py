from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class MapCenter(BaseModel):
    lat: float
    lon: float


class MapDefaultView(BaseModel):
    center: MapCenter
    zoom: float = Field(ge=0.0, le=24.0)


class MapViewport(BaseModel):
    # Server-side guess of the client canvas until the client reports its real size.
    width: int = Field(default=900, gt=0)
    height: int = Field(default=600, gt=0)


class MapSources(BaseModel):
    """
    Where the access token and the listings table come from.

    Either repo-relative paths (e.g. `data/access-token`) or http(s) URLs.
    """

    token: str
    dataset: str


ModifierKey = Literal["shift", "alt", "ctrl", "meta"]


class MapSelection(BaseModel):
    # Box selections matching this many rendered features (or more) are rejected.
    maxFeatures: int = Field(default=1000, ge=1, le=1_000_000)
    modifier: ModifierKey = "shift"
    overloadMessage: str = "Select a smaller number of features"


class MapConfig(BaseModel):
    id: str
    title: str
    style: str = "mapbox://styles/mapbox/light-v10"
    defaultView: MapDefaultView
    viewport: MapViewport = Field(default_factory=MapViewport)
    sources: MapSources
    selection: MapSelection = Field(default_factory=MapSelection)
    # What to do with listings sharing one `listing_url`.
    duplicateUrls: Literal["warn", "error"] = "warn"
    enabled: bool = True
