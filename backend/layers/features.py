from __future__ import annotations

import math
from typing import Any

from layers.types import PointFeature
from listings.types import Listing

# Properties carried by every feature of the listings source.
FEATURE_PROPERTIES: tuple[str, ...] = (
    "listing_url",
    "name",
    "price",
    "price_log_num",
    "rating",
)


def listing_properties(listing: Listing) -> dict[str, Any]:
    return {
        "listing_url": listing.listing_url,
        "name": listing.name,
        "price": listing.price,
        "price_log_num": _json_number(listing.price_log_num),
        "rating": _json_number(listing.rating),
    }


def build_feature_collection(listings: list[Listing]) -> dict[str, Any]:
    """
    Project listings into a GeoJSON FeatureCollection, one Point per listing.

    No filtering and no deduplication: rows sharing a URL stay separate features.
    """
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [listing.longitude, listing.latitude],
                },
                "properties": listing_properties(listing),
            }
            for listing in listings
        ],
    }


def points_from_collection(collection: dict[str, Any]) -> list[PointFeature]:
    out: list[PointFeature] = []
    for feature in collection.get("features") or []:
        geom = (feature or {}).get("geometry") or {}
        if geom.get("type") != "Point":
            continue
        coords = geom.get("coordinates") or []
        if len(coords) < 2:
            continue
        props = dict((feature or {}).get("properties") or {})
        out.append(
            PointFeature(
                id=str(props.get("listing_url") or ""),
                lon=float(coords[0]),
                lat=float(coords[1]),
                props=props,
            )
        )
    return out


def _json_number(v: float | None) -> float | None:
    # NaN/inf are not valid JSON; the client treats null as "no value".
    if v is None or not math.isfinite(v):
        return None
    return float(v)
