from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Listing:
    """
    One row of the listings table.

    `price` is kept verbatim (e.g. "$1,250.00") for display; `price_log_num` is
    ln(price) and NaN when the price is not a positive number.
    """

    listing_url: str
    name: str
    price: str
    price_log_num: float
    rating: float | None
    longitude: float
    latitude: float


@dataclass(frozen=True)
class LoadedData:
    token: str
    listings: list[Listing]


class StartupError(RuntimeError):
    """Token or dataset could not be fetched; the map must not initialize."""


class DatasetError(ValueError):
    """The listings table does not have the expected shape."""
