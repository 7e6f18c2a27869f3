import sys
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so tests can import local modules
# like `layers.*`, `selection.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

from geo.projection import MapView, ScreenPoint  # noqa: E402
from listings.types import Listing  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_telemetry(tmp_path, monkeypatch):
    # Never write into the repo's telemetry file from tests.
    monkeypatch.setenv("LISTMAP_TELEMETRY_PATH", str(tmp_path / "telemetry.duckdb"))
    monkeypatch.setenv("LISTMAP_TELEMETRY", "0")


@pytest.fixture
def view() -> MapView:
    return MapView(center_lon=-71.104081, center_lat=42.365554, zoom=12.0)


@pytest.fixture
def listing_at(view):
    """Build a listing placed at a given canvas pixel of `view`."""

    def make(
        url: str,
        x: float,
        y: float,
        *,
        rating: float | None = 90.0,
        price: str = "$100.00",
        price_log_num: float = 4.605170185988092,
        name: str | None = None,
    ) -> Listing:
        lon, lat = view.unproject(ScreenPoint(x, y))
        return Listing(
            listing_url=url,
            name=name or f"Listing {url}",
            price=price,
            price_log_num=price_log_num,
            rating=rating,
            longitude=lon,
            latitude=lat,
        )

    return make
