from __future__ import annotations

import io
import logging
import math
from typing import Literal

import numpy as np
import pandas as pd

from listings.fetch import fetch_text
from listings.types import DatasetError, Listing, LoadedData, StartupError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: tuple[str, ...] = (
    "listing_url",
    "name",
    "price",
    "review_scores_rating",
    "longitude",
    "latitude",
)

DuplicatePolicy = Literal["warn", "error"]


async def load_listing_data(
    token_source: str,
    data_source: str,
    *,
    duplicate_urls: DuplicatePolicy = "warn",
) -> LoadedData:
    """
    Fetch the access token, then the listings table, then parse.

    The dataset fetch does not start until the token is in hand. Any failure is
    fatal for map startup and surfaces as StartupError.
    """
    try:
        token = (await fetch_text(token_source)).strip()
    except Exception as e:
        raise StartupError(f"Access token fetch failed ({token_source}): {e}") from e
    if not token:
        raise StartupError(f"Access token is empty: {token_source}")

    try:
        text = await fetch_text(data_source)
    except Exception as e:
        raise StartupError(f"Dataset fetch failed ({data_source}): {e}") from e

    listings = parse_listings(text, duplicate_urls=duplicate_urls)
    logger.info("Loaded %d listings from %s", len(listings), data_source)
    return LoadedData(token=token, listings=listings)


def parse_listings(text: str, *, duplicate_urls: DuplicatePolicy = "warn") -> list[Listing]:
    # Let pandas infer numeric columns; price stays a string so "$1,250.00" survives.
    df = pd.read_csv(io.StringIO(text), dtype={"price": str, "listing_url": str})
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DatasetError(f"Listings table is missing columns: {', '.join(missing)}")

    df["price_log_num"] = price_log(df["price"])
    df["review_scores_rating"] = pd.to_numeric(df["review_scores_rating"], errors="coerce")
    df["longitude"] = pd.to_numeric(df["longitude"], errors="coerce")
    df["latitude"] = pd.to_numeric(df["latitude"], errors="coerce")

    placeable = df["longitude"].notna() & df["latitude"].notna()
    dropped = int((~placeable).sum())
    if dropped:
        logger.warning("Dropping %d listings without coordinates", dropped)
        df = df[placeable]

    _check_duplicate_urls(df["listing_url"], policy=duplicate_urls)

    out: list[Listing] = []
    for row in df.itertuples(index=False):
        out.append(
            Listing(
                listing_url=str(row.listing_url),
                name=_text(row.name),
                price=_text(row.price),
                price_log_num=float(row.price_log_num),
                rating=_optional_float(row.review_scores_rating),
                longitude=float(row.longitude),
                latitude=float(row.latitude),
            )
        )
    return out


def price_log(prices: pd.Series) -> pd.Series:
    """
    ln(price) after stripping "$" and thousands separators.

    Non-numeric prices become NaN (and stay NaN); zero gives -inf like Math.log.
    """
    cleaned = prices.fillna("").astype(str).str.replace(r"[$,]", "", regex=True)
    numeric = pd.to_numeric(cleaned.str.strip(), errors="coerce").astype(float)
    with np.errstate(divide="ignore", invalid="ignore"):
        return pd.Series(np.log(numeric.to_numpy()), index=prices.index)


def _check_duplicate_urls(urls: pd.Series, *, policy: DuplicatePolicy) -> None:
    dup = urls[urls.duplicated(keep=False)]
    if dup.empty:
        return
    distinct = sorted(set(str(u) for u in dup))
    if policy == "error":
        raise DatasetError(
            f"{len(distinct)} listing_url values are not unique, e.g. {distinct[0]}"
        )
    # Every row is kept; selecting such a URL highlights all of its rows.
    logger.warning(
        "%d listing_url values appear more than once (e.g. %s); keeping all rows",
        len(distinct),
        distinct[0],
    )


def _text(v) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and math.isnan(v):
        return ""
    if v is pd.NA:
        return ""
    return str(v)


def _optional_float(v) -> float | None:
    if v is None or v is pd.NA:
        return None
    f = float(v)
    return None if math.isnan(f) else f
