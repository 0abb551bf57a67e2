from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import numpy as np
import pandas as pd

from .models import MapBounds, Restaurant

logger = logging.getLogger(__name__)

_BUNDLED_CSV = Path(__file__).resolve().parent / "data" / "restaurants.csv"

EARTH_RADIUS_M = 6_371_000.0

# Used when a search has neither map bounds nor a user position
DEFAULT_CENTER = (49.409445, 8.693886)

_TEXT_COLUMNS = ["name", "brand", "cuisine", "amenity", "street", "housenumber", "postcode", "city"]


@dataclass(frozen=True)
class SearchConfig:
    provider: str = "catalog"
    catalog_path: Path = field(default=_BUNDLED_CSV)
    result_limit: int = 50


class RestaurantSearchService(Protocol):
    def search_restaurants(
        self,
        query: str,
        bounds: MapBounds | None,
        user_lat: float | None = None,
        user_lon: float | None = None,
    ) -> list[Restaurant]: ...

    def nearby_restaurants(self, lat: float, lon: float, radius_m: int = 1000) -> list[Restaurant]: ...

    def restaurants_in_bounds(self, bounds: MapBounds) -> list[Restaurant]: ...


def haversine_m(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Great-circle distance in metres from one point to many."""
    phi1 = np.radians(lat)
    phi2 = np.radians(lats)
    dphi = phi2 - phi1
    dlmb = np.radians(lons) - np.radians(lon)
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(a))


def _format_address(row: pd.Series) -> str:
    street = " ".join(p for p in (row["street"], row["housenumber"]) if p)
    locality = " ".join(p for p in (row["postcode"], row["city"]) if p)
    address = ", ".join(p for p in (street, locality) if p)
    return address or "No address available"


def _load(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype={c: str for c in _TEXT_COLUMNS})
    for column in _TEXT_COLUMNS:
        df[column] = df[column].fillna("").str.strip()

    # Lowercased search haystack: name, brand and cuisine tags
    df["search_text"] = (
        df["name"] + " " + df["brand"] + " " + df["cuisine"].str.replace(";", " ", regex=False)
    ).str.lower()
    df["address"] = df.apply(_format_address, axis=1)
    return df


class CatalogSearchService:
    """Restaurant lookups over a CSV catalog held in memory."""

    def __init__(self, catalog_path: Path = _BUNDLED_CSV, result_limit: int = 50) -> None:
        self._path = catalog_path
        self._limit = result_limit
        self._df: pd.DataFrame | None = None

    @property
    def dataframe(self) -> pd.DataFrame:
        if self._df is None:
            self._df = _load(self._path)
            logger.info("Loaded %d restaurants from %s", len(self._df), self._path)
        return self._df

    def _in_bounds(self, df: pd.DataFrame, bounds: MapBounds) -> pd.Series:
        return df["lat"].between(bounds.lat_south, bounds.lat_north) & df["lon"].between(
            bounds.lon_west, bounds.lon_east
        )

    def _to_restaurants(self, df: pd.DataFrame) -> list[Restaurant]:
        return [
            Restaurant(
                id=int(row["id"]),
                name=row["name"],
                latitude=float(row["lat"]),
                longitude=float(row["lon"]),
                address=row["address"],
                amenity_type=row["amenity"] or "restaurant",
            )
            for _, row in df.head(self._limit).iterrows()
        ]

    def search_restaurants(
        self,
        query: str,
        bounds: MapBounds | None,
        user_lat: float | None = None,
        user_lon: float | None = None,
    ) -> list[Restaurant]:
        df = self.dataframe
        if bounds is None:
            center = (user_lat, user_lon) if user_lat is not None and user_lon is not None else DEFAULT_CENTER
            bounds = MapBounds.around(*center)

        mask = self._in_bounds(df, bounds)
        needle = query.strip().lower()
        if needle:
            mask = mask & df["search_text"].str.contains(needle, regex=False)

        candidates = df.loc[mask].copy()
        if user_lat is not None and user_lon is not None and not candidates.empty:
            candidates["_distance"] = haversine_m(
                user_lat, user_lon, candidates["lat"].to_numpy(), candidates["lon"].to_numpy()
            )
            candidates = candidates.sort_values("_distance", kind="stable")
        else:
            candidates = candidates.sort_values("name", kind="stable")

        logger.debug("Search %r matched %d restaurant(s)", query, len(candidates))
        return self._to_restaurants(candidates)

    def nearby_restaurants(self, lat: float, lon: float, radius_m: int = 1000) -> list[Restaurant]:
        df = self.dataframe
        distances = haversine_m(lat, lon, df["lat"].to_numpy(), df["lon"].to_numpy())
        candidates = df.assign(_distance=distances)
        candidates = candidates.loc[candidates["_distance"] <= radius_m]
        return self._to_restaurants(candidates.sort_values("_distance", kind="stable"))

    def restaurants_in_bounds(self, bounds: MapBounds) -> list[Restaurant]:
        df = self.dataframe
        return self._to_restaurants(df.loc[self._in_bounds(df, bounds)])


def create_search_service(config: SearchConfig | None = None) -> RestaurantSearchService:
    config = config or SearchConfig()
    if config.provider == "catalog":
        return CatalogSearchService(config.catalog_path, config.result_limit)
    raise ValueError(f"Unknown search provider: {config.provider}")
