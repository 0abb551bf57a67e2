from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class Restaurant(BaseModel):
    id: int
    name: str
    latitude: float
    longitude: float
    address: str
    amenity_type: str = "restaurant"
    average_rating: float | None = None
    review_count: int = 0


class MapBounds(BaseModel):
    """Visible map area, handed from the map view to the search component."""

    lat_south: float = Field(..., ge=-90.0, le=90.0)
    lon_west: float = Field(..., ge=-180.0, le=180.0)
    lat_north: float = Field(..., ge=-90.0, le=90.0)
    lon_east: float = Field(..., ge=-180.0, le=180.0)

    @model_validator(mode="after")
    def _check_order(self) -> "MapBounds":
        if self.lat_south > self.lat_north:
            raise ValueError("lat_south must not exceed lat_north")
        if self.lon_west > self.lon_east:
            raise ValueError("lon_west must not exceed lon_east")
        return self

    @classmethod
    def around(cls, lat: float, lon: float, delta: float = 0.05) -> "MapBounds":
        return cls(
            lat_south=max(lat - delta, -90.0),
            lon_west=max(lon - delta, -180.0),
            lat_north=min(lat + delta, 90.0),
            lon_east=min(lon + delta, 180.0),
        )

    def contains(self, lat: float, lon: float) -> bool:
        return self.lat_south <= lat <= self.lat_north and self.lon_west <= lon <= self.lon_east
