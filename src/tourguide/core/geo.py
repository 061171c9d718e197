from __future__ import annotations
from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Any, Mapping

"""
Geospatial helpers.

One Haversine distance shared by the catalog, the proximity engine and the ranker,
plus the bounding-box check used at every public entry point taking raw lat/lon.
"""

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    """An inclusive rectangular lat/lon region."""

    south: float
    west: float
    north: float
    east: float

    def describe(self) -> str:
        return f"{self.south}-{self.north}°N, {self.west}-{self.east}°E"


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in meters between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * asin(sqrt(h))


def as_geo_point(value: Any) -> GeoPoint:
    """Coerce positions, attractions, mappings or (lat, lon) tuples into a `GeoPoint`."""
    if isinstance(value, GeoPoint):
        return value
    if hasattr(value, "latitude") and hasattr(value, "longitude"):
        return GeoPoint(lat=float(value.latitude), lon=float(value.longitude))
    if isinstance(value, Mapping):
        lat = value.get("lat", value.get("latitude"))
        lon = value.get("lon", value.get("lng", value.get("longitude")))
        return GeoPoint(lat=float(lat), lon=float(lon))
    if hasattr(value, "lat"):
        lon = getattr(value, "lon", None)
        if lon is None:
            lon = getattr(value, "lng")
        return GeoPoint(lat=float(value.lat), lon=float(lon))
    lat, lon = value
    return GeoPoint(lat=float(lat), lon=float(lon))


def is_raw_coordinates(value: Any) -> bool:
    """True for a bare (lat, lon) pair or a lat/lon mapping, as opposed to a typed point."""
    return isinstance(value, (tuple, list, Mapping))


def distance_m(a: Any, b: Any) -> float:
    """Distance in meters between any two coordinate-like values.

    NaN coordinates propagate to a NaN distance; callers validate upstream.
    """
    return haversine_m(as_geo_point(a), as_geo_point(b))


def is_within_bounds(lat: float, lon: float, bounds: BoundingBox) -> bool:
    """Inclusive bounds check (NaN is never within bounds)."""
    return bounds.south <= lat <= bounds.north and bounds.west <= lon <= bounds.east


def format_distance(meters: float) -> str:
    """Render a distance the way the guide speaks it (`640m`, `1.2km`)."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"
