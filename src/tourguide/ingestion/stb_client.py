"""
Tourism-board ingestion client (Singapore Tourism Board map search).

This module is responsible only for:
- validating that a search centre lies inside the operating region,
- calling the attraction search endpoint,
- flattening its GeoJSON-like `features[]` payload into raw attraction records.

Validation, dedupe and storage happen in
`tourguide.catalog.catalog.AttractionCatalog.ingest`.
"""

from __future__ import annotations

import logging
from typing import Any

from tourguide.config.settings import Settings
from tourguide.core.errors import CatalogIngestionError, ValidationError
from tourguide.core.geo import is_within_bounds
from tourguide.core.http import get_json, json_headers
from tourguide.domain.models import GENERAL_CATEGORY

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "A popular attraction in Singapore"
DEFAULT_ADDRESS = "Singapore"

_ADDRESS_FIELDS = (
    "ADDRESSBLOCKHOUSENUMBER",
    "ADDRESSBUILDINGNAME",
    "ADDRESSSTREETNAME",
    "ADDRESSPOSTALCODE",
)


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def transform_feature(feature: dict[str, Any]) -> dict[str, Any]:
    """Flatten one search feature into a raw attraction record."""
    props = feature.get("properties") or {}
    coords = (feature.get("geometry") or {}).get("coordinates") or []
    if len(coords) < 2:
        raise CatalogIngestionError(f"Feature {props.get('NAME')!r} has no coordinates")
    # GeoJSON order is [longitude, latitude].
    longitude, latitude = coords[0], coords[1]

    address_parts = [p for p in (_clean(props.get(k)) for k in _ADDRESS_FIELDS) if p]
    return {
        "source_id": _clean(props.get("UUID") or feature.get("id")),
        "name": _clean(props.get("NAME")),
        "description": _clean(props.get("DESCRIPTION")) or DEFAULT_DESCRIPTION,
        "category": _clean(props.get("CATEGORY")) or GENERAL_CATEGORY,
        "address": ", ".join(address_parts) or DEFAULT_ADDRESS,
        "latitude": latitude,
        "longitude": longitude,
        "image_url": _clean(props.get("PHOTOURL")),
        "rating": props.get("RATING"),
        "website": _clean(props.get("OFFICIALWEBSITE")),
        "opening_hours": _clean(props.get("OPENINGHOURS")),
        "contact_info": _clean(props.get("CONTACT")),
    }


class StbClient:
    """Searches the tourism-board API for attractions around a point."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def search(
        self,
        latitude: float,
        longitude: float,
        *,
        category: str | None = None,
        radius_m: float = 1000,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Return raw attraction records near (latitude, longitude).

        Raises:
            ValidationError: If the centre lies outside the operating region.
            httpx.HTTPError: On transport errors or non-2xx status codes.
            CatalogIngestionError: If the payload is not a feature collection.
        """
        box = self._settings.region.box
        if not is_within_bounds(latitude, longitude, box):
            raise ValidationError(
                f"Coordinates ({latitude}, {longitude}) are outside {self._settings.region.name} bounds. "
                f"Valid range: {box.describe()}"
            )

        cfg = self._settings.ingestion.stb
        params: dict[str, Any] = {
            "lat": latitude,
            "lng": longitude,
            "radius": int(radius_m),
            "limit": int(limit),
        }
        if category:
            params["category"] = category

        logger.info("Searching attractions near lat=%.4f lon=%.4f category=%s", latitude, longitude, category)
        payload = get_json(
            cfg.base_url.rstrip("/") + cfg.search_path,
            params=params,
            headers=json_headers(cfg.api_key),
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )

        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list):
            raise CatalogIngestionError("Attraction search response has no 'features' list")

        records: list[dict[str, Any]] = []
        for feature in features:
            if not isinstance(feature, dict):
                continue
            try:
                records.append(transform_feature(feature))
            except CatalogIngestionError as exc:
                logger.debug("Skipping feature: %s", exc)
        return records
