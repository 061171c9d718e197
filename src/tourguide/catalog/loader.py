"""
Attraction record loader.

Raw records arrive from the tourism-board client (snake_case keys) or from older
front-end payloads (camelCase keys such as `imageUrl`). We validate them into typed
Pydantic models so the catalog, proximity engine and ranker can assume a
consistent shape. The built-in fallback dataset is packaged next to this module.
"""

from __future__ import annotations

import json
import re
from importlib import resources
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter

from tourguide.core.errors import ValidationError
from tourguide.core.geo import BoundingBox, is_within_bounds
from tourguide.domain.models import GENERAL_CATEGORY, Attraction

FALLBACK_FILENAME = "fallback_attractions.json"


class RawAttractionRecord(BaseModel):
    """Loose input shape accepted at ingestion."""

    source_id: str | None = Field(default=None, validation_alias=AliasChoices("source_id", "uuid", "id"))
    name: str
    description: str | None = None
    category: str | None = None
    address: str | None = None
    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "lng", "lon"))
    image_url: str | None = Field(default=None, validation_alias=AliasChoices("image_url", "imageUrl", "image"))
    rating: float | None = Field(default=None, ge=0, le=5)
    opening_hours: str | None = Field(default=None, validation_alias=AliasChoices("opening_hours", "openingHours"))
    website: str | None = None
    contact_info: str | None = Field(default=None, validation_alias=AliasChoices("contact_info", "contactInfo"))


_RAW_RECORDS_ADAPTER = TypeAdapter(list[dict[str, Any]])
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def identity_key(name: str, latitude: float, longitude: float, *, precision: int) -> str:
    """Stable identity derived from a name and a rounded coordinate pair."""
    slug = _SLUG_RE.sub("-", name.strip().lower()).strip("-")
    return f"{slug}@{latitude:.{precision}f},{longitude:.{precision}f}"


def parse_record(raw: Mapping[str, Any], *, bounds: BoundingBox, precision: int) -> tuple[str, Attraction]:
    """Validate one raw record; returns (identity key, attraction).

    Raises:
        pydantic.ValidationError: If the record is malformed.
        ValidationError: If its coordinates are outside `bounds`.
    """
    record = RawAttractionRecord.model_validate(dict(raw))
    if not is_within_bounds(record.latitude, record.longitude, bounds):
        raise ValidationError(
            f"{record.name!r} at ({record.latitude}, {record.longitude}) is outside {bounds.describe()}"
        )

    key = identity_key(record.name, record.latitude, record.longitude, precision=precision)
    attraction = Attraction(
        id=record.source_id or key,
        name=record.name,
        description=record.description or "",
        category=record.category or GENERAL_CATEGORY,
        address=record.address or "",
        latitude=record.latitude,
        longitude=record.longitude,
        image_url=record.image_url,
        rating=record.rating,
        opening_hours=record.opening_hours,
        website=record.website,
        contact_info=record.contact_info,
    )
    return key, attraction


def load_fallback_records() -> list[dict[str, Any]]:
    """Load the packaged fallback dataset for the operating region."""
    text = resources.files("tourguide.catalog").joinpath(FALLBACK_FILENAME).read_text(encoding="utf-8")
    return _RAW_RECORDS_ADAPTER.validate_python(json.loads(text))
