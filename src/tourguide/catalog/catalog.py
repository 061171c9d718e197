"""
Attraction catalog (in-memory working set).

The catalog holds the attractions for the operating region as one immutable tuple.
Writers (`ingest`, `replace`, `refresh`) build a complete new tuple and swap it in
with a single assignment, so a reader iterating `attractions()` never sees a
half-written set.

Refresh failure semantics:
- the live source is optional; without one the packaged fallback dataset is used
- transport errors, bad payloads and empty results also fall back
- fallback is logged as degraded mode and recorded through the ingestion-metadata
  recorder; it is never raised to callers
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Literal, Mapping, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from tourguide.catalog.loader import load_fallback_records, parse_record
from tourguide.config.settings import Settings, get_settings
from tourguide.core.errors import CatalogIngestionError, ValidationError
from tourguide.core.geo import as_geo_point, distance_m, is_raw_coordinates, is_within_bounds
from tourguide.core.ingestion_meta import record_ingestion_source
from tourguide.core.time import utc_now
from tourguide.domain.models import Attraction, NearbyAttraction

logger = logging.getLogger(__name__)

CatalogMode = Literal["empty", "manual", "live", "fallback"]


class AttractionSource(Protocol):
    """Anything that can search for raw attraction records (see `StbClient`)."""

    def search(
        self,
        latitude: float,
        longitude: float,
        *,
        category: str | None = None,
        radius_m: float = 1000,
        limit: int = 20,
    ) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class IngestReport:
    """Diagnostics for one ingestion pass."""

    received: int = 0
    accepted: int = 0
    out_of_bounds: int = 0
    malformed: int = 0
    duplicates: int = 0
    rejected_names: list[str] = field(default_factory=list)


class AttractionCatalog:
    def __init__(self, settings: Settings | None = None, *, source: AttractionSource | None = None):
        self._settings = settings or get_settings()
        self._source = source
        self._records: tuple[Attraction, ...] = ()
        self._keys: frozenset[str] = frozenset()
        self._ordinals: dict[str, int] = {}
        self._mode: CatalogMode = "empty"
        self._last_report = IngestReport()

    @property
    def mode(self) -> CatalogMode:
        return self._mode

    @property
    def last_report(self) -> IngestReport:
        return self._last_report

    def attractions(self) -> tuple[Attraction, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Attraction]:
        return iter(self._records)

    # Writes

    def _validate(
        self,
        raw_records: Iterable[Mapping[str, Any]],
        *,
        seen: frozenset[str],
        seen_ids: Iterable[str] = (),
    ) -> tuple[list[Attraction], list[str], IngestReport]:
        bounds = self._settings.region.box
        precision = self._settings.catalog.identity_precision
        keys = set(seen)
        ids = set(seen_ids)
        accepted: list[Attraction] = []
        accepted_keys: list[str] = []
        received = out_of_bounds = malformed = duplicates = 0
        rejected: list[str] = []

        for raw in raw_records:
            received += 1
            try:
                key, attraction = parse_record(raw, bounds=bounds, precision=precision)
            except ValidationError as exc:
                out_of_bounds += 1
                rejected.append(str(raw.get("name") or "?"))
                logger.debug("Dropping attraction: %s", exc)
                continue
            except (PydanticValidationError, TypeError, ValueError) as exc:
                malformed += 1
                rejected.append(str(raw.get("name") or "?") if isinstance(raw, Mapping) else "?")
                logger.debug("Dropping malformed attraction record: %s", exc)
                continue
            # Same place, or a different record reusing a source id: first one wins.
            if key in keys or attraction.id in ids:
                duplicates += 1
                logger.debug("Dropping duplicate attraction %r (id %s)", attraction.name, attraction.id)
                continue
            keys.add(key)
            ids.add(attraction.id)
            accepted.append(attraction)
            accepted_keys.append(key)

        report = IngestReport(
            received=received,
            accepted=len(accepted),
            out_of_bounds=out_of_bounds,
            malformed=malformed,
            duplicates=duplicates,
            rejected_names=rejected,
        )
        if out_of_bounds or malformed:
            logger.info(
                "Ingestion dropped %d out-of-bounds and %d malformed records (%d accepted)",
                out_of_bounds,
                malformed,
                len(accepted),
            )
        return accepted, accepted_keys, report

    def _swap(self, records: tuple[Attraction, ...], keys: frozenset[str], *, mode: CatalogMode) -> None:
        ordinals: dict[str, int] = {}
        for index, attraction in enumerate(records):
            ordinals.setdefault(attraction.id, index)
        # Assign the lookup tables before the tuple so readers keyed off `_records` stay consistent.
        self._ordinals = ordinals
        self._keys = keys
        self._records = records
        self._mode = mode

    def ingest(self, raw_records: Iterable[Mapping[str, Any]]) -> list[Attraction]:
        """Validate, dedupe and append records; returns the newly accepted attractions."""
        accepted, keys, report = self._validate(raw_records, seen=self._keys, seen_ids=self._ordinals)
        self._last_report = report
        if accepted:
            mode: CatalogMode = self._mode if self._mode != "empty" else "manual"
            self._swap(self._records + tuple(accepted), self._keys | frozenset(keys), mode=mode)
        return accepted

    def replace(self, raw_records: Iterable[Mapping[str, Any]], *, mode: CatalogMode = "manual") -> list[Attraction]:
        """Validate records and swap them in as the whole working set."""
        accepted, keys, report = self._validate(raw_records, seen=frozenset())
        self._last_report = report
        self._swap(tuple(accepted), frozenset(keys), mode=mode if accepted else "empty")
        return accepted

    def load_fallback(self, reason: str) -> list[Attraction]:
        logger.warning("Attraction catalog running in degraded mode (fallback dataset): %s", reason)
        accepted = self.replace(load_fallback_records(), mode="fallback")
        record_ingestion_source(
            "attractions",
            {"mode": "fallback", "as_of": utc_now().isoformat(), "count": len(accepted), "error": reason},
        )
        return accepted

    def refresh(
        self,
        latitude: float | None = None,
        longitude: float | None = None,
        *,
        category: str | None = None,
        radius_m: float | None = None,
        limit: int | None = None,
    ) -> list[Attraction]:
        """Reload the working set from the live source, falling back when it is unusable.

        Raises:
            ValidationError: If the given centre lies outside the operating region.
        """
        region = self._settings.region
        center_lat = region.center.lat if latitude is None else latitude
        center_lon = region.center.lon if longitude is None else longitude
        self.require_in_region(center_lat, center_lon)

        if self._source is None:
            return self.load_fallback("no attraction source configured")

        cfg = self._settings.catalog
        try:
            raw = self._source.search(
                center_lat,
                center_lon,
                category=category,
                radius_m=cfg.refresh_radius_m if radius_m is None else radius_m,
                limit=cfg.refresh_limit if limit is None else limit,
            )
        except (httpx.HTTPError, CatalogIngestionError, ValueError) as exc:
            return self.load_fallback(f"{type(exc).__name__}: {exc}")

        accepted, keys, report = self._validate(raw, seen=frozenset())
        if not accepted:
            return self.load_fallback("attraction source returned no usable records")

        self._last_report = report
        self._swap(tuple(accepted), frozenset(keys), mode="live")
        record_ingestion_source(
            "attractions",
            {"mode": "live", "as_of": utc_now().isoformat(), "count": len(accepted)},
        )
        logger.info("Loaded %d attractions from the live source", len(accepted))
        return accepted

    def reset(self) -> None:
        self._swap((), frozenset(), mode="empty")
        self._last_report = IngestReport()

    # Reads

    def require_in_region(self, latitude: float, longitude: float) -> None:
        region = self._settings.region
        if not is_within_bounds(latitude, longitude, region.box):
            raise ValidationError(
                f"Coordinates ({latitude}, {longitude}) are outside {region.name} bounds. "
                f"Valid range: {region.box.describe()}"
            )

    def get(self, attraction_id: str) -> Attraction | None:
        for attraction in self._records:
            if attraction.id == attraction_id:
                return attraction
        return None

    def ordinal_of(self, attraction_id: str) -> int | None:
        return self._ordinals.get(attraction_id)

    def by_category(self, category: str) -> list[Attraction]:
        wanted = category.strip().lower()
        return [a for a in self._records if a.category.lower() == wanted]

    def find_by_name(self, query: str) -> Attraction | None:
        """Exact (case-insensitive) name match first, then containment either way."""
        needle = query.strip().lower()
        if not needle:
            return None
        records = self._records
        for attraction in records:
            if attraction.name.lower() == needle:
                return attraction
        for attraction in records:
            name = attraction.name.lower()
            if needle in name or name in needle:
                return attraction
        return None

    def available_categories(self) -> list[str]:
        seen: dict[str, None] = {}
        for attraction in self._records:
            seen.setdefault(attraction.category, None)
        return list(seen)

    def decorate(self, center: Any, attractions: Iterable[Attraction]) -> list[NearbyAttraction]:
        """Attach distances from `center` to copies of `attractions`, nearest first."""
        point = as_geo_point(center)
        ordinals = self._ordinals
        decorated = [
            NearbyAttraction(attraction=a, distance_m=distance_m(point, a), ordinal=ordinals.get(a.id))
            for a in attractions
        ]
        # sorted() is stable, so equal distances keep their input order.
        return sorted(decorated, key=lambda n: n.distance_m)

    def within_radius(self, center: Any, radius_m: float) -> list[NearbyAttraction]:
        """Attractions within `radius_m` of `center`, nearest first.

        Raises:
            ValidationError: If `center` is a raw (lat, lon) pair or mapping outside the region.
        """
        point = as_geo_point(center)
        if is_raw_coordinates(center):
            self.require_in_region(point.lat, point.lon)
        records = self._records
        nearby: list[NearbyAttraction] = []
        for index, attraction in enumerate(records):
            d = distance_m(point, attraction)
            if d <= radius_m:
                nearby.append(NearbyAttraction(attraction=attraction, distance_m=d, ordinal=index))
        return sorted(nearby, key=lambda n: n.distance_m)
