"""
Plain-text context for the conversation layer.

The language model reads attraction data as prose, not structured payloads. These
helpers turn catalog reads, proximity alerts and ranked recommendations into short
paragraphs the orchestrator can inject as a system/context message.
"""

from __future__ import annotations

from typing import Any, Iterable

from tourguide.catalog.catalog import AttractionCatalog
from tourguide.config.settings import Settings, get_settings
from tourguide.core.errors import ValidationError
from tourguide.core.geo import as_geo_point, format_distance, is_raw_coordinates, is_within_bounds
from tourguide.domain.models import Attraction, Position, ProximityAlert, Recommendation

NEARBY_LIST_LIMIT = 5
INSIGHT_TOP_K = 3


def _require_in_region(latitude: float, longitude: float, settings: Settings) -> None:
    region = settings.region
    if not is_within_bounds(latitude, longitude, region.box):
        raise ValidationError(
            f"Coordinates ({latitude}, {longitude}) are outside {region.name} bounds. "
            f"Valid range: {region.box.describe()}"
        )


def nearby_attractions_text(
    catalog: AttractionCatalog,
    latitude: float,
    longitude: float,
    radius_m: float = 1000,
    *,
    settings: Settings | None = None,
) -> str:
    settings = settings or get_settings()
    _require_in_region(latitude, longitude, settings)
    nearby = catalog.within_radius((latitude, longitude), radius_m)
    if not nearby:
        return f"No major tourist attractions found within {format_distance(radius_m)} of the specified location."

    lines = [
        f"{i}. {n.attraction.name} ({n.attraction.category}) - {format_distance(n.distance_m)} away"
        for i, n in enumerate(nearby[:NEARBY_LIST_LIMIT], start=1)
    ]
    return f"Nearby attractions within {format_distance(radius_m)}:\n" + "\n".join(lines)


def category_insights(
    catalog: AttractionCatalog,
    category: str,
    location: Any = None,
    *,
    settings: Settings | None = None,
) -> str:
    """Summarise one category around `location` (region centre when omitted).

    Raises:
        ValidationError: If a raw `location` lies outside the operating region.
    """
    settings = settings or get_settings()
    cfg = settings.ranking
    center = as_geo_point(location) if location is not None else settings.region.center_point
    if is_raw_coordinates(location):
        _require_in_region(center.lat, center.lon, settings)
    wanted = category.strip().lower()
    matches = [
        n for n in catalog.within_radius(center, cfg.category_insight_radius_m)
        if n.attraction.category.lower() == wanted
    ][:INSIGHT_TOP_K]
    if not matches:
        return f"No {category.lower()} attractions found in the area."

    top = matches[0].attraction
    tip = cfg.category_tips.get(category, cfg.default_category_tip)
    return (
        f"Singapore has {len(matches)}+ {category.lower()} attractions. "
        f"The most popular is {top.name} - {top.description} {tip}"
    )


def attraction_details(catalog: AttractionCatalog, name: str) -> str | None:
    attraction = catalog.find_by_name(name)
    if attraction is None:
        return None

    details = f"{attraction.name} is {attraction.description}"
    if attraction.address:
        details += f" Located at {attraction.address}"
    if attraction.opening_hours:
        details += f". Open {attraction.opening_hours}"
    if attraction.rating:
        details += f". Rated {attraction.rating}/5 stars"
    if attraction.category:
        details += f". Category: {attraction.category}"
    return details


def format_attraction_for_ai(attraction: Attraction, distance_m: float | None = None) -> str:
    text = f"{attraction.name} is a {attraction.category.lower()} attraction in Singapore. {attraction.description}"
    if distance_m is not None:
        text += f" It's {format_distance(distance_m)} from your current location."
    if attraction.rating:
        text += f" Visitors rate it {attraction.rating} out of 5 stars."
    if attraction.opening_hours:
        text += f" Opening hours: {attraction.opening_hours}."
    return text


def build_guide_context(
    alerts: Iterable[ProximityAlert],
    recommendations: Iterable[Recommendation],
    user_location: Position | None = None,
    *,
    alert_limit: int = 5,
) -> str:
    """Assemble the context block handed to the language model.

    Returns an empty string when there is nothing worth saying.
    """
    sections: list[str] = []
    if user_location is not None:
        sections.append(
            f"The user is currently at latitude {user_location.latitude:.4f}, "
            f"longitude {user_location.longitude:.4f}."
        )

    alert_lines = [
        f"- {a.attraction.name} ({a.attraction.category}), {format_distance(a.distance_m)} away"
        for a in list(alerts)[:alert_limit]
    ]
    if alert_lines:
        sections.append("Attractions that just came into range:\n" + "\n".join(alert_lines))

    rec_lines = [
        f"- {format_attraction_for_ai(r.attraction, r.distance_m)} {r.reason}"
        for r in recommendations
    ]
    if rec_lines:
        sections.append("Top recommendations for this user:\n" + "\n".join(rec_lines))

    if not sections:
        return ""
    return "Guide context (for reference in your replies):\n\n" + "\n\n".join(sections)
