from datetime import datetime, timezone

import pytest

from tourguide.catalog.catalog import AttractionCatalog
from tourguide.config.settings import get_settings
from tourguide.core.errors import ValidationError
from tourguide.domain.models import Position, ProximityAlert, Recommendation
from tourguide.recommender.context import (
    attraction_details,
    build_guide_context,
    category_insights,
    format_attraction_for_ai,
    nearby_attractions_text,
)


def _fallback_catalog():
    catalog = AttractionCatalog(get_settings())
    catalog.refresh()
    return catalog


def test_nearby_attractions_text_lists_closest_first():
    text = nearby_attractions_text(_fallback_catalog(), 1.2834, 103.8607, 1000)

    lines = text.splitlines()
    assert lines[0] == "Nearby attractions within 1.0km:"
    assert lines[1] == "1. Marina Bay Sands (Architecture) - 0m away"
    assert lines[2].startswith("2. Gardens by the Bay (Nature & Wildlife) - ")


def test_nearby_attractions_text_when_nothing_is_close():
    text = nearby_attractions_text(_fallback_catalog(), 1.45, 103.70, 500)
    assert text == "No major tourist attractions found within 500m of the specified location."


def test_nearby_attractions_text_rejects_out_of_region_coordinates():
    with pytest.raises(ValidationError):
        nearby_attractions_text(_fallback_catalog(), 10.0, 103.8)


def test_category_insights_uses_category_tip():
    text = category_insights(_fallback_catalog(), "Cultural", (1.2831, 103.8448))

    assert text.startswith("Singapore has 1+ cultural attractions. The most popular is Chinatown Heritage Centre - ")
    assert text.endswith("Guided tours are often available.")


def test_category_insights_default_tip_and_empty_case():
    catalog = _fallback_catalog()
    assert category_insights(catalog, "Shopping") == "No shopping attractions found in the area."

    religious = category_insights(catalog, "Religious", {"lat": 1.2807, "lng": 103.8454})
    assert religious.endswith("Check opening hours and book tickets in advance during peak seasons.")


def test_attraction_details_fuzzy_match():
    details = attraction_details(_fallback_catalog(), "gardens")

    assert details.startswith("Gardens by the Bay is Futuristic botanical gardens")
    assert "Located at 18 Marina Gardens Dr, Singapore 018953" in details
    assert ". Open 5:00 AM - 2:00 AM daily" in details
    assert ". Rated 4.6/5 stars" in details
    assert details.endswith(". Category: Nature & Wildlife")
    assert attraction_details(_fallback_catalog(), "Eiffel Tower") is None


def test_format_attraction_for_ai():
    catalog = _fallback_catalog()
    zoo = catalog.find_by_name("Singapore Zoo")

    text = format_attraction_for_ai(zoo, 1234)

    assert text.startswith("Singapore Zoo is a nature & wildlife attraction in Singapore. World-renowned")
    assert "It's 1.2km from your current location." in text
    assert "Visitors rate it 4.4 out of 5 stars." in text
    assert text.endswith("Opening hours: 8:30 AM - 6:00 PM daily.")


def test_build_guide_context_is_plain_text():
    catalog = _fallback_catalog()
    mbs = catalog.find_by_name("Marina Bay Sands")
    gardens = catalog.find_by_name("Gardens by the Bay")
    now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    alert = ProximityAlert(id="a1", attraction=mbs, distance_m=120, timestamp=now)
    rec = Recommendation(
        attraction=gardens, distance_m=380, relevance_score=96, reason="Recommended because it is close."
    )
    here = Position(latitude=1.2834, longitude=103.8607, timestamp=now)

    text = build_guide_context([alert], [rec], here)

    assert "The user is currently at latitude 1.2834, longitude 103.8607." in text
    assert "- Marina Bay Sands (Architecture), 120m away" in text
    assert "Gardens by the Bay is a nature & wildlife attraction" in text
    assert "{" not in text


def test_build_guide_context_empty():
    assert build_guide_context([], []) == ""


def test_category_insights_rejects_out_of_region_location():
    with pytest.raises(ValidationError):
        category_insights(_fallback_catalog(), "Cultural", (10.0, 103.8))
