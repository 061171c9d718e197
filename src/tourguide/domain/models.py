"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- positioning input (`Position`)
- catalog entities (`Attraction`, `NearbyAttraction`)
- alerting output (`ProximityAlert`)
- user preferences and ranked output (`TourismContext`, `Recommendation`)
- conversation state (`ConversationTurn`)

Canonical records are frozen. Anything derived (a distance from the user, a
dismissal flag) lives on a separate wrapper or on the alert, never on the record.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SINGAPORE_CATEGORIES: tuple[str, ...] = (
    "Art & Museums",
    "Nature & Wildlife",
    "Architecture",
    "Cultural",
    "Family",
    "Beach",
    "Nightlife",
    "Food & Culinary",
    "Shopping",
    "Historical",
    "Religious",
    "Adventure",
    "Wellness",
    "Festival & Events",
)

# Source records without a category land here.
GENERAL_CATEGORY = "General"

Budget = Literal["low", "medium", "high"]
TravelStyle = Literal["solo", "couple", "family", "group"]
Duration = Literal["half-day", "full-day", "multi-day"]


class Position(BaseModel):
    """One successful location fix. Superseded by later fixes, never mutated."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    timestamp: datetime


class Attraction(BaseModel):
    """A point of interest in the operating region."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    category: str = GENERAL_CATEGORY
    address: str = ""
    latitude: float
    longitude: float
    image_url: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    opening_hours: str | None = None
    website: str | None = None
    contact_info: str | None = None

    @field_validator("name", "category")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class NearbyAttraction(BaseModel):
    """An attraction decorated with its distance from some centre.

    `ordinal` is the attraction's position in catalog ingestion order; the ranker
    uses it to break score ties.
    """

    model_config = ConfigDict(frozen=True)

    attraction: Attraction
    distance_m: float | None = None
    ordinal: int | None = None


class ProximityAlert(BaseModel):
    """An attraction that just came into range. Only `dismissed` ever changes."""

    id: str
    attraction: Attraction
    distance_m: float
    timestamp: datetime
    dismissed: bool = False
    accuracy_m: float | None = None


class TourismContext(BaseModel):
    """What the user told the preference flow; read-only input to ranking."""

    user_location: Position | None = None
    interests: set[str] = Field(default_factory=set)
    budget: Budget | None = None
    travel_style: TravelStyle | None = None
    duration: Duration | None = None

    def has_interest(self, category: str) -> bool:
        wanted = category.strip().lower()
        return any(i.strip().lower() == wanted for i in self.interests)


class Recommendation(BaseModel):
    """One ranked attraction with the reasons it scored the way it did."""

    attraction: Attraction
    distance_m: float | None = None
    relevance_score: float
    reason: str
    tips: list[str] | None = None


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
