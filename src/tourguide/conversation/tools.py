"""
Tool catalog for the conversation.

The model may ask for exactly one of three local actions. Each is a tagged Pydantic
variant with typed input, so dispatch is an exhaustive match instead of string
lookups on loose dicts:
- `getWeather`: synthesized, non-authoritative weather text
- `searchCatalog`: category search over the catalog plus a navigation side effect
- `navigateTo`: navigation side effect only

A tool name outside the catalog, or input that fails validation, parses to `None`.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from tourguide.llm.base import ToolSpec

NAVIGATION_CONFIRMATION = "Sure, taking you there now."

View = Literal["home", "swipe", "map", "avatar", "guide"]


class WeatherCall(BaseModel):
    tool: Literal["getWeather"]
    city: str = Field(..., min_length=1)
    country: str | None = None


class SearchCatalogCall(BaseModel):
    tool: Literal["searchCatalog"]
    category: str | None = None
    categories: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_category(self) -> "SearchCatalogCall":
        if not self.all_categories():
            raise ValueError("searchCatalog needs `category` or `categories`")
        return self

    def all_categories(self) -> list[str]:
        out: list[str] = []
        for c in [self.category, *self.categories]:
            if c and c.strip() and c.strip() not in out:
                out.append(c.strip())
        return out


class NavigateCall(BaseModel):
    tool: Literal["navigateTo"]
    view: View


ToolCall = Annotated[Union[WeatherCall, SearchCatalogCall, NavigateCall], Field(discriminator="tool")]
_TOOL_CALL_ADAPTER: TypeAdapter[ToolCall] = TypeAdapter(ToolCall)


TOOL_CATALOG: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="getWeather",
        description="Get current weather information for a city or location",
        parameters={
            "type": "object",
            "properties": {
                "city": {"type": "string", "description": "The city name to get weather for"},
                "country": {"type": "string", "description": "The country name (optional)"},
            },
            "required": ["city"],
        },
    ),
    ToolSpec(
        name="searchCatalog",
        description="Find Singapore attractions of one or more categories and show them on the map",
        parameters={
            "type": "object",
            "properties": {
                "category": {"type": "string", "description": "Attraction category, e.g. Cultural"},
                "categories": {"type": "array", "items": {"type": "string"}},
            },
        },
    ),
    ToolSpec(
        name="navigateTo",
        description="Open a screen of the app",
        parameters={
            "type": "object",
            "properties": {"view": {"type": "string", "enum": list(get_args(View))}},
            "required": ["view"],
        },
    ),
)


@dataclass(frozen=True)
class NavigationRequest:
    """Side effect handed to the UI layer."""

    view: str
    attraction_ids: tuple[str, ...] = ()


def parse_tool_call(name: str, payload: dict[str, Any] | None) -> ToolCall | None:
    try:
        return _TOOL_CALL_ADAPTER.validate_python({**(payload or {}), "tool": name})
    except ValidationError:
        return None


_TEMPERATURES = (18, 22, 25, 28, 32, 15, 20, 24, 27, 30)
_CONDITIONS = ("Sunny", "Partly Cloudy", "Cloudy", "Rainy", "Thunderstorms", "Clear")
_HUMIDITY = (45, 55, 65, 70, 80, 50, 60)
_WIND_KMH = (5, 8, 12, 15, 18, 10, 14)


def fake_weather(city: str, country: str | None = None, *, rng: random.Random | None = None) -> str:
    """Synthesized weather line; not a forecast."""
    rng = rng or random.Random()
    location = f"{city}, {country}" if country else city
    return (
        f"Current weather in {location}: {rng.choice(_TEMPERATURES)}°C, {rng.choice(_CONDITIONS)}. "
        f"Humidity: {rng.choice(_HUMIDITY)}%, Wind: {rng.choice(_WIND_KMH)} km/h. Perfect for exploring the city!"
    )


def enhance_text(text: str) -> str:
    """Rule-based rephrasing used when the model reply is unusable."""
    lowered = text.lower()
    if "where" in lowered or "what" in lowered:
        return f"I'm looking for travel recommendations about: {text}"
    if "hotel" in lowered or "stay" in lowered:
        return f"I need help finding accommodation: {text}"
    if "flight" in lowered or "travel" in lowered:
        return f"I need travel assistance with: {text}"
    return f"I'd like to know more about: {text}"


def _join_words(words: list[str]) -> str:
    if len(words) <= 1:
        return "".join(words)
    return ", ".join(words[:-1]) + f" and {words[-1]}"


def search_summary(categories: list[str], names: list[str]) -> str:
    label = _join_words([c.lower() for c in categories])
    if not names:
        return f"I searched for {label} attractions but couldn't find any nearby right now."
    noun = "place" if len(names) == 1 else "places"
    return f"I searched for {label} attractions and found {len(names)} {noun}: {', '.join(names)}."
