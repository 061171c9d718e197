# src/tourguide/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/tourguide/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `STB_API_KEY`, `TOURGUIDE_LLM_API_KEY`)
- an external YAML file via `TOURGUIDE_CONFIG_PATH`

Design rule:
- Tuning knobs (proximity radius, cooldown, scoring weights) live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from tourguide.core.env import load_dotenv_if_present, resolve_project_path
from tourguide.core.geo import BoundingBox, GeoPoint


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `tourguide.config`."""
    text = resources.files("tourguide.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(resolve_project_path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "TourGuide"
    timezone: str = "Asia/Singapore"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class BoundsSettings(BaseModel):
    south: float = Field(1.2, ge=-90, le=90)
    west: float = Field(103.6, ge=-180, le=180)
    north: float = Field(1.5, ge=-90, le=90)
    east: float = Field(104.0, ge=-180, le=180)

    @model_validator(mode="after")
    def _validate_order(self) -> "BoundsSettings":
        if self.north < self.south or self.east < self.west:
            raise ValueError("region.bounds must satisfy south <= north and west <= east")
        return self

    def to_box(self) -> BoundingBox:
        return BoundingBox(south=self.south, west=self.west, north=self.north, east=self.east)


class CenterSettings(BaseModel):
    lat: float = 1.3521
    lon: float = 103.8198


class RegionSettings(BaseModel):
    name: str = "Singapore"
    bounds: BoundsSettings = Field(default_factory=BoundsSettings)
    center: CenterSettings = Field(default_factory=CenterSettings)

    @property
    def box(self) -> BoundingBox:
        return self.bounds.to_box()

    @property
    def center_point(self) -> GeoPoint:
        return GeoPoint(lat=self.center.lat, lon=self.center.lon)


class CatalogSettings(BaseModel):
    identity_precision: int = Field(5, ge=0, le=8)
    refresh_radius_m: int = 10_000
    refresh_limit: int = 50


class StbSettings(BaseModel):
    base_url: str = "https://api.stb.gov.sg"
    search_path: str = "/attractions/search"
    api_key: str | None = None


class IngestionSettings(BaseModel):
    stb: StbSettings = Field(default_factory=StbSettings)


class TrackingSettings(BaseModel):
    poll_interval_seconds: float = Field(10, gt=0)
    fix_timeout_seconds: float = Field(10, gt=0)
    maximum_age_seconds: float = Field(60, ge=0)
    high_accuracy: bool = True


class ProximitySettings(BaseModel):
    threshold_m: float = Field(1000, gt=0)
    cooldown_seconds: float = Field(300, ge=0)
    # Informational: the actual cadence follows tracker pushes.
    tracking_interval_seconds: float = Field(10, gt=0)
    accuracy_advisory_m: float = Field(200, gt=0)
    alert_display_seconds: float = Field(10, gt=0)


class DistanceTier(BaseModel):
    max_m: float = Field(..., gt=0)
    bonus: float = Field(..., ge=0)
    reason: str


class AffinityRule(BaseModel):
    """A category-substring rule: `score`/`reason`/`tip` when it matches, `otherwise_*` when not."""

    match: list[str] = Field(default_factory=list)
    score: float = Field(0, ge=0, le=15)
    reason: str | None = None
    tip: str | None = None
    otherwise_score: float = Field(0, ge=0, le=15)
    otherwise_reason: str | None = None
    otherwise_tip: str | None = None


class RankingSettings(BaseModel):
    rating_multiplier: float = 10
    unrated_base_score: float = 35
    distance_tiers: list[DistanceTier] = Field(
        default_factory=lambda: [
            DistanceTier(max_m=500, bonus=20, reason="very close to your location"),
            DistanceTier(max_m=1000, bonus=15, reason="within walking distance"),
            DistanceTier(max_m=2000, bonus=10, reason="easily accessible"),
        ]
    )
    interest_bonus: float = 25
    budget: dict[Literal["low", "medium", "high"], AffinityRule] = Field(default_factory=dict)
    travel_style: dict[Literal["solo", "couple", "family", "group"], AffinityRule] = Field(default_factory=dict)
    duration: dict[Literal["half-day", "full-day", "multi-day"], AffinityRule] = Field(default_factory=dict)
    fallback_reason: str = "A popular attraction in Singapore."
    interest_search_radius_m: float = 3000
    general_search_radius_m: float = 2000
    general_search_limit: int = 20
    category_insight_radius_m: float = 5000
    category_tips: dict[str, str] = Field(default_factory=dict)
    default_category_tip: str = "Check opening hours and book tickets in advance during peak seasons."

    @model_validator(mode="after")
    def _sort_tiers(self) -> "RankingSettings":
        self.distance_tiers = sorted(self.distance_tiers, key=lambda t: t.max_m)
        return self


class ConversationSettings(BaseModel):
    history_limit: int = Field(20, ge=2)
    model_timeout_seconds: float = Field(30, gt=0)
    system_prompt: str = (
        "You are a helpful travel assistant AI. Try to provide useful information based on user queries."
    )
    search_result_limit: int = Field(5, ge=1)
    search_radius_m: float = 5000
    context_top_k: int = Field(3, ge=0)
    context_alert_limit: int = Field(5, ge=0)
    message_ttl_seconds: float = Field(30, gt=0)


class LlmSettings(BaseModel):
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    max_tokens: int = 300
    temperature: float = Field(0.7, ge=0, le=2)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    region: RegionSettings = Field(default_factory=RegionSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay the log level, STB credentials and LLM endpoint from the environment."""
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("TOURGUIDE_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    stb = data.setdefault("ingestion", {}).setdefault("stb", {})
    stb_key = os.getenv("STB_API_KEY")
    if stb_key:
        stb["api_key"] = stb_key
    stb_url = os.getenv("STB_API_BASE_URL")
    if stb_url:
        stb["base_url"] = stb_url

    llm = data.setdefault("llm", {})
    for env_name, key in [
        ("TOURGUIDE_LLM_BASE_URL", "base_url"),
        ("TOURGUIDE_LLM_API_KEY", "api_key"),
        ("TOURGUIDE_LLM_MODEL", "model"),
    ]:
        value = os.getenv(env_name)
        if value:
            llm[key] = value

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("TOURGUIDE_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
