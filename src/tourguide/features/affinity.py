# src/tourguide/features/affinity.py
"""
Per-term recommendation scorers.

Each function scores one independent, additive term of an attraction's relevance:
- rating (base score)
- distance tier bonus
- interest match
- budget affinity
- travel-style affinity
- duration (tips only, never score)

All constants come from `settings.ranking` (YAML), so product tuning never touches
this module. Every scorer returns a `TermResult` carrying the points it contributed,
the reason clauses that fired and any tips, so the ranker can explain its ordering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tourguide.config.settings import AffinityRule, Settings
from tourguide.domain.models import Attraction, TourismContext


@dataclass(frozen=True)
class TermResult:
    """Points contributed by one scoring term plus its explainability payload."""

    name: str
    score: float = 0.0
    reasons: list[str] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


def category_matches(category: str, needles: list[str]) -> bool:
    """Substring match on the lower-cased category label (`"nature"` matches `"Nature & Wildlife"`)."""
    label = category.lower()
    return any(n.lower() in label for n in needles)


def score_rating(attraction: Attraction, *, settings: Settings) -> TermResult:
    cfg = settings.ranking
    if attraction.rating is None:
        return TermResult("rating", cfg.unrated_base_score, details={"rated": False})
    return TermResult("rating", attraction.rating * cfg.rating_multiplier, details={"rating": attraction.rating})


def score_distance(distance_m: float | None, *, settings: Settings) -> TermResult:
    # Tiers are sorted ascending by the settings validator; the closest matching tier wins.
    if distance_m is None:
        return TermResult("distance", details={"distance_m": None})
    for tier in settings.ranking.distance_tiers:
        if distance_m <= tier.max_m:
            return TermResult("distance", tier.bonus, [tier.reason], details={"tier_max_m": tier.max_m})
    return TermResult("distance", details={"distance_m": distance_m})


def score_interest(attraction: Attraction, *, context: TourismContext, settings: Settings) -> TermResult:
    if not context.has_interest(attraction.category):
        return TermResult("interest")
    return TermResult(
        "interest",
        settings.ranking.interest_bonus,
        [f"matches your interest in {attraction.category.lower()}"],
    )


def _apply_rule(name: str, attraction: Attraction, rule: AffinityRule | None) -> TermResult:
    if rule is None:
        return TermResult(name)
    matched = category_matches(attraction.category, rule.match)
    if matched:
        score, reason, tip = rule.score, rule.reason, rule.tip
    else:
        score, reason, tip = rule.otherwise_score, rule.otherwise_reason, rule.otherwise_tip
    return TermResult(
        name,
        score,
        [reason] if reason else [],
        [tip] if tip else [],
        details={"matched": matched},
    )


def score_budget(attraction: Attraction, *, context: TourismContext, settings: Settings) -> TermResult:
    if context.budget is None:
        return TermResult("budget")
    return _apply_rule("budget", attraction, settings.ranking.budget.get(context.budget))


def score_travel_style(attraction: Attraction, *, context: TourismContext, settings: Settings) -> TermResult:
    if context.travel_style is None:
        return TermResult("travel_style")
    return _apply_rule("travel_style", attraction, settings.ranking.travel_style.get(context.travel_style))


def duration_tip(attraction: Attraction, *, context: TourismContext, settings: Settings) -> TermResult:
    """Duration only ever produces a tip; its score is always zero."""
    if context.duration is None:
        return TermResult("duration")
    result = _apply_rule("duration", attraction, settings.ranking.duration.get(context.duration))
    return TermResult("duration", 0.0, [], result.tips, result.details)
