from __future__ import annotations

# This module is the ranking step of the guide.
# It wires together:
# - domain input (TourismContext + distance-decorated candidates)
# - per-term scorers (rating, distance, interest, budget, travel style, duration tips)
# - final ordering + explainable reason sentence (Recommendation)
#
# `rank()` is pure given its inputs: no catalog reads, no clock, no I/O.

import logging  # Debug summaries of the final ordering.
from typing import Iterable

# Local application imports (each layer stays separate: catalog reads, features do math, this file ranks).
from tourguide.catalog.catalog import AttractionCatalog  # Candidate source for `recommend_for_context`.
from tourguide.config.settings import Settings, get_settings  # Ranking constants live in YAML.
from tourguide.domain.models import Attraction, NearbyAttraction, Recommendation, TourismContext
from tourguide.features.affinity import (
    TermResult,
    duration_tip,
    score_budget,
    score_distance,
    score_interest,
    score_rating,
    score_travel_style,
)
from tourguide.scoring.explain import one_line_summary, reason_sentence

logger = logging.getLogger(__name__)


def _as_nearby(candidate: NearbyAttraction | Attraction) -> NearbyAttraction:
    if isinstance(candidate, NearbyAttraction):
        return candidate
    return NearbyAttraction(attraction=candidate)


def score_candidate(
    candidate: NearbyAttraction, *, context: TourismContext, settings: Settings
) -> tuple[float, list[TermResult]]:
    """Total relevance of one candidate plus the term results that produced it."""
    attraction = candidate.attraction
    terms = [
        score_rating(attraction, settings=settings),
        score_distance(candidate.distance_m, settings=settings),
        score_interest(attraction, context=context, settings=settings),
        score_budget(attraction, context=context, settings=settings),
        score_travel_style(attraction, context=context, settings=settings),
        duration_tip(attraction, context=context, settings=settings),
    ]
    return sum(t.score for t in terms), terms


def rank(
    context: TourismContext,
    candidates: Iterable[NearbyAttraction | Attraction],
    settings: Settings | None = None,
) -> list[Recommendation]:
    """Score and order candidates, highest relevance first.

    Equal scores keep catalog ingestion order (`ordinal`); candidates without an
    ordinal fall back to their position in `candidates`.
    """
    settings = settings or get_settings()
    fallback = settings.ranking.fallback_reason

    scored: list[tuple[float, int, int, Recommendation]] = []
    for index, raw in enumerate(candidates):
        candidate = _as_nearby(raw)
        total, terms = score_candidate(candidate, context=context, settings=settings)
        reasons = [r for t in terms for r in t.reasons]
        tips = [tip for t in terms for tip in t.tips]
        recommendation = Recommendation(
            attraction=candidate.attraction,
            distance_m=candidate.distance_m,
            relevance_score=total,
            reason=reason_sentence(reasons, fallback=fallback),
            tips=tips or None,
        )
        order = candidate.ordinal if candidate.ordinal is not None else index
        scored.append((-total, order, index, recommendation))

    scored.sort(key=lambda row: row[:3])
    ranked = [row[3] for row in scored]
    if logger.isEnabledFor(logging.DEBUG):
        for rec in ranked:
            logger.debug("ranked: %s", one_line_summary(rec))
    return ranked


def recommend_for_context(
    catalog: AttractionCatalog,
    context: TourismContext,
    *,
    limit: int = 5,
    settings: Settings | None = None,
) -> list[Recommendation]:
    """Gather candidates around the user (or the region centre) and rank them."""
    settings = settings or get_settings()
    cfg = settings.ranking
    center = context.user_location or settings.region.center_point

    candidates: list[NearbyAttraction] = []
    if context.interests:
        for interest in sorted(context.interests, key=str.lower):
            wanted = interest.strip().lower()
            candidates.extend(
                n
                for n in catalog.within_radius(center, cfg.interest_search_radius_m)
                if n.attraction.category.lower() == wanted
            )
    else:
        candidates = catalog.within_radius(center, cfg.general_search_radius_m)[: cfg.general_search_limit]

    seen_names: set[str] = set()
    unique: list[NearbyAttraction] = []
    for candidate in candidates:
        if candidate.attraction.name in seen_names:
            continue
        seen_names.add(candidate.attraction.name)
        unique.append(candidate)

    return rank(context, unique, settings)[: max(0, limit)]
