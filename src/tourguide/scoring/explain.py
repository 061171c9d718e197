"""
Small explainability formatting helpers.

Used by the ranker to build the user-facing reason sentence and by debug logging to
print compact summaries of ranking results.
"""

from __future__ import annotations

from tourguide.domain.models import Recommendation


def reason_sentence(reasons: list[str], *, fallback: str) -> str:
    """Join the clauses that fired into one sentence, or use the fallback."""
    if not reasons:
        return fallback
    return f"Recommended because it {', '.join(reasons)}."


def one_line_summary(recommendation: Recommendation) -> str:
    """Render a compact single-line summary for a recommendation."""
    parts = [f"{recommendation.attraction.name}", f"score={recommendation.relevance_score:.1f}"]
    if recommendation.distance_m is not None:
        parts.append(f"distance={recommendation.distance_m:.0f}m")
    return " | ".join(parts)
