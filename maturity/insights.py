from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from .constants import (
    CLOSING_RECOMMENDATION,
    DATA_RECOMMENDATION,
    DATA_ROLE_THRESHOLD,
    FOUNDATIONAL_RECOMMENDATIONS,
    FOUNDATIONAL_THRESHOLD,
    GAP_THRESHOLD,
    HIGH_PRIORITY_THRESHOLD,
    IMPACT_PRIORITIES,
    ROLE_DATA,
    ROLE_SECURITY,
    SCORE_BANDS,
    SCORE_PLACES,
    SECURITY_RECOMMENDATION,
    SECURITY_ROLE_THRESHOLD,
    STRENGTH_THRESHOLD,
    WEIGHTED_PRIORITY_LIMIT,
)
from .scoring import PillarScore, as_decimal, round_half_up


def classify_score(overall_score: float) -> dict:
    """Return the score band (category + narrative) for an overall score."""
    for band in SCORE_BANDS:
        if band["min_score"] is None or overall_score >= band["min_score"]:
            return band
    return SCORE_BANDS[-1]


def gap_priority(score: int) -> str:
    return "High" if score < HIGH_PRIORITY_THRESHOLD else "Medium"


def impact_priority(impact: Decimal) -> str:
    for threshold, label in IMPACT_PRIORITIES:
        if impact > threshold:
            return label
    return "Low"


def weighted_priorities(pillar_scores: Sequence[PillarScore], weights: Sequence) -> list[dict]:
    """Rank pillars by how much closing their gap would move the overall score."""
    weight_map = {entry.pillar_code: as_decimal(entry.weight) for entry in weights}
    ranked = []
    for pillar in pillar_scores:
        weight = weight_map.get(pillar.pillar_code)
        if weight is None:
            continue
        gap = 100 - pillar.score
        impact = Decimal(gap) * weight / 100
        ranked.append(
            {
                "pillar_code": pillar.pillar_code,
                "area": pillar.pillar_name,
                "score": pillar.score,
                "weight": float(weight),
                "gap": gap,
                "impact_score": float(round_half_up(impact, SCORE_PLACES)),
                "priority": impact_priority(impact),
                "description": (
                    f"{pillar.pillar_name} ({weight}% weight) has {gap}% improvement potential"
                ),
                "_impact": impact,
            }
        )
    # sorted() is stable, so equal impacts stay in catalogue order.
    ranked = sorted(ranked, key=lambda item: item["_impact"], reverse=True)
    for item in ranked:
        del item["_impact"]
    return ranked[:WEIGHTED_PRIORITY_LIMIT]


def generate_insights(
    overall_score: float,
    pillar_scores: Sequence[PillarScore],
    weights: Sequence = (),
) -> dict:
    """Build the insights block stored alongside an assessment.

    Recommendations are appended in a fixed order: the foundational pair for
    low overall scores, then the data and security role triggers, then the
    closing line, which is always present.
    """
    band = classify_score(overall_score)
    strengths = [
        {
            "pillar_code": pillar.pillar_code,
            "area": pillar.pillar_name,
            "score": pillar.score,
            "description": f"Strong performance in {pillar.pillar_name.lower()}",
        }
        for pillar in pillar_scores
        if pillar.score >= STRENGTH_THRESHOLD
    ]
    gaps = [
        {
            "pillar_code": pillar.pillar_code,
            "area": pillar.pillar_name,
            "score": pillar.score,
            "priority": gap_priority(pillar.score),
            "description": f"{pillar.pillar_name} requires focused attention",
        }
        for pillar in pillar_scores
        if pillar.score < GAP_THRESHOLD
    ]

    recommendations: list[str] = []
    if pillar_scores and overall_score < FOUNDATIONAL_THRESHOLD:
        recommendations.extend(FOUNDATIONAL_RECOMMENDATIONS)
    if any(p.role == ROLE_DATA and p.score < DATA_ROLE_THRESHOLD for p in pillar_scores):
        recommendations.append(DATA_RECOMMENDATION)
    if any(
        p.role == ROLE_SECURITY and p.score < SECURITY_ROLE_THRESHOLD for p in pillar_scores
    ):
        recommendations.append(SECURITY_RECOMMENDATION)
    recommendations.append(CLOSING_RECOMMENDATION)

    return {
        "overall_assessment": band["narrative"],
        "score_category": band["category"],
        "strengths": strengths,
        "gaps": gaps,
        "weighted_priorities": weighted_priorities(pillar_scores, weights),
        "recommendations": recommendations,
    }
