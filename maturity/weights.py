"""
Pillar weight resolution, normalization and preset weight profiles.

A resolved weight profile always covers exactly the pillars that currently
have active questions and sums to 100.00.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .constants import WEIGHT_PLACES, WEIGHT_TOLERANCE, WEIGHT_TOTAL
from .exceptions import ConsistencyWarning, NormalizationError
from .scoring import as_decimal, round_half_up

logger = logging.getLogger(__name__)

SOURCE_OVERRIDE = "override"
SOURCE_DEFAULT = "default"
SOURCE_EQUAL_SPLIT = "equal_split"


@dataclass(frozen=True)
class WeightEntry:
    pillar_code: str
    weight: Decimal
    is_default: bool = False


@dataclass(frozen=True)
class ResolvedWeight:
    pillar_code: str
    weight: Decimal
    is_default: bool
    source: str

    def to_dict(self) -> dict:
        return {
            "pillar_code": self.pillar_code,
            "weight": float(self.weight),
            "is_default": self.is_default,
            "source": self.source,
        }


def resolve_weights(
    assessment_type: str,
    active_pillars: Sequence[str],
    entries: Iterable[WeightEntry],
) -> list[ResolvedWeight]:
    """Build the weight profile for ``active_pillars`` (in that order).

    Explicit overrides keep their stored value. The share of 100% they leave
    over is partitioned among the other pillars in proportion to their
    system default weights; a pillar with no stored row takes the equal-split
    weight (100 / number of active pillars) as its default. The combined set
    is rescaled only if the overrides alone exceed 100, and the rounding
    residue is folded into the largest non-override weight. Entries for
    pillars without active questions are ignored.
    """
    if not active_pillars:
        return []

    active = list(dict.fromkeys(active_pillars))
    stored: dict[str, WeightEntry] = {}
    for entry in entries:
        if entry.pillar_code not in active:
            continue
        weight = as_decimal(entry.weight)
        if weight < 0 or weight > WEIGHT_TOTAL:
            raise NormalizationError(
                assessment_type,
                f"weight for {entry.pillar_code} is {weight}, outside 0-100",
            )
        stored[entry.pillar_code] = WeightEntry(entry.pillar_code, weight, entry.is_default)

    overrides = {
        code: entry.weight for code, entry in stored.items() if not entry.is_default
    }
    equal_share = WEIGHT_TOTAL / len(active)
    pool = {
        code: stored[code].weight if code in stored else equal_share
        for code in active
        if code not in overrides
    }
    pool_total = sum(pool.values(), Decimal("0"))
    remainder = max(WEIGHT_TOTAL - sum(overrides.values(), Decimal("0")), Decimal("0"))
    if pool_total > 0:
        pool = {code: weight * remainder / pool_total for code, weight in pool.items()}

    raw: list[tuple[str, Decimal]] = [
        (code, overrides[code] if code in overrides else pool[code]) for code in active
    ]
    normalized = _normalize(
        assessment_type,
        raw,
        warn_on_residue=not pool,
        absorb_into=list(pool) if pool_total > 0 and remainder > 0 else None,
    )

    resolved = []
    for code, weight in normalized:
        entry = stored.get(code)
        if entry is None:
            source = SOURCE_EQUAL_SPLIT
        elif entry.is_default:
            source = SOURCE_DEFAULT
        else:
            source = SOURCE_OVERRIDE
        resolved.append(
            ResolvedWeight(
                pillar_code=code,
                weight=weight,
                is_default=source != SOURCE_OVERRIDE,
                source=source,
            )
        )
    return resolved


def normalize_weights(weights: Mapping[str, object], label: str = "profile") -> dict[str, Decimal]:
    """Rescale a pillar -> weight mapping so it sums to exactly 100.00."""
    raw = [(key, as_decimal(value)) for key, value in weights.items()]
    if any(weight < 0 for _, weight in raw):
        raise NormalizationError(label, "negative weights cannot be normalized")
    return dict(_normalize(label, raw))


def validate_weights(weights: Mapping[str, object]) -> dict:
    total = sum((as_decimal(value) for value in weights.values()), Decimal("0"))
    difference = total - WEIGHT_TOTAL
    if abs(difference) > WEIGHT_TOLERANCE:
        return {
            "valid": False,
            "total": float(total),
            "difference": float(difference),
            "message": f"Weights sum to {total:.2f}% instead of 100%",
        }
    return {"valid": True, "total": float(total), "message": "Weights are valid"}


def _normalize(
    label: str,
    raw: list[tuple[str, Decimal]],
    warn_on_residue: bool = False,
    absorb_into: Sequence[str] | None = None,
) -> list[tuple[str, Decimal]]:
    if not raw:
        return []
    total = sum((weight for _, weight in raw), Decimal("0"))
    if total <= 0:
        raise NormalizationError(label, "weights sum to zero")
    deviation = total - WEIGHT_TOTAL
    rescaled = abs(deviation) > WEIGHT_TOLERANCE
    if rescaled:
        logger.info(
            "Rescaling %s weights: sum was %s, expected %s", label, total, WEIGHT_TOTAL
        )
        raw = [(key, weight * WEIGHT_TOTAL / total) for key, weight in raw]

    rounded = [(key, round_half_up(weight, WEIGHT_PLACES)) for key, weight in raw]
    residue = WEIGHT_TOTAL - sum((weight for _, weight in rounded), Decimal("0"))
    if residue:
        if warn_on_residue and not rescaled:
            logger.warning(
                "%s: %s weights sum to %s; absorbing %s into the largest weight",
                ConsistencyWarning.__name__,
                label,
                total,
                residue,
            )
        candidates = [
            i for i, (key, _) in enumerate(rounded) if absorb_into is None or key in absorb_into
        ]
        # max() keeps the first of equal weights, i.e. catalogue order.
        index = max(candidates, key=lambda i: rounded[i][1])
        key, weight = rounded[index]
        rounded[index] = (key, round_half_up(weight + residue, WEIGHT_PLACES))
    return rounded


# Preset weight profiles keyed by pillar name.
WEIGHT_PROFILES = {
    "balanced": {
        "name": "Balanced",
        "description": "Equal weight across all pillars for comprehensive assessment",
        "applicable_to": ["CORE", "ADVANCED", "FRONTIER", "TEST"],
        "weights": {
            "Strategy & Leadership": 12.50,
            "Governance & Ethics": 12.50,
            "Data Readiness": 12.50,
            "Technology & Infrastructure": 12.50,
            "Security & Compliance": 12.50,
            "Skills & Talent": 12.50,
            "Culture & Change": 12.50,
            "Value & ROI": 12.50,
        },
    },
    "strategy_first": {
        "name": "Strategy-First",
        "description": "Emphasizes strategic alignment and governance",
        "applicable_to": ["CORE", "ADVANCED"],
        "weights": {
            "Strategy & Leadership": 25.00,
            "Governance & Ethics": 20.00,
            "Data Readiness": 12.00,
            "Technology & Infrastructure": 12.00,
            "Security & Compliance": 10.00,
            "Skills & Talent": 10.00,
            "Culture & Change": 6.00,
            "Value & ROI": 5.00,
        },
    },
    "compliance_focused": {
        "name": "Compliance-Focused",
        "description": "Prioritizes ethics, governance, and security",
        "applicable_to": ["CORE", "ADVANCED"],
        "weights": {
            "Security & Compliance": 25.00,
            "Governance & Ethics": 25.00,
            "Data Readiness": 15.00,
            "Technology & Infrastructure": 12.00,
            "Strategy & Leadership": 10.00,
            "Culture & Change": 8.00,
            "Skills & Talent": 3.00,
            "Value & ROI": 2.00,
        },
    },
    "innovation_driven": {
        "name": "Innovation-Driven",
        "description": "Focuses on innovation, technology, and capability",
        "applicable_to": ["ADVANCED", "FRONTIER"],
        "weights": {
            "Technology & Infrastructure": 22.00,
            "Strategy & Leadership": 20.00,
            "Data Readiness": 15.00,
            "Skills & Talent": 15.00,
            "Security & Compliance": 10.00,
            "Governance & Ethics": 8.00,
            "Culture & Change": 7.00,
            "Value & ROI": 3.00,
        },
    },
    "healthcare": {
        "name": "Healthcare",
        "description": "Healthcare industry focus: compliance, ethics, and data quality",
        "applicable_to": ["CORE", "ADVANCED"],
        "weights": {
            "Governance & Ethics": 22.00,
            "Security & Compliance": 20.00,
            "Data Readiness": 18.00,
            "Technology & Infrastructure": 12.00,
            "Strategy & Leadership": 10.00,
            "Culture & Change": 8.00,
            "Value & ROI": 6.00,
            "Skills & Talent": 4.00,
        },
    },
    "financial_services": {
        "name": "Financial Services",
        "description": "Banking and finance: governance, security, and performance",
        "applicable_to": ["CORE", "ADVANCED"],
        "weights": {
            "Security & Compliance": 25.00,
            "Governance & Ethics": 20.00,
            "Data Readiness": 15.00,
            "Technology & Infrastructure": 15.00,
            "Value & ROI": 10.00,
            "Strategy & Leadership": 8.00,
            "Culture & Change": 5.00,
            "Skills & Talent": 2.00,
        },
    },
    "technology": {
        "name": "Technology",
        "description": "Tech sector: innovation, architecture, and talent",
        "applicable_to": ["ADVANCED", "FRONTIER"],
        "weights": {
            "Technology & Infrastructure": 22.00,
            "Skills & Talent": 20.00,
            "Data Readiness": 18.00,
            "Strategy & Leadership": 15.00,
            "Security & Compliance": 10.00,
            "Governance & Ethics": 8.00,
            "Culture & Change": 5.00,
            "Value & ROI": 2.00,
        },
    },
    "manufacturing": {
        "name": "Manufacturing",
        "description": "Manufacturing industry: process, technology, and performance",
        "applicable_to": ["CORE", "ADVANCED"],
        "weights": {
            "Technology & Infrastructure": 22.00,
            "Data Readiness": 20.00,
            "Value & ROI": 15.00,
            "Strategy & Leadership": 12.00,
            "Skills & Talent": 12.00,
            "Culture & Change": 8.00,
            "Governance & Ethics": 6.00,
            "Security & Compliance": 5.00,
        },
    },
}


def get_profile(profile_key: str) -> dict | None:
    return WEIGHT_PROFILES.get(profile_key)


def profiles_for_assessment_type(assessment_type: str) -> list[dict]:
    code = (assessment_type or "").upper()
    profiles = []
    for key, profile in WEIGHT_PROFILES.items():
        if code in profile["applicable_to"] or "ALL" in profile["applicable_to"]:
            profiles.append({"key": key, **profile})
    return profiles


def apply_profile_to_pillars(
    profile_key: str, pillar_names: Sequence[str]
) -> dict[str, Decimal] | None:
    """Map a preset onto actual pillar names, normalized to 100.

    Pillars the preset does not mention get an equal share of 100 before
    normalization. Returns None for an unknown preset.
    """
    profile = get_profile(profile_key)
    if not profile or not pillar_names:
        return None
    preset = profile["weights"]
    fallback = WEIGHT_TOTAL / len(pillar_names)
    weights = {
        name: as_decimal(preset[name]) if name in preset else fallback
        for name in pillar_names
    }
    return normalize_weights(weights, label=profile_key)
