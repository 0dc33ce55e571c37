from __future__ import annotations

from decimal import Decimal

ASSESSMENT_CORE = "CORE"
ASSESSMENT_ADVANCED = "ADVANCED"
ASSESSMENT_FRONTIER = "FRONTIER"
ASSESSMENT_TEST = "TEST"
ASSESSMENT_TYPES = [
    (ASSESSMENT_CORE, "Core"),
    (ASSESSMENT_ADVANCED, "Advanced"),
    (ASSESSMENT_FRONTIER, "Frontier"),
    (ASSESSMENT_TEST, "Test"),
]

DEFAULT_INDUSTRY = "Unknown"

# Likert answers
MIN_RESPONSE_VALUE = 1
MAX_RESPONSE_VALUE = 5

ROLE_DATA = "data"
ROLE_SECURITY = "security"
ROLE_STRATEGY = "strategy"
ROLE_GENERAL = "general"
PILLAR_ROLES = [
    (ROLE_DATA, "Data"),
    (ROLE_SECURITY, "Security"),
    (ROLE_STRATEGY, "Strategy"),
    (ROLE_GENERAL, "General"),
]

WEIGHT_TOTAL = Decimal("100.00")
WEIGHT_TOLERANCE = Decimal("0.01")
WEIGHT_PLACES = Decimal("0.01")
SCORE_PLACES = Decimal("0.1")

# Overall score bands, checked top-down.
SCORE_BANDS = [
    {
        "min_score": 80,
        "category": "AI Leader",
        "narrative": (
            "Your organization demonstrates advanced AI readiness with strong "
            "foundations across most dimensions."
        ),
    },
    {
        "min_score": 60,
        "category": "AI Adopter",
        "narrative": (
            "Your organization shows good AI readiness with solid foundations "
            "and clear opportunities for enhancement."
        ),
    },
    {
        "min_score": 40,
        "category": "AI Explorer",
        "narrative": (
            "Your organization has emerging AI capabilities with significant "
            "potential for development."
        ),
    },
    {
        "min_score": None,
        "category": "AI Starter",
        "narrative": (
            "Your organization is in the early stages of AI readiness with "
            "substantial opportunities for growth."
        ),
    },
]

STRENGTH_THRESHOLD = 70
GAP_THRESHOLD = 60
HIGH_PRIORITY_THRESHOLD = 40
FOUNDATIONAL_THRESHOLD = 50
DATA_ROLE_THRESHOLD = 60
SECURITY_ROLE_THRESHOLD = 70

FOUNDATIONAL_RECOMMENDATIONS = [
    "Focus on building foundational AI capabilities and governance",
    "Develop a comprehensive AI strategy aligned with business objectives",
]
DATA_RECOMMENDATION = "Invest in data quality and governance infrastructure"
SECURITY_RECOMMENDATION = "Strengthen security and compliance frameworks for AI"
CLOSING_RECOMMENDATION = (
    "Consider engaging AI readiness experts for detailed transformation planning"
)

# Impact = gap * weight / 100
IMPACT_PRIORITIES = [
    (15, "Critical"),
    (8, "High"),
    (4, "Medium"),
]
WEIGHTED_PRIORITY_LIMIT = 3

# History summary buckets
SUMMARY_EXCELLENT = 80
SUMMARY_GOOD = 60


def normalize_assessment_type(value: str | None) -> str:
    """Return the canonical upper-case assessment type code."""
    return (value or "").strip().upper()


def normalize_industry(value: str | None) -> str:
    cleaned = (value or "").strip()
    return cleaned or DEFAULT_INDUSTRY
