"""
Response aggregation and overall score composition.

Both stages are pure: they take plain records pulled from the stores and
return dataclasses, so the same inputs always yield the same breakdown.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from .constants import MAX_RESPONSE_VALUE, ROLE_GENERAL, SCORE_PLACES


@dataclass(frozen=True)
class CatalogQuestion:
    id: int
    pillar_code: str
    pillar_name: str
    pillar_role: str = ROLE_GENERAL


@dataclass(frozen=True)
class StoredResponse:
    question_id: int
    value: int


@dataclass(frozen=True)
class PillarScore:
    pillar_code: str
    pillar_name: str
    total_questions: int
    answered_questions: int
    raw_average: float
    score: int
    completion_rate: int
    role: str = ROLE_GENERAL

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict) -> "PillarScore":
        return cls(
            pillar_code=payload["pillar_code"],
            pillar_name=payload["pillar_name"],
            total_questions=int(payload["total_questions"]),
            answered_questions=int(payload["answered_questions"]),
            raw_average=float(payload["raw_average"]),
            score=int(payload["score"]),
            completion_rate=int(payload["completion_rate"]),
            role=payload.get("role") or ROLE_GENERAL,
        )


@dataclass
class CompositeScore:
    overall_score: float
    pillar_scores: list[PillarScore] = field(default_factory=list)
    is_complete: bool = False


def as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Decimal, places: Decimal = Decimal("1")) -> Decimal:
    return value.quantize(places, rounding=ROUND_HALF_UP)


def percentage_from_average(total: int, answered: int) -> int:
    """Map the mean of ``answered`` Likert values summing to ``total`` onto 0-100."""
    if not answered:
        return 0
    ratio = Decimal(total) * 100 / (Decimal(answered) * MAX_RESPONSE_VALUE)
    return int(round_half_up(ratio))


def completion_percentage(answered: int, total: int) -> int:
    if not total:
        return 0
    return int(round_half_up(Decimal(answered) * 100 / Decimal(total)))


def aggregate_responses(
    questions: Sequence[CatalogQuestion],
    responses: Iterable[StoredResponse],
) -> list[PillarScore]:
    """Group answers by pillar and score each pillar.

    Every pillar with at least one question gets an entry, in catalogue
    order. Missing answers are left out of the average rather than counted
    as zero; a pillar with nothing answered scores 0 with 0% completion.
    Answers to questions outside the catalogue are ignored.
    """
    values = {response.question_id: response.value for response in responses}
    pillars: dict[str, dict] = {}
    for question in questions:
        bucket = pillars.setdefault(
            question.pillar_code,
            {
                "name": question.pillar_name,
                "role": question.pillar_role,
                "total": 0,
                "answered": 0,
                "sum": 0,
            },
        )
        bucket["total"] += 1
        value = values.get(question.id)
        if value is not None:
            bucket["answered"] += 1
            bucket["sum"] += value

    scores: list[PillarScore] = []
    for code, bucket in pillars.items():
        answered = bucket["answered"]
        raw_average = bucket["sum"] / answered if answered else 0.0
        scores.append(
            PillarScore(
                pillar_code=code,
                pillar_name=bucket["name"],
                total_questions=bucket["total"],
                answered_questions=answered,
                raw_average=raw_average,
                score=percentage_from_average(bucket["sum"], answered),
                completion_rate=completion_percentage(answered, bucket["total"]),
                role=bucket["role"],
            )
        )
    return scores


def compose_overall_score(
    pillar_scores: Sequence[PillarScore],
    weights: Sequence,
) -> CompositeScore:
    """Combine pillar scores with resolved weights into one percentage.

    ``weights`` holds objects with ``pillar_code`` and ``weight`` attributes.
    A pillar missing from either side contributes nothing. With no weights
    the overall score is 0 and the result is flagged incomplete.
    """
    if not weights:
        return CompositeScore(
            overall_score=0.0, pillar_scores=list(pillar_scores), is_complete=False
        )
    weight_map = {entry.pillar_code: as_decimal(entry.weight) for entry in weights}
    weighted_sum = Decimal("0")
    for pillar in pillar_scores:
        weight = weight_map.get(pillar.pillar_code)
        if weight is None:
            continue
        weighted_sum += Decimal(pillar.score) * weight
    overall = round_half_up(weighted_sum / 100, SCORE_PLACES)
    return CompositeScore(
        overall_score=float(overall),
        pillar_scores=list(pillar_scores),
        is_complete=bool(pillar_scores),
    )


def summarize_progress(pillar_scores: Sequence[PillarScore]) -> dict:
    """Totals across pillars for the lightweight progress check."""
    total = sum(pillar.total_questions for pillar in pillar_scores)
    answered = sum(pillar.answered_questions for pillar in pillar_scores)
    return {
        "total_questions": total,
        "answered_questions": answered,
        "completion_rate": completion_percentage(answered, total),
    }
