from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from django.db import DatabaseError

from .constants import (
    ASSESSMENT_TYPES,
    SCORE_PLACES,
    SUMMARY_EXCELLENT,
    SUMMARY_GOOD,
    normalize_assessment_type,
    normalize_industry,
)
from .exceptions import PersistenceError, ValidationError
from .insights import generate_insights
from .models import MaturityAssessment
from .scoring import (
    CatalogQuestion,
    PillarScore,
    StoredResponse,
    aggregate_responses,
    as_decimal,
    compose_overall_score,
    round_half_up,
    summarize_progress,
)
from .serializers import (
    AnswerSerializer,
    PillarScoreSerializer,
    WeightOverrideSerializer,
    WeightProfileSerializer,
    flatten_errors,
)
from .stores import AssessmentRecord, Stores
from .weights import (
    ResolvedWeight,
    apply_profile_to_pillars,
    get_profile,
    profiles_for_assessment_type,
    resolve_weights,
    validate_weights,
)

logger = logging.getLogger(__name__)


@dataclass
class ScoreCheck:
    score: float
    completion_rate: int
    total_questions: int
    answered_questions: int
    is_complete: bool
    pillar_scores: list[PillarScore] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "completion_rate": self.completion_rate,
            "total_questions": self.total_questions,
            "answered_questions": self.answered_questions,
            "is_complete": self.is_complete,
            "pillar_scores": [pillar.to_dict() for pillar in self.pillar_scores],
        }


@dataclass
class SubmissionResult:
    assessment_id: int
    is_new: bool
    overall_score: float
    pillar_scores: list[PillarScore]
    insights: dict

    def to_dict(self) -> dict:
        return {
            "assessment_id": self.assessment_id,
            "is_new": self.is_new,
            "overall_score": self.overall_score,
            "pillar_scores": [pillar.to_dict() for pillar in self.pillar_scores],
            "insights": self.insights,
        }


@dataclass
class _Computation:
    questions: list[CatalogQuestion]
    responses: list[StoredResponse]
    weights: list[ResolvedWeight]
    pillar_scores: list[PillarScore]
    overall_score: float
    is_complete: bool


def _require_assessment_type(assessment_type: str) -> str:
    code = normalize_assessment_type(assessment_type)
    if code not in {choice for choice, _ in ASSESSMENT_TYPES}:
        raise ValidationError(
            [{"field": "assessment_type", "message": f"Unknown assessment type '{assessment_type}'."}]
        )
    return code


def _compute(stores: Stores, user_id: int, assessment_type: str) -> _Computation:
    questions = stores.questions.list_active_questions(assessment_type)
    responses = stores.responses.get_responses(user_id, assessment_type)
    pillar_scores = aggregate_responses(questions, responses)
    weights = resolve_weights(
        assessment_type,
        [pillar.pillar_code for pillar in pillar_scores],
        stores.weights.get_weights(assessment_type),
    )
    composite = compose_overall_score(pillar_scores, weights)
    return _Computation(
        questions=questions,
        responses=responses,
        weights=weights,
        pillar_scores=composite.pillar_scores,
        overall_score=composite.overall_score,
        is_complete=composite.is_complete,
    )


def validate_answers(
    *,
    answers: Iterable[Mapping],
    assessment_type: str | None = None,
    stores: Stores | None = None,
) -> list[tuple[int, int]]:
    """Check a batch of answers without writing anything.

    Values must be integers 1-5 and every question must exist, be active and,
    when ``assessment_type`` is given, belong to that type.
    """
    stores = stores or Stores()
    answers = list(answers)
    serializer = AnswerSerializer(data=answers, many=True)
    if not serializer.is_valid():
        raise ValidationError(flatten_errors(serializer.errors))

    cleaned = [(item["question_id"], item["value"]) for item in serializer.validated_data]
    questions = stores.questions.get_questions(qid for qid, _ in cleaned)
    expected_type = normalize_assessment_type(assessment_type) if assessment_type else None
    errors = []
    for index, (question_id, _) in enumerate(cleaned):
        question = questions.get(question_id)
        if question is None or not question.is_active:
            errors.append(
                {
                    "field": f"[{index}].question_id",
                    "message": f"Unknown question {question_id}.",
                }
            )
        elif expected_type and question.assessment_type != expected_type:
            errors.append(
                {
                    "field": f"[{index}].question_id",
                    "message": (
                        f"Question {question_id} belongs to {question.assessment_type}, "
                        f"not {expected_type}."
                    ),
                }
            )
    if errors:
        raise ValidationError(errors)
    return cleaned


def save_response(
    *,
    user_id: int,
    question_id: int,
    value,
    stores: Stores | None = None,
) -> bool:
    """Record or overwrite a single answer. Returns True when it was new."""
    stores = stores or Stores()
    [(question_id, value)] = validate_answers(
        answers=[{"question_id": question_id, "value": value}], stores=stores
    )
    created = stores.responses.upsert_response(user_id, question_id, value)
    logger.debug("Saved response user=%s question=%s value=%s", user_id, question_id, value)
    return created


def clear_responses(
    *,
    user_id: int,
    assessment_type: str | None = None,
    stores: Stores | None = None,
) -> int:
    stores = stores or Stores()
    if assessment_type:
        assessment_type = _require_assessment_type(assessment_type)
    deleted = stores.responses.delete_responses(user_id, assessment_type)
    logger.info(
        "Cleared %s responses for user %s (%s)", deleted, user_id, assessment_type or "all types"
    )
    return deleted


def calculate_score(
    *,
    user_id: int,
    assessment_type: str,
    stores: Stores | None = None,
) -> ScoreCheck:
    """Progress check using the same pipeline as a full submission."""
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    computation = _compute(stores, user_id, assessment_type)
    progress = summarize_progress(computation.pillar_scores)
    return ScoreCheck(
        score=computation.overall_score,
        completion_rate=progress["completion_rate"],
        total_questions=progress["total_questions"],
        answered_questions=progress["answered_questions"],
        is_complete=computation.is_complete,
        pillar_scores=computation.pillar_scores,
    )


def submit_assessment(
    *,
    user_id: int,
    assessment_type: str,
    industry: str = "",
    responses: Iterable[Mapping] | None = None,
    stores: Stores | None = None,
) -> SubmissionResult:
    """Score a user's answers and store the result for (user, type, industry).

    Any ``responses`` passed in are validated up front and then written in the
    same transaction as the assessment row, so a failed submission leaves no
    partial answers or scores behind. Re-submitting overwrites the existing
    row in place.
    """
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    industry = normalize_industry(industry)
    answers = []
    if responses is not None:
        answers = validate_answers(
            answers=responses, assessment_type=assessment_type, stores=stores
        )

    try:
        with stores.atomic():
            for question_id, value in answers:
                stores.responses.upsert_response(user_id, question_id, value)

            computation = _compute(stores, user_id, assessment_type)
            insights = generate_insights(
                computation.overall_score, computation.pillar_scores, computation.weights
            )
            record = AssessmentRecord(
                user_id=user_id,
                assessment_type=assessment_type,
                industry=industry,
                overall_score=as_decimal(computation.overall_score),
                pillar_scores=[
                    dict(item)
                    for item in PillarScoreSerializer(computation.pillar_scores, many=True).data
                ],
                responses={
                    str(response.question_id): response.value
                    for response in computation.responses
                },
                insights=insights,
            )
            assessment, created = stores.assessments.upsert(record)
    except DatabaseError as exc:
        logger.exception("Submission for user %s could not be committed", user_id)
        raise PersistenceError("submit assessment", exc) from exc

    logger.info(
        "%s maturity assessment %s for user %s (%s/%s): %.1f",
        "Created" if created else "Updated",
        assessment.pk,
        user_id,
        assessment_type,
        industry,
        computation.overall_score,
    )
    return SubmissionResult(
        assessment_id=assessment.pk,
        is_new=created,
        overall_score=computation.overall_score,
        pillar_scores=computation.pillar_scores,
        insights=insights,
    )


def load_pillar_scores(assessment: MaturityAssessment) -> list[PillarScore]:
    """Read back the pillar breakdown stored on an assessment row."""
    serializer = PillarScoreSerializer(data=assessment.pillar_scores, many=True)
    serializer.is_valid(raise_exception=True)
    return serializer.save()


def get_weight_profile(*, assessment_type: str, stores: Stores | None = None) -> list[ResolvedWeight]:
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    questions = stores.questions.list_active_questions(assessment_type)
    active = list(dict.fromkeys(question.pillar_code for question in questions))
    return resolve_weights(assessment_type, active, stores.weights.get_weights(assessment_type))


def list_weight_profiles(*, assessment_type: str) -> list[dict]:
    """Preset profiles that can be applied to ``assessment_type``."""
    return profiles_for_assessment_type(_require_assessment_type(assessment_type))


def _known_pillars(stores: Stores, assessment_type: str) -> dict[str, str]:
    return {pillar.code: pillar.name for pillar in stores.questions.list_pillars(assessment_type)}


def set_weight_override(
    *,
    assessment_type: str,
    pillar_code: str,
    weight,
    created_by: str = "",
    stores: Stores | None = None,
) -> list[ResolvedWeight]:
    """Store an explicit weight for one pillar and return the resulting profile.

    The override is rolled back if the resulting profile cannot be normalized.
    """
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    serializer = WeightOverrideSerializer(data={"pillar_code": pillar_code, "weight": weight})
    if not serializer.is_valid():
        raise ValidationError(flatten_errors(serializer.errors))
    code = serializer.validated_data["pillar_code"].strip().upper()
    if code not in _known_pillars(stores, assessment_type):
        raise ValidationError(
            [{"field": "pillar_code", "message": f"Unknown pillar {code} for {assessment_type}."}]
        )

    with stores.atomic():
        stores.weights.set_weight(
            assessment_type,
            code,
            serializer.validated_data["weight"],
            created_by=created_by,
        )
        profile = get_weight_profile(assessment_type=assessment_type, stores=stores)
    logger.info(
        "Weight override %s/%s = %s by %s",
        assessment_type,
        code,
        serializer.validated_data["weight"],
        created_by or "system",
    )
    return profile


def replace_weight_profile(
    *,
    assessment_type: str,
    weights: Mapping[str, object],
    created_by: str = "",
    is_default: bool = False,
    stores: Stores | None = None,
) -> list[ResolvedWeight]:
    """Store a complete pillar -> weight mapping that already sums to 100."""
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    serializer = WeightProfileSerializer(data={"weights": dict(weights)})
    if not serializer.is_valid():
        raise ValidationError(flatten_errors(serializer.errors))
    cleaned = {
        code.strip().upper(): value
        for code, value in serializer.validated_data["weights"].items()
    }

    known = _known_pillars(stores, assessment_type)
    unknown = sorted(code for code in cleaned if code not in known)
    if unknown:
        raise ValidationError(
            [
                {"field": f"weights.{code}", "message": f"Unknown pillar {code} for {assessment_type}."}
                for code in unknown
            ]
        )
    check = validate_weights(cleaned)
    if not check["valid"]:
        raise ValidationError([{"field": "weights", "message": check["message"]}])

    with stores.atomic():
        stores.weights.replace(
            assessment_type, cleaned, is_default=is_default, created_by=created_by
        )
        profile = get_weight_profile(assessment_type=assessment_type, stores=stores)
    logger.info(
        "Replaced %s weight profile (%s pillars) by %s",
        assessment_type,
        len(cleaned),
        created_by or "system",
    )
    return profile


def reset_weight_profile(*, assessment_type: str, stores: Stores | None = None) -> int:
    """Drop every stored weight so the equal split applies again."""
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    deleted = stores.weights.clear(assessment_type)
    logger.info("Reset %s weight profile (%s rows removed)", assessment_type, deleted)
    return deleted


def apply_weight_profile(
    *,
    assessment_type: str,
    profile_key: str,
    created_by: str = "",
    stores: Stores | None = None,
) -> list[ResolvedWeight]:
    """Persist one of the preset profiles as explicit overrides."""
    stores = stores or Stores()
    assessment_type = _require_assessment_type(assessment_type)
    profile = get_profile(profile_key)
    if not profile or assessment_type not in profile["applicable_to"]:
        raise ValidationError(
            [
                {
                    "field": "profile",
                    "message": f"Profile '{profile_key}' is not available for {assessment_type}.",
                }
            ]
        )
    questions = stores.questions.list_active_questions(assessment_type)
    names = {}
    for question in questions:
        names.setdefault(question.pillar_name, question.pillar_code)
    if not names:
        raise ValidationError(
            [{"field": "assessment_type", "message": f"{assessment_type} has no active questions."}]
        )
    by_name = apply_profile_to_pillars(profile_key, list(names))
    weights = {names[name]: weight for name, weight in by_name.items()}
    return replace_weight_profile(
        assessment_type=assessment_type,
        weights=weights,
        created_by=created_by or f"profile:{profile_key}",
        stores=stores,
    )


def list_assessments(
    *,
    user_id: int,
    assessment_type: str | None = None,
    stores: Stores | None = None,
) -> list[MaturityAssessment]:
    stores = stores or Stores()
    if assessment_type:
        assessment_type = _require_assessment_type(assessment_type)
    return stores.assessments.list_for_user(user_id, assessment_type)


def summarize_assessments(*, user_id: int, stores: Stores | None = None) -> dict:
    """Aggregate statistics over a user's stored assessments."""
    assessments = list_assessments(user_id=user_id, stores=stores)
    distribution = {"excellent": 0, "good": 0, "needs_improvement": 0}
    if not assessments:
        return {
            "total_assessments": 0,
            "average_score": 0.0,
            "highest_score": 0.0,
            "lowest_score": 0.0,
            "latest_completed_at": None,
            "distribution": distribution,
        }

    scores = [as_decimal(assessment.overall_score) for assessment in assessments]
    for score in scores:
        if score >= SUMMARY_EXCELLENT:
            distribution["excellent"] += 1
        elif score >= SUMMARY_GOOD:
            distribution["good"] += 1
        else:
            distribution["needs_improvement"] += 1
    average = round_half_up(sum(scores, Decimal("0")) / len(scores), SCORE_PLACES)
    latest = max(assessment.completed_at for assessment in assessments)
    return {
        "total_assessments": len(assessments),
        "average_score": float(average),
        "highest_score": float(max(scores)),
        "lowest_score": float(min(scores)),
        "latest_completed_at": latest.isoformat(),
        "distribution": distribution,
    }
