"""
Django ORM implementations of the collaborators the scoring core reads from
and writes to.

Every store is bound to a database alias and converts ``DatabaseError`` into
``PersistenceError`` so callers see one failure type for storage problems.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from django.db import DEFAULT_DB_ALIAS, DatabaseError, transaction
from django.utils import timezone

from .constants import normalize_assessment_type, normalize_industry
from .exceptions import PersistenceError
from .models import MaturityAssessment, Pillar, PillarWeight, Question, Response
from .scoring import CatalogQuestion, StoredResponse
from .weights import WeightEntry

logger = logging.getLogger(__name__)


def persistence_guard(operation: str):
    """Wrap ORM errors raised by the decorated method in PersistenceError."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except DatabaseError as exc:
                logger.exception("Persistence failure during %s", operation)
                raise PersistenceError(operation, exc) from exc

        return wrapper

    return decorator


@dataclass
class AssessmentRecord:
    user_id: int
    assessment_type: str
    industry: str
    overall_score: Decimal
    pillar_scores: list = field(default_factory=list)
    responses: dict = field(default_factory=dict)
    insights: dict = field(default_factory=dict)

    def as_defaults(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "pillar_scores": self.pillar_scores,
            "responses": self.responses,
            "insights": self.insights,
            "completed_at": timezone.now(),
        }


class _BoundStore:
    def __init__(self, using: str = DEFAULT_DB_ALIAS):
        self.using = using


class QuestionCatalog(_BoundStore):
    @persistence_guard("list active questions")
    def list_active_questions(self, assessment_type: str) -> list[CatalogQuestion]:
        questions = (
            Question.objects.using(self.using)
            .active()
            .filter(assessment_type=normalize_assessment_type(assessment_type))
            .select_related("pillar")
            .order_by("pillar__display_order", "pillar__code", "display_order", "id")
        )
        return [
            CatalogQuestion(
                id=question.pk,
                pillar_code=question.pillar.code,
                pillar_name=question.pillar.name,
                pillar_role=question.pillar.role,
            )
            for question in questions
        ]

    @persistence_guard("list pillars")
    def list_pillars(self, assessment_type: str) -> list[Pillar]:
        return list(
            Pillar.objects.using(self.using).filter(
                assessment_type=normalize_assessment_type(assessment_type)
            )
        )

    @persistence_guard("load questions")
    def get_questions(self, question_ids: Iterable[int]) -> dict[int, Question]:
        questions = (
            Question.objects.using(self.using)
            .filter(pk__in=set(question_ids))
            .select_related("pillar")
        )
        return {question.pk: question for question in questions}


class ResponseStore(_BoundStore):
    @persistence_guard("read responses")
    def get_responses(self, user_id: int, assessment_type: str) -> list[StoredResponse]:
        rows = (
            Response.objects.using(self.using)
            .filter(
                user_id=user_id,
                question__assessment_type=normalize_assessment_type(assessment_type),
                question__is_active=True,
            )
            .values_list("question_id", "value")
        )
        return [StoredResponse(question_id=qid, value=value) for qid, value in rows]

    @persistence_guard("upsert response")
    def upsert_response(self, user_id: int, question_id: int, value: int) -> bool:
        _, created = Response.objects.using(self.using).update_or_create(
            user_id=user_id,
            question_id=question_id,
            defaults={"value": value},
        )
        return created

    @persistence_guard("delete responses")
    def delete_responses(self, user_id: int, assessment_type: str | None = None) -> int:
        queryset = Response.objects.using(self.using).filter(user_id=user_id)
        if assessment_type:
            queryset = queryset.filter(
                question__assessment_type=normalize_assessment_type(assessment_type)
            )
        deleted, _ = queryset.delete()
        return deleted


class WeightStore(_BoundStore):
    @persistence_guard("read weights")
    def get_weights(self, assessment_type: str) -> list[WeightEntry]:
        rows = PillarWeight.objects.using(self.using).filter(
            assessment_type=normalize_assessment_type(assessment_type)
        )
        return [
            WeightEntry(pillar_code=row.pillar_code, weight=row.weight, is_default=row.is_default)
            for row in rows
        ]

    @persistence_guard("store weight")
    def set_weight(
        self,
        assessment_type: str,
        pillar_code: str,
        weight: Decimal,
        *,
        is_default: bool = False,
        created_by: str = "",
    ) -> PillarWeight:
        row, _ = PillarWeight.objects.using(self.using).update_or_create(
            assessment_type=normalize_assessment_type(assessment_type),
            pillar_code=pillar_code.upper(),
            defaults={
                "weight": weight,
                "is_default": is_default,
                "created_by": created_by,
            },
        )
        return row

    @persistence_guard("replace weights")
    def replace(
        self,
        assessment_type: str,
        weights: dict[str, Decimal],
        *,
        is_default: bool = False,
        created_by: str = "",
    ) -> None:
        code = normalize_assessment_type(assessment_type)
        with transaction.atomic(using=self.using):
            PillarWeight.objects.using(self.using).filter(assessment_type=code).delete()
            PillarWeight.objects.using(self.using).bulk_create(
                [
                    PillarWeight(
                        assessment_type=code,
                        pillar_code=pillar_code.upper(),
                        weight=weight,
                        is_default=is_default,
                        created_by=created_by,
                    )
                    for pillar_code, weight in weights.items()
                ]
            )

    @persistence_guard("clear weights")
    def clear(self, assessment_type: str) -> int:
        deleted, _ = (
            PillarWeight.objects.using(self.using)
            .filter(assessment_type=normalize_assessment_type(assessment_type))
            .delete()
        )
        return deleted


class AssessmentStore(_BoundStore):
    @persistence_guard("find assessment")
    def find(self, user_id: int, assessment_type: str, industry: str) -> MaturityAssessment | None:
        return (
            MaturityAssessment.objects.using(self.using)
            .filter(
                user_id=user_id,
                assessment_type=normalize_assessment_type(assessment_type),
                industry=normalize_industry(industry),
            )
            .first()
        )

    @persistence_guard("insert assessment")
    def insert(self, record: AssessmentRecord) -> MaturityAssessment:
        return MaturityAssessment.objects.using(self.using).create(
            user_id=record.user_id,
            assessment_type=normalize_assessment_type(record.assessment_type),
            industry=normalize_industry(record.industry),
            **record.as_defaults(),
        )

    @persistence_guard("update assessment")
    def update(self, assessment_id: int, record: AssessmentRecord) -> int:
        return (
            MaturityAssessment.objects.using(self.using)
            .filter(pk=assessment_id)
            .update(**record.as_defaults(), updated_at=timezone.now())
        )

    @persistence_guard("upsert assessment")
    def upsert(self, record: AssessmentRecord) -> tuple[MaturityAssessment, bool]:
        """Insert or overwrite the row for (user, type, industry).

        ``update_or_create`` locks the existing row with SELECT ... FOR UPDATE
        and falls back to an update if a concurrent insert wins the unique
        constraint, so the stored row always comes from one submission.
        """
        return MaturityAssessment.objects.using(self.using).update_or_create(
            user_id=record.user_id,
            assessment_type=normalize_assessment_type(record.assessment_type),
            industry=normalize_industry(record.industry),
            defaults=record.as_defaults(),
        )

    @persistence_guard("list assessments")
    def list_for_user(self, user_id: int, assessment_type: str | None = None) -> list[MaturityAssessment]:
        queryset = MaturityAssessment.objects.using(self.using).filter(user_id=user_id)
        if assessment_type:
            queryset = queryset.filter(
                assessment_type=normalize_assessment_type(assessment_type)
            )
        return list(queryset.order_by("-completed_at", "-id"))


class Stores:
    """Bundle of stores sharing one database alias, passed into services."""

    def __init__(self, using: str = DEFAULT_DB_ALIAS):
        self.using = using
        self.questions = QuestionCatalog(using)
        self.responses = ResponseStore(using)
        self.weights = WeightStore(using)
        self.assessments = AssessmentStore(using)

    def atomic(self):
        return transaction.atomic(using=self.using)
