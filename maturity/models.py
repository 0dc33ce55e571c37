from django.conf import settings
from django.db import models
from django.db.models import Q

from .constants import (
    ASSESSMENT_TYPES,
    DEFAULT_INDUSTRY,
    MAX_RESPONSE_VALUE,
    MIN_RESPONSE_VALUE,
    PILLAR_ROLES,
    ROLE_GENERAL,
    normalize_assessment_type,
)
from .exceptions import ValidationError


class TimeStampedModel(models.Model):
    """Base class to track creation and modification times."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Pillar(TimeStampedModel):
    """Thematic grouping of questions within one assessment type."""

    assessment_type = models.CharField(max_length=20, choices=ASSESSMENT_TYPES)
    code = models.CharField(
        max_length=20,
        help_text="Short pillar code such as DATA or SEC.",
    )
    name = models.CharField(max_length=120)
    role = models.CharField(
        max_length=16,
        choices=PILLAR_ROLES,
        default=ROLE_GENERAL,
        help_text="Drives role-specific recommendations (data, security...).",
    )
    display_order = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ("assessment_type", "display_order", "code")
        constraints = [
            models.UniqueConstraint(
                fields=["assessment_type", "code"], name="uq_pillar_type_code"
            )
        ]

    def save(self, *args, **kwargs):
        self.assessment_type = normalize_assessment_type(self.assessment_type)
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.assessment_type} · {self.name}"


class QuestionQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Question(TimeStampedModel):
    """Likert-scale question belonging to one pillar."""

    LOCKED_FIELDS = ("assessment_type", "pillar_id")

    assessment_type = models.CharField(max_length=20, choices=ASSESSMENT_TYPES)
    pillar = models.ForeignKey(
        Pillar, related_name="questions", on_delete=models.CASCADE
    )
    text = models.TextField()
    display_order = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    objects = QuestionQuerySet.as_manager()

    class Meta:
        ordering = ("assessment_type", "display_order", "id")

    def save(self, *args, **kwargs):
        self.assessment_type = normalize_assessment_type(self.assessment_type)
        if self.pillar_id and self.pillar.assessment_type != self.assessment_type:
            raise ValidationError(
                f"Pillar {self.pillar.code} does not belong to {self.assessment_type}."
            )
        if self.pk:
            self._guard_answered_question()
        super().save(*args, **kwargs)

    def _guard_answered_question(self):
        previous = (
            Question.objects.using(self._state.db)
            .filter(pk=self.pk)
            .values(*self.LOCKED_FIELDS)
            .first()
        )
        if not previous:
            return
        changed = [
            field for field in self.LOCKED_FIELDS if previous[field] != getattr(self, field)
        ]
        if changed and self.responses.exists():
            raise ValidationError(
                [
                    {
                        "question_id": self.pk,
                        "field": field,
                        "message": "Question has responses and cannot be moved.",
                    }
                    for field in changed
                ]
            )

    def __str__(self):
        return f"{self.assessment_type} · {self.pillar.code} · Q{self.display_order}"


class Response(TimeStampedModel):
    """A user's Likert answer to one question. Overwritten in place."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="maturity_responses",
        on_delete=models.CASCADE,
    )
    question = models.ForeignKey(
        Question, related_name="responses", on_delete=models.CASCADE
    )
    value = models.PositiveSmallIntegerField()

    class Meta:
        ordering = ("question__display_order",)
        constraints = [
            models.UniqueConstraint(
                fields=["user", "question"], name="uq_response_user_question"
            ),
            models.CheckConstraint(
                condition=Q(value__gte=MIN_RESPONSE_VALUE) & Q(value__lte=MAX_RESPONSE_VALUE),
                name="ck_response_value_range",
            ),
        ]

    def __str__(self):
        return f"Response · {self.user_id} · {self.question_id} = {self.value}"


class PillarWeight(TimeStampedModel):
    """Importance weight (percentage) for a pillar of an assessment type."""

    assessment_type = models.CharField(max_length=20, choices=ASSESSMENT_TYPES)
    pillar_code = models.CharField(max_length=20)
    weight = models.DecimalField(max_digits=5, decimal_places=2)
    is_default = models.BooleanField(
        default=False,
        help_text="True for system-seeded weights, False for explicit overrides.",
    )
    created_by = models.CharField(max_length=120, blank=True)

    class Meta:
        ordering = ("assessment_type", "pillar_code")
        constraints = [
            models.UniqueConstraint(
                fields=["assessment_type", "pillar_code"],
                name="uq_pillar_weight_type_code",
            ),
            models.CheckConstraint(
                condition=Q(weight__gte=0) & Q(weight__lte=100),
                name="ck_pillar_weight_range",
            ),
        ]

    def __str__(self):
        return f"{self.assessment_type} · {self.pillar_code} = {self.weight}%"


class MaturityAssessment(TimeStampedModel):
    """Scored submission; one row per (user, assessment type, industry)."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="maturity_assessments",
        on_delete=models.CASCADE,
    )
    assessment_type = models.CharField(max_length=20, choices=ASSESSMENT_TYPES)
    industry = models.CharField(max_length=120, default=DEFAULT_INDUSTRY)
    overall_score = models.DecimalField(max_digits=5, decimal_places=1)
    pillar_scores = models.JSONField(default=list, blank=True)
    responses = models.JSONField(default=dict, blank=True)
    insights = models.JSONField(default=dict, blank=True)
    completed_at = models.DateTimeField()

    class Meta:
        ordering = ("-completed_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["user", "assessment_type", "industry"],
                name="uq_assessment_user_type_industry",
            )
        ]

    def __str__(self):
        return f"{self.user_id} · {self.assessment_type} · {self.industry}"
