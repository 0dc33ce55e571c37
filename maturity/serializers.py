from decimal import Decimal

from rest_framework import serializers

from .constants import MAX_RESPONSE_VALUE, MIN_RESPONSE_VALUE
from .models import MaturityAssessment
from .scoring import PillarScore


class LikertValueField(serializers.IntegerField):
    """Integer answer that refuses strings, floats and booleans instead of coercing them."""

    def __init__(self, **kwargs):
        kwargs.setdefault("min_value", MIN_RESPONSE_VALUE)
        kwargs.setdefault("max_value", MAX_RESPONSE_VALUE)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        if isinstance(data, bool) or not isinstance(data, int):
            self.fail("invalid")
        return super().to_internal_value(data)


class AnswerSerializer(serializers.Serializer):
    question_id = serializers.IntegerField(min_value=1)
    value = LikertValueField()


class SubmissionSerializer(serializers.Serializer):
    assessment_type = serializers.CharField(max_length=20)
    industry = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    # Answer contents are validated by the service against the catalogue.
    responses = serializers.ListField(child=serializers.DictField(), required=False)


class WeightOverrideSerializer(serializers.Serializer):
    pillar_code = serializers.CharField(max_length=20)
    weight = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
    )


class WeightProfileSerializer(serializers.Serializer):
    weights = serializers.DictField(
        child=serializers.DecimalField(
            max_digits=5,
            decimal_places=2,
            min_value=Decimal("0"),
            max_value=Decimal("100"),
        ),
        allow_empty=False,
    )


class PillarScoreSerializer(serializers.Serializer):
    pillar_code = serializers.CharField()
    pillar_name = serializers.CharField()
    total_questions = serializers.IntegerField(min_value=0)
    answered_questions = serializers.IntegerField(min_value=0)
    raw_average = serializers.FloatField(min_value=0, max_value=MAX_RESPONSE_VALUE)
    score = serializers.IntegerField(min_value=0, max_value=100)
    completion_rate = serializers.IntegerField(min_value=0, max_value=100)
    role = serializers.CharField(required=False)

    def to_representation(self, instance):
        if isinstance(instance, PillarScore):
            instance = instance.to_dict()
        return super().to_representation(instance)

    def create(self, validated_data):
        return PillarScore.from_dict(validated_data)


class MaturityAssessmentSerializer(serializers.ModelSerializer):
    overall_score = serializers.FloatField()

    class Meta:
        model = MaturityAssessment
        fields = [
            "id",
            "assessment_type",
            "industry",
            "overall_score",
            "pillar_scores",
            "insights",
            "completed_at",
        ]


def flatten_errors(errors, prefix: str = "") -> list[dict]:
    """Turn DRF's nested ``serializer.errors`` into a flat list of error dicts."""
    flat: list[dict] = []
    if isinstance(errors, dict):
        for key, value in errors.items():
            field = f"{prefix}.{key}" if prefix else str(key)
            flat.extend(flatten_errors(value, field))
    elif isinstance(errors, list):
        for index, value in enumerate(errors):
            if isinstance(value, (dict, list)):
                if value:
                    flat.extend(flatten_errors(value, f"{prefix}[{index}]"))
            else:
                flat.append({"field": prefix, "message": str(value)})
    else:
        flat.append({"field": prefix, "message": str(errors)})
    return flat
