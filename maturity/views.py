import json
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from . import services
from .exceptions import MaturityError, NormalizationError, PersistenceError, ValidationError
from .serializers import MaturityAssessmentSerializer, SubmissionSerializer, flatten_errors
from .stores import Stores

logger = logging.getLogger(__name__)

API_ACTOR = "API"


class ApiKeyRequiredMixin:
    """Simple header-based API key authentication."""

    require_key = True
    public_methods: tuple[str, ...] = ()

    def dispatch(self, request, *args, **kwargs):
        api_key = getattr(settings, "API_ACCESS_TOKEN", None)
        if self.require_key and api_key and request.method not in self.public_methods:
            provided = request.headers.get("X-API-Key") or request.GET.get("api_key")
            if provided != api_key:
                return JsonResponse({"detail": "Invalid or missing API key"}, status=401)
        return super().dispatch(request, *args, **kwargs)


class MaturityApiView(ApiKeyRequiredMixin, View):
    """Base view: injects the stores and maps engine errors onto HTTP statuses."""

    def dispatch(self, request, *args, **kwargs):
        self.stores = Stores(getattr(settings, "MATURITY_DATABASE_ALIAS", "default"))
        try:
            return super().dispatch(request, *args, **kwargs)
        except ValidationError as exc:
            return JsonResponse({"detail": str(exc), "errors": exc.errors}, status=400)
        except NormalizationError as exc:
            return JsonResponse({"detail": str(exc)}, status=409)
        except PersistenceError:
            return JsonResponse(
                {"detail": "Your results could not be saved. Please try again."},
                status=503,
            )
        except MaturityError as exc:
            logger.error("Unhandled maturity error: %s", exc)
            return JsonResponse({"detail": str(exc)}, status=500)

    def load_payload(self, request) -> dict:
        try:
            payload = json.loads(request.body or "{}")
        except json.JSONDecodeError:
            raise ValidationError("Invalid JSON payload")
        if not isinstance(payload, dict):
            raise ValidationError("JSON payload must be an object.")
        return payload

    def get_user(self, user_id):
        return get_object_or_404(get_user_model(), pk=user_id)


@method_decorator(csrf_exempt, name="dispatch")
class ResponseApiView(MaturityApiView):
    """Record one answer, or clear a user's answers for a retake."""

    def post(self, request, user_id):
        user = self.get_user(user_id)
        payload = self.load_payload(request)
        created = services.save_response(
            user_id=user.pk,
            question_id=payload.get("question_id"),
            value=payload.get("value"),
            stores=self.stores,
        )
        return JsonResponse(
            {
                "question_id": payload.get("question_id"),
                "value": payload.get("value"),
                "created": created,
            },
            status=201 if created else 200,
        )

    def delete(self, request, user_id):
        user = self.get_user(user_id)
        deleted = services.clear_responses(
            user_id=user.pk,
            assessment_type=request.GET.get("assessment_type"),
            stores=self.stores,
        )
        return JsonResponse({"deleted": deleted})


class ScoreApiView(MaturityApiView):
    """Progress check before final submission."""

    def get(self, request, user_id, assessment_type):
        user = self.get_user(user_id)
        check = services.calculate_score(
            user_id=user.pk, assessment_type=assessment_type, stores=self.stores
        )
        return JsonResponse(check.to_dict())


@method_decorator(csrf_exempt, name="dispatch")
class AssessmentApiView(MaturityApiView):
    """Submit an assessment or list the user's stored assessments."""

    def get(self, request, user_id):
        user = self.get_user(user_id)
        assessments = services.list_assessments(
            user_id=user.pk,
            assessment_type=request.GET.get("assessment_type"),
            stores=self.stores,
        )
        data = MaturityAssessmentSerializer(assessments, many=True).data
        return JsonResponse({"assessments": data})

    def post(self, request, user_id):
        user = self.get_user(user_id)
        serializer = SubmissionSerializer(data=self.load_payload(request))
        if not serializer.is_valid():
            raise ValidationError(flatten_errors(serializer.errors))
        data = serializer.validated_data
        result = services.submit_assessment(
            user_id=user.pk,
            assessment_type=data["assessment_type"],
            industry=data.get("industry", ""),
            responses=data.get("responses"),
            stores=self.stores,
        )
        return JsonResponse(result.to_dict(), status=201 if result.is_new else 200)


class AssessmentSummaryApiView(MaturityApiView):
    def get(self, request, user_id):
        user = self.get_user(user_id)
        return JsonResponse(
            services.summarize_assessments(user_id=user.pk, stores=self.stores)
        )


@method_decorator(csrf_exempt, name="dispatch")
class WeightProfileApiView(MaturityApiView):
    """Read the resolved weight profile; changes require the API key."""

    public_methods = ("GET", "HEAD", "OPTIONS")

    def _render(self, assessment_type, profile, status=200):
        return JsonResponse(
            {
                "assessment_type": assessment_type.upper(),
                "weights": [entry.to_dict() for entry in profile],
            },
            status=status,
        )

    def get(self, request, assessment_type):
        profile = services.get_weight_profile(
            assessment_type=assessment_type, stores=self.stores
        )
        return self._render(assessment_type, profile)

    def post(self, request, assessment_type):
        payload = self.load_payload(request)
        profile = services.set_weight_override(
            assessment_type=assessment_type,
            pillar_code=payload.get("pillar_code") or "",
            weight=payload.get("weight"),
            created_by=API_ACTOR,
            stores=self.stores,
        )
        return self._render(assessment_type, profile)

    def put(self, request, assessment_type):
        payload = self.load_payload(request)
        profile = services.replace_weight_profile(
            assessment_type=assessment_type,
            weights=payload.get("weights") or {},
            created_by=API_ACTOR,
            stores=self.stores,
        )
        return self._render(assessment_type, profile)

    def delete(self, request, assessment_type):
        deleted = services.reset_weight_profile(
            assessment_type=assessment_type, stores=self.stores
        )
        return JsonResponse({"assessment_type": assessment_type.upper(), "deleted": deleted})


@method_decorator(csrf_exempt, name="dispatch")
class WeightPresetApiView(MaturityApiView):
    """List preset profiles for a type, or apply one as explicit overrides."""

    public_methods = ("GET", "HEAD", "OPTIONS")

    def get(self, request, assessment_type):
        presets = [
            {
                "key": profile["key"],
                "name": profile["name"],
                "description": profile["description"],
                "weights": profile["weights"],
            }
            for profile in services.list_weight_profiles(assessment_type=assessment_type)
        ]
        return JsonResponse({"assessment_type": assessment_type.upper(), "profiles": presets})

    def post(self, request, assessment_type, profile_key):
        profile = services.apply_weight_profile(
            assessment_type=assessment_type,
            profile_key=profile_key,
            created_by=f"{API_ACTOR}:{profile_key}",
            stores=self.stores,
        )
        return JsonResponse(
            {
                "assessment_type": assessment_type.upper(),
                "profile": profile_key,
                "weights": [entry.to_dict() for entry in profile],
            }
        )
