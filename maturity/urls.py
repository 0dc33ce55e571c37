from django.urls import path

from . import views

app_name = "maturity"

urlpatterns = [
    path(
        "users/<int:user_id>/responses/",
        views.ResponseApiView.as_view(),
        name="responses",
    ),
    path(
        "users/<int:user_id>/score/<str:assessment_type>/",
        views.ScoreApiView.as_view(),
        name="score",
    ),
    path(
        "users/<int:user_id>/assessments/",
        views.AssessmentApiView.as_view(),
        name="assessments",
    ),
    path(
        "users/<int:user_id>/assessments/summary/",
        views.AssessmentSummaryApiView.as_view(),
        name="assessment-summary",
    ),
    path(
        "weights/<str:assessment_type>/",
        views.WeightProfileApiView.as_view(),
        name="weights",
    ),
    path(
        "weights/<str:assessment_type>/profiles/",
        views.WeightPresetApiView.as_view(),
        name="weight-profiles",
    ),
    path(
        "weights/<str:assessment_type>/profiles/<slug:profile_key>/",
        views.WeightPresetApiView.as_view(),
        name="weight-profile-apply",
    ),
]
