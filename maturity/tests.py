import json
import threading
import time
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.db.models.query import QuerySet
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.urls import reverse

from maturity.constants import (
    CLOSING_RECOMMENDATION,
    DATA_RECOMMENDATION,
    FOUNDATIONAL_RECOMMENDATIONS,
    ROLE_DATA,
    ROLE_GENERAL,
    ROLE_SECURITY,
    ROLE_STRATEGY,
    SECURITY_RECOMMENDATION,
)
from maturity.exceptions import NormalizationError, PersistenceError, ValidationError
from maturity.insights import classify_score, generate_insights
from maturity.models import (
    MaturityAssessment,
    Pillar,
    PillarWeight,
    Question,
    Response,
)
from maturity.scoring import (
    CatalogQuestion,
    PillarScore,
    StoredResponse,
    aggregate_responses,
    compose_overall_score,
    percentage_from_average,
)
from maturity.services import (
    apply_weight_profile,
    calculate_score,
    clear_responses,
    get_weight_profile,
    list_assessments,
    load_pillar_scores,
    replace_weight_profile,
    reset_weight_profile,
    save_response,
    set_weight_override,
    submit_assessment,
    summarize_assessments,
)
from maturity.stores import AssessmentRecord, Stores
from maturity.weights import (
    WeightEntry,
    apply_profile_to_pillars,
    profiles_for_assessment_type,
    resolve_weights,
    validate_weights,
)

User = get_user_model()

CORE_PILLARS = [
    ("STRAT", "Strategy & Leadership", ROLE_STRATEGY),
    ("DATA", "Data Readiness", ROLE_DATA),
    ("SEC", "Security & Compliance", ROLE_SECURITY),
    ("TALENT", "Skills & Talent", ROLE_GENERAL),
]


def build_catalog(assessment_type, pillars, questions_per_pillar=2):
    questions = {}
    for order, (code, name, role) in enumerate(pillars, start=1):
        pillar = Pillar.objects.create(
            assessment_type=assessment_type,
            code=code,
            name=name,
            role=role,
            display_order=order,
        )
        questions[code] = [
            Question.objects.create(
                assessment_type=assessment_type,
                pillar=pillar,
                text=f"{name} question {position}",
                display_order=position,
            )
            for position in range(1, questions_per_pillar + 1)
        ]
    return questions


def answers_for(questions, value):
    return [
        {"question_id": question.id, "value": value}
        for pillar_questions in questions.values()
        for question in pillar_questions
    ]


def make_pillar(code, score, role=ROLE_GENERAL):
    return PillarScore(
        pillar_code=code,
        pillar_name=f"{code.title()} pillar",
        total_questions=2,
        answered_questions=2,
        raw_average=score / 20,
        score=score,
        completion_rate=100,
        role=role,
    )


def weight_sum(profile):
    return sum((entry.weight for entry in profile), Decimal("0"))


class WeightResolverTests(SimpleTestCase):
    def test_equal_split_without_stored_weights(self):
        profile = resolve_weights("CORE", ["STRAT", "DATA", "SEC", "TALENT"], [])
        self.assertEqual([entry.weight for entry in profile], [Decimal("25.00")] * 4)
        self.assertTrue(all(entry.is_default for entry in profile))

    def test_single_override_splits_remainder(self):
        profile = resolve_weights(
            "CORE",
            ["STRAT", "DATA", "SEC", "TALENT"],
            [WeightEntry("SEC", Decimal("40"))],
        )
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(weights["SEC"], Decimal("40.00"))
        for code in ("STRAT", "DATA", "TALENT"):
            self.assertEqual(weights[code], Decimal("20.00"))
        self.assertEqual(weight_sum(profile), Decimal("100.00"))

    def test_override_leaves_remainder_to_default_weights(self):
        entries = [
            WeightEntry("STRAT", Decimal("40"), is_default=True),
            WeightEntry("DATA", Decimal("30"), is_default=True),
            WeightEntry("SEC", Decimal("40")),
            WeightEntry("TALENT", Decimal("10"), is_default=True),
        ]
        profile = resolve_weights("CORE", ["STRAT", "DATA", "SEC", "TALENT"], entries)
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(
            weights,
            {
                "STRAT": Decimal("30.00"),
                "DATA": Decimal("22.50"),
                "SEC": Decimal("40.00"),
                "TALENT": Decimal("7.50"),
            },
        )
        sources = {entry.pillar_code: entry.source for entry in profile}
        self.assertEqual(sources["SEC"], "override")
        self.assertEqual(sources["STRAT"], "default")

    def test_pillars_without_rows_join_defaults_at_equal_share(self):
        entries = [
            WeightEntry("STRAT", Decimal("50"), is_default=True),
            WeightEntry("DATA", Decimal("50"), is_default=True),
        ]
        profile = resolve_weights("CORE", ["STRAT", "DATA", "SEC", "TALENT"], entries)
        self.assertEqual(
            [entry.weight for entry in profile],
            [Decimal("33.33"), Decimal("33.33"), Decimal("16.67"), Decimal("16.67")],
        )
        self.assertEqual(profile[2].source, "equal_split")

    def test_rounding_residue_goes_to_one_pillar(self):
        profile = resolve_weights("CORE", ["A", "B", "C"], [])
        self.assertEqual(weight_sum(profile), Decimal("100.00"))
        self.assertEqual(
            sorted(entry.weight for entry in profile),
            [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")],
        )

    def test_overweight_profile_is_rescaled(self):
        profile = resolve_weights(
            "CORE",
            ["A", "B", "C"],
            [WeightEntry("A", Decimal("80")), WeightEntry("B", Decimal("40"))],
        )
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(weights["C"], Decimal("0.00"))
        self.assertEqual(weights["A"], Decimal("66.67"))
        self.assertEqual(weights["B"], Decimal("33.33"))
        self.assertEqual(weight_sum(profile), Decimal("100.00"))

    def test_small_deviation_is_absorbed_and_logged(self):
        entries = [WeightEntry(code, Decimal("33.33")) for code in ("A", "B", "C")]
        with self.assertLogs("maturity.weights", level="WARNING") as logs:
            profile = resolve_weights("CORE", ["A", "B", "C"], entries)
        self.assertIn("ConsistencyWarning", logs.output[0])
        self.assertEqual(weight_sum(profile), Decimal("100.00"))

    def test_negative_weight_cannot_be_normalized(self):
        with self.assertRaises(NormalizationError):
            resolve_weights("CORE", ["A", "B"], [WeightEntry("A", Decimal("-5"))])

    def test_zero_total_cannot_be_normalized(self):
        with self.assertRaises(NormalizationError):
            resolve_weights("TEST", ["A"], [WeightEntry("A", Decimal("0"))])

    def test_weights_for_inactive_pillars_are_ignored(self):
        profile = resolve_weights(
            "CORE", ["A", "B"], [WeightEntry("RETIRED", Decimal("50"))]
        )
        self.assertEqual([entry.pillar_code for entry in profile], ["A", "B"])
        self.assertEqual([entry.weight for entry in profile], [Decimal("50.00")] * 2)

    def test_no_active_pillars_returns_empty_profile(self):
        self.assertEqual(resolve_weights("CORE", [], [WeightEntry("A", Decimal("10"))]), [])

    def test_resolved_profiles_always_sum_to_one_hundred(self):
        cases = [
            (["A"], []),
            (["A", "B", "C", "D", "E", "F", "G"], []),
            (["A", "B", "C"], [WeightEntry("A", Decimal("12.34"))]),
            (["A", "B", "C", "D"], [WeightEntry("A", Decimal("99.99"))]),
            (["A", "B"], [WeightEntry("A", Decimal("10")), WeightEntry("B", Decimal("20"))]),
            (["A", "B", "C"], [WeightEntry("A", Decimal("100")), WeightEntry("B", Decimal("100"))]),
            (["A", "B", "C", "D", "E", "F"], [WeightEntry("C", Decimal("0.01"))]),
        ]
        for active, entries in cases:
            with self.subTest(active=active, entries=entries):
                self.assertEqual(
                    weight_sum(resolve_weights("CORE", active, entries)), Decimal("100.00")
                )

    def test_validate_weights_uses_tolerance(self):
        self.assertTrue(validate_weights({"A": 50, "B": "50.00"})["valid"])
        self.assertTrue(validate_weights({"A": "33.33", "B": "33.33", "C": "33.34"})["valid"])
        result = validate_weights({"A": 50, "B": 40})
        self.assertFalse(result["valid"])
        self.assertEqual(result["difference"], -10.0)


class WeightPresetTests(SimpleTestCase):
    def test_profiles_filtered_by_assessment_type(self):
        keys = [profile["key"] for profile in profiles_for_assessment_type("frontier")]
        self.assertEqual(keys, ["balanced", "innovation_driven", "technology"])

    def test_missing_pillars_get_equal_share_then_normalized(self):
        weights = apply_profile_to_pillars(
            "healthcare",
            ["Data Readiness", "Security & Compliance", "Quantum Readiness"],
        )
        self.assertEqual(sum(weights.values()), Decimal("100.00"))
        self.assertGreater(weights["Quantum Readiness"], weights["Security & Compliance"])
        self.assertGreater(weights["Security & Compliance"], weights["Data Readiness"])

    def test_unknown_profile(self):
        self.assertIsNone(apply_profile_to_pillars("astrology", ["Data Readiness"]))


class AggregationTests(SimpleTestCase):
    def setUp(self):
        self.questions = [
            CatalogQuestion(1, "DATA", "Data Readiness", ROLE_DATA),
            CatalogQuestion(2, "DATA", "Data Readiness", ROLE_DATA),
            CatalogQuestion(3, "DATA", "Data Readiness", ROLE_DATA),
            CatalogQuestion(4, "SEC", "Security & Compliance", ROLE_SECURITY),
        ]

    def test_missing_answers_are_excluded_from_average(self):
        scores = aggregate_responses(
            self.questions, [StoredResponse(1, 5), StoredResponse(2, 3)]
        )
        data = scores[0]
        self.assertEqual(data.raw_average, 4.0)
        self.assertEqual(data.score, 80)
        self.assertEqual(data.completion_rate, 67)
        self.assertEqual((data.total_questions, data.answered_questions), (3, 2))

    def test_pillar_without_answers_scores_zero(self):
        scores = aggregate_responses(self.questions, [StoredResponse(1, 4)])
        security = scores[1]
        self.assertEqual(security.pillar_code, "SEC")
        self.assertEqual(security.score, 0)
        self.assertEqual(security.completion_rate, 0)
        self.assertEqual(security.raw_average, 0.0)

    def test_answers_outside_catalog_are_ignored(self):
        scores = aggregate_responses(self.questions, [StoredResponse(99, 5)])
        self.assertEqual([pillar.answered_questions for pillar in scores], [0, 0])

    def test_percentages_round_half_up(self):
        self.assertEqual(percentage_from_average(13, 8), 33)
        self.assertEqual(percentage_from_average(0, 0), 0)


class CompositionTests(SimpleTestCase):
    def test_no_weights_gives_incomplete_zero(self):
        composite = compose_overall_score([make_pillar("A", 80)], [])
        self.assertEqual(composite.overall_score, 0.0)
        self.assertFalse(composite.is_complete)

    def test_unmatched_pillars_contribute_nothing(self):
        weights = [WeightEntry("A", Decimal("50")), WeightEntry("GHOST", Decimal("50"))]
        composite = compose_overall_score([make_pillar("A", 80), make_pillar("B", 100)], weights)
        self.assertEqual(composite.overall_score, 40.0)

    def test_overall_score_stays_within_bounds(self):
        weight_sets = [
            resolve_weights("CORE", ["A", "B", "C"], []),
            resolve_weights("CORE", ["A", "B", "C"], [WeightEntry("A", Decimal("70"))]),
            resolve_weights("CORE", ["A", "B", "C"], [WeightEntry("C", Decimal("100"))]),
        ]
        score_sets = [(0, 0, 0), (100, 100, 100), (0, 50, 100), (33, 67, 99), (100, 0, 1)]
        for weights in weight_sets:
            for scores in score_sets:
                pillars = [make_pillar(code, score) for code, score in zip("ABC", scores)]
                overall = compose_overall_score(pillars, weights).overall_score
                with self.subTest(weights=weights, scores=scores):
                    self.assertGreaterEqual(overall, 0)
                    self.assertLessEqual(overall, 100)


class InsightGeneratorTests(SimpleTestCase):
    def test_score_bands(self):
        expectations = [
            (100, "AI Leader"),
            (80, "AI Leader"),
            (79.99, "AI Adopter"),
            (60, "AI Adopter"),
            (59.9, "AI Explorer"),
            (40, "AI Explorer"),
            (39.9, "AI Starter"),
            (0, "AI Starter"),
        ]
        for score, category in expectations:
            with self.subTest(score=score):
                self.assertEqual(classify_score(score)["category"], category)

    def test_empty_breakdown_still_returns_insights(self):
        insights = generate_insights(0.0, [])
        self.assertEqual(insights["strengths"], [])
        self.assertEqual(insights["gaps"], [])
        self.assertEqual(insights["recommendations"], [CLOSING_RECOMMENDATION])
        self.assertEqual(insights["score_category"], "AI Starter")
        self.assertTrue(insights["overall_assessment"])

    def test_recommendation_order(self):
        pillars = [
            make_pillar("SEC", 60, ROLE_SECURITY),
            make_pillar("DATA", 30, ROLE_DATA),
            make_pillar("STRAT", 20, ROLE_STRATEGY),
        ]
        insights = generate_insights(36.7, pillars)
        self.assertEqual(
            insights["recommendations"],
            FOUNDATIONAL_RECOMMENDATIONS
            + [DATA_RECOMMENDATION, SECURITY_RECOMMENDATION, CLOSING_RECOMMENDATION],
        )

    def test_role_triggers_respect_thresholds(self):
        pillars = [make_pillar("DATA", 60, ROLE_DATA), make_pillar("SEC", 70, ROLE_SECURITY)]
        insights = generate_insights(65.0, pillars)
        self.assertEqual(insights["recommendations"], [CLOSING_RECOMMENDATION])
        self.assertEqual([item["pillar_code"] for item in insights["strengths"]], ["SEC"])
        self.assertEqual(insights["gaps"], [])

    def test_gap_priorities(self):
        pillars = [make_pillar("A", 39), make_pillar("B", 40), make_pillar("C", 59), make_pillar("D", 60)]
        gaps = generate_insights(50.0, pillars)["gaps"]
        self.assertEqual(
            [(gap["pillar_code"], gap["priority"]) for gap in gaps],
            [("A", "High"), ("B", "Medium"), ("C", "Medium")],
        )

    def test_weighted_priorities_ranked_by_impact(self):
        pillars = [make_pillar("A", 20), make_pillar("B", 50), make_pillar("C", 90), make_pillar("D", 70)]
        weights = [
            WeightEntry("A", Decimal("40")),
            WeightEntry("B", Decimal("20")),
            WeightEntry("C", Decimal("30")),
            WeightEntry("D", Decimal("10")),
        ]
        priorities = generate_insights(45.0, pillars, weights)["weighted_priorities"]
        self.assertEqual([item["pillar_code"] for item in priorities], ["A", "B", "C"])
        self.assertEqual(
            [item["priority"] for item in priorities], ["Critical", "High", "Low"]
        )
        self.assertEqual(priorities[0]["impact_score"], 32.0)


class SubmissionTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="ada", password="pass12345")
        self.questions = build_catalog("CORE", CORE_PILLARS)

    def test_default_weight_profile_is_equal_split(self):
        profile = get_weight_profile(assessment_type="core")
        self.assertEqual([entry.pillar_code for entry in profile], ["STRAT", "DATA", "SEC", "TALENT"])
        self.assertEqual([entry.weight for entry in profile], [Decimal("25.00")] * 4)

    def test_perfect_answers_score_one_hundred(self):
        result = submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            responses=answers_for(self.questions, 5),
        )
        self.assertTrue(result.is_new)
        self.assertEqual(result.overall_score, 100.0)
        self.assertTrue(all(pillar.score == 100 for pillar in result.pillar_scores))
        self.assertEqual(result.insights["score_category"], "AI Leader")
        self.assertEqual(result.insights["recommendations"], [CLOSING_RECOMMENDATION])

    def test_lowest_answers_score_twenty(self):
        result = submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            responses=answers_for(self.questions, 1),
        )
        self.assertEqual(result.overall_score, 20.0)
        self.assertEqual(result.insights["score_category"], "AI Starter")
        gaps = result.insights["gaps"]
        self.assertEqual(len(gaps), 4)
        self.assertTrue(all(gap["priority"] == "High" for gap in gaps))
        self.assertEqual(
            result.insights["recommendations"],
            FOUNDATIONAL_RECOMMENDATIONS
            + [DATA_RECOMMENDATION, SECURITY_RECOMMENDATION, CLOSING_RECOMMENDATION],
        )

    def test_resubmission_overwrites_single_row(self):
        user = User.objects.filter(pk=7).first() or User.objects.create_user(
            id=7, username="seven", password="pass12345"
        )
        advanced = build_catalog(
            "ADVANCED",
            [("TECH", "Technology & Infrastructure", ROLE_GENERAL), ("SEC", "Security", ROLE_SECURITY)],
        )
        first = submit_assessment(
            user_id=7,
            assessment_type="ADVANCED",
            industry="Healthcare",
            responses=answers_for(advanced, 5),
        )
        second = submit_assessment(
            user_id=7,
            assessment_type="ADVANCED",
            industry="Healthcare",
            responses=answers_for(advanced, 1),
        )
        self.assertTrue(first.is_new)
        self.assertFalse(second.is_new)
        self.assertEqual(first.assessment_id, second.assessment_id)
        rows = MaturityAssessment.objects.filter(
            user=user, assessment_type="ADVANCED", industry="Healthcare"
        )
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().overall_score, Decimal("20.0"))

    def test_override_shapes_weighted_score(self):
        profile = set_weight_override(assessment_type="CORE", pillar_code="sec", weight=40)
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(weights["SEC"], Decimal("40.00"))
        self.assertEqual(weights["STRAT"], Decimal("20.00"))
        self.assertEqual(weights["DATA"], Decimal("20.00"))
        self.assertEqual(weights["TALENT"], Decimal("20.00"))

        answers = answers_for({"SEC": self.questions["SEC"]}, 5) + answers_for(
            {code: qs for code, qs in self.questions.items() if code != "SEC"}, 1
        )
        result = submit_assessment(user_id=self.user.pk, assessment_type="CORE", responses=answers)
        self.assertEqual(result.overall_score, 52.0)

    def test_repeat_submission_is_idempotent(self):
        answers = answers_for(self.questions, 4)
        first = submit_assessment(user_id=self.user.pk, assessment_type="CORE", responses=answers)
        second = submit_assessment(user_id=self.user.pk, assessment_type="CORE", responses=answers)
        self.assertEqual(first.assessment_id, second.assessment_id)
        self.assertFalse(second.is_new)
        self.assertEqual(first.overall_score, second.overall_score)
        self.assertEqual(first.pillar_scores, second.pillar_scores)

    def test_progress_check_matches_submission(self):
        save_response(user_id=self.user.pk, question_id=self.questions["DATA"][0].id, value=3)
        save_response(user_id=self.user.pk, question_id=self.questions["SEC"][1].id, value=4)
        check = calculate_score(user_id=self.user.pk, assessment_type="CORE")
        again = calculate_score(user_id=self.user.pk, assessment_type="CORE")
        result = submit_assessment(user_id=self.user.pk, assessment_type="CORE")
        self.assertEqual(check, again)
        self.assertEqual(check.score, result.overall_score)
        self.assertEqual(check.pillar_scores, result.pillar_scores)
        self.assertEqual((check.total_questions, check.answered_questions), (8, 2))
        self.assertEqual(check.completion_rate, 25)

    def test_unanswered_pillars_report_zero(self):
        result = submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            responses=answers_for({"DATA": self.questions["DATA"]}, 5),
        )
        by_code = {pillar.pillar_code: pillar for pillar in result.pillar_scores}
        self.assertEqual(by_code["STRAT"].score, 0)
        self.assertEqual(by_code["STRAT"].completion_rate, 0)
        self.assertEqual(result.overall_score, 25.0)

    def test_stored_breakdown_reads_back_unchanged(self):
        save_response(user_id=self.user.pk, question_id=self.questions["DATA"][0].id, value=2)
        result = submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            responses=answers_for({"SEC": self.questions["SEC"]}, 4),
        )
        stored = MaturityAssessment.objects.get(pk=result.assessment_id)
        self.assertEqual(load_pillar_scores(stored), result.pillar_scores)
        self.assertEqual(
            stored.responses,
            {
                str(self.questions["DATA"][0].id): 2,
                str(self.questions["SEC"][0].id): 4,
                str(self.questions["SEC"][1].id): 4,
            },
        )

    def test_deactivated_question_answers_are_not_stored(self):
        retired = self.questions["DATA"][0]
        save_response(user_id=self.user.pk, question_id=retired.id, value=1)
        others = {
            code: [question for question in questions if question != retired]
            for code, questions in self.questions.items()
        }
        for answer in answers_for(others, 5):
            save_response(user_id=self.user.pk, **answer)
        retired.is_active = False
        retired.save()

        result = submit_assessment(user_id=self.user.pk, assessment_type="CORE")
        stored = MaturityAssessment.objects.get(pk=result.assessment_id)
        self.assertNotIn(str(retired.id), stored.responses)
        self.assertEqual(len(stored.responses), 7)
        self.assertEqual(result.overall_score, 100.0)
        self.assertTrue(Response.objects.filter(question=retired).exists())

    def test_blank_industry_is_stored_as_unknown(self):
        result = submit_assessment(user_id=self.user.pk, assessment_type="core", industry="  ")
        assessment = MaturityAssessment.objects.get(pk=result.assessment_id)
        self.assertEqual(assessment.industry, "Unknown")
        self.assertEqual(assessment.assessment_type, "CORE")


class SubmissionValidationTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="grace", password="pass12345")
        self.questions = build_catalog("CORE", CORE_PILLARS)
        self.question = self.questions["DATA"][0]

    def assert_rejected(self, responses):
        with self.assertRaises(ValidationError):
            submit_assessment(
                user_id=self.user.pk, assessment_type="CORE", responses=responses
            )
        self.assertFalse(Response.objects.exists())
        self.assertFalse(MaturityAssessment.objects.exists())

    def test_out_of_range_values_rejected(self):
        for value in (0, 6, -1):
            with self.subTest(value=value):
                self.assert_rejected([{"question_id": self.question.id, "value": value}])

    def test_non_integer_values_rejected(self):
        for value in ("3", 2.0, 3.5, True, None):
            with self.subTest(value=value):
                self.assert_rejected([{"question_id": self.question.id, "value": value}])

    def test_one_bad_answer_blocks_the_batch(self):
        answers = answers_for(self.questions, 4)
        answers[-1]["value"] = 9
        self.assert_rejected(answers)

    def test_unknown_question_rejected(self):
        self.assert_rejected([{"question_id": 999999, "value": 3}])

    def test_question_from_other_type_rejected(self):
        frontier = build_catalog("FRONTIER", [("INNOV", "Innovation & R&D", ROLE_GENERAL)])
        self.assert_rejected([{"question_id": frontier["INNOV"][0].id, "value": 3}])

    def test_unknown_assessment_type_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_score(user_id=self.user.pk, assessment_type="ULTRA")

    def test_save_response_rejects_bad_value(self):
        with self.assertRaises(ValidationError) as ctx:
            save_response(user_id=self.user.pk, question_id=self.question.id, value=7)
        self.assertEqual(ctx.exception.errors[0]["field"], "[0].value")

    def test_save_response_overwrites_in_place(self):
        self.assertTrue(save_response(user_id=self.user.pk, question_id=self.question.id, value=2))
        self.assertFalse(save_response(user_id=self.user.pk, question_id=self.question.id, value=5))
        self.assertEqual(Response.objects.get().value, 5)

    def test_unnormalizable_weights_block_submission(self):
        test_catalog = build_catalog("TEST", [("ONLY", "Only pillar", ROLE_GENERAL)])
        PillarWeight.objects.create(assessment_type="TEST", pillar_code="ONLY", weight=Decimal("0"))
        with self.assertRaises(NormalizationError):
            submit_assessment(
                user_id=self.user.pk,
                assessment_type="TEST",
                responses=answers_for(test_catalog, 4),
            )
        self.assertFalse(Response.objects.exists())
        self.assertFalse(MaturityAssessment.objects.exists())

    def test_storage_failure_is_reported(self):
        save_response(user_id=self.user.pk, question_id=self.question.id, value=3)
        with mock.patch.object(
            QuerySet, "update_or_create", side_effect=DatabaseError("disk full")
        ), self.assertLogs("maturity.stores", level="ERROR"):
            with self.assertRaises(PersistenceError) as ctx:
                submit_assessment(user_id=self.user.pk, assessment_type="CORE")
        self.assertEqual(ctx.exception.operation, "upsert assessment")
        self.assertFalse(MaturityAssessment.objects.exists())


class CatalogIntegrityTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="linus", password="pass12345")
        self.questions = build_catalog("CORE", CORE_PILLARS)

    def test_answered_question_cannot_move_pillar(self):
        question = self.questions["DATA"][0]
        save_response(user_id=self.user.pk, question_id=question.id, value=4)
        question.pillar = Pillar.objects.get(assessment_type="CORE", code="SEC")
        with self.assertRaises(ValidationError):
            question.save()

    def test_answered_question_check_reads_from_the_saving_database(self):
        question = self.questions["DATA"][0]
        save_response(user_id=self.user.pk, question_id=question.id, value=4)
        question.pillar = Pillar.objects.get(assessment_type="CORE", code="SEC")
        with mock.patch.object(
            Question.objects, "using", wraps=Question.objects.using
        ) as using, self.assertRaises(ValidationError):
            question.save()
        using.assert_called_with("default")

    def test_answered_question_text_can_be_edited(self):
        question = self.questions["DATA"][0]
        save_response(user_id=self.user.pk, question_id=question.id, value=4)
        question.text = "Reworded question"
        question.save()
        question.refresh_from_db()
        self.assertEqual(question.text, "Reworded question")

    def test_unanswered_question_can_move_pillar(self):
        question = self.questions["DATA"][1]
        question.pillar = Pillar.objects.get(assessment_type="CORE", code="SEC")
        question.save()
        self.assertEqual(question.pillar.code, "SEC")

    def test_question_must_match_pillar_type(self):
        pillar = Pillar.objects.get(assessment_type="CORE", code="DATA")
        with self.assertRaises(ValidationError):
            Question.objects.create(assessment_type="ADVANCED", pillar=pillar, text="Mismatch")

    def test_deleting_user_cascades(self):
        submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            responses=answers_for(self.questions, 3),
        )
        self.user.delete()
        self.assertFalse(Response.objects.exists())
        self.assertFalse(MaturityAssessment.objects.exists())

    def test_clear_responses_for_retake(self):
        frontier = build_catalog("FRONTIER", [("INNOV", "Innovation & R&D", ROLE_GENERAL)])
        for question in self.questions["DATA"] + frontier["INNOV"]:
            save_response(user_id=self.user.pk, question_id=question.id, value=3)
        self.assertEqual(clear_responses(user_id=self.user.pk, assessment_type="core"), 2)
        self.assertEqual(Response.objects.filter(user=self.user).count(), 2)
        self.assertEqual(clear_responses(user_id=self.user.pk), 2)
        self.assertFalse(Response.objects.exists())


class WeightAdministrationTests(TestCase):
    def setUp(self):
        self.questions = build_catalog("CORE", CORE_PILLARS)

    def test_override_outside_range_rejected(self):
        for weight in (-1, 120, "heavy"):
            with self.subTest(weight=weight):
                with self.assertRaises(ValidationError):
                    set_weight_override(assessment_type="CORE", pillar_code="SEC", weight=weight)
        self.assertFalse(PillarWeight.objects.exists())

    def test_override_for_unknown_pillar_rejected(self):
        with self.assertRaises(ValidationError):
            set_weight_override(assessment_type="CORE", pillar_code="MAGIC", weight=10)

    def test_replace_profile_requires_full_hundred(self):
        with self.assertRaises(ValidationError):
            replace_weight_profile(
                assessment_type="CORE",
                weights={"STRAT": 40, "DATA": 30, "SEC": 10, "TALENT": 10},
            )
        self.assertFalse(PillarWeight.objects.exists())

    def test_replace_profile_rejects_unknown_pillars(self):
        with self.assertRaises(ValidationError) as ctx:
            replace_weight_profile(
                assessment_type="CORE", weights={"STRAT": 50, "MAGIC": 50}
            )
        self.assertEqual(ctx.exception.errors[0]["field"], "weights.MAGIC")

    def test_replace_and_reset_profile(self):
        profile = replace_weight_profile(
            assessment_type="CORE",
            weights={"STRAT": 40, "DATA": 30, "SEC": "20.5", "TALENT": "9.5"},
            created_by="tester",
        )
        self.assertEqual(
            {entry.pillar_code: entry.weight for entry in profile},
            {
                "STRAT": Decimal("40.00"),
                "DATA": Decimal("30.00"),
                "SEC": Decimal("20.50"),
                "TALENT": Decimal("9.50"),
            },
        )
        self.assertEqual(PillarWeight.objects.filter(created_by="tester").count(), 4)

        self.assertEqual(reset_weight_profile(assessment_type="CORE"), 4)
        profile = get_weight_profile(assessment_type="CORE")
        self.assertEqual([entry.weight for entry in profile], [Decimal("25.00")] * 4)

    def test_apply_preset_profile(self):
        profile = apply_weight_profile(assessment_type="CORE", profile_key="strategy_first")
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(weight_sum(profile), Decimal("100.00"))
        self.assertEqual(max(weights, key=weights.get), "STRAT")
        self.assertEqual(PillarWeight.objects.filter(assessment_type="CORE").count(), 4)

    def test_preset_not_applicable_to_type(self):
        with self.assertRaises(ValidationError):
            apply_weight_profile(assessment_type="CORE", profile_key="innovation_driven")


class AssessmentHistoryTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="hopper", password="pass12345")
        self.questions = build_catalog("CORE", CORE_PILLARS)

    def test_summary_over_history(self):
        submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            industry="Retail",
            responses=answers_for(self.questions, 5),
        )
        submit_assessment(
            user_id=self.user.pk,
            assessment_type="CORE",
            industry="Healthcare",
            responses=answers_for(self.questions, 1),
        )
        history = list_assessments(user_id=self.user.pk, assessment_type="CORE")
        self.assertEqual([item.industry for item in history], ["Healthcare", "Retail"])

        summary = summarize_assessments(user_id=self.user.pk)
        self.assertEqual(summary["total_assessments"], 2)
        self.assertEqual(summary["average_score"], 60.0)
        self.assertEqual(summary["highest_score"], 100.0)
        self.assertEqual(summary["lowest_score"], 20.0)
        self.assertEqual(
            summary["distribution"], {"excellent": 1, "good": 0, "needs_improvement": 1}
        )

    def test_empty_summary(self):
        summary = summarize_assessments(user_id=self.user.pk)
        self.assertEqual(summary["total_assessments"], 0)
        self.assertIsNone(summary["latest_completed_at"])


class AssessmentStoreTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="turing", password="pass12345")
        self.stores = Stores()

    def record(self, score):
        return AssessmentRecord(
            user_id=self.user.pk,
            assessment_type="core",
            industry="",
            overall_score=Decimal(score),
            insights={"recommendations": [CLOSING_RECOMMENDATION]},
        )

    def test_find_insert_update(self):
        self.assertIsNone(self.stores.assessments.find(self.user.pk, "CORE", "Unknown"))
        created = self.stores.assessments.insert(self.record("42.5"))
        found = self.stores.assessments.find(self.user.pk, "core", "")
        self.assertEqual(found.pk, created.pk)

        self.assertEqual(self.stores.assessments.update(created.pk, self.record("64.0")), 1)
        found.refresh_from_db()
        self.assertEqual(found.overall_score, Decimal("64.0"))

    def test_upsert_keeps_one_row(self):
        first, created = self.stores.assessments.upsert(self.record("10.0"))
        second, created_again = self.stores.assessments.upsert(self.record("90.0"))
        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(MaturityAssessment.objects.count(), 1)


class SeedCommandTests(TestCase):
    def test_seeds_catalog_and_default_weights(self):
        call_command("seed_maturity_questions", "--with-weights", stdout=StringIO())
        call_command("seed_maturity_questions", stdout=StringIO())
        self.assertEqual(Pillar.objects.count(), 24)
        self.assertEqual(Question.objects.count(), 48)
        self.assertTrue(PillarWeight.objects.filter(is_default=True).exists())

        profile = get_weight_profile(assessment_type="CORE")
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(weights["STRAT"], Decimal("20.00"))
        self.assertEqual(weight_sum(profile), Decimal("100.00"))

    def test_override_on_seeded_defaults_is_kept_exactly(self):
        call_command("seed_maturity_questions", "--with-weights", stdout=StringIO())
        profile = set_weight_override(assessment_type="CORE", pillar_code="SEC", weight=40)
        weights = {entry.pillar_code: entry.weight for entry in profile}
        self.assertEqual(weights["SEC"], Decimal("40.00"))
        self.assertEqual(weights["STRAT"], Decimal("13.64"))
        self.assertEqual(weights["PERF"], Decimal("3.41"))
        self.assertEqual(weight_sum(profile), Decimal("100.00"))


class ConcurrentSubmissionTests(TransactionTestCase):
    attempts = 50

    def setUp(self):
        self.user = User.objects.create_user(username="grace", password="pass12345")
        self.questions = build_catalog("CORE", CORE_PILLARS)

    def submit_with_retry(self, value, barrier, outcomes):
        try:
            barrier.wait()
            for _ in range(self.attempts):
                try:
                    submit_assessment(
                        user_id=self.user.pk,
                        assessment_type="CORE",
                        industry="Retail",
                        responses=answers_for(self.questions, value),
                    )
                except PersistenceError:
                    time.sleep(0.02)
                    continue
                outcomes.append(value)
                return
        except Exception as exc:
            outcomes.append(exc)
        finally:
            connection.close()

    def test_racing_submissions_store_one_consistent_row(self):
        barrier = threading.Barrier(2)
        outcomes = []
        threads = [
            threading.Thread(target=self.submit_with_retry, args=(value, barrier, outcomes))
            for value in (5, 1)
        ]
        with mock.patch("maturity.stores.logger"), mock.patch("maturity.services.logger"):
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        self.assertTrue(outcomes)
        self.assertTrue(all(outcome in (5, 1) for outcome in outcomes), outcomes)
        rows = MaturityAssessment.objects.filter(
            user=self.user, assessment_type="CORE", industry="Retail"
        )
        self.assertEqual(rows.count(), 1)
        stored = rows.get()
        expected = {5: (Decimal("100.0"), 100), 1: (Decimal("20.0"), 20)}
        values = set(stored.responses.values())
        self.assertEqual(len(values), 1)
        [value] = values
        overall, pillar_score = expected[value]
        self.assertEqual(stored.overall_score, overall)
        self.assertEqual({pillar["score"] for pillar in stored.pillar_scores}, {pillar_score})
        self.assertEqual(len(stored.responses), 8)


@override_settings(API_ACCESS_TOKEN="apitoken")
class MaturityApiViewTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="api-user", password="pass12345")
        self.questions = build_catalog("CORE", CORE_PILLARS)

    def post_json(self, url, payload, method="post", **extra):
        sender = getattr(self.client, method)
        return sender(
            url,
            data=json.dumps(payload),
            content_type="application/json",
            HTTP_X_API_KEY="apitoken",
            **extra,
        )

    def test_record_response(self):
        url = reverse("maturity:responses", args=[self.user.pk])
        payload = {"question_id": self.questions["DATA"][0].id, "value": 4}
        self.assertEqual(self.post_json(url, payload).status_code, 201)
        payload["value"] = 5
        self.assertEqual(self.post_json(url, payload).status_code, 200)

        bad = self.post_json(url, {"question_id": payload["question_id"], "value": "5"})
        self.assertEqual(bad.status_code, 400)
        self.assertIn("errors", bad.json())

    def test_missing_api_key_rejected(self):
        url = reverse("maturity:assessments", args=[self.user.pk])
        response = self.client.post(
            url, data=json.dumps({"assessment_type": "CORE"}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 401)

    def test_submit_and_progress(self):
        url = reverse("maturity:assessments", args=[self.user.pk])
        payload = {
            "assessment_type": "CORE",
            "industry": "Finance",
            "responses": answers_for(self.questions, 5),
        }
        created = self.post_json(url, payload)
        self.assertEqual(created.status_code, 201)
        body = created.json()
        self.assertTrue(body["is_new"])
        self.assertEqual(body["overall_score"], 100.0)
        self.assertEqual(body["insights"]["score_category"], "AI Leader")

        updated = self.post_json(url, payload)
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["assessment_id"], body["assessment_id"])

        score = self.client.get(
            reverse("maturity:score", args=[self.user.pk, "core"]),
            HTTP_X_API_KEY="apitoken",
        )
        self.assertEqual(score.status_code, 200)
        self.assertEqual(score.json()["score"], 100.0)
        self.assertEqual(score.json()["completion_rate"], 100)

        history = self.client.get(url, HTTP_X_API_KEY="apitoken")
        self.assertEqual(len(history.json()["assessments"]), 1)

        summary = self.client.get(
            reverse("maturity:assessment-summary", args=[self.user.pk]),
            HTTP_X_API_KEY="apitoken",
        )
        self.assertEqual(summary.json()["distribution"]["excellent"], 1)

    def test_submit_with_invalid_answer(self):
        url = reverse("maturity:assessments", args=[self.user.pk])
        payload = {
            "assessment_type": "CORE",
            "responses": [{"question_id": self.questions["SEC"][0].id, "value": 11}],
        }
        response = self.post_json(url, payload)
        self.assertEqual(response.status_code, 400)
        self.assertFalse(MaturityAssessment.objects.exists())

    def test_unnormalizable_weights_return_conflict(self):
        test_catalog = build_catalog("TEST", [("ONLY", "Only pillar", ROLE_GENERAL)])
        PillarWeight.objects.create(assessment_type="TEST", pillar_code="ONLY", weight=Decimal("0"))
        url = reverse("maturity:assessments", args=[self.user.pk])
        response = self.post_json(
            url, {"assessment_type": "TEST", "responses": answers_for(test_catalog, 3)}
        )
        self.assertEqual(response.status_code, 409)

    def test_storage_failure_returns_service_unavailable(self):
        url = reverse("maturity:assessments", args=[self.user.pk])
        with mock.patch.object(
            QuerySet, "update_or_create", side_effect=DatabaseError("disk full")
        ), self.assertLogs("maturity.stores", level="ERROR"):
            response = self.post_json(url, {"assessment_type": "CORE"})
        self.assertEqual(response.status_code, 503)

    def test_weight_profile_endpoints(self):
        url = reverse("maturity:weights", args=["core"])
        read = self.client.get(url)
        self.assertEqual(read.status_code, 200)
        self.assertEqual([entry["weight"] for entry in read.json()["weights"]], [25.0] * 4)

        denied = self.client.put(
            url,
            data=json.dumps({"weights": {"STRAT": 100}}),
            content_type="application/json",
        )
        self.assertEqual(denied.status_code, 401)

        invalid = self.post_json(url, {"weights": {"STRAT": 60, "DATA": 10}}, method="put")
        self.assertEqual(invalid.status_code, 400)

        override = self.post_json(url, {"pillar_code": "SEC", "weight": 40})
        self.assertEqual(override.status_code, 200)
        weights = {entry["pillar_code"]: entry["weight"] for entry in override.json()["weights"]}
        self.assertEqual(weights, {"STRAT": 20.0, "DATA": 20.0, "SEC": 40.0, "TALENT": 20.0})

        reset = self.client.delete(url, HTTP_X_API_KEY="apitoken")
        self.assertEqual(reset.json()["deleted"], 1)

    def test_preset_endpoints(self):
        listing = self.client.get(reverse("maturity:weight-profiles", args=["CORE"]))
        keys = [profile["key"] for profile in listing.json()["profiles"]]
        self.assertIn("compliance_focused", keys)
        self.assertNotIn("technology", keys)

        applied = self.client.post(
            reverse("maturity:weight-profile-apply", args=["CORE", "compliance_focused"]),
            HTTP_X_API_KEY="apitoken",
        )
        self.assertEqual(applied.status_code, 200)
        total = sum(Decimal(str(entry["weight"])) for entry in applied.json()["weights"])
        self.assertEqual(total, Decimal("100.00"))

    def test_preset_listing_rejects_unknown_type(self):
        response = self.client.get(reverse("maturity:weight-profiles", args=["ULTRA"]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "assessment_type")


class ProjectSettingsTests(SimpleTestCase):
    def test_only_apps_the_api_uses_are_installed(self):
        self.assertNotIn("django.contrib.sessions", settings.INSTALLED_APPS)
        self.assertNotIn("django.contrib.messages", settings.INSTALLED_APPS)
        self.assertFalse(
            [name for name in settings.MIDDLEWARE if "sessions" in name or "messages" in name]
        )
        self.assertEqual(settings.TEMPLATES, [])
