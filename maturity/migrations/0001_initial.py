from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


TYPE_CHOICES = [
    ("CORE", "Core"),
    ("ADVANCED", "Advanced"),
    ("FRONTIER", "Frontier"),
    ("TEST", "Test"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Pillar",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("assessment_type", models.CharField(choices=TYPE_CHOICES, max_length=20)),
                ("code", models.CharField(help_text="Short pillar code such as DATA or SEC.", max_length=20)),
                ("name", models.CharField(max_length=120)),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("data", "Data"),
                            ("security", "Security"),
                            ("strategy", "Strategy"),
                            ("general", "General"),
                        ],
                        default="general",
                        help_text="Drives role-specific recommendations (data, security...).",
                        max_length=16,
                    ),
                ),
                ("display_order", models.PositiveIntegerField(default=1)),
            ],
            options={
                "ordering": ("assessment_type", "display_order", "code"),
                "constraints": [
                    models.UniqueConstraint(fields=("assessment_type", "code"), name="uq_pillar_type_code"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Question",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("assessment_type", models.CharField(choices=TYPE_CHOICES, max_length=20)),
                ("text", models.TextField()),
                ("display_order", models.PositiveIntegerField(default=1)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "pillar",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="questions",
                        to="maturity.pillar",
                    ),
                ),
            ],
            options={"ordering": ("assessment_type", "display_order", "id")},
        ),
        migrations.CreateModel(
            name="PillarWeight",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("assessment_type", models.CharField(choices=TYPE_CHOICES, max_length=20)),
                ("pillar_code", models.CharField(max_length=20)),
                ("weight", models.DecimalField(decimal_places=2, max_digits=5)),
                (
                    "is_default",
                    models.BooleanField(
                        default=False,
                        help_text="True for system-seeded weights, False for explicit overrides.",
                    ),
                ),
                ("created_by", models.CharField(blank=True, max_length=120)),
            ],
            options={
                "ordering": ("assessment_type", "pillar_code"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("assessment_type", "pillar_code"), name="uq_pillar_weight_type_code"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("weight__gte", 0), ("weight__lte", 100)),
                        name="ck_pillar_weight_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Response",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("value", models.PositiveSmallIntegerField()),
                (
                    "question",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="responses",
                        to="maturity.question",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="maturity_responses",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("question__display_order",),
                "constraints": [
                    models.UniqueConstraint(fields=("user", "question"), name="uq_response_user_question"),
                    models.CheckConstraint(
                        condition=models.Q(("value__gte", 1), ("value__lte", 5)),
                        name="ck_response_value_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MaturityAssessment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("assessment_type", models.CharField(choices=TYPE_CHOICES, max_length=20)),
                ("industry", models.CharField(default="Unknown", max_length=120)),
                ("overall_score", models.DecimalField(decimal_places=1, max_digits=5)),
                ("pillar_scores", models.JSONField(blank=True, default=list)),
                ("responses", models.JSONField(blank=True, default=dict)),
                ("insights", models.JSONField(blank=True, default=dict)),
                ("completed_at", models.DateTimeField()),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="maturity_assessments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("-completed_at",),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "assessment_type", "industry"),
                        name="uq_assessment_user_type_industry",
                    ),
                ],
            },
        ),
    ]
