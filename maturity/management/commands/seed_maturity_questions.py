from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from maturity.constants import ROLE_DATA, ROLE_GENERAL, ROLE_SECURITY, ROLE_STRATEGY
from maturity.models import Pillar, Question
from maturity.services import replace_weight_profile

# (code, name, role, default weight, questions)
SEED_DATA = {
    "CORE": [
        ("STRAT", "Strategy & Leadership", ROLE_STRATEGY, "20.00", [
            "Our leadership has defined a clear AI vision tied to business goals.",
            "AI initiatives have executive sponsorship and a dedicated budget.",
        ]),
        ("GOV", "Governance & Ethics", ROLE_GENERAL, "18.00", [
            "We have documented policies for responsible AI use.",
            "AI decisions are reviewed by an accountable governance body.",
        ]),
        ("DATA", "Data Readiness", ROLE_DATA, "15.00", [
            "Our data is accurate, complete, and accessible for analytics.",
            "Data ownership and lineage are clearly documented.",
        ]),
        ("TECH", "Technology & Infrastructure", ROLE_GENERAL, "12.00", [
            "Our infrastructure can support training and serving AI models.",
            "We can deploy new tools and platforms without long delays.",
        ]),
        ("SEC", "Security & Compliance", ROLE_SECURITY, "12.00", [
            "AI systems are covered by our security and privacy controls.",
            "We track the regulatory requirements that apply to our AI use.",
        ]),
        ("TALENT", "Skills & Talent", ROLE_GENERAL, "10.00", [
            "We have people with the skills to build and run AI solutions.",
            "Staff receive training on working with AI tools.",
        ]),
        ("CULTURE", "Culture & Change", ROLE_GENERAL, "8.00", [
            "Teams are open to experimenting with new ways of working.",
            "We have a change management approach for AI adoption.",
        ]),
        ("PERF", "Performance & ROI", ROLE_GENERAL, "5.00", [
            "We measure the business value delivered by AI initiatives.",
            "AI investments are prioritised by expected return.",
        ]),
    ],
    "ADVANCED": [
        ("TECH", "Technology & Infrastructure", ROLE_GENERAL, "20.00", [
            "We run AI workloads on scalable, monitored infrastructure.",
            "Model deployment is automated through CI/CD pipelines.",
        ]),
        ("DATA", "Data Readiness", ROLE_DATA, "18.00", [
            "Feature data is versioned and reusable across teams.",
            "Data quality issues are detected automatically.",
        ]),
        ("ARCH", "Architecture & Design", ROLE_GENERAL, "15.00", [
            "Our AI architecture follows documented reference patterns.",
            "Models can be swapped without rewriting dependent systems.",
        ]),
        ("STRAT", "Strategy & Leadership", ROLE_STRATEGY, "15.00", [
            "AI is part of the multi-year corporate strategy.",
            "Leadership reviews the AI portfolio at least quarterly.",
        ]),
        ("SEC", "Security & Compliance", ROLE_SECURITY, "12.00", [
            "Models are tested for adversarial and privacy risks before release.",
            "Audit trails exist for model training and inference.",
        ]),
        ("GOV", "Governance & Ethics", ROLE_GENERAL, "10.00", [
            "Bias and fairness are assessed for every production model.",
            "A model risk register is maintained and reviewed.",
        ]),
        ("TALENT", "Skills & Talent", ROLE_GENERAL, "5.00", [
            "We have dedicated ML engineering and MLOps roles.",
            "Career paths exist for AI specialists.",
        ]),
        ("PERF", "Performance & ROI", ROLE_GENERAL, "5.00", [
            "Production models have business KPIs tracked over time.",
            "Underperforming models are retired or retrained on a schedule.",
        ]),
    ],
    "FRONTIER": [
        ("INNOV", "Innovation & R&D", ROLE_GENERAL, "25.00", [
            "We run a structured programme of AI research experiments.",
            "Successful prototypes have a path to production.",
        ]),
        ("RES", "Research Capabilities", ROLE_GENERAL, "20.00", [
            "Our teams publish or contribute to AI research.",
            "We partner with academic or research institutions.",
        ]),
        ("TECH", "Technology & Infrastructure", ROLE_GENERAL, "15.00", [
            "We have access to specialised compute for large models.",
            "We evaluate emerging AI platforms systematically.",
        ]),
        ("DATA", "Data Science & ML", ROLE_DATA, "12.00", [
            "We build custom models where off-the-shelf options fall short.",
            "Proprietary datasets give us a modelling advantage.",
        ]),
        ("STRAT", "Strategy & Vision", ROLE_STRATEGY, "10.00", [
            "AI is expected to reshape our core business model.",
            "We track frontier AI developments at board level.",
        ]),
        ("ARCH", "Architecture & Scale", ROLE_GENERAL, "8.00", [
            "Our platforms support multi-model and agentic workloads.",
            "We can scale AI services globally on demand.",
        ]),
        ("ETHICS", "Ethics & Responsibility", ROLE_GENERAL, "6.00", [
            "We assess societal impact before releasing advanced AI capabilities.",
            "An external advisory group reviews our AI ethics practices.",
        ]),
        ("GOV", "Governance", ROLE_GENERAL, "4.00", [
            "Frontier AI work follows staged release and review gates.",
            "Incidents involving AI systems are reported and investigated.",
        ]),
    ],
}


class Command(BaseCommand):
    help = "Seed maturity pillars and Likert questions for CORE, ADVANCED and FRONTIER."

    def add_arguments(self, parser):
        parser.add_argument(
            "--with-weights",
            action="store_true",
            help="Also store the system default pillar weights for each assessment type.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        for assessment_type, pillars in SEED_DATA.items():
            question_count = 0
            for order, (code, name, role, _, questions) in enumerate(pillars, start=1):
                pillar, _ = Pillar.objects.update_or_create(
                    assessment_type=assessment_type,
                    code=code,
                    defaults={"name": name, "role": role, "display_order": order},
                )
                for position, text in enumerate(questions, start=1):
                    _, created = Question.objects.update_or_create(
                        pillar=pillar,
                        display_order=position,
                        defaults={
                            "assessment_type": assessment_type,
                            "text": text,
                            "is_active": True,
                        },
                    )
                    question_count += int(created)
            self.stdout.write(
                self.style.SUCCESS(
                    f"Seeded {assessment_type}: {len(pillars)} pillars, {question_count} new questions"
                )
            )

            if options["with_weights"]:
                replace_weight_profile(
                    assessment_type=assessment_type,
                    weights={code: weight for code, _, _, weight, _ in pillars},
                    created_by="system",
                    is_default=True,
                )
                self.stdout.write(f" - Stored default weights for {assessment_type}")
