import json
import os
import random
import unittest
from datetime import datetime, timezone

os.environ.setdefault("ANALYTICS_ENABLED", "0")

from app.ai import prompts
from app.ai.config import AIConfig
from app.core.errors import CompletionUnavailable, EmptyInput, NotFound, ParseError, ValidationError
from app.schemas.portfolio import TONE_OPTIONS, PortfolioSnapshot, Section, SectionType
from app.services.portfolio_ai_service import (
    PortfolioAIService,
    is_traceable,
    repair_section_order,
    suggest_template_id,
    suggest_theme_id,
)
from app.services.portfolio_store import InMemoryPortfolioRepository

AI_CONFIG = AIConfig(
    provider="openai",
    model="test-model",
    api_key="",
    base_url=None,
    default_timeout_s=5,
    long_timeout_s=10,
    max_tokens=512,
)


class FakeCompletionClient:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    @property
    def enabled(self) -> bool:
        return True

    async def complete(self, prompt, profile):
        self.calls.append((prompt, profile))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return f"```json\n{json.dumps(response)}\n```"
        return response


def _portfolio(user_id: str = "u1", sections=None) -> PortfolioSnapshot:
    if sections is None:
        sections = [
            Section(type=SectionType.summary, content="Senior backend engineer building payment systems.", order=0),
            Section(type=SectionType.skills, content="Python, SQL, Docker", order=1),
            Section(type=SectionType.experience, content="Led the billing team and reduced costs by 20%.", order=2),
        ]
    return PortfolioSnapshot(portfolio_id=f"p-{user_id}", user_id=user_id, sections=sections)


ANALYSIS = {
    "subscores": {
        "clarity": 80,
        "technicalDepth": 70,
        "seniority": 65,
        "atsAlignment": 35,
        "completeness": 85,
        "toneConsistency": 75,
    },
    "recommendations": [
        {"title": "Add a project", "description": "Show shipped work.", "dimension": "completeness"},
        {"title": "Add keywords", "description": "Mirror job ads.", "dimension": "atsAlignment", "suggestedRewrite": "x"},
    ],
}

JOB_DESCRIPTION = (
    "We are hiring a backend engineer with Python, Kubernetes and Terraform experience "
    "to own billing infrastructure."
)

RESUME = (
    "Jane Roe - Backend Engineer\n"
    "Experience: Software Engineer at ACME Corporation, 2019 - Present. Built billing services in Python.\n"
    "Certifications: AWS Certified Solution Architect Associate (Amazon Web Services).\n"
    "Skills: Python, SQL, Docker, Kubernetes. Education: BSc Computer Science, State University."
)


class ServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def make_service(self, *responses, portfolios=None):
        self.client = FakeCompletionClient(*responses)
        repository = InMemoryPortfolioRepository([_portfolio()] if portfolios is None else portfolios)
        return PortfolioAIService(repository, self.client, ai_config=AI_CONFIG)


class PreconditionTests(ServiceTestCase):
    async def test_missing_portfolio_is_not_found_without_completion(self):
        service = self.make_service(portfolios=[])
        for call in (
            service.analyze("u1"),
            service.recommend_template_theme("u1"),
            service.rewrite_portfolio("u1", "formal"),
            service.optimize_for_job("u1", JOB_DESCRIPTION),
            service.generate_summary("u1"),
        ):
            with self.assertRaises(NotFound):
                await call
        self.assertEqual(self.client.calls, [])

    async def test_blank_portfolio_is_empty_input_without_completion(self):
        blank = _portfolio(sections=[Section(type=SectionType.summary, content="   ", order=0)])
        service = self.make_service(portfolios=[blank])
        with self.assertRaises(EmptyInput):
            await service.analyze("u1")
        with self.assertRaises(EmptyInput):
            await service.recommend_template_theme("u1")
        self.assertEqual(self.client.calls, [])

    async def test_parameters_are_validated_before_completion(self):
        service = self.make_service()
        with self.assertRaises(ValidationError):
            await service.rewrite_portfolio("u1", "sarcastic")
        with self.assertRaises(ValidationError):
            await service.optimize_for_job("u1", "Python dev")
        with self.assertRaises(ValidationError):
            await service.generate_from_resume("u1", "too short")
        with self.assertRaises(ValidationError):
            await service.generate_summary("u1", max_words=10)
        with self.assertRaises(ValidationError):
            await service.suggest_tags("Python", max_tags=0)
        with self.assertRaises(ValidationError):
            await service.generate_experience_bullets("Ran ops", count=20)
        with self.assertRaises(ValidationError):
            await service.improve_text("", "formal")
        self.assertEqual(self.client.calls, [])

    async def test_completion_failure_propagates(self):
        service = self.make_service(CompletionUnavailable("down"))
        with self.assertRaises(CompletionUnavailable):
            await service.analyze("u1")
        self.assertEqual(len(self.client.calls), 1)


class AnalyzeTests(ServiceTestCase):
    async def test_analyze_scores_locally(self):
        service = self.make_service(ANALYSIS)

        result = await service.analyze("u1")

        self.assertEqual(len(self.client.calls), 1)
        prompt, profile = self.client.calls[0]
        self.assertEqual(prompt.operation, prompts.ANALYZE)
        self.assertEqual(profile.name, "default")
        self.assertEqual(result.subscores.ats_alignment, 30)
        self.assertEqual(result.recommendations[0].title, "Add keywords")
        self.assertTrue(result.recommendations[0].critical)
        self.assertGreaterEqual(result.overall_score, 0)
        self.assertLessEqual(result.overall_score, 100)

    async def test_malformed_output_is_parse_error(self):
        service = self.make_service("I'm sorry, I cannot help with that.")
        with self.assertRaises(ParseError):
            await service.analyze("u1")


class RecommendTests(ServiceTestCase):
    async def test_unknown_catalog_ids_fall_back_and_order_is_repaired(self):
        service = self.make_service(
            {
                "recommendedTemplate": "neon-brutalist",
                "recommendedTheme": "Dark-Slate",
                "recommendedSectionOrder": ["experience", "education", "summary", "experience"],
                "rationale": "Experience first for a senior engineer.",
            }
        )

        with self.assertLogs("app.services.portfolio_ai_service", level="INFO"):
            result = await service.recommend_template_theme("u1")

        self.assertEqual(result.recommended_template, "modern-minimal")
        self.assertEqual(result.recommended_theme, "dark-slate")
        self.assertEqual(
            result.recommended_section_order,
            [SectionType.experience, SectionType.summary, SectionType.skills],
        )

    async def test_unknown_section_type_is_parse_error(self):
        service = self.make_service(
            {
                "recommendedTemplate": "timeline",
                "recommendedTheme": "light-blue",
                "recommendedSectionOrder": ["hobbies"],
                "rationale": "Because.",
            }
        )
        with self.assertRaises(ParseError):
            await service.recommend_template_theme("u1")

    def test_repair_section_order_is_a_permutation(self):
        present = [SectionType.summary, SectionType.skills, SectionType.experience]
        repaired = repair_section_order(["skills", "certification"], present)
        self.assertEqual(repaired, [SectionType.skills, SectionType.summary, SectionType.experience])
        self.assertEqual(sorted(repaired), sorted(present))


class RewriteTests(ServiceTestCase):
    async def test_rewrite_keeps_order_and_types(self):
        service = self.make_service(
            {
                "sections": [
                    {"order": 0, "type": "summary", "content": "Senior engineer for payments."},
                    {"order": 1, "type": "skills", "content": "Python, SQL, Docker"},
                    {"order": 2, "type": "experience", "content": "Led billing; cut costs 20%."},
                ]
            }
        )

        result = await service.rewrite_portfolio("u1", "Concise")

        self.assertEqual(result.tone, "concise")
        self.assertEqual([(s.order, s.type) for s in result.sections], [
            (0, SectionType.summary),
            (1, SectionType.skills),
            (2, SectionType.experience),
        ])
        self.assertEqual(result.sections[0].content, "Senior engineer for payments.")
        self.assertEqual(result.unchanged_orders, [])
        self.assertEqual(self.client.calls[0][1].name, "long_running")

    async def test_count_or_type_mismatch_is_parse_error(self):
        too_few = {"sections": [{"order": 0, "type": "summary", "content": "Hi"}]}
        swapped = {
            "sections": [
                {"order": 0, "type": "summary", "content": "a"},
                {"order": 1, "type": "experience", "content": "b"},
                {"order": 2, "type": "skills", "content": "c"},
            ]
        }
        for response in (too_few, swapped):
            service = self.make_service(response)
            with self.assertRaises(ParseError):
                await service.rewrite_portfolio("u1", "formal")

    async def test_sections_over_budget_are_kept_verbatim(self):
        long_text = "Legacy " * 2000
        portfolio = _portfolio(
            sections=[
                Section(type=SectionType.experience, content=long_text, order=0),
                Section(
                    type=SectionType.summary,
                    content="Recently edited summary.",
                    order=1,
                    updated_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
                ),
            ]
        )
        service = self.make_service(
            {
                "sections": [
                    {"order": 0, "type": "experience", "content": "Shortened experience."},
                    {"order": 1, "type": "summary", "content": "Polished summary."},
                ]
            },
            portfolios=[portfolio],
        )

        result = await service.rewrite_portfolio("u1", "formal")

        self.assertEqual(result.unchanged_orders, [0])
        self.assertEqual(result.sections[0].content, long_text)
        self.assertEqual(result.sections[1].content, "Polished summary.")

    async def test_blank_sections_are_kept_verbatim(self):
        portfolio = _portfolio(
            sections=[
                Section(type=SectionType.summary, content="Backend engineer.", order=0),
                Section(type=SectionType.custom, content="", order=1),
            ]
        )
        for echoed in ("", "(empty)"):
            with self.subTest(echoed=echoed):
                service = self.make_service(
                    {
                        "sections": [
                            {"order": 0, "type": "summary", "content": "Backend engineer shipping APIs."},
                            {"order": 1, "type": "custom", "content": echoed},
                        ]
                    },
                    portfolios=[portfolio],
                )

                result = await service.rewrite_portfolio("u1", "formal")

                self.assertEqual(result.sections[1].content, "")
                self.assertEqual(result.unchanged_orders, [1])
                self.assertEqual(result.sections[0].content, "Backend engineer shipping APIs.")

    async def test_blank_rewrite_of_filled_section_is_parse_error(self):
        service = self.make_service(
            {
                "sections": [
                    {"order": 0, "type": "summary", "content": "  "},
                    {"order": 1, "type": "skills", "content": "Python, SQL, Docker"},
                    {"order": 2, "type": "experience", "content": "Led billing."},
                ]
            }
        )
        with self.assertRaises(ParseError):
            await service.rewrite_portfolio("u1", "formal")

    async def test_every_tone_over_random_section_layouts(self):
        rng = random.Random(20240611)
        types = list(SectionType)
        for tone in TONE_OPTIONS:
            for trial in range(5):
                count = rng.randint(1, 6)
                orders = rng.sample(range(60), count)
                sections = [
                    Section(type=rng.choice(types), content=f"Original text for section {order}.", order=order)
                    for order in orders
                ]
                rng.shuffle(sections)
                expected = sorted(sections, key=lambda section: section.order)
                response = {
                    "sections": [
                        {"order": s.order, "type": s.type.value, "content": f"{tone} text {s.order}"}
                        for s in expected
                    ]
                }
                with self.subTest(tone=tone, trial=trial, orders=sorted(orders)):
                    service = self.make_service(response, portfolios=[_portfolio(sections=sections)])

                    result = await service.rewrite_portfolio("u1", tone)

                    self.assertEqual(len(result.sections), count)
                    self.assertEqual(
                        [(s.order, s.type) for s in result.sections],
                        [(s.order, s.type) for s in expected],
                    )
                    self.assertEqual(
                        [s.content for s in result.sections],
                        [f"{tone} text {s.order}" for s in expected],
                    )
                    self.assertEqual(result.unchanged_orders, [])

                if count > 1:
                    shuffled = dict(response, sections=list(reversed(response["sections"])))
                    with self.subTest(tone=tone, trial=trial, reordered=True):
                        service = self.make_service(shuffled, portfolios=[_portfolio(sections=sections)])
                        with self.assertRaises(ParseError):
                            await service.rewrite_portfolio("u1", tone)

    async def test_sparse_orders(self):
        sections = [
            Section(type=SectionType.experience, content="Built the payments API.", order=40),
            Section(type=SectionType.summary, content="Backend engineer.", order=7),
            Section(type=SectionType.skills, content="Python, Go", order=2),
        ]
        service = self.make_service(
            {
                "sections": [
                    {"order": 2, "type": "skills", "content": "Python, Go"},
                    {"order": 7, "type": "summary", "content": "Backend engineer focused on payments."},
                    {"order": 40, "type": "experience", "content": "Built and ran the payments API."},
                ]
            },
            portfolios=[_portfolio(sections=sections)],
        )

        result = await service.rewrite_portfolio("u1", "technical")

        self.assertEqual([s.order for s in result.sections], [2, 7, 40])
        self.assertEqual(result.sections[2].content, "Built and ran the payments API.")


class OptimizeTests(ServiceTestCase):
    def _response(self, **overrides):
        body = {
            "updatedSections": [{"order": 2, "type": "experience", "content": "Led Python billing services."}],
            "suggestedSkills": ["python", "Kubernetes", "kubernetes ", "Terraform", "SQL"],
            "jobInsights": {
                "summary": "Strong backend overlap.",
                "requiredSkills": ["Python", "Kubernetes", "python"],
                "keywords": ["billing"],
            },
        }
        body.update(overrides)
        return body

    async def test_skills_are_deduplicated_against_portfolio_and_each_other(self):
        service = self.make_service(self._response())

        result = await service.optimize_for_job("u1", JOB_DESCRIPTION)

        self.assertEqual(result.suggested_skills, ["Kubernetes", "Terraform"])
        self.assertEqual(result.job_insights.required_skills, ["Python", "Kubernetes"])
        self.assertEqual(result.job_insights.responsibilities, [])
        self.assertEqual(len(result.updated_sections), 1)
        self.assertEqual(result.updated_sections[0].order, 2)
        self.assertEqual(result.updated_sections[0].type, SectionType.experience)

    async def test_updates_must_reference_existing_sections(self):
        service = self.make_service(
            self._response(updatedSections=[{"order": 7, "type": "project", "content": "New project"}])
        )
        with self.assertRaises(ParseError):
            await service.optimize_for_job("u1", JOB_DESCRIPTION)

    async def test_blank_update_is_parse_error(self):
        service = self.make_service(
            self._response(updatedSections=[{"order": 2, "type": "experience", "content": " "}])
        )
        with self.assertRaises(ParseError):
            await service.optimize_for_job("u1", JOB_DESCRIPTION)

    async def test_missing_insights_summary_is_parse_error(self):
        service = self.make_service(self._response(jobInsights={"requiredSkills": ["Python"]}))
        with self.assertRaises(ParseError):
            await service.optimize_for_job("u1", JOB_DESCRIPTION)


class GenerateFromResumeTests(ServiceTestCase):
    EXTRACTION = {
        "summary": "Backend engineer focused on billing.",
        "experience": [
            {
                "role": "Software Engineer",
                "company": "ACME Corporation",
                "startDate": "2019",
                "endDate": "Present",
                "description": "Built billing services in Python.",
            },
            {"role": "Staff Engineer", "company": "Globex", "description": "Invented."},
        ],
        "certifications": [
            {"title": "AWS Certified Solutions Architect - Associate", "issuer": "Amazon Web Services"},
            {"title": "Google Cloud Professional Architect", "issuer": "Google"},
        ],
        "skills": ["Python", "SQL", "Docker", "Kubernetes", "python"],
        "education": [{"degree": "BSc Computer Science", "institution": "State University"}],
    }

    async def test_untraceable_entities_are_dropped(self):
        service = self.make_service(self.EXTRACTION)

        draft = await service.generate_from_resume("u1", RESUME)

        self.assertEqual(len(self.client.calls), 1)
        dropped = {(item.kind, item.value) for item in draft.dropped_entities}
        self.assertEqual(
            dropped,
            {("employer", "Globex"), ("certification", "Google Cloud Professional Architect")},
        )
        content = "\n".join(section.content for section in draft.sections)
        self.assertNotIn("Globex", content)
        self.assertNotIn("Google Cloud", content)
        self.assertIn("AWS Certified Solutions Architect - Associate", content)

    async def test_draft_sections_and_catalog_suggestions(self):
        service = self.make_service(self.EXTRACTION)

        draft = await service.generate_from_resume("u1", RESUME)

        self.assertEqual(
            [section.type for section in draft.sections],
            [
                SectionType.summary,
                SectionType.skills,
                SectionType.experience,
                SectionType.certification,
                SectionType.education,
            ],
        )
        self.assertEqual([section.order for section in draft.sections], [0, 1, 2, 3, 4])
        self.assertEqual(draft.sections[1].content, "Python, SQL, Docker, Kubernetes")
        self.assertEqual(draft.suggested_template, "modern-minimal")
        self.assertEqual(draft.suggested_theme, "dark-slate")

    async def test_empty_extraction_is_parse_error(self):
        service = self.make_service(
            {"summary": "", "experience": [], "certifications": [], "skills": [], "education": []}
        )
        with self.assertRaises(ParseError):
            await service.generate_from_resume("u1", RESUME)

    def test_traceability(self):
        tokens = "software engineer at acme corporation since 2019".split()
        self.assertTrue(is_traceable("ACME Corporation", tokens))
        self.assertTrue(is_traceable("Acme Corporaton", tokens))
        self.assertFalse(is_traceable("Globex", tokens))
        self.assertFalse(is_traceable("", tokens))

    def test_template_and_theme_rules(self):
        self.assertEqual(suggest_template_id(3, 0, 0), "timeline")
        self.assertEqual(suggest_template_id(1, 12, 2), "grid-showcase")
        self.assertEqual(suggest_template_id(2, 0, 0), "professional")
        self.assertEqual(suggest_template_id(0, 5, 0), "professional")
        self.assertEqual(suggest_template_id(1, 2, 0), "modern-minimal")
        self.assertEqual(suggest_theme_id("Senior UX designer"), "warm-sunset")
        self.assertEqual(suggest_theme_id("Early startup hire"), "ocean-teal")
        self.assertEqual(suggest_theme_id("Head of finance operations"), "elegant-purple")
        self.assertEqual(suggest_theme_id("Accountant"), "light-blue")


class TextHelperTests(ServiceTestCase):
    async def test_improve_text(self):
        service = self.make_service({"improved": "  Delivered the payments API.  "})
        result = await service.improve_text("I did the payments api", "formal")
        self.assertEqual(result.improved, "Delivered the payments API.")
        self.assertEqual(result.tone, "formal")

    async def test_improve_text_defaults_to_concise(self):
        service = self.make_service({"improved": "Shipped it."})
        result = await service.improve_text("we shipped it")
        self.assertEqual(result.tone, "concise")

    async def test_summary_word_limit(self):
        service = self.make_service({"summary": "Backend engineer. " * 40})
        with self.assertRaises(ParseError):
            await service.generate_summary("u1", max_words=50)

        service = self.make_service({"summary": "I build reliable billing systems in Python."})
        result = await service.generate_summary("u1", max_words=50)
        self.assertEqual(result.word_count, 7)

    async def test_summary_needs_source_sections(self):
        only_summary = _portfolio(sections=[Section(type=SectionType.summary, content="Hello", order=0)])
        service = self.make_service(portfolios=[only_summary])
        with self.assertRaises(EmptyInput):
            await service.generate_summary("u1")
        self.assertEqual(self.client.calls, [])

    async def test_tags_are_unique_ordered_and_truncated(self):
        service = self.make_service(
            {
                "tags": [
                    {"label": "python", "confidence": 0.7},
                    {"label": "AWS", "confidence": 0.9},
                    {"label": "Python", "confidence": 0.95},
                    {"label": "docker", "confidence": 0.5},
                ]
            }
        )
        result = await service.suggest_tags("Python on AWS with Docker", max_tags=2)
        self.assertEqual([(tag.label, tag.confidence) for tag in result.tags], [("Python", 0.95), ("AWS", 0.9)])

    async def test_bullets_are_cleaned_and_limited(self):
        service = self.make_service({"bullets": ["- Led migration", "• Cut costs 20%", "1. Hired 4", "Mentored", "Extra"]})
        result = await service.generate_experience_bullets("Led a migration and cut costs", count=3)
        self.assertEqual(result.bullets, ["Led migration", "Cut costs 20%", "Hired 4"])


if __name__ == "__main__":
    unittest.main()
