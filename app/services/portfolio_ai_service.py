from __future__ import annotations

import logging
import re
from difflib import SequenceMatcher
from functools import lru_cache
from typing import TypeVar

from pydantic import BaseModel

from app.ai import prompts
from app.ai.client import CompletionClient
from app.ai.config import (
    TEMPERATURE_BALANCED,
    TEMPERATURE_CREATIVE,
    TEMPERATURE_DETERMINISTIC,
    AIConfig,
    load_ai_config,
    model_profile,
)
from app.ai.factory import get_completion_client
from app.ai.response_parser import parse
from app.ai.types import ModelProfile
from app.catalog.templates_themes import TemplateThemeCatalog, default_catalog
from app.core.errors import EmptyInput, NotFound, ParseError
from app.features.content_signals import build_content_signals, existing_skills, split_skills
from app.schemas.ai_output import (
    AnalysisOutput,
    BulletsOutput,
    ImproveTextOutput,
    OptimizeOutput,
    ResumeExtractionOutput,
    RewriteOutput,
    SummaryOutput,
    TagsOutput,
    TemplateRecommendationOutput,
)
from app.schemas.portfolio import (
    AnalysisResult,
    DroppedEntity,
    ExperienceBullets,
    GeneratedPortfolioDraft,
    GeneratedSummary,
    ImprovedText,
    JobInsights,
    JobOptimizationResult,
    PortfolioSnapshot,
    RewriteResult,
    Section,
    SectionType,
    SuggestedTag,
    SuggestedTags,
    TemplateThemeRecommendation,
)
from app.services import portfolio_scoring
from app.services.portfolio_store import PortfolioRepository, get_portfolio_repository

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

TRACEABILITY_THRESHOLD = 0.85
SUMMARY_WORD_TOLERANCE = 1.2

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_WORD_RE = re.compile(r"\S+")
_BULLET_PREFIX_RE = re.compile(r"^\s*(?:[-*•▪◦]|\d+[.)])\s*")

_SUMMARY_SOURCE_TYPES = {
    SectionType.experience,
    SectionType.skills,
    SectionType.certification,
    SectionType.project,
}

_THEME_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("warm-sunset", ("creative", "design", "designer", "ux", "ui", "artist", "illustrator")),
    ("ocean-teal", ("startup", "modern", "product", "founder")),
    ("dark-slate", ("data", "engineer", "engineering", "developer", "devops", "machine learning", "security")),
    ("elegant-purple", ("executive", "director", "vp", "chief", "head of", "senior leadership")),
)


def _normalize_tokens(text: str) -> list[str]:
    return _TOKEN_RE.findall((text or "").casefold())


def is_traceable(value: str, source_tokens: list[str], threshold: float = TRACEABILITY_THRESHOLD) -> bool:
    """True when `value` appears in the source, verbatim after normalization or nearly so."""
    tokens = _normalize_tokens(value)
    if not tokens or not source_tokens:
        return False

    needle = " ".join(tokens)
    if f" {needle} " in f" {' '.join(source_tokens)} ":
        return True

    width = len(tokens)
    if width > len(source_tokens):
        return SequenceMatcher(None, needle, " ".join(source_tokens)).ratio() >= threshold

    matcher = SequenceMatcher(None, "", needle)
    for start in range(len(source_tokens) - width + 1):
        matcher.set_seq1(" ".join(source_tokens[start : start + width]))
        if matcher.real_quick_ratio() < threshold or matcher.quick_ratio() < threshold:
            continue
        if matcher.ratio() >= threshold:
            return True
    return False


def _word_count(text: str) -> int:
    return len(_WORD_RE.findall(text or ""))


def _clean_list(values: list[str]) -> list[str]:
    seen: set[str] = set()
    cleaned: list[str] = []
    for value in values:
        item = (value or "").strip()
        key = item.casefold()
        if not item or key in seen:
            continue
        seen.add(key)
        cleaned.append(item)
    return cleaned


class PortfolioAIService:
    """Runs each AI operation as one prompt, one completion and one validated result."""

    def __init__(
        self,
        repository: PortfolioRepository,
        client: CompletionClient,
        catalog: TemplateThemeCatalog | None = None,
        *,
        ai_config: AIConfig | None = None,
    ):
        self._repository = repository
        self._client = client
        self._catalog = catalog or default_catalog
        self._ai_config = ai_config or load_ai_config()

    # -- helpers -----------------------------------------------------------

    def _profile(self, name: str, temperature: float) -> ModelProfile:
        return model_profile(name, self._ai_config, temperature=temperature)

    def _load_portfolio(self, user_id: str) -> PortfolioSnapshot:
        snapshot = self._repository.fetch_portfolio(user_id)
        if snapshot is None:
            raise NotFound("No portfolio found for this account.")
        if not any(section.content.strip() for section in snapshot.sections):
            raise EmptyInput("Add some content to your portfolio before using AI features.")
        return snapshot

    async def _run(self, prompt: prompts.Prompt, schema: type[T], profile: ModelProfile) -> T:
        raw = await self._client.complete(prompt, profile)
        return parse(raw, schema, operation=prompt.operation)

    def _contract_violation(self, operation: str, reason: str) -> ParseError:
        logger.warning("ai_output_rejected operation=%s reason=%s", operation, reason)
        return ParseError("The AI response did not match the expected structure. Please try again.")

    # -- portfolio operations ----------------------------------------------

    async def analyze(self, user_id: str) -> AnalysisResult:
        snapshot = self._load_portfolio(user_id)
        signals = build_content_signals(snapshot)
        prompt = prompts.build(prompts.ANALYZE, snapshot, signals=signals)
        raw = await self._run(prompt, AnalysisOutput, self._profile("default", TEMPERATURE_DETERMINISTIC))
        return portfolio_scoring.score(raw, signals)

    async def recommend_template_theme(self, user_id: str) -> TemplateThemeRecommendation:
        snapshot = self._load_portfolio(user_id)
        signals = build_content_signals(snapshot)
        prompt = prompts.build(prompts.RECOMMEND_TEMPLATE_THEME, snapshot, signals=signals, catalog=self._catalog)
        raw = await self._run(
            prompt,
            TemplateRecommendationOutput,
            self._profile("default", TEMPERATURE_BALANCED),
        )

        template = self._catalog.get_template(raw.recommendedTemplate)
        if template is None:
            template = self._catalog.top_template
            logger.info(
                "catalog_fallback kind=template requested=%r used=%s", raw.recommendedTemplate[:60], template.id
            )
        theme = self._catalog.get_theme(raw.recommendedTheme)
        if theme is None:
            theme = self._catalog.top_theme
            logger.info("catalog_fallback kind=theme requested=%r used=%s", raw.recommendedTheme[:60], theme.id)

        return TemplateThemeRecommendation(
            recommended_template=template.id,
            recommended_theme=theme.id,
            recommended_section_order=repair_section_order(raw.recommendedSectionOrder, snapshot.section_types()),
            rationale=raw.rationale.strip(),
        )

    async def rewrite_portfolio(self, user_id: str, tone: str) -> RewriteResult:
        tone = prompts.validate_tone(tone)
        snapshot = self._load_portfolio(user_id)
        sections = snapshot.ordered_sections()
        prompt = prompts.build(prompts.REWRITE, snapshot, tone=tone)
        raw = await self._run(prompt, RewriteOutput, self._profile("long_running", TEMPERATURE_BALANCED))

        if len(raw.sections) != len(sections):
            raise self._contract_violation(
                prompt.operation, f"section_count expected={len(sections)} got={len(raw.sections)}"
            )
        unchanged = set(prompt.unchanged_orders)
        unchanged.update(section.order for section in sections if not section.content.strip())
        rewritten: list[Section] = []
        for original, candidate in zip(sections, raw.sections):
            if candidate.order != original.order or candidate.type != original.type.value:
                raise self._contract_violation(
                    prompt.operation,
                    f"section_mismatch expected={original.order}:{original.type.value} "
                    f"got={candidate.order}:{candidate.type}",
                )
            if original.order in unchanged:
                rewritten.append(original)
            elif not candidate.content.strip():
                raise self._contract_violation(prompt.operation, f"empty_section order={original.order}")
            else:
                rewritten.append(original.model_copy(update={"content": candidate.content.strip()}))

        return RewriteResult(tone=tone, sections=rewritten, unchanged_orders=sorted(unchanged))

    async def optimize_for_job(self, user_id: str, job_description: str) -> JobOptimizationResult:
        job_description = prompts.validate_text(
            job_description,
            name="Job description",
            minimum=prompts.MIN_JOB_DESCRIPTION_LENGTH,
            maximum=prompts.MAX_JOB_DESCRIPTION_LENGTH,
        )
        snapshot = self._load_portfolio(user_id)
        prompt = prompts.build(prompts.OPTIMIZE_FOR_JOB, snapshot, job_description=job_description)
        raw = await self._run(prompt, OptimizeOutput, self._profile("long_running", TEMPERATURE_BALANCED))

        by_key = {(section.order, section.type.value): section for section in snapshot.sections}
        unchanged = set(prompt.unchanged_orders)
        updated: list[Section] = []
        seen_orders: set[int] = set()
        for candidate in raw.updatedSections:
            original = by_key.get((candidate.order, candidate.type))
            if original is None:
                raise self._contract_violation(
                    prompt.operation, f"unknown_section order={candidate.order} type={candidate.type}"
                )
            if not candidate.content.strip():
                raise self._contract_violation(prompt.operation, f"empty_section order={candidate.order}")
            if candidate.order in seen_orders:
                continue
            seen_orders.add(candidate.order)
            if candidate.order in unchanged:
                logger.info("optimize_update_skipped operation=%s order=%s reason=truncated", prompt.operation, candidate.order)
                continue
            updated.append(original.model_copy(update={"content": candidate.content.strip()}))

        known = {skill.casefold() for skill in existing_skills(snapshot)}
        suggested: list[str] = []
        for skill in raw.suggestedSkills:
            for item in split_skills(skill):
                key = item.casefold()
                if key in known:
                    continue
                known.add(key)
                suggested.append(item)

        insights = raw.jobInsights
        return JobOptimizationResult(
            updated_sections=sorted(updated, key=lambda section: section.order),
            suggested_skills=suggested,
            job_insights=JobInsights(
                summary=insights.summary.strip(),
                required_skills=_clean_list(insights.requiredSkills),
                responsibilities=_clean_list(insights.responsibilities),
                keywords=_clean_list(insights.keywords),
                seniority_signals=_clean_list(insights.senioritySignals),
            ),
        )

    async def generate_from_resume(self, user_id: str, resume_text: str) -> GeneratedPortfolioDraft:
        resume_text = prompts.validate_text(
            resume_text,
            name="Resume text",
            minimum=prompts.MIN_RESUME_LENGTH,
            maximum=prompts.MAX_RESUME_LENGTH,
        )
        prompt = prompts.build(prompts.GENERATE_FROM_RESUME, resume_text)
        raw = await self._run(
            prompt,
            ResumeExtractionOutput,
            self._profile("long_running", TEMPERATURE_DETERMINISTIC),
        )

        source_tokens = _normalize_tokens(resume_text)
        dropped: list[DroppedEntity] = []

        experience = []
        for entry in raw.experience:
            company = entry.company.strip()
            if company and not is_traceable(company, source_tokens):
                dropped.append(DroppedEntity(kind="employer", value=company))
                continue
            experience.append(entry)

        certifications = []
        for cert in raw.certifications:
            if not is_traceable(cert.title, source_tokens):
                dropped.append(DroppedEntity(kind="certification", value=cert.title.strip()))
                continue
            certifications.append(cert)

        if dropped:
            logger.info(
                "resume_entities_dropped user=%s employers=%s certifications=%s",
                user_id,
                sum(1 for item in dropped if item.kind == "employer"),
                sum(1 for item in dropped if item.kind == "certification"),
            )

        skills = _clean_list(raw.skills)
        sections: list[Section] = []

        def add(section_type: SectionType, content: str, title: str | None = None) -> None:
            content = content.strip()
            if content:
                sections.append(Section(type=section_type, content=content, order=len(sections), title=title))

        add(SectionType.summary, raw.summary, "Summary")
        add(SectionType.skills, ", ".join(skills), "Skills")
        for entry in experience:
            dates = " - ".join(part.strip() for part in (entry.startDate or "", entry.endDate or "") if part.strip())
            title = f"{entry.role.strip()} at {entry.company.strip()}" if entry.company.strip() else entry.role.strip()
            add(SectionType.experience, "\n".join(part for part in (dates, entry.description.strip()) if part), title)
        for cert in certifications:
            issuer = cert.issuer.strip()
            add(SectionType.certification, f"{cert.title.strip()} - {issuer}" if issuer else cert.title, cert.title.strip())
        for education in raw.education:
            add(SectionType.education, ", ".join(p.strip() for p in (education.degree, education.institution) if p.strip()))
        for project in raw.projects:
            add(SectionType.project, project.description or project.name, project.name.strip())

        if not sections:
            raise self._contract_violation(prompt.operation, "no_usable_content")

        template = self._catalog.get_template(
            suggest_template_id(len(experience), len(skills), len(certifications))
        ) or self._catalog.top_template
        theme = self._catalog.get_theme(suggest_theme_id(resume_text)) or self._catalog.top_theme

        return GeneratedPortfolioDraft(
            sections=sections,
            suggested_template=template.id,
            suggested_theme=theme.id,
            dropped_entities=dropped,
        )

    # -- text helpers ------------------------------------------------------

    async def improve_text(self, text: str, tone: str | None = None) -> ImprovedText:
        prompt = prompts.build(prompts.IMPROVE_TEXT, text, tone=tone)
        resolved_tone = prompts.validate_tone(tone or "concise")
        raw = await self._run(prompt, ImproveTextOutput, self._profile("default", TEMPERATURE_CREATIVE))
        return ImprovedText(tone=resolved_tone, improved=raw.improved.strip())

    async def generate_summary(self, user_id: str, max_words: int | None = None) -> GeneratedSummary:
        max_words = prompts.validate_max_words(max_words)
        snapshot = self._load_portfolio(user_id)
        if not any(s.type in _SUMMARY_SOURCE_TYPES and s.content.strip() for s in snapshot.sections):
            raise EmptyInput("Add experience, skills, or certifications before generating a summary.")

        prompt = prompts.build(prompts.GENERATE_SUMMARY, snapshot, max_words=max_words)
        raw = await self._run(prompt, SummaryOutput, self._profile("default", TEMPERATURE_CREATIVE))
        summary = raw.summary.strip()
        words = _word_count(summary)
        if words > int(max_words * SUMMARY_WORD_TOLERANCE):
            raise self._contract_violation(prompt.operation, f"summary_too_long words={words} max={max_words}")
        return GeneratedSummary(summary=summary, word_count=words)

    async def suggest_tags(self, text: str, max_tags: int | None = None) -> SuggestedTags:
        max_tags = prompts.validate_max_tags(max_tags)
        prompt = prompts.build(prompts.SUGGEST_TAGS, text, max_tags=max_tags)
        raw = await self._run(prompt, TagsOutput, self._profile("default", TEMPERATURE_DETERMINISTIC))

        best: dict[str, SuggestedTag] = {}
        for tag in raw.tags:
            label = tag.label.strip()
            key = label.casefold()
            if key not in best or tag.confidence > best[key].confidence:
                best[key] = SuggestedTag(label=label, confidence=tag.confidence)
        ranked = sorted(best.values(), key=lambda tag: tag.confidence, reverse=True)
        return SuggestedTags(tags=ranked[:max_tags])

    async def generate_experience_bullets(self, description: str, count: int | None = None) -> ExperienceBullets:
        count = prompts.validate_bullet_count(count)
        prompt = prompts.build(prompts.EXPERIENCE_BULLETS, description, count=count)
        raw = await self._run(prompt, BulletsOutput, self._profile("default", TEMPERATURE_BALANCED))
        bullets = [_BULLET_PREFIX_RE.sub("", bullet).strip() for bullet in raw.bullets]
        bullets = [bullet for bullet in bullets if bullet]
        if not bullets:
            raise self._contract_violation(prompt.operation, "no_bullets")
        return ExperienceBullets(bullets=bullets[:count])


def repair_section_order(proposed: list[str], present: list[SectionType]) -> list[SectionType]:
    """Turn the model's proposal into a permutation of the section types actually present."""
    ordered: list[SectionType] = []
    for value in proposed:
        section_type = SectionType(value)
        if section_type in present and section_type not in ordered:
            ordered.append(section_type)
    ordered.extend(section_type for section_type in present if section_type not in ordered)
    return ordered


def suggest_template_id(experience_count: int, skills_count: int, certification_count: int) -> str:
    if experience_count >= 3:
        return "timeline"
    if skills_count >= 10 and certification_count >= 2:
        return "grid-showcase"
    if experience_count >= 2 or skills_count >= 5:
        return "professional"
    return "modern-minimal"


def suggest_theme_id(text: str) -> str:
    padded = f" {' '.join(_normalize_tokens(text))} "
    for theme_id, keywords in _THEME_KEYWORDS:
        if any(f" {keyword} " in padded for keyword in keywords):
            return theme_id
    return "light-blue"


@lru_cache(maxsize=1)
def get_portfolio_ai_service() -> PortfolioAIService:
    return PortfolioAIService(get_portfolio_repository(), get_completion_client(), default_catalog)
