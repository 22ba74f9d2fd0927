"""Prompt templates for the portfolio AI operations.

Every prompt is a fixed role preamble, the user's content bounded by a
character budget, and a directive asking for one fenced JSON block with an
exact key set. Parameters are range-checked before they reach the text.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Callable

from app.catalog.templates_themes import TemplateThemeCatalog, default_catalog
from app.core.config import settings
from app.core.errors import ValidationError
from app.features.content_signals import ContentSignals
from app.schemas.portfolio import TONE_OPTIONS, PortfolioSnapshot, Section, SectionType

ANALYZE = "analyze"
RECOMMEND_TEMPLATE_THEME = "recommend_template_theme"
REWRITE = "rewrite"
OPTIMIZE_FOR_JOB = "optimize_for_job"
GENERATE_FROM_RESUME = "generate_from_resume"
IMPROVE_TEXT = "improve_text"
GENERATE_SUMMARY = "generate_summary"
SUGGEST_TAGS = "suggest_tags"
EXPERIENCE_BULLETS = "experience_bullets"

MIN_TEXT_LENGTH = 1
MAX_TEXT_LENGTH = 10000
MIN_JOB_DESCRIPTION_LENGTH = 50
MAX_JOB_DESCRIPTION_LENGTH = 20000
MIN_RESUME_LENGTH = 100
MAX_RESUME_LENGTH = 50000
DEFAULT_SUMMARY_MAX_WORDS = 150
MIN_SUMMARY_WORDS = 50
MAX_SUMMARY_WORDS = 500
DEFAULT_MAX_TAGS = 5
MIN_TAGS = 1
MAX_TAGS = 20
DEFAULT_BULLETS = 5
MIN_BULLETS = 3
MAX_BULLETS = 10

TONE_DESCRIPTIONS: dict[str, str] = {
    "concise": "brief, direct, and impactful - focus on key points",
    "formal": "professional and polished - suitable for corporate environments",
    "casual": "approachable and conversational - while remaining professional",
    "senior": "authoritative and strategic - emphasizing leadership and impact",
    "technical": "precise and detailed - highlighting technical depth and expertise",
}

_OMITTED_MARKER = "[omitted: over length budget]"
_TRUNCATED_MARKER = " ...[truncated]"
_EMPTY_MARKER = "(empty)"
_MIN_CLIP_CHARS = 80


@dataclass(frozen=True)
class Prompt:
    operation: str
    system: str
    user: str
    output_keys: tuple[str, ...]
    truncated_orders: tuple[int, ...] = field(default_factory=tuple)
    omitted_orders: tuple[int, ...] = field(default_factory=tuple)
    input_truncated: bool = False

    @property
    def unchanged_orders(self) -> tuple[int, ...]:
        return tuple(sorted(set(self.truncated_orders) | set(self.omitted_orders)))


# --- parameter validation -------------------------------------------------


def validate_tone(tone: str | None) -> str:
    value = (tone or "").strip().lower()
    if value not in TONE_OPTIONS:
        raise ValidationError(f"Tone must be one of: {', '.join(TONE_OPTIONS)}")
    return value


def _validate_int(value: int | None, *, name: str, minimum: int, maximum: int, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be a whole number")
    if value < minimum or value > maximum:
        raise ValidationError(f"{name} must be between {minimum} and {maximum}")
    return value


def validate_max_words(value: int | None) -> int:
    return _validate_int(
        value, name="maxWords", minimum=MIN_SUMMARY_WORDS, maximum=MAX_SUMMARY_WORDS, default=DEFAULT_SUMMARY_MAX_WORDS
    )


def validate_max_tags(value: int | None) -> int:
    return _validate_int(value, name="maxTags", minimum=MIN_TAGS, maximum=MAX_TAGS, default=DEFAULT_MAX_TAGS)


def validate_bullet_count(value: int | None) -> int:
    return _validate_int(value, name="count", minimum=MIN_BULLETS, maximum=MAX_BULLETS, default=DEFAULT_BULLETS)


def validate_text(text: str | None, *, name: str, minimum: int, maximum: int) -> str:
    value = (text or "").strip()
    if len(value) < minimum:
        if minimum <= 1:
            raise ValidationError(f"{name} is required")
        raise ValidationError(f"{name} must be at least {minimum} characters")
    if len(value) > maximum:
        raise ValidationError(f"{name} cannot exceed {maximum} characters")
    return value


# --- content serialization --------------------------------------------------


def _recency_key(section: Section) -> tuple[float, int]:
    updated = section.updated_at
    if updated is None:
        stamp = float("-inf")
    else:
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        stamp = updated.timestamp()
    return (-stamp, section.order)


def serialize_sections(
    sections: list[Section], budget: int
) -> tuple[str, tuple[int, ...], tuple[int, ...]]:
    """Render sections in display order, spending the budget on the most recently updated first.

    Returns the text plus the orders of clipped and omitted sections.
    """
    remaining = max(0, budget)
    rendered: dict[int, str] = {}
    truncated: list[int] = []
    omitted: list[int] = []

    by_recency = sorted(range(len(sections)), key=lambda index: _recency_key(sections[index]))
    for index in by_recency:
        section = sections[index]
        content = section.content.strip()
        if len(content) <= remaining:
            rendered[index] = content
            remaining -= len(content)
        elif remaining >= _MIN_CLIP_CHARS:
            rendered[index] = content[:remaining].rstrip() + _TRUNCATED_MARKER
            truncated.append(section.order)
            remaining = 0
        else:
            rendered[index] = _OMITTED_MARKER
            omitted.append(section.order)
            remaining = 0

    blocks = []
    for index in sorted(range(len(sections)), key=lambda index: sections[index].order):
        section = sections[index]
        heading = f"[order={section.order}] [type={section.type.value}]"
        if section.title:
            heading += f" {section.title}"
        blocks.append(f"{heading}\n{rendered[index] or _EMPTY_MARKER}")
    return "\n\n".join(blocks), tuple(sorted(truncated)), tuple(sorted(omitted))


def clip_text(text: str, budget: int) -> tuple[str, bool]:
    if len(text) <= budget:
        return text, False
    return text[:budget].rstrip() + _TRUNCATED_MARKER, True


def _output_directive(example: dict[str, Any]) -> str:
    keys = ", ".join(f'"{key}"' for key in example)
    rendered = json.dumps(example, indent=2)
    return (
        "OUTPUT FORMAT:\n"
        "Respond with exactly one fenced JSON block and no other text.\n"
        f"The top-level JSON object must contain exactly these keys: {keys}.\n"
        "```json\n"
        f"{rendered}\n"
        "```"
    )


def _section_example(content: str = "<rewritten text>") -> dict[str, Any]:
    return {"order": 0, "type": "summary", "content": content}


_SECTION_TYPES = ", ".join(section_type.value for section_type in SectionType)


# --- per-operation builders ------------------------------------------------


def _analyze(snapshot: PortfolioSnapshot, *, signals: ContentSignals, budget: int) -> Prompt:
    content, truncated, omitted = serialize_sections(snapshot.ordered_sections(), budget)
    example = {
        "subscores": {
            "clarity": 70,
            "technicalDepth": 65,
            "seniority": 60,
            "atsAlignment": 55,
            "completeness": 75,
            "toneConsistency": 80,
        },
        "recommendations": [
            {
                "title": "Short recommendation title",
                "description": "What to improve and why",
                "dimension": "atsAlignment",
                "suggestedRewrite": "Improved text for the weakest passage (only for the most critical issues)",
            }
        ],
    }
    system = (
        "You are an expert career coach and ATS (Applicant Tracking System) specialist.\n"
        "Evaluate the portfolio on these dimensions, each scored 0-100:\n"
        "- clarity: how clear and easy to understand the content is\n"
        "- technicalDepth: how well it demonstrates technical expertise\n"
        "- seniority: how effectively it signals the appropriate career level\n"
        "- atsAlignment: how well it is optimized for ATS parsing\n"
        "- completeness: how complete and well-rounded the portfolio is\n"
        "- toneConsistency: how consistent the professional tone is\n\n"
        "SCORING RUBRIC (follow strictly):\n"
        "- 0-19: missing or unusable\n"
        "- 20-39: weak, major gaps\n"
        "- 40-59: adequate with clear gaps\n"
        "- 60-74: good with minor gaps\n"
        "- 75-89: strong\n"
        "- 90-100: exceptional\n\n"
        "Give 3-5 specific, actionable recommendations. Tag each with the dimension it improves. "
        "Only base your judgement on the content provided.\n\n"
        + _output_directive(example)
    )
    user = (
        "Analyze this portfolio.\n\n"
        f"SECTIONS:\n{content}\n\n"
        "METRICS:\n"
        f"- Total sections: {signals.section_count}\n"
        f"- Total words: {signals.word_count}\n"
        f"- Skills listed: {signals.skills_count}\n"
        f"- Passive voice markers: {signals.passive}\n"
        f"- Active verbs: {signals.active}\n"
        f"- Weak verbs: {signals.weak}\n"
        f"- Strong verbs: {signals.strong}\n"
        f"- Junior signals: {signals.junior}\n"
        f"- Mid signals: {signals.mid}\n"
        f"- Senior signals: {signals.senior}"
    )
    return Prompt(ANALYZE, system, user, tuple(example), truncated, omitted)


def _recommend(
    snapshot: PortfolioSnapshot,
    *,
    signals: ContentSignals,
    budget: int,
    catalog: TemplateThemeCatalog | None = None,
) -> Prompt:
    catalog = catalog or default_catalog
    content, truncated, omitted = serialize_sections(snapshot.ordered_sections(), budget)
    templates = "\n".join(
        f"- {template.id}: {template.description} Best for {template.best_for}." for template in catalog.templates
    )
    themes = "\n".join(f"- {theme.id}: {theme.description}" for theme in catalog.themes)
    present = [section_type.value for section_type in snapshot.section_types()]
    example = {
        "recommendedTemplate": catalog.top_template.id,
        "recommendedTheme": catalog.top_theme.id,
        "recommendedSectionOrder": present,
        "rationale": "Two or three sentences explaining why these fit the profile",
    }
    system = (
        "You are an expert portfolio designer and career advisor.\n"
        "Recommend the best template, theme, and section order for the user's portfolio.\n\n"
        f"Available templates (use the id exactly):\n{templates}\n\n"
        f"Available themes (use the id exactly):\n{themes}\n\n"
        "recommendedSectionOrder must list every section type currently in the portfolio exactly once "
        "and no other types.\n\n"
        + _output_directive(example)
    )
    user = (
        "Recommend a template, theme, and section order for this portfolio.\n\n"
        f"Current section order: {', '.join(present)}\n"
        f"Current template: {snapshot.template or 'none'}\n"
        f"Current theme: {snapshot.theme or 'none'}\n"
        f"Experience sections: {signals.experience_count}\n"
        f"Certification sections: {signals.certification_count}\n"
        f"Skills listed: {signals.skills_count}\n"
        f"Senior signals: {signals.senior}\n\n"
        f"SECTIONS:\n{content}"
    )
    return Prompt(RECOMMEND_TEMPLATE_THEME, system, user, tuple(example), truncated, omitted)


def _rewrite(snapshot: PortfolioSnapshot, *, tone: str, budget: int) -> Prompt:
    tone = validate_tone(tone)
    sections = snapshot.ordered_sections()
    content, truncated, omitted = serialize_sections(sections, budget)
    example = {"sections": [_section_example()]}
    system = (
        "You are an expert editor for professional portfolios and resumes.\n"
        "Rewrite every section to improve clarity, impact, and professionalism.\n\n"
        f"Style: {TONE_DESCRIPTIONS[tone]}\n\n"
        "Rules:\n"
        "- Maintain all factual information\n"
        "- Do not add claims, employers, certifications, or achievements that are not in the original\n"
        "- Fix grammar and spelling, remove redundancy\n"
        f"- Return exactly {len(sections)} sections, one per input section, with the same order and type values\n"
        f"- type is one of: {_SECTION_TYPES}\n"
        "- Sections marked as omitted or truncated must still be returned; rewrite what is visible\n"
        f"- Sections shown as {_EMPTY_MARKER} must be returned with an empty content string\n\n"
        + _output_directive(example)
    )
    user = f"Rewrite these {len(sections)} sections in a {tone} style:\n\n{content}"
    return Prompt(REWRITE, system, user, tuple(example), truncated, omitted)


def _optimize(snapshot: PortfolioSnapshot, *, job_description: str, budget: int) -> Prompt:
    job_description = validate_text(
        job_description,
        name="Job description",
        minimum=MIN_JOB_DESCRIPTION_LENGTH,
        maximum=MAX_JOB_DESCRIPTION_LENGTH,
    )
    jd_budget = max(1000, int(budget * 0.4))
    jd_text, jd_clipped = clip_text(job_description, jd_budget)
    content, truncated, omitted = serialize_sections(snapshot.ordered_sections(), max(0, budget - len(jd_text)))
    example = {
        "updatedSections": [_section_example("<section rewritten to emphasise job-relevant content>")],
        "suggestedSkills": ["Skill the job asks for that the portfolio does not list"],
        "jobInsights": {
            "summary": "Two or three sentences on how the portfolio matches the role",
            "requiredSkills": ["skill"],
            "responsibilities": ["responsibility"],
            "keywords": ["keyword"],
            "senioritySignals": ["signal"],
        },
    }
    system = (
        "You are an expert at tailoring portfolios to job descriptions.\n"
        "Identify the job's required skills, responsibilities, keywords, and seniority signals, then rewrite the "
        "sections that benefit from it so the overlap between the job and the existing experience is obvious.\n\n"
        "Rules:\n"
        "- Only rewrite sections that exist; reuse their exact order and type values\n"
        "- Never invent experience, employers, or certifications\n"
        "- suggestedSkills lists skills the job requires that the portfolio does not already list\n\n"
        + _output_directive(example)
    )
    user = f"JOB DESCRIPTION:\n---\n{jd_text}\n---\n\nPORTFOLIO SECTIONS:\n{content}"
    return Prompt(OPTIMIZE_FOR_JOB, system, user, tuple(example), truncated, omitted, jd_clipped)


def _generate_from_resume(resume_text: str, *, budget: int) -> Prompt:
    resume_text = validate_text(resume_text, name="Resume text", minimum=MIN_RESUME_LENGTH, maximum=MAX_RESUME_LENGTH)
    text, clipped = clip_text(resume_text, budget)
    example = {
        "summary": "Professional summary from the resume",
        "experience": [
            {
                "role": "Job Title",
                "company": "Company Name",
                "startDate": "YYYY-MM",
                "endDate": "YYYY-MM or Present",
                "description": "What they did in this role",
            }
        ],
        "certifications": [{"title": "Certification Name", "issuer": "Issuing Organization"}],
        "skills": ["Skill1", "Skill2"],
        "education": [{"degree": "Degree Name", "institution": "School Name"}],
        "projects": [{"name": "Project Name", "description": "What it does"}],
    }
    system = (
        "You are an expert at parsing resumes and extracting structured data.\n"
        "Extract the summary, work experience, certifications, skills, education, and projects.\n\n"
        "Rules:\n"
        "- Copy employer names and certification titles exactly as written in the resume\n"
        "- Never add an employer, certification, or degree that is not in the resume\n"
        "- If a section is missing, return an empty list or an empty string\n\n"
        + _output_directive(example)
    )
    user = f"Extract structured data from this resume:\n\n{text}"
    return Prompt(GENERATE_FROM_RESUME, system, user, tuple(example), input_truncated=clipped)


def _improve_text(text: str, *, tone: str | None = None) -> Prompt:
    text = validate_text(text, name="Text", minimum=MIN_TEXT_LENGTH, maximum=MAX_TEXT_LENGTH)
    tone = validate_tone(tone or "concise")
    example = {"improved": "<rewritten text>"}
    system = (
        "You are an expert editor for professional portfolios and resumes.\n"
        "Rewrite the text to improve clarity, impact, and professionalism.\n\n"
        f"Style: {TONE_DESCRIPTIONS[tone]}\n\n"
        "Rules:\n"
        "- Maintain all factual information\n"
        "- Do not add claims or achievements that are not in the original\n"
        "- Fix grammar and spelling, improve word choice, remove redundancy\n\n"
        + _output_directive(example)
    )
    return Prompt(IMPROVE_TEXT, system, f"Rewrite this text in a {tone} style:\n\n{text}", tuple(example))


def _generate_summary(snapshot: PortfolioSnapshot, *, max_words: int | None = None, budget: int) -> Prompt:
    max_words = validate_max_words(max_words)
    relevant = [
        section
        for section in snapshot.ordered_sections()
        if section.type in {SectionType.experience, SectionType.skills, SectionType.certification, SectionType.project}
    ]
    content, truncated, omitted = serialize_sections(relevant, budget)
    example = {"summary": "<summary paragraph>"}
    system = (
        "You are an expert at writing professional portfolio summaries.\n"
        "Write one concise, impactful paragraph that:\n"
        "- highlights key qualifications and expertise\n"
        "- shows the unique value the person brings\n"
        "- is written in the first person\n"
        f"- does not exceed {max_words} words\n"
        "- only uses facts present in the provided content\n\n"
        + _output_directive(example)
    )
    user = f"Write a summary (maximum {max_words} words) from this portfolio content:\n\n{content}"
    return Prompt(GENERATE_SUMMARY, system, user, tuple(example), truncated, omitted)


def _suggest_tags(text: str, *, max_tags: int | None = None) -> Prompt:
    text = validate_text(text, name="Text", minimum=MIN_TEXT_LENGTH, maximum=MAX_TEXT_LENGTH)
    max_tags = validate_max_tags(max_tags)
    example = {"tags": [{"label": "tag-name", "confidence": 0.95}]}
    system = (
        "You are a tag suggestion engine for a professional portfolio builder.\n"
        "Suggest tags for text about certifications, work experience, or skills. Tags must be concise "
        "(1-3 words), relevant, and industry-standard: technologies, skills, methodologies, or domains.\n"
        f"Return up to {max_tags} tags ordered by confidence (highest first); confidence is between 0 and 1.\n\n"
        + _output_directive(example)
    )
    return Prompt(SUGGEST_TAGS, system, f"Suggest tags for this text:\n\n{text}", tuple(example))


def _experience_bullets(description: str, *, count: int | None = None) -> Prompt:
    description = validate_text(description, name="Description", minimum=MIN_TEXT_LENGTH, maximum=MAX_TEXT_LENGTH)
    count = validate_bullet_count(count)
    example = {"bullets": ["First bullet point", "Second bullet point"]}
    system = (
        "You are an expert resume writer specializing in achievement-focused bullet points.\n"
        f"Convert the experience description into at most {count} bullet points that start with strong action "
        "verbs, quantify achievements where the description gives numbers, and stay specific. "
        "Do not invent metrics.\n\n"
        + _output_directive(example)
    )
    return Prompt(EXPERIENCE_BULLETS, system, f"Convert this experience description:\n\n{description}", tuple(example))


_BUILDERS: dict[str, Callable[..., Prompt]] = {
    ANALYZE: _analyze,
    RECOMMEND_TEMPLATE_THEME: _recommend,
    REWRITE: _rewrite,
    OPTIMIZE_FOR_JOB: _optimize,
    GENERATE_FROM_RESUME: _generate_from_resume,
    IMPROVE_TEXT: _improve_text,
    GENERATE_SUMMARY: _generate_summary,
    SUGGEST_TAGS: _suggest_tags,
    EXPERIENCE_BULLETS: _experience_bullets,
}
_BUDGETED = {ANALYZE, RECOMMEND_TEMPLATE_THEME, REWRITE, OPTIMIZE_FOR_JOB, GENERATE_FROM_RESUME, GENERATE_SUMMARY}


def build(operation: str, domain_input: Any, **options: Any) -> Prompt:
    try:
        builder = _BUILDERS[operation]
    except KeyError as exc:
        raise ValueError(f"Unknown AI operation '{operation}'") from exc
    if operation in _BUDGETED:
        options.setdefault("budget", settings.ai_prompt_max_chars)
    return builder(domain_input, **options)
