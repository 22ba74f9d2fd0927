from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Tone = Literal["concise", "formal", "casual", "senior", "technical"]
TONE_OPTIONS: tuple[str, ...] = ("concise", "formal", "casual", "senior", "technical")


class SectionType(str, Enum):
    summary = "summary"
    experience = "experience"
    project = "project"
    certification = "certification"
    skills = "skills"
    education = "education"
    custom = "custom"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Section(_CamelModel):
    type: SectionType
    content: str = ""
    order: int = Field(ge=0)
    id: str | None = None
    title: str | None = None
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class PortfolioSnapshot(_CamelModel):
    portfolio_id: str = Field(alias="portfolioId")
    user_id: str = Field(alias="userId")
    sections: list[Section] = Field(default_factory=list)
    template: str | None = None
    theme: str | None = None

    @model_validator(mode="after")
    def _unique_orders(self) -> PortfolioSnapshot:
        orders = [section.order for section in self.sections]
        if len(orders) != len(set(orders)):
            raise ValueError("section order values must be unique")
        return self

    def ordered_sections(self) -> list[Section]:
        return sorted(self.sections, key=lambda section: section.order)

    def section_types(self) -> list[SectionType]:
        seen: list[SectionType] = []
        for section in self.ordered_sections():
            if section.type not in seen:
                seen.append(section.type)
        return seen


class Subscores(_CamelModel):
    clarity: int = Field(ge=0, le=100)
    technical_depth: int = Field(ge=0, le=100, alias="technicalDepth")
    seniority: int = Field(ge=0, le=100)
    ats_alignment: int = Field(ge=0, le=100, alias="atsAlignment")
    completeness: int = Field(ge=0, le=100)
    tone_consistency: int = Field(ge=0, le=100, alias="toneConsistency")

    def as_dimensions(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


class Recommendation(_CamelModel):
    title: str
    description: str
    dimension: str | None = None
    critical: bool = False
    suggested_rewrite: str | None = Field(default=None, alias="suggestedRewrite")


class AnalysisResult(_CamelModel):
    overall_score: int = Field(ge=0, le=100, alias="overallScore")
    subscores: Subscores
    recommendations: list[Recommendation] = Field(default_factory=list)


class TemplateThemeRecommendation(_CamelModel):
    recommended_template: str = Field(alias="recommendedTemplate")
    recommended_theme: str = Field(alias="recommendedTheme")
    recommended_section_order: list[SectionType] = Field(alias="recommendedSectionOrder")
    rationale: str


class RewriteResult(_CamelModel):
    tone: Tone
    sections: list[Section]
    unchanged_orders: list[int] = Field(default_factory=list, alias="unchangedOrders")


class JobInsights(_CamelModel):
    summary: str = ""
    required_skills: list[str] = Field(default_factory=list, alias="requiredSkills")
    responsibilities: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    seniority_signals: list[str] = Field(default_factory=list, alias="senioritySignals")


class JobOptimizationResult(_CamelModel):
    updated_sections: list[Section] = Field(alias="updatedSections")
    suggested_skills: list[str] = Field(alias="suggestedSkills")
    job_insights: JobInsights = Field(alias="jobInsights")


class DroppedEntity(_CamelModel):
    kind: Literal["employer", "certification"]
    value: str
    reason: str = "not found in resume text"


class GeneratedPortfolioDraft(_CamelModel):
    sections: list[Section]
    suggested_template: str = Field(alias="suggestedTemplate")
    suggested_theme: str = Field(alias="suggestedTheme")
    dropped_entities: list[DroppedEntity] = Field(default_factory=list, alias="droppedEntities")


class ImprovedText(_CamelModel):
    tone: Tone
    improved: str


class GeneratedSummary(_CamelModel):
    summary: str
    word_count: int = Field(ge=0, alias="wordCount")


class SuggestedTag(_CamelModel):
    label: str
    confidence: float = Field(ge=0.0, le=1.0)


class SuggestedTags(_CamelModel):
    tags: list[SuggestedTag]


class ExperienceBullets(_CamelModel):
    bullets: list[str]


# Request payloads. Bounds on lengths and parameters are checked by the
# pipeline so that they surface as ValidationError, not transport errors.


class RewritePortfolioRequest(_CamelModel):
    tone: str


class OptimizeForJobRequest(_CamelModel):
    job_description: str = Field(alias="jobDescription")


class GenerateFromResumeRequest(_CamelModel):
    resume_text: str = Field(alias="resumeText")


class ImproveTextRequest(_CamelModel):
    text: str
    tone: str | None = None


class GenerateSummaryRequest(_CamelModel):
    max_words: int | None = Field(default=None, alias="maxWords")


class SuggestTagsRequest(_CamelModel):
    text: str
    max_tags: int | None = Field(default=None, alias="maxTags")


class ExperienceBulletsRequest(_CamelModel):
    description: str
    count: int | None = None
