"""Output contracts the completion service must honour, one model per operation.

Everything coming back from the model is untrusted: types are strict (no
string-to-number coercion), enumerations are closed, and score fields only
accept numbers inside a small tolerance band around 0-100.
"""

from __future__ import annotations

import math
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

from app.core.scoring import get_scoring_value

DimensionName = Literal[
    "clarity",
    "technicalDepth",
    "seniority",
    "atsAlignment",
    "completeness",
    "toneConsistency",
]
SectionTypeName = Literal["summary", "experience", "project", "certification", "skills", "education", "custom"]


def _bounded_score(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("score must be a number")
    if not math.isfinite(value):
        raise ValueError("score must be finite")
    tolerance = float(get_scoring_value("tolerance", 10))
    if value < -tolerance or value > 100 + tolerance:
        raise ValueError(f"score {value} is outside 0-100")
    return int(round(min(100.0, max(0.0, float(value)))))


Score = Annotated[int, BeforeValidator(_bounded_score)]
NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]


class _Output(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RawSubscores(_Output):
    clarity: Score
    technicalDepth: Score
    seniority: Score
    atsAlignment: Score
    completeness: Score
    toneConsistency: Score


class RawRecommendation(_Output):
    title: NonEmptyStr
    description: NonEmptyStr
    dimension: DimensionName | None = None
    suggestedRewrite: StrictStr | None = None


class AnalysisOutput(_Output):
    subscores: RawSubscores
    recommendations: list[RawRecommendation]


class TemplateRecommendationOutput(_Output):
    recommendedTemplate: StrictStr
    recommendedTheme: StrictStr
    recommendedSectionOrder: list[SectionTypeName]
    rationale: NonEmptyStr


class RawSection(_Output):
    order: StrictInt
    type: SectionTypeName
    content: StrictStr


class RewriteOutput(_Output):
    sections: list[RawSection]


class JobInsightsOutput(_Output):
    summary: NonEmptyStr
    requiredSkills: list[StrictStr] = Field(default_factory=list)
    responsibilities: list[StrictStr] = Field(default_factory=list)
    keywords: list[StrictStr] = Field(default_factory=list)
    senioritySignals: list[StrictStr] = Field(default_factory=list)


class OptimizeOutput(_Output):
    updatedSections: list[RawSection]
    suggestedSkills: list[StrictStr]
    jobInsights: JobInsightsOutput


class RawExperience(_Output):
    role: NonEmptyStr
    company: StrictStr
    startDate: StrictStr | None = None
    endDate: StrictStr | None = None
    description: StrictStr = ""


class RawCertification(_Output):
    title: NonEmptyStr
    issuer: StrictStr = ""


class RawEducation(_Output):
    degree: StrictStr
    institution: StrictStr


class RawProject(_Output):
    name: NonEmptyStr
    description: StrictStr = ""


class ResumeExtractionOutput(_Output):
    summary: StrictStr
    experience: list[RawExperience]
    certifications: list[RawCertification]
    skills: list[StrictStr]
    education: list[RawEducation]
    projects: list[RawProject] = Field(default_factory=list)


class ImproveTextOutput(_Output):
    improved: NonEmptyStr


class SummaryOutput(_Output):
    summary: NonEmptyStr


class RawTag(_Output):
    label: NonEmptyStr
    confidence: StrictFloat = Field(ge=0.0, le=1.0)


class TagsOutput(_Output):
    tags: list[RawTag]


class BulletsOutput(_Output):
    bullets: list[NonEmptyStr] = Field(min_length=1)
