from __future__ import annotations

import re

from pydantic import BaseModel

from app.schemas.portfolio import PortfolioSnapshot, SectionType

_WORD_RE = re.compile(r"\S+")
_PASSIVE_RE = re.compile(r"\b(was|were|been|being)\b", re.IGNORECASE)
_ACTIVE_RE = re.compile(r"\b(led|managed|developed|created|designed|implemented|built|shipped)\b", re.IGNORECASE)
_WEAK_RE = re.compile(r"\b(helped|assisted|worked on|involved in|responsible for)\b", re.IGNORECASE)
_STRONG_RE = re.compile(r"\b(achieved|delivered|improved|optimized|increased|reduced|scaled|launched)\b", re.IGNORECASE)
_JUNIOR_RE = re.compile(r"\b(junior|entry|associate|assistant|intern)\b", re.IGNORECASE)
_MID_RE = re.compile(r"\b(mid|intermediate|regular)\b", re.IGNORECASE)
_SENIOR_RE = re.compile(r"\b(senior|lead|principal|staff|architect|director|manager|head)\b", re.IGNORECASE)
_SKILL_SPLIT_RE = re.compile(r"[,\n;|•]+")

CORE_SECTION_TYPES: tuple[SectionType, ...] = (
    SectionType.summary,
    SectionType.experience,
    SectionType.skills,
    SectionType.project,
    SectionType.certification,
)


class ContentSignals(BaseModel):
    section_count: int
    word_count: int
    core_sections_present: int
    has_summary: bool
    has_experience: bool
    skills: list[str]
    experience_count: int
    certification_count: int
    passive: int
    active: int
    weak: int
    strong: int
    junior: int
    mid: int
    senior: int

    @property
    def skills_count(self) -> int:
        return len(self.skills)


def split_skills(text: str) -> list[str]:
    skills: list[str] = []
    for raw in _SKILL_SPLIT_RE.split(text or ""):
        skill = raw.strip().lstrip("-*").strip()
        if skill:
            skills.append(skill)
    return skills


def existing_skills(snapshot: PortfolioSnapshot) -> list[str]:
    skills: list[str] = []
    for section in snapshot.ordered_sections():
        if section.type == SectionType.skills:
            skills.extend(split_skills(section.content))
    return skills


def build_content_signals(snapshot: PortfolioSnapshot) -> ContentSignals:
    sections = snapshot.ordered_sections()
    all_text = " ".join(section.content for section in sections)
    present = {section.type for section in sections if section.content.strip()}

    return ContentSignals(
        section_count=len(sections),
        word_count=len(_WORD_RE.findall(all_text)),
        core_sections_present=sum(1 for section_type in CORE_SECTION_TYPES if section_type in present),
        has_summary=SectionType.summary in present,
        has_experience=SectionType.experience in present,
        skills=existing_skills(snapshot),
        experience_count=sum(1 for s in sections if s.type == SectionType.experience and s.content.strip()),
        certification_count=sum(1 for s in sections if s.type == SectionType.certification and s.content.strip()),
        passive=len(_PASSIVE_RE.findall(all_text)),
        active=len(_ACTIVE_RE.findall(all_text)),
        weak=len(_WEAK_RE.findall(all_text)),
        strong=len(_STRONG_RE.findall(all_text)),
        junior=len(_JUNIOR_RE.findall(all_text)),
        mid=len(_MID_RE.findall(all_text)),
        senior=len(_SENIOR_RE.findall(all_text)),
    )
