from .content_signals import (
    CORE_SECTION_TYPES,
    ContentSignals,
    build_content_signals,
    existing_skills,
    split_skills,
)

__all__ = [
    "CORE_SECTION_TYPES",
    "ContentSignals",
    "build_content_signals",
    "existing_skills",
    "split_skills",
]
