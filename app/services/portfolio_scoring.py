from __future__ import annotations

from typing import Any

from app.core.scoring import DIMENSIONS, get_scoring_value
from app.features.content_signals import ContentSignals
from app.schemas.ai_output import AnalysisOutput, RawRecommendation
from app.schemas.portfolio import AnalysisResult, Recommendation, Subscores


def _bands() -> list[tuple[int, int]]:
    raw: list[dict[str, Any]] = get_scoring_value("bands", []) or []
    bands = [(int(band["min"]), int(band["score"])) for band in raw]
    return sorted(bands, key=lambda band: band[0], reverse=True)


def quantize(value: int) -> int:
    """Snap a raw subscore to the anchor of the rubric band it falls in."""
    for minimum, anchor in _bands():
        if value >= minimum:
            return anchor
    return value


def content_caps(signals: ContentSignals) -> dict[str, int]:
    caps = {dimension: 100 for dimension in DIMENSIONS}

    base = int(get_scoring_value("caps.completeness.base", 30))
    per_section = int(get_scoring_value("caps.completeness.per_core_section", 14))
    caps["completeness"] = min(100, base + per_section * signals.core_sections_present)

    if signals.skills_count < int(get_scoring_value("caps.technicalDepth.min_skills", 3)):
        caps["technicalDepth"] = int(get_scoring_value("caps.technicalDepth.ceiling_when_few_skills", 60))

    if signals.weak > signals.strong + signals.active:
        caps["toneConsistency"] = int(get_scoring_value("caps.toneConsistency.ceiling_when_weak_dominates", 68))

    if signals.word_count < int(get_scoring_value("caps.atsAlignment.min_words", 80)):
        caps["atsAlignment"] = int(get_scoring_value("caps.atsAlignment.ceiling_when_thin", 50))

    if not signals.has_summary:
        caps["clarity"] = int(get_scoring_value("caps.clarity.ceiling_when_no_summary", 68))

    if signals.senior == 0 and signals.mid == 0:
        caps["seniority"] = int(get_scoring_value("caps.seniority.ceiling_without_signals", 68))

    return caps


def calibrate_subscores(raw: dict[str, int], signals: ContentSignals) -> dict[str, int]:
    caps = content_caps(signals)
    return {dimension: min(quantize(int(raw[dimension])), caps[dimension]) for dimension in DIMENSIONS}


def overall_score(subscores: dict[str, int]) -> int:
    weights = get_scoring_value("weights", {}) or {}
    total = sum(float(weights[dimension]) * subscores[dimension] for dimension in DIMENSIONS)
    return max(0, min(100, int(round(total))))


def order_recommendations(
    items: list[RawRecommendation],
    subscores: dict[str, int],
) -> list[Recommendation]:
    """Critical first, then by how low the targeted dimension scored, then as given."""
    threshold = int(get_scoring_value("recommendations.critical_threshold", 40))
    max_items = int(get_scoring_value("recommendations.max_items", 5))

    ranked: list[tuple[int, int, int, Recommendation]] = []
    for index, item in enumerate(items):
        dimension_score = subscores.get(item.dimension, 100) if item.dimension else 100
        critical = dimension_score < threshold
        rewrite = (item.suggestedRewrite or "").strip() or None
        recommendation = Recommendation(
            title=item.title.strip(),
            description=item.description.strip(),
            dimension=item.dimension,
            critical=critical,
            suggested_rewrite=rewrite if critical else None,
        )
        ranked.append((0 if critical else 1, dimension_score, index, recommendation))

    ranked.sort(key=lambda entry: entry[:3])
    return [entry[3] for entry in ranked[:max_items]]


def score(raw: AnalysisOutput, signals: ContentSignals) -> AnalysisResult:
    subscores = calibrate_subscores(raw.subscores.model_dump(), signals)
    return AnalysisResult(
        overall_score=overall_score(subscores),
        subscores=Subscores.model_validate(subscores),
        recommendations=order_recommendations(raw.recommendations, subscores),
    )
