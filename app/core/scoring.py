from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import yaml

_SCORING_CONFIG_CACHE: dict[str, Any] | None = None
_SCORING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "scoring.yaml"

DIMENSIONS: tuple[str, ...] = (
    "clarity",
    "technicalDepth",
    "seniority",
    "atsAlignment",
    "completeness",
    "toneConsistency",
)


def _validate_rubric(parsed: dict[str, Any]) -> None:
    weights = parsed.get("weights")
    if not isinstance(weights, dict) or set(weights) != set(DIMENSIONS):
        raise RuntimeError(
            f"Invalid scoring config '{_SCORING_CONFIG_PATH}': weights must name exactly {', '.join(DIMENSIONS)}."
        )
    total = sum(float(value) for value in weights.values())
    if not math.isclose(total, 1.0, abs_tol=1e-6):
        raise RuntimeError(
            f"Invalid scoring config '{_SCORING_CONFIG_PATH}': weights sum to {total:.4f}, expected 1.0."
        )

    bands = parsed.get("bands")
    if not isinstance(bands, list) or not bands:
        raise RuntimeError(f"Invalid scoring config '{_SCORING_CONFIG_PATH}': expected a non-empty 'bands' list.")
    if not any(int(band.get("min", -1)) == 0 for band in bands):
        raise RuntimeError(f"Invalid scoring config '{_SCORING_CONFIG_PATH}': bands must cover 0.")


def get_scoring_config() -> dict[str, Any]:
    """Load the scoring rubric from repo-level config/scoring.yaml and cache it."""
    global _SCORING_CONFIG_CACHE

    if _SCORING_CONFIG_CACHE is not None:
        return _SCORING_CONFIG_CACHE

    if not _SCORING_CONFIG_PATH.exists():
        raise RuntimeError(
            f"Scoring config not found at '{_SCORING_CONFIG_PATH}'. "
            "Expected file: config/scoring.yaml"
        )

    try:
        raw = _SCORING_CONFIG_PATH.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(
            f"Failed to read scoring config '{_SCORING_CONFIG_PATH}': {exc}"
        ) from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(
            f"Invalid YAML in scoring config '{_SCORING_CONFIG_PATH}': {exc}"
        ) from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(
            f"Invalid scoring config '{_SCORING_CONFIG_PATH}': expected a top-level mapping."
        )

    _validate_rubric(parsed)
    _SCORING_CONFIG_CACHE = parsed
    return _SCORING_CONFIG_CACHE


def get_scoring_value(path: str, default: Any = None) -> Any:
    """Get nested config value using dot path notation, e.g. 'weights.clarity'."""
    if not path:
        return default

    current: Any = get_scoring_config()
    for key in path.split("."):
        if not isinstance(current, dict):
            return default
        if key not in current:
            return default
        current = current[key]
    return current
