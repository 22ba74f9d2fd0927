import os
from dataclasses import dataclass, replace

from app.ai.types import ModelProfile

TEMPERATURE_DETERMINISTIC = 0.1
TEMPERATURE_BALANCED = 0.3
TEMPERATURE_CREATIVE = 0.5


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str
    api_key: str
    base_url: str | None
    default_timeout_s: float
    long_timeout_s: float
    max_tokens: int


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def load_ai_config() -> AIConfig:
    provider = os.getenv("AI_PROVIDER", "openai").strip().lower()
    default_model = "llama-3.1-8b-instant" if provider == "groq" else "gpt-4o-mini"
    default_base_url = "https://api.groq.com/openai/v1" if provider == "groq" else ""
    key_name = "GROQ_API_KEY" if provider == "groq" else "OPENAI_API_KEY"
    api_key = (os.getenv(key_name) or os.getenv("AI_API_KEY") or "").strip()
    if _looks_like_placeholder(api_key):
        api_key = ""
    return AIConfig(
        provider=provider,
        model=os.getenv("AI_MODEL", default_model).strip(),
        api_key=api_key,
        base_url=(os.getenv("OPENAI_BASE_URL", default_base_url).strip() or None),
        default_timeout_s=float(os.getenv("AI_TIMEOUT_S", "30")),
        long_timeout_s=float(os.getenv("AI_LONG_TIMEOUT_S", "60")),
        max_tokens=int(os.getenv("AI_MAX_TOKENS", "1024")),
    )


def model_profile(name: str, cfg: AIConfig | None = None, **overrides) -> ModelProfile:
    """Build a named profile: 'default' for single answers, 'long_running' for multi-section work."""
    cfg = cfg or load_ai_config()
    if name == "default":
        profile = ModelProfile(
            name="default",
            model=cfg.model,
            temperature=TEMPERATURE_BALANCED,
            max_tokens=cfg.max_tokens,
            timeout_s=cfg.default_timeout_s,
        )
    elif name == "long_running":
        profile = ModelProfile(
            name="long_running",
            model=cfg.model,
            temperature=TEMPERATURE_BALANCED,
            max_tokens=max(cfg.max_tokens, 2048),
            timeout_s=cfg.long_timeout_s,
        )
    else:
        raise ValueError(f"Unknown model profile '{name}'")
    return replace(profile, **overrides) if overrides else profile
