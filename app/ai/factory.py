from functools import lru_cache

from app.ai.client import CompletionClient
from app.ai.config import load_ai_config
from app.ai.providers.openai_provider import from_config


@lru_cache(maxsize=1)
def get_completion_client() -> CompletionClient:
    cfg = load_ai_config()

    if cfg.provider in {"openai", "groq"}:
        return CompletionClient(from_config(cfg))

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
