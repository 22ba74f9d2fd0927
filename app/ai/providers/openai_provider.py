from __future__ import annotations

import os
from typing import Optional, Sequence

import openai
from openai import AsyncOpenAI

from app.ai.config import AIConfig, load_ai_config
from app.ai.types import ChatMessage, ModelProfile, TransientCompletionError
from app.core.errors import CompletionUnavailable


class OpenAIProvider:
    """Chat completions against OpenAI or any OpenAI-compatible endpoint (Groq, vLLM, ...).

    SDK retries are disabled; the retry policy lives in CompletionClient.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
    ):
        self._api_key = (api_key or "").strip()
        self._response_format = (os.getenv("OPENAI_RESPONSE_FORMAT") or "").strip().lower()
        self._client: AsyncOpenAI | None = None
        if self._api_key:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=base_url or None,
                max_retries=0,
            )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def create(self, messages: Sequence[ChatMessage], profile: ModelProfile) -> str:
        if self._client is None:
            raise CompletionUnavailable("AI features are not configured on this server.")

        payload = [{"role": m.role, "content": m.content} for m in messages]
        create_kwargs = {
            "model": profile.model,
            "messages": payload,
            "temperature": profile.temperature,
            "max_tokens": profile.max_tokens,
            "timeout": profile.timeout_s,
        }
        if self._response_format == "json":
            create_kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**create_kwargs)
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as exc:
            # APITimeoutError is an APIConnectionError subclass.
            raise TransientCompletionError(f"{type(exc).__name__}: {exc}") from exc
        except openai.APIStatusError as exc:
            raise CompletionUnavailable(
                f"The AI service rejected the request (status {exc.status_code}). Please try again later."
            ) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def from_config(cfg: AIConfig | None = None) -> OpenAIProvider:
    cfg = cfg or load_ai_config()
    return OpenAIProvider(api_key=cfg.api_key, base_url=cfg.base_url)
