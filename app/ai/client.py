from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid

from app.ai.prompts import Prompt
from app.ai.types import ChatMessage, CompletionTransport, ModelProfile, TransientCompletionError
from app.analytics.db import log_ai_run
from app.core.config import settings
from app.core.errors import CompletionUnavailable

logger = logging.getLogger("app.ai")

MAX_ATTEMPTS = 2


class CompletionClient:
    """Sends one prompt to the completion service.

    Timeouts and transient transport failures get exactly one retry with the
    same parameters. A response that arrives but is unusable is returned as-is;
    judging it is the parser's job.
    """

    def __init__(self, transport: CompletionTransport, *, log_payloads: bool | None = None):
        self._transport = transport
        self._log_payloads = settings.ai_log_payloads if log_payloads is None else log_payloads

    @property
    def enabled(self) -> bool:
        return self._transport.enabled

    async def complete(self, prompt: Prompt, profile: ModelProfile) -> str:
        run_id = uuid.uuid4().hex
        started = time.perf_counter()
        messages = [
            ChatMessage(role="system", content=prompt.system),
            ChatMessage(role="user", content=prompt.user),
        ]
        if self._log_payloads:
            logger.info(json.dumps({"event": "ai_prompt", "run_id": run_id, "system": prompt.system, "user": prompt.user}))

        last_error: Exception | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                text = await asyncio.wait_for(
                    self._transport.create(messages, profile),
                    timeout=profile.timeout_s,
                )
            except asyncio.TimeoutError as exc:
                last_error = exc
                self._log_attempt(run_id, prompt, profile, attempt, started, "timeout")
                continue
            except TransientCompletionError as exc:
                last_error = exc
                self._log_attempt(run_id, prompt, profile, attempt, started, "transient_error", str(exc))
                continue
            except CompletionUnavailable as exc:
                self._log_attempt(run_id, prompt, profile, attempt, started, "unavailable", str(exc))
                self._record(run_id, prompt, profile, started, "unavailable", "completion_unavailable")
                raise

            self._log_attempt(run_id, prompt, profile, attempt, started, "ok")
            if self._log_payloads:
                logger.info(json.dumps({"event": "ai_response", "run_id": run_id, "text": text}))
            self._record(run_id, prompt, profile, started, "success" if text.strip() else "empty", None)
            return text

        self._record(run_id, prompt, profile, started, "unavailable", "retries_exhausted")
        raise CompletionUnavailable(
            "The AI service is not responding right now. Please try again in a moment."
        ) from last_error

    def _log_attempt(
        self,
        run_id: str,
        prompt: Prompt,
        profile: ModelProfile,
        attempt: int,
        started: float,
        outcome: str,
        detail: str | None = None,
    ) -> None:
        record = {
            "event": "ai_completion_attempt",
            "run_id": run_id,
            "operation": prompt.operation,
            "model": profile.model,
            "profile": profile.name,
            "attempt": attempt,
            "outcome": outcome,
            "prompt_len": len(prompt.system) + len(prompt.user),
            "elapsed_ms": int((time.perf_counter() - started) * 1000),
        }
        if detail:
            record["detail"] = detail[:300]
        if outcome == "ok":
            logger.info(json.dumps(record))
        else:
            logger.warning(json.dumps(record))

    def _record(
        self,
        run_id: str,
        prompt: Prompt,
        profile: ModelProfile,
        started: float,
        status: str,
        error_code: str | None,
    ) -> None:
        try:
            log_ai_run(
                run_id=run_id,
                operation=prompt.operation,
                model=profile.model,
                status=status,
                error_code=error_code,
                latency_ms=int((time.perf_counter() - started) * 1000),
            )
        except Exception:  # pragma: no cover - analytics must not break AI responses
            logger.debug("ai_run_logging_failed", exc_info=True)
