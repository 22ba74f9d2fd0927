from __future__ import annotations

import json
import logging
import re
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ParseError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```[ \t]*([A-Za-z0-9_-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)


def _balanced_object(text: str, start: int) -> str | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _candidate_blocks(raw_text: str) -> list[str]:
    candidates: list[str] = []
    for match in _FENCE_RE.finditer(raw_text):
        language = match.group(1).lower()
        if language in {"", "json", "json5"}:
            candidates.append(match.group(2).strip())

    # every opening brace starts a candidate; unbalanced or invalid ones are skipped later
    position = raw_text.find("{")
    while position != -1:
        block = _balanced_object(raw_text, position)
        if block is not None:
            candidates.append(block)
        position = raw_text.find("{", position + 1)
    return candidates


def extract_block(raw_text: str) -> dict[str, Any]:
    """Return the first well-formed JSON object found in the completion text.

    Fenced blocks win over bare objects; prose before and after is ignored.
    """
    text = (raw_text or "").strip()
    if not text:
        raise ParseError("The AI returned an empty response. Please try again.")

    for block in _candidate_blocks(text):
        try:
            decoded = json.loads(block)
        except json.JSONDecodeError:
            continue
        if isinstance(decoded, dict):
            return decoded

    raise ParseError("The AI response did not contain a readable result. Please try again.")


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors()[:5]:
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse(raw_text: str, schema: type[T], *, operation: str = "unknown") -> T:
    payload = extract_block(raw_text)
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as exc:
        logger.warning("ai_output_invalid operation=%s schema=%s errors=%s", operation, schema.__name__, _describe(exc))
        raise ParseError("The AI response was incomplete or malformed. Please try again.") from exc
