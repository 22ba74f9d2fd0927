from dataclasses import dataclass
from typing import Literal, Protocol, Sequence


Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class ModelProfile:
    name: str
    model: str
    temperature: float
    max_tokens: int
    timeout_s: float


class TransientCompletionError(RuntimeError):
    """Transport-level failure worth exactly one more attempt."""


class CompletionTransport(Protocol):
    @property
    def enabled(self) -> bool: ...

    async def create(self, messages: Sequence[ChatMessage], profile: ModelProfile) -> str: ...
