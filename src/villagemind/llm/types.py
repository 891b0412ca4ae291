"""Request and response types for the LLM adapter."""

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from ..memory.models import PlayerInsightSeed

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class LlmMessage:
    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LlmChatInput:
    system_prompt: str
    messages: list[LlmMessage]
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass(frozen=True)
class LlmUsage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass
class LlmChatResult:
    text: str
    raw: Any = None
    usage: LlmUsage | None = None


@dataclass
class LlmFactInput:
    npc_name: str
    npc_role: str
    conversation: list[LlmMessage]
    max_facts: int = 4


@dataclass
class LlmFactResult:
    facts: list[str]
    raw: Any = None


@dataclass
class LlmSummaryInput:
    day_index: int
    conversation: list[LlmMessage]
    max_paragraphs: int = 2


@dataclass
class LlmSummaryResult:
    summary: str
    raw: Any = None


@dataclass
class LlmPlayerInsightInput:
    day_index: int
    conversation: list[LlmMessage]
    max_insights: int = 4


@dataclass
class LlmPlayerInsightResult:
    insights: list[PlayerInsightSeed]
    raw: Any = None


@dataclass(frozen=True)
class LlmDaySuggestion:
    title: str
    detail: str


@dataclass
class LlmDayKickoffInput:
    day_index: int
    previous_summary: str | None = None
    player_insights: list[PlayerInsightSeed] = field(default_factory=list)
    max_suggestions: int = 5


@dataclass
class LlmDayKickoffResult:
    suggestions: list[LlmDaySuggestion]
    raw: Any = None


class LlmAdapter(Protocol):
    """The five LLM operations the game uses.

    Failures propagate to the caller; implementations do not retry.
    """

    async def generate_reply(self, request: LlmChatInput) -> LlmChatResult:
        ...

    async def extract_facts(self, request: LlmFactInput) -> LlmFactResult:
        ...

    async def summarize_day(self, request: LlmSummaryInput) -> LlmSummaryResult:
        ...

    async def analyze_player(self, request: LlmPlayerInsightInput) -> LlmPlayerInsightResult:
        ...

    async def suggest_next_day(self, request: LlmDayKickoffInput) -> LlmDayKickoffResult:
        ...
