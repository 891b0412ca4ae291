"""Chat completion adapter implementing the five LLM operations.

The adapter builds prompts and parses structured replies; a transport
sends the OpenAI-style chat completion payload. ``GroqTransport`` uses the
Groq SDK, ``HttpTransport`` posts to any OpenAI-compatible endpoint.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

import httpx
from groq import APIError, AsyncGroq

from ..memory.models import InsightCategory, PlayerInsightSeed
from ..storage import Storage
from .config import LlmConfig, resolve_llm_config
from .types import (
    LlmChatInput,
    LlmChatResult,
    LlmDayKickoffInput,
    LlmDayKickoffResult,
    LlmDaySuggestion,
    LlmFactInput,
    LlmFactResult,
    LlmMessage,
    LlmPlayerInsightInput,
    LlmPlayerInsightResult,
    LlmSummaryInput,
    LlmSummaryResult,
    LlmUsage,
)

logger = logging.getLogger(__name__)

MAX_FACTS = 12
MAX_INSIGHTS = 6
MAX_SUGGESTIONS = 6

_CODE_FENCE_OPEN = re.compile(r"```json\s*", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```\s*")


class LlmError(Exception):
    """Base class for LLM failures."""

    pass


class LlmRequestError(LlmError):
    """The provider could not be reached or returned an error status."""

    pass


class LlmResponseError(LlmError):
    """The provider's reply could not be understood."""

    pass


class ChatTransport(Protocol):
    """Sends a chat completion payload and returns the decoded JSON body."""

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        ...


class GroqTransport:
    """Transport backed by the AsyncGroq client."""

    def __init__(self, client: AsyncGroq) -> None:
        self._client = client

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.chat.completions.create(**payload)
        except APIError as e:
            raise LlmRequestError(f"Groq request failed: {e}") from e
        return response.model_dump()


class HttpTransport:
    """Transport that POSTs to ``<base_url>/v1/chat/completions`` with httpx."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = build_chat_completion_url(base_url)
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise LlmRequestError(f"LLM request timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise LlmRequestError(f"LLM request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "LLM request failed (%s): %s", response.status_code, response.text[:500]
            )
            raise LlmRequestError(f"LLM request failed ({response.status_code})")

        try:
            return response.json()
        except ValueError as e:
            raise LlmResponseError("LLM response missing JSON") from e


def build_chat_completion_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    base = normalized if normalized.endswith("/v1") else f"{normalized}/v1"
    return f"{base}/chat/completions"


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", _CODE_FENCE_OPEN.sub("", text)).strip()


def _parse_json(text: str) -> Any | None:
    try:
        return json.loads(text)
    except ValueError:
        return None


def parse_json_array(text: str) -> Any | None:
    """Parse the outermost ``[...]`` in a reply, ignoring code fences."""
    cleaned = strip_code_fences(text)
    start, end = cleaned.find("["), cleaned.rfind("]")
    if start == -1 or end <= start:
        return None
    return _parse_json(cleaned[start : end + 1])


def parse_json_object(text: str) -> Any | None:
    """Parse the outermost ``{...}`` in a reply, ignoring code fences."""
    cleaned = strip_code_fences(text)
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    return _parse_json(cleaned[start : end + 1])


def format_conversation(
    messages: list[LlmMessage],
    npc_name: str | None = None,
    npc_role: str | None = None,
) -> str:
    header = f"{npc_name} ({npc_role or 'npc'}) conversation:" if npc_name else "Conversation:"
    lines = [f"{message.role}: {message.content}" for message in messages]
    return "\n".join([header, *lines])


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


class ChatCompletionAdapter:
    """LLM adapter over an OpenAI-style chat completion API."""

    def __init__(
        self,
        config: LlmConfig,
        api_key: str,
        transport: ChatTransport | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: Provider and sampling settings.
            api_key: Credential for the provider.
            transport: Payload sender; chosen from ``config.provider`` if None.
        """
        self.config = config
        if transport is None:
            if config.provider == "groq":
                transport = GroqTransport(AsyncGroq(api_key=api_key))
            else:
                transport = HttpTransport(config.base_url, api_key)
        self.transport = transport

    async def _complete(
        self,
        system_prompt: str,
        messages: list[LlmMessage],
        temperature: float,
        max_tokens: int,
    ) -> LlmChatResult:
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                *(message.to_dict() for message in messages),
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        raw = await self.transport.send(payload)

        choices = raw.get("choices") if isinstance(raw, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise LlmResponseError("LLM response invalid: no choices")

        choice = choices[0]
        message = choice.get("message") or {}
        text = (message.get("content") or choice.get("text") or "").strip()
        if not text:
            raise LlmResponseError("LLM response missing content")

        usage = raw.get("usage")
        return LlmChatResult(
            text=text,
            raw=raw,
            usage=LlmUsage(
                prompt_tokens=usage.get("prompt_tokens"),
                completion_tokens=usage.get("completion_tokens"),
                total_tokens=usage.get("total_tokens"),
            )
            if isinstance(usage, dict)
            else None,
        )

    async def generate_reply(self, request: LlmChatInput) -> LlmChatResult:
        return await self._complete(
            request.system_prompt,
            request.messages,
            temperature=(
                request.temperature
                if request.temperature is not None
                else self.config.temperature
            ),
            max_tokens=request.max_tokens or self.config.max_completion_tokens,
        )

    async def extract_facts(self, request: LlmFactInput) -> LlmFactResult:
        system_prompt = "\n".join(
            [
                "You extract memory facts from a conversation with the player.",
                "Return a JSON array of short, specific facts.",
                "Only include information the player said or implied.",
                f"Max facts: {request.max_facts}.",
                "Do not include any extra text outside JSON.",
            ]
        )
        content = format_conversation(request.conversation, request.npc_name, request.npc_role)
        response = await self._complete(
            system_prompt,
            [LlmMessage(role="user", content=content)],
            temperature=0.2,
            max_tokens=min(self.config.max_completion_tokens, 240),
        )

        parsed = parse_json_array(response.text)
        if (
            not isinstance(parsed, list)
            or len(parsed) > MAX_FACTS
            or not all(_non_empty_str(fact) for fact in parsed)
        ):
            logger.warning("Invalid fact response: %s", response.text[:200])
            return LlmFactResult(facts=[], raw=response.raw)

        return LlmFactResult(facts=parsed[: request.max_facts], raw=response.raw)

    async def summarize_day(self, request: LlmSummaryInput) -> LlmSummaryResult:
        system_prompt = "\n".join(
            [
                "You summarize the day for a cozy village sim.",
                "Write a warm, concise summary of the day's highlights.",
                f"Day index: {request.day_index}.",
                f"Max paragraphs: {request.max_paragraphs}.",
            ]
        )
        response = await self._complete(
            system_prompt,
            [LlmMessage(role="user", content=format_conversation(request.conversation))],
            temperature=0.4,
            max_tokens=min(self.config.max_completion_tokens, 320),
        )
        return LlmSummaryResult(summary=response.text.strip(), raw=response.raw)

    async def analyze_player(self, request: LlmPlayerInsightInput) -> LlmPlayerInsightResult:
        system_prompt = "\n".join(
            [
                "You analyze the player's interactions in a cozy village sim.",
                "Extract 2-4 concise insights about the player.",
                "Use only what the player said or implied.",
                "Categories: preference, goal, value, habit, interest, style.",
                'Return JSON only with shape: {"insights":[{"text":"...","category":"preference"}]}',
                "If unsure, return an empty insights array.",
            ]
        )
        response = await self._complete(
            system_prompt,
            [LlmMessage(role="user", content=format_conversation(request.conversation))],
            temperature=0.2,
            max_tokens=min(self.config.max_completion_tokens, 280),
        )

        insights = self._parse_insights(parse_json_object(response.text))
        if insights is None:
            logger.warning("Invalid player insights response: %s", response.text[:200])
            return LlmPlayerInsightResult(insights=[], raw=response.raw)
        return LlmPlayerInsightResult(
            insights=insights[: request.max_insights], raw=response.raw
        )

    @staticmethod
    def _parse_insights(parsed: Any) -> list[PlayerInsightSeed] | None:
        if not isinstance(parsed, dict) or not isinstance(parsed.get("insights"), list):
            return None
        items = parsed["insights"]
        if len(items) > MAX_INSIGHTS:
            return None
        seeds: list[PlayerInsightSeed] = []
        for item in items:
            if not isinstance(item, dict) or not _non_empty_str(item.get("text")):
                return None
            try:
                category = InsightCategory(item.get("category"))
            except ValueError:
                return None
            seeds.append(PlayerInsightSeed(text=item["text"].strip(), category=category))
        return seeds

    async def suggest_next_day(self, request: LlmDayKickoffInput) -> LlmDayKickoffResult:
        system_prompt = "\n".join(
            [
                "You are a cozy village guide.",
                "Suggest 3-5 next-day activities based on yesterday's summary and player insights.",
                "Keep each suggestion warm, concrete, and short.",
                'Return JSON only with shape: {"suggestions":[{"title":"...","detail":"..."}]}',
            ]
        )
        insight_lines = [
            f"- ({insight.category.value}) {insight.text}" for insight in request.player_insights
        ]
        user_prompt = "\n".join(
            [
                f"Day index: {request.day_index}.",
                f"Yesterday summary: {request.previous_summary or 'No summary available.'}",
                "Player insights:\n" + "\n".join(insight_lines)
                if insight_lines
                else "Player insights: none.",
            ]
        )
        response = await self._complete(
            system_prompt,
            [LlmMessage(role="user", content=user_prompt)],
            temperature=0.4,
            max_tokens=min(self.config.max_completion_tokens, 260),
        )

        parsed = parse_json_object(response.text)
        items = parsed.get("suggestions") if isinstance(parsed, dict) else None
        if (
            not isinstance(items, list)
            or len(items) > MAX_SUGGESTIONS
            or not all(
                isinstance(item, dict)
                and _non_empty_str(item.get("title"))
                and _non_empty_str(item.get("detail"))
                for item in items
            )
        ):
            logger.warning("Invalid day kickoff response: %s", response.text[:200])
            return LlmDayKickoffResult(suggestions=[], raw=response.raw)

        suggestions = [
            LlmDaySuggestion(title=item["title"].strip(), detail=item["detail"].strip())
            for item in items
        ]
        return LlmDayKickoffResult(
            suggestions=suggestions[: request.max_suggestions], raw=response.raw
        )


async def create_llm_adapter(
    storage: Storage,
    transport: ChatTransport | None = None,
) -> ChatCompletionAdapter:
    """Resolve the LLM config from storage and environment and build an adapter.

    Raises:
        LlmConfigError: If the config is invalid or no API key is available.
    """
    resolved = await resolve_llm_config(storage)
    return ChatCompletionAdapter(resolved.config, resolved.api_key, transport=transport)
