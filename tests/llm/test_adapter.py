"""Tests for the chat completion adapter and its transports."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from groq import APIError

from villagemind.llm.adapter import (
    ChatCompletionAdapter,
    GroqTransport,
    HttpTransport,
    LlmRequestError,
    LlmResponseError,
    build_chat_completion_url,
    create_llm_adapter,
    parse_json_array,
    parse_json_object,
    strip_code_fences,
)
from villagemind.llm.config import ENV_VARS, LlmConfig
from villagemind.llm.types import (
    LlmChatInput,
    LlmDayKickoffInput,
    LlmFactInput,
    LlmMessage,
    LlmPlayerInsightInput,
    LlmSummaryInput,
)
from villagemind.memory.models import InsightCategory, PlayerInsightSeed


def completion(text: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


@pytest.fixture
def transport() -> AsyncMock:
    mock = AsyncMock()
    mock.send = AsyncMock(return_value=completion("Hello there!"))
    return mock


@pytest.fixture
def adapter(transport: AsyncMock) -> ChatCompletionAdapter:
    return ChatCompletionAdapter(LlmConfig(), "test-key", transport=transport)


def conversation() -> list[LlmMessage]:
    return [LlmMessage(role="user", content="I love chamomile tea.")]


class TestParseHelpers:
    """Tests for reply parsing helpers."""

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n["a"]\n```') == '["a"]'

    def test_parse_json_array_ignores_surrounding_text(self):
        assert parse_json_array('Sure! ["a", "b"] Hope that helps.') == ["a", "b"]
        assert parse_json_array("no array here") is None
        assert parse_json_array("[broken") is None

    def test_parse_json_object(self):
        assert parse_json_object('```json\n{"insights": []}\n```') == {"insights": []}
        assert parse_json_object("{not json}") is None

    def test_build_chat_completion_url(self):
        assert (
            build_chat_completion_url("http://localhost:8080/")
            == "http://localhost:8080/v1/chat/completions"
        )
        assert (
            build_chat_completion_url("https://api.groq.com/openai/v1")
            == "https://api.groq.com/openai/v1/chat/completions"
        )


class TestGenerateReply:
    """Tests for generate_reply and the shared completion path."""

    @pytest.mark.asyncio
    async def test_payload_and_result(self, adapter, transport):
        result = await adapter.generate_reply(
            LlmChatInput(system_prompt="You are Mira.", messages=conversation())
        )

        assert result.text == "Hello there!"
        assert result.usage.total_tokens == 15
        payload = transport.send.call_args.args[0]
        assert payload["model"] == LlmConfig().model
        assert payload["messages"][0] == {"role": "system", "content": "You are Mira."}
        assert payload["messages"][1] == {"role": "user", "content": "I love chamomile tea."}
        assert payload["temperature"] == 0.7
        assert payload["max_tokens"] == 240

    @pytest.mark.asyncio
    async def test_explicit_zero_temperature(self, adapter, transport):
        await adapter.generate_reply(
            LlmChatInput(system_prompt="s", messages=conversation(), temperature=0.0, max_tokens=50)
        )
        payload = transport.send.call_args.args[0]
        assert payload["temperature"] == 0.0
        assert payload["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_no_choices(self, adapter, transport):
        transport.send.return_value = {"choices": []}
        with pytest.raises(LlmResponseError, match="no choices"):
            await adapter.generate_reply(LlmChatInput(system_prompt="s", messages=[]))

    @pytest.mark.asyncio
    async def test_empty_content(self, adapter, transport):
        transport.send.return_value = completion("   ")
        with pytest.raises(LlmResponseError, match="missing content"):
            await adapter.generate_reply(LlmChatInput(system_prompt="s", messages=[]))

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, adapter, transport):
        transport.send.side_effect = LlmRequestError("down")
        with pytest.raises(LlmRequestError):
            await adapter.generate_reply(LlmChatInput(system_prompt="s", messages=[]))


class TestStructuredOperations:
    """Tests for the JSON-returning operations."""

    @pytest.mark.asyncio
    async def test_extract_facts(self, adapter, transport):
        transport.send.return_value = completion(
            '```json\n["Player loves tea.", "Player has a dog.", "Player reads."]\n```'
        )
        result = await adapter.extract_facts(
            LlmFactInput(npc_name="Mira", npc_role="Hall Host", conversation=conversation(), max_facts=2)
        )
        assert result.facts == ["Player loves tea.", "Player has a dog."]
        user_content = transport.send.call_args.args[0]["messages"][1]["content"]
        assert user_content.startswith("Mira (Hall Host) conversation:")

    @pytest.mark.asyncio
    async def test_extract_facts_rejects_bad_shape(self, adapter, transport):
        transport.send.return_value = completion('["Player loves tea.", 42]')
        result = await adapter.extract_facts(
            LlmFactInput(npc_name="Mira", npc_role="Hall Host", conversation=conversation())
        )
        assert result.facts == []

    @pytest.mark.asyncio
    async def test_extract_facts_rejects_too_many(self, adapter, transport):
        transport.send.return_value = completion(json.dumps([f"Fact {i}." for i in range(13)]))
        result = await adapter.extract_facts(
            LlmFactInput(npc_name="Mira", npc_role="Hall Host", conversation=conversation())
        )
        assert result.facts == []

    @pytest.mark.asyncio
    async def test_summarize_day(self, adapter, transport):
        transport.send.return_value = completion("  A calm day at the hall.  ")
        result = await adapter.summarize_day(LlmSummaryInput(day_index=2, conversation=conversation()))
        assert result.summary == "A calm day at the hall."
        assert "Day index: 2." in transport.send.call_args.args[0]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_analyze_player(self, adapter, transport):
        transport.send.return_value = completion(
            '{"insights": [{"text": " Loves tea ", "category": "preference"}]}'
        )
        result = await adapter.analyze_player(
            LlmPlayerInsightInput(day_index=1, conversation=conversation())
        )
        assert result.insights == [PlayerInsightSeed("Loves tea", InsightCategory.PREFERENCE)]

    @pytest.mark.asyncio
    async def test_analyze_player_rejects_unknown_category(self, adapter, transport):
        transport.send.return_value = completion(
            '{"insights": [{"text": "Loves tea", "category": "mood"}]}'
        )
        result = await adapter.analyze_player(
            LlmPlayerInsightInput(day_index=1, conversation=conversation())
        )
        assert result.insights == []

    @pytest.mark.asyncio
    async def test_suggest_next_day(self, adapter, transport):
        transport.send.return_value = completion(
            '{"suggestions": ['
            '{"title": "Visit Jun", "detail": "Check on the basil."},'
            '{"title": "Tea time", "detail": "Brew chamomile."}]}'
        )
        result = await adapter.suggest_next_day(
            LlmDayKickoffInput(day_index=3, previous_summary="Quiet.", max_suggestions=1)
        )
        assert [s.title for s in result.suggestions] == ["Visit Jun"]
        user_content = transport.send.call_args.args[0]["messages"][1]["content"]
        assert "Yesterday summary: Quiet." in user_content
        assert "Player insights: none." in user_content

    @pytest.mark.asyncio
    async def test_suggest_next_day_rejects_missing_detail(self, adapter, transport):
        transport.send.return_value = completion('{"suggestions": [{"title": "Visit Jun"}]}')
        result = await adapter.suggest_next_day(LlmDayKickoffInput(day_index=3))
        assert result.suggestions == []


class TestTransports:
    """Tests for GroqTransport and HttpTransport."""

    def test_default_transport_follows_provider(self):
        groq_adapter = ChatCompletionAdapter(LlmConfig(), "key")
        assert isinstance(groq_adapter.transport, GroqTransport)

        http_adapter = ChatCompletionAdapter(
            LlmConfig(provider="openai-compatible", base_url="http://localhost:8080"), "key"
        )
        assert isinstance(http_adapter.transport, HttpTransport)
        assert http_adapter.transport.url == "http://localhost:8080/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_groq_transport(self):
        mock_response = MagicMock()
        mock_response.model_dump.return_value = completion("Hi")
        mock_groq = MagicMock()
        mock_groq.chat.completions.create = AsyncMock(return_value=mock_response)

        body = await GroqTransport(mock_groq).send({"model": "m", "messages": []})

        assert body == completion("Hi")
        mock_groq.chat.completions.create.assert_called_once_with(model="m", messages=[])

    @pytest.mark.asyncio
    async def test_groq_transport_wraps_errors(self):
        mock_groq = MagicMock()
        mock_groq.chat.completions.create = AsyncMock(
            side_effect=APIError(
                "rate limited",
                httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"),
                body=None,
            )
        )
        with pytest.raises(LlmRequestError, match="Groq request failed"):
            await GroqTransport(mock_groq).send({})

    @pytest.mark.asyncio
    async def test_http_transport_posts_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("Hi"))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            transport = HttpTransport("http://llm.local", "secret", client=client)
            body = await transport.send({"model": "m"})

        assert body == completion("Hi")
        assert seen["url"] == "http://llm.local/v1/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {"model": "m"}

    @pytest.mark.asyncio
    async def test_http_transport_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="overloaded")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(LlmRequestError, match="503"):
                await HttpTransport("http://llm.local", "k", client=client).send({})

    @pytest.mark.asyncio
    async def test_http_transport_non_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(LlmResponseError):
                await HttpTransport("http://llm.local", "k", client=client).send({})

    @pytest.mark.asyncio
    async def test_http_transport_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(LlmRequestError, match="refused"):
                await HttpTransport("http://llm.local", "k", client=client).send({})


@pytest.mark.asyncio
async def test_create_llm_adapter(storage, transport, monkeypatch):
    """create_llm_adapter resolves config from the environment."""
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GROQ_API_KEY", "test-key")

    adapter = await create_llm_adapter(storage, transport=transport)

    assert adapter.config == LlmConfig()
    assert adapter.transport is transport
