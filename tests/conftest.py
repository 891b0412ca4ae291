"""Shared fixtures for VillageMind tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from villagemind.config import VillageConfig
from villagemind.conversation_log import ConversationLog
from villagemind.llm.config import ENV_VARS
from villagemind.logging import JSONLLogger
from villagemind.memory.models import Anchor, FactType, Link, MemoryFact, Tag, TaskStatus
from villagemind.memory.pipeline import MemoryPipeline
from villagemind.memory.store import MemoryStore
from villagemind.storage import InMemoryStorage
from villagemind.village import Village

DEFAULT_TIMESTAMP = "2026-02-02T09:00:00+00:00"


@pytest.fixture
def storage() -> InMemoryStorage:
    """A fresh in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def conversation_log(storage: InMemoryStorage) -> ConversationLog:
    return ConversationLog(storage)


@pytest.fixture
def memory_store(storage: InMemoryStorage) -> MemoryStore:
    return MemoryStore(storage)


@pytest.fixture
def pipeline(memory_store: MemoryStore, conversation_log: ConversationLog) -> MemoryPipeline:
    return MemoryPipeline(memory_store, conversation_log)


@pytest.fixture
def event_log(tmp_path: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=tmp_path / "logs")


@pytest.fixture
def no_llm_env(monkeypatch) -> None:
    """Remove LLM settings from the environment so no provider is configured."""
    for var in (*ENV_VARS.values(), "GROQ_API_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def village(storage: InMemoryStorage, tmp_path: Path, no_llm_env) -> Village:
    """A village over in-memory storage with no LLM provider."""
    return Village(storage, config=VillageConfig(data_dir=tmp_path))


@pytest.fixture
def make_fact() -> Callable[..., MemoryFact]:
    """Factory for facts with sensible defaults.

    Tags and anchors may be given as ``group:value`` strings.
    """

    def factory(
        id: str = "fact-1",
        npc_id: str = "theo",
        type: FactType = FactType.EVENT,
        content: str = "Player went to the plaza.",
        tags: list[str] | None = None,
        salience: float = 0.5,
        created_at: str = DEFAULT_TIMESTAMP,
        last_mentioned_at: str | None = None,
        mentions: int = 1,
        status: TaskStatus | None = None,
        thread_id: str | None = None,
        thread_sequence: int | None = None,
        anchors: list[str] | None = None,
        links: list[tuple[str, str]] | None = None,
    ) -> MemoryFact:
        parsed_tags = tuple(Tag.parse(raw) for raw in (tags or ["day:1"]))
        parsed_anchors = tuple(
            Anchor(*raw.split(":", 1)) for raw in (anchors or [])
        )
        return MemoryFact(
            id=id,
            npc_id=npc_id,
            type=type,
            content=content,
            tags=parsed_tags,
            salience=salience,
            created_at=created_at,
            last_mentioned_at=last_mentioned_at or created_at,
            mentions=mentions,
            status=status,
            thread_id=thread_id,
            thread_sequence=thread_sequence,
            anchors=parsed_anchors,
            links=tuple(Link(target_id=t, label=l) for t, l in (links or [])),
        )

    return factory
