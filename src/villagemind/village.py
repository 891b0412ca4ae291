"""Wiring of storage, logs, memory and LLM into one village."""

import logging

from .config import VillageConfig
from .conversation_log import ConversationEntry, ConversationLog
from .day_cycle import DayCycle
from .day_summary import DayCloseResult, DaySuggestion, DaySummaryStore, close_day, suggest_next_day
from .llm import LlmAdapter, LlmConfigError, build_npc_chat_input, create_llm_adapter
from .logging import JSONLLogger, configure_logger
from .memory.models import MemoryExtractionResult
from .memory.extractor import FactExtractor
from .memory.personality import PersonalityRegistry
from .memory.pipeline import MemoryPipeline
from .memory.profile import PlayerProfileStore
from .memory.retrieval import MemoryRetriever, NpcMemoryContext
from .memory.store import MemoryStore
from .roster import NpcRosterEntry, get_npc_by_id
from .storage import Storage, open_storage

logger = logging.getLogger(__name__)


class UnknownNpcError(Exception):
    """Raised when an NPC id is not in the roster."""

    pass


class Village:
    """Every memory component for one save, sharing a single storage."""

    def __init__(
        self,
        storage: Storage,
        config: VillageConfig | None = None,
        event_log: JSONLLogger | None = None,
        adapter: LlmAdapter | None = None,
    ) -> None:
        self.config = config or VillageConfig()
        self.storage = storage
        self.event_log = event_log
        self._adapter = adapter

        self.conversation_log = ConversationLog(storage)
        self.memory_store = MemoryStore(storage, event_log=event_log)
        self.profile_store = PlayerProfileStore(storage, event_log=event_log)
        self.summary_store = DaySummaryStore(storage)
        self.day_cycle = DayCycle(storage, self.conversation_log)
        self.pipeline = MemoryPipeline(
            self.memory_store,
            self.conversation_log,
            extractor=FactExtractor(max_facts=self.config.max_facts_per_entry),
            min_salience=self.config.min_salience,
            event_log=event_log,
        )
        self.retriever = MemoryRetriever(
            self.memory_store,
            conversation_log=self.conversation_log,
            profile_store=self.profile_store,
            registry=PersonalityRegistry(self.config.personalities_dir),
            memory_limit=self.config.memory_limit,
            linked_limit=self.config.linked_limit,
            recent_limit=self.config.recent_limit,
            insight_limit=self.config.insight_limit,
            event_log=event_log,
        )

    @classmethod
    async def open(cls, config: VillageConfig, adapter: LlmAdapter | None = None) -> "Village":
        """Open the configured database (or in-memory fallback) and hydrate."""
        storage = await open_storage(config.db_path)
        village = cls(
            storage,
            config=config,
            event_log=configure_logger(config.log_dir),
            adapter=adapter,
        )
        await village.initialize()
        return village

    async def initialize(self) -> None:
        await self.conversation_log.initialize()
        await self.memory_store.initialize()
        await self.day_cycle.initialize()

    async def close(self) -> None:
        await self.storage.close()

    async def adapter(self) -> LlmAdapter | None:
        """The LLM adapter, or None when no provider is configured."""
        if self._adapter is None:
            try:
                self._adapter = await create_llm_adapter(self.storage)
            except LlmConfigError as e:
                logger.info("LLM unavailable: %s", e)
                return None
        return self._adapter

    @staticmethod
    def npc(npc_id: str) -> NpcRosterEntry:
        npc = get_npc_by_id(npc_id)
        if npc is None:
            raise UnknownNpcError(f"Unknown NPC: {npc_id}")
        return npc

    async def context(self, npc_id: str) -> NpcMemoryContext:
        npc = self.npc(npc_id)
        return await self.retriever.build_context(npc.id, npc.name, npc.role)

    async def talk(
        self,
        npc_id: str,
        text: str,
    ) -> tuple[MemoryExtractionResult | None, ConversationEntry | None]:
        """Record a player line, extract memories and, with an LLM, reply.

        Returns:
            The extraction result and the NPC's reply entry (None without an
            LLM provider).
        """
        npc = self.npc(npc_id)
        history = self.conversation_log.recent_for_npc(npc.id, self.config.recent_limit)
        _, result = await self.pipeline.record_turn(npc.id, "player", text)
        await self.day_cycle.mark_visited(npc.id)

        adapter = await self.adapter()
        if adapter is None:
            return result, None

        context = await self.retriever.build_context(npc.id, npc.name, npc.role)
        reply = await adapter.generate_reply(
            build_npc_chat_input(npc.id, context, history, text)
        )
        entry, _ = await self.pipeline.record_turn(npc.id, "npc", reply.text)
        return result, entry

    async def close_day(self) -> DayCloseResult:
        """Summarize the current day.

        Raises:
            LlmConfigError: If no LLM provider is configured.
        """
        adapter = await self.adapter()
        if adapter is None:
            raise LlmConfigError("An LLM provider is required to close the day")
        return await close_day(
            adapter,
            self.memory_store,
            self.conversation_log,
            self.profile_store,
            self.summary_store,
            self.day_cycle.day_index,
        )

    async def start_new_day(self) -> tuple[int, list[DaySuggestion]]:
        """Advance the day and suggest what to do, based on the day before."""
        previous = self.day_cycle.day_index
        day_index = await self.day_cycle.start_new_day()
        suggestions = await suggest_next_day(
            await self.adapter(), self.memory_store, self.summary_store, previous
        )
        return day_index, suggestions
