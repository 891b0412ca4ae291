"""The extract-and-store memory pipeline.

One call runs: extract -> validate -> salience gate -> threads -> links ->
merge -> task completions -> persist. Calls for the same NPC are
serialized so merges never interleave.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

from .extractor import FactExtractor
from .links import attach_links
from .merger import merge_facts, semantic_key
from .models import MemoryExtractionResult, MemoryFact
from .tasks import apply_completions
from .threads import assign_threads
from .validator import MIN_SALIENCE, filter_by_salience, validate_facts

if TYPE_CHECKING:
    from ..conversation_log import ConversationEntry, ConversationLog, Speaker
    from ..logging import JSONLLogger
    from .store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryPipeline:
    """Turns player utterances into stored, linked, threaded memories."""

    def __init__(
        self,
        store: MemoryStore,
        conversation_log: ConversationLog,
        extractor: FactExtractor | None = None,
        min_salience: float = MIN_SALIENCE,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            store: Memory fact repository.
            conversation_log: Log that player turns are recorded in.
            extractor: Fact extractor; defaults to the keyword extractor.
            min_salience: Facts below this salience are discarded.
            event_log: Optional structured logger.
        """
        self.store = store
        self.conversation_log = conversation_log
        self.extractor = extractor or FactExtractor()
        self.min_salience = min_salience
        self.event_log = event_log
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, npc_id: str) -> asyncio.Lock:
        if npc_id not in self._locks:
            self._locks[npc_id] = asyncio.Lock()
        return self._locks[npc_id]

    async def extract_and_store(
        self,
        npc_id: str,
        entries: Iterable[ConversationEntry],
    ) -> MemoryExtractionResult:
        """Extract facts from the player's entries and merge them into memory.

        Args:
            npc_id: The NPC that was spoken to.
            entries: Conversation entries; only player entries are used.

        Returns:
            The stored versions of the facts from this batch and the new
            total fact count.
        """
        player_entries = [entry for entry in entries if entry.speaker == "player"]
        day_index = (
            player_entries[-1].day_index
            if player_entries
            else self.conversation_log.active_day_index
        )

        candidates: list[MemoryFact] = []
        for entry in player_entries:
            candidates.extend(
                self.extractor.extract(entry.text, npc_id, entry.day_index, entry.timestamp)
            )

        return await self.ingest(npc_id, candidates, day_index)

    async def ingest(
        self,
        npc_id: str,
        candidates: list[MemoryFact],
        day_index: int | None = None,
    ) -> MemoryExtractionResult:
        """Run already-extracted candidates through validation and merging."""
        start = time.monotonic()
        valid = validate_facts(candidates)
        accepted = filter_by_salience(valid, self.min_salience)

        rejected = len(candidates) - len(accepted)
        if rejected and self.event_log is not None:
            self.event_log.log_rejections(npc_id, rejected, reason="schema_or_salience")

        async with self._get_lock(npc_id):
            existing = await self.store.get_all()
            if not accepted:
                return MemoryExtractionResult(added_facts=[], total_facts=len(existing))

            npc_facts = [fact for fact in existing if fact.npc_id == npc_id]
            threaded = assign_threads(accepted, npc_facts)
            linked = attach_links(threaded, npc_facts)
            merged = merge_facts(existing, linked)
            resolved = apply_completions(merged, linked)
            await self.store.replace_all(resolved)

        batch_keys = {semantic_key(fact) for fact in linked}
        added = [fact for fact in resolved if semantic_key(fact) in batch_keys]

        logger.debug(
            "Stored %d facts for %s (candidates=%d, total=%d)",
            len(added),
            npc_id,
            len(candidates),
            len(resolved),
        )
        if self.event_log is not None:
            self.event_log.log_extraction(
                npc_id,
                day_index if day_index is not None else self.conversation_log.active_day_index,
                len(added),
                len(resolved),
                duration_ms=(time.monotonic() - start) * 1000,
            )

        return MemoryExtractionResult(added_facts=added, total_facts=len(resolved))

    async def record_turn(
        self,
        npc_id: str,
        speaker: Speaker,
        text: str,
        day_index: int | None = None,
        timestamp: str | None = None,
    ) -> tuple[ConversationEntry, MemoryExtractionResult | None]:
        """Append an utterance to the log and, for the player, extract from it."""
        entry = await self.conversation_log.append(
            npc_id, speaker, text, day_index=day_index, timestamp=timestamp
        )
        if speaker != "player":
            return entry, None
        return entry, await self.extract_and_store(npc_id, [entry])
