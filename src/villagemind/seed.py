"""Scripted conversations for seeding a village with memories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Literal

from .roster import NpcRosterEntry, get_npc_roster

if TYPE_CHECKING:
    from .memory.pipeline import MemoryPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptTurn:
    player_text: str
    npc_text: str


@dataclass(frozen=True)
class ChatScript:
    npc_id: str
    turns: tuple[ScriptTurn, ...]


@dataclass
class SeedNpcResult:
    npc_id: str
    entry_count: int
    facts_added: int


@dataclass
class SeedResult:
    day_index: int
    total_entries: int
    total_facts_added: int
    total_facts: int
    generated_at: str
    mode: Literal["reset", "append"]
    per_npc: list[SeedNpcResult] = field(default_factory=list)


CHAT_SCRIPTS: tuple[ChatScript, ...] = (
    ChatScript(
        npc_id="mira",
        turns=(
            ScriptTurn(
                "I feel happy today because the hall looks cozy!",
                "That warmth makes the whole town shine.",
            ),
            ScriptTurn(
                "I love chamomile tea and berry scones.",
                "That sounds like the perfect treat.",
            ),
            ScriptTurn(
                "My friend Lila will visit tomorrow to help decorate.",
                "A friend visit always lifts the mood.",
            ),
            ScriptTurn(
                "I plan to host a small music night this weekend.",
                "That event will bring everyone together.",
            ),
        ),
    ),
    ChatScript(
        npc_id="theo",
        turns=(
            ScriptTurn(
                "I built a cedar bench for the plaza this morning.",
                "Handmade pieces make the plaza feel loved.",
            ),
            ScriptTurn(
                "I need more oak planks for the bridge repairs.",
                "I will keep an eye out for extra lumber.",
            ),
            ScriptTurn(
                "I'm stressed about finishing the workshop on time.",
                "We can pace the work and still do it well.",
            ),
            ScriptTurn(
                "My brother visits next week to help me build.",
                "Extra hands will make the project smoother.",
            ),
        ),
    ),
    ChatScript(
        npc_id="jun",
        turns=(
            ScriptTurn(
                "I enjoy tending the tulips and roses near the creek.",
                "The gardens look brighter with your care.",
            ),
            ScriptTurn(
                "I picked up a rare seed from the market today.",
                "That seed could make a lovely new patch.",
            ),
            ScriptTurn(
                "I want to plant a new herb patch by the fence.",
                "Herbs will add a fresh scent to the air.",
            ),
            ScriptTurn(
                "I went to the creek and felt calm in the breeze.",
                "The creek always brings a peaceful rhythm.",
            ),
        ),
    ),
    ChatScript(
        npc_id="pia",
        turns=(
            ScriptTurn(
                "I went to the coast and met a friendly trader.",
                "New contacts keep the market lively.",
            ),
            ScriptTurn(
                "I like honey bread and citrus jam the most.",
                "Those are always top picks at the stalls.",
            ),
            ScriptTurn(
                "I'm worried about the rain tomorrow slowing deliveries.",
                "We can plan for the weather and stay prepared.",
            ),
            ScriptTurn(
                "I found a lantern and bought fresh fruit on the way back.",
                "That sounds like a productive trip.",
            ),
        ),
    ),
)


def fallback_script(npc: NpcRosterEntry) -> ChatScript:
    return ChatScript(
        npc_id=npc.id,
        turns=(
            ScriptTurn(
                f"I feel grateful for how calm the plaza felt today, {npc.name}.",
                f"{npc.name} nods thoughtfully and listens.",
            ),
            ScriptTurn(
                "I like warm tea, and I plan to rest tomorrow.",
                f"{npc.name} smiles and offers a gentle suggestion.",
            ),
        ),
    )


def scripts_for_roster(roster: list[NpcRosterEntry]) -> list[ChatScript]:
    by_npc = {script.npc_id: script for script in CHAT_SCRIPTS}
    return [by_npc.get(npc.id) or fallback_script(npc) for npc in roster]


async def _run_script(
    pipeline: MemoryPipeline,
    script: ChatScript,
    day_index: int,
    base: datetime,
) -> SeedNpcResult:
    log = pipeline.conversation_log
    entries = []
    offset = 0
    for turn in script.turns:
        for speaker, text in (("player", turn.player_text), ("npc", turn.npc_text)):
            timestamp = (base + timedelta(seconds=offset)).isoformat()
            offset += 1
            entries.append(
                await log.append(
                    script.npc_id, speaker, text, day_index=day_index, timestamp=timestamp
                )
            )

    result = await pipeline.extract_and_store(script.npc_id, entries)
    return SeedNpcResult(
        npc_id=script.npc_id,
        entry_count=len(entries),
        facts_added=len(result.added_facts),
    )


async def run_synthetic_chat(
    pipeline: MemoryPipeline,
    day_index: int | None = None,
    reset: bool = False,
    roster: list[NpcRosterEntry] | None = None,
) -> SeedResult:
    """Play a short scripted conversation with every NPC and extract memories.

    Args:
        pipeline: Pipeline whose log and store receive the conversation.
        day_index: Day to record under; defaults to the log's active day.
        reset: Clear the conversation log and memory store first.
        roster: NPCs to talk to; defaults to the village roster.

    Returns:
        Entry and fact counts, overall and per NPC.
    """
    log = pipeline.conversation_log
    store = pipeline.store
    await log.initialize()
    await store.initialize()

    resolved_day = max(1, int(day_index)) if day_index is not None else log.active_day_index
    log.active_day_index = resolved_day

    if reset:
        await log.clear()
        await store.clear()

    base = datetime.now(timezone.utc)
    per_npc = [
        await _run_script(pipeline, script, resolved_day, base)
        for script in scripts_for_roster(roster if roster is not None else get_npc_roster())
    ]

    result = SeedResult(
        day_index=resolved_day,
        total_entries=sum(r.entry_count for r in per_npc),
        total_facts_added=sum(r.facts_added for r in per_npc),
        total_facts=len(await store.get_all()),
        generated_at=datetime.now(timezone.utc).isoformat(),
        mode="reset" if reset else "append",
        per_npc=per_npc,
    )
    logger.info(
        "Seeded day %d: %d entries, %d facts added",
        result.day_index,
        result.total_entries,
        result.total_facts_added,
    )
    return result
