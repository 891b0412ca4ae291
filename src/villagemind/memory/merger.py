"""Merging incoming facts into an NPC's memory by semantic identity."""

import math
from collections.abc import Iterable
from dataclasses import replace

from .models import Link, MemoryFact, TaskStatus
from .text import clamp, normalize_text, timestamp_value

SemanticKey = tuple[str, str, str]


def semantic_key(fact: MemoryFact) -> SemanticKey:
    """Identity used for deduplication: (npc, type, normalized content)."""
    return (fact.npc_id, fact.type.value, normalize_text(fact.content))


def merged_salience(existing: float, incoming: float, mentions: int) -> float:
    """Reinforced salience after a re-observation; never below ``existing``."""
    mention_boost = min(0.12, math.log2(mentions + 1) * 0.04)
    blended = clamp(existing * 0.65 + incoming * 0.35 + 0.04 + mention_boost, 0.0, 1.0)
    return max(existing, blended)


def _union(existing: Iterable, incoming: Iterable, key) -> tuple:
    merged: dict = {}
    for item in (*existing, *incoming):
        merged.setdefault(key(item), item)
    return tuple(merged.values())


def _merge_status(
    existing: TaskStatus | None,
    incoming: TaskStatus | None,
) -> TaskStatus | None:
    if TaskStatus.DONE in (existing, incoming):
        return TaskStatus.DONE
    return existing if existing is not None else incoming


def combine_facts(existing: MemoryFact, incoming: MemoryFact) -> MemoryFact:
    """Fold a re-observed fact into the stored one, keeping its id."""
    mentions = existing.mentions + incoming.mentions
    sequences = [s for s in (existing.thread_sequence, incoming.thread_sequence) if s]

    anchors = _union(existing.anchors, incoming.anchors, lambda a: a.key)
    links = _union(existing.links, incoming.links, lambda l: l.key)

    return replace(
        existing,
        mentions=mentions,
        salience=merged_salience(existing.salience, incoming.salience, mentions),
        last_mentioned_at=incoming.last_mentioned_at,
        tags=_union(existing.tags, incoming.tags, lambda t: t),
        status=_merge_status(existing.status, incoming.status),
        thread_id=existing.thread_id or incoming.thread_id,
        thread_sequence=max(sequences) if sequences else None,
        anchors=anchors or existing.anchors,
        links=links or existing.links,
    )


def _remap_links(fact: MemoryFact, id_map: dict[str, str]) -> MemoryFact:
    if not fact.links:
        return fact
    remapped: dict[tuple[str, str], Link] = {}
    for link in fact.links:
        target_id = id_map.get(link.target_id, link.target_id)
        if target_id == fact.id:
            continue
        link = Link(target_id=target_id, label=link.label)
        remapped.setdefault(link.key, link)
    return replace(fact, links=tuple(remapped.values()))


def sort_facts(facts: Iterable[MemoryFact]) -> list[MemoryFact]:
    """Order by most recently mentioned, then id."""
    by_id = sorted(facts, key=lambda fact: fact.id)
    return sorted(by_id, key=lambda fact: timestamp_value(fact.last_mentioned_at), reverse=True)


def merge_facts(
    existing_facts: Iterable[MemoryFact],
    incoming_facts: Iterable[MemoryFact],
) -> list[MemoryFact]:
    """Merge incoming facts into the existing collection.

    Facts with a new semantic key are inserted as-is; re-observations are
    combined into the stored fact. Links that pointed at an incoming fact
    absorbed by a stored one are redirected to the stored id.

    Returns:
        The full collection ordered by ``last_mentioned_at`` desc, id asc.
    """
    merged: dict[SemanticKey, MemoryFact] = {}
    for fact in existing_facts:
        merged.setdefault(semantic_key(fact), fact)

    id_map: dict[str, str] = {}
    for fact in incoming_facts:
        key = semantic_key(fact)
        if key in merged:
            current = merged[key]
            merged[key] = combine_facts(current, fact)
            id_map[fact.id] = current.id
        else:
            merged[key] = fact

    facts = merged.values()
    if id_map:
        facts = [_remap_links(fact, id_map) for fact in facts]
    return sort_facts(facts)

