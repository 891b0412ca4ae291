"""Link discovery between incoming facts and the rest of an NPC's memory."""

from collections.abc import Iterable
from dataclasses import dataclass, replace

from .merger import semantic_key
from .models import Link, MemoryFact
from .text import timestamp_value

MAX_LINKS_PER_FACT = 4

CONTEXT_LABEL = "context"
DEFAULT_LABEL = "related to"

# (source anchor type, target anchor type) -> label
AFFINITY_LABELS: tuple[tuple[str, str, str], ...] = (
    ("title", "person", "created by"),
    ("person", "title", "creator of"),
    ("genre", "person", "artist in genre"),
    ("person", "genre", "genre of artist"),
)


@dataclass(frozen=True)
class _LinkCandidate:
    target: MemoryFact
    overlap: int
    is_context: bool


def anchor_overlap(source: MemoryFact, target: MemoryFact) -> int:
    """Number of anchor keys the two facts share."""
    source_keys = {anchor.key for anchor in source.anchors}
    return sum(1 for key in {anchor.key for anchor in target.anchors} if key in source_keys)


def link_label(source: MemoryFact, target: MemoryFact) -> str:
    source_types = {anchor.type for anchor in source.anchors}
    target_types = {anchor.type for anchor in target.anchors}
    for source_type, target_type, label in AFFINITY_LABELS:
        if source_type in source_types and target_type in target_types:
            return label
    return DEFAULT_LABEL


def merge_links(existing: Iterable[Link], incoming: Iterable[Link]) -> tuple[Link, ...]:
    """Union of two link lists, deduplicated by (target, label)."""
    merged: dict[tuple[str, str], Link] = {}
    for link in (*existing, *incoming):
        merged.setdefault(link.key, link)
    return tuple(merged.values())


def _find_links(
    fact: MemoryFact,
    pool: list[MemoryFact],
    max_links: int,
) -> list[Link]:
    own_key = semantic_key(fact)
    candidates: list[_LinkCandidate] = []

    for other in pool:
        if other.id == fact.id or other.npc_id != fact.npc_id:
            continue
        # A re-observation of the same memory is not a relation
        if semantic_key(other) == own_key:
            continue
        overlap = anchor_overlap(fact, other)
        is_context = other.created_at == fact.created_at
        if overlap > 0 or is_context:
            candidates.append(_LinkCandidate(other, overlap, is_context))

    # Same-utterance facts first so they always make the cut
    candidates.sort(
        key=lambda c: (
            not c.is_context,
            -c.overlap,
            -timestamp_value(c.target.last_mentioned_at),
        )
    )

    return [
        Link(
            target_id=c.target.id,
            label=CONTEXT_LABEL if c.is_context else link_label(fact, c.target),
        )
        for c in candidates[:max_links]
    ]


def attach_links(
    new_facts: Iterable[MemoryFact],
    existing_facts: Iterable[MemoryFact],
    max_links: int = MAX_LINKS_PER_FACT,
) -> list[MemoryFact]:
    """Attach links from each new fact to related new or existing facts.

    Existing facts are not updated to point back at the new ones.
    """
    incoming = list(new_facts)
    pool = [*incoming, *existing_facts]

    linked: list[MemoryFact] = []
    for fact in incoming:
        links = _find_links(fact, pool, max_links)
        if links:
            fact = replace(fact, links=merge_links(fact.links, links))
        linked.append(fact)
    return linked
