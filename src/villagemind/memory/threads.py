"""Thread assignment: grouping facts about one ongoing topic per NPC."""

from collections.abc import Iterable
from dataclasses import replace

from .models import MemoryFact
from .text import normalize_text, slugify

THREAD_TAG_PRIORITY: tuple[str, ...] = (
    "task",
    "goal",
    "project",
    "event",
    "activity",
    "place",
    "person",
    "genre",
    "item",
    "title",
    "schedule",
)

TOPIC_TOKENS = 5


def derive_thread_key(fact: MemoryFact) -> str | None:
    """Return ``group:value`` for the fact's topic, or None if it has none.

    Tags are scanned in priority order; generic ``general`` values are
    skipped. Without a usable tag the key falls back to a topic slug built
    from the content.
    """
    for group in THREAD_TAG_PRIORITY:
        for tag in fact.tags:
            if tag.group == group and tag.value and tag.value != "general":
                return f"{tag.group}:{tag.value}"

    words = normalize_text(fact.content).split()
    if words and words[0] == "player":
        words = words[1:]
    topic = slugify(" ".join(words), TOPIC_TOKENS)
    return f"topic:{topic}" if topic else None


def thread_id_for(fact: MemoryFact) -> str | None:
    key = derive_thread_key(fact)
    return f"{fact.npc_id}:{key}" if key else None


def assign_threads(
    new_facts: Iterable[MemoryFact],
    existing_facts: Iterable[MemoryFact],
) -> list[MemoryFact]:
    """Populate ``thread_id`` and ``thread_sequence`` on new facts.

    Sequences continue from the highest sequence already stored for the
    thread and keep increasing within the batch.
    """
    next_sequence: dict[str, int] = {}
    for fact in existing_facts:
        if fact.thread_id and fact.thread_sequence:
            next_sequence[fact.thread_id] = max(
                next_sequence.get(fact.thread_id, 0), fact.thread_sequence
            )

    threaded: list[MemoryFact] = []
    for fact in new_facts:
        thread_id = thread_id_for(fact)
        if thread_id is None:
            threaded.append(fact)
            continue
        sequence = next_sequence.get(thread_id, 0) + 1
        next_sequence[thread_id] = sequence
        threaded.append(replace(fact, thread_id=thread_id, thread_sequence=sequence))
    return threaded
