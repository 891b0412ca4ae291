"""Marking open tasks done when a completion event mentions them."""

from collections.abc import Iterable
from dataclasses import replace

from .lexicon import COMPLETION_SIGNALS
from .models import FactType, MemoryFact, TaskStatus


def is_completion_signal(fact: MemoryFact) -> bool:
    """True for event facts whose content reports something finished."""
    if fact.type is not FactType.EVENT:
        return False
    content = fact.content.lower()
    return any(signal in content for signal in COMPLETION_SIGNALS)


def apply_completions(
    merged_facts: Iterable[MemoryFact],
    incoming_facts: Iterable[MemoryFact],
) -> list[MemoryFact]:
    """Flip open tasks to done when an incoming completion shares an anchor.

    Only completions reported to the same NPC count. Done tasks are never
    reopened.
    """
    signals = [fact for fact in incoming_facts if is_completion_signal(fact)]
    facts = list(merged_facts)
    if not signals:
        return facts

    resolved: list[MemoryFact] = []
    for fact in facts:
        if fact.type is FactType.TASK and fact.status is not TaskStatus.DONE:
            task_keys = {anchor.key for anchor in fact.anchors}
            if any(
                signal.npc_id == fact.npc_id
                and task_keys.intersection(anchor.key for anchor in signal.anchors)
                for signal in signals
            ):
                fact = replace(fact, status=TaskStatus.DONE)
        resolved.append(fact)
    return resolved
