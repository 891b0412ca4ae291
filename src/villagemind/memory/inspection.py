"""Read-only views of memory for developer inspection."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import Anchor, MemoryFact, TaskStatus
from .text import humanize, timestamp_value

UNTHREADED_THREAD_ID = "unthreaded"


@dataclass(frozen=True)
class MemoryGraphNode:
    id: str
    npc_id: str
    type: str
    content: str
    status: TaskStatus | None
    thread_id: str | None
    thread_sequence: int | None
    anchors: tuple[Anchor, ...]
    link_count: int
    last_mentioned_at: str


@dataclass(frozen=True)
class MemoryGraphEdge:
    source_id: str
    target_id: str
    label: str


@dataclass
class MemoryGraph:
    nodes: list[MemoryGraphNode] = field(default_factory=list)
    edges: list[MemoryGraphEdge] = field(default_factory=list)


@dataclass
class ThreadGroup:
    """Facts sharing one thread, in sequence order."""

    thread_id: str
    label: str
    npc_id: str | None
    last_mentioned_at: str
    facts: list[MemoryFact]
    has_open_tasks: bool


def build_memory_graph(facts: Iterable[MemoryFact]) -> MemoryGraph:
    """Nodes for every fact and edges for links whose target exists.

    Nodes are ordered by most recent mention; duplicate edges are dropped.
    """
    ordered = sorted(facts, key=lambda fact: timestamp_value(fact.last_mentioned_at), reverse=True)
    ids = {fact.id for fact in ordered}

    edges: list[MemoryGraphEdge] = []
    seen: set[tuple[str, str, str]] = set()
    link_counts: dict[str, int] = {}
    for fact in ordered:
        for link in fact.links:
            key = (fact.id, link.target_id, link.label)
            if link.target_id not in ids or key in seen:
                continue
            seen.add(key)
            edges.append(MemoryGraphEdge(fact.id, link.target_id, link.label))
            link_counts[fact.id] = link_counts.get(fact.id, 0) + 1

    nodes = [
        MemoryGraphNode(
            id=fact.id,
            npc_id=fact.npc_id,
            type=fact.type.value,
            content=fact.content,
            status=fact.status,
            thread_id=fact.thread_id,
            thread_sequence=fact.thread_sequence,
            anchors=fact.anchors,
            link_count=link_counts.get(fact.id, 0),
            last_mentioned_at=fact.last_mentioned_at,
        )
        for fact in ordered
    ]
    return MemoryGraph(nodes=nodes, edges=edges)


def format_thread_label(thread_id: str) -> str:
    if thread_id == UNTHREADED_THREAD_ID:
        return "Unthreaded"
    _, _, key = thread_id.partition(":")
    return humanize(key) or "Thread"


def group_facts_by_thread(facts: Iterable[MemoryFact]) -> list[ThreadGroup]:
    """Group facts by thread id, most recently active thread first."""
    groups: dict[str, list[MemoryFact]] = {}
    for fact in facts:
        groups.setdefault(fact.thread_id or UNTHREADED_THREAD_ID, []).append(fact)

    result: list[ThreadGroup] = []
    for thread_id, group_facts in groups.items():
        ordered = sorted(
            group_facts,
            key=lambda fact: (
                fact.thread_sequence if fact.thread_sequence is not None else float("inf"),
                timestamp_value(fact.created_at),
            ),
        )
        latest = max(group_facts, key=lambda fact: timestamp_value(fact.last_mentioned_at))
        result.append(
            ThreadGroup(
                thread_id=thread_id,
                label=format_thread_label(thread_id),
                npc_id=None if thread_id == UNTHREADED_THREAD_ID else thread_id.split(":")[0],
                last_mentioned_at=latest.last_mentioned_at,
                facts=ordered,
                has_open_tasks=any(fact.is_open_task for fact in group_facts),
            )
        )

    result.sort(key=lambda group: timestamp_value(group.last_mentioned_at), reverse=True)
    return result
