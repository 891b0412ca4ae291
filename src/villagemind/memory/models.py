"""Data models for the memory system."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FactType(Enum):
    """Kind of memory a fact records. Each extraction rule targets one."""

    EMOTION = "emotion"
    PREFERENCE = "preference"
    RELATIONSHIP = "relationship"
    SCHEDULE = "schedule"
    GOAL = "goal"
    TASK = "task"
    ITEM = "item"
    EVENT = "event"


class TaskStatus(Enum):
    """Lifecycle of a task fact. Only moves OPEN -> DONE."""

    OPEN = "open"
    DONE = "done"


@dataclass(frozen=True)
class Tag:
    """A ``group:value`` label attached to a fact.

    Serialized to the colon-joined string only at storage and display
    boundaries.
    """

    group: str
    value: str

    def __str__(self) -> str:
        return f"{self.group}:{self.value}"

    @classmethod
    def parse(cls, raw: str) -> "Tag | None":
        """Parse ``group:value``; values may themselves contain colons."""
        group, sep, value = raw.partition(":")
        if not sep or not group or not value:
            return None
        return cls(group=group, value=value)


@dataclass(frozen=True)
class Anchor:
    """A normalized entity mentioned by a fact, used to discover links."""

    type: str
    value: str

    @property
    def key(self) -> str:
        return f"{self.type}:{self.value}"


@dataclass(frozen=True)
class Link:
    """Directed reference from one fact to another."""

    target_id: str
    label: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.target_id, self.label)


@dataclass(frozen=True)
class MemoryFact:
    """A structured memory about the player, owned by one NPC.

    Attributes:
        id: Stable identifier assigned at creation (not the merge key).
        npc_id: The NPC that owns this memory.
        type: What kind of memory this is.
        content: Third-person sentence ("Player wants to ...").
        tags: Filtering/display labels.
        salience: Importance score in [0, 1]; never decreases on merge.
        created_at: ISO timestamp of the first observation.
        last_mentioned_at: ISO timestamp of the latest observation.
        mentions: Number of independent observations merged into this fact.
        status: Task lifecycle, only set on task facts.
        thread_id: ``<npc>:<group>:<value>`` topic grouping.
        thread_sequence: 1-based position inside the thread.
        anchors: Entities used for link discovery.
        links: Directed relations to other facts.
    """

    id: str
    npc_id: str
    type: FactType
    content: str
    tags: tuple[Tag, ...]
    salience: float
    created_at: str
    last_mentioned_at: str
    mentions: int = 1
    status: TaskStatus | None = None
    thread_id: str | None = None
    thread_sequence: int | None = None
    anchors: tuple[Anchor, ...] = ()
    links: tuple[Link, ...] = ()

    def has_tag(self, group: str, value: str | None = None) -> bool:
        """Check for a tag group, optionally with a specific value."""
        return any(
            tag.group == group and (value is None or tag.value == value)
            for tag in self.tags
        )

    def tag_strings(self) -> list[str]:
        return [str(tag) for tag in self.tags]

    @property
    def is_open_task(self) -> bool:
        return self.type is FactType.TASK and self.status is not TaskStatus.DONE

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict, omitting unset optional fields."""
        data: dict[str, Any] = {
            "id": self.id,
            "npcId": self.npc_id,
            "type": self.type.value,
            "content": self.content,
            "tags": self.tag_strings(),
            "salience": self.salience,
            "mentions": self.mentions,
            "createdAt": self.created_at,
            "lastMentionedAt": self.last_mentioned_at,
        }
        if self.status is not None:
            data["status"] = self.status.value
        if self.thread_id is not None:
            data["threadId"] = self.thread_id
        if self.thread_sequence is not None:
            data["threadSequence"] = self.thread_sequence
        if self.anchors:
            data["anchors"] = [{"type": a.type, "value": a.value} for a in self.anchors]
        if self.links:
            data["links"] = [{"targetId": l.target_id, "label": l.label} for l in self.links]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryFact":
        """Create from a stored dict.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If type or status is not a known value.
        """
        tags = tuple(
            tag for tag in (Tag.parse(str(raw)) for raw in data.get("tags") or []) if tag
        )
        status = data.get("status")
        return cls(
            id=data["id"],
            npc_id=data["npcId"],
            type=FactType(data["type"]),
            content=data["content"],
            tags=tags,
            salience=float(data["salience"]),
            created_at=data["createdAt"],
            last_mentioned_at=data["lastMentionedAt"],
            # Records written before mention counting default to one observation
            mentions=int(data.get("mentions") or 1),
            status=TaskStatus(status) if status else None,
            thread_id=data.get("threadId"),
            thread_sequence=data.get("threadSequence"),
            anchors=tuple(
                Anchor(type=a["type"], value=a["value"]) for a in data.get("anchors") or []
            ),
            links=tuple(
                Link(target_id=l["targetId"], label=l["label"]) for l in data.get("links") or []
            ),
        )


@dataclass
class MemoryExtractionResult:
    """Outcome of one extract-and-store call."""

    added_facts: list[MemoryFact] = field(default_factory=list)
    total_facts: int = 0


class InsightCategory(Enum):
    """Kind of player insight produced by end-of-day analysis."""

    PREFERENCE = "preference"
    GOAL = "goal"
    VALUE = "value"
    HABIT = "habit"
    INTEREST = "interest"
    STYLE = "style"


@dataclass(frozen=True)
class PlayerInsight:
    """A global, reinforced observation about the player."""

    id: str
    text: str
    category: InsightCategory
    strength: float
    mentions: int
    first_seen_at: str
    last_mentioned_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "category": self.category.value,
            "strength": self.strength,
            "mentions": self.mentions,
            "firstSeenAt": self.first_seen_at,
            "lastMentionedAt": self.last_mentioned_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerInsight":
        return cls(
            id=data["id"],
            text=data["text"],
            category=InsightCategory(data["category"]),
            strength=float(data["strength"]),
            mentions=int(data.get("mentions") or 1),
            first_seen_at=data["firstSeenAt"],
            last_mentioned_at=data["lastMentionedAt"],
        )


@dataclass(frozen=True)
class PlayerInsightSeed:
    """An unmerged insight as returned by the LLM."""

    text: str
    category: InsightCategory


@dataclass
class PlayerProfile:
    """All insights about the player, strongest first."""

    updated_at: str
    insights: list[PlayerInsight] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "updatedAt": self.updated_at,
            "insights": [insight.to_dict() for insight in self.insights],
        }
