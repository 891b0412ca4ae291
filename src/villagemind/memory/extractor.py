"""Fact extraction from player utterances.

The default extractor is rule-based: an ordered list of detectors runs
against the lowercased utterance, each proposing candidate facts. No LLM
is needed. ``LlmFactExtractor`` is an optional alternative that asks the
LLM adapter for fact sentences and builds facts from them the same way.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .lexicon import (
    ASK_REQUEST_PHRASES,
    EMOTION_KEYWORDS,
    EVENT_VERBS,
    GOAL_PHRASES,
    ITEM_VERB_EXCLUSIONS,
    ITEM_VERBS,
    OBLIGATION_PHRASES,
    PREFERENCE_VERBS,
    RELATIONSHIP_KEYWORDS,
    SCHEDULE_KEYWORDS,
    WANT_REQUEST_PHRASES,
    Lexicon,
    find_keywords,
    keyword_pattern,
)
from .models import Anchor, FactType, MemoryFact, Tag, TaskStatus
from .text import clamp, slugify, trim_sentence, utc_now_iso

if TYPE_CHECKING:
    from ..conversation_log import ConversationEntry
    from ..llm.types import LlmAdapter

logger = logging.getLogger(__name__)

MAX_FACTS_PER_ENTRY = 4
DETAIL_TOKENS = 5
GENERAL = "general"

BASE_SALIENCE: dict[FactType, float] = {
    FactType.EVENT: 0.42,
    FactType.EMOTION: 0.55,
    FactType.PREFERENCE: 0.48,
    FactType.RELATIONSHIP: 0.46,
    FactType.SCHEDULE: 0.40,
    FactType.GOAL: 0.44,
    FactType.TASK: 0.50,
    FactType.ITEM: 0.38,
}

# Tag group -> anchor type. Anchors are the linking substrate.
ANCHOR_TYPES: dict[str, str] = {
    "person": "person",
    "genre": "genre",
    "activity": "activity",
    "schedule": "time",
    "place": "place",
    "item": "item",
    "project": "project",
    "event": "event",
    "goal": "goal",
    "title": "title",
    "task": "topic",
}

_SENTENCE_END = re.compile(r"[.!?](?:\s|$)")
_TRAILING_PLEASE = re.compile(r",?\s*please$")
_FIRST_PERSON = re.compile(r"\b(i'm|i've|i'll|i'd|myself|mine|my|me|i)\b")
_THIRD_PERSON = {
    "i'm": "they're",
    "i've": "they've",
    "i'll": "they'll",
    "i'd": "they'd",
    "myself": "themselves",
    "mine": "theirs",
    "my": "their",
    "me": "them",
    "i": "they",
}
_REQUEST_PATTERN = re.compile(
    "|".join(
        keyword_pattern(phrase).pattern
        for phrase in (*WANT_REQUEST_PHRASES, *ASK_REQUEST_PHRASES)
    )
)
_PREFERENCE_RENDERINGS = {
    "love": "loves",
    "like": "likes",
    "enjoy": "enjoys",
    "prefer": "prefers",
}


@dataclass(frozen=True)
class FactCandidate:
    """A proposed fact before tags, salience and ids are attached."""

    type: FactType
    content: str
    detail_tags: tuple[Tag, ...]
    status: TaskStatus | None = None


Rule = Callable[[str], list[FactCandidate]]


def to_third_person(text: str) -> str:
    """Rewrite first-person pronouns in a lowercase phrase."""
    return _FIRST_PERSON.sub(lambda match: _THIRD_PERSON[match.group(1)], text)


def tail_after(lowered: str, index: int) -> str:
    """The rest of the sentence that starts at ``index``."""
    tail = _SENTENCE_END.split(lowered[index:], maxsplit=1)[0]
    tail = _TRAILING_PLEASE.sub("", trim_sentence(tail))
    return tail.strip(" ,;:-")


def score_salience(fact_type: FactType, text: str) -> float:
    """Heuristic importance of a fact given the utterance it came from."""
    lowered = text.lower()
    score = BASE_SALIENCE[fact_type]

    if any(word in lowered for word in EMOTION_KEYWORDS):
        score += 0.08
    if "important" in lowered or "big" in lowered:
        score += 0.08
    if "very" in lowered or "really" in lowered:
        score += 0.04
    if "!" in text:
        score += 0.03
    if len(text) >= 90:
        score += 0.04

    return clamp(score, 0.0, 1.0)


def build_anchors(tags: Iterable[Tag], source_text: str) -> tuple[Anchor, ...]:
    """Derive linking anchors from tags, falling back to a topic anchor."""
    anchors = [
        Anchor(type=ANCHOR_TYPES[tag.group], value=tag.value)
        for tag in tags
        if tag.group in ANCHOR_TYPES and tag.value != GENERAL
    ]
    if not anchors:
        topic = slugify(source_text, DETAIL_TOKENS)
        if topic:
            anchors.append(Anchor(type="topic", value=topic))
    return tuple(dict.fromkeys(anchors))


def create_fact_id(npc_id: str, fact_type: FactType, content: str) -> str:
    fingerprint = slugify(content)[:32]
    return f"{npc_id}-{fact_type.value}-{uuid.uuid4().hex[:8]}-{fingerprint}"


def build_fact(
    candidate: FactCandidate,
    npc_id: str,
    day_index: int,
    source_text: str,
    timestamp: str,
    semantic_tags: Iterable[Tag] = (),
) -> MemoryFact:
    """Attach id, tags, anchors and salience to a candidate."""
    tags = tuple(
        dict.fromkeys(
            [
                Tag("type", candidate.type.value),
                Tag("day", str(day_index)),
                Tag("npc", npc_id),
                *candidate.detail_tags,
                *semantic_tags,
            ]
        )
    )
    return MemoryFact(
        id=create_fact_id(npc_id, candidate.type, candidate.content),
        npc_id=npc_id,
        type=candidate.type,
        content=candidate.content,
        tags=tags,
        salience=score_salience(candidate.type, source_text),
        created_at=timestamp,
        last_mentioned_at=timestamp,
        status=candidate.status,
        anchors=build_anchors(tags, source_text),
    )


class FactExtractor:
    """Extracts candidate facts from one utterance with keyword rules.

    Rules run in a fixed order and the result is truncated to
    ``max_facts``; later rules are the ones dropped.
    """

    def __init__(
        self,
        lexicon: Lexicon | None = None,
        max_facts: int = MAX_FACTS_PER_ENTRY,
    ) -> None:
        """Initialize the extractor.

        Args:
            lexicon: Tag miner; defaults to one built from the NPC roster.
            max_facts: Cap on facts produced per utterance.
        """
        self.lexicon = lexicon or Lexicon()
        self.max_facts = max_facts
        self.rules: tuple[Rule, ...] = (
            self._emotions,
            self._preference,
            self._task,
            self._goal,
            self._relationships,
            self._schedules,
            self._item,
            self._event,
        )

    def extract(
        self,
        text: str,
        npc_id: str,
        day_index: int,
        timestamp: str | None = None,
    ) -> list[MemoryFact]:
        """Extract facts from an utterance.

        Args:
            text: What the player said.
            npc_id: The NPC being spoken to.
            day_index: Current in-game day.
            timestamp: Observation time; defaults to now.

        Returns:
            Zero to ``max_facts`` facts. Empty text yields no facts; text no
            rule understands yields one generic event fact.
        """
        raw_text = text.strip() if isinstance(text, str) else ""
        if not raw_text:
            return []

        lowered = raw_text.lower()
        candidates: list[FactCandidate] = []
        for rule in self.rules:
            candidates.extend(rule(lowered))

        if not candidates:
            candidates.append(
                FactCandidate(FactType.EVENT, raw_text, (Tag("event", GENERAL),))
            )

        stamp = timestamp or utc_now_iso()
        semantic_tags = self.lexicon.mine(raw_text)
        return [
            build_fact(candidate, npc_id, day_index, raw_text, stamp, semantic_tags)
            for candidate in candidates[: self.max_facts]
        ]

    def _emotions(self, lowered: str) -> list[FactCandidate]:
        return [
            FactCandidate(
                FactType.EMOTION,
                f"Player feels {emotion}.",
                (Tag("emotion", emotion),),
            )
            for emotion in find_keywords(lowered, EMOTION_KEYWORDS)
        ]

    def _preference(self, lowered: str) -> list[FactCandidate]:
        request_spans = [match.span() for match in _REQUEST_PATTERN.finditer(lowered)]

        for verb in PREFERENCE_VERBS:
            pattern = re.compile(rf"(?<![a-z0-9']){verb}(?:s|d|ed)?(?![a-z0-9])")
            for match in pattern.finditer(lowered):
                if any(start <= match.start() < end for start, end in request_spans):
                    continue
                # "would you like ..." is about the NPC, not the player
                if lowered[: match.start()].rstrip().endswith("you"):
                    continue
                obj = to_third_person(tail_after(lowered, match.end()))
                if not obj:
                    continue
                if verb == "favorite":
                    content = f"Player's favorite {obj}."
                else:
                    content = f"Player {_PREFERENCE_RENDERINGS[verb]} {obj}."
                return [
                    FactCandidate(
                        FactType.PREFERENCE,
                        content,
                        (Tag("preference", slugify(obj, DETAIL_TOKENS)),),
                    )
                ]
        return []

    def _task(self, lowered: str) -> list[FactCandidate]:
        renderings = {
            **{phrase: "wants you to" for phrase in WANT_REQUEST_PHRASES},
            **{phrase: "asked you to" for phrase in ASK_REQUEST_PHRASES},
            **OBLIGATION_PHRASES,
        }

        best: tuple[int, str, str] | None = None
        for phrase, rendering in renderings.items():
            for match in keyword_pattern(phrase).finditer(lowered):
                tail = self._strip_request_prefix(tail_after(lowered, match.end()))
                if not tail:
                    continue
                # Earliest phrase wins; on ties the one listed first
                if best is None or match.start() < best[0]:
                    best = (match.start(), rendering, tail)
                break

        if best is None:
            return []

        _, rendering, tail = best
        action = to_third_person(tail)
        return [
            FactCandidate(
                FactType.TASK,
                f"Player {rendering} {action}.",
                (Tag("task", slugify(action, DETAIL_TOKENS)),),
                status=TaskStatus.OPEN,
            )
        ]

    @staticmethod
    def _strip_request_prefix(tail: str) -> str:
        stripped = True
        while stripped and tail:
            stripped = False
            for phrase in ASK_REQUEST_PHRASES:
                if tail == phrase or tail.startswith(phrase + " "):
                    tail = tail[len(phrase):].strip(" ,")
                    stripped = True
        return tail

    def _goal(self, lowered: str) -> list[FactCandidate]:
        for phrase, rendering in GOAL_PHRASES.items():
            for match in keyword_pattern(phrase).finditer(lowered):
                tail = to_third_person(tail_after(lowered, match.end()))
                if not tail:
                    continue
                return [
                    FactCandidate(
                        FactType.GOAL,
                        f"Player {rendering} {tail}.",
                        (Tag("goal", slugify(tail, DETAIL_TOKENS)),),
                    )
                ]
        return []

    def _relationships(self, lowered: str) -> list[FactCandidate]:
        return [
            FactCandidate(
                FactType.RELATIONSHIP,
                f"Player mentioned their {relation}.",
                (Tag("relationship", relation),),
            )
            for relation in find_keywords(lowered, RELATIONSHIP_KEYWORDS)
        ]

    def _schedules(self, lowered: str) -> list[FactCandidate]:
        return [
            FactCandidate(
                FactType.SCHEDULE,
                f"Player has plans {schedule}.",
                (Tag("schedule", slugify(schedule)),),
            )
            for schedule in find_keywords(lowered, SCHEDULE_KEYWORDS)
        ]

    def _item(self, lowered: str) -> list[FactCandidate]:
        for verb, rendering in ITEM_VERBS.items():
            exclusion = ITEM_VERB_EXCLUSIONS.get(verb, "")
            pattern = re.compile(keyword_pattern(verb).pattern + exclusion)
            for match in pattern.finditer(lowered):
                obj = to_third_person(tail_after(lowered, match.end()))
                if not obj:
                    continue
                return [
                    FactCandidate(
                        FactType.ITEM,
                        f"Player {rendering} {obj}.",
                        (Tag("item", slugify(obj, DETAIL_TOKENS)),),
                    )
                ]
        return []

    def _event(self, lowered: str) -> list[FactCandidate]:
        for verb in EVENT_VERBS:
            for match in keyword_pattern(verb).finditer(lowered):
                obj = to_third_person(tail_after(lowered, match.end()))
                if not obj:
                    continue
                return [
                    FactCandidate(
                        FactType.EVENT,
                        f"Player {verb} {obj}.",
                        (Tag("event", slugify(obj, DETAIL_TOKENS)),),
                    )
                ]
        return []


class LlmFactExtractor:
    """Extracts facts by asking the LLM adapter for short fact sentences.

    Every returned sentence becomes an ``event`` fact built with the same
    tagging, anchoring and salience rules as the keyword extractor.
    Store the result with ``MemoryPipeline.ingest``; the pipeline's own
    ``extractor`` slot takes the synchronous keyword extractor.
    """

    def __init__(
        self,
        adapter: LlmAdapter,
        lexicon: Lexicon | None = None,
        max_facts: int = MAX_FACTS_PER_ENTRY,
    ) -> None:
        self.adapter = adapter
        self.lexicon = lexicon or Lexicon()
        self.max_facts = max_facts

    async def extract(
        self,
        entries: list[ConversationEntry],
        npc_id: str,
        npc_name: str,
        npc_role: str,
        day_index: int,
        timestamp: str | None = None,
    ) -> list[MemoryFact]:
        """Extract facts from a conversation.

        LLM errors propagate to the caller.
        """
        from ..llm.types import LlmFactInput, LlmMessage

        if not entries:
            return []

        conversation = [
            LlmMessage(
                role="user" if entry.speaker == "player" else "assistant",
                content=entry.text,
            )
            for entry in entries
        ]
        result = await self.adapter.extract_facts(
            LlmFactInput(
                npc_name=npc_name,
                npc_role=npc_role,
                conversation=conversation,
                max_facts=self.max_facts,
            )
        )

        stamp = timestamp or utc_now_iso()
        facts: list[MemoryFact] = []
        for sentence in result.facts[: self.max_facts]:
            content = trim_sentence(sentence)
            if not content:
                continue
            candidate = FactCandidate(
                FactType.EVENT,
                f"{content}.",
                (Tag("event", slugify(content, DETAIL_TOKENS)),),
            )
            facts.append(
                build_fact(
                    candidate, npc_id, day_index, content, stamp, self.lexicon.mine(content)
                )
            )
        logger.debug("LLM extraction produced %d facts (npc=%s)", len(facts), npc_id)
        return facts
