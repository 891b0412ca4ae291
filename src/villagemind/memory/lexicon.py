"""Keyword tables and tag mining for rule-based fact extraction.

Each lexicon maps a canonical tag value to the aliases that mention it.
Aliases are matched on word boundaries against the lowercased utterance.
"""

import re
from collections.abc import Iterable

from ..roster import NpcRosterEntry, get_npc_roster
from .models import Tag
from .text import normalize_tag_value

EMOTION_KEYWORDS: tuple[str, ...] = (
    "happy",
    "excited",
    "sad",
    "tired",
    "stressed",
    "anxious",
    "worried",
    "calm",
    "angry",
    "frustrated",
    "proud",
    "grateful",
    "lonely",
    "nervous",
    "overwhelmed",
    "relaxed",
)

PREFERENCE_VERBS: tuple[str, ...] = ("love", "like", "enjoy", "prefer", "favorite")

# Requests directed at the NPC, phrased as "Player wants you to ..."
WANT_REQUEST_PHRASES: tuple[str, ...] = (
    "i want you to",
    "i'd like you to",
    "i would like you to",
    "i need you to",
)

# Requests directed at the NPC, phrased as "Player asked you to ..."
ASK_REQUEST_PHRASES: tuple[str, ...] = (
    "could you",
    "can you",
    "will you",
    "please",
)

# Obligation phrase -> third-person rendering
OBLIGATION_PHRASES: dict[str, str] = {
    "need to": "needs to",
    "have to": "has to",
    "must": "must",
    "gotta": "has to",
    "got to": "has to",
    "should": "should",
}

GOAL_PHRASES: dict[str, str] = {
    "want to": "wants to",
    "plan to": "plans to",
    "hope to": "hopes to",
    "trying to": "is trying to",
    "aim to": "aims to",
}

RELATIONSHIP_KEYWORDS: tuple[str, ...] = (
    "friend",
    "friends",
    "partner",
    "roommate",
    "neighbor",
    "mom",
    "dad",
    "sister",
    "brother",
    "coworker",
)

SCHEDULE_KEYWORDS: tuple[str, ...] = (
    "tomorrow",
    "today",
    "tonight",
    "next week",
    "this weekend",
    "this week",
    "on monday",
    "on tuesday",
    "on wednesday",
    "on thursday",
    "on friday",
    "on saturday",
    "on sunday",
)

# Acquisition verb -> third-person rendering
ITEM_VERBS: dict[str, str] = {
    "bought": "bought",
    "picked up": "picked up",
    "got": "got",
    "need": "needs",
    "looking for": "is looking for",
    "found": "found",
}

EVENT_VERBS: tuple[str, ...] = (
    "went",
    "visited",
    "met",
    "finished",
    "completed",
    "started",
    "helped",
    "built",
)

# "need to"/"got to" are obligations, "need you to" is a request
ITEM_VERB_EXCLUSIONS: dict[str, str] = {
    "need": r"(?!\s+(?:to|you)\b)",
    "got": r"(?!\s+to\b)",
}

COMPLETION_SIGNALS: tuple[str, ...] = ("finished", "completed", "wrapped up", "done")

PLACE_ALIASES: dict[str, tuple[str, ...]] = {
    "community-hall": ("community hall", "the hall", "hall"),
    "plaza": ("plaza", "town square"),
    "market": ("market", "market stalls", "stalls"),
    "grove": ("grove", "orchard"),
    "creek": ("creek", "stream"),
    "garden": ("garden", "gardens", "greenhouse"),
    "workshop": ("workshop",),
    "library": ("library",),
    "coast": ("coast", "beach", "shore"),
    "cafe": ("cafe", "tavern", "bakery"),
}

PROJECT_ALIASES: dict[str, tuple[str, ...]] = {
    "bridge": ("bridge",),
    "bench": ("bench",),
    "playlist": ("playlist",),
    "herb-patch": ("herb patch",),
    "music-night": ("music night",),
    "mural": ("mural",),
    "quilt": ("quilt",),
    "garden-bed": ("garden bed", "raised bed"),
    "treehouse": ("treehouse",),
    "festival": ("festival",),
}

ACTIVITY_ALIASES: dict[str, tuple[str, ...]] = {
    "build": ("build", "building", "built"),
    "repair": ("repair", "repairs", "repairing", "fix", "fixing"),
    "gardening": ("gardening", "planting", "tending", "weeding", "watering"),
    "cooking": ("cook", "cooking", "bake", "baking"),
    "decorating": ("decorate", "decorating"),
    "reading": ("read", "reading"),
    "fishing": ("fishing",),
    "hiking": ("hike", "hiking"),
    "painting": ("paint", "painting"),
    "trading": ("trade", "trading", "deliveries"),
}

MATERIAL_ALIASES: dict[str, tuple[str, ...]] = {
    "cedar": ("cedar",),
    "oak": ("oak",),
    "pine": ("pine",),
    "lumber": ("lumber", "planks", "plank", "timber"),
    "stone": ("stone", "stones"),
    "clay": ("clay",),
    "fabric": ("fabric", "cloth"),
    "yarn": ("yarn",),
}

TOOL_ALIASES: dict[str, tuple[str, ...]] = {
    "nails": ("nails", "nail"),
    "hammer": ("hammer",),
    "saw": ("saw",),
    "shovel": ("shovel",),
    "trowel": ("trowel",),
    "watering-can": ("watering can",),
    "ladder": ("ladder",),
}

PLANT_ALIASES: dict[str, tuple[str, ...]] = {
    "basil": ("basil",),
    "tulips": ("tulip", "tulips"),
    "roses": ("rose", "roses"),
    "herbs": ("herb", "herbs"),
    "mint": ("mint",),
    "lavender": ("lavender",),
    "sunflowers": ("sunflower", "sunflowers"),
    "tomatoes": ("tomato", "tomatoes"),
}

PRODUCT_ALIASES: dict[str, tuple[str, ...]] = {
    "tea": ("tea", "chamomile tea"),
    "scones": ("scone", "scones"),
    "honey-bread": ("honey bread",),
    "jam": ("jam", "citrus jam"),
    "lantern": ("lantern",),
    "fruit": ("fruit", "fresh fruit"),
    "seeds": ("seed", "seeds"),
    "checklist": ("checklist", "to-do list", "todo list"),
    "coffee": ("coffee",),
}

EXTRA_PERSON_ALIASES: dict[str, tuple[str, ...]] = {
    "lila": ("lila",),
}

# Words that precede "music" without naming a genre
_GENRE_STOPWORDS = frozenset({
    "a", "and", "any", "background", "good", "my", "your", "the", "some",
    "of", "to", "play", "playing", "listen", "love", "like", "enjoy", "live",
    "new", "more", "this", "that", "small", "loud", "quiet", "our",
})

_GENRE_PATTERN = re.compile(r"\b([a-z][a-z-]*)\s+music\b(?!\s+night)")
_ATTRIBUTION_PATTERN = re.compile(r"\bby\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")
_QUOTED_TITLE_PATTERNS = (
    re.compile(r'"([^"]{2,60})"'),
    re.compile(r"“([^”]{2,60})”"),
)
_CAPITALIZED_PHRASE_PATTERN = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)\b")


def keyword_pattern(phrase: str) -> re.Pattern[str]:
    """Compile a word-boundary pattern for a lowercase phrase."""
    return re.compile(rf"(?<![a-z0-9']){re.escape(phrase)}(?![a-z0-9])")


def find_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """Return the keywords present in ``text``, in table order."""
    return [keyword for keyword in keywords if keyword_pattern(keyword).search(text)]


def build_person_aliases(
    roster: Iterable[NpcRosterEntry],
) -> dict[str, tuple[str, ...]]:
    """Person lexicon: every NPC's name, id and role, plus known villagers."""
    aliases: dict[str, tuple[str, ...]] = {}
    for npc in roster:
        aliases[npc.id] = tuple(
            dict.fromkeys([npc.name.lower(), npc.id.lower(), npc.role.lower()])
        )
    aliases.update(EXTRA_PERSON_ALIASES)
    return aliases


class Lexicon:
    """Mines semantic tags (place, person, project, ...) from raw text."""

    def __init__(self, roster: Iterable[NpcRosterEntry] | None = None) -> None:
        people = build_person_aliases(roster if roster is not None else get_npc_roster())
        self._groups: list[tuple[str, list[tuple[str, re.Pattern[str]]]]] = [
            (group, self._compile(table))
            for group, table in (
                ("place", PLACE_ALIASES),
                ("person", people),
                ("project", PROJECT_ALIASES),
                ("activity", ACTIVITY_ALIASES),
                ("material", MATERIAL_ALIASES),
                ("tool", TOOL_ALIASES),
                ("plant", PLANT_ALIASES),
                ("product", PRODUCT_ALIASES),
            )
        ]
        self._known_values = {
            normalize_tag_value(alias)
            for table in (
                PLACE_ALIASES, people, PROJECT_ALIASES, ACTIVITY_ALIASES,
                MATERIAL_ALIASES, TOOL_ALIASES, PLANT_ALIASES, PRODUCT_ALIASES,
            )
            for value, aliases in table.items()
            for alias in (value, *aliases)
        }

    @staticmethod
    def _compile(table: dict[str, tuple[str, ...]]) -> list[tuple[str, re.Pattern[str]]]:
        return [
            (value, keyword_pattern(alias))
            for value, aliases in table.items()
            for alias in aliases
        ]

    def mine(self, raw_text: str) -> list[Tag]:
        """Return deduplicated semantic tags mentioned in ``raw_text``."""
        lowered = raw_text.lower()
        tags: list[Tag] = []

        for group, table in self._groups:
            for value, pattern in table:
                if pattern.search(lowered):
                    tags.append(Tag(group, value))

        for match in _GENRE_PATTERN.finditer(lowered):
            word = match.group(1)
            if word not in _GENRE_STOPWORDS:
                tags.append(Tag("genre", normalize_tag_value(word)))

        for match in _ATTRIBUTION_PATTERN.finditer(raw_text):
            tags.append(Tag("person", normalize_tag_value(match.group(1))))

        captured = {tag.value for tag in tags}
        for title in self._titles(raw_text):
            value = normalize_tag_value(title)
            if value and value not in captured and value not in self._known_values:
                tags.append(Tag("title", value))

        return [tag for tag in dict.fromkeys(tags) if tag.value]

    @staticmethod
    def _titles(raw_text: str) -> list[str]:
        titles: list[str] = []
        for pattern in _QUOTED_TITLE_PATTERNS:
            titles.extend(match.group(1) for match in pattern.finditer(raw_text))
        titles.extend(
            match.group(1) for match in _CAPITALIZED_PHRASE_PATTERN.finditer(raw_text)
        )
        return titles
