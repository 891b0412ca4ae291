"""NPC personality profiles that shape memory ranking and prompts.

Four profiles are built in. Extra or overriding profiles can be loaded
from Markdown files with YAML frontmatter::

    ---
    key: gardener
    title: Patient Grower
    tone: slow, earthy, encouraging
    focus: plants, seasons, and patience
    memory_types: goal, item
    weights:
      recency: 0.2
      salience: 0.4
      type: 0.4
    npc_ids: [jun]
    ---
    Talk about growth as something that takes time.

The body becomes the prompt guidance.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import frontmatter

from .models import FactType

logger = logging.getLogger(__name__)

DEFAULT_PERSONALITY = "neighbor"


@dataclass(frozen=True)
class PersonalityWeights:
    """Ranking weights; the composite score is their weighted sum."""

    recency: float
    salience: float
    type: float


@dataclass(frozen=True)
class NpcPersonalityProfile:
    key: str
    title: str
    tone: str
    focus: str
    memory_types: frozenset[FactType]
    weights: PersonalityWeights
    greeting_style: str
    reply_style: str
    prompt_guidance: str


BUILTIN_PERSONALITIES: dict[str, NpcPersonalityProfile] = {
    "bartender": NpcPersonalityProfile(
        key="bartender",
        title="Emotional Anchor",
        tone="empathetic, warm, lightly humorous",
        focus="feelings, stressors, coping routines, and mood shifts",
        memory_types=frozenset({FactType.EMOTION, FactType.EVENT, FactType.RELATIONSHIP}),
        weights=PersonalityWeights(recency=0.25, salience=0.45, type=0.3),
        greeting_style="smiles with a calm, grounding presence.",
        reply_style="leans in gently, offering reassurance and a soft laugh.",
        prompt_guidance="Reflect emotions, validate struggles, and suggest small comforts.",
    ),
    "shopkeeper": NpcPersonalityProfile(
        key="shopkeeper",
        title="Practical Helper",
        tone="upbeat, efficient, detail-oriented",
        focus="purchases, preferences, routines, schedules, and errands",
        memory_types=frozenset({FactType.ITEM, FactType.PREFERENCE, FactType.SCHEDULE}),
        weights=PersonalityWeights(recency=0.3, salience=0.35, type=0.35),
        greeting_style="greets you with bright eyes and a ready checklist.",
        reply_style="nods quickly, already thinking about practical next steps.",
        prompt_guidance="Keep replies concise, actionable, and preference-aware.",
    ),
    "neighbor": NpcPersonalityProfile(
        key="neighbor",
        title="Social Connector",
        tone="chatty, curious, community-focused",
        focus="relationships, local events, introductions, and social energy",
        memory_types=frozenset({FactType.RELATIONSHIP, FactType.EVENT, FactType.GOAL}),
        weights=PersonalityWeights(recency=0.25, salience=0.3, type=0.45),
        greeting_style="waves eagerly, full of neighborhood warmth.",
        reply_style="shares a friendly, inquisitive reply.",
        prompt_guidance="Ask about people, invitations, and community happenings.",
    ),
    "librarian": NpcPersonalityProfile(
        key="librarian",
        title="Reflective Guide",
        tone="thoughtful, gentle, precise",
        focus="ideas, learning goals, books, and long-term projects",
        memory_types=frozenset({FactType.GOAL, FactType.PREFERENCE, FactType.EVENT}),
        weights=PersonalityWeights(recency=0.2, salience=0.35, type=0.45),
        greeting_style="offers a quiet smile, ready to listen.",
        reply_style="responds with calm curiosity and careful phrasing.",
        prompt_guidance="Invite reflection, curiosity, and follow-up exploration.",
    ),
}

PERSONALITY_BY_NPC_ID: dict[str, str] = {
    "mira": "neighbor",
    "theo": "shopkeeper",
    "jun": "librarian",
    "pia": "bartender",
    "notice-board": "neighbor",
}

PERSONALITY_BY_ROLE: dict[str, str] = {
    "Hall Host": "neighbor",
    "Carpenter": "shopkeeper",
    "Garden Keeper": "librarian",
    "Market Scout": "bartender",
    "Bulletin Board": "neighbor",
}


class PersonalityParseError(Exception):
    """Raised when a personality file cannot be parsed."""

    pass


def _parse_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    elif isinstance(value, list):
        return [str(t).strip() for t in value if str(t).strip()]
    return []


def _parse_weights(value: Any, fallback: PersonalityWeights | None) -> PersonalityWeights:
    if value is None and fallback is not None:
        return fallback
    if not isinstance(value, dict):
        raise PersonalityParseError("Field 'weights' must be a mapping")
    try:
        weights = PersonalityWeights(
            recency=float(value["recency"]),
            salience=float(value["salience"]),
            type=float(value["type"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PersonalityParseError(f"Invalid weights: {e}") from e
    if min(weights.recency, weights.salience, weights.type) < 0:
        raise PersonalityParseError("Weights cannot be negative")
    return weights


def parse_personality_content(
    content: str,
    base: dict[str, NpcPersonalityProfile] | None = None,
) -> tuple[NpcPersonalityProfile, list[str], list[str]]:
    """Parse a personality file.

    Fields missing from a file whose ``key`` names an existing profile are
    taken from that profile.

    Returns:
        Tuple of (profile, npc ids, roles) the profile should apply to.

    Raises:
        PersonalityParseError: If the content is invalid.
    """
    try:
        post = frontmatter.loads(content)
    except Exception as e:
        raise PersonalityParseError(f"Failed to parse frontmatter: {e}") from e

    meta = post.metadata
    key = str(meta.get("key", "")).strip()
    if not key:
        raise PersonalityParseError("Missing required field: key")

    fallback = (base or BUILTIN_PERSONALITIES).get(key)

    def text_field(name: str, attr: str, default: str | None = None) -> str:
        value = meta.get(name)
        if value is None:
            if fallback is None and default is not None:
                return default
            if fallback is None:
                raise PersonalityParseError(f"Missing required field: {name}")
            return getattr(fallback, attr)
        text = str(value).strip()
        if not text:
            raise PersonalityParseError(f"Field '{name}' cannot be empty")
        return text

    if "memory_types" in meta:
        try:
            memory_types = frozenset(FactType(t) for t in _parse_list(meta["memory_types"]))
        except ValueError as e:
            raise PersonalityParseError(f"Invalid memory type: {e}") from e
    elif fallback is not None:
        memory_types = fallback.memory_types
    else:
        raise PersonalityParseError("Missing required field: memory_types")

    body = post.content.strip()
    profile = NpcPersonalityProfile(
        key=key,
        title=text_field("title", "title"),
        tone=text_field("tone", "tone"),
        focus=text_field("focus", "focus"),
        memory_types=memory_types,
        weights=_parse_weights(meta.get("weights"), fallback.weights if fallback else None),
        greeting_style=text_field("greeting_style", "greeting_style", default=""),
        reply_style=text_field("reply_style", "reply_style", default=""),
        prompt_guidance=body or (fallback.prompt_guidance if fallback else ""),
    )
    if not profile.prompt_guidance:
        raise PersonalityParseError("Missing prompt guidance (file body)")

    return profile, _parse_list(meta.get("npc_ids", [])), _parse_list(meta.get("roles", []))


class PersonalityRegistry:
    """Resolves the personality for an NPC by id, then role, then default."""

    def __init__(self, personalities_dir: Path | None = None) -> None:
        self.profiles: dict[str, NpcPersonalityProfile] = dict(BUILTIN_PERSONALITIES)
        self.by_npc_id: dict[str, str] = dict(PERSONALITY_BY_NPC_ID)
        self.by_role: dict[str, str] = dict(PERSONALITY_BY_ROLE)
        if personalities_dir is not None:
            self.load_dir(personalities_dir)

    def load_dir(self, personalities_dir: Path) -> int:
        """Load every ``*.md`` profile in a directory.

        Invalid files are skipped with a warning.

        Returns:
            Number of profiles loaded.
        """
        if not personalities_dir.is_dir():
            logger.debug("No personalities directory at %s", personalities_dir)
            return 0

        loaded = 0
        for path in sorted(personalities_dir.glob("*.md")):
            try:
                content = path.read_text(encoding="utf-8")
                profile, npc_ids, roles = parse_personality_content(content, self.profiles)
            except (OSError, PersonalityParseError) as e:
                logger.warning("Failed to load personality from %s: %s", path, e)
                continue
            self.register(profile, npc_ids=npc_ids, roles=roles)
            loaded += 1
        return loaded

    def register(
        self,
        profile: NpcPersonalityProfile,
        npc_ids: list[str] | None = None,
        roles: list[str] | None = None,
    ) -> None:
        self.profiles[profile.key] = profile
        for npc_id in npc_ids or []:
            self.by_npc_id[npc_id] = profile.key
        for role in roles or []:
            self.by_role[role] = profile.key

    def key_for(self, npc_id: str, npc_role: str) -> str:
        key = self.by_npc_id.get(npc_id) or self.by_role.get(npc_role) or DEFAULT_PERSONALITY
        return key if key in self.profiles else DEFAULT_PERSONALITY

    def get(self, npc_id: str, npc_role: str) -> NpcPersonalityProfile:
        return self.profiles[self.key_for(npc_id, npc_role)]


_default_registry = PersonalityRegistry()


def get_personality_profile(npc_id: str, npc_role: str) -> NpcPersonalityProfile:
    """Built-in profile lookup by id, then role, then the neighbor default."""
    return _default_registry.get(npc_id, npc_role)
