"""Tests for memory data models and text helpers."""

import pytest

from villagemind.memory.models import (
    Anchor,
    FactType,
    InsightCategory,
    Link,
    MemoryFact,
    PlayerInsight,
    Tag,
    TaskStatus,
)
from villagemind.memory.text import (
    humanize,
    normalize_tag_value,
    normalize_text,
    parse_timestamp,
    slugify,
    timestamp_value,
)


class TestTag:
    """Tests for Tag parsing and formatting."""

    def test_str_joins_group_and_value(self):
        """Tags serialize as group:value."""
        assert str(Tag("place", "community-hall")) == "place:community-hall"

    def test_parse_round_trip(self):
        """A parsed tag formats back to the same string."""
        assert str(Tag.parse("project:bridge")) == "project:bridge"

    def test_parse_keeps_colons_in_value(self):
        """Only the first colon separates group from value."""
        tag = Tag.parse("title:act:two")
        assert tag == Tag("title", "act:two")

    @pytest.mark.parametrize("raw", ["", "place", ":value", "place:"])
    def test_parse_rejects_malformed(self, raw):
        """Malformed strings parse to None."""
        assert Tag.parse(raw) is None


class TestMemoryFact:
    """Tests for MemoryFact helpers and serialization."""

    def test_has_tag(self, make_fact):
        """has_tag matches by group and optionally value."""
        fact = make_fact(tags=["day:1", "project:bridge"])
        assert fact.has_tag("project")
        assert fact.has_tag("project", "bridge")
        assert not fact.has_tag("project", "bench")
        assert not fact.has_tag("place")

    def test_is_open_task(self, make_fact):
        """Only task facts that are not done count as open."""
        assert make_fact(type=FactType.TASK, status=TaskStatus.OPEN).is_open_task
        assert not make_fact(type=FactType.TASK, status=TaskStatus.DONE).is_open_task
        assert not make_fact(type=FactType.GOAL).is_open_task

    def test_to_dict_uses_camel_case(self, make_fact):
        """Stored records use the camelCase field names."""
        data = make_fact(thread_id="theo:project:bridge", thread_sequence=2).to_dict()
        assert data["npcId"] == "theo"
        assert data["lastMentionedAt"] == data["createdAt"]
        assert data["threadId"] == "theo:project:bridge"
        assert data["threadSequence"] == 2

    def test_to_dict_omits_unset_optionals(self, make_fact):
        """Status, thread, anchors and links are left out when unset."""
        data = make_fact().to_dict()
        for key in ("status", "threadId", "threadSequence", "anchors", "links"):
            assert key not in data

    def test_from_dict_restores_fact(self, make_fact):
        """A fact survives a to_dict/from_dict pass unchanged."""
        fact = make_fact(
            type=FactType.TASK,
            status=TaskStatus.OPEN,
            tags=["day:1", "task:fix-the-bridge"],
            anchors=["project:bridge"],
            links=[("fact-2", "context")],
            thread_id="theo:task:fix-the-bridge",
            thread_sequence=1,
        )
        assert MemoryFact.from_dict(fact.to_dict()) == fact

    def test_from_dict_defaults_mentions(self, make_fact):
        """Records without a mention count are one observation."""
        data = make_fact().to_dict()
        del data["mentions"]
        assert MemoryFact.from_dict(data).mentions == 1

    def test_from_dict_rejects_unknown_type(self, make_fact):
        """Unknown fact types raise ValueError."""
        data = make_fact().to_dict()
        data["type"] = "rumor"
        with pytest.raises(ValueError):
            MemoryFact.from_dict(data)

    def test_from_dict_requires_fields(self):
        """Missing required fields raise KeyError."""
        with pytest.raises(KeyError):
            MemoryFact.from_dict({"id": "x"})

    def test_anchor_and_link_keys(self):
        """Anchor and link keys are what deduplication uses."""
        assert Anchor("project", "bridge").key == "project:bridge"
        assert Link("fact-2", "context").key == ("fact-2", "context")


class TestPlayerInsight:
    """Tests for PlayerInsight serialization."""

    def test_round_trip(self):
        insight = PlayerInsight(
            id="preference:likes-tea",
            text="Likes tea",
            category=InsightCategory.PREFERENCE,
            strength=0.55,
            mentions=1,
            first_seen_at="2026-02-02T09:00:00+00:00",
            last_mentioned_at="2026-02-02T09:00:00+00:00",
        )
        assert PlayerInsight.from_dict(insight.to_dict()) == insight


class TestTextHelpers:
    """Tests for normalization helpers."""

    def test_normalize_tag_value(self):
        assert normalize_tag_value("Community Hall") == "community-hall"
        assert normalize_tag_value("50-song  playlist!") == "50-song-playlist"

    @pytest.mark.parametrize(
        "value",
        ["Community Hall", "  --Mixed__Case  text--", "already-normal", "Café & Tea!", ""],
    )
    def test_normalize_is_idempotent(self, value):
        """Normalizing twice gives the same result as normalizing once."""
        once = normalize_tag_value(value)
        assert normalize_tag_value(once) == once

    def test_slugify_limits_tokens(self):
        assert slugify("build a bridge at the community hall", 5) == "build-a-bridge-at-the"

    def test_normalize_text_ignores_punctuation_and_case(self):
        assert normalize_text("Player loves  TEA!") == normalize_text("player loves tea")

    def test_humanize(self):
        assert humanize("project:herb-patch") == "project herb patch"

    def test_parse_timestamp_accepts_z_suffix(self):
        assert timestamp_value("2026-02-02T10:00:00.000Z") > timestamp_value(
            "2026-02-02T09:00:00.000Z"
        )

    def test_unparseable_timestamp_sorts_as_epoch(self):
        assert parse_timestamp("not a date").year == 1970
        assert timestamp_value(None) == 0.0
