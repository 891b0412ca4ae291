"""Tests for merging facts and resolving task completions."""

import pytest

from villagemind.memory.merger import combine_facts, merge_facts, merged_salience, semantic_key
from villagemind.memory.models import FactType, Link, TaskStatus
from villagemind.memory.tasks import apply_completions, is_completion_signal

EARLY = "2026-02-02T09:00:00+00:00"
LATE = "2026-02-03T09:00:00+00:00"


class TestSemanticKey:
    """Tests for the deduplication key."""

    def test_ignores_case_and_punctuation(self, make_fact):
        a = make_fact(id="a", content="Player loves tea!")
        b = make_fact(id="b", content="player loves  TEA.")
        assert semantic_key(a) == semantic_key(b)

    def test_type_and_npc_are_part_of_key(self, make_fact):
        base = make_fact()
        assert semantic_key(base) != semantic_key(make_fact(npc_id="mira"))
        assert semantic_key(base) != semantic_key(make_fact(type=FactType.GOAL))


class TestMergedSalience:
    """Tests for salience reinforcement."""

    @pytest.mark.parametrize("existing", [0.0, 0.4, 0.8, 0.99, 1.0])
    @pytest.mark.parametrize("incoming", [0.0, 0.5, 1.0])
    def test_never_decreases(self, existing, incoming):
        assert merged_salience(existing, incoming, 2) >= existing

    def test_stays_in_range(self):
        assert merged_salience(1.0, 1.0, 50) <= 1.0

    def test_repeat_strictly_increases(self):
        assert merged_salience(0.48, 0.48, 2) == pytest.approx(0.5834, abs=1e-3)


class TestMergeFacts:
    """Tests for merge_facts and combine_facts."""

    def test_new_fact_is_inserted(self, make_fact):
        existing = make_fact(id="a", content="Player went to the creek.")
        incoming = make_fact(id="b", content="Player went to the coast.", created_at=LATE)
        merged = merge_facts([existing], [incoming])
        assert [fact.id for fact in merged] == ["b", "a"]

    def test_reobservation_merges_into_existing_id(self, make_fact):
        existing = make_fact(id="a", salience=0.48, tags=["day:1", "plant:basil"])
        incoming = make_fact(
            id="b",
            salience=0.48,
            created_at=LATE,
            tags=["day:2", "plant:basil"],
            anchors=["place:grove"],
        )
        merged = merge_facts([existing], [incoming])
        assert len(merged) == 1
        fact = merged[0]
        assert fact.id == "a"
        assert fact.mentions == 2
        assert fact.salience > 0.48
        assert fact.created_at == EARLY
        assert fact.last_mentioned_at == LATE
        assert fact.tag_strings() == ["day:1", "plant:basil", "day:2"]
        assert [a.key for a in fact.anchors] == ["place:grove"]

    def test_done_status_is_sticky(self, make_fact):
        done = make_fact(type=FactType.TASK, status=TaskStatus.DONE)
        reopened = make_fact(id="b", type=FactType.TASK, status=TaskStatus.OPEN, created_at=LATE)
        assert combine_facts(done, reopened).status is TaskStatus.DONE

    def test_keeps_highest_thread_sequence(self, make_fact):
        existing = make_fact(thread_id="theo:project:bridge", thread_sequence=1)
        incoming = make_fact(id="b", thread_id="theo:project:bridge", thread_sequence=3)
        assert combine_facts(existing, incoming).thread_sequence == 3

    def test_links_to_absorbed_fact_are_redirected(self, make_fact):
        stored = make_fact(id="stored", content="Player loves tea.")
        again = make_fact(id="again", content="Player loves tea.", created_at=LATE)
        sibling = make_fact(
            id="sib",
            type=FactType.EMOTION,
            content="Player feels calm.",
            created_at=LATE,
            links=[("again", "context")],
        )
        merged = {fact.id: fact for fact in merge_facts([stored], [again, sibling])}
        assert set(merged) == {"stored", "sib"}
        assert merged["sib"].links == (Link("stored", "context"),)

    def test_self_links_are_dropped(self, make_fact):
        stored = make_fact(id="stored", content="Player loves tea.")
        again = make_fact(
            id="again",
            content="Player loves tea.",
            created_at=LATE,
            links=[("again", "context")],
        )
        merged = merge_facts([stored], [again])
        assert merged[0].links == ()

    def test_order_by_recency_then_id(self, make_fact):
        facts = [
            make_fact(id="b", content="one"),
            make_fact(id="a", content="two"),
            make_fact(id="c", content="three", last_mentioned_at=LATE),
        ]
        assert [fact.id for fact in merge_facts(facts, [])] == ["c", "a", "b"]


class TestTaskCompletion:
    """Tests for apply_completions."""

    def test_completion_signal_detection(self, make_fact):
        assert is_completion_signal(make_fact(content="Player finished the bridge."))
        assert not is_completion_signal(make_fact(content="Player went to the bridge."))
        assert not is_completion_signal(
            make_fact(type=FactType.GOAL, content="Player wants to be done.")
        )

    def test_shared_anchor_closes_task(self, make_fact):
        task = make_fact(
            id="task",
            type=FactType.TASK,
            status=TaskStatus.OPEN,
            content="Player needs to repair the bridge.",
            anchors=["topic:repair-the-bridge", "project:bridge"],
        )
        event = make_fact(
            id="event",
            content="Player finished the bridge.",
            anchors=["event:the-bridge", "project:bridge"],
        )
        resolved = {fact.id: fact for fact in apply_completions([task, event], [event])}
        assert resolved["task"].status is TaskStatus.DONE

    def test_unrelated_completion_keeps_task_open(self, make_fact):
        task = make_fact(
            id="task",
            type=FactType.TASK,
            status=TaskStatus.OPEN,
            anchors=["project:bridge"],
        )
        event = make_fact(id="event", content="Player finished the quilt.", anchors=["project:quilt"])
        resolved = apply_completions([task], [event])
        assert resolved[0].status is TaskStatus.OPEN

    def test_other_npc_completion_does_not_count(self, make_fact):
        task = make_fact(
            id="task",
            type=FactType.TASK,
            status=TaskStatus.OPEN,
            anchors=["project:bridge"],
        )
        event = make_fact(
            id="event",
            npc_id="mira",
            content="Player finished the bridge.",
            anchors=["project:bridge"],
        )
        assert apply_completions([task], [event])[0].status is TaskStatus.OPEN

    def test_done_task_stays_done(self, make_fact):
        task = make_fact(type=FactType.TASK, status=TaskStatus.DONE, anchors=["project:bridge"])
        assert apply_completions([task], [])[0].status is TaskStatus.DONE
