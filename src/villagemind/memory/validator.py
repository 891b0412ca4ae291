"""Schema checks and the salience gate for candidate facts."""

import logging
from collections.abc import Iterable
from typing import Any

from .models import Anchor, FactType, Link, MemoryFact, Tag, TaskStatus

logger = logging.getLogger(__name__)

MIN_SALIENCE = 0.4


class FactValidationError(ValueError):
    """Raised internally when a candidate fact violates the schema."""


def _check_fact(fact: MemoryFact) -> None:
    for name in ("id", "npc_id", "content", "created_at", "last_mentioned_at"):
        value = getattr(fact, name)
        if not isinstance(value, str) or not value.strip():
            raise FactValidationError(f"'{name}' must be a non-empty string")

    if not isinstance(fact.type, FactType):
        raise FactValidationError(f"unknown fact type: {fact.type!r}")

    if isinstance(fact.salience, bool) or not isinstance(fact.salience, (int, float)):
        raise FactValidationError("'salience' must be a number")
    if not 0.0 <= fact.salience <= 1.0:
        raise FactValidationError(f"'salience' out of range: {fact.salience}")

    if isinstance(fact.mentions, bool) or not isinstance(fact.mentions, int) or fact.mentions < 1:
        raise FactValidationError(f"'mentions' must be a positive integer: {fact.mentions!r}")

    if not all(isinstance(tag, Tag) for tag in fact.tags):
        raise FactValidationError("'tags' must contain Tag values")

    if fact.status is not None and not isinstance(fact.status, TaskStatus):
        raise FactValidationError(f"unknown status: {fact.status!r}")

    if fact.thread_id is not None and not isinstance(fact.thread_id, str):
        raise FactValidationError("'thread_id' must be a string")

    if fact.thread_sequence is not None and (
        isinstance(fact.thread_sequence, bool)
        or not isinstance(fact.thread_sequence, int)
        or fact.thread_sequence < 1
    ):
        raise FactValidationError("'thread_sequence' must be >= 1")

    if not all(isinstance(anchor, Anchor) for anchor in fact.anchors):
        raise FactValidationError("'anchors' must contain Anchor values")

    if not all(isinstance(link, Link) for link in fact.links):
        raise FactValidationError("'links' must contain Link values")


def validate_facts(candidates: Iterable[MemoryFact | dict[str, Any]]) -> list[MemoryFact]:
    """Return the candidates that pass the schema, dropping the rest.

    Candidates may be ``MemoryFact`` instances or stored dicts. Invalid ones
    are logged and skipped; this never raises.
    """
    valid: list[MemoryFact] = []
    for candidate in candidates:
        try:
            fact = (
                MemoryFact.from_dict(candidate)
                if isinstance(candidate, dict)
                else candidate
            )
            if not isinstance(fact, MemoryFact):
                raise FactValidationError(f"not a fact: {type(candidate).__name__}")
            _check_fact(fact)
        except (FactValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("Dropping invalid memory fact: %s", e)
            continue
        valid.append(fact)
    return valid


def filter_by_salience(
    facts: Iterable[MemoryFact],
    min_salience: float = MIN_SALIENCE,
) -> list[MemoryFact]:
    """Quality gate: keep facts with salience at or above the threshold."""
    return [fact for fact in facts if fact.salience >= min_salience]
