"""Text normalization helpers shared by the memory pipeline."""

import re
from datetime import datetime, timezone

_NON_SLUG = re.compile(r"[^a-z0-9\s-]")
_SLUG_SEPARATORS = re.compile(r"[\s-]+")
_NON_TEXT = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_TRAILING_PUNCTUATION = re.compile(r"[.!?,;:]+$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_tag_value(value: str) -> str:
    """Normalize a tag or anchor value to a hyphenated slug.

    Lowercases, drops anything that is not alphanumeric, turns runs of
    spaces/hyphens into a single hyphen. Idempotent.

    Examples:
        >>> normalize_tag_value("Community Hall")
        'community-hall'
        >>> normalize_tag_value("50-song  playlist!")
        '50-song-playlist'
    """
    cleaned = _NON_SLUG.sub("", value.lower())
    return _SLUG_SEPARATORS.sub("-", cleaned).strip("-")


def slugify(text: str, max_tokens: int | None = None) -> str:
    """Normalize ``text`` and keep at most ``max_tokens`` hyphen tokens."""
    slug = normalize_tag_value(text)
    if max_tokens is None or not slug:
        return slug
    return "-".join(slug.split("-")[:max_tokens])


def normalize_text(text: str) -> str:
    """Normalize content for semantic comparison (merge keys)."""
    cleaned = _NON_TEXT.sub("", text.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def trim_sentence(text: str) -> str:
    """Strip trailing sentence punctuation."""
    return _TRAILING_PUNCTUATION.sub("", text.strip()).strip()


def humanize(value: str) -> str:
    """Turn a slug or thread key back into readable words."""
    return " ".join(value.replace(":", " ").replace("-", " ").split())


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp; unparseable values sort as the epoch."""
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_value(value: str | None) -> float:
    """Seconds since the epoch, for sorting."""
    return parse_timestamp(value).timestamp()
