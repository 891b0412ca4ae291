"""Structured event log for the memory pipeline.

Each pipeline event (extraction, rejection, failed write, context build,
profile merge) becomes one JSON object per line in ``events.jsonl``. When
the file grows past its size cap it is shifted to ``events.1.jsonl``,
older files move up one number, and the oldest is dropped.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DEFAULT_LOG_DIR = Path.home() / ".villagemind" / "logs"


@dataclass
class LogEntry:
    """One pipeline event."""

    timestamp: str
    event: str
    npc_id: str | None = None
    day_index: int | None = None
    fact_count: int | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Fields that carry a value; ``None`` and an empty ``extra`` are left out."""
        return {key: value for key, value in asdict(self).items() if value not in (None, {})}


class JSONLLogger:
    """Appends ``LogEntry`` lines to a size-capped, rotating JSONL file."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
        max_backups: int = 5,
    ) -> None:
        """Initialize the event log.

        Args:
            log_dir: Directory for the log files; created if missing.
            filename: Name of the active log file.
            max_size_mb: Size at which the active file is rotated.
            max_backups: Rotated files kept next to the active one.
        """
        self.log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self.max_backups = max(1, max_backups)

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.filename

    def backup_path(self, number: int) -> Path:
        stem = Path(self.filename).stem
        return self.log_dir / f"{stem}.{number}.jsonl"

    def _rotate(self) -> None:
        oldest = self.backup_path(self.max_backups)
        if oldest.exists():
            oldest.unlink()
        for number in range(self.max_backups - 1, 0, -1):
            source = self.backup_path(number)
            if source.exists():
                source.rename(self.backup_path(number + 1))
        self.log_path.rename(self.backup_path(1))

    def _append(self, entry: LogEntry) -> None:
        if self.log_path.exists() and self.log_path.stat().st_size >= self.max_size_bytes:
            self._rotate()
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def log(
        self,
        event: str,
        *,
        npc_id: str | None = None,
        day_index: int | None = None,
        fact_count: int | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Record an event. Extra keyword values that are ``None`` are dropped."""
        self._append(
            LogEntry(
                timestamp=datetime.now(timezone.utc).isoformat(),
                event=event,
                npc_id=npc_id,
                day_index=day_index,
                fact_count=fact_count,
                duration_ms=duration_ms,
                error=error,
                extra={key: value for key, value in extra.items() if value is not None},
            )
        )

    def log_extraction(
        self,
        npc_id: str,
        day_index: int,
        added: int,
        total: int,
        *,
        duration_ms: float | None = None,
    ) -> None:
        """Facts stored by one extract-and-store call."""
        self.log(
            "memory_extracted",
            npc_id=npc_id,
            day_index=day_index,
            fact_count=added,
            duration_ms=duration_ms,
            total_facts=total,
        )

    def log_rejections(self, npc_id: str, rejected: int, reason: str) -> None:
        """Candidates dropped by validation or the salience gate."""
        self.log("fact_rejected", npc_id=npc_id, fact_count=rejected, reason=reason)

    def log_persistence_failure(self, collection: str, error: str) -> None:
        self.log("persistence_failed", error=error, collection=collection)

    def log_context(
        self,
        npc_id: str,
        top_memories: int,
        *,
        active_task: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """A memory context assembled for an NPC."""
        self.log(
            "context_built",
            npc_id=npc_id,
            fact_count=top_memories,
            duration_ms=duration_ms,
            active_task=active_task,
        )

    def log_profile_merge(self, day_index: int, insights: int) -> None:
        self.log("profile_merged", day_index=day_index, fact_count=insights)


_event_log: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """The process-wide event log, created under the default directory on first use."""
    global _event_log
    if _event_log is None:
        _event_log = JSONLLogger()
    return _event_log


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Point the process-wide event log at ``log_dir`` and return it."""
    global _event_log
    _event_log = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _event_log
