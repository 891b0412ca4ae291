"""Village configuration loader.

Loads settings from ~/.villagemind/config.json, then applies
``VILLAGEMIND_*`` environment overrides.
"""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".villagemind"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.json"

# Memory settings that can be set from config.json or the environment
MEMORY_LIMITS: dict[str, str] = {
    "memory_limit": "VILLAGEMIND_MEMORY_LIMIT",
    "linked_limit": "VILLAGEMIND_LINKED_LIMIT",
    "recent_limit": "VILLAGEMIND_RECENT_LIMIT",
    "insight_limit": "VILLAGEMIND_INSIGHT_LIMIT",
    "max_facts_per_entry": "VILLAGEMIND_MAX_FACTS",
}


@dataclass
class VillageConfig:
    """Configuration for the memory system.

    Attributes:
        data_dir: Root directory for the database, logs and personalities.
        db_path: SQLite database file (data_dir/villagemind.db if None).
        log_dir: JSONL event log directory (data_dir/logs if None).
        personalities_dir: Extra personality files (data_dir/personalities if None).
        memory_limit: Top memories included in an NPC prompt.
        linked_limit: Linked memories included in an NPC prompt.
        recent_limit: Recent conversation lines included in an NPC prompt.
        insight_limit: Player insights included in an NPC prompt.
        max_facts_per_entry: Maximum facts extracted from one utterance.
        min_salience: Facts below this salience are discarded.
    """

    data_dir: Path = DEFAULT_DATA_DIR
    db_path: Path | None = None
    log_dir: Path | None = None
    personalities_dir: Path | None = None
    memory_limit: int = 4
    linked_limit: int = 3
    recent_limit: int = 4
    insight_limit: int = 3
    max_facts_per_entry: int = 4
    min_salience: float = 0.4

    def __post_init__(self) -> None:
        """Validate config and derive paths."""
        self.data_dir = Path(self.data_dir).expanduser()
        if self.db_path is None:
            self.db_path = self.data_dir / "villagemind.db"
        if self.log_dir is None:
            self.log_dir = self.data_dir / "logs"
        if self.personalities_dir is None:
            self.personalities_dir = self.data_dir / "personalities"

        for name in MEMORY_LIMITS:
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if not 0 <= self.min_salience <= 1:
            raise ValueError("min_salience must be between 0 and 1")


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> VillageConfig:
    """Load VillageConfig from a JSON file and the environment.

    The config file should have this structure:
    ```json
    {
      "paths": {"data_dir": "~/.villagemind"},
      "memory": {"memory_limit": 4, "min_salience": 0.4}
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.
        environ: Environment mapping. Uses os.environ if None.

    Returns:
        VillageConfig instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    data: dict[str, Any] = {}

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
    else:
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        except OSError as e:
            logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        if not isinstance(data, dict):
            data = {}

    values = _parse_config(data)
    values.update(_read_env(os.environ if environ is None else environ))

    try:
        return VillageConfig(**values)
    except ValueError as e:
        logger.warning("Invalid configuration: %s. Using defaults.", e)
        return VillageConfig()


def _parse_config(data: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}

    paths = data.get("paths", {})
    if isinstance(paths, dict):
        for name in ("data_dir", "db_path", "log_dir", "personalities_dir"):
            raw = paths.get(name)
            if isinstance(raw, str) and raw:
                values[name] = Path(raw).expanduser()

    memory = data.get("memory", {})
    if isinstance(memory, dict):
        for name in MEMORY_LIMITS:
            raw = memory.get(name)
            if isinstance(raw, int) and not isinstance(raw, bool):
                values[name] = raw
        min_salience = memory.get("min_salience")
        if isinstance(min_salience, (int, float)) and not isinstance(min_salience, bool):
            values["min_salience"] = float(min_salience)

    return values


def _read_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}

    data_dir = environ.get("VILLAGEMIND_DATA_DIR")
    if data_dir:
        values["data_dir"] = Path(data_dir).expanduser()
    db_path = environ.get("VILLAGEMIND_DB_PATH")
    if db_path:
        values["db_path"] = Path(db_path).expanduser()

    for name, var in MEMORY_LIMITS.items():
        raw = environ.get(var)
        if not raw:
            continue
        try:
            values[name] = int(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not an integer", var, raw)

    raw_salience = environ.get("VILLAGEMIND_MIN_SALIENCE")
    if raw_salience:
        try:
            values["min_salience"] = float(raw_salience)
        except ValueError:
            logger.warning("Ignoring VILLAGEMIND_MIN_SALIENCE=%r: not a number", raw_salience)

    return values
