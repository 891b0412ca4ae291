"""NPC memory: extraction, merging, linking and retrieval."""

from .extractor import FactExtractor, LlmFactExtractor
from .models import (
    Anchor,
    FactType,
    InsightCategory,
    Link,
    MemoryExtractionResult,
    MemoryFact,
    PlayerInsight,
    PlayerInsightSeed,
    PlayerProfile,
    Tag,
    TaskStatus,
)
from .pipeline import MemoryPipeline
from .profile import PlayerProfileStore, merge_player_profile
from .retrieval import MemoryRetriever, NpcMemoryContext
from .store import MemoryStore

__all__ = [
    "Anchor",
    "FactExtractor",
    "FactType",
    "InsightCategory",
    "Link",
    "LlmFactExtractor",
    "MemoryExtractionResult",
    "MemoryFact",
    "MemoryPipeline",
    "MemoryRetriever",
    "MemoryStore",
    "NpcMemoryContext",
    "PlayerInsight",
    "PlayerInsightSeed",
    "PlayerProfile",
    "PlayerProfileStore",
    "Tag",
    "TaskStatus",
    "merge_player_profile",
]
