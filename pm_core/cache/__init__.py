from .task_cache import TaskCache, CacheOperation, CacheStats, DEFAULT_TTL
from .metadata_cache import MetadataCache

__all__ = ["TaskCache", "CacheOperation", "CacheStats", "DEFAULT_TTL", "MetadataCache"]
