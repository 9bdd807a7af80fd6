"""
Metadata Cache

Short-lived in-memory cache for provider metadata listings (projects per
workspace, sections and custom field settings per project). Kept apart
from the task cache and never persisted.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar, Union

from pm_core.providers.models import ProviderType

logger = logging.getLogger(__name__)

T = TypeVar("T")

MetadataKey = Tuple[str, str, str]  # (provider, kind, scope id)


class MetadataCache:
    """TTL cache keyed by (provider, kind, scope_id)"""

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.time):
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: Dict[MetadataKey, Any] = {}
        self._expires: Dict[MetadataKey, float] = {}

    @staticmethod
    def _key(provider: Union[ProviderType, str], kind: str, scope_id: str) -> MetadataKey:
        name = provider.value if isinstance(provider, ProviderType) else str(provider)
        return (name, kind, scope_id)

    def _is_cache_valid(self, key: MetadataKey) -> bool:
        expires_at = self._expires.get(key)
        return expires_at is not None and self._clock() <= expires_at

    def get(self, provider: Union[ProviderType, str], kind: str, scope_id: str) -> Optional[Any]:
        """Get a cache entry if valid"""
        key = self._key(provider, kind, scope_id)
        if self._is_cache_valid(key):
            return self._cache[key]
        self._cache.pop(key, None)
        self._expires.pop(key, None)
        return None

    def set(self, provider: Union[ProviderType, str], kind: str, scope_id: str, value: Any) -> None:
        """Set a cache entry"""
        key = self._key(provider, kind, scope_id)
        self._cache[key] = value
        self._expires[key] = self._clock() + self._ttl

    async def get_or_load(
        self,
        provider: Union[ProviderType, str],
        kind: str,
        scope_id: str,
        loader: Callable[[], Awaitable[T]],
        refresh: bool = False,
    ) -> T:
        """Return the cached listing, or call ``loader`` and cache its result"""
        if not refresh:
            cached = self.get(provider, kind, scope_id)
            if cached is not None:
                return cached

        value = await loader()
        self.set(provider, kind, scope_id, value)
        logger.debug(f"Loaded {kind} metadata for {scope_id} (refresh={refresh})")
        return value

    def invalidate(self, provider: Optional[Union[ProviderType, str]] = None) -> None:
        """Clear all cached metadata, or only one provider's"""
        if provider is None:
            self._cache.clear()
            self._expires.clear()
            return

        name = provider.value if isinstance(provider, ProviderType) else str(provider)
        for key in [k for k in self._cache if k[0] == name]:
            self._cache.pop(key, None)
            self._expires.pop(key, None)

    def __len__(self) -> int:
        return len(self._cache)
