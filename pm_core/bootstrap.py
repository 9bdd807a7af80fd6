"""
Composition root: builds the aggregator and its collaborators once per process.
"""
import logging
from typing import Iterable, Optional

from pm_core.cache import MetadataCache, TaskCache
from pm_core.config import Settings, get_settings
from pm_core.handlers.aggregator import PMAggregator
from pm_core.providers.base import BasePMProvider
from pm_core.providers.registry import ProviderRegistry
from pm_core.resolution.resolver import MetadataResolver
from pm_core.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def create_aggregator(
    providers: Iterable[BasePMProvider],
    settings: Optional[Settings] = None,
) -> PMAggregator:
    """
    Create a PMAggregator wired to the given providers.

    Also configures the ``pm_core`` logger from ``log_level``/``log_file``.

    Args:
        providers: Provider instances to register (one per provider type)
        settings: Settings to use; defaults to get_settings()

    Returns:
        PMAggregator instance
    """
    settings = settings or get_settings()
    setup_logging(settings)

    registry = ProviderRegistry(providers)
    cache = TaskCache(settings.cache_path, ttl_seconds=settings.cache_ttl)
    resolver = MetadataResolver(MetadataCache(ttl_seconds=settings.metadata_cache_ttl))

    logger.info(f"PM core ready: {len(registry)} provider(s), cache at {cache.path}")
    return PMAggregator(registry, cache, resolver)
