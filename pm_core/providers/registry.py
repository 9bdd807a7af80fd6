# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Provider Registry

Holds the provider instances for one process. The registry is populated
once at startup and is read-only afterwards.
"""
import logging
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Union

from pm_core.errors import UnknownProviderError
from .base import BasePMProvider
from .models import ProviderType

logger = logging.getLogger(__name__)


def _normalize(provider: Union[ProviderType, str]) -> Optional[ProviderType]:
    if isinstance(provider, ProviderType):
        return provider
    try:
        return ProviderType(str(provider).lower().strip())
    except ValueError:
        return None


class ProviderRegistry:
    """Immutable map from provider tag to provider instance"""

    def __init__(self, providers: Iterable[BasePMProvider]):
        registered: Dict[ProviderType, BasePMProvider] = {}
        for provider in providers:
            if provider.name in registered:
                raise ValueError(f"Provider registered twice: {provider.name.value}")
            registered[provider.name] = provider
        self._providers = MappingProxyType(registered)
        logger.debug(
            f"Provider registry initialized: {', '.join(p.value for p in registered) or '(empty)'}"
        )

    def get(self, provider: Union[ProviderType, str]) -> Optional[BasePMProvider]:
        """Get a provider by tag (case-insensitive for strings)"""
        key = _normalize(provider)
        if key is None:
            return None
        return self._providers.get(key)

    def require(self, provider: Union[ProviderType, str]) -> BasePMProvider:
        """Get a provider or raise UnknownProviderError"""
        instance = self.get(provider)
        if instance is None:
            name = provider.value if isinstance(provider, ProviderType) else str(provider)
            raise UnknownProviderError(name)
        return instance

    def all(self) -> List[BasePMProvider]:
        """All providers in registration order"""
        return list(self._providers.values())

    def names(self) -> List[ProviderType]:
        return list(self._providers.keys())

    def __contains__(self, provider: object) -> bool:
        if not isinstance(provider, (ProviderType, str)):
            return False
        return self.get(provider) is not None

    def __iter__(self) -> Iterator[BasePMProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
