# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Task Aggregator

Single entry point for task operations across every registered provider.

Reads fan out concurrently to the targeted providers, go through the task
cache, and are merged into one list (deduplicated by task ID). Writes are
routed by the ``{PROVIDER}-{externalId}`` prefix of the task ID to exactly
one provider and invalidate that provider's cached entries on success.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from pm_core.cache.task_cache import CacheOperation, TaskCache
from pm_core.errors import (
    InvalidTaskIdError, NoProvidersConnectedError, NotAuthenticatedError,
    UnsupportedCapabilityError, format_error,
)
from pm_core.providers.base import BasePMProvider, ProviderCapability, run_provider_operation
from pm_core.providers.models import (
    BatchResult, CreateTaskInput, ProviderInfo, ProviderType, Task,
    TaskQueryOptions, ThreadEntry, UpdateTaskInput, create_task_id, parse_task_id,
)
from pm_core.providers.registry import ProviderRegistry
from pm_core.resolution.custom_fields import to_custom_field_results
from pm_core.resolution.resolver import MetadataResolver
from .task_filters import sort_by_due_date

logger = logging.getLogger(__name__)

ProviderRef = Union[ProviderType, str]


class PMAggregator:
    """
    Unified task operations over all registered providers.

    Used by the CLI commands and by any other front end; holds no provider
    state of its own.
    """

    def __init__(self, registry: ProviderRegistry, cache: TaskCache, resolver: MetadataResolver):
        """
        Initialize the aggregator.

        Args:
            registry: Providers available to this process
            cache: Task list/detail cache
            resolver: Name -> ID resolver used for create/update
        """
        self.registry = registry
        self.cache = cache
        self.resolver = resolver

    # ==================== Provider Selection ====================

    async def _is_connected(self, provider: BasePMProvider) -> bool:
        try:
            return await provider.is_authenticated()
        except Exception as e:
            logger.warning(f"Authentication check failed for {provider.name.value}: {e}")
            return False

    async def _require_connected(self, source: ProviderRef) -> BasePMProvider:
        provider = self.registry.require(source)
        if not await self._is_connected(provider):
            raise NotAuthenticatedError(provider.name.value)
        return provider

    async def _connected_providers(self) -> List[BasePMProvider]:
        providers = self.registry.all()
        connected = await asyncio.gather(*(self._is_connected(p) for p in providers))
        return [p for p, ok in zip(providers, connected) if ok]

    async def _select_targets(
        self, source: Optional[ProviderRef], require_any: bool
    ) -> List[BasePMProvider]:
        if source:
            targets = [await self._require_connected(source)]
        else:
            targets = await self._connected_providers()
            if not targets and require_any:
                raise NoProvidersConnectedError()

        logger.debug(f"Targets: {', '.join(p.name.value for p in targets) or '(none)'}")
        return targets

    async def _route(self, task_id: str) -> Tuple[BasePMProvider, str]:
        """Resolve ``{PROVIDER}-{externalId}`` to a connected provider"""
        parsed = parse_task_id(task_id)
        if parsed is None:
            raise InvalidTaskIdError(task_id)
        provider = await self._require_connected(parsed.source)
        return provider, parsed.external_id

    # ==================== Reads ====================

    async def _read_provider(
        self,
        provider: BasePMProvider,
        operation: CacheOperation,
        fetch: Callable[[TaskQueryOptions], Awaitable[List[Task]]],
        limit: Optional[int],
        refresh: bool,
        extra: Optional[str] = None,
    ) -> List[Task]:
        if not refresh:
            key = TaskCache.list_key(operation, provider.name, extra)
            cached = self.cache.get_task_list(operation, provider.name, extra)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached
            logger.debug(f"Cache miss: {key}")

        options = TaskQueryOptions(limit=limit or None, refresh=refresh)
        tasks = await run_provider_operation(
            provider, f"fetch {operation.value} tasks", lambda: fetch(options)
        )
        self.cache.set_task_list(operation, provider.name, tasks, extra)
        return tasks

    async def _fan_out(
        self,
        targets: Sequence[BasePMProvider],
        explicit: bool,
        read: Callable[[BasePMProvider], Awaitable[List[Task]]],
    ) -> List[Task]:
        async def guarded(provider: BasePMProvider) -> List[Task]:
            try:
                return await read(provider)
            except Exception as e:
                if explicit:
                    raise
                logger.warning(f"Provider {provider.name.value} error: {e}")
                return []

        results = await asyncio.gather(*(guarded(p) for p in targets))

        merged: List[Task] = []
        seen = set()
        for tasks in results:
            for task in tasks:
                if task.id in seen:
                    continue
                seen.add(task.id)
                merged.append(task)
        return merged

    async def aggregate_tasks(
        self,
        operation: Union[CacheOperation, str],
        source: Optional[ProviderRef] = None,
        limit: Optional[int] = None,
        refresh: bool = False,
    ) -> List[Task]:
        """
        Get assigned or overdue tasks from one provider or all connected ones.

        Merged tasks are deduplicated by ID (first occurrence wins, in
        provider order), sorted by due date with undated tasks last, and
        truncated to ``limit``. A limit of 0 or None returns everything.
        """
        operation = CacheOperation(operation)
        if operation == CacheOperation.SEARCH:
            raise ValueError("Use search_tasks() for search")

        targets = await self._select_targets(source, require_any=True)

        def read(provider: BasePMProvider) -> Awaitable[List[Task]]:
            fetch = (
                provider.get_assigned_tasks
                if operation == CacheOperation.ASSIGNED
                else provider.get_overdue_tasks
            )
            return self._read_provider(provider, operation, fetch, limit, refresh)

        tasks = sort_by_due_date(await self._fan_out(targets, bool(source), read))
        if limit:
            tasks = tasks[:limit]
        return tasks

    async def search_tasks(
        self,
        query: str,
        source: Optional[ProviderRef] = None,
        limit: Optional[int] = None,
        refresh: bool = False,
    ) -> List[Task]:
        """Search tasks by text across providers; results keep provider order"""
        targets = await self._select_targets(source, require_any=False)

        def read(provider: BasePMProvider) -> Awaitable[List[Task]]:
            return self._read_provider(
                provider,
                CacheOperation.SEARCH,
                lambda options: provider.search_tasks(query, options),
                limit,
                refresh,
                extra=query,
            )

        tasks = await self._fan_out(targets, bool(source), read)
        if limit:
            tasks = tasks[:limit]
        return tasks

    async def get_task(self, task_id: str, refresh: bool = False) -> Optional[Task]:
        """Get a single task by its internal ID"""
        provider, external_id = await self._route(task_id)
        canonical_id = create_task_id(provider.name, external_id)

        if not refresh:
            cached = self.cache.get_task_detail(canonical_id)
            if cached is not None:
                logger.debug(f"Cache hit: {canonical_id}")
                return cached

        task = await run_provider_operation(
            provider, f"fetch task {external_id}", lambda: provider.get_task(external_id)
        )
        if task is not None:
            self.cache.set_task_detail(task)
        return task

    # ==================== Writes ====================

    def _invalidate(self, provider: BasePMProvider) -> None:
        self.cache.invalidate_provider(provider.name)

    async def create_task(self, source: ProviderRef, task_input: CreateTaskInput) -> Task:
        """
        Create a task in one provider.

        For providers with metadata support, workspace/project/section names
        and custom field assignments are resolved to IDs before the call.
        """
        provider = await self._require_connected(source)
        mutations = []

        if provider.supports(ProviderCapability.METADATA):
            resolved = await self.resolver.resolve_create(provider, task_input)
            task_input = resolved.task_input
            mutations = resolved.mutations
        elif task_input.custom_fields or task_input.difficulty:
            raise UnsupportedCapabilityError(
                provider.name.value, ProviderCapability.METADATA.value, "custom fields"
            )

        task = await run_provider_operation(
            provider, "create task", lambda: provider.create_task(task_input)
        )
        if mutations:
            task = replace(task, custom_field_results=to_custom_field_results(mutations))

        self._invalidate(provider)
        logger.info(f"Created task {task.id} in {provider.name.value}")
        return task

    async def update_task(self, task_id: str, updates: UpdateTaskInput) -> Task:
        """Update a task, resolving custom field assignments first"""
        provider, external_id = await self._route(task_id)
        mutations = []

        if provider.supports(ProviderCapability.METADATA):
            updates, mutations = await self.resolver.resolve_update(provider, external_id, updates)
        elif updates.custom_fields:
            raise UnsupportedCapabilityError(
                provider.name.value, ProviderCapability.METADATA.value, "custom fields"
            )

        task = await run_provider_operation(
            provider, f"update task {external_id}", lambda: provider.update_task(external_id, updates)
        )
        if mutations:
            task = replace(task, custom_field_results=to_custom_field_results(mutations))

        self._invalidate(provider)
        logger.info(f"Updated task {task_id}")
        return task

    async def complete_task(self, task_id: str) -> Task:
        provider, external_id = await self._route(task_id)
        task = await run_provider_operation(
            provider, f"complete task {external_id}", lambda: provider.complete_task(external_id)
        )
        self._invalidate(provider)
        logger.info(f"Completed task {task_id}")
        return task

    async def delete_task(self, task_id: str) -> None:
        provider, external_id = await self._route(task_id)
        await run_provider_operation(
            provider, f"delete task {external_id}", lambda: provider.delete_task(external_id)
        )
        self._invalidate(provider)
        logger.info(f"Deleted task {task_id}")

    async def add_comment(self, task_id: str, body: str) -> None:
        """Add a comment; comments do not touch cached task data"""
        provider, external_id = await self._route(task_id)
        provider.require(ProviderCapability.COMMENTS, "comments")
        await run_provider_operation(
            provider, f"comment on task {external_id}", lambda: provider.add_comment(external_id, body)
        )
        logger.info(f"Added comment to {task_id}")

    async def get_task_thread(self, task_id: str) -> List[ThreadEntry]:
        provider, external_id = await self._route(task_id)
        provider.require(ProviderCapability.THREADS, "task threads")
        return await run_provider_operation(
            provider, f"load thread of task {external_id}", lambda: provider.get_task_thread(external_id)
        )

    # ==================== Batch ====================

    async def _run_batch(
        self, ids: Sequence[str], action: str, fn: Callable[[str], Awaitable[Optional[Task]]]
    ) -> List[BatchResult]:
        results = []
        for task_id in ids:
            try:
                results.append(BatchResult(id=task_id, task=await fn(task_id)))
            except Exception as e:
                logger.warning(f"Failed to {action} {task_id}: {e}")
                results.append(BatchResult(id=task_id, error=format_error(e)))
        return results

    async def complete_tasks(self, ids: Sequence[str]) -> List[BatchResult]:
        """Complete each ID independently; one result per ID, in input order"""
        return await self._run_batch(ids, "complete", self.complete_task)

    async def delete_tasks(self, ids: Sequence[str]) -> List[BatchResult]:
        """Delete each ID independently; one result per ID, in input order"""
        return await self._run_batch(ids, "delete", self.delete_task)

    # ==================== Providers ====================

    async def get_providers_info(self) -> List[ProviderInfo]:
        """Connection status of every registered provider"""
        providers = self.registry.all()
        connected = await asyncio.gather(*(self._is_connected(p) for p in providers))
        return [
            ProviderInfo(
                name=p.name,
                display_name=p.display_name or p.name.value.capitalize(),
                connected=ok,
            )
            for p, ok in zip(providers, connected)
        ]
