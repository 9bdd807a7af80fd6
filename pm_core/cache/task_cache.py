# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Task Cache

File-backed TTL cache for aggregated task lists and task details.

The backing file holds two maps:

    {"tasks":        {"{operation}:{provider}[:{extra}]": entry, ...},
     "task_details": {"{PROVIDER}-{externalId}": entry, ...}}

where each entry is ``{key, data, cached_at, expires_at}`` (epoch seconds).
Expired entries are evicted lazily when read. The cache is an accelerator
only: an unreadable backing file degrades to "always miss" and failed
writes are logged, never raised.
"""
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from pm_core.providers.models import ProviderType, Task

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60  # seconds

_TASK_LIST_ADAPTER = TypeAdapter(List[Task])
_TASK_ADAPTER = TypeAdapter(Task)


class CacheOperation(str, Enum):
    """Cached task-list operations"""
    ASSIGNED = "assigned"
    OVERDUE = "overdue"
    SEARCH = "search"


@dataclass
class CacheStats:
    list_count: int
    detail_count: int
    backing_size: int  # bytes on disk
    path: str


def _provider_value(provider: Union[ProviderType, str]) -> str:
    return provider.value if isinstance(provider, ProviderType) else str(provider).lower()


def _empty_store() -> Dict[str, Dict[str, Any]]:
    return {"tasks": {}, "task_details": {}}


class TaskCache:
    """TTL cache for task lists and task details, persisted to a JSON file"""

    def __init__(
        self,
        path: Union[str, Path],
        ttl_seconds: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path).expanduser()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store = self._load()

    # ==================== Persistence ====================

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return _empty_store()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Task cache at {self.path} is unreadable, starting empty: {e}")
            return _empty_store()

        if (
            not isinstance(raw, dict)
            or not isinstance(raw.get("tasks"), dict)
            or not isinstance(raw.get("task_details"), dict)
        ):
            logger.warning(f"Task cache at {self.path} has an unexpected layout, starting empty")
            return _empty_store()

        return {"tasks": raw["tasks"], "task_details": raw["task_details"]}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".cache-", suffix=".json", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(self._store, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.warning(f"Failed to persist task cache to {self.path}: {e}")

    # ==================== Entries ====================

    @staticmethod
    def list_key(
        operation: Union[CacheOperation, str],
        provider: Union[ProviderType, str],
        extra: Optional[str] = None,
    ) -> str:
        """Cache key for task lists: operation:provider[:extra]"""
        parts = [CacheOperation(operation).value, _provider_value(provider)]
        if extra:
            parts.append(extra)
        return ":".join(parts)

    def _new_entry(self, key: str, data: Any, ttl: Optional[int]) -> Dict[str, Any]:
        now = self._clock()
        return {
            "key": key,
            "data": data,
            "cached_at": now,
            "expires_at": now + (self.ttl_seconds if ttl is None else ttl),
        }

    def _read_entry(self, bucket: str, key: str) -> Optional[Dict[str, Any]]:
        entry = self._store[bucket].get(key)
        if entry is None:
            return None

        expires_at = entry.get("expires_at") if isinstance(entry, dict) else None
        if not isinstance(expires_at, (int, float)) or self._clock() > expires_at:
            del self._store[bucket][key]
            self._write()
            logger.debug(f"Cache expired: {key}")
            return None

        return entry

    # ==================== Task Lists ====================

    def get_task_list(
        self,
        operation: Union[CacheOperation, str],
        provider: Union[ProviderType, str],
        extra: Optional[str] = None,
    ) -> Optional[List[Task]]:
        """Get cached tasks, or None on miss/expiry"""
        key = self.list_key(operation, provider, extra)
        entry = self._read_entry("tasks", key)
        if entry is None:
            return None

        try:
            return _TASK_LIST_ADAPTER.validate_python(entry["data"])
        except (KeyError, ValidationError) as e:
            logger.warning(f"Discarding malformed cache entry {key}: {e}")
            del self._store["tasks"][key]
            self._write()
            return None

    def set_task_list(
        self,
        operation: Union[CacheOperation, str],
        provider: Union[ProviderType, str],
        tasks: List[Task],
        extra: Optional[str] = None,
        ttl: Optional[int] = None,
    ) -> None:
        """Cache a task list"""
        key = self.list_key(operation, provider, extra)
        data = _TASK_LIST_ADAPTER.dump_python(tasks, mode="json")
        self._store["tasks"][key] = self._new_entry(key, data, ttl)
        self._write()

    # ==================== Task Details ====================

    def get_task_detail(self, task_id: str) -> Optional[Task]:
        """Get cached task details, or None on miss/expiry"""
        entry = self._read_entry("task_details", task_id)
        if entry is None:
            return None

        try:
            return _TASK_ADAPTER.validate_python(entry["data"])
        except (KeyError, ValidationError) as e:
            logger.warning(f"Discarding malformed cache entry {task_id}: {e}")
            del self._store["task_details"][task_id]
            self._write()
            return None

    def set_task_detail(self, task: Task, ttl: Optional[int] = None) -> None:
        """Cache task details under the task's canonical ID"""
        data = _TASK_ADAPTER.dump_python(task, mode="json")
        self._store["task_details"][task.id] = self._new_entry(task.id, data, ttl)
        self._write()

    # ==================== Invalidation ====================

    def invalidate_provider(self, provider: Union[ProviderType, str]) -> None:
        """Remove every list and detail entry belonging to a provider"""
        name = _provider_value(provider)
        prefix = f"{name.upper()}-"

        for key in list(self._store["tasks"]):
            parts = key.split(":", 2)
            if len(parts) >= 2 and parts[1] == name:
                del self._store["tasks"][key]

        for key in list(self._store["task_details"]):
            if key.upper().startswith(prefix):
                del self._store["task_details"][key]

        self._write()
        logger.debug(f"Cache invalidated for provider {name}")

    def clear_all(self) -> None:
        """Clear all cache"""
        self._store = _empty_store()
        self._write()

    def stats(self) -> CacheStats:
        """Get cache stats"""
        try:
            size = self.path.stat().st_size
        except OSError:
            size = 0
        return CacheStats(
            list_count=len(self._store["tasks"]),
            detail_count=len(self._store["task_details"]),
            backing_size=size,
            path=str(self.path),
        )
