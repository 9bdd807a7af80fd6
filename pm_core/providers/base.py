"""
Base PM Provider interface

Defines the common interface that all PM providers must implement.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Callable, ClassVar, FrozenSet, List, Optional, TypeVar

from pm_core.errors import PMCoreError, ProviderCallError, UnsupportedCapabilityError
from .models import (
    Task, ThreadEntry, Workspace, Project, Section, CustomFieldSetting,
    TaskProjectContext, CreateTaskInput, UpdateTaskInput, TaskQueryOptions,
    ProviderType,
)

T = TypeVar("T")


class ProviderCapability(str, Enum):
    """Optional operation groups a provider may support"""
    COMMENTS = "comments"
    THREADS = "threads"
    WORKSPACES = "workspaces"
    METADATA = "metadata"  # projects, sections, custom fields


class BasePMProvider(ABC):
    """
    Abstract base class for all PM providers

    All providers (Asana, Notion, Trello, Linear, ClickUp) implement this
    interface. Optional operations are grouped under capability tags;
    callers check ``supports()`` before calling them, and the default
    implementations raise ``UnsupportedCapabilityError``.
    """

    name: ClassVar[ProviderType]
    display_name: ClassVar[str] = ""
    capabilities: ClassVar[FrozenSet[ProviderCapability]] = frozenset()

    def supports(self, capability: ProviderCapability) -> bool:
        """Check if the provider advertises a capability"""
        return capability in self.capabilities

    def require(self, capability: ProviderCapability, operation: Optional[str] = None) -> None:
        """Raise UnsupportedCapabilityError unless the capability is present"""
        if not self.supports(capability):
            raise UnsupportedCapabilityError(self.name.value, capability.value, operation)

    # ==================== Lifecycle ====================

    @abstractmethod
    async def is_authenticated(self) -> bool:
        """Check if the provider has valid credentials stored"""
        pass

    # ==================== Task Reads ====================

    @abstractmethod
    async def get_assigned_tasks(self, options: TaskQueryOptions) -> List[Task]:
        """Get tasks assigned to the current user"""
        pass

    @abstractmethod
    async def get_overdue_tasks(self, options: TaskQueryOptions) -> List[Task]:
        """Get tasks that are past their due date"""
        pass

    @abstractmethod
    async def search_tasks(self, query: str, options: TaskQueryOptions) -> List[Task]:
        """Search tasks by text query"""
        pass

    @abstractmethod
    async def get_task(self, external_id: str) -> Optional[Task]:
        """Get a single task by its external ID"""
        pass

    # ==================== Task Writes ====================

    @abstractmethod
    async def create_task(self, task_input: CreateTaskInput) -> Task:
        """
        Create a new task.

        When the provider supports METADATA, ``project_id``/``section_id``/
        ``workspace_id`` arrive already resolved and custom field values
        arrive in ``custom_field_payload``.
        """
        pass

    @abstractmethod
    async def update_task(self, external_id: str, updates: UpdateTaskInput) -> Task:
        """Update an existing task"""
        pass

    @abstractmethod
    async def complete_task(self, external_id: str) -> Task:
        """Mark a task as complete"""
        pass

    @abstractmethod
    async def delete_task(self, external_id: str) -> None:
        """Delete a task"""
        pass

    # ==================== Optional: Comments / Threads ====================

    async def add_comment(self, external_id: str, body: str) -> None:
        """Add a comment to a task (COMMENTS)"""
        self.require(ProviderCapability.COMMENTS, "comments")

    async def get_task_thread(self, external_id: str) -> List[ThreadEntry]:
        """Get conversation/thread entries of a task (THREADS)"""
        self.require(ProviderCapability.THREADS, "task threads")
        return []

    # ==================== Optional: Workspaces ====================

    async def list_workspaces(self) -> List[Workspace]:
        """Get available workspaces (WORKSPACES)"""
        self.require(ProviderCapability.WORKSPACES, "workspaces")
        return []

    async def get_default_workspace(self) -> Optional[Workspace]:
        """Get the currently selected workspace (WORKSPACES)"""
        self.require(ProviderCapability.WORKSPACES, "workspaces")
        return None

    # ==================== Optional: Metadata ====================

    async def list_projects(self, workspace_id: str, refresh: bool = False) -> List[Project]:
        """List projects in a workspace (METADATA)"""
        self.require(ProviderCapability.METADATA, "project metadata")
        return []

    async def list_sections(self, project_id: str, refresh: bool = False) -> List[Section]:
        """List sections in a project (METADATA)"""
        self.require(ProviderCapability.METADATA, "section metadata")
        return []

    async def list_custom_field_settings(
        self, project_id: str, refresh: bool = False
    ) -> List[CustomFieldSetting]:
        """List custom fields attached to a project (METADATA)"""
        self.require(ProviderCapability.METADATA, "custom field metadata")
        return []

    async def get_task_project_context(self, external_id: str) -> Optional[TaskProjectContext]:
        """
        Get project memberships of an existing task (METADATA).

        Returns None when the task does not exist.
        """
        self.require(ProviderCapability.METADATA, "task project metadata")
        return None


async def run_provider_operation(
    provider: BasePMProvider, operation: str, fn: Callable[[], Awaitable[T]]
) -> T:
    """
    Await a provider call, wrapping foreign errors in ProviderCallError.

    PMCoreError subclasses raised by the provider pass through unchanged.
    """
    try:
        return await fn()
    except PMCoreError:
        raise
    except Exception as e:
        raise ProviderCallError(provider.name.value, operation, e) from e
