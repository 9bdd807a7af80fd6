"""
PM Providers Module

Unified interface for connecting to different Project Management systems.
"""
from .base import BasePMProvider, ProviderCapability
from .models import (
    Task, TaskStatus, TaskPriority, ProviderType, CustomFieldType,
    PlacementRef, TaskPlacement, TaskCustomFieldResult, ThreadEntry,
    Workspace, Project, Section, EnumOption, CustomField, CustomFieldSetting,
    TaskProjectContext, CustomFieldInput, CreateTaskInput, UpdateTaskInput,
    TaskQueryOptions, BatchResult, ProviderInfo, ParsedTaskId,
    create_task_id, parse_task_id,
)
from .registry import ProviderRegistry

__all__ = [
    "BasePMProvider",
    "ProviderCapability",
    "ProviderRegistry",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "ProviderType",
    "CustomFieldType",
    "PlacementRef",
    "TaskPlacement",
    "TaskCustomFieldResult",
    "ThreadEntry",
    "Workspace",
    "Project",
    "Section",
    "EnumOption",
    "CustomField",
    "CustomFieldSetting",
    "TaskProjectContext",
    "CustomFieldInput",
    "CreateTaskInput",
    "UpdateTaskInput",
    "TaskQueryOptions",
    "BatchResult",
    "ProviderInfo",
    "ParsedTaskId",
    "create_task_id",
    "parse_task_id",
]
