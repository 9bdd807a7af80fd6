"""
Unified data models for PM providers

These models represent common entities across all PM systems,
abstracting away provider-specific differences.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Dict, NamedTuple, Union
from datetime import datetime
from enum import Enum


class ProviderType(str, Enum):
    """Supported PM backends"""
    ASANA = "asana"
    NOTION = "notion"
    TRELLO = "trello"
    LINEAR = "linear"
    CLICKUP = "clickup"


class TaskStatus(str, Enum):
    """Normalized task status"""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, Enum):
    """Priority levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CustomFieldType(str, Enum):
    """Custom field types the resolver knows about"""
    ENUM = "enum"
    MULTI_ENUM = "multi_enum"
    UNSUPPORTED = "unsupported"


@dataclass
class PlacementRef:
    """Reference to a project or section by ID and display name"""
    id: str
    name: str


@dataclass
class TaskPlacement:
    """Structured project/section placement of a task"""
    project: Optional[PlacementRef] = None
    section: Optional[PlacementRef] = None


@dataclass
class TaskCustomFieldResult:
    """Outcome of a custom field write on create/update"""
    field_id: str
    field_name: str
    type: CustomFieldType
    option_ids: List[str] = field(default_factory=list)
    option_names: List[str] = field(default_factory=list)
    status: str = "applied"  # applied | failed
    message: Optional[str] = None


@dataclass
class Task:
    """Unified task/issue/card representation"""
    id: str  # "{SOURCE}-{external_id}", e.g. "ASANA-1234567890"
    external_id: str
    title: str
    status: TaskStatus
    source: ProviderType
    url: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    assignee: Optional[str] = None
    assignee_email: Optional[str] = None
    project: Optional[str] = None
    placement: Optional[TaskPlacement] = None
    tags: Optional[List[str]] = None
    priority: Optional[TaskPriority] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    custom_field_results: Optional[List[TaskCustomFieldResult]] = None


@dataclass
class ThreadEntry:
    """Comment/story in a task's conversation thread"""
    id: str
    body: str
    source: ProviderType
    created_at: datetime
    author: Optional[str] = None


# ==================== Metadata ====================

@dataclass
class Workspace:
    """Workspace/organization in a provider"""
    id: str
    name: str


@dataclass
class Project:
    """Project listed in a workspace"""
    id: str
    name: str
    workspace: Optional[Workspace] = None


@dataclass
class Section:
    """Section/column inside a project"""
    id: str
    name: str


@dataclass
class EnumOption:
    """Selectable option of an enum/multi_enum custom field"""
    id: str
    name: str


@dataclass
class CustomField:
    """Custom field definition"""
    id: str
    name: str
    type: Optional[str] = None  # provider subtype, e.g. "enum", "multi_enum", "text"
    options: List[EnumOption] = field(default_factory=list)


@dataclass
class CustomFieldSetting:
    """Custom field as attached to a project"""
    field: CustomField


@dataclass
class TaskProjectContext:
    """Project membership metadata of an existing task"""
    memberships: List[PlacementRef] = field(default_factory=list)
    projects: List[PlacementRef] = field(default_factory=list)


# ==================== Inputs ====================

@dataclass
class CustomFieldInput:
    """
    A ``<field>=<value[,value]>`` assignment.

    ``field`` is a provider field ID or a case-insensitive field name;
    an empty ``values`` list clears the field.
    """
    field: str
    values: List[str] = field(default_factory=list)


CustomFieldPayload = Dict[str, Union[str, List[str], None]]


@dataclass
class CreateTaskInput:
    """Input for creating a task"""
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    section_id: Optional[str] = None
    section_name: Optional[str] = None
    workspace_id: Optional[str] = None
    workspace_name: Optional[str] = None
    refresh: bool = False  # skip metadata cache while resolving
    difficulty: Optional[str] = None
    custom_fields: List[CustomFieldInput] = field(default_factory=list)
    assignee_email: Optional[str] = None
    # Filled in after resolution: field id -> option id(s); None/[] clears
    custom_field_payload: Optional[CustomFieldPayload] = None


@dataclass
class UpdateTaskInput:
    """Input for updating a task"""
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    clear_due_date: bool = False
    status: Optional[TaskStatus] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    workspace_id: Optional[str] = None
    workspace_name: Optional[str] = None
    refresh: bool = False
    custom_fields: List[CustomFieldInput] = field(default_factory=list)
    custom_field_payload: Optional[CustomFieldPayload] = None


@dataclass
class TaskQueryOptions:
    """Options for provider read calls"""
    limit: Optional[int] = None
    include_completed: bool = False
    project_id: Optional[str] = None
    refresh: bool = False


@dataclass
class BatchResult:
    """Per-ID outcome of a batch complete/delete"""
    id: str
    task: Optional[Task] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ProviderInfo:
    """Provider connection summary"""
    name: ProviderType
    display_name: str
    connected: bool


# ==================== Task IDs ====================

class ParsedTaskId(NamedTuple):
    source: ProviderType
    external_id: str


_TASK_ID_PATTERN = re.compile(
    r"^(" + "|".join(p.value for p in ProviderType) + r")-(.+)$",
    re.IGNORECASE,
)


def create_task_id(source: Union[ProviderType, str], external_id: str) -> str:
    """Create internal task ID from provider and external ID"""
    return f"{ProviderType(source).value.upper()}-{external_id}"


def parse_task_id(task_id: str) -> Optional[ParsedTaskId]:
    """
    Parse internal task ID into provider and external ID.

    The prefix is matched case-insensitively; anything outside the known
    provider set returns None.
    """
    match = _TASK_ID_PATTERN.match(task_id or "")
    if not match:
        return None
    return ParsedTaskId(ProviderType(match.group(1).lower()), match.group(2))
