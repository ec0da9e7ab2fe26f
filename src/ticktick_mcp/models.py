"""
Data model for the TickTick Open API.

Models use snake_case attributes and keep the camelCase wire names as
aliases, so API payloads load directly and ``to_wire`` gives them back.
"""

from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ticktick_mcp.errors import ValidationError

DEFAULT_BASE_URL = "https://api.ticktick.com/open/v1"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3


# ============================================================================
# Configuration
# ============================================================================

class TickTickConfig(BaseModel):
    """Connection settings for the TickTick client."""
    model_config = ConfigDict(str_strip_whitespace=True)

    access_token: Optional[str] = Field(
        default=None,
        description="OAuth access token for the TickTick Open API"
    )
    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Base URL of the TickTick Open API"
    )
    timeout: float = Field(
        default=DEFAULT_TIMEOUT,
        description="Per-attempt request timeout in seconds",
        gt=0
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        description="Retries allowed for transient failures",
        ge=0
    )


# ============================================================================
# Enums and Priority Mapping
# ============================================================================

class Priority(str, Enum):
    """Human-facing task priority names."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# The wire ordinals are not contiguous; keep the table explicit.
PRIORITY_MAP: Dict[str, int] = {
    Priority.NONE.value: 0,
    Priority.LOW.value: 1,
    Priority.MEDIUM.value: 3,
    Priority.HIGH.value: 5,
}
PRIORITY_REVERSE_MAP: Dict[int, str] = {v: k for k, v in PRIORITY_MAP.items()}


class TaskStatus(IntEnum):
    NORMAL = 0
    COMPLETED = 2


class ChecklistStatus(IntEnum):
    NORMAL = 0
    COMPLETED = 1


def priority_to_wire(name: Any) -> int:
    """Map a priority name (or ``Priority``) to its wire ordinal."""
    key = name.value if isinstance(name, Priority) else name
    if key not in PRIORITY_MAP:
        raise ValidationError(f"Unknown priority: {name!r}", field="priority", value=name)
    return PRIORITY_MAP[key]


def priority_from_wire(value: Any) -> str:
    """Map a wire ordinal back to its priority name."""
    if isinstance(value, bool) or value not in PRIORITY_REVERSE_MAP:
        raise ValidationError(f"Unknown priority value: {value!r}", field="priority", value=value)
    return PRIORITY_REVERSE_MAP[value]


# ============================================================================
# Entities
# ============================================================================

class WireModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase wire fields."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow"
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChecklistItem(WireModel):
    id: Optional[str] = None
    title: Optional[str] = None
    status: Optional[int] = None
    completed_time: Optional[str] = None
    is_all_day: Optional[bool] = None
    sort_order: Optional[int] = None
    start_date: Optional[str] = None
    time_zone: Optional[str] = None


class Task(WireModel):
    id: Optional[str] = None
    project_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    desc: Optional[str] = None
    is_all_day: Optional[bool] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    time_zone: Optional[str] = None
    reminders: Optional[List[str]] = None
    repeat_flag: Optional[str] = None
    priority: Optional[int] = None
    status: Optional[int] = None
    completed_time: Optional[str] = None
    sort_order: Optional[int] = None
    items: Optional[List[ChecklistItem]] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


class Project(WireModel):
    id: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None
    sort_order: Optional[int] = None
    closed: Optional[bool] = None
    group_id: Optional[str] = None
    view_mode: Optional[str] = None
    permission: Optional[str] = None
    kind: Optional[str] = None


class Column(WireModel):
    id: Optional[str] = None
    project_id: Optional[str] = None
    name: Optional[str] = None
    sort_order: Optional[int] = None


class ProjectData(WireModel):
    """A project together with its tasks and kanban columns."""
    project: Optional[Project] = None
    tasks: List[Task] = Field(default_factory=list)
    columns: List[Column] = Field(default_factory=list)


class ProjectStats(WireModel):
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0


class Stats(WireModel):
    total_projects: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    overdue_tasks_count: int = 0
    today_tasks_count: int = 0
    project_stats: List[ProjectStats] = Field(default_factory=list)
