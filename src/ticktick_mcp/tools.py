"""
MCP tool and resource registration for TickTick.

Tools wrap ``TickTickService`` calls and always return text: a markdown
listing or a JSON envelope ``{success, data|error, message, timestamp}``.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, ConfigDict, Field

from ticktick_mcp import __version__
from ticktick_mcp.errors import TickTickError
from ticktick_mcp.models import (
    PRIORITY_REVERSE_MAP,
    Priority,
    Project,
    Task,
    TickTickConfig,
    priority_to_wire,
)
from ticktick_mcp.service import TickTickService

logger = logging.getLogger(__name__)

CHARACTER_LIMIT = 25000  # Maximum response size in characters

ServiceResolver = Callable[[Context], TickTickService]


# ============================================================================
# Enums and Shared Models
# ============================================================================

class ResponseFormat(str, Enum):
    """Output format for tool responses."""
    MARKDOWN = "markdown"
    JSON = "json"


class BaseToolInput(BaseModel):
    """Base model with common configuration."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    access_token: Optional[str] = Field(
        default=None,
        description="TickTick access token (defaults to the server's configured token)"
    )


# ============================================================================
# Shared Utility Functions
# ============================================================================

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _success(data: Any, message: str) -> str:
    return json.dumps(
        {"success": True, "data": data, "message": message, "timestamp": _timestamp()},
        indent=2, ensure_ascii=False, default=str
    )


def _error_message(e: Exception) -> str:
    """
    Actionable description of a failure.

    Args:
        e: Exception raised by the service layer

    Returns:
        Human-readable error message with guidance
    """
    if isinstance(e, TickTickError):
        if e.kind == "unauthorized":
            return ("Invalid or missing access token. Obtain a new TickTick access "
                    "token and set TICKTICK_ACCESS_TOKEN.")
        elif e.kind == "forbidden":
            return "Permission denied. The token cannot access this project or task."
        elif e.kind == "not_found":
            return e.hint or "Resource not found. Check that the ID is correct."
        elif e.kind == "rate_limited":
            return ("Rate limit exceeded. Please wait a moment before making more "
                    "requests to the TickTick API.")
        elif e.kind == "timeout":
            return "Request timed out. The TickTick API is taking too long to respond."
        elif e.kind == "network":
            return ("Cannot connect to the TickTick API. Please check your internet "
                    "connection and try again.")
        return str(e)
    return f"Unexpected error occurred - {type(e).__name__}: {e}"


def _handle_error(e: Exception, action: str) -> str:
    """Build the JSON error envelope returned to the client."""
    if isinstance(e, TickTickError):
        logger.warning("Failed to %s: %s", action, e)
        error = e.to_dict()
    else:
        logger.exception("Unexpected failure while trying to %s", action)
        error = {"kind": "unexpected", "message": str(e), "retryable": False}
    return json.dumps(
        {
            "success": False,
            "error": error,
            "message": f"Error: failed to {action}. {_error_message(e)}",
            "timestamp": _timestamp(),
        },
        indent=2, ensure_ascii=False, default=str
    )


def _truncate_response(content: str) -> str:
    """
    Truncate response if it exceeds CHARACTER_LIMIT with helpful guidance.

    Args:
        content: Response content to check

    Returns:
        Original content or truncated content with guidance
    """
    if len(content) <= CHARACTER_LIMIT:
        return content

    truncated = content[:CHARACTER_LIMIT]
    last_newline = truncated.rfind('\n')
    if last_newline > 0:
        truncated = truncated[:last_newline]

    truncated += (
        f"\n\n---\n**Response Truncated**: Showing partial results due to size limit "
        f"({len(content):,} characters). To see more:\n"
        f"- Request a single project's tasks instead of all projects\n"
        f"- Request specific tasks by ID\n"
    )
    return truncated


def _format_task_lines(task: Task) -> List[str]:
    status = "✅" if task.is_completed else "⬜"
    lines = [f"## {status} {task.title or 'Untitled'}", f"- **ID**: {task.id}"]
    if task.project_id:
        lines.append(f"- **Project**: {task.project_id}")
    if task.due_date:
        lines.append(f"- **Due**: {task.due_date}")
    if task.priority:
        lines.append(f"- **Priority**: {PRIORITY_REVERSE_MAP.get(task.priority, task.priority)}")
    if task.content:
        lines.append(f"- **Content**: {task.content[:200]}")
    if task.items:
        done = sum(1 for item in task.items if item.status == 1)
        lines.append(f"- **Checklist**: {done}/{len(task.items)} done")
    lines.append("")
    return lines


def _format_tasks(title: str, tasks: List[Task]) -> str:
    lines = [f"# {title}", "", f"Found {len(tasks)} task{'s' if len(tasks) != 1 else ''}", ""]
    for task in tasks:
        lines.extend(_format_task_lines(task))
    return _truncate_response("\n".join(lines))


def _format_projects(projects: List[Project]) -> str:
    lines = ["# Projects", "", f"Found {len(projects)} project{'s' if len(projects) != 1 else ''}", ""]
    for project in projects:
        lines.append(f"## {project.name or 'Untitled'}")
        lines.append(f"- **ID**: {project.id}")
        if project.view_mode:
            lines.append(f"- **View**: {project.view_mode}")
        if project.color:
            lines.append(f"- **Color**: {project.color}")
        if project.closed:
            lines.append("- **Closed**: yes")
        lines.append("")
    return _truncate_response("\n".join(lines))


def _dump(models: List[BaseModel]) -> List[Dict[str, Any]]:
    return [m.to_wire() for m in models]


# ============================================================================
# Pydantic Input Models
# ============================================================================

class SimpleFormatInput(BaseToolInput):
    """Input model for simple list operations with format option."""
    response_format: ResponseFormat = Field(
        default=ResponseFormat.MARKDOWN,
        description="Output format: 'markdown' (default) or 'json'"
    )


class ProjectIdInput(BaseToolInput):
    """Input model for operations on a single project."""
    project_id: str = Field(
        ...,
        description="Project ID (from ticktick_get_projects). Example: '6226ff9877acee87727f6bca'",
        min_length=1
    )


class ProjectTasksInput(ProjectIdInput):
    response_format: ResponseFormat = Field(
        default=ResponseFormat.MARKDOWN,
        description="Output format: 'markdown' (default) or 'json'"
    )


class TaskRefInput(BaseToolInput):
    """Input model identifying one task inside a project."""
    project_id: str = Field(..., description="Project ID the task belongs to", min_length=1)
    task_id: str = Field(..., description="Task ID", min_length=1)


class DueTasksInput(SimpleFormatInput):
    time_zone: Optional[str] = Field(
        default=None,
        description="IANA time zone that defines 'today' (default UTC), e.g. 'Europe/Berlin'"
    )


class AllProjectsInput(BaseToolInput):
    truncate_content: bool = Field(
        default=True,
        description="Shorten task content to 200 characters to keep the response small"
    )


class ChecklistItemInput(BaseModel):
    """A checklist item (subtask)."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    id: Optional[str] = Field(default=None, description="Item ID (required on update, omit on create)")
    title: str = Field(..., description="Item title", min_length=1)
    status: Optional[int] = Field(default=None, description="0 = normal, 1 = completed")
    start_date: Optional[str] = Field(default=None, description="Start date")
    is_all_day: Optional[bool] = Field(default=None, description="All-day item")
    time_zone: Optional[str] = Field(default=None, description="IANA time zone")
    sort_order: Optional[int] = Field(default=None, description="Sort order")


class TaskFieldsInput(BaseToolInput):
    content: Optional[str] = Field(default=None, description="Task content/notes")
    desc: Optional[str] = Field(default=None, description="Checklist description")
    is_all_day: Optional[bool] = Field(default=None, description="All-day task")
    start_date: Optional[str] = Field(
        default=None,
        description="Start date, e.g. '2025-01-10T09:00:00+0000', '2025-01-10 09:00' or '10.01.2025'"
    )
    due_date: Optional[str] = Field(default=None, description="Due date, same formats as start_date")
    time_zone: Optional[str] = Field(default=None, description="IANA time zone, e.g. 'America/Los_Angeles'")
    reminders: Optional[List[str]] = Field(
        default=None, description="Reminder triggers, e.g. ['TRIGGER:P0DT9H0M0S', 'TRIGGER:PT0S']"
    )
    repeat_flag: Optional[str] = Field(
        default=None, description="Recurrence rule, e.g. 'RRULE:FREQ=DAILY;INTERVAL=1'"
    )
    priority: Optional[Priority] = Field(default=None, description="none, low, medium or high")
    sort_order: Optional[int] = Field(default=None, description="Sort order")
    items: Optional[List[ChecklistItemInput]] = Field(default=None, description="Checklist items")

    def to_task(self, **identity: Any) -> Task:
        fields = self.model_dump(
            exclude={"access_token", "task_id", "priority", "items"}, exclude_none=True
        )
        fields.update(identity)
        if self.priority is not None:
            fields["priority"] = priority_to_wire(self.priority)
        if self.items is not None:
            fields["items"] = [item.model_dump(exclude_none=True) for item in self.items]
        return Task(**fields)


class CreateTaskInput(TaskFieldsInput):
    """Input model for creating a new task."""
    title: str = Field(..., description="Task title", min_length=1, max_length=500)
    project_id: str = Field(..., description="Project ID to create the task in", min_length=1)


class UpdateTaskInput(TaskFieldsInput):
    """Input model for updating a task; omitted fields are left unchanged."""
    task_id: str = Field(..., description="ID of the task to update", min_length=1)
    project_id: str = Field(..., description="Project ID the task belongs to", min_length=1)
    title: Optional[str] = Field(default=None, description="New title", max_length=500)


class ProjectFieldsInput(BaseToolInput):
    color: Optional[str] = Field(default=None, description="Hex color, e.g. '#F18181'")
    view_mode: Optional[str] = Field(default=None, description="list, kanban or timeline")
    kind: Optional[str] = Field(default=None, description="TASK or NOTE")
    sort_order: Optional[int] = Field(default=None, description="Sort order")

    def to_project(self, **extra: Any) -> Project:
        fields = self.model_dump(exclude={"access_token", "project_id"}, exclude_none=True)
        fields.update(extra)
        return Project(**fields)


class CreateProjectInput(ProjectFieldsInput):
    name: str = Field(..., description="Project name", min_length=1)


class UpdateProjectInput(ProjectFieldsInput):
    project_id: str = Field(..., description="ID of the project to update", min_length=1)
    name: Optional[str] = Field(default=None, description="New project name")


# ============================================================================
# Tool Registration
# ============================================================================

READ_ONLY = {"readOnlyHint": True, "destructiveHint": False, "idempotentHint": True, "openWorldHint": True}


def register_tools(mcp: FastMCP, resolve_service: ServiceResolver) -> None:
    """
    Register every TickTick tool on ``mcp``.

    Args:
        mcp: Server to register on
        resolve_service: Returns the service to use for a request context
    """

    @mcp.tool(name="ticktick_get_projects", annotations={"title": "List Projects", **READ_ONLY})
    async def ticktick_get_projects(params: SimpleFormatInput, ctx: Context) -> str:
        """List all TickTick projects of the user."""
        try:
            projects = await resolve_service(ctx).list_projects(params.access_token)
            if params.response_format == ResponseFormat.MARKDOWN:
                return _format_projects(projects)
            return _truncate_response(_success(
                {"count": len(projects), "projects": _dump(projects)},
                f"Found {len(projects)} projects"
            ))
        except Exception as e:
            return _handle_error(e, "get projects")

    @mcp.tool(name="ticktick_get_project_tasks", annotations={"title": "Get Project Tasks", **READ_ONLY})
    async def ticktick_get_project_tasks(params: ProjectTasksInput, ctx: Context) -> str:
        """Get a project together with all of its tasks and columns."""
        try:
            data = await resolve_service(ctx).get_project_with_tasks(params.project_id, params.access_token)
            name = data.project.name if data.project else params.project_id
            if params.response_format == ResponseFormat.MARKDOWN:
                return _format_tasks(f"Tasks in {name}", data.tasks)
            return _truncate_response(_success(
                {"project": data.project.to_wire() if data.project else None,
                 "taskCount": len(data.tasks), "tasks": _dump(data.tasks),
                 "columns": _dump(data.columns)},
                f"Project '{name}' has {len(data.tasks)} tasks"
            ))
        except Exception as e:
            return _handle_error(e, "get project tasks")

    @mcp.tool(name="ticktick_get_task", annotations={"title": "Get Task", **READ_ONLY})
    async def ticktick_get_task(params: TaskRefInput, ctx: Context) -> str:
        """Get the details of one task, including its checklist items."""
        try:
            task = await resolve_service(ctx).get_task(params.project_id, params.task_id, params.access_token)
            return _success({"task": task.to_wire()}, f"Task: {task.title}")
        except Exception as e:
            return _handle_error(e, "get task")

    @mcp.tool(
        name="ticktick_create_task",
        annotations={"title": "Create Task", "readOnlyHint": False, "destructiveHint": False,
                     "idempotentHint": False, "openWorldHint": True}
    )
    async def ticktick_create_task(params: CreateTaskInput, ctx: Context) -> str:
        """
        Create a task in a project.

        Dates accept wire format ('2025-01-10T09:00:00+0000'), 'YYYY-MM-DD[ HH:mm]'
        or dotted dates; the start date must not be after the due date.
        """
        try:
            task = await resolve_service(ctx).create_task(params.to_task(), params.access_token)
            return _success({"task": task.to_wire()}, f"Task created: {task.title}")
        except Exception as e:
            return _handle_error(e, "create task")

    @mcp.tool(
        name="ticktick_update_task",
        annotations={"title": "Update Task", "readOnlyHint": False, "destructiveHint": False,
                     "idempotentHint": True, "openWorldHint": True}
    )
    async def ticktick_update_task(params: UpdateTaskInput, ctx: Context) -> str:
        """Update fields of an existing task. Checklist items must carry their IDs."""
        try:
            task = await resolve_service(ctx).update_task(
                params.to_task(id=params.task_id), params.access_token
            )
            return _success({"task": task.to_wire()}, f"Task updated: {task.title or params.task_id}")
        except Exception as e:
            return _handle_error(e, "update task")

    @mcp.tool(
        name="ticktick_complete_task",
        annotations={"title": "Complete Task", "readOnlyHint": False, "destructiveHint": False,
                     "idempotentHint": True, "openWorldHint": True}
    )
    async def ticktick_complete_task(params: TaskRefInput, ctx: Context) -> str:
        """Mark a task as completed."""
        try:
            await resolve_service(ctx).complete_task(params.project_id, params.task_id, params.access_token)
            return _success(
                {"success": True, "operationType": "complete", "targetId": params.task_id},
                f"Task {params.task_id} completed"
            )
        except Exception as e:
            return _handle_error(e, "complete task")

    @mcp.tool(
        name="ticktick_delete_task",
        annotations={"title": "Delete Task", "readOnlyHint": False, "destructiveHint": True,
                     "idempotentHint": True, "openWorldHint": True}
    )
    async def ticktick_delete_task(params: TaskRefInput, ctx: Context) -> str:
        """Delete a task permanently."""
        try:
            await resolve_service(ctx).delete_task(params.project_id, params.task_id, params.access_token)
            return _success(
                {"success": True, "operationType": "delete", "targetId": params.task_id},
                f"Task {params.task_id} deleted"
            )
        except Exception as e:
            return _handle_error(e, "delete task")

    @mcp.tool(name="ticktick_get_today_tasks", annotations={"title": "Get Today's Tasks", **READ_ONLY})
    async def ticktick_get_today_tasks(params: DueTasksInput, ctx: Context) -> str:
        """Get incomplete tasks due today across all projects."""
        try:
            tasks = await resolve_service(ctx).get_today_tasks(params.access_token, time_zone=params.time_zone)
            if params.response_format == ResponseFormat.MARKDOWN:
                return _format_tasks("Today's Tasks", tasks)
            return _truncate_response(_success(
                {"taskCount": len(tasks), "tasks": _dump(tasks)},
                f"Found {len(tasks)} tasks due today"
            ))
        except Exception as e:
            return _handle_error(e, "get today's tasks")

    @mcp.tool(name="ticktick_get_overdue_tasks", annotations={"title": "Get Overdue Tasks", **READ_ONLY})
    async def ticktick_get_overdue_tasks(params: DueTasksInput, ctx: Context) -> str:
        """Get incomplete tasks whose due date is before today."""
        try:
            tasks = await resolve_service(ctx).get_overdue_tasks(params.access_token, time_zone=params.time_zone)
            if params.response_format == ResponseFormat.MARKDOWN:
                return _format_tasks("Overdue Tasks", tasks)
            return _truncate_response(_success(
                {"overdueCount": len(tasks), "tasks": _dump(tasks)},
                f"Found {len(tasks)} overdue tasks"
            ))
        except Exception as e:
            return _handle_error(e, "get overdue tasks")

    @mcp.tool(
        name="ticktick_get_all_projects_with_tasks",
        annotations={"title": "Get All Projects With Tasks", **READ_ONLY}
    )
    async def ticktick_get_all_projects_with_tasks(params: AllProjectsInput, ctx: Context) -> str:
        """Get every project with its tasks. Projects that fail to load come back with no tasks."""
        try:
            projects = await resolve_service(ctx).get_all_projects_with_tasks(
                params.access_token, truncate_content=params.truncate_content
            )
            total = sum(len(p.tasks) for p in projects)
            return _truncate_response(_success(
                {"totalProjects": len(projects), "totalTasks": total,
                 "projectsWithTasks": _dump(projects)},
                f"Loaded {len(projects)} projects with {total} tasks"
            ))
        except Exception as e:
            return _handle_error(e, "get projects with tasks")

    @mcp.tool(
        name="ticktick_create_project",
        annotations={"title": "Create Project", "readOnlyHint": False, "destructiveHint": False,
                     "idempotentHint": False, "openWorldHint": True}
    )
    async def ticktick_create_project(params: CreateProjectInput, ctx: Context) -> str:
        """Create a new project."""
        try:
            project = await resolve_service(ctx).create_project(params.to_project(), params.access_token)
            return _success({"project": project.to_wire()}, f"Project created: {project.name}")
        except Exception as e:
            return _handle_error(e, "create project")

    @mcp.tool(
        name="ticktick_update_project",
        annotations={"title": "Update Project", "readOnlyHint": False, "destructiveHint": False,
                     "idempotentHint": True, "openWorldHint": True}
    )
    async def ticktick_update_project(params: UpdateProjectInput, ctx: Context) -> str:
        """Update a project's name, color, view mode, kind or sort order."""
        try:
            project = await resolve_service(ctx).update_project(
                params.project_id, params.to_project(), params.access_token
            )
            return _success({"project": project.to_wire()}, f"Project updated: {project.name or params.project_id}")
        except Exception as e:
            return _handle_error(e, "update project")

    @mcp.tool(
        name="ticktick_delete_project",
        annotations={"title": "Delete Project", "readOnlyHint": False, "destructiveHint": True,
                     "idempotentHint": True, "openWorldHint": True}
    )
    async def ticktick_delete_project(params: ProjectIdInput, ctx: Context) -> str:
        """Delete a project and all of its tasks."""
        try:
            await resolve_service(ctx).delete_project(params.project_id, params.access_token)
            return _success(
                {"success": True, "operationType": "delete", "targetId": params.project_id},
                f"Project {params.project_id} deleted"
            )
        except Exception as e:
            return _handle_error(e, "delete project")


# ============================================================================
# Resource Registration
# ============================================================================

def _resource_json(uri: str, **payload: Any) -> str:
    payload.update(uri=uri, timestamp=_timestamp())
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def register_resources(mcp: FastMCP, service: TickTickService, config: TickTickConfig) -> None:
    """Register the read-only ``ticktick://`` resources on ``mcp``."""

    @mcp.resource("ticktick://config", name="config_info", mime_type="text/plain")
    async def config_info() -> str:
        """Current TickTick server configuration."""
        return (
            "TickTick MCP Server configuration:\n"
            f"Base URL: {config.base_url}\n"
            f"Access token configured: {'yes' if config.access_token else 'no'}\n"
            f"Timeout: {config.timeout:g}s\n"
            f"Version: {__version__}"
        )

    @mcp.resource("ticktick://stats", name="stats", mime_type="application/json")
    async def stats() -> str:
        """Task counts across all projects, including overdue and due today."""
        uri = "ticktick://stats"
        try:
            result = await service.compute_stats()
            return _resource_json(uri, stats=result.to_wire())
        except TickTickError as e:
            return f"Error getting stats: {e}"

    @mcp.resource("ticktick://project/{project_id}", name="project_info", mime_type="application/json")
    async def project_info(project_id: str) -> str:
        """Details of one project."""
        uri = f"ticktick://project/{project_id}"
        try:
            project = await service.get_project(project_id)
            return _resource_json(uri, project=project.to_wire())
        except TickTickError as e:
            return f"Error getting project {project_id}: {e}"

    @mcp.resource("ticktick://project/{project_id}/tasks", name="project_tasks", mime_type="application/json")
    async def project_tasks(project_id: str) -> str:
        """All tasks of one project."""
        uri = f"ticktick://project/{project_id}/tasks"
        try:
            data = await service.get_project_with_tasks(project_id)
            return _resource_json(
                uri,
                project=data.project.to_wire() if data.project else None,
                taskCount=len(data.tasks),
                tasks=_dump(data.tasks),
            )
        except TickTickError as e:
            return f"Error getting tasks of project {project_id}: {e}"

    @mcp.resource(
        "ticktick://project/{project_id}/task/{task_id}", name="task_info", mime_type="application/json"
    )
    async def task_info(project_id: str, task_id: str) -> str:
        """Details of one task."""
        uri = f"ticktick://project/{project_id}/task/{task_id}"
        try:
            task = await service.get_task(project_id, task_id)
            return _resource_json(uri, task=task.to_wire())
        except TickTickError as e:
            return f"Error getting task {task_id} from project {project_id}: {e}"
