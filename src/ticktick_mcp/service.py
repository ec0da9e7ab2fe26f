"""
Domain operations over the TickTick Open API.

One coroutine per entity action. Mutating calls are validated before any
network I/O; aggregate reads walk projects one at a time and tolerate
per-project failures.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as ModelValidationError

from ticktick_mcp.client import TickTickClient
from ticktick_mcp.date_utils import InvalidDateError, InvalidTimeZoneError, day_window, parse_datetime
from ticktick_mcp.errors import TickTickError
from ticktick_mcp.models import (
    Project,
    ProjectData,
    ProjectStats,
    Stats,
    Task,
    TaskStatus,
)
from ticktick_mcp.validators import (
    validate_project_create,
    validate_project_update,
    validate_task_create,
    validate_task_update,
)

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_LIMIT = 200

TaskInput = Union[Task, Dict[str, Any]]
ProjectInput = Union[Project, Dict[str, Any]]


def _to_wire(value: Union[Task, Project, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(value, dict):
        return dict(value)
    return value.to_wire()


def _truncate(text: Optional[str], limit: int = CONTENT_PREVIEW_LIMIT) -> Optional[str]:
    if text and len(text) > limit:
        return text[:limit] + "..."
    return text


class TickTickService:
    """Project and task operations backed by a ``TickTickClient``."""

    def __init__(self, client: TickTickClient):
        self.client = client

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def list_projects(self, token: Optional[str] = None) -> List[Project]:
        data = await self.client.request("GET", "/project", token=token)
        return [Project.model_validate(p) for p in data or []]

    async def get_project(self, project_id: str, token: Optional[str] = None) -> Project:
        data = await self.client.request("GET", f"/project/{project_id}", token=token)
        return Project.model_validate(data or {})

    async def get_project_with_tasks(
        self, project_id: str, token: Optional[str] = None
    ) -> ProjectData:
        """Fetch a project with its tasks and columns in a single call."""
        data = await self.client.request("GET", f"/project/{project_id}/data", token=token)
        return ProjectData.model_validate(data or {})

    async def create_project(self, project: ProjectInput, token: Optional[str] = None) -> Project:
        payload = validate_project_create(_to_wire(project))
        data = await self.client.request("POST", "/project", json=payload, token=token)
        return Project.model_validate(data or payload)

    async def update_project(
        self, project_id: str, changes: ProjectInput, token: Optional[str] = None
    ) -> Project:
        payload = validate_project_update(_to_wire(changes))
        payload.pop("id", None)
        data = await self.client.request(
            "POST", f"/project/{project_id}", json=payload, token=token
        )
        return Project.model_validate(data or {"id": project_id, **payload})

    async def delete_project(self, project_id: str, token: Optional[str] = None) -> None:
        await self.client.request("DELETE", f"/project/{project_id}", token=token)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def get_task(
        self, project_id: str, task_id: str, token: Optional[str] = None
    ) -> Task:
        data = await self.client.request(
            "GET", f"/project/{project_id}/task/{task_id}", token=token
        )
        return Task.model_validate(data or {})

    async def create_task(self, task: TaskInput, token: Optional[str] = None) -> Task:
        payload = validate_task_create(_to_wire(task))
        data = await self.client.request("POST", "/task", json=payload, token=token)
        return Task.model_validate(data or payload)

    async def update_task(self, task: TaskInput, token: Optional[str] = None) -> Task:
        """Update a task; the payload must carry ``id`` and ``projectId``."""
        payload = validate_task_update(_to_wire(task))
        data = await self.client.request(
            "POST", f"/task/{payload['id']}", json=payload, token=token
        )
        return Task.model_validate(data or payload)

    async def complete_task(
        self, project_id: str, task_id: str, token: Optional[str] = None
    ) -> None:
        await self.client.request(
            "POST", f"/project/{project_id}/task/{task_id}/complete", token=token
        )

    async def delete_task(
        self, project_id: str, task_id: str, token: Optional[str] = None
    ) -> None:
        await self.client.request(
            "DELETE", f"/project/{project_id}/task/{task_id}", token=token
        )

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def get_all_projects_with_tasks(
        self, token: Optional[str] = None, truncate_content: bool = True
    ) -> List[ProjectData]:
        """
        Fetch every project with its tasks, one project at a time.

        A project whose data cannot be fetched is logged and returned with an
        empty task list. Only a failure to list projects is raised.

        Args:
            token: Bearer token overriding the configured one
            truncate_content: Cap task content at 200 characters
        """
        projects = await self.list_projects(token)
        results = []
        for project in projects:
            try:
                data = await self.get_project_with_tasks(project.id, token)
            except (TickTickError, ModelValidationError) as e:
                logger.warning("Failed to get tasks for project %s: %s", project.id, e)
                data = ProjectData(project=project)
            if data.project is None:
                data.project = project
            if truncate_content:
                for task in data.tasks:
                    task.content = _truncate(task.content)
            results.append(data)
        return results

    @staticmethod
    def _due_bucket(
        task: Task, now: datetime, fallback: Tuple[datetime, datetime]
    ) -> Optional[str]:
        """Return "overdue", "today" or None for an incomplete task."""
        if task.is_completed or not task.due_date:
            return None
        try:
            due = parse_datetime(task.due_date)
        except InvalidDateError:
            logger.debug("Skipping task %s with unreadable dueDate %r", task.id, task.due_date)
            return None

        start, end = fallback
        if task.time_zone:
            try:
                start, end = day_window(now, task.time_zone)
            except InvalidTimeZoneError:
                logger.debug("Unknown time zone %r on task %s", task.time_zone, task.id)

        if due < start:
            return "overdue"
        if due < end:
            return "today"
        return None

    async def _collect(
        self, bucket: str, token: Optional[str], now: Optional[datetime], time_zone: Optional[str]
    ) -> List[Task]:
        now = now or datetime.now(timezone.utc)
        fallback = day_window(now, time_zone)
        found = []
        for data in await self.get_all_projects_with_tasks(token, truncate_content=False):
            found.extend(t for t in data.tasks if self._due_bucket(t, now, fallback) == bucket)
        return found

    async def get_today_tasks(
        self,
        token: Optional[str] = None,
        now: Optional[datetime] = None,
        time_zone: Optional[str] = None,
    ) -> List[Task]:
        """Incomplete tasks due within the current day."""
        return await self._collect("today", token, now, time_zone)

    async def get_overdue_tasks(
        self,
        token: Optional[str] = None,
        now: Optional[datetime] = None,
        time_zone: Optional[str] = None,
    ) -> List[Task]:
        """Incomplete tasks due before the start of the current day."""
        return await self._collect("overdue", token, now, time_zone)

    async def compute_stats(
        self,
        token: Optional[str] = None,
        now: Optional[datetime] = None,
        time_zone: Optional[str] = None,
    ) -> Stats:
        """
        Count tasks across all projects.

        Overdue and due-today counts use each task's own time zone to decide
        where "today" starts, falling back to ``time_zone`` (UTC by default).
        """
        now = now or datetime.now(timezone.utc)
        fallback = day_window(now, time_zone)
        stats = Stats()

        for data in await self.get_all_projects_with_tasks(token, truncate_content=False):
            completed = sum(1 for t in data.tasks if t.status == TaskStatus.COMPLETED)
            total = len(data.tasks)
            for task in data.tasks:
                bucket = self._due_bucket(task, now, fallback)
                if bucket == "overdue":
                    stats.overdue_tasks_count += 1
                elif bucket == "today":
                    stats.today_tasks_count += 1

            stats.total_projects += 1
            stats.total_tasks += total
            stats.completed_tasks += completed
            stats.pending_tasks += total - completed
            stats.project_stats.append(ProjectStats(
                project_id=data.project.id,
                project_name=data.project.name,
                total_tasks=total,
                completed_tasks=completed,
                pending_tasks=total - completed,
            ))
        return stats
