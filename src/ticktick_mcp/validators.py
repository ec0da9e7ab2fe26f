"""
Field and payload validation for TickTick requests.

Predicates return bool. ``ensure_*`` helpers and the payload validators raise
``ValidationError`` naming the offending field and value. Payload validators
work on wire dicts (camelCase keys) and return a normalized copy ready to send.
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional

from ticktick_mcp.date_utils import (
    InvalidDateError,
    normalize_to_wire,
    parse_flexible,
    validate_date_range,
    validate_recurrence_rule,
    validate_time_zone,
)
from ticktick_mcp.errors import ValidationError
from ticktick_mcp.models import PRIORITY_REVERSE_MAP, ChecklistStatus, TaskStatus

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
VIEW_MODES = ("list", "kanban", "timeline")
PROJECT_KINDS = ("TASK", "NOTE")
READ_ONLY_PROJECT_FIELDS = ("permission",)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_priority(priority: Any) -> bool:
    return _is_int(priority) and priority in PRIORITY_REVERSE_MAP


def validate_task_status(status: Any) -> bool:
    return _is_int(status) and status in (TaskStatus.NORMAL, TaskStatus.COMPLETED)


def validate_checklist_status(status: Any) -> bool:
    return _is_int(status) and status in (ChecklistStatus.NORMAL, ChecklistStatus.COMPLETED)


def validate_project_color(color: Any) -> bool:
    return isinstance(color, str) and bool(COLOR_PATTERN.match(color))


def validate_view_mode(view_mode: Any) -> bool:
    return view_mode in VIEW_MODES


def validate_project_kind(kind: Any) -> bool:
    return kind in PROJECT_KINDS


def _ensure(ok: bool, field: str, value: Any, message: str) -> None:
    if not ok:
        raise ValidationError(f"{message}: {value!r}", field=field, value=value)


def ensure_priority(priority: Any, field: str = "priority") -> None:
    _ensure(validate_priority(priority), field, priority,
            "Priority must be one of 0, 1, 3, 5")


def ensure_time_zone(name: Any, field: str = "timeZone") -> None:
    _ensure(validate_time_zone(name), field, name, "Unknown time zone")


def ensure_recurrence_rule(rule: Any, field: str = "repeatFlag") -> None:
    _ensure(validate_recurrence_rule(rule), field, rule, "Invalid recurrence rule")


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _require_text(data: Dict[str, Any], key: str, field: Optional[str] = None) -> None:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field or key} is required", field=field or key, value=value)
    data[key] = value.strip()


def _normalize_date(data: Dict[str, Any], key: str, tz: Optional[str], field: str) -> None:
    """Normalize ``data[key]`` in place; empty values are dropped as absent."""
    value = data.get(key)
    if not _present(value):
        data.pop(key, None)
        return
    try:
        if isinstance(value, datetime):
            data[key] = normalize_to_wire(value)
        else:
            data[key] = parse_flexible(value, tz)
    except InvalidDateError as e:
        raise ValidationError(f"Invalid {field}: {value!r} ({e})", field=field, value=value) from e


def _check_task_fields(data: Dict[str, Any]) -> None:
    tz = data.get("timeZone")
    if _present(tz):
        ensure_time_zone(tz)
    else:
        data.pop("timeZone", None)
        tz = None

    _normalize_date(data, "startDate", tz, "startDate")
    _normalize_date(data, "dueDate", tz, "dueDate")

    start, due = data.get("startDate"), data.get("dueDate")
    if not validate_date_range(start, due):
        raise ValidationError(
            f"startDate ({start}) is after dueDate ({due})",
            field="startDate,dueDate",
            value={"startDate": start, "dueDate": due},
        )

    if data.get("priority") is not None:
        ensure_priority(data["priority"])
    if data.get("status") is not None:
        _ensure(validate_task_status(data["status"]), "status", data["status"],
                "Task status must be 0 (normal) or 2 (completed)")

    if _present(data.get("repeatFlag")):
        ensure_recurrence_rule(data["repeatFlag"])
    else:
        data.pop("repeatFlag", None)

    reminders = data.get("reminders")
    if reminders is not None:
        _ensure(isinstance(reminders, list) and all(isinstance(r, str) for r in reminders),
                "reminders", reminders, "Reminders must be a list of trigger strings")


def _check_items(data: Dict[str, Any], update: bool) -> None:
    items = data.get("items")
    if items is None:
        return
    if not isinstance(items, list):
        raise ValidationError("items must be a list", field="items", value=items)

    task_tz = data.get("timeZone")
    checked = []
    for index, raw in enumerate(items):
        prefix = f"items[{index}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{prefix} must be an object", field=prefix, value=raw)
        item = dict(raw)

        _require_text(item, "title", f"{prefix}.title")
        if update:
            _require_text(item, "id", f"{prefix}.id")
        elif _present(item.get("id")):
            raise ValidationError(
                f"{prefix}.id is assigned by the server and must not be set on create",
                field=f"{prefix}.id", value=item["id"],
            )
        else:
            item.pop("id", None)

        tz = item.get("timeZone")
        if _present(tz):
            ensure_time_zone(tz, f"{prefix}.timeZone")
        else:
            item.pop("timeZone", None)
            tz = task_tz

        _normalize_date(item, "startDate", tz, f"{prefix}.startDate")

        if item.get("status") is not None:
            _ensure(validate_checklist_status(item["status"]), f"{prefix}.status",
                    item["status"], "Checklist status must be 0 (normal) or 1 (completed)")
        checked.append(item)

    data["items"] = checked


def validate_task_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalize a create-task payload.

    Args:
        payload: Wire dict with at least ``title`` and ``projectId``

    Returns:
        Normalized copy of the payload

    Raises:
        ValidationError: On the first invalid field
    """
    data = dict(payload)
    _require_text(data, "title")
    _require_text(data, "projectId")
    _check_task_fields(data)
    _check_items(data, update=False)
    return data


def validate_task_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalize an update-task payload.

    ``id`` and ``projectId`` are required; every checklist item must carry
    the id of the item it updates.
    """
    data = dict(payload)
    _require_text(data, "id")
    _require_text(data, "projectId")
    if "title" in data and data["title"] is not None:
        _require_text(data, "title")
    _check_task_fields(data)
    _check_items(data, update=True)
    return data


def _check_project_fields(data: Dict[str, Any]) -> None:
    for key in READ_ONLY_PROJECT_FIELDS:
        data.pop(key, None)
    if data.get("color") is not None:
        _ensure(validate_project_color(data["color"]), "color", data["color"],
                "Color must be a hex value like #F18181")
    if data.get("viewMode") is not None:
        _ensure(validate_view_mode(data["viewMode"]), "viewMode", data["viewMode"],
                "viewMode must be one of list, kanban, timeline")
    if data.get("kind") is not None:
        _ensure(validate_project_kind(data["kind"]), "kind", data["kind"],
                "kind must be TASK or NOTE")


def validate_project_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(payload)
    _require_text(data, "name")
    _check_project_fields(data)
    return data


def validate_project_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(payload)
    if "name" in data and data["name"] is not None:
        _require_text(data, "name")
    _check_project_fields(data)
    return data
