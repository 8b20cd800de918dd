"""Conversion between model objects and flat records.

Both stores and the snapshot format keep entities as flat dicts with
``position_x``/``position_y`` columns. These helpers are the single place that
maps between that shape and the dataclasses in ``flow_manager.models``.
"""

from collections.abc import Iterable
from typing import Any

import structlog

from flow_manager.models import (
    DELIVERABLE_FIELDS,
    TASK_FIELDS,
    Connection,
    Deliverable,
    NodeKind,
    Position,
    Priority,
    Project,
    Task,
    position_from_xy,
)

logger = structlog.get_logger()


def project_from_row(row: dict[str, Any]) -> Project:
    return Project(
        id=int(row["id"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def task_from_row(row: dict[str, Any]) -> Task:
    return Task(
        id=int(row["id"]),
        project_id=int(row["project_id"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        status=row.get("status") or "not_started",
        priority=Priority(row.get("priority") or Priority.MEDIUM.value),
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        duration_days=row.get("duration_days"),
        assigned_to=row.get("assigned_to"),
        position=position_from_xy(row.get("position_x"), row.get("position_y")),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def deliverable_from_row(row: dict[str, Any]) -> Deliverable:
    return Deliverable(
        id=int(row["id"]),
        project_id=int(row["project_id"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        status=row.get("status") or "not_ready",
        type=row.get("type") or "other",
        due_date=row.get("due_date"),
        position=position_from_xy(row.get("position_x"), row.get("position_y")),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def connection_from_row(row: dict[str, Any]) -> Connection:
    return Connection(
        id=int(row["id"]),
        project_id=int(row["project_id"]),
        source_type=NodeKind(row["source_type"]),
        source_id=int(row["source_id"]),
        target_type=NodeKind(row["target_type"]),
        target_id=int(row["target_id"]),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def connections_from_rows(rows: Iterable[dict[str, Any]]) -> list[Connection]:
    """Convert connection rows, skipping records without valid endpoint kinds or ids."""
    connections = []
    for row in rows:
        try:
            connections.append(connection_from_row(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed connection record", connection_id=row.get("id"), error=str(e))
    return connections


def task_to_row(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "project_id": task.project_id,
        "name": task.name,
        "description": task.description,
        "status": task.status,
        "priority": Priority(task.priority).value,
        "start_date": task.start_date,
        "end_date": task.end_date,
        "duration_days": task.duration_days,
        "assigned_to": task.assigned_to,
        "position_x": task.position.x if task.position else None,
        "position_y": task.position.y if task.position else None,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


def deliverable_to_row(deliverable: Deliverable) -> dict[str, Any]:
    return {
        "id": deliverable.id,
        "project_id": deliverable.project_id,
        "name": deliverable.name,
        "description": deliverable.description,
        "status": deliverable.status,
        "type": deliverable.type,
        "due_date": deliverable.due_date,
        "position_x": deliverable.position.x if deliverable.position else None,
        "position_y": deliverable.position.y if deliverable.position else None,
        "created_at": deliverable.created_at,
        "updated_at": deliverable.updated_at,
    }


def check_fields(kind: NodeKind, fields: dict[str, Any]) -> dict[str, Any]:
    """Validate update fields for an entity kind and flatten them to columns.

    ``position`` becomes ``position_x``/``position_y`` and priorities are
    normalised to their string value.
    """
    allowed = TASK_FIELDS if kind is NodeKind.TASK else DELIVERABLE_FIELDS
    columns: dict[str, Any] = {}
    for key, value in fields.items():
        if key not in allowed:
            raise ValueError(f"Unknown {kind.value} field: {key}")
        if key == "position":
            position: Position | None = value
            columns["position_x"] = position.x if position else None
            columns["position_y"] = position.y if position else None
        elif key == "priority":
            columns["priority"] = Priority(value).value
        else:
            columns[key] = value
    return columns
