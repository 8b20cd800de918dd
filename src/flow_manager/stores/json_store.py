"""Local key-value store backed by a single JSON file."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from flow_manager.errors import EntityNotFoundError, StoreError
from flow_manager.models import Connection, Deliverable, NodeKind, NodeRef, Position, Priority, Project, Task
from flow_manager.records import (
    check_fields,
    connection_from_row,
    connections_from_rows,
    deliverable_from_row,
    project_from_row,
    task_from_row,
)
from flow_manager.store import Store

logger = structlog.get_logger()

COLLECTIONS = ("projects", "tasks", "deliverables", "connections")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonStore(Store):
    """Store that keeps every collection in one JSON document.

    The document is read and rewritten on each call, so every operation is
    durable as soon as it returns.
    """

    def __init__(self, path: Path | str) -> None:
        """Initialize JSON store.

        Args:
            path: Location of the JSON document (created on first write)
        """
        self.path = Path(path)
        logger.debug("Initializing JSON store", path=str(self.path))

    def _load(self) -> dict[str, Any]:
        """Load the document, returning an empty one if the file is missing."""
        if not self.path.exists():
            return {name: [] for name in COLLECTIONS} | {"next_ids": {}}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load JSON store", path=str(self.path), error=str(e))
            raise StoreError(f"Failed to load store from {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreError(f"Store file {self.path} does not contain a JSON object")
        for name in COLLECTIONS:
            data.setdefault(name, [])
        data.setdefault("next_ids", {})
        return data

    def _save(self, data: dict[str, Any]) -> None:
        """Write the document back to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error("Failed to save JSON store", path=str(self.path), error=str(e))
            raise StoreError(f"Failed to save store to {self.path}: {e}") from e

    def _insert(self, data: dict[str, Any], collection: str, row: dict[str, Any]) -> dict[str, Any]:
        """Assign an id and timestamps to a row and append it to a collection."""
        next_ids = data["next_ids"]
        existing = max((r.get("id") or 0 for r in data[collection]), default=0)
        row_id = max(next_ids.get(collection, 1), existing + 1)
        next_ids[collection] = row_id + 1

        now = _now()
        row = {"id": row_id, **row, "created_at": now, "updated_at": now}
        data[collection].append(row)
        return row

    def _find(self, data: dict[str, Any], collection: str, row_id: int) -> dict[str, Any] | None:
        for row in data[collection]:
            if row["id"] == row_id:
                return row
        return None

    def _update(self, collection: str, row_id: int, columns: dict[str, Any], missing_ok: bool = False) -> dict | None:
        data = self._load()
        row = self._find(data, collection, row_id)
        if row is None:
            if missing_ok:
                logger.debug("Ignoring update of missing record", collection=collection, id=row_id)
                return None
            raise EntityNotFoundError(f"{collection} record {row_id} not found")

        row.update(columns)
        row["updated_at"] = _now()
        self._save(data)
        return row

    def _delete(self, collection: str, row_id: int) -> None:
        data = self._load()
        data[collection] = [r for r in data[collection] if r.get("id") != row_id]
        self._save(data)

    # Projects

    def list_projects(self) -> list[Project]:
        data = self._load()
        return [project_from_row(r) for r in sorted(data["projects"], key=lambda r: r["id"])]

    def read_project(self, project_id: int) -> Project:
        row = self._find(self._load(), "projects", project_id)
        if row is None:
            raise EntityNotFoundError(f"Project {project_id} not found")
        return project_from_row(row)

    def create_project(self, name: str, description: str = "") -> Project:
        logger.info("Creating project", name=name)
        data = self._load()
        row = self._insert(data, "projects", {"name": name, "description": description})
        self._save(data)
        return project_from_row(row)

    def update_project(self, project_id: int, name: str | None = None, description: str | None = None) -> Project:
        columns: dict[str, Any] = {}
        if name is not None:
            columns["name"] = name
        if description is not None:
            columns["description"] = description
        logger.info("Updating project", project_id=project_id, fields=list(columns))
        row = self._update("projects", project_id, columns)
        return project_from_row(row)  # type: ignore[arg-type]

    def delete_project(self, project_id: int) -> None:
        logger.info("Deleting project", project_id=project_id)
        data = self._load()
        data["projects"] = [r for r in data["projects"] if r["id"] != project_id]
        for name in ("tasks", "deliverables", "connections"):
            data[name] = [r for r in data[name] if r.get("project_id") != project_id]
        self._save(data)

    # Tasks

    def list_tasks(self, project_id: int) -> list[Task]:
        rows = [r for r in self._load()["tasks"] if r["project_id"] == project_id]
        return [task_from_row(r) for r in sorted(rows, key=lambda r: r["id"])]

    def create_task(
        self,
        project_id: int,
        name: str,
        description: str = "",
        status: str = "not_started",
        priority: Priority | str = Priority.MEDIUM,
        start_date: str | None = None,
        end_date: str | None = None,
        duration_days: int | None = None,
        assigned_to: int | None = None,
        position: Position | None = None,
    ) -> Task:
        logger.info("Creating task", project_id=project_id, name=name)
        columns = check_fields(
            NodeKind.TASK,
            {
                "name": name,
                "description": description,
                "status": status,
                "priority": priority,
                "start_date": start_date,
                "end_date": end_date,
                "duration_days": duration_days,
                "assigned_to": assigned_to,
                "position": position,
            },
        )
        data = self._load()
        row = self._insert(data, "tasks", {"project_id": project_id, **columns})
        self._save(data)
        return task_from_row(row)

    def update_task(self, task_id: int, **fields: Any) -> Task:
        columns = check_fields(NodeKind.TASK, fields)
        logger.info("Updating task", task_id=task_id, fields=list(fields))
        row = self._update("tasks", task_id, columns)
        return task_from_row(row)  # type: ignore[arg-type]

    def delete_task(self, task_id: int) -> None:
        logger.info("Deleting task", task_id=task_id)
        self._delete("tasks", task_id)

    def update_task_position(self, task_id: int, x: float, y: float) -> None:
        logger.debug("Updating task position", task_id=task_id, x=x, y=y)
        self._update("tasks", task_id, {"position_x": x, "position_y": y}, missing_ok=True)

    # Deliverables

    def list_deliverables(self, project_id: int) -> list[Deliverable]:
        rows = [r for r in self._load()["deliverables"] if r["project_id"] == project_id]
        return [deliverable_from_row(r) for r in sorted(rows, key=lambda r: r["id"])]

    def create_deliverable(
        self,
        project_id: int,
        name: str,
        description: str = "",
        status: str = "not_ready",
        type: str = "other",
        due_date: str | None = None,
        position: Position | None = None,
    ) -> Deliverable:
        logger.info("Creating deliverable", project_id=project_id, name=name)
        columns = check_fields(
            NodeKind.DELIVERABLE,
            {
                "name": name,
                "description": description,
                "status": status,
                "type": type,
                "due_date": due_date,
                "position": position,
            },
        )
        data = self._load()
        row = self._insert(data, "deliverables", {"project_id": project_id, **columns})
        self._save(data)
        return deliverable_from_row(row)

    def update_deliverable(self, deliverable_id: int, **fields: Any) -> Deliverable:
        columns = check_fields(NodeKind.DELIVERABLE, fields)
        logger.info("Updating deliverable", deliverable_id=deliverable_id, fields=list(fields))
        row = self._update("deliverables", deliverable_id, columns)
        return deliverable_from_row(row)  # type: ignore[arg-type]

    def delete_deliverable(self, deliverable_id: int) -> None:
        logger.info("Deleting deliverable", deliverable_id=deliverable_id)
        self._delete("deliverables", deliverable_id)

    def update_deliverable_position(self, deliverable_id: int, x: float, y: float) -> None:
        logger.debug("Updating deliverable position", deliverable_id=deliverable_id, x=x, y=y)
        self._update("deliverables", deliverable_id, {"position_x": x, "position_y": y}, missing_ok=True)

    # Connections

    def list_connections(self, project_id: int) -> list[Connection]:
        connections = connections_from_rows(self._load()["connections"])
        return sorted((c for c in connections if c.project_id == project_id), key=lambda c: c.id)

    def create_connection(self, project_id: int, source: NodeRef, target: NodeRef) -> Connection:
        data = self._load()
        for existing in connections_from_rows(data["connections"]):
            if existing.project_id == project_id and existing.source == source and existing.target == target:
                logger.debug("Connection already exists", connection_id=existing.id)
                return existing

        logger.info("Creating connection", project_id=project_id, source=source.encode(), target=target.encode())
        row = self._insert(
            data,
            "connections",
            {
                "project_id": project_id,
                "source_type": source.kind.value,
                "source_id": source.id,
                "target_type": target.kind.value,
                "target_id": target.id,
            },
        )
        self._save(data)
        return connection_from_row(row)

    def delete_connection(self, connection_id: int) -> None:
        logger.info("Deleting connection", connection_id=connection_id)
        self._delete("connections", connection_id)

    def delete_connections_for_node(self, node: NodeRef) -> None:
        data = self._load()
        before = len(data["connections"])
        doomed = {c.id for c in connections_from_rows(data["connections"]) if c.touches(node)}
        data["connections"] = [r for r in data["connections"] if r.get("id") not in doomed]
        logger.info("Deleting connections for node", node=node.encode(), count=before - len(data["connections"]))
        self._save(data)
