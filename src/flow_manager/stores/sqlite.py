"""Relational store backed by SQLite.

Schema:
- projects: partition key for everything else
- tasks / deliverables: graph nodes, positions nullable until first layout or drag
- flow_connections: directed edges between (kind, id) endpoints
- schema_info: version tracking
"""

import sqlite3
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

SCHEMA_VERSION = 1

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS schema_info (
        version INTEGER PRIMARY KEY,
        applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS projects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'not_started',
        priority TEXT CHECK(priority IN ('low', 'medium', 'high', 'critical')) DEFAULT 'medium',
        start_date TEXT,
        end_date TEXT,
        duration_days INTEGER,
        assigned_to INTEGER,
        position_x REAL,
        position_y REAL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
    )""",
    """CREATE TABLE IF NOT EXISTS deliverables (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'not_ready',
        type TEXT NOT NULL DEFAULT 'other',
        due_date TEXT,
        position_x REAL,
        position_y REAL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
    )""",
    """CREATE TABLE IF NOT EXISTS flow_connections (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        source_type TEXT CHECK(source_type IN ('task', 'deliverable')) NOT NULL,
        source_id INTEGER NOT NULL,
        target_type TEXT CHECK(target_type IN ('task', 'deliverable')) NOT NULL,
        target_id INTEGER NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
    )""",
    "CREATE INDEX IF NOT EXISTS idx_tasks_project_id ON tasks(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_deliverables_project_id ON deliverables(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_flow_connections_project_id ON flow_connections(project_id)",
]


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Row factory that returns rows as dictionaries."""
    fields = [column[0] for column in cursor.description]
    return dict(zip(fields, row))


class SqliteStore(Store):
    """Store that keeps entities in a SQLite database."""

    def __init__(self, path: Path | str) -> None:
        """Initialize SQLite store.

        Args:
            path: Database file, or ":memory:" for a throwaway database
        """
        self.path = str(path)
        logger.debug("Initializing SQLite store", path=self.path)

        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.path)
            self.conn.execute("PRAGMA foreign_keys=ON")
            self.conn.row_factory = dict_factory
            self._create_schema()
        except sqlite3.Error as e:
            logger.error("Failed to initialize SQLite store", path=self.path, error=str(e))
            raise StoreError(f"Failed to open database {self.path}: {e}") from e

    def _create_schema(self) -> None:
        with self.conn:
            for statement in SCHEMA:
                self.conn.execute(statement)
            self.conn.execute("INSERT OR IGNORE INTO schema_info (version) VALUES (?)", (SCHEMA_VERSION,))

    def close(self) -> None:
        self.conn.close()

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("SQLite query failed", sql=sql, error=str(e))
            raise StoreError(str(e)) from e

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        try:
            with self.conn:
                return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error("SQLite statement failed", sql=sql, error=str(e))
            raise StoreError(str(e)) from e

    def _insert(self, table: str, columns: dict[str, Any]) -> dict[str, Any]:
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        cursor = self._execute(f"INSERT INTO {table} ({names}) VALUES ({placeholders})", tuple(columns.values()))
        return self._get(table, cursor.lastrowid)  # type: ignore[return-value,arg-type]

    def _get(self, table: str, row_id: int) -> dict[str, Any] | None:
        rows = self._query(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return rows[0] if rows else None

    def _update(self, table: str, row_id: int, columns: dict[str, Any]) -> int:
        """Apply column updates, returning the number of rows changed."""
        assignments = [f"{name} = ?" for name in columns]
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        cursor = self._execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?",
            (*columns.values(), row_id),
        )
        return cursor.rowcount

    def _update_or_raise(self, table: str, row_id: int, columns: dict[str, Any]) -> dict[str, Any]:
        if not self._update(table, row_id, columns):
            raise EntityNotFoundError(f"{table} record {row_id} not found")
        return self._get(table, row_id)  # type: ignore[return-value]

    # Projects

    def list_projects(self) -> list[Project]:
        return [project_from_row(r) for r in self._query("SELECT * FROM projects ORDER BY id")]

    def read_project(self, project_id: int) -> Project:
        row = self._get("projects", project_id)
        if row is None:
            raise EntityNotFoundError(f"Project {project_id} not found")
        return project_from_row(row)

    def create_project(self, name: str, description: str = "") -> Project:
        logger.info("Creating project", name=name)
        return project_from_row(self._insert("projects", {"name": name, "description": description}))

    def update_project(self, project_id: int, name: str | None = None, description: str | None = None) -> Project:
        columns: dict[str, Any] = {}
        if name is not None:
            columns["name"] = name
        if description is not None:
            columns["description"] = description
        logger.info("Updating project", project_id=project_id, fields=list(columns))
        return project_from_row(self._update_or_raise("projects", project_id, columns))

    def delete_project(self, project_id: int) -> None:
        logger.info("Deleting project", project_id=project_id)
        self._execute("DELETE FROM projects WHERE id = ?", (project_id,))

    # Tasks

    def list_tasks(self, project_id: int) -> list[Task]:
        rows = self._query("SELECT * FROM tasks WHERE project_id = ? ORDER BY id", (project_id,))
        return [task_from_row(r) for r in rows]

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
        return task_from_row(self._insert("tasks", {"project_id": project_id, **columns}))

    def update_task(self, task_id: int, **fields: Any) -> Task:
        columns = check_fields(NodeKind.TASK, fields)
        logger.info("Updating task", task_id=task_id, fields=list(fields))
        return task_from_row(self._update_or_raise("tasks", task_id, columns))

    def delete_task(self, task_id: int) -> None:
        logger.info("Deleting task", task_id=task_id)
        self._execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    def update_task_position(self, task_id: int, x: float, y: float) -> None:
        logger.debug("Updating task position", task_id=task_id, x=x, y=y)
        self._update("tasks", task_id, {"position_x": x, "position_y": y})

    # Deliverables

    def list_deliverables(self, project_id: int) -> list[Deliverable]:
        rows = self._query("SELECT * FROM deliverables WHERE project_id = ? ORDER BY id", (project_id,))
        return [deliverable_from_row(r) for r in rows]

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
        return deliverable_from_row(self._insert("deliverables", {"project_id": project_id, **columns}))

    def update_deliverable(self, deliverable_id: int, **fields: Any) -> Deliverable:
        columns = check_fields(NodeKind.DELIVERABLE, fields)
        logger.info("Updating deliverable", deliverable_id=deliverable_id, fields=list(fields))
        return deliverable_from_row(self._update_or_raise("deliverables", deliverable_id, columns))

    def delete_deliverable(self, deliverable_id: int) -> None:
        logger.info("Deleting deliverable", deliverable_id=deliverable_id)
        self._execute("DELETE FROM deliverables WHERE id = ?", (deliverable_id,))

    def update_deliverable_position(self, deliverable_id: int, x: float, y: float) -> None:
        logger.debug("Updating deliverable position", deliverable_id=deliverable_id, x=x, y=y)
        self._update("deliverables", deliverable_id, {"position_x": x, "position_y": y})

    # Connections

    def list_connections(self, project_id: int) -> list[Connection]:
        rows = self._query("SELECT * FROM flow_connections WHERE project_id = ? ORDER BY id", (project_id,))
        return connections_from_rows(rows)

    def create_connection(self, project_id: int, source: NodeRef, target: NodeRef) -> Connection:
        params = (project_id, source.kind.value, source.id, target.kind.value, target.id)
        existing = self._query(
            "SELECT * FROM flow_connections WHERE project_id = ? AND source_type = ? AND source_id = ? "
            "AND target_type = ? AND target_id = ? ORDER BY id LIMIT 1",
            params,
        )
        if existing:
            logger.debug("Connection already exists", connection_id=existing[0]["id"])
            return connection_from_row(existing[0])

        logger.info("Creating connection", project_id=project_id, source=source.encode(), target=target.encode())
        row = self._insert(
            "flow_connections",
            {
                "project_id": project_id,
                "source_type": source.kind.value,
                "source_id": source.id,
                "target_type": target.kind.value,
                "target_id": target.id,
            },
        )
        return connection_from_row(row)

    def delete_connection(self, connection_id: int) -> None:
        logger.info("Deleting connection", connection_id=connection_id)
        self._execute("DELETE FROM flow_connections WHERE id = ?", (connection_id,))

    def delete_connections_for_node(self, node: NodeRef) -> None:
        cursor = self._execute(
            "DELETE FROM flow_connections WHERE (source_type = ? AND source_id = ?) OR (target_type = ? AND target_id = ?)",
            (node.kind.value, node.id, node.kind.value, node.id),
        )
        logger.info("Deleting connections for node", node=node.encode(), count=cursor.rowcount)
