"""In-memory store used by the tests."""

from dataclasses import replace
from typing import Any

from flow_manager.errors import EntityNotFoundError, StoreError
from flow_manager.models import Connection, Deliverable, NodeRef, Position, Priority, Project, Task
from flow_manager.store import Store


class MockStore(Store):
    """Mock store for testing.

    Any method whose name is in ``fail_on`` raises StoreError instead of
    running, and every call is recorded in ``calls``.
    """

    def __init__(self) -> None:
        """Initialize mock store."""
        self.projects: dict[int, Project] = {}
        self.tasks: dict[int, Task] = {}
        self.deliverables: dict[int, Deliverable] = {}
        self.connections: dict[int, Connection] = {}
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._next_ids = {"project": 1, "task": 1, "deliverable": 1, "connection": 1}

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise StoreError(f"{name} failed")

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] += 1
        return value

    def list_projects(self) -> list[Project]:
        self._call("list_projects")
        return list(self.projects.values())

    def read_project(self, project_id: int) -> Project:
        self._call("read_project", project_id)
        if project_id not in self.projects:
            raise EntityNotFoundError(f"Project {project_id} not found")
        return self.projects[project_id]

    def create_project(self, name: str, description: str = "") -> Project:
        self._call("create_project", name)
        project = Project(id=self._next_id("project"), name=name, description=description, created_at="now")
        self.projects[project.id] = project
        return project

    def update_project(self, project_id: int, name: str | None = None, description: str | None = None) -> Project:
        self._call("update_project", project_id)
        project = self.read_project(project_id)
        if name is not None:
            project.name = name
        if description is not None:
            project.description = description
        return project

    def delete_project(self, project_id: int) -> None:
        self._call("delete_project", project_id)
        self.projects.pop(project_id, None)
        for items in (self.tasks, self.deliverables, self.connections):
            for key in [k for k, v in items.items() if v.project_id == project_id]:
                del items[key]

    def list_tasks(self, project_id: int) -> list[Task]:
        self._call("list_tasks", project_id)
        return [replace(t) for t in self.tasks.values() if t.project_id == project_id]

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
        self._call("create_task", project_id, name)
        task = Task(
            id=self._next_id("task"),
            project_id=project_id,
            name=name,
            description=description,
            status=status,
            priority=Priority(priority),
            start_date=start_date,
            end_date=end_date,
            duration_days=duration_days,
            assigned_to=assigned_to,
            position=position,
        )
        self.tasks[task.id] = task
        return replace(task)

    def update_task(self, task_id: int, **fields: Any) -> Task:
        self._call("update_task", task_id)
        if task_id not in self.tasks:
            raise EntityNotFoundError(f"Task {task_id} not found")
        self.tasks[task_id] = replace(self.tasks[task_id], **fields)
        return replace(self.tasks[task_id])

    def delete_task(self, task_id: int) -> None:
        self._call("delete_task", task_id)
        self.tasks.pop(task_id, None)

    def update_task_position(self, task_id: int, x: float, y: float) -> None:
        self._call("update_task_position", task_id, x, y)
        if task_id in self.tasks:
            self.tasks[task_id].position = Position(x, y)

    def list_deliverables(self, project_id: int) -> list[Deliverable]:
        self._call("list_deliverables", project_id)
        return [replace(d) for d in self.deliverables.values() if d.project_id == project_id]

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
        self._call("create_deliverable", project_id, name)
        deliverable = Deliverable(
            id=self._next_id("deliverable"),
            project_id=project_id,
            name=name,
            description=description,
            status=status,
            type=type,
            due_date=due_date,
            position=position,
        )
        self.deliverables[deliverable.id] = deliverable
        return replace(deliverable)

    def update_deliverable(self, deliverable_id: int, **fields: Any) -> Deliverable:
        self._call("update_deliverable", deliverable_id)
        if deliverable_id not in self.deliverables:
            raise EntityNotFoundError(f"Deliverable {deliverable_id} not found")
        self.deliverables[deliverable_id] = replace(self.deliverables[deliverable_id], **fields)
        return replace(self.deliverables[deliverable_id])

    def delete_deliverable(self, deliverable_id: int) -> None:
        self._call("delete_deliverable", deliverable_id)
        self.deliverables.pop(deliverable_id, None)

    def update_deliverable_position(self, deliverable_id: int, x: float, y: float) -> None:
        self._call("update_deliverable_position", deliverable_id, x, y)
        if deliverable_id in self.deliverables:
            self.deliverables[deliverable_id].position = Position(x, y)

    def list_connections(self, project_id: int) -> list[Connection]:
        self._call("list_connections", project_id)
        return [replace(c) for c in self.connections.values() if c.project_id == project_id]

    def create_connection(self, project_id: int, source: NodeRef, target: NodeRef) -> Connection:
        self._call("create_connection", project_id, source, target)
        for connection in self.connections.values():
            if connection.project_id == project_id and connection.source == source and connection.target == target:
                return replace(connection)
        connection = Connection(
            id=self._next_id("connection"),
            project_id=project_id,
            source_type=source.kind,
            source_id=source.id,
            target_type=target.kind,
            target_id=target.id,
        )
        self.connections[connection.id] = connection
        return replace(connection)

    def delete_connection(self, connection_id: int) -> None:
        self._call("delete_connection", connection_id)
        self.connections.pop(connection_id, None)

    def delete_connections_for_node(self, node: NodeRef) -> None:
        self._call("delete_connections_for_node", node)
        for key in [k for k, c in self.connections.items() if c.touches(node)]:
            del self.connections[key]
