"""Store interface for flow manager entities."""

from abc import ABC, abstractmethod
from typing import Any

from flow_manager.models import Connection, Deliverable, NodeKind, NodeRef, Position, Priority, Project, Task


class Store(ABC):
    """Abstract base class for entity stores.

    A store owns projects, tasks, deliverables and connections and assigns
    their ids and timestamps. Create and update calls return the persisted
    record. Delete calls return nothing.
    """

    # Projects

    @abstractmethod
    def list_projects(self) -> list[Project]:
        """List all projects."""
        pass

    @abstractmethod
    def read_project(self, project_id: int) -> Project:
        """Read a project by ID."""
        pass

    @abstractmethod
    def create_project(self, name: str, description: str = "") -> Project:
        """Create a new project."""
        pass

    @abstractmethod
    def update_project(self, project_id: int, name: str | None = None, description: str | None = None) -> Project:
        """Update a project."""
        pass

    @abstractmethod
    def delete_project(self, project_id: int) -> None:
        """Delete a project together with its tasks, deliverables and connections."""
        pass

    # Tasks

    @abstractmethod
    def list_tasks(self, project_id: int) -> list[Task]:
        """List the tasks of a project in id order."""
        pass

    @abstractmethod
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
        """Create a new task."""
        pass

    @abstractmethod
    def update_task(self, task_id: int, **fields: Any) -> Task:
        """Update a task.

        Only the given fields are changed. Raises EntityNotFoundError if the
        task does not exist.
        """
        pass

    @abstractmethod
    def delete_task(self, task_id: int) -> None:
        """Delete a task. Its connections are not touched."""
        pass

    @abstractmethod
    def update_task_position(self, task_id: int, x: float, y: float) -> None:
        """Store a task's canvas position. Missing tasks are ignored."""
        pass

    # Deliverables

    @abstractmethod
    def list_deliverables(self, project_id: int) -> list[Deliverable]:
        """List the deliverables of a project in id order."""
        pass

    @abstractmethod
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
        """Create a new deliverable."""
        pass

    @abstractmethod
    def update_deliverable(self, deliverable_id: int, **fields: Any) -> Deliverable:
        """Update a deliverable.

        Only the given fields are changed. Raises EntityNotFoundError if the
        deliverable does not exist.
        """
        pass

    @abstractmethod
    def delete_deliverable(self, deliverable_id: int) -> None:
        """Delete a deliverable. Its connections are not touched."""
        pass

    @abstractmethod
    def update_deliverable_position(self, deliverable_id: int, x: float, y: float) -> None:
        """Store a deliverable's canvas position. Missing deliverables are ignored."""
        pass

    # Connections

    @abstractmethod
    def list_connections(self, project_id: int) -> list[Connection]:
        """List the connections of a project in creation order."""
        pass

    @abstractmethod
    def create_connection(self, project_id: int, source: NodeRef, target: NodeRef) -> Connection:
        """Create a connection from source to target.

        If the project already has a connection with the same ordered endpoint
        pair, that connection is returned and nothing is created.
        """
        pass

    @abstractmethod
    def delete_connection(self, connection_id: int) -> None:
        """Delete a connection."""
        pass

    @abstractmethod
    def delete_connections_for_node(self, node: NodeRef) -> None:
        """Delete every connection that starts or ends at the given node."""
        pass

    # Helpers shared by all stores

    def update_position(self, node: NodeRef, x: float, y: float) -> None:
        """Store the position of a node, routed by its kind."""
        if node.kind is NodeKind.TASK:
            self.update_task_position(node.id, x, y)
        else:
            self.update_deliverable_position(node.id, x, y)

    def delete_entity(self, node: NodeRef) -> None:
        """Delete the task or deliverable behind a node."""
        if node.kind is NodeKind.TASK:
            self.delete_task(node.id)
        else:
            self.delete_deliverable(node.id)

    def update_entity(self, node: NodeRef, **fields: Any) -> Task | Deliverable:
        """Update the task or deliverable behind a node."""
        if node.kind is NodeKind.TASK:
            return self.update_task(node.id, **fields)
        return self.update_deliverable(node.id, **fields)
