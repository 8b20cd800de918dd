"""Data models for flow manager."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class NodeKind(str, Enum):
    """Kinds of entity that can appear as a node in the flow graph."""

    TASK = "task"
    DELIVERABLE = "deliverable"


class Priority(str, Enum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Position:
    """Top-left corner of a node on the canvas."""

    x: float
    y: float


@dataclass(frozen=True)
class NodeRef:
    """Identity of a graph node: the entity kind plus its store id.

    This is the only place that knows the string form used by the graph
    surface ("task-12", "deliverable-3").
    """

    kind: NodeKind
    id: int

    def encode(self) -> str:
        """Return the graph node id for this entity."""
        return f"{self.kind.value}-{self.id}"

    @classmethod
    def decode(cls, node_id: Any) -> "NodeRef | None":
        """Parse a graph node id.

        Returns None for anything that is not "<kind>-<integer>" with a known
        kind, never raises.
        """
        if not isinstance(node_id, str):
            return None
        tag, sep, suffix = node_id.partition("-")
        if not sep or not suffix.isdigit() or not suffix.isascii():
            return None
        try:
            kind = NodeKind(tag)
        except ValueError:
            return None
        return cls(kind=kind, id=int(suffix))

    @classmethod
    def from_entity(cls, entity: "Task | Deliverable") -> "NodeRef":
        """Build the identity of a task or deliverable."""
        kind = NodeKind.TASK if isinstance(entity, Task) else NodeKind.DELIVERABLE
        return cls(kind=kind, id=entity.id)


@dataclass
class Project:
    """A project partitions tasks, deliverables and connections."""

    id: int
    name: str
    description: str = ""
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Task:
    """A work item."""

    id: int
    project_id: int
    name: str
    description: str = ""
    status: str = "not_started"
    priority: Priority = Priority.MEDIUM
    start_date: str | None = None
    end_date: str | None = None
    duration_days: int | None = None
    assigned_to: int | None = None
    position: Position | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Deliverable:
    """An output artifact."""

    id: int
    project_id: int
    name: str
    description: str = ""
    status: str = "not_ready"
    type: str = "other"
    due_date: str | None = None
    position: Position | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Connection:
    """A directed dependency between two nodes of the same project."""

    id: int
    project_id: int
    source_type: NodeKind
    source_id: int
    target_type: NodeKind
    target_id: int
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def source(self) -> NodeRef:
        return NodeRef(self.source_type, self.source_id)

    @property
    def target(self) -> NodeRef:
        return NodeRef(self.target_type, self.target_id)

    def touches(self, node: NodeRef) -> bool:
        """Return True if either endpoint is the given node."""
        return self.source == node or self.target == node


Entity = Union[Task, Deliverable]

# Fields a caller may set on create/update. Identity, project and timestamps
# are owned by the store.
TASK_FIELDS = (
    "name",
    "description",
    "status",
    "priority",
    "start_date",
    "end_date",
    "duration_days",
    "assigned_to",
    "position",
)
DELIVERABLE_FIELDS = ("name", "description", "status", "type", "due_date", "position")


def position_from_xy(x: Any, y: Any) -> Position | None:
    """Build a Position from raw column values, None if either is unset."""
    if x is None or y is None:
        return None
    return Position(float(x), float(y))
