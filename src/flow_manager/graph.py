"""Graph sync engine: keeps the node/edge graph consistent with the store.

``GraphState`` holds the entity lists of one project and the graph derived
from them. It never talks to the store except in ``reload_from_store``.
``GraphSync`` routes editing gestures (connect, disconnect, delete, drag) to
store mutations and then refreshes the state.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import networkx as nx
import structlog

from flow_manager.errors import StoreError
from flow_manager.models import Connection, Deliverable, Entity, NodeKind, NodeRef, Position, Task
from flow_manager.store import Store

logger = structlog.get_logger()

# Fallback placement for nodes that have no stored position yet: one row per kind.
FALLBACK_X = 150.0
FALLBACK_SPACING = 250.0
FALLBACK_ROW_Y = {
    NodeKind.TASK: 100.0,
    NodeKind.DELIVERABLE: 300.0,
}

Notifier = Callable[[str], None]


@dataclass
class FlowNode:
    """A node on the editing surface."""

    id: str
    ref: NodeRef
    position: Position
    entity: Entity


@dataclass(frozen=True)
class FlowEdge:
    """An edge on the editing surface.

    ``connection_id`` is the store record the edge came from and is what
    routes a delete back to the store.
    """

    id: str
    source: str
    target: str
    connection_id: int | None = None


def fallback_position(kind: NodeKind, index: int) -> Position:
    """Position for the index-th entity of a kind that has never been placed."""
    return Position(FALLBACK_X + index * FALLBACK_SPACING, FALLBACK_ROW_Y[kind])


def edge_from_connection(connection: Connection) -> FlowEdge:
    return FlowEdge(
        id=f"connection-{connection.id}",
        source=connection.source.encode(),
        target=connection.target.encode(),
        connection_id=connection.id,
    )


class GraphState:
    """Entity lists of a project plus the graph reconciled from them."""

    def __init__(self) -> None:
        self.tasks: list[Task] = []
        self.deliverables: list[Deliverable] = []
        self.connections: list[Connection] = []
        self.nodes: dict[str, FlowNode] = {}
        self.edges: list[FlowEdge] = []

    def node(self, node_id: str) -> FlowNode | None:
        return self.nodes.get(node_id)

    def edge(self, edge_id: str) -> FlowEdge | None:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def reconcile(self) -> None:
        """Rebuild nodes and edges from the entity lists.

        Nodes that already exist keep their current position. New nodes take
        the entity's stored position, or a fallback slot in their kind's row.
        """
        previous = self.nodes
        nodes: dict[str, FlowNode] = {}

        entities: list[tuple[NodeKind, list[Any]]] = [
            (NodeKind.TASK, self.tasks),
            (NodeKind.DELIVERABLE, self.deliverables),
        ]
        for kind, items in entities:
            for index, entity in enumerate(items):
                ref = NodeRef(kind, entity.id)
                node_id = ref.encode()
                existing = previous.get(node_id)
                if existing is not None:
                    position = existing.position
                elif entity.position is not None:
                    position = entity.position
                else:
                    position = fallback_position(kind, index)
                nodes[node_id] = FlowNode(id=node_id, ref=ref, position=position, entity=entity)

        self.nodes = nodes
        self._reconcile_edges()
        logger.debug("Graph reconciled", nodes=len(self.nodes), edges=len(self.edges))

    def _reconcile_edges(self) -> None:
        edges = []
        for connection in self.connections:
            edge = edge_from_connection(connection)
            if edge.source not in self.nodes or edge.target not in self.nodes:
                logger.debug("Skipping dangling connection", connection_id=connection.id)
                continue
            edges.append(edge)
        self.edges = edges

    def apply_local(self, connection: Connection) -> None:
        """Add a connection the store has just created, without a reload."""
        if any(c.id == connection.id for c in self.connections):
            logger.debug("Connection already in graph", connection_id=connection.id)
            return
        self.connections.append(connection)
        self._reconcile_edges()

    def reload_from_store(
        self,
        store: Store,
        project_id: int,
        tasks: bool = True,
        deliverables: bool = True,
        connections: bool = True,
    ) -> bool:
        """Fetch the selected lists from the store and reconcile.

        On failure the state is left exactly as it was and False is returned.
        """
        try:
            new_tasks = store.list_tasks(project_id) if tasks else self.tasks
            new_deliverables = store.list_deliverables(project_id) if deliverables else self.deliverables
            new_connections = store.list_connections(project_id) if connections else self.connections
        except StoreError as e:
            logger.error("Failed to reload graph from store", project_id=project_id, error=str(e))
            return False

        self.tasks = list(new_tasks)
        self.deliverables = list(new_deliverables)
        self.connections = list(new_connections)
        self.reconcile()
        return True

    def move(self, node_id: str, position: Position) -> bool:
        """Move a node in memory only."""
        node = self.nodes.get(node_id)
        if node is None:
            return False
        node.position = position
        return True


def _log_notifier(message: str) -> None:
    logger.warning("User notification", message=message)


class GraphSync:
    """Routes graph editing gestures for one project to the store."""

    def __init__(
        self,
        store: Store,
        project_id: int,
        notify: Notifier | None = None,
        state: GraphState | None = None,
    ) -> None:
        """Initialize the sync engine.

        Args:
            store: Store holding the project's entities
            project_id: Project whose graph is edited
            notify: Callback showing a generic failure message to the user
            state: Existing state to adopt (a fresh one is created otherwise)
        """
        self.store = store
        self.project_id = project_id
        self.notify = notify or _log_notifier
        self.state = state or GraphState()

    @property
    def nodes(self) -> list[FlowNode]:
        return list(self.state.nodes.values())

    @property
    def edges(self) -> list[FlowEdge]:
        return list(self.state.edges)

    def load(self) -> bool:
        """Reload every list of the project from the store."""
        return self.state.reload_from_store(self.store, self.project_id)

    def reload(self, tasks: bool = True, deliverables: bool = True, connections: bool = True) -> bool:
        return self.state.reload_from_store(
            self.store, self.project_id, tasks=tasks, deliverables=deliverables, connections=connections
        )

    def _fail(self, message: str, error: Exception, **context: Any) -> None:
        logger.error(message, error=str(error), project_id=self.project_id, **context)
        self.notify(f"{message}: {error}")

    def add_task(self, name: str, **fields: Any) -> Task | None:
        """Create a task and refresh the task list."""
        try:
            task = self.store.create_task(self.project_id, name, **fields)
        except StoreError as e:
            self._fail("Failed to create task", e, name=name)
            return None
        self.reload(deliverables=False, connections=False)
        return task

    def add_deliverable(self, name: str, **fields: Any) -> Deliverable | None:
        """Create a deliverable and refresh the deliverable list."""
        try:
            deliverable = self.store.create_deliverable(self.project_id, name, **fields)
        except StoreError as e:
            self._fail("Failed to create deliverable", e, name=name)
            return None
        self.reload(tasks=False, connections=False)
        return deliverable

    def edit_node(self, node_id: str, **fields: Any) -> Entity | None:
        """Update the entity behind a node. The node keeps its position."""
        ref = NodeRef.decode(node_id)
        if ref is None:
            logger.debug("Ignoring edit of undecodable node", node_id=node_id)
            return None
        try:
            entity = self.store.update_entity(ref, **fields)
        except StoreError as e:
            self._fail("Failed to update node", e, node_id=node_id)
            return None
        self.reload(
            tasks=ref.kind is NodeKind.TASK,
            deliverables=ref.kind is NodeKind.DELIVERABLE,
            connections=False,
        )
        return entity

    def connect(self, source: str, target: str) -> Connection | None:
        """Create a connection between two nodes.

        Undecodable node ids, or ids that are not nodes of the loaded graph,
        make this a silent no-op. The new connection is added to the graph
        straight away instead of waiting for a reload.
        """
        source_ref = NodeRef.decode(source)
        target_ref = NodeRef.decode(target)
        if source_ref is None or target_ref is None:
            logger.debug("Ignoring connect with undecodable node", source=source, target=target)
            return None
        # both endpoints must be nodes of this project's graph
        if source_ref.encode() not in self.state.nodes or target_ref.encode() not in self.state.nodes:
            logger.debug("Ignoring connect with unknown node", source=source, target=target)
            return None

        try:
            connection = self.store.create_connection(self.project_id, source_ref, target_ref)
        except StoreError as e:
            self._fail("Failed to create connection", e, source=source, target=target)
            return None

        self.state.apply_local(connection)
        logger.info("Nodes connected", source=source, target=target, connection_id=connection.id)
        return connection

    def disconnect(self, edges: Iterable[FlowEdge | str]) -> int:
        """Delete the store records behind removed edges, then reload edges.

        Returns the number of connections deleted.
        """
        deleted = 0
        try:
            for item in edges:
                edge = self.state.edge(item) if isinstance(item, str) else item
                if edge is None or edge.connection_id is None:
                    continue
                self.store.delete_connection(edge.connection_id)
                deleted += 1
        except StoreError as e:
            self._fail("Failed to delete connection", e)
        finally:
            self.reload(tasks=False, deliverables=False)
        return deleted

    def delete_nodes(self, nodes: Iterable[FlowNode | str]) -> int:
        """Delete the entities behind nodes together with their connections.

        The entity delete and the connection cascade are both attempted even
        if one of them fails. Returns the number of nodes fully deleted.
        """
        deleted = 0
        for item in nodes:
            node_id = item.id if isinstance(item, FlowNode) else item
            ref = NodeRef.decode(node_id)
            if ref is None:
                logger.debug("Ignoring delete of undecodable node", node_id=node_id)
                continue

            errors: list[StoreError] = []
            try:
                self.store.delete_entity(ref)
            except StoreError as e:
                errors.append(e)
            try:
                self.store.delete_connections_for_node(ref)
            except StoreError as e:
                errors.append(e)

            if errors:
                self._fail("Failed to delete node", errors[0], node_id=node_id, failures=len(errors))
            else:
                logger.info("Node deleted", node_id=node_id)
                deleted += 1

        self.load()
        return deleted

    def move(self, node_id: str, position: Position) -> bool:
        """Intermediate drag frame: move the node without persisting."""
        return self.state.move(node_id, position)

    def drag_stop(self, nodes: Iterable[FlowNode | str]) -> int:
        """Persist the positions of nodes whose drag has completed.

        Returns the number of positions stored.
        """
        stored = 0
        for item in nodes:
            if isinstance(item, FlowNode):
                node_id, position = item.id, item.position
            else:
                node = self.state.node(item)
                if node is None:
                    logger.debug("Ignoring drag of unknown node", node_id=item)
                    continue
                node_id, position = node.id, node.position
            if self.persist_position(node_id, position):
                stored += 1
        return stored

    def persist_position(self, node_id: str, position: Position) -> bool:
        """Set a node's position in memory and in the store."""
        ref = NodeRef.decode(node_id)
        if ref is None:
            logger.debug("Ignoring position of undecodable node", node_id=node_id)
            return False

        self.state.move(node_id, position)
        try:
            self.store.update_position(ref, position.x, position.y)
        except StoreError as e:
            self._fail("Failed to save position", e, node_id=node_id)
            return False
        return True

    def find_cycles(self) -> list[list[str]]:
        """Find and return all cycles among the graph's nodes."""
        graph = nx.DiGraph()
        graph.add_nodes_from(self.state.nodes)
        graph.add_edges_from((edge.source, edge.target) for edge in self.state.edges)
        cycles = [list(cycle) for cycle in nx.simple_cycles(graph)]
        logger.debug("Found cycles", count=len(cycles))
        return cycles
