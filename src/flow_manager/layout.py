"""Layered left-to-right auto-layout.

The layout only looks at topology: current positions are ignored and the
result depends on nothing but the node and edge lists (including their order).

Steps:
1. Build a directed graph, dropping self-loops and edges to unknown nodes.
2. Reverse the back edges of a depth-first search so the graph is acyclic,
   then rank every node by its longest path from a source.
3. Order each rank with a fixed number of barycenter sweeps.
4. Turn (rank, slot) into top-left pixel coordinates.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import networkx as nx
import structlog

from flow_manager.config import Config
from flow_manager.models import Position

if TYPE_CHECKING:
    from flow_manager.graph import GraphSync

logger = structlog.get_logger()


@dataclass(frozen=True)
class LayoutOptions:
    """Node size and spacing, in pixels."""

    node_width: float = 220.0
    node_height: float = 100.0
    rank_sep: float = 80.0
    node_sep: float = 40.0
    margin_x: float = 50.0
    margin_y: float = 50.0
    sweeps: int = 4

    @classmethod
    def from_config(cls, config: Config) -> "LayoutOptions":
        """Read ``layout.*`` keys, falling back to the defaults."""
        defaults = cls()
        return cls(
            node_width=config.get_float("layout.node_width", defaults.node_width),
            node_height=config.get_float("layout.node_height", defaults.node_height),
            rank_sep=config.get_float("layout.rank_sep", defaults.rank_sep),
            node_sep=config.get_float("layout.node_sep", defaults.node_sep),
            margin_x=config.get_float("layout.margin_x", defaults.margin_x),
            margin_y=config.get_float("layout.margin_y", defaults.margin_y),
            sweeps=config.get_int("layout.sweeps", defaults.sweeps) or 0,
        )


class LayoutEngine:
    """Computes deterministic node positions from edge topology."""

    def __init__(self, options: LayoutOptions | None = None) -> None:
        self.options = options or LayoutOptions()

    def compute(self, node_ids: Sequence[str], edges: Iterable[tuple[str, str]]) -> dict[str, Position]:
        """Compute a position for every node.

        Args:
            node_ids: Nodes in their input order
            edges: (source, target) pairs

        Returns:
            Mapping from node id to the top-left corner of its box
        """
        order = {node_id: index for index, node_id in enumerate(dict.fromkeys(node_ids))}
        if not order:
            return {}

        graph = nx.DiGraph()
        graph.add_nodes_from(order)
        for source, target in edges:
            if source == target or source not in order or target not in order:
                continue
            graph.add_edge(source, target)

        reversed_count = self._break_cycles(graph)
        ranks = self._assign_ranks(graph, order)
        layers = self._order_layers(graph, ranks, order)
        positions = self._coordinates(layers)

        logger.debug(
            "Layout computed",
            nodes=len(positions),
            edges=graph.number_of_edges(),
            ranks=len(layers),
            reversed_edges=reversed_count,
        )
        return positions

    def _break_cycles(self, graph: nx.DiGraph) -> int:
        """Reverse every back edge found by a depth-first search.

        Reversing the back edges of a single DFS always leaves an acyclic
        graph. Returns the number of edges reversed.
        """
        on_stack: set[str] = set()
        back_edges = []
        for u, v, label in nx.dfs_labeled_edges(graph):
            if label == "forward":
                on_stack.add(v)
            elif label == "reverse":
                on_stack.discard(v)
            elif label == "nontree" and v in on_stack:
                back_edges.append((u, v))

        for u, v in back_edges:
            graph.remove_edge(u, v)
            if not graph.has_edge(v, u):
                graph.add_edge(v, u)
        return len(back_edges)

    def _assign_ranks(self, graph: nx.DiGraph, order: dict[str, int]) -> dict[str, int]:
        """Longest path from a source: each node sits one rank after its furthest predecessor."""
        ranks: dict[str, int] = {}
        for node in nx.lexicographical_topological_sort(graph, key=order.__getitem__):
            ranks[node] = max((ranks[p] + 1 for p in graph.predecessors(node)), default=0)
        return ranks

    def _order_layers(self, graph: nx.DiGraph, ranks: dict[str, int], order: dict[str, int]) -> list[list[str]]:
        layers: list[list[str]] = [[] for _ in range(max(ranks.values()) + 1)]
        for node in order:
            layers[ranks[node]].append(node)
        slot = {node: index for layer in layers for index, node in enumerate(layer)}

        for sweep in range(self.options.sweeps):
            downward = sweep % 2 == 0
            indices = range(1, len(layers)) if downward else range(len(layers) - 2, -1, -1)
            for rank in indices:
                layer = layers[rank]
                keys = {node: (self._barycenter(graph, node, slot, downward), slot[node]) for node in layer}
                layer.sort(key=keys.__getitem__)
                for index, node in enumerate(layer):
                    slot[node] = index

        return layers

    def _barycenter(self, graph: nx.DiGraph, node: str, slot: dict[str, int], downward: bool) -> float:
        neighbours = graph.predecessors(node) if downward else graph.successors(node)
        positions = [slot[n] for n in neighbours]
        if not positions:
            return float(slot[node])
        return sum(positions) / len(positions)

    def _coordinates(self, layers: list[list[str]]) -> dict[str, Position]:
        opts = self.options
        step_x = opts.node_width + opts.rank_sep
        step_y = opts.node_height + opts.node_sep
        tallest = max(len(layer) for layer in layers)

        positions: dict[str, Position] = {}
        for rank, layer in enumerate(layers):
            offset = (tallest - len(layer)) * step_y / 2
            for index, node in enumerate(layer):
                positions[node] = Position(
                    opts.margin_x + rank * step_x,
                    opts.margin_y + offset + index * step_y,
                )
        return positions

    def apply(self, sync: "GraphSync") -> dict[str, Position]:
        """Lay out the sync engine's graph and persist every new position."""
        node_ids = [node.id for node in sync.nodes]
        edges = [(edge.source, edge.target) for edge in sync.edges]
        positions = self.compute(node_ids, edges)

        stored = sum(1 for node_id, position in positions.items() if sync.persist_position(node_id, position))

        logger.info("Auto-layout applied", nodes=len(positions), stored=stored)
        return positions
