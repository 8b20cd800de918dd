"""Connection management commands for flow manager CLI."""

from cyclopts import App

connection_app = App(name="connection", help="Manage connections between nodes")


@connection_app.command
def add(source: str, target: str, project: int | None = None) -> None:
    """Connect a source node to a target node (e.g. task-1 deliverable-2)."""
    from flow_manager.cli import get_sync

    sync = get_sync(project)
    connection = sync.connect(source, target)
    if connection is None:
        print(f"No connection created from {source} to {target}")
        return
    print(f"Connection {connection.id}: {source} --> {target}")


@connection_app.command
def remove(*connection_ids: int, project: int | None = None) -> None:
    """Remove one or more connections by ID."""
    from flow_manager.cli import get_sync

    sync = get_sync(project)
    removed = sync.disconnect([f"connection-{cid}" for cid in connection_ids])
    print(f"Removed {removed} connection(s)")


@connection_app.command(name="list")
def list_connections(project: int | None = None) -> None:
    """List all connections of the project."""
    from flow_manager.cli import get_sync

    sync = get_sync(project)
    if not sync.edges:
        print("No connections found")
        return

    print(f"Connections ({len(sync.edges)}):\n")
    for edge in sync.edges:
        print(f"  {edge.connection_id}: {edge.source} --> {edge.target}")


@connection_app.command
def cycles(project: int | None = None) -> None:
    """Find and display cycles among connections."""
    from flow_manager.cli import get_sync

    sync = get_sync(project)
    found = sync.find_cycles()

    if not found:
        print("No cycles found")
        return

    print(f"Found {len(found)} cycle(s):\n")
    for i, cycle in enumerate(found, 1):
        cycle_str = " -> ".join(cycle)
        print(f"{i}. {cycle_str} -> {cycle[0]}")
