"""CLI for flow manager."""

import sys
from pathlib import Path
from typing import Annotated, Literal

import structlog
from cyclopts import App, Parameter

from flow_manager.config import get_config
from flow_manager.config_commands import config_app
from flow_manager.connection_commands import connection_app
from flow_manager.errors import ConfigError, FlowManagerError, StoreError, UnrecognizedFileError
from flow_manager.graph import GraphSync
from flow_manager.layout import LayoutEngine, LayoutOptions
from flow_manager.models import Deliverable, Position
from flow_manager.project_commands import project_app
from flow_manager.snapshot import export_document, export_filename, import_snapshot
from flow_manager.store import Store
from flow_manager.stores import get_store as store_from_config

logger = structlog.get_logger()

app = App(
    help="Flow Manager - Model a project as a graph of tasks and deliverables",
)

app.command(project_app)
app.command(connection_app)
app.command(config_app)

PriorityName = Literal["low", "medium", "high", "critical"]


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def notify(message: str) -> None:
    """Show a failure message to the user."""
    print(f"Error: {message}", file=sys.stderr)


def get_store() -> Store:
    """Get the configured store."""
    return store_from_config(get_config())


def resolve_project(project: int | None) -> int:
    """Return the project given on the command line or the configured default."""
    if project is not None:
        return project

    configured = get_config().get_int("project")
    if configured is None:
        raise ConfigError(
            "No project selected. Pass --project <id> or set a default using:\n"
            "  fm config set project <id>"
        )
    return configured


def get_sync(project: int | None = None) -> GraphSync:
    """Get a sync engine loaded with the selected project's graph."""
    project_id = resolve_project(project)
    store = get_store()
    store.read_project(project_id)

    sync = GraphSync(store, project_id, notify=notify)
    if not sync.load():
        raise StoreError(f"Failed to load project {project_id}")
    return sync


@app.command
def add_task(
    name: str,
    description: str = "",
    status: str = "not_started",
    priority: PriorityName = "medium",
    start_date: str | None = None,
    end_date: str | None = None,
    duration_days: int | None = None,
    project: int | None = None,
) -> None:
    """Add a task to the project."""
    sync = get_sync(project)
    task = sync.add_task(
        name,
        description=description,
        status=status,
        priority=priority,
        start_date=start_date,
        end_date=end_date,
        duration_days=duration_days,
    )
    if task:
        print(f"Created task {task.id}: {task.name}")


@app.command
def add_deliverable(
    name: str,
    description: str = "",
    status: str = "not_ready",
    type: str = "other",
    due_date: str | None = None,
    project: int | None = None,
) -> None:
    """Add a deliverable to the project."""
    sync = get_sync(project)
    deliverable = sync.add_deliverable(name, description=description, status=status, type=type, due_date=due_date)
    if deliverable:
        print(f"Created deliverable {deliverable.id}: {deliverable.name}")


@app.command
def edit(
    node_id: str,
    name: str | None = None,
    description: str | None = None,
    status: str | None = None,
    priority: PriorityName | None = None,
    project: int | None = None,
) -> None:
    """Edit the task or deliverable behind a node (e.g. task-3)."""
    sync = get_sync(project)
    fields = {"name": name, "description": description, "status": status, "priority": priority}
    fields = {k: v for k, v in fields.items() if v is not None}
    node = sync.state.node(node_id)
    if node is not None and isinstance(node.entity, Deliverable):
        # deliverables have no priority
        fields.pop("priority", None)

    entity = sync.edit_node(node_id, **fields)
    if entity:
        print(f"Updated {node_id}: {entity.name}")
    else:
        print(f"Nothing updated for {node_id}")


@app.command
def show(project: int | None = None) -> None:
    """Show the nodes and edges of the project graph."""
    sync = get_sync(project)

    print(f"Nodes ({len(sync.nodes)}):\n")
    for node in sync.nodes:
        print(f"  {node.id:<18} ({node.position.x:g}, {node.position.y:g})  {node.entity.name} [{node.entity.status}]")

    print(f"\nEdges ({len(sync.edges)}):\n")
    for edge in sync.edges:
        print(f"  {edge.id:<18} {edge.source} --> {edge.target}")


@app.command
def move(node_id: str, x: float, y: float, project: int | None = None) -> None:
    """Move a node and store its new position."""
    sync = get_sync(project)
    if not sync.move(node_id, Position(x, y)):
        print(f"No node {node_id}")
        return
    if sync.drag_stop([node_id]):
        print(f"Moved {node_id} to ({x:g}, {y:g})")


@app.command
def delete(*node_ids: str, project: int | None = None) -> None:
    """Delete one or more nodes together with their connections."""
    sync = get_sync(project)
    deleted = sync.delete_nodes(node_ids)
    print(f"Deleted {deleted} node(s)")


@app.command
def layout(project: int | None = None) -> None:
    """Lay out the project graph automatically and store the positions."""
    sync = get_sync(project)
    engine = LayoutEngine(LayoutOptions.from_config(get_config()))
    positions = engine.apply(sync)
    print(f"Laid out {len(positions)} node(s)")


@app.command
def export(output: Path | None = None, project: int | None = None) -> None:
    """Export the project graph to a Markdown file."""
    project_id = resolve_project(project)
    store = get_store()
    document = export_document(store, project_id)

    if output is None:
        output = Path(export_filename(store.read_project(project_id).name))
    try:
        output.write_text(document, encoding="utf-8")
    except OSError as e:
        raise FlowManagerError(f"Cannot write {output}: {e}") from e
    print(f"Exported project {project_id} to {output}")


@app.command(name="import")
def import_(path: Path, project: int | None = None) -> None:
    """Import an exported Markdown file into the project."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise UnrecognizedFileError(f"Cannot read {path}: {e}") from e

    sync = get_sync(project)
    result = import_snapshot(sync, text)
    print(result.summary())


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    try:
        app(tokens)
    except FlowManagerError as e:
        logger.debug("Command failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    app.meta()
