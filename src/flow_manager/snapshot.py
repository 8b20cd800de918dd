"""Versioned export/import of a project's flow graph.

An export is a Markdown document with two fenced blocks: a Mermaid diagram for
people and exactly one ``json`` block holding the snapshot::

    {
      "version": "1.0",
      "exportDate": "...",
      "project": {"id", "name", "description", "created_at"},
      "tasks": [...],
      "deliverables": [...],
      "connections": [{"source_type", "source_id", "target_type", "target_id"}, ...]
    }

Entity ids in a snapshot are correlation keys only. Import creates fresh
entities and rewires connections through per-kind old-id -> new-id tables, so
a file can be imported any number of times into any project.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from flow_manager.errors import StoreError, UnrecognizedFileError, UnsupportedVersionError
from flow_manager.graph import GraphSync
from flow_manager.models import NodeKind, NodeRef, Position, Priority
from flow_manager.records import deliverable_to_row, task_to_row
from flow_manager.store import Store

logger = structlog.get_logger()

SNAPSHOT_VERSION = "1.0"
SUPPORTED_VERSIONS = frozenset({SNAPSHOT_VERSION})

DATA_BLOCK = re.compile(r"```json\n([\s\S]*?)\n```")

TASK_STATUS_LABELS = {
    "not_started": "Not started",
    "in_progress": "In progress",
    "completed": "Completed",
    "blocked": "Blocked",
}
DELIVERABLE_STATUS_LABELS = {
    "not_ready": "Not ready",
    "ready": "Ready",
    "completed": "Completed",
}
PRIORITY_LABELS = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "critical": "Critical",
}


@dataclass
class ImportResult:
    """Outcome of an import."""

    tasks: int = 0
    deliverables: int = 0
    connections: int = 0
    skipped_connections: int = 0
    task_ids: dict[Any, int] = field(default_factory=dict)
    deliverable_ids: dict[Any, int] = field(default_factory=dict)

    def summary(self) -> str:
        text = (
            f"Imported {self.tasks} task(s), {self.deliverables} deliverable(s) "
            f"and {self.connections} connection(s)"
        )
        if self.skipped_connections:
            text += f"; skipped {self.skipped_connections} invalid connection(s)"
        return text


# Export


def export_snapshot(store: Store, project_id: int, now: datetime | None = None) -> dict[str, Any]:
    """Collect a project's entities and connections into a snapshot."""
    project = store.read_project(project_id)
    tasks = store.list_tasks(project_id)
    deliverables = store.list_deliverables(project_id)
    # stores never list connections without valid endpoint kinds
    connections = store.list_connections(project_id)

    edges = [
        {
            "source_type": c.source_type.value,
            "source_id": c.source_id,
            "target_type": c.target_type.value,
            "target_id": c.target_id,
        }
        for c in connections
    ]

    snapshot = {
        "version": SNAPSHOT_VERSION,
        "exportDate": (now or datetime.now(timezone.utc)).isoformat(),
        "project": {
            "id": project.id,
            "name": project.name,
            "description": project.description,
            "created_at": project.created_at,
        },
        "tasks": [task_to_row(t) for t in tasks],
        "deliverables": [deliverable_to_row(d) for d in deliverables],
        "connections": edges,
    }
    logger.info(
        "Project exported",
        project_id=project_id,
        tasks=len(tasks),
        deliverables=len(deliverables),
        connections=len(edges),
    )
    return snapshot


def _label(text: Any) -> str:
    """Make text safe inside a quoted Mermaid label."""
    return (
        " ".join(str(text).split())
        .replace("`", "#96;")
        .replace('"', "#quot;")
    )


def render_mermaid(snapshot: dict[str, Any]) -> str:
    """Render the snapshot as a left-to-right Mermaid flowchart."""
    lines = ["graph LR"]
    for task in snapshot["tasks"]:
        status = TASK_STATUS_LABELS.get(task.get("status"), task.get("status"))
        priority = PRIORITY_LABELS.get(task.get("priority"), task.get("priority"))
        lines.append(f'    task_{task["id"]}["{_label(task["name"])}<br/>{_label(status)} | {_label(priority)}"]')
    for deliverable in snapshot["deliverables"]:
        status = DELIVERABLE_STATUS_LABELS.get(deliverable.get("status"), deliverable.get("status"))
        lines.append(f'    deliverable_{deliverable["id"]}{{"{_label(deliverable["name"])}<br/>{_label(status)}"}}')
    lines.append("")
    for edge in snapshot["connections"]:
        lines.append(
            f"    {edge['source_type']}_{edge['source_id']} --> {edge['target_type']}_{edge['target_id']}"
        )
    return "\n".join(lines) + "\n"


def render_document(snapshot: dict[str, Any]) -> str:
    """Render the full Markdown export document."""
    title = " ".join(str(snapshot["project"]["name"]).split()).replace("`", "'")
    data = json.dumps(snapshot, indent=2, ensure_ascii=False)
    return (
        f"# {title}\n"
        "\n"
        "## Process flow\n"
        "\n"
        "```mermaid\n"
        f"{render_mermaid(snapshot)}"
        "```\n"
        "\n"
        "## Project data\n"
        "\n"
        "```json\n"
        f"{data}\n"
        "```\n"
    )


def export_filename(project_name: str) -> str:
    """File name for a project's export."""
    return re.sub(r"[^a-zA-Z0-9]", "_", project_name) + "_flow.md"


def export_document(store: Store, project_id: int, now: datetime | None = None) -> str:
    return render_document(export_snapshot(store, project_id, now=now))


# Import


def extract_snapshot(text: str) -> dict[str, Any]:
    """Find, parse and validate the snapshot block of an export document.

    Raises:
        UnrecognizedFileError: No data block, invalid JSON, or wrong shape
        UnsupportedVersionError: The version is not understood
    """
    match = DATA_BLOCK.search(text)
    if not match:
        raise UnrecognizedFileError("Unrecognized file: no JSON data block found")

    try:
        snapshot = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        raise UnrecognizedFileError(f"Unrecognized file: data block is not valid JSON ({e})") from e
    if not isinstance(snapshot, dict):
        raise UnrecognizedFileError("Unrecognized file: data block is not an object")

    version = snapshot.get("version")
    if not isinstance(version, str) or version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersionError(f"Unsupported snapshot version: {version!r}")

    for key in ("tasks", "deliverables", "connections"):
        records = snapshot.setdefault(key, [])
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise UnrecognizedFileError(f"Unrecognized file: '{key}' must be a list of objects")

    return snapshot


def _position(record: dict[str, Any]) -> Position | None:
    x, y = record.get("position_x"), record.get("position_y")
    if x is None or y is None:
        return None
    try:
        return Position(float(x), float(y))
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid position in snapshot", record_id=record.get("id"))
        return None


def _priority(record: dict[str, Any]) -> Priority:
    try:
        return Priority(record.get("priority") or Priority.MEDIUM.value)
    except ValueError:
        logger.warning("Unknown priority in snapshot, using medium", record_id=record.get("id"))
        return Priority.MEDIUM


def _key(value: Any) -> int | str | None:
    """Snapshot ids usable as remap-table keys."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    return value


def _kind(value: Any) -> NodeKind | None:
    try:
        return NodeKind(value)
    except ValueError:
        return None


def import_snapshot(sync: GraphSync, text: str) -> ImportResult:
    """Import an export document into the sync engine's project.

    The document is fully validated before anything is written. Connections
    with a missing kind or an endpoint that is not in the snapshot are skipped
    and logged. A store failure stops the import where it happened; what was
    already created stays.
    """
    snapshot = extract_snapshot(text)
    store, project_id = sync.store, sync.project_id
    source = snapshot.get("project") if isinstance(snapshot.get("project"), dict) else {}
    result = ImportResult()

    logger.info(
        "Importing snapshot",
        project_id=project_id,
        source_project=source.get("name"),
        tasks=len(snapshot["tasks"]),
        deliverables=len(snapshot["deliverables"]),
        connections=len(snapshot["connections"]),
    )

    try:
        for record in snapshot["tasks"]:
            task = store.create_task(
                project_id,
                name=record.get("name") or "",
                description=record.get("description") or "",
                status=record.get("status") or "not_started",
                priority=_priority(record),
                start_date=record.get("start_date"),
                end_date=record.get("end_date"),
                duration_days=record.get("duration_days"),
                assigned_to=record.get("assigned_to"),
                position=_position(record),
            )
            result.tasks += 1
            if _key(record.get("id")) is not None:
                result.task_ids[record["id"]] = task.id

        for record in snapshot["deliverables"]:
            deliverable = store.create_deliverable(
                project_id,
                name=record.get("name") or "",
                description=record.get("description") or "",
                status=record.get("status") or "not_ready",
                type=record.get("type") or "other",
                due_date=record.get("due_date"),
                position=_position(record),
            )
            result.deliverables += 1
            if _key(record.get("id")) is not None:
                result.deliverable_ids[record["id"]] = deliverable.id

        sync.reload(connections=False)

        id_maps = {NodeKind.TASK: result.task_ids, NodeKind.DELIVERABLE: result.deliverable_ids}
        for record in snapshot["connections"]:
            source_kind = _kind(record.get("source_type"))
            target_kind = _kind(record.get("target_type"))
            if source_kind is None or target_kind is None:
                logger.warning("Skipping connection without valid endpoint kinds", connection=record)
                result.skipped_connections += 1
                continue

            source_id = id_maps[source_kind].get(_key(record.get("source_id")))
            target_id = id_maps[target_kind].get(_key(record.get("target_id")))
            if source_id is None or target_id is None:
                logger.warning("Skipping connection with unknown endpoint", connection=record)
                result.skipped_connections += 1
                continue

            store.create_connection(project_id, NodeRef(source_kind, source_id), NodeRef(target_kind, target_id))
            result.connections += 1
    except StoreError as e:
        logger.error("Import aborted by store failure", project_id=project_id, error=str(e), **_counts(result))
        sync.load()
        raise

    sync.reload(tasks=False, deliverables=False)
    logger.info("Snapshot imported", project_id=project_id, **_counts(result))
    return result


def _counts(result: ImportResult) -> dict[str, int]:
    return {
        "tasks": result.tasks,
        "deliverables": result.deliverables,
        "connections": result.connections,
        "skipped_connections": result.skipped_connections,
    }
