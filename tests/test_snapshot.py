"""Tests for snapshot export and import."""

import json
from datetime import datetime, timezone

import pytest

from flow_manager.errors import SnapshotError, StoreError, UnrecognizedFileError, UnsupportedVersionError
from flow_manager.graph import GraphSync
from flow_manager.models import NodeKind, NodeRef, Position
from flow_manager.snapshot import (
    SNAPSHOT_VERSION,
    export_document,
    export_filename,
    export_snapshot,
    extract_snapshot,
    import_snapshot,
    render_document,
    render_mermaid,
)

from tests.mock_store import MockStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def source() -> MockStore:
    """Project 1 with T1 -> D1 -> T2."""
    store = MockStore()
    store.create_project("Launch plan", description="Q3 launch")
    store.create_task(1, "T1", priority="high", position=Position(10, 20))
    store.create_task(1, "T2", status="in_progress")
    store.create_deliverable(1, "D1", type="document")
    store.create_connection(1, NodeRef(NodeKind.TASK, 1), NodeRef(NodeKind.DELIVERABLE, 1))
    store.create_connection(1, NodeRef(NodeKind.DELIVERABLE, 1), NodeRef(NodeKind.TASK, 2))
    return store


def fresh_target() -> tuple[MockStore, GraphSync]:
    store = MockStore()
    store.create_project("Target")
    sync = GraphSync(store, 1)
    sync.load()
    return store, sync


def chain_of(store: MockStore) -> list[tuple[str, str]]:
    names = {
        **{NodeRef(NodeKind.TASK, t.id): t.name for t in store.tasks.values()},
        **{NodeRef(NodeKind.DELIVERABLE, d.id): d.name for d in store.deliverables.values()},
    }
    return sorted((names[c.source], names[c.target]) for c in store.connections.values())


def document(snapshot: dict) -> str:
    return "# Some project\n\n```json\n" + json.dumps(snapshot, indent=2) + "\n```\n"


# Export


def test_export_snapshot_contents(source: MockStore) -> None:
    """Test the snapshot lists every entity and connection by kind."""
    snapshot = export_snapshot(source, 1, now=NOW)

    assert snapshot["version"] == SNAPSHOT_VERSION
    assert snapshot["exportDate"] == "2026-03-01T12:00:00+00:00"
    assert snapshot["project"]["name"] == "Launch plan"
    assert [t["name"] for t in snapshot["tasks"]] == ["T1", "T2"]
    assert [d["name"] for d in snapshot["deliverables"]] == ["D1"]
    assert snapshot["connections"] == [
        {"source_type": "task", "source_id": 1, "target_type": "deliverable", "target_id": 1},
        {"source_type": "deliverable", "source_id": 1, "target_type": "task", "target_id": 2},
    ]


def test_export_flattens_fields(source: MockStore) -> None:
    """Test positions and priorities are exported as plain values."""
    task = export_snapshot(source, 1, now=NOW)["tasks"][0]
    assert task["priority"] == "high"
    assert task["position_x"] == 10
    assert task["position_y"] == 20


def test_export_document_layout(source: MockStore) -> None:
    """Test the document has a title, a diagram and one data block."""
    text = export_document(source, 1, now=NOW)

    assert text.startswith("# Launch plan\n")
    assert "## Process flow\n\n```mermaid\ngraph LR\n" in text
    assert "## Project data\n\n```json\n" in text
    assert text.count("```json") == 1
    assert extract_snapshot(text) == export_snapshot(source, 1, now=NOW)


def test_render_mermaid(source: MockStore) -> None:
    """Test nodes and edges in the diagram."""
    diagram = render_mermaid(export_snapshot(source, 1, now=NOW))

    assert '    task_1["T1<br/>Not started | High"]' in diagram
    assert '    task_2["T2<br/>In progress | Medium"]' in diagram
    assert '    deliverable_1{"D1<br/>Not ready"}' in diagram
    assert "    task_1 --> deliverable_1" in diagram
    assert "    deliverable_1 --> task_2" in diagram


def test_mermaid_labels_are_escaped() -> None:
    """Test quotes and newlines cannot break the diagram."""
    store = MockStore()
    store.create_project("P")
    store.create_task(1, 'Say "hi"\nnow', status="custom")
    diagram = render_mermaid(export_snapshot(store, 1))
    assert 'task_1["Say #quot;hi#quot; now<br/>custom | Medium"]' in diagram


def test_document_with_fence_in_description_still_parses() -> None:
    """Test text fields containing backticks do not end the data block early."""
    store = MockStore()
    store.create_project("P")
    store.create_task(1, "T", description="run ```make``` first")
    text = export_document(store, 1)
    assert extract_snapshot(text)["tasks"][0]["description"] == "run ```make``` first"


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Launch plan", "Launch_plan_flow.md"),
        ("Q3/Q4: ops & dev", "Q3_Q4__ops___dev_flow.md"),
        ("simple", "simple_flow.md"),
    ],
)
def test_export_filename(name: str, expected: str) -> None:
    """Test non-alphanumeric characters are replaced in file names."""
    assert export_filename(name) == expected


# Import


def test_concrete_round_trip(source: MockStore) -> None:
    """Test T1 -> D1 -> T2 imports as the same chain under new ids."""
    text = export_document(source, 1)
    store, sync = fresh_target()

    result = import_snapshot(sync, text)

    assert (result.tasks, result.deliverables, result.connections) == (2, 1, 2)
    assert result.skipped_connections == 0
    assert sorted(t.name for t in store.tasks.values()) == ["T1", "T2"]
    assert [d.name for d in store.deliverables.values()] == ["D1"]
    assert chain_of(store) == [("D1", "T2"), ("T1", "D1")]
    assert len(sync.nodes) == 3
    assert len(sync.edges) == 2


def test_import_preserves_fields(source: MockStore) -> None:
    """Test imported entities keep their attributes and positions."""
    store, sync = fresh_target()
    import_snapshot(sync, export_document(source, 1))

    t1 = next(t for t in store.tasks.values() if t.name == "T1")
    d1 = next(iter(store.deliverables.values()))
    assert t1.priority.value == "high"
    assert t1.position == Position(10, 20)
    assert d1.type == "document"
    assert d1.position is None


def test_import_remaps_ids(source: MockStore) -> None:
    """Test imported connections point at the new ids, not the exported ones."""
    store = MockStore()
    store.create_project("Target")
    for i in range(5):
        store.create_task(1, f"existing {i}")
        store.create_deliverable(1, f"existing {i}")
    sync = GraphSync(store, 1)

    result = import_snapshot(sync, export_document(source, 1))

    assert result.task_ids == {1: 6, 2: 7}
    assert result.deliverable_ids == {1: 6}
    assert chain_of(store) == [("D1", "T2"), ("T1", "D1")]


def test_import_twice_does_not_collide(source: MockStore) -> None:
    """Test importing the same file twice gives two disjoint copies."""
    text = export_document(source, 1)
    store, sync = fresh_target()

    import_snapshot(sync, text)
    import_snapshot(sync, text)

    assert len(store.tasks) == 4
    assert len(store.deliverables) == 2
    assert len(store.connections) == 4
    assert len(sync.edges) == 4


def test_import_skips_bad_connections() -> None:
    """Test connections with unknown endpoints or kinds are skipped."""
    snapshot = {
        "version": "1.0",
        "tasks": [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}],
        "deliverables": [],
        "connections": [
            {"source_type": "task", "source_id": 1, "target_type": "task", "target_id": 2},
            {"source_type": "task", "source_id": 1, "target_type": "task", "target_id": 99},
            {"source_type": "deliverable", "source_id": 1, "target_type": "task", "target_id": 2},
            {"source_type": "widget", "source_id": 1, "target_type": "task", "target_id": 2},
            {"source_id": 1, "target_type": "task", "target_id": 2},
            {"source_type": "task", "source_id": [1], "target_type": "task", "target_id": 2},
        ],
    }
    store, sync = fresh_target()

    result = import_snapshot(sync, document(snapshot))

    assert result.tasks == 2
    assert result.connections == 1
    assert result.skipped_connections == 5
    assert "skipped 5 invalid connection(s)" in result.summary()
    assert chain_of(store) == [("A", "B")]


def test_import_tolerates_missing_fields() -> None:
    """Test sparse records get defaults instead of failing."""
    snapshot = {
        "version": "1.0",
        "tasks": [{"id": 1, "name": "A", "priority": "urgent", "position_x": "oops", "position_y": 3}],
        "deliverables": [{"name": "No id"}],
    }
    store, sync = fresh_target()

    result = import_snapshot(sync, document(snapshot))

    task = store.tasks[1]
    assert task.priority.value == "medium"
    assert task.status == "not_started"
    assert task.position is None
    assert store.deliverables[1].type == "other"
    assert result.deliverable_ids == {}
    assert result.connections == 0


@pytest.mark.parametrize(
    "text",
    [
        "",
        "# Just a heading\n",
        "```json\nnot json at all\n```",
        "```json\n[1, 2, 3]\n```",
        '```json\n{"version": "1.0", "tasks": {"id": 1}}\n```',
        '```json\n{"version": "1.0", "tasks": [1, 2]}\n```',
    ],
)
def test_unrecognized_file_changes_nothing(text: str) -> None:
    """Test unparseable input is rejected before any mutation."""
    store, sync = fresh_target()
    store.calls.clear()

    with pytest.raises(UnrecognizedFileError):
        import_snapshot(sync, text)

    assert store.calls == []


@pytest.mark.parametrize("version", ["2.0", "1", 1.0, None, ["1.0"]])
def test_unsupported_version_changes_nothing(version: object) -> None:
    """Test snapshots of other versions are rejected before any mutation."""
    store, sync = fresh_target()
    store.calls.clear()
    text = document({"version": version, "tasks": [{"id": 1, "name": "A"}]})

    with pytest.raises(UnsupportedVersionError):
        import_snapshot(sync, text)

    assert store.calls == []


def test_snapshot_errors_share_a_base() -> None:
    """Test both rejection kinds can be handled together."""
    assert issubclass(UnrecognizedFileError, SnapshotError)
    assert issubclass(UnsupportedVersionError, SnapshotError)


def test_store_failure_aborts_import(source: MockStore) -> None:
    """Test a store failure stops the import and leaves created records in place."""
    store, sync = fresh_target()
    store.fail_on.add("create_connection")

    with pytest.raises(StoreError):
        import_snapshot(sync, export_document(source, 1))

    assert len(store.tasks) == 2
    assert len(store.deliverables) == 1
    assert store.connections == {}
    assert len(sync.nodes) == 3


def test_import_reloads_entities_before_connections(source: MockStore) -> None:
    """Test entity lists are refreshed before connections are created."""
    store, sync = fresh_target()
    store.calls.clear()

    import_snapshot(sync, export_document(source, 1))

    names = [name for name, _ in store.calls]
    first_connection = names.index("create_connection")
    assert "list_tasks" in names[:first_connection]
    assert "list_deliverables" in names[:first_connection]
    assert "list_connections" not in names[:first_connection]
    assert names[-1] == "list_connections"


def test_render_document_uses_project_name() -> None:
    """Test the document title comes from the exported project."""
    snapshot = {
        "version": "1.0",
        "exportDate": NOW.isoformat(),
        "project": {"id": 1, "name": "Multi\nline", "description": "", "created_at": None},
        "tasks": [],
        "deliverables": [],
        "connections": [],
    }
    assert render_document(snapshot).startswith("# Multi line\n\n## Process flow\n")
