"""Project management commands for flow manager CLI."""

from cyclopts import App

project_app = App(name="project", help="Manage projects")


@project_app.command
def create(name: str, description: str = "") -> None:
    """Create a new project."""
    from flow_manager.cli import get_store

    project = get_store().create_project(name, description=description)
    print(f"Created project {project.id}: {project.name}")


@project_app.command(name="list")
def list_projects() -> None:
    """List all projects."""
    from flow_manager.cli import get_store

    projects = get_store().list_projects()
    if not projects:
        print("No projects found")
        return

    print(f"Found {len(projects)} project(s):\n")
    for project in projects:
        description = f" - {project.description}" if project.description else ""
        print(f"  {project.id}: {project.name}{description}")


@project_app.command
def rename(project_id: int, name: str | None = None, description: str | None = None) -> None:
    """Change a project's name or description."""
    from flow_manager.cli import get_store

    project = get_store().update_project(project_id, name=name, description=description)
    print(f"Updated project {project.id}: {project.name}")


@project_app.command
def delete(project_id: int) -> None:
    """Delete a project with all of its tasks, deliverables and connections."""
    from flow_manager.cli import get_store

    get_store().delete_project(project_id)
    print(f"Deleted project {project_id}")
