"""Flow manager: model a project as a graph of tasks and deliverables."""

__version__ = "0.1.0"
