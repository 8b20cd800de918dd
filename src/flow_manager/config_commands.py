"""Configuration commands for flow manager CLI."""

import structlog
from cyclopts import App

from flow_manager.config import get_config

logger = structlog.get_logger()

config_app = App(name="config", help="Manage configuration")

KNOWN_KEYS = {
    "store": "Store backend: json or sqlite",
    "json.path": "JSON store file",
    "sqlite.path": "SQLite database file",
    "project": "Default project id",
    "layout.node_width": "Node box width in pixels",
    "layout.node_height": "Node box height in pixels",
    "layout.rank_sep": "Horizontal gap between ranks",
    "layout.node_sep": "Vertical gap between nodes of a rank",
    "layout.margin_x": "Left margin",
    "layout.margin_y": "Top margin",
    "layout.sweeps": "Crossing-reduction passes",
}


def _scope(global_: bool) -> str:
    return "global" if global_ else "local"


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: Configuration key (see `fm config keys`)
        value: Configuration value
        global_: If True, set in global config. If False, set in local config.
    """
    if key not in KNOWN_KEYS:
        logger.warning("Setting unknown config key", key=key)
        print(f"Warning: {key} is not a known setting")
    get_config(use_global=global_).set(key, value)
    print(f"Set {key} = {value} ({_scope(global_)})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Unset a configuration setting.

    Args:
        key: Configuration key
        global_: If True, unset from global config. If False, unset from local config.
    """
    get_config(use_global=global_).unset(key)
    print(f"Unset {key} ({_scope(global_)})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Get the value of a configuration setting.

    Args:
        key: Configuration key
        global_: If True, get from global config only. If False, get with global fallback.
    """
    value = get_config(use_global=global_).get(key)
    print(f"{key} is not set" if value is None else f"{key} = {value}")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List configured settings, local values overriding global ones."""
    settings = get_config(use_global=global_).list()
    if not settings:
        print(f"No {_scope(global_)} configuration settings")
        return

    for key in sorted(settings):
        print(f"{key} = {settings[key]}")


@config_app.command
def keys() -> None:
    """Describe the settings flow manager reads."""
    width = max(len(key) for key in KNOWN_KEYS)
    for key, description in KNOWN_KEYS.items():
        print(f"{key:<{width}}  {description}")
