"""Store implementations."""

from flow_manager.config import Config
from flow_manager.errors import ConfigError
from flow_manager.store import Store
from flow_manager.stores.json_store import JsonStore
from flow_manager.stores.sqlite import SqliteStore

__all__ = ["JsonStore", "SqliteStore", "get_store"]

DEFAULT_JSON_PATH = ".flow-manager/flow.json"
DEFAULT_SQLITE_PATH = ".flow-manager/flow.db"


def get_store(config: Config) -> Store:
    """Get the store selected by configuration."""
    store_type = config.get("store", "json")

    if store_type == "json":
        return JsonStore(path=config.get("json.path", DEFAULT_JSON_PATH))
    elif store_type == "sqlite":
        return SqliteStore(path=config.get("sqlite.path", DEFAULT_SQLITE_PATH))
    else:
        raise ConfigError(
            f"Unknown store: {store_type}. Set it using:\n"
            "  fm config set store json\n"
            "  fm config set store sqlite"
        )
