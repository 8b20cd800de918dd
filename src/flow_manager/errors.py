"""Exceptions raised by flow manager."""


class FlowManagerError(Exception):
    """Base class for all flow manager errors."""


class ConfigError(FlowManagerError, ValueError):
    """Configuration is missing or invalid."""


class StoreError(FlowManagerError):
    """A store call failed."""


class EntityNotFoundError(StoreError, KeyError):
    """The requested record does not exist in the store."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class SnapshotError(FlowManagerError, ValueError):
    """A snapshot document cannot be imported."""


class UnrecognizedFileError(SnapshotError):
    """No machine-readable data block was found, or it is not valid JSON."""


class UnsupportedVersionError(SnapshotError):
    """The snapshot version is not one this importer understands."""
