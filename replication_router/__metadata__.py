"""Metadata for the Project."""

from importlib.metadata import PackageNotFoundError, metadata, version  # pragma: no cover

__all__ = ("__project__", "__version__")  # pragma: no cover

try:  # pragma: no cover
    __version__ = version("replication-router")
    """Version of the project."""
    __project__ = metadata("replication-router")["Name"]
    """Name of the project."""
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"
    __project__ = "Replication Router"
finally:  # pragma: no cover
    del version, PackageNotFoundError, metadata
