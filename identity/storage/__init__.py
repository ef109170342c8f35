"""
Storage backends for the authentication core.

All backends implement AuthStorage; the core only ever sees that interface.
"""

from ..config import StorageConfig
from .base import AuthStorage
from .memory import InMemoryStorage
from .sqlite import SQLiteStorage

__all__ = [
    "AuthStorage",
    "InMemoryStorage",
    "SQLiteStorage",
    "create_storage",
]


def create_storage(config: StorageConfig) -> AuthStorage:
    """Build the backend selected by the storage configuration."""
    if config.backend == "memory":
        return InMemoryStorage()
    return SQLiteStorage(config.database_path)
