"""
Stores Module
=============

Session and user profile persistence.
"""

from typing import Tuple

from cardio_stream.config import StorageConfig
from cardio_stream.stores.base import SessionStore, UserProfileStore
from cardio_stream.stores.json_store import JsonSessionStore, JsonUserProfileStore
from cardio_stream.stores.memory import InMemorySessionStore, InMemoryUserProfileStore


def create_stores(config: StorageConfig) -> Tuple[SessionStore, UserProfileStore]:
    """Build the configured session and profile stores."""
    if config.backend == "memory":
        return InMemorySessionStore(), InMemoryUserProfileStore()
    if config.backend == "json":
        return JsonSessionStore(config.path), JsonUserProfileStore(config.path)
    raise ValueError(f"Unknown storage backend: {config.backend}")


__all__ = [
    "InMemorySessionStore",
    "InMemoryUserProfileStore",
    "JsonSessionStore",
    "JsonUserProfileStore",
    "SessionStore",
    "UserProfileStore",
    "create_stores",
]
