"""Process-local caching primitives."""

from .expiring_store import ExpiringStore, StoreEntry

__all__ = ["ExpiringStore", "StoreEntry"]
