# Persistence: SQLite store and raw snapshot cache
from threadmine.storage.cache import SnapshotCache
from threadmine.storage.sqlite_store import MessageQuery, MessageStore

__all__ = ["SnapshotCache", "MessageQuery", "MessageStore"]
