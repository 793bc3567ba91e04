"""Durable storage backed by SQLite."""

from skyecache.persistence.cache import PersistentStore
from skyecache.persistence.connection import Database
from skyecache.persistence.locations import LocationRepository
from skyecache.persistence.search_history import SearchHistoryRepository

__all__ = [
    "Database",
    "LocationRepository",
    "PersistentStore",
    "SearchHistoryRepository",
]
