"""
Storage layer for tree snapshots and test runs (async SQLAlchemy).
"""

from storage.database import Database
from storage.adapter import AsyncStorageAdapter
from storage.models import Base
from storage.repositories import SystemRepository, TestRunRepository

__all__ = [
    "Database",
    "AsyncStorageAdapter",
    "Base",
    "SystemRepository",
    "TestRunRepository",
]
