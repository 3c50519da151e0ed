"""
Async storage adapter used by the HTTP layer.
"""
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager

from data_models import ClassificationTree, SystemRecord, TestRun
from storage.database import Database
from storage.repositories import SystemRepository, TestRunRepository


class AsyncStorageAdapter:
    """
    Transactional access to tree snapshots and test runs.
    """

    def __init__(self, database: Database):
        """
        Args:
            database: Database instance
        """
        self.database = database

    @asynccontextmanager
    async def session(self):
        """Get async session with transaction management."""
        async with self.database.get_session() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    async def save_system(self, name: str, tree: ClassificationTree):
        """Store `tree` as the latest snapshot of system `name`."""
        async with self.session() as s:
            await SystemRepository(s).save(name, tree)

    async def load_system(self, name: str) -> Optional[SystemRecord]:
        async with self.session() as s:
            return await SystemRepository(s).load(name)

    async def list_systems(self) -> List[Dict[str, Any]]:
        async with self.session() as s:
            return await SystemRepository(s).list_all()

    async def delete_system(self, name: str) -> bool:
        """Delete a system snapshot together with its runs."""
        async with self.session() as s:
            await TestRunRepository(s).delete_for_system(name)
            return await SystemRepository(s).delete(name)

    async def save_run(self, run: TestRun) -> str:
        async with self.session() as s:
            return await TestRunRepository(s).save(run)

    async def load_run(self, run_id: str) -> Optional[TestRun]:
        async with self.session() as s:
            return await TestRunRepository(s).load(run_id)

    async def list_runs(self, system_name: str, limit: int = 20) -> List[TestRun]:
        async with self.session() as s:
            return await TestRunRepository(s).list_for_system(system_name, limit)
