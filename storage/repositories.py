"""
Async repositories for converting between dataclasses and ORM models.
"""
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from data_models import ClassificationTree, SystemRecord, TestRun
from storage.models import SystemModel, TestRunModel


class SystemRepository:
    """Repository for per-system tree snapshots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, name: str, tree: ClassificationTree):
        """Insert or replace the latest snapshot for `name`."""
        orm = await self.session.get(SystemModel, name)
        if orm is None:
            self.session.add(self._to_orm(name, tree))
        else:
            orm.tree = tree.to_dict()
            orm.use_case_name = tree.use_case.name
        await self.session.flush()

    async def load(self, name: str) -> Optional[SystemRecord]:
        orm = await self.session.get(SystemModel, name)
        if orm is None:
            return None
        return self._to_dataclass(orm)

    async def list_all(self) -> List[Dict[str, Any]]:
        """Summaries of all stored systems, most recently updated first."""
        stmt = select(SystemModel).order_by(SystemModel.updated_at.desc(), SystemModel.name)
        result = await self.session.execute(stmt)
        return [
            {
                "name": orm.name,
                "useCaseName": orm.use_case_name,
                "variables": len(orm.tree.get("variables") or []),
                "updatedAt": orm.updated_at.isoformat() if orm.updated_at else None,
            }
            for orm in result.scalars().all()
        ]

    async def delete(self, name: str) -> bool:
        """Delete a snapshot. Returns False when it did not exist."""
        result = await self.session.execute(delete(SystemModel).where(SystemModel.name == name))
        return result.rowcount > 0

    def _to_orm(self, name: str, tree: ClassificationTree) -> SystemModel:
        return SystemModel(name=name, use_case_name=tree.use_case.name, tree=tree.to_dict())

    def _to_dataclass(self, orm: SystemModel) -> SystemRecord:
        return SystemRecord(
            name=orm.name,
            tree=ClassificationTree.from_dict(orm.tree),
            use_case_name=orm.use_case_name,
            created_at=orm.created_at,
            updated_at=orm.updated_at,
        )


class TestRunRepository:
    """Repository for generation runs."""
    __test__ = False

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, run: TestRun) -> str:
        if not run.id:
            run.id = str(uuid.uuid4())
        self.session.add(self._to_orm(run))
        await self.session.flush()
        return run.id

    async def load(self, run_id: str) -> Optional[TestRun]:
        orm = await self.session.get(TestRunModel, run_id)
        if orm is None:
            return None
        return self._to_dataclass(orm)

    async def list_for_system(self, system_name: str, limit: int = 20) -> List[TestRun]:
        stmt = (
            select(TestRunModel)
            .where(TestRunModel.system_name == system_name)
            .order_by(TestRunModel.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_dataclass(orm) for orm in result.scalars().all()]

    async def delete_for_system(self, system_name: str) -> int:
        result = await self.session.execute(
            delete(TestRunModel).where(TestRunModel.system_name == system_name)
        )
        return result.rowcount

    def _to_orm(self, run: TestRun) -> TestRunModel:
        return TestRunModel(
            id=run.id,
            kind=run.kind,
            system_name=run.system_name,
            test_cases=list(run.test_cases),
            stats=dict(run.stats),
            diff_summary=run.diff_summary,
        )

    def _to_dataclass(self, orm: TestRunModel) -> TestRun:
        return TestRun(
            id=orm.id,
            kind=orm.kind,
            system_name=orm.system_name,
            test_cases=list(orm.test_cases or []),
            stats=dict(orm.stats or {}),
            diff_summary=orm.diff_summary,
            created_at=orm.created_at,
        )
