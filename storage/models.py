"""
SQLAlchemy ORM models for tree snapshots and test runs.
"""
from sqlalchemy import JSON, String, TIMESTAMP, Index
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(AsyncAttrs, DeclarativeBase):
    pass


class SystemModel(Base):
    """Latest classification-tree snapshot per system."""
    __tablename__ = 'systems'

    name: Mapped[str] = mapped_column(String, primary_key=True)
    use_case_name: Mapped[str | None] = mapped_column(String, nullable=True)
    tree: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at = mapped_column(TIMESTAMP, server_default=func.now())
    updated_at = mapped_column(TIMESTAMP, server_default=func.now(), onupdate=func.now())


class TestRunModel(Base):
    """One stored generation request."""
    __tablename__ = 'test_runs'
    __test__ = False

    id: Mapped[str] = mapped_column(String, primary_key=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)  # cctm | ecp | fta | syntax
    system_name: Mapped[str | None] = mapped_column(String, nullable=True)
    test_cases: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    diff_summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at = mapped_column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        Index('idx_test_runs_system_created', 'system_name', 'created_at'),
    )
