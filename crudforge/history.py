# File: crudforge/history.py
"""
crudforge - Generation History Store
=====================================
Every generation run, complete or partial, leaves one row in the
``codegen_history`` table. The row stores the full ``GenerationManifest`` as
JSON plus a few denormalized columns used for listing and conflict checks.

The manifest is never updated after insertion; the only mutable column is
``rolled_back``. Deleting a history row forgets the run without touching any
generated file.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    Integer,
    String,
    Text,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from crudforge.errors import HistoryNotFoundError
from crudforge.models import GenerationManifest, HistoryRecord

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.history")


class HistoryBase(DeclarativeBase):
    pass


class HistoryRow(HistoryBase):
    """ORM row for one generation run."""

    __tablename__ = "codegen_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    struct_name: Mapped[str] = mapped_column(String(128), index=True)
    package_name: Mapped[str] = mapped_column(String(128))
    table_name: Mapped[str] = mapped_column(String(128), index=True)
    api_prefix: Mapped[str] = mapped_column(String(128), index=True)
    description: Mapped[str] = mapped_column(String(255), default="")
    partial: Mapped[bool] = mapped_column(Boolean, default=False)
    rolled_back: Mapped[bool] = mapped_column(Boolean, default=False)
    manifest_json: Mapped[str] = mapped_column(Text)

    def to_record(self) -> HistoryRecord:
        return HistoryRecord(
            id=self.id,
            created_at=self.created_at,
            rolled_back=self.rolled_back,
            manifest=GenerationManifest.model_validate_json(self.manifest_json),
        )


def create_history_engine(url: str) -> Engine:
    """
    Engine for the history database; creates the table when missing.

    SQLite files get their parent directory created, and in-memory SQLite
    shares one connection across threads.
    """
    parsed = make_url(url)
    kwargs: Dict[str, Any] = {}
    if parsed.drivername.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    engine: Engine = create_engine(url, **kwargs)
    HistoryBase.metadata.create_all(engine)
    logger.info("History store ready: %s", parsed.render_as_string(hide_password=True))
    return engine


class HistoryStore:
    """CRUD over ``codegen_history``."""

    def __init__(self, engine: Engine) -> None:
        self._engine: Engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str) -> "HistoryStore":
        return cls(create_history_engine(url))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create(self, manifest: GenerationManifest) -> HistoryRecord:
        row = HistoryRow(
            created_at=manifest.created_at,
            struct_name=manifest.struct_name,
            package_name=manifest.package_name,
            table_name=manifest.table_name,
            api_prefix=manifest.api_prefix,
            description=manifest.description,
            partial=manifest.partial,
            rolled_back=False,
            manifest_json=manifest.model_dump_json(),
        )
        with self._sessions.begin() as session:
            session.add(row)
            session.flush()
            record: HistoryRecord = row.to_record()
        logger.info(
            "Recorded history #%d for '%s'%s.",
            record.id,
            manifest.struct_name,
            " (partial)" if manifest.partial else "",
        )
        return record

    def get(self, history_id: int) -> HistoryRecord:
        with self._sessions() as session:
            row: Optional[HistoryRow] = session.get(HistoryRow, history_id)
            if row is None:
                raise HistoryNotFoundError(history_id)
            return row.to_record()

    def list(self, page: int = 1, page_size: int = 10) -> Tuple[List[HistoryRecord], int]:
        """One page of records, newest first, plus the total count."""
        page = max(page, 1)
        page_size = max(page_size, 1)
        with self._sessions() as session:
            total: int = session.scalar(select(func.count()).select_from(HistoryRow)) or 0
            rows = session.scalars(
                select(HistoryRow)
                .order_by(HistoryRow.created_at.desc(), HistoryRow.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).all()
            return [row.to_record() for row in rows], total

    def delete(self, history_id: int) -> None:
        with self._sessions.begin() as session:
            row: Optional[HistoryRow] = session.get(HistoryRow, history_id)
            if row is None:
                raise HistoryNotFoundError(history_id)
            session.delete(row)
        logger.info("Deleted history #%d.", history_id)

    def mark_rolled_back(self, history_id: int) -> None:
        with self._sessions.begin() as session:
            row: Optional[HistoryRow] = session.get(HistoryRow, history_id)
            if row is None:
                raise HistoryNotFoundError(history_id)
            row.rolled_back = True

    def find_active_conflicts(
        self, struct_name: str, table_name: str, api_prefix: str
    ) -> List[HistoryRecord]:
        """Live records of *other* structs claiming the same table or API prefix."""
        with self._sessions() as session:
            rows = session.scalars(
                select(HistoryRow)
                .where(HistoryRow.rolled_back.is_(False))
                .where(HistoryRow.struct_name != struct_name)
                .where(or_(HistoryRow.table_name == table_name, HistoryRow.api_prefix == api_prefix))
                .order_by(HistoryRow.id)
            ).all()
            return [row.to_record() for row in rows]


__all__: List[str] = [
    "HistoryBase",
    "HistoryRow",
    "HistoryStore",
    "create_history_engine",
]
