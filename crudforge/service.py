# File: crudforge/service.py
"""
crudforge - Service Facade
===========================
Wires settings, the history store, the generator, the rollback service and
the optional schema introspector into one object. The HTTP surface and the
CLI talk to nothing else.

Usage::

    service = CodegenService.from_settings(load_settings(Path("crudforge.yaml")))
    report = service.generate({"structName": "Product", "fields": [...]})
    records, total = service.list_history(page=1, page_size=10)
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from crudforge.config import GeneratorSettings
from crudforge.emitters import Emitter
from crudforge.errors import CodegenError
from crudforge.exporters import WorkspaceWriter
from crudforge.generator import CodeGenerator, GenerationReport
from crudforge.history import HistoryStore
from crudforge.introspection import SchemaIntrospector, SQLAlchemyIntrospector
from crudforge.locking import GenerationLocks
from crudforge.models import ColumnInfo, HistoryRecord, RollbackFlags, TableInfo
from crudforge.rollback import RollbackReport, RollbackService
from crudforge.validators import BuildResult, build_entity_model

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.service")


class CodegenService:
    """Entry point for every operation the tool exposes."""

    def __init__(
        self,
        settings: GeneratorSettings,
        *,
        history: HistoryStore,
        introspector: Optional[SchemaIntrospector] = None,
        writer: Optional[WorkspaceWriter] = None,
        locks: Optional[GenerationLocks] = None,
        emitters: Optional[Sequence[Emitter]] = None,
    ) -> None:
        self._settings: GeneratorSettings = settings
        self._history: HistoryStore = history
        self._introspector: Optional[SchemaIntrospector] = introspector
        self._writer: WorkspaceWriter = writer or WorkspaceWriter(
            settings.resolved_root, trash_dir=settings.trash_dir
        )
        self._locks: GenerationLocks = locks or GenerationLocks()
        self._generator: CodeGenerator = CodeGenerator(
            settings,
            history=history,
            writer=self._writer,
            locks=self._locks,
            emitters=emitters,
        )
        self._rollback: RollbackService = RollbackService(
            history, self._writer, self._locks, introspector=introspector
        )

    @classmethod
    def from_settings(cls, settings: GeneratorSettings) -> "CodegenService":
        """Open the history store and, when configured, the application database."""
        history: HistoryStore = HistoryStore.from_url(settings.resolved_history_url)
        introspector: Optional[SchemaIntrospector] = None
        if settings.database_url:
            introspector = SQLAlchemyIntrospector(create_engine(settings.database_url))
        return cls(settings, history=history, introspector=introspector)

    @property
    def settings(self) -> GeneratorSettings:
        return self._settings

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def generator(self) -> CodeGenerator:
        return self._generator

    # -----------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------

    def _columns_for(self, payload: Mapping[str, Any]) -> Optional[List[ColumnInfo]]:
        """Introspected columns of the payload's table when the payload lists no fields."""
        table: Any = payload.get("tableName") or payload.get("table_name")
        if self._introspector is None or not table or payload.get("fields"):
            return None
        try:
            return self._introspector.list_columns(str(table))
        except SQLAlchemyError as exc:
            logger.warning("Could not introspect table '%s': %s", table, exc)
            return None

    def validate(self, payload: Mapping[str, Any]) -> BuildResult:
        return build_entity_model(
            payload,
            self._columns_for(payload),
            default_package=self._settings.package_name,
        )

    def generate(self, payload: Mapping[str, Any]) -> GenerationReport:
        """
        Run one generation.

        A payload without fields takes them from the live table when an
        application database is configured.
        """
        return self._generator.generate(payload, self._columns_for(payload))

    # -----------------------------------------------------------------
    # History
    # -----------------------------------------------------------------

    def list_history(self, page: int = 1, page_size: int = 10) -> Tuple[List[HistoryRecord], int]:
        return self._history.list(page, page_size)

    def get_history(self, history_id: int) -> HistoryRecord:
        return self._history.get(history_id)

    def delete_history(self, history_id: int) -> None:
        self._history.delete(history_id)

    def rollback(self, history_id: int, flags: RollbackFlags) -> RollbackReport:
        return self._rollback.rollback(history_id, flags)

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    def _require_introspector(self) -> SchemaIntrospector:
        if self._introspector is None:
            raise CodegenError("No application database is configured (database_url).")
        return self._introspector

    def list_tables(self) -> List[TableInfo]:
        return self._require_introspector().list_tables()

    def list_columns(self, table_name: str) -> List[ColumnInfo]:
        return self._require_introspector().list_columns(table_name)


__all__: List[str] = ["CodegenService"]
