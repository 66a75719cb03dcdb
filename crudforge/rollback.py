# File: crudforge/rollback.py
"""
crudforge - Rollback Service
=============================
Undoes one recorded generation run, category by category:

    delete_files   move every manifest file into ``<trash_dir>/<batch>/``
                   (or unlink it when no trash directory is configured)
    delete_api     remove the run's tagged block from the route registry
    delete_menu    remove the run's tagged block from the menu module
    delete_table   drop the entity table; requires ``confirm_table`` to
                   repeat the manifest's table name

Every category is attempted even when an earlier one fails; failures are
collected into one ``RollbackError`` carried by the report. A request with
every flag off succeeds without touching anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from crudforge.errors import ConflictError, RollbackError, RollbackFailure
from crudforge.exporters import WorkspaceWriter
from crudforge.history import HistoryStore
from crudforge.introspection import SchemaIntrospector
from crudforge.locking import GenerationLocks
from crudforge.models import GenerationManifest, HistoryRecord, RollbackFlags, SectionKind
from crudforge.sections import FileSectionStore

logger: logging.Logger = logging.getLogger("crudforge.rollback")

_SECTION_COMMENTS: Dict[str, str] = {
    SectionKind.ROUTES.value: "#",
    SectionKind.MENU.value: "//",
}


@dataclass(slots=True)
class RollbackReport:
    history_id: int
    struct_name: str = ""
    removed_files: List[str] = field(default_factory=list)
    trash_location: Optional[str] = None
    removed_sections: List[str] = field(default_factory=list)
    dropped_table: Optional[str] = None
    error: Optional[RollbackError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def failures(self) -> List[RollbackFailure]:
        return self.error.failures if self.error is not None else []

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        return f"Rolled back history #{self.history_id}."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.history_id,
            "structName": self.struct_name,
            "removedFiles": list(self.removed_files),
            "trashLocation": self.trash_location,
            "removedSections": list(self.removed_sections),
            "droppedTable": self.dropped_table,
            "failures": [
                {"category": f.category, "target": f.target, "reason": f.reason}
                for f in self.failures
            ],
        }


class RollbackService:
    """Applies ``RollbackFlags`` to a stored manifest."""

    def __init__(
        self,
        history: HistoryStore,
        writer: WorkspaceWriter,
        locks: GenerationLocks,
        *,
        introspector: Optional[SchemaIntrospector] = None,
    ) -> None:
        self._history: HistoryStore = history
        self._writer: WorkspaceWriter = writer
        self._locks: GenerationLocks = locks
        self._introspector: Optional[SchemaIntrospector] = introspector

    def rollback(self, history_id: int, flags: RollbackFlags) -> RollbackReport:
        """
        Roll back one history record.

        Raises:
            HistoryNotFoundError: Unknown *history_id*.
            ConflictError: The record's struct is being generated or rolled back
                right now.
        """
        record: HistoryRecord = self._history.get(history_id)
        manifest: GenerationManifest = record.manifest
        report = RollbackReport(history_id=history_id, struct_name=manifest.struct_name)

        with self._locks.rollback(manifest.struct_name):
            if flags.is_noop:
                logger.info("Rollback of #%d requested nothing; no changes made.", history_id)
            else:
                self._apply(history_id, manifest, flags, report)
        return report

    def _apply(
        self,
        history_id: int,
        manifest: GenerationManifest,
        flags: RollbackFlags,
        report: RollbackReport,
    ) -> None:
        failures: List[RollbackFailure] = []
        if flags.delete_files:
            failures.extend(self._delete_files(manifest, report))
        if flags.delete_api:
            failures.extend(self._delete_sections(manifest, SectionKind.ROUTES, "api", report))
        if flags.delete_menu:
            failures.extend(self._delete_sections(manifest, SectionKind.MENU, "menu", report))
        if flags.delete_table:
            failures.extend(self._drop_table(manifest, flags, report))

        self._history.mark_rolled_back(history_id)
        if failures:
            report.error = RollbackError(failures)
            logger.warning("Rollback of #%d finished with %d failure(s).", history_id, len(failures))
            for failure in failures:
                logger.warning("  x %s", failure)
        else:
            logger.info("Rollback of #%d (%s) complete.", history_id, manifest.struct_name)

    # -----------------------------------------------------------------
    # Categories
    # -----------------------------------------------------------------

    def _delete_files(
        self, manifest: GenerationManifest, report: RollbackReport
    ) -> List[RollbackFailure]:
        failures: List[RollbackFailure] = []
        batch: str = self._writer.new_trash_batch()
        for path in manifest.all_files():
            try:
                self._writer.remove(path, batch=batch)
            except (OSError, ValueError) as exc:
                failures.append(RollbackFailure("files", path, str(exc)))
                continue
            report.removed_files.append(path)
        trash: Optional[Path] = self._writer.trash_path(batch)
        if report.removed_files and trash is not None:
            report.trash_location = str(trash)
        return failures

    def _delete_sections(
        self,
        manifest: GenerationManifest,
        kind: SectionKind,
        category: str,
        report: RollbackReport,
    ) -> List[RollbackFailure]:
        failures: List[RollbackFailure] = []
        with self._locks.shared():
            for ref in manifest.sections(kind):
                try:
                    store = FileSectionStore(
                        self._writer.resolve(ref.path), comment=_SECTION_COMMENTS[kind.value]
                    )
                    removed: bool = store.remove(ref.key, owner=ref.owner)
                except (OSError, ValueError, ConflictError) as exc:
                    failures.append(RollbackFailure(category, f"{ref.path}#{ref.key}", str(exc)))
                    continue
                if not removed:
                    failures.append(
                        RollbackFailure(category, f"{ref.path}#{ref.key}", "section not found")
                    )
                    continue
                report.removed_sections.append(f"{ref.path}#{ref.key}")
        return failures

    def _drop_table(
        self, manifest: GenerationManifest, flags: RollbackFlags, report: RollbackReport
    ) -> List[RollbackFailure]:
        table: str = manifest.table_name
        if flags.confirm_table != table:
            return [RollbackFailure("table", table, "confirmation does not match the table name")]
        if self._introspector is None:
            return [RollbackFailure("table", table, "no application database is configured")]
        try:
            self._introspector.drop_table(table)
        except Exception as exc:
            return [RollbackFailure("table", table, f"{type(exc).__name__}: {exc}")]
        report.dropped_table = table
        logger.info("Dropped table %s.", table)
        return []


__all__: List[str] = ["RollbackReport", "RollbackService"]
