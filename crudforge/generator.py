# File: crudforge/generator.py
"""
crudforge - Generation Orchestrator
====================================
Master pipeline that turns one generation request into files, shared-file
sections and a history record.

Pipeline (one run)::

    VALIDATING
      → EMITTING_MODEL → EMITTING_DTO → EMITTING_CONTROLLER
      → EMITTING_ROUTES → EMITTING_CLIENT
      → RECORDING → DONE

    REJECTED   validation failed, or the struct / table / API prefix is
               claimed by someone else; nothing is written
    FAILED     an emitter (or a write) failed; artifacts already written
               stay in place and the history row is tagged ``partial``

Each artifact is emitted and written before the next one is emitted, so a
failure in a later emitter leaves a manifest listing exactly what exists on
disk. Regenerating a struct overwrites its files and rewrites its sections
in place.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from crudforge.config import GeneratorSettings
from crudforge.emitters import EmitContext, Emitter, EmitResult, SectionEdit, default_emitters
from crudforge.emitters.client import menu_skeleton
from crudforge.emitters.routes import registry_skeleton
from crudforge.errors import ConflictError, SectionFormatError
from crudforge.exporters import FileRecord, WorkspaceWriter
from crudforge.history import HistoryStore
from crudforge.locking import GenerationLocks
from crudforge.models import (
    ColumnInfo,
    EntityModel,
    GenerationManifest,
    SectionKind,
    SectionRef,
)
from crudforge.sections import FileSectionStore
from crudforge.utils import Timer
from crudforge.validators import BuildResult, ValidationResult, build_entity_model

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.generator")


class GenerationState(str, Enum):
    VALIDATING = "validating"
    EMITTING_MODEL = "emitting_model"
    EMITTING_DTO = "emitting_dto"
    EMITTING_CONTROLLER = "emitting_controller"
    EMITTING_ROUTES = "emitting_routes"
    EMITTING_CLIENT = "emitting_client"
    RECORDING = "recording"
    DONE = "done"
    FAILED = "failed"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Outcome of ``CodeGenerator.generate()``.

    ``state`` is the final pipeline state; ``manifest`` and ``history_id``
    are set whenever anything was recorded, partial runs included.
    """

    state: GenerationState = GenerationState.VALIDATING
    struct_name: str = ""
    message: str = ""
    validation: ValidationResult = field(default_factory=ValidationResult)
    manifest: Optional[GenerationManifest] = None
    history_id: Optional[int] = None
    conflict_owner: Optional[str] = None
    files_written: List[FileRecord] = field(default_factory=list)
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    total_elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == GenerationState.DONE

    @property
    def rejected(self) -> bool:
        return self.state == GenerationState.REJECTED

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        lines.append(f"{'=' * 60}")
        lines.append("  crudforge - Generation Report")
        lines.append(f"{'=' * 60}")
        lines.append(f"  Status:      {self.state.value.upper()}")
        lines.append(f"  Struct:      {self.struct_name or '-'}")
        if self.message:
            lines.append(f"  Message:     {self.message}")
        if self.history_id is not None:
            lines.append(f"  History id:  {self.history_id}")
        lines.append(f"  Files:       {len(self.files_written)}")
        lines.append(f"  Total time:  {self.total_elapsed_seconds:.3f}s")

        if self.step_metrics:
            lines.append(f"{'-' * 60}")
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "+" if step.success else "x"
                lines.append(
                    f"    {icon} {step.step_name:<22s} {step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        if self.files_written:
            lines.append(f"{'-' * 60}")
            for record in self.files_written:
                lines.append(f"    {record.relative_path} ({record.line_count} lines)")

        if self.validation.all_items:
            lines.append(f"{'-' * 60}")
            lines.append(self.validation.format_report())

        lines.append(f"{'=' * 60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class CodeGenerator:
    """
    Master pipeline orchestrator.

    Usage::

        generator = CodeGenerator(settings, history=HistoryStore.from_url(url))
        report = generator.generate({"structName": "Product", "fields": [...]})
        print(report.summary())

    One instance may serve concurrent requests: generations of different
    structs run in parallel, shared files are edited under one lock.
    """

    def __init__(
        self,
        settings: GeneratorSettings,
        *,
        history: HistoryStore,
        writer: Optional[WorkspaceWriter] = None,
        locks: Optional[GenerationLocks] = None,
        emitters: Optional[Sequence[Emitter]] = None,
    ) -> None:
        self._settings: GeneratorSettings = settings
        self._history: HistoryStore = history
        self._writer: WorkspaceWriter = writer or WorkspaceWriter(
            settings.resolved_root, trash_dir=settings.trash_dir
        )
        self._locks: GenerationLocks = locks or GenerationLocks()
        self._emitters: List[Emitter] = list(emitters) if emitters is not None else default_emitters()
        logger.debug(
            "CodeGenerator initialised: root=%s, emitters=%s.",
            self._writer.root,
            ", ".join(e.artifact.value for e in self._emitters),
        )

    @property
    def locks(self) -> GenerationLocks:
        return self._locks

    @property
    def writer(self) -> WorkspaceWriter:
        return self._writer

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def generate(
        self,
        payload: Mapping[str, Any],
        columns: Optional[Sequence[ColumnInfo]] = None,
    ) -> GenerationReport:
        """Full pipeline: validate → emit and write each artifact → record."""
        report = GenerationReport()
        started: float = time.perf_counter()

        entity: Optional[EntityModel] = self._step_validate(payload, columns, report)
        if entity is not None:
            self._run_pipeline(entity, report)

        report.total_elapsed_seconds = time.perf_counter() - started
        return report

    def generate_entity(self, entity: EntityModel) -> GenerationReport:
        """Pipeline for an already validated entity."""
        report = GenerationReport(struct_name=entity.struct_name)
        started: float = time.perf_counter()
        self._run_pipeline(entity, report)
        report.total_elapsed_seconds = time.perf_counter() - started
        return report

    # -----------------------------------------------------------------
    # Internal: master pipeline
    # -----------------------------------------------------------------

    def _run_pipeline(self, entity: EntityModel, report: GenerationReport) -> None:
        report.struct_name = entity.struct_name
        try:
            with self._locks.generation(entity.struct_name):
                ctx: EmitContext = EmitContext.from_settings(self._settings, entity)
                if not self._step_precheck(entity, ctx, report):
                    return
                files: Dict[str, List[str]] = {}
                insertions: List[SectionRef] = []
                failure: Optional[str] = None
                failed_artifact: Optional[str] = None
                for emitter in self._emitters:
                    if not self._step_emit(emitter, entity, ctx, files, insertions, report):
                        failed_artifact = emitter.artifact.value
                        failure = report.message
                        break
                self._step_record(entity, files, insertions, failed_artifact, failure, report)
        except ConflictError as exc:
            self._reject(report, str(exc), owner=exc.owner)
        except SectionFormatError as exc:
            self._reject(report, f"Shared file is malformed: {exc}")

    # -----------------------------------------------------------------
    # Pipeline step: Validation
    # -----------------------------------------------------------------

    def _step_validate(
        self,
        payload: Mapping[str, Any],
        columns: Optional[Sequence[ColumnInfo]],
        report: GenerationReport,
    ) -> Optional[EntityModel]:
        report.state = GenerationState.VALIDATING
        with Timer("validation") as t:
            result: BuildResult = build_entity_model(
                payload, columns, default_package=self._settings.package_name
            )
        report.validation = result.validation

        if result.validation.has_errors:
            detail: str = f"{result.validation.error_count} error(s)"
        elif result.validation.warning_count:
            detail = f"{result.validation.warning_count} warning(s)"
        else:
            detail = "all checks passed"
        report.step_metrics.append(GenerationStepMetric(
            step_name="Validate Entity",
            success=result.ok,
            elapsed_seconds=t.elapsed,
            detail=detail,
        ))

        if not result.ok:
            logger.error("Validation failed with %d error(s).", result.validation.error_count)
            for issue in result.validation.errors:
                logger.error("  x %s", issue)
            self._reject(report, "Entity validation failed.")
            return None

        for issue in result.validation.warnings:
            logger.warning("  ! %s", issue)
        report.struct_name = result.entity.struct_name
        return result.entity

    # -----------------------------------------------------------------
    # Pipeline step: Conflict precheck
    # -----------------------------------------------------------------

    def _step_precheck(
        self, entity: EntityModel, ctx: EmitContext, report: GenerationReport
    ) -> bool:
        """Reject before writing anything when another entity owns our resources."""
        with Timer("precheck") as t:
            problem: Optional[str] = None
            owner: Optional[str] = None
            with self._locks.shared():
                for path, comment in (
                    (ctx.path(ctx.layout.route_registry), "#"),
                    (ctx.path(ctx.layout.menu), "//"),
                ):
                    store = FileSectionStore(self._writer.resolve(path), comment=comment)
                    current: Optional[str] = store.owner(entity.api_prefix)
                    if current is not None and current != entity.struct_name:
                        problem = (
                            f"Section '{entity.api_prefix}' in {path} is owned by '{current}'."
                        )
                        owner = current
                        break
            if problem is None:
                conflicts = self._history.find_active_conflicts(
                    entity.struct_name, entity.table_name, entity.api_prefix
                )
                if conflicts:
                    other = conflicts[0].manifest
                    owner = other.struct_name
                    problem = (
                        f"Table '{entity.table_name}' or API prefix '{entity.api_prefix}' "
                        f"is already generated for '{other.struct_name}' "
                        f"(history #{conflicts[0].id})."
                    )

        report.step_metrics.append(GenerationStepMetric(
            step_name="Conflict Check",
            success=problem is None,
            elapsed_seconds=t.elapsed,
            detail=problem or "no conflicts",
        ))
        if problem is not None:
            self._reject(report, problem, owner=owner)
            return False
        return True

    # -----------------------------------------------------------------
    # Pipeline step: Emit + write one artifact
    # -----------------------------------------------------------------

    def _step_emit(
        self,
        emitter: Emitter,
        entity: EntityModel,
        ctx: EmitContext,
        files: Dict[str, List[str]],
        insertions: List[SectionRef],
        report: GenerationReport,
    ) -> bool:
        artifact: str = emitter.artifact.value
        report.state = GenerationState[f"EMITTING_{emitter.artifact.name}"]
        with Timer(f"emit {artifact}") as t:
            try:
                result: EmitResult = emitter.emit(entity, ctx)
                for path, content in result.files.items():
                    record: FileRecord = self._writer.write(path, content)
                    report.files_written.append(record)
                    files.setdefault(artifact, []).append(path)
                for edit in result.sections:
                    self._apply_section(edit)
                    insertions.append(SectionRef(
                        kind=edit.kind, path=edit.path, key=edit.key, owner=edit.owner
                    ))
                error: Optional[str] = None
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.error("Emitting %s for '%s' failed: %s", artifact, entity.struct_name, error,
                             exc_info=not isinstance(exc, (ConflictError, OSError, ValueError)))

        written: int = len(files.get(artifact, []))
        report.step_metrics.append(GenerationStepMetric(
            step_name=f"Emit {artifact}",
            success=error is None,
            elapsed_seconds=t.elapsed,
            detail=error or f"{written} file(s)",
        ))
        if error is not None:
            report.message = f"Generation failed while emitting {artifact}: {error}"
            return False
        return True

    def _apply_section(self, edit: SectionEdit) -> None:
        skeleton: str = edit.skeleton
        if not skeleton:
            skeleton = menu_skeleton() if edit.kind == SectionKind.MENU else registry_skeleton(
                self._settings.package_name
            )
        store = FileSectionStore(
            self._writer.resolve(edit.path), comment=edit.comment, skeleton=skeleton
        )
        with self._locks.shared():
            store.replace(edit.key, edit.body, edit.owner)

    # -----------------------------------------------------------------
    # Pipeline step: Record history
    # -----------------------------------------------------------------

    def _step_record(
        self,
        entity: EntityModel,
        files: Dict[str, List[str]],
        insertions: List[SectionRef],
        failed_artifact: Optional[str],
        failure: Optional[str],
        report: GenerationReport,
    ) -> None:
        partial: bool = failed_artifact is not None
        if not partial:
            report.state = GenerationState.RECORDING

        manifest = GenerationManifest(
            struct_name=entity.struct_name,
            package_name=entity.package_name,
            table_name=entity.table_name,
            description=entity.description,
            api_prefix=entity.api_prefix,
            files=files,
            insertions=insertions,
            partial=partial,
            failed_artifact=failed_artifact,
            error=failure,
            fields=[spec.model_dump(mode="json") for spec in entity.fields],
        )
        report.manifest = manifest

        with Timer("record") as t:
            try:
                record = self._history.create(manifest)
                report.history_id = record.id
                error: Optional[str] = None
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.error("Recording history for '%s' failed: %s", entity.struct_name, error)

        report.step_metrics.append(GenerationStepMetric(
            step_name="Record History",
            success=error is None,
            elapsed_seconds=t.elapsed,
            detail=error or f"history #{report.history_id}",
        ))

        if partial:
            report.state = GenerationState.FAILED
            logger.error(
                "Generation of '%s' stopped at %s; %d file(s) recorded as partial.",
                entity.struct_name,
                failed_artifact,
                len(manifest.all_files()),
            )
        elif error is not None:
            report.state = GenerationState.FAILED
            report.message = f"Files were generated but history could not be recorded: {error}"
        else:
            report.state = GenerationState.DONE
            report.message = (
                f"Generated {len(manifest.all_files())} file(s) for '{entity.struct_name}'."
            )
            logger.info(
                "Generation of '%s' complete: %d file(s), %d section(s).",
                entity.struct_name,
                len(manifest.all_files()),
                len(insertions),
            )

    # -----------------------------------------------------------------
    # Internal: helpers
    # -----------------------------------------------------------------

    @staticmethod
    def _reject(report: GenerationReport, message: str, *, owner: Optional[str] = None) -> None:
        report.state = GenerationState.REJECTED
        report.message = message
        report.conflict_owner = owner
        logger.warning("Generation rejected: %s", message)


__all__: List[str] = [
    "GenerationState",
    "GenerationStepMetric",
    "GenerationReport",
    "CodeGenerator",
]

logger.debug("crudforge.generator loaded - %d public symbols.", len(__all__))
