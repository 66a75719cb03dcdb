# File: crudforge/api.py
"""
crudforge - HTTP Surface
=========================
FastAPI router exposing the generator to the operator's web form.

Every endpoint answers with the same envelope::

    {"success": bool, "message": str, "errors": [...], "data": ...}

    POST   /codegen/generate        run one generation
    GET    /codegen/history         page through history records
    POST   /codegen/rollback        undo a recorded run
    DELETE /codegen/history/{id}    forget a record (files untouched)
    GET    /codegen/tables          tables of the application database
    GET    /codegen/columns         columns of one table

``create_app`` builds a standalone application around the router.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from crudforge.config import GeneratorSettings
from crudforge.errors import CodegenError, ConflictError, HistoryNotFoundError
from crudforge.generator import GenerationReport, GenerationState
from crudforge.models import RollbackFlags
from crudforge.rollback import RollbackReport
from crudforge.service import CodegenService

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.api")


class RollbackRequest(RollbackFlags):
    """Rollback flags plus the history record they apply to."""

    id: int


def get_service(request: Request) -> CodegenService:
    return request.app.state.codegen_service


ServiceDep = Annotated[CodegenService, Depends(get_service)]

router = APIRouter(prefix="/codegen", tags=["codegen"])


def _envelope(
    status_code: int,
    *,
    success: bool,
    message: str,
    data: Any = None,
    errors: Optional[List[Dict[str, Any]]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "success": success,
            "message": message,
            "errors": errors or [],
            "data": data,
        }),
    )


def _generation_status(report: GenerationReport) -> int:
    if report.state == GenerationState.DONE:
        return status.HTTP_200_OK
    if report.state == GenerationState.REJECTED:
        if report.validation.has_errors:
            return 422
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@router.post("/generate")
def generate(service: ServiceDep, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    report: GenerationReport = service.generate(payload)
    data: Dict[str, Any] = {
        "state": report.state.value,
        "structName": report.struct_name,
        "historyId": report.history_id,
        "files": [record.relative_path for record in report.files_written],
        "partial": report.manifest.partial if report.manifest is not None else False,
        "conflictOwner": report.conflict_owner,
    }
    return _envelope(
        _generation_status(report),
        success=report.success,
        message=report.message,
        data=data,
        errors=report.validation.to_list(),
    )


# ---------------------------------------------------------------------------
# History & rollback
# ---------------------------------------------------------------------------


@router.get("/history")
def list_history(
    service: ServiceDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
) -> JSONResponse:
    records, total = service.list_history(page, page_size)
    return _envelope(
        status.HTTP_200_OK,
        success=True,
        message="ok",
        data={
            "list": [record.to_summary() for record in records],
            "total": total,
            "page": page,
            "pageSize": page_size,
        },
    )


@router.post("/rollback")
def rollback(service: ServiceDep, body: RollbackRequest) -> JSONResponse:
    flags = RollbackFlags.model_validate(body.model_dump(exclude={"id"}))
    try:
        report: RollbackReport = service.rollback(body.id, flags)
    except HistoryNotFoundError as exc:
        return _envelope(status.HTTP_404_NOT_FOUND, success=False, message=str(exc))
    except ConflictError as exc:
        return _envelope(status.HTTP_409_CONFLICT, success=False, message=str(exc))

    errors: List[Dict[str, Any]] = [
        {"category": f.category, "target": f.target, "reason": f.reason}
        for f in report.failures
    ]
    return _envelope(
        status.HTTP_200_OK if report.success else status.HTTP_500_INTERNAL_SERVER_ERROR,
        success=report.success,
        message=report.message,
        data=report.to_dict(),
        errors=errors,
    )


@router.delete("/history/{history_id}")
def delete_history(service: ServiceDep, history_id: int) -> JSONResponse:
    try:
        service.delete_history(history_id)
    except HistoryNotFoundError as exc:
        return _envelope(status.HTTP_404_NOT_FOUND, success=False, message=str(exc))
    return _envelope(
        status.HTTP_200_OK, success=True, message=f"Deleted history #{history_id}."
    )


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------


@router.get("/tables")
def list_tables(service: ServiceDep) -> JSONResponse:
    try:
        tables = service.list_tables()
    except CodegenError as exc:
        return _envelope(status.HTTP_503_SERVICE_UNAVAILABLE, success=False, message=str(exc))
    return _envelope(
        status.HTTP_200_OK,
        success=True,
        message="ok",
        data=[t.model_dump(by_alias=True) for t in tables],
    )


@router.get("/columns")
def list_columns(
    service: ServiceDep,
    table_name: str = Query(..., min_length=1, alias="tableName"),
) -> JSONResponse:
    try:
        columns = service.list_columns(table_name)
    except CodegenError as exc:
        return _envelope(status.HTTP_503_SERVICE_UNAVAILABLE, success=False, message=str(exc))
    except NoSuchTableError:
        return _envelope(
            status.HTTP_404_NOT_FOUND, success=False, message=f"Table '{table_name}' not found."
        )
    except SQLAlchemyError as exc:
        logger.error("Introspection of %s failed: %s", table_name, exc)
        return _envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR, success=False, message=str(exc)
        )
    return _envelope(
        status.HTTP_200_OK,
        success=True,
        message="ok",
        data=[c.model_dump(by_alias=True) for c in columns],
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[GeneratorSettings] = None,
    *,
    service: Optional[CodegenService] = None,
) -> FastAPI:
    """Standalone application serving the codegen router."""
    from crudforge import __version__

    app = FastAPI(title="crudforge", version=__version__)
    app.state.codegen_service = service or CodegenService.from_settings(
        settings or GeneratorSettings()
    )
    app.include_router(router)
    logger.info("crudforge API ready (root=%s).", app.state.codegen_service.settings.resolved_root)
    return app


__all__: List[str] = ["RollbackRequest", "router", "get_service", "create_app"]
