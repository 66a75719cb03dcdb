# File: crudforge/emitters/controller.py
"""
crudforge - Controller Emitter
===============================
Renders a FastAPI router module with one synchronous handler per enabled
capability:

    GET    /list          paged, filtered, sorted listing
    GET    /detail/{pk}   one record
    POST   /create        insert
    PUT    /update        partial update, primary key in the body
    DELETE /delete/{pk}   remove

The list statement is built by a module-level ``build_list_query`` so it
can be reused and tested on its own. Its clauses are composed in a fixed
order: base select, eager loads, joins, filters, sort. Within each group
the entity's field order decides, so the output is reproducible.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set

from crudforge.emitters.base import (
    GENERATED_NOTICE,
    LIKE_TYPES,
    ColumnMember,
    EmitContext,
    EmitResult,
    python_type,
    query_members,
    sortable_members,
)
from crudforge.models import ArtifactKind, EntityModel, FieldSpec
from crudforge.utils import build_import_block, quote

logger: logging.Logger = logging.getLogger("crudforge.emitters.controller")

_ARTIFACT: str = ArtifactKind.CONTROLLER.value


class ControllerEmitter:
    """Stateless controller emitter."""

    artifact: ArtifactKind = ArtifactKind.CONTROLLER

    def __init__(self, indent_size: int = 4) -> None:
        self._indent: str = " " * indent_size
        self._double_indent: str = self._indent * 2

    def emit(self, entity: EntityModel, ctx: EmitContext) -> EmitResult:
        path: str = ctx.path(ctx.layout.controller, entity.struct_name)
        content: str = self.render(entity, ctx)
        logger.debug(
            "Rendered controller for '%s': %d lines.",
            entity.struct_name,
            content.count("\n") + 1,
        )
        return EmitResult(artifact=self.artifact, files={path: content})

    # -------------------------------------------------------------------

    def render(self, entity: EntityModel, ctx: EmitContext) -> str:
        s: str = entity.struct_name
        caps = entity.capabilities
        pk: FieldSpec = entity.primary_key
        pk_type, pk_module = python_type(pk.data_type, pk.name, _ARTIFACT)

        imports: Dict[str, Set[str]] = {
            "fastapi": {"APIRouter", "Depends"},
            "sqlalchemy.orm": {"Session"},
            ctx.model_module(s): {s},
            ctx.dto_module(s): {f"{s}Response"},
            ctx.database_module: {"get_db"},
        }
        if pk_module:
            imports.setdefault(pk_module, set()).add(pk_type)
        if caps.has_detail or caps.has_update or caps.has_delete:
            imports["fastapi"].add("HTTPException")

        sections: List[List[str]] = []
        constants: List[str] = []
        if caps.has_list:
            imports["typing"] = {"Annotated"}
            imports["fastapi"].add("Query")
            imports["sqlalchemy"] = {"Select", "func", "select"}
            imports[ctx.dto_module(s)].update({f"{s}QueryParams", f"{s}ListResponse"})
            if caps.has_pagination:
                constants.append(f"DEFAULT_PAGE_SIZE: int = {ctx.default_page_size}")
                constants.append(f"MAX_PAGE_SIZE: int = {ctx.max_page_size}")
            sortable: List[ColumnMember] = sortable_members(entity)
            if sortable:
                imports["typing"].update({"Any", "Dict"})
                if constants:
                    constants.append("")
                constants.append("SORT_COLUMNS: Dict[str, Any] = {")
                for member in sortable:
                    constants.append(f"{self._indent}{quote(member.json)}: {s}.{member.attr},")
                constants.append("}")
            sections.append(self._build_list_query(entity, imports))
            sections.append(self._list_handler(entity))
        if caps.has_detail:
            sections.append(self._detail_handler(entity, pk_type))
        if caps.has_create:
            imports[ctx.dto_module(s)].add(f"{s}CreateRequest")
            sections.append(self._create_handler(entity))
        if caps.has_update:
            imports[ctx.dto_module(s)].add(f"{s}UpdateRequest")
            sections.append(self._update_handler(entity))
        if caps.has_delete:
            sections.append(self._delete_handler(entity, pk_type))

        lines: List[str] = [
            '"""',
            f"{s} HTTP handlers.",
            "",
            GENERATED_NOTICE,
            '"""',
            "",
            "from __future__ import annotations",
            "",
            build_import_block(imports),
            "",
        ]
        if constants:
            lines.extend(constants)
            lines.append("")
        lines.append("router = APIRouter()")
        for section in sections:
            lines.append("")
            lines.append("")
            lines.extend(section)
        lines.append("")
        return "\n".join(lines)

    # -------------------------------------------------------------------
    # List query
    # -------------------------------------------------------------------

    def _build_list_query(self, entity: EntityModel, imports: Dict[str, Set[str]]) -> List[str]:
        s: str = entity.struct_name
        i: str = self._indent
        ii: str = self._double_indent
        lines: List[str] = [
            f"def build_list_query(params: {s}QueryParams) -> Select:",
            f'{i}"""Compose the {s} list statement from the query parameters."""',
            f"{i}stmt = select({s})",
        ]

        for spec in entity.preloaded_relations:
            imports["sqlalchemy.orm"].add("selectinload")
            lines.append(f"{i}stmt = stmt.options(selectinload({s}.{spec.attr_name}))")

        for spec in entity.joinable_relations:
            relation = spec.relation
            if relation.join_condition:
                imports["sqlalchemy"].update({"table", "text"})
                lines.append(
                    f"{i}stmt = stmt.outerjoin(table({quote(relation.related_table)}), "
                    f"text({quote(relation.join_condition)}))"
                )
            else:
                lines.append(f"{i}stmt = stmt.outerjoin({s}.{spec.attr_name})")

        for member in query_members(entity):
            lines.append(f"{i}if params.{member.attr} is not None:")
            if member.data_type in LIKE_TYPES:
                lines.append(
                    f'{ii}stmt = stmt.where({s}.{member.attr}.like(f"%{{params.{member.attr}}}%"))'
                )
            else:
                lines.append(f"{ii}stmt = stmt.where({s}.{member.attr} == params.{member.attr})")

        for spec in entity.join_filter_fields:
            imports["sqlalchemy"].add("text")
            param: str = f"{spec.attr_name}_filter"
            condition: str = f"{spec.relation.resolved_filter_condition} = :{param}"
            lines.append(f"{i}if params.{param} is not None:")
            lines.append(
                f"{ii}stmt = stmt.where(text({quote(condition)})"
                f".bindparams({param}=params.{param}))"
            )

        pk: FieldSpec = entity.primary_key
        if sortable_members(entity):
            lines.append(f"{i}if params.sort_by is not None:")
            lines.append(f"{ii}column = SORT_COLUMNS[params.sort_by]")
            lines.append(
                f"{ii}stmt = stmt.order_by(column.desc() if params.sort_desc else column.asc())"
            )
            lines.append(f"{i}else:")
            lines.append(f"{ii}stmt = stmt.order_by({s}.{pk.attr_name})")
        else:
            lines.append(f"{i}stmt = stmt.order_by({s}.{pk.attr_name})")
        lines.append(f"{i}return stmt")
        return lines

    # -------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------

    def _list_handler(self, entity: EntityModel) -> List[str]:
        s: str = entity.struct_name
        i: str = self._indent
        lines: List[str] = [
            f'@router.get("/list", response_model={s}ListResponse, summary={quote("List " + entity.label)})',
            f"def list_{entity.plural_snake_name}(",
            f"{i}params: Annotated[{s}QueryParams, Query()],",
            f"{i}db: Session = Depends(get_db),",
            f") -> {s}ListResponse:",
            f"{i}stmt = build_list_query(params)",
            f"{i}total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))",
        ]
        if entity.capabilities.has_pagination:
            lines.append(f"{i}page_size = min(params.page_size or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)")
            lines.append(f"{i}stmt = stmt.offset((params.page - 1) * page_size).limit(page_size)")
        lines.append(f"{i}rows = db.scalars(stmt).unique().all()")
        lines.append(f"{i}return {s}ListResponse(")
        lines.append(f"{self._double_indent}total=total or 0,")
        lines.append(
            f"{self._double_indent}items=[{s}Response.model_validate(row) for row in rows],"
        )
        lines.append(f"{i})")
        return lines

    def _not_found(self, entity: EntityModel) -> str:
        return (
            f"{self._double_indent}raise HTTPException("
            f'status_code=404, detail="{entity.struct_name} not found.")'
        )

    def _detail_handler(self, entity: EntityModel, pk_type: str) -> List[str]:
        s: str = entity.struct_name
        i: str = self._indent
        pk: str = entity.primary_key.attr_name
        return [
            f'@router.get("/detail/{{{pk}}}", response_model={s}Response, summary={quote("Get " + entity.label)})',
            f"def get_{entity.snake_name}({pk}: {pk_type}, db: Session = Depends(get_db)) -> {s}Response:",
            f"{i}obj = db.get({s}, {pk})",
            f"{i}if obj is None:",
            self._not_found(entity),
            f"{i}return {s}Response.model_validate(obj)",
        ]

    def _create_handler(self, entity: EntityModel) -> List[str]:
        s: str = entity.struct_name
        i: str = self._indent
        return [
            f'@router.post("/create", response_model={s}Response, status_code=201, '
            f'summary={quote("Create " + entity.label)})',
            f"def create_{entity.snake_name}(",
            f"{i}payload: {s}CreateRequest,",
            f"{i}db: Session = Depends(get_db),",
            f") -> {s}Response:",
            f"{i}obj = {s}(**payload.model_dump(exclude_unset=True))",
            f"{i}db.add(obj)",
            f"{i}db.commit()",
            f"{i}db.refresh(obj)",
            f"{i}return {s}Response.model_validate(obj)",
        ]

    def _update_handler(self, entity: EntityModel) -> List[str]:
        s: str = entity.struct_name
        i: str = self._indent
        ii: str = self._double_indent
        pk: str = entity.primary_key.attr_name
        return [
            f'@router.put("/update", response_model={s}Response, summary={quote("Update " + entity.label)})',
            f"def update_{entity.snake_name}(",
            f"{i}payload: {s}UpdateRequest,",
            f"{i}db: Session = Depends(get_db),",
            f") -> {s}Response:",
            f"{i}obj = db.get({s}, payload.{pk})",
            f"{i}if obj is None:",
            self._not_found(entity),
            f"{i}changes = payload.model_dump(exclude_unset=True, exclude={{{quote(pk)}}})",
            f"{i}for key, value in changes.items():",
            f"{ii}setattr(obj, key, value)",
            f"{i}db.commit()",
            f"{i}db.refresh(obj)",
            f"{i}return {s}Response.model_validate(obj)",
        ]

    def _delete_handler(self, entity: EntityModel, pk_type: str) -> List[str]:
        s: str = entity.struct_name
        i: str = self._indent
        pk: str = entity.primary_key.attr_name
        return [
            f'@router.delete("/delete/{{{pk}}}", status_code=204, summary={quote("Delete " + entity.label)})',
            f"def delete_{entity.snake_name}({pk}: {pk_type}, db: Session = Depends(get_db)) -> None:",
            f"{i}obj = db.get({s}, {pk})",
            f"{i}if obj is None:",
            self._not_found(entity),
            f"{i}db.delete(obj)",
            f"{i}db.commit()",
        ]


__all__: List[str] = ["ControllerEmitter"]
