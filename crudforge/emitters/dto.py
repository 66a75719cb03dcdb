# File: crudforge/emitters/dto.py
"""
crudforge - DTO Emitter
========================
Renders the Pydantic V2 request/response shapes for one entity:

    - ``<S>CreateRequest``  POST body; primary key excluded, required flags enforced
    - ``<S>UpdateRequest``  PUT body; primary key required, everything else optional
    - ``<S>QueryParams``    list query string (paging, filters, sorting)
    - ``<S>Response``       one record; preloaded relations nested
    - ``<S>ListResponse``   ``{total, list}`` page of responses

Python attributes are snake_case; JSON members use the lowerCamel aliases
the frontend client sends and reads.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from crudforge.emitters.base import (
    GENERATED_NOTICE,
    ColumnMember,
    EmitContext,
    EmitResult,
    column_members,
    python_type,
    query_members,
    sortable_members,
)
from crudforge.models import ArtifactKind, EntityModel, FieldSpec
from crudforge.utils import build_import_block, quote

logger: logging.Logger = logging.getLogger("crudforge.emitters.dto")

_ARTIFACT: str = ArtifactKind.DTO.value


class DTOEmitter:
    """Stateless DTO emitter."""

    artifact: ArtifactKind = ArtifactKind.DTO

    def __init__(self, indent_size: int = 4) -> None:
        self._indent: str = " " * indent_size

    def emit(self, entity: EntityModel, ctx: EmitContext) -> EmitResult:
        path: str = ctx.path(ctx.layout.dto, entity.struct_name)
        content: str = self.render(entity, ctx)
        logger.debug(
            "Rendered DTOs for '%s': %d lines.", entity.struct_name, content.count("\n") + 1
        )
        return EmitResult(artifact=self.artifact, files={path: content})

    # -------------------------------------------------------------------

    def render(self, entity: EntityModel, ctx: EmitContext) -> str:
        imports: Dict[str, Set[str]] = {
            "typing": {"Optional"},
            "pydantic": {"BaseModel", "ConfigDict", "Field"},
        }
        caps = entity.capabilities
        members: List[ColumnMember] = column_members(entity)
        for member in members:
            self._annotation(member, imports)

        blocks: List[List[str]] = []
        if caps.has_create:
            blocks.append(self._create_request(entity, members, imports))
        if caps.has_update:
            blocks.append(self._update_request(entity, members, imports))
        if caps.has_list:
            blocks.append(self._query_params(entity, ctx, imports))
        blocks.append(self._response(entity, ctx, members, imports))
        if caps.has_list:
            blocks.append(self._list_response(entity, imports))

        related_imports: Dict[str, Set[str]] = {}
        for spec in entity.preloaded_relations:
            related: str = spec.relation.related_entity
            if related != entity.struct_name:
                related_imports.setdefault(ctx.dto_module(related), set()).add(f"{related}Response")

        lines: List[str] = [
            '"""',
            f"{entity.struct_name} request and response shapes.",
            "",
            GENERATED_NOTICE,
            '"""',
            "",
            "from __future__ import annotations",
            "",
            build_import_block(imports),
        ]
        if related_imports:
            lines.append("")
            lines.append(build_import_block(related_imports))
        for block in blocks:
            lines.append("")
            lines.append("")
            lines.extend(block)
        lines.append("")
        return "\n".join(lines)

    # -------------------------------------------------------------------
    # Field helpers
    # -------------------------------------------------------------------

    def _annotation(self, member: ColumnMember, imports: Dict[str, Set[str]]) -> str:
        py_type, py_module = python_type(member.data_type, member.spec.name, _ARTIFACT)
        if py_module:
            imports.setdefault(py_module, set()).add(py_type)
        return py_type

    def _field(
        self,
        attr: str,
        annotation: str,
        alias: str,
        *,
        required: bool,
        description: str = "",
        extra: str = "",
    ) -> str:
        args: List[str] = ["..." if required else "default=None"]
        if alias != attr:
            args.append(f"alias={quote(alias)}")
        if extra:
            args.append(extra)
        if description:
            args.append(f"description={quote(description)}")
        hint: str = annotation if required else f"Optional[{annotation}]"
        return f"{self._indent}{attr}: {hint} = Field({', '.join(args)})"

    def _header(self, class_name: str, doc: str, *, from_attributes: bool = False) -> List[str]:
        config: str = "populate_by_name=True"
        if from_attributes:
            config += ", from_attributes=True"
        return [
            f"class {class_name}(BaseModel):",
            f'{self._indent}"""{doc}"""',
            "",
            f"{self._indent}model_config = ConfigDict({config})",
            "",
        ]

    # -------------------------------------------------------------------
    # Shapes
    # -------------------------------------------------------------------

    def _create_request(
        self, entity: EntityModel, members: List[ColumnMember], imports: Dict[str, Set[str]]
    ) -> List[str]:
        lines: List[str] = self._header(
            f"{entity.struct_name}CreateRequest", f"Body of a {entity.struct_name} create call."
        )
        for member in members:
            if member.is_primary_key:
                continue
            lines.append(self._field(
                member.attr,
                self._annotation(member, imports),
                member.json,
                required=member.required,
                description=member.spec.description,
            ))
        if len(lines) == 5:
            lines.append(f"{self._indent}pass")
        return lines

    def _update_request(
        self, entity: EntityModel, members: List[ColumnMember], imports: Dict[str, Set[str]]
    ) -> List[str]:
        lines: List[str] = self._header(
            f"{entity.struct_name}UpdateRequest",
            f"Body of a {entity.struct_name} update call; unset members are left untouched.",
        )
        for member in members:
            lines.append(self._field(
                member.attr,
                self._annotation(member, imports),
                member.json,
                required=member.is_primary_key,
                description=member.spec.description,
            ))
        return lines

    def _query_params(
        self, entity: EntityModel, ctx: EmitContext, imports: Dict[str, Set[str]]
    ) -> List[str]:
        lines: List[str] = self._header(
            f"{entity.struct_name}QueryParams", f"Query string of the {entity.struct_name} list call."
        )
        if entity.capabilities.has_pagination:
            lines.append(f"{self._indent}page: int = Field(default=1, ge=1)")
            lines.append(
                f"{self._indent}page_size: int = Field("
                f'default={ctx.default_page_size}, ge=1, alias="pageSize")'
            )
        for member in query_members(entity):
            lines.append(self._field(
                member.attr,
                self._annotation(member, imports),
                member.json,
                required=False,
                description=member.spec.description,
            ))
        for spec in entity.join_filter_fields:
            lines.append(self._field(
                f"{spec.attr_name}_filter",
                "str",
                f"{spec.json_name}Filter",
                required=False,
                description=f"Matches {spec.relation.resolved_filter_condition}.",
            ))
        sortable: List[ColumnMember] = sortable_members(entity)
        if sortable:
            imports["typing"].add("Literal")
            options: str = ", ".join(quote(m.json) for m in sortable)
            lines.append(
                f"{self._indent}sort_by: Optional[Literal[{options}]] = "
                f'Field(default=None, alias="sortBy")'
            )
            lines.append(f'{self._indent}sort_desc: bool = Field(default=False, alias="sortDesc")')
        if len(lines) == 5:
            lines.append(f"{self._indent}pass")
        return lines

    def _response(
        self,
        entity: EntityModel,
        ctx: EmitContext,
        members: List[ColumnMember],
        imports: Dict[str, Set[str]],
    ) -> List[str]:
        lines: List[str] = self._header(
            f"{entity.struct_name}Response", f"One {entity.struct_name} record.", from_attributes=True
        )
        for member in members:
            lines.append(self._field(
                member.attr,
                self._annotation(member, imports),
                member.json,
                required=member.is_primary_key,
            ))
        for spec in entity.preloaded_relations:
            lines.append(self._nested(entity, spec, imports))
        if ctx.with_timestamps:
            imports.setdefault("datetime", set()).add("datetime")
            lines.append(self._field("created_at", "datetime", "createdAt", required=False))
            lines.append(self._field("updated_at", "datetime", "updatedAt", required=False))
        return lines

    def _nested(self, entity: EntityModel, spec: FieldSpec, imports: Dict[str, Set[str]]) -> str:
        target: str = f"{spec.relation.related_entity}Response"
        alias: str = f", alias={quote(spec.json_name)}" if spec.json_name != spec.attr_name else ""
        if spec.relation.is_collection:
            imports["typing"].add("List")
            return (
                f"{self._indent}{spec.attr_name}: List[{target}] = "
                f"Field(default_factory=list{alias})"
            )
        return f"{self._indent}{spec.attr_name}: Optional[{target}] = Field(default=None{alias})"

    def _list_response(self, entity: EntityModel, imports: Dict[str, Set[str]]) -> List[str]:
        imports["typing"].add("List")
        lines: List[str] = self._header(
            f"{entity.struct_name}ListResponse", f"One page of {entity.struct_name} records."
        )
        lines.append(f"{self._indent}total: int = 0")
        lines.append(
            f"{self._indent}items: List[{entity.struct_name}Response] = "
            f'Field(default_factory=list, alias="list")'
        )
        return lines


__all__: List[str] = ["DTOEmitter"]
