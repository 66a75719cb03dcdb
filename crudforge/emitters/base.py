# File: crudforge/emitters/base.py
"""
crudforge - Emitter Foundations
================================
Shared vocabulary for the five artifact emitters: the ``EmitContext`` that
tells an emitter where sibling artifacts live, the ``EmitResult`` it returns,
and the semantic-type lookup tables for SQLAlchemy, Python and TypeScript.

Emitters are pure: they turn an ``EntityModel`` into text and never touch
the file system. The orchestrator decides when and where to write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from crudforge.config import ArtifactLayout, GeneratorSettings
from crudforge.errors import EmissionError
from crudforge.models import ArtifactKind, EntityModel, FieldSpec, SectionKind
from crudforge.utils import file_stem_for

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.emitters")

GENERATED_NOTICE: str = "Generated by crudforge. Regenerating overwrites this file."

# ---------------------------------------------------------------------------
# Semantic type tables
# ---------------------------------------------------------------------------

# data type -> (SQLAlchemy type expression, sqlalchemy import name)
SQLALCHEMY_TYPES: Dict[str, Tuple[str, str]] = {
    "integer": ("Integer", "Integer"),
    "bigint": ("BigInteger", "BigInteger"),
    "float": ("Float", "Float"),
    "decimal": ("Numeric(18, 4)", "Numeric"),
    "string": ("String(255)", "String"),
    "text": ("Text", "Text"),
    "bool": ("Boolean", "Boolean"),
    "time": ("DateTime", "DateTime"),
    "date": ("Date", "Date"),
    "json": ("JSON", "JSON"),
}

# data type -> (Python annotation, import module or None)
PYTHON_TYPES: Dict[str, Tuple[str, Optional[str]]] = {
    "integer": ("int", None),
    "bigint": ("int", None),
    "float": ("float", None),
    "decimal": ("Decimal", "decimal"),
    "string": ("str", None),
    "text": ("str", None),
    "bool": ("bool", None),
    "time": ("datetime", "datetime"),
    "date": ("date", "datetime"),
    "json": ("Any", "typing"),
}

TYPESCRIPT_TYPES: Dict[str, str] = {
    "integer": "number",
    "bigint": "number",
    "float": "number",
    "decimal": "number",
    "string": "string",
    "text": "string",
    "bool": "boolean",
    "time": "string",
    "date": "string",
    "json": "Record<string, unknown>",
}

# Types filtered with LIKE; every other type uses equality.
LIKE_TYPES: Tuple[str, ...] = ("string", "text")


def python_type(data_type: str, name: str, artifact: str) -> Tuple[str, Optional[str]]:
    try:
        return PYTHON_TYPES[data_type]
    except KeyError:
        raise EmissionError(
            artifact,
            f"Field '{name}' has unsupported data type '{data_type}'.",
        ) from None


def sqlalchemy_type(data_type: str, name: str, artifact: str) -> Tuple[str, str]:
    try:
        return SQLALCHEMY_TYPES[data_type]
    except KeyError:
        raise EmissionError(
            artifact,
            f"Field '{name}' has unsupported data type '{data_type}'.",
        ) from None


def typescript_type(data_type: str, name: str, artifact: str) -> str:
    try:
        return TYPESCRIPT_TYPES[data_type]
    except KeyError:
        raise EmissionError(
            artifact,
            f"Field '{name}' has unsupported data type '{data_type}'.",
        ) from None


# ---------------------------------------------------------------------------
# Context & result
# ---------------------------------------------------------------------------


def module_path(relative_path: str) -> str:
    """``server/admin/models/product.py`` -> ``server.admin.models.product``."""
    stem: str = relative_path[:-3] if relative_path.endswith(".py") else relative_path
    return stem.replace("/", ".")


@dataclass(frozen=True, slots=True)
class EmitContext:
    """Placement and paging facts an emitter needs beyond the entity."""

    layout: ArtifactLayout
    package: str
    database_module: str = "server.core.database"
    http_module: str = "../http"
    default_page_size: int = 10
    max_page_size: int = 100
    with_timestamps: bool = True

    @classmethod
    def from_settings(cls, settings: GeneratorSettings, entity: EntityModel) -> "EmitContext":
        return cls(
            layout=settings.layout,
            package=entity.package_name,
            database_module=settings.database_module,
            http_module=settings.http_module,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            with_timestamps=settings.with_timestamps,
        )

    def path(self, template: str, struct_name: str = "") -> str:
        stem: str = file_stem_for(struct_name) if struct_name else ""
        return self.layout.render(template, self.package, stem)

    def model_module(self, struct_name: str) -> str:
        return module_path(self.path(self.layout.model, struct_name))

    def dto_module(self, struct_name: str) -> str:
        return module_path(self.path(self.layout.dto, struct_name))

    def controller_module(self, struct_name: str) -> str:
        return module_path(self.path(self.layout.controller, struct_name))


@dataclass(frozen=True, slots=True)
class SectionEdit:
    """A tagged block to register in a shared file."""

    kind: SectionKind
    path: str
    key: str
    owner: str
    body: str
    comment: str = "#"
    skeleton: str = ""


@dataclass(slots=True)
class EmitResult:
    """Text produced by one emitter, keyed by relative path."""

    artifact: ArtifactKind
    files: Dict[str, str] = field(default_factory=dict)
    sections: List[SectionEdit] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ColumnMember:
    """
    One column-owning attribute of an entity as the DTO and controller see it.

    Scalar fields map onto themselves; a belongs-to relation whose foreign
    key no scalar declares contributes that foreign key as an integer member.
    """

    spec: FieldSpec
    attr: str
    json: str
    data_type: str
    required: bool

    @property
    def is_primary_key(self) -> bool:
        return self.spec.is_primary_key


def column_members(entity: EntityModel) -> List[ColumnMember]:
    """Column-owning members in field order, one per attribute name."""
    members: List[ColumnMember] = []
    seen: List[str] = []
    scalar_attrs: List[str] = entity.scalar_attr_names
    for spec in entity.fields:
        if spec.relation is None:
            member = ColumnMember(spec, spec.attr_name, spec.json_name, spec.data_type, spec.required)
        elif spec.fk_attr_name and spec.fk_attr_name not in scalar_attrs:
            member = ColumnMember(spec, spec.fk_attr_name, spec.fk_json_name, "integer", spec.required)
        else:
            continue
        if member.attr in seen:
            continue
        seen.append(member.attr)
        members.append(member)
    return members


def query_members(entity: EntityModel) -> List[ColumnMember]:
    """
    Searchable or filterable columns.

    A filterable joinable relation keeps its foreign key equality member and
    additionally gets a ``<name>_filter`` member matched against the joined table.
    """
    return [m for m in column_members(entity) if m.spec.is_query_member]


def sortable_members(entity: EntityModel) -> List[ColumnMember]:
    return [m for m in column_members(entity) if m.spec.is_sortable]


class Emitter(Protocol):
    artifact: ArtifactKind

    def emit(self, entity: EntityModel, ctx: EmitContext) -> EmitResult: ...


__all__: List[str] = [
    "GENERATED_NOTICE",
    "SQLALCHEMY_TYPES",
    "PYTHON_TYPES",
    "TYPESCRIPT_TYPES",
    "LIKE_TYPES",
    "python_type",
    "sqlalchemy_type",
    "typescript_type",
    "module_path",
    "EmitContext",
    "SectionEdit",
    "EmitResult",
    "ColumnMember",
    "column_members",
    "query_members",
    "sortable_members",
    "Emitter",
]
