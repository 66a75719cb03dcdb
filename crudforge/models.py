# File: crudforge/models.py
"""
crudforge - Core Data Models
=============================
Pydantic V2 models describing one generatable entity and the records the
generator keeps about each run. These models are the single source of truth
shared by every stage of the pipeline:

    Request payload → EntityModel → Emitters → GenerationManifest → History

Relations are a closed, discriminated union (``BelongsTo``, ``HasOne``,
``HasMany``, ``ManyToMany``); each variant carries only the attributes that
make sense for it, so combinations such as a join table on a belongs-to
relation cannot be constructed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from crudforge.utils import (
    file_stem_for,
    json_name,
    table_name_for,
    to_plural,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.models")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DataType(str, Enum):
    """Semantic field types understood by every emitter."""

    INTEGER = "integer"
    BIGINT = "bigint"
    FLOAT = "float"
    DECIMAL = "decimal"
    STRING = "string"
    TEXT = "text"
    BOOL = "bool"
    TIME = "time"
    DATE = "date"
    JSON = "json"


class RelationKind(str, Enum):
    """Relation cardinalities."""

    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    MANY_TO_MANY = "many_to_many"


class ArtifactKind(str, Enum):
    """Artifact groups, in emission order."""

    MODEL = "model"
    DTO = "dto"
    CONTROLLER = "controller"
    ROUTES = "routes"
    CLIENT = "client"


class SectionKind(str, Enum):
    """Shared files the generator inserts tagged blocks into."""

    ROUTES = "routes"
    MENU = "menu"


# Aliases accepted from request payloads and introspection, mapped to the
# canonical DataType values.
_DATA_TYPE_ALIASES: Dict[str, str] = {
    "int": "integer",
    "int32": "integer",
    "uint": "integer",
    "smallint": "integer",
    "int64": "bigint",
    "biginteger": "bigint",
    "float64": "float",
    "double": "float",
    "numeric": "decimal",
    "str": "string",
    "varchar": "string",
    "char": "string",
    "longtext": "text",
    "boolean": "bool",
    "datetime": "time",
    "timestamp": "time",
    "time.time": "time",
    "jsonb": "json",
}

_RELATION_KIND_ALIASES: Dict[str, str] = {
    "belongsto": "belongs_to",
    "belongs_to": "belongs_to",
    "hasone": "has_one",
    "has_one": "has_one",
    "hasmany": "has_many",
    "has_many": "has_many",
    "manytomany": "many_to_many",
    "many_to_many": "many_to_many",
    "many2many": "many_to_many",
}

KNOWN_DATA_TYPES: Tuple[str, ...] = tuple(dt.value for dt in DataType)


def normalize_data_type(value: str) -> str:
    """Map a loosely written type name onto its canonical tag (unknown kept)."""
    key: str = (value or "").strip().lower()
    return _DATA_TYPE_ALIASES.get(key, key)


def normalize_relation_kind(value: str) -> Optional[str]:
    """Return the canonical relation kind, or None when unrecognised."""
    key: str = (value or "").strip().lower().replace("-", "_")
    return _RELATION_KIND_ALIASES.get(key) or _RELATION_KIND_ALIASES.get(key.replace("_", ""))


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    use_enum_values=True,
    frozen=True,
    extra="forbid",
)

# camelCase on the wire, snake_case in Python.
_WIRE_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
    alias_generator=to_camel,
)


# ---------------------------------------------------------------------------
# Relation variants
# ---------------------------------------------------------------------------


class _RelationBase(BaseModel):
    model_config = _FROZEN_CONFIG

    related_entity: str = Field(..., min_length=1)
    foreign_key: str = Field(default="", description="FK column field name.")
    referenced_key: str = Field(default="ID", description="Key the FK points at.")
    preload: bool = False

    @property
    def related_table(self) -> str:
        return table_name_for(self.related_entity)

    @property
    def foreign_key_column(self) -> str:
        return to_snake_case(self.foreign_key)

    @property
    def referenced_column(self) -> str:
        return to_snake_case(self.referenced_key)

    @property
    def is_collection(self) -> bool:
        return False


class _JoinableRelation(_RelationBase):
    joinable: bool = False
    join_condition: str = ""
    filter_condition: str = ""

    @property
    def resolved_filter_condition(self) -> str:
        return self.filter_condition or f"{self.related_table}.name"


class BelongsTo(_JoinableRelation):
    """This entity holds the foreign key (``foreign_key`` is our column)."""

    kind: Literal["belongs_to"] = "belongs_to"


class HasOne(_JoinableRelation):
    """The related entity holds a foreign key back to this one."""

    kind: Literal["has_one"] = "has_one"


class HasMany(_RelationBase):
    kind: Literal["has_many"] = "has_many"

    @property
    def is_collection(self) -> bool:
        return True


class ManyToMany(_RelationBase):
    """Linked through ``join_table``; ``foreign_key`` is our column there."""

    kind: Literal["many_to_many"] = "many_to_many"
    join_table: str = Field(..., min_length=1)

    @property
    def is_collection(self) -> bool:
        return True

    @property
    def related_foreign_key_column(self) -> str:
        return to_snake_case(f"{self.related_entity}ID")


Relation = Annotated[
    Union[BelongsTo, HasOne, HasMany, ManyToMany],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# FieldSpec / EntityModel
# ---------------------------------------------------------------------------


class FieldSpec(BaseModel):
    """One generatable field of an entity."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, description="UpperCamel identifier.")
    column_name: str = Field(default="", description="Empty for non-owning relations.")
    data_type: str = Field(default=DataType.STRING.value)
    description: str = ""
    required: bool = False
    is_primary_key: bool = False
    is_searchable: bool = False
    is_filterable: bool = False
    is_sortable: bool = False
    relation: Optional[Relation] = None

    @property
    def is_relation(self) -> bool:
        return self.relation is not None

    @property
    def attr_name(self) -> str:
        """Python attribute name in generated code."""
        return to_snake_case(self.name)

    @property
    def json_name(self) -> str:
        return json_name(self.name)

    @property
    def label(self) -> str:
        return self.description or self.name

    @property
    def owns_column(self) -> bool:
        """True for scalar fields and belongs-to relations."""
        return self.relation is None or isinstance(self.relation, BelongsTo)

    @property
    def fk_attr_name(self) -> str:
        """Attribute holding the foreign key for a belongs-to relation."""
        if isinstance(self.relation, BelongsTo):
            return to_snake_case(self.relation.foreign_key)
        return ""

    @property
    def fk_json_name(self) -> str:
        if isinstance(self.relation, BelongsTo):
            return json_name(self.relation.foreign_key)
        return ""

    @property
    def is_query_member(self) -> bool:
        return (self.is_searchable or self.is_filterable) and self.owns_column

    @property
    def has_join_filter(self) -> bool:
        """Filterable joinable relation: gets a ``<name>_filter`` query member."""
        return (
            self.is_filterable
            and isinstance(self.relation, (BelongsTo, HasOne))
            and self.relation.joinable
        )


class Capabilities(BaseModel):
    """Which CRUD operations to emit."""

    model_config = _FROZEN_CONFIG

    has_list: bool = True
    has_create: bool = True
    has_update: bool = True
    has_delete: bool = True
    has_detail: bool = True
    has_pagination: bool = True


class EntityModel(BaseModel):
    """
    Validated description of one entity.

    Only ``crudforge.validators.build_entity_model`` constructs these from
    untyped input; emitters receive nothing else.
    """

    model_config = _FROZEN_CONFIG

    struct_name: str = Field(..., min_length=1)
    table_name: str = Field(..., min_length=1)
    package_name: str = Field(default="admin", min_length=1)
    description: str = ""
    api_prefix: str = Field(..., min_length=1)
    fields: Tuple[FieldSpec, ...] = Field(..., min_length=1)
    capabilities: Capabilities = Field(default_factory=Capabilities)

    @property
    def file_stem(self) -> str:
        return file_stem_for(self.struct_name)

    @property
    def snake_name(self) -> str:
        return to_snake_case(self.struct_name)

    @property
    def plural_snake_name(self) -> str:
        return to_snake_case(to_plural(self.struct_name))

    @property
    def label(self) -> str:
        return self.description or self.struct_name

    @property
    def primary_key(self) -> FieldSpec:
        for f in self.fields:
            if f.is_primary_key:
                return f
        raise ValueError(f"Entity '{self.struct_name}' has no primary key.")

    @property
    def scalar_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.relation is None]

    @property
    def relation_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.relation is not None]

    @property
    def preloaded_relations(self) -> List[FieldSpec]:
        return [f for f in self.relation_fields if f.relation.preload]

    @property
    def joinable_relations(self) -> List[FieldSpec]:
        return [
            f for f in self.relation_fields
            if isinstance(f.relation, (BelongsTo, HasOne)) and f.relation.joinable
        ]

    @property
    def join_filter_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.has_join_filter]

    @property
    def scalar_attr_names(self) -> List[str]:
        return [f.attr_name for f in self.scalar_fields]

    @property
    def implicit_fk_fields(self) -> List[FieldSpec]:
        """Belongs-to relations whose FK column no scalar field declares."""
        scalars: List[str] = self.scalar_attr_names
        return [
            f for f in self.relation_fields
            if isinstance(f.relation, BelongsTo) and f.fk_attr_name not in scalars
        ]

    def belongs_to_for_attr(self, attr_name: str) -> Optional[FieldSpec]:
        """The belongs-to relation whose FK is the scalar attribute *attr_name*."""
        for f in self.relation_fields:
            if isinstance(f.relation, BelongsTo) and f.fk_attr_name == attr_name:
                return f
        return None


# ---------------------------------------------------------------------------
# Generation manifest & history
# ---------------------------------------------------------------------------


class SectionRef(BaseModel):
    """A tagged block inserted into a shared file."""

    model_config = _FROZEN_CONFIG

    kind: SectionKind
    path: str
    key: str
    owner: str


class GenerationManifest(BaseModel):
    """
    Everything one generation run wrote.

    Created once by the orchestrator at the end of a run and never mutated
    afterwards; ``partial`` marks runs that stopped at ``failed_artifact``.
    """

    model_config = _FROZEN_CONFIG

    struct_name: str
    package_name: str
    table_name: str
    description: str = ""
    api_prefix: str
    files: Dict[str, List[str]] = Field(default_factory=dict)
    insertions: List[SectionRef] = Field(default_factory=list)
    partial: bool = False
    failed_artifact: Optional[str] = None
    error: Optional[str] = None
    fields: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def all_files(self) -> List[str]:
        """Every written file, in artifact emission order."""
        result: List[str] = []
        for kind in ArtifactKind:
            result.extend(self.files.get(kind.value, []))
        return result

    def sections(self, kind: SectionKind) -> List[SectionRef]:
        wanted: str = kind.value if isinstance(kind, SectionKind) else str(kind)
        return [s for s in self.insertions if s.kind == wanted]


class HistoryRecord(BaseModel):
    """A stored manifest plus its history-row bookkeeping."""

    model_config = _FROZEN_CONFIG

    id: int
    created_at: datetime
    rolled_back: bool = False
    manifest: GenerationManifest

    def to_summary(self) -> Dict[str, Any]:
        """Camel-cased listing entry used by the HTTP surface and CLI."""
        m: GenerationManifest = self.manifest
        return {
            "id": self.id,
            "structName": m.struct_name,
            "tableName": m.table_name,
            "packageName": m.package_name,
            "description": m.description,
            "apiPrefix": m.api_prefix,
            "partial": m.partial,
            "failedArtifact": m.failed_artifact,
            "rolledBack": self.rolled_back,
            "files": m.all_files(),
            "createdAt": self.created_at.isoformat(),
        }


class RollbackFlags(BaseModel):
    """
    What a rollback should undo.

    ``delete_table`` only takes effect when ``confirm_table`` repeats the
    manifest's table name.
    """

    model_config = _WIRE_CONFIG

    delete_files: bool = False
    delete_api: bool = False
    delete_menu: bool = False
    delete_table: bool = False
    confirm_table: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return not (self.delete_files or self.delete_api or self.delete_menu or self.delete_table)


# ---------------------------------------------------------------------------
# Introspection records
# ---------------------------------------------------------------------------


class TableInfo(BaseModel):
    model_config = _WIRE_CONFIG

    table_name: str
    table_comment: str = ""


class ColumnInfo(BaseModel):
    """One introspected column; ``key_flag == "PRI"`` marks the primary key."""

    model_config = _WIRE_CONFIG

    column_name: str
    data_type: str
    comment: str = ""
    nullable: bool = True
    key_flag: str = ""

    @property
    def is_primary_key(self) -> bool:
        return self.key_flag.upper() == "PRI"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DataType",
    "RelationKind",
    "ArtifactKind",
    "SectionKind",
    "KNOWN_DATA_TYPES",
    "normalize_data_type",
    "normalize_relation_kind",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "ManyToMany",
    "Relation",
    "FieldSpec",
    "Capabilities",
    "EntityModel",
    "SectionRef",
    "GenerationManifest",
    "HistoryRecord",
    "RollbackFlags",
    "TableInfo",
    "ColumnInfo",
]

logger.debug("crudforge.models loaded - %d public symbols.", len(__all__))
