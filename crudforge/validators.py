# File: crudforge/validators.py
"""
crudforge - Entity Model Builder & Validation
==============================================
The single boundary between untyped request payloads and the validated
``EntityModel`` that every emitter consumes.

``build_entity_model`` accepts the operator's payload (camelCase keys as sent
by the web form, snake_case keys from YAML files, and the flat relation keys
``isRelation``/``relationType``/``relatedModel``), optionally merges columns
introspected from the live database, and returns a ``BuildResult``: either an
entity or the complete list of problems. Validation is exhaustive rather than
fail-fast, so an operator sees every issue at once.

Usage:
    from crudforge.validators import build_entity_model
    result = build_entity_model(payload)
    if not result.ok:
        print(result.validation.format_report())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from crudforge.errors import EntityValidationError
from crudforge.introspection import convert_sql_type
from crudforge.models import (
    KNOWN_DATA_TYPES,
    BelongsTo,
    Capabilities,
    ColumnInfo,
    EntityModel,
    FieldSpec,
    HasMany,
    HasOne,
    ManyToMany,
    RelationKind,
    normalize_data_type,
    normalize_relation_kind,
)
from crudforge.utils import (
    api_prefix_for,
    is_api_prefix,
    is_identifier,
    is_upper_camel,
    table_name_for,
    to_snake_case,
    to_upper_camel,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.validators")


# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """Lightweight issue descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("error", code, message, context))

    def add_warning(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("warning", code, message, context))

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_warning]

    @property
    def all_items(self) -> List[ValidationIssue]:
        return list(self._items)

    @property
    def error_codes(self) -> List[str]:
        return [e.code for e in self._items if e.is_error]

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def to_list(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    def format_report(self) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            prefix: str = {"error": "✗", "warning": "⚠"}.get(item.level, "•")
            lines.append(f"  {prefix} [{item.code}] {item.message}")
            for k, v in item.context.items():
                lines.append(f"       {k}: {v}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Request payload shapes (lenient, alias-tolerant)
# ---------------------------------------------------------------------------

_REQUEST_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    extra="ignore",
)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class FieldRequest(BaseModel):
    """One field exactly as the operator sent it."""

    model_config = _REQUEST_CONFIG

    name: str = Field(default="", validation_alias=_alias("name", "fieldName", "field_name"))
    column_name: str = Field(default="", validation_alias=_alias("column_name", "columnName"))
    data_type: str = Field(
        default="",
        validation_alias=_alias("data_type", "dataType", "fieldType", "field_type"),
    )
    column_type: str = Field(default="", validation_alias=_alias("column_type", "columnType"))
    description: str = Field(
        default="",
        validation_alias=_alias("description", "fieldDesc", "field_desc", "comment"),
    )
    required: bool = False
    is_primary_key: bool = Field(
        default=False,
        validation_alias=_alias("is_primary_key", "isPrimaryKey", "primaryKey"),
    )
    is_searchable: bool = Field(default=False, validation_alias=_alias("is_searchable", "isSearchable"))
    is_filterable: bool = Field(default=False, validation_alias=_alias("is_filterable", "isFilterable"))
    is_sortable: bool = Field(default=False, validation_alias=_alias("is_sortable", "isSortable"))

    is_relation: bool = Field(default=False, validation_alias=_alias("is_relation", "isRelation"))
    relation_kind: str = Field(
        default="",
        validation_alias=_alias("relation_kind", "relationKind", "relationType", "relation_type", "kind"),
    )
    related_entity: str = Field(
        default="",
        validation_alias=_alias("related_entity", "relatedEntity", "relatedModel", "related_model"),
    )
    foreign_key: str = Field(default="", validation_alias=_alias("foreign_key", "foreignKey"))
    referenced_key: str = Field(
        default="",
        validation_alias=_alias("referenced_key", "referencedKey", "references"),
    )
    preload: bool = False
    join_table: str = Field(default="", validation_alias=_alias("join_table", "joinTable"))
    joinable: bool = False
    join_condition: str = Field(default="", validation_alias=_alias("join_condition", "joinCondition"))
    filter_condition: str = Field(
        default="",
        validation_alias=_alias("filter_condition", "filterCondition"),
    )


class EntityRequest(BaseModel):
    """The generation request payload."""

    model_config = _REQUEST_CONFIG

    struct_name: str = Field(default="", validation_alias=_alias("struct_name", "structName"))
    table_name: str = Field(default="", validation_alias=_alias("table_name", "tableName"))
    package_name: str = Field(default="", validation_alias=_alias("package_name", "packageName"))
    description: str = ""
    api_prefix: str = Field(default="", validation_alias=_alias("api_prefix", "apiPrefix"))
    app_name: str = Field(default="", validation_alias=_alias("app_name", "appName"))
    has_list: bool = Field(default=True, validation_alias=_alias("has_list", "hasList"))
    has_create: bool = Field(default=True, validation_alias=_alias("has_create", "hasCreate"))
    has_update: bool = Field(default=True, validation_alias=_alias("has_update", "hasUpdate"))
    has_delete: bool = Field(default=True, validation_alias=_alias("has_delete", "hasDelete"))
    has_detail: bool = Field(default=True, validation_alias=_alias("has_detail", "hasDetail"))
    has_pagination: bool = Field(
        default=True,
        validation_alias=_alias("has_pagination", "hasPagination", "isPagination"),
    )
    fields: List[Dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Build result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Tagged outcome of ``build_entity_model``: an entity or its issues."""

    entity: Optional[EntityModel]
    validation: ValidationResult

    @property
    def ok(self) -> bool:
        return self.entity is not None

    def unwrap(self) -> EntityModel:
        """Return the entity or raise ``EntityValidationError``."""
        if self.entity is None:
            raise EntityValidationError(self.validation)
        return self.entity


# Columns the generated model manages itself.
_MANAGED_COLUMNS: Set[str] = {"created_at", "updated_at", "deleted_at"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _add_pydantic_errors(
    result: ValidationResult,
    exc: PydanticValidationError,
    prefix: str = "",
) -> None:
    for err in exc.errors():
        loc: str = ".".join(str(p) for p in err.get("loc", ()))
        where: str = f"{prefix}{loc}" if loc else prefix.rstrip(".")
        result.add_error(
            "INVALID_PAYLOAD",
            f"{where or 'payload'}: {err.get('msg', 'invalid value')}",
            {"location": where},
        )


def _flatten_field(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept a nested ``relation`` object as well as the flat form."""
    data: Dict[str, Any] = dict(raw)
    nested: Any = data.pop("relation", None)
    if isinstance(nested, Mapping):
        data.setdefault("isRelation", True)
        for key, value in nested.items():
            data.setdefault(key, value)
    return data


def _fields_from_columns(columns: Sequence[ColumnInfo]) -> List[Dict[str, Any]]:
    """Derive scalar field payloads from introspected columns."""
    derived: List[Dict[str, Any]] = []
    for col in columns:
        if col.column_name in _MANAGED_COLUMNS:
            continue
        derived.append({
            "name": to_upper_camel(col.column_name),
            "column_name": col.column_name,
            "data_type": convert_sql_type(col.data_type),
            "description": col.comment,
            "required": not col.nullable and not col.is_primary_key,
            "is_primary_key": col.is_primary_key,
        })
    return derived


def _enrich_from_column(request: FieldRequest, column: ColumnInfo) -> FieldRequest:
    """Fill unspecified attributes of *request* from a matching column."""
    updates: Dict[str, Any] = {}
    given: Set[str] = request.model_fields_set
    if not request.data_type and not request.column_type:
        updates["data_type"] = convert_sql_type(column.data_type)
    if not request.description and column.comment:
        updates["description"] = column.comment
    if "required" not in given:
        updates["required"] = not column.nullable and not column.is_primary_key
    if "is_primary_key" not in given:
        updates["is_primary_key"] = column.is_primary_key
    return request.model_copy(update=updates) if updates else request


def _resolve_data_type(request: FieldRequest) -> str:
    if request.data_type:
        return normalize_data_type(request.data_type)
    if request.column_type:
        return convert_sql_type(request.column_type)
    return "string"


def _build_relation(
    request: FieldRequest,
    struct_name: str,
    result: ValidationResult,
    ctx: Dict[str, Any],
) -> Any:
    """Validate the relation attributes and build the matching variant."""
    kind: Optional[str] = normalize_relation_kind(request.relation_kind)
    related: str = request.related_entity.strip()
    errors_before: int = result.error_count

    if kind is None:
        result.add_error(
            "UNKNOWN_RELATION_KIND",
            f"Field '{ctx['field']}' has unknown relation kind "
            f"'{request.relation_kind}'.",
            {**ctx, "relation_kind": request.relation_kind},
        )
    if not related:
        result.add_error(
            "RELATION_MISSING_ENTITY",
            f"Relation field '{ctx['field']}' does not name a related entity.",
            ctx,
        )
    elif not is_upper_camel(related):
        result.add_error(
            "INVALID_RELATED_ENTITY",
            f"Related entity '{related}' of field '{ctx['field']}' is not an "
            f"UpperCamel identifier.",
            {**ctx, "related_entity": related},
        )

    if kind == RelationKind.MANY_TO_MANY.value and not request.join_table.strip():
        result.add_error(
            "JOIN_TABLE_REQUIRED",
            f"Many-to-many field '{ctx['field']}' requires a join table.",
            ctx,
        )
    if kind is not None and kind != RelationKind.MANY_TO_MANY.value and request.join_table.strip():
        result.add_error(
            "JOIN_TABLE_NOT_ALLOWED",
            f"Field '{ctx['field']}' sets a join table but is a {kind} relation.",
            ctx,
        )

    collection_kinds = (RelationKind.HAS_MANY.value, RelationKind.MANY_TO_MANY.value)
    if kind in collection_kinds and (
        request.joinable or request.join_condition or request.filter_condition
    ):
        result.add_error(
            "JOIN_OPTIONS_NOT_ALLOWED",
            f"Field '{ctx['field']}' is a {kind} relation and cannot be joined "
            f"for filtering.",
            ctx,
        )
    if kind is not None and kind != RelationKind.BELONGS_TO.value and request.column_name:
        result.add_error(
            "COLUMN_NOT_ALLOWED",
            f"Field '{ctx['field']}' is a {kind} relation and owns no column, "
            f"but column '{request.column_name}' was given.",
            ctx,
        )
    if request.foreign_key and not is_identifier(request.foreign_key):
        result.add_error(
            "INVALID_FOREIGN_KEY",
            f"Foreign key '{request.foreign_key}' of field '{ctx['field']}' is "
            f"not a valid identifier.",
            ctx,
        )

    if result.error_count > errors_before:
        return None

    referenced: str = request.referenced_key or "ID"
    if kind == RelationKind.BELONGS_TO.value:
        return BelongsTo(
            related_entity=related,
            foreign_key=request.foreign_key or f"{related}ID",
            referenced_key=referenced,
            preload=request.preload,
            joinable=request.joinable,
            join_condition=request.join_condition,
            filter_condition=request.filter_condition,
        )
    if kind == RelationKind.HAS_ONE.value:
        return HasOne(
            related_entity=related,
            foreign_key=request.foreign_key or f"{struct_name}ID",
            referenced_key=referenced,
            preload=request.preload,
            joinable=request.joinable,
            join_condition=request.join_condition,
            filter_condition=request.filter_condition,
        )
    if kind == RelationKind.HAS_MANY.value:
        return HasMany(
            related_entity=related,
            foreign_key=request.foreign_key or f"{struct_name}ID",
            referenced_key=referenced,
            preload=request.preload,
        )
    return ManyToMany(
        related_entity=related,
        foreign_key=request.foreign_key or f"{struct_name}ID",
        referenced_key=referenced,
        preload=request.preload,
        join_table=request.join_table.strip(),
    )


def _build_field(
    request: FieldRequest,
    index: int,
    struct_name: str,
    result: ValidationResult,
) -> Optional[FieldSpec]:
    name: str = request.name.strip()
    ctx: Dict[str, Any] = {"field": name or f"#{index}", "index": index}
    errors_before: int = result.error_count

    if not name:
        result.add_error(
            "INVALID_FIELD_NAME",
            f"Field #{index} has no name.",
            ctx,
        )
    elif not is_upper_camel(name):
        result.add_error(
            "INVALID_FIELD_NAME",
            f"Field name '{name}' is not an UpperCamel identifier.",
            ctx,
        )

    data_type: str = _resolve_data_type(request)
    is_relation: bool = request.is_relation or bool(request.relation_kind)
    relation: Any = None
    column_name: str = request.column_name.strip()

    if is_relation:
        relation = _build_relation(request, struct_name, result, ctx)
        if isinstance(relation, BelongsTo):
            column_name = column_name or relation.foreign_key_column
            data_type = "integer"
        elif relation is not None:
            column_name = ""
    else:
        column_name = column_name or to_snake_case(name)
        if data_type not in KNOWN_DATA_TYPES:
            result.add_warning(
                "UNKNOWN_DATA_TYPE",
                f"Field '{ctx['field']}' uses unknown data type '{data_type}'; "
                f"the model emitter will reject it.",
                {**ctx, "data_type": data_type},
            )

    if result.error_count > errors_before:
        return None

    return FieldSpec(
        name=name,
        column_name=column_name,
        data_type=data_type,
        description=request.description,
        required=request.required,
        is_primary_key=request.is_primary_key,
        is_searchable=request.is_searchable,
        is_filterable=request.is_filterable,
        is_sortable=request.is_sortable,
        relation=relation,
    )


def _check_field_set(
    requests: Sequence[FieldRequest],
    specs: Sequence[FieldSpec],
    result: ValidationResult,
) -> None:
    """Cross-field invariants: primary key count, name and column clashes."""
    pk_names: List[str] = [r.name or "?" for r in requests if r.is_primary_key]
    if not pk_names and requests:
        result.add_error(
            "NO_PRIMARY_KEY",
            "Exactly one field must be marked as primary key; none is.",
        )
    elif len(pk_names) > 1:
        result.add_error(
            "DUPLICATE_PRIMARY_KEY",
            f"Exactly one field must be marked as primary key; "
            f"{len(pk_names)} are: {', '.join(pk_names)}.",
            {"fields": pk_names},
        )

    for r in requests:
        if r.is_primary_key and (r.is_relation or r.relation_kind):
            result.add_error(
                "RELATION_PRIMARY_KEY",
                f"Relation field '{r.name}' cannot be the primary key.",
                {"field": r.name},
            )

    seen_names: Set[str] = set()
    seen_attrs: Set[str] = set()
    for r in requests:
        name: str = r.name.strip()
        if not name:
            continue
        attr: str = to_snake_case(name)
        if name in seen_names or attr in seen_attrs:
            result.add_error(
                "DUPLICATE_FIELD_NAME",
                f"Field '{name}' is declared more than once.",
                {"field": name},
            )
        seen_names.add(name)
        seen_attrs.add(attr)

    # A belongs-to FK may share its column with an explicit scalar field;
    # any other column clash is an error.
    scalar_columns: Set[str] = set()
    fk_columns: Set[str] = set()
    for spec in specs:
        if spec.relation is None:
            target = scalar_columns
        elif isinstance(spec.relation, BelongsTo):
            target = fk_columns
        else:
            continue
        if spec.column_name in target:
            result.add_error(
                "DUPLICATE_COLUMN_NAME",
                f"Column '{spec.column_name}' is declared more than once.",
                {"field": spec.name, "column": spec.column_name},
            )
        target.add(spec.column_name)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def build_entity_model(
    payload: Mapping[str, Any],
    columns: Optional[Sequence[ColumnInfo]] = None,
    *,
    default_package: str = "admin",
) -> BuildResult:
    """
    Validate an untyped generation payload into an ``EntityModel``.

    Args:
        payload: The request payload (camelCase or snake_case keys).
        columns: Optional introspected columns of the target table. They
            supply the field list when the payload has none, and otherwise
            fill unspecified types, descriptions and requiredness.
        default_package: Package used when the payload names none.

    Returns:
        A ``BuildResult`` holding either the entity or every violation found.
    """
    result: ValidationResult = ValidationResult()

    if not isinstance(payload, Mapping):
        result.add_error(
            "INVALID_PAYLOAD",
            f"Expected a mapping payload, got {type(payload).__name__}.",
        )
        return BuildResult(None, result)

    try:
        request: EntityRequest = EntityRequest.model_validate(dict(payload))
    except PydanticValidationError as exc:
        _add_pydantic_errors(result, exc)
        return BuildResult(None, result)

    struct_name: str = request.struct_name.strip()
    if not struct_name:
        result.add_error("MISSING_STRUCT_NAME", "structName is required.")
    elif not is_upper_camel(struct_name):
        result.add_error(
            "INVALID_STRUCT_NAME",
            f"structName '{struct_name}' is not a valid UpperCamel type identifier.",
            {"struct_name": struct_name},
        )

    table_name: str = request.table_name.strip()
    if not table_name and struct_name:
        table_name = table_name_for(struct_name)
    if not table_name:
        result.add_error("MISSING_TABLE_NAME", "tableName is required.")
    elif not is_identifier(table_name):
        result.add_error(
            "INVALID_TABLE_NAME",
            f"tableName '{table_name}' is not a valid identifier.",
            {"table_name": table_name},
        )

    package_name: str = request.package_name.strip() or default_package
    if not is_identifier(package_name):
        result.add_error(
            "INVALID_PACKAGE_NAME",
            f"packageName '{package_name}' is not a valid identifier.",
            {"package_name": package_name},
        )

    api_prefix: str = request.api_prefix.strip()
    if not api_prefix and is_upper_camel(struct_name):
        api_prefix = api_prefix_for(struct_name)
    if api_prefix and not is_api_prefix(api_prefix):
        result.add_error(
            "INVALID_API_PREFIX",
            f"apiPrefix '{api_prefix}' must start with a letter and contain only "
            f"letters, digits, '_', '-' and '/'.",
            {"api_prefix": api_prefix},
        )

    columns_by_name: Dict[str, ColumnInfo] = {c.column_name: c for c in columns or ()}
    raw_fields: List[Dict[str, Any]] = [_flatten_field(f) for f in request.fields]
    if not raw_fields and columns:
        raw_fields = _fields_from_columns(columns)
        logger.info("Derived %d field(s) from introspected columns.", len(raw_fields))

    if not raw_fields:
        result.add_error("NO_FIELDS", "At least one field is required.")

    field_requests: List[FieldRequest] = []
    for index, raw in enumerate(raw_fields):
        try:
            field_request: FieldRequest = FieldRequest.model_validate(raw)
        except PydanticValidationError as exc:
            _add_pydantic_errors(result, exc, prefix=f"fields.{index}.")
            continue
        column_key: str = field_request.column_name or to_snake_case(field_request.name)
        if column_key in columns_by_name:
            field_request = _enrich_from_column(field_request, columns_by_name[column_key])
        field_requests.append(field_request)

    specs: List[FieldSpec] = []
    for index, field_request in enumerate(field_requests):
        spec: Optional[FieldSpec] = _build_field(field_request, index, struct_name, result)
        if spec is not None:
            specs.append(spec)

    _check_field_set(field_requests, specs, result)

    if result.has_errors:
        logger.info("Entity '%s' rejected: %s", struct_name or "?", result.summary())
        return BuildResult(None, result)

    entity: EntityModel = EntityModel(
        struct_name=struct_name,
        table_name=table_name,
        package_name=package_name,
        description=request.description,
        api_prefix=api_prefix,
        fields=tuple(specs),
        capabilities=Capabilities(
            has_list=request.has_list,
            has_create=request.has_create,
            has_update=request.has_update,
            has_delete=request.has_delete,
            has_detail=request.has_detail,
            has_pagination=request.has_pagination,
        ),
    )
    logger.debug(
        "Built entity %s (table=%s, %d field(s)).",
        entity.struct_name,
        entity.table_name,
        len(entity.fields),
    )
    return BuildResult(entity, result)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationIssue",
    "ValidationResult",
    "FieldRequest",
    "EntityRequest",
    "BuildResult",
    "build_entity_model",
]

logger.debug("crudforge.validators loaded - %d public symbols.", len(__all__))
