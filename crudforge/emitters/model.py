# File: crudforge/emitters/model.py
"""
crudforge - Persistence Model Emitter
======================================
Renders one SQLAlchemy 2.0 declarative model per entity using ``Mapped[]`` /
``mapped_column()``.

Column layout:
    - every scalar field, in declaration order; a scalar that doubles as a
      belongs-to foreign key carries the ``ForeignKey`` itself
    - foreign-key columns of belongs-to relations no scalar declares
    - ``created_at`` / ``updated_at`` when timestamps are enabled
    - one ``relationship()`` per relation field; preloaded relations are
      declared ``lazy="selectin"``

Many-to-many relations also get a module-level association ``Table``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, cast

from crudforge.emitters.base import (
    GENERATED_NOTICE,
    EmitContext,
    EmitResult,
    python_type,
    sqlalchemy_type,
)
from crudforge.models import (
    ArtifactKind,
    BelongsTo,
    EntityModel,
    FieldSpec,
    HasMany,
    HasOne,
    ManyToMany,
)
from crudforge.utils import build_import_block, quote, to_snake_case

logger: logging.Logger = logging.getLogger("crudforge.emitters.model")

_ARTIFACT: str = ArtifactKind.MODEL.value


class ModelEmitter:
    """Stateless persistence-model emitter."""

    artifact: ArtifactKind = ArtifactKind.MODEL

    def __init__(self, indent_size: int = 4) -> None:
        self._indent: str = " " * indent_size

    def emit(self, entity: EntityModel, ctx: EmitContext) -> EmitResult:
        path: str = ctx.path(ctx.layout.model, entity.struct_name)
        content: str = self.render(entity, ctx)
        logger.debug(
            "Rendered model for '%s': %d lines.", entity.struct_name, content.count("\n") + 1
        )
        return EmitResult(artifact=self.artifact, files={path: content})

    # -------------------------------------------------------------------

    def render(self, entity: EntityModel, ctx: EmitContext) -> str:
        imports: Dict[str, Set[str]] = {
            "typing": {"Optional"},
            "sqlalchemy": set(),
            "sqlalchemy.orm": {"Mapped", "mapped_column"},
            ctx.database_module: {"Base"},
        }

        body: List[str] = []
        body.append(f"class {entity.struct_name}(Base):")
        body.append(f"{self._indent}{self._docstring(entity.label)}")
        body.append("")
        body.append(f"{self._indent}__tablename__ = {quote(entity.table_name)}")
        body.append("")

        for spec in entity.scalar_fields:
            body.append(self._indent + self._scalar_line(entity, spec, imports))

        for spec in entity.implicit_fk_fields:
            body.append(self._indent + self._foreign_key_line(spec, spec.required, imports))

        if ctx.with_timestamps:
            imports["sqlalchemy"].update({"DateTime", "func"})
            imports.setdefault("datetime", set()).add("datetime")
            body.append(
                f"{self._indent}created_at: Mapped[datetime] = "
                f"mapped_column(DateTime, server_default=func.now())"
            )
            body.append(
                f"{self._indent}updated_at: Mapped[datetime] = mapped_column("
                f"DateTime, server_default=func.now(), onupdate=func.now())"
            )

        association_tables: List[str] = []
        if entity.relation_fields:
            imports["sqlalchemy.orm"].add("relationship")
            body.append("")
            for spec in entity.relation_fields:
                body.append(self._indent + self._relationship_line(entity, spec, imports))
                if isinstance(spec.relation, ManyToMany):
                    association_tables.append(self._association_table(entity, spec, imports))

        body.append("")
        pk: FieldSpec = entity.primary_key
        body.append(f"{self._indent}def __repr__(self) -> str:")
        body.append(
            f'{self._indent * 2}return f"<{entity.struct_name} '
            f'{pk.attr_name}={{self.{pk.attr_name}!r}}>"'
        )

        lines: List[str] = [
            '"""',
            f"{entity.struct_name} persistence model ({entity.table_name}).",
            "",
            GENERATED_NOTICE,
            '"""',
            "",
            "from __future__ import annotations",
            "",
            build_import_block({k: v for k, v in imports.items() if v}),
            "",
        ]
        for table_def in association_tables:
            lines.append("")
            lines.append(table_def)
        lines.append("")
        lines.append("")
        lines.extend(body)
        lines.append("")
        return "\n".join(lines)

    # -------------------------------------------------------------------

    def _scalar_line(
        self, entity: EntityModel, spec: FieldSpec, imports: Dict[str, Set[str]]
    ) -> str:
        py_type, py_module = python_type(spec.data_type, spec.name, _ARTIFACT)
        sa_expr, sa_name = sqlalchemy_type(spec.data_type, spec.name, _ARTIFACT)
        if py_module:
            imports.setdefault(py_module, set()).add(py_type)
        imports["sqlalchemy"].add(sa_name)

        args: List[str] = [sa_expr]
        owner: Optional[FieldSpec] = entity.belongs_to_for_attr(spec.attr_name)
        if owner is not None and isinstance(owner.relation, BelongsTo):
            imports["sqlalchemy"].add("ForeignKey")
            args.append(self._foreign_key_target(owner.relation))

        if spec.is_primary_key:
            args.append("primary_key=True")
            if spec.data_type in ("integer", "bigint"):
                args.append("autoincrement=True")
            annotation: str = f"Mapped[{py_type}]"
        elif spec.required:
            args.append("nullable=False")
            annotation = f"Mapped[{py_type}]"
        else:
            args.append("nullable=True")
            annotation = f"Mapped[Optional[{py_type}]]"

        if spec.is_sortable or spec.is_filterable or spec.is_searchable:
            if not spec.is_primary_key:
                args.append("index=True")
        if spec.column_name != spec.attr_name:
            args.insert(0, quote(spec.column_name))
        if spec.description:
            args.append(f"comment={quote(spec.description)}")
        return f"{spec.attr_name}: {annotation} = mapped_column({', '.join(args)})"

    def _foreign_key_line(
        self, spec: FieldSpec, required: bool, imports: Dict[str, Set[str]]
    ) -> str:
        relation: BelongsTo = cast(BelongsTo, spec.relation)
        imports["sqlalchemy"].update({"Integer", "ForeignKey"})
        annotation: str = "Mapped[int]" if required else "Mapped[Optional[int]]"
        nullable: str = "nullable=False" if required else "nullable=True"
        return (
            f"{spec.fk_attr_name}: {annotation} = mapped_column("
            f"Integer, {self._foreign_key_target(relation)}, {nullable}, index=True)"
        )

    @staticmethod
    def _foreign_key_target(relation: BelongsTo) -> str:
        return f"ForeignKey({quote(f'{relation.related_table}.{relation.referenced_column}')})"

    def _relationship_line(
        self, entity: EntityModel, spec: FieldSpec, imports: Dict[str, Set[str]]
    ) -> str:
        relation = spec.relation
        target: str = relation.related_entity
        parts: List[str] = [quote(target)]

        if isinstance(relation, BelongsTo):
            parts.append(f'foreign_keys="[{entity.struct_name}.{spec.fk_attr_name}]"')
        elif isinstance(relation, ManyToMany):
            parts.append(f"secondary={self._association_name(relation)}")
        if isinstance(relation, HasOne):
            parts.append("uselist=False")
        parts.append(f'lazy="{"selectin" if relation.preload else "select"}"')

        if relation.is_collection:
            imports["typing"].add("List")
            hint: str = f'Mapped[List["{target}"]]'
        else:
            hint = f'Mapped[Optional["{target}"]]'
        if isinstance(relation, (HasMany, HasOne)) and relation.foreign_key:
            # The related table holds the key column.
            parts.insert(1, f'primaryjoin="{entity.struct_name}.'
                         f'{relation.referenced_column} == '
                         f'foreign({target}.{to_snake_case(relation.foreign_key)})"')
        return f"{spec.attr_name}: {hint} = relationship({', '.join(parts)})"

    @staticmethod
    def _docstring(text: str) -> str:
        if '"' in text or "\\" in text:
            return quote(text)
        return f'"""{text}"""'

    @staticmethod
    def _association_name(relation: ManyToMany) -> str:
        return f"{to_snake_case(relation.join_table)}_table"

    def _association_table(
        self, entity: EntityModel, spec: FieldSpec, imports: Dict[str, Set[str]]
    ) -> str:
        relation: ManyToMany = cast(ManyToMany, spec.relation)
        imports["sqlalchemy"].update({"Column", "ForeignKey", "Integer", "Table"})
        pk: FieldSpec = entity.primary_key
        ours: str = quote(f"{entity.table_name}.{pk.column_name}")
        theirs: str = quote(f"{relation.related_table}.{relation.referenced_column}")
        lines: List[str] = [
            f"{self._association_name(relation)} = Table(",
            f"{self._indent}{quote(relation.join_table)},",
            f"{self._indent}Base.metadata,",
            f"{self._indent}Column({quote(relation.foreign_key_column)}, Integer, "
            f"ForeignKey({ours}), primary_key=True),",
            f"{self._indent}Column({quote(relation.related_foreign_key_column)}, Integer, "
            f"ForeignKey({theirs}), primary_key=True),",
            f"{self._indent}extend_existing=True,",
            ")",
        ]
        return "\n".join(lines)


__all__: List[str] = ["ModelEmitter"]
