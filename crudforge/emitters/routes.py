# File: crudforge/emitters/routes.py
"""
crudforge - Route Registry Emitter
===================================
Produces no files of its own: it contributes one tagged block to the
package's shared route registry, mounting the entity's controller router
under ``/<api_prefix>``. The block key is the API prefix and its owner is
the struct name, so registering the same entity twice rewrites the block
in place while another entity claiming the prefix is a conflict.
"""

from __future__ import annotations

import logging
from typing import List

from crudforge.emitters.base import EmitContext, EmitResult, SectionEdit
from crudforge.models import ArtifactKind, EntityModel, SectionKind
from crudforge.utils import quote

logger: logging.Logger = logging.getLogger("crudforge.emitters.routes")


def registry_skeleton(package: str) -> str:
    """Initial content of a route registry that does not exist yet."""
    return "\n".join([
        '"""',
        f"Route registry for the {package} package.",
        "",
        "Generated by crudforge. Blocks between codegen markers are managed automatically.",
        '"""',
        "",
        "from fastapi import APIRouter",
        "",
        "api_router = APIRouter()",
        "",
        "# codegen:anchor",
        "",
    ])


class RouteEmitter:
    """Registers an entity's router in the shared route registry."""

    artifact: ArtifactKind = ArtifactKind.ROUTES

    def emit(self, entity: EntityModel, ctx: EmitContext) -> EmitResult:
        edit = SectionEdit(
            kind=SectionKind.ROUTES,
            path=ctx.path(ctx.layout.route_registry),
            key=entity.api_prefix,
            owner=entity.struct_name,
            body=self.render_block(entity, ctx),
            comment="#",
            skeleton=registry_skeleton(ctx.package),
        )
        logger.debug("Prepared route block '%s' for '%s'.", edit.key, entity.struct_name)
        return EmitResult(artifact=self.artifact, sections=[edit])

    @staticmethod
    def render_block(entity: EntityModel, ctx: EmitContext) -> str:
        alias: str = f"{entity.snake_name}_router"
        return "\n".join([
            f"from {ctx.controller_module(entity.struct_name)} import router as {alias}",
            f"api_router.include_router({alias}, prefix={quote('/' + entity.api_prefix)}, "
            f"tags=[{quote(entity.struct_name)}])",
        ])


__all__: List[str] = ["RouteEmitter", "registry_skeleton"]
