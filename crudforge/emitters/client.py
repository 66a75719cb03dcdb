# File: crudforge/emitters/client.py
"""
crudforge - Frontend Client Emitter
====================================
Renders the frontend half of an entity:

    1. a TypeScript API module (request/response interfaces plus one
       function per enabled operation, all going through the shared
       ``http`` client)
    2. a Vue list page using that module
    3. a tagged entry in the shared generated-routes module so the page
       shows up in the navigation menu

The TypeScript interfaces mirror the DTO module's JSON member names.
"""

from __future__ import annotations

import html
import logging
import posixpath
from typing import List

from crudforge.emitters.base import (
    GENERATED_NOTICE,
    ColumnMember,
    EmitContext,
    EmitResult,
    SectionEdit,
    column_members,
    query_members,
    sortable_members,
    typescript_type,
)
from crudforge.models import ArtifactKind, EntityModel, SectionKind
from crudforge.utils import to_plural

logger: logging.Logger = logging.getLogger("crudforge.emitters.client")

_ARTIFACT: str = ArtifactKind.CLIENT.value


def ts_quote(value: str) -> str:
    """Single-quoted TypeScript string literal."""
    escaped: str = (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f"'{escaped}'"


def menu_skeleton() -> str:
    """Initial content of a generated-routes module that does not exist yet."""
    return "\n".join([
        f"// {GENERATED_NOTICE}",
        "// Blocks between codegen markers are managed automatically.",
        "import type { RouteRecordRaw } from 'vue-router';",
        "",
        "export const generatedRoutes: RouteRecordRaw[] = [",
        "  // codegen:anchor",
        "];",
        "",
    ])


def _relative_import(from_path: str, to_path: str) -> str:
    target: str = posixpath.splitext(to_path)[0]
    rel: str = posixpath.relpath(target, posixpath.dirname(from_path))
    return rel if rel.startswith(".") else f"./{rel}"


def _alias_import(path: str) -> str:
    """``web/src/views/x/index.vue`` -> ``@/views/x/index.vue``."""
    marker: str = "src/"
    index: int = path.find(marker)
    return f"@/{path[index + len(marker):]}" if index >= 0 else f"@/{path}"


class ClientEmitter:
    """Stateless frontend emitter."""

    artifact: ArtifactKind = ArtifactKind.CLIENT

    def __init__(self, indent_size: int = 2) -> None:
        self._indent: str = " " * indent_size

    def emit(self, entity: EntityModel, ctx: EmitContext) -> EmitResult:
        api_path: str = ctx.path(ctx.layout.client_api, entity.struct_name)
        view_path: str = ctx.path(ctx.layout.client_view, entity.struct_name)
        files = {
            api_path: self.render_api(entity, ctx),
            view_path: self.render_view(entity, ctx, api_path, view_path),
        }
        menu = SectionEdit(
            kind=SectionKind.MENU,
            path=ctx.path(ctx.layout.menu),
            key=entity.api_prefix,
            owner=entity.struct_name,
            body=self.render_menu_entry(entity, view_path),
            comment="//",
            skeleton=menu_skeleton(),
        )
        logger.debug("Rendered client for '%s': %s.", entity.struct_name, ", ".join(files))
        return EmitResult(artifact=self.artifact, files=files, sections=[menu])

    # -------------------------------------------------------------------
    # API module
    # -------------------------------------------------------------------

    def _member(self, member: ColumnMember, optional: bool) -> str:
        ts_type: str = typescript_type(member.data_type, member.spec.name, _ARTIFACT)
        mark: str = "?" if optional else ""
        return f"{self._indent}{member.json}{mark}: {ts_type};"

    def _interface(self, name: str, members: List[str]) -> List[str]:
        return [f"export interface {name} {{", *members, "}", ""]

    def _function(
        self, signature: str, response: str, url: str, method: str, payload: str = ""
    ) -> List[str]:
        i: str = self._indent
        lines: List[str] = [
            f"export function {signature} {{",
            f"{i}return http.request<{response}>({{",
            f"{i}{i}url: {url},",
            f"{i}{i}method: {ts_quote(method)},",
        ]
        if payload:
            lines.append(f"{i}{i}{payload},")
        lines.append(f"{i}}});")
        lines.append("}")
        return lines

    def render_api(self, entity: EntityModel, ctx: EmitContext) -> str:
        s: str = entity.struct_name
        i: str = self._indent
        caps = entity.capabilities
        members: List[ColumnMember] = column_members(entity)
        pk_member: ColumnMember = next(m for m in members if m.is_primary_key)
        pk_ts: str = typescript_type(pk_member.data_type, pk_member.spec.name, _ARTIFACT)
        base_url: str = f"/{entity.api_prefix}"
        api_path: str = ctx.path(ctx.layout.client_api, s)

        lines: List[str] = [
            f"// {GENERATED_NOTICE}",
            f"import {{ http }} from {ts_quote(ctx.http_module)};",
        ]
        for spec in entity.preloaded_relations:
            related: str = spec.relation.related_entity
            if related == s:
                continue
            other: str = ctx.path(ctx.layout.client_api, related)
            lines.append(
                f"import type {{ {related}Response }} from "
                f"{ts_quote(_relative_import(api_path, other))};"
            )
        lines.append("")

        if caps.has_list:
            query: List[str] = []
            if caps.has_pagination:
                query.append(f"{i}page?: number;")
                query.append(f"{i}pageSize?: number;")
            query.extend(self._member(m, True) for m in query_members(entity))
            query.extend(f"{i}{spec.json_name}Filter?: string;" for spec in entity.join_filter_fields)
            sortable = sortable_members(entity)
            if sortable:
                options: str = " | ".join(ts_quote(m.json) for m in sortable)
                query.append(f"{i}sortBy?: {options};")
                query.append(f"{i}sortDesc?: boolean;")
            lines.extend(self._interface(f"{s}QueryParams", query))

        if caps.has_create:
            lines.extend(self._interface(
                f"{s}CreateRequest",
                [self._member(m, not m.required) for m in members if not m.is_primary_key],
            ))
        if caps.has_update:
            lines.extend(self._interface(
                f"{s}UpdateRequest",
                [self._member(m, not m.is_primary_key) for m in members],
            ))

        response: List[str] = [self._member(m, not m.is_primary_key) for m in members]
        for spec in entity.preloaded_relations:
            target: str = f"{spec.relation.related_entity}Response"
            suffix: str = "[]" if spec.relation.is_collection else ""
            response.append(f"{i}{spec.json_name}?: {target}{suffix};")
        if ctx.with_timestamps:
            response.append(f"{i}createdAt?: string;")
            response.append(f"{i}updatedAt?: string;")
        lines.extend(self._interface(f"{s}Response", response))

        if caps.has_list:
            lines.extend(self._interface(
                f"{s}ListResponse",
                [f"{i}total: number;", f"{i}list: {s}Response[];"],
            ))

        functions: List[List[str]] = []
        if caps.has_list:
            functions.append(self._function(
                f"get{to_plural(s)}(params: {s}QueryParams)",
                f"{s}ListResponse", ts_quote(f"{base_url}/list"), "get", "params",
            ))
        if caps.has_detail:
            functions.append(self._function(
                f"get{s}(id: {pk_ts})",
                f"{s}Response", f"{ts_quote(base_url + '/detail/')} + id", "get",
            ))
        if caps.has_create:
            functions.append(self._function(
                f"create{s}(data: {s}CreateRequest)",
                f"{s}Response", ts_quote(f"{base_url}/create"), "post", "data",
            ))
        if caps.has_update:
            functions.append(self._function(
                f"update{s}(data: {s}UpdateRequest)",
                f"{s}Response", ts_quote(f"{base_url}/update"), "put", "data",
            ))
        if caps.has_delete:
            functions.append(self._function(
                f"delete{s}(id: {pk_ts})",
                "void", f"{ts_quote(base_url + '/delete/')} + id", "delete",
            ))

        for index, function in enumerate(functions):
            if index:
                lines.append("")
            lines.extend(function)
        lines.append("")
        return "\n".join(lines)

    # -------------------------------------------------------------------
    # Vue page
    # -------------------------------------------------------------------

    def render_view(
        self, entity: EntityModel, ctx: EmitContext, api_path: str, view_path: str
    ) -> str:
        s: str = entity.struct_name
        i: str = self._indent
        caps = entity.capabilities
        members: List[ColumnMember] = column_members(entity)
        pk_json: str = next(m.json for m in members if m.is_primary_key)
        api_import: str = _relative_import(view_path, api_path)

        names: List[str] = []
        types: List[str] = [f"{s}Response"]
        if caps.has_list:
            names.append(f"get{to_plural(s)}")
            types.append(f"{s}QueryParams")
        if caps.has_delete:
            names.append(f"delete{s}")

        script: List[str] = [
            '<script setup lang="ts">',
            f"// {GENERATED_NOTICE}",
            "import { onMounted, reactive, ref } from 'vue';",
        ]
        if names:
            script.append(f"import {{ {', '.join(names)} }} from {ts_quote(api_import)};")
        script.append(f"import type {{ {', '.join(types)} }} from {ts_quote(api_import)};")
        script.append("")
        script.append(f"const rows = ref<{s}Response[]>([]);")
        script.append("const total = ref(0);")
        if caps.has_list:
            initial: str = f"{{ page: 1, pageSize: {ctx.default_page_size} }}" if caps.has_pagination else "{}"
            script.append(f"const query = reactive<{s}QueryParams>({initial});")
            script.append("")
            script.append("async function load() {")
            script.append(f"{i}const {{ data }} = await get{to_plural(s)}(query);")
            script.append(f"{i}rows.value = data.list;")
            script.append(f"{i}total.value = data.total;")
            script.append("}")
        else:
            script.append("")
            script.append("async function load() {}")
        if caps.has_delete:
            script.append("")
            script.append(f"async function remove(row: {s}Response) {{")
            script.append(f"{i}await delete{s}(row.{pk_json});")
            script.append(f"{i}await load();")
            script.append("}")
        script.append("")
        script.append("onMounted(load);")
        script.append("</script>")

        filters: List[str] = []
        if caps.has_list:
            for m in query_members(entity):
                filters.append(
                    f'{i}{i}<input v-model="query.{m.json}" placeholder="{html.escape(m.spec.label)}" />'
                )
            for spec in entity.join_filter_fields:
                filters.append(
                    f'{i}{i}<input v-model="query.{spec.json_name}Filter" placeholder="{html.escape(spec.label)}" />'
                )
            filters.append(f'{i}{i}<button type="button" @click="load">Search</button>')

        headers: List[str] = [f"{i}{i}{i}{i}<th>{html.escape(m.spec.label)}</th>" for m in members]
        cells: List[str] = [f"{i}{i}{i}{i}<td>{{{{ row.{m.json} }}}}</td>" for m in members]
        if caps.has_delete:
            headers.append(f"{i}{i}{i}{i}<th></th>")
            cells.append(
                f'{i}{i}{i}{i}<td><button type="button" @click="remove(row)">Delete</button></td>'
            )

        template: List[str] = [
            "<template>",
            f'{i}<div class="{entity.file_stem}-page">',
            f"{i}{i}<h2>{html.escape(entity.label)}</h2>",
        ]
        if filters:
            template.append(f'{i}{i}<form class="filters" @submit.prevent="load">')
            template.extend(f"{i}{line}" for line in filters)
            template.append(f"{i}{i}</form>")
        template.extend([
            f"{i}{i}<table>",
            f"{i}{i}{i}<thead>",
            f"{i}{i}{i}{i}<tr>",
            *[f"{i}{h}" for h in headers],
            f"{i}{i}{i}{i}</tr>",
            f"{i}{i}{i}</thead>",
            f"{i}{i}{i}<tbody>",
            f'{i}{i}{i}{i}<tr v-for="row in rows" :key="row.{pk_json}">',
            *[f"{i}{c}" for c in cells],
            f"{i}{i}{i}{i}</tr>",
            f"{i}{i}{i}</tbody>",
            f"{i}{i}</table>",
            f"{i}{i}<p>Total: {{{{ total }}}}</p>",
            f"{i}</div>",
            "</template>",
            "",
        ])
        return "\n".join(script + [""] + template)

    # -------------------------------------------------------------------
    # Menu entry
    # -------------------------------------------------------------------

    def render_menu_entry(self, entity: EntityModel, view_path: str) -> str:
        i: str = self._indent
        return "\n".join([
            "{",
            f"{i}path: {ts_quote(f'{entity.package_name}/{entity.file_stem}')},",
            f"{i}name: {ts_quote(entity.file_stem)},",
            f"{i}component: () => import({ts_quote(_alias_import(view_path))}),",
            f"{i}meta: {{ title: {ts_quote(entity.label)} }},",
            "},",
        ])


__all__: List[str] = ["ClientEmitter", "menu_skeleton", "ts_quote"]
