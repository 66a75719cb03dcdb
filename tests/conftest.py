"""
tests/conftest.py
Shared fixtures for the crudforge test suite.

No external mocking libraries are used; generation runs perform real file
I/O inside pytest's tmp_path, and the history store is an in-memory SQLite
database.
"""

from __future__ import annotations

import copy
import pathlib
from typing import Any, Dict

import pytest
import yaml

from crudforge.config import GeneratorSettings
from crudforge.emitters import EmitContext
from crudforge.generator import CodeGenerator
from crudforge.history import HistoryStore
from crudforge.models import EntityModel
from crudforge.service import CodegenService
from crudforge.validators import build_entity_model


# ---------------------------------------------------------------------------
# Payload fixtures
# ---------------------------------------------------------------------------


_PRODUCT_PAYLOAD: Dict[str, Any] = {
    "structName": "Product",
    "description": "Products",
    "packageName": "shop",
    "fields": [
        {"fieldName": "ID", "fieldType": "integer", "isPrimaryKey": True},
        {
            "fieldName": "Name",
            "fieldType": "string",
            "fieldDesc": "Product name",
            "required": True,
            "isSearchable": True,
            "isSortable": True,
        },
        {"fieldName": "Price", "fieldType": "decimal", "isFilterable": True, "isSortable": True},
        {"fieldName": "OnSale", "fieldType": "bool", "isFilterable": True},
        {
            "fieldName": "Category",
            "isRelation": True,
            "relationType": "belongs_to",
            "relatedModel": "Category",
            "preload": True,
            "joinable": True,
            "isFilterable": True,
        },
    ],
}


@pytest.fixture()
def product_payload() -> Dict[str, Any]:
    """Product with scalars and a preloaded, joinable belongs-to Category."""
    return copy.deepcopy(_PRODUCT_PAYLOAD)


@pytest.fixture()
def minimal_payload() -> Dict[str, Any]:
    """Smallest valid entity: a primary key and one column."""
    return {
        "structName": "Tag",
        "fields": [
            {"name": "ID", "dataType": "integer", "isPrimaryKey": True},
            {"name": "Label", "dataType": "string", "required": True},
        ],
    }


@pytest.fixture()
def relations_payload() -> Dict[str, Any]:
    """One field per relation variant."""
    return {
        "structName": "Author",
        "tableName": "authors",
        "fields": [
            {"name": "ID", "dataType": "integer", "isPrimaryKey": True},
            {"name": "Name", "dataType": "string", "isSearchable": True},
            {
                "name": "Publisher",
                "relation": {"kind": "belongs_to", "relatedEntity": "Publisher"},
            },
            {
                "name": "Profile",
                "relation": {"kind": "has_one", "relatedEntity": "Profile", "preload": True},
            },
            {
                "name": "Books",
                "relation": {"kind": "has_many", "relatedEntity": "Book", "preload": True},
            },
            {
                "name": "Awards",
                "relation": {
                    "kind": "many_to_many",
                    "relatedEntity": "Award",
                    "joinTable": "author_awards",
                },
            },
        ],
    }


def write_payload(path: pathlib.Path, payload: Dict[str, Any]) -> pathlib.Path:
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, sort_keys=False)
    return path


@pytest.fixture()
def product_yaml_path(product_payload: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    return write_payload(tmp_path / "product.yaml", product_payload)


# ---------------------------------------------------------------------------
# Entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def product_entity(product_payload: Dict[str, Any]) -> EntityModel:
    return build_entity_model(product_payload).unwrap()


@pytest.fixture()
def relations_entity(relations_payload: Dict[str, Any]) -> EntityModel:
    return build_entity_model(relations_payload).unwrap()


# ---------------------------------------------------------------------------
# Settings / pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def project_root(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "app"
    root.mkdir()
    return root


@pytest.fixture()
def settings(project_root: pathlib.Path) -> GeneratorSettings:
    return GeneratorSettings(root_path=project_root, history_url="sqlite://")


@pytest.fixture()
def emit_context(settings: GeneratorSettings, product_entity: EntityModel) -> EmitContext:
    return EmitContext.from_settings(settings, product_entity)


@pytest.fixture()
def history() -> HistoryStore:
    return HistoryStore.from_url("sqlite://")


@pytest.fixture()
def generator(settings: GeneratorSettings, history: HistoryStore) -> CodeGenerator:
    return CodeGenerator(settings, history=history)


@pytest.fixture()
def service(settings: GeneratorSettings, history: HistoryStore) -> CodegenService:
    return CodegenService(settings, history=history)


