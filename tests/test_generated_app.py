"""
tests/test_generated_app.py
Runs the generated server code.

A Category and a Product (belongs-to Category, preloaded, joinable and
filterable) are generated into tmp_path next to a small database module,
the shared route registry is mounted on a FastAPI app backed by in-memory
SQLite, and every handler is driven through TestClient.
"""

from __future__ import annotations

import importlib
import pathlib
import sys
from typing import Any, Dict, Iterator, List

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from crudforge.config import GeneratorSettings
from crudforge.generator import CodeGenerator
from crudforge.history import HistoryStore


_DATABASE_MODULE: str = '''\
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

engine = create_engine(
    "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
'''

_CATEGORY: Dict[str, Any] = {
    "structName": "Category",
    "packageName": "shop",
    "fields": [
        {"name": "ID", "dataType": "integer", "isPrimaryKey": True},
        {"name": "Name", "dataType": "string", "required": True, "isSearchable": True},
    ],
}

_PRODUCT: Dict[str, Any] = {
    "structName": "Product",
    "packageName": "shop",
    "fields": [
        {"name": "ID", "dataType": "integer", "isPrimaryKey": True},
        {"name": "Name", "dataType": "string", "required": True, "isSearchable": True, "isSortable": True},
        {"name": "Stock", "dataType": "integer", "isFilterable": True, "isSortable": True},
        {
            "name": "Category",
            "relation": {
                "kind": "belongs_to",
                "relatedEntity": "Category",
                "preload": True,
                "joinable": True,
            },
            "isFilterable": True,
        },
    ],
}


def _unload_generated_modules() -> None:
    for name in [m for m in sys.modules if m == "server" or m.startswith("server.")]:
        del sys.modules[name]


@pytest.fixture()
def client(project_root: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    settings = GeneratorSettings(
        root_path=project_root,
        history_url="sqlite://",
        default_page_size=2,
        max_page_size=3,
    )
    generator = CodeGenerator(settings, history=HistoryStore.from_url("sqlite://"))
    for payload in (_CATEGORY, _PRODUCT):
        report = generator.generate(payload)
        assert report.success, report.message

    database = project_root / "server" / "core" / "database.py"
    database.parent.mkdir(parents=True)
    database.write_text(_DATABASE_MODULE, encoding="utf-8")

    _unload_generated_modules()
    monkeypatch.syspath_prepend(str(project_root))
    try:
        routes = importlib.import_module("server.shop.routes")
        db_module = importlib.import_module("server.core.database")
        db_module.Base.metadata.create_all(db_module.engine)
        app = FastAPI()
        app.include_router(routes.api_router)
        with TestClient(app) as test_client:
            yield test_client
    finally:
        _unload_generated_modules()


@pytest.fixture()
def catalog(client: TestClient) -> Dict[str, int]:
    """Two categories and four products; returns ids by name."""
    ids: Dict[str, int] = {}
    for name in ("Books", "Games"):
        response = client.post("/category/create", json={"name": name})
        assert response.status_code == 201, response.text
        ids[name] = response.json()["id"]
    for name, stock, category in (
        ("Dune", 5, "Books"),
        ("Emma", 2, "Books"),
        ("Chess", 7, "Games"),
        ("Go", 1, "Games"),
    ):
        response = client.post(
            "/product/create",
            json={"name": name, "stock": stock, "categoryID": ids[category]},
        )
        assert response.status_code == 201, response.text
        ids[name] = response.json()["id"]
    return ids


def _names(client: TestClient, **params: Any) -> List[str]:
    response = client.get("/product/list", params=params)
    assert response.status_code == 200, response.text
    return [item["name"] for item in response.json()["list"]]


class TestCreateAndRead:
    def test_create_returns_nested_category(self, client: TestClient, catalog: Dict[str, int]) -> None:
        response = client.get(f"/product/detail/{catalog['Dune']}")
        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Dune"
        assert body["stock"] == 5
        assert body["categoryID"] == catalog["Books"]
        assert body["category"]["name"] == "Books"
        assert body["createdAt"] is not None

    def test_create_requires_required_members(self, client: TestClient) -> None:
        assert client.post("/product/create", json={"stock": 1}).status_code == 422

    def test_detail_unknown(self, client: TestClient) -> None:
        response = client.get("/product/detail/999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Product not found."


class TestList:
    def test_default_page_size(self, client: TestClient, catalog: Dict[str, int]) -> None:
        response = client.get("/product/list")
        body = response.json()
        assert body["total"] == 4
        assert [item["name"] for item in body["list"]] == ["Dune", "Emma"]

    def test_second_page(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert _names(client, page=2) == ["Chess", "Go"]

    def test_page_size_is_capped(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert _names(client, pageSize=50) == ["Dune", "Emma", "Chess"]

    def test_like_filter(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert _names(client, name="mm") == ["Emma"]

    def test_equality_filter(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert _names(client, stock=7) == ["Chess"]

    def test_foreign_key_filter(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert _names(client, categoryID=catalog["Games"]) == ["Chess", "Go"]

    def test_joined_name_filter(self, client: TestClient, catalog: Dict[str, int]) -> None:
        response = client.get("/product/list", params={"categoryFilter": "Books"})
        body = response.json()
        assert body["total"] == 2
        assert [item["name"] for item in body["list"]] == ["Dune", "Emma"]
        assert {item["category"]["name"] for item in body["list"]} == {"Books"}

    def test_sort(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert _names(client, sortBy="stock", sortDesc="true", pageSize=3) == ["Chess", "Dune", "Emma"]
        assert _names(client, sortBy="name", pageSize=3) == ["Chess", "Dune", "Emma"]

    def test_unknown_sort_option(self, client: TestClient, catalog: Dict[str, int]) -> None:
        assert client.get("/product/list", params={"sortBy": "price"}).status_code == 422

    def test_category_list_filter(self, client: TestClient, catalog: Dict[str, int]) -> None:
        response = client.get("/category/list", params={"name": "gam"})
        assert [item["name"] for item in response.json()["list"]] == ["Games"]


class TestUpdateAndDelete:
    def test_update_changes_only_sent_members(self, client: TestClient, catalog: Dict[str, int]) -> None:
        response = client.put("/product/update", json={"id": catalog["Go"], "stock": 9})
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["stock"] == 9
        assert body["name"] == "Go"
        assert body["categoryID"] == catalog["Games"]

    def test_update_unknown(self, client: TestClient) -> None:
        assert client.put("/product/update", json={"id": 999, "stock": 1}).status_code == 404

    def test_update_requires_primary_key(self, client: TestClient) -> None:
        assert client.put("/product/update", json={"stock": 1}).status_code == 422

    def test_delete(self, client: TestClient, catalog: Dict[str, int]) -> None:
        response = client.delete(f"/product/delete/{catalog['Emma']}")
        assert response.status_code == 204
        assert response.content == b""
        assert client.get(f"/product/detail/{catalog['Emma']}").status_code == 404
        assert client.get("/product/list").json()["total"] == 3
        assert client.delete(f"/product/delete/{catalog['Emma']}").status_code == 404
