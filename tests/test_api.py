"""
tests/test_api.py
HTTP surface tests driven through FastAPI's TestClient.
"""

from __future__ import annotations

import pathlib
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

from crudforge.api import create_app
from crudforge.config import GeneratorSettings
from crudforge.history import HistoryStore
from crudforge.introspection import SQLAlchemyIntrospector
from crudforge.service import CodegenService


@pytest.fixture()
def client(service: CodegenService) -> TestClient:
    return TestClient(create_app(service=service))


@pytest.fixture()
def db_client(settings: GeneratorSettings, history: HistoryStore, tmp_path: pathlib.Path) -> TestClient:
    engine = create_engine(f"sqlite:///{tmp_path / 'app.db'}")
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE articles ("
            "id INTEGER PRIMARY KEY, "
            "title VARCHAR(200) NOT NULL, "
            "body TEXT, "
            "created_at DATETIME)"
        ))
    service = CodegenService(settings, history=history, introspector=SQLAlchemyIntrospector(engine))
    return TestClient(create_app(service=service))


def _generate(client: TestClient, payload: Dict[str, Any]) -> Dict[str, Any]:
    response = client.post("/codegen/generate", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


class TestGenerate:
    def test_success(self, client: TestClient, product_payload: Dict[str, Any], project_root: pathlib.Path) -> None:
        body = _generate(client, product_payload)
        assert body["success"] is True
        assert body["errors"] == []
        data = body["data"]
        assert data["state"] == "done"
        assert data["structName"] == "Product"
        assert isinstance(data["historyId"], int)
        assert data["partial"] is False
        assert len(data["files"]) == 5
        assert (project_root / "server/shop/models/product.py").is_file()

    def test_validation_errors(self, client: TestClient) -> None:
        response = client.post("/codegen/generate", json={"structName": "bad name", "fields": []})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        codes = {issue["code"] for issue in body["errors"]}
        assert "INVALID_STRUCT_NAME" in codes
        assert "NO_FIELDS" in codes

    def test_conflict(self, client: TestClient, product_payload: Dict[str, Any]) -> None:
        _generate(client, product_payload)
        response = client.post("/codegen/generate", json={
            "structName": "Item",
            "tableName": "products",
            "packageName": "shop",
            "fields": [{"name": "ID", "dataType": "integer", "isPrimaryKey": True}],
        })
        assert response.status_code == 409
        assert response.json()["data"]["conflictOwner"] == "Product"

    def test_fields_from_database(self, db_client: TestClient, project_root: pathlib.Path) -> None:
        body = _generate(db_client, {"structName": "Article", "tableName": "articles"})
        assert body["success"] is True
        model = (project_root / "server/admin/models/article.py").read_text(encoding="utf-8")
        assert "title: Mapped[str]" in model
        assert "body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)" in model


class TestHistory:
    def test_list(self, client: TestClient, product_payload: Dict[str, Any], minimal_payload: Dict[str, Any]) -> None:
        _generate(client, product_payload)
        _generate(client, minimal_payload)
        response = client.get("/codegen/history", params={"page": 1, "pageSize": 1})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 2
        assert data["page"] == 1
        assert data["pageSize"] == 1
        assert [entry["structName"] for entry in data["list"]] == ["Tag"]

    def test_page_size_bounds(self, client: TestClient) -> None:
        assert client.get("/codegen/history", params={"pageSize": 0}).status_code == 422
        assert client.get("/codegen/history", params={"pageSize": 101}).status_code == 422

    def test_delete(self, client: TestClient, product_payload: Dict[str, Any], project_root: pathlib.Path) -> None:
        history_id = _generate(client, product_payload)["data"]["historyId"]
        response = client.delete(f"/codegen/history/{history_id}")
        assert response.status_code == 200
        assert response.json()["message"] == f"Deleted history #{history_id}."
        assert (project_root / "server/shop/models/product.py").is_file()
        assert client.delete(f"/codegen/history/{history_id}").status_code == 404


class TestRollback:
    def test_rollback_files(self, client: TestClient, product_payload: Dict[str, Any], project_root: pathlib.Path) -> None:
        history_id = _generate(client, product_payload)["data"]["historyId"]
        response = client.post("/codegen/rollback", json={"id": history_id, "deleteFiles": True})
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert len(data["removedFiles"]) == 5
        assert data["trashLocation"]
        assert not (project_root / "server/shop/models/product.py").exists()

        listing = client.get("/codegen/history").json()["data"]["list"]
        assert listing[0]["rolledBack"] is True

    def test_rollback_failure(self, client: TestClient, product_payload: Dict[str, Any]) -> None:
        history_id = _generate(client, product_payload)["data"]["historyId"]
        response = client.post("/codegen/rollback", json={
            "id": history_id,
            "deleteTable": True,
            "confirmTable": "nope",
        })
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["errors"] == [{
            "category": "table",
            "target": "products",
            "reason": "confirmation does not match the table name",
        }]

    def test_rollback_unknown(self, client: TestClient) -> None:
        response = client.post("/codegen/rollback", json={"id": 99, "deleteFiles": True})
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_rollback_in_flight(
        self, client: TestClient, service: CodegenService, product_payload: Dict[str, Any]
    ) -> None:
        history_id = _generate(client, product_payload)["data"]["historyId"]
        with service.generator.locks.generation("Product"):
            response = client.post("/codegen/rollback", json={"id": history_id, "deleteFiles": True})
        assert response.status_code == 409

    def test_rejects_unknown_flags(self, client: TestClient) -> None:
        response = client.post("/codegen/rollback", json={"id": 1, "deleteEverything": True})
        assert response.status_code == 422


class TestIntrospection:
    def test_tables_without_database(self, client: TestClient) -> None:
        response = client.get("/codegen/tables")
        assert response.status_code == 503
        assert "database_url" in response.json()["message"]

    def test_tables(self, db_client: TestClient) -> None:
        response = db_client.get("/codegen/tables")
        assert response.status_code == 200
        assert response.json()["data"] == [{"tableName": "articles", "tableComment": ""}]

    def test_columns(self, db_client: TestClient) -> None:
        response = db_client.get("/codegen/columns", params={"tableName": "articles"})
        assert response.status_code == 200
        columns = {c["columnName"]: c for c in response.json()["data"]}
        assert list(columns) == ["id", "title", "body", "created_at"]
        assert columns["id"]["keyFlag"] == "PRI"
        assert columns["title"]["nullable"] is False
        assert columns["body"]["dataType"] == "TEXT"

    def test_columns_unknown_table(self, db_client: TestClient) -> None:
        response = db_client.get("/codegen/columns", params={"tableName": "missing"})
        assert response.status_code == 404

    def test_columns_requires_table_name(self, db_client: TestClient) -> None:
        assert db_client.get("/codegen/columns").status_code == 422
