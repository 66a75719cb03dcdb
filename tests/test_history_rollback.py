"""
tests/test_history_rollback.py
Tests for the history store and the rollback service.
"""

from __future__ import annotations

import pathlib
from typing import Any, Dict, List

import pytest
from sqlalchemy import create_engine, inspect, text

from crudforge.config import GeneratorSettings
from crudforge.errors import ConflictError, HistoryNotFoundError
from crudforge.generator import GenerationState
from crudforge.history import HistoryStore
from crudforge.introspection import SQLAlchemyIntrospector
from crudforge.locking import GenerationLocks
from crudforge.models import GenerationManifest, RollbackFlags, SectionRef
from crudforge.service import CodegenService


def _manifest(struct: str, table: str, prefix: str, **extra: Any) -> GenerationManifest:
    return GenerationManifest(
        struct_name=struct,
        package_name="shop",
        table_name=table,
        api_prefix=prefix,
        **extra,
    )


# ===========================================================================
# History store
# ===========================================================================


class TestHistoryStore:
    def test_create_and_get(self, history: HistoryStore) -> None:
        manifest = _manifest(
            "Product",
            "products",
            "product",
            files={"model": ["server/shop/models/product.py"]},
            insertions=[SectionRef(kind="routes", path="server/shop/routes.py", key="product", owner="Product")],
        )
        created = history.create(manifest)
        loaded = history.get(created.id)
        assert loaded.id == created.id
        assert loaded.rolled_back is False
        assert loaded.manifest.files == {"model": ["server/shop/models/product.py"]}
        assert loaded.manifest.insertions[0].key == "product"

    def test_get_unknown(self, history: HistoryStore) -> None:
        with pytest.raises(HistoryNotFoundError) as exc_info:
            history.get(42)
        assert exc_info.value.history_id == 42

    def test_list_newest_first_with_paging(self, history: HistoryStore) -> None:
        ids: List[int] = [
            history.create(_manifest(name, f"{name.lower()}s", name.lower())).id
            for name in ("Alpha", "Beta", "Gamma")
        ]
        page, total = history.list(page=1, page_size=2)
        assert total == 3
        assert [r.id for r in page] == [ids[2], ids[1]]
        page, total = history.list(page=2, page_size=2)
        assert [r.id for r in page] == [ids[0]]

    def test_list_clamps_page_arguments(self, history: HistoryStore) -> None:
        history.create(_manifest("Alpha", "alphas", "alpha"))
        records, total = history.list(page=0, page_size=0)
        assert total == 1
        assert len(records) == 1

    def test_delete(self, history: HistoryStore) -> None:
        record = history.create(_manifest("Alpha", "alphas", "alpha"))
        history.delete(record.id)
        with pytest.raises(HistoryNotFoundError):
            history.get(record.id)
        with pytest.raises(HistoryNotFoundError):
            history.delete(record.id)

    def test_mark_rolled_back(self, history: HistoryStore) -> None:
        record = history.create(_manifest("Alpha", "alphas", "alpha"))
        history.mark_rolled_back(record.id)
        assert history.get(record.id).rolled_back is True
        with pytest.raises(HistoryNotFoundError):
            history.mark_rolled_back(999)

    def test_find_active_conflicts(self, history: HistoryStore) -> None:
        first = history.create(_manifest("Product", "products", "product"))
        history.create(_manifest("Order", "orders", "order"))

        assert history.find_active_conflicts("Product", "products", "product") == []
        assert [r.id for r in history.find_active_conflicts("Item", "products", "item")] == [first.id]
        assert [r.id for r in history.find_active_conflicts("Item", "items", "product")] == [first.id]

        history.mark_rolled_back(first.id)
        assert history.find_active_conflicts("Item", "products", "item") == []

    def test_summary(self, history: HistoryStore) -> None:
        record = history.create(_manifest(
            "Product", "products", "product", partial=True, failed_artifact="dto",
            files={"model": ["a.py"]},
        ))
        summary = history.get(record.id).to_summary()
        assert summary["structName"] == "Product"
        assert summary["partial"] is True
        assert summary["failedArtifact"] == "dto"
        assert summary["rolledBack"] is False
        assert summary["files"] == ["a.py"]

    def test_file_database(self, tmp_path: pathlib.Path) -> None:
        url = f"sqlite:///{tmp_path / 'nested' / 'history.db'}"
        store = HistoryStore.from_url(url)
        record = store.create(_manifest("Alpha", "alphas", "alpha"))
        assert (tmp_path / "nested" / "history.db").is_file()
        assert HistoryStore.from_url(url).get(record.id).manifest.struct_name == "Alpha"


# ===========================================================================
# Rollback
# ===========================================================================


class TestRollback:
    @pytest.fixture()
    def e2e_payload(self) -> Dict[str, Any]:
        return {
            "structName": "E2ETest",
            "packageName": "shop",
            "fields": [
                {"name": "ID", "dataType": "integer", "isPrimaryKey": True},
                {"name": "Title", "dataType": "string", "required": True},
            ],
        }

    def test_delete_files_only(
        self, service: CodegenService, e2e_payload: Dict[str, Any], project_root: pathlib.Path
    ) -> None:
        report = service.generate(e2e_payload)
        assert report.success, report.message
        files = report.manifest.all_files()
        assert len(files) == 5

        result = service.rollback(report.history_id, RollbackFlags(delete_files=True))

        assert result.success, result.message
        assert result.removed_files == files
        assert result.removed_sections == []
        for path in files:
            assert not (project_root / path).exists()
            assert (pathlib.Path(result.trash_location) / path).is_file()
        trash_root = (project_root / ".codegen" / "trash").resolve()
        assert trash_root in pathlib.Path(result.trash_location).parents

        registry = (project_root / "server/shop/routes.py").read_text(encoding="utf-8")
        assert f"codegen:begin {report.manifest.api_prefix} owner=E2ETest" in registry
        assert service.get_history(report.history_id).rolled_back is True

    def test_noop_rollback(
        self, service: CodegenService, product_payload: Dict[str, Any], project_root: pathlib.Path
    ) -> None:
        report = service.generate(product_payload)
        result = service.rollback(report.history_id, RollbackFlags())

        assert result.success
        assert result.removed_files == []
        assert result.removed_sections == []
        assert result.dropped_table is None
        for path in report.manifest.all_files():
            assert (project_root / path).is_file()
        assert service.get_history(report.history_id).rolled_back is False

    def test_delete_api_and_menu(
        self, service: CodegenService, product_payload: Dict[str, Any], project_root: pathlib.Path
    ) -> None:
        report = service.generate(product_payload)
        result = service.rollback(
            report.history_id, RollbackFlags(delete_api=True, delete_menu=True)
        )

        assert result.success, result.message
        assert result.removed_sections == [
            "server/shop/routes.py#product",
            "web/src/router/generated.ts#product",
        ]
        registry = (project_root / "server/shop/routes.py").read_text(encoding="utf-8")
        menu = (project_root / "web/src/router/generated.ts").read_text(encoding="utf-8")
        assert "codegen:begin product" not in registry
        assert "# codegen:anchor" in registry
        assert "codegen:begin product" not in menu
        for path in report.manifest.all_files():
            assert (project_root / path).is_file()

    def test_missing_section_is_a_failure(
        self, service: CodegenService, product_payload: Dict[str, Any]
    ) -> None:
        report = service.generate(product_payload)
        service.rollback(report.history_id, RollbackFlags(delete_api=True))
        again = service.rollback(report.history_id, RollbackFlags(delete_api=True))

        assert not again.success
        assert [(f.category, f.target, f.reason) for f in again.failures] == [
            ("api", "server/shop/routes.py#product", "section not found"),
        ]

    def test_missing_file_does_not_stop_the_rest(
        self, service: CodegenService, product_payload: Dict[str, Any], project_root: pathlib.Path
    ) -> None:
        report = service.generate(product_payload)
        files = report.manifest.all_files()
        (project_root / files[1]).unlink()

        result = service.rollback(
            report.history_id, RollbackFlags(delete_files=True, delete_api=True)
        )

        assert not result.success
        assert [(f.category, f.target) for f in result.failures] == [("files", files[1])]
        assert result.removed_files == [files[0]] + files[2:]
        assert result.removed_sections == ["server/shop/routes.py#product"]
        assert service.get_history(report.history_id).rolled_back is True
        assert "1 failure" in result.message

    def test_table_confirmation_mismatch(
        self, service: CodegenService, product_payload: Dict[str, Any]
    ) -> None:
        report = service.generate(product_payload)
        result = service.rollback(
            report.history_id, RollbackFlags(delete_table=True, confirm_table="orders")
        )
        assert not result.success
        assert result.failures[0].category == "table"
        assert result.failures[0].reason == "confirmation does not match the table name"
        assert result.dropped_table is None

    def test_table_drop_without_database(
        self, service: CodegenService, product_payload: Dict[str, Any]
    ) -> None:
        report = service.generate(product_payload)
        result = service.rollback(
            report.history_id, RollbackFlags(delete_table=True, confirm_table="products")
        )
        assert result.failures[0].reason == "no application database is configured"

    def test_table_drop(
        self,
        settings: GeneratorSettings,
        history: HistoryStore,
        product_payload: Dict[str, Any],
        tmp_path: pathlib.Path,
    ) -> None:
        engine = create_engine(f"sqlite:///{tmp_path / 'app.db'}")
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE products (id INTEGER PRIMARY KEY, name VARCHAR(255))"))
        service = CodegenService(settings, history=history, introspector=SQLAlchemyIntrospector(engine))

        report = service.generate(product_payload)
        result = service.rollback(
            report.history_id, RollbackFlags(delete_table=True, confirm_table="products")
        )

        assert result.success, result.message
        assert result.dropped_table == "products"
        assert inspect(engine).has_table("products") is False

    def test_struct_in_flight(
        self, service: CodegenService, product_payload: Dict[str, Any], project_root: pathlib.Path
    ) -> None:
        report = service.generate(product_payload)
        with service.generator.locks.generation("Product"):
            with pytest.raises(ConflictError):
                service.rollback(report.history_id, RollbackFlags(delete_files=True))
        assert (project_root / report.manifest.all_files()[0]).is_file()

    def test_generation_rejected_while_rolling_back(
        self,
        settings: GeneratorSettings,
        history: HistoryStore,
        product_payload: Dict[str, Any],
        project_root: pathlib.Path,
    ) -> None:
        reports: List[Any] = []

        class RegeneratingIntrospector:
            def drop_table(self, table_name: str) -> None:
                reports.append(service.generate(product_payload))

        service = CodegenService(settings, history=history, introspector=RegeneratingIntrospector())
        report = service.generate(product_payload)
        result = service.rollback(
            report.history_id,
            RollbackFlags(delete_files=True, delete_table=True, confirm_table="products"),
        )

        assert result.success, result.message
        assert [r.state for r in reports] == [GenerationState.REJECTED]
        assert "A rollback of 'Product' is already in progress." in reports[0].message
        assert not (project_root / report.manifest.all_files()[0]).exists()
        assert service.generator.locks.is_in_flight("Product") is False

    def test_second_rollback_rejected_while_first_runs(self) -> None:
        locks = GenerationLocks()
        with locks.rollback("Product"):
            with pytest.raises(ConflictError) as exc_info:
                with locks.rollback("Product"):
                    pass
            assert "A rollback of 'Product'" in str(exc_info.value)
            with locks.rollback("Order"):
                assert locks.is_in_flight("Order")
        assert not locks.is_in_flight("Product")

    def test_unknown_history(self, service: CodegenService) -> None:
        with pytest.raises(HistoryNotFoundError):
            service.rollback(7, RollbackFlags(delete_files=True))

    def test_rolled_back_struct_frees_its_table(
        self, service: CodegenService, product_payload: Dict[str, Any]
    ) -> None:
        report = service.generate(product_payload)
        service.rollback(
            report.history_id,
            RollbackFlags(delete_files=True, delete_api=True, delete_menu=True),
        )
        other = service.generate({
            "structName": "Item",
            "tableName": "products",
            "packageName": "shop",
            "fields": [{"name": "ID", "dataType": "integer", "isPrimaryKey": True}],
        })
        assert other.success, other.message

    def test_unlinks_without_trash_dir(
        self, project_root: pathlib.Path, history: HistoryStore, product_payload: Dict[str, Any]
    ) -> None:
        settings = GeneratorSettings(root_path=project_root, history_url="sqlite://", trash_dir=None)
        service = CodegenService(settings, history=history)
        report = service.generate(product_payload)
        result = service.rollback(report.history_id, RollbackFlags(delete_files=True))
        assert result.success
        assert result.trash_location is None
        assert not (project_root / ".codegen").exists()

    def test_report_to_dict(
        self, service: CodegenService, product_payload: Dict[str, Any]
    ) -> None:
        report = service.generate(product_payload)
        data = service.rollback(report.history_id, RollbackFlags(delete_menu=True)).to_dict()
        assert data["id"] == report.history_id
        assert data["structName"] == "Product"
        assert data["removedSections"] == ["web/src/router/generated.ts#product"]
        assert data["failures"] == []
