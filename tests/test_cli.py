"""
tests/test_cli.py
Tests for the command-line interface.

Commands are driven through ``run()``, which returns the exit code instead
of calling ``sys.exit``.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict, List

import pytest
import yaml
from sqlalchemy import create_engine, text

from crudforge.cli import (
    EXIT_CONFLICT,
    EXIT_INPUT_ERROR,
    EXIT_ROLLBACK_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    cli_main,
    run,
)


def write_payload(path: pathlib.Path, payload: Dict[str, Any]) -> pathlib.Path:
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, sort_keys=False)
    return path


@pytest.fixture()
def base_args(project_root: pathlib.Path, tmp_path: pathlib.Path) -> List[str]:
    return ["--root", str(project_root), "--history-url", f"sqlite:///{tmp_path / 'history.db'}"]


@pytest.fixture()
def app_db(tmp_path: pathlib.Path) -> str:
    url = f"sqlite:///{tmp_path / 'app.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE products (id INTEGER PRIMARY KEY, name VARCHAR(255) NOT NULL)"))
    engine.dispose()
    return url


class TestValidate:
    def test_valid(self, product_yaml_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["validate", str(product_yaml_path)]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Entity Validation Report" in out
        assert "Struct:   Product" in out
        assert "Valid:    Yes" in out

    def test_invalid(self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = write_payload(tmp_path / "bad.yaml", {"structName": "Bad", "fields": [{"name": "Title"}]})
        assert run(["validate", str(path)]) == EXIT_VALIDATION_ERROR
        out = capsys.readouterr().out
        assert "Valid:    No" in out
        assert "NO_PRIMARY_KEY" in out

    def test_json_input(self, tmp_path: pathlib.Path, minimal_payload: Dict[str, Any]) -> None:
        path = tmp_path / "tag.json"
        path.write_text(json.dumps(minimal_payload), encoding="utf-8")
        assert run(["validate", str(path)]) == EXIT_SUCCESS

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        assert run(["validate", str(tmp_path / "nope.yaml")]) == EXIT_INPUT_ERROR

    def test_not_a_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert run(["validate", str(path)]) == EXIT_INPUT_ERROR


class TestGenerateAndHistory:
    def test_generate(
        self,
        base_args: List[str],
        product_yaml_path: pathlib.Path,
        project_root: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run(base_args + ["generate", str(product_yaml_path)]) == EXIT_SUCCESS
        assert "Status:      DONE" in capsys.readouterr().out
        assert (project_root / "server/shop/models/product.py").is_file()
        assert (project_root / "server/shop/routes.py").is_file()

    def test_generate_invalid(self, base_args: List[str], tmp_path: pathlib.Path) -> None:
        path = write_payload(tmp_path / "bad.yaml", {"structName": "bad", "fields": []})
        assert run(base_args + ["generate", str(path)]) == EXIT_VALIDATION_ERROR

    def test_generate_conflict(
        self, base_args: List[str], product_yaml_path: pathlib.Path, tmp_path: pathlib.Path
    ) -> None:
        assert run(base_args + ["generate", str(product_yaml_path)]) == EXIT_SUCCESS
        other = write_payload(tmp_path / "item.yaml", {
            "structName": "Item",
            "tableName": "products",
            "packageName": "shop",
            "fields": [{"name": "ID", "dataType": "integer", "isPrimaryKey": True}],
        })
        assert run(base_args + ["generate", str(other)]) == EXIT_CONFLICT

    def test_generate_missing_file(self, base_args: List[str], tmp_path: pathlib.Path) -> None:
        assert run(base_args + ["generate", str(tmp_path / "nope.yaml")]) == EXIT_INPUT_ERROR

    def test_history(
        self,
        base_args: List[str],
        product_yaml_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        run(base_args + ["generate", str(product_yaml_path)])
        capsys.readouterr()
        assert run(base_args + ["history", "--page-size", "5"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Product" in out
        assert "active" in out
        assert "1 of 1 record(s)" in out

    def test_delete_history(
        self, base_args: List[str], product_yaml_path: pathlib.Path, project_root: pathlib.Path
    ) -> None:
        run(base_args + ["generate", str(product_yaml_path)])
        assert run(base_args + ["delete-history", "1"]) == EXIT_SUCCESS
        assert run(base_args + ["delete-history", "1"]) == EXIT_INPUT_ERROR
        assert (project_root / "server/shop/models/product.py").is_file()


class TestRollback:
    def test_rollback_files_and_sections(
        self,
        base_args: List[str],
        product_yaml_path: pathlib.Path,
        project_root: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        run(base_args + ["generate", str(product_yaml_path)])
        capsys.readouterr()

        code = run(base_args + ["rollback", "1", "--files", "--api", "--menu"])

        assert code == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Rolled back history #1." in out
        assert "server/shop/models/product.py" in out
        assert not (project_root / "server/shop/models/product.py").exists()
        registry = (project_root / "server/shop/routes.py").read_text(encoding="utf-8")
        assert "codegen:begin product" not in registry

        run(base_args + ["history"])
        assert "rolled back" in capsys.readouterr().out

    def test_rollback_unknown(self, base_args: List[str]) -> None:
        assert run(base_args + ["rollback", "9", "--files"]) == EXIT_INPUT_ERROR

    def test_rollback_failure(
        self,
        base_args: List[str],
        product_yaml_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        run(base_args + ["generate", str(product_yaml_path)])
        capsys.readouterr()
        code = run(base_args + ["rollback", "1", "--table", "--confirm-table", "wrong"])
        assert code == EXIT_ROLLBACK_ERROR
        assert "confirmation does not match the table name" in capsys.readouterr().out

    def test_rollback_drops_table(
        self,
        base_args: List[str],
        app_db: str,
        product_yaml_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        args = base_args + ["--database-url", app_db]
        run(args + ["generate", str(product_yaml_path)])
        capsys.readouterr()
        assert run(args + ["rollback", "1", "--table", "--confirm-table", "products"]) == EXIT_SUCCESS
        assert "table products" in capsys.readouterr().out
        run(args + ["tables"])
        assert "products" not in capsys.readouterr().out


class TestIntrospection:
    def test_tables_without_database(self, base_args: List[str]) -> None:
        assert run(base_args + ["tables"]) == EXIT_INPUT_ERROR

    def test_tables(self, base_args: List[str], app_db: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert run(base_args + ["--database-url", app_db, "tables"]) == EXIT_SUCCESS
        assert capsys.readouterr().out.strip() == "products"

    def test_columns(self, base_args: List[str], app_db: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert run(base_args + ["--database-url", app_db, "columns", "products"]) == EXIT_SUCCESS
        lines = capsys.readouterr().out.strip().splitlines()
        assert lines[0].split()[:3] == ["id", "INTEGER", "PK"]
        assert lines[1].split()[:4] == ["name", "VARCHAR(255)", "NOT", "NULL"]

    def test_columns_unknown_table(self, base_args: List[str], app_db: str) -> None:
        assert run(base_args + ["--database-url", app_db, "columns", "missing"]) == EXIT_INPUT_ERROR


class TestSettings:
    def test_settings_file(
        self,
        tmp_path: pathlib.Path,
        product_yaml_path: pathlib.Path,
    ) -> None:
        config = tmp_path / "crudforge.yaml"
        config.write_text(
            "root_path: ./out\n"
            "package_name: shop\n"
            f"history_url: sqlite:///{tmp_path / 'h.db'}\n",
            encoding="utf-8",
        )
        assert run(["-c", str(config), "generate", str(product_yaml_path)]) == EXIT_SUCCESS
        assert (tmp_path / "out/server/shop/models/product.py").is_file()

    def test_invalid_settings(self, tmp_path: pathlib.Path, product_yaml_path: pathlib.Path) -> None:
        config = tmp_path / "crudforge.yaml"
        config.write_text("default_page_size: 500\nmax_page_size: 100\n", encoding="utf-8")
        assert run(["-c", str(config), "generate", str(product_yaml_path)]) == EXIT_INPUT_ERROR

    def test_missing_settings_file(self, tmp_path: pathlib.Path, product_yaml_path: pathlib.Path) -> None:
        code = run(["-c", str(tmp_path / "nope.yaml"), "generate", str(product_yaml_path)])
        assert code == EXIT_INPUT_ERROR


class TestEntryPoints:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(["--version"])
        assert exc_info.value.code == 0
        assert "crudforge v" in capsys.readouterr().out

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run([])
        assert exc_info.value.code == 2

    def test_cli_main_exits_with_code(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli_main(["validate", str(tmp_path / "nope.yaml")])
        assert exc_info.value.code == EXIT_INPUT_ERROR
