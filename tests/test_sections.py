"""
tests/test_sections.py
Unit tests for crudforge.sections: tagged-block get / replace / remove over
text and over files.
"""

from __future__ import annotations

import pathlib

import pytest

from crudforge.errors import ConflictError, SectionFormatError
from crudforge.sections import FileSectionStore, SectionDocument

REGISTRY: str = "\n".join([
    "from fastapi import APIRouter",
    "",
    "api_router = APIRouter()",
    "",
    "# codegen:anchor",
    "",
])

MENU: str = "\n".join([
    "export const generatedRoutes = [",
    "  // codegen:anchor",
    "];",
    "",
])


class TestSectionDocument:
    def test_insert_before_anchor(self) -> None:
        doc = SectionDocument(REGISTRY)
        assert doc.replace("product", "x = 1", "Product") is True
        lines = doc.text.split("\n")
        begin = lines.index("# codegen:begin product owner=Product")
        assert lines[begin + 1] == "x = 1"
        assert lines[begin + 2] == "# codegen:end product"
        assert lines[begin + 3] == "# codegen:anchor"

    def test_block_inherits_anchor_indent(self) -> None:
        doc = SectionDocument(MENU, comment="//")
        doc.replace("product", "{ path: 'p' },", "Product")
        assert "  // codegen:begin product owner=Product" in doc.text
        assert "  { path: 'p' }," in doc.text
        assert doc.get("product") == "{ path: 'p' },"

    def test_append_without_anchor(self) -> None:
        doc = SectionDocument("header\n")
        doc.replace("k", "body", "Owner")
        assert doc.text == "header\n# codegen:begin k owner=Owner\nbody\n# codegen:end k\n"

    def test_replace_is_idempotent(self) -> None:
        doc = SectionDocument(REGISTRY)
        doc.replace("product", "x = 1", "Product")
        once = doc.text
        assert doc.replace("product", "x = 1", "Product") is False
        assert doc.text == once
        assert doc.keys() == ["product"]

    def test_replace_updates_in_place(self) -> None:
        doc = SectionDocument(REGISTRY)
        doc.replace("a", "a = 1", "A")
        doc.replace("b", "b = 1", "B")
        doc.replace("a", "a = 2", "A")
        assert doc.keys() == ["a", "b"]
        assert doc.get("a") == "a = 2"

    def test_foreign_owner_conflict(self) -> None:
        doc = SectionDocument(REGISTRY)
        doc.replace("product", "x = 1", "Product")
        with pytest.raises(ConflictError) as exc_info:
            doc.replace("product", "y = 1", "Item")
        assert exc_info.value.owner == "Product"

    def test_remove(self) -> None:
        doc = SectionDocument(REGISTRY)
        doc.replace("product", "x = 1", "Product")
        assert doc.remove("product", owner="Product") is True
        assert doc.text == REGISTRY
        assert doc.remove("product") is False

    def test_remove_checks_owner(self) -> None:
        doc = SectionDocument(REGISTRY)
        doc.replace("product", "x = 1", "Product")
        with pytest.raises(ConflictError):
            doc.remove("product", owner="Item")

    def test_unterminated_block(self) -> None:
        doc = SectionDocument("# codegen:begin a owner=A\nx = 1\n")
        with pytest.raises(SectionFormatError):
            doc.keys()

    def test_duplicated_key(self) -> None:
        text = "\n".join([
            "# codegen:begin a owner=A", "# codegen:end a",
            "# codegen:begin a owner=A", "# codegen:end a",
        ])
        with pytest.raises(SectionFormatError):
            SectionDocument(text).owner("a")

    def test_stray_end_marker(self) -> None:
        with pytest.raises(SectionFormatError):
            SectionDocument("# codegen:end a\n").keys()


class TestFileSectionStore:
    def test_creates_file_from_skeleton(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "server" / "routes.py"
        store = FileSectionStore(path, skeleton=REGISTRY)
        store.replace("product", "x = 1", "Product")
        assert path.is_file()
        assert store.owner("product") == "Product"
        assert path.read_text(encoding="utf-8").startswith("from fastapi import APIRouter")

    def test_unchanged_block_leaves_file_alone(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "routes.py"
        store = FileSectionStore(path, skeleton=REGISTRY)
        store.replace("product", "x = 1", "Product")
        before = path.read_bytes()
        assert store.replace("product", "x = 1", "Product") is False
        assert path.read_bytes() == before

    def test_remove_from_missing_file(self, tmp_path: pathlib.Path) -> None:
        store = FileSectionStore(tmp_path / "missing.py")
        assert store.remove("product") is False
        assert not (tmp_path / "missing.py").exists()

    def test_remove_keeps_other_blocks(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "routes.py"
        store = FileSectionStore(path, skeleton=REGISTRY)
        store.replace("a", "a = 1", "A")
        store.replace("b", "b = 1", "B")
        assert store.remove("a", owner="A") is True
        assert store.keys() == ["b"]
