# File: crudforge/sections.py
"""
crudforge - Key-Addressed Section Store
========================================
Shared files (the backend route registry and the frontend menu module) are
edited only through tagged blocks::

    # codegen:begin productCategory owner=ProductCategory
    ...
    # codegen:end productCategory

``SectionDocument`` implements get / replace / remove by key over plain text
so it can be tested without touching the disk; ``FileSectionStore`` binds a
document to a file and writes it back atomically.

New blocks are inserted just before a ``codegen:anchor`` line when the file
has one (keeping them inside a list literal, for instance) and appended at
the end otherwise. Replacing a block owned by another entity raises
``ConflictError``; replacing one's own block rewrites it in place, which makes
repeated registration idempotent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from crudforge.errors import ConflictError, SectionFormatError
from crudforge.utils import write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.sections")

_BEGIN_RE: re.Pattern[str] = re.compile(
    r"^(?P<indent>[ \t]*)(?:#|//)\s*codegen:begin\s+(?P<key>\S+)\s+owner=(?P<owner>\S+)\s*$"
)
_END_RE: re.Pattern[str] = re.compile(r"^[ \t]*(?:#|//)\s*codegen:end\s+(?P<key>\S+)\s*$")
_ANCHOR_RE: re.Pattern[str] = re.compile(r"^(?P<indent>[ \t]*)(?:#|//)\s*codegen:anchor\b")


@dataclass(frozen=True, slots=True)
class _Block:
    key: str
    owner: str
    indent: str
    start: int  # index of the begin marker
    end: int  # index of the end marker


class SectionDocument:
    """Tagged blocks inside one text document."""

    def __init__(self, text: str, comment: str = "#") -> None:
        self._comment: str = comment
        self._lines: List[str] = text.split("\n")

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    # -- Parsing ------------------------------------------------------------

    def _blocks(self) -> List[_Block]:
        blocks: List[_Block] = []
        open_match: Optional[re.Match[str]] = None
        open_index: int = -1
        for index, line in enumerate(self._lines):
            begin = _BEGIN_RE.match(line)
            if begin:
                if open_match is not None:
                    raise SectionFormatError(
                        f"Block '{open_match.group('key')}' is not terminated "
                        f"before block '{begin.group('key')}' (line {index + 1})."
                    )
                open_match, open_index = begin, index
                continue
            end = _END_RE.match(line)
            if end:
                if open_match is None or end.group("key") != open_match.group("key"):
                    raise SectionFormatError(
                        f"Unexpected end marker for '{end.group('key')}' (line {index + 1})."
                    )
                blocks.append(_Block(
                    key=open_match.group("key"),
                    owner=open_match.group("owner"),
                    indent=open_match.group("indent"),
                    start=open_index,
                    end=index,
                ))
                open_match = None
        if open_match is not None:
            raise SectionFormatError(f"Block '{open_match.group('key')}' is never terminated.")

        keys: List[str] = [b.key for b in blocks]
        duplicated = sorted({k for k in keys if keys.count(k) > 1})
        if duplicated:
            raise SectionFormatError(f"Duplicated block key(s): {', '.join(duplicated)}.")
        return blocks

    def _find(self, key: str) -> Optional[_Block]:
        for block in self._blocks():
            if block.key == key:
                return block
        return None

    # -- Query --------------------------------------------------------------

    def keys(self) -> List[str]:
        return [b.key for b in self._blocks()]

    def owner(self, key: str) -> Optional[str]:
        block: Optional[_Block] = self._find(key)
        return block.owner if block else None

    def get(self, key: str) -> Optional[str]:
        """Body of the block without markers or the block indentation."""
        block: Optional[_Block] = self._find(key)
        if block is None:
            return None
        body: List[str] = []
        for line in self._lines[block.start + 1:block.end]:
            body.append(line[len(block.indent):] if line.startswith(block.indent) else line)
        return "\n".join(body)

    # -- Mutation -----------------------------------------------------------

    def _render(self, key: str, body: str, owner: str, indent: str) -> List[str]:
        c: str = self._comment
        lines: List[str] = [f"{indent}{c} codegen:begin {key} owner={owner}"]
        for line in body.rstrip("\n").split("\n"):
            lines.append(f"{indent}{line}" if line.strip() else "")
        lines.append(f"{indent}{c} codegen:end {key}")
        return lines

    def replace(self, key: str, body: str, owner: str) -> bool:
        """
        Insert or update the block *key*.

        Returns True when the document changed.

        Raises:
            ConflictError: The block exists and belongs to another owner.
        """
        block: Optional[_Block] = self._find(key)
        if block is not None:
            if block.owner != owner:
                raise ConflictError(
                    f"Section '{key}' is owned by '{block.owner}', not '{owner}'.",
                    owner=block.owner,
                )
            rendered: List[str] = self._render(key, body, owner, block.indent)
            if self._lines[block.start:block.end + 1] == rendered:
                return False
            self._lines[block.start:block.end + 1] = rendered
            return True

        anchor_index: Optional[int] = None
        anchor_indent: str = ""
        for index, line in enumerate(self._lines):
            anchor = _ANCHOR_RE.match(line)
            if anchor:
                anchor_index, anchor_indent = index, anchor.group("indent")
                break

        if anchor_index is not None:
            self._lines[anchor_index:anchor_index] = self._render(key, body, owner, anchor_indent)
        else:
            insert_at: int = len(self._lines)
            if self._lines and self._lines[-1] == "":
                insert_at -= 1
            self._lines[insert_at:insert_at] = self._render(key, body, owner, "")
        return True

    def remove(self, key: str, owner: Optional[str] = None) -> bool:
        """
        Delete the block *key*; returns False when it was not present.

        When *owner* is given the block must belong to it.
        """
        block: Optional[_Block] = self._find(key)
        if block is None:
            return False
        if owner is not None and block.owner != owner:
            raise ConflictError(
                f"Section '{key}' is owned by '{block.owner}', not '{owner}'.",
                owner=block.owner,
            )
        del self._lines[block.start:block.end + 1]
        return True


class FileSectionStore:
    """A ``SectionDocument`` persisted in one file."""

    def __init__(self, path: Path, *, comment: str = "#", skeleton: str = "") -> None:
        self.path: Path = path
        self._comment: str = comment
        self._skeleton: str = skeleton

    def _load(self) -> SectionDocument:
        if self.path.exists():
            text: str = self.path.read_text(encoding="utf-8")
        else:
            text = self._skeleton
        return SectionDocument(text, comment=self._comment)

    def keys(self) -> List[str]:
        return self._load().keys()

    def owner(self, key: str) -> Optional[str]:
        return self._load().owner(key)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def replace(self, key: str, body: str, owner: str) -> bool:
        doc: SectionDocument = self._load()
        changed: bool = doc.replace(key, body, owner)
        if changed or not self.path.exists():
            write_file(self.path, doc.text)
            logger.info("Registered section '%s' in %s.", key, self.path)
        return changed

    def remove(self, key: str, owner: Optional[str] = None) -> bool:
        if not self.path.exists():
            return False
        doc: SectionDocument = self._load()
        removed: bool = doc.remove(key, owner=owner)
        if removed:
            write_file(self.path, doc.text)
            logger.info("Removed section '%s' from %s.", key, self.path)
        return removed


__all__: List[str] = ["SectionDocument", "FileSectionStore"]
