# File: crudforge/exporters.py
"""
crudforge - Workspace Writer
=============================
Every file the generator creates or removes inside the target project goes
through ``WorkspaceWriter``:

    1. Paths are relative to the project root and may not escape it.
    2. Writes are atomic (write-to-temp then rename), one file at a time, so
       a failure mid-artifact leaves previously written files intact.
    3. Each write yields a ``FileRecord`` with size, line count and checksum.
    4. Removal moves the file into a timestamped trash directory when one is
       configured, and unlinks it otherwise.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from crudforge.utils import count_lines, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.exporters")


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single written file."""

    relative_path: str
    absolute_path: str
    size_bytes: int
    line_count: int
    sha256: str


class WorkspaceWriter:
    """
    File-system gateway for one target project.

    Usage::

        writer = WorkspaceWriter(Path("./app"), trash_dir=".codegen/trash")
        record = writer.write("server/admin/models/product.py", source)
        writer.remove(record.relative_path, batch=writer.new_trash_batch())
    """

    def __init__(self, root: Path, *, trash_dir: Optional[str] = None) -> None:
        self._root: Path = Path(root).resolve()
        self._trash_dir: Optional[str] = trash_dir
        logger.debug("WorkspaceWriter initialised: root=%s, trash=%s.", self._root, trash_dir)

    @property
    def root(self) -> Path:
        return self._root

    # -----------------------------------------------------------------
    # Paths
    # -----------------------------------------------------------------

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path for *relative_path*.

        Raises:
            ValueError: The path is absolute or escapes the project root.
        """
        if Path(relative_path).is_absolute():
            raise ValueError(f"Expected a project-relative path, got '{relative_path}'.")
        target: Path = (self._root / relative_path).resolve()
        if target != self._root and self._root not in target.parents:
            raise ValueError(f"Path '{relative_path}' escapes the project root.")
        return target

    # -----------------------------------------------------------------
    # Writing
    # -----------------------------------------------------------------

    def write(self, relative_path: str, content: str) -> FileRecord:
        """Atomically write one file and describe what was written."""
        target: Path = self.resolve(relative_path)
        size_bytes: int = write_file(target, content)
        record = FileRecord(
            relative_path=relative_path,
            absolute_path=str(target),
            size_bytes=size_bytes,
            line_count=count_lines(content),
            sha256=sha256_hex(content),
        )
        logger.debug(
            "Wrote file: %s (%d bytes, %d lines).",
            relative_path,
            record.size_bytes,
            record.line_count,
        )
        return record

    # -----------------------------------------------------------------
    # Removal
    # -----------------------------------------------------------------

    @staticmethod
    def new_trash_batch() -> str:
        """Directory name grouping the files removed by one rollback."""
        return time.strftime("%Y%m%d-%H%M%S") + f"-{time.time_ns() % 1_000_000:06d}"

    def trash_path(self, batch: str) -> Optional[Path]:
        """Directory holding *batch*, or None when removals unlink."""
        if self._trash_dir is None:
            return None
        return self.resolve(f"{self._trash_dir}/{batch}")

    def remove(self, relative_path: str, *, batch: Optional[str] = None) -> Optional[Path]:
        """
        Remove one file.

        Returns the trash location, or None when the file was unlinked.

        Raises:
            FileNotFoundError: The file does not exist.
        """
        target: Path = self.resolve(relative_path)
        if not target.is_file():
            raise FileNotFoundError(f"No such file: {relative_path}")

        if self._trash_dir is None:
            target.unlink()
            logger.info("Deleted %s.", relative_path)
            return None

        destination: Path = self.resolve(
            f"{self._trash_dir}/{batch or self.new_trash_batch()}/{relative_path}"
        )
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(target), str(destination))
        logger.info("Moved %s to %s.", relative_path, destination)
        return destination


__all__: List[str] = ["FileRecord", "WorkspaceWriter"]
