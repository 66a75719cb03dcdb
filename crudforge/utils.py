# File: crudforge/utils.py
"""
crudforge - Naming Transforms & Helpers
========================================
String transformations that every emitter relies on to derive table names,
API prefixes, file stems and JSON member names from an entity's struct name,
plus the file I/O and timing helpers used by the generation pipeline.

All naming functions are pure and cached with ``@lru_cache`` because the
emitters call them repeatedly for the same handful of identifiers.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional, Set

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns
# ---------------------------------------------------------------------------

_CAMEL_BOUNDARY_RE: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_LAST_WORD_RE: re.Pattern[str] = re.compile(r"([A-Z]?[a-z]+|[A-Z]+|\d+)$")
_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_UPPER_CAMEL_RE: re.Pattern[str] = re.compile(r"^[A-Z][A-Za-z0-9]*$")
_API_PREFIX_RE: re.Pattern[str] = re.compile(r"^[A-Za-z][A-Za-z0-9_/-]*$")

# Irregular nouns common in database schemas; applied to the last word only.
_IRREGULAR_PLURALS: Dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "datum": "data",
}

_VOWELS: str = "aeiou"


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert an UpperCamel identifier to lower_snake.

    An underscore is inserted before each uppercase letter that follows a
    lowercase letter or a digit, then the whole string is lowercased.
    Already-snake input is returned unchanged.

    Examples:
        >>> to_snake_case("ProductCategory")
        'product_category'
        >>> to_snake_case("CategoryID")
        'category_id'
        >>> to_snake_case("product_category")
        'product_category'
    """
    if not name:
        return ""
    return _CAMEL_BOUNDARY_RE.sub(r"\1_\2", name).lower()


@functools.lru_cache(maxsize=None)
def to_lower_camel(name: str) -> str:
    """
    Lowercase the first character only.

        >>> to_lower_camel("ProductCategory")
        'productCategory'
    """
    if not name:
        return ""
    return name[0].lower() + name[1:]


@functools.lru_cache(maxsize=None)
def to_upper_camel(name: str) -> str:
    """
    Convert a snake_case column name to an UpperCamel field name.

    A standalone ``id`` segment becomes ``ID`` so that
    ``to_snake_case(to_upper_camel("category_id")) == "category_id"``.
    """
    if not name:
        return ""
    parts: List[str] = [p for p in name.split("_") if p]
    return "".join("ID" if p.lower() == "id" else p[0].upper() + p[1:] for p in parts)


@functools.lru_cache(maxsize=None)
def to_plural(word: str) -> str:
    """
    English pluralisation sufficient for table and handler names.

    Total and deterministic: unknown forms fall through to ``+s``.

        >>> to_plural("ProductCategory")
        'ProductCategories'
        >>> to_plural("Box")
        'Boxes'
    """
    if not word:
        return ""

    match: Optional[re.Match[str]] = _LAST_WORD_RE.search(word)
    last: str = match.group(1) if match else word
    head: str = word[: len(word) - len(last)]
    irregular: Optional[str] = _IRREGULAR_PLURALS.get(last.lower())
    if irregular is not None:
        if last[0].isupper():
            irregular = irregular[0].upper() + irregular[1:]
        return head + irregular

    lower: str = word.lower()
    if lower.endswith("y") and len(word) > 1 and lower[-2] not in _VOWELS:
        return word[:-1] + "ies"
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


@functools.lru_cache(maxsize=None)
def json_name(field_name: str) -> str:
    """
    JSON member name for a field.

    All-caps names such as ``ID`` are lowercased entirely; everything else
    goes through :func:`to_lower_camel`.
    """
    if field_name.isupper():
        return field_name.lower()
    return to_lower_camel(field_name)


def table_name_for(struct_name: str) -> str:
    """Default table name: pluralised snake_case of the struct name."""
    return to_snake_case(to_plural(struct_name))


def api_prefix_for(struct_name: str) -> str:
    """Default API prefix: the singular lowerCamel struct name."""
    return to_lower_camel(struct_name)


def file_stem_for(struct_name: str) -> str:
    """Generated file stem shared by every artifact of one entity."""
    return to_lower_camel(struct_name)


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.fullmatch(name))


def is_upper_camel(name: str) -> bool:
    return bool(_UPPER_CAMEL_RE.fullmatch(name))


def is_api_prefix(prefix: str) -> bool:
    """A URL path segment usable as a route prefix and a section key."""
    return bool(_API_PREFIX_RE.fullmatch(prefix))


# ---------------------------------------------------------------------------
# Code formatting helpers
# ---------------------------------------------------------------------------


def quote(value: str) -> str:
    """Wrap a value in double quotes, escaping quotes, backslashes and control characters."""
    return json.dumps(value, ensure_ascii=False)


def build_import_block(imports: Dict[str, Set[str]]) -> str:
    """
    Build a sorted, de-duplicated import block from a mapping of
    module -> set of names.

        >>> build_import_block({"typing": {"List", "Optional"}, "datetime": {"datetime"}})
        'from datetime import datetime\\nfrom typing import List, Optional'
    """
    lines: List[str] = []
    for module in sorted(imports.keys()):
        names: List[str] = sorted(imports[module])
        if names:
            lines.append(f"from {module} import {', '.join(names)}")
        else:
            lines.append(f"import {module}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def write_file(path: Path, content: str) -> int:
    """
    Atomically write *content* to *path*.

    The data goes to a temporary file in the target directory which is then
    renamed over the destination, so readers never observe a half-written
    file. Returns the number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded: bytes = content.encode("utf-8")

    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Context-manager timer for profiling pipeline steps.

    Usage:
        with Timer("emit model") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "to_snake_case",
    "to_lower_camel",
    "to_upper_camel",
    "to_plural",
    "json_name",
    "table_name_for",
    "api_prefix_for",
    "file_stem_for",
    "is_identifier",
    "is_upper_camel",
    "is_api_prefix",
    "quote",
    "build_import_block",
    "write_file",
    "sha256_hex",
    "count_lines",
    "Timer",
]

logger.debug("crudforge.utils loaded - %d public symbols.", len(__all__))
