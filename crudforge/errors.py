# File: crudforge/errors.py
"""
crudforge - Exception Taxonomy
===============================
Every failure the generator can surface derives from ``CodegenError``.

    CodegenError
    ├── EntityValidationError   bad or incomplete entity description
    ├── EmissionError           one emitter failed (partial manifest recorded)
    ├── ConflictError           route/menu tag or table owned by another entity
    ├── SectionFormatError      malformed tagged block in a shared file
    ├── RollbackError           one or more rollback categories failed
    └── HistoryNotFoundError    unknown history record id
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from crudforge.validators import ValidationResult

logger: logging.Logger = logging.getLogger("crudforge.errors")


class CodegenError(Exception):
    """Base class for all crudforge errors."""


class EntityValidationError(CodegenError):
    """Raised by callers that prefer exceptions over a ``BuildResult``."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result = result
        super().__init__(
            f"Entity validation failed with {result.error_count} error(s)."
        )


class EmissionError(CodegenError):
    """An emitter could not produce its artifact."""

    def __init__(self, artifact: str, message: str) -> None:
        self.artifact = artifact
        super().__init__(f"[{artifact}] {message}")


class ConflictError(CodegenError):
    """Generation refused because another entity owns a shared resource."""

    def __init__(self, message: str, *, owner: Optional[str] = None) -> None:
        self.owner = owner
        super().__init__(message)


class SectionFormatError(CodegenError):
    """A shared file has an unterminated or duplicated tagged block."""


@dataclass(frozen=True, slots=True)
class RollbackFailure:
    """One failed rollback category."""

    category: str
    target: str
    reason: str

    def __str__(self) -> str:
        return f"{self.category}: {self.target} ({self.reason})"


class RollbackError(CodegenError):
    """Aggregates every category that failed during one rollback."""

    def __init__(self, failures: Sequence[RollbackFailure]) -> None:
        self.failures: List[RollbackFailure] = list(failures)
        joined: str = "; ".join(str(f) for f in self.failures)
        super().__init__(f"Rollback finished with {len(self.failures)} failure(s): {joined}")


class HistoryNotFoundError(CodegenError):
    def __init__(self, history_id: int) -> None:
        self.history_id = history_id
        super().__init__(f"History record {history_id} does not exist.")


__all__: List[str] = [
    "CodegenError",
    "EntityValidationError",
    "EmissionError",
    "ConflictError",
    "SectionFormatError",
    "RollbackFailure",
    "RollbackError",
    "HistoryNotFoundError",
]
