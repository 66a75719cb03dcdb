# File: crudforge/__init__.py
"""
crudforge - Schema-Driven CRUD Generator
=========================================

Turns a declarative entity description (table, fields, relations) into a
consistent set of CRUD artifacts for a FastAPI + SQLAlchemy 2.0 backend and
a TypeScript/Vue frontend, and keeps a reversible history of every run.

Architecture overview::

    CLI / HTTP ──▶ CodegenService ──▶ CodeGenerator ──▶ Emitters
                        │                   │
                        ▼                   ▼
                 RollbackService     WorkspaceWriter / FileSectionStore
                        │                   │
                        └────▶ HistoryStore ◀┘

Usage::

    # As a library
    from crudforge import CodegenService, GeneratorSettings
    service = CodegenService.from_settings(GeneratorSettings(root_path="./app"))
    report = service.generate({"structName": "Product", "fields": [...]})

    # From the command line
    crudforge --root ./app generate product.yaml

Public API:
    - CodegenService      - Facade used by the CLI and the HTTP surface
    - CodeGenerator       - Generation pipeline
    - RollbackService     - Undo of recorded runs
    - HistoryStore        - Generation history persistence
    - build_entity_model  - Payload validation entry point
"""

from __future__ import annotations

__version__: str = "0.1.0"
__license__: str = "MIT"

from crudforge.config import ArtifactLayout, GeneratorSettings, load_settings
from crudforge.errors import (
    CodegenError,
    ConflictError,
    EmissionError,
    EntityValidationError,
    HistoryNotFoundError,
    RollbackError,
    RollbackFailure,
    SectionFormatError,
)
from crudforge.models import (
    BelongsTo,
    Capabilities,
    ColumnInfo,
    EntityModel,
    FieldSpec,
    GenerationManifest,
    HasMany,
    HasOne,
    HistoryRecord,
    ManyToMany,
    RollbackFlags,
    TableInfo,
)
from crudforge.validators import BuildResult, ValidationResult, build_entity_model
from crudforge.utils import Timer, to_lower_camel, to_plural, to_snake_case
from crudforge.generator import CodeGenerator, GenerationReport, GenerationState
from crudforge.history import HistoryStore
from crudforge.rollback import RollbackReport, RollbackService
from crudforge.service import CodegenService

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Settings
    "ArtifactLayout",
    "GeneratorSettings",
    "load_settings",
    # Errors
    "CodegenError",
    "ConflictError",
    "EmissionError",
    "EntityValidationError",
    "HistoryNotFoundError",
    "RollbackError",
    "RollbackFailure",
    "SectionFormatError",
    # Models
    "BelongsTo",
    "Capabilities",
    "ColumnInfo",
    "EntityModel",
    "FieldSpec",
    "GenerationManifest",
    "HasMany",
    "HasOne",
    "HistoryRecord",
    "ManyToMany",
    "RollbackFlags",
    "TableInfo",
    # Validation
    "BuildResult",
    "ValidationResult",
    "build_entity_model",
    # Pipeline
    "CodeGenerator",
    "GenerationReport",
    "GenerationState",
    "HistoryStore",
    "RollbackReport",
    "RollbackService",
    "CodegenService",
    # Utilities
    "Timer",
    "to_lower_camel",
    "to_plural",
    "to_snake_case",
]
