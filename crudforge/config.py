# File: crudforge/config.py
"""
crudforge - Generator Settings
===============================
One ``GeneratorSettings`` instance drives the whole tool: where the target
project lives, how generated files are laid out inside it, which databases
hold the generation history and the application schema, and the paging
limits baked into generated list handlers.

Settings are loaded from YAML or JSON with ``load_settings``; every key is
optional.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.config")

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
)


class ArtifactLayout(BaseModel):
    """
    Relative path templates for every generated file.

    ``{package}`` is the entity's package name and ``{stem}`` its file stem.
    Python paths double as import paths, so they must stay importable
    relative to the project root.
    """

    model_config = _SHARED_CONFIG

    model: str = "server/{package}/models/{stem}.py"
    dto: str = "server/{package}/dto/{stem}.py"
    controller: str = "server/{package}/controllers/{stem}.py"
    route_registry: str = "server/{package}/routes.py"
    client_api: str = "web/src/service/api/{stem}.ts"
    client_view: str = "web/src/views/{package}/{stem}/index.vue"
    menu: str = "web/src/router/generated.ts"

    @field_validator("*")
    @classmethod
    def _relative_posix(cls, v: str) -> str:
        if v.startswith("/") or ".." in v.split("/"):
            raise ValueError(f"Layout path '{v}' must be relative and stay inside the project.")
        return v

    def render(self, template: str, package: str, stem: str = "") -> str:
        return template.format(package=package, stem=stem)


class GeneratorSettings(BaseModel):
    """Master configuration for generation, history and rollback."""

    model_config = _SHARED_CONFIG

    root_path: Path = Field(default=Path("."), description="Target project root.")
    package_name: str = Field(default="admin", min_length=1)
    layout: ArtifactLayout = Field(default_factory=ArtifactLayout)
    database_module: str = Field(
        default="server.core.database",
        description="Module of the target app exposing ``Base`` and ``get_db``.",
    )
    http_module: str = Field(
        default="../http",
        description="Import path of the frontend ``http`` client, relative to the API file.",
    )

    history_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL of the history store; defaults to a SQLite "
        "file under <root>/.codegen/.",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="Application database used for introspection and table drops.",
    )

    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    with_timestamps: bool = True
    trash_dir: Optional[str] = Field(
        default=".codegen/trash",
        description="Rolled-back files are moved here (relative to root); "
        "None deletes them outright.",
    )

    @model_validator(mode="after")
    def _validate_page_sizes(self) -> "GeneratorSettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must be "
                f"<= max_page_size ({self.max_page_size})."
            )
        return self

    @property
    def resolved_root(self) -> Path:
        return Path(self.root_path).resolve()

    @property
    def resolved_history_url(self) -> str:
        if self.history_url:
            return self.history_url
        return f"sqlite:///{self.resolved_root / '.codegen' / 'history.db'}"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_mapping_file(path: Path) -> Dict[str, Any]:
    """
    Load a JSON or YAML file whose top level is a mapping.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed or isn't a mapping.
    """
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    text: str = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data: Any = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Cannot parse {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at top level of {path}, got {type(data).__name__}.")
    return data


def load_settings(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> GeneratorSettings:
    """
    Build settings from an optional file plus keyword overrides.

    Relative ``root_path`` values in a file are resolved against the
    file's directory.
    """
    data: Dict[str, Any] = {}
    if path is not None:
        data = load_mapping_file(path)
        root: Any = data.get("root_path")
        if root is not None and not Path(root).is_absolute():
            data["root_path"] = str((path.parent / root).resolve())
        logger.info("Loaded settings from %s.", path)
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return GeneratorSettings.model_validate(data)


__all__: List[str] = [
    "ArtifactLayout",
    "GeneratorSettings",
    "load_mapping_file",
    "load_settings",
]
