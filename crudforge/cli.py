# File: crudforge/cli.py
"""
crudforge - Command-Line Interface
===================================

Subcommand CLI built on the standard-library ``argparse`` module.

Usage examples::

    # Generate CRUD artifacts for one entity
    crudforge --root ./app generate product.yaml

    # Validate an entity description without writing anything
    crudforge validate product.yaml

    # Inspect and undo previous runs
    crudforge --root ./app history --page 1 --page-size 20
    crudforge --root ./app rollback 3 --files --api --menu
    crudforge --root ./app rollback 3 --table --confirm-table products

    # Serve the HTTP surface
    crudforge -c crudforge.yaml serve --port 8888

Exit codes:
    0 - success
    1 - validation error
    2 - generation error
    3 - rollback error
    4 - input/argument error
    5 - conflict
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_ROLLBACK_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4
EXIT_CONFLICT: int = 5


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root crudforge logger based on verbosity level.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("crudforge")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from crudforge import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="crudforge",
        description=(
            "crudforge - schema-driven CRUD generator.\n\n"
            "Turns an entity description into a SQLAlchemy model, Pydantic "
            "DTOs, a FastAPI router, a TypeScript client and a Vue page, and "
            "keeps a reversible history of every run."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"crudforge v{__version__}",
    )

    # --- Settings ---
    settings_group = parser.add_argument_group("settings")
    settings_group.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Settings file (YAML or JSON).",
    )
    settings_group.add_argument(
        "--root",
        type=str,
        default=None,
        metavar="DIR",
        help="Target project root (overrides root_path).",
    )
    settings_group.add_argument(
        "--history-url",
        type=str,
        default=None,
        metavar="URL",
        help="SQLAlchemy URL of the history store.",
    )
    settings_group.add_argument(
        "--database-url",
        type=str,
        default=None,
        metavar="URL",
        help="Application database used for introspection and table drops.",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    p_generate = sub.add_parser("generate", help="Generate artifacts for one entity.")
    p_generate.add_argument("entity", metavar="FILE", help="Entity description (YAML or JSON).")

    p_validate = sub.add_parser("validate", help="Validate an entity description only.")
    p_validate.add_argument("entity", metavar="FILE", help="Entity description (YAML or JSON).")

    p_history = sub.add_parser("history", help="List generation history, newest first.")
    p_history.add_argument("--page", type=int, default=1)
    p_history.add_argument("--page-size", type=int, default=10)

    p_rollback = sub.add_parser("rollback", help="Undo a recorded generation run.")
    p_rollback.add_argument("id", type=int, help="History record id.")
    p_rollback.add_argument("--files", action="store_true", help="Remove generated files.")
    p_rollback.add_argument("--api", action="store_true", help="Remove the route registry block.")
    p_rollback.add_argument("--menu", action="store_true", help="Remove the menu entry.")
    p_rollback.add_argument("--table", action="store_true", help="Drop the entity table.")
    p_rollback.add_argument(
        "--confirm-table",
        type=str,
        default=None,
        metavar="NAME",
        help="Repeat the table name to confirm --table.",
    )

    p_delete = sub.add_parser("delete-history", help="Forget a history record; files stay.")
    p_delete.add_argument("id", type=int, help="History record id.")

    sub.add_parser("tables", help="List tables of the application database.")

    p_columns = sub.add_parser("columns", help="List columns of one table.")
    p_columns.add_argument("table", help="Table name.")

    p_serve = sub.add_parser("serve", help="Serve the HTTP API with uvicorn.")
    p_serve.add_argument("--host", type=str, default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8888)

    return parser


# ---------------------------------------------------------------------------
# Settings / service
# ---------------------------------------------------------------------------


def _build_settings_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Build a settings override dictionary from CLI arguments."""
    overrides: Dict[str, Any] = {}
    if args.root is not None:
        overrides["root_path"] = str(Path(args.root).resolve())
    if args.history_url is not None:
        overrides["history_url"] = args.history_url
    if args.database_url is not None:
        overrides["database_url"] = args.database_url
    return overrides


def _load_payload(path_arg: str) -> Optional[Dict[str, Any]]:
    from crudforge.config import load_mapping_file

    try:
        return load_mapping_file(Path(path_arg).resolve())
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Failed to load entity description: %s", exc)
        return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    """Validate without opening any database."""
    from crudforge.utils import Timer
    from crudforge.validators import build_entity_model

    payload = _load_payload(args.entity)
    if payload is None:
        return EXIT_INPUT_ERROR

    with Timer("validation") as t:
        result = build_entity_model(payload)

    print(f"\n{'=' * 50}")
    print("  Entity Validation Report")
    print(f"{'=' * 50}")
    print(f"  File:     {Path(args.entity).name}")
    if result.entity is not None:
        print(f"  Struct:   {result.entity.struct_name}")
        print(f"  Table:    {result.entity.table_name}")
        print(f"  Fields:   {len(result.entity.fields)}")
    print(f"  Time:     {t.elapsed:.3f}s")
    print(f"  Valid:    {'Yes' if result.ok else 'No'}")
    if result.validation.all_items:
        print()
        print(result.validation.format_report())
    print(f"{'=' * 50}\n")

    return EXIT_SUCCESS if result.ok else EXIT_VALIDATION_ERROR


def _cmd_generate(service: Any, args: argparse.Namespace) -> int:
    from crudforge.generator import GenerationState

    payload = _load_payload(args.entity)
    if payload is None:
        return EXIT_INPUT_ERROR

    report = service.generate(payload)
    print(report.summary())

    if report.state == GenerationState.DONE:
        return EXIT_SUCCESS
    if report.state == GenerationState.REJECTED:
        return EXIT_VALIDATION_ERROR if report.validation.has_errors else EXIT_CONFLICT
    return EXIT_GENERATION_ERROR


def _cmd_history(service: Any, args: argparse.Namespace) -> int:
    records, total = service.list_history(args.page, args.page_size)
    print(f"{'ID':>5}  {'Struct':<24} {'Table':<24} {'State':<12} Created")
    for record in records:
        m = record.manifest
        if record.rolled_back:
            state = "rolled back"
        elif m.partial:
            state = "partial"
        else:
            state = "active"
        print(
            f"{record.id:>5}  {m.struct_name:<24} {m.table_name:<24} {state:<12} "
            f"{record.created_at:%Y-%m-%d %H:%M:%S}"
        )
    print(f"-- page {args.page}, {len(records)} of {total} record(s)")
    return EXIT_SUCCESS


def _cmd_rollback(service: Any, args: argparse.Namespace) -> int:
    from crudforge.errors import ConflictError, HistoryNotFoundError
    from crudforge.models import RollbackFlags

    flags = RollbackFlags(
        delete_files=args.files,
        delete_api=args.api,
        delete_menu=args.menu,
        delete_table=args.table,
        confirm_table=args.confirm_table,
    )
    try:
        report = service.rollback(args.id, flags)
    except HistoryNotFoundError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR
    except ConflictError as exc:
        logger.error("%s", exc)
        return EXIT_CONFLICT

    print(report.message)
    for path in report.removed_files:
        print(f"  - {path}")
    for section in report.removed_sections:
        print(f"  - {section}")
    if report.dropped_table:
        print(f"  - table {report.dropped_table}")
    if report.trash_location:
        print(f"  Removed files were moved to {report.trash_location}")
    for failure in report.failures:
        print(f"  x {failure}")
    return EXIT_SUCCESS if report.success else EXIT_ROLLBACK_ERROR


def _cmd_delete_history(service: Any, args: argparse.Namespace) -> int:
    from crudforge.errors import HistoryNotFoundError

    try:
        service.delete_history(args.id)
    except HistoryNotFoundError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR
    print(f"Deleted history #{args.id}.")
    return EXIT_SUCCESS


def _cmd_tables(service: Any, args: argparse.Namespace) -> int:
    for table in service.list_tables():
        suffix: str = f"  ({table.table_comment})" if table.table_comment else ""
        print(f"{table.table_name}{suffix}")
    return EXIT_SUCCESS


def _cmd_columns(service: Any, args: argparse.Namespace) -> int:
    from sqlalchemy.exc import NoSuchTableError

    try:
        columns = service.list_columns(args.table)
    except NoSuchTableError:
        logger.error("Table '%s' not found.", args.table)
        return EXIT_INPUT_ERROR
    for column in columns:
        flags: str = "PK" if column.is_primary_key else ("NULL" if column.nullable else "NOT NULL")
        print(f"{column.column_name:<28} {column.data_type:<20} {flags:<9} {column.comment}")
    return EXIT_SUCCESS


def _cmd_serve(settings: Any, args: argparse.Namespace) -> int:
    import uvicorn

    from crudforge.api import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run one command and return its exit code."""
    from crudforge.config import load_settings
    from crudforge.errors import CodegenError
    from crudforge.service import CodegenService

    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    if args.quiet:
        verbosity: int = -1
        logging.disable(logging.CRITICAL)
    else:
        verbosity = args.verbose
    _setup_logging(verbosity)

    if args.command == "validate":
        return _cmd_validate(args)

    try:
        settings = load_settings(
            Path(args.config).resolve() if args.config else None,
            _build_settings_overrides(args),
        )
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Invalid settings: %s", exc)
        return EXIT_INPUT_ERROR

    if args.command == "serve":
        return _cmd_serve(settings, args)

    service = CodegenService.from_settings(settings)
    commands = {
        "generate": _cmd_generate,
        "history": _cmd_history,
        "rollback": _cmd_rollback,
        "delete-history": _cmd_delete_history,
        "tables": _cmd_tables,
        "columns": _cmd_columns,
    }
    try:
        return commands[args.command](service, args)
    except CodegenError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.
    """
    sys.exit(run(argv))


def main() -> None:
    """Console-script entry point."""
    cli_main()


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "run",
    "cli_main",
    "main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_ROLLBACK_ERROR",
    "EXIT_INPUT_ERROR",
    "EXIT_CONFLICT",
]

logger.debug("crudforge.cli loaded.")
