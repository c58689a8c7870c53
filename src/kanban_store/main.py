#!/usr/bin/env python
"""Main entry point for the kanban store."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from kanban_store.config import config
from kanban_store.exceptions import ConfigurationError
from kanban_store.observability import configure_logging, metrics
from kanban_store.server.mcp_server import KanbanMcpServer
from kanban_store.storage.store import Store


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Kanban store (MCP over stdio)")
    parser.add_argument(
        "--data-dir",
        help="Application data directory",
        type=str,
        default=os.environ.get("KANBAN_STORE_DATA_DIR"),
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path (relative to the data directory)",
        type=str,
        default=os.environ.get("KANBAN_STORE_DATABASE_PATH"),
    )
    parser.add_argument(
        "--notes-dir",
        help="Directory for note body files (relative to the data directory)",
        type=str,
        default=os.environ.get("KANBAN_STORE_NOTES_DIR"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("KANBAN_STORE_LOG_LEVEL", "INFO"),
    )
    parser.add_argument(
        "--in-memory",
        help="Use an ephemeral in-memory database",
        action="store_true",
    )
    parser.add_argument(
        "--migrate-only",
        help="Create the schema, run migrations and exit",
        action="store_true",
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments.

    Raises:
        ConfigurationError: If an override is rejected by validation.
    """
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if args.database_path:
        overrides["database_path"] = Path(args.database_path)
    if args.notes_dir:
        overrides["notes_dir"] = Path(args.notes_dir)
    if args.in_memory:
        overrides["in_memory_db"] = True
    try:
        validated = config.model_validate({**config.model_dump(), **overrides})
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    for key in overrides:
        setattr(config, key, getattr(validated, key))


def _save_metrics_on_exit():
    """Save metrics to disk on shutdown."""
    if metrics.save_metrics():
        logging.getLogger(__name__).info("Metrics saved to disk on shutdown")


def main(argv=None):
    """Run the kanban store."""
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        sys.exit(2)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(config.get_log_dir(), level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        metrics.set_metrics_file(log_dir / "metrics.json")
        atexit.register(_save_metrics_on_exit)

    store = Store(config).open()
    atexit.register(store.close)
    status = store.status()

    if args.migrate_only:
        mode = "durable" if status["durable"] else "ephemeral"
        print(f"Store ready ({mode}): {status['databasePath'] or 'in-memory'}")
        return 0

    logger.info("Starting kanban store MCP server")
    server = KanbanMcpServer(store)
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
