"""CLI entry-point:  python -m tablesync [OPTIONS] [TABLES] [SQL]

Examples:
    python -m tablesync
    python -m tablesync users,orders --jobs 8
    python -m tablesync product "WHERE id = 42" --defer-constraints
    python -m tablesync --schemas public --schema-first -v
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import EffectiveOptions, find_config_file, load_config, map_deprecations
from .errors import SyncError
from .sync import Sync

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tablesync",
        description="Sync table data from one PostgreSQL database to another.",
    )
    parser.add_argument("args", nargs="*", help="Tables or groups, then an optional SQL filter")

    conn = parser.add_argument_group("connection")
    conn.add_argument("--from", dest="from", default=None, help="Source database URL")
    conn.add_argument("--to", default=None, help="Destination database URL")
    conn.add_argument("--to-safe", action="store_true", help="Accept a non-local destination")
    conn.add_argument("--config", default=None, help="Path to YAML config file")
    conn.add_argument("--db", default=None, help="Use .pgsync-DB.yml as the config file")

    sel = parser.add_argument_group("table selection")
    sel.add_argument("--tables", "-t", default=None, help="Comma-separated tables")
    sel.add_argument("--groups", "-g", default=None, help="Comma-separated groups")
    sel.add_argument("--schemas", default=None, help="Comma-separated schemas")
    sel.add_argument("--exclude", default=None, help="Comma-separated tables to skip")
    sel.add_argument("--all-schemas", action="store_true", help="Include every schema")
    sel.add_argument("--list", action="store_true", help="List tables instead of syncing")

    data = parser.add_argument_group("data")
    data.add_argument("--preserve", action="store_true", help="Keep existing rows")
    data.add_argument("--overwrite", action="store_true", help="Overwrite existing rows")
    data.add_argument("--schema-first", action="store_true", help="Copy the schema before data")
    data.add_argument("--schema-only", action="store_true", help="Copy the schema only")
    data.add_argument("--in-batches", action="store_true", help="Copy in primary-key batches")
    data.add_argument("--batch-size", type=int, default=None, help="Rows per batch")
    data.add_argument("--sleep", type=float, default=None, help="Seconds between batches")
    data.add_argument("--where", default=None, help=argparse.SUPPRESS)
    data.add_argument("--limit", type=int, default=None, help=argparse.SUPPRESS)

    run = parser.add_argument_group("execution")
    run.add_argument("--jobs", "-j", type=int, default=None, help="Number of tables to sync in parallel")
    run.add_argument("--defer-constraints", action="store_true", help="Sync in one transaction with constraints deferred")
    run.add_argument("--fail-fast", action="store_true", help="Stop starting tables after the first failure")
    run.add_argument("--debug", action="store_true", help="Run sequentially and log SQL")
    run.add_argument("--verbose", "-v", action="store_true", help="Enable debug-level logging")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    ns = vars(build_parser().parse_args(argv))
    args = ns.pop("args")
    config_path = ns.pop("config")
    db = ns.pop("db")
    verbose = ns.pop("verbose")

    logging.basicConfig(
        level=logging.DEBUG if (verbose or ns["debug"]) else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(find_config_file(config_path, db))
        args, cli = map_deprecations(args, ns)
        options = EffectiveOptions.resolve(cli, config)
    except SyncError as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    try:
        with Sync(options, config=config) as sync:
            sync.perform(args)
    except SyncError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except Exception as exc:
        logger.error("Sync failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
