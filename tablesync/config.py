"""Configuration: config-file loading and the immutable ``EffectiveOptions``.

Options are resolved once per batch in order: explicit CLI value > config
file value > built-in default.  Per-table overrides (e.g. a SQL filter from
a group definition) produce a new value via :meth:`EffectiveOptions.merge`;
nothing mutates options after the batch starts.

Config file (``.pgsync.yml``)::

    from: postgres://localhost:5432/app_production
    to: postgres://localhost:5432/app_development
    to_safe: true
    exclude:
      - schema_migrations
    groups:
      product:
        products: "WHERE id = {1}"
        reviews: "WHERE product_id = {1}"
      core: [users, orders]
"""

from __future__ import annotations

import dataclasses
import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from ._constants import CONFIG_FILENAME, CONFIG_MERGE_KEYS, DEFAULT_BATCH_SIZE
from .connection import load_dotenv
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_KEY_TO_FIELD = {"from": "from_url", "to": "to_url", "list": "list_only"}


def expand_env(value: str) -> str:
    """Expand ``${VAR}`` references in *value* with environment variables."""

    def _repl(m):
        name = m.group(1)
        if name not in os.environ:
            raise ConfigurationError(
                f"Environment variable {name!r} is not set "
                f"(referenced in config as ${{{name}}})"
            )
        return os.environ[name]

    return re.sub(r"\$\{(\w+)}", _repl, str(value))


def resolve_source(value: Optional[str]) -> Optional[str]:
    """Replace ``$(command)`` fragments with the command's output.

    Only applied to locators read from the config file, never to CLI
    arguments.
    """
    if value is None:
        return None

    def _run(m):
        command = m.group(1)
        proc = subprocess.run(
            command, shell=True, capture_output=True, text=True,
        )
        if proc.returncode != 0:
            raise ConfigurationError(
                f"Command exited with non-zero status:\n{command}"
            )
        return proc.stdout.rstrip("\n")

    return re.sub(r"\$\(([^)]+)\)", _run, expand_env(value))


# -- config file --------------------------------------------------------------


def find_config_file(
    path: Optional[str] = None,
    db: Optional[str] = None,
    start: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Locate the config file.

    An explicit *path* must exist.  Otherwise ``.pgsync.yml`` (or
    ``.pgsync-<db>.yml``) is searched in *start* and each parent directory.
    """
    if path:
        p = Path(path)
        if not p.is_file():
            raise ConfigurationError(f"Config file not found: {path}")
        return p
    name = f".pgsync-{db}.yml" if db else CONFIG_FILENAME
    here = Path(start or os.getcwd()).resolve()
    for d in (here, *here.parents):
        candidate = d / name
        if candidate.is_file():
            return candidate
    if db:
        raise ConfigurationError(f"Config file not found: {name}")
    return None


def load_config(path: Optional[Union[str, Path]]) -> dict:
    """Load the YAML config at *path*; ``{}`` when *path* is ``None`` or empty."""
    load_dotenv()
    if path is None:
        return {}
    try:
        data = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(exc)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )
    logger.debug("Loaded config from %s", path)
    return data


# -- deprecations ---------------------------------------------------------------


def map_deprecations(
    args: List[str], opts: Dict[str, Any],
) -> Tuple[List[str], Dict[str, Any]]:
    """Translate legacy command forms into current options.

    Returns new ``(args, opts)``; the inputs are not modified.
    """
    args = list(args)
    opts = dict(opts)
    command = args[0] if args else None

    if command == "schema":
        args.pop(0)
        opts["schema_only"] = True
        logger.warning("[DEPRECATED] Use `tablesync --schema-only` instead")
    elif command == "tables":
        args.pop(0)
        opts["tables"] = args.pop(0) if args else None
        logger.warning("[DEPRECATED] Use `tablesync %s` instead", opts["tables"])
    elif command == "groups":
        args.pop(0)
        opts["groups"] = args.pop(0) if args else None
        logger.warning("[DEPRECATED] Use `tablesync %s` instead", opts["groups"])

    if opts.get("where"):
        opts["sql"] = (opts.get("sql") or "") + f" WHERE {opts['where']}"
        logger.warning('[DEPRECATED] Use `"WHERE %s"` instead', opts["where"])
    if opts.get("limit") is not None:
        opts["sql"] = (opts.get("sql") or "") + f" LIMIT {opts['limit']}"
        logger.warning('[DEPRECATED] Use `"LIMIT %s"` instead', opts["limit"])
    opts.pop("where", None)
    opts.pop("limit", None)
    return args, opts


# -- options --------------------------------------------------------------------


def _split_list(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class EffectiveOptions:
    """Merged, immutable options governing one batch."""

    from_url: Optional[str] = None
    to_url: Optional[str] = None
    to_safe: bool = False

    tables: Optional[str] = None
    groups: Optional[str] = None
    schemas: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    all_schemas: bool = False
    list_only: bool = False

    jobs: Optional[int] = None
    in_batches: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    sleep: float = 0.0
    debug: bool = False
    defer_constraints: bool = False
    fail_fast: bool = False

    schema_first: bool = False
    schema_only: bool = False
    preserve: bool = False
    overwrite: bool = False
    sql: Optional[str] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "EffectiveOptions":
        """Build options from CLI-style keys, ignoring ``None`` values."""
        return cls()._with(values)

    @classmethod
    def resolve(
        cls, cli: Mapping[str, Any], config: Optional[Mapping[str, Any]] = None,
    ) -> "EffectiveOptions":
        """Merge CLI values over config-file values over defaults."""
        config = config or {}
        merged = {k: v for k, v in cli.items() if v is not None}
        for key in CONFIG_MERGE_KEYS:
            current = merged.get(key)
            if (current is None or current is False) and config.get(key) is not None:
                value = config[key]
                if key in ("from", "to"):
                    value = resolve_source(value)
                merged[key] = value
        return cls.from_mapping(merged)

    def merge(self, overrides: Optional[Mapping[str, Any]]) -> "EffectiveOptions":
        """Return a copy with per-table *overrides* applied."""
        if not overrides:
            return self
        return self._with(overrides)

    def _with(self, values: Mapping[str, Any]) -> "EffectiveOptions":
        names = {f.name for f in dataclasses.fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            name = _KEY_TO_FIELD.get(key, key)
            if name not in names:
                raise ConfigurationError(f"Unknown option: {key}")
            if name in ("schemas", "exclude"):
                value = _split_list(value)
            elif name == "jobs":
                value = int(value)
                if value < 0:
                    raise ConfigurationError("--jobs must be zero or positive")
            changes[name] = value
        return dataclasses.replace(self, **changes)

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` for mutually exclusive options."""
        if (self.schema_first or self.schema_only) and self.preserve:
            raise ConfigurationError(
                "Cannot use --preserve with --schema-first or --schema-only"
            )
        if self.preserve and self.overwrite:
            raise ConfigurationError("Cannot use --preserve with --overwrite")

    @property
    def requires_consistency(self) -> bool:
        return self.defer_constraints
