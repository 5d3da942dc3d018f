"""Table resolution: turn arguments, groups and schemas into table descriptors.

Selection sources, in the order they are applied:

* ``--groups a,b`` -- groups defined in the config file
* ``--tables x,y`` -- explicit table names
* first positional argument -- comma-separated group names, ``schema.*``
  wildcards or table names
* nothing selected -- every source table in ``--schemas`` (or the search
  path unless ``--all-schemas``)

``--exclude`` is applied last.  The second positional argument is a SQL
filter applied to every table, and substituted for ``{1}`` in group SQL.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import EffectiveOptions
from .connection import DataSource
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDescriptor:
    """One table to sync plus its per-table option overrides."""

    table: str
    opts: Mapping[str, Any] = field(default_factory=dict)

    @property
    def sql(self) -> Optional[str]:
        return self.opts.get("sql")


class TableResolver:
    def __init__(
        self,
        args: Sequence[str],
        options: EffectiveOptions,
        source: DataSource,
        config: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if len(args) > 2:
            raise ConfigurationError("Usage:\n    tablesync [options] [tables] [sql]")
        self.args = list(args)
        self.options = options
        self.source = source
        self.config = config or {}
        self._first_schema: Optional[str] = None

    @property
    def groups(self) -> Dict[str, Any]:
        return self.config.get("groups") or {}

    @property
    def first_schema(self) -> str:
        if self._first_schema is None:
            path = [s for s in self.source.search_path() if s != "pg_catalog"]
            self._first_schema = path[0] if path else "public"
        return self._first_schema

    def qualify(self, name: str) -> str:
        return name if "." in name else f"{self.first_schema}.{name}"

    def tables(self) -> List[TableDescriptor]:
        """Return the resolved, ordered table list."""
        selected: Optional[Dict[str, Dict[str, Any]]] = None
        filter_sql = self.args[1] if len(self.args) > 1 else None

        def add(table: str, sql: Optional[str] = None) -> None:
            nonlocal selected
            if selected is None:
                selected = {}
            opts: Dict[str, Any] = {}
            if sql:
                opts["sql"] = sql
            name = self.qualify(table)
            selected.pop(name, None)
            selected[name] = opts

        if self.options.groups:
            for group in self._split(self.options.groups):
                if group not in self.groups:
                    raise ConfigurationError(f"Group not found: {group}")
                self._add_group(group, filter_sql, add)

        if self.options.tables:
            for table in self._split(self.options.tables):
                add(table, filter_sql)

        if self.args:
            for name in self._split(self.args[0]):
                if name in self.groups:
                    self._add_group(name, filter_sql, add)
                elif "*" in name:
                    for table in self._matching(self.qualify(name)):
                        add(table, filter_sql)
                else:
                    add(name, filter_sql)

        if selected is None:
            selected = {t: {} for t in self._default_tables()}

        excluded = {self.qualify(e) for e in self.options.exclude}
        result = [
            TableDescriptor(table, opts)
            for table, opts in selected.items()
            if table not in excluded
        ]
        logger.debug("Resolved %d table(s)", len(result))
        return result

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _split(value: str) -> List[str]:
        return [v.strip() for v in value.split(",") if v.strip()]

    def _add_group(self, group: str, param: Optional[str], add) -> None:
        spec = self.groups[group]
        if isinstance(spec, dict):
            for table, sql in spec.items():
                if sql and param is not None:
                    sql = sql.replace("{1}", param)
                elif sql and "{1}" in sql:
                    raise ConfigurationError(
                        f"Group {group} requires a parameter for table {table}"
                    )
                add(table, sql)
        elif isinstance(spec, list):
            for table in spec:
                add(table, param)
        else:
            raise ConfigurationError(
                f"Group {group} must be a list or mapping, got {type(spec).__name__}"
            )

    def _matching(self, pattern: str) -> List[str]:
        return [t for t in self.source.tables() if fnmatch.fnmatchcase(t, pattern)]

    def _default_tables(self) -> List[str]:
        tables = self.source.tables()
        if self.options.schemas:
            schemas = set(self.options.schemas)
        elif self.options.all_schemas:
            return tables
        else:
            schemas = set(self.source.search_path())
        return [t for t in tables if t.split(".", 1)[0] in schemas]
