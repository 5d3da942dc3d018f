"""Per-table data copy from the source to the destination.

Only the columns present on both sides (the *shared fields*) are copied.
Destination handling:

* default      -- ``TRUNCATE`` the destination, then insert every row
* ``preserve`` -- insert, skipping rows whose primary key already exists
* ``overwrite``-- insert, updating rows whose primary key already exists

With ``in_batches`` rows are read in primary-key order, ``batch_size`` at a
time, sleeping ``sleep`` seconds between batches.
"""

from __future__ import annotations

import contextlib
import logging
import time
from typing import Any, ContextManager, Generator, List, Optional, Tuple

from . import queries
from .config import EffectiveOptions
from .connection import DataSource
from .errors import JobError

logger = logging.getLogger(__name__)


def _iter_cursor(
    cursor: Any, batch_size: int
) -> Generator[List[Tuple], None, None]:
    """Yield lists of rows from *cursor* in batches of *batch_size* without
    materialising the entire result set in memory."""
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            break
        yield [tuple(row) for row in batch]


class TableSync:
    def __init__(
        self,
        source: DataSource,
        destination: DataSource,
        table: str,
        options: EffectiveOptions,
    ) -> None:
        self.source = source
        self.destination = destination
        self.table = table
        self.options = options
        self._from_columns: Optional[List[Tuple[str, str]]] = None
        self._to_columns: Optional[List[Tuple[str, str]]] = None
        self._primary_key: Optional[List[str]] = None

    # -- metadata -----------------------------------------------------------

    @property
    def from_columns(self) -> List[Tuple[str, str]]:
        if self._from_columns is None:
            self._from_columns = self.source.columns(self.table)
        return self._from_columns

    @property
    def to_columns(self) -> List[Tuple[str, str]]:
        if self._to_columns is None:
            self._to_columns = self.destination.columns(self.table)
        return self._to_columns

    @property
    def primary_key(self) -> List[str]:
        if self._primary_key is None:
            self._primary_key = self.destination.primary_key(self.table)
        return self._primary_key

    def shared_fields(self) -> List[str]:
        """Source columns, in source order, that also exist on the destination."""
        to_names = {name for name, _ in self.to_columns}
        return [name for name, _ in self.from_columns if name in to_names]

    def notes(self) -> List[str]:
        """Advisory warnings to show before the batch starts."""
        notes: List[str] = []
        from_types = dict(self.from_columns)
        to_types = dict(self.to_columns)

        extra = [c for c in from_types if c not in to_types]
        missing = [c for c in to_types if c not in from_types]
        if extra:
            notes.append(f"Extra columns: {', '.join(extra)}")
        if missing:
            notes.append(f"Missing columns: {', '.join(missing)}")

        different = [
            c for c in from_types
            if c in to_types and from_types[c] != to_types[c]
        ]
        if different:
            notes.append(f"Different column types: {', '.join(different)}")

        if self._needs_primary_key() and not self.primary_key:
            notes.append("No primary key")
        return notes

    def _needs_primary_key(self) -> bool:
        o = self.options
        return o.preserve or o.overwrite or o.in_batches

    # -- copy ---------------------------------------------------------------

    def sync(self) -> int:
        """Copy the table and return the number of rows written.

        Raises :class:`~tablesync.errors.JobError` for conditions that make
        the copy impossible; database errors propagate unchanged.
        """
        fields = self.shared_fields()
        if not fields:
            raise JobError(f"No shared columns for {self.table}")
        if self._needs_primary_key() and not self.primary_key:
            raise JobError(f"No primary key on {self.table}")

        o = self.options
        conflict_keys = self.primary_key if (o.preserve or o.overwrite) else None
        insert_sql = queries.build_insert(
            self.table, fields, conflict_keys=conflict_keys, update=o.overwrite,
        )

        with self.destination.transaction():
            if not (o.preserve or o.overwrite):
                self.destination.execute(queries.build_truncate(self.table))
            if o.in_batches:
                rows = self._copy_in_batches(fields, insert_sql)
            else:
                rows = self._copy(fields, insert_sql)

        logger.debug("%s: %d rows copied", self.table, rows)
        return rows

    def _reading(self) -> ContextManager:
        """Savepoint for source reads inside an open snapshot transaction.

        A failed read then leaves the snapshot usable for later tables.
        """
        if self.source.in_transaction():
            return self.source.transaction()
        return contextlib.nullcontext()

    def _write(self, insert_sql: str, batch: List[Tuple]) -> None:
        cur = self.destination.cursor()
        try:
            cur.executemany(insert_sql, batch)
        finally:
            cur.close()

    def _copy(self, fields: List[str], insert_sql: str) -> int:
        select_sql = queries.build_select(self.table, fields, self.options.sql)
        logger.debug("SQL: %s", select_sql)
        count = 0
        with self._reading():
            cur = self.source.cursor()
            try:
                cur.execute(select_sql)
                for batch in _iter_cursor(cur, self.options.batch_size):
                    self._write(insert_sql, batch)
                    count += len(batch)
            finally:
                cur.close()
        return count

    def _copy_in_batches(self, fields: List[str], insert_sql: str) -> int:
        if len(self.primary_key) != 1:
            raise JobError(
                f"--in-batches requires a single-column primary key on {self.table}"
            )
        if self.options.sql:
            raise JobError("Cannot use --in-batches with a SQL filter")
        key = self.primary_key[0]
        if key not in fields:
            raise JobError(f"Primary key {key} is not a shared column")
        key_idx = fields.index(key)

        with self._reading():
            return self._page(fields, insert_sql, key, key_idx)

    def _page(self, fields: List[str], insert_sql: str, key: str, key_idx: int) -> int:
        min_row = self.source.execute(
            f"SELECT MIN({queries.quote_ident(key)}) FROM "
            f"{queries.quote_table(self.table)}"
        )
        if not min_row or min_row[0][0] is None:
            return 0

        first_sql = queries.build_batch_select(
            self.table, fields, key, self.options.batch_size, inclusive=True,
        )
        next_sql = queries.build_batch_select(
            self.table, fields, key, self.options.batch_size,
        )
        bound = min_row[0][0]
        sql = first_sql
        count = 0
        while True:
            batch = self.source.execute(sql, (bound,))
            if not batch:
                break
            self._write(insert_sql, batch)
            count += len(batch)
            bound = batch[-1][key_idx]
            sql = next_sql
            logger.info("%s: %d rows copied so far", self.table, count)
            if len(batch) < self.options.batch_size:
                break
            if self.options.sleep:
                time.sleep(self.options.sleep)
        return count
