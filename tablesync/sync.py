"""Batch orchestration: from a resolved table list to a per-table sync batch.

``Sync`` is the primary entry point::

    from tablesync import EffectiveOptions, Sync

    options = EffectiveOptions.from_mapping({
        "from": "postgres://localhost/app_production",
        "to": "postgres://localhost/app_development",
        "jobs": 4,
    })
    with Sync(options) as sync:
        sync.perform(["users,orders"])

Batch lifecycle::

    Idle -> Validating -> (SchemaSync) -> Dispatching -> Collecting
         -> Succeeded | Failed

Validation errors are raised before any job starts.  Each table's failure is
captured as a failed ``JobResult``; once every dispatched job has settled, a
non-empty failure list raises :class:`~tablesync.errors.BatchError`.  With
``fail_fast`` no new job is started after the first failure, but jobs
already running are allowed to finish.  There is no retry of the batch
itself; callers re-invoke with the failed tables.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, List, Mapping, Optional, Sequence, TextIO, Type

from ._constants import DEFAULT_PORT
from .config import EffectiveOptions
from .connection import ConnectionPair, DataSource
from .envelope import ConsistencyEnvelope
from .errors import BatchError, ConfigurationError, PreconditionError
from .plan import plan
from .progress import ProgressReporter
from .resolver import TableDescriptor, TableResolver
from .runner import JobResult, SyncJob, execute, failed_result, run_isolated
from .schema_sync import SchemaSync
from .table_sync import TableSync

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    """Aggregate outcome of a batch.

    ``results`` and ``failed`` are in completion order, not submission order.
    """

    results: List[JobResult] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def ok(self) -> bool:
        return not self.failed


class Sync:
    """Coordinates one batch of table syncs between a source and a destination.

    Args:
        options:     Effective options for the batch.
        config:      Parsed config file (used for group definitions).
        source:      Source data source; built from ``options.from_url``
                     when omitted.
        destination: Destination data source; built from ``options.to_url``
                     when omitted.
        stream:      Output for interactive progress lines (default stderr).
    """

    def __init__(
        self,
        options: EffectiveOptions,
        *,
        config: Optional[Mapping[str, Any]] = None,
        source: Optional[DataSource] = None,
        destination: Optional[DataSource] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.options = options
        self.config = config or {}
        self.source = source if source is not None else DataSource(options.from_url)
        self.destination = (
            destination if destination is not None else DataSource(options.to_url)
        )
        self.stream = stream
        self._first_schema: Optional[str] = None

    # -- front end ----------------------------------------------------------

    def perform(self, args: Sequence[str] = ()) -> Optional[BatchSummary]:
        """Check preconditions, resolve tables from *args* and sync them.

        Returns ``None`` in ``list_only`` mode.
        """
        start = time.monotonic()
        o = self.options

        if len(args) > 2:
            raise ConfigurationError("Usage:\n    tablesync [options] [tables] [sql]")
        if not self.source.exists():
            raise PreconditionError("No source")
        if not self.destination.exists():
            raise PreconditionError("No destination")
        if not (o.to_safe or self.destination.is_local()):
            raise PreconditionError(
                "Danger! Add `to_safe: true` to `.pgsync.yml` if the destination "
                "is not localhost or 127.0.0.1"
            )

        self._describe("From", self.source)
        self._describe("To", self.destination)

        tables = TableResolver(args, o, self.source, self.config).tables()

        if o.list_only:
            self.confirm_tables_exist(self.source, tables, "source")
            self.confirm_tables_exist(self.destination, tables, "destination")
            if args and args[0] == "groups":
                items = list((self.config.get("groups") or {}).keys())
            else:
                items = [t.table for t in tables]
            for item in items:
                logger.info("%s", item)
            return None

        whole_schema = o.all_schemas and not (
            o.tables or o.groups or args or o.exclude
        )
        summary = self.run(tables, whole_schema=whole_schema)
        logger.info("Completed in %.1fs", time.monotonic() - start)
        return summary

    # -- core ---------------------------------------------------------------

    def run(
        self, tables: Sequence[TableDescriptor], *, whole_schema: bool = False,
    ) -> BatchSummary:
        """Sync *tables* and return the batch summary.

        Raises :class:`BatchError` when any table failed.
        """
        start = time.monotonic()
        o = self.options

        o.validate()
        self.confirm_tables_exist(self.source, tables, "source")

        if o.schema_first or o.schema_only:
            logger.info("* Dumping schema")
            SchemaSync(
                self.source, self.destination, None if whole_schema else tables,
            ).perform()
            if o.schema_only:
                return BatchSummary(elapsed=time.monotonic() - start)

        self.confirm_tables_exist(self.destination, tables, "destination")

        jobs = self.build_jobs(tables)

        envelope = ConsistencyEnvelope(self.source, self.destination)
        summary = envelope.run(
            o.requires_consistency, lambda: self._collect(jobs, start),
        )
        if summary.failed:
            raise BatchError(self._display_names(summary.failed), summary)
        return summary

    def build_jobs(self, tables: Sequence[TableDescriptor]) -> List[SyncJob]:
        """One job per table; tables without shared columns are dropped."""
        jobs: List[SyncJob] = []
        for table in tables:
            opts = self.options.merge(table.opts)
            ts = TableSync(self.source, self.destination, table.table, opts)
            name = self._display_name(table.table)
            for note in ts.notes():
                logger.warning("%s: %s", name, note)
            if not ts.shared_fields():
                logger.warning("%s: No shared columns, skipping", name)
                continue
            jobs.append(SyncJob(table, opts))
        return jobs

    def _collect(self, jobs: List[SyncJob], start: float) -> BatchSummary:
        concurrency = plan(self.options)
        logger.debug("Dispatch plan: %s", concurrency)
        if concurrency.isolated:
            worker = run_isolated
        else:
            worker = functools.partial(
                execute, connections=ConnectionPair(self.source, self.destination),
            )

        progress = ProgressReporter(
            self.stream,
            line_mode=self.options.in_batches,
            first_schema=self.first_schema,
        )
        cancel = threading.Event()
        summary = BatchSummary()

        for job, result in concurrency.strategy().dispatch(
            jobs, worker, cancel, on_start=progress.start, on_error=failed_result,
        ):
            progress.finish(job, result)
            summary.results.append(result)
            if not result.ok:
                summary.failed.append(job.name)
                if self.options.fail_fast and not cancel.is_set():
                    logger.warning("Not starting remaining tables (--fail-fast)")
                    cancel.set()

        summary.elapsed = time.monotonic() - start
        if summary.failed and self.options.fail_fast:
            # raised inside the envelope: deferred writes roll back
            raise BatchError(self._display_names(summary.failed), summary)
        return summary

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def confirm_tables_exist(
        data_source: DataSource, tables: Sequence[TableDescriptor], description: str,
    ) -> None:
        for t in tables:
            if not data_source.table_exists(t.table):
                raise PreconditionError(
                    f"Table does not exist in {description}: {t.table}"
                )

    @property
    def first_schema(self) -> Optional[str]:
        if self._first_schema is None:
            path = [s for s in self.source.search_path() if s != "pg_catalog"]
            self._first_schema = path[0] if path else None
        return self._first_schema

    def _display_name(self, table: str) -> str:
        prefix = f"{self.first_schema}." if self.first_schema else None
        if prefix and table.startswith(prefix):
            return table[len(prefix):]
        return table

    def _display_names(self, tables: Sequence[str]) -> List[str]:
        return [self._display_name(t) for t in tables]

    @staticmethod
    def _describe(prefix: str, ds: DataSource) -> None:
        if ds.host:
            logger.info("%s: %s on %s:%s", prefix, ds.dbname, ds.host, ds.port or DEFAULT_PORT)
        else:
            logger.info("%s: %s", prefix, ds.dbname)

    # -- context manager / lifecycle ----------------------------------------

    def close(self) -> None:
        self.source.close()
        self.destination.close()

    def __enter__(self) -> "Sync":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Sync(source={self.source!r}, destination={self.destination!r}, "
            f"jobs={self.options.jobs})"
        )
