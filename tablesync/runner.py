"""Run one table-sync job and capture its outcome.

:func:`execute` is the error boundary for a single table: anything the copy
raises is converted into a failed :class:`JobResult` so one table can never
abort its siblings.  :func:`run_isolated` is the entry point used inside
pool workers (threads or processes); it opens the worker's own connection
pair because connections are not shared across worker boundaries.

Both :class:`SyncJob` and :class:`JobResult` are picklable so they can cross
process boundaries.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ._constants import STATUS_FAILED, STATUS_SUCCESS
from .config import EffectiveOptions
from .connection import ConnectionPair
from .resolver import TableDescriptor
from .table_sync import TableSync

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncJob:
    """One table bound to its effective (global + per-table) options."""

    table: TableDescriptor
    options: EffectiveOptions

    @property
    def name(self) -> str:
        return self.table.table


@dataclass(frozen=True)
class JobResult:
    table: str
    status: str
    time: Optional[float] = None
    message: Optional[str] = None
    rows: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def summary_message(self) -> Optional[str]:
        """First line of the message, for display."""
        if not self.message:
            return None
        lines = self.message.strip().splitlines()
        return lines[0].strip() if lines else None


def failed_result(job: SyncJob, exc: BaseException) -> JobResult:
    return JobResult(job.name, STATUS_FAILED, message=str(exc) or type(exc).__name__)


def execute(job: SyncJob, connections: ConnectionPair) -> JobResult:
    """Sync *job* using *connections*; never raises for a failing table."""
    t0 = time.monotonic()
    try:
        rows = TableSync(
            connections.source, connections.destination, job.name, job.options,
        ).sync()
    except Exception as exc:
        logger.debug("Sync of %s failed", job.name, exc_info=True)
        return failed_result(job, exc)
    elapsed = round(time.monotonic() - t0, 1)
    return JobResult(job.name, STATUS_SUCCESS, time=elapsed, rows=rows)


def run_isolated(job: SyncJob) -> JobResult:
    """Worker entry point: sync *job* with a freshly opened connection pair."""
    with ConnectionPair.open(job.options.from_url, job.options.to_url) as pair:
        try:
            pair.source.connect()
            pair.destination.connect()
        except Exception as exc:
            logger.error("Failed to connect for %s: %s", job.name, exc)
            return failed_result(job, exc)
        return execute(job, pair)
