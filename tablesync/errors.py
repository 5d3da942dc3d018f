"""Exception hierarchy for batch table sync.

Only :class:`JobError` is recovered locally (one table's failure becomes a
failed :class:`~tablesync.runner.JobResult`); everything else propagates to
the caller and aborts the batch.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class SyncError(Exception):
    """Base class for every error raised by tablesync."""


class ConfigurationError(SyncError):
    """Invalid option combination, malformed arguments or bad config file."""


class PreconditionError(SyncError):
    """Missing source/destination or a table absent from either side."""


class JobError(SyncError):
    """Failure inside a single table sync."""


class ConsistencyError(SyncError):
    """Transaction failure discovered when committing the consistency envelope."""


class BatchError(SyncError):
    """Terminal error when one or more tables failed to sync."""

    def __init__(self, failed: Sequence[str], summary: Optional[Any] = None) -> None:
        self.failed: List[str] = list(failed)
        self.summary = summary
        n = len(self.failed)
        super().__init__(
            f"Sync failed for {n} table{'' if n == 1 else 's'}: "
            f"{', '.join(self.failed)}"
        )
