"""tablesync -- concurrent per-table data sync between two PostgreSQL databases."""

from .config import EffectiveOptions, load_config
from .connection import ConnectionPair, DataSource
from .errors import (
    BatchError,
    ConfigurationError,
    ConsistencyError,
    JobError,
    PreconditionError,
    SyncError,
)
from .resolver import TableDescriptor, TableResolver
from .runner import JobResult, SyncJob
from .sync import BatchSummary, Sync

__all__ = [
    "Sync",
    "BatchSummary",
    "EffectiveOptions",
    "load_config",
    "DataSource",
    "ConnectionPair",
    "TableDescriptor",
    "TableResolver",
    "SyncJob",
    "JobResult",
    "SyncError",
    "ConfigurationError",
    "PreconditionError",
    "JobError",
    "ConsistencyError",
    "BatchError",
]
