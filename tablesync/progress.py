"""Per-job progress output.

Interactive terminals get one coloured line per finished table.  When the
output is not a terminal, or with ``--in-batches``, every start and finish
event is logged as its own line instead.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional, TextIO

from .runner import JobResult, SyncJob

logger = logging.getLogger(__name__)

_GREEN = "\033[32m"
_RED = "\033[31m"
_RESET = "\033[0m"


def display_item(job: SyncJob, first_schema: Optional[str] = None) -> str:
    """Table name without the first search-path schema, plus any SQL filter."""
    name = job.name
    if first_schema and name.startswith(f"{first_schema}."):
        name = name[len(first_schema) + 1:]
    sql = job.options.sql
    return f"{name} {sql.strip()}" if sql else name


def display_result(result: JobResult) -> str:
    parts = []
    if result.time is not None:
        parts.append(f"- {result.time}s")
    if result.summary_message:
        parts.append(f"({result.summary_message})")
    return " ".join(parts)


class ProgressReporter:
    def __init__(
        self,
        stream: Optional[TextIO] = None,
        *,
        line_mode: bool = False,
        first_schema: Optional[str] = None,
    ) -> None:
        self.stream = stream or sys.stderr
        self.first_schema = first_schema
        isatty = getattr(self.stream, "isatty", None)
        self.interactive = bool(isatty and isatty()) and not line_mode
        self._lock = threading.Lock()

    def start(self, job: SyncJob) -> None:
        if not self.interactive:
            logger.info("⠋ %s", display_item(job, self.first_schema))

    def finish(self, job: SyncJob, result: JobResult) -> None:
        item = display_item(job, self.first_schema)
        message = display_result(result)
        mark = "✔" if result.ok else "✖"
        if self.interactive:
            color = _GREEN if result.ok else _RED
            with self._lock:
                self.stream.write(f"{color}{mark}{_RESET} {item} {message}".rstrip() + "\n")
                self.stream.flush()
        elif result.ok:
            logger.info("%s %s %s", mark, item, message)
        else:
            logger.error("%s %s %s", mark, item, message)
        if result.message and not result.ok:
            logger.debug("%s failed:\n%s", job.name, result.message)
