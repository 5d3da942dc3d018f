"""Cross-connection consistency for ``--defer-constraints``.

The whole batch runs inside one destination transaction with every
constraint deferred to commit, nested around one source transaction that
reads from a single repeatable snapshot.  The source commits first; the
destination commits last, which is when deferred constraints are checked.
Any error from the batch body rolls both back, so no partial destination
writes become visible.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from .connection import DataSource
from .errors import ConsistencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFER_CONSTRAINTS_SQL = "SET CONSTRAINTS ALL DEFERRED"
SNAPSHOT_ISOLATION = "REPEATABLE READ"


class ConsistencyEnvelope:
    def __init__(self, source: DataSource, destination: DataSource) -> None:
        self.source = source
        self.destination = destination

    def run(self, require_consistency: bool, body: Callable[[], T]) -> T:
        """Invoke *body*, inside both transactions when *require_consistency*."""
        if not require_consistency:
            return body()

        self.destination.begin()
        try:
            self.destination.execute(DEFER_CONSTRAINTS_SQL)
            self.source.begin(SNAPSHOT_ISOLATION)
            try:
                result = body()
            except BaseException:
                self.source.rollback()
                raise
            self.source.commit()
        except BaseException:
            self.destination.rollback()
            raise

        try:
            self.destination.commit()
        except Exception as exc:
            logger.debug("Destination commit failed", exc_info=True)
            self.destination.rollback()
            raise ConsistencyError(
                f"Could not commit destination transaction: {exc}"
            ) from exc
        return result
