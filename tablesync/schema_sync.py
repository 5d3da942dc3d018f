"""Schema copy via ``pg_dump | psql``.

Runs once, before any data job, when ``--schema-first`` or
``--schema-only`` is given.
"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Sequence

from .connection import DataSource
from .errors import ConfigurationError, SyncError
from .resolver import TableDescriptor

logger = logging.getLogger(__name__)


class SchemaSync:
    def __init__(
        self,
        source: DataSource,
        destination: DataSource,
        tables: Optional[Sequence[TableDescriptor]] = None,
    ) -> None:
        self.source = source
        self.destination = destination
        self.tables = tables

    def dump_command(self) -> List[str]:
        cmd = ["pg_dump", "--schema-only", "--no-owner", "--no-acl"]
        for t in self.tables or ():
            cmd.extend(["-t", t.table])
        cmd.append(self._url(self.source))
        return cmd

    def restore_command(self) -> List[str]:
        return ["psql", "-q", "-v", "ON_ERROR_STOP=1", "-d", self._url(self.destination)]

    @staticmethod
    def _url(ds: DataSource) -> str:
        try:
            return ds.to_url()
        except ValueError as exc:
            raise ConfigurationError(f"Schema sync: {exc}") from exc

    def perform(self) -> None:
        """Dump the source schema and apply it to the destination."""
        dump_cmd = self.dump_command()
        restore_cmd = self.restore_command()
        logger.debug("Running %s | %s", dump_cmd[0], restore_cmd[0])

        dump = subprocess.Popen(
            dump_cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
        )
        restore = subprocess.run(
            restore_cmd, stdin=dump.stdout, capture_output=True, text=True,
        )
        dump.stdout.close()
        dump_err = dump.stderr.read().decode(errors="replace")
        dump.stderr.close()
        dump.wait()

        if dump.returncode != 0:
            raise SyncError(f"pg_dump failed:\n{dump_err.strip()}")
        if restore.returncode != 0:
            raise SyncError(f"psql failed:\n{restore.stderr.strip()}")
