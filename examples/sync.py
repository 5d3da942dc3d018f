#!/usr/bin/env python3
"""Sync tables using configuration from .pgsync.yml.

Usage:
    python examples/sync.py [tables] [sql]
"""

import logging
import sys

from tablesync import BatchError, EffectiveOptions, Sync, load_config
from tablesync.config import find_config_file

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

if __name__ == "__main__":
    config = load_config(find_config_file())
    options = EffectiveOptions.resolve({"jobs": 4}, config)
    with Sync(options, config=config) as sync:
        print(sync)
        try:
            summary = sync.perform(sys.argv[1:])
        except BatchError as exc:
            summary = exc.summary
            print(exc)
        for r in summary.results if summary else ():
            print(f"  {r.table}: {r.status} ({r.rows or 0} rows)")
