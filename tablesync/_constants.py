"""Shared constants for the tablesync package."""

CONFIG_FILENAME = ".pgsync.yml"
DEFAULT_ODBC_DRIVER = "PostgreSQL Unicode"
DEFAULT_PORT = 5432

DEFAULT_BATCH_SIZE = 10_000
DEFAULT_THREADS = 4

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})

# Keys read from the config file when not given on the command line.
CONFIG_MERGE_KEYS = ("from", "to", "to_safe", "exclude", "schemas", "jobs")

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
