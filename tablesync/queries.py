"""SQL helpers for PostgreSQL catalog lookups and row copying.

All database-specific query logic is isolated here so it can be tested
independently from the sync orchestration.  Statements use ``?``
placeholders (ODBC parameter style).
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple


def split_table(full_table_name: str) -> Tuple[str, str]:
    """Split ``schema.table`` into ``(schema, table)``; schema defaults to ``public``."""
    if "." in full_table_name:
        schema, table = full_table_name.split(".", 1)
        return schema, table
    return "public", full_table_name


def quote_ident(name: str) -> str:
    """Double-quote a PostgreSQL identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_table(full_table_name: str) -> str:
    schema, table = split_table(full_table_name)
    return f"{quote_ident(schema)}.{quote_ident(table)}"


# -- catalog ----------------------------------------------------------------


def search_path(cursor: Any) -> List[str]:
    """Return the effective schema search path, ``pg_catalog`` included."""
    cursor.execute("SELECT unnest(current_schemas(true))")
    return [row[0] for row in cursor.fetchall()]


def list_tables(cursor: Any) -> List[str]:
    """Return fully-qualified names of all user base tables."""
    cursor.execute(
        "SELECT table_schema || '.' || table_name "
        "FROM information_schema.tables "
        "WHERE table_type = 'BASE TABLE' "
        "AND table_schema NOT IN ('information_schema', 'pg_catalog') "
        "ORDER BY 1"
    )
    return [row[0] for row in cursor.fetchall()]


def table_exists(cursor: Any, full_table_name: str) -> bool:
    schema, table = split_table(full_table_name)
    cursor.execute(
        "SELECT 1 FROM information_schema.tables "
        "WHERE table_schema = ? AND table_name = ?",
        (schema, table),
    )
    return cursor.fetchone() is not None


def table_columns(cursor: Any, full_table_name: str) -> List[Tuple[str, str]]:
    """Return ``[(column_name, data_type), ...]`` in table-definition order."""
    schema, table = split_table(full_table_name)
    cursor.execute(
        "SELECT column_name, data_type FROM information_schema.columns "
        "WHERE table_schema = ? AND table_name = ? "
        "ORDER BY ordinal_position",
        (schema, table),
    )
    return [(row[0], row[1]) for row in cursor.fetchall()]


def primary_key_columns(cursor: Any, full_table_name: str) -> List[str]:
    """Return the primary-key column names for *full_table_name*."""
    cursor.execute(
        """
        SELECT a.attname
        FROM pg_index i
        JOIN pg_attribute a ON a.attrelid = i.indrelid AND a.attnum = ANY(i.indkey)
        WHERE i.indrelid = CAST(? AS regclass)
          AND i.indisprimary
        ORDER BY array_position(i.indkey, a.attnum)
        """,
        (quote_table(full_table_name),),
    )
    return [row[0] for row in cursor.fetchall()]


# -- data -------------------------------------------------------------------


def build_select(
    full_table_name: str, fields: Sequence[str], sql: Optional[str] = None,
) -> str:
    """Return the SELECT for the shared *fields*, with an optional filter clause."""
    cols = ", ".join(quote_ident(f) for f in fields)
    query = f"SELECT {cols} FROM {quote_table(full_table_name)}"
    if sql:
        query += f" {sql.strip()}"
    return query


def build_batch_select(
    full_table_name: str,
    fields: Sequence[str],
    key: str,
    batch_size: int,
    *,
    inclusive: bool = False,
) -> str:
    """Return a keyset-paginated SELECT; expects one ``?`` for the key bound.

    The bound is exclusive (the last key seen) unless *inclusive* is set.
    """
    cols = ", ".join(quote_ident(f) for f in fields)
    k = quote_ident(key)
    op = ">=" if inclusive else ">"
    return (
        f"SELECT {cols} FROM {quote_table(full_table_name)} "
        f"WHERE {k} {op} ? ORDER BY {k} LIMIT {int(batch_size)}"
    )


def build_insert(
    full_table_name: str,
    fields: Sequence[str],
    *,
    conflict_keys: Optional[Sequence[str]] = None,
    update: bool = False,
) -> str:
    """Return a parameterised INSERT for *fields*.

    With *conflict_keys*, rows colliding on those keys are skipped, or
    updated in place when *update* is true.
    """
    cols = ", ".join(quote_ident(f) for f in fields)
    params = ", ".join("?" for _ in fields)
    query = f"INSERT INTO {quote_table(full_table_name)} ({cols}) VALUES ({params})"
    if conflict_keys:
        target = ", ".join(quote_ident(k) for k in conflict_keys)
        non_keys = [f for f in fields if f not in conflict_keys]
        if update and non_keys:
            assignments = ", ".join(
                f"{quote_ident(f)} = EXCLUDED.{quote_ident(f)}" for f in non_keys
            )
            query += f" ON CONFLICT ({target}) DO UPDATE SET {assignments}"
        else:
            query += f" ON CONFLICT ({target}) DO NOTHING"
    return query


def build_truncate(full_table_name: str) -> str:
    return f"TRUNCATE {quote_table(full_table_name)} CASCADE"
