"""Tests for tablesync.queries -- SQL helpers with fake cursors."""

from __future__ import annotations

from tablesync import queries


class TestIdentifiers:
    def test_split_qualified(self):
        assert queries.split_table("sales.orders") == ("sales", "orders")

    def test_split_defaults_to_public(self):
        assert queries.split_table("orders") == ("public", "orders")

    def test_quote_ident_escapes_quotes(self):
        assert queries.quote_ident('we"ird') == '"we""ird"'

    def test_quote_table(self):
        assert queries.quote_table("public.Users") == '"public"."Users"'


class TestCatalog:
    def test_search_path(self, fake_cursor):
        cur = fake_cursor(results=[[("pg_catalog",), ("public",)]])
        assert queries.search_path(cur) == ["pg_catalog", "public"]
        assert "current_schemas(true)" in cur.executed[0][0]

    def test_list_tables(self, fake_cursor):
        cur = fake_cursor(results=[[("public.orders",), ("public.users",)]])
        assert queries.list_tables(cur) == ["public.orders", "public.users"]
        assert "BASE TABLE" in cur.executed[0][0]

    def test_table_exists(self, fake_cursor):
        cur = fake_cursor(results=[[(1,)]])
        assert queries.table_exists(cur, "sales.orders")
        assert cur.executed[0][1] == ("sales", "orders")

    def test_table_missing(self, fake_cursor):
        cur = fake_cursor(results=[[]])
        assert not queries.table_exists(cur, "public.nope")

    def test_table_columns(self, fake_cursor):
        cur = fake_cursor(results=[[("id", "integer"), ("email", "text")]])
        assert queries.table_columns(cur, "users") == [("id", "integer"), ("email", "text")]
        assert cur.executed[0][1] == ("public", "users")

    def test_primary_key_columns(self, fake_cursor):
        cur = fake_cursor(results=[[("tenant_id",), ("id",)]])
        assert queries.primary_key_columns(cur, "public.items") == ["tenant_id", "id"]
        assert cur.executed[0][1] == ('"public"."items"',)


class TestBuildSelect:
    def test_without_filter(self):
        sql = queries.build_select("public.users", ["id", "email"])
        assert sql == 'SELECT "id", "email" FROM "public"."users"'

    def test_with_filter(self):
        sql = queries.build_select("public.users", ["id"], "  WHERE id > 5 ")
        assert sql.endswith('"public"."users" WHERE id > 5')

    def test_batch_select_exclusive(self):
        sql = queries.build_batch_select("public.users", ["id"], "id", 500)
        assert 'WHERE "id" > ? ORDER BY "id" LIMIT 500' in sql

    def test_batch_select_inclusive(self):
        sql = queries.build_batch_select("public.users", ["id"], "id", 500, inclusive=True)
        assert 'WHERE "id" >= ?' in sql


class TestBuildInsert:
    def test_plain(self):
        sql = queries.build_insert("public.users", ["id", "email"])
        assert sql == 'INSERT INTO "public"."users" ("id", "email") VALUES (?, ?)'

    def test_preserve_skips_conflicts(self):
        sql = queries.build_insert("public.users", ["id", "email"], conflict_keys=["id"])
        assert sql.endswith('ON CONFLICT ("id") DO NOTHING')

    def test_overwrite_updates_non_key_columns(self):
        sql = queries.build_insert(
            "public.users", ["id", "email"], conflict_keys=["id"], update=True,
        )
        assert sql.endswith('ON CONFLICT ("id") DO UPDATE SET "email" = EXCLUDED."email"')

    def test_overwrite_with_only_key_columns(self):
        sql = queries.build_insert("public.tags", ["id"], conflict_keys=["id"], update=True)
        assert sql.endswith("DO NOTHING")


def test_build_truncate():
    assert queries.build_truncate("public.users") == 'TRUNCATE "public"."users" CASCADE'
