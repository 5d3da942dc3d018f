"""Tests for tablesync.__main__ -- CLI argument parsing and error paths."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pytest

from tablesync.__main__ import build_parser, main
from tablesync.errors import BatchError


@pytest.fixture()
def config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = tmp_path / ".pgsync.yml"
    cfg.write_text(
        "from: postgres://localhost/app_production\n"
        "to: postgres://localhost/app_development\n"
        "exclude: [schema_migrations]\n"
        "groups:\n  core: [users, orders]\n"
    )
    return cfg


def _mock_sync(MockSync):
    sync = MagicMock()
    MockSync.return_value.__enter__.return_value = sync
    return sync


class TestParser:
    def test_defaults_are_none(self):
        ns = vars(build_parser().parse_args([]))
        assert ns["jobs"] is None
        assert ns["from"] is None
        assert ns["defer_constraints"] is False

    def test_flags(self):
        ns = build_parser().parse_args(
            ["users", "WHERE id < 5", "-j", "8", "--defer-constraints", "--fail-fast"]
        )
        assert ns.args == ["users", "WHERE id < 5"]
        assert ns.jobs == 8
        assert ns.defer_constraints
        assert ns.fail_fast


class TestCli:
    def test_nonexistent_config_exits(self, tmp_path):
        with patch.object(
            sys, "argv", ["tablesync", "--config", str(tmp_path / "nope.yml")]
        ):
            with pytest.raises(SystemExit) as exc_info:
                main()
            assert exc_info.value.code == 1

    def test_invalid_yaml_exits(self, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("from: [unclosed\n")
        with patch.object(sys, "argv", ["tablesync", "--config", str(bad)]):
            with pytest.raises(SystemExit) as exc_info:
                main()
            assert exc_info.value.code == 1

    @patch("tablesync.__main__.Sync")
    def test_config_file_found_in_cwd(self, MockSync, config_file):
        sync = _mock_sync(MockSync)

        with patch.object(sys, "argv", ["tablesync", "users"]):
            main()

        options = MockSync.call_args.args[0]
        assert options.from_url == "postgres://localhost/app_production"
        assert options.exclude == ("schema_migrations",)
        assert MockSync.call_args.kwargs["config"]["groups"] == {"core": ["users", "orders"]}
        sync.perform.assert_called_once_with(["users"])

    @patch("tablesync.__main__.Sync")
    def test_cli_overrides_config(self, MockSync, config_file):
        _mock_sync(MockSync)

        with patch.object(
            sys, "argv", ["tablesync", "--from", "other_db", "--jobs", "3"]
        ):
            main()

        options = MockSync.call_args.args[0]
        assert options.from_url == "other_db"
        assert options.jobs == 3

    @patch("tablesync.__main__.Sync")
    def test_deprecated_where(self, MockSync, config_file):
        _mock_sync(MockSync)

        with patch.object(sys, "argv", ["tablesync", "users", "--where", "id > 1"]):
            main()

        assert MockSync.call_args.args[0].sql == " WHERE id > 1"

    @patch("tablesync.__main__.Sync")
    def test_batch_failure_exits(self, MockSync, config_file, caplog):
        sync = _mock_sync(MockSync)
        sync.perform.side_effect = BatchError(["users"])

        with patch.object(sys, "argv", ["tablesync"]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1
        assert "Sync failed for 1 table: users" in caplog.text

    @patch("tablesync.__main__.Sync")
    def test_unexpected_error_exits(self, MockSync, config_file):
        sync = _mock_sync(MockSync)
        sync.perform.side_effect = RuntimeError("db error")

        with patch.object(sys, "argv", ["tablesync"]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1

    @patch("tablesync.__main__.Sync")
    def test_argv_parameter(self, MockSync, config_file):
        sync = _mock_sync(MockSync)
        main(["orders", "--schema-first"])
        assert MockSync.call_args.args[0].schema_first
        sync.perform.assert_called_once_with(["orders"])
