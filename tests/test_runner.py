"""Tests for tablesync.runner -- the per-job error boundary."""

from __future__ import annotations

import pickle
from unittest.mock import MagicMock, patch

from tablesync.config import EffectiveOptions
from tablesync.connection import ConnectionPair
from tablesync.resolver import TableDescriptor
from tablesync.runner import JobResult, SyncJob, execute, run_isolated


def _job(table="public.users", **opts):
    base = {"from": "postgres://localhost/src", "to": "postgres://localhost/dst"}
    base.update(opts)
    return SyncJob(TableDescriptor(table), EffectiveOptions.from_mapping(base))


class TestJobResult:
    def test_ok(self):
        assert JobResult("t", "success").ok
        assert not JobResult("t", "failed").ok

    def test_summary_message_uses_first_line(self):
        r = JobResult("t", "failed", message="  ERROR: boom\nDETAIL: more\n")
        assert r.summary_message == "ERROR: boom"

    def test_summary_message_none(self):
        assert JobResult("t", "success").summary_message is None


class TestSyncJob:
    def test_name(self):
        assert _job("public.orders").name == "public.orders"

    def test_picklable(self):
        job = _job(sql="WHERE id < 10")
        assert pickle.loads(pickle.dumps(job)) == job


class TestExecute:
    @patch("tablesync.runner.TableSync")
    def test_success(self, MockTS):
        MockTS.return_value.sync.return_value = 42
        pair = ConnectionPair(MagicMock(), MagicMock())
        job = _job()

        result = execute(job, pair)

        assert result.ok
        assert result.table == "public.users"
        assert result.rows == 42
        assert result.time is not None
        MockTS.assert_called_once_with(pair.source, pair.destination, "public.users", job.options)

    @patch("tablesync.runner.TableSync")
    def test_failure_is_captured(self, MockTS):
        MockTS.return_value.sync.side_effect = RuntimeError("relation does not exist\nline 2")
        result = execute(_job(), ConnectionPair(MagicMock(), MagicMock()))
        assert not result.ok
        assert result.status == "failed"
        assert result.message.startswith("relation does not exist")
        assert result.summary_message == "relation does not exist"

    @patch("tablesync.runner.TableSync")
    def test_empty_error_message_uses_type_name(self, MockTS):
        MockTS.return_value.sync.side_effect = KeyError()
        result = execute(_job(), ConnectionPair(MagicMock(), MagicMock()))
        assert result.message == "KeyError"


class TestRunIsolated:
    @patch("tablesync.runner.TableSync")
    @patch("tablesync.connection.pyodbc")
    def test_opens_and_closes_own_connections(self, mock_pyodbc, MockTS):
        conns = [MagicMock(), MagicMock()]
        mock_pyodbc.connect.side_effect = conns
        MockTS.return_value.sync.return_value = 1

        result = run_isolated(_job())

        assert result.ok
        assert mock_pyodbc.connect.call_count == 2
        for conn in conns:
            conn.close.assert_called_once_with()

    @patch("tablesync.runner.TableSync")
    @patch("tablesync.connection.pyodbc")
    def test_connection_failure_is_a_failed_result(self, mock_pyodbc, MockTS):
        mock_pyodbc.connect.side_effect = RuntimeError("could not connect to server")

        result = run_isolated(_job())

        assert not result.ok
        assert "could not connect" in result.message
        MockTS.assert_not_called()

    @patch("tablesync.runner.TableSync")
    @patch("tablesync.connection.pyodbc")
    def test_closes_connections_after_job_failure(self, mock_pyodbc, MockTS):
        conns = [MagicMock(), MagicMock()]
        mock_pyodbc.connect.side_effect = conns
        MockTS.return_value.sync.side_effect = RuntimeError("boom")

        result = run_isolated(_job())

        assert not result.ok
        for conn in conns:
            conn.close.assert_called_once_with()
