"""Tests for the request/event channel."""

import queue
import pytest
from unittest.mock import Mock, call, patch

from dbdesk.core.channel import RequestChannel
from dbdesk.core.exceptions import (
    CreateError, GenerationError, ProcessError, RestoreError
)
from dbdesk.core.models import DbListSnapshot, QueryResult


def drain(channel):
    events = []
    while True:
        try:
            events.append(channel.events.get_nowait())
        except queue.Empty:
            return events


def event_names(events):
    return [name for name, _ in events]


@pytest.fixture
def snapshot():
    return DbListSnapshot(
        databases=[{"name": "postgres", "size": "8 MB"}, {"name": "test_db", "size": "9 MB"}],
        current_database="test_db",
    )


@pytest.fixture
def channel(mock_db_connection, mock_runner, manager_config, snapshot):
    channel = RequestChannel(mock_db_connection, manager_config, runner=mock_runner)
    channel.analyzer = Mock()
    channel.analyzer.list_databases_and_tables.return_value = snapshot
    yield channel
    channel.close()


class TestPlumbing:
    """Test dispatch and event bracketing."""

    def test_unknown_request(self, channel):
        with pytest.raises(ValueError, match="Unknown request"):
            channel.handle("format-disk")

    def test_return_db_list(self, channel, snapshot):
        result = channel.handle("return-db-list")

        assert result is snapshot
        assert drain(channel) == [("db-lists", snapshot)]

    def test_create_db(self, channel, mock_db_connection):
        result = channel.handle("create-db", {"name": "shop"})

        assert result is None
        mock_db_connection.execute_admin.assert_called_once_with('CREATE DATABASE "shop"')
        assert event_names(drain(channel)) == ["async-started", "db-lists", "async-complete"]

    def test_failure_is_bracketed_and_reported(self, channel, mock_db_connection):
        mock_db_connection.execute_admin.side_effect = CreateError("already exists")

        with pytest.raises(CreateError):
            channel.handle("create-db", {"name": "shop"})

        events = drain(channel)
        assert event_names(events) == ["async-started", "async-complete", "feedback"]
        assert events[-1][1] == {"type": "error", "message": "already exists"}

    def test_submit_runs_on_worker_pool(self, channel, snapshot):
        future = channel.submit("return-db-list")
        assert future.result(timeout=5) is snapshot

    def test_select_db(self, channel, mock_db_connection):
        channel.handle("select-db", {"db_name": "shop"})

        mock_db_connection.connect_to_db.assert_called_once_with("shop")
        assert event_names(drain(channel)) == ["async-started", "db-lists", "async-complete"]

    def test_drop_db(self, channel, mock_db_connection):
        channel.handle("drop-db", {"db_name": "test_db", "is_active_connection": True})

        mock_db_connection.connect_to_db.assert_called_once_with("postgres")
        mock_db_connection.execute_admin.assert_called_once_with('DROP DATABASE "test_db"')

    def test_duplicate_db_restore_failure(self, channel, mock_db_connection, mock_runner):
        mock_runner.run.side_effect = [None, ProcessError(1, "boom", ["psql"])]

        with pytest.raises(RestoreError):
            channel.handle("duplicate-db", {"new_name": "copy", "source_db": "test_db",
                                            "with_data": False})

        assert mock_db_connection.execute_admin.call_args_list == [
            call('CREATE DATABASE "copy"'), call('DROP DATABASE "copy"')
        ]
        assert event_names(drain(channel))[-2:] == ["async-complete", "feedback"]

    def test_import_db(self, channel, mock_runner):
        channel.handle("import-db", {"new_db_name": "restored", "file_path": "/tmp/dump.tar"})

        assert mock_runner.run.call_args.args[0][0] == "pg_restore"


class TestRunQuery:
    """Test run-query."""

    def test_run_query_refreshes_list(self, channel):
        result = QueryResult(target_db="test_db", sql_string="SELECT 1", returned_rows=[])
        with patch.object(channel.query_engine, "execute", return_value=result) as execute:
            returned = channel.handle("run-query", {"target_db": "test_db",
                                                    "sql_string": "SELECT 1",
                                                    "selected_db": "test_db"})

        assert returned is result
        execute.assert_called_once_with("test_db", "SELECT 1", "test_db")
        assert event_names(drain(channel)) == ["async-started", "db-lists", "async-complete"]

    def test_refresh_failure_is_a_warning(self, channel):
        result = QueryResult(target_db="test_db", sql_string="DROP TABLE x")
        channel.analyzer.list_databases_and_tables.side_effect = ConnectionError("gone")
        with patch.object(channel.query_engine, "execute", return_value=result):
            returned = channel.handle("run-query", {"target_db": "test_db",
                                                    "sql_string": "DROP TABLE x"})

        assert returned is result
        events = drain(channel)
        assert ("feedback", {"type": "warning", "message": "Could not refresh database list: gone"}) in events


class TestGenerateDummyData:
    """Test generate-dummy-data."""

    def test_generates_in_dependency_order(self, channel, mock_db_connection, sample_layout,
                                           manager_config):
        channel.analyzer.introspect = Mock(return_value=sample_layout)
        mock_db_connection.execute_query.return_value = [(1,)]

        paths = channel.handle("generate-dummy-data", {
            "schema_name": "test_db",
            "row_count_by_table": {"orders": 3, "users": 2, "categories": 0},
        })

        assert [p.name for p in paths] == ["users.csv", "orders.csv"]
        for path in paths:
            assert path.exists()
        assert paths[1].read_text().splitlines()[0] == "user_id,quantity,ordered_on"

        inserted = [c.args[0] for c in mock_db_connection.execute_script.call_args_list]
        assert inserted[0].startswith('INSERT INTO "users"')
        assert inserted[1].startswith('INSERT INTO "orders"')

        events = drain(channel)
        assert event_names(events) == [
            "async-started", "csv-exported", "csv-exported", "db-lists", "async-complete"
        ]
        assert events[1][1]["table"] == "users"
        assert events[2][1]["rows"] == 3
        mock_db_connection.connect_to_db.assert_not_called()

    def test_switches_to_schema_and_back(self, channel, mock_db_connection, sample_layout):
        channel.analyzer.introspect = Mock(return_value=sample_layout)

        channel.handle("generate-dummy-data", {"schema_name": "shop",
                                               "row_count_by_table": {"users": 1}})

        assert mock_db_connection.connect_to_db.call_args_list == [call("shop"), call("test_db")]

    def test_skip_insert(self, channel, mock_db_connection, sample_layout):
        channel.config.insert_generated = False
        channel.analyzer.introspect = Mock(return_value=sample_layout)

        channel.handle("generate-dummy-data", {"schema_name": "test_db",
                                               "row_count_by_table": {"users": 4}})

        mock_db_connection.execute_script.assert_not_called()

    def test_unknown_table(self, channel, sample_layout):
        channel.analyzer.introspect = Mock(return_value=sample_layout)

        with pytest.raises(GenerationError, match="ghosts"):
            channel.handle("generate-dummy-data", {"schema_name": "test_db",
                                                   "row_count_by_table": {"ghosts": 1}})

    def test_negative_row_count(self, channel):
        with pytest.raises(ValueError, match=">= 0"):
            channel.handle("generate-dummy-data", {"schema_name": "test_db",
                                                   "row_count_by_table": {"users": -1}})

        events = drain(channel)
        assert event_names(events) == ["async-started", "async-complete", "feedback"]
        assert events[-1][1]["type"] == "error"
