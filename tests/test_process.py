"""Tests for external command execution."""

import subprocess
import pytest
from unittest.mock import Mock, patch

from dbdesk.core.exceptions import ProcessError
from dbdesk.core.process import (
    ProcessRunner, full_dump_command, schema_dump_command,
    sql_restore_command, archive_restore_command
)


def completed(returncode=0, stdout="", stderr=""):
    return Mock(returncode=returncode, stdout=stdout, stderr=stderr)


class TestProcessRunner:
    """Test ProcessRunner class."""

    @patch('dbdesk.core.process.subprocess.run')
    def test_success(self, mock_run):
        mock_run.return_value = completed(stdout="done\n")

        output = ProcessRunner().run(["pg_dump", "db"])

        assert output.stdout == "done\n"
        args, kwargs = mock_run.call_args
        assert args[0] == ["pg_dump", "db"]
        assert kwargs["capture_output"] is True
        assert kwargs["env"] is None

    @patch('dbdesk.core.process.subprocess.run')
    def test_non_zero_exit_raises(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="database \"nope\" does not exist")

        with pytest.raises(ProcessError, match="does not exist") as exc_info:
            ProcessRunner().run(["pg_dump", "nope"])

        assert exc_info.value.returncode == 1
        assert exc_info.value.command == ["pg_dump", "nope"]
        # no retries
        assert mock_run.call_count == 1

    @patch('dbdesk.core.process.subprocess.run')
    def test_missing_executable(self, mock_run):
        mock_run.side_effect = FileNotFoundError("No such file or directory: 'pg_dump'")

        with pytest.raises(ProcessError) as exc_info:
            ProcessRunner().run(["pg_dump", "db"])

        assert exc_info.value.returncode == 127

    @patch('dbdesk.core.process.subprocess.run')
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="pg_dump", timeout=5)

        with pytest.raises(ProcessError, match="timed out") as exc_info:
            ProcessRunner(timeout=5).run(["pg_dump", "db"])

        assert exc_info.value.returncode is None
        assert mock_run.call_args.kwargs["timeout"] == 5

    @patch('dbdesk.core.process.subprocess.run')
    def test_bin_dir_and_environment(self, mock_run):
        mock_run.return_value = completed()

        ProcessRunner(bin_dir="/opt/pg/bin").run(["psql", "-d", "db"], env={"PGPASSWORD": "secret"})

        args, kwargs = mock_run.call_args
        assert args[0][0].replace("\\", "/") == "/opt/pg/bin/psql"
        assert kwargs["env"]["PGPASSWORD"] == "secret"


class TestCommandBuilders:
    """Test pg tool command lines."""

    def test_full_dump(self):
        assert full_dump_command("src", "/tmp/x.sql") == ["pg_dump", "-F", "p", "-f", "/tmp/x.sql", "src"]

    def test_schema_dump(self):
        command = schema_dump_command("src", "/tmp/x.sql", ["-U", "me"])
        assert command == ["pg_dump", "-U", "me", "-s", "-F", "p", "-f", "/tmp/x.sql", "src"]

    def test_sql_restore_stops_on_error(self):
        command = sql_restore_command("dst", "/tmp/x.sql")
        assert command[0] == "psql"
        assert "ON_ERROR_STOP=1" in command
        assert command[-2:] == ["-f", "/tmp/x.sql"]

    def test_archive_restore(self):
        assert archive_restore_command("dst", "/tmp/x.tar") == ["pg_restore", "-d", "dst", "/tmp/x.tar"]
