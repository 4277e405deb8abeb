"""Tests for CSV export."""

import io
import pytest
from unittest.mock import patch

from dbdesk.core.exceptions import ExportError
from dbdesk.core.exporter import CSVExporter, default_export_path
from dbdesk.core.models import GeneratedTable


@pytest.fixture
def generated():
    return GeneratedTable(
        table_name="users",
        column_names=["name", "age"],
        rows=[["'ab1'", 42], ["'it''s'", -7]],
    )


class TestCSVExporter:
    """Test CSVExporter class."""

    def test_export_to_stream(self, generated):
        stream = io.StringIO()

        CSVExporter().export(generated, stream)

        lines = stream.getvalue().splitlines()
        assert lines == ["name,age", "'ab1',42", "'it''s',-7"]

    def test_fields_with_delimiter_are_quoted(self):
        table = GeneratedTable(table_name="t", column_names=["a"], rows=[["'x,y'"]])
        stream = io.StringIO()

        CSVExporter().export(table, stream)

        assert stream.getvalue().splitlines()[1] == "\"'x,y'\""

    def test_header_only_when_no_rows(self):
        table = GeneratedTable(table_name="t", column_names=["a", "b"], rows=[])
        stream = io.StringIO()

        CSVExporter().export(table, stream)

        assert stream.getvalue().splitlines() == ["a,b"]

    def test_custom_delimiter(self, generated):
        stream = io.StringIO()

        CSVExporter(delimiter=";").export(generated, stream)

        assert stream.getvalue().splitlines()[0] == "name;age"

    def test_export_to_path(self, generated, tmp_path):
        path = tmp_path / "nested" / "users.csv"

        CSVExporter().export(generated, path)

        assert path.read_text(encoding="utf-8").splitlines()[0] == "name,age"

    def test_write_failure(self, generated, tmp_path):
        with patch("builtins.open", side_effect=PermissionError("read-only")):
            with pytest.raises(ExportError, match="users.csv"):
                CSVExporter().export(generated, tmp_path / "users.csv")


def test_default_export_path(tmp_path):
    assert default_export_path(tmp_path, "orders") == tmp_path / "orders.csv"
