"""CSV export of generated tables."""

import csv
import logging
from pathlib import Path
from typing import TextIO, Union

from .exceptions import ExportError
from .models import GeneratedTable


logger = logging.getLogger(__name__)


class CSVExporter:
    """Writes a header of column names followed by one line per row."""

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def export(self, table: GeneratedTable, destination: Union[str, Path, TextIO]) -> None:
        """Write ``table`` to a file path or an open text stream."""
        if hasattr(destination, "write"):
            self._write(table, destination)
            return

        path = Path(destination)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", newline="", encoding="utf-8") as f:
                self._write(table, f)
        except OSError as e:
            logger.error(f"Failed to write {table.table_name} to {path}: {e}")
            raise ExportError(f"Failed to write CSV file {path}: {e}") from e

        logger.info(f"Exported {len(table.rows)} rows of {table.table_name} to {path}")

    def _write(self, table: GeneratedTable, stream: TextIO) -> None:
        writer = csv.writer(stream, delimiter=self.delimiter, quoting=csv.QUOTE_MINIMAL)
        writer.writerow(table.column_names)
        writer.writerows(table.rows)


def default_export_path(export_dir: Union[str, Path], table_name: str) -> Path:
    """``<export_dir>/<table_name>.csv``"""
    return Path(export_dir) / f"{table_name}.csv"
