"""Insertion of generated tables into the active database."""

import logging
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseConnection
from .exceptions import GenerationError
from .generator import row_literals
from .models import GeneratedTable


logger = logging.getLogger(__name__)


def build_insert_statement(generated: GeneratedTable,
                           quote_identifier: Callable[[str], str]) -> Optional[str]:
    """Single multi-row INSERT for a generated table, or None when there is nothing to insert."""
    if not generated.rows:
        return None

    columns_str = ", ".join(quote_identifier(name) for name in generated.column_names)
    values_str = ",\n  ".join(f"({row_literals(row)})" for row in generated.rows)
    table = quote_identifier(generated.table_name)

    if not generated.column_names:
        # only a primary key column: let every row take its defaults
        return ";\n".join(f"INSERT INTO {table} DEFAULT VALUES" for _ in generated.rows)
    return f"INSERT INTO {table} ({columns_str}) VALUES\n  {values_str}"


class DataInserter:
    """Writes generated rows so that dependent tables can sample their keys."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize data inserter."""
        self.db_connection = db_connection

    def insert(self, generated: GeneratedTable) -> int:
        """Insert every row of ``generated`` and return the row count."""
        statement = build_insert_statement(generated, self.db_connection.quote_identifier)
        if statement is None:
            logger.warning(f"No data to insert for table: {generated.table_name}")
            return 0

        logger.info(f"Inserting {len(generated.rows)} rows into table: {generated.table_name}")
        start_time = time.time()
        try:
            self.db_connection.execute_script(statement)
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert data into {generated.table_name}: {e}")
            raise GenerationError(
                f"Failed to insert dummy data into {generated.table_name}: {e}"
            ) from e

        logger.info(f"Successfully inserted {len(generated.rows)} rows into {generated.table_name} "
                    f"in {time.time() - start_time:.2f} seconds")
        return len(generated.rows)
