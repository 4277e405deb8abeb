"""Dummy data generation from column metadata with foreign key sampling."""

import logging
import random
import string
from typing import Any, List, Optional, Sequence
from faker import Faker
from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseConnection
from .exceptions import GenerationError, NoForeignKeyCandidateError, UnsupportedTypeError
from .models import ColumnDescriptor, ColumnType, GeneratedTable


logger = logging.getLogger(__name__)

SMALLINT_RANGE = (-32768, 32767)
INTEGER_RANGE = (-2147483648, 2147483647)
BIGINT_RANGE = (-9223372036854775808, 9223372036854775807)

# upper bound on generated varchar values
DEFAULT_VARCHAR_LENGTH = 3
ALPHANUMERIC = string.ascii_lowercase + string.digits

MIN_YEAR = 1500
MAX_YEAR = 2020
# every month has a 28th
MAX_DAY = 28


class DummyDataGenerator:
    """Builds rows of SQL literals for one table at a time.

    Primary key columns are left out, assuming the database fills them in.
    Foreign key columns get a key sampled from the referenced table, so
    referenced tables must be populated first.
    """

    def __init__(self, db_connection: Optional[DatabaseConnection] = None,
                 seed: Optional[int] = None, sample_percent: float = 50.0):
        self.db_connection = db_connection
        self.sample_percent = sample_percent
        self.random = random.Random(seed)
        self.faker = Faker()
        if seed is not None:
            self.faker.seed_instance(seed)

    def generate(self, table_name: str, columns: Sequence[ColumnDescriptor],
                 row_count: int) -> GeneratedTable:
        """Generate ``row_count`` rows for ``table_name``."""
        if row_count < 0:
            raise GenerationError(f"Row count for {table_name} must be >= 0, got {row_count}")

        data_columns = [column for column in columns if not column.is_primary_key]
        generated = GeneratedTable(
            table_name=table_name,
            column_names=[column.name for column in data_columns],
        )

        logger.info(f"Generating {row_count} rows for table: {table_name}")
        for i in range(row_count):
            row = [self._generate_value(table_name, column) for column in data_columns]
            generated.rows.append(row)

            if (i + 1) % 1000 == 0:
                logger.debug(f"Generated {i + 1}/{row_count} rows for {table_name}")

        logger.info(f"Successfully generated {len(generated.rows)} rows for {table_name}")
        return generated

    def _generate_value(self, table_name: str, column: ColumnDescriptor) -> Any:
        if column.is_foreign_key:
            return self._sample_foreign_key(table_name, column)
        return self.generate_by_type(table_name, column)

    def generate_by_type(self, table_name: str, column: ColumnDescriptor) -> Any:
        """Random SQL literal for the column's declared type."""
        column_type = ColumnType.from_declared(column.data_type)

        if column_type is ColumnType.SMALLINT:
            return self.random.randint(*SMALLINT_RANGE)
        elif column_type is ColumnType.INTEGER:
            return self.random.randint(*INTEGER_RANGE)
        elif column_type is ColumnType.BIGINT:
            return self.random.randint(*BIGINT_RANGE)
        elif column_type is ColumnType.VARCHAR:
            return quote(self._generate_varchar(column))
        elif column_type is ColumnType.DATE:
            return quote(self._generate_date())
        elif column_type is ColumnType.BOOLEAN:
            return quote(str(self.faker.pybool()).lower())

        logger.error(f"Error generating dummy data for {table_name}.{column.name}: "
                     f"unhandled data type {column.data_type}")
        raise UnsupportedTypeError(table_name, column.name, column.data_type)

    def _generate_varchar(self, column: ColumnDescriptor) -> str:
        length = DEFAULT_VARCHAR_LENGTH
        if column.max_length and column.max_length < DEFAULT_VARCHAR_LENGTH:
            length = column.max_length
        return self.faker.lexify("?" * length, letters=ALPHANUMERIC)

    def _generate_date(self) -> str:
        year = self.random.randint(MIN_YEAR, MAX_YEAR)
        month = self.random.randint(1, 12)
        day = self.random.randint(1, MAX_DAY)
        return f"{year}/{month:02d}/{day:02d}"

    def _sample_foreign_key(self, table_name: str, column: ColumnDescriptor) -> Any:
        """Draw one existing key from the referenced table."""
        if self.db_connection is None:
            raise GenerationError(
                f"Cannot resolve foreign key {table_name}.{column.name} without a database connection"
            )

        quote_id = self.db_connection.quote_identifier
        target = quote_id(column.foreign_table)
        key = quote_id(column.foreign_column)
        queries = [
            f"SELECT {key} FROM {target} TABLESAMPLE BERNOULLI({self.sample_percent}) LIMIT 1",
            # a Bernoulli sample of a small table can come back empty
            f"SELECT {key} FROM {target} ORDER BY random() LIMIT 1",
        ]

        try:
            for query in queries:
                rows = self.db_connection.execute_query(query)
                if rows:
                    return sql_literal(rows[0][0])
        except SQLAlchemyError as e:
            raise GenerationError(
                f"There was an error while retrieving a valid foreign key for "
                f"{table_name}.{column.name}: {e}"
            ) from e

        raise NoForeignKeyCandidateError(
            table_name, column.name, column.foreign_table, column.foreign_column
        )


def quote(value: str) -> str:
    """Single-quoted SQL string literal."""
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def sql_literal(value: Any) -> Any:
    """Turn a value read back from the database into a literal cell."""
    if isinstance(value, bool):
        return quote(str(value).lower())
    if isinstance(value, int):
        return value
    if value is None:
        return "NULL"
    return quote(str(value))


def row_literals(row: List[Any]) -> str:
    """Comma separated literals of one generated row."""
    return ", ".join(str(cell) for cell in row)
