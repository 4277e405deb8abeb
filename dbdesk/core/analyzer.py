"""Database schema analysis and introspection utilities."""

import logging
from typing import List, Dict, Optional, Set, Tuple
from sqlalchemy import inspect
from sqlalchemy.engine import Inspector
from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseConnection
from .exceptions import IntrospectionError
from .models import (
    SchemaLayout, TableLayout, ColumnDescriptor, ConstraintRole,
    DbListSnapshot, KeyMap, TableKeys
)


logger = logging.getLogger(__name__)


COLUMNS_QUERY = """
    SELECT column_name, data_type, character_maximum_length, is_nullable
    FROM information_schema.columns
    WHERE table_schema = :schema AND table_name = :table
    ORDER BY ordinal_position
"""

DATABASES_QUERY = """
    SELECT datname, pg_size_pretty(pg_database_size(datname))
    FROM pg_database
    WHERE datistemplate = false
    ORDER BY datname
"""


class SchemaAnalyzer:
    """Reads the catalog of the active database into a SchemaLayout."""

    def __init__(self, db_connection: DatabaseConnection, schema: str = "public"):
        """Initialize with database connection."""
        self.db_connection = db_connection
        self.schema = schema
        self.inspector: Optional[Inspector] = None

    def introspect(self) -> SchemaLayout:
        """Produce a fresh layout of every table in the active database."""
        database_name = self.db_connection.current_database
        logger.info(f"Introspecting schema of database: {database_name}")

        try:
            self.inspector = inspect(self.db_connection.engine)
            table_names = self._get_table_names()
            tables = tuple(self._analyze_table(name) for name in table_names)
        except SQLAlchemyError as e:
            logger.error(f"Schema introspection failed for {database_name}: {e}")
            raise IntrospectionError(f"Could not read schema of {database_name}: {e}") from e

        logger.info(f"Schema introspection complete. Found {len(tables)} tables.")
        return SchemaLayout(database_name=database_name, tables=tables)

    def _get_table_names(self) -> List[str]:
        """List tables, falling back to pg_tables when the inspector finds none."""
        table_names = self.inspector.get_table_names(schema=self.schema)
        logger.debug(f"Inspector found tables: {table_names}")

        if not table_names:
            result = self.db_connection.execute_query(
                "SELECT tablename FROM pg_tables WHERE schemaname = :schema ORDER BY tablename",
                {"schema": self.schema},
            )
            table_names = [row[0] for row in result] if result else []
            logger.debug(f"Direct SQL found tables: {table_names}")

        return sorted(table_names)

    def _analyze_table(self, table_name: str) -> TableLayout:
        """Analyze a single table."""
        primary_keys = self._get_primary_key_columns(table_name)
        foreign_keys = self._get_foreign_key_columns(table_name)

        columns = []
        rows = self.db_connection.execute_query(
            COLUMNS_QUERY, {"schema": self.schema, "table": table_name}
        )
        for column_name, data_type, max_length, is_nullable in rows:
            role = ConstraintRole.NONE
            foreign_table = foreign_column = None
            if column_name in foreign_keys:
                role = ConstraintRole.FOREIGN_KEY
                foreign_table, foreign_column = foreign_keys[column_name]
            elif column_name in primary_keys:
                role = ConstraintRole.PRIMARY_KEY

            columns.append(ColumnDescriptor(
                name=column_name,
                data_type=data_type,
                max_length=max_length,
                is_nullable=str(is_nullable).upper() == "YES",
                constraint_role=role,
                foreign_table=foreign_table,
                foreign_column=foreign_column,
            ))

        return TableLayout(name=table_name, columns=tuple(columns))

    def _get_primary_key_columns(self, table_name: str) -> Set[str]:
        pk = self.inspector.get_pk_constraint(table_name, schema=self.schema)
        if pk and pk.get("constrained_columns"):
            if len(pk["constrained_columns"]) > 1:
                logger.warning(f"Composite primary key on {table_name} is treated column by column")
            return set(pk["constrained_columns"])
        return set()

    def _get_foreign_key_columns(self, table_name: str) -> Dict[str, Tuple[str, str]]:
        foreign_keys = {}
        for fk in self.inspector.get_foreign_keys(table_name, schema=self.schema):
            for column, referred in zip(fk["constrained_columns"], fk["referred_columns"]):
                foreign_keys[column] = (fk["referred_table"], referred)
        return foreign_keys

    def list_databases_and_tables(self) -> DbListSnapshot:
        """Snapshot of every database on the server and the active database's tables."""
        try:
            rows = self.db_connection.execute_query(DATABASES_QUERY)
        except SQLAlchemyError as e:
            raise IntrospectionError(f"Could not list databases: {e}") from e

        databases = [{"name": name, "size": size} for name, size in rows]
        layout = self.introspect()
        return DbListSnapshot(
            databases=databases,
            current_database=layout.database_name,
            tables=list(layout.tables),
        )


def build_key_map(layout: SchemaLayout) -> KeyMap:
    """Primary and foreign key columns per table."""
    key_map: KeyMap = {}
    for table in layout.tables:
        keys = TableKeys()
        for column in table.columns:
            if column.is_primary_key:
                keys.primary_key_columns.add(column.name)
            elif column.is_foreign_key:
                keys.foreign_key_columns[column.name] = (column.foreign_table, column.foreign_column)
        key_map[table.name] = keys
    return key_map


def dependency_order(key_map: KeyMap, table_names: List[str]) -> List[str]:
    """Sort tables so every referenced table comes before the tables pointing at it."""
    sorted_tables = []
    remaining_tables = list(table_names)

    while remaining_tables:
        # Find tables with no unresolved dependencies
        ready_tables = []
        for table in remaining_tables:
            keys = key_map.get(table, TableKeys())
            unresolved_deps = [
                dep for dep in keys.referenced_tables
                if dep in remaining_tables and dep != table
            ]
            if not unresolved_deps:
                ready_tables.append(table)

        if not ready_tables:
            logger.warning(f"Circular dependency detected among {remaining_tables}, "
                           f"proceeding in request order")
            ready_tables = list(remaining_tables)

        for table in ready_tables:
            sorted_tables.append(table)
            remaining_tables.remove(table)

    return sorted_tables
