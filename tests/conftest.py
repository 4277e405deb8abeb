"""Test configuration and fixtures for DBDesk tests."""

import pytest
import threading
from unittest.mock import Mock

from dbdesk.core.database import DatabaseConnection, DatabaseConfig
from dbdesk.core.models import (
    SchemaLayout, TableLayout, ColumnDescriptor, ConstraintRole, ManagerConfig
)
from dbdesk.core.process import ProcessRunner, ProcessOutput


@pytest.fixture
def mock_db_config():
    """Create a mock database configuration for testing."""
    return DatabaseConfig(
        host="localhost",
        port=5432,
        database="test_db",
        username="test_user",
        password="test_pass",
    )


@pytest.fixture
def mock_db_connection(mock_db_config):
    """Create a mock database connection for testing."""
    connection = Mock(spec=DatabaseConnection)
    connection.config = mock_db_config
    connection.current_database = "test_db"
    connection.lock = threading.RLock()
    connection.test_connection.return_value = True
    connection.quote_identifier.side_effect = lambda name: f'"{name}"'
    connection.tool_arguments.return_value = ["-h", "localhost", "-p", "5432", "-U", "test_user"]
    connection.tool_environment.return_value = {"PGPASSWORD": "test_pass"}
    return connection


@pytest.fixture
def mock_runner():
    """Process runner that succeeds unless told otherwise."""
    runner = Mock(spec=ProcessRunner)
    runner.run.return_value = ProcessOutput(stdout="", stderr="")
    return runner


@pytest.fixture
def manager_config(tmp_path):
    """Manager settings pointing dumps and exports at a temp directory."""
    return ManagerConfig(
        dump_dir=str(tmp_path / "dumps"),
        export_dir=str(tmp_path / "exports"),
        seed=42,
    )


@pytest.fixture
def users_columns():
    """users(id PK, name varchar(10), age integer)"""
    return (
        ColumnDescriptor(name="id", data_type="integer", is_nullable=False,
                         constraint_role=ConstraintRole.PRIMARY_KEY),
        ColumnDescriptor(name="name", data_type="character varying", max_length=10),
        ColumnDescriptor(name="age", data_type="integer"),
    )


@pytest.fixture
def sample_layout(users_columns):
    """Create a sample schema layout for testing."""
    categories = TableLayout(
        name="categories",
        columns=(
            ColumnDescriptor(name="_id", data_type="integer", is_nullable=False,
                             constraint_role=ConstraintRole.PRIMARY_KEY),
            ColumnDescriptor(name="label", data_type="character varying", max_length=2),
            ColumnDescriptor(name="active", data_type="boolean"),
        ),
    )

    orders = TableLayout(
        name="orders",
        columns=(
            ColumnDescriptor(name="id", data_type="bigint", is_nullable=False,
                             constraint_role=ConstraintRole.PRIMARY_KEY),
            ColumnDescriptor(name="user_id", data_type="integer", is_nullable=False,
                             constraint_role=ConstraintRole.FOREIGN_KEY,
                             foreign_table="users", foreign_column="id"),
            ColumnDescriptor(name="quantity", data_type="smallint"),
            ColumnDescriptor(name="ordered_on", data_type="date"),
        ),
    )

    order_items = TableLayout(
        name="order_items",
        columns=(
            ColumnDescriptor(name="id", data_type="integer", is_nullable=False,
                             constraint_role=ConstraintRole.PRIMARY_KEY),
            ColumnDescriptor(name="order_id", data_type="bigint", is_nullable=False,
                             constraint_role=ConstraintRole.FOREIGN_KEY,
                             foreign_table="orders", foreign_column="id"),
            ColumnDescriptor(name="category_id", data_type="integer",
                             constraint_role=ConstraintRole.FOREIGN_KEY,
                             foreign_table="categories", foreign_column="_id"),
        ),
    )

    return SchemaLayout(
        database_name="test_db",
        tables=(categories, order_items, orders, TableLayout(name="users", columns=users_columns)),
    )
