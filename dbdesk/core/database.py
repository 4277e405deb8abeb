"""Database connection and management utilities."""

import logging
import threading
from typing import Dict, Any, List, Optional
from sqlalchemy import create_engine, Engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Configuration model for database connections."""

    driver: str = Field(default="postgresql", description="Database driver")
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="postgres", description="Database name")
    username: str = Field(default="postgres", description="Database username")
    password: str = Field(default="", description="Database password")
    ssl_mode: Optional[str] = Field(default=None, description="SSL mode")

    @field_validator("driver")
    @classmethod
    def validate_driver(cls, v):
        supported_drivers = ["postgresql"]
        if v not in supported_drivers:
            raise ValueError(f"Unsupported driver: {v}. Supported: {supported_drivers}")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v


class DatabaseConnection:
    """Holds the single active connection and the name of the database it points at.

    Switching databases disposes the engine and builds a new one. Callers that
    switch, query and switch back must hold ``lock`` for the whole sequence.
    """

    def __init__(self, config: DatabaseConfig, maintenance_database: str = "postgres"):
        """Initialize database connection with configuration."""
        self.config = config
        self.maintenance_database = maintenance_database
        self._engine: Optional[Engine] = None
        self._admin_engine: Optional[Engine] = None
        self.lock = threading.RLock()

    @property
    def current_database(self) -> str:
        """Name of the database the active connection points at."""
        return self.config.database

    def connect(self) -> None:
        """Establish connection to the database."""
        engine = self._open_engine(self.config.database)
        if self._engine is not None:
            self._engine.dispose()
        self._engine = engine

    def connect_to_db(self, database: str) -> None:
        """Point the active connection at another database.

        The current engine and config stay untouched unless the new database
        answers, so a failed switch leaves the previous database active.
        """
        with self.lock:
            if self._engine is not None and database == self.config.database:
                return
            logger.info(f"Switching active database from '{self.config.database}' to '{database}'")
            engine = self._open_engine(database)
            if self._engine is not None:
                self._engine.dispose()
            self._engine = engine
            self.config = self.config.model_copy(update={"database": database})

    def _open_engine(self, database: str) -> Engine:
        """Build an engine for ``database`` and check that it answers."""
        engine = None
        try:
            logger.info(f"Connecting to {database} at {self.config.host}:{self.config.port}")

            engine = create_engine(
                self._build_connection_url(database=database),
                echo=False,
                pool_pre_ping=True,
                pool_recycle=3600,
                isolation_level="AUTOCOMMIT",
                connect_args=self._get_connect_args(),
            )

            # Test connection
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                logger.info("Database connection established successfully")

        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to database: {e}")
            if engine is not None:
                engine.dispose()
            raise ConnectionError(f"Database connection failed: {e}")

        return engine

    def _build_connection_url(self, database: Optional[str] = None) -> URL:
        """Build SQLAlchemy connection URL from config."""
        return URL.create(
            "postgresql+psycopg2",
            username=self.config.username,
            password=self.config.password or None,
            host=self.config.host,
            port=self.config.port,
            database=database if database is not None else self.config.database,
        )

    def _get_connect_args(self) -> Dict[str, Any]:
        """Get driver-specific connection arguments."""
        args = {}
        if self.config.ssl_mode:
            args["sslmode"] = self.config.ssl_mode
        return args

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine."""
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._engine

    def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Execute a raw SQL query and return results."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(query), params or {})
                return result.fetchall() if result.returns_rows else []
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise

    def execute_script(self, sql: str) -> None:
        """Send SQL to the driver verbatim, without bind parameter parsing."""
        try:
            with self.engine.connect() as conn:
                conn.execution_options(no_parameters=True)
                conn.exec_driver_sql(sql)
        except SQLAlchemyError as e:
            logger.error(f"Script execution failed: {e}")
            raise

    def execute_admin(self, statement: str) -> None:
        """Run a server-level statement such as CREATE/DROP DATABASE.

        Uses a separate maintenance engine so the statement never runs inside
        the database it targets.
        """
        if self._admin_engine is None:
            self._admin_engine = create_engine(
                self._build_connection_url(database=self.maintenance_database),
                echo=False,
                pool_pre_ping=True,
                isolation_level="AUTOCOMMIT",
                connect_args=self._get_connect_args(),
            )
        try:
            with self._admin_engine.connect() as conn:
                conn.execute(text(statement))
        except SQLAlchemyError as e:
            logger.error(f"Admin statement failed: {e}")
            raise

    def test_connection(self) -> bool:
        """Test if the database connection is alive."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def close(self) -> None:
        """Close database connection and cleanup resources."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            logger.info("Database connection closed")
        if self._admin_engine:
            self._admin_engine.dispose()
            self._admin_engine = None

    def quote_identifier(self, identifier: str) -> str:
        """Quote table or column name."""
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'

    def tool_arguments(self) -> List[str]:
        """Connection flags shared by pg_dump, psql and pg_restore."""
        return [
            "-h", self.config.host,
            "-p", str(self.config.port),
            "-U", self.config.username,
        ]

    def tool_environment(self) -> Dict[str, str]:
        """Environment additions for external tools."""
        env = {}
        if self.config.password:
            env["PGPASSWORD"] = self.config.password
        if self.config.ssl_mode:
            env["PGSSLMODE"] = self.config.ssl_mode
        return env

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def create_database_connection(
    host: str,
    port: int,
    database: str,
    username: str,
    password: str,
    **kwargs
) -> DatabaseConnection:
    """Factory function to create a database connection."""
    config = DatabaseConfig(
        host=host,
        port=port,
        database=database,
        username=username,
        password=password,
        **kwargs
    )
    return DatabaseConnection(config)
