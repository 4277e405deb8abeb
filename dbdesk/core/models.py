"""Data models for schema layout, generated data, query results and configuration."""

from typing import List, Dict, Any, Optional, Set, Tuple
from enum import Enum
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, field_validator


class ConstraintRole(Enum):
    """Key role a column plays in its table."""
    NONE = "none"
    PRIMARY_KEY = "PRIMARY KEY"
    FOREIGN_KEY = "FOREIGN KEY"


class ColumnType(Enum):
    """Declared column types the dummy data generator can synthesize.

    Values match ``information_schema.columns.data_type``.
    """
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    VARCHAR = "character varying"
    DATE = "date"
    BOOLEAN = "boolean"

    @classmethod
    def from_declared(cls, data_type: str) -> Optional["ColumnType"]:
        """Return the member for a declared type name, or None if unsupported."""
        try:
            return cls(data_type.strip().lower())
        except ValueError:
            return None


@dataclass
class ColumnDescriptor:
    """One column of one table."""
    name: str
    data_type: str
    max_length: Optional[int] = None
    is_nullable: bool = True
    constraint_role: ConstraintRole = ConstraintRole.NONE
    foreign_table: Optional[str] = None
    foreign_column: Optional[str] = None

    @property
    def is_primary_key(self) -> bool:
        return self.constraint_role is ConstraintRole.PRIMARY_KEY

    @property
    def is_foreign_key(self) -> bool:
        return self.constraint_role is ConstraintRole.FOREIGN_KEY


@dataclass(frozen=True)
class TableLayout:
    """Columns of a single table in ordinal order."""
    name: str
    columns: Tuple[ColumnDescriptor, ...] = ()

    def get_column(self, name: str) -> Optional[ColumnDescriptor]:
        """Get column by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None


@dataclass(frozen=True)
class SchemaLayout:
    """Every table visible in the active database, as seen by one introspection."""
    database_name: str
    tables: Tuple[TableLayout, ...] = ()

    def get_table(self, name: str) -> Optional[TableLayout]:
        """Get table by name."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    @property
    def table_names(self) -> List[str]:
        return [table.name for table in self.tables]


@dataclass
class TableKeys:
    """Primary and foreign key columns of one table."""
    primary_key_columns: Set[str] = field(default_factory=set)
    foreign_key_columns: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    @property
    def referenced_tables(self) -> Set[str]:
        return {foreign_table for foreign_table, _ in self.foreign_key_columns.values()}


KeyMap = Dict[str, TableKeys]


@dataclass
class GeneratedTable:
    """Rows of SQL literals generated for one table.

    Cells are ints or pre-quoted strings (``'abc'``, ``'true'``,
    ``'1999/04/12'``) ready to be interpolated into an INSERT statement.
    ``rows[i][j]`` belongs to ``column_names[j]``.
    """
    table_name: str
    column_names: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return len(self.column_names)


@dataclass
class QueryResult:
    """Outcome of running a user query with plan capture."""
    target_db: str
    sql_string: str
    returned_rows: Optional[List[Dict[str, Any]]] = None
    explain_result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def total_time(self) -> float:
        from .query_engine import get_total_time
        return get_total_time(self.explain_result)

    @property
    def pretty_time(self) -> Optional[str]:
        from .query_engine import get_pretty_time
        return get_pretty_time(self.explain_result)


@dataclass
class DbListSnapshot:
    """Refreshed view of all databases and the tables of the active one."""
    databases: List[Dict[str, Any]] = field(default_factory=list)
    current_database: str = ""
    tables: List[TableLayout] = field(default_factory=list)

    @property
    def database_names(self) -> List[str]:
        return [db["name"] for db in self.databases]


class DummyDataRequest(BaseModel):
    """Row counts requested per table of one schema."""

    schema_name: str = Field(..., description="Schema (database) the tables live in")
    row_count_by_table: Dict[str, int] = Field(
        default_factory=dict, description="Rows to generate per table"
    )

    @field_validator("row_count_by_table")
    @classmethod
    def validate_row_counts(cls, v):
        for table_name, count in v.items():
            if count < 0:
                raise ValueError(f"Row count for {table_name} must be >= 0, got {count}")
        return v


class ManagerConfig(BaseModel):
    """Settings for lifecycle tooling, query execution and dummy data."""

    pg_bin_dir: Optional[str] = Field(
        default=None, description="Directory holding pg_dump, psql and pg_restore"
    )
    dump_dir: Optional[str] = Field(
        default=None, description="Directory for temporary duplication dumps"
    )
    export_dir: str = Field(default=".", description="Default directory for CSV exports")
    process_timeout: Optional[float] = Field(
        default=None, description="Timeout in seconds for external tools"
    )
    sample_percent: float = Field(
        default=50.0, description="Bernoulli sample percentage for foreign key candidates"
    )
    seed: Optional[int] = Field(default=None, description="Random seed for reproducible data")
    max_workers: int = Field(default=4, description="Number of request worker threads")
    insert_generated: bool = Field(
        default=True, description="Insert generated rows so dependent tables find keys"
    )
    neutral_database: str = Field(
        default="postgres", description="Database to connect to when leaving another"
    )

    @field_validator("sample_percent")
    @classmethod
    def validate_sample_percent(cls, v):
        if not 0 < v <= 100:
            raise ValueError("Sample percent must be in (0, 100]")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v):
        if v < 1:
            raise ValueError("max_workers must be at least 1")
        return v
