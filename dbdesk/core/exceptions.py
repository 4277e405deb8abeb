"""Error taxonomy for database lifecycle, querying and dummy data generation."""

from typing import List, Optional


class DBDeskError(Exception):
    """Base class for all DBDesk errors."""

    pass


# -------------------------------------------------------------------------------------
# External processes
# -------------------------------------------------------------------------------------


class ProcessError(DBDeskError):
    """External tool exited unsuccessfully.

    ``returncode`` is ``None`` when the process was killed on timeout.
    """

    def __init__(self, returncode: Optional[int], stderr: str = "",
                 command: Optional[List[str]] = None):
        self.returncode = returncode
        self.stderr = stderr
        self.command = command or []
        program = self.command[0] if self.command else "process"
        message = f"{program} exited with code {returncode}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


# -------------------------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------------------------


class LifecycleError(DBDeskError):
    """A database lifecycle step failed."""

    pass


class CreateError(LifecycleError):
    """Database could not be created."""

    pass


class DropError(LifecycleError):
    """Database could not be dropped."""

    pass


class DumpError(LifecycleError):
    """Source database could not be dumped."""

    pass


class RestoreError(LifecycleError):
    """Dump file could not be restored into the target database."""

    pass


class UnsupportedFormatError(LifecycleError):
    """Import file has an extension we cannot restore."""

    pass


# -------------------------------------------------------------------------------------
# Schema and queries
# -------------------------------------------------------------------------------------


class IntrospectionError(DBDeskError):
    """Catalog could not be read."""

    pass


class QueryError(DBDeskError):
    """Plan capture or direct execution of a user query failed."""

    pass


# -------------------------------------------------------------------------------------
# Dummy data
# -------------------------------------------------------------------------------------


class GenerationError(DBDeskError):
    """Dummy data could not be generated for a table."""

    pass


class UnsupportedTypeError(GenerationError):
    """Column has a declared type the generator cannot synthesize."""

    def __init__(self, table_name: str, column_name: str, data_type: str):
        self.table_name = table_name
        self.column_name = column_name
        self.data_type = data_type
        super().__init__(
            f"Unsupported data type '{data_type}' for column {table_name}.{column_name}"
        )


class NoForeignKeyCandidateError(GenerationError):
    """Referenced table holds no rows to draw a foreign key from."""

    def __init__(self, table_name: str, column_name: str,
                 foreign_table: str, foreign_column: str):
        self.table_name = table_name
        self.column_name = column_name
        self.foreign_table = foreign_table
        self.foreign_column = foreign_column
        super().__init__(
            f"No candidate for {table_name}.{column_name}: "
            f"{foreign_table}.{foreign_column} has no rows. "
            f"Generate data for {foreign_table} first."
        )


class ExportError(DBDeskError, IOError):
    """Generated table could not be written out."""

    pass
