"""Create, drop, duplicate and import databases without leaving half-built ones behind."""

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseConnection
from .exceptions import (
    CreateError, DropError, DumpError, RestoreError, UnsupportedFormatError,
    ProcessError
)
from .models import ManagerConfig
from .process import (
    ProcessRunner, full_dump_command, schema_dump_command,
    sql_restore_command, archive_restore_command
)


logger = logging.getLogger(__name__)

# Postgres truncates identifiers longer than this
MAX_IDENTIFIER_LENGTH = 63

RESTORE_COMMANDS = {
    ".sql": sql_restore_command,
    ".tar": archive_restore_command,
}

Notifier = Callable[[str, Dict[str, Any]], None]


class DatabaseLock:
    """Per-database-name mutual exclusion."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._guard:
            if name not in self._locks:
                self._locks[name] = threading.Lock()
            return self._locks[name]

    @contextmanager
    def hold(self, *names: str) -> Iterator[None]:
        """Hold the locks of every given name, acquired in sorted order."""
        locks = [self._lock_for(name) for name in sorted(set(names))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class LifecycleOrchestrator:
    """Database lifecycle operations on top of external tools and raw SQL.

    Every failure that happens after a CREATE DATABASE is followed by the
    matching DROP DATABASE before the error propagates.
    """

    def __init__(self, db_connection: DatabaseConnection,
                 runner: Optional[ProcessRunner] = None,
                 config: Optional[ManagerConfig] = None,
                 notify: Optional[Notifier] = None,
                 locks: Optional[DatabaseLock] = None):
        self.db_connection = db_connection
        self.config = config or ManagerConfig()
        self.runner = runner or ProcessRunner(
            timeout=self.config.process_timeout, bin_dir=self.config.pg_bin_dir
        )
        self.notify = notify
        self.locks = locks or DatabaseLock()

    # ------------------------------------------------------------------ create / drop

    def create(self, name: str) -> None:
        """CREATE DATABASE ``name``."""
        with self.locks.hold(name):
            self._create(name)

    def drop(self, name: str, is_active_connection: bool = False) -> None:
        """DROP DATABASE ``name``, leaving it first if it is the active one."""
        with self.locks.hold(name):
            if is_active_connection:
                logger.info(f"Disconnecting from {name} before dropping it")
                with self.db_connection.lock:
                    self._switch(self.config.neutral_database, DropError)
            self._drop(name)

    def select(self, name: str) -> None:
        """Point the active connection at ``name``."""
        with self.locks.hold(name):
            with self.db_connection.lock:
                self._switch(name, ConnectionError)

    # ------------------------------------------------------------------ duplicate

    def duplicate(self, new_name: str, source_db: str, with_data: bool = True) -> None:
        """Copy ``source_db`` into a new database, with or without its rows."""
        with self.locks.hold(new_name, source_db):
            dump_path = self._temp_dump_path(new_name)
            try:
                dump = full_dump_command if with_data else schema_dump_command
                logger.info(f"Dumping {source_db} to {dump_path} (with_data={with_data})")
                try:
                    self._run(dump(source_db, dump_path, self.db_connection.tool_arguments()))
                except ProcessError as e:
                    raise DumpError(
                        f"Failed to dump {source_db} to temp file at {dump_path}: {e}"
                    ) from e

                self._create(new_name)

                try:
                    self._run(sql_restore_command(new_name, dump_path,
                                                  self.db_connection.tool_arguments()))
                except ProcessError as e:
                    self._compensating_drop(new_name)
                    raise RestoreError(
                        f"Failed to populate newly created database {new_name}: {e}"
                    ) from e

                logger.info(f"Duplicated {source_db} into {new_name}")
            finally:
                self._remove_temp_file(dump_path)

    def _temp_dump_path(self, new_name: str) -> str:
        if self.config.dump_dir:
            Path(self.config.dump_dir).mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(
            prefix=f"temp_{new_name}_", suffix=".sql", dir=self.config.dump_dir
        )
        os.close(fd)
        return path

    def _remove_temp_file(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            message = f"Failed to cleanup temp files. {path} could not be removed."
            logger.warning(f"{message} ({e})")
            self._feedback("warning", message)

    # ------------------------------------------------------------------ import

    def import_database(self, new_name: str, file_path: str) -> None:
        """Create ``new_name`` and restore a .sql or .tar dump into it."""
        with self.locks.hold(new_name):
            self._create(new_name)

            extension = Path(file_path).suffix.lower()
            restore = RESTORE_COMMANDS.get(extension)
            if restore is None:
                self._compensating_drop(new_name)
                raise UnsupportedFormatError(
                    f"Invalid file extension '{extension}'. "
                    f"Supported: {', '.join(sorted(RESTORE_COMMANDS))}"
                )

            try:
                self._run(restore(new_name, file_path, self.db_connection.tool_arguments()))
            except ProcessError as e:
                self._compensating_drop(new_name)
                raise RestoreError(f"Failed to populate database {new_name}: {e}") from e

            logger.info(f"Imported {file_path} into {new_name}")

    # ------------------------------------------------------------------ helpers

    def _create(self, name: str) -> None:
        validate_database_name(name, CreateError)
        logger.info(f"Creating database: {name}")
        try:
            self.db_connection.execute_admin(
                f"CREATE DATABASE {self.db_connection.quote_identifier(name)}"
            )
        except SQLAlchemyError as e:
            raise CreateError(f"Failed to create database {name}: {_db_message(e)}") from e

    def _drop(self, name: str) -> None:
        validate_database_name(name, DropError)
        logger.info(f"Dropping database: {name}")
        try:
            self.db_connection.execute_admin(
                f"DROP DATABASE {self.db_connection.quote_identifier(name)}"
            )
        except SQLAlchemyError as e:
            raise DropError(f"Failed to drop database {name}: {_db_message(e)}") from e

    def _compensating_drop(self, name: str) -> None:
        """Undo a CREATE; failure here is reported but never replaces the original error."""
        try:
            self._drop(name)
        except DropError as e:
            logger.error(f"Cleanup failed, database {name} may be left behind: {e}")
            self._feedback("error", f"Cleanup failed: {name} could not be dropped. {e}")

    def _switch(self, name: str, error_type: type) -> None:
        try:
            self.db_connection.connect_to_db(name)
        except ConnectionError as e:
            raise error_type(f"Could not connect to {name}: {e}") from e

    def _run(self, args) -> None:
        self.runner.run(args, env=self.db_connection.tool_environment())

    def _feedback(self, level: str, message: str) -> None:
        if self.notify:
            self.notify("feedback", {"type": level, "message": message})


def validate_database_name(name: str, error_type: type = CreateError) -> None:
    """Reject names Postgres would refuse or silently truncate."""
    if not name or not name.strip():
        raise error_type("Database name must not be empty")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise error_type(
            f"Database name '{name}' is longer than {MAX_IDENTIFIER_LENGTH} characters"
        )
    if "\x00" in name:
        raise error_type("Database name must not contain NUL characters")


def _db_message(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error).strip()
