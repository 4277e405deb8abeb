"""Request/response + event channel in front of the lifecycle, query and dummy data engines.

Requests run on a worker pool. Events are ``(event_name, payload)`` tuples put
on a queue that the host (GUI, CLI, IPC bridge) drains:

- ``async-started`` / ``async-complete``: bracket every long-running request;
  ``async-complete`` fires on every exit path.
- ``db-lists``: a fresh :class:`DbListSnapshot` after anything that may have
  changed databases or tables.
- ``feedback``: ``{"type": "error" | "warning", "message": str}``.
- ``csv-exported``: ``{"table": str, "path": str, "rows": int}`` per generated table.
"""

import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from tqdm import tqdm

from .analyzer import SchemaAnalyzer, build_key_map, dependency_order
from .database import DatabaseConnection
from .exceptions import DBDeskError, GenerationError
from .exporter import CSVExporter, default_export_path
from .generator import DummyDataGenerator
from .inserter import DataInserter
from .lifecycle import DatabaseLock, LifecycleOrchestrator
from .models import DbListSnapshot, DummyDataRequest, ManagerConfig, QueryResult
from .process import ProcessRunner
from .query_engine import QueryEngine


logger = logging.getLogger(__name__)


class RequestChannel:
    """Dispatches named requests and publishes their events."""

    def __init__(self, db_connection: DatabaseConnection,
                 config: Optional[ManagerConfig] = None,
                 runner: Optional[ProcessRunner] = None,
                 events: Optional[queue.Queue] = None,
                 show_progress: bool = False):
        self.db_connection = db_connection
        self.config = config or ManagerConfig()
        self.events = events if events is not None else queue.Queue()
        self.show_progress = show_progress

        self.locks = DatabaseLock()
        self.orchestrator = LifecycleOrchestrator(
            db_connection, runner=runner, config=self.config,
            notify=self.emit, locks=self.locks,
        )
        self.query_engine = QueryEngine(db_connection)
        self.analyzer = SchemaAnalyzer(db_connection)
        self.inserter = DataInserter(db_connection)
        self.exporter = CSVExporter()

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="dbdesk-request"
        )
        self._handlers: Dict[str, Callable[..., Any]] = {
            "return-db-list": self.return_db_list,
            "select-db": self.select_db,
            "create-db": self.create_db,
            "drop-db": self.drop_db,
            "duplicate-db": self.duplicate_db,
            "import-db": self.import_db,
            "run-query": self.run_query,
            "generate-dummy-data": self.generate_dummy_data,
        }

    # ------------------------------------------------------------------ plumbing

    @property
    def request_names(self) -> List[str]:
        return list(self._handlers)

    def emit(self, event: str, payload: Any = None) -> None:
        """Publish an event to whoever drains ``events``."""
        self.events.put((event, payload))

    @contextmanager
    def busy(self) -> Iterator[None]:
        """Bracket a request with ``async-started`` and ``async-complete``."""
        self.emit("async-started")
        try:
            yield
        finally:
            self.emit("async-complete")

    def submit(self, request: str, payload: Optional[Dict[str, Any]] = None) -> Future:
        """Run a request on the worker pool."""
        return self._executor.submit(self.handle, request, payload)

    def handle(self, request: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Run a request in the calling thread.

        Failures are published as ``feedback`` events and re-raised.
        """
        handler = self._handlers.get(request)
        if handler is None:
            raise ValueError(f"Unknown request: {request}. Supported: {self.request_names}")

        logger.debug(f"Handling request {request} with payload {payload}")
        try:
            return handler(**(payload or {}))
        except Exception as e:
            logger.error(f"Request {request} failed: {e}")
            self.emit("feedback", {"type": "error", "message": str(e)})
            raise

    def close(self) -> None:
        """Wait for in-flight requests and stop the worker pool."""
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------ requests

    def return_db_list(self) -> DbListSnapshot:
        """Publish and return a fresh database list."""
        with self.db_connection.lock:
            snapshot = self.analyzer.list_databases_and_tables()
        self.emit("db-lists", snapshot)
        return snapshot

    def select_db(self, db_name: str) -> DbListSnapshot:
        with self.busy():
            self.orchestrator.select(db_name)
            return self.return_db_list()

    def create_db(self, name: str) -> None:
        with self.busy():
            self.orchestrator.create(name)
            self.return_db_list()

    def drop_db(self, db_name: str, is_active_connection: bool = False) -> DbListSnapshot:
        with self.busy():
            self.orchestrator.drop(db_name, is_active_connection)
            return self.return_db_list()

    def duplicate_db(self, new_name: str, source_db: str, with_data: bool = True) -> DbListSnapshot:
        with self.busy():
            self.orchestrator.duplicate(new_name, source_db, with_data)
            return self.return_db_list()

    def import_db(self, new_db_name: str, file_path: str) -> DbListSnapshot:
        with self.busy():
            self.orchestrator.import_database(new_db_name, file_path)
            return self.return_db_list()

    def run_query(self, target_db: str, sql_string: str,
                  selected_db: Optional[str] = None) -> QueryResult:
        """Run a query; the database list is refreshed afterwards in case it changed schema."""
        with self.busy():
            try:
                return self.query_engine.execute(target_db, sql_string, selected_db)
            finally:
                self._refresh_after_query()

    def _refresh_after_query(self) -> None:
        try:
            self.return_db_list()
        except (DBDeskError, ConnectionError) as e:
            logger.warning(f"Could not refresh database list after query: {e}")
            self.emit("feedback", {"type": "warning", "message": f"Could not refresh database list: {e}"})

    def generate_dummy_data(self, schema_name: str,
                            row_count_by_table: Dict[str, int]) -> List[Path]:
        """Generate, insert and export every requested table in dependency order."""
        with self.busy():
            request = DummyDataRequest(schema_name=schema_name, row_count_by_table=row_count_by_table)

            with self.db_connection.lock:
                previous_db = self.db_connection.current_database
                switched = previous_db != request.schema_name
                try:
                    if switched:
                        self.db_connection.connect_to_db(request.schema_name)
                    paths = self._generate_all(request)
                finally:
                    if switched:
                        self.db_connection.connect_to_db(previous_db)

            self.return_db_list()
            return paths

    def _generate_all(self, request: DummyDataRequest) -> List[Path]:
        layout = self.analyzer.introspect()
        key_map = build_key_map(layout)

        requested = [name for name, count in request.row_count_by_table.items() if count > 0]
        missing = [name for name in requested if layout.get_table(name) is None]
        if missing:
            raise GenerationError(
                f"Tables not found in {layout.database_name}: {', '.join(missing)}"
            )

        generator = DummyDataGenerator(
            self.db_connection, seed=self.config.seed, sample_percent=self.config.sample_percent
        )
        order = dependency_order(key_map, requested)
        logger.info(f"Dummy data order: {' → '.join(order)}")

        paths = []
        for table_name in tqdm(order, desc="Generating dummy data", disable=not self.show_progress):
            table = layout.get_table(table_name)
            generated = generator.generate(
                table_name, table.columns, request.row_count_by_table[table_name]
            )
            if self.config.insert_generated:
                self.inserter.insert(generated)

            path = default_export_path(self.config.export_dir, table_name)
            self.exporter.export(generated, path)
            self.emit("csv-exported", {"table": table_name, "path": str(path),
                                       "rows": len(generated.rows)})
            paths.append(path)

        return paths
