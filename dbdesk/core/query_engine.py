"""Query execution with side-effect free plan capture."""

import json
import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseConnection
from .exceptions import QueryError
from .models import QueryResult


logger = logging.getLogger(__name__)

EXPLAIN_PREFIX = "EXPLAIN (FORMAT JSON, ANALYZE, VERBOSE, BUFFERS)"
EXPLAIN_FAILED = "Failed to get Execution Plan. EXPLAIN might not support this query."

SECOND = 1000
MINUTE = SECOND * 60
HOUR = MINUTE * 60
DAY = HOUR * 24


class QueryEngine:
    """Runs user SQL against a target database and captures its execution plan."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def execute(self, target_db: str, sql: str, selected_db: Optional[str] = None) -> QueryResult:
        """Capture the plan, then run ``sql`` for real.

        The two steps fail independently; the last failure message ends up in
        ``QueryResult.error``. When ``target_db`` differs from ``selected_db``
        the active connection is switched for the duration and switched back
        afterwards, holding the connection lock throughout.
        """
        selected_db = selected_db or self.db_connection.current_database
        result = QueryResult(target_db=target_db, sql_string=sql)

        with self.db_connection.lock:
            switched = selected_db != target_db
            try:
                if switched:
                    try:
                        self.db_connection.connect_to_db(target_db)
                    except ConnectionError as e:
                        raise QueryError(f"Could not connect to {target_db}: {e}") from e

                try:
                    result.explain_result = self.explain(sql)
                except SQLAlchemyError as e:
                    logger.warning(f"Plan capture failed on {target_db}: {e}")
                    result.error = EXPLAIN_FAILED

                try:
                    result.returned_rows = self.run(sql)
                except SQLAlchemyError as e:
                    logger.warning(f"Query failed on {target_db}: {e}")
                    result.error = str(getattr(e, "orig", None) or e)
            finally:
                if switched:
                    self.db_connection.connect_to_db(selected_db)

        return result

    def explain(self, sql: str) -> Optional[Dict[str, Any]]:
        """EXPLAIN ANALYZE ``sql`` inside a transaction that is always rolled back."""
        with self.db_connection.engine.connect() as conn:
            conn.execution_options(isolation_level="READ COMMITTED", no_parameters=True)
            transaction = conn.begin()
            try:
                plan = conn.exec_driver_sql(f"{EXPLAIN_PREFIX} {sql}").scalar()
            finally:
                transaction.rollback()

        if isinstance(plan, str):
            plan = json.loads(plan)
        if isinstance(plan, list):
            plan = plan[0] if plan else None
        return plan

    def run(self, sql: str) -> Optional[List[Dict[str, Any]]]:
        """Execute ``sql`` with autocommit; None when the statement returns no result set."""
        with self.db_connection.engine.connect() as conn:
            conn.execution_options(no_parameters=True)
            result = conn.exec_driver_sql(sql)
            if not result.returns_rows:
                return None
            return [dict(row._mapping) for row in result]


def get_total_time(plan: Optional[Dict[str, Any]]) -> float:
    """Planning plus execution time in milliseconds, 0 without a plan."""
    if not plan:
        return 0
    return plan.get("Execution Time", 0) + plan.get("Planning Time", 0)


def get_pretty_time(plan: Optional[Dict[str, Any]]) -> Optional[str]:
    """Total time rounded to 3 significant figures, e.g. ``"1.08 ms"`` or ``"2 seconds"``."""
    if not plan:
        return None
    return format_duration(_to_precision(get_total_time(plan), 3))


def format_duration(ms: float) -> str:
    """Long-form duration for a millisecond value."""
    ms_abs = abs(ms)
    for unit, name in ((DAY, "day"), (HOUR, "hour"), (MINUTE, "minute"), (SECOND, "second")):
        if ms_abs >= unit:
            return _plural(ms, ms_abs, unit, name)
    return f"{_format_number(ms)} ms"


def _plural(ms: float, ms_abs: float, unit: int, name: str) -> str:
    is_plural = ms_abs >= unit * 1.5
    # half-up rounding
    count = math.floor(ms / unit + 0.5)
    return f"{count} {name}{'s' if is_plural else ''}"


def _to_precision(value: float, digits: int) -> float:
    """Round to ``digits`` significant figures, ties away from zero on the exact binary value."""
    if value == 0:
        return 0.0
    exact = Decimal(value)
    step = Decimal(1).scaleb(exact.adjusted() - digits + 1)
    return float(exact.quantize(step, rounding=ROUND_HALF_UP))


def _format_number(value: float) -> str:
    """Shortest decimal form of ``value``, never in exponent notation."""
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))), "f")
