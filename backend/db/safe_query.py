"""
Query execution behind the SELECT-only gate.

Rows come back as plain dicts of JSON-friendly scalars, capped at a fixed
row count.
"""
import datetime
import decimal
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from app.utils.exceptions import AppException, ExecutionFailed, ExternalCallTimeout
from core.logging import get_logger, preview
from core.retry import RetryPolicy, with_deadline
from db.sql_safety import validate_select_query

logger = get_logger(__name__)

INVALID_IDENTIFIER_CODES = {207, 208, 4104}
AUTHENTICATION_CODES = {18452, 18456}
CONNECTIVITY_CODES = {2, 53, 10054, 10060, 10061, 20002, 20009}
TIMEOUT_CODES = {-2, 20003}
COUNT_CHUNK_ROWS = 500


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]]
    total_row_count: int
    truncated: bool = False
    columns: List[str] = field(default_factory=list)
    execution_ms: int = 0


def to_scalar(value: Any) -> Any:
    if isinstance(value, decimal.Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


def classify_db_error(error: BaseException) -> str:
    """Map a driver/pool error onto timeout / authentication / connectivity / invalid_identifier."""
    if isinstance(error, (ExternalCallTimeout, sa_exc.TimeoutError)):
        return "timeout"

    orig = getattr(error, "orig", None) or error
    number: Optional[int] = None
    args = getattr(orig, "args", ()) or ()
    if args and isinstance(args[0], int):
        number = args[0]
    message = " ".join(
        a.decode("utf-8", "ignore") if isinstance(a, bytes) else str(a) for a in args
    ).lower() or str(error).lower()

    if number in TIMEOUT_CODES or "timeout" in message or "timed out" in message:
        return "timeout"
    if number in AUTHENTICATION_CODES or "login failed" in message:
        return "authentication"
    if number in INVALID_IDENTIFIER_CODES or "invalid column name" in message or "invalid object name" in message \
            or "no such table" in message or "no such column" in message:
        return "invalid_identifier"
    if number in CONNECTIVITY_CODES or "unable to connect" in message or "connection" in message \
            or isinstance(error, sa_exc.InterfaceError):
        return "connectivity"
    return "unknown"


class QueryExecutor:
    def __init__(
        self,
        engine: Engine,
        max_rows: int = 1000,
        timeout_ms: int = 30000,
        connect_retries: int = 2,
    ):
        self.engine = engine
        self.max_rows = max_rows
        self.timeout_ms = timeout_ms
        self.retry_policy = RetryPolicy(
            max_attempts=connect_retries,
            base_delay=0.5,
            max_delay=2.0,
            retry_on=(ExecutionFailed,),
            should_retry=lambda e: e.reason == "connectivity",
        )

    def _run_sync(self, sql: str) -> Tuple[List[Dict[str, Any]], int]:
        """Keep the first `max_rows` rows; the remainder is only counted."""
        with self.engine.connect() as conn:
            result = conn.execute(text(sql))
            columns = list(result.keys())
            rows = [dict(zip(columns, row)) for row in result.fetchmany(self.max_rows)]
            total = len(rows)
            while True:
                chunk = result.fetchmany(COUNT_CHUNK_ROWS)
                if not chunk:
                    break
                total += len(chunk)
            return rows, total

    async def _attempt(self, sql: str) -> Tuple[List[Dict[str, Any]], int]:
        try:
            return await with_deadline(
                run_in_threadpool(self._run_sync, sql), self.timeout_ms / 1000, "SQL execution"
            )
        except AppException as e:
            if isinstance(e, ExternalCallTimeout):
                raise ExecutionFailed("timeout") from e
            raise
        except Exception as e:
            reason = classify_db_error(e)
            logger.error(f"SQL query execution error ({reason}): {e} | query: {preview(sql, 200)}")
            raise ExecutionFailed(reason) from e

    async def execute(self, sql: str) -> QueryResult:
        sql = validate_select_query(sql)
        started = time.perf_counter()
        logger.debug(f"Executing SQL query: {preview(sql, 200)}")

        rows, total = await self.retry_policy.run(self._attempt, sql, label="SQL execution")

        truncated = total > self.max_rows
        if truncated:
            logger.warning(f"Query returned too many rows, truncating {total} -> {self.max_rows}")

        rows = [{k: to_scalar(v) for k, v in row.items()} for row in rows]
        elapsed = int((time.perf_counter() - started) * 1000)
        logger.info(f"SQL query executed successfully in {elapsed}ms, rows={total}")
        return QueryResult(
            rows=rows,
            total_row_count=total,
            truncated=truncated,
            columns=list(rows[0].keys()) if rows else [],
            execution_ms=elapsed,
        )

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self.execute("SELECT 1 AS health_check")
            return {"healthy": True}
        except AppException as e:
            return {"healthy": False, "error": e.message}
