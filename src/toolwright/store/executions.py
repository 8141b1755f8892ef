"""Execution-log mixin for LearningStore.

The external invocation pipeline writes one row per tool call: a row is
created when the call starts (``success = 0``) and completed when it ends.
The pattern miner only ever reads successful rows from a bounded window.
"""

import json
import sqlite3
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime, timedelta
from typing import Any

from toolwright.core.logging import ToolwrightLogger
from toolwright.store.base import _logger, from_iso, to_iso
from toolwright.store.models import ToolExecution


class ExecutionMixin:
    """Mixin providing tool execution recording and retrieval.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _logger: Logger instance for logging

    Recording Methods:
    - start_execution: Insert a row at invocation start
    - complete_execution: Mark an in-flight row finished
    - record_execution: Insert a finished row in one step

    Query Methods:
    - get_successful_executions: Chronological slice consumed by the miner
    """

    # Type hints for attributes provided by LearningStoreBase
    _logger: ToolwrightLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    def start_execution(
        self,
        tool_name: str,
        parameters: dict[str, Any] | str,
        session_id: str | None = None,
        created_at: datetime | None = None,
    ) -> str:
        """Record the start of a tool invocation.

        Returns:
            The execution id to pass to complete_execution().
        """
        execution_id = str(uuid.uuid4())
        if not isinstance(parameters, str):
            parameters = json.dumps(parameters)

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO tool_executions (
                    id, tool_name, parameters, success, session_id, created_at
                ) VALUES (?, ?, ?, 0, ?, ?)
                """,
                (execution_id, tool_name, parameters, session_id, to_iso(created_at)),
            )
        return execution_id

    def complete_execution(
        self,
        execution_id: str,
        success: bool,
        result: Any = None,
        error_message: str | None = None,
        execution_time_ms: int | None = None,
    ) -> None:
        """Record the outcome of a previously started invocation."""
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE tool_executions
                SET success = ?, result = ?, error_message = ?,
                    execution_time_ms = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    int(success),
                    json.dumps(result) if result is not None else None,
                    error_message,
                    execution_time_ms,
                    datetime.now().isoformat(),
                    execution_id,
                ),
            )

    def record_execution(
        self,
        tool_name: str,
        parameters: dict[str, Any] | str,
        success: bool = True,
        result: Any = None,
        error_message: str | None = None,
        execution_time_ms: int | None = None,
        session_id: str | None = None,
        created_at: datetime | None = None,
    ) -> str:
        """Record a finished invocation in one call.

        ``parameters`` may be passed as raw text, which lets importers keep
        whatever the producer wrote, even when it is not valid JSON.
        """
        execution_id = self.start_execution(
            tool_name, parameters, session_id=session_id, created_at=created_at
        )
        self.complete_execution(
            execution_id,
            success,
            result=result,
            error_message=error_message,
            execution_time_ms=execution_time_ms,
        )
        return execution_id

    def get_successful_executions(
        self,
        hours_back: int = 24,
        limit: int = 100,
        now: datetime | None = None,
    ) -> list[ToolExecution]:
        """Get the most recent successful executions in chronological order.

        Args:
            hours_back: Only executions created within this many hours.
            limit: Maximum number of executions returned (the newest ones).
            now: Reference time for the window, defaults to the current time.

        Returns:
            Oldest-first list of at most ``limit`` successful executions.
        """
        cutoff = (now or datetime.now()) - timedelta(hours=hours_back)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM tool_executions
                WHERE success = 1 AND created_at >= ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (cutoff.isoformat(), limit),
            )
            records = [self._row_to_execution(row) for row in cursor.fetchall()]

        records.reverse()
        _logger.debug("executions_loaded", count=len(records), hours_back=hours_back)
        return records

    @staticmethod
    def _row_to_execution(row: sqlite3.Row) -> ToolExecution:
        return ToolExecution(
            id=row["id"],
            tool_name=row["tool_name"],
            parameters=row["parameters"],
            success=bool(row["success"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            result=row["result"],
            error_message=row["error_message"],
            execution_time_ms=row["execution_time_ms"],
            session_id=row["session_id"],
            updated_at=from_iso(row["updated_at"]),
        )
