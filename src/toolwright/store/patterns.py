"""Learned-pattern mixin for LearningStore.

Patterns are keyed by their signature. A signature seen for the first time
is inserted with the counts from the mining pass; a signature seen again
in a later pass is re-observed, which adds exactly one occurrence and a
fixed confidence step. Patterns are never deleted.
"""

import json
import sqlite3
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any

from toolwright.core.logging import ToolwrightLogger
from toolwright.store.base import _logger, to_iso
from toolwright.store.models import LearnedPattern, PatternType


def load_json(text: str | None, default: Any, **context: Any) -> Any:
    """Parse stored JSON, falling back to ``default`` when it is malformed."""
    if text is None:
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        _logger.debug("stored_json_malformed", **context)
        return default


class PatternMixin:
    """Mixin providing learned-pattern persistence.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _logger: Logger instance for logging
    """

    # Type hints for attributes provided by LearningStoreBase
    _logger: ToolwrightLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    def get_pattern_by_signature(self, signature: str) -> LearnedPattern | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM learned_patterns WHERE pattern_signature = ?",
                (signature,),
            ).fetchone()
        return self._row_to_pattern(row) if row else None

    def get_pattern(self, pattern_id: str) -> LearnedPattern | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM learned_patterns WHERE id = ?",
                (pattern_id,),
            ).fetchone()
        return self._row_to_pattern(row) if row else None

    def insert_pattern(
        self,
        signature: str,
        pattern_type: PatternType,
        pattern_data: dict[str, Any],
        occurrences: int,
        confidence: float,
        tool_suggestion: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> LearnedPattern:
        """Insert a newly detected pattern.

        Raises:
            sqlite3.IntegrityError: If the signature already exists.
        """
        pattern_id = str(uuid.uuid4())
        seen = to_iso(now)
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO learned_patterns (
                    id, pattern_signature, pattern_type, pattern_data,
                    occurrences, confidence, tool_suggestion,
                    first_seen, last_seen
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pattern_id,
                    signature,
                    pattern_type.value,
                    json.dumps(pattern_data),
                    occurrences,
                    min(1.0, confidence),
                    json.dumps(tool_suggestion) if tool_suggestion else None,
                    seen,
                    seen,
                ),
            )

        _logger.debug(
            "pattern_inserted",
            pattern_id=pattern_id,
            pattern_type=pattern_type.value,
            occurrences=occurrences,
        )
        return LearnedPattern(
            id=pattern_id,
            pattern_signature=signature,
            pattern_type=pattern_type,
            pattern_data=pattern_data,
            occurrences=occurrences,
            confidence=min(1.0, confidence),
            first_seen=datetime.fromisoformat(seen),
            last_seen=datetime.fromisoformat(seen),
            tool_suggestion=tool_suggestion,
        )

    def reobserve_pattern(
        self,
        pattern_id: str,
        confidence_step: float,
        now: datetime | None = None,
    ) -> LearnedPattern | None:
        """Count one more observation of a stored pattern.

        The increment is a single UPDATE so that concurrent writers never
        lose an occurrence.

        Returns:
            The pattern after the update, or None if it does not exist.
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE learned_patterns
                SET occurrences = occurrences + 1,
                    confidence = ROUND(MIN(1.0, confidence + ?), 6),
                    last_seen = ?
                WHERE id = ?
                """,
                (confidence_step, to_iso(now), pattern_id),
            )
            row = conn.execute(
                "SELECT * FROM learned_patterns WHERE id = ?",
                (pattern_id,),
            ).fetchone()
        return self._row_to_pattern(row) if row else None

    def link_pattern_tool(self, pattern_id: str, tool_id: str) -> None:
        """Record that a generated tool was created from this pattern."""
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE learned_patterns
                SET tool_id = ?, auto_created = 1
                WHERE id = ?
                """,
                (tool_id, pattern_id),
            )

    def get_patterns(
        self,
        pattern_type: PatternType | None = None,
        min_occurrences: int = 1,
        min_confidence: float = 0.0,
        limit: int = 50,
    ) -> list[LearnedPattern]:
        """Get stored patterns, strongest first.

        Args:
            pattern_type: Restrict to one pattern type.
            min_occurrences: Minimum stored occurrence count.
            min_confidence: Minimum stored confidence.
            limit: Maximum number of patterns to return.
        """
        with self._get_connection() as conn:
            if pattern_type is not None:
                cursor = conn.execute(
                    """
                    SELECT * FROM learned_patterns
                    WHERE pattern_type = ? AND occurrences >= ? AND confidence >= ?
                    ORDER BY occurrences DESC, confidence DESC
                    LIMIT ?
                    """,
                    (pattern_type.value, min_occurrences, min_confidence, limit),
                )
            else:
                cursor = conn.execute(
                    """
                    SELECT * FROM learned_patterns
                    WHERE occurrences >= ? AND confidence >= ?
                    ORDER BY occurrences DESC, confidence DESC
                    LIMIT ?
                    """,
                    (min_occurrences, min_confidence, limit),
                )
            return [self._row_to_pattern(row) for row in cursor.fetchall()]

    @staticmethod
    def _row_to_pattern(row: sqlite3.Row) -> LearnedPattern:
        return LearnedPattern(
            id=row["id"],
            pattern_signature=row["pattern_signature"],
            pattern_type=PatternType(row["pattern_type"]),
            pattern_data=load_json(row["pattern_data"], {}, pattern_id=row["id"]),
            occurrences=row["occurrences"],
            confidence=row["confidence"],
            first_seen=datetime.fromisoformat(row["first_seen"]),
            last_seen=datetime.fromisoformat(row["last_seen"]),
            tool_suggestion=load_json(
                row["tool_suggestion"], None, pattern_id=row["id"]
            ),
            tool_id=row["tool_id"],
            auto_created=bool(row["auto_created"]),
        )
