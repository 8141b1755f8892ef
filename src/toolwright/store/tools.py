"""Generated-tool mixin for LearningStore."""

import json
import sqlite3
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any

from toolwright.core.logging import ToolwrightLogger
from toolwright.store.base import _logger
from toolwright.store.models import GeneratedTool
from toolwright.store.patterns import load_json


class ToolMixin:
    """Mixin providing generated tool persistence.

    Tools are created at most once per source pattern and are deactivated
    rather than deleted.
    """

    # Type hints for attributes provided by LearningStoreBase
    _logger: ToolwrightLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    def insert_generated_tool(
        self,
        tool_name: str,
        code_content: str,
        config: dict[str, Any],
        source_pattern_id: str | None = None,
        tool_category: str = "automated",
    ) -> GeneratedTool:
        """Persist a rendered tool.

        Raises:
            sqlite3.IntegrityError: If the tool name is already taken.
        """
        tool_id = str(uuid.uuid4())
        now = datetime.now()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO generated_tools (
                    id, tool_name, tool_category, source_pattern_id,
                    code_content, config, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tool_id,
                    tool_name,
                    tool_category,
                    source_pattern_id,
                    code_content,
                    json.dumps(config),
                    now.isoformat(),
                    now.isoformat(),
                ),
            )

        _logger.info(
            "tool_persisted",
            tool_id=tool_id,
            tool_name=tool_name,
            source_pattern_id=source_pattern_id,
        )
        return GeneratedTool(
            id=tool_id,
            tool_name=tool_name,
            tool_category=tool_category,
            source_pattern_id=source_pattern_id,
            code_content=code_content,
            config=config,
            is_active=True,
            created_at=now,
        )

    def tool_name_exists(self, tool_name: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM generated_tools WHERE tool_name = ?",
                (tool_name,),
            ).fetchone()
        return row is not None

    def get_generated_tool_by_id(self, tool_id: str) -> GeneratedTool | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM generated_tools WHERE id = ?",
                (tool_id,),
            ).fetchone()
        return self._row_to_tool(row) if row else None

    def list_generated_tools(self, active_only: bool = True) -> list[GeneratedTool]:
        """List generated tools, newest first."""
        query = "SELECT * FROM generated_tools"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at DESC"
        with self._get_connection() as conn:
            return [self._row_to_tool(row) for row in conn.execute(query).fetchall()]

    def deactivate_generated_tool(self, tool_name: str) -> bool:
        """Deactivate a generated tool.

        Returns:
            True if an active tool was deactivated.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE generated_tools
                SET is_active = 0, updated_at = ?
                WHERE tool_name = ? AND is_active = 1
                """,
                (datetime.now().isoformat(), tool_name),
            )
            changed = cursor.rowcount > 0

        if changed:
            _logger.info("tool_deactivated", tool_name=tool_name)
        return changed

    @staticmethod
    def _row_to_tool(row: sqlite3.Row) -> GeneratedTool:
        return GeneratedTool(
            id=row["id"],
            tool_name=row["tool_name"],
            tool_category=row["tool_category"],
            source_pattern_id=row["source_pattern_id"],
            code_content=row["code_content"],
            config=load_json(row["config"], {}, tool_id=row["id"]),
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            usage_count=row["usage_count"],
            success_rate=row["success_rate"],
            version=row["version"],
        )
