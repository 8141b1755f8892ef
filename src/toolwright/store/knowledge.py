"""Knowledge-entry mixin for LearningStore.

Knowledge entries are the append-only audit trail written by the promoter
and the propagation cycle and read by external reporting tools.
"""

import json
import sqlite3
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime, timedelta
from typing import Any

from toolwright.core.logging import ToolwrightLogger
from toolwright.store.base import WhereBuilder
from toolwright.store.models import KnowledgeEntry, KnowledgeEntryType
from toolwright.store.patterns import load_json


class KnowledgeMixin:
    """Mixin providing knowledge entry recording and retrieval."""

    # Type hints for attributes provided by LearningStoreBase
    _logger: ToolwrightLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    def add_knowledge_entry(
        self,
        entry_type: KnowledgeEntryType,
        title: str,
        content: dict[str, Any] | str,
        tags: list[str] | None = None,
    ) -> str:
        """Append an audit entry.

        Args:
            entry_type: Kind of entry.
            title: Short human-readable title.
            content: JSON-serializable payload, or plain text.
            tags: Free-form tags for filtering.

        Returns:
            The entry id.
        """
        entry_id = str(uuid.uuid4())
        body = content if isinstance(content, str) else json.dumps(content)
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO knowledge_entries (
                    id, entry_type, title, content, tags, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    entry_type.value,
                    title,
                    body,
                    json.dumps(tags or []),
                    datetime.now().isoformat(),
                ),
            )
        return entry_id

    def get_knowledge_entries(
        self,
        entry_type: KnowledgeEntryType | None = None,
        tag: str | None = None,
        days: int | None = None,
        limit: int = 50,
    ) -> list[KnowledgeEntry]:
        """Get knowledge entries, newest first.

        Args:
            entry_type: Restrict to one entry type.
            tag: Only entries carrying this tag.
            days: Only entries created within this many days.
            limit: Maximum number of entries to return.
        """
        wb = WhereBuilder()
        if entry_type is not None:
            wb.add("entry_type = ?", entry_type.value)
        if days is not None:
            wb.add(
                "created_at >= ?",
                (datetime.now() - timedelta(days=days)).isoformat(),
            )
        where_sql, params = wb.build()

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT * FROM knowledge_entries
                WHERE {where_sql}
                ORDER BY created_at DESC, rowid DESC
                """,
                params,
            )
            entries: list[KnowledgeEntry] = []
            for row in cursor:
                entry = self._row_to_entry(row)
                if tag is not None and tag not in entry.tags:
                    continue
                entries.append(entry)
                if len(entries) >= limit:
                    break
        return entries

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            entry_type=KnowledgeEntryType(row["entry_type"]),
            title=row["title"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
            tags=load_json(row["tags"], [], entry_id=row["id"]),
        )
