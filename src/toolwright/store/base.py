"""Base class for LearningStore with connection and schema management.

This module provides the foundational `LearningStoreBase` class that handles:
- SQLite database connection management with WAL mode
- Schema creation and versioning
- Timestamp helpers shared by the mixins

Mixins inherit from this base to add table-specific functionality.
"""

import contextvars
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from toolwright.core.config import DEFAULT_DB_PATH
from toolwright.core.errors import StoreError
from toolwright.core.logging import get_logger

# Module-level logger for the learning store
_logger = get_logger("store")

# SQLite accepts str, int, float, bytes, and None as bind parameters.
SQLParam = str | int | float | bytes | None


class WhereBuilder:
    """Accumulates SQL WHERE clauses and their bound parameters.

    Clauses are joined with AND.

    Usage::

        wb = WhereBuilder()
        wb.add("scope = ?", scope)
        wb.add("is_active = 1")
        where_sql, params = wb.build()
        conn.execute(f"SELECT * FROM validation_rules WHERE {where_sql}", params)
    """

    __slots__ = ("_clauses", "_params")

    def __init__(self) -> None:
        self._clauses: list[str] = []
        self._params: list[SQLParam] = []

    def add(self, clause: str, *params: SQLParam) -> None:
        """Append a WHERE clause with its bound parameters."""
        self._clauses.append(clause)
        self._params.extend(params)

    def add_in(self, column: str, values: list[str]) -> None:
        """Append a ``column IN (?, ...)`` clause."""
        placeholders = ", ".join("?" for _ in values)
        self.add(f"{column} IN ({placeholders})", *values)

    def build(self) -> tuple[str, tuple[SQLParam, ...]]:
        """Return the combined WHERE fragment and parameter tuple.

        Returns ``("1=1", ())`` when no clauses have been added.
        """
        if not self._clauses:
            return "1=1", ()
        return " AND ".join(self._clauses), tuple(self._params)


def to_iso(value: datetime | None) -> str:
    """Format a timestamp for storage, defaulting to now."""
    return (value or datetime.now()).isoformat()


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class LearningStoreBase:
    """SQLite-based learning store base class.

    Provides persistent storage for tool executions, learned patterns,
    generated tools, scoped validation rules, rule applications, and
    knowledge entries. Uses WAL mode for safe concurrent readers.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    # Schema version - increment when schema changes
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize the learning store.

        Creates the database directory if needed and creates the schema.

        Args:
            db_path: Path to the SQLite database file.
                    Defaults to ~/.toolwright/learning.db

        Raises:
            StoreError: If the database cannot be created or migrated.
        """
        self.db_path = db_path or DEFAULT_DB_PATH
        self._logger = _logger
        # Batch connection is scoped per asyncio task
        self._batch_conn: contextvars.ContextVar[sqlite3.Connection | None] = (
            contextvars.ContextVar("_batch_conn", default=None)
        )
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._migrate_if_needed()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open learning store {self.db_path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper configuration.

        Inside a ``batch_connection()`` block the cached connection is reused
        and committed once by the batch. Otherwise a fresh connection is
        opened, committed on success, rolled back on error, and closed.

        Yields:
            A configured sqlite3.Connection instance.

        Raises:
            sqlite3.Error: If the connection or a statement fails.
        """
        batch = self._batch_conn.get()
        if batch is not None:
            yield batch
            return

        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            _logger.warning(
                "database_operation_failed",
                db_path=str(self.db_path),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        finally:
            conn.close()

    @contextmanager
    def batch_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Reuse a single connection across multiple operations.

        The connection is committed once on successful exit or rolled back on
        error.

        Example::

            with store.batch_connection():
                for rule in store.list_rules(active_only=True):
                    store.insert_rule_application(rule.rule_id, ...)
        """
        conn = self._connect()
        token = self._batch_conn.set(conn)
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            _logger.warning(
                "batch_operation_failed",
                db_path=str(self.db_path),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        finally:
            self._batch_conn.reset(token)
            conn.close()

    def _migrate_if_needed(self) -> None:
        """Create the schema if the stored version is older than ours.

        Uses IF NOT EXISTS throughout, so running it repeatedly is safe.
        """
        with self._get_connection() as conn:
            try:
                row = conn.execute(
                    "SELECT version FROM schema_version LIMIT 1"
                ).fetchone()
                current_version = row["version"] if row else 0
            except sqlite3.OperationalError:
                current_version = 0

            if current_version < self.SCHEMA_VERSION:
                self._create_schema(conn)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        self._create_schema_version_table(conn)
        self._create_tool_executions_table(conn)
        self._create_generated_tools_table(conn)
        self._create_learned_patterns_table(conn)
        self._create_validation_rules_table(conn)
        self._create_rule_applications_table(conn)
        self._create_processed_feedback_table(conn)
        self._create_knowledge_entries_table(conn)

        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (self.SCHEMA_VERSION,),
        )

        self._logger.info("schema_created", version=self.SCHEMA_VERSION)

    @staticmethod
    def _create_schema_version_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """)

    @staticmethod
    def _create_tool_executions_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tool_executions (
                id TEXT PRIMARY KEY,
                tool_name TEXT NOT NULL,
                parameters TEXT NOT NULL DEFAULT '{}',
                result TEXT,
                success INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                execution_time_ms INTEGER,
                session_id TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_exec_tool ON tool_executions(tool_name)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_exec_created "
            "ON tool_executions(created_at DESC)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_exec_session ON tool_executions(session_id)"
        )

    @staticmethod
    def _create_generated_tools_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS generated_tools (
                id TEXT PRIMARY KEY,
                tool_name TEXT UNIQUE NOT NULL,
                tool_category TEXT,
                source_pattern_id TEXT,
                code_content TEXT NOT NULL,
                config TEXT NOT NULL DEFAULT '{}',
                usage_count INTEGER DEFAULT 0,
                success_rate REAL DEFAULT 0.0,
                is_active INTEGER DEFAULT 1,
                version INTEGER DEFAULT 1,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tools_active "
            "ON generated_tools(is_active, tool_name)"
        )

    @staticmethod
    def _create_learned_patterns_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS learned_patterns (
                id TEXT PRIMARY KEY,
                pattern_signature TEXT UNIQUE NOT NULL,
                pattern_type TEXT NOT NULL,
                pattern_data TEXT NOT NULL DEFAULT '{}',
                occurrences INTEGER DEFAULT 1,
                confidence REAL DEFAULT 0.0,
                tool_suggestion TEXT,
                tool_id TEXT REFERENCES generated_tools(id),
                auto_created INTEGER DEFAULT 0,
                first_seen TIMESTAMP NOT NULL,
                last_seen TIMESTAMP NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_patterns_occurrences "
            "ON learned_patterns(occurrences DESC)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_patterns_confidence "
            "ON learned_patterns(confidence DESC)"
        )

    @staticmethod
    def _create_validation_rules_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS validation_rules (
                rule_id TEXT PRIMARY KEY,
                scope TEXT NOT NULL,
                category TEXT NOT NULL,
                priority TEXT NOT NULL DEFAULT 'warning',
                technology TEXT NOT NULL DEFAULT 'general',
                pattern_text TEXT NOT NULL,
                pattern_type TEXT DEFAULT 'regex',
                message TEXT NOT NULL,
                suggestion TEXT,
                auto_fix INTEGER DEFAULT 0,
                auto_fix_pattern TEXT,
                learned_from TEXT,
                client_name TEXT,
                project_path TEXT,
                confidence REAL DEFAULT 0.5,
                occurrences INTEGER DEFAULT 1,
                effectiveness_score REAL DEFAULT 0.0,
                is_active INTEGER DEFAULT 1,
                scope_changed_at TIMESTAMP,
                created_by TEXT DEFAULT 'system',
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rules_scope ON validation_rules(scope)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rules_technology "
            "ON validation_rules(technology)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rules_active ON validation_rules(is_active)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rules_effectiveness "
            "ON validation_rules(effectiveness_score DESC)"
        )

    @staticmethod
    def _create_rule_applications_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS rule_applications (
                id TEXT PRIMARY KEY,
                rule_id TEXT NOT NULL REFERENCES validation_rules(rule_id),
                project_path TEXT,
                client_name TEXT,
                file_path TEXT,
                line_number INTEGER,
                matched_text TEXT,
                success INTEGER NOT NULL,
                false_positive INTEGER DEFAULT 0,
                fix_applied INTEGER DEFAULT 0,
                user_feedback TEXT,
                execution_time_ms INTEGER,
                applied_at TIMESTAMP NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_apps_rule ON rule_applications(rule_id)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_apps_applied "
            "ON rule_applications(applied_at DESC)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_apps_success ON rule_applications(success)"
        )

    @staticmethod
    def _create_processed_feedback_table(conn: sqlite3.Connection) -> None:
        # Feedback applications already acted on by a propagation cycle
        conn.execute("""
            CREATE TABLE IF NOT EXISTS processed_feedback (
                application_id TEXT PRIMARY KEY
                    REFERENCES rule_applications(id),
                outcome TEXT NOT NULL,
                processed_at TIMESTAMP NOT NULL
            )
        """)

    @staticmethod
    def _create_knowledge_entries_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS knowledge_entries (
                id TEXT PRIMARY KEY,
                entry_type TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_knowledge_type "
            "ON knowledge_entries(entry_type)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_knowledge_created "
            "ON knowledge_entries(created_at DESC)"
        )
