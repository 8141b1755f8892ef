"""Validation-rule mixin for LearningStore.

Rules live in one of four scopes, ordered from narrowest to widest:
project, client, organization, global. Reads are isolation preserving:
a client-scoped rule is only visible to its own client and a
project-scoped rule only to its own project. A rule's id is stable for
its whole life; promotion widens its scope in place and deactivation
switches it off without deleting it.
"""

import hashlib
import json
import re
import sqlite3
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from datetime import datetime, timedelta
from typing import Any

from toolwright.core.errors import RuleNotFoundError, RuleValidationError
from toolwright.core.logging import ToolwrightLogger
from toolwright.store.base import WhereBuilder, _logger, from_iso, to_iso
from toolwright.store.models import RulePriority, RuleScope, ValidationRule

# SQL fragments used to order rules by scope specificity and severity
_SCOPE_ORDER_SQL = """
    CASE scope
        WHEN 'project' THEN 1
        WHEN 'client' THEN 2
        WHEN 'organization' THEN 3
        WHEN 'global' THEN 4
    END
"""
_PRIORITY_ORDER_SQL = """
    CASE priority
        WHEN 'error' THEN 1
        WHEN 'warning' THEN 2
        ELSE 3
    END
"""


def make_rule_id(pattern: str, category: str, technology: str) -> str:
    """Build the stable rule id ``<category>-<technology>-<hash8>``."""
    digest = hashlib.md5(
        f"{pattern}|{category}|{technology}".encode(), usedforsecurity=False
    ).hexdigest()[:8]
    return f"{category}-{technology}-{digest}"


def row_to_rule(row: sqlite3.Row) -> ValidationRule:
    return ValidationRule(
        rule_id=row["rule_id"],
        scope=RuleScope(row["scope"]),
        category=row["category"],
        priority=RulePriority(row["priority"]),
        technology=row["technology"],
        pattern_text=row["pattern_text"],
        message=row["message"],
        confidence=row["confidence"],
        effectiveness_score=row["effectiveness_score"],
        is_active=bool(row["is_active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        pattern_type=row["pattern_type"],
        suggestion=row["suggestion"],
        auto_fix=bool(row["auto_fix"]),
        auto_fix_pattern=row["auto_fix_pattern"],
        learned_from=row["learned_from"],
        client_name=row["client_name"],
        project_path=row["project_path"],
        occurrences=row["occurrences"],
        scope_changed_at=from_iso(row["scope_changed_at"]),
        created_by=row["created_by"],
    )


def _check_pattern(pattern: str, pattern_type: str) -> None:
    if pattern_type != "regex":
        return
    try:
        re.compile(pattern)
    except re.error as e:
        raise RuleValidationError(f"Invalid rule pattern {pattern!r}: {e}") from e


class RuleMixin:
    """Mixin providing scoped validation rule storage.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _logger: Logger instance for logging

    Rule Lifecycle Methods:
    - create_validation_rule: Insert a new active rule
    - promote_rule: Widen a rule's scope by one rung
    - deactivate_rule: Switch a rule off (terminal)
    - update_rule_pattern: Replace a rule's pattern (feedback refinement)
    - record_rule_occurrence: Count a re-learned occurrence
    - adjust_confidence_scores: Apply the per-cycle confidence nudge

    Query Methods:
    - get_rules_for_scope: Isolation-preserving read for one caller
    - get_rule / list_rules / find_similar_rule
    - get_propagation_stats: Scope counts and recent promotions
    """

    # Type hints for attributes provided by LearningStoreBase
    _logger: ToolwrightLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    @staticmethod
    def determine_scopes_for_project(
        client_name: str | None, project_path: str | None
    ) -> list[RuleScope]:
        """Scopes whose rules apply to a caller.

        Global always applies; organization and client apply once a client
        is known; project applies once a project is known.
        """
        scopes = [RuleScope.GLOBAL]
        if client_name:
            scopes.extend([RuleScope.ORGANIZATION, RuleScope.CLIENT])
        if project_path:
            scopes.append(RuleScope.PROJECT)
        return scopes

    def create_validation_rule(
        self,
        scope: RuleScope | str,
        category: str,
        pattern: str,
        message: str,
        priority: RulePriority | str = RulePriority.WARNING,
        technology: str = "general",
        suggestion: str | None = None,
        auto_fix: bool = False,
        auto_fix_pattern: str | None = None,
        learned_from: str | None = None,
        client_name: str | None = None,
        project_path: str | None = None,
        confidence: float = 0.5,
        pattern_type: str = "regex",
        created_by: str = "system",
    ) -> ValidationRule | None:
        """Create a new active validation rule.

        Client-scoped rules are owned by ``client_name`` and project-scoped
        rules by ``project_path``; both default to ``learned_from``.

        Returns:
            The created rule, or None if a rule with the same id exists.

        Raises:
            RuleValidationError: If a required field is missing, the scope
                or priority is unknown, or the pattern is not a valid regex.
        """
        missing = [
            name
            for name, value in (
                ("scope", scope),
                ("category", category),
                ("pattern", pattern),
                ("message", message),
            )
            if not value
        ]
        if missing:
            raise RuleValidationError(
                f"Validation rule is missing required fields: {', '.join(missing)}"
            )
        try:
            scope = RuleScope(scope)
            priority = RulePriority(priority)
        except ValueError as e:
            raise RuleValidationError(str(e)) from e
        _check_pattern(pattern, pattern_type)

        if scope == RuleScope.CLIENT and client_name is None:
            client_name = learned_from
        if scope == RuleScope.PROJECT and project_path is None:
            project_path = learned_from

        rule_id = make_rule_id(pattern, category, technology)
        now = datetime.now().isoformat()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO validation_rules (
                    rule_id, scope, category, priority, technology,
                    pattern_text, pattern_type, message, suggestion,
                    auto_fix, auto_fix_pattern, learned_from,
                    client_name, project_path, confidence,
                    created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule_id,
                    scope.value,
                    category,
                    priority.value,
                    technology,
                    pattern,
                    pattern_type,
                    message,
                    suggestion,
                    int(auto_fix),
                    auto_fix_pattern,
                    learned_from,
                    client_name,
                    project_path,
                    max(0.0, min(1.0, confidence)),
                    created_by,
                    now,
                    now,
                ),
            )
            if cursor.rowcount == 0:
                _logger.debug("rule_exists", rule_id=rule_id)
                return None
            row = conn.execute(
                "SELECT * FROM validation_rules WHERE rule_id = ?", (rule_id,)
            ).fetchone()

        _logger.info(
            "rule_created",
            rule_id=rule_id,
            scope=scope.value,
            technology=technology,
        )
        return row_to_rule(row)

    def get_rules_for_scope(
        self,
        scopes: Sequence[RuleScope],
        technologies: Sequence[str] | None = None,
        client_name: str | None = None,
        project_path: str | None = None,
    ) -> list[ValidationRule]:
        """Get the active rules visible to one caller.

        Global and organization rules are always visible. Client rules are
        visible only when their owning client equals ``client_name``, and
        project rules only when their owning project equals
        ``project_path``.

        Returns:
            Rules ordered by scope specificity (project first), then
            priority, effectiveness, and confidence.
        """
        if not scopes:
            return []

        wb = WhereBuilder()
        wb.add("is_active = 1")
        wb.add_in("scope", [RuleScope(s).value for s in scopes])
        if technologies:
            wb.add_in("technology", list(technologies))
        wb.add(
            """(
                scope IN ('global', 'organization')
                OR (scope = 'client' AND client_name = ?)
                OR (scope = 'project' AND project_path = ?)
            )""",
            client_name,
            project_path,
        )
        where_sql, params = wb.build()

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT * FROM validation_rules
                WHERE {where_sql}
                ORDER BY {_SCOPE_ORDER_SQL}, {_PRIORITY_ORDER_SQL},
                         effectiveness_score DESC, confidence DESC
                """,
                params,
            )
            return [row_to_rule(row) for row in cursor.fetchall()]

    def get_rule(self, rule_id: str) -> ValidationRule | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM validation_rules WHERE rule_id = ?", (rule_id,)
            ).fetchone()
        return row_to_rule(row) if row else None

    def list_rules(
        self,
        scope: RuleScope | None = None,
        technology: str | None = None,
        active_only: bool = True,
        limit: int = 100,
    ) -> list[ValidationRule]:
        """List rules for operators, without visibility filtering."""
        wb = WhereBuilder()
        if active_only:
            wb.add("is_active = 1")
        if scope is not None:
            wb.add("scope = ?", scope.value)
        if technology is not None:
            wb.add("technology = ?", technology)
        where_sql, params = wb.build()

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT * FROM validation_rules
                WHERE {where_sql}
                ORDER BY {_SCOPE_ORDER_SQL}, {_PRIORITY_ORDER_SQL},
                         effectiveness_score DESC, confidence DESC
                LIMIT ?
                """,
                (*params, limit),
            )
            return [row_to_rule(row) for row in cursor.fetchall()]

    def find_similar_rule(
        self, pattern: str, technology: str = "general"
    ) -> ValidationRule | None:
        """Find an active rule with exactly this pattern and technology."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM validation_rules
                WHERE pattern_text = ? AND technology = ? AND is_active = 1
                LIMIT 1
                """,
                (pattern, technology),
            ).fetchone()
        return row_to_rule(row) if row else None

    def promote_rule(
        self,
        rule_id: str,
        new_scope: RuleScope,
        client_name: str | None = None,
        now: datetime | None = None,
    ) -> ValidationRule:
        """Widen a rule's scope in place.

        Args:
            rule_id: Rule to promote.
            new_scope: Target scope; must be wider than the current one.
            client_name: Owning client to record when the rule becomes
                client-scoped and has none yet.
            now: Time of the scope change; defaults to the current time.

        Raises:
            RuleNotFoundError: If the rule does not exist.
            RuleValidationError: If ``new_scope`` is not wider.
        """
        rule = self.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        if new_scope.rank <= rule.scope.rank:
            raise RuleValidationError(
                f"Cannot move rule {rule_id} from {rule.scope.value} "
                f"to {new_scope.value}: scopes only widen"
            )

        changed_at = to_iso(now)
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE validation_rules
                SET scope = ?,
                    client_name = COALESCE(client_name, ?),
                    scope_changed_at = ?,
                    updated_at = ?
                WHERE rule_id = ?
                """,
                (new_scope.value, client_name, changed_at, changed_at, rule_id),
            )

        _logger.info(
            "rule_promoted",
            rule_id=rule_id,
            old_scope=rule.scope.value,
            new_scope=new_scope.value,
        )
        promoted = self.get_rule(rule_id)
        if promoted is None:
            raise RuleNotFoundError(rule_id)
        return promoted

    def deactivate_rule(self, rule_id: str) -> bool:
        """Switch a rule off. The row and its history are kept.

        Returns:
            True if an active rule was deactivated.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE validation_rules
                SET is_active = 0, updated_at = ?
                WHERE rule_id = ? AND is_active = 1
                """,
                (datetime.now().isoformat(), rule_id),
            )
            changed = cursor.rowcount > 0

        if changed:
            _logger.info("rule_deactivated", rule_id=rule_id)
        return changed

    def update_rule_pattern(
        self,
        rule_id: str,
        pattern: str,
        confidence_delta: float = 0.0,
    ) -> None:
        """Replace a rule's pattern and nudge its confidence.

        Confidence stays within [0.1, 1.0].

        Raises:
            RuleNotFoundError: If the rule does not exist.
            RuleValidationError: If the new pattern is not a valid regex.
        """
        _check_pattern(pattern, "regex")
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE validation_rules
                SET pattern_text = ?,
                    confidence = MAX(0.1, MIN(1.0, confidence + ?)),
                    updated_at = ?
                WHERE rule_id = ?
                """,
                (pattern, confidence_delta, datetime.now().isoformat(), rule_id),
            )
            if cursor.rowcount == 0:
                raise RuleNotFoundError(rule_id)

    def record_rule_occurrence(self, rule_id: str, confidence_step: float = 0.05) -> None:
        """Count one more sighting of an already known rule."""
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE validation_rules
                SET occurrences = occurrences + 1,
                    confidence = MIN(1.0, confidence + ?),
                    updated_at = ?
                WHERE rule_id = ?
                """,
                (confidence_step, datetime.now().isoformat(), rule_id),
            )

    def adjust_confidence_scores(
        self,
        boost_above: float,
        decay_below: float,
        step: float,
        ceiling: float = 1.0,
        floor: float = 0.1,
    ) -> int:
        """Boost confident-and-effective rules, decay ineffective ones.

        Returns:
            Number of active rules whose confidence was adjusted.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE validation_rules
                SET confidence = CASE
                        WHEN effectiveness_score > ? THEN MIN(?, confidence + ?)
                        ELSE MAX(?, confidence - ?)
                    END,
                    updated_at = ?
                WHERE is_active = 1
                  AND (effectiveness_score > ? OR effectiveness_score < ?)
                """,
                (
                    boost_above,
                    ceiling,
                    step,
                    floor,
                    step,
                    datetime.now().isoformat(),
                    boost_above,
                    decay_below,
                ),
            )
            return cursor.rowcount

    def get_propagation_stats(self, days: int = 7) -> dict[str, Any]:
        """Summarize active rules and promotions of the last ``days`` days."""
        cutoff = (datetime.now() - timedelta(days=days)).isoformat()
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) as total_rules,
                    SUM(CASE WHEN scope = 'global' THEN 1 ELSE 0 END) as global_rules,
                    SUM(CASE WHEN scope = 'organization' THEN 1 ELSE 0 END)
                        as organization_rules,
                    SUM(CASE WHEN scope = 'client' THEN 1 ELSE 0 END) as client_rules,
                    SUM(CASE WHEN scope = 'project' THEN 1 ELSE 0 END) as project_rules,
                    AVG(effectiveness_score) as avg_effectiveness,
                    AVG(confidence) as avg_confidence
                FROM validation_rules
                WHERE is_active = 1
                """
            ).fetchone()
            inactive = conn.execute(
                "SELECT COUNT(*) FROM validation_rules WHERE is_active = 0"
            ).fetchone()[0]
            promotions = conn.execute(
                """
                SELECT id, content FROM knowledge_entries
                WHERE entry_type = 'rule_promotion' AND created_at >= ?
                ORDER BY created_at DESC
                """,
                (cutoff,),
            ).fetchall()

        details: list[dict[str, Any]] = []
        for promo in promotions:
            try:
                details.append(json.loads(promo["content"]))
            except json.JSONDecodeError:
                _logger.debug("stored_json_malformed", entry_id=promo["id"])

        return {
            "total_rules": row["total_rules"],
            "global_rules": row["global_rules"] or 0,
            "organization_rules": row["organization_rules"] or 0,
            "client_rules": row["client_rules"] or 0,
            "project_rules": row["project_rules"] or 0,
            "inactive_rules": inactive,
            "avg_effectiveness": row["avg_effectiveness"] or 0.0,
            "avg_confidence": row["avg_confidence"] or 0.0,
            "recent_promotions": len(details),
            "promotion_details": details,
        }
