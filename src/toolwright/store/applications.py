"""Rule-application mixin for LearningStore.

Applications are immutable once recorded; user feedback arrives with the
application itself. Aggregations over them are the evidence used to score, promote, and
deactivate validation rules.
"""

import sqlite3
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime, timedelta

from toolwright.core.logging import ToolwrightLogger
from toolwright.store.base import _logger, to_iso
from toolwright.store.models import (
    FeedbackFailure,
    RuleApplication,
    RuleEvidence,
    RuleScope,
)
from toolwright.store.rules import row_to_rule

# Aggregate columns shared by the evidence queries. The applications join
# is filtered by window start and, for promotion, by the last scope change.
_EVIDENCE_COLUMNS = """
    r.*,
    COUNT(ra.id) as applications,
    SUM(CASE WHEN ra.success = 1 THEN 1 ELSE 0 END) as successes,
    SUM(CASE WHEN ra.false_positive = 1 THEN 1 ELSE 0 END) as false_positives,
    SUM(CASE WHEN ra.fix_applied = 1 THEN 1 ELSE 0 END) as fixes_applied,
    AVG(ra.execution_time_ms) as avg_execution_time,
    COUNT(DISTINCT ra.project_path) as projects_used,
    COUNT(DISTINCT ra.client_name) as clients_used
"""


def _row_to_evidence(row: sqlite3.Row) -> RuleEvidence:
    keys = row.keys()
    return RuleEvidence(
        rule=row_to_rule(row),
        applications=row["applications"],
        successes=row["successes"] or 0,
        false_positives=row["false_positives"] or 0,
        fixes_applied=row["fixes_applied"] or 0,
        avg_execution_time_ms=row["avg_execution_time"],
        projects_used=row["projects_used"],
        clients_used=row["clients_used"],
        primary_client=row["primary_client"] if "primary_client" in keys else None,
    )


class ApplicationMixin:
    """Mixin providing rule application tracking and evidence queries.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _logger: Logger instance for logging
    """

    # Type hints for attributes provided by LearningStoreBase
    _logger: ToolwrightLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    def insert_rule_application(
        self,
        rule_id: str,
        project_path: str | None,
        client_name: str | None,
        success: bool,
        false_positive: bool = False,
        fix_applied: bool = False,
        file_path: str | None = None,
        line_number: int | None = None,
        matched_text: str | None = None,
        user_feedback: str | None = None,
        execution_time_ms: int | None = None,
        applied_at: datetime | None = None,
    ) -> str:
        """Append one rule application.

        Returns:
            The application id.
        """
        application_id = str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO rule_applications (
                    id, rule_id, project_path, client_name, file_path,
                    line_number, matched_text, success, false_positive,
                    fix_applied, user_feedback, execution_time_ms, applied_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    application_id,
                    rule_id,
                    project_path,
                    client_name,
                    file_path,
                    line_number,
                    matched_text,
                    int(success),
                    int(false_positive),
                    int(fix_applied),
                    user_feedback,
                    execution_time_ms,
                    to_iso(applied_at),
                ),
            )
        return application_id

    def get_application_counts(
        self, rule_id: str, since: datetime
    ) -> tuple[int, int, int, int]:
        """Count a rule's applications since a point in time.

        Returns:
            Tuple of (applications, successes, false positives, fixes applied).
        """
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) as applications,
                    SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) as successes,
                    SUM(CASE WHEN false_positive = 1 THEN 1 ELSE 0 END)
                        as false_positives,
                    SUM(CASE WHEN fix_applied = 1 THEN 1 ELSE 0 END) as fixes
                FROM rule_applications
                WHERE rule_id = ? AND applied_at >= ?
                """,
                (rule_id, since.isoformat()),
            ).fetchone()
        return (
            row["applications"],
            row["successes"] or 0,
            row["false_positives"] or 0,
            row["fixes"] or 0,
        )

    def set_effectiveness_score(self, rule_id: str, score: float) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE validation_rules
                SET effectiveness_score = ?, updated_at = ?
                WHERE rule_id = ?
                """,
                (score, datetime.now().isoformat(), rule_id),
            )

    def get_promotion_evidence(
        self,
        window_days: int = 7,
        min_applications: int = 3,
        now: datetime | None = None,
    ) -> list[RuleEvidence]:
        """Aggregate recent evidence for active, promotable rules.

        Only applications newer than both the window start and the rule's
        last scope change count, so evidence that earned one promotion is
        never reused for the next.

        Returns:
            Evidence for rules in project, client, or organization scope
            with at least ``min_applications`` counted applications, most
            effective first.
        """
        cutoff = ((now or datetime.now()) - timedelta(days=window_days)).isoformat()
        promotable = [
            s.value for s in (RuleScope.PROJECT, RuleScope.CLIENT, RuleScope.ORGANIZATION)
        ]
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_EVIDENCE_COLUMNS},
                    (
                        SELECT ra2.client_name FROM rule_applications ra2
                        WHERE ra2.rule_id = r.rule_id
                          AND ra2.client_name IS NOT NULL
                          AND ra2.applied_at >= ?
                          AND ra2.applied_at > COALESCE(r.scope_changed_at, '')
                        GROUP BY ra2.client_name
                        ORDER BY COUNT(*) DESC, ra2.client_name
                        LIMIT 1
                    ) as primary_client
                FROM validation_rules r
                JOIN rule_applications ra ON r.rule_id = ra.rule_id
                WHERE r.scope IN (?, ?, ?)
                  AND r.is_active = 1
                  AND ra.applied_at >= ?
                  AND ra.applied_at > COALESCE(r.scope_changed_at, '')
                GROUP BY r.rule_id
                HAVING applications >= ?
                ORDER BY r.effectiveness_score DESC, applications DESC
                """,
                (cutoff, *promotable, cutoff, min_applications),
            )
            return [_row_to_evidence(row) for row in cursor.fetchall()]

    def get_deactivation_evidence(
        self,
        window_days: int = 30,
        min_applications: int = 10,
        now: datetime | None = None,
    ) -> list[RuleEvidence]:
        """Aggregate evidence for active rules with enough recent use.

        Returns:
            Evidence for every active rule with at least
            ``min_applications`` applications in the window, least
            effective first.
        """
        cutoff = ((now or datetime.now()) - timedelta(days=window_days)).isoformat()
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_EVIDENCE_COLUMNS}
                FROM validation_rules r
                JOIN rule_applications ra ON r.rule_id = ra.rule_id
                WHERE r.is_active = 1
                  AND ra.applied_at >= ?
                GROUP BY r.rule_id
                HAVING applications >= ?
                ORDER BY r.effectiveness_score ASC
                """,
                (cutoff, min_applications),
            )
            return [_row_to_evidence(row) for row in cursor.fetchall()]

    def get_feedback_failures(
        self,
        hours_back: int = 24,
        now: datetime | None = None,
    ) -> list[FeedbackFailure]:
        """Get unprocessed failed applications that carry user feedback.

        Returns:
            Failures oldest first. Each application is returned until it is
            passed to ``mark_feedback_processed``.
        """
        cutoff = ((now or datetime.now()) - timedelta(hours=hours_back)).isoformat()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT
                    ra.id as application_id,
                    ra.rule_id,
                    ra.user_feedback,
                    ra.project_path,
                    ra.client_name,
                    ra.file_path,
                    ra.line_number,
                    ra.matched_text,
                    r.category,
                    r.technology
                FROM rule_applications ra
                JOIN validation_rules r ON ra.rule_id = r.rule_id
                WHERE ra.applied_at >= ?
                  AND ra.success = 0
                  AND ra.user_feedback IS NOT NULL
                  AND NOT EXISTS (
                      SELECT 1 FROM processed_feedback pf
                      WHERE pf.application_id = ra.id
                  )
                ORDER BY ra.applied_at
                """,
                (cutoff,),
            )
            failures = [
                FeedbackFailure(
                    application_id=row["application_id"],
                    rule_id=row["rule_id"],
                    user_feedback=row["user_feedback"],
                    category=row["category"],
                    technology=row["technology"],
                    project_path=row["project_path"],
                    client_name=row["client_name"],
                    file_path=row["file_path"],
                    line_number=row["line_number"],
                    matched_text=row["matched_text"],
                )
                for row in cursor.fetchall()
            ]

        _logger.debug("feedback_failures_loaded", count=len(failures))
        return failures

    def mark_feedback_processed(
        self,
        application_id: str,
        outcome: str,
        now: datetime | None = None,
    ) -> None:
        """Record that a feedback application has been acted on."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO processed_feedback
                    (application_id, outcome, processed_at)
                VALUES (?, ?, ?)
                """,
                (application_id, outcome, to_iso(now)),
            )

    def get_rule_applications(
        self, rule_id: str, limit: int = 50
    ) -> list[RuleApplication]:
        """Get a rule's applications, newest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM rule_applications
                WHERE rule_id = ?
                ORDER BY applied_at DESC, rowid DESC
                LIMIT ?
                """,
                (rule_id, limit),
            )
            return [
                RuleApplication(
                    id=row["id"],
                    rule_id=row["rule_id"],
                    project_path=row["project_path"],
                    client_name=row["client_name"],
                    success=bool(row["success"]),
                    applied_at=datetime.fromisoformat(row["applied_at"]),
                    false_positive=bool(row["false_positive"]),
                    fix_applied=bool(row["fix_applied"]),
                    file_path=row["file_path"],
                    line_number=row["line_number"],
                    matched_text=row["matched_text"],
                    user_feedback=row["user_feedback"],
                    execution_time_ms=row["execution_time_ms"],
                )
                for row in cursor.fetchall()
            ]
