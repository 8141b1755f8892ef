"""Rule application tracking and effectiveness scoring.

Every time a rule is evaluated against real input an application is
recorded, and the rule's effectiveness score is recomputed from its
applications in the trailing window:

    base  = success_weight * success_rate * (1 - false_positive_rate)
            + fix_weight * fix_rate
    score = clamp(base * min(1, n / volume_floor), 0, 1)

Scaling by volume keeps a single lucky application from producing a
high score.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from toolwright.core.config import EffectivenessConfig
from toolwright.core.logging import get_logger
from toolwright.store import LearningStore

_logger = get_logger("rules.effectiveness")


def compute_effectiveness(
    applications: int,
    successes: int,
    false_positives: int,
    fixes_applied: int,
    config: EffectivenessConfig | None = None,
) -> float:
    """Score a rule from its application counts.

    Returns:
        Effectiveness in [0, 1]; 0.0 when there are no applications.
    """
    if applications <= 0:
        return 0.0
    cfg = config or EffectivenessConfig()

    success_rate = successes / applications
    false_positive_rate = false_positives / applications
    fix_rate = fixes_applied / applications

    base = (
        cfg.success_weight * success_rate * (1.0 - false_positive_rate)
        + cfg.fix_weight * fix_rate
    )
    volume = min(1.0, applications / cfg.volume_floor)
    return max(0.0, min(1.0, round(base * volume, 6)))


class RuleApplicationTracker:
    """Records rule applications and keeps effectiveness scores current.

    Args:
        store: Learning store holding rules and applications.
        config: Effectiveness weights and window.
    """

    def __init__(
        self,
        store: LearningStore,
        config: EffectivenessConfig | None = None,
    ) -> None:
        self.store = store
        self.config = config or EffectivenessConfig()

    def track_rule_application(
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
    ) -> float:
        """Record one application and rescore the rule.

        Applications are immutable, so user feedback and the false-positive
        flag are given here. A missing project or client is stored as NULL
        and never counts as a distinct user of the rule.

        Returns:
            The rule's new effectiveness score.
        """
        with self.store.batch_connection():
            self.store.insert_rule_application(
                rule_id=rule_id,
                project_path=project_path,
                client_name=client_name,
                success=success,
                false_positive=false_positive,
                fix_applied=fix_applied,
                file_path=file_path,
                line_number=line_number,
                matched_text=matched_text,
                user_feedback=user_feedback,
                execution_time_ms=execution_time_ms,
                applied_at=applied_at,
            )
            score = self.recompute(rule_id)

        _logger.debug(
            "rule_application_tracked",
            rule_id=rule_id,
            success=success,
            false_positive=false_positive,
            effectiveness=score,
        )
        return score

    def recompute(self, rule_id: str, now: datetime | None = None) -> float:
        """Recompute and persist a rule's score from its recent applications."""
        since = (now or datetime.now()) - timedelta(days=self.config.window_days)
        applications, successes, false_positives, fixes = (
            self.store.get_application_counts(rule_id, since)
        )
        score = compute_effectiveness(
            applications, successes, false_positives, fixes, self.config
        )
        self.store.set_effectiveness_score(rule_id, score)
        return score
