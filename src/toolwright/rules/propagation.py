"""Rule propagation cycle.

One cycle performs, in order:

1. Promotion: rules whose recent evidence clears the promotion criteria
   are widened by exactly one scope.
2. Feedback learning: failed applications reported as false positives
   narrow their rule; ones reported as missing patterns seed new rules.
3. Deactivation: rules with enough use but poor statistics are switched
   off for good.
4. Confidence: effective rules gain confidence, ineffective ones lose it.
5. Audit: a summary entry, or an error entry if any step raised.

Promotion evidence only counts applications made since a rule's last
scope change, so a cycle with no new evidence changes no scopes.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from toolwright.core.config import PropagationConfig
from toolwright.core.logging import CycleContext, get_logger, with_context
from toolwright.rules.inference import RuleInference
from toolwright.store import (
    KnowledgeEntryType,
    LearningStore,
    RuleEvidence,
    RuleScope,
)

_logger = get_logger("rules.propagation")


@dataclass
class RulePromotion:
    rule_id: str
    old_scope: RuleScope
    new_scope: RuleScope
    effectiveness_score: float
    applications: int
    success_rate: float


@dataclass
class PropagationResult:
    """Outcome of one propagation cycle."""

    cycle_id: str
    promotions: list[RulePromotion] = field(default_factory=list)
    rules_deactivated: int = 0
    new_rules_learned: int = 0
    rules_refined: int = 0
    confidence_adjusted: int = 0
    duration_ms: int = 0
    skipped: bool = False
    """True when another cycle was already running in this process."""

    error: str | None = None

    @property
    def rules_promoted(self) -> int:
        return len(self.promotions)

    @property
    def succeeded(self) -> bool:
        return not self.skipped and self.error is None

    def stats(self) -> dict[str, int]:
        return {
            "rules_promoted": self.rules_promoted,
            "rules_deactivated": self.rules_deactivated,
            "new_rules_learned": self.new_rules_learned,
            "rules_refined": self.rules_refined,
            "confidence_adjusted": self.confidence_adjusted,
        }


class RulePropagationEngine:
    """Runs propagation cycles against a learning store.

    Only one cycle runs at a time per engine; an overlapping call returns
    a skipped result instead of waiting.

    Args:
        store: Learning store holding rules and applications.
        config: Promotion, deactivation and confidence criteria.
        inference: Rule inference used for feedback learning.
    """

    def __init__(
        self,
        store: LearningStore,
        config: PropagationConfig | None = None,
        inference: RuleInference | None = None,
    ) -> None:
        self.store = store
        self.config = config or PropagationConfig()
        self.inference = inference or RuleInference(store)
        self._lock = threading.Lock()

    # =========================================================================
    # Cycle
    # =========================================================================

    def run_cycle(self, now: datetime | None = None) -> PropagationResult:
        """Run one full propagation cycle.

        Failures are recorded as an ``error`` knowledge entry and reported
        on the result; they are not raised.
        """
        ctx = CycleContext(cycle_type="propagation", component="rules.propagation")
        result = PropagationResult(cycle_id=ctx.cycle_id)

        if not self._lock.acquire(blocking=False):
            _logger.warning("propagation_cycle_skipped", reason="already_running")
            result.skipped = True
            return result

        started = time.monotonic()
        try:
            with with_context(ctx):
                _logger.info("propagation_cycle_started")
                try:
                    result.promotions = self.promote_effective_rules(now)
                    learned, refined = self.learn_from_recent_failures(now)
                    result.new_rules_learned = learned
                    result.rules_refined = refined
                    result.rules_deactivated = self.deactivate_ineffective_rules(now)
                    result.confidence_adjusted = self.update_confidence_scores()
                    result.duration_ms = int((time.monotonic() - started) * 1000)
                    self._log_cycle(result)
                except Exception as e:
                    result.duration_ms = int((time.monotonic() - started) * 1000)
                    result.error = str(e) or type(e).__name__
                    _logger.exception("propagation_cycle_failed", error=result.error)
                    self._log_error(e)
                    return result

                _logger.info(
                    "propagation_cycle_completed",
                    duration_ms=result.duration_ms,
                    **result.stats(),
                )
        finally:
            self._lock.release()
        return result

    # =========================================================================
    # Promotion
    # =========================================================================

    def should_promote(self, evidence: RuleEvidence) -> bool:
        """Whether a rule's evidence clears every promotion criterion."""
        criteria = self.config.promotion
        scope = evidence.rule.scope
        if scope == RuleScope.GLOBAL:
            return False

        min_projects = (
            criteria.min_projects_from_project
            if scope == RuleScope.PROJECT
            else criteria.min_projects
        )
        if evidence.applications < criteria.min_applications:
            return False
        if evidence.success_rate < criteria.min_success_rate:
            return False
        if evidence.false_positive_rate > criteria.max_false_positive_rate:
            return False
        if evidence.rule.effectiveness_score < criteria.min_effectiveness:
            return False
        if evidence.projects_used < min_projects:
            return False
        if (
            scope == RuleScope.CLIENT
            and evidence.clients_used < criteria.min_clients_from_client
        ):
            return False
        return True

    def promote_effective_rules(self, now: datetime | None = None) -> list[RulePromotion]:
        """Widen every rule whose recent evidence clears the criteria."""
        criteria = self.config.promotion
        candidates = self.store.get_promotion_evidence(
            window_days=criteria.window_days,
            min_applications=criteria.min_applications,
            now=now,
        )

        promotions = []
        for evidence in candidates:
            if not self.should_promote(evidence):
                continue
            rule = evidence.rule
            new_scope = rule.scope.widen()
            if new_scope == rule.scope:
                continue
            owner = rule.client_name or evidence.primary_client
            if new_scope == RuleScope.CLIENT and owner is None:
                _logger.debug("promotion_skipped_no_client", rule_id=rule.rule_id)
                continue

            self.store.promote_rule(
                rule.rule_id,
                new_scope,
                client_name=owner if new_scope == RuleScope.CLIENT else None,
                now=now,
            )
            promotion = RulePromotion(
                rule_id=rule.rule_id,
                old_scope=rule.scope,
                new_scope=new_scope,
                effectiveness_score=rule.effectiveness_score,
                applications=evidence.applications,
                success_rate=evidence.success_rate,
            )
            self._log_promotion(promotion, rule.category)
            promotions.append(promotion)

        _logger.debug(
            "promotion_analysis_completed",
            candidates=len(candidates),
            promoted=len(promotions),
        )
        return promotions

    # =========================================================================
    # Feedback learning
    # =========================================================================

    def learn_from_recent_failures(self, now: datetime | None = None) -> tuple[int, int]:
        """Act on user feedback attached to recent failed applications.

        Each application is acted on once; it is marked processed with its
        outcome whatever that outcome is.

        Returns:
            Tuple of (new rules created, rules refined).
        """
        failures = self.store.get_feedback_failures(
            hours_back=self.config.feedback_window_hours, now=now
        )
        new_rules = 0
        refined = 0
        for failure in failures:
            feedback = failure.user_feedback.lower()
            outcome = "ignored"
            with self.store.batch_connection():
                if "false positive" in feedback:
                    outcome = "unchanged"
                    if self.inference.refine_rule_pattern(failure):
                        refined += 1
                        outcome = "refined"
                elif "missing pattern" in feedback:
                    outcome = "unchanged"
                    if self.inference.create_rule_from_feedback(failure) is not None:
                        new_rules += 1
                        outcome = "rule_created"
                self.store.mark_feedback_processed(
                    failure.application_id, outcome, now
                )
        return new_rules, refined

    # =========================================================================
    # Deactivation and confidence
    # =========================================================================

    def should_deactivate(self, evidence: RuleEvidence) -> bool:
        criteria = self.config.deactivation
        return (
            evidence.rule.effectiveness_score < criteria.min_effectiveness
            or (
                evidence.success_rate < criteria.min_success_rate
                and evidence.applications > criteria.success_rate_min_applications
            )
            or evidence.false_positive_rate > criteria.max_false_positive_rate
        )

    def deactivate_ineffective_rules(self, now: datetime | None = None) -> int:
        """Switch off rules with enough use and poor statistics."""
        criteria = self.config.deactivation
        candidates = self.store.get_deactivation_evidence(
            window_days=criteria.window_days,
            min_applications=criteria.min_applications,
            now=now,
        )
        deactivated = 0
        for evidence in candidates:
            if self.should_deactivate(evidence) and self.store.deactivate_rule(
                evidence.rule.rule_id
            ):
                deactivated += 1
        return deactivated

    def update_confidence_scores(self) -> int:
        adjustment = self.config.confidence
        return self.store.adjust_confidence_scores(
            boost_above=adjustment.boost_above,
            decay_below=adjustment.decay_below,
            step=adjustment.step,
            ceiling=adjustment.ceiling,
            floor=adjustment.floor,
        )

    # =========================================================================
    # Audit
    # =========================================================================

    def _log_promotion(self, promotion: RulePromotion, category: str) -> None:
        payload: dict[str, Any] = {
            "event": "rule_promotion",
            "rule_id": promotion.rule_id,
            "old_scope": promotion.old_scope.value,
            "new_scope": promotion.new_scope.value,
            "effectiveness_score": promotion.effectiveness_score,
            "applications": promotion.applications,
            "success_rate": promotion.success_rate,
            "timestamp": datetime.now().isoformat(),
        }
        self.store.add_knowledge_entry(
            KnowledgeEntryType.RULE_PROMOTION,
            title=f"Rule promoted: {promotion.rule_id}",
            content=payload,
            tags=["rule-promotion", "learning", promotion.new_scope.value, category],
        )

    def _log_cycle(self, result: PropagationResult) -> None:
        self.store.add_knowledge_entry(
            KnowledgeEntryType.SYSTEM_ACTIVITY,
            title="Rule propagation cycle completed",
            content={
                "event": "propagation_cycle",
                "cycle_id": result.cycle_id,
                "stats": result.stats(),
                "duration_ms": result.duration_ms,
                "timestamp": datetime.now().isoformat(),
            },
            tags=["propagation", "learning", "automation"],
        )

    def _log_error(self, error: Exception) -> None:
        try:
            self.store.add_knowledge_entry(
                KnowledgeEntryType.ERROR,
                title="Rule propagation failed",
                content={
                    "event": "propagation_error",
                    "error": str(error),
                    "error_type": type(error).__name__,
                    "timestamp": datetime.now().isoformat(),
                },
                tags=["propagation", "error", "system"],
            )
        except Exception as e:
            _logger.error("propagation_error_not_recorded", error=str(e))
