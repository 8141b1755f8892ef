"""Tests for the rule propagation cycle.

Applications are recorded through the tracker so effectiveness scores are
exactly what the validation pipeline would have produced.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import pytest

from toolwright.core.config import PropagationConfig
from toolwright.rules import RuleApplicationTracker, RulePropagationEngine
from toolwright.store import (
    KnowledgeEntryType,
    LearningStore,
    RuleScope,
    ValidationRule,
)

MakeRule = Callable[..., ValidationRule]


@pytest.fixture
def tracker(store: LearningStore) -> RuleApplicationTracker:
    return RuleApplicationTracker(store)


@pytest.fixture
def engine(store: LearningStore) -> RulePropagationEngine:
    return RulePropagationEngine(store, PropagationConfig())


def _apply(
    tracker: RuleApplicationTracker,
    rule: ValidationRule,
    projects: list[str | None],
    client_name: str | None = "acme",
    **kwargs: Any,
) -> None:
    """Record one application per entry in ``projects``, a few minutes ago."""
    base = datetime.now() - timedelta(minutes=10)
    for i, project in enumerate(projects):
        tracker.track_rule_application(
            rule.rule_id,
            project,
            client_name,
            applied_at=base + timedelta(seconds=i),
            **kwargs,
        )


# =========================================================================
# Promotion
# =========================================================================


class TestPromotion:
    def test_effective_project_rule_widens_to_client(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT, client_name=None)
        _apply(tracker, rule, ["acme/crm"] * 3 + ["acme/web"] * 2, success=True)

        result = engine.run_cycle()

        assert result.succeeded
        assert [(p.rule_id, p.old_scope, p.new_scope) for p in result.promotions] == [
            (rule.rule_id, RuleScope.PROJECT, RuleScope.CLIENT)
        ]
        promoted = store.get_rule(rule.rule_id)
        assert promoted is not None
        assert promoted.scope == RuleScope.CLIENT
        assert promoted.client_name == "acme"
        assert promoted.scope_changed_at is not None

    def test_evidence_is_not_reused(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT)
        _apply(tracker, rule, ["acme/crm"] * 3 + ["acme/web"] * 2, success=True)

        engine.run_cycle()
        second = engine.run_cycle()

        assert second.promotions == []
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.scope == RuleScope.CLIENT

    def test_single_project_is_not_enough(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT)
        _apply(tracker, rule, ["acme/crm"] * 5, success=True)

        assert engine.run_cycle().promotions == []
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.scope == RuleScope.PROJECT

    def test_low_volume_is_not_enough(
        self,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT)
        # Four perfect applications score 0.64, below the 0.75 bar
        _apply(tracker, rule, ["acme/crm", "acme/web"] * 2, success=True)
        assert engine.run_cycle().promotions == []

    def test_client_rule_needs_two_clients(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.CLIENT)
        _apply(tracker, rule, ["acme/a", "acme/b", "acme/c"] * 2, success=True)
        assert engine.run_cycle().promotions == []

        _apply(tracker, rule, ["globex/a"], client_name="globex", success=True)
        result = engine.run_cycle()
        assert [p.new_scope for p in result.promotions] == [RuleScope.ORGANIZATION]

    def test_global_rules_never_promoted(
        self,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.GLOBAL)
        _apply(tracker, rule, ["a", "b", "c", "d", "e"], success=True)
        assert engine.run_cycle().promotions == []

    def test_anonymous_applications_are_not_a_project(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.ORGANIZATION)
        _apply(tracker, rule, ["p1", "p1", "p2", "p2"], success=True)
        _apply(tracker, rule, [None], client_name=None, success=True)

        evidence = store.get_promotion_evidence()
        assert [e.projects_used for e in evidence] == [2]
        assert [e.clients_used for e in evidence] == [1]
        assert engine.run_cycle().promotions == []
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.scope == RuleScope.ORGANIZATION

    def test_project_rule_without_client_stays_put(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT, client_name=None)
        _apply(
            tracker,
            rule,
            ["acme/crm"] * 3 + ["acme/web"] * 2,
            client_name=None,
            success=True,
        )

        assert engine.run_cycle().promotions == []
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.scope == RuleScope.PROJECT
        assert stored.client_name is None

    def test_scope_change_uses_cycle_clock(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT)
        _apply(tracker, rule, ["acme/crm"] * 3 + ["acme/web"] * 2, success=True)
        cycle_time = datetime.now() + timedelta(days=1)

        result = engine.run_cycle(now=cycle_time)

        assert [p.new_scope for p in result.promotions] == [RuleScope.CLIENT]
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.scope_changed_at == cycle_time

    def test_promotion_is_audited(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(scope=RuleScope.PROJECT, category="security")
        _apply(tracker, rule, ["acme/crm"] * 3 + ["acme/web"] * 2, success=True)

        engine.run_cycle()

        entries = store.get_knowledge_entries(entry_type=KnowledgeEntryType.RULE_PROMOTION)
        assert len(entries) == 1
        assert entries[0].tags == ["rule-promotion", "learning", "client", "security"]
        content = json.loads(entries[0].content)
        assert content["rule_id"] == rule.rule_id
        assert content["old_scope"] == "project"
        assert content["new_scope"] == "client"
        assert content["applications"] == 5

        stats = store.get_propagation_stats()
        assert stats["recent_promotions"] == 1
        assert stats["client_rules"] == 1
        assert stats["promotion_details"][0]["rule_id"] == rule.rule_id


# =========================================================================
# Feedback learning
# =========================================================================


class TestFeedbackLearning:
    def test_false_positive_refines_once(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(pattern=r"debug\w*\(")
        _apply(
            tracker,
            rule,
            ["acme/crm"],
            success=False,
            false_positive=True,
            matched_text="debugger(",
            user_feedback="False positive in a comment",
        )

        first = engine.run_cycle()
        second = engine.run_cycle()

        assert first.rules_refined == 1
        assert second.rules_refined == 0
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.pattern_text == r"(?!debugger\()(?:debug\w*\()"

    def test_refinements_accumulate_and_settle(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule(pattern=r"debug\w*\(")
        for text in ("debugger(", "debugLog("):
            _apply(
                tracker,
                rule,
                ["acme/crm"],
                success=False,
                matched_text=text,
                user_feedback="false positive",
            )

        first = engine.run_cycle()
        after_first = store.get_rule(rule.rule_id)
        second = engine.run_cycle()
        third = engine.run_cycle()

        assert first.rules_refined == 2
        assert second.rules_refined == 0
        assert third.rules_refined == 0
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert after_first is not None
        assert stored.pattern_text == after_first.pattern_text
        assert re.search(stored.pattern_text, "debugger(") is None
        assert re.search(stored.pattern_text, "debugLog(") is None
        assert re.search(stored.pattern_text, "debugPrint(")

    def test_missing_pattern_seeds_rule(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule()
        _apply(
            tracker,
            rule,
            ["acme/crm"],
            success=False,
            user_feedback="missing pattern: console.error(",
        )

        first = engine.run_cycle()
        second = engine.run_cycle()

        assert first.new_rules_learned == 1
        assert second.new_rules_learned == 0
        learned = [r for r in store.list_rules() if r.created_by == "feedback"]
        assert len(learned) == 1
        assert learned[0].scope == RuleScope.PROJECT
        assert learned[0].project_path == "acme/crm"
        assert learned[0].occurrences == 1

    def test_successful_applications_ignored(
        self,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule()
        _apply(tracker, rule, ["acme/crm"], success=True, user_feedback="false positive")
        result = engine.run_cycle()
        assert result.rules_refined == 0
        assert result.new_rules_learned == 0


# =========================================================================
# Deactivation and confidence
# =========================================================================


class TestDeactivation:
    def test_ineffective_rule_deactivated_for_good(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule()
        _apply(
            tracker, rule, ["acme/crm"] * 10, success=False, false_positive=True
        )

        first = engine.run_cycle()
        second = engine.run_cycle()

        assert first.rules_deactivated == 1
        assert second.rules_deactivated == 0
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.is_active is False

    def test_needs_minimum_volume(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        rule = make_rule()
        _apply(tracker, rule, ["acme/crm"] * 9, success=False, false_positive=True)

        assert engine.run_cycle().rules_deactivated == 0
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.is_active is True


class TestConfidence:
    def test_effective_rules_gain_and_ineffective_lose(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker,
        engine: RulePropagationEngine,
        make_rule: MakeRule,
    ) -> None:
        strong = make_rule(confidence=0.5)
        _apply(tracker, strong, ["acme/crm"] * 5, success=True, fix_applied=True)
        fresh = make_rule(confidence=0.5)

        result = engine.run_cycle()

        assert result.confidence_adjusted == 2
        strong_after = store.get_rule(strong.rule_id)
        fresh_after = store.get_rule(fresh.rule_id)
        assert strong_after is not None and fresh_after is not None
        assert strong_after.confidence == pytest.approx(0.6)
        assert fresh_after.confidence == pytest.approx(0.4)

    def test_confidence_floor(
        self, store: LearningStore, engine: RulePropagationEngine, make_rule: MakeRule
    ) -> None:
        rule = make_rule(confidence=0.15)
        engine.run_cycle()
        engine.run_cycle()
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.confidence == pytest.approx(0.1)


# =========================================================================
# Cycle bookkeeping
# =========================================================================


class TestCycle:
    def test_successful_cycle_is_audited(
        self, store: LearningStore, engine: RulePropagationEngine
    ) -> None:
        result = engine.run_cycle()

        assert result.succeeded
        entries = store.get_knowledge_entries(entry_type=KnowledgeEntryType.SYSTEM_ACTIVITY)
        assert len(entries) == 1
        assert entries[0].tags == ["propagation", "learning", "automation"]
        content = json.loads(entries[0].content)
        assert content["cycle_id"] == result.cycle_id
        assert content["stats"] == result.stats()

    def test_failure_recorded_not_raised(
        self,
        store: LearningStore,
        engine: RulePropagationEngine,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def locked(*args: Any, **kwargs: Any) -> None:
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(store, "get_promotion_evidence", locked)

        result = engine.run_cycle()

        assert result.succeeded is False
        assert result.error == "database is locked"
        errors = store.get_knowledge_entries(entry_type=KnowledgeEntryType.ERROR)
        assert len(errors) == 1
        assert errors[0].tags == ["propagation", "error", "system"]
        assert json.loads(errors[0].content)["error_type"] == "OperationalError"
        assert store.get_knowledge_entries(
            entry_type=KnowledgeEntryType.SYSTEM_ACTIVITY
        ) == []

    def test_overlapping_cycle_skipped(
        self, store: LearningStore, engine: RulePropagationEngine
    ) -> None:
        engine._lock.acquire()
        try:
            result = engine.run_cycle()
        finally:
            engine._lock.release()

        assert result.skipped is True
        assert result.succeeded is False
        assert store.get_knowledge_entries() == []

    def test_lock_released_after_failure(
        self,
        store: LearningStore,
        engine: RulePropagationEngine,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def boom(*args: Any, **kwargs: Any) -> None:
            raise RuntimeError("boom")

        monkeypatch.setattr(store, "get_feedback_failures", boom)
        assert engine.run_cycle().error == "boom"

        monkeypatch.undo()
        assert engine.run_cycle().succeeded
