"""Tests for rule application tracking and effectiveness scoring."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import pytest

from toolwright.core.config import EffectivenessConfig
from toolwright.rules import RuleApplicationTracker, compute_effectiveness
from toolwright.store import LearningStore, ValidationRule

MakeRule = Callable[..., ValidationRule]


@pytest.fixture
def tracker(store: LearningStore) -> RuleApplicationTracker:
    return RuleApplicationTracker(store)


# =========================================================================
# compute_effectiveness()
# =========================================================================


class TestComputeEffectiveness:
    @pytest.mark.parametrize(
        ("applications", "successes", "false_positives", "fixes", "expected"),
        [
            (0, 0, 0, 0, 0.0),
            (1, 1, 0, 0, 0.16),
            (5, 5, 0, 0, 0.8),
            (5, 5, 0, 5, 1.0),
            (10, 5, 0, 0, 0.4),
            (10, 10, 5, 0, 0.4),
            (10, 0, 10, 0, 0.0),
            (2, 2, 0, 2, 0.4),
        ],
    )
    def test_values(
        self,
        applications: int,
        successes: int,
        false_positives: int,
        fixes: int,
        expected: float,
    ) -> None:
        score = compute_effectiveness(applications, successes, false_positives, fixes)
        assert score == pytest.approx(expected)

    def test_always_within_unit_interval(self) -> None:
        for n in range(0, 15):
            for s in range(0, n + 1):
                score = compute_effectiveness(n, s, n - s, s)
                assert 0.0 <= score <= 1.0

    def test_custom_weights(self) -> None:
        config = EffectivenessConfig(success_weight=0.5, fix_weight=0.5, volume_floor=1)
        assert compute_effectiveness(4, 4, 0, 2, config) == pytest.approx(0.75)


# =========================================================================
# RuleApplicationTracker
# =========================================================================


class TestTracker:
    def test_each_application_rescores(
        self, store: LearningStore, tracker: RuleApplicationTracker, make_rule: MakeRule
    ) -> None:
        rule = make_rule()

        scores = [
            tracker.track_rule_application(rule.rule_id, "acme/crm", "acme", success=True)
            for _ in range(5)
        ]

        assert scores == pytest.approx([0.16, 0.32, 0.48, 0.64, 0.8])
        stored = store.get_rule(rule.rule_id)
        assert stored is not None
        assert stored.effectiveness_score == pytest.approx(0.8)

    def test_applications_recorded_newest_first(
        self, store: LearningStore, tracker: RuleApplicationTracker, make_rule: MakeRule
    ) -> None:
        rule = make_rule()
        base = datetime.now() - timedelta(minutes=5)
        tracker.track_rule_application(
            rule.rule_id, "acme/crm", "acme", success=True, applied_at=base
        )
        tracker.track_rule_application(
            rule.rule_id,
            "acme/web",
            "acme",
            success=False,
            file_path="src/app.js",
            line_number=12,
            matched_text="debug(",
            applied_at=base + timedelta(minutes=1),
        )

        applications = store.get_rule_applications(rule.rule_id)
        assert [a.project_path for a in applications] == ["acme/web", "acme/crm"]
        assert applications[0].success is False
        assert applications[0].line_number == 12
        assert applications[0].matched_text == "debug("

    def test_old_applications_ignored(
        self, store: LearningStore, tracker: RuleApplicationTracker, make_rule: MakeRule
    ) -> None:
        rule = make_rule()
        old = datetime.now() - timedelta(days=45)
        for _ in range(5):
            score = tracker.track_rule_application(
                rule.rule_id, "acme/crm", "acme", success=True, applied_at=old
            )
        assert score == 0.0

    def test_false_positives_lower_the_score(
        self, tracker: RuleApplicationTracker, make_rule: MakeRule
    ) -> None:
        rule = make_rule()
        for _ in range(4):
            tracker.track_rule_application(rule.rule_id, "acme/crm", "acme", success=True)
        score = tracker.track_rule_application(
            rule.rule_id, "acme/crm", "acme", success=False, false_positive=True
        )
        # success rate 0.8, false positive rate 0.2
        assert score == pytest.approx(0.8 * 0.8 * 0.8)


class TestFeedbackAtInsert:
    def test_false_positive_recorded_with_application(
        self, store: LearningStore, tracker: RuleApplicationTracker, make_rule: MakeRule
    ) -> None:
        rule = make_rule()
        for _ in range(4):
            tracker.track_rule_application(rule.rule_id, "acme/crm", "acme", success=True)

        score = tracker.track_rule_application(
            rule.rule_id,
            "acme/crm",
            "acme",
            success=False,
            false_positive=True,
            user_feedback="false positive on a comment",
        )

        latest = store.get_rule_applications(rule.rule_id, limit=1)[0]
        assert latest.success is False
        assert latest.false_positive is True
        assert latest.user_feedback == "false positive on a comment"
        assert score == pytest.approx(0.8 * 0.8 * 0.8)

    def test_missing_identity_stored_as_null(
        self, store: LearningStore, tracker: RuleApplicationTracker, make_rule: MakeRule
    ) -> None:
        rule = make_rule()
        tracker.track_rule_application(rule.rule_id, None, None, success=True)

        application = store.get_rule_applications(rule.rule_id)[0]
        assert application.project_path is None
        assert application.client_name is None
