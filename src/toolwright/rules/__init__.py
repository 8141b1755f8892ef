"""Scoped validation rules: tracking, inference, validation and propagation."""

from toolwright.rules.effectiveness import RuleApplicationTracker, compute_effectiveness
from toolwright.rules.inference import RuleInference
from toolwright.rules.propagation import (
    PropagationResult,
    RulePromotion,
    RulePropagationEngine,
)
from toolwright.rules.scheduler import PropagationScheduler
from toolwright.rules.validator import RuleValidator, ValidationIssue, ValidationReport

__all__ = [
    "PropagationResult",
    "PropagationScheduler",
    "RuleApplicationTracker",
    "RuleInference",
    "RulePromotion",
    "RulePropagationEngine",
    "RuleValidator",
    "ValidationIssue",
    "ValidationReport",
    "compute_effectiveness",
]
