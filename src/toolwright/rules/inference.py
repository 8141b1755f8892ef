"""Rule inference from errors and user feedback.

Three ways new knowledge enters the rule store:

- learn_from_error: an error/fix pair observed by the validation pipeline
  is turned into a rule, or counts as one more occurrence of a known rule.
- refine_rule_pattern: a failed application reported as a false positive
  narrows the offending rule's pattern.
- create_rule_from_feedback: a failed application reported as a missing
  pattern seeds a new project-scoped rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath

from toolwright.core.logging import get_logger
from toolwright.store import (
    FeedbackFailure,
    LearningStore,
    RulePriority,
    RuleScope,
    ValidationRule,
    make_rule_id,
)

_logger = get_logger("rules.inference")

# Confidence lost by a rule each time its pattern is narrowed
REFINEMENT_PENALTY = 0.05

# Confidence gained by a rule each time the same error is learned again
OCCURRENCE_STEP = 0.05

_UNDEFINED_RE = re.compile(
    r"(\w+)\s+is\s+not\s+defined|Cannot\s+read\s+property\s+'(\w+)'"
)
_MISSING_PATTERN_RE = re.compile(r"missing pattern\s*:\s*(.+)", re.IGNORECASE)


@dataclass
class ErrorPattern:
    """A match pattern extracted from an error report."""

    pattern: str
    category: str
    confidence: float
    description: str


def extract_pattern_from_error(
    error_message: str, code_snippet: str | None
) -> ErrorPattern | None:
    """Derive a match pattern from an error message and offending code.

    Returns:
        The pattern, or None when nothing recognizable is found.
    """
    if not code_snippet:
        return None

    if "Expected ( but found ." in error_message and "this." in code_snippet:
        return ErrorPattern(
            pattern=r"this\.\w+\s*=\s*[^;]+;",
            category="syntax",
            confidence=0.9,
            description="Invalid class property assignment",
        )

    if "governance" in error_message or "USAGE_LIMIT_EXCEEDED" in error_message:
        return ErrorPattern(
            pattern=r"\b(search\.create|record\.load|record\.save)\b",
            category="performance",
            confidence=0.8,
            description="Potential governance issue",
        )

    if "undefined" in error_message or "not defined" in error_message:
        match = _UNDEFINED_RE.search(error_message) or _UNDEFINED_RE.search(
            code_snippet
        )
        if match:
            name = match.group(1) or match.group(2)
            return ErrorPattern(
                pattern=rf"\b{re.escape(name)}\b",
                category="general",
                confidence=0.7,
                description=f"Undefined variable: {name}",
            )

    return None


def categorize_error(error_message: str) -> str:
    message = error_message.lower()
    if "syntax" in message:
        return "syntax"
    if "performance" in message or "governance" in message:
        return "performance"
    if "security" in message:
        return "security"
    if "style" in message or "convention" in message:
        return "style"
    if "netsuite" in message or "api" in message:
        return "netsuite-api"
    return "general"


def determine_priority(error_message: str) -> RulePriority:
    message = error_message.lower()
    if "error" in message or "syntax" in message:
        return RulePriority.ERROR
    if "warning" in message or "performance" in message:
        return RulePriority.WARNING
    return RulePriority.SUGGESTION


def determine_technology(file_path: str | None, context: str | None = None) -> str:
    """Technology tag from a file extension and free-form context."""
    if not file_path:
        return "general"
    suffix = PurePath(file_path).suffix.lower()
    if suffix == ".js":
        text = (context or "").lower()
        if "netsuite" in text or "suitescript" in text:
            return "suitescript"
        return "javascript"
    if suffix == ".py":
        return "python"
    return "general"


def determine_rule_scope(
    category: str,
    error_message: str,
    client_name: str | None = None,
) -> RuleScope:
    """Initial scope for a rule learned from an error.

    Language-level mistakes are global, platform governance issues are
    organization-wide, client API usage is client-specific, and anything
    else starts at project scope.
    """
    if (
        category == "syntax"
        or "SyntaxError" in error_message
        or "ReferenceError" in error_message
    ):
        return RuleScope.GLOBAL
    if category == "performance" and (
        "governance" in error_message or "USAGE_LIMIT" in error_message
    ):
        return RuleScope.ORGANIZATION
    if client_name and category == "netsuite-api":
        return RuleScope.CLIENT
    return RuleScope.PROJECT


def generate_auto_fix_pattern(pattern: str, fix: str | None) -> str | None:
    """Build a sed-style ``s/search/replace/g`` fix for a pattern."""
    if not fix:
        return None
    if pattern.startswith(r"this\.\w+\s*="):
        return r"s/this\.(\w+)\s*=\s*([^;]+);/get$1 = () => $2;/g"
    return f"s/{pattern}/{fix}/g"


class RuleInference:
    """Learns and refines validation rules.

    Args:
        store: Learning store holding the rules.
    """

    def __init__(self, store: LearningStore) -> None:
        self.store = store

    def learn_from_error(
        self,
        error_message: str,
        code_snippet: str | None,
        file_path: str | None = None,
        project_path: str | None = None,
        client_name: str | None = None,
        fix: str | None = None,
        context: str | None = None,
    ) -> ValidationRule | None:
        """Turn an observed error into a rule.

        If an active rule with the same pattern and technology exists, its
        occurrence count and confidence grow instead.

        Returns:
            The new or existing rule, or None if no pattern was recognized.
        """
        extracted = extract_pattern_from_error(error_message, code_snippet)
        if extracted is None:
            _logger.debug("error_pattern_not_found", file_path=file_path)
            return None

        technology = determine_technology(file_path, context)
        existing = self.store.find_similar_rule(extracted.pattern, technology)
        if existing is not None:
            self.store.record_rule_occurrence(existing.rule_id, OCCURRENCE_STEP)
            _logger.info("rule_occurrence_recorded", rule_id=existing.rule_id)
            return self.store.get_rule(existing.rule_id)

        category = (
            extracted.category
            if extracted.category != "general"
            else categorize_error(error_message)
        )
        scope = determine_rule_scope(category, error_message, client_name)
        lines = error_message.strip().splitlines()
        rule = self.store.create_validation_rule(
            scope=scope,
            category=category,
            pattern=extracted.pattern,
            message=(lines[0][:200] if lines else "") or extracted.description,
            priority=determine_priority(error_message),
            technology=technology,
            suggestion=fix or f"Review: {extracted.description}",
            auto_fix=bool(fix),
            auto_fix_pattern=generate_auto_fix_pattern(extracted.pattern, fix),
            learned_from=client_name if scope == RuleScope.CLIENT else project_path,
            client_name=client_name,
            project_path=project_path,
            confidence=extracted.confidence,
            created_by="learning-system",
        )
        if rule is None:
            rule_id = make_rule_id(extracted.pattern, category, technology)
            self.store.record_rule_occurrence(rule_id, OCCURRENCE_STEP)
            return self.store.get_rule(rule_id)

        _logger.info(
            "rule_learned_from_error",
            rule_id=rule.rule_id,
            scope=rule.scope.value,
            category=rule.category,
        )
        return rule

    def refine_rule_pattern(self, failure: FeedbackFailure) -> bool:
        """Narrow a rule reported as a false positive.

        When the offending text is known it is excluded with a negative
        lookahead; otherwise the pattern is anchored on word boundaries.
        The rule is re-read first, so successive refinements build on each
        other. A rule already narrowed this way is left untouched.

        Returns:
            True if the rule's pattern changed.
        """
        rule = self.store.get_rule(failure.rule_id)
        if rule is None:
            return False
        pattern = rule.pattern_text
        if failure.matched_text:
            guard = f"(?!{re.escape(failure.matched_text)})"
            if guard in pattern:
                return False
            refined = f"{guard}(?:{pattern})"
        else:
            if pattern.startswith(r"\b") and pattern.endswith(r"\b"):
                return False
            refined = rf"\b(?:{pattern})\b"

        self.store.update_rule_pattern(
            failure.rule_id, refined, confidence_delta=-REFINEMENT_PENALTY
        )
        _logger.info(
            "rule_pattern_refined",
            rule_id=failure.rule_id,
            application_id=failure.application_id,
        )
        return True

    def create_rule_from_feedback(
        self, failure: FeedbackFailure
    ) -> ValidationRule | None:
        """Seed a project-scoped rule from "missing pattern" feedback.

        The pattern comes from the matched text when present, otherwise
        from the text following ``missing pattern:`` in the feedback.

        Returns:
            The new rule, or None when there is no seed or owning project, or
            the rule already exists (its occurrence is counted instead).
        """
        seed = failure.matched_text
        if not seed:
            match = _MISSING_PATTERN_RE.search(failure.user_feedback)
            seed = match.group(1).strip() if match else None
        if not seed:
            _logger.debug(
                "feedback_seed_missing", application_id=failure.application_id
            )
            return None
        if failure.project_path is None:
            _logger.debug(
                "feedback_project_missing", application_id=failure.application_id
            )
            return None

        pattern = re.escape(seed)
        rule = self.store.create_validation_rule(
            scope=RuleScope.PROJECT,
            category=failure.category,
            pattern=pattern,
            message=f"Pattern reported missing: {seed}",
            priority=RulePriority.WARNING,
            technology=failure.technology,
            learned_from=failure.project_path,
            client_name=failure.client_name,
            project_path=failure.project_path,
            confidence=0.5,
            created_by="feedback",
        )
        if rule is None:
            self.store.record_rule_occurrence(
                make_rule_id(pattern, failure.category, failure.technology),
                OCCURRENCE_STEP,
            )
            return None

        _logger.info(
            "rule_created_from_feedback",
            rule_id=rule.rule_id,
            source_rule_id=failure.rule_id,
        )
        return rule
