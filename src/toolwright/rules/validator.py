"""Apply visible validation rules to source text.

Each rule visible to the caller is run line by line over the content.
Every match becomes an issue sorted into errors, warnings, or suggestions
by the rule's priority, and is tracked as a successful application. A rule
whose pattern no longer compiles is tracked as a failed application.
"""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from toolwright.core.logging import get_logger
from toolwright.rules.effectiveness import RuleApplicationTracker
from toolwright.store import LearningStore, RulePriority, ValidationRule

_logger = get_logger("rules.validator")

# Splits a sed-style expression on slashes not preceded by a backslash
_SED_SPLIT_RE = re.compile(r"(?<!\\)/")


@dataclass
class RuleMatch:
    """One match of a rule within a line."""

    line: int
    column: int
    text: str
    auto_fix_replacement: str | None = None


@dataclass
class ValidationIssue:
    """A reported finding."""

    rule_id: str
    line: int
    column: int
    message: str
    severity: RulePriority
    category: str
    matched_text: str
    suggestion: str | None = None
    auto_fix: bool = False
    auto_fix_replacement: str | None = None


@dataclass
class ValidationReport:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    suggestions: list[ValidationIssue] = field(default_factory=list)
    rules_applied: int = 0
    execution_time_ms: int = 0

    @property
    def issues(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings, *self.suggestions]


def apply_sed_fix(line: str, expression: str) -> str | None:
    """Apply a sed-style ``s/search/replace/flags`` expression to a line.

    ``$1`` style group references in the replacement are accepted. The
    ``g`` flag replaces every match, ``i`` ignores case.

    Returns:
        The rewritten line, or None if the expression is not usable.
    """
    if not expression.startswith("s/"):
        return None
    parts = _SED_SPLIT_RE.split(expression)
    if len(parts) < 4:
        return None
    search, replacement, flags = parts[1], parts[2], parts[3]
    replacement = re.sub(r"\$(\d+)", r"\\\1", replacement.replace("\\/", "/"))
    try:
        compiled = re.compile(search, re.IGNORECASE if "i" in flags else 0)
        return compiled.sub(replacement, line, count=0 if "g" in flags else 1)
    except re.error as e:
        _logger.debug("auto_fix_failed", expression=expression, error=str(e))
        return None


def apply_rule(rule: ValidationRule, content: str) -> list[RuleMatch]:
    """Find every match of a rule, line by line.

    Raises:
        re.error: If the rule's pattern does not compile.
    """
    compiled = re.compile(rule.pattern_text)
    matches = []
    for number, line in enumerate(content.split("\n"), start=1):
        for match in compiled.finditer(line):
            replacement = None
            if rule.auto_fix and rule.auto_fix_pattern:
                replacement = apply_sed_fix(line, rule.auto_fix_pattern)
            matches.append(
                RuleMatch(
                    line=number,
                    column=match.start() + 1,
                    text=match.group(0),
                    auto_fix_replacement=replacement,
                )
            )
    return matches


class RuleValidator:
    """Validates content against the rules visible to one caller.

    Args:
        store: Learning store holding the rules.
        tracker: Records an application for every match.
    """

    def __init__(
        self,
        store: LearningStore,
        tracker: RuleApplicationTracker | None = None,
    ) -> None:
        self.store = store
        self.tracker = tracker or RuleApplicationTracker(store)

    def validate_code(
        self,
        content: str,
        file_path: str | None,
        client_name: str | None,
        project_path: str | None,
        technologies: Sequence[str] | None = None,
        track: bool = True,
    ) -> ValidationReport:
        """Run every visible rule over ``content``.

        Args:
            content: Source text to check.
            file_path: File the content came from, recorded on applications.
            client_name: Caller's client identity.
            project_path: Caller's project identity.
            technologies: Restrict to rules for these technologies.
            track: Record applications for matches and failures.
        """
        scopes = self.store.determine_scopes_for_project(client_name, project_path)
        rules = self.store.get_rules_for_scope(
            scopes,
            technologies=technologies,
            client_name=client_name,
            project_path=project_path,
        )

        report = ValidationReport()
        started = time.monotonic()
        for rule in rules:
            rule_started = time.monotonic()
            try:
                matches = apply_rule(rule, content)
            except re.error as e:
                _logger.warning("rule_apply_failed", rule_id=rule.rule_id, error=str(e))
                if track:
                    self._track(
                        rule, client_name, project_path, file_path, None, False, rule_started
                    )
                continue

            for match in matches:
                issue = ValidationIssue(
                    rule_id=rule.rule_id,
                    line=match.line,
                    column=match.column,
                    message=rule.message,
                    severity=rule.priority,
                    category=rule.category,
                    matched_text=match.text,
                    suggestion=rule.suggestion,
                    auto_fix=rule.auto_fix,
                    auto_fix_replacement=match.auto_fix_replacement,
                )
                if rule.priority == RulePriority.ERROR:
                    report.errors.append(issue)
                elif rule.priority == RulePriority.WARNING:
                    report.warnings.append(issue)
                else:
                    report.suggestions.append(issue)
                if track:
                    self._track(
                        rule, client_name, project_path, file_path, match, True, rule_started
                    )
            report.rules_applied += 1

        report.execution_time_ms = int((time.monotonic() - started) * 1000)
        _logger.info(
            "validation_completed",
            file_path=file_path,
            rules=len(rules),
            errors=len(report.errors),
            warnings=len(report.warnings),
            suggestions=len(report.suggestions),
        )
        return report

    def _track(
        self,
        rule: ValidationRule,
        client_name: str | None,
        project_path: str | None,
        file_path: str | None,
        match: RuleMatch | None,
        success: bool,
        started: float,
    ) -> None:
        self.tracker.track_rule_application(
            rule_id=rule.rule_id,
            project_path=project_path,
            client_name=client_name,
            success=success,
            file_path=file_path,
            line_number=match.line if match else None,
            matched_text=match.text if match else None,
            execution_time_ms=int((time.monotonic() - started) * 1000),
        )
