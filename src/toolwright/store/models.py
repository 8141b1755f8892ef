"""Data models for the learning store.

This module contains the dataclasses and enums used by the LearningStore.
These models represent the records stored in the SQLite database: tool
executions, learned patterns, generated tools, scoped validation rules,
rule applications, and knowledge entries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class PatternType(str, Enum):
    """Kinds of patterns mined from tool executions."""

    SEQUENCE = "sequence"
    """An ordered run of tool invocations that recurs."""

    PARAMETER = "parameter"
    """A recurring parameter shape for a single tool."""


class RuleScope(str, Enum):
    """Visibility tier of a validation rule.

    Scopes are ordered from narrowest to widest. A rule's scope only ever
    widens over its lifetime, one rung at a time.
    """

    PROJECT = "project"
    CLIENT = "client"
    ORGANIZATION = "organization"
    GLOBAL = "global"

    @property
    def rank(self) -> int:
        """Position in the hierarchy, 0 for project up to 3 for global."""
        return _SCOPE_ORDER.index(self)

    def widen(self) -> "RuleScope":
        """Return the next broader scope (global widens to itself)."""
        return _SCOPE_ORDER[min(self.rank + 1, len(_SCOPE_ORDER) - 1)]


_SCOPE_ORDER: list[RuleScope] = [
    RuleScope.PROJECT,
    RuleScope.CLIENT,
    RuleScope.ORGANIZATION,
    RuleScope.GLOBAL,
]


class RulePriority(str, Enum):
    """Severity reported when a rule matches."""

    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"


class KnowledgeEntryType(str, Enum):
    """Kinds of audit entries read by external reporting tools."""

    RULE_PROMOTION = "rule_promotion"
    SYSTEM_ACTIVITY = "system_activity"
    ERROR = "error"
    DOCUMENTATION = "documentation"


@dataclass
class ToolExecution:
    """One recorded tool invocation."""

    id: str
    tool_name: str
    parameters: str
    """Raw JSON text as stored; may be malformed if written by a faulty producer."""

    success: bool
    created_at: datetime
    result: str | None = None
    error_message: str | None = None
    execution_time_ms: int | None = None
    session_id: str | None = None
    updated_at: datetime | None = None


@dataclass
class LearnedPattern:
    """A recurring pattern detected across mining passes."""

    id: str
    pattern_signature: str
    pattern_type: PatternType
    pattern_data: dict[str, Any]
    occurrences: int
    confidence: float
    first_seen: datetime
    last_seen: datetime
    tool_suggestion: dict[str, Any] | None = None
    tool_id: str | None = None
    auto_created: bool = False


@dataclass
class GeneratedTool:
    """An automation template rendered from a learned pattern."""

    id: str
    tool_name: str
    tool_category: str
    source_pattern_id: str | None
    code_content: str
    config: dict[str, Any]
    is_active: bool
    created_at: datetime
    usage_count: int = 0
    success_rate: float = 0.0
    version: int = 1


@dataclass
class ValidationRule:
    """A scoped validation rule with live effectiveness statistics."""

    rule_id: str
    scope: RuleScope
    category: str
    priority: RulePriority
    technology: str
    pattern_text: str
    message: str
    confidence: float
    effectiveness_score: float
    is_active: bool
    created_at: datetime
    updated_at: datetime
    pattern_type: str = "regex"
    suggestion: str | None = None
    auto_fix: bool = False
    auto_fix_pattern: str | None = None
    learned_from: str | None = None
    client_name: str | None = None
    """Owning client; decides visibility while the rule is client-scoped."""

    project_path: str | None = None
    """Owning project; decides visibility while the rule is project-scoped."""

    occurrences: int = 1
    scope_changed_at: datetime | None = None
    created_by: str = "system"


@dataclass
class RuleApplication:
    """One evaluation of a rule against real input."""

    id: str
    rule_id: str
    project_path: str | None
    client_name: str | None
    success: bool
    applied_at: datetime
    false_positive: bool = False
    fix_applied: bool = False
    file_path: str | None = None
    line_number: int | None = None
    matched_text: str | None = None
    user_feedback: str | None = None
    execution_time_ms: int | None = None


@dataclass
class RuleEvidence:
    """Aggregated application statistics for one rule over a time window."""

    rule: ValidationRule
    applications: int
    successes: int
    false_positives: int
    fixes_applied: int
    avg_execution_time_ms: float | None
    projects_used: int
    clients_used: int
    primary_client: str | None = None
    """Client with the most applications in the window."""

    @property
    def success_rate(self) -> float:
        return self.successes / self.applications if self.applications else 0.0

    @property
    def false_positive_rate(self) -> float:
        return self.false_positives / self.applications if self.applications else 0.0


@dataclass
class FeedbackFailure:
    """A failed application carrying user feedback, joined with its rule."""

    application_id: str
    rule_id: str
    user_feedback: str
    category: str
    technology: str
    project_path: str | None
    client_name: str | None
    file_path: str | None = None
    line_number: int | None = None
    matched_text: str | None = None


@dataclass
class KnowledgeEntry:
    """An append-only audit record."""

    id: str
    entry_type: KnowledgeEntryType
    title: str
    content: str
    created_at: datetime
    tags: list[str] = field(default_factory=list)
