"""Learning store with modular mixins.

This package provides the LearningStore class, composed from one mixin per
table family:

- ExecutionMixin: Tool execution log written by the invocation pipeline
- PatternMixin: Learned patterns keyed by signature
- ToolMixin: Generated tools and their provenance
- RuleMixin: Scoped validation rules with isolation-preserving reads
- ApplicationMixin: Rule applications and the evidence aggregated from them
- KnowledgeMixin: Append-only audit entries

The base class (LearningStoreBase) provides SQLite connection management
in WAL mode and schema creation. It is listed LAST in the MRO so mixins
can rely on self._get_connection() and self._logger.

Usage:
    from toolwright.store import LearningStore

    store = LearningStore()  # Uses default ~/.toolwright/learning.db
    store = LearningStore(db_path=Path("/custom/path.db"))
"""

from pathlib import Path

from toolwright.store.applications import ApplicationMixin
from toolwright.store.base import LearningStoreBase, WhereBuilder
from toolwright.store.executions import ExecutionMixin
from toolwright.store.knowledge import KnowledgeMixin
from toolwright.store.models import (
    FeedbackFailure,
    GeneratedTool,
    KnowledgeEntry,
    KnowledgeEntryType,
    LearnedPattern,
    PatternType,
    RuleApplication,
    RuleEvidence,
    RulePriority,
    RuleScope,
    ToolExecution,
    ValidationRule,
)
from toolwright.store.patterns import PatternMixin
from toolwright.store.rules import RuleMixin, make_rule_id
from toolwright.store.tools import ToolMixin


class LearningStore(
    ExecutionMixin,
    PatternMixin,
    ToolMixin,
    RuleMixin,
    ApplicationMixin,
    KnowledgeMixin,
    LearningStoreBase,
):
    """Learning store combining all mixins.

    The single persistence interface for the pattern miner, the promoter,
    the artifact generator, the rule tracker, and the propagation cycle.

    Example:
        >>> store = LearningStore(db_path=tmp_path / "learning.db")
        >>> rule = store.create_validation_rule(
        ...     scope=RuleScope.CLIENT,
        ...     category="style",
        ...     pattern=r"console\\.log",
        ...     message="Remove debug logging",
        ...     learned_from="acme",
        ... )
        >>> store.get_rules_for_scope([RuleScope.CLIENT], client_name="acme")
        [ValidationRule(rule_id='style-general-...', ...)]
    """


# Module-level singleton
_store: LearningStore | None = None


def get_store(db_path: Path | None = None) -> LearningStore:
    """Get or create the learning store singleton.

    Args:
        db_path: Optional custom path. If None, uses default.

    Returns:
        The LearningStore instance.
    """
    global _store

    if _store is None or (db_path is not None and _store.db_path != db_path):
        _store = LearningStore(db_path)

    return _store


__all__ = [
    "ApplicationMixin",
    "ExecutionMixin",
    "FeedbackFailure",
    "GeneratedTool",
    "KnowledgeEntry",
    "KnowledgeEntryType",
    "KnowledgeMixin",
    "LearnedPattern",
    "LearningStore",
    "LearningStoreBase",
    "PatternMixin",
    "PatternType",
    "RuleApplication",
    "RuleEvidence",
    "RuleMixin",
    "RulePriority",
    "RuleScope",
    "ToolExecution",
    "ToolMixin",
    "ValidationRule",
    "WhereBuilder",
    "get_store",
    "make_rule_id",
]
