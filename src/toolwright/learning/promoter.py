"""Pattern store and promoter.

Persists miner candidates and merges re-observations into existing
patterns. A pattern seen again in a later pass gains exactly one
occurrence, however often the pass saw it. When a re-observed pattern
clears both auto-generation thresholds and has no tool yet, exactly one
tool is generated for it.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from toolwright.core.config import MiningConfig
from toolwright.core.errors import PatternNotFoundError
from toolwright.core.logging import get_logger
from toolwright.learning.generator import ArtifactGenerator
from toolwright.learning.miner import PatternCandidate, PatternMiner
from toolwright.store import GeneratedTool, LearnedPattern, LearningStore

_logger = get_logger("learning.promoter")


class PatternPromoter:
    """Runs mining passes and promotes strong patterns to tools.

    Example:
        promoter = PatternPromoter(store, MiningConfig())
        patterns = promoter.detect_patterns()
    """

    def __init__(
        self,
        store: LearningStore,
        config: MiningConfig | None = None,
        generator: ArtifactGenerator | None = None,
        miner: PatternMiner | None = None,
    ) -> None:
        self.store = store
        self.config = config or MiningConfig()
        self.generator = generator or ArtifactGenerator(store)
        self.miner = miner or PatternMiner(self.config)

    def should_auto_generate(self, occurrences: int, confidence: float) -> bool:
        """Whether a stored pattern is strong enough to become a tool."""
        return (
            occurrences >= self.config.auto_generate_threshold
            and confidence >= self.config.confidence_threshold
        )

    def detect_patterns(
        self,
        hours_back: int | None = None,
        now: datetime | None = None,
    ) -> list[LearnedPattern]:
        """Run one mining pass over recent successful executions.

        Args:
            hours_back: Lookback window, defaults to the configured one.
            now: Reference time for the window.

        Returns:
            The stored state of every candidate that was recorded.
        """
        executions = self.store.get_successful_executions(
            hours_back=hours_back or self.config.lookback_hours,
            limit=self.config.max_executions,
            now=now,
        )
        candidates = self.miner.mine(executions)

        recorded = []
        for candidate in candidates:
            pattern = self.record_pattern(candidate, now=now)
            if pattern is not None:
                recorded.append(pattern)

        _logger.info(
            "patterns_detected",
            executions=len(executions),
            candidates=len(candidates),
            recorded=len(recorded),
        )
        return recorded

    def record_pattern(
        self,
        candidate: PatternCandidate,
        now: datetime | None = None,
    ) -> LearnedPattern | None:
        """Insert a new pattern or re-observe an existing one.

        Store failures are logged and yield None so the rest of the pass
        continues.
        """
        try:
            existing = self.store.get_pattern_by_signature(candidate.signature)
            if existing is None:
                pattern = self.store.insert_pattern(
                    signature=candidate.signature,
                    pattern_type=candidate.pattern_type,
                    pattern_data=candidate.pattern_data,
                    occurrences=candidate.occurrences,
                    confidence=candidate.confidence,
                    tool_suggestion=candidate.suggestion,
                    now=now,
                )
                _logger.debug(
                    "pattern_recorded",
                    pattern_id=pattern.id,
                    pattern_type=pattern.pattern_type.value,
                    occurrences=pattern.occurrences,
                )
                return pattern

            pattern = self.store.reobserve_pattern(
                existing.id,
                confidence_step=self.config.reobserve_confidence_step,
                now=now,
            )
        except sqlite3.Error as e:
            _logger.warning(
                "pattern_record_failed",
                signature=candidate.signature[:120],
                error=str(e),
            )
            return None

        if pattern is None:
            return None

        _logger.debug(
            "pattern_reobserved",
            pattern_id=pattern.id,
            occurrences=pattern.occurrences,
            confidence=pattern.confidence,
        )
        if pattern.tool_id is None and self.should_auto_generate(
            pattern.occurrences, pattern.confidence
        ):
            pattern = self._auto_generate(pattern)
        return pattern

    def _auto_generate(self, pattern: LearnedPattern) -> LearnedPattern:
        try:
            tool = self.generator.generate(pattern)
        except sqlite3.Error as e:
            _logger.warning(
                "tool_generation_failed",
                pattern_id=pattern.id,
                error=str(e),
            )
            return pattern
        pattern.tool_id = tool.id
        pattern.auto_created = True
        return pattern

    def generate_tool_from_pattern(self, pattern_id: str) -> GeneratedTool:
        """Generate the tool for a stored pattern on operator request.

        Returns the already linked tool when one exists.

        Raises:
            PatternNotFoundError: If the pattern id is unknown.
        """
        pattern = self.store.get_pattern(pattern_id)
        if pattern is None:
            raise PatternNotFoundError(pattern_id)
        if pattern.tool_id is not None:
            existing = self.store.get_generated_tool_by_id(pattern.tool_id)
            if existing is not None:
                return existing
        return self.generator.generate(pattern)
