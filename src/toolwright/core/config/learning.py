"""Pattern mining and rule effectiveness configuration models.

Defines the thresholds used by the pattern miner and promoter, and the
weights used when scoring validation rule effectiveness.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class MiningConfig(BaseModel):
    """Configuration for pattern mining and auto-generation.

    Example YAML:
        mining:
          pattern_threshold: 2
          auto_generate_threshold: 3
          confidence_threshold: 0.6
          lookback_hours: 24
    """

    pattern_threshold: int = Field(
        default=2,
        ge=2,
        description="Minimum occurrences within one pass before a signature "
        "becomes a candidate pattern.",
    )
    auto_generate_threshold: int = Field(
        default=3,
        ge=1,
        description="Minimum stored occurrences before a pattern is turned "
        "into a generated tool.",
    )
    confidence_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum stored confidence before a pattern is turned "
        "into a generated tool.",
    )
    min_window: int = Field(
        default=2,
        ge=2,
        description="Shortest action sequence considered.",
    )
    max_window: int = Field(
        default=5,
        ge=2,
        le=10,
        description="Longest action sequence considered. Bounds the number "
        "of signatures held in memory during one pass.",
    )
    lookback_hours: int = Field(
        default=24,
        ge=1,
        description="Only executions created within this many hours are mined.",
    )
    max_executions: int = Field(
        default=100,
        ge=2,
        description="Maximum number of recent executions mined per pass.",
    )
    literal_string_max_length: int = Field(
        default=20,
        ge=0,
        description="Strings up to this length stay literal in signatures; "
        "longer strings collapse to <string>.",
    )
    sequence_confidence_step: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Initial confidence per occurrence for sequence patterns.",
    )
    parameter_confidence_step: float = Field(
        default=0.15,
        gt=0.0,
        le=1.0,
        description="Initial confidence per occurrence for parameter patterns.",
    )
    reobserve_confidence_step: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Confidence added each time a stored pattern is seen again "
        "in a later pass.",
    )

    @model_validator(mode="after")
    def _validate_window(self) -> MiningConfig:
        if self.min_window > self.max_window:
            raise ValueError(
                f"min_window ({self.min_window}) must not exceed "
                f"max_window ({self.max_window})"
            )
        return self


class EffectivenessConfig(BaseModel):
    """Weights for rule effectiveness scoring.

    effectiveness = (success_weight * success_rate * (1 - fp_rate)
                     + fix_weight * fix_rate) * min(1, n / volume_floor)
    """

    window_days: int = Field(
        default=30,
        ge=1,
        description="Applications older than this are ignored when scoring.",
    )
    volume_floor: int = Field(
        default=5,
        ge=1,
        description="Number of applications needed before the score is no "
        "longer scaled down for low volume.",
    )
    success_weight: float = Field(default=0.8, ge=0.0, le=1.0)
    fix_weight: float = Field(default=0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _validate_weights(self) -> EffectivenessConfig:
        if abs(self.success_weight + self.fix_weight - 1.0) > 1e-9:
            raise ValueError(
                "success_weight and fix_weight must sum to 1.0, got "
                f"{self.success_weight} + {self.fix_weight}"
            )
        return self
