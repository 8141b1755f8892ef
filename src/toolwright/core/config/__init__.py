"""Configuration models for Toolwright.

All models are re-exported from this ``__init__`` so callers can use
``from toolwright.core.config import MiningConfig``.
"""

from toolwright.core.config.learning import EffectivenessConfig, MiningConfig
from toolwright.core.config.propagation import (
    ConfidenceAdjustment,
    DeactivationCriteria,
    PromotionCriteria,
    PropagationConfig,
)
from toolwright.core.config.settings import DEFAULT_DB_PATH, ToolwrightConfig

__all__ = [
    "ConfidenceAdjustment",
    "DEFAULT_DB_PATH",
    "DeactivationCriteria",
    "EffectivenessConfig",
    "MiningConfig",
    "PromotionCriteria",
    "PropagationConfig",
    "ToolwrightConfig",
]
