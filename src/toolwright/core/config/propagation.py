"""Rule propagation configuration models.

Defines the promotion, deactivation, and confidence adjustment criteria
applied by each propagation cycle, and the scheduling interval.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PromotionCriteria(BaseModel):
    """Evidence a rule needs before it is widened to the next scope."""

    window_days: int = Field(default=7, ge=1)
    min_applications: int = Field(
        default=3,
        ge=1,
        description="Applications in the window (since the last scope change) "
        "before a rule is considered at all.",
    )
    min_success_rate: float = Field(default=0.7, ge=0.0, le=1.0)
    max_false_positive_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    min_effectiveness: float = Field(default=0.75, ge=0.0, le=1.0)
    min_projects_from_project: int = Field(
        default=2,
        ge=1,
        description="Distinct projects required to promote a project-scoped rule.",
    )
    min_projects: int = Field(
        default=3,
        ge=1,
        description="Distinct projects required to promote client and "
        "organization rules.",
    )
    min_clients_from_client: int = Field(
        default=2,
        ge=1,
        description="Distinct clients required to promote a client-scoped rule.",
    )


class DeactivationCriteria(BaseModel):
    """Evidence that a rule is ineffective and should be switched off."""

    window_days: int = Field(default=30, ge=1)
    min_applications: int = Field(default=10, ge=1)
    min_effectiveness: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Rules scoring below this are deactivated.",
    )
    min_success_rate: float = Field(default=0.3, ge=0.0, le=1.0)
    success_rate_min_applications: int = Field(
        default=20,
        ge=1,
        description="The success-rate test only applies above this many "
        "applications.",
    )
    max_false_positive_rate: float = Field(default=0.5, ge=0.0, le=1.0)


class ConfidenceAdjustment(BaseModel):
    """Per-cycle confidence nudges driven by effectiveness."""

    boost_above: float = Field(default=0.8, ge=0.0, le=1.0)
    decay_below: float = Field(default=0.3, ge=0.0, le=1.0)
    step: float = Field(default=0.1, ge=0.0, le=1.0)
    ceiling: float = Field(default=1.0, ge=0.0, le=1.0)
    floor: float = Field(default=0.1, ge=0.0, le=1.0)


class PropagationConfig(BaseModel):
    """Configuration for the rule propagation cycle.

    Example YAML:
        propagation:
          interval_hours: 24
          promotion:
            min_effectiveness: 0.8
          deactivation:
            min_applications: 15
    """

    interval_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="Hours between scheduled propagation cycles.",
    )
    feedback_window_hours: int = Field(
        default=24,
        ge=1,
        description="Failed applications with feedback newer than this are "
        "learned from.",
    )
    promotion: PromotionCriteria = Field(default_factory=PromotionCriteria)
    deactivation: DeactivationCriteria = Field(default_factory=DeactivationCriteria)
    confidence: ConfidenceAdjustment = Field(default_factory=ConfidenceAdjustment)
