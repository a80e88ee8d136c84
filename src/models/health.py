"""Pydantic models for customer health scoring."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PaymentMetrics(BaseModel):
    """Billing behaviour of a customer."""

    days_since_last_payment: float
    average_payment_delay: float
    overdue_amount: float
    total_payments: int
    late_payments: int


class EngagementMetrics(BaseModel):
    """Product usage over the trailing 30/90 day windows."""

    logins_last_30_days: int
    features_used_last_30_days: int
    average_session_minutes: float
    support_tickets_last_90_days: int
    total_time_spent_minutes: float


class ContractMetrics(BaseModel):
    """Commercial relationship state."""

    days_until_renewal: int
    contract_value: float
    has_recent_upgrade: bool = False
    has_recent_downgrade: bool = False
    contract_duration_months: int
    renewal_history: int


class SupportMetrics(BaseModel):
    """Support experience; satisfaction is on a 1-10 scale."""

    average_resolution_hours: float
    satisfaction_score: float
    escalated_tickets: int
    total_tickets: int
    critical_tickets: int


class CustomerHealthData(BaseModel):
    """
    Snapshot of one customer's status.

    Field values are unconstrained here; range and cross-field checks live in
    ``validate_health_data``, which reports every problem in one list.
    """

    customer_id: str
    payment_history: PaymentMetrics
    engagement: EngagementMetrics
    contract: ContractMetrics
    support: SupportMetrics
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RiskLevel(str, Enum):
    """Risk buckets derived from the overall score."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class ScoreAdjustment(BaseModel):
    """One applied scoring rule: a reason code and the points it moved."""

    model_config = ConfigDict(frozen=True)

    reason_code: str
    delta_points: float


class FactorScore(BaseModel):
    """Weighted result for one factor (payment, engagement, contract, support)."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0, le=100)
    weight: float
    contribution: float
    confidence: float = Field(ge=0, le=1)
    explanation: List[ScoreAdjustment] = Field(default_factory=list)


class HealthScoreResult(BaseModel):
    """Complete scoring output; recomputed on demand, never stored."""

    model_config = ConfigDict(frozen=True)

    overall_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    factor_scores: Dict[str, FactorScore]
    overall_confidence: float = Field(ge=0, le=1)
    calculated_at: datetime


class ValidationResult(BaseModel):
    """Outcome of validating a health data record before scoring."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    confidence: float


class HealthScoreWeights(BaseModel):
    """Factor weights; they must add up to 1.0."""

    payment: float = 0.40
    engagement: float = 0.30
    contract: float = 0.20
    support: float = 0.10

    @model_validator(mode="after")
    def check_total(self) -> "HealthScoreWeights":
        """Reject weight sets that would stretch the 0-100 scale."""
        total = self.payment + self.engagement + self.contract + self.support
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"weights must sum to 1.0, got {total}")
        return self


class RiskThresholds(BaseModel):
    """Score boundaries for risk levels (inclusive minimums)."""

    healthy_min: int = 71
    warning_min: int = 31
    critical_max: int = 30

    @model_validator(mode="after")
    def check_order(self) -> "RiskThresholds":
        """Critical sits below warning, warning at or below healthy."""
        if not self.critical_max < self.warning_min <= self.healthy_min:
            raise ValueError("risk thresholds must satisfy critical_max < warning_min <= healthy_min")
        return self


class HealthScoreConfig(BaseModel):
    """Tunable parameters for ``calculate_health_score``."""

    weights: HealthScoreWeights = Field(default_factory=HealthScoreWeights)
    risk_thresholds: RiskThresholds = Field(default_factory=RiskThresholds)
    min_confidence_threshold: float = Field(default=0.6, ge=0, le=1)
