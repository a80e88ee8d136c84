"""Pydantic models for the predictive alerting workflow."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator


class AlertType(str, Enum):
    """The built-in alert kinds."""

    PAYMENT_RISK = "payment_risk"
    ENGAGEMENT_CLIFF = "engagement_cliff"
    CONTRACT_EXPIRATION_RISK = "contract_expiration_risk"
    SUPPORT_TICKET_SPIKE = "support_ticket_spike"
    FEATURE_ADOPTION_STALL = "feature_adoption_stall"


class AlertPriority(str, Enum):
    """Alert urgency; high sorts before medium."""

    HIGH = "high"
    MEDIUM = "medium"


class AlertStatus(str, Enum):
    """Lifecycle states of a stored alert."""

    ACTIVE = "active"
    DISMISSED = "dismissed"
    RESOLVED = "resolved"
    SNOOZED = "snoozed"


class HealthScorePoint(BaseModel):
    score: float
    timestamp: datetime


class LoginPoint(BaseModel):
    count: int
    period: str = "month"
    timestamp: datetime


class PaymentEvent(BaseModel):
    type: str = Field(description="payment|overdue|dispute")
    amount: float
    timestamp: datetime


class SupportTicketEvent(BaseModel):
    type: str = Field(description="created|escalated|resolved")
    priority: str
    timestamp: datetime


class FeatureUsageEvent(BaseModel):
    feature: str
    timestamp: datetime


class ContractEvent(BaseModel):
    type: str = Field(description="renewal|upgrade|downgrade|expiration")
    timestamp: datetime


class CustomerHistory(BaseModel):
    """
    Time series supplied alongside a snapshot.

    Only ``health_scores`` and ``login_history`` are read by the built-in
    rules; the remaining series are accepted for custom rules.
    """

    customer_id: str
    health_scores: List[HealthScorePoint] = Field(default_factory=list)
    login_history: List[LoginPoint] = Field(default_factory=list)
    payment_events: List[PaymentEvent] = Field(default_factory=list)
    support_tickets: List[SupportTicketEvent] = Field(default_factory=list)
    feature_usage: List[FeatureUsageEvent] = Field(default_factory=list)
    contract_events: List[ContractEvent] = Field(default_factory=list)


class AlertResult(BaseModel):
    """What a rule reports back for one customer."""

    should_trigger: bool = False
    confidence: float = 0.0
    reason: str = ""
    recommended_actions: List[str] = Field(default_factory=list)
    trigger_values: Dict[str, Any] = Field(default_factory=dict)
    thresholds: Dict[str, Any] = Field(default_factory=dict)


class AlertMetadata(BaseModel):
    """Context captured when an alert is materialized."""

    trigger_values: Dict[str, Any] = Field(default_factory=dict)
    thresholds: Dict[str, Any] = Field(default_factory=dict)
    historical_context: Dict[str, Any] = Field(default_factory=dict)
    customer_arr: float = 0.0
    previous_alerts: int = 0


class Alert(BaseModel):
    """A triggered rule instance; mutated only through engine lifecycle calls."""

    id: str
    customer_id: str
    type: AlertType
    priority: AlertPriority
    status: AlertStatus = AlertStatus.ACTIVE
    title: str
    message: str
    recommended_actions: List[str] = Field(default_factory=list)
    triggered_at: datetime
    cooldown_until: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    dismissed_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    snoozed_until: Optional[datetime] = None
    confidence: float = Field(ge=0, le=1)
    metadata: AlertMetadata = Field(default_factory=AlertMetadata)


class BusinessHours(BaseModel):
    """Working window used when the engine respects business hours."""

    start: int = Field(default=9, ge=0, le=24)
    end: int = Field(default=17, ge=0, le=24)
    timezone: str = "America/New_York"
    weekdays: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, value: List[int]) -> List[int]:
        """Weekdays use 0=Sunday .. 6=Saturday."""
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Only IANA zone names that zoneinfo can load."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @model_validator(mode="after")
    def check_window(self) -> "BusinessHours":
        """Overnight windows are not supported, so start must precede end."""
        if self.start >= self.end:
            raise ValueError("business hours start must be before end")
        return self


class AlertEngineConfig(BaseModel):
    """Engine behaviour knobs; interval and retention are for schedulers."""

    evaluation_interval: int = 15
    max_alerts_per_customer_per_day: int = Field(default=5, ge=1)
    respect_business_hours: bool = False
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    alert_retention_days: int = 30


class ResolutionStats(BaseModel):
    resolved: int
    dismissed: int
    active: int
    average_resolution_time: int = Field(description="minutes")


class AccuracyMetrics(BaseModel):
    true_positives: int
    false_positives: int
    accuracy: float


class PerformanceMetrics(BaseModel):
    average_evaluation_time: float
    max_evaluation_time: float
    evaluations_per_second: float


class AlertSystemMetrics(BaseModel):
    """
    Aggregates over the alert store.

    Counts cover the last 24 hours; accuracy and performance figures are
    illustrative placeholders, not measurements.
    """

    total_alerts: int
    alerts_by_priority: Dict[AlertPriority, int]
    alerts_by_type: Dict[AlertType, int]
    resolution_stats: ResolutionStats
    accuracy_metrics: AccuracyMetrics
    performance_metrics: PerformanceMetrics
