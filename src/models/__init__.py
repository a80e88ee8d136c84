"""Pydantic models for health scoring and alerting."""

from models.alert import (  # noqa: F401
    Alert,
    AlertEngineConfig,
    AlertMetadata,
    AlertPriority,
    AlertResult,
    AlertStatus,
    AlertSystemMetrics,
    AlertType,
    BusinessHours,
    CustomerHistory,
    HealthScorePoint,
    LoginPoint,
)
from models.health import (  # noqa: F401
    ContractMetrics,
    CustomerHealthData,
    EngagementMetrics,
    FactorScore,
    HealthScoreConfig,
    HealthScoreResult,
    PaymentMetrics,
    RiskLevel,
    ScoreAdjustment,
    SupportMetrics,
    ValidationResult,
)
from models.response import ApiResponse  # noqa: F401
from models.requests import (  # noqa: F401
    AlertActionRequest,
    EvaluateAllRequest,
    EvaluateCustomerRequest,
    ToggleRuleRequest,
)
