"""Request payloads accepted by the HTTP handlers."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.alert import CustomerHistory
from models.health import CustomerHealthData


class EvaluateCustomerRequest(BaseModel):
    """Body of POST /alerts/evaluate."""

    customer: CustomerHealthData
    history: Optional[CustomerHistory] = None


class EvaluateAllRequest(BaseModel):
    """Body of POST /alerts/evaluate-all; histories are keyed by customer id."""

    customers: List[CustomerHealthData] = Field(default_factory=list)
    histories: Dict[str, CustomerHistory] = Field(default_factory=dict)


class AlertActionRequest(BaseModel):
    """Body of POST /alerts/{id}/dismiss|resolve|snooze."""

    actor: Optional[str] = None
    until: Optional[datetime] = None


class ToggleRuleRequest(BaseModel):
    """Body of POST /rules/{type}/toggle."""

    enabled: bool
