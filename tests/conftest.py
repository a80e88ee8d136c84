"""
Pytest configuration to ensure paths are set up correctly for tests.

This allows imports like `from handlers import health_check` to work
when running tests, simulating the Lambda environment where code
is deployed from the src/ directory.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import boto3
import pytest


def _ensure_paths_on_sys_path() -> None:
    """Add repository root AND src/ to sys.path if missing.

    The src/ directory is added to simulate Lambda's import behavior,
    where the deployment package makes src/ the root of the package.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"

    root_str = str(repo_root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)

    # Add src/ for Lambda-style imports (from handlers import ...)
    src_str = str(src_root)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


_ensure_paths_on_sys_path()

# Ensure boto3 has offline-friendly defaults so tests do not require AWS access.
os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_SESSION_TOKEN", "test")
os.environ.setdefault("ENVIRONMENT", "dev")

# Lambda environment variables used by handlers
os.environ.setdefault("ALERT_STORE", "memory")
os.environ.setdefault("ALERTS_TABLE", "test-alerts-table")

# Create a default boto3 session so resources/clients do not error during import.
boto3.setup_default_session(region_name="eu-west-2")


class Clock:
    """Callable stand-in for ``alert_rules.utcnow`` that tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    """Freeze rule and engine time at Tuesday 2024-03-05 10:00 New York."""
    from services import alert_rules

    frozen = Clock(datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(alert_rules, "utcnow", frozen)
    return frozen


@pytest.fixture
def healthy_payload():
    """A well-behaved customer that triggers no alert rule."""
    return {
        "customer_id": "cust-healthy",
        "payment_history": {
            "days_since_last_payment": 5,
            "average_payment_delay": 0,
            "overdue_amount": 0,
            "total_payments": 24,
            "late_payments": 1,
        },
        "engagement": {
            "logins_last_30_days": 25,
            "features_used_last_30_days": 16,
            "average_session_minutes": 45,
            "support_tickets_last_90_days": 2,
            "total_time_spent_minutes": 3000,
        },
        "contract": {
            "days_until_renewal": 200,
            "contract_value": 120000,
            "has_recent_upgrade": True,
            "has_recent_downgrade": False,
            "contract_duration_months": 24,
            "renewal_history": 3,
        },
        "support": {
            "average_resolution_hours": 3,
            "satisfaction_score": 9.2,
            "escalated_tickets": 0,
            "total_tickets": 3,
            "critical_tickets": 0,
        },
    }


@pytest.fixture
def at_risk_payload():
    """A struggling customer: overdue, disengaged, renewing soon, escalating."""
    return {
        "customer_id": "cust-at-risk",
        "payment_history": {
            "days_since_last_payment": 45,
            "average_payment_delay": 20,
            "overdue_amount": 12000,
            "total_payments": 8,
            "late_payments": 6,
        },
        "engagement": {
            "logins_last_30_days": 2,
            "features_used_last_30_days": 1,
            "average_session_minutes": 4,
            "support_tickets_last_90_days": 12,
            "total_time_spent_minutes": 60,
        },
        "contract": {
            "days_until_renewal": 45,
            "contract_value": 30000,
            "has_recent_upgrade": False,
            "has_recent_downgrade": True,
            "contract_duration_months": 12,
            "renewal_history": 0,
        },
        "support": {
            "average_resolution_hours": 60,
            "satisfaction_score": 4,
            "escalated_tickets": 4,
            "total_tickets": 12,
            "critical_tickets": 3,
        },
    }


@pytest.fixture
def healthy_customer(healthy_payload):
    from models.health import CustomerHealthData

    return CustomerHealthData.model_validate(healthy_payload)


@pytest.fixture
def at_risk_customer(at_risk_payload):
    from models.health import CustomerHealthData

    return CustomerHealthData.model_validate(at_risk_payload)
