"""Lightweight health check handler."""

import json
from datetime import datetime, timezone

from config.settings import Settings


def lambda_handler(event, context):
    """Return a simple 200 response to verify the service is alive."""
    settings = Settings.from_environment()
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(
            {
                "status": "ok",
                "service": "customer-health-alerts",
                "environment": settings.environment,
                "alert_store": settings.alert_store,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        ),
    }
