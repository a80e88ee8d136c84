"""
Health score handler for POST /health-score.

Scores one customer snapshot and returns the factor breakdown with rendered
explanations. Invalid snapshots come back as 422 with the validation errors.
"""

from __future__ import annotations

import json
import uuid
from typing import Dict

from models.health import CustomerHealthData
from models.response import ApiResponse
from services.health_calculator import (
    calculate_health_score,
    get_health_score_explanation,
    render_explanation,
)
from utils.error_handling import AppError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)


def lambda_handler(event, context) -> Dict:
    """Validate the payload, score it and return the result."""
    correlation_id = str(uuid.uuid4())
    try:
        body = event.get("body")
        payload = json.loads(body) if body else event.get("customer", {})
        customer = CustomerHealthData.model_validate(payload)
        result = calculate_health_score(customer)
    except AppError as exc:
        logger.warning(
            "Health score refused",
            extra={"correlation_id": correlation_id, "error": str(exc)},
        )
        return to_response(exc, correlation_id)
    except ValueError as exc:
        return {
            "statusCode": 400,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(
                {
                    "message": "Invalid request",
                    "error": str(exc),
                    "correlation_id": correlation_id,
                }
            ),
        }

    logger.info(
        "Health score calculated",
        extra={
            "correlation_id": correlation_id,
            "customer_id": customer.customer_id,
            "overall_score": result.overall_score,
            "risk_level": result.risk_level.value,
        },
    )
    data = result.model_dump(mode="json")
    data["summary"] = get_health_score_explanation(result)
    data["explanations"] = {
        name: render_explanation(name, factor.explanation)
        for name, factor in result.factor_scores.items()
    }
    response = ApiResponse(message="Health score calculated", data=data, correlation_id=correlation_id)
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": response.model_dump_json(),
    }
