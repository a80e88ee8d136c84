"""
Alert handlers.

Routes:
- POST /alerts/evaluate          evaluate one customer
- POST /alerts/evaluate-all      evaluate a batch
- GET  /alerts                   active alerts
- GET  /alerts/metrics           system metrics
- GET  /customers/{id}/alerts    alerts for one customer
- POST /alerts/{id}/{action}     dismiss | resolve | snooze
- POST /rules/{type}/toggle      enable or disable a rule

The engine is shared across invocations of a warm container. With the
in-memory store, alerts live as long as the container; set ALERT_STORE to
dynamodb to keep them.
"""

from __future__ import annotations

import json
import uuid
from typing import Callable, Dict, List, Optional

from config.settings import Settings
from models.alert import Alert, AlertType
from models.requests import (
    AlertActionRequest,
    EvaluateAllRequest,
    EvaluateCustomerRequest,
    ToggleRuleRequest,
)
from models.response import ApiResponse
from utils.error_handling import AppError, NotFoundError, ValidationError, to_response
from utils.logging_config import get_logger
from utils.validators import ensure_present

logger = get_logger(__name__)

# Lazy-loaded engine to avoid building a store on import
_engine: Optional["PredictiveAlertEngine"] = None


def _get_engine():
    """Lazy-load the alert engine with the configured store."""
    global _engine
    if _engine is None:
        from services.alert_engine import PredictiveAlertEngine

        settings = Settings.from_environment()
        store = None
        if settings.alert_store == "dynamodb":
            from repositories.dynamodb_repo import DynamoDbAlertStore

            store = DynamoDbAlertStore(settings.alerts_table_name)
        _engine = PredictiveAlertEngine(config=settings.alert_engine_config(), store=store)
    return _engine


def _response(status: int, body: Dict) -> Dict:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _ok(message: str, data, correlation_id: str) -> Dict:
    response = ApiResponse(message=message, data=data, correlation_id=correlation_id)
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": response.model_dump_json(),
    }


def _dump(alerts: List[Alert]) -> List[Dict]:
    return [alert.model_dump(mode="json") for alert in alerts]


def _payload(event) -> Dict:
    """Body for API Gateway events; the event itself for direct invocations."""
    body = event.get("body")
    if body:
        return json.loads(body)
    return {k: v for k, v in event.items() if k not in ("requestContext", "pathParameters")}


def _path_segments(event) -> List[str]:
    path = event.get("rawPath") or event.get("requestContext", {}).get("http", {}).get("path", "")
    return [segment for segment in path.split("/") if segment]


def _guarded(action: str, handler: Callable[[Dict, str], Dict]) -> Callable:
    """Wrap a handler body with correlation ids and consistent error responses."""

    def wrapper(event, context):
        correlation_id = str(uuid.uuid4())
        try:
            return handler(event, correlation_id)
        except AppError as exc:
            logger.warning(
                f"{action} failed",
                extra={"correlation_id": correlation_id, "error": str(exc)},
            )
            return to_response(exc, correlation_id)
        except ValueError as exc:
            return _response(
                400,
                {
                    "message": "Invalid request",
                    "error": str(exc),
                    "correlation_id": correlation_id,
                },
            )

    wrapper.__doc__ = handler.__doc__
    return wrapper


def _evaluate(event, correlation_id: str) -> Dict:
    """Handle POST /alerts/evaluate."""
    request = EvaluateCustomerRequest.model_validate(_payload(event))
    alerts = _get_engine().evaluate_customer(request.customer, request.history)
    logger.info(
        "Customer evaluated",
        extra={
            "correlation_id": correlation_id,
            "customer_id": request.customer.customer_id,
            "alerts": len(alerts),
        },
    )
    return _ok("Customer evaluated", _dump(alerts), correlation_id)


def _evaluate_all(event, correlation_id: str) -> Dict:
    """Handle POST /alerts/evaluate-all."""
    request = EvaluateAllRequest.model_validate(_payload(event))
    alerts = _get_engine().evaluate_all_customers(request.customers, request.histories)
    logger.info(
        "Customers evaluated",
        extra={
            "correlation_id": correlation_id,
            "customers": len(request.customers),
            "alerts": len(alerts),
        },
    )
    return _ok("Customers evaluated", _dump(alerts), correlation_id)


def _list_active(event, correlation_id: str) -> Dict:
    """Handle GET /alerts."""
    return _ok("Active alerts", _dump(_get_engine().get_active_alerts()), correlation_id)


def _metrics(event, correlation_id: str) -> Dict:
    """Handle GET /alerts/metrics."""
    metrics = _get_engine().get_system_metrics()
    return _ok("Alert system metrics", metrics.model_dump(mode="json"), correlation_id)


def _customer_alerts(event, correlation_id: str) -> Dict:
    """Handle GET /customers/{id}/alerts."""
    path_params = event.get("pathParameters") or {}
    query_params = event.get("queryStringParameters") or {}
    segments = _path_segments(event)

    customer_id = path_params.get("id") or (segments[1] if len(segments) > 2 else None)
    ensure_present(customer_id, "customer id")
    include_resolved = str(query_params.get("include_resolved", "false")).lower() == "true"

    alerts = _get_engine().get_customer_alerts(customer_id, include_resolved=include_resolved)
    return _ok("Customer alerts", _dump(alerts), correlation_id)


def _alert_action(event, correlation_id: str) -> Dict:
    """Handle POST /alerts/{id}/dismiss|resolve|snooze; unknown ids are no-ops."""
    path_params = event.get("pathParameters") or {}
    segments = _path_segments(event)
    alert_id = path_params.get("id") or (segments[1] if len(segments) > 2 else None)
    action = path_params.get("action") or (segments[2] if len(segments) > 2 else None)
    ensure_present(alert_id, "alert id")

    request = AlertActionRequest.model_validate(_payload(event))
    engine = _get_engine()
    if action == "dismiss":
        ensure_present(request.actor, "actor")
        engine.dismiss_alert(alert_id, request.actor)
    elif action == "resolve":
        ensure_present(request.actor, "actor")
        engine.resolve_alert(alert_id, request.actor)
    elif action == "snooze":
        ensure_present(request.until, "until")
        engine.snooze_alert(alert_id, request.until)
    else:
        raise NotFoundError(f"Unknown alert action: {action}")

    logger.info(
        "Alert action applied",
        extra={"correlation_id": correlation_id, "alert_id": alert_id, "action": action},
    )
    return _ok(f"Alert {action} accepted", {"id": alert_id, "action": action}, correlation_id)


def _toggle_rule(event, correlation_id: str) -> Dict:
    """Handle POST /rules/{type}/toggle."""
    path_params = event.get("pathParameters") or {}
    segments = _path_segments(event)
    raw_type = path_params.get("type") or (segments[1] if len(segments) > 2 else None)
    try:
        rule_type = AlertType(raw_type)
    except ValueError:
        raise ValidationError(f"Unknown rule type: {raw_type}") from None

    request = ToggleRuleRequest.model_validate(_payload(event))
    _get_engine().toggle_rule(rule_type, request.enabled)
    logger.info(
        "Rule toggled",
        extra={
            "correlation_id": correlation_id,
            "alert_type": rule_type.value,
            "enabled": request.enabled,
        },
    )
    return _ok("Rule updated", {"type": rule_type.value, "enabled": request.enabled}, correlation_id)


evaluate_handler = _guarded("Customer evaluation", _evaluate)
evaluate_all_handler = _guarded("Batch evaluation", _evaluate_all)
list_handler = _guarded("Active alert listing", _list_active)
metrics_handler = _guarded("Metrics", _metrics)
customer_alerts_handler = _guarded("Customer alert listing", _customer_alerts)
action_handler = _guarded("Alert action", _alert_action)
toggle_rule_handler = _guarded("Rule toggle", _toggle_rule)
