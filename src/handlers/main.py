"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

One Lambda keeps the alert engine and its in-memory store warm across routes,
while the code stays organized by delegating to modules.
"""

from typing import Callable, Dict, Tuple
import json

from . import alerts, health_check, health_score


def _response(status: int, body: Dict) -> Dict:
    """Format a JSON API Gateway HTTP API response."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context):
    """
    Entry point invoked by API Gateway HTTP API.

    The event contains the HTTP method and path; we route it to the correct
    handler while keeping shared setup (logging, error handling) centralized.
    """
    method = event.get("requestContext", {}).get("http", {}).get("method", "")
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    route_key = f"{method.upper()} {path}"

    # Map route keys to handler callables. Using startswith for path params,
    # so longer prefixes must come before the ones they extend.
    route_table: Tuple[Tuple[str, Callable], ...] = (
        ("GET /health-score", lambda e, c: _response(405, {"message": "Use POST"})),
        ("GET /health", health_check.lambda_handler),
        ("POST /health-score", health_score.lambda_handler),
        ("POST /alerts/evaluate-all", alerts.evaluate_all_handler),
        ("POST /alerts/evaluate", alerts.evaluate_handler),
        ("GET /alerts/metrics", alerts.metrics_handler),
        ("GET /alerts", alerts.list_handler),
        ("GET /customers/", alerts.customer_alerts_handler),
        ("POST /alerts/", alerts.action_handler),
        ("POST /rules/", alerts.toggle_rule_handler),
    )

    for prefix, handler in route_table:
        if route_key.startswith(prefix):
            return handler(event, context)

    return _response(404, {"message": "Route not found", "route": route_key})
