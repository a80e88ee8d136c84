import json

from handlers import health_check


def test_health_check_returns_ok():
    resp = health_check.lambda_handler({}, None)
    assert resp["statusCode"] == 200
    assert "ok" in resp["body"]


def test_health_check_reports_alert_store(monkeypatch):
    monkeypatch.setenv("ALERT_STORE", "dynamodb")
    body = json.loads(health_check.lambda_handler({}, None)["body"])
    assert body["service"] == "customer-health-alerts"
    assert body["alert_store"] == "dynamodb"
