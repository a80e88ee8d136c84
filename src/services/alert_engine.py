"""
Predictive alert engine.

Runs the registered rules against a customer snapshot, drops anything in
cooldown or under the confidence floor, stores what fires and returns it
ordered by priority and confidence.

A rule that raises aborts the evaluation of that customer with
AlertSystemError: a broken rule is a defect, not a data problem.
"""

from __future__ import annotations

import functools
import itertools
from datetime import datetime, timedelta
from threading import RLock
from typing import Dict, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo

from models.alert import (
    AccuracyMetrics,
    Alert,
    AlertEngineConfig,
    AlertMetadata,
    AlertPriority,
    AlertResult,
    AlertStatus,
    AlertSystemMetrics,
    AlertType,
    CustomerHistory,
    PerformanceMetrics,
    ResolutionStats,
)
from models.health import CustomerHealthData
from repositories.alert_store import InMemoryAlertStore
from services import alert_rules
from services.alert_rules import AlertRule, default_rules
from utils.error_handling import AlertSystemError
from utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_ALERT_CONFIG = AlertEngineConfig()

CONFIDENCE_FLOOR = 0.5

ALERT_TITLES = {
    AlertType.PAYMENT_RISK: "Payment Risk Alert",
    AlertType.ENGAGEMENT_CLIFF: "Engagement Cliff Alert",
    AlertType.CONTRACT_EXPIRATION_RISK: "Contract Expiration Risk",
    AlertType.SUPPORT_TICKET_SPIKE: "Support Ticket Spike",
    AlertType.FEATURE_ADOPTION_STALL: "Feature Adoption Stall",
}

_PRIORITY_RANK = {AlertPriority.HIGH: 0, AlertPriority.MEDIUM: 1}


def _customer_order(a: Alert, b: Alert) -> int:
    """Priority, then confidence descending."""
    if a.priority != b.priority:
        return _PRIORITY_RANK[a.priority] - _PRIORITY_RANK[b.priority]
    return (b.confidence > a.confidence) - (b.confidence < a.confidence)


def _global_order(a: Alert, b: Alert) -> int:
    """Priority, then confidence unless within 0.1, then customer ARR descending."""
    if a.priority != b.priority:
        return _PRIORITY_RANK[a.priority] - _PRIORITY_RANK[b.priority]
    if abs(a.confidence - b.confidence) > 0.1:
        return -1 if a.confidence > b.confidence else 1
    arr_a, arr_b = a.metadata.customer_arr, b.metadata.customer_arr
    return (arr_b > arr_a) - (arr_b < arr_a)


def _newest_first(alerts: Iterable[Alert]) -> List[Alert]:
    return sorted(alerts, key=lambda alert: alert.triggered_at, reverse=True)


class PredictiveAlertEngine:
    """Evaluates customers against alert rules and owns the resulting alerts."""

    def __init__(self, config: Optional[AlertEngineConfig] = None, store=None):
        self.config = config or DEFAULT_ALERT_CONFIG
        self.store = store if store is not None else InMemoryAlertStore()
        self._rules: Dict[AlertType, AlertRule] = {rule.type: rule for rule in default_rules()}
        self._counter = itertools.count(1)
        # cooldown scan + insert has to be atomic per engine
        self._lock = RLock()

    # -- evaluation -----------------------------------------------------

    def evaluate_customer(
        self, customer: CustomerHealthData, history: Optional[CustomerHistory] = None
    ) -> List[Alert]:
        """
        Run every enabled rule for one customer and return what fired.

        A failing rule raises AlertSystemError and stops the loop. Alerts
        stored earlier in the same call stay stored (and in cooldown), so
        callers should re-read ``get_customer_alerts`` after the error.
        """
        triggered: List[Alert] = []
        with self._lock:
            for rule in list(self._rules.values()):
                if not rule.enabled:
                    continue
                now = alert_rules.utcnow()
                if self._in_cooldown(customer.customer_id, rule, now):
                    logger.debug(
                        "Rule in cooldown",
                        extra={"customer_id": customer.customer_id, "alert_type": rule.type.value},
                    )
                    continue
                if self._outside_business_hours(rule, now):
                    continue

                try:
                    result = rule.evaluate(customer, history)
                except Exception as exc:
                    raise self._rule_failure(customer, rule, exc) from exc

                if not (result.should_trigger and result.confidence > CONFIDENCE_FLOOR):
                    continue
                if self._daily_cap_reached(customer.customer_id, now):
                    logger.debug(
                        "Daily alert cap reached",
                        extra={"customer_id": customer.customer_id, "alert_type": rule.type.value},
                    )
                    continue

                try:
                    alert = self._materialize(customer, rule, result, history, now)
                except Exception as exc:
                    # e.g. a custom rule reporting confidence above 1
                    raise self._rule_failure(customer, rule, exc) from exc
                self.store.put(alert)
                triggered.append(alert)
                logger.info(
                    "Alert triggered",
                    extra={
                        "alert_id": alert.id,
                        "customer_id": alert.customer_id,
                        "alert_type": alert.type.value,
                        "confidence": round(alert.confidence, 3),
                    },
                )

        return sorted(triggered, key=functools.cmp_to_key(_customer_order))

    def evaluate_all_customers(
        self,
        customers: Iterable[CustomerHealthData],
        histories: Optional[Mapping[str, CustomerHistory]] = None,
    ) -> List[Alert]:
        """Evaluate customers in order and sort the combined alerts globally."""
        histories = histories or {}
        alerts: List[Alert] = []
        for customer in customers:
            alerts.extend(self.evaluate_customer(customer, histories.get(customer.customer_id)))
        return sorted(alerts, key=functools.cmp_to_key(_global_order))

    @staticmethod
    def _rule_failure(
        customer: CustomerHealthData, rule: AlertRule, exc: Exception
    ) -> AlertSystemError:
        logger.exception(
            "Alert rule failed",
            extra={"customer_id": customer.customer_id, "alert_type": rule.type.value},
        )
        return AlertSystemError(
            f"Failed to evaluate {rule.type.value} alert for customer {customer.customer_id}",
            alert_type=rule.type.value,
            customer_id=customer.customer_id,
            cause=exc,
        )

    def _in_cooldown(self, customer_id: str, rule: AlertRule, now: datetime) -> bool:
        cutoff = now - timedelta(minutes=rule.cooldown_period)
        return any(
            alert.customer_id == customer_id
            and alert.type == rule.type
            and alert.triggered_at > cutoff
            for alert in self.store.values()
        )

    def _daily_cap_reached(self, customer_id: str, now: datetime) -> bool:
        day_ago = now - timedelta(days=1)
        count = sum(
            1
            for alert in self.store.values()
            if alert.customer_id == customer_id and alert.triggered_at > day_ago
        )
        return count >= self.config.max_alerts_per_customer_per_day

    def _outside_business_hours(self, rule: AlertRule, now: datetime) -> bool:
        """Medium priority rules wait for business hours when configured to."""
        if not self.config.respect_business_hours or rule.priority != AlertPriority.MEDIUM:
            return False
        hours = self.config.business_hours
        local = now.astimezone(ZoneInfo(hours.timezone))
        # isoweekday: Monday=1..Sunday=7; business_hours uses Sunday=0
        weekday = local.isoweekday() % 7
        return weekday not in hours.weekdays or not hours.start <= local.hour < hours.end

    def _materialize(
        self,
        customer: CustomerHealthData,
        rule: AlertRule,
        result: AlertResult,
        history: Optional[CustomerHistory],
        now: datetime,
    ) -> Alert:
        metadata = AlertMetadata(
            trigger_values=result.trigger_values,
            thresholds=result.thresholds,
            historical_context=(
                {"has_history": True, "data_points": self._history_points(history)}
                if history
                else {"has_history": False}
            ),
            customer_arr=customer.contract.contract_value,
            previous_alerts=sum(
                1 for alert in self.store.values() if alert.customer_id == customer.customer_id
            ),
        )
        return Alert(
            id=f"alert-{int(now.timestamp() * 1000)}-{next(self._counter)}",
            customer_id=customer.customer_id,
            type=rule.type,
            priority=rule.priority,
            status=AlertStatus.ACTIVE,
            title=ALERT_TITLES.get(rule.type, "Customer Risk Alert"),
            message=result.reason,
            recommended_actions=list(result.recommended_actions),
            triggered_at=now,
            cooldown_until=now + timedelta(minutes=rule.cooldown_period),
            confidence=result.confidence,
            metadata=metadata,
        )

    @staticmethod
    def _history_points(history: CustomerHistory) -> int:
        return sum(
            len(series)
            for series in (
                history.health_scores,
                history.login_history,
                history.payment_events,
                history.support_tickets,
                history.feature_usage,
                history.contract_events,
            )
        )

    # -- queries --------------------------------------------------------

    def get_active_alerts(self) -> List[Alert]:
        return _newest_first(a for a in self.store.values() if a.status == AlertStatus.ACTIVE)

    def get_customer_alerts(self, customer_id: str, include_resolved: bool = False) -> List[Alert]:
        """Alerts for one customer; everything, not just active, when include_resolved."""
        return _newest_first(
            a
            for a in self.store.values()
            if a.customer_id == customer_id
            and (include_resolved or a.status == AlertStatus.ACTIVE)
        )

    def get_alert_storage(self) -> Dict[str, Alert]:
        """Copy of the id -> alert mapping, for debugging."""
        return self.store.snapshot()

    def reset(self) -> None:
        """Clear stored alerts and restart the id counter."""
        with self._lock:
            self.store.clear()
            self._counter = itertools.count(1)

    # -- lifecycle ------------------------------------------------------
    # Unknown ids are ignored: these are idempotent user actions.

    def dismiss_alert(self, alert_id: str, dismissed_by: str) -> None:
        with self._lock:
            alert = self.store.get(alert_id)
            if alert is None:
                logger.debug("Dismiss ignored for unknown alert", extra={"alert_id": alert_id})
                return
            alert.status = AlertStatus.DISMISSED
            alert.dismissed_at = alert_rules.utcnow()
            alert.dismissed_by = dismissed_by
            self.store.put(alert)

    def resolve_alert(self, alert_id: str, resolved_by: str) -> None:
        with self._lock:
            alert = self.store.get(alert_id)
            if alert is None:
                logger.debug("Resolve ignored for unknown alert", extra={"alert_id": alert_id})
                return
            alert.status = AlertStatus.RESOLVED
            alert.resolved_at = alert_rules.utcnow()
            alert.resolved_by = resolved_by
            self.store.put(alert)

    def snooze_alert(self, alert_id: str, snooze_until: datetime) -> None:
        with self._lock:
            alert = self.store.get(alert_id)
            if alert is None:
                logger.debug("Snooze ignored for unknown alert", extra={"alert_id": alert_id})
                return
            alert.status = AlertStatus.SNOOZED
            alert.snoozed_until = snooze_until
            self.store.put(alert)

    # -- metrics --------------------------------------------------------

    def get_system_metrics(self) -> AlertSystemMetrics:
        """
        Counts over the last 24 hours plus lifetime resolution stats.

        Accuracy and performance figures are fixed illustrative values; no
        outcome tracking or timing is recorded.
        """
        alerts = self.store.values()
        day_ago = alert_rules.utcnow() - timedelta(days=1)
        recent = [a for a in alerts if a.triggered_at > day_ago]

        return AlertSystemMetrics(
            total_alerts=len(recent),
            alerts_by_priority={
                priority: sum(1 for a in recent if a.priority == priority)
                for priority in AlertPriority
            },
            alerts_by_type={
                alert_type: sum(1 for a in recent if a.type == alert_type)
                for alert_type in AlertType
            },
            resolution_stats=ResolutionStats(
                resolved=sum(1 for a in alerts if a.status == AlertStatus.RESOLVED),
                dismissed=sum(1 for a in alerts if a.status == AlertStatus.DISMISSED),
                active=sum(1 for a in alerts if a.status == AlertStatus.ACTIVE),
                average_resolution_time=self._average_resolution_minutes(alerts),
            ),
            accuracy_metrics=AccuracyMetrics(true_positives=0, false_positives=0, accuracy=85),
            performance_metrics=PerformanceMetrics(
                average_evaluation_time=50, max_evaluation_time=150, evaluations_per_second=20
            ),
        )

    @staticmethod
    def _average_resolution_minutes(alerts: List[Alert]) -> int:
        durations = [
            (a.resolved_at - a.triggered_at).total_seconds()
            for a in alerts
            if a.status == AlertStatus.RESOLVED and a.resolved_at and a.triggered_at
        ]
        if not durations:
            return 0
        return round(sum(durations) / len(durations) / 60)

    # -- rule management ------------------------------------------------

    def add_rule(self, rule: AlertRule) -> None:
        """Register a rule; an existing rule of the same type is replaced."""
        with self._lock:
            self._rules[rule.type] = rule

    def remove_rule(self, rule_type: AlertType) -> None:
        with self._lock:
            self._rules.pop(rule_type, None)

    def toggle_rule(self, rule_type: AlertType, enabled: bool) -> None:
        with self._lock:
            rule = self._rules.get(rule_type)
            if rule is not None:
                rule.enabled = enabled

    @property
    def rules(self) -> List[AlertRule]:
        return list(self._rules.values())
