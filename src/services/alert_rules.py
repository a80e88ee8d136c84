"""
Built-in predictive alert rules.

Every rule is a plain function ``(customer, history) -> AlertResult`` and
never touches alert storage; the engine decides what to do with the result.

High priority rules flag immediate revenue or churn risk (payment risk,
engagement cliff, contract expiration). Medium priority rules flag trends
worth a conversation (support ticket spike, feature adoption stall).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from models.alert import AlertPriority, AlertResult, AlertType, CustomerHistory
from models.health import CustomerHealthData
from services.health_calculator import calculate_health_score, weakest_factor

RuleEvaluator = Callable[[CustomerHealthData, Optional[CustomerHistory]], AlertResult]


def utcnow() -> datetime:
    """Current time; tests patch this to move the clock."""
    return datetime.now(timezone.utc)


def _days_ago(moment: datetime, now: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (now - moment) / timedelta(days=1)


def evaluate_payment_risk(
    customer: CustomerHealthData, history: Optional[CustomerHistory] = None
) -> AlertResult:
    """Payment overdue more than 30 days, or health score down 20+ points in 7 days."""
    overdue_threshold = 30
    health_drop_threshold = 20
    payment = customer.payment_history
    result = AlertResult(
        thresholds={
            "overdue_threshold": overdue_threshold,
            "health_drop_threshold": health_drop_threshold,
        }
    )

    if payment.days_since_last_payment > overdue_threshold:
        days = payment.days_since_last_payment
        result.should_trigger = True
        result.confidence = min(0.95, 0.6 + (days - overdue_threshold) / 100)
        result.reason = (
            f"Payment overdue by {days:g} days (>{overdue_threshold} days threshold)"
        )
        result.recommended_actions = [
            "Contact customer immediately regarding overdue payment",
            "Review payment terms and offer payment plan if needed",
            "Assess risk of service suspension",
        ]
        result.trigger_values["days_since_last_payment"] = days

    if history and len(history.health_scores) >= 2:
        now = utcnow()
        recent = sorted(
            (p for p in history.health_scores if _days_ago(p.timestamp, now) <= 7),
            key=lambda p: p.timestamp,
        )
        if len(recent) >= 2:
            # oldest minus newest: a decline is positive
            score_drop = recent[0].score - recent[-1].score
            if score_drop > health_drop_threshold:
                result.should_trigger = True
                result.confidence = max(result.confidence, min(0.9, 0.5 + score_drop / 100))
                if result.reason:
                    result.reason += f" AND health score dropped {score_drop:g} points in 7 days"
                else:
                    result.reason = (
                        f"Health score dropped {score_drop:g} points in 7 days "
                        f"(>{health_drop_threshold} threshold)"
                    )
                result.recommended_actions.extend(
                    [
                        "Investigate root cause of health score decline",
                        "Schedule customer success call within 24 hours",
                        "Review recent customer interactions and pain points",
                    ]
                )
                result.trigger_values["health_score_drop"] = score_drop

    return result


def evaluate_engagement_cliff(
    customer: CustomerHealthData, history: Optional[CustomerHistory] = None
) -> AlertResult:
    """
    Logins fell by more than half against the 8-37 day baseline.

    Without at least two login history points the rule falls back to an
    absolute floor: two or fewer logins and at most one feature used.
    """
    drop_threshold = 0.5
    minimum_historical = 5
    engagement = customer.engagement
    result = AlertResult(
        thresholds={
            "drop_threshold": round(drop_threshold * 100),
            "minimum_historical_engagement": minimum_historical,
        }
    )

    if history and len(history.login_history) >= 2:
        now = utcnow()
        baseline = [
            p.count for p in history.login_history if 7 < _days_ago(p.timestamp, now) <= 37
        ]
        if not baseline:
            return result

        historical_average = sum(baseline) / len(baseline)
        if historical_average <= 0:
            return result
        current = engagement.logins_last_30_days
        drop = (historical_average - current) / historical_average

        if drop > drop_threshold and historical_average >= minimum_historical:
            result.should_trigger = True
            result.confidence = min(0.9, 0.6 + drop)
            result.reason = (
                f"Login frequency dropped {round(drop * 100)}% from "
                f"{round(historical_average)} to {current} per month"
            )
            result.recommended_actions = [
                "Reach out to understand barriers to platform usage",
                "Offer refresher training or onboarding session",
                "Review recent product changes that may impact engagement",
                "Consider usage-based incentives or campaigns",
            ]
            result.trigger_values = {
                "historical_average": round(historical_average),
                "current_logins": current,
                "drop_percentage": round(drop * 100),
            }
        return result

    if engagement.logins_last_30_days <= 2 and engagement.features_used_last_30_days <= 1:
        result.should_trigger = True
        result.confidence = 0.7
        result.reason = (
            f"Extremely low engagement: {engagement.logins_last_30_days} logins, "
            f"{engagement.features_used_last_30_days} features used"
        )
        result.recommended_actions = [
            "Schedule immediate check-in call to understand usage barriers",
            "Provide guided onboarding or training session",
            "Review account setup and configuration",
        ]
        result.trigger_values = {
            "current_logins": engagement.logins_last_30_days,
            "features_used": engagement.features_used_last_30_days,
        }
    return result


_WEAKEST_FACTOR_ACTIONS = {
    "payment": "Address payment and billing concerns urgently",
    "engagement": "Focus on driving product adoption and usage",
    "support": "Resolve outstanding support issues before renewal",
}


def evaluate_contract_expiration_risk(
    customer: CustomerHealthData, history: Optional[CustomerHistory] = None
) -> AlertResult:
    """Renewal within 90 days while the current health score is under 50."""
    expiration_threshold = 90
    health_threshold = 50
    contract = customer.contract
    result = AlertResult(
        thresholds={
            "expiration_threshold": expiration_threshold,
            "health_threshold": health_threshold,
        }
    )

    health = calculate_health_score(customer)
    days = contract.days_until_renewal
    if not (0 < days <= expiration_threshold and health.overall_score < health_threshold):
        return result

    proximity = (expiration_threshold - days) / expiration_threshold
    health_gap = (health_threshold - health.overall_score) / health_threshold
    lowest = weakest_factor(health)

    result.should_trigger = True
    result.confidence = min(0.95, 0.5 + proximity * 0.3 + health_gap * 0.2)
    result.reason = (
        f"Contract expires in {days} days with health score of "
        f"{health.overall_score} (below {health_threshold} threshold)"
    )
    result.recommended_actions = [
        "Schedule renewal discussion immediately",
        "Address health score concerns before renewal conversation",
        "Prepare retention offers and value demonstration",
        "Review contract terms and pricing for competitive positioning",
    ]
    if lowest in _WEAKEST_FACTOR_ACTIONS:
        result.recommended_actions.append(_WEAKEST_FACTOR_ACTIONS[lowest])
    result.trigger_values = {
        "days_until_renewal": days,
        "health_score": health.overall_score,
        "contract_value": contract.contract_value,
        "lowest_factor_area": lowest,
    }
    return result


def evaluate_support_ticket_spike(
    customer: CustomerHealthData, history: Optional[CustomerHistory] = None
) -> AlertResult:
    """
    More than three tickets, or any escalation, on a busy account.

    The recent rate is estimated from lifetime ticket counts; the
    ``support_tickets`` history series is not consulted.
    """
    ticket_threshold = 3
    support = customer.support
    result = AlertResult(
        thresholds={
            "ticket_threshold": ticket_threshold,
            "critical_ticket_threshold": 1,
            "acceptable_resolution_hours": 48,
        }
    )
    if support.total_tickets <= ticket_threshold:
        return result

    recent_rate = support.total_tickets * (1.5 if support.escalated_tickets > 0 else 1)
    if recent_rate < ticket_threshold and support.escalated_tickets == 0:
        return result

    result.should_trigger = True
    if support.escalated_tickets > 0:
        result.confidence = 0.85
        result.reason = (
            f"{support.escalated_tickets} escalated ticket(s) and "
            f"{support.total_tickets} total recent tickets"
        )
    else:
        result.confidence = 0.7
        result.reason = (
            f"High support volume: {support.total_tickets} tickets in recent period "
            f"(>{ticket_threshold} threshold)"
        )

    result.recommended_actions = [
        "Review recent support tickets for pattern analysis",
        "Contact customer to understand root cause of issues",
        "Escalate internally if product defects are identified",
        "Provide proactive support and additional resources",
    ]
    if support.critical_tickets > 0:
        result.recommended_actions.append(
            "Address critical issues immediately - customer may be considering alternatives"
        )
    if support.average_resolution_hours > 48:
        result.recommended_actions.append(
            "Improve resolution time - slow support may be frustrating customer"
        )
    result.trigger_values = {
        "total_tickets": support.total_tickets,
        "escalated_tickets": support.escalated_tickets,
        "critical_tickets": support.critical_tickets,
        "average_resolution_hours": round(support.average_resolution_hours),
    }
    return result


def evaluate_feature_adoption_stall(
    customer: CustomerHealthData, history: Optional[CustomerHistory] = None
) -> AlertResult:
    """High-value account ($50k+) logging in regularly but using few features."""
    arr_threshold = 50000
    engagement = customer.engagement
    contract = customer.contract
    result = AlertResult(
        thresholds={
            "arr_threshold": arr_threshold,
            "min_feature_usage": 3,
            "min_engagement_hours": 10,
        }
    )
    if contract.contract_value < arr_threshold:
        return result
    if engagement.features_used_last_30_days > 3 or engagement.logins_last_30_days < 5:
        return result

    result.should_trigger = True
    result.confidence = 0.75
    result.reason = (
        f"High-value account (${contract.contract_value:,.0f}) using only "
        f"{engagement.features_used_last_30_days} features despite "
        f"{engagement.logins_last_30_days} logins"
    )
    result.recommended_actions = [
        "Schedule feature adoption consultation",
        "Provide advanced training on underutilized features",
        "Explore expansion opportunities based on usage patterns",
        "Share best practices and success stories from similar accounts",
    ]
    if engagement.average_session_minutes < 15:
        result.recommended_actions.append(
            "Address shallow usage patterns - customer may need better onboarding"
        )
    if contract.has_recent_upgrade:
        result.recommended_actions.append(
            "Follow up on recent upgrade - ensure customer realizes full value"
        )
    result.trigger_values = {
        "contract_value": contract.contract_value,
        "features_used": engagement.features_used_last_30_days,
        "logins": engagement.logins_last_30_days,
        "avg_session_minutes": round(engagement.average_session_minutes),
    }
    return result


@dataclass
class AlertRule:
    """Registry entry: which evaluator to run, how urgent, and how often."""

    type: AlertType
    priority: AlertPriority
    evaluate: RuleEvaluator
    cooldown_period: int  # minutes
    description: str
    enabled: bool = True


def default_rules() -> List[AlertRule]:
    """Fresh copies of the built-in rules, so toggling one engine never leaks."""
    return [
        AlertRule(
            type=AlertType.PAYMENT_RISK,
            priority=AlertPriority.HIGH,
            evaluate=evaluate_payment_risk,
            cooldown_period=720,
            description="Detects payment delays and health score drops indicating immediate revenue risk",
        ),
        AlertRule(
            type=AlertType.ENGAGEMENT_CLIFF,
            priority=AlertPriority.HIGH,
            evaluate=evaluate_engagement_cliff,
            cooldown_period=1440,
            description="Identifies sudden engagement drops that often precede churn decisions",
        ),
        AlertRule(
            type=AlertType.CONTRACT_EXPIRATION_RISK,
            priority=AlertPriority.HIGH,
            evaluate=evaluate_contract_expiration_risk,
            cooldown_period=2160,
            description="Flags at-risk renewals requiring immediate retention efforts",
        ),
        AlertRule(
            type=AlertType.SUPPORT_TICKET_SPIKE,
            priority=AlertPriority.MEDIUM,
            evaluate=evaluate_support_ticket_spike,
            cooldown_period=480,
            description="Monitors support activity spikes indicating customer frustration",
        ),
        AlertRule(
            type=AlertType.FEATURE_ADOPTION_STALL,
            priority=AlertPriority.MEDIUM,
            evaluate=evaluate_feature_adoption_stall,
            cooldown_period=10080,
            description="Identifies expansion opportunities in high-value accounts with stalled adoption",
        ),
    ]
