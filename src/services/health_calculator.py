"""
Customer health score calculator.

Turns a ``CustomerHealthData`` snapshot into a weighted 0-100 score from four
factors: payment (40%), engagement (30%), contract (20%) and support (10%).
Every function here is pure apart from the ``calculated_at`` timestamp, so
results can be recomputed freely and compared in tests.

Each factor records the rules it applied as ``ScoreAdjustment`` entries
(reason code + points). ``render_explanation`` turns those into the
sentences shown to customer success managers.
"""

from __future__ import annotations

import math
import operator
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from models.health import (
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
from utils.error_handling import HealthScoreCalculationError
from utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG = HealthScoreConfig()

# (bound, points, reason_code); the first bound that satisfies the comparison wins.
Tier = Tuple[float, float, str]

REASON_TEXT = {
    "payment.recency_over_60d": "No payment in 60+ days",
    "payment.recency_over_30d": "No payment in 30+ days",
    "payment.recency_over_15d": "No payment in 15+ days",
    "payment.recent_activity": "Recent payment activity",
    "payment.delay_over_30d": "High average delay 30+ days",
    "payment.delay_over_15d": "Moderate average delay 15+ days",
    "payment.delay_over_7d": "Minor average delay 7+ days",
    "payment.overdue_over_10k": "High overdue amount $10k+",
    "payment.overdue_over_5k": "Moderate overdue amount $5k+",
    "payment.overdue_over_1k": "Low overdue amount $1k+",
    "payment.late_rate_over_50pct": "Poor payment reliability >50% late",
    "payment.late_rate_over_30pct": "Moderate payment reliability >30% late",
    "payment.late_rate_over_10pct": "Minor payment reliability >10% late",
    "payment.late_rate_low": "Good payment reliability <10% late",
    "payment.no_history": "No payment history, lower confidence",
    "engagement.logins_20": "Excellent login frequency 20+ days",
    "engagement.logins_15": "Good login frequency 15+ days",
    "engagement.logins_10": "Moderate login frequency 10+ days",
    "engagement.logins_5": "Low login frequency 5+ days",
    "engagement.logins_under_5": "Very low login frequency <5 days",
    "engagement.features_15": "Excellent feature usage 15+ features",
    "engagement.features_10": "Good feature usage 10+ features",
    "engagement.features_5": "Moderate feature usage 5+ features",
    "engagement.features_2": "Limited feature usage 2+ features",
    "engagement.features_1": "Minimal feature usage 1 feature",
    "engagement.features_none": "No feature usage",
    "engagement.session_60m": "Excellent session duration 60+ mins",
    "engagement.session_30m": "Good session duration 30+ mins",
    "engagement.session_15m": "Moderate session duration 15+ mins",
    "engagement.session_5m": "Short session duration 5+ mins",
    "engagement.session_under_5m": "Very short sessions <5 mins",
    "engagement.platform_40h": "High platform usage 40+ hours",
    "engagement.platform_20h": "Good platform usage 20+ hours",
    "engagement.platform_10h": "Moderate platform usage 10+ hours",
    "engagement.platform_5h": "Low platform usage 5+ hours",
    "engagement.platform_under_5h": "Very low platform usage <5 hours",
    "engagement.tickets_high": "High support ticket volume may indicate issues",
    "engagement.tickets_moderate": "Moderate support ticket volume",
    "engagement.tickets_some": "Healthy support engagement",
    "engagement.tickets_none": "No support tickets needed",
    "contract.renewal_overdue": "Overdue renewal, critical risk",
    "contract.renewal_30d": "Renewal within 30 days, monitor closely",
    "contract.renewal_90d": "Renewal within 90 days, prepare engagement",
    "contract.renewal_180d": "Renewal 3-6 months away, stable period",
    "contract.renewal_secure": "Renewal 6+ months away, secure period",
    "contract.value_100k": "High-value contract $100k+",
    "contract.value_50k": "Medium-high contract $50k+",
    "contract.value_25k": "Medium contract $25k+",
    "contract.value_10k": "Standard contract $10k+",
    "contract.value_low": "Low-value contract <$10k",
    "contract.upgrade": "Recent upgrade, positive growth signal",
    "contract.downgrade": "Recent downgrade, concerning trend",
    "contract.mixed_changes": "Mixed upgrade/downgrade activity",
    "contract.stable": "Stable contract, no recent changes",
    "contract.renewals_3": "Strong renewal history 3+ renewals",
    "contract.renewals_2": "Good renewal history 2 renewals",
    "contract.renewals_1": "Some renewal history 1 renewal",
    "contract.renewals_none": "No renewal history, new customer",
    "support.satisfaction_9": "Excellent satisfaction 9+ rating",
    "support.satisfaction_7": "Good satisfaction 7+ rating",
    "support.satisfaction_5": "Moderate satisfaction 5+ rating",
    "support.satisfaction_3": "Poor satisfaction 3+ rating",
    "support.satisfaction_under_3": "Very poor satisfaction <3 rating",
    "support.resolution_4h": "Excellent resolution time <=4h",
    "support.resolution_24h": "Good resolution time <=24h",
    "support.resolution_48h": "Acceptable resolution time <=48h",
    "support.resolution_72h": "Slow resolution time <=72h",
    "support.resolution_over_72h": "Very slow resolution time >72h",
    "support.escalation_over_30pct": "High escalation rate >30%",
    "support.escalation_over_15pct": "Moderate escalation rate >15%",
    "support.escalation_over_5pct": "Low escalation rate >5%",
    "support.escalation_low": "Excellent escalation rate <=5%",
    "support.critical_over_20pct": "High critical ticket rate >20%",
    "support.critical_over_10pct": "Moderate critical ticket rate >10%",
    "support.critical_over_5pct": "Low critical ticket rate >5%",
    "support.critical_low": "Excellent critical ticket rate <=5%",
    "support.no_ticket_history": "No support ticket history, lower confidence",
}

RISK_DESCRIPTIONS = {
    RiskLevel.HEALTHY: "excellent health with low churn risk",
    RiskLevel.WARNING: "moderate concerns requiring attention",
    RiskLevel.CRITICAL: "high churn risk needing immediate intervention",
}


def _pick(
    value: float,
    tiers: Sequence[Tier],
    default: Optional[Tuple[float, str]],
    compare: Callable[[float, float], bool] = operator.ge,
) -> Optional[ScoreAdjustment]:
    """Return the adjustment of the first tier whose bound matches ``value``."""
    for bound, points, code in tiers:
        if compare(value, bound):
            return ScoreAdjustment(reason_code=code, delta_points=points)
    if default is None:
        return None
    points, code = default
    return ScoreAdjustment(reason_code=code, delta_points=points)


def _factor(
    base: float, adjustments: List[ScoreAdjustment], weight: float, confidence: float
) -> FactorScore:
    """Apply adjustments to a base score and clamp to 0-100."""
    score = base + sum(adj.delta_points for adj in adjustments)
    score = max(0.0, min(100.0, score))
    return FactorScore(
        score=score,
        weight=weight,
        contribution=score * weight,
        confidence=confidence,
        explanation=adjustments,
    )


class _FieldTally:
    """Counts valid fields; a field with only a warning counts as half valid."""

    def __init__(self) -> None:
        self.total = 0
        self.valid = 0.0
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def ok(self) -> None:
        self.total += 1
        self.valid += 1

    def warn(self, message: str) -> None:
        self.total += 1
        self.valid += 0.5
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        self.total += 1
        self.errors.append(message)


def validate_health_data(
    data: CustomerHealthData,
    min_confidence: float = DEFAULT_CONFIG.min_confidence_threshold,
) -> ValidationResult:
    """
    Check a record for negative counts and inconsistent cross-field values.

    Hard problems go to ``errors``; suspicious but usable values go to
    ``warnings``. Confidence is the share of valid fields.
    """
    tally = _FieldTally()

    payment = data.payment_history
    if payment.days_since_last_payment < -30:
        tally.warn("Payment scheduled more than 30 days in future")
    else:
        tally.ok()
    if payment.average_payment_delay < 0:
        tally.fail("Average payment delay cannot be negative")
    else:
        tally.ok()
    if payment.overdue_amount < 0:
        tally.fail("Overdue amount cannot be negative")
    else:
        tally.ok()
    if payment.total_payments < 0:
        tally.fail("Total payments cannot be negative")
    elif payment.total_payments == 0:
        tally.warn("No payment history available")
    else:
        tally.ok()
    if payment.late_payments < 0 or payment.late_payments > payment.total_payments:
        tally.fail("Late payments must be between 0 and total payments")
    else:
        tally.ok()

    engagement = data.engagement
    for value, message in (
        (engagement.logins_last_30_days, "Login count cannot be negative"),
        (engagement.features_used_last_30_days, "Features used cannot be negative"),
        (engagement.average_session_minutes, "Session duration cannot be negative"),
        (engagement.support_tickets_last_90_days, "Support ticket count cannot be negative"),
        (engagement.total_time_spent_minutes, "Total time spent cannot be negative"),
    ):
        if value < 0:
            tally.fail(message)
        else:
            tally.ok()

    contract = data.contract
    if contract.contract_value < 0:
        tally.fail("Contract value cannot be negative")
    elif contract.contract_value == 0:
        tally.warn("Zero contract value may indicate data issue")
    else:
        tally.ok()
    if contract.contract_duration_months <= 0:
        tally.fail("Contract duration must be positive")
    else:
        tally.ok()
    if contract.renewal_history < 0:
        tally.fail("Renewal history cannot be negative")
    else:
        tally.ok()
    # upgrade/downgrade flags are booleans and always valid
    tally.ok()
    tally.ok()

    support = data.support
    if support.average_resolution_hours < 0:
        tally.fail("Resolution time cannot be negative")
    else:
        tally.ok()
    if not 1 <= support.satisfaction_score <= 10:
        tally.fail("Satisfaction score must be between 1 and 10")
    else:
        tally.ok()
    if support.escalated_tickets < 0 or support.escalated_tickets > support.total_tickets:
        tally.fail("Escalated tickets cannot exceed total tickets")
    else:
        tally.ok()
    if support.critical_tickets < 0 or support.critical_tickets > support.total_tickets:
        tally.fail("Critical tickets cannot exceed total tickets")
    else:
        tally.ok()
    if support.total_tickets < 0:
        tally.fail("Total tickets cannot be negative")
    else:
        tally.ok()

    confidence = tally.valid / tally.total
    return ValidationResult(
        is_valid=not tally.errors and confidence >= min_confidence,
        errors=tally.errors,
        warnings=tally.warnings,
        confidence=confidence,
    )


def calculate_payment_score(
    metrics: PaymentMetrics, weight: float = DEFAULT_CONFIG.weights.payment
) -> FactorScore:
    """Payment health starts perfect and loses points for each bad signal."""
    confidence = 1.0
    adjustments = [
        # Recency carries 30% of the factor: 0/40/70/100 recency scores.
        _pick(
            max(0.0, metrics.days_since_last_payment),
            (
                (60, -30, "payment.recency_over_60d"),
                (30, -18, "payment.recency_over_30d"),
                (15, -9, "payment.recency_over_15d"),
            ),
            (0, "payment.recent_activity"),
            operator.gt,
        )
    ]

    delay = _pick(
        metrics.average_payment_delay,
        (
            (30, -25, "payment.delay_over_30d"),
            (15, -15, "payment.delay_over_15d"),
            (7, -8, "payment.delay_over_7d"),
        ),
        None,
        operator.gt,
    )
    overdue = _pick(
        metrics.overdue_amount,
        (
            (10000, -25, "payment.overdue_over_10k"),
            (5000, -15, "payment.overdue_over_5k"),
            (1000, -8, "payment.overdue_over_1k"),
        ),
        None,
        operator.gt,
    )
    adjustments.extend(adj for adj in (delay, overdue) if adj is not None)

    if metrics.total_payments > 0:
        late_rate = metrics.late_payments / metrics.total_payments
        adjustments.append(
            _pick(
                late_rate,
                (
                    (0.5, -20, "payment.late_rate_over_50pct"),
                    (0.3, -12, "payment.late_rate_over_30pct"),
                    (0.1, -5, "payment.late_rate_over_10pct"),
                ),
                (0, "payment.late_rate_low"),
                operator.gt,
            )
        )
    else:
        adjustments.append(ScoreAdjustment(reason_code="payment.no_history", delta_points=-10))
        confidence = 0.7

    return _factor(100, adjustments, weight, confidence)


def calculate_engagement_score(
    metrics: EngagementMetrics, weight: float = DEFAULT_CONFIG.weights.engagement
) -> FactorScore:
    """Engagement is built up from zero; points have to be earned."""
    tickets = metrics.support_tickets_last_90_days
    if tickets > 10:
        ticket_adj = ScoreAdjustment(reason_code="engagement.tickets_high", delta_points=-5)
    elif tickets > 5:
        ticket_adj = ScoreAdjustment(reason_code="engagement.tickets_moderate", delta_points=-2)
    elif tickets > 0:
        ticket_adj = ScoreAdjustment(reason_code="engagement.tickets_some", delta_points=2)
    else:
        # no tickets at all reads as good UX, not disengagement
        ticket_adj = ScoreAdjustment(reason_code="engagement.tickets_none", delta_points=5)

    adjustments = [
        _pick(
            metrics.logins_last_30_days,
            (
                (20, 30, "engagement.logins_20"),
                (15, 25, "engagement.logins_15"),
                (10, 20, "engagement.logins_10"),
                (5, 10, "engagement.logins_5"),
            ),
            (0, "engagement.logins_under_5"),
        ),
        _pick(
            metrics.features_used_last_30_days,
            (
                (15, 25, "engagement.features_15"),
                (10, 20, "engagement.features_10"),
                (5, 15, "engagement.features_5"),
                (2, 8, "engagement.features_2"),
                (1, 3, "engagement.features_1"),
            ),
            (0, "engagement.features_none"),
        ),
        _pick(
            metrics.average_session_minutes,
            (
                (60, 20, "engagement.session_60m"),
                (30, 15, "engagement.session_30m"),
                (15, 10, "engagement.session_15m"),
                (5, 5, "engagement.session_5m"),
            ),
            (0, "engagement.session_under_5m"),
        ),
        _pick(
            metrics.total_time_spent_minutes / 60,
            (
                (40, 15, "engagement.platform_40h"),
                (20, 12, "engagement.platform_20h"),
                (10, 8, "engagement.platform_10h"),
                (5, 4, "engagement.platform_5h"),
            ),
            (0, "engagement.platform_under_5h"),
        ),
        ticket_adj,
    ]
    return _factor(0, adjustments, weight, 1.0)


def calculate_contract_score(
    metrics: ContractMetrics, weight: float = DEFAULT_CONFIG.weights.contract
) -> FactorScore:
    """Contract health starts neutral at 70."""
    confidence = 1.0

    if metrics.days_until_renewal < 0:
        renewal = ScoreAdjustment(reason_code="contract.renewal_overdue", delta_points=-30)
    else:
        renewal = _pick(
            metrics.days_until_renewal,
            (
                (30, -15, "contract.renewal_30d"),
                (90, -5, "contract.renewal_90d"),
                (180, 10, "contract.renewal_180d"),
            ),
            (15, "contract.renewal_secure"),
            operator.le,
        )

    value = _pick(
        metrics.contract_value,
        (
            (100000, 20, "contract.value_100k"),
            (50000, 15, "contract.value_50k"),
            (25000, 10, "contract.value_25k"),
            (10000, 5, "contract.value_10k"),
        ),
        (-5, "contract.value_low"),
    )

    upgrade, downgrade = metrics.has_recent_upgrade, metrics.has_recent_downgrade
    if upgrade and not downgrade:
        change = ScoreAdjustment(reason_code="contract.upgrade", delta_points=15)
    elif downgrade and not upgrade:
        change = ScoreAdjustment(reason_code="contract.downgrade", delta_points=-15)
    elif upgrade and downgrade:
        change = ScoreAdjustment(reason_code="contract.mixed_changes", delta_points=0)
    else:
        change = ScoreAdjustment(reason_code="contract.stable", delta_points=5)

    history = _pick(
        metrics.renewal_history,
        (
            (3, 10, "contract.renewals_3"),
            (2, 5, "contract.renewals_2"),
            (1, 2, "contract.renewals_1"),
        ),
        (-5, "contract.renewals_none"),
    )
    if metrics.renewal_history < 1:
        confidence = 0.8

    return _factor(70, [renewal, value, change, history], weight, confidence)


def calculate_support_score(
    metrics: SupportMetrics, weight: float = DEFAULT_CONFIG.weights.support
) -> FactorScore:
    """Support health starts at a neutral-good 80."""
    confidence = 1.0
    adjustments = [
        _pick(
            metrics.satisfaction_score,
            (
                (9, 20, "support.satisfaction_9"),
                (7, 10, "support.satisfaction_7"),
                (5, -5, "support.satisfaction_5"),
                (3, -15, "support.satisfaction_3"),
            ),
            (-25, "support.satisfaction_under_3"),
        ),
        _pick(
            metrics.average_resolution_hours,
            (
                (4, 15, "support.resolution_4h"),
                (24, 10, "support.resolution_24h"),
                (48, 5, "support.resolution_48h"),
                (72, -5, "support.resolution_72h"),
            ),
            (-15, "support.resolution_over_72h"),
            operator.le,
        ),
    ]

    if metrics.total_tickets > 0:
        adjustments.append(
            _pick(
                metrics.escalated_tickets / metrics.total_tickets,
                (
                    (0.3, -10, "support.escalation_over_30pct"),
                    (0.15, -5, "support.escalation_over_15pct"),
                    (0.05, -2, "support.escalation_over_5pct"),
                ),
                (0, "support.escalation_low"),
                operator.gt,
            )
        )
        adjustments.append(
            _pick(
                metrics.critical_tickets / metrics.total_tickets,
                (
                    (0.2, -8, "support.critical_over_20pct"),
                    (0.1, -4, "support.critical_over_10pct"),
                    (0.05, -2, "support.critical_over_5pct"),
                ),
                (0, "support.critical_low"),
                operator.gt,
            )
        )
    else:
        adjustments.append(ScoreAdjustment(reason_code="support.no_ticket_history", delta_points=0))
        confidence = 0.7

    return _factor(80, adjustments, weight, confidence)


def determine_risk_level(score: float, config: Optional[HealthScoreConfig] = None) -> RiskLevel:
    """Bucket a score using inclusive minimums for healthy and warning."""
    thresholds = (config or DEFAULT_CONFIG).risk_thresholds
    if score >= thresholds.healthy_min:
        return RiskLevel.HEALTHY
    if score >= thresholds.warning_min:
        return RiskLevel.WARNING
    return RiskLevel.CRITICAL


def calculate_health_score(
    data: CustomerHealthData, config: Optional[HealthScoreConfig] = None
) -> HealthScoreResult:
    """
    Validate ``data`` and compute the weighted health score.

    Raises HealthScoreCalculationError instead of guessing when validation
    fails; no clamping is applied to bad input.
    """
    config = config or DEFAULT_CONFIG
    validation = validate_health_data(data, config.min_confidence_threshold)
    if not validation.is_valid:
        problems = validation.errors or [
            f"data confidence {validation.confidence:.2f} below "
            f"{config.min_confidence_threshold:.2f}"
        ]
        logger.warning(
            "Health data rejected",
            extra={"customer_id": data.customer_id, "errors": problems},
        )
        raise HealthScoreCalculationError(
            f"Invalid customer data: {', '.join(problems)}", validation=validation
        )

    weights = config.weights
    steps = (
        ("payment", calculate_payment_score, data.payment_history, weights.payment),
        ("engagement", calculate_engagement_score, data.engagement, weights.engagement),
        ("contract", calculate_contract_score, data.contract, weights.contract),
        ("support", calculate_support_score, data.support, weights.support),
    )

    factor_scores = {}
    for name, scorer, metrics, weight in steps:
        try:
            factor_scores[name] = scorer(metrics, weight)
        except Exception as exc:
            raise HealthScoreCalculationError(
                "Failed to calculate health score", factor=name, cause=exc
            ) from exc

    # half-up rounding, so 70.5 is 71 and classifies as healthy
    overall_score = math.floor(sum(f.contribution for f in factor_scores.values()) + 0.5)
    overall_confidence = min(f.confidence for f in factor_scores.values())

    return HealthScoreResult(
        overall_score=overall_score,
        risk_level=determine_risk_level(overall_score, config),
        factor_scores=factor_scores,
        overall_confidence=overall_confidence,
        calculated_at=datetime.now(timezone.utc),
    )


def render_explanation(factor_name: str, adjustments: Sequence[ScoreAdjustment]) -> str:
    """Render structured adjustments, e.g. 'Payment Health: ... (-30 pts), ...'."""
    parts = [
        f"{REASON_TEXT.get(adj.reason_code, adj.reason_code)} ({adj.delta_points:+g} pts)"
        for adj in adjustments
    ]
    return f"{factor_name.title()} Health: {', '.join(parts)}"


def weakest_factor(result: HealthScoreResult) -> str:
    """Name of the factor contributing the least; ties go to the first listed."""
    return min(result.factor_scores, key=lambda name: result.factor_scores[name].contribution)


def get_health_score_explanation(result: HealthScoreResult) -> str:
    """One-line summary naming the strongest and weakest factors."""
    factors = result.factor_scores
    top = max(factors, key=lambda name: factors[name].contribution)
    bottom = weakest_factor(result)
    return (
        f"Customer health score of {result.overall_score}/100 indicates "
        f"{RISK_DESCRIPTIONS[result.risk_level]}. "
        f"Primary strength: {top} ({factors[top].score:g}/100). "
        f"Area for improvement: {bottom} ({factors[bottom].score:g}/100)."
    )
