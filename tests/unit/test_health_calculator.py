"""
Health score calculator tests.

Pure functions only; no AWS connection required.

Run with: pytest tests/unit/test_health_calculator.py -v
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def _with(customer, group: str, **changes):
    """Copy of ``customer`` with fields of one metric group replaced."""
    updated = getattr(customer, group).model_copy(update=changes)
    return customer.model_copy(update={group: updated})


class TestValidateHealthData:
    """Test validate_health_data."""

    def test_clean_record_is_fully_valid(self, healthy_customer):
        """A consistent record validates with full confidence."""
        from services.health_calculator import validate_health_data

        result = validate_health_data(healthy_customer)
        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.confidence == 1.0

    def test_negative_overdue_amount_is_an_error(self, healthy_customer):
        """Negative money amounts are rejected."""
        from services.health_calculator import validate_health_data

        data = _with(healthy_customer, "payment_history", overdue_amount=-1)
        result = validate_health_data(data)
        assert result.is_valid is False
        assert "Overdue amount cannot be negative" in result.errors

    def test_late_payments_above_total_is_an_error(self, healthy_customer):
        """Late payments cannot exceed total payments."""
        from services.health_calculator import validate_health_data

        data = _with(healthy_customer, "payment_history", total_payments=2, late_payments=3)
        result = validate_health_data(data)
        assert result.is_valid is False
        assert "Late payments must be between 0 and total payments" in result.errors

    def test_satisfaction_out_of_range_is_an_error(self, healthy_customer):
        """Satisfaction is a 1-10 rating."""
        from services.health_calculator import validate_health_data

        data = _with(healthy_customer, "support", satisfaction_score=0)
        result = validate_health_data(data)
        assert "Satisfaction score must be between 1 and 10" in result.errors

    def test_warning_counts_as_half_a_field(self, healthy_customer):
        """No payment history is a warning and costs half a field of confidence."""
        from services.health_calculator import validate_health_data

        data = _with(healthy_customer, "payment_history", total_payments=0, late_payments=0)
        result = validate_health_data(data)
        assert result.is_valid is True
        assert result.warnings == ["No payment history available"]
        assert result.confidence == pytest.approx(19.5 / 20)

    def test_warnings_alone_can_fail_a_strict_threshold(self, healthy_customer):
        """Confidence below min_confidence invalidates a record with no errors."""
        from services.health_calculator import validate_health_data

        data = _with(healthy_customer, "payment_history", total_payments=0, late_payments=0)
        data = _with(data, "contract", contract_value=0)
        result = validate_health_data(data, min_confidence=0.99)
        assert result.errors == []
        assert result.is_valid is False


class TestFactorScores:
    """Test the four factor scorers."""

    def test_payment_score_for_fixtures(self, healthy_customer, at_risk_customer):
        """Healthy payer keeps 100; the at-risk payer loses 78 points."""
        from services.health_calculator import calculate_payment_score

        assert calculate_payment_score(healthy_customer.payment_history).score == 100
        factor = calculate_payment_score(at_risk_customer.payment_history)
        assert factor.score == 22
        assert [adj.reason_code for adj in factor.explanation] == [
            "payment.recency_over_30d",
            "payment.delay_over_15d",
            "payment.overdue_over_10k",
            "payment.late_rate_over_50pct",
        ]

    def test_payment_without_history_lowers_confidence(self, healthy_customer):
        """No payments at all costs 10 points and drops confidence to 0.7."""
        from services.health_calculator import calculate_payment_score

        data = _with(healthy_customer, "payment_history", total_payments=0, late_payments=0)
        factor = calculate_payment_score(data.payment_history)
        assert factor.score == 90
        assert factor.confidence == pytest.approx(0.7)

    @pytest.mark.parametrize("days,expected", [(15, 100), (16, 91), (30, 91), (31, 82), (60, 82), (61, 70)])
    def test_payment_recency_boundaries(self, healthy_customer, days, expected):
        """Recency bands are exclusive at 15, 30 and 60 days."""
        from services.health_calculator import calculate_payment_score

        data = _with(healthy_customer, "payment_history", days_since_last_payment=days)
        assert calculate_payment_score(data.payment_history).score == expected

    def test_payment_score_never_improves_with_age(self, healthy_customer):
        """More days since the last payment never raises the score."""
        from services.health_calculator import calculate_payment_score

        scores = [
            calculate_payment_score(
                _with(healthy_customer, "payment_history", days_since_last_payment=days).payment_history
            ).score
            for days in (-40, 0, 10, 16, 31, 45, 61, 120, 365)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_engagement_score_for_fixtures(self, healthy_customer, at_risk_customer):
        """Engagement is earned from zero and clamped at zero."""
        from services.health_calculator import calculate_engagement_score

        assert calculate_engagement_score(healthy_customer.engagement).score == 87
        assert calculate_engagement_score(at_risk_customer.engagement).score == 0

    def test_contract_score_for_fixtures(self, healthy_customer, at_risk_customer):
        """Healthy contract clamps at 100; a first-term downgrade scores 55 at 0.8 confidence."""
        from services.health_calculator import calculate_contract_score

        healthy = calculate_contract_score(healthy_customer.contract)
        assert healthy.score == 100
        assert [adj.reason_code for adj in healthy.explanation] == [
            "contract.renewal_secure",
            "contract.value_100k",
            "contract.upgrade",
            "contract.renewals_3",
        ]
        at_risk = calculate_contract_score(at_risk_customer.contract)
        assert at_risk.score == 55
        assert at_risk.confidence == pytest.approx(0.8)

    @pytest.mark.parametrize(
        "days,code",
        [
            (-1, "contract.renewal_overdue"),
            (30, "contract.renewal_30d"),
            (31, "contract.renewal_90d"),
            (90, "contract.renewal_90d"),
            (180, "contract.renewal_180d"),
            (181, "contract.renewal_secure"),
        ],
    )
    def test_contract_renewal_bands(self, healthy_customer, days, code):
        """Renewal bands use inclusive upper bounds."""
        from services.health_calculator import calculate_contract_score

        data = _with(healthy_customer, "contract", days_until_renewal=days)
        assert calculate_contract_score(data.contract).explanation[0].reason_code == code

    def test_support_score_for_fixtures(self, healthy_customer, at_risk_customer):
        """Support starts at 80 and clamps at 100."""
        from services.health_calculator import calculate_support_score

        assert calculate_support_score(healthy_customer.support).score == 100
        assert calculate_support_score(at_risk_customer.support).score == 42

    def test_support_without_tickets_lowers_confidence(self, healthy_customer):
        """No ticket history is explained and drops confidence to 0.7."""
        from services.health_calculator import calculate_support_score

        data = _with(healthy_customer, "support", total_tickets=0)
        factor = calculate_support_score(data.support)
        assert factor.confidence == pytest.approx(0.7)
        assert factor.explanation[-1].reason_code == "support.no_ticket_history"
        assert factor.explanation[-1].delta_points == 0

    def test_contribution_is_score_times_weight(self, at_risk_customer):
        """Each factor's contribution is its score scaled by its weight."""
        from services.health_calculator import calculate_support_score

        factor = calculate_support_score(at_risk_customer.support, 0.25)
        assert factor.weight == 0.25
        assert factor.contribution == pytest.approx(42 * 0.25)


class TestCalculateHealthScore:
    """Test calculate_health_score and risk levels."""

    def test_healthy_customer(self, healthy_customer):
        """Healthy fixture scores 96 with full confidence."""
        from models.health import RiskLevel
        from services.health_calculator import calculate_health_score

        result = calculate_health_score(healthy_customer)
        assert result.overall_score == 96
        assert result.risk_level == RiskLevel.HEALTHY
        assert result.overall_confidence == 1.0
        assert set(result.factor_scores) == {"payment", "engagement", "contract", "support"}

    def test_at_risk_customer(self, at_risk_customer):
        """At-risk fixture is critical; confidence is the weakest factor's."""
        from models.health import RiskLevel
        from services.health_calculator import calculate_health_score

        result = calculate_health_score(at_risk_customer)
        assert result.overall_score == 24
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.overall_confidence == pytest.approx(0.8)

    def test_weights_sum_to_one_and_scores_are_bounded(self, healthy_customer, at_risk_customer):
        """Default weights add up to 1.0 and every factor stays within 0-100."""
        from services.health_calculator import calculate_health_score

        for customer in (healthy_customer, at_risk_customer):
            result = calculate_health_score(customer)
            factors = result.factor_scores.values()
            assert sum(f.weight for f in factors) == pytest.approx(1.0)
            assert all(0 <= f.score <= 100 for f in factors)
            assert 0 <= result.overall_score <= 100

    def test_escalated_above_total_is_refused(self, healthy_customer):
        """Invalid records raise instead of being clamped."""
        from services.health_calculator import calculate_health_score
        from utils.error_handling import HealthScoreCalculationError

        data = _with(healthy_customer, "support", escalated_tickets=5, total_tickets=3)
        with pytest.raises(HealthScoreCalculationError) as exc_info:
            calculate_health_score(data)
        assert "Escalated tickets cannot exceed total tickets" in str(exc_info.value)
        assert exc_info.value.validation.is_valid is False
        assert exc_info.value.status_code == 422

    def test_strict_confidence_threshold_is_reported(self, healthy_customer):
        """Low confidence without errors is reported as the reason."""
        from models.health import HealthScoreConfig
        from services.health_calculator import calculate_health_score
        from utils.error_handling import HealthScoreCalculationError

        data = _with(healthy_customer, "contract", contract_value=0)
        with pytest.raises(HealthScoreCalculationError, match="below 0.99"):
            calculate_health_score(data, HealthScoreConfig(min_confidence_threshold=0.99))

    def test_factor_failure_is_wrapped(self, healthy_customer):
        """An unexpected scorer failure names the factor and keeps the cause."""
        from services.health_calculator import calculate_health_score
        from utils.error_handling import HealthScoreCalculationError

        with patch(
            "services.health_calculator.calculate_engagement_score",
            side_effect=ZeroDivisionError("boom"),
        ):
            with pytest.raises(HealthScoreCalculationError) as exc_info:
                calculate_health_score(healthy_customer)
        assert exc_info.value.factor == "engagement"
        assert isinstance(exc_info.value.cause, ZeroDivisionError)
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_half_point_rounds_up_into_healthy(self, healthy_customer):
        """A weighted total of 70.5 rounds to 71, which is healthy."""
        from models.health import FactorScore, RiskLevel
        from services.health_calculator import calculate_health_score

        def fixed(contribution):
            return FactorScore(score=50, weight=0.25, contribution=contribution, confidence=1.0)

        with patch("services.health_calculator.calculate_payment_score", return_value=fixed(70.5)), \
                patch("services.health_calculator.calculate_engagement_score", return_value=fixed(0)), \
                patch("services.health_calculator.calculate_contract_score", return_value=fixed(0)), \
                patch("services.health_calculator.calculate_support_score", return_value=fixed(0)):
            result = calculate_health_score(healthy_customer)
        assert result.overall_score == 71
        assert result.risk_level == RiskLevel.HEALTHY

    @pytest.mark.parametrize(
        "score,level",
        [(100, "healthy"), (71, "healthy"), (70, "warning"), (31, "warning"), (30, "critical"), (0, "critical")],
    )
    def test_risk_level_boundaries(self, score, level):
        """Healthy from 71, warning from 31, critical below."""
        from services.health_calculator import determine_risk_level

        assert determine_risk_level(score).value == level

    def test_custom_thresholds_shift_risk(self, healthy_customer):
        """Risk thresholds come from the supplied config."""
        from models.health import HealthScoreConfig, RiskLevel, RiskThresholds
        from services.health_calculator import calculate_health_score

        config = HealthScoreConfig(risk_thresholds=RiskThresholds(healthy_min=97, warning_min=50, critical_max=49))
        assert calculate_health_score(healthy_customer, config).risk_level == RiskLevel.WARNING


class TestHealthConfigModels:
    """Test config model validation."""

    def test_weights_must_sum_to_one(self):
        """Weights that do not add up to 1.0 are rejected."""
        from models.health import HealthScoreWeights

        with pytest.raises(ValidationError):
            HealthScoreWeights(payment=0.5)

    def test_thresholds_must_be_ordered(self):
        """Critical must sit below warning."""
        from models.health import RiskThresholds

        with pytest.raises(ValidationError):
            RiskThresholds(healthy_min=71, warning_min=31, critical_max=40)

    def test_results_are_immutable(self, healthy_customer):
        """Scoring results are frozen."""
        from services.health_calculator import calculate_health_score

        result = calculate_health_score(healthy_customer)
        with pytest.raises(ValidationError):
            result.overall_score = 10


class TestExplanations:
    """Test rendering of structured explanations."""

    def test_render_explanation(self):
        """Adjustments render as text with signed points."""
        from models.health import ScoreAdjustment
        from services.health_calculator import render_explanation

        text = render_explanation(
            "payment",
            [
                ScoreAdjustment(reason_code="payment.recency_over_60d", delta_points=-30),
                ScoreAdjustment(reason_code="payment.late_rate_low", delta_points=0),
            ],
        )
        assert text == (
            "Payment Health: No payment in 60+ days (-30 pts), "
            "Good payment reliability <10% late (+0 pts)"
        )

    def test_unknown_reason_code_renders_as_is(self):
        """Codes without text fall back to the code itself."""
        from models.health import ScoreAdjustment
        from services.health_calculator import render_explanation

        text = render_explanation("contract", [ScoreAdjustment(reason_code="custom.flag", delta_points=4)])
        assert text == "Contract Health: custom.flag (+4 pts)"

    def test_summary_names_strongest_and_weakest(self, healthy_customer):
        """Summary picks the highest and lowest contributing factors."""
        from services.health_calculator import calculate_health_score, get_health_score_explanation

        summary = get_health_score_explanation(calculate_health_score(healthy_customer))
        assert summary.startswith(
            "Customer health score of 96/100 indicates excellent health with low churn risk."
        )
        assert "Primary strength: payment (100/100)" in summary
        assert "Area for improvement: support (100/100)" in summary
