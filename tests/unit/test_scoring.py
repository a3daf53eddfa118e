"""Unit tests for the tenant health scoring algorithm.

Tests cover:
- Component score formulas, targets and zero-denominator defaults
- Weighted overall score and half-up rounding
- Trend band boundaries
- Risk thresholds including the DECLINING escalation
- Alert level mapping
- assess() full pipeline
"""

import uuid

import pytest

from tenant_health.core.config import ComponentWeights, HealthScoringConfig
from tenant_health.core.scoring import HealthScorer, round_half_up
from tenant_health.core.types import (
    AlertLevel,
    ComponentScores,
    HealthTrend,
    RiskLevel,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def scorer() -> HealthScorer:
    """Provide a HealthScorer with the default configuration."""
    return HealthScorer()


# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------


class TestConfiguration:
    """Verify scoring configuration guards."""

    def test_default_weights_sum_to_one(self) -> None:
        weights = ComponentWeights()
        total = (
            weights.login
            + weights.case_resolution
            + weights.campaign_completion
            + weights.feature_adoption
            + weights.support_tickets
        )
        assert abs(total - 1.0) < 1e-9

    def test_weights_not_summing_to_one_rejected(self) -> None:
        with pytest.raises(ValueError, match="must sum to 1.0"):
            ComponentWeights(login=0.5)

    def test_inverted_risk_thresholds_rejected(self) -> None:
        with pytest.raises(ValueError, match="Risk thresholds"):
            HealthScoringConfig(high_risk_below=85, low_risk_from=80)

    def test_default_window_is_thirty_days(self, scorer: HealthScorer) -> None:
        assert scorer.config.window_days == 30


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


class TestRoundHalfUp:
    """round_half_up differs from Python's banker's rounding at .5."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(12.5, 13), (0.5, 1), (2.4999, 2), (99.5, 100), (0.0, 0), (41.6, 42)],
    )
    def test_rounds_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected


# ---------------------------------------------------------------------------
# Component scores
# ---------------------------------------------------------------------------


class TestComponentScores:
    """Each component against its target, capped at 100."""

    def test_login_at_target_scores_100(self, scorer: HealthScorer) -> None:
        assert scorer.login_score(70, 100) == 100

    def test_login_above_target_is_capped(self, scorer: HealthScorer) -> None:
        assert scorer.login_score(100, 100) == 100

    def test_login_half_of_target(self, scorer: HealthScorer) -> None:
        assert scorer.login_score(35, 100) == 50

    def test_login_no_users_scores_zero(self, scorer: HealthScorer) -> None:
        assert scorer.login_score(0, 0) == 0

    def test_case_resolution_no_closed_cases_scores_100(self, scorer: HealthScorer) -> None:
        assert scorer.case_resolution_score(0, 0) == 100

    def test_case_resolution_at_target(self, scorer: HealthScorer) -> None:
        assert scorer.case_resolution_score(9, 10) == 100

    def test_case_resolution_none_on_time(self, scorer: HealthScorer) -> None:
        assert scorer.case_resolution_score(0, 10) == 0

    def test_campaign_completion_no_assignments_scores_100(self, scorer: HealthScorer) -> None:
        assert scorer.campaign_completion_score(0, 0) == 100

    def test_campaign_completion_at_target(self, scorer: HealthScorer) -> None:
        assert scorer.campaign_completion_score(17, 20) == 100

    def test_feature_adoption_none_adopted(self, scorer: HealthScorer) -> None:
        assert scorer.feature_adoption_score(0) == 0

    def test_feature_adoption_partial(self, scorer: HealthScorer) -> None:
        # 3 of 11 tracked features = 27.3% against a 60% target
        assert scorer.feature_adoption_score(3) == 45

    def test_feature_adoption_all_tracked(self, scorer: HealthScorer) -> None:
        assert scorer.feature_adoption_score(11) == 100

    @pytest.mark.parametrize(
        ("tickets", "expected"),
        [(0, 100), (3, 70), (10, 0), (15, 0)],
    )
    def test_support_tickets_penalty(
        self, scorer: HealthScorer, tickets: int, expected: int
    ) -> None:
        assert scorer.support_ticket_score(tickets) == expected

    def test_component_scores_from_metrics(self, scorer: HealthScorer, make_metrics) -> None:
        components = scorer.component_scores(
            make_metrics(active_users=35, total_users=100, support_tickets=3)
        )
        assert components == ComponentScores(
            login=50,
            case_resolution=100,
            campaign_completion=100,
            feature_adoption=100,
            support_tickets=70,
        )


# ---------------------------------------------------------------------------
# Overall score
# ---------------------------------------------------------------------------


class TestOverallScore:
    """Weighted composite of the five components."""

    def test_all_perfect(self, scorer: HealthScorer) -> None:
        components = ComponentScores(100, 100, 100, 100, 100)
        assert scorer.overall_score(components) == 100

    def test_all_zero(self, scorer: HealthScorer) -> None:
        components = ComponentScores(0, 0, 0, 0, 0)
        assert scorer.overall_score(components) == 0

    def test_weighted_combination(self, scorer: HealthScorer) -> None:
        # 50*0.20 + 100*0.25 + 100*0.25 + 100*0.15 + 100*0.15 = 90
        components = ComponentScores(50, 100, 100, 100, 100)
        assert scorer.overall_score(components) == 90

    def test_fractional_result_rounds_half_up(self, scorer: HealthScorer) -> None:
        # 2 * 0.25 = 0.5
        components = ComponentScores(0, 2, 0, 0, 0)
        assert scorer.overall_score(components) == 1


# ---------------------------------------------------------------------------
# Trend, risk, alert
# ---------------------------------------------------------------------------


class TestClassifyTrend:
    """A delta within +/-3 (inclusive) is STABLE."""

    def test_first_calculation_is_stable(self, scorer: HealthScorer) -> None:
        assert scorer.classify_trend(40, None) is HealthTrend.STABLE

    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [
            (73, 70, HealthTrend.STABLE),
            (67, 70, HealthTrend.STABLE),
            (74, 70, HealthTrend.IMPROVING),
            (66, 70, HealthTrend.DECLINING),
            (70, 70, HealthTrend.STABLE),
        ],
    )
    def test_band_boundaries(
        self, scorer: HealthScorer, current: int, previous: int, expected: HealthTrend
    ) -> None:
        assert scorer.classify_trend(current, previous) is expected


class TestClassifyRisk:
    """Score thresholds and the DECLINING escalation."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (0, RiskLevel.HIGH),
            (59, RiskLevel.HIGH),
            (60, RiskLevel.MEDIUM),
            (79, RiskLevel.MEDIUM),
            (80, RiskLevel.LOW),
            (100, RiskLevel.LOW),
        ],
    )
    def test_thresholds_when_stable(
        self, scorer: HealthScorer, score: int, expected: RiskLevel
    ) -> None:
        assert scorer.classify_risk(score, HealthTrend.STABLE) is expected

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (60, RiskLevel.HIGH),
            (69, RiskLevel.HIGH),
            (70, RiskLevel.MEDIUM),
            (85, RiskLevel.LOW),
        ],
    )
    def test_declining_escalation(
        self, scorer: HealthScorer, score: int, expected: RiskLevel
    ) -> None:
        assert scorer.classify_risk(score, HealthTrend.DECLINING) is expected


class TestClassifyAlert:
    """HIGH risk is raised proactively; MEDIUM or DECLINING goes to the dashboard."""

    def test_high_risk_is_proactive(self) -> None:
        assert HealthScorer.classify_alert(RiskLevel.HIGH, HealthTrend.STABLE) is AlertLevel.PROACTIVE

    def test_medium_risk_is_dashboard_only(self) -> None:
        assert (
            HealthScorer.classify_alert(RiskLevel.MEDIUM, HealthTrend.IMPROVING)
            is AlertLevel.DASHBOARD_ONLY
        )

    def test_low_risk_declining_is_dashboard_only(self) -> None:
        assert (
            HealthScorer.classify_alert(RiskLevel.LOW, HealthTrend.DECLINING)
            is AlertLevel.DASHBOARD_ONLY
        )

    def test_low_risk_stable_has_no_alert(self) -> None:
        assert HealthScorer.classify_alert(RiskLevel.LOW, HealthTrend.STABLE) is AlertLevel.NONE


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


class TestAssess:
    """assess() chains components, overall, trend, risk and alert."""

    def test_healthy_tenant(self, scorer: HealthScorer, make_metrics) -> None:
        assessment = scorer.assess(make_metrics(), previous_score=99)

        assert assessment.overall_score == 100
        assert assessment.trend is HealthTrend.STABLE
        assert assessment.risk_level is RiskLevel.LOW
        assert assessment.alert_level is AlertLevel.NONE
        assert assessment.previous_score == 99

    def test_empty_tenant_with_many_tickets(self, scorer: HealthScorer, make_metrics) -> None:
        metrics = make_metrics(
            tenant_id=uuid.uuid4(),
            active_users=0,
            total_users=0,
            cases_closed=0,
            cases_on_time=0,
            assignments_total=0,
            assignments_completed=0,
            adopted_features=0,
            support_tickets=10,
        )

        assessment = scorer.assess(metrics, previous_score=None)

        # login 0, cases 100, campaigns 100, features 0, tickets 0
        assert assessment.overall_score == 50
        assert assessment.trend is HealthTrend.STABLE
        assert assessment.risk_level is RiskLevel.HIGH
        assert assessment.alert_level is AlertLevel.PROACTIVE

    def test_declining_but_still_low_risk(self, scorer: HealthScorer, make_metrics) -> None:
        # login 50 -> overall 90; a 5 point drop from 95
        assessment = scorer.assess(
            make_metrics(active_users=35, total_users=100), previous_score=95
        )

        assert assessment.overall_score == 90
        assert assessment.trend is HealthTrend.DECLINING
        assert assessment.risk_level is RiskLevel.LOW
        assert assessment.alert_level is AlertLevel.DASHBOARD_ONLY

    def test_score_is_bounded(self, scorer: HealthScorer, make_metrics) -> None:
        assessment = scorer.assess(
            make_metrics(active_users=500, total_users=10, adopted_features=50),
            previous_score=None,
        )
        assert 0 <= assessment.overall_score <= 100
