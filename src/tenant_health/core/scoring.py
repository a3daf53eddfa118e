"""Tenant health scoring algorithm.

Turns raw usage counts into five bounded component scores, combines them
into a weighted overall score, and classifies trend, risk and alert level.

This module is intentionally independent of the database layer so that
the scoring logic can be unit-tested without any infrastructure.
"""

import math

from tenant_health.core.config import DEFAULT_SCORING_CONFIG, HealthScoringConfig
from tenant_health.core.types import (
    AlertLevel,
    ComponentScores,
    HealthAssessment,
    HealthTrend,
    RiskLevel,
    TenantMetrics,
)
from tenant_health.observability import get_logger

logger = get_logger(__name__)

_MAX_SCORE: int = 100


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up.

    Python's built-in round() uses banker's rounding (round(12.5) == 12);
    scores and progress round half up (12.5 -> 13).
    """
    return int(math.floor(value + 0.5))


def _ratio_score(numerator: int, denominator: int, target: float) -> int:
    """Score a ratio against its target, capped at 100."""
    ratio = numerator / denominator
    return min(_MAX_SCORE, round_half_up(ratio / target * 100))


class HealthScorer:
    """Scoring engine for tenant health.

    Holds an immutable HealthScoringConfig; every method is a pure
    function of its arguments and that config.
    """

    def __init__(self, config: HealthScoringConfig = DEFAULT_SCORING_CONFIG) -> None:
        self._config = config

    @property
    def config(self) -> HealthScoringConfig:
        return self._config

    def login_score(self, active_users: int, total_users: int) -> int:
        """Active-user ratio against the 70% target. No users scores 0."""
        if total_users <= 0:
            return 0
        return _ratio_score(active_users, total_users, self._config.targets.login_ratio)

    def case_resolution_score(self, cases_on_time: int, cases_closed: int) -> int:
        """On-time closure ratio against the 90% target.

        No closed cases scores 100: a tenant is not penalised for having
        nothing to resolve.
        """
        if cases_closed <= 0:
            return _MAX_SCORE
        return _ratio_score(cases_on_time, cases_closed, self._config.targets.on_time_ratio)

    def campaign_completion_score(
        self, assignments_completed: int, assignments_total: int
    ) -> int:
        """Assignment completion ratio against the 85% target. No assignments scores 100."""
        if assignments_total <= 0:
            return _MAX_SCORE
        return _ratio_score(
            assignments_completed,
            assignments_total,
            self._config.targets.assignment_completion_ratio,
        )

    def feature_adoption_score(self, adopted_features: int) -> int:
        """Adopted share of tracked features against the 60% target."""
        tracked = self._config.tracked_feature_count
        if tracked <= 0:
            return 0
        return _ratio_score(
            adopted_features, tracked, self._config.targets.feature_adoption_ratio
        )

    def support_ticket_score(self, ticket_count: int) -> int:
        """Each ticket in the window costs a fixed number of points, floored at 0."""
        penalty = max(0, ticket_count) * self._config.targets.points_per_ticket
        return max(0, _MAX_SCORE - penalty)

    def component_scores(self, metrics: TenantMetrics) -> ComponentScores:
        """Compute all five component scores from one tenant's metrics."""
        return ComponentScores(
            login=self.login_score(
                metrics.users.active_users, metrics.users.total_users
            ),
            case_resolution=self.case_resolution_score(
                metrics.cases.cases_on_time, metrics.cases.cases_closed
            ),
            campaign_completion=self.campaign_completion_score(
                metrics.assignments.assignments_completed,
                metrics.assignments.assignments_total,
            ),
            feature_adoption=self.feature_adoption_score(metrics.adopted_features),
            support_tickets=self.support_ticket_score(metrics.support_tickets),
        )

    def overall_score(self, components: ComponentScores) -> int:
        """Weighted composite of the component scores, rounded half-up."""
        weights = self._config.weights
        weighted = (
            components.login * weights.login
            + components.case_resolution * weights.case_resolution
            + components.campaign_completion * weights.campaign_completion
            + components.feature_adoption * weights.feature_adoption
            + components.support_tickets * weights.support_tickets
        )
        return max(0, min(_MAX_SCORE, round_half_up(weighted)))

    def classify_trend(self, current: int, previous: int | None) -> HealthTrend:
        """Classify the change since the previous score.

        A delta within the stable band (inclusive) is STABLE. A first
        calculation has nothing to compare against and is STABLE.
        """
        if previous is None:
            return HealthTrend.STABLE
        delta = current - previous
        if delta > self._config.trend_stable_band:
            return HealthTrend.IMPROVING
        if delta < -self._config.trend_stable_band:
            return HealthTrend.DECLINING
        return HealthTrend.STABLE

    def classify_risk(self, overall_score: int, trend: HealthTrend) -> RiskLevel:
        """Map score and trend to a risk level.

        Thresholds (defaults):
            < 60     -> HIGH
            60 - 79  -> MEDIUM
            >= 80    -> LOW

        A DECLINING MEDIUM score within the escalation margin above the
        HIGH threshold (60-69 by default) is escalated to HIGH.
        """
        config = self._config
        if overall_score < config.high_risk_below:
            return RiskLevel.HIGH
        if overall_score >= config.low_risk_from:
            return RiskLevel.LOW
        if (
            trend is HealthTrend.DECLINING
            and overall_score < config.high_risk_below + config.declining_escalation_margin
        ):
            return RiskLevel.HIGH
        return RiskLevel.MEDIUM

    @staticmethod
    def classify_alert(risk_level: RiskLevel, trend: HealthTrend) -> AlertLevel:
        """Decide how a score is surfaced: HIGH risk is raised proactively."""
        if risk_level is RiskLevel.HIGH:
            return AlertLevel.PROACTIVE
        if risk_level is RiskLevel.MEDIUM or trend is HealthTrend.DECLINING:
            return AlertLevel.DASHBOARD_ONLY
        return AlertLevel.NONE

    def assess(self, metrics: TenantMetrics, previous_score: int | None) -> HealthAssessment:
        """Run the full scoring pipeline for one tenant.

        Args:
            metrics: Raw counts for the trailing window.
            previous_score: Overall score of the tenant's latest prior record, if any.

        Returns:
            HealthAssessment ready to be persisted.
        """
        components = self.component_scores(metrics)
        overall = self.overall_score(components)
        trend = self.classify_trend(overall, previous_score)
        risk_level = self.classify_risk(overall, trend)
        alert_level = self.classify_alert(risk_level, trend)

        logger.debug(
            "Tenant health assessed",
            tenant_id=str(metrics.tenant_id),
            overall_score=overall,
            previous_score=previous_score,
            trend=trend.value,
            risk_level=risk_level.value,
        )

        return HealthAssessment(
            components=components,
            overall_score=overall,
            trend=trend,
            risk_level=risk_level,
            alert_level=alert_level,
            previous_score=previous_score,
        )
