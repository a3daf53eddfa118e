"""Immutable scoring and benchmark configuration.

Weights, targets, thresholds and cohort bucket boundaries are collected
here as frozen dataclasses and injected into the calculator and the
aggregator at construction time, so every deployment can override them
and tests can pin them.

Component weights must sum to 1.0:
    login               0.20
    case_resolution     0.25
    campaign_completion 0.25
    feature_adoption    0.15
    support_tickets     0.15
"""

from dataclasses import dataclass, field

# Metrics published as peer benchmarks.
BENCHMARK_METRICS: tuple[str, ...] = (
    "attestation_completion_rate",
    "case_resolution_time",
    "case_on_time_rate",
    "login_rate",
    "feature_adoption_rate",
)

# Feature keys whose adoption is tracked per tenant.
TRACKED_FEATURES: tuple[str, ...] = (
    "case_management",
    "workflows",
    "campaigns",
    "policies",
    "ai_summaries",
    "ai_categorization",
    "custom_dashboards",
    "hris_sync",
    "sso",
    "board_reports",
    "flat_export",
)

MIN_PEER_COUNT: int = 5


@dataclass(frozen=True)
class SizeBucket:
    """An employee-count cohort. ``employee_max`` of None means open-ended."""

    name: str
    employee_min: int
    employee_max: int | None


DEFAULT_SIZE_BUCKETS: tuple[SizeBucket, ...] = (
    SizeBucket(name="small", employee_min=1, employee_max=100),
    SizeBucket(name="medium", employee_min=101, employee_max=500),
    SizeBucket(name="large", employee_min=501, employee_max=2000),
    SizeBucket(name="enterprise", employee_min=2001, employee_max=None),
)


@dataclass(frozen=True)
class ComponentWeights:
    """Weights applied to the five component scores."""

    login: float = 0.20
    case_resolution: float = 0.25
    campaign_completion: float = 0.25
    feature_adoption: float = 0.15
    support_tickets: float = 0.15

    def __post_init__(self) -> None:
        total = (
            self.login
            + self.case_resolution
            + self.campaign_completion
            + self.feature_adoption
            + self.support_tickets
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Component weights must sum to 1.0, got {total!r}")


@dataclass(frozen=True)
class ComponentTargets:
    """Ratios at which a component reaches a full score of 100."""

    login_ratio: float = 0.7
    on_time_ratio: float = 0.9
    assignment_completion_ratio: float = 0.85
    feature_adoption_ratio: float = 0.6
    points_per_ticket: int = 10


@dataclass(frozen=True)
class HealthScoringConfig:
    """Everything the health score calculator needs besides data.

    Attributes:
        weights: Composite weights for the five components.
        targets: Target ratios for each component.
        window_days: Trailing window for metric reads.
        tracked_feature_count: Denominator for the feature adoption ratio.
        trend_stable_band: Absolute score delta (inclusive) still classed STABLE.
        high_risk_below: Scores below this are HIGH risk.
        low_risk_from: Scores at or above this are LOW risk.
        declining_escalation_margin: A DECLINING MEDIUM score below
            ``high_risk_below + margin`` is escalated to HIGH.
    """

    weights: ComponentWeights = field(default_factory=ComponentWeights)
    targets: ComponentTargets = field(default_factory=ComponentTargets)
    window_days: int = 30
    tracked_feature_count: int = len(TRACKED_FEATURES)
    trend_stable_band: int = 3
    high_risk_below: int = 60
    low_risk_from: int = 80
    declining_escalation_margin: int = 10

    def __post_init__(self) -> None:
        if not 0 <= self.high_risk_below <= self.low_risk_from <= 100:
            raise ValueError(
                "Risk thresholds must satisfy 0 <= high_risk_below <= low_risk_from <= 100"
            )
        if self.trend_stable_band < 0:
            raise ValueError("trend_stable_band must be non-negative")


@dataclass(frozen=True)
class BenchmarkConfig:
    """Configuration for the peer benchmark aggregator and lookup."""

    metrics: tuple[str, ...] = BENCHMARK_METRICS
    size_buckets: tuple[SizeBucket, ...] = DEFAULT_SIZE_BUCKETS
    min_peer_count: int = MIN_PEER_COUNT

    def size_bucket(self, name: str) -> SizeBucket | None:
        """Look up a size bucket by its name (e.g. 'medium')."""
        for bucket in self.size_buckets:
            if bucket.name == name:
                return bucket
        return None


DEFAULT_SCORING_CONFIG: HealthScoringConfig = HealthScoringConfig()
DEFAULT_BENCHMARK_CONFIG: BenchmarkConfig = BenchmarkConfig()
