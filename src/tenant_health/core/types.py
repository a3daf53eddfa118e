"""Value types shared across the Tenant Health Engine.

These are plain frozen dataclasses and string enums with no database or
framework dependency. ORM rows live in core/models.py.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import date, datetime


class HealthTrend(str, enum.Enum):
    """Direction of a tenant's score since its previous calculation."""

    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class RiskLevel(str, enum.Enum):
    """Coarse risk classification used to prioritise outreach."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AlertLevel(str, enum.Enum):
    """How loudly a score should be surfaced to client success managers."""

    NONE = "NONE"
    DASHBOARD_ONLY = "DASHBOARD_ONLY"
    PROACTIVE = "PROACTIVE"


@dataclass(frozen=True)
class MetricWindow:
    """A half-open ``[start, end)`` time range for metric reads."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class TenantProfile:
    """A tenant as described by the tenant directory."""

    id: uuid.UUID
    name: str
    is_active: bool = True
    industry_sector: str | None = None
    employee_count: int | None = None


@dataclass(frozen=True)
class UserActivity:
    """Active vs total user counts for a tenant."""

    active_users: int
    total_users: int


@dataclass(frozen=True)
class CaseStats:
    """Case throughput and SLA outcomes in a window."""

    cases_created: int
    cases_closed: int
    cases_on_time: int
    cases_overdue: int


@dataclass(frozen=True)
class AssignmentStats:
    """Campaign assignment completion counts."""

    campaigns_active: int
    assignments_total: int
    assignments_completed: int


@dataclass(frozen=True)
class TenantMetrics:
    """Every raw count the engine reads for one tenant and one window."""

    tenant_id: uuid.UUID
    users: UserActivity
    cases: CaseStats
    assignments: AssignmentStats
    adopted_features: int
    support_tickets: int


@dataclass(frozen=True)
class ComponentScores:
    """The five bounded component scores, each an integer in [0, 100]."""

    login: int
    case_resolution: int
    campaign_completion: int
    feature_adoption: int
    support_tickets: int


@dataclass(frozen=True)
class HealthAssessment:
    """Result of scoring a tenant before it is persisted."""

    components: ComponentScores
    overall_score: int
    trend: HealthTrend
    risk_level: RiskLevel
    alert_level: AlertLevel
    previous_score: int | None


@dataclass(frozen=True)
class BenchmarkFilter:
    """Cohort restriction for peer benchmarks.

    All fields None means "all tenants". The filter matches stored
    aggregates exactly; there is no fallback to a broader cohort.
    """

    industry_sector: str | None = None
    employee_min: int | None = None
    employee_max: int | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.industry_sector is None
            and self.employee_min is None
            and self.employee_max is None
        )

    @property
    def has_size_bounds(self) -> bool:
        return self.employee_min is not None or self.employee_max is not None

    def matches(self, tenant: TenantProfile) -> bool:
        """Return True if the tenant belongs to this cohort.

        Tenants without an employee count never match a size-bounded filter.
        """
        if self.industry_sector and tenant.industry_sector != self.industry_sector:
            return False

        if self.has_size_bounds:
            if tenant.employee_count is None:
                return False
            if self.employee_min is not None and tenant.employee_count < self.employee_min:
                return False
            if self.employee_max is not None and tenant.employee_count > self.employee_max:
                return False

        return True

    def describe(self, peer_count: int) -> str:
        """Human-readable cohort description, e.g. 'HEALTHCARE (12 organizations)'."""
        parts: list[str] = []
        if self.industry_sector:
            parts.append(self.industry_sector)

        if self.employee_min is not None and self.employee_max is not None:
            parts.append(f"{self.employee_min}-{self.employee_max} employees")
        elif self.employee_min is not None:
            parts.append(f"{self.employee_min}+ employees")
        elif self.employee_max is not None:
            parts.append(f"Up to {self.employee_max} employees")

        base = ", ".join(parts) if parts else "all customers"
        return f"{base} ({peer_count} organizations)"


ALL_TENANTS: BenchmarkFilter = BenchmarkFilter()


@dataclass(frozen=True)
class BenchmarkStats:
    """Distribution of one metric across a cohort."""

    peer_count: int
    p25: float
    median: float
    p75: float
    mean: float
    min_value: float
    max_value: float


@dataclass(frozen=True)
class BenchmarkDisplay:
    """A tenant's standing within its peer cohort for one metric."""

    metric_name: str
    your_value: float
    percentile: int
    p25: float
    median: float
    p75: float
    peer_count: int
    filter_description: str
    calculated_at: date | None = None


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a batch run. Callers must tolerate partial success."""

    processed: int
    failed: int
    duration_ms: int

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class PortfolioEntry:
    """One tenant's row in the portfolio overview.

    health_score and score_change are 0 when there is no record to read
    them from; last_calculated_at is None for a tenant never scored and
    last_activity is None for a tenant with no recorded activity.
    """

    tenant_id: uuid.UUID
    name: str
    industry_sector: str | None
    employee_count: int | None
    health_score: int
    score_change: int
    trend: HealthTrend | None
    risk_level: RiskLevel | None
    alert_level: AlertLevel | None
    components: ComponentScores | None
    last_calculated_at: datetime | None
    last_activity: datetime | None = None


@dataclass(frozen=True)
class PortfolioSummary:
    """Score bands across the portfolio.

    healthy is >= 80, at_risk is 60-79, critical is < 60. A tenant that has
    never been scored counts as 0.
    """

    total: int
    healthy: int
    at_risk: int
    critical: int
    average_score: int
