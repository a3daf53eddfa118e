"""SQLAlchemy ORM models for the Tenant Health Engine.

All tables use the `th_` prefix. Every row carries a UUID primary key and
the owning tenant (except benchmark aggregates, which are cross-tenant).

Domain model:
  UsageMetricSnapshot: one dated usage snapshot per tenant per day (upserted)
  HealthScoreRecord: append-only history of computed health scores
  PeerBenchmark: cached per-metric cohort distribution, one per filter per day
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tenant_health.database import Base


class UsageMetricSnapshot(Base):
    """Daily usage counts for one tenant over the trailing metric window.

    Re-collecting the same (tenant, day) overwrites the existing row.

    Table: th_usage_metrics
    """

    __tablename__ = "th_usage_metrics"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "metric_date",
            name="uq_th_usage_metrics_tenant_date",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key UUID",
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Tenant the snapshot belongs to",
    )
    metric_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Calendar day the snapshot was collected for",
    )
    active_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cases_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cases_closed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cases_on_time: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Closed cases whose investigations met their SLA",
    )
    cases_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    campaigns_active: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assignments_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assignments_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    support_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class HealthScoreRecord(Base):
    """One health score calculation for a tenant.

    Rows are inserted only, never updated. The latest score for a tenant is
    the row with the greatest calculated_at.

    Table: th_health_scores
    """

    __tablename__ = "th_health_scores"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key UUID",
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Tenant the score belongs to",
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="When the score was calculated",
    )
    login_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    case_resolution_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    campaign_completion_score: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="0-100"
    )
    feature_adoption_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    support_ticket_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="0-100")
    overall_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Weighted composite of the five component scores, 0-100",
    )
    trend: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="IMPROVING | STABLE | DECLINING",
    )
    risk_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="LOW | MEDIUM | HIGH",
    )
    alert_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="DASHBOARD_ONLY",
        comment="NONE | DASHBOARD_ONLY | PROACTIVE",
    )
    previous_score: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Overall score of the preceding record (null on first calculation)",
    )


class PeerBenchmark(Base):
    """Cached distribution of one metric across a tenant cohort.

    A row with all filter columns null covers every active tenant. Rows
    with fewer than the minimum peer count are never written.

    Table: th_peer_benchmarks
    """

    __tablename__ = "th_peer_benchmarks"
    __table_args__ = (
        UniqueConstraint(
            "metric_name",
            "industry_sector",
            "employee_min",
            "employee_max",
            "calculated_at",
            name="uq_th_peer_benchmarks_metric_filter_date",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key UUID",
    )
    metric_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment=(
            "attestation_completion_rate | case_resolution_time | case_on_time_rate | "
            "login_rate | feature_adoption_rate"
        ),
    )
    industry_sector: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Industry cohort filter (null = any industry)",
    )
    employee_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employee_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calculated_at: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Calendar day the aggregate was computed",
    )
    peer_count: Mapped[int] = mapped_column(Integer, nullable=False)
    p25: Mapped[float] = mapped_column(Float, nullable=False)
    median: Mapped[float] = mapped_column(Float, nullable=False)
    p75: Mapped[float] = mapped_column(Float, nullable=False)
    mean: Mapped[float] = mapped_column(Float, nullable=False)
    min_value: Mapped[float] = mapped_column(Float, nullable=False)
    max_value: Mapped[float] = mapped_column(Float, nullable=False)
