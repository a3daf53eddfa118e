"""th: initial schema (usage metrics, health scores, peer benchmarks).

Revision ID: th_001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "th_001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all th_ tables."""
    # th_usage_metrics
    op.create_table(
        "th_usage_metrics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("metric_date", sa.Date, nullable=False),
        sa.Column("active_users", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_users", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cases_created", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cases_closed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cases_on_time", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cases_overdue", sa.Integer, nullable=False, server_default="0"),
        sa.Column("campaigns_active", sa.Integer, nullable=False, server_default="0"),
        sa.Column("assignments_total", sa.Integer, nullable=False, server_default="0"),
        sa.Column("assignments_completed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("support_tickets", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "tenant_id",
            "metric_date",
            name="uq_th_usage_metrics_tenant_date",
        ),
    )
    op.create_index("ix_th_usage_metrics_tenant_id", "th_usage_metrics", ["tenant_id"])

    # th_health_scores
    op.create_table(
        "th_health_scores",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("login_score", sa.Integer, nullable=False),
        sa.Column("case_resolution_score", sa.Integer, nullable=False),
        sa.Column("campaign_completion_score", sa.Integer, nullable=False),
        sa.Column("feature_adoption_score", sa.Integer, nullable=False),
        sa.Column("support_ticket_score", sa.Integer, nullable=False),
        sa.Column("overall_score", sa.Integer, nullable=False),
        sa.Column("trend", sa.String(20), nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False),
        sa.Column("alert_level", sa.String(20), nullable=False, server_default="DASHBOARD_ONLY"),
        sa.Column("previous_score", sa.Integer, nullable=True),
        sa.CheckConstraint(
            "overall_score BETWEEN 0 AND 100", name="ck_th_health_scores_overall_range"
        ),
    )
    op.create_index("ix_th_health_scores_tenant_id", "th_health_scores", ["tenant_id"])
    op.create_index("ix_th_health_scores_calculated_at", "th_health_scores", ["calculated_at"])
    op.create_index("ix_th_health_scores_risk_level", "th_health_scores", ["risk_level"])
    op.create_index(
        "ix_th_health_scores_tenant_calculated",
        "th_health_scores",
        ["tenant_id", sa.text("calculated_at DESC")],
    )

    # th_peer_benchmarks
    op.create_table(
        "th_peer_benchmarks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("metric_name", sa.String(50), nullable=False),
        sa.Column("industry_sector", sa.String(100), nullable=True),
        sa.Column("employee_min", sa.Integer, nullable=True),
        sa.Column("employee_max", sa.Integer, nullable=True),
        sa.Column("calculated_at", sa.Date, nullable=False),
        sa.Column("peer_count", sa.Integer, nullable=False),
        sa.Column("p25", sa.Float, nullable=False),
        sa.Column("median", sa.Float, nullable=False),
        sa.Column("p75", sa.Float, nullable=False),
        sa.Column("mean", sa.Float, nullable=False),
        sa.Column("min_value", sa.Float, nullable=False),
        sa.Column("max_value", sa.Float, nullable=False),
        sa.UniqueConstraint(
            "metric_name",
            "industry_sector",
            "employee_min",
            "employee_max",
            "calculated_at",
            name="uq_th_peer_benchmarks_metric_filter_date",
            postgresql_nulls_not_distinct=True,
        ),
    )
    op.create_index("ix_th_peer_benchmarks_metric_name", "th_peer_benchmarks", ["metric_name"])


def downgrade() -> None:
    """Drop all th_ tables."""
    for table in ("th_peer_benchmarks", "th_health_scores", "th_usage_metrics"):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
