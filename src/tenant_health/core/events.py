"""Domain event topics published by the Tenant Health Engine."""


class Topics:
    """Topic names for tenant health events.

    Every event payload includes ``event_type`` (equal to the topic) and,
    where it concerns a single tenant, ``tenant_id``.
    """

    SCORE_CALCULATED = "tenant_health.score_calculated"
    HIGH_RISK_DETECTED = "tenant_health.high_risk_detected"
    BENCHMARKS_REFRESHED = "tenant_health.benchmarks_refreshed"
    BATCH_COMPLETED = "tenant_health.batch_completed"
