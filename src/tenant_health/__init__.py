"""Tenant Health Engine.

Daily usage-metric aggregation, weighted tenant health scoring with
trend and risk classification, and privacy-safe peer benchmarks across
tenants, driven by a rate-limited batch scheduler.
"""

__version__ = "0.1.0"
