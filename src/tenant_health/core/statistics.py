"""Percentile helpers for peer benchmarks.

Two distinct calculations live here:

- get_percentile_value() builds an aggregate: the value at percentile p of
  a sorted sample, using linear interpolation between closest ranks.
- percentile_position() reads an aggregate: where a single value falls
  (0-100) given only min, quartiles and max, by piecewise-linear
  interpolation across four 25-point segments.
"""

import math
from collections.abc import Sequence

from tenant_health.core.scoring import round_half_up
from tenant_health.core.types import BenchmarkStats


def get_percentile_value(sorted_values: Sequence[float], percentile: float) -> float:
    """Return the value at ``percentile`` (0-100) of an ascending sample.

    Args:
        sorted_values: Values sorted ascending.
        percentile: Target percentile in range 0-100.

    Returns:
        Interpolated value. 0 for an empty sample, the sole value for a
        single-element sample.
    """
    count = len(sorted_values)
    if count == 0:
        return 0.0
    if count == 1:
        return float(sorted_values[0])

    index = (percentile / 100.0) * (count - 1)
    lower = math.floor(index)
    upper = math.ceil(index)

    if lower == upper:
        return float(sorted_values[lower])

    fraction = index - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction


def summarize(values: Sequence[float]) -> BenchmarkStats:
    """Compute the benchmark distribution of a non-empty sample.

    Raises:
        ValueError: If ``values`` is empty.
    """
    if not values:
        raise ValueError("Cannot summarize an empty sample")

    ordered = sorted(float(v) for v in values)
    return BenchmarkStats(
        peer_count=len(ordered),
        p25=get_percentile_value(ordered, 25),
        median=get_percentile_value(ordered, 50),
        p75=get_percentile_value(ordered, 75),
        mean=sum(ordered) / len(ordered),
        min_value=ordered[0],
        max_value=ordered[-1],
    )


def _segment(value: float, low: float, high: float, base: int) -> int:
    # A zero-width segment maps to its lower bound.
    width = high - low
    if width == 0:
        return base
    return base + round_half_up((value - low) / width * 25)


def percentile_position(
    value: float,
    min_value: float,
    p25: float,
    median: float,
    p75: float,
    max_value: float,
) -> int:
    """Estimate a value's percentile rank from a benchmark's quartiles.

    Segments:
        value <= min          -> 0
        (min, p25]            -> 0-25
        (p25, median]         -> 25-50
        (median, p75]         -> 50-75
        (p75, max)            -> 75-100
        value >= max          -> 100

    Returns:
        Integer percentile in range 0-100.
    """
    if value <= min_value:
        return 0
    if value >= max_value:
        return 100
    if value <= p25:
        return _segment(value, min_value, p25, 0)
    if value <= median:
        return _segment(value, p25, median, 25)
    if value <= p75:
        return _segment(value, median, p75, 50)
    return _segment(value, p75, max_value, 75)
