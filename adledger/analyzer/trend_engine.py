"""ADLEDGER — Trend Engine.

Compares a current period against a comparison period of equal length.
Produces per-metric change, direction and signal, plus a headline
direction driven by a caller-selected primary metric.
"""

import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from adledger.config import settings
from adledger.core.logging import get_logger
from adledger.models.analysis_models import MetricChange, PeriodSummary, TrendComparison

logger = get_logger("analyzer.trend")

# Key metrics to track trends for
TREND_METRICS = (
    "impressions",
    "clicks",
    "link_clicks",
    "reach",
    "spend",
    "purchases",
    "purchase_value",
    "conversions",
    "video_views",
    "ctr",
    "cpc",
    "cpm",
    "purchase_cpa",
    "purchase_roas",
    "roas",
)

TRENDABLE = set(TREND_METRICS) | set(PeriodSummary.model_fields) - {
    "date_start",
    "date_end",
    "currency",
    "daily",
}


def period_days(date_start: str, date_end: str) -> int:
    start = datetime.strptime(date_start, "%Y-%m-%d")
    stop = datetime.strptime(date_end, "%Y-%m-%d")
    return (stop - start).days + 1


def previous_period(date_start: str, date_end: str) -> tuple[str, str]:
    """Compute the previous period of equal length."""
    start = datetime.strptime(date_start, "%Y-%m-%d")
    days = period_days(date_start, date_end)
    prev_stop = start - timedelta(days=1)
    prev_start = prev_stop - timedelta(days=days - 1)
    return prev_start.strftime("%Y-%m-%d"), prev_stop.strftime("%Y-%m-%d")


def classify(change_pct: float, threshold_pct: float) -> str:
    """up / down once the magnitude reaches the threshold, else stable.

    The threshold is inclusive. `math.isclose` only absorbs float error,
    so 105 vs 100 reads as 5% while 4.99995% stays below it.
    """
    magnitude = abs(change_pct)
    if magnitude >= threshold_pct or math.isclose(magnitude, threshold_pct, rel_tol=1e-9):
        return "up" if change_pct > 0 else "down"
    return "stable"


def _signal(metric_name: str, direction: str) -> str:
    """Determine signal based on metric semantics."""
    # For cost metrics, "up" is bad
    cost_metrics = {"cpc", "cpm", "purchase_cpa", "spend"}
    # For performance metrics, "up" is good
    perf_metrics = {
        "ctr",
        "roas",
        "purchase_roas",
        "clicks",
        "link_clicks",
        "purchases",
        "conversions",
        "purchase_value",
        "video_views",
    }

    if metric_name in cost_metrics:
        if direction == "up":
            return "alert"
        elif direction == "down":
            return "improving"
    elif metric_name in perf_metrics:
        if direction == "up":
            return "improving"
        elif direction == "down":
            return "declining"
    return "stable"


def metric_change(
    metric_name: str,
    current: PeriodSummary,
    previous: PeriodSummary,
    threshold_pct: float,
) -> MetricChange:
    curr_val = getattr(current, metric_name) or 0.0
    prev_val = getattr(previous, metric_name) or 0.0

    # Handle zero baseline: insufficient data, not +100%
    if prev_val <= 0:
        return MetricChange(
            metric_name=metric_name,
            current_value=curr_val,
            previous_value=prev_val,
            change=curr_val - prev_val,
            change_pct=0.0,
            direction="stable",
            signal="insufficient_data",
            previous_period_available=previous.record_count > 0,
        )

    change = curr_val - prev_val
    change_pct = change / prev_val * 100
    direction = classify(change_pct, threshold_pct)
    return MetricChange(
        metric_name=metric_name,
        current_value=curr_val,
        previous_value=prev_val,
        change=change,
        change_pct=change_pct,
        direction=direction,
        signal=_signal(metric_name, direction),
        previous_period_available=True,
    )


def compare_periods(
    current: PeriodSummary,
    comparison: PeriodSummary,
    primary_metric: str = "spend",
    threshold_pct: Optional[float] = None,
    metrics: Iterable[str] = TREND_METRICS,
) -> TrendComparison:
    """Compare two summaries of equal length.

    Raises ValueError for an unknown metric or periods of different length.
    """
    threshold_pct = settings.trend_threshold_pct if threshold_pct is None else threshold_pct
    if primary_metric not in TRENDABLE:
        raise ValueError(f"Unknown trend metric '{primary_metric}'")
    if period_days(current.date_start, current.date_end) != period_days(
        comparison.date_start, comparison.date_end
    ):
        raise ValueError("Comparison period must be the same length as the current period")

    changes: List[MetricChange] = []
    for name in metrics:
        if name not in TRENDABLE:
            raise ValueError(f"Unknown trend metric '{name}'")
        changes.append(metric_change(name, current, comparison, threshold_pct))

    primary = next(
        (c for c in changes if c.metric_name == primary_metric),
        None,
    ) or metric_change(primary_metric, current, comparison, threshold_pct)

    logger.info(
        f"Trend {primary_metric}: {primary.direction} ({primary.change_pct:.2f}%)",
        extra={"count": len(changes)},
    )
    return TrendComparison(
        primary_metric=primary_metric,
        current_period=current,
        comparison_period=comparison,
        changes=changes,
        primary_change=primary,
        trend_direction=primary.direction,
        threshold_pct=threshold_pct,
    )
