"""ADLEDGER — Aggregation Output Models.

Every output has zero-valued defaults so an empty period still renders
as a well-formed object.
"""

from typing import List, Optional
from pydantic import BaseModel


class MetricTotals(BaseModel):
    """Summed counts and money with rates recomputed from the sums."""

    record_count: int = 0

    impressions: float = 0.0
    clicks: float = 0.0
    link_clicks: float = 0.0
    reach: float = 0.0
    spend: float = 0.0

    purchases: float = 0.0
    purchase_value: float = 0.0
    leads: float = 0.0
    lead_value: float = 0.0
    registrations: float = 0.0
    registration_value: float = 0.0
    add_to_carts: float = 0.0
    conversions: float = 0.0
    conversion_values: float = 0.0

    video_plays: float = 0.0
    video_views: float = 0.0
    video_thruplay: float = 0.0
    video_15s: float = 0.0
    video_30s: float = 0.0
    video_p25: float = 0.0
    video_p50: float = 0.0
    video_p75: float = 0.0
    video_p95: float = 0.0
    video_p100: float = 0.0

    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    purchase_cpa: Optional[float] = None
    purchase_roas: Optional[float] = None
    roas: float = 0.0


class DailyPoint(MetricTotals):
    """Totals for a single day."""

    date: str


class PeriodSummary(MetricTotals):
    """Totals over a date range plus the daily series."""

    date_start: str
    date_end: str
    currency: str = ""
    daily: List[DailyPoint] = []


class MetricChange(BaseModel):
    """Period-over-period change of one metric."""

    metric_name: str
    current_value: float = 0.0
    previous_value: float = 0.0
    change: float = 0.0
    change_pct: float = 0.0
    direction: str = "stable"  # "up" | "down" | "stable"
    signal: str = "stable"  # "improving" | "declining" | "alert" | "stable" | "insufficient_data"
    previous_period_available: bool = True


class TrendComparison(BaseModel):
    """Current vs comparison period with a headline direction."""

    primary_metric: str
    current_period: PeriodSummary
    comparison_period: PeriodSummary
    changes: List[MetricChange] = []
    primary_change: MetricChange
    trend_direction: str = "stable"
    threshold_pct: float = 5.0


class BreakdownRow(MetricTotals):
    """One group of a dimensional breakdown."""

    rank: int = 0
    dimension: str
    key: str
    name: str = ""
    metric_value: float = 0.0
    share_of_spend_pct: float = 0.0
    share_of_impressions_pct: float = 0.0


class Breakdown(BaseModel):
    """Ranked breakdown of a filtered period by one dimension."""

    dimension: str
    metric: str
    date_start: str
    date_end: str
    total_spend: float = 0.0
    total_impressions: float = 0.0
    group_count: int = 0
    rows: List[BreakdownRow] = []
