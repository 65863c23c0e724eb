"""ADLEDGER — Fact Metric Registry.

Defines the canonical set of metrics carried by a daily fact record and
their classifications. The validator, the aggregation engines and the
query surface all look fields up here, so a metric added to the fact
table must be registered to be summed, checked and ranked.
"""

from enum import Enum
from typing import Dict


class MetricType(str, Enum):
    """How a metric is categorised."""

    VOLUME = "volume"  # Raw counts: impressions, clicks, reach
    COST = "cost"  # Monetary: spend
    OUTCOME = "outcome"  # Per-type outcome counts: purchases, leads
    REVENUE = "revenue"  # Per-type outcome values: purchase_value
    RATE = "rate"  # Derived from summed numerators/denominators
    VIDEO = "video"  # Video funnel counters


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self,
        name: str,
        metric_type: MetricType,
        unit: str = "",
        description: str = "",
        summable: bool = True,
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.description = description
        self.summable = summable

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value})>"


def _m(name, metric_type, unit="", description="", summable=True):
    return name, MetricDefinition(name, metric_type, unit, description, summable)


# ─────────────────────────────────────────────
# FACT METRICS: stored on every DailyInsight row
# ─────────────────────────────────────────────

FACT_METRICS: Dict[str, MetricDefinition] = dict(
    [
        # Volume
        _m("impressions", MetricType.VOLUME, "count", "Times the ad was shown"),
        _m("clicks", MetricType.VOLUME, "count", "All clicks"),
        _m("link_clicks", MetricType.VOLUME, "count", "Clicks on the ad link"),
        _m("reach", MetricType.VOLUME, "count", "Unique users reached"),
        _m(
            "frequency",
            MetricType.VOLUME,
            "avg",
            "Average times shown per user",
            summable=False,
        ),
        # Cost
        _m("spend", MetricType.COST, "currency", "Amount spent"),
        _m(
            "cost_per_purchase",
            MetricType.COST,
            "currency",
            "Upstream-reported cost per purchase",
            summable=False,
        ),
        # Outcomes
        _m("purchases", MetricType.OUTCOME, "count", "Purchases"),
        _m("leads", MetricType.OUTCOME, "count", "Leads"),
        _m("registrations", MetricType.OUTCOME, "count", "Completed registrations"),
        _m("add_to_carts", MetricType.OUTCOME, "count", "Add-to-cart events"),
        _m(
            "conversions",
            MetricType.OUTCOME,
            "count",
            "Legacy blended conversions (reporting only)",
        ),
        # Revenue
        _m("purchase_value", MetricType.REVENUE, "currency", "Purchase value"),
        _m("lead_value", MetricType.REVENUE, "currency", "Lead value"),
        _m("registration_value", MetricType.REVENUE, "currency", "Registration value"),
        _m(
            "conversion_values",
            MetricType.REVENUE,
            "currency",
            "Legacy blended conversion value (reporting only)",
        ),
        # Video
        _m("video_plays", MetricType.VIDEO, "count", "Video plays"),
        _m("video_views", MetricType.VIDEO, "count", "3-second video views"),
        _m("video_thruplay", MetricType.VIDEO, "count", "ThruPlays"),
        _m("video_15s", MetricType.VIDEO, "count", "Watched 15 seconds"),
        _m("video_30s", MetricType.VIDEO, "count", "Watched 30 seconds"),
        _m("video_p25", MetricType.VIDEO, "count", "Watched 25%"),
        _m("video_p50", MetricType.VIDEO, "count", "Watched 50%"),
        _m("video_p75", MetricType.VIDEO, "count", "Watched 75%"),
        _m("video_p95", MetricType.VIDEO, "count", "Watched 95%"),
        _m("video_p100", MetricType.VIDEO, "count", "Watched 100%"),
        _m(
            "video_avg_time_watched",
            MetricType.VIDEO,
            "seconds",
            "Average watch time",
            summable=False,
        ),
    ]
)


# ─────────────────────────────────────────────
# RATE METRICS: recomputed from sums, never averaged
# ─────────────────────────────────────────────

RATE_METRICS: Dict[str, MetricDefinition] = dict(
    [
        _m("ctr", MetricType.RATE, "%", "Link clicks / impressions", summable=False),
        _m("cpc", MetricType.RATE, "currency", "Spend / link clicks", summable=False),
        _m("cpm", MetricType.RATE, "currency", "Spend per 1000 impressions", summable=False),
        _m("purchase_cpa", MetricType.RATE, "currency", "Spend / purchases", summable=False),
        _m("purchase_roas", MetricType.RATE, "ratio", "Purchase value / spend", summable=False),
        _m(
            "roas",
            MetricType.RATE,
            "ratio",
            "Legacy ROAS: purchase ROAS, else blended value / spend",
            summable=False,
        ),
    ]
)


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

ALL_METRICS = {**FACT_METRICS, **RATE_METRICS}

# Fields summed when rolling fact records up into totals
SUMMABLE_FIELDS = [m.name for m in FACT_METRICS.values() if m.summable]

# Every numeric field on a fact record (must be >= 0 when present)
NUMERIC_FIELDS = list(ALL_METRICS)
