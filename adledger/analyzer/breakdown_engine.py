"""ADLEDGER — Breakdown Engine.

Groups records by one dimension and ranks the groups by a metric. Ties
rank by group key so the order never depends on storage order. Shares of
spend and impressions are taken against the whole filtered set, before
any limit is applied.
"""

from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from adledger.analyzer.aggregation_engine import accumulate, finalize
from adledger.core.logging import get_logger
from adledger.models.analysis_models import Breakdown, BreakdownRow, MetricTotals

logger = get_logger("analyzer.breakdown")

# Dimension → how to read a record's group key
ENTITY_DIMENSIONS: Dict[str, Callable[[Any], str]] = {
    "campaign": lambda r: r.campaign_id,
    "ad_set": lambda r: r.ad_set_id,
    "ad": lambda r: r.ad_id,
}
AUDIENCE_DIMENSIONS: Dict[str, Callable[[Any], str]] = {
    "age": lambda r: r.age_range,
    "gender": lambda r: r.gender,
    "age_gender": lambda r: f"{r.age_range}|{r.gender}",
}
DIMENSIONS = {**ENTITY_DIMENSIONS, **AUDIENCE_DIMENSIONS}

RANKABLE_METRICS = set(MetricTotals.model_fields) - {"record_count"}


def _share(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def build_breakdown(
    records: Iterable[Any],
    dimension: str,
    date_start: str,
    date_end: str,
    metric: str = "spend",
    limit: Optional[int] = None,
    names: Optional[Mapping[str, str]] = None,
    ascending: bool = False,
) -> Breakdown:
    """Rank groups of `records` by `metric`.

    Groups whose metric is undefined (e.g. CPA with no purchases) rank
    after every group that has a value.
    """
    if dimension not in DIMENSIONS:
        raise ValueError(
            f"Unknown dimension '{dimension}'. Expected one of: {', '.join(DIMENSIONS)}"
        )
    if metric not in RANKABLE_METRICS:
        raise ValueError(f"Cannot rank by unknown metric '{metric}'")
    if limit is not None and limit < 1:
        raise ValueError("limit must be a positive integer")

    key_of = DIMENSIONS[dimension]
    names = names or {}
    records = list(records)

    groups: Dict[str, List[Any]] = defaultdict(list)
    for record in records:
        groups[key_of(record) or ""].append(record)

    overall = accumulate(records)
    total_spend = overall["spend"]
    total_impressions = overall["impressions"]

    rows: List[BreakdownRow] = []
    for key, members in groups.items():
        totals = finalize(
            accumulate(members),
            BreakdownRow,
            dimension=dimension,
            key=key,
            name=names.get(key, ""),
        )
        value = getattr(totals, metric)
        totals.metric_value = value if value is not None else 0.0
        totals.share_of_spend_pct = _share(totals.spend, total_spend)
        totals.share_of_impressions_pct = _share(totals.impressions, total_impressions)
        rows.append(totals)

    def sort_key(row: BreakdownRow):
        undefined = getattr(row, metric) is None
        value = row.metric_value if ascending else -row.metric_value
        return (undefined, value, row.key)

    rows.sort(key=sort_key)
    if limit is not None:
        rows = rows[:limit]
    for rank, row in enumerate(rows, 1):
        row.rank = rank

    logger.debug(
        f"Breakdown by {dimension}: {len(groups)} groups ranked by {metric}",
        extra={"count": len(groups)},
    )
    return Breakdown(
        dimension=dimension,
        metric=metric,
        date_start=date_start,
        date_end=date_end,
        total_spend=total_spend,
        total_impressions=total_impressions,
        group_count=len(groups),
        rows=rows,
    )
