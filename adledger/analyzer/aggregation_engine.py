"""ADLEDGER — Aggregation Engine.

Rolls fact records up into period totals and a daily series. Counts and
money are summed; every rate is then recomputed from the sums. Averaging
stored per-day rates would weight a 10-impression day the same as a
10,000-impression day.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Type, TypeVar

from adledger.core import rates
from adledger.core.logging import get_logger
from adledger.core.metric_registry import SUMMABLE_FIELDS
from adledger.models.analysis_models import DailyPoint, MetricTotals, PeriodSummary

logger = get_logger("analyzer.aggregation")

T = TypeVar("T", bound=MetricTotals)

# Summable fields carried on the totals models
TOTAL_FIELDS = [f for f in SUMMABLE_FIELDS if f in MetricTotals.model_fields]


def accumulate(records: Iterable[Any]) -> Dict[str, float]:
    """Sum every total field across records; absent values count as 0."""
    sums: Dict[str, float] = {field: 0.0 for field in TOTAL_FIELDS}
    count = 0
    for record in records:
        count += 1
        for field in TOTAL_FIELDS:
            sums[field] += getattr(record, field, None) or 0
    sums["record_count"] = count
    return sums


def finalize(sums: Dict[str, float], model: Type[T] = MetricTotals, **extra) -> T:
    """Build a totals model from sums, deriving rates from the summed parts."""
    spend = sums.get("spend", 0.0)
    impressions = sums.get("impressions", 0.0)
    link_clicks = sums.get("link_clicks", 0.0)
    purchase_roas = rates.resolve_purchase_roas(sums.get("purchase_value"), spend)

    return model(
        **{field: sums.get(field, 0.0) for field in TOTAL_FIELDS},
        record_count=int(sums.get("record_count", 0)),
        ctr=rates.compute_ctr(link_clicks, impressions),
        cpc=rates.compute_cpc(spend, link_clicks),
        cpm=rates.compute_cpm(spend, impressions),
        purchase_cpa=rates.resolve_purchase_cpa(spend, sums.get("purchases")),
        purchase_roas=purchase_roas,
        roas=rates.resolve_legacy_roas(
            purchase_roas, sums.get("conversion_values"), spend
        ),
        **extra,
    )


def compute_totals(records: Iterable[Any]) -> MetricTotals:
    return finalize(accumulate(records))


def daily_series(records: Iterable[Any]) -> List[DailyPoint]:
    """One point per day present in the records, oldest first."""
    by_date: Dict[str, List[Any]] = defaultdict(list)
    for record in records:
        by_date[record.date].append(record)
    return [
        finalize(accumulate(day_records), DailyPoint, date=date)
        for date, day_records in sorted(by_date.items())
    ]


def summarize(
    records: Iterable[Any],
    date_start: str,
    date_end: str,
    currency: str = "",
) -> PeriodSummary:
    """Period totals plus daily series. No records gives a zero summary."""
    records = list(records)
    summary = finalize(
        accumulate(records),
        PeriodSummary,
        date_start=date_start,
        date_end=date_end,
        currency=currency,
        daily=daily_series(records),
    )
    logger.debug(
        f"Summarized {len(records)} records for {date_start} → {date_end}",
        extra={"count": len(records)},
    )
    return summary
