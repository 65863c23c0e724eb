"""ADLEDGER — Aggregation Query Surface.

Reads fact records for a date range and filter set and hands them to the
aggregation, trend and breakdown engines. Every call returns a
well-formed object, zero-valued when nothing matched.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional

from sqlmodel import Session, col, select

from adledger.analyzer.aggregation_engine import summarize
from adledger.analyzer.breakdown_engine import AUDIENCE_DIMENSIONS, build_breakdown
from adledger.analyzer.trend_engine import compare_periods, period_days, previous_period
from adledger.config import settings
from adledger.etl import fact_store
from adledger.models.analysis_models import Breakdown, PeriodSummary, TrendComparison
from adledger.models.structure_models import Ad, AdAccount, AdSet, Campaign

# Entity dimension → structure table holding display names
NAME_SOURCES = {"campaign": Campaign, "ad_set": AdSet, "ad": Ad}


def _check_range(date_start: str, date_end: str, label: str = "date range") -> None:
    try:
        start = datetime.strptime(date_start, "%Y-%m-%d")
        end = datetime.strptime(date_end, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {label} '{date_start}' → '{date_end}', expected YYYY-MM-DD") from None
    if start > end:
        raise ValueError(f"Invalid {label}: start {date_start} is after end {date_end}")


def _currency(session: Session, account_id: Optional[str]) -> str:
    if account_id:
        account = session.get(AdAccount, account_id)
        if account and account.currency:
            return account.currency
    return settings.default_currency


def _entity_names(session: Session, dimension: str, keys: Iterable[str]) -> Dict[str, str]:
    model = NAME_SOURCES.get(dimension)
    keys = [k for k in keys if k]
    if model is None or not keys:
        return {}
    rows = session.exec(select(model).where(col(model.id).in_(keys))).all()
    return {row.id: row.name for row in rows if row.name}


def get_summary(
    session: Session,
    date_start: str,
    date_end: str,
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
) -> PeriodSummary:
    """Period totals over the filtered fact records."""
    _check_range(date_start, date_end)
    records = fact_store.read_facts(
        session,
        date_start,
        date_end,
        account_id=account_id,
        campaign_id=campaign_id,
        ad_set_id=ad_set_id,
    )
    return summarize(records, date_start, date_end, _currency(session, account_id))


def get_trend(
    session: Session,
    date_start: str,
    date_end: str,
    comparison_start: Optional[str] = None,
    comparison_end: Optional[str] = None,
    primary_metric: str = "spend",
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    threshold_pct: Optional[float] = None,
) -> TrendComparison:
    """Current period against the given comparison period.

    Without a comparison range the period immediately before is used.
    A partial or unequal comparison range is rejected.
    """
    _check_range(date_start, date_end)
    if comparison_start is None and comparison_end is None:
        comparison_start, comparison_end = previous_period(date_start, date_end)
    elif comparison_start is None or comparison_end is None:
        raise ValueError("Both comparison_start and comparison_end are required")
    _check_range(comparison_start, comparison_end, "comparison range")
    if period_days(date_start, date_end) != period_days(comparison_start, comparison_end):
        raise ValueError("Comparison period must be the same length as the current period")

    filters = dict(account_id=account_id, campaign_id=campaign_id, ad_set_id=ad_set_id)
    current = get_summary(session, date_start, date_end, **filters)
    comparison = get_summary(session, comparison_start, comparison_end, **filters)
    return compare_periods(current, comparison, primary_metric, threshold_pct)


def get_breakdown(
    session: Session,
    date_start: str,
    date_end: str,
    dimension: str = "campaign",
    metric: str = "spend",
    limit: Optional[int] = None,
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    ascending: bool = False,
) -> Breakdown:
    """Ranked breakdown of the filtered period by one dimension."""
    _check_range(date_start, date_end)
    limit = settings.breakdown_default_limit if limit is None else limit

    if dimension in AUDIENCE_DIMENSIONS:
        if campaign_id or ad_set_id:
            raise ValueError("Audience breakdowns can only be filtered by account")
        records = fact_store.read_audience_facts(
            session, date_start, date_end, account_id=account_id
        )
    else:
        records = fact_store.read_facts(
            session,
            date_start,
            date_end,
            account_id=account_id,
            campaign_id=campaign_id,
            ad_set_id=ad_set_id,
        )

    names: Dict[str, str] = {}
    if dimension not in AUDIENCE_DIMENSIONS:
        keys = {getattr(r, f"{dimension}_id", "") for r in records}
        names = _entity_names(session, dimension, keys)

    return build_breakdown(
        records,
        dimension,
        date_start,
        date_end,
        metric=metric,
        limit=limit,
        names=names,
        ascending=ascending,
    )
