"""ADLEDGER — Metrics Query API Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from adledger.analyzer.query import get_breakdown, get_summary, get_trend
from adledger.core.logging import get_logger
from adledger.database import get_session
from adledger.models.analysis_models import Breakdown, PeriodSummary, TrendComparison

logger = get_logger("api.metrics")

router = APIRouter(prefix="/metrics", tags=["Metrics"])


@router.get("/summary", response_model=PeriodSummary)
async def summary(
    date_start: str = Query(..., description="YYYY-MM-DD"),
    date_end: str = Query(..., description="YYYY-MM-DD"),
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Period totals with rates recomputed from the sums."""
    try:
        return get_summary(session, date_start, date_end, account_id, campaign_id, ad_set_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/trend", response_model=TrendComparison)
async def trend(
    date_start: str = Query(..., description="YYYY-MM-DD"),
    date_end: str = Query(..., description="YYYY-MM-DD"),
    comparison_start: Optional[str] = None,
    comparison_end: Optional[str] = None,
    primary_metric: str = "spend",
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Period-over-period comparison.

    Omit the comparison range to compare against the previous period.
    """
    try:
        return get_trend(
            session,
            date_start,
            date_end,
            comparison_start=comparison_start,
            comparison_end=comparison_end,
            primary_metric=primary_metric,
            account_id=account_id,
            campaign_id=campaign_id,
            ad_set_id=ad_set_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/breakdown", response_model=Breakdown)
async def breakdown(
    date_start: str = Query(..., description="YYYY-MM-DD"),
    date_end: str = Query(..., description="YYYY-MM-DD"),
    dimension: str = Query("campaign", description="campaign | ad_set | ad | age | gender | age_gender"),
    metric: str = "spend",
    limit: Optional[int] = Query(None, ge=1, le=500),
    ascending: bool = False,
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Groups ranked by a metric, with shares of spend and impressions."""
    try:
        return get_breakdown(
            session,
            date_start,
            date_end,
            dimension=dimension,
            metric=metric,
            limit=limit,
            account_id=account_id,
            campaign_id=campaign_id,
            ad_set_id=ad_set_id,
            ascending=ascending,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
