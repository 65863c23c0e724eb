"""ADLEDGER — Daily Fact Models.

`DailyInsight` is the normalized fact record: one row per entity per day.
The unique constraint on (ad_id, date) is what makes re-syncing a day an
overwrite rather than an append.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyInsight(SQLModel, table=True):
    """Normalized per-entity, per-day metrics row."""

    __tablename__ = "daily_insights"
    __table_args__ = (UniqueConstraint("ad_id", "date", name="uq_daily_insight"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    # ── Identity ──
    account_id: str = Field(index=True)
    campaign_id: str = Field(index=True)
    ad_set_id: str = Field(index=True)
    ad_id: str = Field(index=True, description="Entity identifier (real or synthetic)")
    date: str = Field(index=True, description="YYYY-MM-DD")
    level: str = Field(default="ad", index=True, description="ad | campaign | account")

    # ── Core totals (always present) ──
    impressions: float = 0
    clicks: float = 0
    spend: float = 0
    reach: float = 0
    frequency: float = 0

    # ── Per-outcome counts and values (None when not observed) ──
    link_clicks: Optional[float] = None
    purchases: Optional[float] = None
    leads: Optional[float] = None
    registrations: Optional[float] = None
    add_to_carts: Optional[float] = None
    purchase_value: Optional[float] = None
    lead_value: Optional[float] = None
    registration_value: Optional[float] = None
    cost_per_purchase: Optional[float] = None

    # ── Legacy blended fields (never feed CPA / purchase ROAS) ──
    conversions: Optional[float] = None
    conversion_values: Optional[float] = None

    # ── Derived rates, full precision ──
    ctr: float = 0
    cpc: float = 0
    cpm: float = 0
    purchase_cpa: Optional[float] = None
    purchase_roas: Optional[float] = None
    roas: float = 0

    # ── Video funnel ──
    video_plays: float = 0
    video_views: float = 0
    video_thruplay: float = 0
    video_15s: float = 0
    video_30s: float = 0
    video_p25: float = 0
    video_p50: float = 0
    video_p75: float = 0
    video_p95: float = 0
    video_p100: float = 0
    video_avg_time_watched: float = 0

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class AudienceInsight(SQLModel, table=True):
    """Account-level daily metrics broken down by age and gender."""

    __tablename__ = "audience_insights"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "date", "age_range", "gender", name="uq_audience_insight"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: str = Field(index=True)
    date: str = Field(index=True)
    age_range: str = Field(default="unknown")
    gender: str = Field(default="unknown")

    impressions: float = 0
    clicks: float = 0
    link_clicks: float = 0
    spend: float = 0
    reach: float = 0
    purchases: float = 0
    purchase_value: float = 0

    updated_at: datetime = Field(default_factory=_utcnow)
