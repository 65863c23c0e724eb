"""ADLEDGER — Account & Entity Structure Models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


class SyncStatus(str, Enum):
    """Per-account sync lifecycle."""

    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class TrackedAccount(SQLModel, table=True):
    """An ad account the sync orchestrator pulls data for."""

    __tablename__ = "tracked_accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    meta_account_id: str = Field(index=True, unique=True, description="Without act_ prefix")
    name: str = ""
    access_token: Optional[str] = Field(
        default=None, description="Overrides the default token when set"
    )
    is_active: bool = True
    sync_status: str = Field(default=SyncStatus.PENDING.value)
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None


class AdAccount(SQLModel, table=True):
    """Display attributes of an upstream ad account."""

    __tablename__ = "ad_accounts"

    id: str = Field(primary_key=True)
    name: str = ""
    currency: str = ""
    timezone: str = ""
    status: str = ""
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Campaign(SQLModel, table=True):
    __tablename__ = "campaigns"

    id: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    name: str = ""
    objective: str = ""
    status: str = ""
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    synthetic: bool = False


class AdSet(SQLModel, table=True):
    __tablename__ = "ad_sets"

    id: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    campaign_id: str = Field(index=True)
    name: str = ""
    status: str = ""
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    optimization_goal: str = ""
    synthetic: bool = False


class Ad(SQLModel, table=True):
    __tablename__ = "ads"

    id: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    campaign_id: str = Field(index=True)
    ad_set_id: str = Field(index=True)
    name: str = ""
    status: str = ""
    creative_type: str = Field(default="", description="Creative object type, e.g. VIDEO")
    synthetic: bool = False
