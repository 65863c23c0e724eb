"""ADLEDGER — Sync & Account API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from adledger.connectors.meta.transformer import normalize_account_id
from adledger.core.logging import get_logger
from adledger.database import get_session
from adledger.etl.orchestrator import SyncOrchestrator
from adledger.models.etl_models import AccountSyncResult
from adledger.models.structure_models import TrackedAccount

logger = get_logger("api.sync")

router = APIRouter(tags=["Sync"])


# ── Request / Response Models ──


class SyncRequest(BaseModel):
    """Request body for POST /sync."""

    accounts: Optional[List[str]] = None
    """Account ids to sync. Defaults to every active tracked account."""
    days_back: Optional[int] = None
    """Size of the trailing window. Defaults to the configured value."""


class SyncResponse(BaseModel):
    status: str = "success"
    summary: dict
    accounts: List[AccountSyncResult]


class TrackAccountRequest(BaseModel):
    meta_account_id: str
    name: str = ""
    access_token: Optional[str] = None


def get_orchestrator() -> SyncOrchestrator:
    """Dependency: a fresh orchestrator per request."""
    return SyncOrchestrator()


# ── Endpoints ──


@router.post("/sync", response_model=SyncResponse)
async def trigger_sync(
    request: SyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Run one sync cycle and return the per-account report."""
    if request.days_back is not None and request.days_back < 0:
        raise HTTPException(status_code=400, detail="days_back must be >= 0")
    report = await orchestrator.run(accounts=request.accounts, days_back=request.days_back)
    status = "success" if report.accounts_failed == 0 else "partial_failure"
    return SyncResponse(status=status, summary=report.summary(), accounts=report.accounts)


@router.get("/accounts")
async def list_accounts(session: Session = Depends(get_session)):
    """Tracked accounts with their last sync status."""
    accounts = session.exec(select(TrackedAccount)).all()
    return {
        "status": "success",
        "count": len(accounts),
        "accounts": [
            {
                "meta_account_id": a.meta_account_id,
                "name": a.name,
                "is_active": a.is_active,
                "sync_status": a.sync_status,
                "last_sync_at": a.last_sync_at.isoformat() if a.last_sync_at else None,
                "last_error": a.last_error,
            }
            for a in accounts
        ],
    }


@router.post("/accounts", status_code=201)
async def track_account(
    request: TrackAccountRequest,
    session: Session = Depends(get_session),
):
    """Start tracking an ad account."""
    account_id = normalize_account_id(request.meta_account_id)
    if not account_id:
        raise HTTPException(status_code=400, detail="meta_account_id is required")
    existing = session.exec(
        select(TrackedAccount).where(TrackedAccount.meta_account_id == account_id)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Account {account_id} is already tracked")

    account = TrackedAccount(
        meta_account_id=account_id,
        name=request.name,
        access_token=request.access_token,
    )
    session.add(account)
    session.commit()
    logger.info(f"Tracking account {account_id}", extra={"account_id": account_id})
    return {"status": "success", "meta_account_id": account_id}
