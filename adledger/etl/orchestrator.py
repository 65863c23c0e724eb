"""ADLEDGER — Sync Orchestrator.

Runs one sync cycle over the tracked accounts, one account at a time:

  metadata → structure → fine-grained insights (ad, else campaign)
           ↘ on upstream failure: account-level insights with synthetic ids
  → audience breakdown → rate backfill → status

Every write is a key-based upsert, so re-running a window converges to
the same stored values. One account failing never stops the others, and
a `SyncReport` comes back no matter how many accounts failed.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple, Union

import httpx
from sqlmodel import Session, select

from adledger.config import settings
from adledger.connectors.meta.client import MetaAPIError, MetaClient
from adledger.connectors.meta.endpoints import MetaEndpoints
from adledger.connectors.meta.rate_limiter import CallBudget
from adledger.connectors.meta.transformer import (
    normalize_account_id,
    synthetic_identifiers,
    transform_audience,
    transform_batch,
    TransformationError,
)
from adledger.core.logging import get_logger
from adledger.database import session_factory as default_session_factory
from adledger.etl import fact_store
from adledger.etl.validator import filter_valid
from adledger.models.etl_models import AccountSyncResult, BatchResult, SyncReport
from adledger.models.structure_models import (
    Ad,
    AdAccount,
    AdSet,
    Campaign,
    SyncStatus,
    TrackedAccount,
)

logger = get_logger("etl.orchestrator")

# Upstream failures that send the fine-grained step to the coarse fallback
UPSTREAM_ERRORS = (MetaAPIError, httpx.HTTPError)


class AccountTarget(NamedTuple):
    """Plain snapshot of an account to sync, detached from any session."""

    meta_account_id: str
    name: str = ""
    access_token: Optional[str] = None


def sync_window(days_back: int, today: Optional[datetime] = None) -> Tuple[str, str]:
    """Inclusive (start, stop) covering the last `days_back` days up to today."""
    today = (today or datetime.now(timezone.utc)).date()
    start = today - timedelta(days=days_back)
    return start.strftime("%Y-%m-%d"), today.strftime("%Y-%m-%d")


def _default_client_factory(target: AccountTarget, budget: CallBudget) -> MetaClient:
    return MetaClient(
        target.meta_account_id,
        access_token=target.access_token,
        call_budget=budget,
    )


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


# ── Structure row mapping ──


def _campaign_row(raw: Dict[str, Any], account_id: str) -> Dict[str, Any]:
    return {
        "id": str(raw["id"]),
        "account_id": account_id,
        "name": raw.get("name", ""),
        "objective": raw.get("objective", ""),
        "status": raw.get("status", ""),
        "daily_budget": _to_float(raw.get("daily_budget")),
        "lifetime_budget": _to_float(raw.get("lifetime_budget")),
    }


def _adset_row(raw: Dict[str, Any], account_id: str) -> Dict[str, Any]:
    return {
        "id": str(raw["id"]),
        "account_id": account_id,
        "campaign_id": str(raw.get("campaign_id") or ""),
        "name": raw.get("name", ""),
        "status": raw.get("status", ""),
        "daily_budget": _to_float(raw.get("daily_budget")),
        "lifetime_budget": _to_float(raw.get("lifetime_budget")),
        "optimization_goal": raw.get("optimization_goal", ""),
    }


def _ad_row(raw: Dict[str, Any], account_id: str) -> Dict[str, Any]:
    creative = raw.get("creative") or {}
    return {
        "id": str(raw["id"]),
        "account_id": account_id,
        "campaign_id": str(raw.get("campaign_id") or ""),
        "ad_set_id": str(raw.get("adset_id") or ""),
        "name": raw.get("name", ""),
        "status": raw.get("status", ""),
        "creative_type": str(creative.get("object_type") or "").upper()
        if isinstance(creative, dict)
        else "",
    }


class SyncOrchestrator:
    """Sequential, failure-isolated multi-account sync."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = default_session_factory,
        client_factory: Callable[[AccountTarget, CallBudget], Any] = _default_client_factory,
        endpoints_factory: Callable[[Any, Session], Any] = MetaEndpoints,
        call_budget: Optional[CallBudget] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        stop_event: Optional[asyncio.Event] = None,
        inter_account_delay: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.client_factory = client_factory
        self.endpoints_factory = endpoints_factory
        self.call_budget = call_budget or CallBudget(sleep=sleep)
        self._sleep = sleep
        self.stop_event = stop_event or asyncio.Event()
        self.inter_account_delay = (
            settings.inter_account_delay_seconds
            if inter_account_delay is None
            else inter_account_delay
        )
        self.batch_size = batch_size or settings.upsert_batch_size

    def stop(self) -> None:
        """Stop after the account currently syncing."""
        self.stop_event.set()

    # ── Entry point ──

    async def run(
        self,
        accounts: Optional[Iterable[Union[str, TrackedAccount, AccountTarget]]] = None,
        days_back: Optional[int] = None,
    ) -> SyncReport:
        """Sync every given (or every active tracked) account."""
        days_back = settings.sync_days_back if days_back is None else days_back
        date_start, date_stop = sync_window(days_back)
        targets = self._resolve_targets(accounts)
        report = SyncReport(started_at=datetime.now(timezone.utc))

        logger.info(
            f"Sync starting for {len(targets)} accounts ({date_start} → {date_stop})",
            extra={"count": len(targets)},
        )

        for index, target in enumerate(targets):
            if self.stop_event.is_set():
                logger.warning("Stop requested, skipping remaining accounts")
                report.stopped_early = True
                break

            report.accounts.append(
                await self.sync_account(target, date_start, date_stop)
            )

            if index < len(targets) - 1 and self.inter_account_delay > 0:
                await self._sleep(self.inter_account_delay)

        report.finished_at = datetime.now(timezone.utc)
        logger.info("Sync finished", extra={"details": report.summary()})
        return report

    def _resolve_targets(self, accounts) -> List[AccountTarget]:
        if accounts is None:
            with self.session_factory() as session:
                tracked = session.exec(
                    select(TrackedAccount).where(TrackedAccount.is_active == True)  # noqa: E712
                ).all()
                return [
                    AccountTarget(t.meta_account_id, t.name, t.access_token)
                    for t in tracked
                ]

        targets: List[AccountTarget] = []
        for account in accounts:
            if isinstance(account, AccountTarget):
                targets.append(account)
            elif isinstance(account, TrackedAccount):
                targets.append(
                    AccountTarget(account.meta_account_id, account.name, account.access_token)
                )
            else:
                targets.append(AccountTarget(normalize_account_id(account)))
        return targets

    # ── Per-account state machine ──

    async def sync_account(
        self, target: AccountTarget, date_start: str, date_stop: str
    ) -> AccountSyncResult:
        """Sync one account; failures are recorded on the result, not raised."""
        account_id = normalize_account_id(target.meta_account_id)
        result = AccountSyncResult(
            account_id=account_id,
            account_name=target.name,
            date_start=date_start,
            date_stop=date_stop,
            started_at=datetime.now(timezone.utc),
        )
        started = time.perf_counter()

        with self.session_factory() as session:
            self._set_status(session, target, SyncStatus.SYNCING)
            result.status = SyncStatus.SYNCING.value
            client = None
            try:
                client = self.client_factory(target, self.call_budget)
                endpoints = self.endpoints_factory(client, session)
                await self._sync_metadata(session, endpoints, account_id, result)
                video_ad_ids = await self._sync_structure(session, endpoints, account_id)
                await self._sync_insights(
                    session, endpoints, account_id, date_start, date_stop, video_ad_ids, result
                )
                await self._sync_audience(session, endpoints, account_id, date_start, date_stop, result)

                result.rates_backfilled = fact_store.backfill_derived_metrics(
                    session, account_id, date_start, date_stop
                )
                session.commit()
                result.status = SyncStatus.COMPLETED.value
            except Exception as e:
                session.rollback()
                result.status = SyncStatus.FAILED.value
                result.errors.append(f"{type(e).__name__}: {e}")
                logger.exception(
                    f"Sync failed for account {account_id}",
                    extra={"account_id": account_id},
                )
            finally:
                if client is not None:
                    await client.close()

            error = result.errors[-1] if result.errors else None
            self._set_status(session, target, SyncStatus(result.status), error)

        result.finished_at = datetime.now(timezone.utc)
        result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            f"Account {account_id} sync {result.status}",
            extra={
                "account_id": account_id,
                "duration_ms": result.duration_ms,
                "count": result.records_persisted,
            },
        )
        return result

    def _set_status(
        self,
        session: Session,
        target: AccountTarget,
        status: SyncStatus,
        error: Optional[str] = None,
    ) -> None:
        account_id = normalize_account_id(target.meta_account_id)
        tracked = session.exec(
            select(TrackedAccount).where(TrackedAccount.meta_account_id == account_id)
        ).first()
        if tracked is None:
            tracked = TrackedAccount(meta_account_id=account_id, name=target.name)
        tracked.sync_status = status.value
        if status in (SyncStatus.COMPLETED, SyncStatus.FAILED):
            tracked.last_sync_at = datetime.now(timezone.utc)
            tracked.last_error = error
        session.add(tracked)
        session.commit()

    async def _sync_metadata(
        self,
        session: Session,
        endpoints,
        account_id: str,
        result: AccountSyncResult,
    ) -> None:
        """Refresh account display attributes. Best-effort."""
        try:
            info = await endpoints.fetch_account_info()
        except UPSTREAM_ERRORS as e:
            logger.warning(
                f"Account metadata unavailable: {e}", extra={"account_id": account_id}
            )
            return

        result.account_name = result.account_name or info.get("name", "")
        fact_store.upsert_by_id(
            session,
            AdAccount,
            [
                {
                    "id": account_id,
                    "name": info.get("name", ""),
                    "currency": info.get("currency", ""),
                    "timezone": info.get("timezone_name", ""),
                    "status": str(info.get("account_status", "")),
                    "updated_at": datetime.now(timezone.utc),
                }
            ],
        )
        session.commit()

    async def _sync_structure(self, session: Session, endpoints, account_id: str) -> Set[str]:
        """Refresh the campaign / ad set / ad tree. Returns the video ad ids."""
        campaigns = await endpoints.fetch_campaigns()
        adsets = await endpoints.fetch_adsets()
        ads = await endpoints.fetch_ads()

        ad_rows = [_ad_row(a, account_id) for a in ads if a.get("id")]
        fact_store.upsert_by_id(
            session, Campaign, [_campaign_row(c, account_id) for c in campaigns if c.get("id")]
        )
        fact_store.upsert_by_id(
            session, AdSet, [_adset_row(s, account_id) for s in adsets if s.get("id")]
        )
        fact_store.upsert_by_id(session, Ad, ad_rows)
        session.commit()

        logger.info(
            f"Structure synced: {len(campaigns)} campaigns, {len(adsets)} ad sets, {len(ads)} ads",
            extra={"account_id": account_id},
        )
        return {row["id"] for row in ad_rows if row["creative_type"] == "VIDEO"}

    async def _fetch_fine_grained(
        self, endpoints, date_start: str, date_stop: str
    ) -> Tuple[str, List[Dict[str, Any]]]:
        try:
            return "ad", await endpoints.fetch_insights("ad", date_start, date_stop)
        except UPSTREAM_ERRORS as e:
            logger.warning(f"Ad-level insights failed ({e}), trying campaign level")
        return "campaign", await endpoints.fetch_insights("campaign", date_start, date_stop)

    async def _sync_insights(
        self,
        session: Session,
        endpoints,
        account_id: str,
        date_start: str,
        date_stop: str,
        video_ad_ids: Set[str],
        result: AccountSyncResult,
    ) -> None:
        try:
            level, rows = await self._fetch_fine_grained(endpoints, date_start, date_stop)
        except UPSTREAM_ERRORS as e:
            logger.warning(
                f"Fine-grained insights failed ({e}), falling back to account level",
                extra={"account_id": account_id},
            )
            level = "account"
            rows = await endpoints.fetch_insights("account", date_start, date_stop)

        result.source_level = level
        result.records_fetched = len(rows)
        for row in rows:
            row.setdefault("account_id", account_id)

        batch = filter_valid(transform_batch(rows, level), video_ad_ids)
        result.records_dropped = batch.dropped_count
        result.warnings = len(batch.warnings)

        if level != "ad":
            self._ensure_synthetic_structure(session, account_id, batch)
        # Rows from an earlier sync at another level would double-book spend
        result.other_level_rows_deleted = fact_store.delete_other_levels(
            session, account_id, date_start, date_stop, level
        )

        result.records_persisted = fact_store.upsert_facts(
            session, batch.records, self.batch_size
        )
        result.entities_processed = len({r.ad_id for r in batch.records})
        session.commit()

    def _ensure_synthetic_structure(
        self, session: Session, account_id: str, batch: BatchResult
    ) -> None:
        """Structure rows for the made-up ids coarse fact rows point at."""
        campaigns: Dict[str, Dict[str, Any]] = {}
        adsets: Dict[str, Dict[str, Any]] = {}
        ads: Dict[str, Dict[str, Any]] = {}

        for record in batch.records:
            if record.level == "account":
                ids = synthetic_identifiers("account", account_id)
                campaigns[ids["campaign_id"]] = {
                    "id": ids["campaign_id"],
                    "account_id": account_id,
                    "name": "Account total",
                    "synthetic": True,
                }
                label = "Account total"
            else:
                ids = synthetic_identifiers("campaign", account_id, record.campaign_id)
                label = f"Campaign {record.campaign_id} total"
            adsets[ids["ad_set_id"]] = {
                "id": ids["ad_set_id"],
                "account_id": account_id,
                "campaign_id": ids["campaign_id"],
                "name": label,
                "synthetic": True,
            }
            ads[ids["ad_id"]] = {
                "id": ids["ad_id"],
                "account_id": account_id,
                "campaign_id": ids["campaign_id"],
                "ad_set_id": ids["ad_set_id"],
                "name": label,
                "synthetic": True,
            }

        fact_store.upsert_by_id(session, Campaign, list(campaigns.values()))
        fact_store.upsert_by_id(session, AdSet, list(adsets.values()))
        fact_store.upsert_by_id(session, Ad, list(ads.values()))

    async def _sync_audience(
        self,
        session: Session,
        endpoints,
        account_id: str,
        date_start: str,
        date_stop: str,
        result: AccountSyncResult,
    ) -> None:
        """Age / gender breakdown. Best-effort."""
        try:
            rows = await endpoints.fetch_audience_insights(date_start, date_stop)
        except UPSTREAM_ERRORS as e:
            logger.warning(
                f"Audience insights unavailable: {e}", extra={"account_id": account_id}
            )
            return

        records = []
        for row in rows:
            row.setdefault("account_id", account_id)
            try:
                records.append(transform_audience(row))
            except TransformationError as e:
                result.records_dropped += 1
                logger.warning(f"Dropping audience row: {e}", extra={"account_id": account_id})
        fact_store.upsert_audience_facts(session, records)
        session.commit()
