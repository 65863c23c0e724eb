"""ADLEDGER — Fact Store.

Key-based writes against the fact tables. Every write is "insert or
overwrite" on the row's natural key, so replaying a sync converges to the
same stored values no matter how often or in what order it runs.

Functions here flush but do not commit; the caller owns the transaction.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlmodel import Session, SQLModel, col, select

from adledger.config import settings
from adledger.core import rates
from adledger.core.logging import get_logger
from adledger.models.fact_models import AudienceInsight, DailyInsight

logger = get_logger("etl.fact_store")

# Columns never copied from an incoming record onto a stored one
_PRESERVED = {"id", "created_at"}


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _copy_onto(target: SQLModel, source: SQLModel) -> None:
    for field, value in source.model_dump(exclude=_PRESERVED).items():
        setattr(target, field, value)


def upsert_facts(
    session: Session,
    records: Sequence[DailyInsight],
    batch_size: Optional[int] = None,
) -> int:
    """Insert or overwrite fact records keyed on (ad_id, date).

    Records sharing a key within one call collapse to the last one given.
    Returns the number of distinct keys written.
    """
    if not records:
        return 0
    batch_size = batch_size or settings.upsert_batch_size

    latest: Dict[Tuple[str, str], DailyInsight] = {}
    for record in records:
        latest[(record.ad_id, record.date)] = record
    unique = list(latest.values())

    now = datetime.now(timezone.utc)
    for number, chunk in enumerate(_chunks(unique, batch_size), 1):
        ad_ids = sorted({r.ad_id for r in chunk})
        dates = sorted({r.date for r in chunk})
        existing = {
            (row.ad_id, row.date): row
            for row in session.exec(
                select(DailyInsight).where(
                    col(DailyInsight.ad_id).in_(ad_ids),
                    col(DailyInsight.date).in_(dates),
                )
            ).all()
        }
        for record in chunk:
            stored = existing.get((record.ad_id, record.date))
            if stored is not None:
                _copy_onto(stored, record)
                stored.updated_at = now
                session.add(stored)
            else:
                fresh = DailyInsight.model_validate(
                    record.model_dump(exclude={"id"})
                )
                fresh.updated_at = now
                session.add(fresh)
        session.flush()
        logger.debug(
            f"Upserted fact batch {number}", extra={"count": len(chunk)}
        )

    logger.info(f"Upserted {len(unique)} fact records", extra={"count": len(unique)})
    return len(unique)


def delete_other_levels(
    session: Session,
    account_id: str,
    date_start: str,
    date_stop: str,
    keep_level: str,
) -> int:
    """Remove rows of any level but `keep_level` for an account window.

    One window holds facts at a single granularity, so whatever level a
    sync lands replaces the others before its rows are upserted.
    """
    rows = session.exec(
        select(DailyInsight).where(
            DailyInsight.account_id == account_id,
            DailyInsight.level != keep_level,
            DailyInsight.date >= date_start,
            DailyInsight.date <= date_stop,
        )
    ).all()
    for row in rows:
        session.delete(row)
    session.flush()
    deleted = len(rows)
    if deleted:
        logger.info(
            f"Deleted {deleted} non-{keep_level} rows for {date_start} → {date_stop}",
            extra={"account_id": account_id, "count": deleted},
        )
    return deleted


def read_facts(
    session: Session,
    date_start: str,
    date_stop: str,
    account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    ad_id: Optional[str] = None,
    level: Optional[str] = None,
) -> List[DailyInsight]:
    """All fact records in [date_start, date_stop] matching the filters."""
    query = select(DailyInsight).where(
        DailyInsight.date >= date_start,
        DailyInsight.date <= date_stop,
    )
    if account_id:
        query = query.where(DailyInsight.account_id == account_id)
    if campaign_id:
        query = query.where(DailyInsight.campaign_id == campaign_id)
    if ad_set_id:
        query = query.where(DailyInsight.ad_set_id == ad_set_id)
    if ad_id:
        query = query.where(DailyInsight.ad_id == ad_id)
    if level:
        query = query.where(DailyInsight.level == level)
    return list(session.exec(query.order_by(DailyInsight.date, DailyInsight.ad_id)).all())


def upsert_audience_facts(session: Session, records: Sequence[AudienceInsight]) -> int:
    """Insert or overwrite audience rows keyed on (account, date, age, gender)."""
    written = 0
    for record in records:
        stored = session.exec(
            select(AudienceInsight).where(
                AudienceInsight.account_id == record.account_id,
                AudienceInsight.date == record.date,
                AudienceInsight.age_range == record.age_range,
                AudienceInsight.gender == record.gender,
            )
        ).first()
        if stored is not None:
            _copy_onto(stored, record)
            session.add(stored)
        else:
            session.add(AudienceInsight.model_validate(record.model_dump(exclude={"id"})))
        written += 1
    session.flush()
    return written


def read_audience_facts(
    session: Session,
    date_start: str,
    date_stop: str,
    account_id: Optional[str] = None,
) -> List[AudienceInsight]:
    query = select(AudienceInsight).where(
        AudienceInsight.date >= date_start,
        AudienceInsight.date <= date_stop,
    )
    if account_id:
        query = query.where(AudienceInsight.account_id == account_id)
    return list(session.exec(query).all())


def upsert_by_id(session: Session, model: Type[SQLModel], rows: Sequence[dict]) -> int:
    """Insert or overwrite structure rows keyed on their upstream id."""
    for data in rows:
        stored = session.get(model, data["id"])
        if stored is not None:
            for field, value in data.items():
                setattr(stored, field, value)
            session.add(stored)
        else:
            session.add(model(**data))
    session.flush()
    return len(rows)


def backfill_derived_metrics(
    session: Session, account_id: str, date_start: str, date_stop: str
) -> int:
    """Recompute rate fields that were stored unset or stale.

    Rates are a pure function of the stored counts, so running this any
    number of times leaves the same values behind. Returns how many rows
    changed.
    """
    changed = 0
    for row in read_facts(session, date_start, date_stop, account_id=account_id):
        link_clicks = row.link_clicks or 0
        purchase_roas = rates.resolve_purchase_roas(row.purchase_value, row.spend)
        expected = {
            "ctr": rates.compute_ctr(link_clicks, row.impressions),
            "cpc": rates.compute_cpc(row.spend, link_clicks),
            "cpm": rates.compute_cpm(row.spend, row.impressions),
            "purchase_cpa": rates.resolve_purchase_cpa(row.spend, row.purchases),
            "purchase_roas": purchase_roas,
            "roas": rates.resolve_legacy_roas(
                purchase_roas, row.conversion_values, row.spend
            ),
        }
        stale = {k: v for k, v in expected.items() if getattr(row, k) != v}
        if not stale:
            continue
        for field, value in stale.items():
            setattr(row, field, value)
        session.add(row)
        changed += 1

    if changed:
        session.flush()
        logger.info(
            f"Backfilled derived rates on {changed} rows",
            extra={"account_id": account_id, "count": changed},
        )
    return changed
