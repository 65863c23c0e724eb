"""Tests for fact store upsert, delete, read and backfill."""

from sqlmodel import select

from adledger.connectors.meta.transformer import transform_insight
from adledger.etl import fact_store
from adledger.models.fact_models import AudienceInsight, DailyInsight
from adledger.models.structure_models import Campaign


def _all(session):
    return session.exec(select(DailyInsight)).all()


def test_upsert_same_record_twice_is_idempotent(session, raw_row):
    """Transform + upsert twice leaves one identical row."""
    fact_store.upsert_facts(session, [transform_insight(raw_row)])
    session.commit()
    first = _all(session)[0].model_dump(exclude={"id", "created_at", "updated_at"})

    fact_store.upsert_facts(session, [transform_insight(raw_row)])
    session.commit()
    rows = _all(session)

    assert len(rows) == 1
    assert rows[0].model_dump(exclude={"id", "created_at", "updated_at"}) == first


def test_last_write_wins_across_calls(session, raw_row):
    older = transform_insight(raw_row)
    newer = transform_insight(dict(raw_row, spend="150"))

    fact_store.upsert_facts(session, [older])
    fact_store.upsert_facts(session, [newer])
    session.commit()

    rows = _all(session)
    assert len(rows) == 1
    assert rows[0].spend == 150


def test_last_write_wins_within_batch(session, raw_row):
    """Either order: the record applied last is the one stored."""
    a = transform_insight(raw_row)
    b = transform_insight(dict(raw_row, spend="150"))

    fact_store.upsert_facts(session, [b, a])
    session.commit()
    assert _all(session)[0].spend == 100

    fact_store.upsert_facts(session, [a, b])
    session.commit()
    rows = _all(session)
    assert len(rows) == 1
    assert rows[0].spend == 150


def test_upsert_in_chunks(session, raw_row):
    records = [transform_insight(dict(raw_row, ad_id=f"a{i}")) for i in range(7)]
    assert fact_store.upsert_facts(session, records, batch_size=3) == 7
    session.commit()
    assert len(_all(session)) == 7


def test_delete_other_levels_keeps_requested_level(session, raw_row):
    account_row = transform_insight(
        {"account_id": "123", "date_start": "2026-03-01", "spend": "10"}, level="account"
    )
    campaign_row = transform_insight(
        {"account_id": "123", "campaign_id": "c1", "date_start": "2026-03-02", "spend": "10"},
        level="campaign",
    )
    outside = transform_insight(
        {"account_id": "123", "date_start": "2026-02-01", "spend": "10"}, level="account"
    )
    fact_store.upsert_facts(
        session, [transform_insight(raw_row), account_row, campaign_row, outside]
    )
    session.commit()

    deleted = fact_store.delete_other_levels(session, "123", "2026-03-01", "2026-03-03", "ad")
    session.commit()

    assert deleted == 2
    remaining = {r.ad_id + "@" + r.date for r in _all(session)}
    assert remaining == {"a1@2026-03-01", "account_123@2026-02-01"}


def test_delete_other_levels_can_drop_ad_rows(session, raw_row):
    fact_store.upsert_facts(session, [transform_insight(raw_row)])
    session.commit()

    assert fact_store.delete_other_levels(session, "123", "2026-03-01", "2026-03-01", "account") == 1
    session.commit()
    assert _all(session) == []


def test_read_facts_filters(session, raw_row):
    fact_store.upsert_facts(
        session,
        [
            transform_insight(raw_row),
            transform_insight(dict(raw_row, ad_id="a2", campaign_id="c2")),
            transform_insight(dict(raw_row, ad_id="a3", date_start="2026-03-05")),
        ],
    )
    session.commit()

    assert len(fact_store.read_facts(session, "2026-03-01", "2026-03-01")) == 2
    assert [r.ad_id for r in fact_store.read_facts(session, "2026-03-01", "2026-03-31", campaign_id="c2")] == ["a2"]
    assert fact_store.read_facts(session, "2026-04-01", "2026-04-30") == []


def test_backfill_fills_unset_rates(session, raw_row):
    record = transform_insight(raw_row)
    record.ctr = 0
    record.purchase_cpa = None
    fact_store.upsert_facts(session, [record])
    session.commit()

    assert fact_store.backfill_derived_metrics(session, "123", "2026-03-01", "2026-03-01") == 1
    session.commit()
    stored = _all(session)[0]
    assert stored.ctr == 45 / 1000 * 100
    assert stored.purchase_cpa == 20

    # Second pass finds nothing left to do
    assert fact_store.backfill_derived_metrics(session, "123", "2026-03-01", "2026-03-01") == 0


def test_upsert_by_id_overwrites(session):
    fact_store.upsert_by_id(session, Campaign, [{"id": "c1", "account_id": "1", "name": "Old"}])
    fact_store.upsert_by_id(session, Campaign, [{"id": "c1", "account_id": "1", "name": "New"}])
    session.commit()
    assert session.get(Campaign, "c1").name == "New"


def test_audience_upsert_keyed_on_segment(session):
    row = AudienceInsight(account_id="1", date="2026-03-01", age_range="18-24", gender="male", spend=5)
    fact_store.upsert_audience_facts(session, [row])
    fact_store.upsert_audience_facts(
        session,
        [AudienceInsight(account_id="1", date="2026-03-01", age_range="18-24", gender="male", spend=8)],
    )
    session.commit()
    rows = session.exec(select(AudienceInsight)).all()
    assert len(rows) == 1
    assert rows[0].spend == 8
