"""Tests for dimensional breakdown and ranking."""

import pytest

from adledger.analyzer.breakdown_engine import build_breakdown
from adledger.models.fact_models import AudienceInsight, DailyInsight


def _fact(ad_id, campaign_id, spend, impressions, **metrics) -> DailyInsight:
    return DailyInsight(
        account_id="1",
        campaign_id=campaign_id,
        ad_set_id=f"s-{campaign_id}",
        ad_id=ad_id,
        date="2026-03-01",
        spend=spend,
        impressions=impressions,
        **metrics,
    )


RECORDS = [
    _fact("a1", "c1", 50, 1000),
    _fact("a2", "c1", 30, 1000),
    _fact("a3", "c2", 80, 3000),
    _fact("a4", "c3", 40, 5000),
]


def test_rank_by_spend_with_shares():
    result = build_breakdown(RECORDS, "campaign", "2026-03-01", "2026-03-01")

    assert [r.key for r in result.rows] == ["c1", "c2", "c3"]
    assert [r.rank for r in result.rows] == [1, 2, 3]
    assert result.total_spend == 200
    # c1 and c2 tie on spend (80); the key breaks the tie
    assert result.rows[0].spend == result.rows[1].spend == 80
    assert result.rows[0].share_of_spend_pct == pytest.approx(40.0)
    assert result.rows[2].share_of_impressions_pct == pytest.approx(50.0)


def test_shares_use_total_before_limit():
    result = build_breakdown(RECORDS, "ad", "2026-03-01", "2026-03-01", limit=1)

    assert result.group_count == 4
    assert len(result.rows) == 1
    assert result.rows[0].key == "a3"
    assert result.rows[0].share_of_spend_pct == pytest.approx(40.0)


def test_rank_by_rate_metric_and_ascending():
    records = [
        _fact("a1", "c1", 10, 1000, link_clicks=10),
        _fact("a2", "c2", 10, 1000, link_clicks=30),
    ]
    desc = build_breakdown(records, "campaign", "d", "d", metric="ctr")
    asc = build_breakdown(records, "campaign", "d", "d", metric="ctr", ascending=True)

    assert [r.key for r in desc.rows] == ["c2", "c1"]
    assert [r.key for r in asc.rows] == ["c1", "c2"]
    assert desc.rows[0].metric_value == pytest.approx(3.0)


def test_undefined_metric_ranks_last():
    records = [
        _fact("a1", "c1", 10, 100),
        _fact("a2", "c2", 10, 100, purchases=2),
    ]
    result = build_breakdown(records, "campaign", "d", "d", metric="purchase_cpa", ascending=True)
    assert [r.key for r in result.rows] == ["c2", "c1"]
    assert result.rows[1].purchase_cpa is None


def test_names_attached():
    result = build_breakdown(RECORDS, "campaign", "d", "d", names={"c1": "Spring Sale"})
    assert result.rows[0].name == "Spring Sale"
    assert result.rows[1].name == ""


def test_audience_dimensions():
    rows = [
        AudienceInsight(account_id="1", date="d", age_range="18-24", gender="male", spend=10, impressions=100),
        AudienceInsight(account_id="1", date="d", age_range="18-24", gender="female", spend=30, impressions=100),
        AudienceInsight(account_id="1", date="d", age_range="25-34", gender="female", spend=20, impressions=200),
    ]
    by_age = build_breakdown(rows, "age", "d", "d")
    by_both = build_breakdown(rows, "age_gender", "d", "d")

    assert [(r.key, r.spend) for r in by_age.rows] == [("18-24", 40), ("25-34", 20)]
    assert by_both.rows[0].key == "18-24|female"


def test_empty_breakdown():
    result = build_breakdown([], "campaign", "2026-03-01", "2026-03-07")
    assert result.rows == []
    assert result.group_count == 0
    assert result.total_spend == 0


@pytest.mark.parametrize(
    "kwargs",
    [{"dimension": "country"}, {"dimension": "campaign", "metric": "bogus"}, {"dimension": "ad", "limit": 0}],
)
def test_bad_arguments(kwargs):
    with pytest.raises(ValueError):
        build_breakdown(RECORDS, date_start="d", date_end="d", **kwargs)
