"""Tests for the Meta insight transformer."""

import math

import pytest

from adledger.connectors.meta.transformer import (
    TransformationError,
    synthetic_identifiers,
    transform_audience,
    transform_batch,
    transform_insight,
)


def test_reference_row(raw_row):
    """Rates, outcomes and identity come out of the reference row exactly."""
    record = transform_insight(raw_row)

    assert record.account_id == "123"
    assert (record.campaign_id, record.ad_set_id, record.ad_id) == ("c1", "s1", "a1")
    assert record.date == "2026-03-01"
    assert record.level == "ad"
    assert record.ctr == pytest.approx(4.5)
    assert record.cpc == pytest.approx(2.2222, abs=1e-4)
    assert record.cpm == pytest.approx(100.0)
    assert record.purchases == 5
    assert record.purchase_value == 250
    assert record.purchase_cpa == pytest.approx(20.0)
    assert record.purchase_roas == pytest.approx(2.5)
    assert record.roas == pytest.approx(2.5)


def test_rates_are_not_rounded(raw_row):
    record = transform_insight(raw_row)
    assert record.cpc == 100 / 45


def test_missing_optional_fields_become_zero_or_none():
    """Only identity is required; everything else defaults safely."""
    record = transform_insight({"account_id": "1", "ad_id": "a", "date_start": "2026-03-01"})

    for field in ("impressions", "clicks", "spend", "ctr", "cpc", "cpm", "roas", "video_views"):
        value = getattr(record, field)
        assert value == 0
        assert not math.isnan(value)
    for field in ("purchases", "purchase_value", "purchase_cpa", "purchase_roas", "link_clicks"):
        assert getattr(record, field) is None


def test_zero_impressions_zero_ctr_and_cpm(raw_row):
    raw_row["impressions"] = "0"
    record = transform_insight(raw_row)
    assert record.ctr == 0
    assert record.cpm == 0


def test_ctr_and_cpc_use_link_clicks_only(raw_row):
    """Total clicks never stand in for link clicks."""
    raw_row["actions"] = [{"action_type": "purchase", "value": "5"}]
    record = transform_insight(raw_row)
    assert record.clicks == 50
    assert record.ctr == 0
    assert record.cpc == 0


def test_inline_link_clicks_fallback(raw_row):
    raw_row["actions"] = []
    raw_row["inline_link_clicks"] = "20"
    record = transform_insight(raw_row)
    assert record.link_clicks == 20
    assert record.cpc == pytest.approx(5.0)


def test_no_purchases_leaves_cpa_and_purchase_roas_undefined(raw_row):
    raw_row["actions"] = [{"action_type": "lead", "value": "4"}]
    raw_row["action_values"] = [{"action_type": "lead", "value": "40"}]
    record = transform_insight(raw_row)

    assert record.purchase_cpa is None
    assert record.purchase_roas is None
    # Legacy ROAS falls back to blended value only without purchase ROAS
    assert record.roas == pytest.approx(0.4)
    assert record.leads == 4


def test_legacy_roas_is_never_a_sum(raw_row):
    raw_row["action_values"] = [
        {"action_type": "purchase", "value": "250"},
        {"action_type": "lead", "value": "100"},
    ]
    record = transform_insight(raw_row)
    assert record.purchase_roas == pytest.approx(2.5)
    assert record.roas == pytest.approx(2.5)
    assert record.conversion_values == 350


def test_pixel_purchase_not_double_counted(raw_row):
    raw_row["actions"].append({"action_type": "offsite_conversion.fb_pixel_purchase", "value": "5"})
    record = transform_insight(raw_row)
    assert record.purchases == 5


def test_scalar_actions_field_counts_no_outcomes(raw_row):
    """A bare number in `actions` cannot say which outcome it counts."""
    raw_row["actions"] = "5"
    raw_row["action_values"] = "250"
    record = transform_insight(raw_row)

    assert record.purchases is None
    assert record.leads is None
    assert record.registrations is None
    assert record.add_to_carts is None
    assert record.link_clicks is None
    assert record.video_views == 0
    assert record.conversions is None
    assert record.purchase_value is None
    assert record.ctr == 0
    assert record.purchase_cpa is None


def test_video_encodings(raw_row):
    """Video counters accept list, object and scalar encodings."""
    raw_row["video_play_actions"] = [{"action_type": "video_view", "value": "300"}]
    raw_row["video_thruplay_watched_actions"] = {"action_type": "video_view", "value": "90"}
    raw_row["video_p25_watched_actions"] = "120"
    raw_row["video_views"] = "200"
    record = transform_insight(raw_row)

    assert record.video_plays == 300
    assert record.video_thruplay == 90
    assert record.video_p25 == 120
    assert record.video_views == 200
    assert record.video_p100 == 0


@pytest.mark.parametrize("field", ["ad_id", "date_start", "account_id"])
def test_missing_identity_raises(raw_row, field):
    del raw_row[field]
    with pytest.raises(TransformationError) as exc:
        transform_insight(raw_row)
    assert exc.value.field == field


def test_campaign_level_synthetic_ids(raw_row):
    del raw_row["ad_id"]
    record = transform_insight(raw_row, level="campaign")
    assert record.ad_id == "campaign_c1"
    assert record.ad_set_id == "campaign_agg_c1"
    assert record.campaign_id == "c1"
    assert record.level == "campaign"


def test_account_level_synthetic_ids():
    assert synthetic_identifiers("account", "123") == {
        "campaign_id": "account_campaign_123",
        "ad_set_id": "account_adset_123",
        "ad_id": "account_123",
    }
    record = transform_insight(
        {"account_id": "act_123", "date_start": "2026-03-01", "spend": "10"}, level="account"
    )
    assert record.ad_id == "account_123"
    assert record.level == "account"


def test_batch_continues_past_bad_rows(raw_row):
    """Bad rows are dropped and counted, the rest still convert."""
    bad = dict(raw_row)
    del bad["ad_id"]
    result = transform_batch([raw_row, bad, dict(raw_row, ad_id="a2")])

    assert result.input_count == 3
    assert result.output_count == 2
    assert result.dropped_count == 1
    assert result.dropped[0].stage == "transform"
    assert "ad_id" in result.dropped[0].reason


def test_audience_row():
    record = transform_audience(
        {
            "account_id": "act_9",
            "date_start": "2026-03-01",
            "age": "25-34",
            "gender": "female",
            "impressions": "500",
            "spend": "12.5",
            "inline_link_clicks": "10",
            "actions": [{"action_type": "purchase", "value": "2"}],
        }
    )
    assert record.account_id == "9"
    assert (record.age_range, record.gender) == ("25-34", "female")
    assert record.link_clicks == 10
    assert record.purchases == 2
