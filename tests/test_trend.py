"""Tests for period-over-period trend classification."""

import pytest

from adledger.analyzer.trend_engine import classify, compare_periods, previous_period
from adledger.models.analysis_models import PeriodSummary


def _summary(start, end, **totals) -> PeriodSummary:
    return PeriodSummary(date_start=start, date_end=end, record_count=1, **totals)


def _compare(current_spend, previous_spend, **kwargs):
    return compare_periods(
        _summary("2026-03-08", "2026-03-14", spend=current_spend),
        _summary("2026-03-01", "2026-03-07", spend=previous_spend),
        **kwargs,
    )


def test_exactly_five_percent_is_up():
    assert _compare(105.0, 100.0).trend_direction == "up"


def test_exactly_five_percent_drop_is_down():
    assert _compare(95.0, 100.0).trend_direction == "down"


def test_just_under_threshold_is_stable():
    result = _compare(104.99, 100.0)
    assert result.trend_direction == "stable"
    assert result.primary_change.change_pct == pytest.approx(4.99)


def test_change_values():
    change = _compare(150.0, 100.0).primary_change
    assert change.change == 50
    assert change.change_pct == pytest.approx(50.0)
    assert change.signal == "alert"


def test_primary_metric_is_selectable():
    result = compare_periods(
        _summary("2026-03-08", "2026-03-14", spend=100, ctr=2.0),
        _summary("2026-03-01", "2026-03-07", spend=100, ctr=1.0),
        primary_metric="ctr",
    )
    assert result.primary_metric == "ctr"
    assert result.trend_direction == "up"
    assert result.primary_change.signal == "improving"


def test_zero_baseline_is_insufficient_data():
    result = compare_periods(
        _summary("2026-03-08", "2026-03-14", spend=100),
        PeriodSummary(date_start="2026-03-01", date_end="2026-03-07"),
    )
    assert result.trend_direction == "stable"
    assert result.primary_change.signal == "insufficient_data"
    assert result.primary_change.previous_period_available is False


def test_unequal_periods_rejected():
    with pytest.raises(ValueError):
        compare_periods(
            _summary("2026-03-08", "2026-03-14"),
            _summary("2026-03-01", "2026-03-03"),
        )


def test_unknown_metric_rejected():
    with pytest.raises(ValueError):
        _compare(1, 1, primary_metric="nope")


def test_custom_threshold():
    assert _compare(103.0, 100.0, threshold_pct=2.0).trend_direction == "up"


def test_previous_period():
    assert previous_period("2026-03-08", "2026-03-14") == ("2026-03-01", "2026-03-07")
    assert previous_period("2026-03-01", "2026-03-01") == ("2026-02-28", "2026-02-28")


def test_classify_boundary():
    assert classify(5.0, 5.0) == "up"
    assert classify(-5.0, 5.0) == "down"
    assert classify(4.99, 5.0) == "stable"


def test_classify_absorbs_only_float_error():
    """A computed 5% change counts; a genuinely smaller one does not."""
    assert classify((105.0 - 100.0) / 100.0 * 100, 5.0) == "up"
    assert classify(4.999999999999999, 5.0) == "up"
    assert classify(4.99995, 5.0) == "stable"
    assert classify(-4.99995, 5.0) == "stable"
