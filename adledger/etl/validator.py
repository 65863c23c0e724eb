"""ADLEDGER — Fact Record Validator.

Hard checks decide whether a record is persisted at all. Quality checks
only ever produce warnings: a flagged record is still stored and still
counted in aggregates.
"""

import math
import re
from datetime import datetime
from typing import Collection, List, Optional

from adledger.config import settings
from adledger.core.logging import get_logger
from adledger.core.metric_registry import NUMERIC_FIELDS
from adledger.models.etl_models import (
    BatchResult,
    DroppedRecord,
    QualityWarning,
    ValidationResult,
)
from adledger.models.fact_models import DailyInsight

logger = get_logger("etl.validator")

REQUIRED_FIELDS = ("date", "account_id", "campaign_id", "ad_set_id", "ad_id")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Quartile counters, each a subset of the one before it
VIDEO_FUNNEL = ("video_p25", "video_p50", "video_p75", "video_p95", "video_p100")


def _hard_errors(record: DailyInsight) -> List[str]:
    errors: List[str] = []

    for field in REQUIRED_FIELDS:
        value = getattr(record, field, None)
        if value is None or not str(value).strip():
            errors.append(f"missing required field '{field}'")

    for field in NUMERIC_FIELDS:
        value = getattr(record, field, None)
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            errors.append(f"field '{field}' is NaN")
        elif value < 0:
            errors.append(f"field '{field}' is negative ({value})")

    date = record.date or ""
    if not DATE_PATTERN.match(date):
        errors.append(f"invalid date format '{date}'")
    else:
        try:
            datetime.strptime(date, "%Y-%m-%d")
        except ValueError:
            errors.append(f"invalid calendar date '{date}'")

    return errors


def check_quality(
    record: DailyInsight,
    expects_video: bool = False,
    missing_video_threshold: Optional[float] = None,
    divergence_tolerance: Optional[float] = None,
) -> List[QualityWarning]:
    """Soft checks on video metrics. Never blocks the record."""
    if missing_video_threshold is None:
        missing_video_threshold = settings.video_missing_impressions_threshold
    if divergence_tolerance is None:
        divergence_tolerance = settings.video_divergence_tolerance

    warnings: List[QualityWarning] = []

    def warn(code: str, message: str, **details) -> None:
        warnings.append(
            QualityWarning(
                code=code,
                message=message,
                ad_id=record.ad_id,
                date=record.date,
                details=details,
            )
        )

    impressions = record.impressions or 0
    plays = record.video_plays or 0
    views = record.video_views or 0
    thruplay = record.video_thruplay or 0
    video_15s = record.video_15s or 0

    if views > impressions:
        warn(
            "video_views_exceed_impressions",
            "Video views exceed impressions",
            impressions=impressions,
            video_views=views,
        )

    if plays > 0 and views > plays:
        warn(
            "video_views_exceed_plays",
            "3-second views exceed total video plays",
            video_plays=plays,
            video_views=views,
        )

    if views > 0 and thruplay > views:
        warn(
            "thruplay_exceeds_video_views",
            "ThruPlays exceed video views",
            video_views=views,
            video_thruplay=thruplay,
        )

    for coarse, fine in zip(VIDEO_FUNNEL, VIDEO_FUNNEL[1:]):
        coarse_value = getattr(record, coarse) or 0
        fine_value = getattr(record, fine) or 0
        if coarse_value > 0 and fine_value > coarse_value:
            warn(
                "video_funnel_inverted",
                f"{fine} exceeds {coarse}",
                **{coarse: coarse_value, fine: fine_value},
            )

    # ThruPlay and 15-second views come from different fields but should agree
    if thruplay > 0 and video_15s > 0:
        divergence = abs(thruplay - video_15s) / max(thruplay, video_15s)
        if divergence > divergence_tolerance:
            warn(
                "thruplay_15s_divergence",
                "ThruPlay and 15-second views diverge; check upstream fields",
                video_thruplay=thruplay,
                video_15s=video_15s,
                divergence=divergence,
            )

    if expects_video and impressions > missing_video_threshold and views == 0 and thruplay == 0:
        warn(
            "missing_video_metrics",
            "No video metrics despite significant impressions",
            impressions=impressions,
        )

    for w in warnings:
        logger.warning(
            w.message,
            extra={"code": w.code, "entity_id": w.ad_id, "date": w.date, "details": w.details},
        )
    return warnings


def validate_record(record: DailyInsight, expects_video: bool = False) -> ValidationResult:
    """Run hard checks and, independently, quality checks on one record."""
    errors = _hard_errors(record)
    warnings = check_quality(record, expects_video=expects_video)
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def filter_valid(
    batch: BatchResult, video_ad_ids: Optional[Collection[str]] = None
) -> BatchResult:
    """Drop records failing hard checks; keep flagged ones, collecting warnings."""
    video_ad_ids = video_ad_ids or ()
    result = BatchResult(
        input_count=batch.input_count,
        dropped=list(batch.dropped),
        warnings=list(batch.warnings),
    )

    for record in batch.records:
        outcome = validate_record(record, expects_video=record.ad_id in video_ad_ids)
        result.warnings.extend(outcome.warnings)
        if outcome.valid:
            result.records.append(record)
            continue
        logger.warning(
            f"Dropping invalid record {record.ad_id}@{record.date}",
            extra={"entity_id": record.ad_id, "date": record.date, "details": outcome.errors},
        )
        result.dropped.append(
            DroppedRecord(
                ad_id=record.ad_id or "",
                date=record.date or "",
                stage="validate",
                reason="; ".join(outcome.errors),
            )
        )

    filtered = len(batch.records) - len(result.records)
    if filtered:
        logger.warning(
            f"{filtered} of {len(batch.records)} records filtered out by validation",
            extra={"count": filtered},
        )
    return result
