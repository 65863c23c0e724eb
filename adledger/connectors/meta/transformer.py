"""ADLEDGER — Meta Raw → Fact Record Transformer.

Converts one raw Meta insight row into a `DailyInsight` fact record with
derived rates, and batches of rows into a `BatchResult` that accounts for
every row it could not convert.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from adledger.connectors.meta.actions import (
    extract_action_value,
    find_action_value,
    normalize_actions,
    safe_float,
)
from adledger.core import rates
from adledger.core.logging import get_logger
from adledger.models.etl_models import BatchResult, DroppedRecord
from adledger.models.fact_models import AudienceInsight, DailyInsight

logger = get_logger("meta.transformer")

# Outcome labels. "purchase" already includes pixel purchases, so
# offsite_conversion.fb_pixel_purchase must not be added on top of it.
PURCHASE = "purchase"
LEAD = "lead"
REGISTRATION = "complete_registration"
ADD_TO_CART = "add_to_cart"
LINK_CLICK = "link_click"
VIDEO_VIEW = "video_view"

# Fact field → raw video field (each an action list keyed by video_view)
VIDEO_FIELDS = {
    "video_plays": "video_play_actions",
    "video_thruplay": "video_thruplay_watched_actions",
    "video_15s": "video_15_sec_watched_actions",
    "video_30s": "video_30_sec_watched_actions",
    "video_p25": "video_p25_watched_actions",
    "video_p50": "video_p50_watched_actions",
    "video_p75": "video_p75_watched_actions",
    "video_p95": "video_p95_watched_actions",
    "video_p100": "video_p100_watched_actions",
    "video_avg_time_watched": "video_avg_time_watched_actions",
}

LEVELS = ("ad", "campaign", "account")


class TransformationError(Exception):
    """Raised when a row lacks a field needed to place it in the fact store."""

    def __init__(self, field: str, row_key: str = ""):
        self.field = field
        self.row_key = row_key
        super().__init__(f"Missing required field '{field}' ({row_key or 'unknown row'})")


def normalize_account_id(account_id: Any) -> str:
    """Strip the act_ prefix Meta puts on account ids."""
    value = str(account_id or "").strip()
    if value.startswith("act_"):
        value = value[len("act_") :]
    return value


def synthetic_identifiers(
    level: str, account_id: str, campaign_id: str = ""
) -> Dict[str, str]:
    """Stand-in entity ids for rows coarser than ad level.

    Coarse rows still need a campaign, ad set and ad to hang off, so each
    level gets stable made-up ids that can never collide with real ones.
    """
    if level == "campaign":
        return {
            "campaign_id": campaign_id,
            "ad_set_id": f"campaign_agg_{campaign_id}",
            "ad_id": f"campaign_{campaign_id}",
        }
    if level == "account":
        return {
            "campaign_id": f"account_campaign_{account_id}",
            "ad_set_id": f"account_adset_{account_id}",
            "ad_id": f"account_{account_id}",
        }
    raise ValueError(f"No synthetic identifiers for level '{level}'")


def _row_key(row: Dict[str, Any]) -> str:
    entity = row.get("ad_id") or row.get("campaign_id") or row.get("account_id") or "?"
    return f"{entity}@{row.get('date_start') or '?'}"


def _resolve_identifiers(row: Dict[str, Any], level: str) -> Dict[str, str]:
    """Pull (or synthesize) the identifying fields for a row."""
    key = _row_key(row)
    date = str(row.get("date_start") or "").strip()
    if not date:
        raise TransformationError("date_start", key)
    account_id = normalize_account_id(row.get("account_id"))
    if not account_id:
        raise TransformationError("account_id", key)

    if level == "ad":
        ad_id = str(row.get("ad_id") or "").strip()
        if not ad_id:
            raise TransformationError("ad_id", key)
        ids = {
            "campaign_id": str(row.get("campaign_id") or ""),
            "ad_set_id": str(row.get("adset_id") or row.get("ad_set_id") or ""),
            "ad_id": ad_id,
        }
    elif level == "campaign":
        campaign_id = str(row.get("campaign_id") or "").strip()
        if not campaign_id:
            raise TransformationError("campaign_id", key)
        ids = synthetic_identifiers("campaign", account_id, campaign_id)
    elif level == "account":
        ids = synthetic_identifiers("account", account_id)
    else:
        raise ValueError(f"Unknown insight level '{level}'")

    return {"account_id": account_id, "date": date, **ids}


def _optional(value: float) -> Optional[float]:
    """Outcome fields: an observed 0 is stored as absent."""
    return None if value == 0 else value


def transform_insight(row: Dict[str, Any], level: str = "ad") -> DailyInsight:
    """Transform one raw Meta insight row into a DailyInsight.

    Missing optional fields become 0 or None; only a missing identifying
    field raises TransformationError.
    """
    ids = _resolve_identifiers(row, level)

    impressions = safe_float(row.get("impressions"))
    clicks = safe_float(row.get("clicks"))
    spend = safe_float(row.get("spend"))
    reach = safe_float(row.get("reach"))
    frequency = safe_float(row.get("frequency"))

    actions = normalize_actions(row.get("actions"))
    action_values = normalize_actions(row.get("action_values"))
    action_costs = normalize_actions(row.get("cost_per_action_type"))

    purchases = find_action_value(actions, PURCHASE)
    leads = find_action_value(actions, LEAD)
    registrations = find_action_value(actions, REGISTRATION)
    add_to_carts = find_action_value(actions, ADD_TO_CART)

    purchase_value = find_action_value(action_values, PURCHASE)
    lead_value = find_action_value(action_values, LEAD)
    registration_value = find_action_value(action_values, REGISTRATION)

    cost_per_purchase = find_action_value(action_costs, PURCHASE)

    link_clicks = find_action_value(actions, LINK_CLICK)
    if link_clicks == 0:
        link_clicks = safe_float(row.get("inline_link_clicks"))

    video_views = find_action_value(actions, VIDEO_VIEW)
    if video_views == 0:
        video_views = extract_action_value(row.get("video_views"), VIDEO_VIEW)
    video = {
        field: extract_action_value(row.get(raw_field), VIDEO_VIEW)
        for field, raw_field in VIDEO_FIELDS.items()
    }

    # ── Derived rates ──
    ctr = rates.compute_ctr(link_clicks, impressions)
    cpc = rates.compute_cpc(spend, link_clicks)
    cpm = rates.compute_cpm(spend, impressions)
    purchase_cpa = rates.resolve_purchase_cpa(spend, purchases)
    purchase_roas = rates.resolve_purchase_roas(purchase_value, spend)

    # Legacy blended totals, reporting only
    blended_conversions = purchases + leads + registrations + add_to_carts
    blended_value = purchase_value + lead_value + registration_value
    roas = rates.resolve_legacy_roas(purchase_roas, blended_value, spend)

    now = datetime.now(timezone.utc)
    record = DailyInsight(
        **ids,
        level=level,
        impressions=impressions,
        clicks=clicks,
        spend=spend,
        reach=reach,
        frequency=frequency,
        link_clicks=_optional(link_clicks),
        purchases=_optional(purchases),
        leads=_optional(leads),
        registrations=_optional(registrations),
        add_to_carts=_optional(add_to_carts),
        purchase_value=_optional(purchase_value),
        lead_value=_optional(lead_value),
        registration_value=_optional(registration_value),
        cost_per_purchase=_optional(cost_per_purchase),
        conversions=_optional(blended_conversions),
        conversion_values=_optional(blended_value),
        ctr=ctr,
        cpc=cpc,
        cpm=cpm,
        purchase_cpa=purchase_cpa,
        purchase_roas=purchase_roas,
        roas=roas,
        video_views=video_views,
        **video,
        created_at=now,
        updated_at=now,
    )

    logger.debug(
        "Transformed insight",
        extra={
            "entity_id": record.ad_id,
            "date": record.date,
            "level_name": level,
            "metrics": {
                "spend": spend,
                "link_clicks": link_clicks,
                "purchases": purchases,
                "ctr": ctr,
                "cpc": cpc,
                "cpm": cpm,
                "purchase_cpa": purchase_cpa,
                "purchase_roas": purchase_roas,
                "roas": roas,
                "video_views": video_views,
            },
        },
    )
    return record


def transform_batch(rows: List[Dict[str, Any]], level: str = "ad") -> BatchResult:
    """Transform many rows; a bad row is dropped and counted, never fatal."""
    result = BatchResult(input_count=len(rows))

    for row in rows:
        try:
            result.records.append(transform_insight(row, level))
        except TransformationError as e:
            logger.warning(
                f"Dropping row {e.row_key}: missing {e.field}",
                extra={"entity_id": str(row.get("ad_id") or ""), "level_name": level},
            )
            result.dropped.append(
                DroppedRecord(
                    ad_id=str(row.get("ad_id") or ""),
                    date=str(row.get("date_start") or ""),
                    stage="transform",
                    reason=str(e),
                )
            )
        except Exception as e:
            logger.exception(f"Unexpected failure transforming row {_row_key(row)}")
            result.dropped.append(
                DroppedRecord(
                    ad_id=str(row.get("ad_id") or ""),
                    date=str(row.get("date_start") or ""),
                    stage="transform",
                    reason=f"{type(e).__name__}: {e}",
                )
            )

    if result.dropped:
        logger.warning(
            f"{result.dropped_count} of {len(rows)} {level} rows failed to transform",
            extra={
                "count": result.dropped_count,
                "details": [d.reason for d in result.dropped[:5]],
            },
        )
    logger.info(
        f"Transformed {result.output_count}/{len(rows)} {level} rows",
        extra={"count": result.output_count, "level_name": level},
    )
    return result


def transform_audience(row: Dict[str, Any]) -> AudienceInsight:
    """Transform one age/gender breakdown row into an AudienceInsight."""
    date = str(row.get("date_start") or "").strip()
    account_id = normalize_account_id(row.get("account_id"))
    if not date:
        raise TransformationError("date_start", _row_key(row))
    if not account_id:
        raise TransformationError("account_id", _row_key(row))

    actions = normalize_actions(row.get("actions"))
    action_values = normalize_actions(row.get("action_values"))
    link_clicks = find_action_value(actions, LINK_CLICK) or safe_float(
        row.get("inline_link_clicks")
    )

    return AudienceInsight(
        account_id=account_id,
        date=date,
        age_range=str(row.get("age") or "unknown"),
        gender=str(row.get("gender") or "unknown"),
        impressions=safe_float(row.get("impressions")),
        clicks=safe_float(row.get("clicks")),
        link_clicks=link_clicks,
        spend=safe_float(row.get("spend")),
        reach=safe_float(row.get("reach")),
        purchases=find_action_value(actions, PURCHASE),
        purchase_value=find_action_value(action_values, PURCHASE),
    )
