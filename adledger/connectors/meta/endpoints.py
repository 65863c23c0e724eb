"""ADLEDGER — Meta API Endpoints.

Fetch functions for each Meta Marketing API resource the sync needs.
Each returns raw JSON data and records it in the raw audit table.
"""

import json
from typing import Any, Dict, List

from sqlmodel import Session

from adledger.config import settings
from adledger.connectors.meta.client import META_BASE, MetaClient
from adledger.connectors.meta.transformer import VIDEO_FIELDS, normalize_account_id
from adledger.core.logging import get_logger
from adledger.models.raw_models import RawMetaData

logger = get_logger("meta.endpoints")

# Fields requested for every insight level
INSIGHT_FIELDS = ",".join(
    [
        "account_id,campaign_id,campaign_name,adset_id,adset_name,ad_id,ad_name",
        "impressions,reach,clicks,inline_link_clicks,spend,frequency",
        "actions,action_values,cost_per_action_type",
        *sorted(set(VIDEO_FIELDS.values())),
    ]
)

AUDIENCE_FIELDS = "account_id,impressions,clicks,inline_link_clicks,spend,reach,actions,action_values"

ACCOUNT_FIELDS = "name,account_id,account_status,currency,timezone_name"
CAMPAIGN_FIELDS = "id,name,status,objective,daily_budget,lifetime_budget"
ADSET_FIELDS = "id,name,campaign_id,status,daily_budget,lifetime_budget,optimization_goal"
AD_FIELDS = "id,name,adset_id,campaign_id,status,creative{object_type}"

# Upstream level name for each fact-record granularity
INSIGHT_LEVELS = {"ad": "ad", "campaign": "campaign", "account": "account"}


class MetaEndpoints:
    """Fetch raw data from Meta and store it in the audit table."""

    def __init__(self, client: MetaClient, session: Session):
        self.client = client
        self.session = session
        self.ad_account_id = client.ad_account_id
        self.account_id = normalize_account_id(client.ad_account_id)

    def _store_raw(
        self,
        endpoint: str,
        level: str,
        date_start: str,
        date_stop: str,
        payload: Any,
    ) -> RawMetaData:
        """Persist raw response to the immutable store."""
        raw = RawMetaData(
            account_id=self.account_id,
            endpoint=endpoint,
            level=level,
            date_start=date_start,
            date_stop=date_stop,
            payload_json=(
                json.dumps(payload) if not isinstance(payload, str) else payload
            ),
        )
        self.session.add(raw)
        return raw

    # ── Account ──

    async def fetch_account_info(self) -> Dict[str, Any]:
        """Fetch ad account display attributes."""
        url = f"{META_BASE}/{self.ad_account_id}"
        data = await self.client._request("GET", url, {"fields": ACCOUNT_FIELDS})
        self._store_raw("account", "structure", "", "", data)
        return data

    # ── Structure Endpoints (Campaigns, Adsets, Ads) ──

    async def fetch_campaigns(self) -> List[Dict[str, Any]]:
        """Fetch campaign structure."""
        url = f"{META_BASE}/{self.ad_account_id}/campaigns"
        params = {"fields": CAMPAIGN_FIELDS, "limit": settings.insight_page_limit}
        data = await self.client._paginated_get(url, params)
        self._store_raw("campaigns", "structure", "", "", data)
        return data

    async def fetch_adsets(self) -> List[Dict[str, Any]]:
        """Fetch ad set structure."""
        url = f"{META_BASE}/{self.ad_account_id}/adsets"
        params = {"fields": ADSET_FIELDS, "limit": settings.insight_page_limit}
        data = await self.client._paginated_get(url, params)
        self._store_raw("adsets", "structure", "", "", data)
        return data

    async def fetch_ads(self) -> List[Dict[str, Any]]:
        """Fetch ad structure, including the creative's object type."""
        url = f"{META_BASE}/{self.ad_account_id}/ads"
        params = {"fields": AD_FIELDS, "limit": settings.insight_page_limit}
        data = await self.client._paginated_get(url, params)
        self._store_raw("ads", "structure", "", "", data)
        return data

    # ── Insights ──

    async def fetch_insights(
        self,
        level: str,
        date_start: str,
        date_stop: str,
        time_increment: str = "1",
    ) -> List[Dict[str, Any]]:
        """Fetch daily insights at one level (ad | campaign | account)."""
        if level not in INSIGHT_LEVELS:
            raise ValueError(f"Unknown insight level '{level}'")
        url = f"{META_BASE}/{self.ad_account_id}/insights"
        params = {
            "fields": INSIGHT_FIELDS,
            "time_range": json.dumps({"since": date_start, "until": date_stop}),
            "time_increment": time_increment,
            "level": INSIGHT_LEVELS[level],
            "limit": settings.insight_page_limit,
        }
        data = await self.client._paginated_get(url, params)
        self._store_raw(f"{level}/insights", level, date_start, date_stop, data)
        logger.info(
            f"Fetched {len(data)} {level} insight records",
            extra={"account_id": self.account_id, "count": len(data)},
        )
        return data

    async def fetch_audience_insights(
        self, date_start: str, date_stop: str
    ) -> List[Dict[str, Any]]:
        """Fetch account-level daily insights broken down by age and gender."""
        url = f"{META_BASE}/{self.ad_account_id}/insights"
        params = {
            "fields": AUDIENCE_FIELDS,
            "time_range": json.dumps({"since": date_start, "until": date_stop}),
            "time_increment": "1",
            "level": "account",
            "breakdowns": "age,gender",
            "limit": settings.insight_page_limit,
        }
        data = await self.client._paginated_get(url, params)
        self._store_raw("audience/insights", "account", date_start, date_stop, data)
        logger.info(
            f"Fetched {len(data)} audience insight records",
            extra={"account_id": self.account_id, "count": len(data)},
        )
        return data
