"""ADLEDGER — Derived Rate Formulas.

One place for every rate the system derives, used by the transformer,
the backfill pass and the aggregation engines alike.

CTR and CPC are computed against link clicks, matching how the upstream
platform reports them. Purchase CPA and purchase ROAS only ever use the
purchase outcome. The legacy ROAS is a fallback chain: purchase ROAS when
it exists, otherwise blended conversion value over spend. It is never a
sum of the two.
"""

from typing import Optional


def compute_ctr(link_clicks: float, impressions: float) -> float:
    """Link-click CTR in percent; 0 when either side is zero."""
    if link_clicks > 0 and impressions > 0:
        return link_clicks / impressions * 100
    return 0.0


def compute_cpc(spend: float, link_clicks: float) -> float:
    """Cost per link click; 0 without link clicks."""
    if link_clicks > 0:
        return spend / link_clicks
    return 0.0


def compute_cpm(spend: float, impressions: float) -> float:
    """Cost per thousand impressions; 0 without impressions."""
    if impressions > 0:
        return spend / impressions * 1000
    return 0.0


def resolve_purchase_cpa(spend: float, purchases: Optional[float]) -> Optional[float]:
    """Spend per purchase, or None when there were no purchases.

    None means "no CPA exists", which is not the same thing as a CPA of 0.
    """
    if purchases and purchases > 0:
        return spend / purchases
    return None


def resolve_purchase_roas(
    purchase_value: Optional[float], spend: float
) -> Optional[float]:
    """Purchase value over spend, or None when either side is zero."""
    if purchase_value and purchase_value > 0 and spend > 0:
        return purchase_value / spend
    return None


def resolve_legacy_roas(
    purchase_roas: Optional[float],
    blended_value: Optional[float],
    spend: float,
) -> float:
    """Legacy blended ROAS.

    Purchase ROAS wins whenever it is defined. Only without it does the
    blended conversion value stand in. Adding the two together counts the
    purchase value twice.
    """
    if purchase_roas is not None:
        return purchase_roas
    if blended_value and blended_value > 0 and spend > 0:
        return blended_value / spend
    return 0.0
