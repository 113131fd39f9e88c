"""
Data Kiosk backed seller data jobs: economics metrics and buy box.

These jobs authenticate from the stored refresh token on their own rather than
through the run's access token, and report failures as {"success": False, ...}.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pandas as pd

from collection.clients.amazon_auth import resolve_access_token
from collection.clients.sp_api import SpApiClient
from collection.jobs.snapshots import save_snapshot
from core.config import SchedulerSettings

logger = logging.getLogger(__name__)

BUY_BOX_THRESHOLD = 50.0

ECONOMICS_QUERY = """
query {
  economics(
    startDate: "%(start)s"
    endDate: "%(end)s"
    aggregateBy: { date: RANGE productId: PARENT_ASIN }
    marketplaceIds: ["%(marketplace_id)s"]
  ) {
    parentAsin
    sales {
      orderedProductSales { amount currencyCode }
      netProductSales { amount currencyCode }
      unitsOrdered
      unitsRefunded
      netUnitsSold
    }
    fees {
      totalFees { amount currencyCode }
      fbaFulfillmentFee { amount currencyCode }
      fbaStorageFee { amount currencyCode }
      referralFee { amount currencyCode }
    }
    advertising { advertisingSpend { amount currencyCode } }
    netProceeds { amount currencyCode }
  }
}
""".strip()

BUY_BOX_QUERY = """
query {
  salesAndTrafficByAsin(
    aggregateBy: CHILD
    startDate: "%(start)s"
    endDate: "%(end)s"
    marketplaceIds: ["%(marketplace_id)s"]
  ) {
    parentAsin
    childAsin
    sku
    sales { unitsOrdered orderedProductSales { amount currencyCode } }
    traffic { pageViews sessions buyBoxPercentage }
  }
}
""".strip()

ECONOMICS_COLUMNS = {
    "sales.orderedProductSales.amount": "grossSales",
    "sales.netProductSales.amount": "netSales",
    "sales.unitsOrdered": "unitsOrdered",
    "sales.unitsRefunded": "unitsRefunded",
    "fees.totalFees.amount": "totalFees",
    "fees.fbaFulfillmentFee.amount": "fbaFees",
    "fees.fbaStorageFee.amount": "storageFees",
    "fees.referralFee.amount": "referralFees",
    "advertising.advertisingSpend.amount": "adSpend",
    "netProceeds.amount": "netProceeds",
}


def query_window():
    """Lookback window ending yesterday; Amazon data lags by a day"""
    settings = SchedulerSettings()
    end = datetime.now(timezone.utc).date() - timedelta(days=1)
    return (end - timedelta(days=settings.lookback_days)).isoformat(), end.isoformat()


async def _run_query(user_id: str, refresh_token: str, base_uri: str, query: str) -> List[Dict[str, Any]]:
    access_token = await resolve_access_token(user_id, refresh_token)
    if not access_token:
        raise PermissionError("Failed to generate access token from refresh token")

    async def refresh():
        token = await resolve_access_token(user_id, refresh_token)
        if not token:
            raise PermissionError("Failed to refresh access token")
        return token

    settings = SchedulerSettings()
    async with SpApiClient(base_uri, access_token, refresh_access_token=refresh,
                           poll_attempts=settings.report_poll_attempts,
                           poll_delay_seconds=settings.report_poll_delay_seconds) as client:
        return await client.run_data_kiosk_query(query)


def summarize_economics(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Account totals plus a per-parent-ASIN breakdown"""
    if not rows:
        return {"totals": {name: 0.0 for name in ECONOMICS_COLUMNS.values()}, "asinBreakdown": []}

    df = pd.json_normalize(rows)
    for source in ECONOMICS_COLUMNS:
        if source not in df.columns:
            df[source] = 0
    df = df.rename(columns=ECONOMICS_COLUMNS)
    metrics = list(ECONOMICS_COLUMNS.values())
    df[metrics] = df[metrics].apply(pd.to_numeric, errors="coerce").fillna(0)

    totals = {name: round(float(df[name].sum()), 2) for name in metrics}
    breakdown = df[["parentAsin"] + metrics].round(2).to_dict(orient="records") if "parentAsin" in df else []
    return {"totals": totals, "asinBreakdown": breakdown}


def summarize_buy_box(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.json_normalize(rows) if rows else pd.DataFrame()
    if "childAsin" not in df:
        return {"products": [], "averageBuyBoxPercentage": 0.0, "productsWithoutBuyBox": []}
    for source, name in (("traffic.buyBoxPercentage", "buyBoxPercentage"), ("traffic.pageViews", "pageViews")):
        values = df[source] if source in df.columns else 0
        df[name] = pd.to_numeric(values, errors="coerce")
    df[["buyBoxPercentage", "pageViews"]] = df[["buyBoxPercentage", "pageViews"]].fillna(0)
    df["pageViews"] = df["pageViews"].astype(int)
    products = df[["childAsin", "buyBoxPercentage", "pageViews"]].rename(columns={"childAsin": "asin"})
    low = products[products["buyBoxPercentage"] < BUY_BOX_THRESHOLD]
    return {
        "products": products.to_dict(orient="records"),
        "averageBuyBoxPercentage": round(float(products["buyBoxPercentage"].mean()), 2),
        "productsWithoutBuyBox": low["asin"].tolist(),
    }


async def fetch_economics_data(*, user_id: str, country: str, region: str, refresh_token: str,
                               base_uri: str, marketplace_ids: List[str], snapshots=None) -> Dict[str, Any]:
    """Economics metrics over the query window, stored as the mcpEconomicsData snapshot"""
    start, end = query_window()
    try:
        rows = await _run_query(user_id, refresh_token, base_uri, ECONOMICS_QUERY % {
            "start": start, "end": end, "marketplace_id": marketplace_ids[0],
        })
    except Exception as e:
        logger.error(f"Economics query failed: {e}", extra={"user_id": user_id, "data_key": "mcpEconomicsData"})
        return {"success": False, "error": str(e), "data": None}

    data = summarize_economics(rows)
    data["dateRange"] = {"startDate": start, "endDate": end}
    await save_snapshot(user_id, country, region, "mcpEconomicsData", data, snapshots)
    return {"success": True, "data": data, "error": None}


async def fetch_buy_box_data(*, user_id: str, country: str, region: str, refresh_token: str,
                             base_uri: str, marketplace_ids: List[str], snapshots=None) -> Dict[str, Any]:
    start, end = query_window()
    try:
        rows = await _run_query(user_id, refresh_token, base_uri, BUY_BOX_QUERY % {
            "start": start, "end": end, "marketplace_id": marketplace_ids[0],
        })
    except Exception as e:
        logger.error(f"Buy box query failed: {e}", extra={"user_id": user_id, "data_key": "mcpBuyBoxData"})
        return {"success": False, "error": str(e), "data": None}

    data = summarize_buy_box(rows)
    await save_snapshot(user_id, country, region, "mcpBuyBoxData", data, snapshots)
    return {"success": True, "data": data, "error": None}
