"""SP-API data source jobs: seller performance, inventory reports, shipments, catalog and reviews"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from collection.clients.sp_api import SpApiClient
from collection.jobs.snapshots import persist_snapshot, save_snapshot
from core.config import SchedulerSettings
from service.run_context import ProductData

logger = logging.getLogger(__name__)

CATALOG_BATCH_SIZE = 20
REVIEW_ASIN_LIMIT = 50
SHIPMENT_STATUSES = "WORKING,SHIPPED,RECEIVING,CLOSED,CANCELLED,DELETED,IN_TRANSIT,DELIVERED,CHECKED_IN"
ITEM_DETAIL_STATUSES = ("RECEIVING", "CLOSED")


def _client(base_uri: str, access_token: str, refresh_access_token=None, **extra) -> SpApiClient:
    settings = SchedulerSettings()
    return SpApiClient(
        base_uri,
        access_token,
        refresh_access_token=refresh_access_token,
        poll_attempts=settings.report_poll_attempts,
        poll_delay_seconds=settings.report_poll_delay_seconds,
        **extra,
    )


def _lookback_window():
    settings = SchedulerSettings()
    end = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return end - timedelta(days=settings.lookback_days), end


def sp_api_report_job(data_key: str, report_type: str, with_date_range: bool = False):
    """Build a job that requests one SP-API report, waits for it and returns its rows"""

    @persist_snapshot(data_key)
    async def job(*, user_id: str, country: str, region: str, access_token: str, base_uri: str,
                  marketplace_ids: List[str], refresh_access_token=None):
        start, end = _lookback_window() if with_date_range else (None, None)
        async with _client(base_uri, access_token, refresh_access_token) as client:
            rows = await client.fetch_report(report_type, marketplace_ids, start, end)
        logger.info(f"Fetched {report_type}", extra={"user_id": user_id, "data_key": data_key})
        return rows

    job.__name__ = f"fetch_{data_key}"
    job.__qualname__ = job.__name__
    return job


fetch_v2_seller_performance = sp_api_report_job("v2data", "GET_V2_SELLER_PERFORMANCE_REPORT")
fetch_v1_seller_performance = sp_api_report_job("v1data", "GET_V1_SELLER_PERFORMANCE_REPORT")
fetch_restock_inventory = sp_api_report_job("RestockinventoryData", "GET_RESTOCK_INVENTORY_RECOMMENDATIONS_REPORT")
fetch_fba_inventory_planning = sp_api_report_job("fbaInventoryPlanningData", "GET_FBA_INVENTORY_PLANNING_DATA")
fetch_stranded_inventory = sp_api_report_job("strandedInventoryData", "GET_STRANDED_INVENTORY_UI_DATA")
fetch_inbound_non_compliance = sp_api_report_job(
    "inboundNonComplianceData", "GET_FBA_FULFILLMENT_INBOUND_NONCOMPLIANCE_DATA", with_date_range=True
)


@persist_snapshot("shipment")
async def fetch_shipments(*, user_id: str, country: str, region: str, access_token: str, base_uri: str,
                          marketplace_ids: List[str], cloud_credentials, aws_region: str,
                          seller_id: Optional[str] = None, refresh_access_token=None):
    """FBA inbound shipments updated within the lookback window"""
    start, end = _lookback_window()
    params: Dict[str, Any] = {
        "MarketplaceId": marketplace_ids[0],
        "QueryType": "DATE_RANGE",
        "ShipmentStatusList": SHIPMENT_STATUSES,
        "LastUpdatedAfter": start.isoformat(),
        "LastUpdatedBefore": end.isoformat(),
    }
    shipments: List[Dict[str, Any]] = []

    async with _client(base_uri, access_token, refresh_access_token,
                       cloud_credentials=cloud_credentials, aws_region=aws_region) as client:
        while True:
            response = await client.get("/fba/inbound/v0/shipments", params=params)
            payload = response.get("payload", {})
            shipments.extend(payload.get("ShipmentData", []))
            next_token = payload.get("NextToken")
            if not next_token:
                break
            params = {"MarketplaceId": marketplace_ids[0], "QueryType": "NEXT_TOKEN", "NextToken": next_token}

        # Item quantities feed the shipment discrepancy calculation
        for shipment in shipments:
            if shipment.get("ShipmentStatus") not in ITEM_DETAIL_STATUSES:
                continue
            response = await client.get(
                f"/fba/inbound/v0/shipments/{shipment['ShipmentId']}/items",
                params={"MarketplaceId": marketplace_ids[0]},
            )
            shipment["itemDetails"] = response.get("payload", {}).get("ItemData", [])

    logger.info(f"Fetched {len(shipments)} inbound shipments", extra={"user_id": user_id, "data_key": "shipment"})
    return {"sellerId": seller_id, "shipments": shipments}


@persist_snapshot("brandData")
async def fetch_brand_data(*, user_id: str, country: str, region: str, access_token: str, base_uri: str,
                           marketplace_ids: List[str], asins: List[str], cloud_credentials=None,
                           aws_region: Optional[str] = None, seller_id: Optional[str] = None,
                           refresh_access_token=None):
    """Brand names for the seller's active ASINs from the Catalog Items API"""
    brands: Dict[str, Optional[str]] = {}

    async with _client(base_uri, access_token, refresh_access_token,
                       cloud_credentials=cloud_credentials, aws_region=aws_region) as client:
        for i in range(0, len(asins), CATALOG_BATCH_SIZE):
            chunk = asins[i:i + CATALOG_BATCH_SIZE]
            response = await client.get("/catalog/2022-04-01/items", params={
                "identifiers": ",".join(chunk),
                "identifiersType": "ASIN",
                "marketplaceIds": ",".join(marketplace_ids),
                "includedData": "summaries",
                "pageSize": CATALOG_BATCH_SIZE,
            })
            for item in response.get("items", []):
                summaries = item.get("summaries") or [{}]
                brands[item.get("asin")] = summaries[0].get("brand")

    distinct = sorted({b for b in brands.values() if b})
    return {"sellerId": seller_id, "brands": distinct, "asinBrands": brands}


@persist_snapshot("productReview")
async def fetch_product_reviews(*, user_id: str, country: str, region: str, access_token: str, base_uri: str,
                                marketplace_ids: List[str], asins: List[str], refresh_access_token=None):
    """Review topics per ASIN from the Customer Feedback API; ASINs without data are skipped"""
    products: List[Dict[str, Any]] = []

    async with _client(base_uri, access_token, refresh_access_token) as client:
        for asin in asins[:REVIEW_ASIN_LIMIT]:
            try:
                response = await client.get(
                    f"/customerFeedback/2024-06-01/items/{asin}/reviews/topics",
                    params={"marketplaceId": marketplace_ids[0], "sortBy": "MENTIONS"},
                )
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    continue
                raise
            products.append({"asin": asin, "topics": response.get("topics", {})})

    return {"Products": products}


def extract_product_data(listings: Any) -> ProductData:
    """Active listings with both an ASIN and a SKU, in report order"""
    asins: List[str] = []
    skus: List[str] = []
    details: List[dict] = []

    for row in listings if isinstance(listings, list) else []:
        asin = row.get("asin1") or row.get("asin")
        sku = row.get("seller-sku") or row.get("sku")
        if not asin or not sku or str(row.get("status", "Active")).lower() != "active":
            continue
        if asin not in asins:
            asins.append(asin)
        skus.append(sku)
        details.append({
            "asin": asin,
            "sku": sku,
            "itemName": row.get("item-name"),
            "price": row.get("price"),
            "quantity": row.get("quantity"),
        })

    return ProductData(asins=asins, skus=skus, product_details=details)


async def fetch_merchant_listings(*, user_id: str, country: str, region: str, access_token: str, base_uri: str,
                                  marketplace_ids: List[str], refresh_access_token=None,
                                  snapshots=None) -> List[Dict[str, Any]]:
    """All merchant listings; fetched once per run before the first batch"""
    async with _client(base_uri, access_token, refresh_access_token) as client:
        rows = await client.fetch_report("GET_MERCHANT_LISTINGS_ALL_DATA", marketplace_ids)
    rows = rows if isinstance(rows, list) else []
    await save_snapshot(user_id, country, region, "merchantListings", rows, snapshots)
    return rows
