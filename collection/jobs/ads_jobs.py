"""Amazon Ads data source jobs (Sponsored Products reports and entity lists)"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List

import pandas as pd

from collection.clients.ads_api import AdsApiClient
from collection.jobs.snapshots import persist_snapshot
from core.config import SchedulerSettings

logger = logging.getLogger(__name__)

# Sponsored Products list endpoints: (path, media type, result key)
CAMPAIGNS = ("/sp/campaigns/list", "application/vnd.spCampaign.v3+json", "campaigns")
AD_GROUPS = ("/sp/adGroups/list", "application/vnd.spAdGroup.v3+json", "adGroups")
KEYWORDS = ("/sp/keywords/list", "application/vnd.spKeyword.v3+json", "keywords")
NEGATIVE_KEYWORDS = ("/sp/negativeKeywords/list", "application/vnd.spNegativeKeyword.v3+json", "negativeKeywords")

# Amazon rejects id filters longer than this
ID_FILTER_LIMIT = 1000


def _client(ads_base_uri: str, ads_access_token: str, profile_id: str, refresh_ads_access_token=None) -> AdsApiClient:
    settings = SchedulerSettings()
    return AdsApiClient(
        ads_base_uri,
        ads_access_token,
        profile_id,
        refresh_access_token=refresh_ads_access_token,
        poll_attempts=settings.report_poll_attempts,
        poll_delay_seconds=settings.report_poll_delay_seconds,
    )


def report_window():
    """Lookback window ending yesterday (UTC); Ads reports exclude the current day"""
    settings = SchedulerSettings()
    end = datetime.now(timezone.utc).date() - timedelta(days=1)
    return end - timedelta(days=settings.lookback_days - 1), end


async def _fetch_report(*, ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token,
                        name: str, report_type_id: str, columns: List[str], group_by: List[str],
                        time_unit: str = "SUMMARY") -> List[Dict[str, Any]]:
    start, end = report_window()
    async with _client(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token) as client:
        return await client.fetch_report(
            name=name,
            report_type_id=report_type_id,
            columns=columns,
            group_by=group_by,
            start_date=start,
            end_date=end,
            time_unit=time_unit,
        )


@persist_snapshot("ppcSpendsBySKU")
async def fetch_ppc_spends_by_sku(*, user_id: str, country: str, region: str, ads_access_token: str,
                                  profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    """Advertised product spend with the campaign/ad group ids later batches depend on"""
    rows = await _fetch_report(
        ads_base_uri=ads_base_uri, ads_access_token=ads_access_token, profile_id=profile_id,
        refresh_ads_access_token=refresh_ads_access_token,
        name=f"ppc-spends-by-sku-{user_id}",
        report_type_id="spAdvertisedProduct",
        columns=["campaignId", "campaignName", "adGroupId", "adGroupName", "advertisedAsin",
                 "advertisedSku", "impressions", "clicks", "cost", "sales7d", "purchases7d"],
        group_by=["advertiser"],
    )
    return {"sponsoredAds": rows}


@persist_snapshot("adsKeywordsPerformanceData")
async def fetch_keyword_performance(*, user_id: str, country: str, region: str, ads_access_token: str,
                                    profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    return await _fetch_report(
        ads_base_uri=ads_base_uri, ads_access_token=ads_access_token, profile_id=profile_id,
        refresh_ads_access_token=refresh_ads_access_token,
        name=f"keyword-performance-{user_id}",
        report_type_id="spTargeting",
        columns=["keywordId", "keyword", "matchType", "campaignId", "adGroupId",
                 "impressions", "clicks", "cost", "sales7d", "purchases7d"],
        group_by=["targeting"],
    )


@persist_snapshot("ppcSpendsDateWise")
async def fetch_ppc_spends_date_wise(*, user_id: str, country: str, region: str, ads_access_token: str,
                                     profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    rows = await _fetch_report(
        ads_base_uri=ads_base_uri, ads_access_token=ads_access_token, profile_id=profile_id,
        refresh_ads_access_token=refresh_ads_access_token,
        name=f"ppc-spends-daily-{user_id}",
        report_type_id="spCampaigns",
        columns=["date", "campaignId", "cost", "sales7d", "clicks", "impressions"],
        group_by=["campaign"],
        time_unit="DAILY",
    )
    if not rows:
        return []
    df = pd.DataFrame(rows)
    for column in ("cost", "sales7d"):
        df[column] = pd.to_numeric(df[column], errors="coerce").fillna(0)
    daily = df.groupby("date", as_index=False)[["cost", "sales7d"]].sum().sort_values("date")
    return daily.rename(columns={"cost": "spend", "sales7d": "sales"}).to_dict(orient="records")


def aggregate_campaign_metrics(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Account-level totals, ACoS and ROAS over campaign rows"""
    if not rows:
        return {"spend": 0.0, "sales": 0.0, "clicks": 0, "impressions": 0, "acos": 0.0, "roas": 0.0}

    df = pd.DataFrame(rows)
    spend = float(pd.to_numeric(df.get("cost"), errors="coerce").fillna(0).sum())
    sales = float(pd.to_numeric(df.get("sales7d"), errors="coerce").fillna(0).sum())
    clicks = int(pd.to_numeric(df.get("clicks"), errors="coerce").fillna(0).sum())
    impressions = int(pd.to_numeric(df.get("impressions"), errors="coerce").fillna(0).sum())
    return {
        "spend": round(spend, 2),
        "sales": round(sales, 2),
        "clicks": clicks,
        "impressions": impressions,
        "acos": round(spend / sales * 100, 2) if sales else 0.0,
        "roas": round(sales / spend, 2) if spend else 0.0,
    }


@persist_snapshot("ppcMetricsAggregated")
async def fetch_ppc_metrics_aggregated(*, user_id: str, country: str, region: str, ads_access_token: str,
                                       profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    start, end = report_window()
    rows = await _fetch_report(
        ads_base_uri=ads_base_uri, ads_access_token=ads_access_token, profile_id=profile_id,
        refresh_ads_access_token=refresh_ads_access_token,
        name=f"ppc-metrics-{user_id}",
        report_type_id="spCampaigns",
        columns=["campaignId", "cost", "sales7d", "clicks", "impressions"],
        group_by=["campaign"],
    )
    metrics = aggregate_campaign_metrics(rows)
    metrics["dateRange"] = {"startDate": start.isoformat(), "endDate": end.isoformat()}
    return metrics


@persist_snapshot("searchKeywords")
async def fetch_search_terms(*, user_id: str, country: str, region: str, ads_access_token: str,
                             profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    return await _fetch_report(
        ads_base_uri=ads_base_uri, ads_access_token=ads_access_token, profile_id=profile_id,
        refresh_ads_access_token=refresh_ads_access_token,
        name=f"search-terms-{user_id}",
        report_type_id="spSearchTerm",
        columns=["searchTerm", "keyword", "campaignId", "adGroupId", "impressions", "clicks", "cost", "sales7d"],
        group_by=["searchTerm"],
    )


async def _list(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token, endpoint,
                body=None) -> List[Dict[str, Any]]:
    path, media_type, result_key = endpoint
    async with _client(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token) as client:
        return await client.list_entities(path, media_type, result_key, body)


@persist_snapshot("adsKeywords")
async def fetch_keywords(*, user_id: str, country: str, region: str, ads_access_token: str,
                         profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    return await _list(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token, KEYWORDS,
                       {"stateFilter": {"include": ["ENABLED", "PAUSED"]}})


@persist_snapshot("campaignData")
async def fetch_campaigns(*, user_id: str, country: str, region: str, ads_access_token: str,
                          profile_id: str, ads_base_uri: str, refresh_ads_access_token=None):
    campaigns = await _list(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token, CAMPAIGNS,
                            {"stateFilter": {"include": ["ENABLED", "PAUSED"]}})
    return {"campaignData": campaigns}


@persist_snapshot("adGroupsData")
async def fetch_ad_groups(*, user_id: str, country: str, region: str, ads_access_token: str,
                          profile_id: str, ads_base_uri: str, campaign_ids: List[str],
                          refresh_ads_access_token=None):
    """Ad groups of the given campaigns; nothing to fetch without campaign ids"""
    if not campaign_ids:
        return []
    return await _list(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token, AD_GROUPS,
                       {"campaignIdFilter": {"include": campaign_ids[:ID_FILTER_LIMIT]}})


@persist_snapshot("negativeKeywords")
async def fetch_negative_keywords(*, user_id: str, country: str, region: str, ads_access_token: str,
                                  profile_id: str, ads_base_uri: str, campaign_ids: List[str],
                                  ad_group_ids: List[str], refresh_ads_access_token=None):
    if not campaign_ids or not ad_group_ids:
        return []
    return await _list(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token, NEGATIVE_KEYWORDS, {
        "campaignIdFilter": {"include": campaign_ids[:ID_FILTER_LIMIT]},
        "adGroupIdFilter": {"include": ad_group_ids[:ID_FILTER_LIMIT]},
    })


@persist_snapshot("keywordRecommendations")
async def fetch_keyword_recommendations(*, user_id: str, country: str, region: str, ads_access_token: str,
                                        profile_id: str, ads_base_uri: str, asins: List[str],
                                        refresh_ads_access_token=None):
    async with _client(ads_base_uri, ads_access_token, profile_id, refresh_ads_access_token) as client:
        recommendations = await client.keyword_recommendations(asins)
    return {"asins": asins, "recommendations": recommendations, "generatedOn": date.today().isoformat()}
