"""
Day-of-week schedule of data source jobs.

Every job appears as one immutable ScheduleEntry. Entries are grouped by the
days they run on and carry their batch position, the credential they need and
a builder that turns the run context into the job's keyword arguments.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from analysis.jobs import reimbursement
from collection.jobs import ads_jobs, seller_data_jobs, sp_api_jobs
from core.config import DAY_NAMES
from service.errors import JobSkip
from service.run_context import ResolvedDependencies, RunContext

ArgsBuilder = Callable[[RunContext, ResolvedDependencies], Dict[str, Any]]

BATCH_COUNT = 4


class CredentialKind(str, Enum):
    NONE = "none"
    SP_API = "sp_api"
    ADS_API = "ads_api"
    REFRESH_TOKEN = "refresh_token"


class JobKind(str, Enum):
    SP_API_REPORT = "sp_api_report"
    SP_API_SIGNED = "sp_api_signed"
    SP_API_ASINS = "sp_api_asins"
    ADS_REPORT = "ads_report"
    ADS_CAMPAIGN_DEPENDENT = "ads_campaign_dependent"
    ADS_AD_GROUP_DEPENDENT = "ads_ad_group_dependent"
    ADS_ASINS = "ads_asins"
    SELLER_DATA = "seller_data"
    CALCULATION = "calculation"


def _base(ctx: RunContext) -> Dict[str, Any]:
    return {"user_id": ctx.user_id, "country": ctx.country, "region": ctx.region, "snapshots": ctx.snapshots}


def _require_asins(ctx: RunContext) -> List[str]:
    if not ctx.product_data.asins:
        raise JobSkip("No ASINs available")
    return list(ctx.product_data.asins)


def sp_api_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {
        **_base(ctx),
        "access_token": ctx.access_token,
        "base_uri": ctx.base_uri,
        "marketplace_ids": ctx.marketplace_ids,
        "refresh_access_token": ctx.refresh_access_token,
    }


def sp_api_signed_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {
        **sp_api_args(ctx, deps),
        "cloud_credentials": ctx.cloud_credentials,
        "aws_region": ctx.region_config.aws_region,
        "seller_id": ctx.seller_id,
    }


def sp_api_asin_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {**sp_api_args(ctx, deps), "asins": _require_asins(ctx)}


def brand_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {**sp_api_signed_args(ctx, deps), "asins": _require_asins(ctx)}


def ads_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {
        **_base(ctx),
        "ads_access_token": ctx.ads_access_token,
        "profile_id": ctx.profile_id,
        "ads_base_uri": ctx.ads_base_uri,
        "refresh_ads_access_token": ctx.refresh_ads_access_token,
    }


def ads_campaign_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {**ads_args(ctx, deps), "campaign_ids": list(deps.campaign_ids)}


def ads_ad_group_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {
        **ads_args(ctx, deps),
        "campaign_ids": list(deps.campaign_ids),
        "ad_group_ids": list(deps.ad_group_ids),
    }


def ads_asin_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {**ads_args(ctx, deps), "asins": _require_asins(ctx)}


def seller_data_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return {
        **_base(ctx),
        "refresh_token": ctx.refresh_token,
        "base_uri": ctx.base_uri,
        "marketplace_ids": ctx.marketplace_ids,
    }


def calculation_args(ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
    return _base(ctx)


DEFAULT_BUILDERS: Dict[JobKind, ArgsBuilder] = {
    JobKind.SP_API_REPORT: sp_api_args,
    JobKind.SP_API_SIGNED: sp_api_signed_args,
    JobKind.SP_API_ASINS: sp_api_asin_args,
    JobKind.ADS_REPORT: ads_args,
    JobKind.ADS_CAMPAIGN_DEPENDENT: ads_campaign_args,
    JobKind.ADS_AD_GROUP_DEPENDENT: ads_ad_group_args,
    JobKind.ADS_ASINS: ads_asin_args,
    JobKind.SELLER_DATA: seller_data_args,
    JobKind.CALCULATION: calculation_args,
}

DEPENDENT_KINDS = (JobKind.ADS_CAMPAIGN_DEPENDENT, JobKind.ADS_AD_GROUP_DEPENDENT)


@dataclass(frozen=True)
class ScheduleEntry:
    job_key: str
    description: str
    credential: CredentialKind
    data_key: str
    job_fn: Callable[..., Awaitable[Any]]
    batch_index: int
    kind: JobKind
    args_builder: Optional[ArgsBuilder] = None

    def __post_init__(self):
        if not 1 <= self.batch_index <= BATCH_COUNT:
            raise ValueError(f"{self.job_key}: batch_index must be between 1 and {BATCH_COUNT}")
        if self.args_builder is None:
            object.__setattr__(self, "args_builder", DEFAULT_BUILDERS[self.kind])

    @property
    def needs_dependencies(self) -> bool:
        return self.kind in DEPENDENT_KINDS

    def build_args(self, ctx: RunContext, deps: ResolvedDependencies) -> Dict[str, Any]:
        return self.args_builder(ctx, deps)


def _entries(*entries: ScheduleEntry) -> Dict[str, ScheduleEntry]:
    return {e.job_key: e for e in entries}


SUNDAY_JOBS = _entries(
    ScheduleEntry("productReview", "Customer review topics for active ASINs", CredentialKind.SP_API,
                  "productReview", sp_api_jobs.fetch_product_reviews, 2, JobKind.SP_API_ASINS),
    ScheduleEntry("keywordRecommendations", "Keyword recommendations for active ASINs", CredentialKind.ADS_API,
                  "keywordRecommendations", ads_jobs.fetch_keyword_recommendations, 4, JobKind.ADS_ASINS),
)

MON_WED_FRI_JOBS = _entries(
    ScheduleEntry("ppcSpendsBySKU", "Sponsored Products spend by SKU", CredentialKind.ADS_API,
                  "ppcSpendsBySKU", ads_jobs.fetch_ppc_spends_by_sku, 1, JobKind.ADS_REPORT),
    ScheduleEntry("adsKeywordsPerformanceData", "Keyword performance report", CredentialKind.ADS_API,
                  "adsKeywordsPerformanceData", ads_jobs.fetch_keyword_performance, 1, JobKind.ADS_REPORT),
    ScheduleEntry("ppcSpendsDateWise", "Daily PPC spend", CredentialKind.ADS_API,
                  "ppcSpendsDateWise", ads_jobs.fetch_ppc_spends_date_wise, 1, JobKind.ADS_REPORT),
    ScheduleEntry("ppcMetricsAggregated", "Account level PPC metrics", CredentialKind.ADS_API,
                  "ppcMetricsAggregated", ads_jobs.fetch_ppc_metrics_aggregated, 1, JobKind.ADS_REPORT),
    ScheduleEntry("adsKeywords", "Sponsored Products keywords", CredentialKind.ADS_API,
                  "adsKeywords", ads_jobs.fetch_keywords, 2, JobKind.ADS_REPORT),
    ScheduleEntry("campaignData", "Sponsored Products campaigns", CredentialKind.ADS_API,
                  "campaignData", ads_jobs.fetch_campaigns, 2, JobKind.ADS_REPORT),
    ScheduleEntry("adGroupsData", "Ad groups of known campaigns", CredentialKind.ADS_API,
                  "adGroupsData", ads_jobs.fetch_ad_groups, 3, JobKind.ADS_CAMPAIGN_DEPENDENT),
    ScheduleEntry("negativeKeywords", "Negative keywords of known campaigns and ad groups", CredentialKind.ADS_API,
                  "negativeKeywords", ads_jobs.fetch_negative_keywords, 4, JobKind.ADS_AD_GROUP_DEPENDENT),
    ScheduleEntry("searchKeywords", "Search term report", CredentialKind.ADS_API,
                  "searchKeywords", ads_jobs.fetch_search_terms, 4, JobKind.ADS_REPORT),
    ScheduleEntry("mcpEconomicsData", "Economics metrics from Data Kiosk", CredentialKind.REFRESH_TOKEN,
                  "mcpEconomicsData", seller_data_jobs.fetch_economics_data, 3, JobKind.SELLER_DATA),
)

SATURDAY_JOBS = _entries(
    ScheduleEntry("calculateShipmentDiscrepancy", "Inbound shipment discrepancy reimbursement",
                  CredentialKind.NONE, "calculateShipmentDiscrepancy",
                  reimbursement.calculate_shipment_discrepancy, 2, JobKind.CALCULATION),
    ScheduleEntry("calculateLostInventoryReimbursement", "Lost inventory reimbursement",
                  CredentialKind.NONE, "calculateLostInventoryReimbursement",
                  reimbursement.calculate_lost_inventory_reimbursement, 2, JobKind.CALCULATION),
    ScheduleEntry("calculateDamagedInventoryReimbursement", "Damaged inventory reimbursement",
                  CredentialKind.NONE, "calculateDamagedInventoryReimbursement",
                  reimbursement.calculate_damaged_inventory_reimbursement, 2, JobKind.CALCULATION),
    ScheduleEntry("calculateDisposedInventoryReimbursement", "Disposed inventory reimbursement",
                  CredentialKind.NONE, "calculateDisposedInventoryReimbursement",
                  reimbursement.calculate_disposed_inventory_reimbursement, 2, JobKind.CALCULATION),
    ScheduleEntry("calculateFeeReimbursement", "FBA fee overcharge reimbursement",
                  CredentialKind.NONE, "calculateFeeReimbursement",
                  reimbursement.calculate_fee_reimbursement, 2, JobKind.CALCULATION),
)

DAILY_JOBS = _entries(
    ScheduleEntry("v2data", "Seller performance (V2)", CredentialKind.SP_API,
                  "v2data", sp_api_jobs.fetch_v2_seller_performance, 1, JobKind.SP_API_REPORT),
    ScheduleEntry("v1data", "Seller performance (V1)", CredentialKind.SP_API,
                  "v1data", sp_api_jobs.fetch_v1_seller_performance, 1, JobKind.SP_API_REPORT),
    ScheduleEntry("RestockinventoryData", "Restock inventory recommendations", CredentialKind.SP_API,
                  "RestockinventoryData", sp_api_jobs.fetch_restock_inventory, 2, JobKind.SP_API_REPORT),
    ScheduleEntry("fbaInventoryPlanningData", "FBA inventory planning", CredentialKind.SP_API,
                  "fbaInventoryPlanningData", sp_api_jobs.fetch_fba_inventory_planning, 2, JobKind.SP_API_REPORT),
    ScheduleEntry("strandedInventoryData", "Stranded inventory", CredentialKind.SP_API,
                  "strandedInventoryData", sp_api_jobs.fetch_stranded_inventory, 2, JobKind.SP_API_REPORT),
    ScheduleEntry("inboundNonComplianceData", "Inbound non-compliance", CredentialKind.SP_API,
                  "inboundNonComplianceData", sp_api_jobs.fetch_inbound_non_compliance, 2, JobKind.SP_API_REPORT),
    ScheduleEntry("shipment", "FBA inbound shipments", CredentialKind.SP_API,
                  "shipment", sp_api_jobs.fetch_shipments, 3, JobKind.SP_API_SIGNED),
    ScheduleEntry("brandData", "Catalog brand data", CredentialKind.SP_API,
                  "brandData", sp_api_jobs.fetch_brand_data, 3, JobKind.SP_API_SIGNED, brand_args),
)

OTHER_DAYS_JOBS = _entries(
    ScheduleEntry("mcpBuyBoxData", "Buy box percentages from Data Kiosk", CredentialKind.REFRESH_TOKEN,
                  "mcpBuyBoxData", seller_data_jobs.fetch_buy_box_data, 3, JobKind.SELLER_DATA),
)

# (group name, group, days it applies to); merged in this order, later groups win
DAY_GROUPS = (
    ("daily", DAILY_JOBS, (0, 1, 2, 3, 4, 5, 6)),
    ("mon_wed_fri", MON_WED_FRI_JOBS, (1, 3, 5)),
    ("sunday", SUNDAY_JOBS, (0,)),
    ("saturday", SATURDAY_JOBS, (6,)),
    ("other_days", OTHER_DAYS_JOBS, (0, 2, 4, 6)),
)


def _check_day(day_of_week: int) -> None:
    if not isinstance(day_of_week, int) or isinstance(day_of_week, bool) or not 0 <= day_of_week <= 6:
        raise ValueError(f"day_of_week must be an integer 0 (Sunday) to 6 (Saturday), got {day_of_week!r}")


def get_functions_for_day(day_of_week: int) -> Dict[str, ScheduleEntry]:
    """Jobs scheduled for a day (0=Sunday .. 6=Saturday), in merge order"""
    _check_day(day_of_week)
    functions: Dict[str, ScheduleEntry] = {}
    for _, group, days in DAY_GROUPS:
        if day_of_week in days:
            functions.update(group)
    return functions


def should_run_function(job_key: str, day_of_week: int) -> bool:
    return job_key in get_functions_for_day(day_of_week)


def get_schedule_group(job_key: str) -> Optional[str]:
    for name, group, _ in DAY_GROUPS:
        if job_key in group:
            return name
    return None


def all_entries() -> Dict[str, ScheduleEntry]:
    entries: Dict[str, ScheduleEntry] = {}
    for _, group, _ in DAY_GROUPS:
        entries.update(group)
    return entries


def entries_by_batch(entries: Iterable[ScheduleEntry]) -> Dict[int, List[ScheduleEntry]]:
    """Group entries by batch_index, keeping input order inside each batch"""
    batches: Dict[int, List[ScheduleEntry]] = {i: [] for i in range(1, BATCH_COUNT + 1)}
    for entry in entries:
        batches[entry.batch_index].append(entry)
    return batches


def describe_day(day_of_week: int) -> List[Dict[str, Any]]:
    """Printable listing of one day's jobs"""
    return [
        {
            "day": DAY_NAMES[day_of_week],
            "job_key": e.job_key,
            "batch": e.batch_index,
            "credential": e.credential.value,
            "group": get_schedule_group(e.job_key),
            "description": e.description,
        }
        for e in get_functions_for_day(day_of_week).values()
    ]
