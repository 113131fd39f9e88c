"""Run-scoped value objects passed from the orchestrator to job argument builders"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from core.repositories import ReportSnapshotRepository
from service.token_store import TokenStore

RefreshCallback = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class CloudCredentials:
    access_key: str
    secret_key: str
    session_token: str


@dataclass(frozen=True)
class RegionConfig:
    region: str
    country: str
    base_uri: str
    ads_base_uri: str
    marketplace_id: str
    aws_region: str

    @property
    def marketplace_ids(self) -> List[str]:
        return [self.marketplace_id]


@dataclass(frozen=True)
class ProductData:
    """Active listings derived from the merchant listings report"""
    asins: List[str] = field(default_factory=list)
    skus: List[str] = field(default_factory=list)
    product_details: List[dict] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedDependencies:
    """Identifiers produced by earlier batches and consumed by dependent jobs"""
    campaign_ids: List[str] = field(default_factory=list)
    ad_group_ids: List[str] = field(default_factory=list)


async def _no_refresh() -> str:
    raise RuntimeError("token refresh is not available for this run")


@dataclass
class RunContext:
    """Everything one scheduled run knows about the seller it is fetching for"""
    user_id: str
    country: str
    region: str
    day_of_week: int
    region_config: RegionConfig
    tokens: TokenStore
    refresh_token: Optional[str] = None
    ads_refresh_token: Optional[str] = None
    profile_id: Optional[str] = None
    seller_id: Optional[str] = None
    cloud_credentials: Optional[CloudCredentials] = None
    product_data: ProductData = field(default_factory=ProductData)
    refresh_access_token: RefreshCallback = _no_refresh
    refresh_ads_access_token: RefreshCallback = _no_refresh
    trace_id: str = ""
    # where this run's jobs read and write report snapshots
    snapshots: Optional[ReportSnapshotRepository] = None

    @property
    def access_token(self) -> Optional[str]:
        return self.tokens.access_token

    @property
    def ads_access_token(self) -> Optional[str]:
        return self.tokens.ads_access_token

    @property
    def marketplace_ids(self) -> List[str]:
        return self.region_config.marketplace_ids

    @property
    def base_uri(self) -> str:
        return self.region_config.base_uri

    @property
    def ads_base_uri(self) -> str:
        return self.region_config.ads_base_uri
