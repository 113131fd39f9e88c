"""Setup-phase checks for a scheduled run; every failure here aborts before the first batch"""
import logging
from typing import Any, Dict, Optional

from core.config import ADS_ENDPOINTS, MARKETPLACE_IDS, REGION_ENDPOINTS, SPAPI_REGIONS, VALID_REGIONS
from core.repositories import SellerAccountRepository
from service.errors import ConfigurationError, ValidationError
from service.run_context import RegionConfig

logger = logging.getLogger(__name__)


def validate_inputs(user_id: Optional[str], region: Optional[str], country: Optional[str]) -> None:
    if not user_id:
        raise ValidationError("User ID is required")
    if not region or not country:
        raise ValidationError("Region and country are required")
    if region.upper() not in VALID_REGIONS:
        raise ValidationError(f"Invalid region: {region}. Must be one of {', '.join(VALID_REGIONS)}")


def resolve_region_config(region: str, country: str) -> RegionConfig:
    """Endpoints, marketplace and AWS region for a region/country pair"""
    region_key = region.upper()
    if region_key not in VALID_REGIONS:
        raise ConfigurationError(f"Unsupported region: {region}")

    marketplace_id = MARKETPLACE_IDS.get(country.upper())
    if marketplace_id is None:
        raise ConfigurationError(f"Unsupported country: {country}")

    base_uri = REGION_ENDPOINTS.get(region_key)
    ads_base_uri = ADS_ENDPOINTS.get(region_key)
    aws_region = SPAPI_REGIONS.get(region_key, {}).get("aws_region")
    if not base_uri or not ads_base_uri or not aws_region:
        raise ConfigurationError(f"No endpoint configuration for region: {region}")

    if len(marketplace_id) < 10:
        raise ConfigurationError(f"Malformed marketplace id for {country}", status_code=500)

    return RegionConfig(
        region=region_key,
        country=country.upper(),
        base_uri=base_uri,
        ads_base_uri=ads_base_uri,
        marketplace_id=marketplace_id,
        aws_region=aws_region,
    )


def check_seller_account(account: Optional[Dict[str, Any]], user_id: str, region: str, country: str) -> Dict[str, Any]:
    """Validate a stored seller account row; raises ValidationError when unusable"""
    if account is None:
        raise ValidationError(f"No seller account found for {region}/{country}", status_code=404)

    if not account.get("sp_refresh_token") and not account.get("ads_refresh_token"):
        raise ValidationError("No refresh tokens stored for this seller account")
    if not account.get("seller_id"):
        raise ValidationError("Seller ID is missing for this seller account")
    if account.get("ads_refresh_token") and not account.get("profile_id"):
        raise ValidationError("Ads profile ID is missing for an account with an Ads refresh token")

    logger.info("Seller account resolved", extra={"user_id": user_id, "region": region, "country": country})
    return account


def load_seller_account(repository: SellerAccountRepository, user_id: str, region: str,
                        country: str) -> Dict[str, Any]:
    return check_seller_account(repository.find_account(user_id, region, country), user_id, region, country)
