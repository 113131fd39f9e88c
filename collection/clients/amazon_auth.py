"""Login-with-Amazon access tokens and STS temporary credentials"""
import asyncio
import logging
from typing import Dict, Union

import boto3
import httpx
from pydantic_settings import BaseSettings
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from collection.clients.http import is_retryable_response

logger = logging.getLogger(__name__)


class LwaSettings(BaseSettings):
    sp_api_client_id: str = ""
    sp_api_client_secret: str = ""
    amazon_ads_client_id: str = ""
    amazon_ads_client_secret: str = ""
    lwa_token_url: str = "https://api.amazon.com/auth/o2/token"

    class Config:
        env_file = ".env"
        extra = "ignore"


class StsSettings(BaseSettings):
    sp_api_role_arn: str = ""
    sp_api_role_session_name: str = "seller-analytics-scheduled-fetch"

    class Config:
        env_file = ".env"
        extra = "ignore"


@retry(
    retry=retry_if_exception(is_retryable_response),
    stop=stop_after_attempt(4),
    wait=wait_exponential_jitter(initial=1, max=30, jitter=0.2),
    reraise=True,
)
async def _exchange_refresh_token(refresh_token: str, client_id: str, client_secret: str, token_url: str) -> str:
    """POST the refresh-token grant and return the access token"""
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(
            token_url,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        response.raise_for_status()
        body = response.json()

    if body.get("error"):
        raise ValueError(f"Token refresh failed: {body.get('error_description') or body['error']}")
    token = body.get("access_token")
    if not token:
        raise ValueError("Access token not found in token response")
    return token


async def resolve_access_token(user_id: str, refresh_token: str) -> Union[str, bool]:
    """
    Exchange an SP-API refresh token for an access token.

    Returns:
        The access token, or False when the exchange failed
    """
    settings = LwaSettings()
    if not refresh_token:
        return False
    if not settings.sp_api_client_id or not settings.sp_api_client_secret:
        logger.error("SP-API client credentials are missing", extra={"user_id": user_id})
        return False

    try:
        return await _exchange_refresh_token(
            refresh_token, settings.sp_api_client_id, settings.sp_api_client_secret, settings.lwa_token_url
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"SP-API access token generation failed: {e}", extra={"user_id": user_id})
        return False


async def resolve_ads_access_token(refresh_token: str) -> Union[str, bool]:
    """Exchange an Amazon Ads refresh token for an access token (False on failure)"""
    settings = LwaSettings()
    if not refresh_token:
        return False
    if not settings.amazon_ads_client_id or not settings.amazon_ads_client_secret:
        logger.error("Amazon Ads client credentials are missing")
        return False

    try:
        return await _exchange_refresh_token(
            refresh_token, settings.amazon_ads_client_id, settings.amazon_ads_client_secret, settings.lwa_token_url
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Amazon Ads access token generation failed: {e}")
        return False


def _assume_role(aws_region: str) -> Dict[str, str]:
    settings = StsSettings()
    sts_client = boto3.client("sts", region_name=aws_region)
    response = sts_client.assume_role(
        RoleArn=settings.sp_api_role_arn,
        RoleSessionName=settings.sp_api_role_session_name,
    )
    credentials = response.get("Credentials", {})
    return {
        "AccessKey": credentials.get("AccessKeyId"),
        "SecretKey": credentials.get("SecretAccessKey"),
        "SessionToken": credentials.get("SessionToken"),
    }


async def resolve_temporary_credentials(region_config) -> Dict[str, str]:
    """Assume the SP-API IAM role for the region and return temporary keys"""
    return await asyncio.to_thread(_assume_role, region_config.aws_region)
