import gzip
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from pydantic_settings import BaseSettings
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from collection.clients.http import is_retryable_response, poll_until_complete

logger = logging.getLogger(__name__)

REPORT_REQUEST_MEDIA_TYPE = "application/vnd.createasyncreportrequest.v3+json"


class AdsSettings(BaseSettings):
    amazon_ads_client_id: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


class AdsApiClient:
    """Async Amazon Ads client: v3 async reports and Sponsored Products list endpoints"""

    def __init__(
        self,
        base_uri: str,
        access_token: str,
        profile_id: str,
        *,
        refresh_access_token=None,
        poll_attempts: int = 30,
        poll_delay_seconds: float = 60.0,
    ):
        self.settings = AdsSettings()
        self.access_token = access_token
        self.profile_id = profile_id
        self.refresh_access_token = refresh_access_token
        self.poll_attempts = poll_attempts
        self.poll_delay_seconds = poll_delay_seconds
        self.client = httpx.AsyncClient(
            base_url=f"https://{base_uri}",
            timeout=60.0,
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2)
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    async def _refresh(self) -> None:
        if self.refresh_access_token is None:
            raise RuntimeError("No refresh callback configured")
        self.access_token = await self.refresh_access_token()

    def _headers(self, content_type: str = "application/json") -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Amazon-Advertising-API-ClientId": self.settings.amazon_ads_client_id,
            "Amazon-Advertising-API-Scope": str(self.profile_id),
            "Content-Type": content_type,
            "Accept": content_type,
        }

    @retry(
        retry=retry_if_exception(is_retryable_response),
        stop=stop_after_attempt(5),
        wait=wait_exponential_jitter(initial=2, max=60, jitter=0.5),
        reraise=True,
    )
    async def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None,
                       content_type: str = "application/json") -> Dict[str, Any]:
        """Make Ads API request with retry logic for 429/5xx errors"""
        response = await self.client.request(method, path, json=json_body, headers=self._headers(content_type))
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"Ads API HTTP {response.status_code} on {path}: retrying request")
        response.raise_for_status()
        return response.json() if response.content else {}

    async def create_report(self, *, name: str, report_type_id: str, columns: List[str], group_by: List[str],
                            start_date: date, end_date: date, time_unit: str = "SUMMARY",
                            ad_product: str = "SPONSORED_PRODUCTS") -> str:
        body = {
            "name": name,
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
            "configuration": {
                "adProduct": ad_product,
                "groupBy": group_by,
                "columns": columns,
                "reportTypeId": report_type_id,
                "timeUnit": time_unit,
                "format": "GZIP_JSON",
            },
        }
        response = await self._request("POST", "/reporting/reports", json_body=body,
                                       content_type=REPORT_REQUEST_MEDIA_TYPE)
        return response["reportId"]

    async def download_report(self, url: str) -> List[Dict[str, Any]]:
        async with httpx.AsyncClient(timeout=120.0) as downloader:
            response = await downloader.get(url)
            response.raise_for_status()
        return json.loads(gzip.decompress(response.content))

    async def fetch_report(self, **report_config) -> List[Dict[str, Any]]:
        """Create an async report, poll until COMPLETED and return its rows"""
        report_id = await self.create_report(**report_config)
        logger.info(f"Requested Ads report {report_config['report_type_id']} ({report_id})")

        status = await poll_until_complete(
            lambda: self._request("GET", f"/reporting/reports/{report_id}"),
            status_field="status",
            done_states=("COMPLETED",),
            failed_states=("FAILURE", "FAILED"),
            on_unauthorized=self._refresh if self.refresh_access_token else None,
            max_attempts=self.poll_attempts,
            delay_seconds=self.poll_delay_seconds,
            label=f"Ads report {report_id}",
        )
        return await self.download_report(status["url"])

    async def list_entities(self, path: str, media_type: str, result_key: str,
                            body: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Page through a Sponsored Products list endpoint via nextToken"""
        payload: Dict[str, Any] = dict(body or {})
        payload.setdefault("maxResults", 1000)
        items: List[Dict[str, Any]] = []

        while True:
            response = await self._request("POST", path, json_body=payload, content_type=media_type)
            items.extend(response.get(result_key, []))
            next_token = response.get("nextToken")
            if not next_token:
                return items
            payload["nextToken"] = next_token

    async def keyword_recommendations(self, asins: List[str], max_recommendations: int = 200) -> List[Dict[str, Any]]:
        body = {
            "recommendationType": "KEYWORDS_FOR_ASINS",
            "asins": asins,
            "maxRecommendations": max_recommendations,
            "sortDimension": "CLICKS",
        }
        response = await self._request(
            "POST",
            "/sp/targets/keywords/recommendations",
            json_body=body,
            content_type="application/vnd.spkeywordsrecommendation.v3+json",
        )
        return response.get("keywordTargetList", [])
