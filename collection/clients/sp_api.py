import gzip
import io
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from collection.clients.http import is_retryable_response, poll_until_complete

logger = logging.getLogger(__name__)

REPORT_DONE = ("DONE",)
REPORT_FAILED = ("CANCELLED", "FATAL")


def parse_report_content(content: str) -> Any:
    """Parse a downloaded report: JSON documents as-is, tab-separated flat files into row dicts"""
    stripped = content.lstrip()
    if not stripped:
        return []
    if stripped[0] in "{[":
        return json.loads(stripped)

    df = pd.read_csv(io.StringIO(content), sep="\t", dtype=str)
    df = df.astype(object).where(pd.notnull(df), None)
    return df.to_dict(orient="records")


class SpApiClient:
    """
    Async SP-API client for reports, Data Kiosk queries and plain GET resources.

    `refresh_access_token` is the run's refresh callback; long-polling calls use
    it to swap in a new token when Amazon answers 401 mid-poll.
    """

    def __init__(
        self,
        base_uri: str,
        access_token: str,
        *,
        refresh_access_token=None,
        cloud_credentials=None,
        aws_region: Optional[str] = None,
        poll_attempts: int = 30,
        poll_delay_seconds: float = 60.0,
    ):
        self.base_url = f"https://{base_uri}"
        self.access_token = access_token
        self.refresh_access_token = refresh_access_token
        self.cloud_credentials = cloud_credentials
        self.aws_region = aws_region
        self.poll_attempts = poll_attempts
        self.poll_delay_seconds = poll_delay_seconds
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
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

    def _sign(self, request: httpx.Request) -> None:
        """Add SigV4 headers when temporary cloud credentials were supplied"""
        creds = self.cloud_credentials
        aws_request = AWSRequest(
            method=request.method,
            url=str(request.url),
            data=request.content,
            headers={"host": request.url.host, "x-amz-access-token": self.access_token},
        )
        SigV4Auth(
            Credentials(creds.access_key, creds.secret_key, creds.session_token),
            "execute-api",
            self.aws_region or "us-east-1",
        ).add_auth(aws_request)
        for name, value in aws_request.headers.items():
            request.headers[name] = value

    @retry(
        retry=retry_if_exception(is_retryable_response),
        stop=stop_after_attempt(5),
        wait=wait_exponential_jitter(initial=2, max=60, jitter=0.5),
        reraise=True,
    )
    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make SP-API request with retry logic for 429/5xx errors"""
        request = self.client.build_request(
            method,
            path,
            params=params,
            json=json_body,
            headers={"x-amz-access-token": self.access_token, "content-type": "application/json"},
        )
        if self.cloud_credentials is not None:
            self._sign(request)

        response = await self.client.send(request)
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"SP-API HTTP {response.status_code} on {path}: retrying request")
        response.raise_for_status()
        return response.json() if response.content else {}

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._request("GET", path, params=params)

    async def create_report(self, report_type: str, marketplace_ids: List[str],
                            data_start_time: Optional[datetime] = None,
                            data_end_time: Optional[datetime] = None) -> str:
        body: Dict[str, Any] = {"reportType": report_type, "marketplaceIds": marketplace_ids}
        if data_start_time:
            body["dataStartTime"] = data_start_time.isoformat()
        if data_end_time:
            body["dataEndTime"] = data_end_time.isoformat()
        response = await self._request("POST", "/reports/2021-06-30/reports", json_body=body)
        return response["reportId"]

    async def download_document(self, document: Dict[str, Any]) -> str:
        """Download a report/query document from its pre-signed URL"""
        async with httpx.AsyncClient(timeout=120.0) as downloader:
            response = await downloader.get(document["url"])
            response.raise_for_status()
            raw = response.content

        if document.get("compressionAlgorithm") == "GZIP":
            raw = gzip.decompress(raw)
        return raw.decode("utf-8", errors="replace")

    async def fetch_report(self, report_type: str, marketplace_ids: List[str],
                           data_start_time: Optional[datetime] = None,
                           data_end_time: Optional[datetime] = None) -> Any:
        """Request a report, wait for Amazon to generate it and return parsed content"""
        report_id = await self.create_report(report_type, marketplace_ids, data_start_time, data_end_time)
        logger.info(f"Requested {report_type} report {report_id}")

        status = await poll_until_complete(
            lambda: self._request("GET", f"/reports/2021-06-30/reports/{report_id}"),
            status_field="processingStatus",
            done_states=REPORT_DONE,
            failed_states=REPORT_FAILED,
            on_unauthorized=self._refresh if self.refresh_access_token else None,
            max_attempts=self.poll_attempts,
            delay_seconds=self.poll_delay_seconds,
            label=f"{report_type} report {report_id}",
        )

        document = await self._request("GET", f"/reports/2021-06-30/documents/{status['reportDocumentId']}")
        return parse_report_content(await self.download_document(document))

    async def run_data_kiosk_query(self, query: str) -> List[Dict[str, Any]]:
        """Run a Data Kiosk GraphQL query and return its JSON-lines document as rows"""
        created = await self._request("POST", "/dataKiosk/2023-11-15/queries", json_body={"query": query})
        query_id = created["queryId"]

        status = await poll_until_complete(
            lambda: self._request("GET", f"/dataKiosk/2023-11-15/queries/{query_id}"),
            status_field="processingStatus",
            done_states=REPORT_DONE,
            failed_states=REPORT_FAILED,
            on_unauthorized=self._refresh if self.refresh_access_token else None,
            max_attempts=self.poll_attempts,
            delay_seconds=self.poll_delay_seconds,
            label=f"Data Kiosk query {query_id}",
        )

        document_id = status.get("dataDocumentId")
        if not document_id:
            # DONE without a document means the query matched no data
            return []
        document = await self._request("GET", f"/dataKiosk/2023-11-15/documents/{document_id}")
        content = await self.download_document({"url": document["documentUrl"]})
        return [json.loads(line) for line in content.splitlines() if line.strip()]
