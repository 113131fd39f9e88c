"""Static Amazon endpoint tables and scheduler settings"""
from typing import Dict, Optional

from pydantic_settings import BaseSettings


class SchedulerSettings(BaseSettings):
    """Tunables for the scheduled fetch pipeline"""
    # unset: derived from the report polling budget, see job_timeout
    job_timeout_seconds: Optional[float] = None
    report_poll_attempts: int = 30
    report_poll_delay_seconds: float = 60.0
    # report creation and document download on top of polling
    download_allowance_seconds: float = 300.0
    inter_batch_delay_seconds: float = 0.0
    lookback_days: int = 30
    # UTC hour at which the daily cron fires
    run_hour_utc: int = 2

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def job_timeout(self) -> float:
        """Per-job timeout; never shorter than a job's full polling loop unless set explicitly"""
        if self.job_timeout_seconds is not None:
            return self.job_timeout_seconds
        return self.report_poll_attempts * self.report_poll_delay_seconds + self.download_allowance_seconds


VALID_REGIONS = ("NA", "EU", "FE")

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# SP-API hosts per region
REGION_ENDPOINTS: Dict[str, str] = {
    "NA": "sellingpartnerapi-na.amazon.com",
    "EU": "sellingpartnerapi-eu.amazon.com",
    "FE": "sellingpartnerapi-fe.amazon.com",
}

# Amazon Ads API hosts per region
ADS_ENDPOINTS: Dict[str, str] = {
    "NA": "advertising-api.amazon.com",
    "EU": "advertising-api-eu.amazon.com",
    "FE": "advertising-api-fe.amazon.com",
}

# AWS region used for STS and request signing
SPAPI_REGIONS: Dict[str, Dict[str, str]] = {
    "NA": {"aws_region": "us-east-1"},
    "EU": {"aws_region": "eu-west-1"},
    "FE": {"aws_region": "us-west-2"},
}

MARKETPLACE_IDS: Dict[str, str] = {
    "US": "ATVPDKIKX0DER",
    "CA": "A2EUQ1WTGCTBG2",
    "MX": "A1AM78C64UM0Y8",
    "BR": "A2Q3Y263D00KWC",
    "UK": "A1F83G8C2ARO7P",
    "GB": "A1F83G8C2ARO7P",
    "DE": "A1PA6795UKMFR9",
    "FR": "A13V1IB3VIYZZH",
    "IT": "APJ6JRA9NG5V4",
    "ES": "A1RKKUPIHCS9HS",
    "NL": "A1805IZSGTT6HS",
    "SE": "A2NODRKZP88ZB9",
    "PL": "A1C3SOZRARQ6R3",
    "BE": "AMEN7PMS3EDWL",
    "TR": "A33AVAJ2PDY3EV",
    "AE": "A2VIGQ35RCS4UG",
    "SA": "A17E79C6D8DWNP",
    "EG": "ARBP9OOSHTCHU",
    "IN": "A21TJRUUN4KGV",
    "JP": "A1VC38T7YXB528",
    "AU": "A39IBJ37TRP1C6",
    "SG": "A19VAU5U5O7RUS",
}
