"""Audit trail for runs that refresh calendar-affecting data"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.config import SchedulerSettings
from core.repositories import TrackingRepository
from service.dto import DataRange, ServiceSummary, TrackingEntryDTO

logger = logging.getLogger(__name__)

# Mon/Wed/Fri: the days the calendar-affecting Ads reports run
TRACKING_DAYS = (1, 3, 5)


def is_tracking_day(day_of_week: int) -> bool:
    return day_of_week in TRACKING_DAYS


def compute_data_range(now: Optional[datetime] = None, lookback_days: Optional[int] = None) -> DataRange:
    """Lookback window ending yesterday (UTC), as YYYY-MM-DD strings"""
    now = now or datetime.now(timezone.utc)
    if lookback_days is None:
        lookback_days = SchedulerSettings().lookback_days
    end = now.astimezone(timezone.utc).date() - timedelta(days=1)
    start = end - timedelta(days=lookback_days)
    return DataRange(start_date=start.isoformat(), end_date=end.isoformat())


class TrackingRecorder:
    """Starts and closes data_fetch_tracking entries; tracking failures never fail a run"""

    def __init__(self, repository: Optional[TrackingRepository] = None):
        self.repository = repository or TrackingRepository()

    async def start(self, user_id: str, country: str, region: str, data_range: DataRange,
                    session_id: Optional[str] = None) -> Optional[TrackingEntryDTO]:
        try:
            row = await asyncio.to_thread(
                self.repository.start_tracking, user_id, country, region, data_range.model_dump(), session_id
            )
        except Exception as e:
            logger.warning(f"Failed to start tracking (non-critical): {e}", extra={
                "user_id": user_id, "country": country, "region": region,
            })
            return None

        entry = TrackingEntryDTO(**row)
        logger.info(f"Data fetch tracking started ({entry.day_name} {entry.date_string})", extra={
            "user_id": user_id, "country": country, "region": region,
        })
        return entry

    async def close(self, entry: Optional[TrackingEntryDTO], summary: ServiceSummary) -> Optional[str]:
        """
        Record how the run ended.

        Returns the status written: completed on overall success, partial when
        some jobs succeeded and some failed, failed when nothing succeeded.
        """
        if entry is None:
            return None

        if summary.overall_success:
            status, call = "completed", (self.repository.complete_tracking, entry.id)
        elif summary.successful and summary.failed:
            status, call = "partial", (self.repository.mark_partial, entry.id)
        else:
            status, call = "failed", (self.repository.fail_tracking, entry.id, "All services failed")

        try:
            await asyncio.to_thread(*call)
        except Exception as e:
            logger.warning(f"Failed to close tracking entry {entry.id} (non-critical): {e}",
                           extra={"user_id": entry.user_id})
            return None
        return status

    async def fail(self, entry: Optional[TrackingEntryDTO], message: str) -> None:
        if entry is None:
            return
        try:
            await asyncio.to_thread(self.repository.fail_tracking, entry.id, message)
        except Exception as e:
            logger.warning(f"Failed to mark tracking entry {entry.id} failed (non-critical): {e}",
                           extra={"user_id": entry.user_id})
