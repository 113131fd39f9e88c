"""In-memory fakes for repositories, recorders and jobs used across the test suite"""
import asyncio
import time
from typing import Any, Dict, List, Optional

from service.dto import TrackingEntryDTO


class FakeSnapshots:
    """In-memory stand-in for ReportSnapshotRepository"""

    def __init__(self, stored: Optional[Dict[str, Any]] = None, fail: bool = False):
        self.stored = dict(stored or {})
        self.fail = fail
        self.saved: List[tuple] = []

    def latest(self, user_id, country, region, data_key):
        if self.fail:
            raise RuntimeError("snapshot store unavailable")
        return self.stored.get(data_key)

    def save(self, user_id, country, region, data_key, payload):
        self.saved.append((user_id, country, region, data_key, payload))
        self.stored[data_key] = payload
        return len(self.saved)


class FakeSellerAccounts:
    def __init__(self, accounts: Optional[Dict[tuple, Dict[str, Any]]] = None):
        self.accounts = accounts or {}

    def find_account(self, user_id, region, country):
        return self.accounts.get((user_id, region, country))

    def list_accounts(self):
        return [{"user_id": u, "region": r, "country": c} for (u, r, c) in self.accounts]


class FakeTracking:
    """Records tracking calls instead of writing rows"""

    def __init__(self):
        self.started: List[tuple] = []
        self.closed: List[str] = []
        self.failed: List[str] = []

    async def start(self, user_id, country, region, data_range, session_id=None):
        self.started.append((user_id, country, region, data_range))
        return TrackingEntryDTO(id=len(self.started), user_id=user_id, country=country, region=region,
                                day_name="Monday", date_string="2026-10-19", data_range=data_range,
                                session_id=session_id)

    async def close(self, entry, summary):
        if entry is None:
            return None
        if summary.overall_success:
            status = "completed"
        elif summary.successful and summary.failed:
            status = "partial"
        else:
            status = "failed"
        self.closed.append(status)
        return status

    async def fail(self, entry, message):
        if entry is not None:
            self.failed.append(message)


class FakeNotifier:
    def __init__(self):
        self.calls: List[tuple] = []

    async def notify(self, user_id, country, region, success_rate=None):
        self.calls.append((user_id, country, region, success_rate))
        return True


class JobRecorder:
    """Builds fake job functions that record when they ran and with which arguments"""

    def __init__(self):
        self.calls: Dict[str, Dict[str, Any]] = {}
        self.started_at: Dict[str, float] = {}
        self.finished_at: Dict[str, float] = {}

    def job(self, job_key: str, result: Any = None, delay: float = 0.0, raises: Optional[Exception] = None):
        async def fn(**kwargs):
            self.started_at[job_key] = time.monotonic()
            self.calls[job_key] = kwargs
            if delay:
                await asyncio.sleep(delay)
            self.finished_at[job_key] = time.monotonic()
            if raises is not None:
                raise raises
            return result if result is not None else {"job": job_key}
        fn.__name__ = f"fake_{job_key}"
        return fn
