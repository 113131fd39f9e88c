import asyncio
import functools
import logging
from typing import Any, Optional

from core.repositories import ReportSnapshotRepository

logger = logging.getLogger(__name__)


def _is_failure(result: Any) -> bool:
    if result is False:
        return True
    return isinstance(result, dict) and result.get("success") is False


async def save_snapshot(user_id: str, country: str, region: str, data_key: str, payload: Any,
                        repository: Optional[ReportSnapshotRepository] = None) -> None:
    """Persist one job payload; storage errors are logged, never raised"""
    repository = repository or ReportSnapshotRepository()
    try:
        await asyncio.to_thread(repository.save, user_id, country, region, data_key, payload)
    except Exception as e:
        logger.error(f"Failed to persist {data_key} snapshot: {e}", extra={
            "user_id": user_id,
            "country": country,
            "region": region,
            "data_key": data_key,
        })


def persist_snapshot(data_key: str):
    """
    Store a job's successful payload in report_snapshots.

    The wrapped job must accept user_id, country and region keyword arguments.
    An optional `snapshots` keyword names the run's repository and is consumed
    here, not passed to the job. Failure-shaped results are returned untouched
    and not stored.
    """
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(**kwargs):
            repository = kwargs.pop("snapshots", None)
            result = await fn(**kwargs)
            if not _is_failure(result):
                payload = result.get("data") if isinstance(result, dict) and "success" in result else result
                await save_snapshot(kwargs["user_id"], kwargs["country"], kwargs["region"], data_key, payload,
                                    repository)
            return result
        return wrapper
    return decorator
