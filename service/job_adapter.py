"""Uniform invocation of scheduled jobs: credential gating, argument building, result normalization"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

from collection.clients.http import is_unauthorized_error
from core.config import SchedulerSettings
from schedule.schedule_table import CredentialKind, ScheduleEntry
from service.dto import JobOutcome
from service.errors import JobSkip
from service.run_context import ResolvedDependencies, RunContext

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_ERRORS = {
    CredentialKind.SP_API: "SP-API token not available",
    CredentialKind.ADS_API: "Ads token not available",
    CredentialKind.REFRESH_TOKEN: "Refresh token not available",
}

GENERIC_FAILURE = "Function returned failure indicator"


def normalize_result(job_key: str, data_key: str, result: Any) -> JobOutcome:
    """Collapse the job result shapes into one JobOutcome"""
    if result is False:
        return JobOutcome(job_key=job_key, data_key=data_key, success=False, error=GENERIC_FAILURE)

    if isinstance(result, dict) and "success" in result:
        if result["success"] is False:
            error = result.get("message") or result.get("error") or GENERIC_FAILURE
            return JobOutcome(job_key=job_key, data_key=data_key, success=False, error=str(error))
        if result["success"] is True and "data" in result:
            return JobOutcome(job_key=job_key, data_key=data_key, success=True, data=result["data"])

    return JobOutcome(job_key=job_key, data_key=data_key, success=True, data=result)


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class JobAdapter:
    """Invokes ScheduleEntry jobs for one run; never raises"""

    def __init__(self, context: RunContext, timeout_seconds: Optional[float] = None):
        self.context = context
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else SchedulerSettings().job_timeout

    def missing_credential(self, entry: ScheduleEntry) -> Optional[str]:
        ctx = self.context
        available = {
            CredentialKind.NONE: True,
            CredentialKind.SP_API: bool(ctx.access_token),
            CredentialKind.ADS_API: bool(ctx.ads_access_token),
            CredentialKind.REFRESH_TOKEN: bool(ctx.refresh_token),
        }
        if available[entry.credential]:
            return None
        return MISSING_CREDENTIAL_ERRORS[entry.credential]

    def _skip(self, entry: ScheduleEntry, reason: str) -> JobOutcome:
        logger.warning(f"Skipping {entry.job_key}: {reason}", extra={
            "trace_id": self.context.trace_id,
            "user_id": self.context.user_id,
            "job_key": entry.job_key,
            "batch": entry.batch_index,
        })
        return JobOutcome(job_key=entry.job_key, data_key=entry.data_key, success=False, error=reason, skipped=True)

    async def _call(self, entry: ScheduleEntry, kwargs: Dict[str, Any]) -> Any:
        return await asyncio.wait_for(entry.job_fn(**kwargs), timeout=self.timeout_seconds)

    async def _refresh_for(self, entry: ScheduleEntry) -> bool:
        if entry.credential == CredentialKind.SP_API:
            refresh = self.context.refresh_access_token
        elif entry.credential == CredentialKind.ADS_API:
            refresh = self.context.refresh_ads_access_token
        else:
            return False
        await refresh()
        return True

    async def invoke(self, entry: ScheduleEntry, dependencies: Optional[ResolvedDependencies] = None) -> JobOutcome:
        dependencies = dependencies or ResolvedDependencies()
        log_extra = {
            "trace_id": self.context.trace_id,
            "user_id": self.context.user_id,
            "job_key": entry.job_key,
            "data_key": entry.data_key,
            "batch": entry.batch_index,
        }

        missing = self.missing_credential(entry)
        if missing:
            return self._skip(entry, missing)

        start = time.perf_counter()
        try:
            try:
                result = await self._call(entry, entry.build_args(self.context, dependencies))
            except JobSkip:
                raise
            except Exception as e:
                if not is_unauthorized_error(e) or not await self._refresh_for(entry):
                    raise
                logger.warning(f"{entry.job_key} unauthorized, retrying with refreshed token", extra=log_extra)
                result = await self._call(entry, entry.build_args(self.context, dependencies))
        except JobSkip as e:
            return self._skip(entry, e.reason)
        except asyncio.TimeoutError:
            error = f"Timed out after {self.timeout_seconds:g} seconds"
            logger.error(f"{entry.job_key} failed: {error}", extra=log_extra)
            return JobOutcome(job_key=entry.job_key, data_key=entry.data_key, success=False, error=error)
        except Exception as e:
            logger.error(f"{entry.job_key} failed: {_error_message(e)}", extra=log_extra)
            return JobOutcome(job_key=entry.job_key, data_key=entry.data_key, success=False,
                              error=_error_message(e))

        outcome = normalize_result(entry.job_key, entry.data_key, result)
        latency_ms = int((time.perf_counter() - start) * 1000)
        if outcome.success:
            logger.info(f"{entry.job_key} completed", extra={**log_extra, "latency_ms": latency_ms})
        else:
            logger.error(f"{entry.job_key} failed: {outcome.error}", extra={**log_extra, "latency_ms": latency_ms})
        return outcome
