"""Scheduled multi-source data fetch for one seller account"""
import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from collection.jobs.sp_api_jobs import extract_product_data, fetch_merchant_listings
from core.config import DAY_NAMES, SchedulerSettings
from core.db import ping_database
from core.repositories import ReportSnapshotRepository, SellerAccountRepository
from schedule.schedule_table import ScheduleEntry, get_functions_for_day
from service.batch_scheduler import BatchScheduler
from service.credential_provider import CredentialProvider
from service.dependency_resolver import DependencyResolver
from service.dto import RunResult
from service.errors import ScheduledFetchError, ValidationError
from service.job_adapter import JobAdapter
from service.notification_service import AnalysisReadyNotifier
from service.result_aggregator import build_run_summary, create_final_result, generate_service_summary
from service.run_context import RunContext
from service.run_setup import load_seller_account, resolve_region_config, validate_inputs
from service.token_store import ADS_API, SP_API, TokenStore
from service.tracking_service import TrackingRecorder, compute_data_range, is_tracking_day

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "IDLE"
    VALIDATING_INPUT = "VALIDATING_INPUT"
    RESOLVING_CONFIG = "RESOLVING_CONFIG"
    RESOLVING_SELLER_ACCOUNT = "RESOLVING_SELLER_ACCOUNT"
    RESOLVING_CREDENTIALS = "RESOLVING_CREDENTIALS"
    RESOLVING_TOKENS = "RESOLVING_TOKENS"
    BATCH_1 = "BATCH_1"
    BATCH_2 = "BATCH_2"
    BATCH_3 = "BATCH_3"
    BATCH_4 = "BATCH_4"
    AGGREGATING = "AGGREGATING"
    DONE = "DONE"


def utc_day_of_week(now: Optional[datetime] = None) -> int:
    """0=Sunday .. 6=Saturday, in UTC"""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoweekday() % 7


class ScheduledFetchService:
    """
    State machine behind run_scheduled_fetch.

    Collaborators are injectable so the whole flow can run against fakes;
    defaults talk to the database and Amazon.
    """

    def __init__(
        self,
        seller_accounts: Optional[SellerAccountRepository] = None,
        credential_provider: Optional[CredentialProvider] = None,
        tracking: Optional[TrackingRecorder] = None,
        notifier: Optional[AnalysisReadyNotifier] = None,
        snapshots: Optional[ReportSnapshotRepository] = None,
        job_overrides: Optional[Dict[str, Callable[..., Awaitable[Any]]]] = None,
        fetch_listings: Optional[Callable[..., Awaitable[Any]]] = fetch_merchant_listings,
        ping_db: Callable[[], bool] = ping_database,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.seller_accounts = seller_accounts or SellerAccountRepository()
        self.credential_provider = credential_provider or CredentialProvider()
        self.tracking = tracking or TrackingRecorder()
        self.notifier = notifier or AnalysisReadyNotifier()
        self.snapshots = snapshots or ReportSnapshotRepository()
        self.job_overrides = job_overrides or {}
        self.fetch_listings = fetch_listings
        self.ping_db = ping_db
        self.settings = settings or SchedulerSettings()
        self.clock = clock
        self.state = RunState.IDLE
        self.state_history: List[RunState] = [RunState.IDLE]

    def _transition(self, state: RunState, trace_id: str, user_id: Optional[str]) -> None:
        self.state = state
        self.state_history.append(state)
        logger.info(f"Scheduled fetch entering {state.value}", extra={
            "trace_id": trace_id, "user_id": user_id, "state": state.value,
        })

    def _entries_for_day(self, day_of_week: int) -> List[ScheduleEntry]:
        entries = []
        for entry in get_functions_for_day(day_of_week).values():
            override = self.job_overrides.get(entry.job_key)
            entries.append(dataclasses.replace(entry, job_fn=override) if override else entry)
        return entries

    async def _load_product_data(self, ctx: RunContext) -> Any:
        """Merchant listings drive the ASIN based jobs; failure here is not fatal"""
        if not ctx.access_token or self.fetch_listings is None:
            return []
        try:
            listings = await self.fetch_listings(
                user_id=ctx.user_id,
                country=ctx.country,
                region=ctx.region,
                access_token=ctx.access_token,
                base_uri=ctx.base_uri,
                marketplace_ids=ctx.marketplace_ids,
                refresh_access_token=ctx.refresh_access_token,
                snapshots=self.snapshots,
            )
        except Exception as e:
            logger.warning(f"Merchant listings unavailable: {e}", extra={
                "trace_id": ctx.trace_id, "user_id": ctx.user_id,
            })
            return []
        ctx.product_data = extract_product_data(listings)
        logger.info(f"Loaded {len(ctx.product_data.asins)} active ASINs", extra={
            "trace_id": ctx.trace_id, "user_id": ctx.user_id,
        })
        return listings

    async def _setup(self, user_id, region, country, day_of_week_override, trace_id) -> RunContext:
        self._transition(RunState.VALIDATING_INPUT, trace_id, user_id)
        validate_inputs(user_id, region, country)
        region, country = region.upper(), country.upper()

        day_of_week = day_of_week_override if day_of_week_override is not None else utc_day_of_week(self.clock())
        try:
            get_functions_for_day(day_of_week)
        except ValueError as e:
            raise ValidationError(str(e))

        try:
            db_ok = await asyncio.to_thread(self.ping_db)
        except Exception as e:
            logger.error(f"Database ping failed: {e}", extra={"trace_id": trace_id, "user_id": user_id})
            db_ok = False
        if not db_ok:
            raise ValidationError("Database connection unavailable", status_code=500)

        self._transition(RunState.RESOLVING_CONFIG, trace_id, user_id)
        region_config = resolve_region_config(region, country)

        self._transition(RunState.RESOLVING_SELLER_ACCOUNT, trace_id, user_id)
        account = await asyncio.to_thread(load_seller_account, self.seller_accounts, user_id, region, country)

        self._transition(RunState.RESOLVING_CREDENTIALS, trace_id, user_id)
        cloud_credentials = await self.credential_provider.resolve_credentials(region_config)

        self._transition(RunState.RESOLVING_TOKENS, trace_id, user_id)
        tokens = await self.credential_provider.resolve_tokens(
            user_id, account.get("sp_refresh_token"), account.get("ads_refresh_token")
        )

        store = TokenStore(user_id, tokens.access_token, tokens.ads_access_token)
        provider = self.credential_provider
        return RunContext(
            user_id=user_id,
            country=country,
            region=region,
            day_of_week=day_of_week,
            region_config=region_config,
            tokens=store,
            refresh_token=account.get("sp_refresh_token"),
            ads_refresh_token=account.get("ads_refresh_token"),
            profile_id=account.get("profile_id"),
            seller_id=account.get("seller_id"),
            cloud_credentials=cloud_credentials,
            refresh_access_token=provider.make_refresh_callback(
                user_id, account.get("sp_refresh_token"), store, SP_API
            ),
            refresh_ads_access_token=provider.make_refresh_callback(
                user_id, account.get("ads_refresh_token"), store, ADS_API
            ),
            trace_id=trace_id,
            snapshots=self.snapshots,
        )

    async def run(self, user_id: str, region: str, country: str,
                  day_of_week_override: Optional[int] = None) -> RunResult:
        trace_id = f"scheduled_fetch_{user_id}_{self.clock().strftime('%Y%m%d_%H%M%S')}"
        tracking_entry = None

        try:
            ctx = await self._setup(user_id, region, country, day_of_week_override, trace_id)

            if is_tracking_day(ctx.day_of_week):
                tracking_entry = await self.tracking.start(
                    ctx.user_id, ctx.country, ctx.region, compute_data_range(self.clock(), self.settings.lookback_days),
                    session_id=trace_id,
                )

            entries = self._entries_for_day(ctx.day_of_week)
            logger.info(f"Running {len(entries)} jobs for {DAY_NAMES[ctx.day_of_week]}", extra={
                "trace_id": trace_id, "user_id": user_id, "country": ctx.country, "region": ctx.region,
            })
            listings = await self._load_product_data(ctx)

            scheduler = BatchScheduler(
                JobAdapter(ctx, self.settings.job_timeout),
                DependencyResolver(self.snapshots),
                self.settings.inter_batch_delay_seconds,
            )
            outcomes = await scheduler.run(
                entries,
                on_batch_start=lambda index, _: self._transition(RunState[f"BATCH_{index}"], trace_id, user_id),
            )

            self._transition(RunState.AGGREGATING, trace_id, user_id)
            summary = generate_service_summary(outcomes, scheduled_keys=[e.data_key for e in entries])
            run_summary = build_run_summary(summary)
            data = create_final_result(outcomes, listings)

            await self.tracking.close(tracking_entry, summary)
            if summary.overall_success:
                await self.notifier.notify(ctx.user_id, ctx.country, ctx.region, run_summary.success_rate)

            self._transition(RunState.DONE, trace_id, user_id)
            status_code = 200 if summary.overall_success else 207
            error = None
            if summary.critical_failures:
                error = "Critical services failed: " + ", ".join(f.service for f in summary.critical_failures)

            logger.info(f"Scheduled fetch finished ({run_summary.success_rate} succeeded)", extra={
                "trace_id": trace_id, "user_id": user_id, "state": RunState.DONE.value,
            })
            return RunResult(success=summary.overall_success, status_code=status_code, data=data,
                             error=error, summary=run_summary)

        except ScheduledFetchError as e:
            logger.error(f"Scheduled fetch aborted in {self.state.value}: {e.message}", extra={
                "trace_id": trace_id, "user_id": user_id, "state": self.state.value,
            })
            self._transition(RunState.DONE, trace_id, user_id)
            return RunResult(success=False, status_code=e.status_code, error=e.message)

        except Exception as e:
            logger.exception(f"Unexpected error in scheduled fetch: {e}", extra={
                "trace_id": trace_id, "user_id": user_id, "state": self.state.value,
            })
            await self.tracking.fail(tracking_entry, str(e))
            self._transition(RunState.DONE, trace_id, user_id)
            return RunResult(success=False, status_code=500, error=f"Unexpected error: {e}")


async def run_scheduled_fetch(user_id: str, region: str, country: str, day_of_week_override: Optional[int] = None,
                              service: Optional[ScheduledFetchService] = None) -> RunResult:
    """Run today's (or the overridden day's) scheduled jobs for one seller account"""
    service = service or ScheduledFetchService()
    return await service.run(user_id, region, country, day_of_week_override)
