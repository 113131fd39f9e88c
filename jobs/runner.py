# APScheduler orchestrator: daily scheduled fetch for every seller account
from __future__ import annotations
import asyncio
import logging
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from core.config import SchedulerSettings
from core.logging import setup_json_logging
from core.repositories import SellerAccountRepository
from service.scheduled_fetch_service import run_scheduled_fetch

log = logging.getLogger("runner")

def safe(fn):
    def _wrap():
        try:
            fn()
        except Exception:
            log.exception("Job failed: %s", getattr(fn, "__name__", "unknown"))
    return _wrap


async def _run_all_accounts() -> int:
    """Accounts run one after another so the same user is never fetched concurrently"""
    accounts = await asyncio.to_thread(SellerAccountRepository().list_accounts)
    failures = 0
    for account in accounts:
        result = await run_scheduled_fetch(account["user_id"], account["region"], account["country"])
        if not result.success:
            failures += 1
        log.info("Scheduled fetch finished", extra={
            "user_id": account["user_id"],
            "region": account["region"],
            "country": account["country"],
        })
    log.info("Daily scheduled fetch complete: %d accounts, %d unsuccessful", len(accounts), failures)
    return failures


def scheduled_fetch_all():
    asyncio.run(_run_all_accounts())


if __name__ == "__main__":
    setup_json_logging()
    settings = SchedulerSettings()
    sched = BlockingScheduler(timezone="UTC")
    # once a day; day-of-week job selection uses the UTC date at run time
    sched.add_job(safe(scheduled_fetch_all), CronTrigger(hour=str(settings.run_hour_utc), minute="0"))
    log.info("Scheduler starting (UTC)...")
    try:
        sched.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("Scheduler stopped.")
