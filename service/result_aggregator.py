"""Reduce a run's job outcomes into a success summary and a result payload"""
import math
from typing import Any, Dict, Iterable, Mapping, Optional

from service.dto import JobOutcome, RunSummary, ServiceFailure, ServiceSummary

# A failure of any of these makes the whole run unsuccessful
CRITICAL_SERVICES = frozenset({"mcpEconomicsData", "v2data", "campaignData"})


def _as_outcome(key: str, value: Any) -> Optional[JobOutcome]:
    if isinstance(value, JobOutcome):
        return value
    if isinstance(value, dict) and isinstance(value.get("success"), bool):
        return JobOutcome(job_key=value.get("job_key", key), data_key=key, success=value["success"],
                          data=value.get("data"), error=value.get("error"), skipped=value.get("skipped", False))
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def generate_service_summary(outcomes: Mapping[str, Any],
                             scheduled_keys: Optional[Iterable[str]] = None) -> ServiceSummary:
    """
    Classify outcomes into successes and failures.

    Values that are not job outcomes are ignored. When `scheduled_keys` is
    given only those keys count, so jobs not scheduled today never show up
    as failures.
    """
    scheduled = list(dict.fromkeys(scheduled_keys)) if scheduled_keys is not None else None
    summary = ServiceSummary()

    keys = scheduled if scheduled is not None else list(outcomes)
    counted = 0
    for key in keys:
        outcome = _as_outcome(key, outcomes.get(key))
        if outcome is None:
            if scheduled is not None:
                # scheduled but never produced an outcome
                counted += 1
                summary.failed.append(ServiceFailure(service=key, error="No result recorded"))
            continue

        counted += 1
        if outcome.success:
            summary.successful.append(key)
            continue

        failure = ServiceFailure(service=key, error=outcome.error or "Unknown error")
        summary.failed.append(failure)
        if outcome.skipped:
            summary.warnings.append(f"{key}: {failure.error}")
        if key in CRITICAL_SERVICES:
            summary.critical_failures.append(failure)

    summary.total_services = counted
    summary.overall_success = not summary.critical_failures
    summary.success_percentage = _round_half_up(len(summary.successful) / counted * 100) if counted else 0
    return summary


def build_run_summary(summary: ServiceSummary) -> RunSummary:
    return RunSummary(
        success=summary.overall_success,
        success_rate=f"{summary.success_percentage}%",
        total_services=summary.total_services,
        successful_services=len(summary.successful),
        failed_services=len(summary.failed),
        warnings=summary.warnings,
        critical_failures=summary.critical_failures,
        failures=summary.failed,
    )


def create_final_result(outcomes: Mapping[str, JobOutcome], merchant_listings: Any = None) -> Dict[str, Any]:
    """Data payload per data key, None for jobs that did not succeed"""
    data: Dict[str, Any] = {
        key: (outcome.data if outcome.success else None)
        for key, outcome in outcomes.items()
        if isinstance(outcome, JobOutcome)
    }
    data["merchantListings"] = merchant_listings if merchant_listings is not None else []
    return data
