"""Campaign and ad group ids consumed by dependent Ads jobs"""
import asyncio
import logging
from typing import Any, Iterable, List, Optional

from core.repositories import ReportSnapshotRepository
from service.dto import JobOutcome
from service.run_context import ResolvedDependencies

logger = logging.getLogger(__name__)

SOURCE_DATA_KEY = "ppcSpendsBySKU"


def _sponsored_ads(payload: Any) -> Optional[List[dict]]:
    if isinstance(payload, dict) and isinstance(payload.get("sponsoredAds"), list):
        return payload["sponsoredAds"]
    return None


def _unique(values: Iterable[Any]) -> List[str]:
    seen = {}
    for value in values:
        if value:
            seen.setdefault(str(value), None)
    return list(seen)


def extract_ids(rows: List[dict]) -> ResolvedDependencies:
    """Distinct campaign and ad group ids in first-seen order"""
    rows = [r for r in rows if isinstance(r, dict)]
    return ResolvedDependencies(
        campaign_ids=_unique(r.get("campaignId") for r in rows),
        ad_group_ids=_unique(r.get("adGroupId") for r in rows),
    )


class DependencyResolver:
    def __init__(self, snapshots: Optional[ReportSnapshotRepository] = None):
        self.snapshots = snapshots or ReportSnapshotRepository()

    async def resolve_campaign_and_ad_group_ids(self, batch1_outcome: Optional[JobOutcome], user_id: str,
                                                region: str, country: str) -> ResolvedDependencies:
        """
        Prefer the stored sponsored ads snapshot, fall back to this run's batch 1 result.

        Lookup errors are logged and yield empty id lists.
        """
        try:
            stored = await asyncio.to_thread(self.snapshots.latest, user_id, country, region, SOURCE_DATA_KEY)
            rows = _sponsored_ads(stored)
            if rows is not None:
                resolved = extract_ids(rows)
                logger.info(
                    f"Resolved {len(resolved.campaign_ids)} campaign ids and "
                    f"{len(resolved.ad_group_ids)} ad group ids from stored data",
                    extra={"user_id": user_id, "data_key": SOURCE_DATA_KEY},
                )
                return resolved

            logger.warning("No stored sponsored ads data found, falling back to live PPC data",
                           extra={"user_id": user_id, "data_key": SOURCE_DATA_KEY})
            live = batch1_outcome.data if batch1_outcome is not None and batch1_outcome.success else None
            return extract_ids(_sponsored_ads(live) or [])
        except Exception as e:
            logger.error(f"Dependency resolution failed: {e}", extra={"user_id": user_id})
            return ResolvedDependencies()
