"""Unit tests for batch sequencing and dependency resolution"""
import pytest

from schedule.schedule_table import CredentialKind, JobKind, ScheduleEntry
from service.batch_scheduler import BatchScheduler
from service.dependency_resolver import DependencyResolver, extract_ids
from service.dto import JobOutcome
from service.job_adapter import JobAdapter
from tests.fakes import FakeSnapshots


def _entry(key, job_fn, batch, kind=JobKind.CALCULATION):
    return ScheduleEntry(key, key, CredentialKind.NONE, key, job_fn, batch, kind)


class TestBatchScheduler:
    """Test batches run strictly one after another"""

    @pytest.mark.asyncio
    async def test_next_batch_waits_for_slowest_job(self, make_context, recorder):
        """Test batch 3 starts only after every batch 2 job settled, including a slow one"""
        entries = [
            _entry("fast2", recorder.job("fast2"), 2),
            _entry("slow2", recorder.job("slow2", delay=0.2), 2),
            _entry("first3", recorder.job("first3"), 3),
            _entry("first1", recorder.job("first1"), 1),
        ]
        scheduler = BatchScheduler(JobAdapter(make_context(), 5), DependencyResolver(FakeSnapshots()))
        outcomes = await scheduler.run(entries)

        assert set(outcomes) == {"fast2", "slow2", "first3", "first1"}
        assert recorder.started_at["fast2"] >= recorder.finished_at["first1"]
        assert recorder.started_at["first3"] >= recorder.finished_at["slow2"]
        assert recorder.started_at["first3"] >= recorder.finished_at["fast2"]

    @pytest.mark.asyncio
    async def test_jobs_in_one_batch_run_concurrently(self, make_context, recorder):
        entries = [_entry(f"j{i}", recorder.job(f"j{i}", delay=0.1), 1) for i in range(3)]
        scheduler = BatchScheduler(JobAdapter(make_context(), 5), DependencyResolver(FakeSnapshots()))
        await scheduler.run(entries)

        latest_start = max(recorder.started_at.values())
        earliest_finish = min(recorder.finished_at.values())
        assert latest_start <= earliest_finish

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_later_batches(self, make_context, recorder):
        entries = [
            _entry("broken", recorder.job("broken", raises=RuntimeError("down")), 1),
            _entry("later", recorder.job("later"), 4),
        ]
        scheduler = BatchScheduler(JobAdapter(make_context(), 5), DependencyResolver(FakeSnapshots()))
        outcomes = await scheduler.run(entries)

        assert not outcomes["broken"].success
        assert outcomes["later"].success

    @pytest.mark.asyncio
    async def test_batch_callback_sees_every_batch_in_order(self, make_context, recorder):
        seen = []
        scheduler = BatchScheduler(JobAdapter(make_context(), 5), DependencyResolver(FakeSnapshots()))
        await scheduler.run([_entry("only", recorder.job("only"), 3)],
                            on_batch_start=lambda index, batch: seen.append((index, len(batch))))
        assert seen == [(1, 0), (2, 0), (3, 1), (4, 0)]

    @pytest.mark.asyncio
    async def test_dependent_job_receives_ids_from_batch_one(self, make_context, recorder):
        """Test ad group job gets campaign ids from this run when nothing is stored"""
        sponsored = {"sponsoredAds": [{"campaignId": "c1", "adGroupId": "g1"},
                                      {"campaignId": "c1", "adGroupId": "g2"}]}
        entries = [
            ScheduleEntry("ppcSpendsBySKU", "", CredentialKind.ADS_API, "ppcSpendsBySKU",
                          recorder.job("ppcSpendsBySKU", result=sponsored), 1, JobKind.ADS_REPORT),
            ScheduleEntry("adGroupsData", "", CredentialKind.ADS_API, "adGroupsData",
                          recorder.job("adGroupsData", result=[]), 3, JobKind.ADS_CAMPAIGN_DEPENDENT),
        ]
        scheduler = BatchScheduler(JobAdapter(make_context(), 5), DependencyResolver(FakeSnapshots()))
        await scheduler.run(entries)

        assert recorder.calls["adGroupsData"]["campaign_ids"] == ["c1"]


class TestDependencyResolver:
    """Test campaign and ad group id resolution"""

    def test_extract_ids_dedupes_in_order(self):
        rows = [
            {"campaignId": 2, "adGroupId": "b"},
            {"campaignId": 1, "adGroupId": "a"},
            {"campaignId": 2, "adGroupId": "a"},
            {"campaignId": None},
        ]
        deps = extract_ids(rows)
        assert deps.campaign_ids == ["2", "1"]
        assert deps.ad_group_ids == ["b", "a"]

    @pytest.mark.asyncio
    async def test_prefers_stored_snapshot(self):
        snapshots = FakeSnapshots({"ppcSpendsBySKU": {"sponsoredAds": [{"campaignId": "stored", "adGroupId": "g"}]}})
        live = JobOutcome(job_key="ppcSpendsBySKU", data_key="ppcSpendsBySKU", success=True,
                          data={"sponsoredAds": [{"campaignId": "live"}]})
        deps = await DependencyResolver(snapshots).resolve_campaign_and_ad_group_ids(live, "u1", "NA", "US")
        assert deps.campaign_ids == ["stored"]

    @pytest.mark.asyncio
    async def test_falls_back_to_live_result(self):
        live = JobOutcome(job_key="ppcSpendsBySKU", data_key="ppcSpendsBySKU", success=True,
                          data={"sponsoredAds": [{"campaignId": "live", "adGroupId": "lg"}]})
        deps = await DependencyResolver(FakeSnapshots()).resolve_campaign_and_ad_group_ids(live, "u1", "NA", "US")
        assert deps.campaign_ids == ["live"]
        assert deps.ad_group_ids == ["lg"]

    @pytest.mark.asyncio
    async def test_failed_live_result_gives_empty_ids(self):
        live = JobOutcome(job_key="ppcSpendsBySKU", data_key="ppcSpendsBySKU", success=False, error="x")
        deps = await DependencyResolver(FakeSnapshots()).resolve_campaign_and_ad_group_ids(live, "u1", "NA", "US")
        assert deps.campaign_ids == []
        assert deps.ad_group_ids == []

    @pytest.mark.asyncio
    async def test_lookup_error_gives_empty_ids(self):
        deps = await DependencyResolver(FakeSnapshots(fail=True)).resolve_campaign_and_ad_group_ids(
            None, "u1", "NA", "US"
        )
        assert deps.campaign_ids == []
