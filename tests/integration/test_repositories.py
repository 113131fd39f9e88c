"""Integration tests for SQLAlchemy repositories against sqlite"""
import pytest

from core.models import SellerAccount, User
from core.repositories import ReportSnapshotRepository, SellerAccountRepository, TrackingRepository, UserRepository
from service.dto import DataRange, ServiceFailure, ServiceSummary
from service.notification_service import AnalysisReadyNotifier, NotificationSettings
from service.tracking_service import TrackingRecorder

RANGE = {"start_date": "2026-09-17", "end_date": "2026-10-17"}


def _seed_account(session_factory, user_id="u1", **kwargs):
    with session_factory() as session:
        session.add(User(id=user_id, email=kwargs.pop("email", None), first_name="Sam",
                         analyse_account_success=kwargs.pop("flag", 0)))
        session.add(SellerAccount(user_id=user_id, country="US", region="NA", selling_partner_id="S1",
                                  sp_refresh_token="sp-rt", ads_refresh_token=None, profile_id=None))
        session.commit()


class TestReportSnapshotRepository:
    """Test latest-wins snapshot storage"""

    def test_latest_returns_newest_payload(self, sqlite_session_factory):
        repo = ReportSnapshotRepository(sqlite_session_factory)
        repo.save("u1", "US", "NA", "ppcSpendsBySKU", {"sponsoredAds": [{"campaignId": "old"}]})
        repo.save("u1", "US", "NA", "ppcSpendsBySKU", {"sponsoredAds": [{"campaignId": "new"}]})

        assert repo.latest("u1", "US", "NA", "ppcSpendsBySKU") == {"sponsoredAds": [{"campaignId": "new"}]}

    def test_latest_is_scoped(self, sqlite_session_factory):
        repo = ReportSnapshotRepository(sqlite_session_factory)
        repo.save("u1", "US", "NA", "v2data", [1])

        assert repo.latest("u1", "UK", "EU", "v2data") is None
        assert repo.latest("u2", "US", "NA", "v2data") is None
        assert repo.latest("u1", "US", "NA", "v1data") is None


class TestSellerAccountRepository:

    def test_find_account(self, sqlite_session_factory):
        _seed_account(sqlite_session_factory)
        repo = SellerAccountRepository(sqlite_session_factory)

        account = repo.find_account("u1", "NA", "US")
        assert account == {"sp_refresh_token": "sp-rt", "ads_refresh_token": None,
                           "profile_id": None, "seller_id": "S1"}
        assert repo.find_account("u1", "EU", "UK") is None
        assert repo.user_exists("u1")
        assert not repo.user_exists("ghost")
        assert repo.list_accounts() == [{"user_id": "u1", "region": "NA", "country": "US"}]


class TestTrackingRepository:
    """Test tracking lifecycle"""

    def test_start_and_complete(self, sqlite_session_factory):
        repo = TrackingRepository(sqlite_session_factory)
        entry = repo.start_tracking("u1", "US", "NA", RANGE, "trace-1")

        assert entry["status"] == "pending"
        assert entry["data_range"] == RANGE
        assert entry["session_id"] == "trace-1"

        repo.complete_tracking(entry["id"])
        latest = repo.get_latest_fetch("u1", "US", "NA")
        assert latest["id"] == entry["id"]
        assert latest["status"] == "completed"

    def test_failed_and_partial_are_not_latest(self, sqlite_session_factory):
        repo = TrackingRepository(sqlite_session_factory)
        first = repo.start_tracking("u1", "US", "NA", RANGE)
        second = repo.start_tracking("u1", "US", "NA", RANGE)
        repo.mark_partial(first["id"])
        repo.fail_tracking(second["id"], "All services failed")

        assert repo.get_latest_fetch("u1", "US", "NA") is None
        history = repo.get_fetch_history("u1", "US", "NA")
        assert {h["status"] for h in history} == {"partial", "failed"}
        failed = repo.get_fetch_history("u1", "US", "NA", status="failed")
        assert failed[0]["error_message"] == "All services failed"

    def test_unknown_entry(self, sqlite_session_factory):
        with pytest.raises(LookupError):
            TrackingRepository(sqlite_session_factory).complete_tracking(999)


class TestTrackingRecorder:

    @pytest.mark.asyncio
    async def test_partial_close(self, sqlite_session_factory):
        recorder = TrackingRecorder(TrackingRepository(sqlite_session_factory))
        entry = await recorder.start("u1", "US", "NA", DataRange(**RANGE), session_id="t")
        summary = ServiceSummary(successful=["v1data"], critical_failures=[ServiceFailure(service="v2data", error="x")],
                                 failed=[ServiceFailure(service="v2data", error="x")], overall_success=False)

        assert await recorder.close(entry, summary) == "partial"

    @pytest.mark.asyncio
    async def test_close_errors_are_swallowed(self, sqlite_session_factory):
        recorder = TrackingRecorder(TrackingRepository(sqlite_session_factory))
        entry = await recorder.start("u1", "US", "NA", DataRange(**RANGE))
        entry.id = 12345

        assert await recorder.close(entry, ServiceSummary()) is None


class TestAnalysisReadyNotifier:
    """Test the one-time analysis ready email"""

    def _notifier(self, session_factory, sent):
        notifier = AnalysisReadyNotifier(UserRepository(session_factory),
                                         NotificationSettings(smtp_host="smtp.test"))
        notifier._send = lambda to, subject, body: sent.append((to, subject, body))
        return notifier

    @pytest.mark.asyncio
    async def test_sends_once_and_clears_flag(self, sqlite_session_factory):
        _seed_account(sqlite_session_factory, email="sam@example.com", flag=1)
        sent = []
        notifier = self._notifier(sqlite_session_factory, sent)

        assert await notifier.notify("u1", "US", "NA", "90%")
        assert not await notifier.notify("u1", "US", "NA", "90%")
        assert len(sent) == 1
        assert sent[0][0] == "sam@example.com"
        assert "Hi Sam" in sent[0][2]
        assert UserRepository(sqlite_session_factory).get_notification_profile("u1")["analyse_account_success"] == 0

    @pytest.mark.asyncio
    async def test_no_flag_no_email(self, sqlite_session_factory):
        _seed_account(sqlite_session_factory, email="sam@example.com", flag=0)
        sent = []

        assert not await self._notifier(sqlite_session_factory, sent).notify("u1", "US", "NA")
        assert sent == []
