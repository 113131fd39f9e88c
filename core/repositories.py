"""SQLAlchemy repositories used by jobs and the scheduled fetch service"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from core.config import DAY_NAMES
from core.db import SessionLocal
from core.models import DataFetchTracking, ReportSnapshot, SellerAccount, User

logger = logging.getLogger(__name__)


class ReportSnapshotRepository:
    """Latest-wins store of job payloads keyed by user/country/region/data key"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def save(self, user_id: str, country: str, region: str, data_key: str, payload: Any) -> int:
        with self.session_factory() as session:
            snapshot = ReportSnapshot(
                user_id=user_id,
                country=country,
                region=region,
                data_key=data_key,
                payload=payload,
                captured_at=datetime.now(timezone.utc),
            )
            session.add(snapshot)
            session.commit()
            return snapshot.id

    def latest(self, user_id: str, country: str, region: str, data_key: str) -> Optional[Any]:
        """Payload of the most recent snapshot, or None when nothing was persisted"""
        with self.session_factory() as session:
            row = session.execute(
                select(ReportSnapshot.payload)
                .where(
                    ReportSnapshot.user_id == user_id,
                    ReportSnapshot.country == country,
                    ReportSnapshot.region == region,
                    ReportSnapshot.data_key == data_key,
                )
                .order_by(ReportSnapshot.captured_at.desc(), ReportSnapshot.id.desc())
                .limit(1)
            ).first()
            return row[0] if row else None


class SellerAccountRepository:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def user_exists(self, user_id: str) -> bool:
        with self.session_factory() as session:
            return session.get(User, user_id) is not None

    def find_account(self, user_id: str, region: str, country: str) -> Optional[Dict[str, Any]]:
        with self.session_factory() as session:
            account = session.execute(
                select(SellerAccount).where(
                    SellerAccount.user_id == user_id,
                    SellerAccount.region == region,
                    SellerAccount.country == country,
                )
            ).scalar_one_or_none()
            if account is None:
                return None
            return {
                "sp_refresh_token": account.sp_refresh_token,
                "ads_refresh_token": account.ads_refresh_token,
                "profile_id": account.profile_id,
                "seller_id": account.selling_partner_id,
            }

    def list_accounts(self) -> List[Dict[str, str]]:
        """All (user, region, country) triples, grouped by user"""
        with self.session_factory() as session:
            rows = session.execute(
                select(SellerAccount.user_id, SellerAccount.region, SellerAccount.country)
                .order_by(SellerAccount.user_id, SellerAccount.region, SellerAccount.country)
            ).all()
            return [{"user_id": r.user_id, "region": r.region, "country": r.country} for r in rows]


class UserRepository:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get_notification_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.session_factory() as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            return {
                "email": user.email,
                "first_name": user.first_name,
                "analyse_account_success": user.analyse_account_success,
            }

    def clear_analysis_flag(self, user_id: str) -> None:
        with self.session_factory() as session:
            user = session.get(User, user_id)
            if user is not None:
                user.analyse_account_success = 0
                session.commit()


def _tracking_to_dict(entry: DataFetchTracking) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "country": entry.country,
        "region": entry.region,
        "day_name": entry.day_name,
        "date_string": entry.date_string,
        "data_range": {"start_date": entry.start_date, "end_date": entry.end_date},
        "session_id": entry.session_id,
        "status": entry.status,
        "error_message": entry.error_message,
    }


class TrackingRepository:
    """Persistence for data_fetch_tracking rows"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def start_tracking(self, user_id: str, country: str, region: str, data_range: Dict[str, str],
                       session_id: Optional[str] = None) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        with self.session_factory() as session:
            entry = DataFetchTracking(
                user_id=user_id,
                country=country,
                region=region,
                session_id=session_id,
                # isoweekday: Monday=1..Sunday=7
                day_name=DAY_NAMES[now.isoweekday() % 7],
                date_string=now.strftime("%Y-%m-%d"),
                time_string=now.strftime("%H:%M:%S"),
                start_date=data_range["start_date"],
                end_date=data_range["end_date"],
                status="pending",
                started_at=now,
            )
            session.add(entry)
            session.commit()
            return _tracking_to_dict(entry)

    def _finish(self, tracking_id: int, status: str, error_message: Optional[str] = None) -> Dict[str, Any]:
        with self.session_factory() as session:
            entry = session.get(DataFetchTracking, tracking_id)
            if entry is None:
                raise LookupError(f"Tracking entry not found: {tracking_id}")
            entry.status = status
            entry.error_message = error_message
            entry.finished_at = datetime.now(timezone.utc)
            session.commit()
            return _tracking_to_dict(entry)

    def complete_tracking(self, tracking_id: int) -> Dict[str, Any]:
        return self._finish(tracking_id, "completed")

    def mark_partial(self, tracking_id: int) -> Dict[str, Any]:
        return self._finish(tracking_id, "partial")

    def fail_tracking(self, tracking_id: int, error_message: str) -> Dict[str, Any]:
        return self._finish(tracking_id, "failed", error_message)

    def get_latest_fetch(self, user_id: str, country: str, region: str) -> Optional[Dict[str, Any]]:
        history = self.get_fetch_history(user_id, country, region, limit=1, status="completed")
        return history[0] if history else None

    def get_fetch_history(self, user_id: str, country: str, region: str, limit: int = 10,
                          status: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            query = (
                select(DataFetchTracking)
                .where(
                    DataFetchTracking.user_id == user_id,
                    DataFetchTracking.country == country,
                    DataFetchTracking.region == region,
                )
                .order_by(DataFetchTracking.started_at.desc(), DataFetchTracking.id.desc())
                .limit(limit)
            )
            if status:
                query = query.where(DataFetchTracking.status == status)
            return [_tracking_to_dict(e) for e in session.execute(query).scalars()]
