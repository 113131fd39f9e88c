from sqlalchemy import BIGINT, Column, Integer, String, Text, TIMESTAMP, Index
from sqlalchemy.sql import func

from core.db import Base


class DataFetchTracking(Base):
    """Audit row for one calendar-affecting scheduled fetch"""
    __tablename__ = "data_fetch_tracking"

    id = Column(BIGINT().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    country = Column(String(8), nullable=False)
    region = Column(String(4), nullable=False)
    session_id = Column(String, comment="Run trace ID for correlation")
    day_name = Column(String(12), nullable=False, comment="UTC weekday name at start")
    date_string = Column(String(10), nullable=False, comment="UTC date at start (YYYY-MM-DD)")
    time_string = Column(String(8), nullable=False, comment="UTC time at start (HH:MM:SS)")
    start_date = Column(String(10), nullable=False, comment="First day of the fetched data range")
    end_date = Column(String(10), nullable=False, comment="Last day of the fetched data range")
    status = Column(String(12), nullable=False, default="pending",
                    comment="pending | completed | partial | failed")
    error_message = Column(Text)
    started_at = Column(TIMESTAMP(timezone=True), nullable=False, default=func.now())
    finished_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        Index("idx_data_fetch_tracking_lookup", "user_id", "country", "region", "started_at"),
    )
