from sqlalchemy import BIGINT, JSON, Column, Integer, String, TIMESTAMP, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from core.db import Base


class ReportSnapshot(Base):
    """Payload persisted by one data-source job for one user/country/region"""
    __tablename__ = "report_snapshots"

    id = Column(BIGINT().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, comment="Owning user")
    country = Column(String(8), nullable=False)
    region = Column(String(4), nullable=False)
    data_key = Column(String, nullable=False, comment="Schedule data key (e.g., ppcSpendsBySKU)")
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), comment="Normalized job payload")
    captured_at = Column(TIMESTAMP(timezone=True), nullable=False,
                         default=func.now(), comment="Snapshot capture time (UTC)")

    __table_args__ = (
        Index("idx_report_snapshots_lookup", "user_id", "country", "region", "data_key", "captured_at"),
    )
