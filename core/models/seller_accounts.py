from sqlalchemy import BIGINT, Column, Integer, String, Text, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from core.db import Base


class User(Base):
    """Dashboard user owning one or more seller accounts"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, comment="User ID")
    email = Column(Text, comment="Notification email address")
    first_name = Column(Text, comment="Greeting name for emails")
    analyse_account_success = Column(Integer, nullable=False, default=0,
                                     comment="1 while an 'analysis ready' email is owed")
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    seller_accounts = relationship("SellerAccount", back_populates="user")


class SellerAccount(Base):
    """Amazon seller account per user/region/country with long-lived refresh tokens"""
    __tablename__ = "seller_accounts"

    id = Column(BIGINT().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, comment="Owning user")
    country = Column(String(8), nullable=False, comment="Marketplace country code (e.g., US)")
    region = Column(String(4), nullable=False, comment="SP-API region (NA, EU, FE)")
    selling_partner_id = Column(Text, comment="Seller ID")
    sp_refresh_token = Column(Text, comment="SP-API LWA refresh token")
    ads_refresh_token = Column(Text, comment="Amazon Ads LWA refresh token")
    profile_id = Column(Text, comment="Amazon Ads profile ID")

    user = relationship("User", back_populates="seller_accounts")

    __table_args__ = (
        Index("idx_seller_accounts_user_region_country", "user_id", "region", "country", unique=True),
    )
