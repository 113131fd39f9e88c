"""Common test fixtures for all test modules"""
from typing import Any, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.db import Base
import core.models  # noqa: F401  registers tables on Base.metadata
from service.credential_provider import CredentialProvider
from service.run_context import CloudCredentials, ProductData, RegionConfig, RunContext
from service.token_store import TokenStore
from tests.fakes import FakeSnapshots, JobRecorder


@pytest.fixture
def sqlite_session_factory():
    """Session factory bound to a fresh in-memory sqlite database"""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def region_config():
    return RegionConfig(
        region="NA",
        country="US",
        base_uri="sellingpartnerapi-na.amazon.com",
        ads_base_uri="advertising-api.amazon.com",
        marketplace_id="ATVPDKIKX0DER",
        aws_region="us-east-1",
    )


@pytest.fixture
def make_context(region_config):
    """Factory for RunContext with both tokens present unless overridden"""

    def _make(access_token: Optional[str] = "sp-token", ads_access_token: Optional[str] = "ads-token",
              refresh_token: Optional[str] = "sp-refresh", asins: Optional[List[str]] = None, **overrides):
        fields = dict(
            user_id="u1",
            country="US",
            region="NA",
            day_of_week=1,
            region_config=region_config,
            tokens=TokenStore("u1", access_token, ads_access_token),
            refresh_token=refresh_token,
            ads_refresh_token="ads-refresh" if ads_access_token else None,
            profile_id="profile-1",
            seller_id="SELLER1",
            cloud_credentials=CloudCredentials("AK", "SK", "ST"),
            product_data=ProductData(asins=list(asins or ["B000000001", "B000000002"])),
            trace_id="test_trace",
        )
        fields.update(overrides)
        return RunContext(**fields)

    return _make


@pytest.fixture
def fake_credential_provider():
    """CredentialProvider whose Amazon calls are replaced by canned answers"""

    def _make(sp_token: Any = "sp-access", ads_token: Any = "ads-access", credentials: Any = None):
        async def temporary_credentials(region_config):
            return credentials if credentials is not None else {
                "AccessKey": "AK", "SecretKey": "SK", "SessionToken": "ST",
            }

        async def access_token(user_id, refresh_token):
            return sp_token

        async def ads_access_token(refresh_token):
            return ads_token

        return CredentialProvider(temporary_credentials, access_token, ads_access_token)

    return _make


@pytest.fixture
def merchant_listings():
    return [
        {"seller-sku": "SKU-1", "asin1": "B000000001", "status": "Active", "price": "19.99", "item-name": "One"},
        {"seller-sku": "SKU-2", "asin1": "B000000002", "status": "Active", "price": "9.50", "item-name": "Two"},
        {"seller-sku": "SKU-3", "asin1": "B000000003", "status": "Inactive", "price": "5.00", "item-name": "Three"},
    ]


@pytest.fixture
def recorder():
    return JobRecorder()


@pytest.fixture
def snapshot_store():
    """In-memory snapshot repository handed to jobs through their snapshots keyword"""
    return FakeSnapshots()
