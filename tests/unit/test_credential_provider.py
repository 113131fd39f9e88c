"""Unit tests for credential resolution and the per-run token store"""
import asyncio

import pytest

from service.credential_provider import CredentialProvider
from service.errors import CredentialError
from service.token_store import ADS_API, SP_API, TokenStore


class TestResolveCredentials:
    """Test AWS temporary credential resolution"""

    @pytest.mark.asyncio
    async def test_complete_credentials(self, fake_credential_provider, region_config):
        creds = await fake_credential_provider().resolve_credentials(region_config)
        assert creds.access_key == "AK"
        assert creds.session_token == "ST"

    @pytest.mark.asyncio
    async def test_incomplete_credentials_raise(self, fake_credential_provider, region_config):
        provider = fake_credential_provider(credentials={"AccessKey": "AK", "SecretKey": ""})
        with pytest.raises(CredentialError) as exc:
            await provider.resolve_credentials(region_config)
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_resolver_error_raises(self, region_config):
        async def broken(region_config):
            raise RuntimeError("sts down")

        with pytest.raises(CredentialError):
            await CredentialProvider(temporary_credentials=broken).resolve_credentials(region_config)


class TestResolveTokens:
    """Test concurrent token exchange"""

    @pytest.mark.asyncio
    async def test_both_tokens(self, fake_credential_provider):
        tokens = await fake_credential_provider().resolve_tokens("u1", "sp-rt", "ads-rt")
        assert tokens.access_token == "sp-access"
        assert tokens.ads_access_token == "ads-access"

    @pytest.mark.asyncio
    async def test_one_side_failing_is_not_fatal(self, fake_credential_provider):
        tokens = await fake_credential_provider(ads_token=None).resolve_tokens("u1", "sp-rt", "ads-rt")
        assert tokens.access_token == "sp-access"
        assert tokens.ads_access_token is None

    @pytest.mark.asyncio
    async def test_exception_on_one_side_is_not_fatal(self):
        async def sp(user_id, refresh_token):
            raise RuntimeError("lwa error")

        async def ads(refresh_token):
            return "ads-access"

        tokens = await CredentialProvider(access_token=sp, ads_access_token=ads).resolve_tokens("u1", "a", "b")
        assert tokens.access_token is None
        assert tokens.ads_access_token == "ads-access"

    @pytest.mark.asyncio
    async def test_missing_ads_refresh_token_skips_exchange(self, fake_credential_provider):
        tokens = await fake_credential_provider().resolve_tokens("u1", "sp-rt", None)
        assert tokens.ads_access_token is None

    @pytest.mark.asyncio
    async def test_both_failing_is_fatal(self, fake_credential_provider):
        with pytest.raises(CredentialError):
            await fake_credential_provider(sp_token=None, ads_token=None).resolve_tokens("u1", "a", "b")


class TestTokenStore:
    """Test per-run token storage and single-flight refresh"""

    def test_stores_are_independent(self):
        first = TokenStore("u1", "a1", "ads1")
        second = TokenStore("u2", "a2", None)
        first.set(SP_API, "changed")
        assert second.access_token == "a2"
        assert second.ads_access_token is None

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_issue_one_request(self):
        """Test callers that arrive during a refresh reuse its token"""
        store = TokenStore("u1", "old", None)
        requests = []

        async def fetch():
            requests.append(1)
            await asyncio.sleep(0.05)
            return f"new-{len(requests)}"

        tokens = await asyncio.gather(*(store.refresh(SP_API, fetch) for _ in range(5)))
        assert requests == [1]
        assert set(tokens) == {"new-1"}
        assert store.access_token == "new-1"
        assert store.refresh_count(SP_API) == 1

    @pytest.mark.asyncio
    async def test_refresh_callback_updates_store(self, fake_credential_provider):
        store = TokenStore("u1", None, "old-ads")
        refresh = fake_credential_provider(ads_token="fresh-ads").make_refresh_callback("u1", "rt", store, ADS_API)
        assert await refresh() == "fresh-ads"
        assert store.ads_access_token == "fresh-ads"

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token_fails(self, fake_credential_provider):
        store = TokenStore("u1", "old", None)
        refresh = fake_credential_provider().make_refresh_callback("u1", None, store, SP_API)
        with pytest.raises(CredentialError):
            await refresh()
        assert store.access_token == "old"

    def test_unknown_kind_rejected(self, fake_credential_provider):
        with pytest.raises(ValueError):
            fake_credential_provider().make_refresh_callback("u1", "rt", TokenStore("u1"), "other")
