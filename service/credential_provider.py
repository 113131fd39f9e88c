"""Cloud credentials and OAuth access tokens for one scheduled run"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from collection.clients import amazon_auth
from service.errors import CredentialError
from service.run_context import CloudCredentials, RegionConfig
from service.token_store import ADS_API, SP_API, TokenStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTokens:
    access_token: Optional[str] = None
    ads_access_token: Optional[str] = None


class CredentialProvider:
    """
    Resolves AWS temporary credentials and LWA access tokens.

    The resolver callables default to the Amazon implementations and can be
    replaced for tests.
    """

    def __init__(
        self,
        temporary_credentials: Callable[[RegionConfig], Awaitable[Any]] = amazon_auth.resolve_temporary_credentials,
        access_token: Callable[[str, str], Awaitable[Any]] = amazon_auth.resolve_access_token,
        ads_access_token: Callable[[str], Awaitable[Any]] = amazon_auth.resolve_ads_access_token,
    ):
        self._temporary_credentials = temporary_credentials
        self._access_token = access_token
        self._ads_access_token = ads_access_token

    async def resolve_credentials(self, region_config: RegionConfig) -> CloudCredentials:
        try:
            raw = await self._temporary_credentials(region_config)
        except Exception as e:
            raise CredentialError(f"Failed to resolve AWS credentials: {e}") from e

        if not raw or not all(raw.get(k) for k in ("AccessKey", "SecretKey", "SessionToken")):
            raise CredentialError("Failed to resolve AWS credentials: incomplete credential set")
        return CloudCredentials(raw["AccessKey"], raw["SecretKey"], raw["SessionToken"])

    async def resolve_tokens(self, user_id: str, sp_refresh_token: Optional[str],
                             ads_refresh_token: Optional[str]) -> ResolvedTokens:
        """
        Exchange both refresh tokens concurrently.

        One side failing leaves that token None; only both failing is fatal.
        """
        async def none():
            return None

        results = await asyncio.gather(
            self._access_token(user_id, sp_refresh_token) if sp_refresh_token else none(),
            self._ads_access_token(ads_refresh_token) if ads_refresh_token else none(),
            return_exceptions=True,
        )

        tokens = []
        for label, result in zip(("SP-API", "Ads"), results):
            if isinstance(result, Exception):
                logger.warning(f"{label} token generation failed: {result}", extra={"user_id": user_id})
                tokens.append(None)
            elif not result:
                tokens.append(None)
            else:
                tokens.append(result)

        access_token, ads_access_token = tokens
        if not access_token and not ads_access_token:
            raise CredentialError("Failed to generate any access tokens")

        logger.info(f"Access tokens resolved (sp_api={bool(access_token)}, ads_api={bool(ads_access_token)})",
                    extra={"user_id": user_id, "state": "RESOLVING_TOKENS"})
        return ResolvedTokens(access_token, ads_access_token)

    def make_refresh_callback(self, user_id: str, refresh_token: Optional[str], token_store: TokenStore,
                              kind: str) -> Callable[[], Awaitable[str]]:
        """Callback that refreshes one token kind in the run's store, at most one request in flight"""
        if kind not in (SP_API, ADS_API):
            raise ValueError(f"Unknown token kind: {kind}")

        async def fetch() -> str:
            if not refresh_token:
                raise CredentialError(f"No refresh token stored for {kind}")
            if kind == SP_API:
                token = await self._access_token(user_id, refresh_token)
            else:
                token = await self._ads_access_token(refresh_token)
            if not token:
                raise CredentialError(f"Failed to refresh {kind} access token")
            return token

        async def refresh() -> str:
            token = await token_store.refresh(kind, fetch)
            logger.info(f"Refreshed {kind} access token", extra={"user_id": user_id})
            return token

        return refresh
