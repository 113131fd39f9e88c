"""Per-run token store shared by the job adapter and refresh callbacks"""
import asyncio
from typing import Awaitable, Callable, Dict, Optional

SP_API = "sp_api"
ADS_API = "ads_api"


class TokenStore:
    """
    Holds the short-lived access tokens for exactly one run.

    One instance is created per orchestrator invocation and handed to the job
    adapter through the RunContext; concurrent runs for different users never
    share an instance.
    """

    def __init__(self, user_id: str, access_token: Optional[str] = None,
                 ads_access_token: Optional[str] = None):
        self.user_id = user_id
        self._tokens: Dict[str, Optional[str]] = {SP_API: access_token, ADS_API: ads_access_token}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refreshes: Dict[str, int] = {SP_API: 0, ADS_API: 0}

    @property
    def access_token(self) -> Optional[str]:
        return self._tokens[SP_API]

    @property
    def ads_access_token(self) -> Optional[str]:
        return self._tokens[ADS_API]

    def get(self, kind: str) -> Optional[str]:
        return self._tokens[kind]

    def set(self, kind: str, token: Optional[str]) -> None:
        self._tokens[kind] = token

    def refresh_count(self, kind: str) -> int:
        return self._refreshes[kind]

    async def refresh(self, kind: str, fetch: Callable[[], Awaitable[str]]) -> str:
        """
        Replace the token of `kind` with the result of `fetch`.

        Refreshes are single-flight per kind: a caller that arrives while another
        refresh is running waits for it and reuses the new token instead of
        issuing a second token request.
        """
        lock = self._locks.setdefault(kind, asyncio.Lock())
        seen = self._refreshes[kind]
        async with lock:
            if self._refreshes[kind] != seen and self._tokens[kind]:
                return self._tokens[kind]
            token = await fetch()
            self.set(kind, token)
            self._refreshes[kind] += 1
            return token
