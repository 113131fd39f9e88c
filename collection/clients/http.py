"""Shared HTTP helpers for Amazon clients: retry policy, auth-error detection, report polling"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

import httpx

logger = logging.getLogger(__name__)

UNAUTHORIZED_CODES = {"unauthorized", "invalid_token", "token_expired"}
UNAUTHORIZED_PHRASES = (
    "unauthorized",
    "access denied",
    "access to requested resource is denied",
    "invalid access token",
    "authentication failed",
    "token expired",
)


class ReportFailedError(Exception):
    """Amazon finished generating a report with a failure status"""


class ReportTimeoutError(Exception):
    """A report did not reach a terminal status within the attempt budget"""


def is_retryable_response(exc: BaseException) -> bool:
    """Retry on 429 (rate limit) and 5xx (server errors) only"""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def is_unauthorized_error(exc: BaseException) -> bool:
    """Detect an expired/invalid access token in an Amazon API error"""
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 401:
            return True
        if exc.response.status_code == 403:
            try:
                body = exc.response.json()
            except ValueError:
                body = {}
            errors = body.get("errors") if isinstance(body, dict) else None
            for err in errors or []:
                code = str(err.get("code", "")).lower()
                message = str(err.get("message", "")).lower()
                if code in UNAUTHORIZED_CODES or any(p in message for p in UNAUTHORIZED_PHRASES):
                    return True
            if isinstance(body, dict) and str(body.get("code", "")).lower() in UNAUTHORIZED_CODES:
                return True
        return False

    message = str(exc).lower()
    return any(phrase in message for phrase in UNAUTHORIZED_PHRASES)


async def poll_until_complete(
    check_status: Callable[[], Awaitable[Dict[str, Any]]],
    *,
    status_field: str,
    done_states: Iterable[str],
    failed_states: Iterable[str],
    on_unauthorized: Optional[Callable[[], Awaitable[Any]]] = None,
    max_attempts: int = 30,
    delay_seconds: float = 60.0,
    label: str = "report",
) -> Dict[str, Any]:
    """
    Poll an asynchronously generated report until it reaches a terminal status.

    Each status check, auth failure and transport error consumes one attempt.
    A 401 in the middle of the loop invokes `on_unauthorized` (which is expected
    to swap a fresh token into the client) and the same loop continues.

    Returns:
        The final status document.

    Raises:
        ReportFailedError: Amazon reported a failure status
        ReportTimeoutError: attempt budget exhausted
    """
    done = set(done_states)
    failed = set(failed_states)
    attempts = 0

    while attempts < max_attempts:
        try:
            status_doc = await check_status()
        except httpx.HTTPStatusError as e:
            if on_unauthorized is not None and is_unauthorized_error(e):
                logger.warning(f"Token expired while polling {label} (attempt {attempts + 1}), refreshing")
                await on_unauthorized()
                attempts += 1
                continue
            raise
        except httpx.TransportError as e:
            logger.warning(f"Network error polling {label} (attempt {attempts + 1}): {e}")
            attempts += 1
            await asyncio.sleep(delay_seconds)
            continue

        status = status_doc.get(status_field)
        if status in done:
            logger.info(f"{label} completed after {attempts + 1} attempts")
            return status_doc
        if status in failed:
            raise ReportFailedError(f"{label} ended with status {status}")

        attempts += 1
        await asyncio.sleep(delay_seconds)

    raise ReportTimeoutError(f"{label} did not complete after {max_attempts} attempts")
