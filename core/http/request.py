"""
Shared HTTP request helpers for service backends.

Keeps JSON request/response handling and error mapping consistent across
external API clients.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from core.exceptions import AuthenticationError, ExternalServiceError, RateLimitError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

_SUPPORTED_METHODS = {"GET", "POST", "PUT"}


def parse_rate_limit_reset(headers: Mapping[str, str]) -> float | None:
    """Epoch seconds at which a rate-limited client may retry, if advertised.

    The header may carry several comma-separated windows; the last one is
    the longest and is the one honoured.
    """
    header = headers.get("X-RateLimit-Reset")
    if not header:
        return None
    try:
        return float(header.split(",")[-1].strip())
    except ValueError:
        return None


async def request_json(
    method: str,
    url: str,
    *,
    session: Any,
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    expected_status: int | Iterable[int] = 200,
    service_name: str = "Service",
) -> Any:
    method_upper = method.upper()
    if isinstance(expected_status, int):
        expected = {expected_status}
    else:
        expected = set(expected_status)

    if method_upper not in _SUPPORTED_METHODS:
        msg = f"{service_name} request error: unsupported method {method_upper}"
        raise ExternalServiceError(msg, {"url": url})
    request_fn = getattr(session, method_upper.lower())

    async with request_fn(url, params=params, json=json, headers=headers) as response:
        if response.status == 429:
            retry_at = parse_rate_limit_reset(response.headers)
            msg = f"{service_name} error: 429"
            raise RateLimitError(
                msg,
                {"status": 429, "url": url},
                retry_at=retry_at,
            )
        if response.status == 401:
            msg = f"{service_name} error: unauthorized"
            raise AuthenticationError(msg, {"status": 401, "url": url})
        if response.status not in expected:
            body = await response.text()
            msg = f"{service_name} error: {response.status}"
            raise ExternalServiceError(
                msg,
                {
                    "status": response.status,
                    "body": body[:200],
                    "url": url,
                },
            )
        return await response.json()
