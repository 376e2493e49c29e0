"""HTTP client utilities and session management."""

from core.http.request import parse_rate_limit_reset, request_json
from core.http.retry import retry_async
from core.http.session import cleanup_session, get_session

__all__ = [
    "cleanup_session",
    "get_session",
    "parse_rate_limit_reset",
    "request_json",
    "retry_async",
]
