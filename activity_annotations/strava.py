"""
Strava HTTP client for activity descriptions.

Only the two calls annotation dispatch needs: read an activity and write
its description.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from config import STRAVA_API_BASE
from core.exceptions import ExternalServiceError
from core.http.request import request_json
from core.http.retry import retry_async
from core.http.session import get_session

if TYPE_CHECKING:
    import aiohttp

logger = logging.getLogger(__name__)


class StravaClient:
    def __init__(
        self,
        access_token: str,
        session: aiohttp.ClientSession | None = None,
        base_url: str = STRAVA_API_BASE,
    ) -> None:
        self._access_token = access_token
        self._session = session
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _get_session(self) -> Any:
        if self._session is None:
            self._session = await get_session()
        return self._session

    @retry_async()
    async def get_activity(self, strava_activity_id: int) -> dict[str, Any]:
        url = f"{self._base_url}/activities/{strava_activity_id}"
        data = await request_json(
            "GET",
            url,
            session=await self._get_session(),
            params={"include_all_efforts": "false"},
            headers=self._headers(),
            service_name="Strava activity",
        )
        if not isinstance(data, dict):
            msg = "Strava activity error: unexpected response"
            raise ExternalServiceError(msg, {"url": url})
        return data

    @retry_async()
    async def update_description(
        self,
        strava_activity_id: int,
        description: str,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/activities/{strava_activity_id}"
        logger.debug("Updating description of Strava activity %s", strava_activity_id)
        return await request_json(
            "PUT",
            url,
            session=await self._get_session(),
            json={"description": description},
            headers=self._headers(),
            service_name="Strava update",
        )
