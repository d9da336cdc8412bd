"""
HTTP Event Creator

Persists derived occurrences through the events API using httpx.
"""
import logging
from typing import Optional

import httpx

from ..models.event import Event
from .base import CreateResult

logger = logging.getLogger("planner.notifications.event_creator")

GROUP_EVENTS_PATH = "/api/groups/{group_id}/events"


class HttpEventCreator:
    """POST derived events to the group events endpoint"""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def create(self, event: Event) -> CreateResult:
        """
        Create the event in its group.

        Returns the stored event as parsed from the response body.
        """
        if not event.group_id:
            return CreateResult(success=False, error="Event has no groupId")

        path = GROUP_EVENTS_PATH.format(group_id=event.group_id)
        try:
            client = self._get_client()
            response = await client.post(path, json=event.to_dict())
        except httpx.HTTPError as e:
            logger.error(f"Events API request failed: {e}")
            return CreateResult(success=False, error=str(e) or type(e).__name__)

        if not response.is_success:
            err = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.error(f"Failed to create recurring event: {err}")
            return CreateResult(success=False, error=err)

        try:
            created = Event.from_dict(response.json())
        except ValueError as e:
            logger.error(f"Events API returned an unusable event: {e}")
            return CreateResult(success=False, error=f"Invalid response: {e}")

        if created.id is None:
            return CreateResult(success=False, error="Created event has no id")

        logger.info(
            f"Created recurring event {created.id} "
            f"(parent={created.parent_event_id}, start={created.start_time.isoformat()})"
        )
        return CreateResult(success=True, event=created)

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
