from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from app.application.ports.poll_backend import PollBackendPort
from app.domain.entities.poll import PollRecord, PollVoteNotification
from app.infrastructure.backend.backend_client import BackendClient


class HttpPollBackend(PollBackendPort):
    def __init__(self, client: BackendClient) -> None:
        self._client = client
        self._logger = logging.getLogger(__name__)

    async def store_poll(self, payload: dict[str, Any]) -> str | None:
        result = await self._client.call("POST", "/polls", payload)
        if not result.ok:
            self._logger.error(
                "Failed to store poll",
                extra={"message_id": payload.get("messageId"), "status": result.status_code},
            )
            return None
        data = result.data or {}
        poll_id = data.get("pollId")
        return str(poll_id) if poll_id is not None else ""

    async def fetch_poll(self, message_id: str) -> PollRecord | None:
        result = await self._client.call("GET", f"/polls/{quote(message_id, safe='')}")
        if not result.ok or result.data is None:
            if result.status_code == 404:
                self._logger.info("Poll not found", extra={"message_id": message_id})
            return None
        return PollRecord.from_backend(message_id, result.data)

    async def check_processed(self, message_id: str, voter: str) -> bool | None:
        path = f"/polls/votes/{quote(message_id, safe='')}/{quote(voter, safe='')}"
        result = await self._client.call("GET", path)
        if result.status_code == 404:
            return False
        if not result.ok or result.data is None:
            return None
        return bool(result.data.get("alreadyProcessed", False))

    async def record_vote(self, payload: dict[str, Any]) -> bool:
        result = await self._client.call("POST", "/polls/votes", payload)
        return result.ok

    async def forward_vote(self, webhook_url: str, notification: PollVoteNotification) -> bool:
        result = await self._client.call("POST", webhook_url, notification.to_payload(), authenticated=False)
        return result.ok
