from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from app.domain.entities.poll import PollRecord, PollVoteNotification


class PollBackendPort(ABC):
    """Remote system of record for poll metadata and votes.

    Implementations never raise for backend unavailability; every method
    reports it through its return value.
    """

    @abstractmethod
    async def store_poll(self, payload: dict[str, Any]) -> str | None:
        """Store poll metadata. Returns the backend poll id, or None on failure."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_poll(self, message_id: str) -> PollRecord | None:
        """Fetch a poll by the id of the message that carried it. None if unavailable or unknown."""
        raise NotImplementedError

    @abstractmethod
    async def check_processed(self, message_id: str, voter: str) -> bool | None:
        """True/False from the backend, None when the backend could not answer."""
        raise NotImplementedError

    @abstractmethod
    async def record_vote(self, payload: dict[str, Any]) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def forward_vote(self, webhook_url: str, notification: PollVoteNotification) -> bool:
        raise NotImplementedError
