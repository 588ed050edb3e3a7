from __future__ import annotations

from typing import Any

import pytest

from app.application.ports.poll_backend import PollBackendPort
from app.domain.entities.poll import PollRecord, PollVoteNotification


class FakePollBackend(PollBackendPort):
    """In-memory backend that records every call."""

    def __init__(self) -> None:
        self.polls: dict[str, PollRecord] = {}
        self.processed: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, Any]] = []
        self.store_result: str | None = "poll-1"
        self.fetch_available = True
        self.check_available = True
        self.record_ok = True
        self.forward_ok = True

    def calls_to(self, name: str) -> list[Any]:
        return [args for call, args in self.calls if call == name]

    async def store_poll(self, payload: dict[str, Any]) -> str | None:
        self.calls.append(("store_poll", payload))
        return self.store_result

    async def fetch_poll(self, message_id: str) -> PollRecord | None:
        self.calls.append(("fetch_poll", message_id))
        if not self.fetch_available:
            return None
        return self.polls.get(message_id)

    async def check_processed(self, message_id: str, voter: str) -> bool | None:
        self.calls.append(("check_processed", (message_id, voter)))
        if not self.check_available:
            return None
        return (message_id, voter) in self.processed

    async def record_vote(self, payload: dict[str, Any]) -> bool:
        self.calls.append(("record_vote", payload))
        return self.record_ok

    async def forward_vote(self, webhook_url: str, notification: PollVoteNotification) -> bool:
        self.calls.append(("forward_vote", (webhook_url, notification)))
        return self.forward_ok


@pytest.fixture
def backend() -> FakePollBackend:
    return FakePollBackend()
