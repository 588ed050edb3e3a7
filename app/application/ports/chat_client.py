from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable

from app.domain.entities.message import ChatInfo, MediaPayload, PollPayload, SentMessage


class ChatEvent(str, Enum):
    QR = "qr"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    READY = "ready"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    VOTE_UPDATE = "vote_update"


EventHandler = Callable[..., Awaitable[None] | None]

MessageContent = str | MediaPayload | PollPayload


class ChatClientPort(ABC):
    """Underlying chat-network client: session negotiation, pairing and transport."""

    @abstractmethod
    def on(self, event: ChatEvent, handler: EventHandler) -> None:
        """Register a handler for a lifecycle or inbound event."""
        raise NotImplementedError

    @abstractmethod
    async def initialize(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def destroy(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def send_message(
        self,
        address: str,
        content: MessageContent,
        options: dict[str, Any] | None = None,
    ) -> SentMessage:
        raise NotImplementedError

    @abstractmethod
    async def get_number_id(self, address: str) -> str | None:
        """Return the registered identity for an address, or None if not on the network."""
        raise NotImplementedError

    @abstractmethod
    async def get_chats(self) -> list[ChatInfo]:
        raise NotImplementedError
