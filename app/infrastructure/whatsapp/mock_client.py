from __future__ import annotations

import inspect
import itertools
import logging
import time
from typing import Any

from app.application.ports.chat_client import ChatClientPort, ChatEvent, EventHandler, MessageContent
from app.domain.entities.message import ChatInfo, SentMessage


class MockWhatsAppClient(ChatClientPort):
    """In-memory client for local development.

    Records every outbound message instead of delivering it. With
    ``auto_ready`` it reports an authenticated, ready session as soon as
    ``initialize`` is called; otherwise events are driven through ``emit``.
    """

    def __init__(
        self,
        auto_ready: bool = True,
        registered_numbers: set[str] | None = None,
        chats: list[ChatInfo] | None = None,
    ) -> None:
        self._auto_ready = auto_ready
        self._handlers: dict[ChatEvent, list[EventHandler]] = {}
        self._ids = itertools.count(1)
        self.registered_numbers = set(registered_numbers or ())
        self.chats = list(chats or [])
        self.sent: list[tuple[str, MessageContent, dict[str, Any] | None]] = []
        self.initialized = False
        self.destroyed = False
        self.send_error: Exception | None = None
        self.initialize_error: Exception | None = None
        self._logger = logging.getLogger(__name__)

    def on(self, event: ChatEvent, handler: EventHandler) -> None:
        self._handlers.setdefault(ChatEvent(event), []).append(handler)

    async def emit(self, event: ChatEvent, *args: Any) -> None:
        for handler in list(self._handlers.get(ChatEvent(event), [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    async def initialize(self) -> None:
        if self.initialize_error is not None:
            raise self.initialize_error
        self.initialized = True
        if self._auto_ready:
            await self.emit(ChatEvent.AUTHENTICATED)
            await self.emit(ChatEvent.READY)

    async def destroy(self) -> None:
        self.destroyed = True

    async def send_message(
        self,
        address: str,
        content: MessageContent,
        options: dict[str, Any] | None = None,
    ) -> SentMessage:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((address, content, options))
        message_id = f"true_{address}_MOCK{next(self._ids):04d}"
        self._logger.info("Mock send to WhatsApp", extra={"message_id": message_id})
        return SentMessage(id=message_id, timestamp=int(time.time()))

    async def get_number_id(self, address: str) -> str | None:
        return address if address in self.registered_numbers else None

    async def get_chats(self) -> list[ChatInfo]:
        return list(self.chats)
