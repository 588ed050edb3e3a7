"""WhatsApp client backed by a browser-automation bridge reached over a websocket.

Frames are JSON objects:

- command:  ``{"type": <command>, "requestId": ..., "token": ..., "payload": {...}}``
- response: ``{"type": "response", "requestId": ..., "payload": {"ok": bool, "result"|"error": ...}}``
- event:    ``{"type": "event", "event": <name>, "payload": {...}}``
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
import uuid
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from app.application.ports.chat_client import ChatClientPort, ChatEvent, EventHandler, MessageContent
from app.domain.entities.message import ChatInfo, MediaPayload, PollPayload, SentMessage
from app.domain.entities.poll import VoteEvent

MAX_FRAME_BYTES = 64 * 1024 * 1024


class BridgeCommandError(RuntimeError):
    """Bridge answered a command with an error."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code


class BridgeWhatsAppClient(ChatClientPort):
    def __init__(
        self,
        url: str,
        token: str | None = None,
        client_id: str = "whatsapp-bot",
        session_dir: str = "./sessions",
        command_timeout: float = 30.0,
        drain_timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._token = token
        self._client_id = client_id
        self._session_dir = session_dir
        self._command_timeout = command_timeout
        self._drain_timeout = drain_timeout
        self._handlers: dict[ChatEvent, list[EventHandler]] = {}
        self._ws: Any | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._event_tasks: set[asyncio.Task[None]] = set()
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._send_lock = asyncio.Lock()
        self._closing = False
        self._logger = logging.getLogger(__name__)

    def on(self, event: ChatEvent, handler: EventHandler) -> None:
        self._handlers.setdefault(ChatEvent(event), []).append(handler)

    async def initialize(self) -> None:
        self._logger.info("Connecting to WhatsApp bridge at %s", self._url)
        self._closing = False
        self._ws = await websockets.connect(
            self._url,
            max_size=MAX_FRAME_BYTES,
            ping_interval=20,
            ping_timeout=20,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        await self._command("initialize", {"clientId": self._client_id, "dataPath": self._session_dir})

    async def destroy(self) -> None:
        self._closing = True
        await self._drain_event_tasks()
        try:
            if self._ws is not None:
                with contextlib.suppress(BridgeCommandError, RuntimeError, asyncio.TimeoutError, ConnectionClosed):
                    await self._command("destroy", {})
        finally:
            if self._reader_task is not None:
                self._reader_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._reader_task
                self._reader_task = None
            for task in list(self._event_tasks):
                task.cancel()
            self._event_tasks.clear()
            if self._ws is not None:
                await self._ws.close()
                self._ws = None
            self._fail_pending("Client destroyed")

    async def _drain_event_tasks(self) -> None:
        """Give in-flight event handlers (vote replies) a chance to finish while the socket is still open."""
        current = asyncio.current_task()
        tasks = [t for t in self._event_tasks if t is not current and not t.done()]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=self._drain_timeout)
        if pending:
            self._logger.warning("Cancelling %d unfinished bridge event tasks", len(pending))

    async def send_message(
        self,
        address: str,
        content: MessageContent,
        options: dict[str, Any] | None = None,
    ) -> SentMessage:
        result = await self._command(
            "send_message",
            {"to": address, "content": _encode_content(content), "options": options or {}},
        )
        return SentMessage(id=str(result.get("id") or ""), timestamp=int(result.get("timestamp") or 0))

    async def get_number_id(self, address: str) -> str | None:
        result = await self._command("get_number_id", {"address": address})
        number_id = result.get("id")
        return str(number_id) if number_id else None

    async def get_chats(self) -> list[ChatInfo]:
        result = await self._command("get_chats", {})
        chats: list[ChatInfo] = []
        for raw in result.get("chats") or []:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            chats.append(
                ChatInfo(
                    id=str(raw["id"]),
                    name=str(raw.get("name") or ""),
                    is_group=bool(raw.get("isGroup")),
                    participant_count=int(raw.get("participantCount") or 0),
                )
            )
        return chats

    async def _command(self, command: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self._ws is None:
            raise RuntimeError("Bridge websocket not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        envelope = {"type": command, "requestId": request_id, "token": self._token, "payload": payload}
        try:
            async with self._send_lock:
                await self._ws.send(json.dumps(envelope))
            return await asyncio.wait_for(future, timeout=self._command_timeout)
        finally:
            self._pending.pop(request_id, None)

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            self._logger.warning("Bridge connection closed", extra={"reason": str(e)})
        self._fail_pending("Bridge connection closed")
        if not self._closing:
            self._dispatch(ChatEvent.DISCONNECTED, "Bridge connection closed")

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            self._logger.warning("Invalid JSON from bridge")
            return
        if not isinstance(frame, dict):
            return

        payload = frame.get("payload") if isinstance(frame.get("payload"), dict) else {}
        frame_type = frame.get("type")
        if frame_type == "response":
            request_id = frame.get("requestId")
            if isinstance(request_id, str):
                self._resolve_pending(request_id, payload)
        elif frame_type == "event":
            self._handle_event(str(frame.get("event") or ""), payload)
        else:
            self._logger.debug("Ignoring bridge frame", extra={"frame_type": frame_type})

    def _handle_event(self, name: str, payload: dict[str, Any]) -> None:
        try:
            event = ChatEvent(name)
        except ValueError:
            self._logger.debug("Ignoring bridge event %s", name)
            return

        if event is ChatEvent.QR:
            self._dispatch(event, str(payload.get("qr") or ""))
        elif event in (ChatEvent.AUTH_FAILURE, ChatEvent.DISCONNECTED):
            self._dispatch(event, payload.get("message") or payload.get("reason"))
        elif event is ChatEvent.MESSAGE:
            self._dispatch(event, str(payload.get("from") or ""), str(payload.get("body") or ""))
        elif event is ChatEvent.VOTE_UPDATE:
            vote = parse_vote(payload)
            if vote is None:
                self._logger.warning("Malformed vote event from bridge")
                return
            self._dispatch(event, vote)
        else:
            self._dispatch(event)

    def _dispatch(self, event: ChatEvent, *args: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
            except Exception:
                self._logger.exception("Bridge event handler failed", extra={"event": event.value})
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._event_tasks.add(task)
                task.add_done_callback(self._on_event_task_done)

    def _on_event_task_done(self, task: asyncio.Task[None]) -> None:
        self._event_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Bridge event task failed", extra={"error": str(exc)})

    def _resolve_pending(self, request_id: str, payload: dict[str, Any]) -> None:
        future = self._pending.get(request_id)
        if future is None or future.done():
            return
        if payload.get("ok"):
            result = payload.get("result")
            future.set_result(result if isinstance(result, dict) else {})
            return
        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        future.set_exception(
            BridgeCommandError(str(error.get("code") or "ERR_INTERNAL"), str(error.get("message") or "Bridge command failed"))
        )

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(RuntimeError(reason))
        self._pending.clear()


def parse_vote(payload: dict[str, Any]) -> VoteEvent | None:
    voter = str(payload.get("voter") or "").strip()
    parent_id = str(payload.get("parentMessageId") or "").strip()
    if not voter or not parent_id:
        return None

    selected = payload.get("selectedOptions") or []
    name: str | None = None
    if isinstance(selected, list) and selected:
        first = selected[0]
        name = str(first.get("name")) if isinstance(first, dict) and first.get("name") is not None else None
    elif payload.get("selectedOption") is not None:
        name = str(payload["selectedOption"])

    timestamp = payload.get("interactionTimestamp", payload.get("interractedAtTs", 0))
    try:
        ts = int(timestamp or 0)
    except (TypeError, ValueError):
        ts = 0
    return VoteEvent(voter=voter, parent_message_id=parent_id, selected_option_name=name, interaction_timestamp=ts)


def _encode_content(content: MessageContent) -> dict[str, Any]:
    if isinstance(content, MediaPayload):
        return {"type": "media", "mimetype": content.mimetype, "data": content.data, "filename": content.filename}
    if isinstance(content, PollPayload):
        return {
            "type": "poll",
            "name": content.name,
            "options": [o.name for o in content.options],
            "allowMultipleAnswers": content.allow_multiple_answers,
        }
    return {"type": "text", "text": content}
