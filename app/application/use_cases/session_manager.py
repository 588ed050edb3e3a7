from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from app.application.exceptions import ChatClientError, NotReadyError
from app.application.ports.chat_client import ChatClientPort, ChatEvent
from app.domain.entities.poll import VoteEvent
from app.domain.entities.session_state import SessionState, StatusSnapshot

StateObserver = Callable[[SessionState, dict[str, Any] | None], None]
VoteListener = Callable[[VoteEvent], Awaitable[None]]
ClientFactory = Callable[[], ChatClientPort]


class SessionManager:
    """Owns the single chat-network session of the process.

    State only changes inside the event handlers below. Lifecycle operations
    (initialize, reinitialize, disconnect) are serialized by a lock; handlers
    are synchronous, so each transition runs without interleaving on the loop.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        init_timeout: float = 60.0,
        reconnect_delay: float = 5.0,
        reconnect_on_init_timeout: bool = False,
    ) -> None:
        self._client_factory = client_factory
        self._init_timeout = init_timeout
        self._reconnect_delay = reconnect_delay
        self._reconnect_on_init_timeout = reconnect_on_init_timeout

        self._client: ChatClientPort | None = None
        self._state = SessionState.DISCONNECTED
        self._qr: str | None = None
        self._detail: str | None = None

        self._observers: list[StateObserver] = []
        self._vote_listeners: list[VoteListener] = []

        self._init_timeout_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def init_timeout_pending(self) -> bool:
        return self._init_timeout_task is not None and not self._init_timeout_task.done()

    def on_state_change(self, observer: StateObserver) -> None:
        self._observers.append(observer)

    def on_vote(self, listener: VoteListener) -> None:
        self._vote_listeners.append(listener)

    def get_status(self) -> StatusSnapshot:
        return StatusSnapshot(
            state=self._state,
            qr=self._qr if self._state is SessionState.QR_READY else None,
            detail=self._detail,
        )

    def require_client(self) -> ChatClientPort:
        """Return the live client, or raise NotReadyError unless the session is CONNECTED."""
        if self._state is not SessionState.CONNECTED or self._client is None:
            raise NotReadyError(self._state.value)
        return self._client

    # Lifecycle operations

    async def initialize(self) -> None:
        async with self._lifecycle_lock:
            await self._initialize_locked()

    async def reinitialize(self) -> None:
        async with self._lifecycle_lock:
            self._logger.info("Manual reinitialization requested")
            self._cancel_reconnect()
            await self._teardown_client()
            await self._initialize_locked()

    async def disconnect(self) -> None:
        async with self._lifecycle_lock:
            self._cancel_init_timeout()
            self._cancel_reconnect()
            client, self._client = self._client, None
            try:
                if client is not None:
                    await client.destroy()
            except Exception as e:
                raise ChatClientError("disconnect", e) from e
            finally:
                self._transition(SessionState.DISCONNECTED, {"reason": "Manual disconnect"})
                self._logger.info("WhatsApp client disconnected")

    async def shutdown(self) -> None:
        """Scoped teardown for process exit: cancel timers and destroy the connection."""
        try:
            await self.disconnect()
        except ChatClientError as e:
            self._logger.warning("Error during shutdown", extra={"error": str(e)})

    async def _initialize_locked(self) -> None:
        self._logger.info("Initializing WhatsApp client...")
        self._cancel_reconnect()
        self._transition(SessionState.CONNECTING)
        self._arm_init_timeout()
        await self._teardown_client()

        try:
            client = self._client_factory()
            self._client = client
            self._register_handlers(client)
            self._logger.info("Starting client initialization...")
            await client.initialize()
        except Exception as e:
            self._logger.exception("Failed to initialize WhatsApp client", extra={"error": str(e)})
            self._cancel_init_timeout()
            await self._teardown_client()
            self._transition(SessionState.DISCONNECTED, {"error": str(e)})

    async def _teardown_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.destroy()
        except Exception as e:
            self._logger.error("Error destroying client", extra={"error": str(e)})

    # Event handlers

    def _register_handlers(self, client: ChatClientPort) -> None:
        def current(handler: Callable[..., None]) -> Callable[..., None]:
            def wrapper(*args: Any) -> None:
                if client is not self._client:
                    self._logger.debug("Ignoring event from a replaced client")
                    return
                handler(*args)

            return wrapper

        async def on_vote_update(vote: VoteEvent) -> None:
            if client is not self._client:
                return
            await self._dispatch_vote(vote)

        client.on(ChatEvent.QR, current(self._on_qr))
        client.on(ChatEvent.AUTHENTICATED, current(self._on_authenticated))
        client.on(ChatEvent.AUTH_FAILURE, current(self._on_auth_failure))
        client.on(ChatEvent.READY, current(self._on_ready))
        client.on(ChatEvent.DISCONNECTED, current(self._on_disconnected))
        client.on(ChatEvent.MESSAGE, current(self._on_message))
        client.on(ChatEvent.VOTE_UPDATE, on_vote_update)

    def _on_qr(self, qr: str) -> None:
        self._logger.info("QR Code received - scan with WhatsApp mobile app")
        self._qr = qr
        self._transition(SessionState.QR_READY, {"qr": qr})

    def _on_authenticated(self) -> None:
        self._logger.info("Client authenticated successfully")
        self._transition(SessionState.AUTHENTICATED)

    def _on_auth_failure(self, reason: str | None = None) -> None:
        self._logger.error("Authentication failure", extra={"reason": reason})
        self._cancel_init_timeout()
        self._transition(SessionState.DISCONNECTED, {"error": reason})

    def _on_ready(self) -> None:
        self._logger.info("WhatsApp client is ready")
        self._cancel_init_timeout()
        self._transition(SessionState.CONNECTED)

    def _on_disconnected(self, reason: str | None = None) -> None:
        self._logger.warning("Client disconnected", extra={"reason": reason})
        self._cancel_init_timeout()
        self._transition(SessionState.DISCONNECTED, {"reason": reason})
        self._schedule_reconnect()

    def _on_message(self, sender: str, body: str) -> None:
        self._logger.info("Message received from %s: %s", sender, body)

    async def _dispatch_vote(self, vote: VoteEvent) -> None:
        for listener in list(self._vote_listeners):
            try:
                await listener(vote)
            except Exception:
                self._logger.exception("Vote listener failed", extra={"voter": vote.voter})

    # Transitions and notification

    def _transition(self, state: SessionState, detail: dict[str, Any] | None = None) -> None:
        self._state = state
        if state is not SessionState.QR_READY:
            self._qr = None
        if state is SessionState.DISCONNECTED:
            self._detail = _describe(detail)
        elif state is SessionState.CONNECTED:
            self._detail = None
        self._logger.debug("Session state changed", extra={"state": state.value})
        self._notify(state, detail)

    def _notify(self, state: SessionState, detail: dict[str, Any] | None) -> None:
        for observer in list(self._observers):
            try:
                observer(state, detail)
            except Exception:
                self._logger.exception("State observer failed", extra={"state": state.value})

    # Timers

    def _arm_init_timeout(self) -> None:
        self._cancel_init_timeout()
        task = asyncio.get_running_loop().create_task(self._expire_initialization(self._init_timeout))
        task.add_done_callback(self._on_timer_done)
        self._init_timeout_task = task

    def _cancel_init_timeout(self) -> None:
        task, self._init_timeout_task = self._init_timeout_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _expire_initialization(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._init_timeout_task = None
        self._logger.error("WhatsApp initialization timeout after %s seconds", delay)
        self._transition(SessionState.DISCONNECTED, {"error": "Initialization timeout"})
        if self._reconnect_on_init_timeout:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self.reconnect_pending:
            self._logger.debug("Reconnect already scheduled")
            return
        task = asyncio.get_running_loop().create_task(self._reconnect_after(self._reconnect_delay))
        task.add_done_callback(self._on_timer_done)
        self._reconnect_task = task

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self._lifecycle_lock:
            if self._reconnect_task is not asyncio.current_task():
                return
            self._reconnect_task = None
            self._logger.info("Attempting to reconnect...")
            await self._initialize_locked()

    def _on_timer_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Session timer task failed", extra={"error": str(exc)})


def _describe(detail: dict[str, Any] | None) -> str | None:
    if not detail:
        return None
    value = detail.get("error") or detail.get("reason")
    return str(value) if value is not None else None
