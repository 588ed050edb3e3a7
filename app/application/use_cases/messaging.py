from __future__ import annotations

import logging
from typing import Any

from app.application.exceptions import ChatClientError, GatewayError, PollValidationError
from app.application.ports.chat_client import MessageContent
from app.application.ports.poll_backend import PollBackendPort
from app.application.use_cases.session_manager import SessionManager
from app.application.utils.phone import normalize_group_id, normalize_phone
from app.domain.entities.message import ChatInfo, PollPayload, PollSendResult, SendResult
from app.domain.entities.poll import PollOption
from app.infrastructure.media.media_loader import MediaLoader

DEFAULT_OTP_TEMPLATE = (
    "🔐 Votre code de vérification est: *{otp}*\n\n"
    "Ce code expire dans {minutes} minutes.\n\n"
    "⚠️ Ne partagez ce code avec personne."
)


class MessagingService:
    """Outbound operations on the live session.

    Every send requires the session to be CONNECTED and raises NotReadyError
    otherwise, before touching the underlying client.
    """

    def __init__(
        self,
        session: SessionManager,
        backend: PollBackendPort,
        media_loader: MediaLoader,
        otp_expiry_minutes: int = 5,
        otp_template: str = DEFAULT_OTP_TEMPLATE,
    ) -> None:
        self._session = session
        self._backend = backend
        self._media_loader = media_loader
        self._otp_expiry_minutes = otp_expiry_minutes
        self._otp_template = otp_template
        self._logger = logging.getLogger(__name__)

    async def send_message(self, to: str, message: str) -> SendResult:
        address = normalize_phone(to)
        self._logger.info("Sending message to %s", address)
        return await self._send("send message", to, address, message)

    async def send_otp(self, to: str, otp: str, expiry_minutes: int | None = None) -> SendResult:
        minutes = expiry_minutes or self._otp_expiry_minutes
        text = self._otp_template.format(otp=otp, minutes=minutes)
        return await self.send_message(to, text)

    async def send_media(self, to: str, file_path: str, caption: str | None = None) -> SendResult:
        self._session.require_client()
        address = normalize_phone(to)
        media = self._media_loader.from_file_path(file_path)
        self._logger.info("Sending media to %s: %s", address, file_path)
        return await self._send(
            "send media", to, address, media, {"caption": caption or ""}, media_type=media.mimetype
        )

    async def send_media_from_url(
        self,
        to: str,
        url: str,
        caption: str | None = None,
        filename: str | None = None,
    ) -> SendResult:
        self._session.require_client()
        address = normalize_phone(to)
        try:
            media = await self._media_loader.from_url(url, filename=filename)
        except Exception as e:
            self._logger.error("Failed to download media", extra={"url": url, "error": str(e)})
            raise ChatClientError("download media", e) from e
        self._logger.info("Sending media from URL to %s: %s", address, url)
        return await self._send(
            "send media", to, address, media, {"caption": caption or ""}, media_type=media.mimetype
        )

    async def send_group_message(self, group_id: str, message: str) -> SendResult:
        address = normalize_group_id(group_id)
        self._logger.info("Sending group message to %s", address)
        return await self._send("send group message", group_id, address, message)

    async def get_groups(self) -> list[ChatInfo]:
        client = self._session.require_client()
        try:
            chats = await client.get_chats()
        except Exception as e:
            self._logger.error("Failed to list chats", extra={"error": str(e)})
            raise ChatClientError("list groups", e) from e
        return [chat for chat in chats if chat.is_group]

    async def check_number_exists(self, phone: str) -> bool:
        try:
            client = self._session.require_client()
            number_id = await client.get_number_id(normalize_phone(phone))
            return number_id is not None
        except Exception as e:
            self._logger.error("Failed to check number", extra={"error": str(e)})
            return False

    async def send_poll(
        self,
        to: str,
        poll_name: str,
        options: list[PollOption],
        response_messages: dict[str, str],
        webhook_url: str | None = None,
        allow_multiple_answers: bool = False,
    ) -> PollSendResult:
        validate_poll(to, poll_name, options, response_messages)

        address = normalize_phone(to)
        self._logger.info("Sending poll to %s: %s", address, poll_name)
        sent = await self._send(
            "send poll",
            to,
            address,
            PollPayload(
                name=poll_name,
                options=tuple(options),
                allow_multiple_answers=allow_multiple_answers,
            ),
        )

        option_dicts = [{"name": o.name, "localId": o.local_id} for o in options]
        poll_id = await self._store_poll(
            {
                "messageId": sent.message_id,
                "pollName": poll_name,
                "pollOptions": option_dicts,
                "webhookUrl": webhook_url,
                "responseMessages": {str(k): v for k, v in response_messages.items()},
            }
        )
        return PollSendResult(
            success=sent.success,
            message_id=sent.message_id,
            timestamp=sent.timestamp,
            to=sent.to,
            poll_name=poll_name,
            backend_stored=poll_id is not None,
            poll_id=poll_id or None,
            options=option_dicts,
        )

    async def _store_poll(self, payload: dict[str, Any]) -> str | None:
        try:
            poll_id = await self._backend.store_poll(payload)
        except Exception as e:
            self._logger.error(
                "Poll sent but metadata was not stored",
                extra={"message_id": payload.get("messageId"), "error": str(e)},
            )
            return None
        if poll_id is None:
            self._logger.error(
                "Poll sent but metadata was not stored",
                extra={"message_id": payload.get("messageId")},
            )
        return poll_id

    async def _send(
        self,
        operation: str,
        to: str,
        address: str,
        content: MessageContent,
        options: dict[str, Any] | None = None,
        media_type: str | None = None,
    ) -> SendResult:
        client = self._session.require_client()
        try:
            sent = await client.send_message(address, content, options)
        except GatewayError:
            raise
        except Exception as e:
            self._logger.error("Failed to %s", operation, extra={"error": str(e)})
            raise ChatClientError(operation, e) from e
        return SendResult(
            success=True,
            message_id=sent.id,
            timestamp=sent.timestamp,
            to=to,
            media_type=media_type,
        )


def validate_poll(
    to: str,
    poll_name: str,
    options: list[PollOption],
    response_messages: dict[str, str],
) -> None:
    if not to:
        raise PollValidationError("Recipient phone number is required")
    if not poll_name:
        raise PollValidationError("Poll name is required")
    if not options:
        raise PollValidationError("Poll options are required")

    seen: set[int] = set()
    duplicates: set[int] = set()
    for option in options:
        if option.local_id in seen:
            duplicates.add(option.local_id)
        seen.add(option.local_id)
    if duplicates:
        raise PollValidationError(f"Duplicate option ids: {', '.join(map(str, sorted(duplicates)))}")

    configured = {str(k) for k in response_messages}
    missing = [o.local_id for o in options if str(o.local_id) not in configured]
    if missing:
        raise PollValidationError(
            f"Missing response messages for option ids: {', '.join(map(str, missing))}",
            missing_ids=missing,
        )
