from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.domain.entities.poll import PollOption


@dataclass(frozen=True)
class MediaPayload:
    mimetype: str
    data: str  # base64
    filename: str | None = None


@dataclass(frozen=True)
class PollPayload:
    name: str
    options: tuple[PollOption, ...]
    allow_multiple_answers: bool = False


@dataclass(frozen=True)
class SentMessage:
    id: str
    timestamp: int


@dataclass(frozen=True)
class ChatInfo:
    id: str
    name: str
    is_group: bool
    participant_count: int = 0


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str
    timestamp: int
    to: str
    media_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "messageId": self.message_id,
            "timestamp": self.timestamp,
            "to": self.to,
        }
        if self.media_type is not None:
            out["mediaType"] = self.media_type
        return out


@dataclass(frozen=True)
class PollSendResult(SendResult):
    poll_name: str = ""
    backend_stored: bool = False
    poll_id: str | None = None
    options: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out.update(
            {
                "pollName": self.poll_name,
                "backendStored": self.backend_stored,
                "pollId": self.poll_id,
                "options": list(self.options),
            }
        )
        return out
