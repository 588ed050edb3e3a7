from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PollOption:
    name: str
    local_id: int


@dataclass(frozen=True)
class PollRecord:
    message_id: str
    poll_name: str
    options: tuple[PollOption, ...] = ()
    webhook_url: str | None = None
    response_messages: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_backend(cls, message_id: str, data: dict[str, Any]) -> "PollRecord":
        options: list[PollOption] = []
        for raw in data.get("pollOptions") or []:
            if not isinstance(raw, dict):
                continue
            try:
                options.append(PollOption(name=str(raw.get("name", "")), local_id=int(raw.get("localId", 0))))
            except (TypeError, ValueError):
                continue
        responses = data.get("responseMessages") or {}
        return cls(
            message_id=str(data.get("messageId") or message_id),
            poll_name=str(data.get("pollName") or ""),
            options=tuple(options),
            webhook_url=data.get("webhookUrl") or None,
            response_messages={str(k): str(v) for k, v in responses.items()} if isinstance(responses, dict) else {},
        )

    def option_id_for(self, option_name: str | None) -> int | None:
        if option_name is None:
            return None
        for option in self.options:
            if option.name == option_name:
                return option.local_id
        return None


@dataclass(frozen=True)
class VoteEvent:
    voter: str
    parent_message_id: str
    selected_option_name: str | None
    interaction_timestamp: int


@dataclass(frozen=True)
class PollVoteNotification:
    voter: str
    poll_name: str
    selected_option: str | None
    selected_option_id: int
    timestamp: int
    message_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "voter": self.voter,
            "pollName": self.poll_name,
            "selectedOption": self.selected_option,
            "selectedOptionId": self.selected_option_id,
            "timestamp": self.timestamp,
            "messageId": self.message_id,
        }
