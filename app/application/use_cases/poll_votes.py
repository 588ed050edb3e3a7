from __future__ import annotations

import logging
from typing import Callable

from app.application.ports.poll_backend import PollBackendPort
from app.application.use_cases.messaging import MessagingService
from app.domain.entities.poll import PollRecord, PollVoteNotification, VoteEvent

UNMATCHED_OPTION_ID = 0

VoteObserver = Callable[[PollVoteNotification], None]


class PollVoteReconciler:
    """Resolves one inbound vote against the backend and sends the configured reply.

    Steps: fetch poll, already-processed check, resolve option, record vote,
    reply. Backend failures never propagate. Only a missing poll record or a
    confirmed prior processing stops the reply; a failed record does not.
    Deduplication is left entirely to the backend.
    """

    def __init__(self, backend: PollBackendPort, messaging: MessagingService) -> None:
        self._backend = backend
        self._messaging = messaging
        self._observers: list[VoteObserver] = []
        self._logger = logging.getLogger(__name__)

    def on_vote(self, observer: VoteObserver) -> None:
        self._observers.append(observer)

    async def handle(self, vote: VoteEvent) -> None:
        poll = await self._backend.fetch_poll(vote.parent_message_id)
        if poll is None:
            self._logger.warning(
                "Vote received for unknown or unavailable poll",
                extra={
                    "message_id": vote.parent_message_id,
                    "voter": vote.voter,
                    "option": vote.selected_option_name,
                    "timestamp": vote.interaction_timestamp,
                },
            )
            return

        processed = await self._backend.check_processed(poll.message_id, vote.voter)
        if processed:
            self._logger.info(
                "Vote already processed", extra={"message_id": poll.message_id, "voter": vote.voter}
            )
            return
        if processed is None:
            self._logger.warning(
                "Could not confirm vote status; processing anyway",
                extra={"message_id": poll.message_id, "voter": vote.voter},
            )

        option_id = self._resolve_option_id(poll, vote)
        notification = PollVoteNotification(
            voter=vote.voter,
            poll_name=poll.poll_name,
            selected_option=vote.selected_option_name,
            selected_option_id=option_id,
            timestamp=vote.interaction_timestamp,
            message_id=poll.message_id,
        )

        recorded = await self._backend.record_vote(
            {
                "messageId": poll.message_id,
                "voter": vote.voter,
                "selectedOption": vote.selected_option_name,
                "selectedOptionId": option_id,
                "timestamp": vote.interaction_timestamp,
            }
        )
        if not recorded:
            self._logger.error(
                "Failed to record vote", extra={"message_id": poll.message_id, "voter": vote.voter}
            )

        await self._reply(poll, vote, option_id)
        self._notify(notification)
        if poll.webhook_url:
            await self._forward(poll.webhook_url, notification)

    def _resolve_option_id(self, poll: PollRecord, vote: VoteEvent) -> int:
        option_id = poll.option_id_for(vote.selected_option_name)
        if option_id is None:
            self._logger.warning(
                "Selected option not found in poll; using default id",
                extra={
                    "message_id": poll.message_id,
                    "option": vote.selected_option_name,
                    "option_id": UNMATCHED_OPTION_ID,
                },
            )
            return UNMATCHED_OPTION_ID
        return option_id

    async def _reply(self, poll: PollRecord, vote: VoteEvent, option_id: int) -> None:
        text = poll.response_messages.get(str(option_id))
        if not text:
            self._logger.warning(
                "No response message configured for option",
                extra={"message_id": poll.message_id, "option_id": option_id},
            )
            return
        try:
            await self._messaging.send_message(vote.voter, text)
        except Exception as e:
            self._logger.error(
                "Failed to send poll reply",
                extra={"message_id": poll.message_id, "voter": vote.voter, "error": str(e)},
            )
            return
        self._logger.info(
            "Poll reply sent", extra={"message_id": poll.message_id, "voter": vote.voter, "option_id": option_id}
        )

    def _notify(self, notification: PollVoteNotification) -> None:
        for observer in list(self._observers):
            try:
                observer(notification)
            except Exception:
                self._logger.exception("Vote observer failed", extra={"voter": notification.voter})

    async def _forward(self, webhook_url: str, notification: PollVoteNotification) -> None:
        if not await self._backend.forward_vote(webhook_url, notification):
            self._logger.error(
                "Failed to forward vote to webhook",
                extra={"message_id": notification.message_id, "voter": notification.voter},
            )
