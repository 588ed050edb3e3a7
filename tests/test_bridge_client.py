"""
Tests for the websocket bridge client's framing, without a real bridge.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from app.application.ports.chat_client import ChatEvent
from app.domain.entities.message import MediaPayload, PollPayload
from app.domain.entities.poll import PollOption, VoteEvent
from app.infrastructure.whatsapp.bridge_client import BridgeCommandError, BridgeWhatsAppClient, parse_vote


class FakeBridgeSocket:
    """Answers every command frame with a canned response."""

    def __init__(self, client: BridgeWhatsAppClient, results: dict[str, dict]) -> None:
        self._client = client
        self._results = results
        self.frames: list[dict] = []

    async def send(self, raw: str) -> None:
        frame = json.loads(raw)
        self.frames.append(frame)
        result = self._results.get(frame["type"])
        if result is None:
            payload = {"ok": False, "error": {"code": "ERR_UNSUPPORTED", "message": frame["type"]}}
        else:
            payload = {"ok": True, "result": result}
        response = json.dumps({"type": "response", "requestId": frame["requestId"], "payload": payload})
        asyncio.get_running_loop().call_soon(self._client._handle_frame, response)

    async def close(self) -> None:
        pass


def test_parse_vote_reads_first_selected_option():
    vote = parse_vote(
        {
            "voter": "22997123456@c.us",
            "parentMessageId": "m1",
            "selectedOptions": [{"name": "Yes", "localId": 0}],
            "interractedAtTs": 1700000000,
        }
    )
    assert vote == VoteEvent("22997123456@c.us", "m1", "Yes", 1700000000)


def test_parse_vote_handles_retracted_and_malformed_votes():
    retracted = parse_vote({"voter": "v@c.us", "parentMessageId": "m1", "selectedOptions": []})
    assert retracted is not None
    assert retracted.selected_option_name is None
    assert retracted.interaction_timestamp == 0
    assert parse_vote({"parentMessageId": "m1"}) is None


def test_lifecycle_events_are_dispatched():
    client = BridgeWhatsAppClient(url="ws://bridge.test")
    seen: list[tuple] = []
    client.on(ChatEvent.QR, lambda qr: seen.append(("qr", qr)))
    client.on(ChatEvent.READY, lambda: seen.append(("ready",)))
    client.on(ChatEvent.DISCONNECTED, lambda reason: seen.append(("disconnected", reason)))

    client._handle_frame(json.dumps({"type": "event", "event": "qr", "payload": {"qr": "2@abc"}}))
    client._handle_frame(json.dumps({"type": "event", "event": "ready", "payload": {}}))
    client._handle_frame(json.dumps({"type": "event", "event": "disconnected", "payload": {"reason": "LOGOUT"}}))
    client._handle_frame(json.dumps({"type": "event", "event": "loading_screen", "payload": {}}))
    client._handle_frame("not json")

    assert seen == [("qr", "2@abc"), ("ready",), ("disconnected", "LOGOUT")]


def test_vote_events_run_async_handlers():
    client = BridgeWhatsAppClient(url="ws://bridge.test")
    votes: list[VoteEvent] = []

    async def on_vote(vote: VoteEvent) -> None:
        votes.append(vote)

    client.on(ChatEvent.VOTE_UPDATE, on_vote)

    async def run():
        client._handle_frame(
            json.dumps(
                {
                    "type": "event",
                    "event": "vote_update",
                    "payload": {"voter": "v@c.us", "parentMessageId": "m1", "selectedOptions": [{"name": "No"}]},
                }
            )
        )
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    asyncio.run(run())

    assert [v.selected_option_name for v in votes] == ["No"]


def test_commands_round_trip_through_the_socket():
    client = BridgeWhatsAppClient(url="ws://bridge.test", token="t0k3n")
    socket = FakeBridgeSocket(
        client,
        {
            "send_message": {"id": "true_v@c.us_ABC", "timestamp": 1700000000},
            "get_number_id": {"id": None},
            "get_chats": {
                "chats": [
                    {"id": "1203@g.us", "name": "Team", "isGroup": True, "participantCount": 3},
                    {"name": "no id"},
                ]
            },
        },
    )
    client._ws = socket

    async def run():
        sent = await client.send_message(
            "v@c.us",
            PollPayload(name="Coffee?", options=(PollOption("Yes", 1), PollOption("No", 2))),
        )
        await client.send_message("v@c.us", MediaPayload(mimetype="image/png", data="aGk=", filename="a.png"))
        number = await client.get_number_id("v@c.us")
        chats = await client.get_chats()
        return sent, number, chats

    sent, number, chats = asyncio.run(run())

    assert sent.id == "true_v@c.us_ABC"
    assert sent.timestamp == 1700000000
    assert number is None
    assert [c.id for c in chats] == ["1203@g.us"]
    poll_frame = socket.frames[0]
    assert poll_frame["token"] == "t0k3n"
    assert poll_frame["payload"]["content"] == {
        "type": "poll",
        "name": "Coffee?",
        "options": ["Yes", "No"],
        "allowMultipleAnswers": False,
    }
    assert socket.frames[1]["payload"]["content"]["type"] == "media"


def test_command_errors_are_raised():
    client = BridgeWhatsAppClient(url="ws://bridge.test")
    client._ws = FakeBridgeSocket(client, {})

    async def run():
        await client.get_chats()

    with pytest.raises(BridgeCommandError) as exc:
        asyncio.run(run())
    assert exc.value.code == "ERR_UNSUPPORTED"


def _vote_frame(option: str) -> str:
    return json.dumps(
        {
            "type": "event",
            "event": "vote_update",
            "payload": {"voter": "v@c.us", "parentMessageId": "m1", "selectedOptions": [{"name": option}]},
        }
    )


def test_destroy_lets_in_flight_vote_handlers_finish():
    client = BridgeWhatsAppClient(url="ws://bridge.test")
    replied: list[str] = []

    async def on_vote(vote: VoteEvent) -> None:
        await asyncio.sleep(0.01)
        replied.append(vote.selected_option_name)

    client.on(ChatEvent.VOTE_UPDATE, on_vote)

    async def run():
        client._handle_frame(_vote_frame("Yes"))
        await client.destroy()

    asyncio.run(run())

    assert replied == ["Yes"]


def test_destroy_cancels_handlers_that_outlive_the_drain_timeout():
    client = BridgeWhatsAppClient(url="ws://bridge.test", drain_timeout=0.01)
    outcome: list[str] = []

    async def on_vote(vote: VoteEvent) -> None:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            outcome.append("cancelled")
            raise

    client.on(ChatEvent.VOTE_UPDATE, on_vote)

    async def run():
        client._handle_frame(_vote_frame("No"))
        await client.destroy()
        await asyncio.sleep(0)

    asyncio.run(run())

    assert outcome == ["cancelled"]
