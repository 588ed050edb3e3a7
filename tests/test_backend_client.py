"""
Tests for the retrying backend client and the poll backend adapter.
"""

from __future__ import annotations

import asyncio

import httpx

from app.domain.entities.poll import PollVoteNotification
from app.infrastructure.backend.backend_client import NO_RESPONSE, BackendClient
from app.infrastructure.backend.poll_backend import HttpPollBackend


def _client(handler, retries: int = 3) -> BackendClient:
    return BackendClient(
        base_url="http://backend.test/api",
        api_key="secret",
        retries=retries,
        retry_delay=0.0,
        transport=httpx.MockTransport(handler),
    )


def test_call_succeeds_on_third_attempt():
    """Two failures followed by a success within the retry budget return the success."""
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(201, json={"data": {"pollId": "p1"}})

    async def run():
        client = _client(handler)
        try:
            return await client.call("POST", "/polls", {"messageId": "m1"})
        finally:
            await client.aclose()

    result = asyncio.run(run())

    assert len(attempts) == 3
    assert result.ok
    assert result.data == {"pollId": "p1"}
    assert str(attempts[0].url) == "http://backend.test/api/polls"
    assert attempts[0].headers["Authorization"] == "Bearer secret"


def test_call_returns_no_response_when_all_attempts_fail():
    """Exhausting retries never raises; it returns the no-response sentinel."""
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    async def run():
        client = _client(handler)
        try:
            return await client.call("GET", "/polls/m1")
        finally:
            await client.aclose()

    result = asyncio.run(run())

    assert result is NO_RESPONSE
    assert not result.available
    assert not result.ok
    assert len(attempts) == 3


def test_client_errors_are_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(404, json={"message": "not found"})

    async def run():
        client = _client(handler)
        try:
            return await client.call("GET", "/polls/unknown")
        finally:
            await client.aclose()

    result = asyncio.run(run())

    assert len(attempts) == 1
    assert result.status_code == 404
    assert not result.ok


def test_poll_backend_maps_rest_surface():
    """Fetch, check, record and forward hit the expected paths and parse responses."""
    seen: list[tuple[str, str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.host, request.url.path))
        path = request.url.path
        if request.method == "GET" and path == "/api/polls/m1":
            return httpx.Response(
                200,
                json={
                    "data": {
                        "messageId": "m1",
                        "pollName": "Coffee?",
                        "pollOptions": [{"name": "Yes", "localId": 1}, {"name": "No", "localId": 2}],
                        "webhookUrl": "http://hooks.test/votes",
                        "responseMessages": {"1": "Great!", "2": "Maybe later."},
                    }
                },
            )
        if request.method == "GET" and path.startswith("/api/polls/votes/"):
            return httpx.Response(200, json={"data": {"alreadyProcessed": True}})
        if request.method == "POST":
            return httpx.Response(201, json={"data": {}})
        return httpx.Response(404)

    async def run():
        client = _client(handler)
        backend = HttpPollBackend(client)
        try:
            poll = await backend.fetch_poll("m1")
            processed = await backend.check_processed("m1", "22997123456@c.us")
            recorded = await backend.record_vote({"messageId": "m1"})
            forwarded = await backend.forward_vote(
                "http://hooks.test/votes",
                PollVoteNotification("v", "Coffee?", "Yes", 1, 0, "m1"),
            )
            missing = await backend.fetch_poll("other")
            return poll, processed, recorded, forwarded, missing
        finally:
            await client.aclose()

    poll, processed, recorded, forwarded, missing = asyncio.run(run())

    assert poll is not None
    assert poll.poll_name == "Coffee?"
    assert poll.option_id_for("No") == 2
    assert poll.response_messages["1"] == "Great!"
    assert poll.webhook_url == "http://hooks.test/votes"
    assert processed is True
    assert recorded is True
    assert forwarded is True
    assert missing is None
    assert ("GET", "backend.test", "/api/polls/votes/m1/22997123456@c.us") in seen
    assert ("POST", "hooks.test", "/votes") in seen


def test_poll_backend_degrades_when_backend_is_down():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async def run():
        client = _client(handler, retries=2)
        backend = HttpPollBackend(client)
        try:
            return (
                await backend.store_poll({"messageId": "m1"}),
                await backend.fetch_poll("m1"),
                await backend.check_processed("m1", "v"),
                await backend.record_vote({"messageId": "m1"}),
            )
        finally:
            await client.aclose()

    assert asyncio.run(run()) == (None, None, None, False)


def test_malformed_url_returns_no_response_without_retrying():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(200)

    async def run():
        client = _client(handler)
        try:
            return await client.call("POST", "http://[::1", {"voter": "v"})
        finally:
            await client.aclose()

    result = asyncio.run(run())

    assert result is NO_RESPONSE
    assert attempts == []


def test_webhook_forward_does_not_carry_the_api_key():
    """The backend credential stays on backend calls and never reaches a webhook host."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": {}})

    async def run():
        client = _client(handler)
        backend = HttpPollBackend(client)
        try:
            await backend.record_vote({"messageId": "m1"})
            return await backend.forward_vote(
                "https://hooks.example/votes",
                PollVoteNotification("v", "Coffee?", "Yes", 1, 0, "m1"),
            )
        finally:
            await client.aclose()

    forwarded = asyncio.run(run())

    assert forwarded is True
    backend_request, webhook_request = requests
    assert backend_request.headers["Authorization"] == "Bearer secret"
    assert webhook_request.url.host == "hooks.example"
    assert "authorization" not in webhook_request.headers
