"""Tests for the live agent bridge (Engagement Cloud consumer chat API)."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from relaybot.agents.live import LiveAgentBridge
from relaybot.bus.events import AgentAction
from relaybot.config.schema import LiveAgentConfig
from relaybot.errors import BackendCallError, CorrelationLost, MissingField
from relaybot.session.store import MemorySessionStore

AUTH = {
    "domain": "chat.example.com",
    "poolId": "pool-7",
    "jwt": "token-abc",
    "chatSiteName": "site1",
}
BASE = "https://chat.example.com/engagement/api/consumer/site1/v1/"


class FakeBackend:
    """Records requests and answers from a queue of (status, json) tuples."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0) if self.responses else (200, {})
        return httpx.Response(status, json=body)


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def pollers():
    pollers = MagicMock()
    pollers.start = AsyncMock()
    pollers.stop = AsyncMock(return_value=True)
    return pollers


def _bridge(store, pollers, backend):
    config = LiveAgentConfig(
        base_uri="https://ec.example.com/",
        service_user="svc",
        service_password="pw",
        interface_id=3,
        queue_id=4,
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    return LiveAgentBridge(config, store, pollers, client=client)


def _start_payload():
    return {
        "botUser": {"userId": "u1"},
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "message": "help me",
    }


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_success(self, store, pollers):
        backend = FakeBackend((201, {**AUTH, "extra": "ignored"}))
        bridge = _bridge(store, pollers, backend)

        auth = await bridge.authenticate(_start_payload())

        assert auth == AUTH
        request = backend.requests[0]
        assert str(request.url) == "https://ec.example.com/serviceApi/resources/latest/chatAuthenticate"
        assert request.headers["Authorization"].startswith("Basic ")
        body = json.loads(request.content)
        assert body["authUserName"] == "ada@example.com"
        assert body["emailAddress"] == "ada@example.com"
        assert body["question"] == "help me"
        assert body["interfaceId"] == 3
        assert body["queueId"] == 4
        assert body["resumeType"] == "RESUME"
        assert body["mediaList"] == "CHAT"

    @pytest.mark.asyncio
    async def test_only_201_is_success(self, store, pollers):
        backend = FakeBackend((200, {"detail": "not created"}))
        bridge = _bridge(store, pollers, backend)

        with pytest.raises(BackendCallError) as exc_info:
            await bridge.authenticate(_start_payload())
        assert exc_info.value.status_code == 200
        assert "not created" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_start_shape_stores_auth(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend((201, AUTH)))
        await store.merge("u1", {"channel_name": "web"})

        shaped = await bridge.to_agent_shape(_start_payload(), AgentAction.start_chat)

        assert shaped == _start_payload()
        assert (await store.get("u1")).backend_auth == AUTH


# ---------------------------------------------------------------------------
# Outbound calls
# ---------------------------------------------------------------------------


class TestBuildCall:
    @pytest.mark.asyncio
    async def test_start_chat(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": dict(AUTH)})

        spec = await bridge.build_call(_start_payload(), AgentAction.start_chat)

        assert spec.url == BASE + "requestEngagement"
        assert spec.method == "POST"
        assert spec.headers == {"Authorization": "Bearer token-abc"}
        assert spec.params == {"pool": "pool-7"}
        assert spec.json == {}

    @pytest.mark.asyncio
    async def test_post_message(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": {**AUTH, "sessionId": "eng-1"}})
        shaped = await bridge.to_agent_shape(
            {"botUser": {"userId": "u1"}, "sessionId": "eng-1", "message": "hello"},
            AgentAction.post_message,
        )

        spec = await bridge.build_call(shaped, AgentAction.post_message)

        assert spec.url == BASE + "postMessage"
        assert spec.headers["sessionId"] == "eng-1"
        assert spec.json == {"body": "hello"}

    @pytest.mark.asyncio
    async def test_end_chat_stops_poller(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": {**AUTH, "sessionId": "eng-1"}})

        shaped = await bridge.to_agent_shape({"botUser": {"userId": "u1"}}, AgentAction.end_chat)
        spec = await bridge.build_call(shaped, AgentAction.end_chat)

        pollers.stop.assert_awaited_once_with("u1")
        assert spec.url == BASE + "concludeEngagement"

    @pytest.mark.asyncio
    async def test_no_session(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        with pytest.raises(CorrelationLost):
            await bridge.build_call(_start_payload(), AgentAction.start_chat)

    @pytest.mark.asyncio
    async def test_incomplete_auth(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": {"domain": "chat.example.com"}})
        with pytest.raises(MissingField):
            await bridge.build_call(_start_payload(), AgentAction.start_chat)

    @pytest.mark.asyncio
    async def test_post_without_backend_session(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": dict(AUTH)})
        with pytest.raises(MissingField):
            await bridge.build_call({"botUser": {"userId": "u1"}, "body": "x"}, AgentAction.post_message)


class TestCallResult:
    @pytest.mark.asyncio
    async def test_start_records_session_and_polls(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": dict(AUTH)})

        await bridge.on_call_result(_start_payload(), {"sessionId": "eng-1"}, AgentAction.start_chat, 200)

        assert (await store.get("u1")).backend_auth == {**AUTH, "sessionId": "eng-1"}
        pollers.start.assert_awaited_once_with("u1")

    @pytest.mark.asyncio
    async def test_start_without_session_id(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await store.merge("u1", {"backend_auth": dict(AUTH)})

        with pytest.raises(BackendCallError):
            await bridge.on_call_result(_start_payload(), {}, AgentAction.start_chat, 200)
        pollers.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_actions_ignored(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        await bridge.on_call_result({"botUser": {"userId": "u1"}}, {}, AgentAction.post_message, 200)
        pollers.start.assert_not_called()


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------


class TestPullEvents:
    @pytest.mark.asyncio
    async def test_keeps_known_events(self, store, pollers):
        backend = FakeBackend((200, {"systemMessages": [
            {"messageName": "RNEngagementMessagePostedMessage", "body": "hi"},
            {"messageName": "RNEngagementTypingMessage"},
            {"messageName": "RNEngagementConcludedMessage", "reason": "done"},
        ]}))
        bridge = _bridge(store, pollers, backend)
        await store.merge("u1", {"backend_auth": {**AUTH, "sessionId": "eng-1"}})

        events = await bridge.pull_events("u1")

        assert [e["data"]["messageName"] for e in events] == [
            "RNEngagementMessagePostedMessage",
            "RNEngagementConcludedMessage",
        ]
        assert all(e["botUserId"] == "u1" and e["sessionId"] == "eng-1" for e in events)

        request = backend.requests[0]
        assert str(request.url) == BASE + "getMessages?pool=pool-7"
        assert request.headers["sessionId"] == "eng-1"
        assert request.headers["Authorization"] == "Bearer token-abc"

    @pytest.mark.asyncio
    async def test_http_error(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend((500, {"error": "x"})))
        await store.merge("u1", {"backend_auth": {**AUTH, "sessionId": "eng-1"}})
        with pytest.raises(BackendCallError) as exc_info:
            await bridge.pull_events("u1")
        assert exc_info.value.status_code == 500


def _event(**data):
    return {"botUserId": "u1", "sessionId": "eng-1", "data": data}


class TestFromAgentShape:
    @pytest.mark.asyncio
    async def test_posted_message(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        message = await bridge.from_agent_shape(
            _event(messageName="RNEngagementMessagePostedMessage", body="hello there")
        )
        assert message == {
            "type": "agent",
            "payload": {"botUser": {"userId": "u1"}, "sessionId": "eng-1", "message": "hello there"},
        }
        pollers.stop.assert_not_called()

    @pytest.mark.asyncio
    async def test_slash_command_is_action(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        message = await bridge.from_agent_shape(
            _event(messageName="RNEngagementMessagePostedMessage", body="/transfer")
        )
        assert message["type"] == "agentAction"
        assert message["payload"]["action"] == "transfer"
        pollers.stop.assert_awaited_once_with("u1")

    @pytest.mark.asyncio
    async def test_participant_added(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        message = await bridge.from_agent_shape(
            _event(messageName="RNEngagementParticipantAddedMessage", greeting="Hi, I'm Sam")
        )
        assert message["type"] == "accepted"
        assert message["payload"]["message"] == "Hi, I'm Sam"
        assert message["payload"]["sessionId"] == "eng-1"

    @pytest.mark.asyncio
    async def test_wait_information(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        message = await bridge.from_agent_shape(_event(
            messageName="RNEngagementWaitInformationChangedMessage",
            positionString="2",
            averageWaitTimeSecondsString="90",
        ))
        assert message["type"] == "accepted"
        assert "(2)" in message["payload"]["message"]
        assert "(90)" in message["payload"]["message"]

    @pytest.mark.asyncio
    async def test_concluded(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        message = await bridge.from_agent_shape(
            _event(messageName="RNEngagementConcludedMessage", reason="AGENT_CONCLUDED")
        )
        assert message["type"] == "agentLeft"
        assert message["payload"]["message"] == "AGENT_CONCLUDED"

    @pytest.mark.asyncio
    async def test_concluded_without_poller_dropped(self, store, pollers):
        pollers.stop.return_value = False
        bridge = _bridge(store, pollers, FakeBackend())
        message = await bridge.from_agent_shape(_event(messageName="RNEngagementConcludedMessage"))
        assert message is None

    @pytest.mark.asyncio
    async def test_unknown_and_empty(self, store, pollers):
        bridge = _bridge(store, pollers, FakeBackend())
        assert await bridge.from_agent_shape(_event(messageName="RNEngagementTypingMessage")) is None
        assert await bridge.from_agent_shape({"botUserId": "u1"}) is None
