"""Tests for the REST connector and the mock agent bridge."""

import json

import httpx
import pytest

from relaybot.agents import create_agent_bridge
from relaybot.agents.connector import RestConnector
from relaybot.agents.live import LiveAgentBridge
from relaybot.agents.mock import MockAgentBridge
from relaybot.agents.poller import PollerRegistry
from relaybot.bus.events import AgentAction
from relaybot.config.schema import Config
from relaybot.errors import BackendCallError, MissingField
from relaybot.session.store import MemorySessionStore

PAYLOAD = {"botUser": {"userId": "u1"}, "sessionId": "s1", "message": "hi"}


def _connector(handler, base_url="http://agent.test/api/"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RestConnector(MockAgentBridge(base_url), client)


class TestMockBridge:
    @pytest.mark.asyncio
    async def test_identity_shapes(self):
        bridge = MockAgentBridge()
        assert await bridge.to_agent_shape(PAYLOAD, AgentAction.post_message) == PAYLOAD
        event = {"type": "agent", "payload": {"message": "x"}}
        assert await bridge.from_agent_shape(event) is event
        assert await bridge.from_agent_shape({}) is None

    @pytest.mark.asyncio
    async def test_url_per_action(self):
        bridge = MockAgentBridge("http://agent.test/api")
        for action in AgentAction:
            call = await bridge.build_call(PAYLOAD, action)
            assert call.url == f"http://agent.test/api/{action.value}"
            assert call.method == "POST"
            assert call.json == PAYLOAD

    @pytest.mark.asyncio
    async def test_pull_events_empty(self):
        assert await MockAgentBridge().pull_events("u1") == []


class TestFactory:
    def test_selects_by_config(self):
        config = Config()
        store = MemorySessionStore()
        pollers = PollerRegistry(store)
        assert isinstance(create_agent_bridge(config, store, pollers), MockAgentBridge)

        config.agent.impl = "live"
        assert isinstance(create_agent_bridge(config, store, pollers), LiveAgentBridge)

    def test_override_and_unknown(self):
        config = Config()
        store = MemorySessionStore()
        pollers = PollerRegistry(store)
        assert isinstance(create_agent_bridge(config, store, pollers, impl="live"), LiveAgentBridge)
        with pytest.raises(ValueError):
            create_agent_bridge(config, store, pollers, impl="carrier-pigeon")


class TestRestConnector:
    @pytest.mark.asyncio
    async def test_send_success(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        result = await _connector(handler).send(AgentAction.post_message, PAYLOAD)

        assert result == {"ok": True}
        assert str(seen[0].url) == "http://agent.test/api/postMessage"
        assert json.loads(seen[0].content) == PAYLOAD

    @pytest.mark.asyncio
    async def test_empty_body(self):
        result = await _connector(lambda r: httpx.Response(204)).send(AgentAction.end_chat, PAYLOAD)
        assert result == {}

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        result = await _connector(lambda r: httpx.Response(200, text="OK")).send(
            AgentAction.post_message, PAYLOAD
        )
        assert result == {"raw": "OK"}

    @pytest.mark.asyncio
    async def test_error_status(self):
        connector = _connector(lambda r: httpx.Response(503, text="maintenance"))
        with pytest.raises(BackendCallError) as exc_info:
            await connector.send(AgentAction.start_chat, PAYLOAD)
        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "maintenance"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendCallError) as exc_info:
            await _connector(handler).send(AgentAction.start_chat, PAYLOAD)
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_missing_payload(self):
        connector = _connector(lambda r: httpx.Response(200))
        with pytest.raises(MissingField):
            await connector.send(AgentAction.start_chat, {})
