"""HTTP gateway: bot webhook receiver and agent message relay."""

import asyncio
import json
from typing import Any

import httpx
from aiohttp import web
from loguru import logger

from relaybot.agents import PollerRegistry, RestConnector, create_agent_bridge
from relaybot.agents.relay import LoopbackRelay
from relaybot.bus.events import BotEnvelope
from relaybot.channels.webhook import SIGNATURE_HEADER, BotWebhookClient, verify_signature
from relaybot.config.schema import Config
from relaybot.errors import EmptyMessage, RelayError
from relaybot.routing import AgentToBotRouter, BotToAgentRouter
from relaybot.session.store import MemorySessionStore, SessionStore


class Gateway:
    """
    Wires the store, bridge, routers and pollers together and serves:

    - ``POST /bot/message``: messages from the bot webhook
    - ``POST /agent/message``: messages from the agent side (and the loopback relay)
    - ``GET /health``
    """

    def __init__(
        self,
        config: Config,
        store: SessionStore | None = None,
        client: httpx.AsyncClient | None = None,
        impl: str | None = None,
    ):
        self.config = config
        self.store = store or MemorySessionStore()
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.agent.timeout)

        self.pollers = PollerRegistry(self.store, interval_s=config.agent.poll_interval_s)
        self.bridge = create_agent_bridge(config, self.store, self.pollers, client=self.client, impl=impl)
        self.connector = RestConnector(self.bridge, self.client, timeout=config.agent.timeout)
        self.webhook = BotWebhookClient(config.channel, client=self.client)
        self.bot_router = BotToAgentRouter(self.store, self.connector)
        self.agent_router = AgentToBotRouter(self.store, self.webhook)

        if config.agent.relay == "inline":
            dispatch = self.handle_agent_event
        else:
            dispatch = LoopbackRelay(config.loopback_url, self.client, timeout=config.agent.timeout)
        self.pollers.bind(pull=self.bridge.pull_events, dispatch=dispatch)

        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Message entry points
    # ------------------------------------------------------------------

    async def handle_bot_message(self, message: Any) -> None:
        """Route one bot webhook message, tagging it with the webhook channel id."""
        if not isinstance(message, dict) or not message:
            raise EmptyMessage("Bot message can't be empty")
        payload = message.get("messagePayload")
        if isinstance(payload, dict):
            payload["webhookChannelId"] = self.webhook.channel_id
        await self.bot_router.route(message)

    async def handle_agent_event(self, event: Any) -> list[BotEnvelope]:
        """Translate one agent-side event and deliver the result to the bot."""
        if not isinstance(event, dict) or not event:
            raise EmptyMessage("Agent message can't be empty")
        message = await self.bridge.from_agent_shape(event)
        if message is None:
            logger.debug("Agent event dropped by {} bridge", self.bridge.name)
            return []
        return await self.agent_router.route(message)

    # ------------------------------------------------------------------
    # HTTP handlers
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/bot/message", self._handle_bot_message)
        app.router.add_post("/agent/message", self._handle_agent_message)
        app.router.add_get("/health", self._handle_health)
        return app

    async def _handle_bot_message(self, request: web.Request) -> web.Response:
        body = await request.read()

        channel = self.config.channel
        if channel.verify_signatures and channel.webhook_secret:
            if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), channel.webhook_secret):
                logger.warning("Rejected bot message with invalid signature from {}", request.remote)
                return web.json_response({"error": "invalid signature"}, status=401)

        try:
            message = json.loads(body) if body else None
        except json.JSONDecodeError:
            return web.json_response({"error": "Invalid JSON"}, status=400)

        logger.info("Received a message from bot, processing before sending to agent")
        try:
            await self.handle_bot_message(message)
        except RelayError as e:
            logger.error(f"Error relaying bot message: {e}")
            return web.json_response({"error": str(e)}, status=e.http_status)
        except Exception as e:
            logger.exception(f"Unexpected error relaying bot message: {e}")
            return web.json_response({"error": "internal error"}, status=500)

        return web.json_response({"message": "success"})

    async def _handle_agent_message(self, request: web.Request) -> web.Response:
        logger.info("Message received from agent, processing before sending to bot")
        try:
            event = await request.json() if request.can_read_body else None
        except json.JSONDecodeError:
            return web.json_response({"error": "Invalid JSON"}, status=400)

        try:
            delivered = await self.handle_agent_event(event)
        except RelayError as e:
            logger.error(f"Error sending message to bot: {e}")
            return web.json_response({"error": str(e)}, status=e.http_status)
        except Exception as e:
            logger.exception(f"Unexpected error sending message to bot: {e}")
            return web.json_response({"error": "internal error"}, status=500)

        if not delivered:
            return web.json_response({"message": "ignored"})
        return web.json_response({"message": "success", "delivered": len(delivered)})

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "bridge": self.bridge.name,
            "sessions": len(await self.store.list_user_ids()),
            "pollers": len(self.pollers),
        })

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.gateway.host, self.config.gateway.port)
        await site.start()
        logger.info(
            "Gateway listening on http://{}:{} ({} agent, {} relay)",
            self.config.gateway.host,
            self.config.gateway.port,
            self.bridge.name,
            self.config.agent.relay,
        )

    async def run_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def stop(self) -> None:
        self.pollers.stop_all()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        await self.bridge.aclose()
        await self.webhook.aclose()
        if self._own_client:
            await self.client.aclose()

        logger.info("Gateway stopped")
