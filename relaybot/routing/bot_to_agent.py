"""Routes messages coming from the bot to the agent backend."""

from typing import Any, Awaitable, Callable

from loguru import logger

from relaybot.agents.connector import RestConnector
from relaybot.bus.events import AgentAction, BotMessageType
from relaybot.errors import DuplicateRequest, EmptyMessage, MissingType, UnknownMessageType
from relaybot.schemas import require_valid
from relaybot.session.store import SessionStore


class BotToAgentRouter:
    """
    Dispatches a bot webhook message to the matching agent action.

    Every handler validates its payload before reading or writing the
    session store, so an invalid message has no side effects.
    """

    def __init__(self, store: SessionStore, connector: RestConnector):
        self.store = store
        self.connector = connector
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            BotMessageType.request_chat.value: self.request_chat,
            BotMessageType.chat_message.value: self.send_chat_message,
            BotMessageType.terminate_chat.value: self.end_chat,
        }

    async def route(self, message: dict[str, Any]) -> None:
        if not message:
            raise EmptyMessage("Bot message can't be empty")

        message_type = (message.get("messagePayload") or {}).get("type")
        if not message_type:
            raise MissingType("Bot message must have a 'type'")

        handler = self._handlers.get(message_type)
        if handler is None:
            raise UnknownMessageType(message_type)
        await handler(message)

    async def request_chat(self, message: dict[str, Any]) -> None:
        require_valid("RequestChat", message)

        user_id = message["userId"]
        payload = message["messagePayload"]
        profile = payload.get("userProfile") or {}

        # Check and create in one step: at most one pending chat per user.
        session = await self.store.create(user_id, {
            "channel_name": payload.get("channelName"),
            "user_channel_id": payload.get("channelId"),
            "channel_id": payload.get("webhookChannelId"),
        })
        if session is None:
            raise DuplicateRequest(user_id)

        agent_payload = {
            "botUser": {"userId": user_id},
            "conversationHistory": payload.get("conversationHistory"),
            "actions": payload.get("actions"),
            "firstName": profile.get("firstName"),
            "lastName": profile.get("lastName"),
            "email": profile.get("email"),
            "message": payload.get("text"),
            "metadata": payload.get("customProperties"),
        }

        try:
            await self.connector.send(AgentAction.start_chat, agent_payload)
        except Exception:
            # Nothing is pending with the agent, so the session must go.
            await self.store.delete(user_id)
            logger.warning("Chat request for {} failed, session removed", user_id)
            raise

        logger.info("Requested chat with agent for {}", user_id)

    async def send_chat_message(self, message: dict[str, Any]) -> None:
        require_valid("BotChatMessage", message)

        user_id = message["userId"]
        payload = message["messagePayload"]
        agent_payload = {
            "botUser": {"userId": user_id},
            "sessionId": payload["channelExtensions"]["agentChannelSessionId"],
            "message": payload["text"],
        }

        await self.connector.send(AgentAction.post_message, agent_payload)
        logger.info("Sent chat message to agent for {}", user_id)

    async def end_chat(self, message: dict[str, Any]) -> None:
        require_valid("TerminateChat", message)

        user_id = message["userId"]
        payload = message["messagePayload"]
        agent_payload = {
            "botUser": {"userId": user_id},
            "sessionId": payload["channelExtensions"]["agentChannelSessionId"],
        }

        try:
            await self.connector.send(AgentAction.end_chat, agent_payload)
        finally:
            await self.store.delete(user_id)
        logger.info("Terminated chat with agent for {}", user_id)
