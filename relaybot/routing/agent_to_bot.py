"""Routes messages coming from the agent backend to the bot."""

from typing import Any, Awaitable, Callable, Protocol

from loguru import logger

from relaybot.bus.events import AGENT_REQUEST_RESPONSE, AgentMessageType, BotEnvelope
from relaybot.errors import CorrelationLost, EmptyMessage, MissingType, UnknownMessageType
from relaybot.schemas import require_valid
from relaybot.session.store import Session, SessionStore


class BotSender(Protocol):
    async def send(self, envelope: BotEnvelope) -> None: ...


class AgentToBotRouter:
    """
    Turns agent-side messages into envelopes and delivers them to the bot.

    ``route`` returns the envelopes actually delivered, in delivery order.
    Sessions that end with a message are removed only after that message
    reached the bot.
    """

    def __init__(self, store: SessionStore, sender: BotSender):
        self.store = store
        self.sender = sender
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[list[BotEnvelope]]]] = {
            AgentMessageType.accepted.value: self.accept_chat,
            AgentMessageType.chat_message.value: self.send_chat_message,
            AgentMessageType.agent_action.value: self.send_agent_action,
            AgentMessageType.agent_left.value: self.terminate_chat,
            AgentMessageType.rejected.value: self.reject_chat,
            AgentMessageType.delayed.value: self.delay_chat,
        }

    async def route(self, message: dict[str, Any]) -> list[BotEnvelope]:
        if not message:
            raise EmptyMessage("Agent message can't be empty")

        message_type = message.get("type")
        if not message_type:
            raise MissingType("Agent message must have a 'type'")

        handler = self._handlers.get(message_type)
        if handler is None:
            raise UnknownMessageType(message_type)
        return await handler(message)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def accept_chat(self, message: dict[str, Any]) -> list[BotEnvelope]:
        """Send the acceptance notice, then the agent's greeting."""
        require_valid("ChatAccepted", message)

        payload = message["payload"]
        user_id = payload["botUser"]["userId"]
        agent_session_id = payload.get("sessionId")

        session = await self._session(user_id, "accept chat")
        if agent_session_id:
            session = await self.store.merge(user_id, {
                "agent_session_id": agent_session_id,
                "channel_session_id": agent_session_id,
            })

        notice = BotEnvelope(user_id, {
            "type": AGENT_REQUEST_RESPONSE,
            "text": "",
            "status": AgentMessageType.accepted.value,
            "agentSessionId": agent_session_id,
            "channelUserState": {
                "channelSessionId": agent_session_id,
                "userId": user_id,
                "channelId": session.channel_id,
                "userChannelId": session.user_channel_id,
            },
        })
        greeting = BotEnvelope(user_id, {
            "type": AgentMessageType.chat_message.value,
            "text": payload.get("message") or "",
        })

        delivered = [await self._deliver(notice)]
        delivered.append(await self._deliver(greeting))
        logger.info("Sent chat accepted from agent to bot for {}", user_id)
        return delivered

    async def send_chat_message(self, message: dict[str, Any]) -> list[BotEnvelope]:
        require_valid("AgentChatMessage", message)

        payload = message["payload"]
        user_id = payload["botUser"]["userId"]
        envelope = BotEnvelope(user_id, {
            "type": AgentMessageType.chat_message.value,
            "text": payload["message"],
        })
        delivered = [await self._deliver(envelope)]
        logger.info("Sent agent message to bot for {}", user_id)
        return delivered

    async def send_agent_action(self, message: dict[str, Any]) -> list[BotEnvelope]:
        require_valid("AgentAction", message)

        payload = message["payload"]
        user_id = payload["botUser"]["userId"]
        envelope = BotEnvelope(user_id, {
            "type": AgentMessageType.agent_action.value,
            "action": payload["action"],
        })
        delivered = [await self._deliver(envelope)]
        # A custom action always hands the user back to the bot.
        await self.store.delete(user_id)
        logger.info("Sent agent action {} to bot for {}", payload["action"], user_id)
        return delivered

    async def terminate_chat(self, message: dict[str, Any]) -> list[BotEnvelope]:
        require_valid("ChatTerminated", message)

        payload = message["payload"]
        user_id = payload["botUser"]["userId"]
        envelope = BotEnvelope(user_id, {
            "type": AgentMessageType.agent_left.value,
            "text": payload.get("message"),
        })
        delivered = [await self._deliver(envelope)]
        await self.store.delete(user_id)
        logger.info("Terminated chat with bot for {}", user_id)
        return delivered

    async def reject_chat(self, message: dict[str, Any]) -> list[BotEnvelope]:
        require_valid("ChatRejected", message)
        delivered = await self._send_status(message)
        await self.store.delete(message["payload"]["botUser"]["userId"])
        return delivered

    async def delay_chat(self, message: dict[str, Any]) -> list[BotEnvelope]:
        require_valid("ChatDelayed", message)
        return await self._send_status(message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send_status(self, message: dict[str, Any]) -> list[BotEnvelope]:
        payload = message["payload"]
        user_id = payload["botUser"]["userId"]
        envelope = BotEnvelope(user_id, {
            "type": AGENT_REQUEST_RESPONSE,
            "text": payload.get("message"),
            "status": message["type"],
        })
        delivered = [await self._deliver(envelope)]
        logger.info("Sent chat {} from agent to bot for {}", message["type"], user_id)
        return delivered

    async def _session(self, user_id: str, operation: str) -> Session:
        session = await self.store.get(user_id)
        if session is None:
            raise CorrelationLost(user_id, operation)
        return session

    async def _deliver(self, envelope: BotEnvelope) -> BotEnvelope:
        """Stamp channelName from the session and send."""
        session = await self._session(envelope.user_id, "send to bot")
        envelope.message_payload["channelName"] = session.channel_name
        await self.sender.send(envelope)
        return envelope
