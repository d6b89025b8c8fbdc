"""Message types and envelopes exchanged between the bot and agent sides."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BotMessageType(str, Enum):
    """Types sent by the bot towards the agent backend."""

    request_chat = "agentRequest"
    chat_message = "botTextMessagePayload"
    terminate_chat = "botConversationEnded"


class AgentMessageType(str, Enum):
    """Types sent by the agent backend towards the bot."""

    accepted = "accepted"
    chat_message = "agent"
    rejected = "rejected"
    delayed = "delayed"
    agent_left = "agentLeft"
    agent_action = "agentAction"


# messagePayload.type the bot expects for accepted/rejected/delayed notices
AGENT_REQUEST_RESPONSE = "agentRequestResponse"


class AgentAction(str, Enum):
    """Agent-bound REST actions."""

    start_chat = "requestChat"
    end_chat = "concludeChat"
    post_message = "postMessage"


@dataclass
class BotEnvelope:
    """Message to send to the bot webhook."""

    user_id: str
    message_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def message_type(self) -> str | None:
        return self.message_payload.get("type")

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "messagePayload": dict(self.message_payload)}


@dataclass
class RequestSpec:
    """An outbound REST call to the agent backend."""

    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    json: Any = None
    auth: tuple[str, str] | None = None  # basic auth (user, password)
