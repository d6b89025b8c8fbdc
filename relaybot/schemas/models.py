"""Pydantic models describing every message accepted at a routing boundary."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, StrictStr


class _Schema(BaseModel):
    model_config = ConfigDict(extra="allow")


# ── bot → agent ────────────────────────────────────────────────

class UserProfile(_Schema):
    firstName: StrictStr | None = None
    lastName: StrictStr | None = None
    email: StrictStr | None = None


class ActionItem(_Schema):
    type: StrictStr
    label: StrictStr | None = None


class ChannelExtensions(_Schema):
    agentChannelSessionId: StrictStr


class RequestChatPayload(_Schema):
    type: Literal["agentRequest"]
    text: StrictStr | None = None
    userProfile: UserProfile
    conversationHistory: list[dict[str, Any]] | None = None
    actions: list[ActionItem] | None = None
    customProperties: dict[str, Any] | None = None
    channelName: StrictStr | None = None
    channelId: StrictStr | None = None
    webhookChannelId: StrictStr | None = None


class RequestChat(_Schema):
    userId: StrictStr
    messagePayload: RequestChatPayload


class BotChatMessagePayload(_Schema):
    type: Literal["botTextMessagePayload"]
    text: StrictStr
    channelExtensions: ChannelExtensions


class BotChatMessage(_Schema):
    userId: StrictStr
    messagePayload: BotChatMessagePayload


class TerminateChatPayload(_Schema):
    type: Literal["botConversationEnded"]
    channelExtensions: ChannelExtensions


class TerminateChat(_Schema):
    userId: StrictStr
    messagePayload: TerminateChatPayload


# ── agent → bot ────────────────────────────────────────────────

class BotUser(_Schema):
    userId: StrictStr


class AgentPayload(_Schema):
    botUser: BotUser
    sessionId: StrictStr | None = None
    message: StrictStr | None = None


class TextPayload(AgentPayload):
    message: StrictStr


class ActionPayload(AgentPayload):
    action: StrictStr


class ChatAccepted(_Schema):
    type: Literal["accepted"]
    payload: AgentPayload


class AgentChatMessage(_Schema):
    type: Literal["agent"]
    payload: TextPayload


class AgentAction(_Schema):
    type: Literal["agentAction"]
    payload: ActionPayload


class ChatTerminated(_Schema):
    type: Literal["agentLeft"]
    payload: AgentPayload


class ChatRejected(_Schema):
    type: Literal["rejected"]
    payload: AgentPayload


class ChatDelayed(_Schema):
    type: Literal["delayed"]
    payload: AgentPayload


SCHEMAS: dict[str, type[BaseModel]] = {
    "RequestChat": RequestChat,
    "BotChatMessage": BotChatMessage,
    "TerminateChat": TerminateChat,
    "ChatAccepted": ChatAccepted,
    "AgentChatMessage": AgentChatMessage,
    "AgentAction": AgentAction,
    "ChatTerminated": ChatTerminated,
    "ChatRejected": ChatRejected,
    "ChatDelayed": ChatDelayed,
}
