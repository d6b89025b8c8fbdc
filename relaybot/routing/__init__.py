"""Message routing between the bot and the agent backend."""

from relaybot.routing.agent_to_bot import AgentToBotRouter
from relaybot.routing.bot_to_agent import BotToAgentRouter

__all__ = ["AgentToBotRouter", "BotToAgentRouter"]
