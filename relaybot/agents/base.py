"""Base interface for agent backends."""

from abc import ABC, abstractmethod
from typing import Any

from relaybot.bus.events import AgentAction, RequestSpec


class AgentBridge(ABC):
    """
    Translates between bot-side messages and one agent backend.

    Routers only ever see bot-shaped dicts; everything backend specific
    stays behind these four operations.
    """

    name: str = ""

    @abstractmethod
    async def to_agent_shape(self, payload: dict[str, Any], action: AgentAction) -> dict[str, Any]:
        """
        Reshape an agent-bound payload for *action*.

        Args:
            payload: Payload built by the bot-to-agent router.
            action: One of start-chat, end-chat or post-message.

        Returns:
            The payload in the backend's format.
        """

    @abstractmethod
    async def from_agent_shape(self, event: dict[str, Any]) -> dict[str, Any] | None:
        """
        Reshape one backend event into a bot-side message.

        Returns None when the event should be dropped.
        """

    @abstractmethod
    async def build_call(self, payload: dict[str, Any], action: AgentAction) -> RequestSpec:
        """Build the REST request that delivers *payload* for *action*."""

    @abstractmethod
    async def on_call_result(
        self,
        payload: dict[str, Any],
        result: Any,
        action: AgentAction,
        status_code: int,
    ) -> None:
        """Hook run after a successful REST call."""

    async def pull_events(self, user_id: str) -> list[dict[str, Any]]:
        """Fetch pending backend events for *user_id*. Push-based backends return nothing."""
        return []

    async def aclose(self) -> None:
        """Release resources held by the bridge."""
