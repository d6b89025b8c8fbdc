"""Executes agent-bound REST calls built by the selected bridge."""

from typing import Any

import httpx
from loguru import logger

from relaybot.agents.base import AgentBridge
from relaybot.bus.events import AgentAction
from relaybot.errors import BackendCallError, MissingField


class RestConnector:
    """Shape → build → call → result hook, for one bridge."""

    def __init__(self, bridge: AgentBridge, client: httpx.AsyncClient, timeout: float = 30.0):
        self.bridge = bridge
        self.client = client
        self.timeout = timeout

    async def send(self, action: AgentAction, payload: dict[str, Any]) -> Any:
        """
        Deliver *payload* to the agent backend.

        Returns:
            The decoded response body ({} when empty).

        Raises:
            BackendCallError: non-2xx answer or transport failure.
        """
        if not payload or not action:
            raise MissingField("Missing required parameters [payload, action]")
        action = AgentAction(action)

        shaped = await self.bridge.to_agent_shape(payload, action)
        call = await self.bridge.build_call(shaped, action)

        logger.info("Sending {} to agent ({} {})", action.value, call.method, call.url)
        try:
            response = await self.client.request(
                call.method,
                call.url,
                headers=call.headers,
                params=call.params,
                json=call.json,
                auth=call.auth,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:500]
            logger.error(f"Agent {action.value} call failed ({e.response.status_code}): {detail}")
            raise BackendCallError(
                f"Agent {action.value} call failed with status {e.response.status_code}",
                status_code=e.response.status_code,
                body=detail,
                action=action.value,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Agent {action.value} call failed: {e}")
            raise BackendCallError(f"Agent {action.value} call failed: {e}", action=action.value) from e

        result = _decode(response)
        await self.bridge.on_call_result(shaped, result, action, response.status_code)
        logger.info("Successfully sent {} to agent", action.value)
        return result


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}
