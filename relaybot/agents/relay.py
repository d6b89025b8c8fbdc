"""Loopback relay: hands polled events to the gateway's agent-message endpoint."""

from typing import Any

import httpx

from relaybot.errors import BackendCallError


class LoopbackRelay:
    """POSTs each polled event to ``/agent/message`` on the local gateway."""

    def __init__(self, url: str, client: httpx.AsyncClient, timeout: float = 30.0):
        self.url = url
        self.client = client
        self.timeout = timeout

    async def __call__(self, event: dict[str, Any]) -> None:
        try:
            response = await self.client.post(self.url, json=event, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendCallError(
                f"Local relay rejected event ({e.response.status_code}): {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BackendCallError(f"Local relay unreachable: {e}") from e
