"""Bot webhook channel: signed JSON over HTTP."""

import hashlib
import hmac
import json

import httpx
from loguru import logger

from relaybot.bus.events import BotEnvelope
from relaybot.config.schema import ChannelConfig
from relaybot.errors import BotDeliveryError

SIGNATURE_HEADER = "X-Hub-Signature"


def sign(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature of *body*."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, header: str | None, secret: str) -> bool:
    if not header or not secret:
        return False
    return hmac.compare_digest(sign(body, secret), header.strip())


def channel_id_from_url(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1] if url else ""


class BotWebhookClient:
    """Delivers envelopes to the bot's incoming webhook."""

    def __init__(self, config: ChannelConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    @property
    def channel_id(self) -> str:
        return channel_id_from_url(self.config.webhook_url)

    async def send(self, envelope: BotEnvelope) -> None:
        if not self.config.webhook_url:
            raise BotDeliveryError("Bot webhook URL is not configured")

        body = json.dumps(envelope.to_dict()).encode()
        headers = {"Content-Type": "application/json"}
        if self.config.webhook_secret:
            headers[SIGNATURE_HEADER] = sign(body, self.config.webhook_secret)

        try:
            response = await self.client.post(
                self.config.webhook_url,
                content=body,
                headers=headers,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = f"Bot webhook {e.response.status_code}: {e.response.text[:200]}"
            logger.error(detail)
            raise BotDeliveryError(detail, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"Error sending message to bot webhook: {e}")
            raise BotDeliveryError(f"Error sending message to bot webhook: {e}") from e

        logger.debug("Delivered {} to bot for {}", envelope.message_type, envelope.user_id)

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()
