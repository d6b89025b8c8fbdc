"""Bot-side channels."""

from relaybot.channels.webhook import BotWebhookClient, sign, verify_signature

__all__ = ["BotWebhookClient", "sign", "verify_signature"]
