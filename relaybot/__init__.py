"""relaybot - hands bot conversations over to live agents and back."""

__version__ = "0.1.0"
__logo__ = "🔁"
