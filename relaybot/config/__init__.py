"""Configuration schema and persistence."""

from relaybot.config.loader import get_config_path, load_config, save_config
from relaybot.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
