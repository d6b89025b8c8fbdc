"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChannelConfig(BaseModel):
    """Bot webhook channel configuration."""
    webhook_url: str = ""  # Outgoing webhook URL of the bot channel
    webhook_secret: str = ""  # Shared secret used to sign webhook bodies
    verify_signatures: bool = True
    timeout: float = 10.0


class GatewayConfig(BaseModel):
    """HTTP listener configuration."""
    host: str = "0.0.0.0"
    port: int = 4444


class AgentConfig(BaseModel):
    """Agent bridge selection and polling."""
    impl: Literal["mock", "live"] = "mock"
    poll_interval_ms: int = 3000
    relay: Literal["inline", "loopback"] = "loopback"  # How polled events reach /agent/message
    timeout: float = 30.0

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000


class MockAgentConfig(BaseModel):
    """Mock agent backend (local testing)."""
    base_url: str = "http://localhost:4445/agent/api/chat/v1/"


class LiveAgentConfig(BaseModel):
    """Live agent backend (Engagement Cloud consumer chat API)."""
    base_uri: str = "https://myEcInstance.mydomain.com"
    service_user: str = ""  # Service user allowed to call the chat consumer APIs
    service_password: str = ""
    interface_id: int = 1
    queue_id: int = 1
    product_id: int | None = None
    incident_id: int | None = None
    incident_type: str | None = None
    resume_type: str = "RESUME"
    media_list: str = "CHAT"


class Config(BaseSettings):
    """Root configuration for relaybot."""
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    mock: MockAgentConfig = Field(default_factory=MockAgentConfig)
    live: LiveAgentConfig = Field(default_factory=LiveAgentConfig)

    model_config = SettingsConfigDict(env_prefix="RELAYBOT_", env_nested_delimiter="__")

    @property
    def loopback_url(self) -> str:
        """Local agent-message endpoint used by the loopback relay."""
        return f"http://127.0.0.1:{self.gateway.port}/agent/message"
