from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from swarmnet.core.transport.defaults import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_HEARTBEAT_INTERVAL,
)


class SwarmNetSettings(BaseSettings):
    """swarmnet network configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="SWARMNET_", env_file=".env", extra="ignore"
    )

    heartbeat_interval: float = Field(
        DEFAULT_HEARTBEAT_INTERVAL,
        description="Seconds between heartbeat broadcasts from each transport.",
    )
    discovery_interval: float = Field(
        DEFAULT_DISCOVERY_INTERVAL,
        description="Seconds between discovery broadcasts from each transport.",
    )
    message_ttl: float = Field(
        300.0, description="Advisory time-to-live attached to outgoing messages."
    )
    metrics_interval: float = Field(
        10.0, description="Seconds between network metrics snapshots."
    )
    health_check_interval: float = Field(
        30.0, description="Seconds between topology health checks."
    )
    max_seed_peers: int = Field(
        3, description="Registered peers a new agent connects to on registration."
    )
    target_fan_out: int = Field(
        3, description="Connections per node considered fully healthy."
    )
    connect_timeout: float = Field(
        DEFAULT_CONNECT_TIMEOUT,
        description="Upper bound in seconds for a single connection attempt.",
    )
    restart_timeout: float = Field(
        10.0, description="Upper bound in seconds for a health-check restart."
    )
    health_degraded_threshold: float = Field(
        50.0,
        description="Network health below this value publishes a degraded event.",
    )
    log_level: str = Field("INFO", description="Default loguru level.")
    debug_scopes: tuple[str, ...] = Field(
        (), description="Module scopes that log at DEBUG regardless of log_level."
    )
