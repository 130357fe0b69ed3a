import pytest

from swarmnet.config import SwarmNetSettings
from swarmnet.core.transport.defaults import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_HEARTBEAT_INTERVAL,
)


def test_defaults_match_network_timers() -> None:
    settings = SwarmNetSettings()

    assert settings.heartbeat_interval == 30.0
    assert settings.discovery_interval == 60.0
    assert settings.message_ttl == 300.0
    assert settings.metrics_interval == 10.0
    assert settings.health_check_interval == 30.0
    assert settings.max_seed_peers == 3
    assert settings.target_fan_out == 3
    assert settings.health_degraded_threshold == 50.0


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWARMNET_HEARTBEAT_INTERVAL", "2.5")
    monkeypatch.setenv("SWARMNET_MAX_SEED_PEERS", "5")
    monkeypatch.setenv("SWARMNET_LOG_LEVEL", "DEBUG")

    settings = SwarmNetSettings()

    assert settings.heartbeat_interval == 2.5
    assert settings.max_seed_peers == 5
    assert settings.log_level == "DEBUG"


def test_explicit_values_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWARMNET_CONNECT_TIMEOUT", "9")

    settings = SwarmNetSettings(connect_timeout=0.5)

    assert settings.connect_timeout == 0.5


def test_timer_defaults_come_from_transport_defaults() -> None:
    settings = SwarmNetSettings()

    assert settings.heartbeat_interval == DEFAULT_HEARTBEAT_INTERVAL
    assert settings.discovery_interval == DEFAULT_DISCOVERY_INTERVAL
    assert settings.connect_timeout == DEFAULT_CONNECT_TIMEOUT
