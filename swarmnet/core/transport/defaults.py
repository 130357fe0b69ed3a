"""
Centralized transport defaults for swarmnet.

Keeping these in one place prevents drift between the in-memory and
WebSocket drivers and the P2P transport that sits on top of them.
"""

# Message size limits
DEFAULT_MAX_MESSAGE_SIZE = 1 * 1024 * 1024  # 1MB

# Link timeouts
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_HEARTBEAT_TIMEOUT = 5.0

# P2P periodic behaviour
DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_DISCOVERY_INTERVAL = 60.0

# Smoothing factor for latency moving averages
LATENCY_EMA_ALPHA = 0.3
