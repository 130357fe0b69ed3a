"""
Semantic type aliases for swarmnet datastructures.

These aliases keep signatures self-documenting by naming what a raw
str/int/float actually carries.
"""

from typing import Any, TypeAlias

# Time and timestamp types
Timestamp: TypeAlias = float
TimestampMilliseconds: TypeAlias = int
DurationSeconds: TypeAlias = float
DurationMilliseconds: TypeAlias = float

# ID and identifier types
NodeId: TypeAlias = str
ClusterId: TypeAlias = str
MessageIdString: TypeAlias = str
CollaborationId: TypeAlias = str
TaskId: TypeAlias = str

# Message types
MessageTypeName: TypeAlias = str
MessagePayload: TypeAlias = Any

# Network types
HostAddress: TypeAlias = str
PortNumber: TypeAlias = int
UrlString: TypeAlias = str
NetworkLatencyMs: TypeAlias = float

# Statistics and metrics types
MessageCount: TypeAlias = int
HealthScore: TypeAlias = float
ErrorRatePercent: TypeAlias = float
SkillName: TypeAlias = str
