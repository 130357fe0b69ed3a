from abc import ABC, abstractmethod
from typing import Any

import orjson

from swarmnet.core.model import P2PMessage


class Serializer(ABC):
    """Abstract base class for data serialization."""

    @abstractmethod
    def serialize(self, data: Any) -> bytes:
        """Serializes data into bytes."""
        pass

    @abstractmethod
    def deserialize(self, data: bytes) -> Any:
        """Deserializes bytes into data."""
        pass


class JsonSerializer(Serializer):
    """Serializer implementation using orjson for JSON serialization."""

    def serialize(self, data: Any) -> bytes:
        """Serializes data to JSON bytes using orjson."""

        # orjson can't serialize sets directly, convert to sorted lists
        def default(obj: Any) -> Any:
            if isinstance(obj, (set, frozenset)):
                return sorted(obj)
            raise TypeError

        return orjson.dumps(data, default=default)

    def deserialize(self, data: bytes) -> Any:
        """Deserializes JSON bytes to data using orjson."""
        return orjson.loads(data)


class MessageCodec:
    """Encode and decode P2P messages using their wire aliases."""

    def __init__(self, serializer: Serializer | None = None) -> None:
        self.serializer = serializer or JsonSerializer()

    def encode(self, message: P2PMessage) -> bytes:
        return self.serializer.serialize(
            message.model_dump(mode="json", by_alias=True)
        )

    def decode(self, data: bytes) -> P2PMessage:
        """Decode raw bytes into a message.

        Raises:
            orjson.JSONDecodeError: If the bytes are not valid JSON
            pydantic.ValidationError: If the JSON is not a valid message
        """
        return P2PMessage.model_validate(self.serializer.deserialize(data))
