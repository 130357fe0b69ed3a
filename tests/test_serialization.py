import orjson
import pytest
from pydantic import ValidationError

from swarmnet.core.model import (
    BROADCAST_RECIPIENT,
    MessageBody,
    MessageType,
    P2PMessage,
)
from swarmnet.serialization import JsonSerializer, MessageCodec


def make_message(**overrides: object) -> P2PMessage:
    fields: dict[str, object] = {
        "sender": "node-a",
        "recipient": "node-b",
        "type": MessageType.DIRECT,
        "payload": MessageBody(type="task_delegation", data={"taskId": "t1"}),
    }
    fields.update(overrides)
    return P2PMessage(**fields)


def test_json_serializer_sorts_sets() -> None:
    serializer = JsonSerializer()

    encoded = serializer.serialize({"skills": {"review", "api", "python"}})

    assert orjson.loads(encoded) == {"skills": ["api", "python", "review"]}


def test_json_serializer_rejects_unknown_objects() -> None:
    with pytest.raises(TypeError):
        JsonSerializer().serialize({"value": object()})


def test_codec_uses_wire_aliases() -> None:
    codec = MessageCodec()
    message = make_message()

    wire = orjson.loads(codec.encode(message))

    assert wire["from"] == "node-a"
    assert wire["to"] == "node-b"
    assert wire["type"] == "direct"
    assert wire["payload"] == {"type": "task_delegation", "data": {"taskId": "t1"}}
    assert "sender" not in wire


def test_codec_decodes_messages_from_other_nodes() -> None:
    raw = orjson.dumps(
        {
            "id": "msg_external",
            "from": "node-x",
            "to": BROADCAST_RECIPIENT,
            "type": "heartbeat",
            "payload": {"type": "heartbeat", "data": {"nodeId": "node-x"}},
            "timestamp": 1_700_000_000_000,
            "ttl": 300,
        }
    )

    message = MessageCodec().decode(raw)

    assert message.sender == "node-x"
    assert message.recipient == BROADCAST_RECIPIENT
    assert message.type is MessageType.HEARTBEAT
    assert message.body_type == "heartbeat"
    assert message.data == {"nodeId": "node-x"}


def test_codec_rejects_invalid_frames() -> None:
    codec = MessageCodec()

    with pytest.raises(orjson.JSONDecodeError):
        codec.decode(b"not json")
    with pytest.raises(ValidationError):
        codec.decode(orjson.dumps({"from": "node-a"}))


def test_messages_are_immutable_and_uniquely_identified() -> None:
    first = make_message()
    second = make_message()

    assert first.id != second.id
    assert first.id.startswith("msg_")
    with pytest.raises(ValidationError):
        first.sender = "someone-else"  # type: ignore[misc]


def test_ttl_is_advisory_expiry_check() -> None:
    message = make_message(timestamp=1_000_000, ttl=5.0)

    assert not message.is_expired(now=1_000.0 + 4.0)
    assert message.is_expired(now=1_000.0 + 6.0)
