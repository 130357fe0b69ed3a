import io
import sys
from collections.abc import Iterator

import pytest
from loguru import logger

from swarmnet.core.logging import configure_logging, in_scope, normalize_scopes


@pytest.fixture(autouse=True)
def restore_logger() -> Iterator[None]:
    yield
    logger.remove()
    logger.add(sys.stderr)


def emit(module_name: str, level: str, message: str) -> None:
    logger.patch(lambda record: record.update(name=module_name)).log(level, message)


def test_scopes_are_qualified_and_deduplicated() -> None:
    scopes = normalize_scopes(
        ["network.transport", " ", "swarmnet.network.manager", "network.transport."]
    )

    assert scopes == ("swarmnet.network.transport", "swarmnet.network.manager")


def test_scope_matching_respects_module_boundaries() -> None:
    scopes = ("swarmnet.network",)

    assert in_scope("swarmnet.network", scopes)
    assert in_scope("swarmnet.network.transport", scopes)
    assert not in_scope("swarmnet.networking", scopes)
    assert not in_scope("swarmnet.cli", scopes)


def test_records_below_level_are_dropped() -> None:
    sink = io.StringIO()
    handler_id = configure_logging("WARNING", sink=sink)

    emit("swarmnet.cli", "INFO", "quiet info")
    emit("swarmnet.cli", "WARNING", "loud warning")

    assert isinstance(handler_id, int)
    output = sink.getvalue()
    assert "loud warning" in output
    assert "quiet info" not in output


def test_scoped_debug_records_reach_sink() -> None:
    sink = io.StringIO()
    configure_logging("WARNING", debug_scopes=("network.transport",), sink=sink)

    emit("swarmnet.network.transport", "DEBUG", "scoped message")
    emit("swarmnet.network.manager", "DEBUG", "unscoped message")
    emit("swarmnet.network.transport", "INFO", "scoped info")

    output = sink.getvalue()
    assert "scoped message" in output
    assert "unscoped message" not in output
    assert "scoped info" in output


def test_debug_level_admits_everything() -> None:
    sink = io.StringIO()
    configure_logging("debug", sink=sink)

    emit("other.module", "DEBUG", "foreign debug")

    assert "foreign debug" in sink.getvalue()
