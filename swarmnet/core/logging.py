"""Logging setup for swarmnet processes.

One loguru sink is installed. Records at or above the configured level always
pass. DEBUG records also pass when they come from one of the requested
swarmnet subsystems, so ``debug_scopes=("network.transport",)`` traces link
traffic without turning on DEBUG for the whole swarm.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import TYPE_CHECKING, TextIO

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

SCOPE_ROOT = "swarmnet"

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


def normalize_scopes(scopes: Iterable[str]) -> tuple[str, ...]:
    """Qualify scopes with the package name, dropping blanks and duplicates."""
    normalized: list[str] = []
    for raw in scopes:
        scope = raw.strip().strip(".")
        if not scope:
            continue
        if scope != SCOPE_ROOT and not scope.startswith(f"{SCOPE_ROOT}."):
            scope = f"{SCOPE_ROOT}.{scope}"
        normalized.append(scope)
    return tuple(dict.fromkeys(normalized))


def in_scope(module_name: str, scopes: Iterable[str]) -> bool:
    return any(
        module_name == scope or module_name.startswith(f"{scope}.")
        for scope in scopes
    )


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
    sink: TextIO | None = None,
) -> int:
    """Replace all loguru handlers with one filtered sink; returns its id."""
    logger.remove()

    threshold = logger.level(level.upper()).no
    debug_level = logger.level("DEBUG").no
    scopes = normalize_scopes(debug_scopes)

    def admit(record: Record) -> bool:
        record_level = record["level"].no
        if record_level >= threshold:
            return True
        return record_level >= debug_level and in_scope(record["name"] or "", scopes)

    return logger.add(
        sink or sys.stderr,
        level=min(threshold, debug_level) if scopes else threshold,
        format=DEFAULT_LOG_FORMAT,
        colorize=colorize,
        filter=admit,
    )
