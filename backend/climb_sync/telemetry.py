"""Sync decision events.

Every fallback or degradation the engine takes is announced as one of the
:class:`SyncEvent` kinds below. An event carries the fields its kind requires
and is checked when it is emitted; it is then handed to in-process listeners
and written to the ``climb.telemetry`` logger as a ``TELEMETRY {json}`` line.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic_core import to_jsonable_python

logger = logging.getLogger("climb.telemetry")


class SyncEvent(str, Enum):
    INTEGRATION_COMPLETED = "integration_completed"
    STAGE_DEGRADED = "integration_stage_degraded"
    FALLBACK_PROFILE_BUILT = "fallback_profile_built"
    PERSISTENCE_FALLBACK = "persistence_fallback"
    QUEST_COMPLETED = "quest_completion_recorded"
    PROFILE_RESET = "profile_reset"


REQUIRED_FIELDS: Dict[SyncEvent, Tuple[str, ...]] = {
    SyncEvent.INTEGRATION_COMPLETED: ("user_id", "goal_id", "revision", "degraded_stages"),
    SyncEvent.STAGE_DEGRADED: ("stage", "reason"),
    SyncEvent.FALLBACK_PROFILE_BUILT: ("user_id", "synthetic_id"),
    SyncEvent.PERSISTENCE_FALLBACK: ("operation", "path", "error"),
    SyncEvent.QUEST_COMPLETED: ("user_id", "quest_id", "revision"),
    SyncEvent.PROFILE_RESET: ("user_id", "failed_paths"),
}

# Kinds that mean the engine is running on a fallback path.
_WARNING_EVENTS = frozenset(
    {SyncEvent.STAGE_DEGRADED, SyncEvent.FALLBACK_PROFILE_BUILT, SyncEvent.PERSISTENCE_FALLBACK}
)


@dataclass(frozen=True)
class TelemetryEvent:
    name: SyncEvent
    payload: Dict[str, Any]

    @property
    def user_id(self) -> Optional[str]:
        return self.payload.get("user_id")

    def to_log_record(self) -> str:
        return json.dumps({"event": self.name.value, **self.payload}, sort_keys=True)


Listener = Callable[[TelemetryEvent], None]


class _ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = RLock()

    def add(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def dispatch(self, event: TelemetryEvent) -> None:
        with self._lock:
            listeners = tuple(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Telemetry listener %r failed on %s", listener, event.name.value)


_registry = _ListenerRegistry()


def register_listener(listener: Listener) -> None:
    _registry.add(listener)


def clear_listeners() -> None:
    _registry.clear()


def build_event(name: Union[SyncEvent, str], fields: Dict[str, Any]) -> TelemetryEvent:
    """Check ``fields`` against the kind's required set; raises ``ValueError``."""
    kind = SyncEvent(name)
    missing = [key for key in REQUIRED_FIELDS[kind] if key not in fields]
    if missing:
        raise ValueError(f"{kind.value} event is missing {', '.join(missing)}")
    return TelemetryEvent(name=kind, payload=to_jsonable_python(fields, fallback=str))


def emit_event(name: Union[SyncEvent, str], **fields: Any) -> TelemetryEvent:
    event = build_event(name, fields)
    _registry.dispatch(event)
    level = logging.WARNING if event.name in _WARNING_EVENTS else logging.INFO
    logger.log(level, "TELEMETRY %s", event.to_log_record())
    return event


__all__ = [
    "REQUIRED_FIELDS",
    "SyncEvent",
    "TelemetryEvent",
    "build_event",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
