"""Structured progression telemetry with in-process listeners."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger("audit_coach.telemetry")


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        try:
            _listeners.remove(listener)
        except ValueError:
            pass


def clear_listeners() -> None:
    """Drop every registered listener. Used to reset test state."""
    with _lock:
        _listeners.clear()


@contextmanager
def capture_events(*names: str) -> Iterator[List[TelemetryEvent]]:
    """Collect events emitted inside the block, optionally filtered by name."""
    captured: List[TelemetryEvent] = []

    def _collect(event: TelemetryEvent) -> None:
        if not names or event.name in names:
            captured.append(event)

    register_listener(_collect)
    try:
        yield captured
    finally:
        unregister_listener(_collect)


def emit_event(name: str, **fields: Any) -> None:
    """Emit a telemetry event to listeners and the telemetry log."""
    payload = {key: _sanitize(value) for key, value in fields.items()}
    event = TelemetryEvent(name=name, payload=payload)

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **payload}, default=str, sort_keys=True))


def _sanitize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value, key=str) if isinstance(value, (set, frozenset)) else list(value)
    return value


__all__ = [
    "TelemetryEvent",
    "capture_events",
    "clear_listeners",
    "emit_event",
    "register_listener",
    "unregister_listener",
]
