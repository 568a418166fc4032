"""Load lifecycle events and the listener relay that dispatches them."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import threading
from typing import Any, Callable, ClassVar


@dataclass(frozen=True)
class LoadEvent:
    """Base class for relay events; subclasses pin the ``type`` tag."""

    type: ClassVar[str] = ""

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        for item in fields(self):
            payload[item.name] = getattr(self, item.name)
        return payload


@dataclass(frozen=True)
class LoadStart(LoadEvent):
    type: ClassVar[str] = "load-start"


@dataclass(frozen=True)
class LoadItemStart(LoadEvent):
    type: ClassVar[str] = "load-item-start"

    item: Any = None
    loader: Any = None


@dataclass(frozen=True)
class LoadSlice(LoadEvent):
    type: ClassVar[str] = "load-slice"

    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadProgress(LoadEvent):
    type: ClassVar[str] = "load-progress"

    length_computable: bool = False
    loaded: float = 0
    total: float = 0


@dataclass(frozen=True)
class LoadEnd(LoadEvent):
    type: ClassVar[str] = "load-end"


@dataclass(frozen=True)
class LoadErrorEvent(LoadEvent):
    type: ClassVar[str] = "load-error"

    message: str = ""
    error: Any = None


@dataclass(frozen=True)
class LoadAbortEvent(LoadEvent):
    type: ClassVar[str] = "load-abort"

    message: str = ""
    error: Any = None


EVENT_TYPES: tuple[str, ...] = (
    LoadStart.type,
    LoadItemStart.type,
    LoadSlice.type,
    LoadProgress.type,
    LoadEnd.type,
    LoadErrorEvent.type,
    LoadAbortEvent.type,
)

Listener = Callable[[LoadEvent], None]


class EventRelay:
    """Map event types to ordered listener lists and fire events synchronously."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def add(self, event_type: str, callback: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(event_type, []).append(callback)

    def remove(self, event_type: str, callback: Listener) -> None:
        """Drop the first registration of ``callback``; unknown pairs are ignored."""

        with self._lock:
            listeners = self._listeners.get(event_type)
            if not listeners:
                return
            try:
                listeners.remove(callback)
            except ValueError:
                return
            if not listeners:
                del self._listeners[event_type]

    def fire(self, event: LoadEvent) -> None:
        # Snapshot so listeners may (un)subscribe while being called.
        with self._lock:
            listeners = tuple(self._listeners.get(event.type, ()))
        for callback in listeners:
            callback(event)

    def listeners(self, event_type: str) -> list[Listener]:
        with self._lock:
            return list(self._listeners.get(event_type, ()))


__all__ = [
    "EVENT_TYPES",
    "EventRelay",
    "Listener",
    "LoadAbortEvent",
    "LoadEnd",
    "LoadErrorEvent",
    "LoadEvent",
    "LoadItemStart",
    "LoadProgress",
    "LoadSlice",
    "LoadStart",
]
