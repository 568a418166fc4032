"""Cooperative cancellation: per-load tokens and the cancel-key intercept."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Any, Callable

from .config import CANCEL_KEY_COMBO, KeyCombo

logger = logging.getLogger(__name__)

KeyHandler = Callable[["KeyEvent"], None]


class CancelToken:
    """Thread-safe flag a loader polls between units of work."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Any = None

    def cancel(self, reason: Any = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Any:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False

    def matches(self, combo: KeyCombo) -> bool:
        return (
            self.key.lower() == combo.key.lower()
            and self.ctrl == combo.ctrl
            and self.shift == combo.shift
            and self.alt == combo.alt
        )


class KeyHandlerSlot:
    """The host's single keyboard-handler slot."""

    def __init__(self, handler: KeyHandler | None = None) -> None:
        self.handler = handler

    def dispatch(self, event: KeyEvent) -> None:
        if self.handler is not None:
            self.handler(event)


class CancellationHook:
    """Temporarily route the cancel combination in ``slot`` to ``on_cancel``.

    The handler found in the slot at install time is restored afterwards. When
    loads overlap and hooks are restored out of order, a hook that is no longer
    on top is skipped over by the hook above it instead of being reinstated.
    """

    def __init__(
        self,
        slot: KeyHandlerSlot,
        on_cancel: Callable[[], Any],
        combo: KeyCombo = CANCEL_KEY_COMBO,
    ) -> None:
        self._slot = slot
        self._on_cancel = on_cancel
        self._combo = combo
        self._previous: KeyHandler | None = None
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if self._installed:
            return
        self._previous = self._slot.handler
        self._slot.handler = self._handle
        self._installed = True

    def restore(self) -> None:
        if not self._installed:
            return
        self._installed = False
        if self._slot.handler == self._handle:
            self._slot.handler = _live_handler(self._previous)

    def _handle(self, event: KeyEvent) -> None:
        if event.matches(self._combo):
            logger.info("%s pressed, aborting current load", self._combo.describe())
            self._on_cancel()
        elif self._previous is not None:
            self._previous(event)


def _live_handler(handler: KeyHandler | None) -> KeyHandler | None:
    owner = getattr(handler, "__self__", None)
    while isinstance(owner, CancellationHook) and not owner.installed:
        handler = owner._previous
        owner = getattr(handler, "__self__", None)
    return handler


__all__ = ["CancelToken", "CancellationHook", "KeyEvent", "KeyHandler", "KeyHandlerSlot"]
