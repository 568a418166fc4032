"""Per-browser-session load controller for the Streamlit host."""

from __future__ import annotations

from collections import deque
from typing import Any

import streamlit as st

from dicom_ingest import EVENT_TYPES, LoadController, LoadedData, LoadEvent, LoadProgress
from dicom_ingest.classifier import item_name


CONTROLLER_STATE_KEY = "load_controller"
FUTURE_STATE_KEY = "load_future"
MAX_LOGGED_EVENTS = 200


class SessionLoadHost(LoadController):
    """Controller that keeps what the UI needs between Streamlit reruns."""

    def __init__(self, max_events: int = MAX_LOGGED_EVENTS, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.events: deque[dict[str, Any]] = deque(maxlen=max_events)
        self.records: list[LoadedData] = []
        self.state_document: LoadedData | None = None
        self.last_progress: LoadProgress | None = None
        self.last_message: str | None = None
        for event_type in EVENT_TYPES:
            self.add_event_listener(event_type, self._record_event)

    def on_load_image_data_setup(self) -> None:
        self.records = []
        self.last_progress = None
        self.last_message = None

    def on_load(self, data: Any) -> None:
        self.records.append(data)

    def on_load_state_data(self, data: Any) -> None:
        self.state_document = data

    def _record_event(self, event: LoadEvent) -> None:
        if isinstance(event, LoadProgress):
            self.last_progress = event
        message = getattr(event, "message", None)
        if message:
            self.last_message = message
        self.events.append(summarize_event(event))


def summarize_event(event: LoadEvent) -> dict[str, Any]:
    """Flatten an event into JSON-friendly values for display."""

    summary = event.as_dict()
    if "item" in summary:
        summary["item"] = item_name(summary["item"])
    if "loader" in summary:
        summary["loader"] = type(summary["loader"]).__name__
    if "error" in summary and summary["error"] is not None:
        summary["error"] = repr(summary["error"])
    return summary


def get_load_controller() -> SessionLoadHost:
    """Return this session's controller, creating it on first use."""

    controller = st.session_state.get(CONTROLLER_STATE_KEY)
    if not isinstance(controller, SessionLoadHost):
        controller = SessionLoadHost()
        st.session_state[CONTROLLER_STATE_KEY] = controller
    return controller
