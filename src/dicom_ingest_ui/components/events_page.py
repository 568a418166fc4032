"""Event log view for the session's load controller."""

from __future__ import annotations

import streamlit as st

from ..session import get_load_controller


def render_events_page() -> None:
    """Show relay events in the order they fired, newest last."""

    controller = get_load_controller()

    st.title("Load events")
    events = list(controller.events)
    if not events:
        st.write("No events yet. Start a load to see them here.")
        return

    if st.button("Clear log", key="clear-event-log"):
        controller.events.clear()
        st.rerun()

    st.dataframe(events, width="stretch", hide_index=True)
