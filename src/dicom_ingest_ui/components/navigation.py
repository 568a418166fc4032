"""Sidebar navigation for the DICOM load studio."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import streamlit as st

from ..session import get_load_controller


@dataclass(frozen=True)
class PageEntry:
    name: str
    label: str


DEFAULT_PAGES: tuple[PageEntry, ...] = (
    PageEntry("Loader", "📤 Load data"),
    PageEntry("Events", "📜 Event log"),
)


def render_navigation(entries: Iterable[PageEntry] | None = None) -> str:
    """Render the sidebar navigation and return the selected page key."""

    entries = tuple(entries or DEFAULT_PAGES)

    if not entries:
        raise ValueError("Navigation requires at least one page entry.")

    with st.sidebar:
        st.markdown("### DICOM Load Studio")
        st.caption("Load slices from files, URLs or saved state.")
        st.markdown("---")

        if "active_page" not in st.session_state:
            st.session_state["active_page"] = entries[0].name

        active = st.session_state["active_page"]

        for entry in entries:
            button_type = "primary" if active == entry.name else "secondary"
            if st.button(entry.label, width="stretch", type=button_type):
                active = entry.name
                st.session_state["active_page"] = entry.name
                st.rerun()

        st.markdown("---")
        controller = get_load_controller()
        if controller.is_loading:
            st.caption("A load is running. Cancel it from the loader page.")
        else:
            st.caption(f"{len(controller.records)} record(s) from the last load.")

    return active
