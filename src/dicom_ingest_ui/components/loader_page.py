"""Main load surface: uploads, URLs, cancellation and progress."""

from __future__ import annotations

from concurrent.futures import Future
import time
from typing import Callable

import streamlit as st

from dicom_ingest import IngestError, LoadOutcome
from ..session import FUTURE_STATE_KEY, SessionLoadHost, get_load_controller


POLL_INTERVAL_SECONDS = 0.2


def render_loader_page() -> None:
    """Render the load workflow (upload or URL input, progress, results)."""

    controller = get_load_controller()

    st.title("Load DICOM data")
    st.caption(
        "Drop slices, a `.zip` study or a saved `.json` state. Press **Cancel load** "
        "to stop a running load."
    )

    col_upload, col_urls = st.columns(2)
    _render_upload_card(col_upload, controller)
    _render_url_card(col_urls, controller)

    st.divider()
    _render_cancel_control(controller)
    _await_current_load(controller)
    _render_results(controller)


def _render_upload_card(container: "st.delta_generator.DeltaGenerator", controller: SessionLoadHost) -> None:
    with container:
        st.subheader("Upload files")
        files = st.file_uploader(
            "DICOM slices, images, zip archives or a state file",
            accept_multiple_files=True,
            key="load-upload",
        )
        if files:
            st.caption(f"{len(files)} file(s) attached · ready to load.")
        submitted = st.button(
            "Load uploaded files",
            type="primary",
            disabled=not files or controller.is_loading,
            width="stretch",
            key="load-uploaded-files",
        )
        if submitted:
            _start(lambda: controller.load_files(files))


def _render_url_card(container: "st.delta_generator.DeltaGenerator", controller: SessionLoadHost) -> None:
    with container:
        st.subheader("Load from URLs")
        raw_urls = st.text_area("One URL per line", key="load-urls", height=120)
        raw_headers = st.text_area(
            "Request headers (`Name: value` per line)",
            key="load-headers",
            height=80,
        )
        urls = [line.strip() for line in raw_urls.splitlines() if line.strip()]
        submitted = st.button(
            "Load URLs",
            type="secondary",
            disabled=not urls or controller.is_loading,
            width="stretch",
            key="load-url-list",
        )
        if submitted:
            try:
                headers = parse_header_lines(raw_headers)
            except ValueError as exc:
                st.error(str(exc))
                return
            _start(lambda: controller.load_urls(urls, headers))


def parse_header_lines(text: str) -> list[dict[str, str]]:
    """Parse ``Name: value`` lines into ``{name, value}`` pairs, keeping order."""

    headers: list[dict[str, str]] = []
    for number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Header line {number} must look like `Name: value`.")
        headers.append({"name": name.strip(), "value": value.strip()})
    return headers


def _start(launch: Callable[[], Future]) -> None:
    try:
        st.session_state[FUTURE_STATE_KEY] = launch()
    except IngestError as exc:
        st.error(str(exc))


def _render_cancel_control(controller: SessionLoadHost) -> None:
    cancel = st.button(
        "Cancel load",
        disabled=not controller.is_loading,
        key="cancel-load",
    )
    if cancel:
        controller.abort_load()
        st.warning("Cancellation requested.")


def _await_current_load(controller: SessionLoadHost) -> None:
    future: Future | None = st.session_state.get(FUTURE_STATE_KEY)
    if future is None:
        return

    progress_bar = st.progress(0.0, text="Loading…")
    while not future.done():
        _update_progress(progress_bar, controller)
        time.sleep(POLL_INTERVAL_SECONDS)
    _update_progress(progress_bar, controller)

    st.session_state.pop(FUTURE_STATE_KEY, None)
    outcome = future.result()
    if outcome is LoadOutcome.ERROR:
        st.error(controller.last_message or "Load failed.")
    elif outcome is LoadOutcome.ABORTED:
        st.warning(controller.last_message or "Load aborted.")
    else:
        st.success("Load complete.")


def _update_progress(progress_bar: "st.delta_generator.DeltaGenerator", controller: SessionLoadHost) -> None:
    progress = controller.last_progress
    if progress is None or not progress.total:
        return
    fraction = min(max(progress.loaded / progress.total, 0.0), 1.0)
    progress_bar.progress(fraction, text=f"Loaded {progress.loaded:.0f}/{progress.total:.0f}")


def _render_results(controller: SessionLoadHost) -> None:
    st.subheader("Last load")
    mono = controller.is_mono_slice_data()
    if mono is None:
        st.write("Nothing loaded yet.")
    else:
        st.caption("Single slice" if mono else "Multi-slice series")

    for record in controller.records[-20:]:
        with st.expander(f"{record.kind} · {record.name}"):
            st.json(record.info, expanded=False)

    if controller.state_document is not None:
        with st.expander(f"State · {controller.state_document.name}"):
            st.code(controller.state_document.payload, language="json")
