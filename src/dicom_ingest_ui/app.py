from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
import streamlit as st

# Load .env before dicom_ingest.config reads the environment.
_current_file = Path(__file__).resolve()
for _env_path in (_current_file.parents[2] / ".env", Path.cwd() / ".env"):
    if _env_path.exists():
        load_dotenv(_env_path)

from dicom_ingest.config import LOG_LEVEL  # noqa: E402
from dicom_ingest_ui.components import (  # noqa: E402
    render_events_page,
    render_loader_page,
    render_navigation,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(name)s %(levelname)s %(message)s")

st.set_page_config(
    page_title="DICOM Load Studio",
    page_icon="🩻",
    layout="wide",
    initial_sidebar_state="expanded",
)

active_page = render_navigation()

if active_page == "Events":
    render_events_page()
else:
    render_loader_page()
