"""Reusable UI components for the DICOM load studio."""

from .navigation import render_navigation
from .loader_page import render_loader_page
from .events_page import render_events_page

__all__ = [
    "render_navigation",
    "render_loader_page",
    "render_events_page",
]
