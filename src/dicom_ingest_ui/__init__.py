"""Streamlit host for the DICOM load controller."""
