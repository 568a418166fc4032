import pytest

from dicom_ingest import LoadedData, LoadErrorEvent, LoadItemStart, LoadProgress
from dicom_ingest_ui.components.loader_page import parse_header_lines
from dicom_ingest_ui.session import SessionLoadHost, summarize_event


def test_parse_header_lines_keeps_order_and_values():
    text = "Authorization: Bearer a:b\n\n  X-Trace : 42 \n"
    assert parse_header_lines(text) == [
        {"name": "Authorization", "value": "Bearer a:b"},
        {"name": "X-Trace", "value": "42"},
    ]


@pytest.mark.parametrize("text", ["no colon here", ": value"])
def test_parse_header_lines_rejects_malformed_lines(text):
    with pytest.raises(ValueError):
        parse_header_lines(text)


def test_summarize_event_flattens_objects():
    loader = object()
    summary = summarize_event(LoadItemStart(item={"name": "a.dcm"}, loader=loader))
    assert summary == {"type": "load-item-start", "item": "a.dcm", "loader": "object"}

    error = KeyError("x")
    assert summarize_event(LoadErrorEvent(message="KeyError: 'x'", error=error))["error"] == repr(error)


def test_session_host_tracks_progress_messages_and_records(scripted_factories, scripted_loaders):
    host = SessionLoadHost(max_events=3, loader_factories=scripted_factories)

    host.load_files(["a.dcm", "b.dcm"])
    loader = scripted_loaders[0]
    record = LoadedData(name="a.dcm", kind="dicom", info={"name": "a.dcm"})
    loader.on_load(record)
    loader.on_progress(LoadProgress(length_computable=True, loaded=50, total=100))
    loader.on_error(RuntimeError("lost connection"))
    loader.on_load_end()

    assert host.records == [record]
    assert host.last_message == "RuntimeError: lost connection"
    assert host.last_progress.loaded == 100
    assert [event["type"] for event in host.events] == ["load-error", "load-progress", "load-end"]

    host.load_files(["c.dcm"])
    assert host.records == []
    assert host.last_message is None
