"""End-to-end loads through real loader threads."""

import json

from dicom_ingest import (
    FilesLoader,
    LoadController,
    LoadOutcome,
    MemoryLoader,
)


def _controller(make_recorder, **factories):
    controller = LoadController(loader_factories=factories)
    return controller, make_recorder(controller)


def test_abort_mid_load_reports_abort_then_end(gated_loader, make_recorder):
    loader = gated_loader(block_on={1})
    controller, recorder = _controller(make_recorder, files=lambda: loader)

    controller.load_files(["a.dcm", "b.dcm", "c.dcm"])
    assert loader.entered.wait(5)

    ack = controller.abort_load()
    assert controller.session.active_loader is None

    loader.gate.set()
    assert ack.result(timeout=5) is LoadOutcome.ABORTED

    assert recorder.types.count("load-abort") == 1
    assert recorder.types.count("load-end") == 1
    abort_at = recorder.types.index("load-abort")
    assert abort_at < recorder.types.index("load-end")
    assert "load-slice" not in recorder.types[abort_at:]
    assert [event.data["name"] for event in recorder.of_type("load-slice")] == ["a.dcm"]
    assert recorder.events[-1].type == "load-end"
    assert controller.key_slot.handler is None


def test_backend_error_is_terminal(failing_loader, make_recorder):
    loader = failing_loader(fail_on=1)
    controller, recorder = _controller(make_recorder, urls=lambda: loader)

    outcome = controller.load_urls(["https://pacs/a.dcm", "https://pacs/b.dcm", "https://pacs/c.dcm"]).result(timeout=5)

    assert outcome is LoadOutcome.ERROR
    assert recorder.types == [
        "load-start",
        "load-item-start",
        "load-slice",
        "load-progress",
        "load-item-start",
        "load-error",
        "load-progress",
        "load-end",
    ]
    assert recorder.of_type("load-error")[0].message == "RuntimeError: disk unplugged"
    assert not controller.is_loading


def test_single_png_buffer_event_sequence(executor, make_recorder, png_bytes):
    controller, recorder = _controller(make_recorder, memory=lambda: MemoryLoader(executor))
    slices = []
    controller.on_load = slices.append

    buffers = [{"name": "frame.png", "filename": "frame.png", "data": png_bytes}]
    outcome = controller.load_image_object(buffers).result(timeout=5)

    assert outcome is LoadOutcome.SUCCESS
    assert recorder.types == ["load-start", "load-item-start", "load-slice", "load-progress", "load-end"]
    info = recorder.of_type("load-slice")[0].data
    assert (info["width"], info["height"], info["format"]) == (16, 8, "PNG")
    assert slices[0].kind == "image"
    assert controller.is_mono_slice_data() is True


def test_zip_upload_reports_every_member(executor, make_recorder, tmp_path, zip_bytes):
    archive = tmp_path / "study.zip"
    archive.write_bytes(zip_bytes)
    controller, recorder = _controller(make_recorder, files=lambda: FilesLoader(executor))

    assert controller.load_files([archive]).result(timeout=5) is LoadOutcome.SUCCESS

    names = [event.data["name"] for event in recorder.of_type("load-slice")]
    assert names == ["study/slice1.dcm", "study/preview.png"]
    assert recorder.types.count("load-item-start") == 1
    assert controller.is_mono_slice_data() is False


def test_state_file_reaches_the_host(executor, make_recorder, tmp_path):
    state = tmp_path / "viewer.json"
    state.write_text(json.dumps({"version": "0.3", "drawings": []}))
    controller, recorder = _controller(make_recorder, files=lambda: FilesLoader(executor))
    received = []
    controller.on_load_state_data = received.append

    assert controller.load_files([state]).result(timeout=5) is LoadOutcome.SUCCESS

    assert recorder.types == []
    assert json.loads(received[0].payload) == {"version": "0.3", "drawings": []}
    assert controller.is_mono_slice_data() is None


def test_unreadable_state_file_emits_single_error(executor, make_recorder, tmp_path):
    state = tmp_path / "broken.json"
    state.write_bytes(b"\xff\xfe\x00bad")
    controller, recorder = _controller(make_recorder, files=lambda: FilesLoader(executor))

    assert controller.load_files([state]).result(timeout=5) is LoadOutcome.ERROR

    assert recorder.types == ["load-error"]
    message = recorder.events[0].message
    assert message.startswith("DecodeError: State file ")
    assert "broken.json" in message


def test_missing_file_is_reported_not_raised(executor, make_recorder, tmp_path):
    controller, recorder = _controller(make_recorder, files=lambda: FilesLoader(executor))

    future = controller.load_files([tmp_path / "nowhere" / "scan.dcm"])

    assert future.result(timeout=5) is LoadOutcome.ERROR
    assert recorder.of_type("load-error")[0].message.startswith("FileNotFoundError: ")
    assert recorder.types[-2:] == ["load-progress", "load-end"]


def test_raising_progress_listener_does_not_wedge_the_controller(gated_loader, make_recorder):
    loaders = [gated_loader(), gated_loader()]
    controller, recorder = _controller(make_recorder, files=loaders.pop)

    def broken_listener(event):
        raise RuntimeError("listener failed")

    controller.add_event_listener("load-progress", broken_listener)
    assert controller.load_files(["a.dcm"]).result(timeout=5) is LoadOutcome.SUCCESS
    assert not controller.is_loading

    controller.remove_event_listener("load-progress", broken_listener)
    assert controller.load_files(["b.dcm"]).result(timeout=5) is LoadOutcome.SUCCESS
    assert recorder.types.count("load-start") == 2
