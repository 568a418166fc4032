import io
import threading
import zipfile
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, List

import pytest
from PIL import Image
from pydicom.data import get_testdata_file

from dicom_ingest import EVENT_TYPES, BaseLoader, LoadController, LoadedData


def _noop(*_args, **_kwargs):
    return None


class ScriptedLoader:
    """
    Contract-only backend: records calls and lets the test fire hooks by hand.
    """

    def __init__(self):
        self.on_load_item_start = _noop
        self.on_load = _noop
        self.on_error = _noop
        self.on_abort = _noop
        self.on_load_end = _noop
        self.on_progress = _noop
        self.charset = None
        self.loads: List[tuple] = []
        self.abort_calls = 0
        self.done = Future()

    def set_default_character_set(self, charset):
        self.charset = charset

    def load(self, data, options=None):
        self.loads.append((list(data), options))
        return self.done

    def abort(self, reason=None):
        self.abort_calls += 1
        return self.done


class GatedLoader(BaseLoader):
    """
    Real backend that yields one record per item and blocks on chosen items
    until the test opens the gate.
    """

    def __init__(self, executor=None, block_on=()):
        super().__init__(executor)
        self.block_on = set(block_on)
        self.gate = threading.Event()
        self.entered = threading.Event()

    def _load_item(self, item, index, total, options, token):
        if index in self.block_on:
            self.entered.set()
            self.gate.wait(5)
        yield LoadedData(name=str(item), kind="dicom", info={"name": str(item), "index": index})


class FailingLoader(BaseLoader):
    def __init__(self, executor=None, fail_on=0, error=None):
        super().__init__(executor)
        self.fail_on = fail_on
        self.error = error or RuntimeError("disk unplugged")

    def _load_item(self, item, index, total, options, token):
        if index == self.fail_on:
            raise self.error
        yield LoadedData(name=str(item), kind="dicom", info={"name": str(item)})


class EventRecorder:
    def __init__(self):
        self.events: List[Any] = []
        self._lock = threading.Lock()

    def __call__(self, event):
        with self._lock:
            self.events.append(event)

    @property
    def types(self) -> List[str]:
        return [event.type for event in self.events]

    def of_type(self, event_type: str) -> List[Any]:
        return [event for event in self.events if event.type == event_type]


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="test-loader")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def scripted_loaders() -> List[ScriptedLoader]:
    return []


@pytest.fixture
def scripted_factories(scripted_loaders):
    """
    Loader factories that hand out ScriptedLoader instances, collected in order.
    """

    def factory():
        loader = ScriptedLoader()
        scripted_loaders.append(loader)
        return loader

    return {"files": factory, "urls": factory, "memory": factory}


@pytest.fixture
def controller(scripted_factories) -> LoadController:
    return LoadController("ISO_IR 100", loader_factories=scripted_factories)


def attach_recorder(target: LoadController) -> EventRecorder:
    recorder = EventRecorder()
    for event_type in EVENT_TYPES:
        target.add_event_listener(event_type, recorder)
    return recorder


@pytest.fixture
def make_recorder():
    return attach_recorder


@pytest.fixture
def recorder(controller) -> EventRecorder:
    return attach_recorder(controller)


@pytest.fixture
def gated_loader(executor):
    def build(block_on=()):
        return GatedLoader(executor, block_on=block_on)
    return build


@pytest.fixture
def failing_loader(executor):
    def build(fail_on=0, error=None):
        return FailingLoader(executor, fail_on=fail_on, error=error)
    return build


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("L", (16, 8), color=128).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def dicom_path() -> Path:
    return Path(get_testdata_file("CT_small.dcm"))


@pytest.fixture
def zip_bytes(png_bytes, dicom_path) -> bytes:
    """
    Archive with a DICOM slice, a PNG, a directory entry and macOS junk.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("study/", b"")
        archive.writestr("study/slice1.dcm", dicom_path.read_bytes())
        archive.writestr("study/preview.png", png_bytes)
        archive.writestr("__MACOSX/study/._slice1.dcm", b"junk")
    return buffer.getvalue()
