"""Load orchestration for DICOM viewers: loaders, cancellation and load events."""

from .cancellation import CancelToken, CancellationHook, KeyEvent, KeyHandlerSlot
from .classifier import SourceKind, classify_source, is_mono_slice
from .controller import LoadController, LoadSession, describe_abort, describe_error
from .decoding import LoadedData, decode_payload
from .errors import DecodeError, IngestError, LoadInProgressError, PreconditionError
from .events import (
    EVENT_TYPES,
    EventRelay,
    LoadAbortEvent,
    LoadEnd,
    LoadErrorEvent,
    LoadEvent,
    LoadItemStart,
    LoadProgress,
    LoadSlice,
    LoadStart,
)
from .loaders import (
    BaseLoader,
    FilesLoader,
    LoadOutcome,
    MemoryLoader,
    NamedBuffer,
    RequestHeader,
    RequestOptions,
    UrlsLoader,
)

__all__ = [
    "BaseLoader",
    "CancelToken",
    "CancellationHook",
    "DecodeError",
    "EVENT_TYPES",
    "EventRelay",
    "FilesLoader",
    "IngestError",
    "KeyEvent",
    "KeyHandlerSlot",
    "LoadAbortEvent",
    "LoadController",
    "LoadEnd",
    "LoadErrorEvent",
    "LoadEvent",
    "LoadInProgressError",
    "LoadItemStart",
    "LoadOutcome",
    "LoadProgress",
    "LoadSession",
    "LoadSlice",
    "LoadStart",
    "LoadedData",
    "MemoryLoader",
    "NamedBuffer",
    "PreconditionError",
    "RequestHeader",
    "RequestOptions",
    "SourceKind",
    "UrlsLoader",
    "classify_source",
    "decode_payload",
    "describe_abort",
    "describe_error",
    "is_mono_slice",
]
