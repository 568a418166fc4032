"""Loader backends: the hook contract plus file, URL and in-memory implementations.

Every backend derives from :class:`BaseLoader`, which owns the run loop and the
lifecycle bookkeeping. Subclasses only say how one request item turns into
decoded records (``_load_item``); the base class guarantees that

* ``on_load_item_start`` fires before an item's records,
* exactly one terminal outcome is reported (``on_error`` or ``on_abort`` at most
  once, never both, and no ``on_load`` after either),
* ``on_load_end`` fires exactly once per ``load`` call.

Work runs on a thread pool; hooks are invoked from the worker thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
import logging
from os import PathLike
from pathlib import Path, PurePosixPath
import threading
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence
from urllib.parse import urlparse

import requests

from .cancellation import CancelToken
from .classifier import item_name
from .config import DOWNLOAD_CHUNK_SIZE, HTTP_TIMEOUT_SECONDS, LOADER_MAX_WORKERS
from .decoding import LoadedData, decode_payload
from .errors import LoadInProgressError, PreconditionError
from .events import LoadProgress

logger = logging.getLogger(__name__)


class LoadOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RequestHeader:
    name: str
    value: str


@dataclass
class RequestOptions:
    """Per-load options handed to ``BaseLoader.load``."""

    request_headers: list[RequestHeader] = field(default_factory=list)
    cancel_token: CancelToken | None = None

    @classmethod
    def with_headers(cls, headers: Iterable[Any] | None, **kwargs: Any) -> "RequestOptions":
        return cls(request_headers=normalize_headers(headers), **kwargs)


@dataclass(frozen=True)
class NamedBuffer:
    """An in-memory payload; ``name`` is sniffed for the type, ``filename`` is informational."""

    name: str
    filename: str
    data: bytes


def normalize_headers(headers: Iterable[Any] | None) -> list[RequestHeader]:
    """Accept ``RequestHeader`` objects, ``{name, value}`` mappings or pairs."""

    normalized: list[RequestHeader] = []
    for header in headers or ():
        if isinstance(header, RequestHeader):
            normalized.append(header)
        elif isinstance(header, Mapping):
            normalized.append(RequestHeader(str(header["name"]), str(header["value"])))
        else:
            name, value = header
            normalized.append(RequestHeader(str(name), str(value)))
    return normalized


def _noop(*_args: Any, **_kwargs: Any) -> None:
    return None


_shared_executor: ThreadPoolExecutor | None = None
_shared_executor_lock = threading.Lock()


def shared_executor() -> ThreadPoolExecutor:
    """Process-wide pool used by loaders constructed without an executor."""

    global _shared_executor
    with _shared_executor_lock:
        if _shared_executor is None:
            _shared_executor = ThreadPoolExecutor(
                max_workers=LOADER_MAX_WORKERS,
                thread_name_prefix="dicom-loader",
            )
        return _shared_executor


def _percent(done: float, total: int) -> int:
    if total <= 0:
        return 100
    return round(100 * done / total)


class BaseLoader(ABC):
    """Abstract loader backend; assign the ``on_*`` hooks before calling ``load``."""

    def __init__(self, executor: Executor | None = None) -> None:
        self.on_load_item_start: Callable[[Any, "BaseLoader"], None] = _noop
        self.on_load: Callable[[LoadedData], None] = _noop
        self.on_error: Callable[[Any], None] = _noop
        self.on_abort: Callable[[Any], None] = _noop
        self.on_load_end: Callable[[], None] = _noop
        self.on_progress: Callable[[LoadProgress], None] = _noop

        self._executor = executor
        self._default_character_set = ""
        self._lock = threading.Lock()
        self._token = CancelToken()
        self._outcome: LoadOutcome | None = None
        self._running = False
        self._done: Future = Future()
        self._done.set_result(None)

    @property
    def default_character_set(self) -> str:
        return self._default_character_set

    def set_default_character_set(self, charset: str | None) -> None:
        self._default_character_set = charset or ""

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def load(self, data: Sequence[Any], options: RequestOptions | None = None) -> Future:
        """Start loading ``data`` in the background.

        Returns a future resolved with the :class:`LoadOutcome` once ``on_load_end``
        has run.
        """

        items = list(data)
        if not items:
            raise PreconditionError("Nothing to load: the request is empty.")
        options = options or RequestOptions()

        with self._lock:
            if self._running:
                raise LoadInProgressError(f"{type(self).__name__} is already loading.")
            self._running = True
            self._outcome = None
            self._token = options.cancel_token or CancelToken()
            self._done = Future()
            token = self._token
            done = self._done

        executor = self._executor or shared_executor()
        try:
            worker = executor.submit(self._run, items, options, token)
        except RuntimeError:
            with self._lock:
                self._running = False
            raise
        worker.add_done_callback(_log_worker_failure)
        return done

    def abort(self, reason: Any = None) -> Future:
        """Request cancellation; the returned future resolves when the load has unwound."""

        with self._lock:
            token = self._token
            done = self._done
        token.cancel(reason)
        return done

    @abstractmethod
    def _load_item(
        self,
        item: Any,
        index: int,
        total: int,
        options: RequestOptions,
        token: CancelToken,
    ) -> Iterator[LoadedData]:
        """Yield decoded records for one request item."""

    def _run(self, items: list[Any], options: RequestOptions, token: CancelToken) -> None:
        try:
            self._run_items(items, options, token)
        except Exception as exc:
            if token.cancelled:
                self._report_abort(token.reason)
            else:
                self._report_error(exc)
        else:
            if token.cancelled:
                self._report_abort(token.reason)
            else:
                self._settle(LoadOutcome.SUCCESS)
        finally:
            self._finish()

    def _run_items(self, items: list[Any], options: RequestOptions, token: CancelToken) -> None:
        total = len(items)
        for index, item in enumerate(items):
            if token.cancelled:
                return
            logger.debug("%s: loading item %d/%d (%s)", type(self).__name__, index + 1, total, item_name(item))
            self.on_load_item_start(item, self)
            for record in self._load_item(item, index, total, options, token):
                if token.cancelled:
                    return
                self.on_load(record)
            if token.cancelled:
                return
            # The controller reports the final 100% itself.
            if index + 1 < total:
                self.on_progress(LoadProgress(length_computable=True, loaded=_percent(index + 1, total), total=100))

    def _settle(self, outcome: LoadOutcome) -> bool:
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = outcome
            return True

    def _report_error(self, error: Any) -> None:
        if self._settle(LoadOutcome.ERROR):
            self.on_error(error)

    def _report_abort(self, reason: Any) -> None:
        if self._settle(LoadOutcome.ABORTED):
            self.on_abort(reason)

    def _finish(self) -> None:
        with self._lock:
            outcome = self._outcome or LoadOutcome.SUCCESS
            done = self._done
        try:
            self.on_load_end()
        finally:
            with self._lock:
                self._running = False
            done.set_result(outcome)


def _log_worker_failure(worker: Future) -> None:
    if worker.cancelled():
        return
    exc = worker.exception()
    if exc is not None:
        logger.error("Loader hook raised while unwinding a load", exc_info=exc)


class FilesLoader(BaseLoader):
    """Load local paths or uploaded-file objects (anything with ``name`` and bytes)."""

    def _load_item(self, item, index, total, options, token):
        name = item_name(item)
        payload = _read_file_item(item)
        yield from decode_payload(
            name,
            payload,
            character_set=self.default_character_set,
            source=name,
            index=index,
        )


def _read_file_item(item: Any) -> bytes:
    if isinstance(item, (str, PathLike)):
        return Path(item).expanduser().read_bytes()
    if hasattr(item, "getbuffer"):
        data = bytes(item.getbuffer())
    else:
        data = item.read()
    if hasattr(item, "seek"):
        item.seek(0)
    return data


class UrlsLoader(BaseLoader):
    """Download items over HTTP(S) with the request headers from the options.

    When the server sends ``Content-Length``, download chunks are reported as
    extra ``on_progress`` calls, so even a single-URL load can produce several
    progress events before its record.
    """

    def __init__(
        self,
        executor: Executor | None = None,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        super().__init__(executor)
        self._session = session
        self._timeout = timeout
        self._chunk_size = chunk_size

    def _load_item(self, item, index, total, options, token):
        url = str(item)
        headers = {header.name: header.value for header in options.request_headers}
        client = self._session or requests
        with client.get(url, headers=headers, timeout=self._timeout, stream=True) as response:
            response.raise_for_status()
            payload = self._read_body(response, index, total, token)
        if token.cancelled:
            return
        yield from decode_payload(
            url_filename(url),
            payload,
            character_set=self.default_character_set,
            source=url,
            index=index,
        )

    def _read_body(self, response: Any, index: int, total: int, token: CancelToken) -> bytes:
        expected = _content_length(response)
        buffer = bytearray()
        for chunk in response.iter_content(chunk_size=self._chunk_size):
            if token.cancelled:
                break
            if not chunk:
                continue
            buffer.extend(chunk)
            if expected:
                loaded = _percent(index + min(len(buffer) / expected, 1.0), total)
                if loaded < 100:
                    self.on_progress(LoadProgress(length_computable=True, loaded=loaded, total=100))
        return bytes(buffer)


def _content_length(response: Any) -> int:
    try:
        return int(response.headers.get("Content-Length", 0))
    except (TypeError, ValueError):
        return 0


def url_filename(url: str) -> str:
    """Last path segment of ``url`` (the URL itself when it has none)."""

    path = PurePosixPath(urlparse(url).path)
    return path.name or url


class MemoryLoader(BaseLoader):
    """Load caller-supplied buffers (``NamedBuffer`` or ``{name, filename, data}``)."""

    def _load_item(self, item, index, total, options, token):
        buffer = as_named_buffer(item)
        yield from decode_payload(
            buffer.filename or buffer.name,
            buffer.data,
            character_set=self.default_character_set,
            source=buffer.name,
            index=index,
        )


def as_named_buffer(item: Any) -> NamedBuffer:
    if isinstance(item, NamedBuffer):
        return item
    if isinstance(item, Mapping):
        name = str(item.get("name") or item.get("filename") or "")
        filename = str(item.get("filename") or name)
        return NamedBuffer(name=name, filename=filename, data=bytes(item["data"]))
    raise PreconditionError(f"Unsupported in-memory item: {type(item).__name__}")


__all__ = [
    "BaseLoader",
    "FilesLoader",
    "LoadOutcome",
    "MemoryLoader",
    "NamedBuffer",
    "RequestHeader",
    "RequestOptions",
    "UrlsLoader",
    "as_named_buffer",
    "normalize_headers",
    "shared_executor",
    "url_filename",
]
