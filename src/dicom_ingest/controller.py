"""Load orchestration: classify requests, drive a loader, relay normalized events."""

from __future__ import annotations

from concurrent.futures import Future
import logging
import threading
from typing import Any, Callable, Iterable, Mapping, Sequence

from .cancellation import CancellationHook, CancelToken, KeyHandlerSlot
from .classifier import SourceKind, classify_source, is_mono_slice
from .config import CANCEL_KEY_COMBO, DEFAULT_CHARACTER_SET, KeyCombo
from .errors import LoadInProgressError, PreconditionError
from .events import (
    EventRelay,
    Listener,
    LoadAbortEvent,
    LoadEnd,
    LoadErrorEvent,
    LoadEvent,
    LoadItemStart,
    LoadProgress,
    LoadSlice,
    LoadStart,
)
from .loaders import BaseLoader, FilesLoader, MemoryLoader, RequestOptions, UrlsLoader

logger = logging.getLogger(__name__)

LoaderFactory = Callable[[], BaseLoader]

DEFAULT_LOADER_FACTORIES: dict[str, LoaderFactory] = {
    "files": FilesLoader,
    "urls": UrlsLoader,
    "memory": MemoryLoader,
}

ABORT_FALLBACK_MESSAGE = "Abort called."


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def describe_error(error: Any) -> str:
    """Display text for a backend error: ``"<name>: <message>"`` when both exist."""

    if isinstance(error, BaseException):
        name = type(error).__name__
        message = _field(error, "message") or str(error)
    else:
        name = _field(error, "name")
        message = _field(error, "message")
    if name and message:
        return f"{name}: {message}"
    return f"Error: {error}."


def describe_abort(payload: Any) -> str:
    message = _field(payload, "message") if payload is not None else None
    if not message and isinstance(payload, BaseException):
        message = str(payload)
    return message or ABORT_FALLBACK_MESSAGE


class LoadSession:
    """Single-slot record of the image load in flight and the last mono-slice guess."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active_loader: BaseLoader | None = None
        self._is_mono_slice: bool | None = None

    @property
    def active_loader(self) -> BaseLoader | None:
        with self._lock:
            return self._active_loader

    @property
    def is_mono_slice(self) -> bool | None:
        with self._lock:
            return self._is_mono_slice

    @is_mono_slice.setter
    def is_mono_slice(self, value: bool | None) -> None:
        with self._lock:
            self._is_mono_slice = value

    def begin(self, loader: BaseLoader) -> None:
        with self._lock:
            if self._active_loader is not None:
                raise LoadInProgressError("An image load is already in progress; abort it first.")
            self._active_loader = loader

    def release(self, loader: BaseLoader) -> bool:
        """Clear the slot if ``loader`` still holds it; later callers are no-ops."""

        with self._lock:
            if self._active_loader is not loader:
                return False
            self._active_loader = None
            return True

    def take(self) -> BaseLoader | None:
        with self._lock:
            loader, self._active_loader = self._active_loader, None
            return loader


class LoadController:
    """Route load requests to loader backends and publish their lifecycle as events.

    Subclass (or assign on an instance) ``on_load``, ``on_load_end``,
    ``on_load_image_data_setup`` and ``on_load_state_data`` to receive payloads
    directly instead of through listeners. Hooks run on the loader's worker thread.
    """

    def __init__(
        self,
        default_character_set: str | None = None,
        *,
        key_slot: KeyHandlerSlot | None = None,
        loader_factories: Mapping[str, LoaderFactory] | None = None,
        cancel_combo: KeyCombo = CANCEL_KEY_COMBO,
    ) -> None:
        if default_character_set is None:
            default_character_set = DEFAULT_CHARACTER_SET
        self._default_character_set = default_character_set
        self._session = LoadSession()
        self._relay = EventRelay()
        self._key_slot = key_slot or KeyHandlerSlot()
        self._cancel_combo = cancel_combo
        self._factories: dict[str, LoaderFactory] = dict(DEFAULT_LOADER_FACTORIES)
        if loader_factories:
            self._factories.update(loader_factories)

    # host hooks -------------------------------------------------------------

    def on_load(self, data: Any) -> None:
        """Called with every decoded record of an image load."""

    def on_load_end(self) -> None:
        """Called after ``load-end`` has been fired."""

    def on_load_image_data_setup(self) -> None:
        """Called before an image load starts, e.g. to reset viewer state."""

    def on_load_state_data(self, data: Any) -> None:
        """Called with the decoded saved-state document."""

    # public API -------------------------------------------------------------

    @property
    def session(self) -> LoadSession:
        return self._session

    @property
    def key_slot(self) -> KeyHandlerSlot:
        return self._key_slot

    @property
    def is_loading(self) -> bool:
        return self._session.active_loader is not None

    def is_mono_slice_data(self) -> bool | None:
        return self._session.is_mono_slice

    def add_event_listener(self, event_type: str, callback: Listener) -> None:
        self._relay.add(event_type, callback)

    def remove_event_listener(self, event_type: str, callback: Listener) -> None:
        self._relay.remove(event_type, callback)

    def load_files(self, files: Sequence[Any]) -> Future:
        """Load local files or uploads; a leading ``.json`` item is a saved state."""

        files = list(files)
        if classify_source(files) is SourceKind.STATE:
            return self.load_state_file(files[0])
        return self._load_image_data(files, self._create_loader("files"), RequestOptions())

    def load_urls(self, urls: Sequence[str], request_headers: Iterable[Any] | None = None) -> Future:
        """Load remote URLs, forwarding ``request_headers`` to the HTTP backend."""

        urls = list(urls)
        if classify_source(urls) is SourceKind.STATE:
            return self.load_state_url(urls[0], request_headers)
        options = RequestOptions.with_headers(request_headers)
        return self._load_image_data(urls, self._create_loader("urls"), options)

    def load_image_object(self, buffers: Sequence[Any]) -> Future:
        """Load in-memory buffers; always treated as image data."""

        buffers = list(buffers)
        if not buffers:
            raise PreconditionError("A load request needs at least one item.")
        return self._load_image_data(buffers, self._create_loader("memory"), RequestOptions())

    def load_state_file(self, file: Any) -> Future:
        return self._load_state_data([file], self._create_loader("files"), RequestOptions())

    def load_state_url(self, url: str, request_headers: Iterable[Any] | None = None) -> Future:
        options = RequestOptions.with_headers(request_headers)
        return self._load_state_data([url], self._create_loader("urls"), options)

    def abort_load(self) -> Future | None:
        """Ask the active loader to stop and free the slot right away.

        Returns the loader's completion future, or ``None`` when nothing is loading.
        """

        loader = self._session.take()
        if loader is None:
            return None
        logger.info("Aborting load on %s", type(loader).__name__)
        return loader.abort()

    # internals --------------------------------------------------------------

    def _create_loader(self, kind: str) -> BaseLoader:
        try:
            factory = self._factories[kind]
        except KeyError as exc:
            raise PreconditionError(f"No loader registered for {kind!r} sources.") from exc
        return factory()

    def _load_image_data(self, data: list[Any], loader: BaseLoader, options: RequestOptions) -> Future:
        self._session.begin(loader)
        hook = CancellationHook(self._key_slot, self.abort_load, self._cancel_combo)
        started = False
        try:
            self.on_load_image_data_setup()
            hook.install()

            self._session.is_mono_slice = is_mono_slice(data)

            loader.set_default_character_set(self._default_character_set)
            self._wire_image_hooks(loader, hook)
            options.cancel_token = options.cancel_token or CancelToken()

            self._fire(LoadStart())
            started = True
            return loader.load(data, options)
        except BaseException:
            hook.restore()
            self._session.release(loader)
            if started:
                # Listeners saw load-start; close the envelope before re-raising.
                self._fire(LoadEnd())
            raise

    def _wire_image_hooks(self, loader: BaseLoader, hook: CancellationHook) -> None:
        def handle_item_start(item: Any, source: Any) -> None:
            self._fire(LoadItemStart(item=item, loader=source))

        def handle_load(data: Any) -> None:
            self._fire(LoadSlice(data=_field(data, "info")))
            self.on_load(data)

        def handle_load_end() -> None:
            hook.restore()
            try:
                self._fire(LoadProgress(length_computable=True, loaded=100, total=100))
                self._fire(LoadEnd())
            finally:
                self._session.release(loader)
            self.on_load_end()

        loader.on_load_item_start = handle_item_start
        loader.on_load = handle_load
        loader.on_error = self._handle_load_error
        loader.on_abort = self._handle_load_abort
        loader.on_load_end = handle_load_end
        loader.on_progress = self._fire

    def _load_state_data(self, data: list[Any], loader: BaseLoader, options: RequestOptions) -> Future:
        loader.on_load = lambda record: self.on_load_state_data(record)
        loader.on_error = self._handle_load_error
        return loader.load(data, options)

    def _handle_load_error(self, error: Any) -> None:
        logger.error("Load error: %r", error, exc_info=error if isinstance(error, BaseException) else None)
        self._fire(LoadErrorEvent(message=describe_error(error), error=error))

    def _handle_load_abort(self, payload: Any) -> None:
        logger.warning("Load aborted: %r", payload)
        self._fire(LoadAbortEvent(message=describe_abort(payload), error=payload))

    def _fire(self, event: LoadEvent) -> None:
        self._relay.fire(event)


__all__ = [
    "ABORT_FALLBACK_MESSAGE",
    "DEFAULT_LOADER_FACTORIES",
    "LoadController",
    "LoadSession",
    "LoaderFactory",
    "describe_abort",
    "describe_error",
]
