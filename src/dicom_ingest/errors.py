"""Exception types raised by the ingestion layer."""

from __future__ import annotations


class IngestError(RuntimeError):
    """Base class for ingestion failures."""


class PreconditionError(IngestError, ValueError):
    """Raised when a caller breaks a documented precondition (e.g. an empty request)."""


class LoadInProgressError(PreconditionError):
    """Raised when an image load is requested while another one is still active."""


class DecodeError(IngestError):
    """Raised by decoders for payloads they cannot interpret."""


__all__ = [
    "DecodeError",
    "IngestError",
    "LoadInProgressError",
    "PreconditionError",
]
