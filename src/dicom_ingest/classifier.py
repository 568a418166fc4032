"""Request classification: state payload vs. image data, and the mono-slice guess."""

from __future__ import annotations

from enum import Enum
from os import PathLike
from typing import Any, Mapping, Sequence

from .config import ARCHIVE_EXTENSION, DICOMDIR_SUFFIXES, STATE_EXTENSION
from .errors import PreconditionError


class SourceKind(str, Enum):
    IMAGE = "image"
    STATE = "state"


def item_name(item: Any) -> str:
    """Return the identifying name of a request item (path, URL, upload or buffer)."""

    if isinstance(item, str):
        return item
    if isinstance(item, PathLike):
        return str(item)
    if isinstance(item, Mapping):
        return str(item.get("name") or item.get("filename") or "")
    name = getattr(item, "name", None)
    if name is None:
        return str(item)
    return str(name)


def extension(name: str) -> str:
    """Lower-cased text after the last dot (the whole name when there is none)."""

    return name.rsplit(".", 1)[-1].lower()


def classify_source(items: Sequence[Any]) -> SourceKind:
    """Classify a request by the first item's extension only."""

    if not items:
        raise PreconditionError("A load request needs at least one item.")
    if extension(item_name(items[0])) == STATE_EXTENSION:
        return SourceKind.STATE
    return SourceKind.IMAGE


def is_mono_slice(items: Sequence[Any]) -> bool:
    """Guess whether a request holds a single slice.

    A lone zip archive or DICOMDIR index may expand into a whole series, so those
    never count as mono-slice even though the request has one item.
    """

    if len(items) != 1:
        return False
    name = item_name(items[0])
    if extension(name) == ARCHIVE_EXTENSION:
        return False
    return not any(name.endswith(suffix) for suffix in DICOMDIR_SUFFIXES)


__all__ = ["SourceKind", "classify_source", "extension", "is_mono_slice", "item_name"]
