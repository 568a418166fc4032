"""Turn raw item bytes into ``LoadedData`` records (DICOM, raster, zip, state)."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Iterator

from PIL import Image, UnidentifiedImageError
import pydicom
from pydicom.errors import InvalidDicomError
from pydicom.multival import MultiValue

from .classifier import extension
from .config import ARCHIVE_EXTENSION, DICOMDIR_SUFFIXES, RASTER_EXTENSIONS, STATE_EXTENSION
from .errors import DecodeError


# Header fields surfaced in ``LoadedData.info`` for DICOM payloads.
_DICOM_SUMMARY_TAGS = (
    "SOPInstanceUID",
    "SeriesInstanceUID",
    "StudyInstanceUID",
    "Modality",
    "InstanceNumber",
    "Rows",
    "Columns",
    "NumberOfFrames",
    "SpecificCharacterSet",
)


@dataclass
class LoadedData:
    """One decoded unit reported through a loader's ``on_load`` hook."""

    name: str
    kind: str
    info: dict[str, Any]
    payload: Any = None
    source: str = ""
    index: int = 0
    extras: dict[str, Any] = field(default_factory=dict)


def decode_payload(
    name: str,
    payload: bytes,
    *,
    character_set: str | None = None,
    source: str = "",
    index: int = 0,
) -> Iterator[LoadedData]:
    """Yield decoded records for one request item.

    Zip archives yield one record per member; everything else yields one record.
    """

    ext = extension(name)
    if ext == ARCHIVE_EXTENSION:
        yield from _decode_zip(name, payload, character_set=character_set, source=source, index=index)
        return
    yield _decode_single(name, payload, character_set=character_set, source=source, index=index)


def _decode_single(
    name: str,
    payload: bytes,
    *,
    character_set: str | None,
    source: str,
    index: int,
) -> LoadedData:
    ext = extension(name)
    if ext == STATE_EXTENSION:
        return decode_state(name, payload, source=source, index=index)
    if ext in RASTER_EXTENSIONS:
        return decode_raster(name, payload, source=source, index=index)
    return decode_dicom(name, payload, character_set=character_set, source=source, index=index)


def decode_state(name: str, payload: bytes, *, source: str = "", index: int = 0) -> LoadedData:
    """Wrap a saved-state document; the text is handed over without schema checks."""

    try:
        text = payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"State file {name} is not valid UTF-8: {exc}") from exc
    return LoadedData(
        name=name,
        kind="state",
        info={"name": name, "size": len(payload)},
        payload=text,
        source=source,
        index=index,
    )


def decode_raster(name: str, payload: bytes, *, source: str = "", index: int = 0) -> LoadedData:
    try:
        image = Image.open(io.BytesIO(payload))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError(f"Cannot read image {name}: {exc}") from exc
    info = {
        "name": name,
        "format": image.format,
        "width": image.width,
        "height": image.height,
        "mode": image.mode,
        "frames": getattr(image, "n_frames", 1),
    }
    return LoadedData(name=name, kind="image", info=info, payload=image, source=source, index=index)


def decode_dicom(
    name: str,
    payload: bytes,
    *,
    character_set: str | None = None,
    source: str = "",
    index: int = 0,
) -> LoadedData:
    try:
        dataset = pydicom.dcmread(io.BytesIO(payload))
    except InvalidDicomError as exc:
        raise DecodeError(f"{name} is not a DICOM file: {exc}") from exc

    # Text elements decode lazily, so setting the charset here still applies to them.
    if character_set and "SpecificCharacterSet" not in dataset:
        dataset.SpecificCharacterSet = character_set

    info: dict[str, Any] = {"name": name}
    for keyword in _DICOM_SUMMARY_TAGS:
        value = dataset.get(keyword)
        if value is not None:
            info[keyword] = _plain(value)

    kind = "dicom"
    if name.endswith(DICOMDIR_SUFFIXES) or "DirectoryRecordSequence" in dataset:
        kind = "dicomdir"
        info["records"] = len(dataset.get("DirectoryRecordSequence", []))

    return LoadedData(name=name, kind=kind, info=info, payload=dataset, source=source, index=index)


def _decode_zip(
    name: str,
    payload: bytes,
    *,
    character_set: str | None,
    source: str,
    index: int,
) -> Iterator[LoadedData]:
    try:
        archive = zipfile.ZipFile(io.BytesIO(payload))
    except zipfile.BadZipFile as exc:
        raise DecodeError(f"{name} is not a readable zip archive: {exc}") from exc

    with archive:
        for member in archive.infolist():
            if member.is_dir():
                continue
            member_path = PurePosixPath(member.filename)
            if _should_skip(member_path):
                continue
            data = archive.read(member)
            record = _decode_single(
                str(member_path),
                data,
                character_set=character_set,
                source=source,
                index=index,
            )
            record.extras["archive"] = name
            yield record


def _should_skip(path: PurePosixPath) -> bool:
    parts = [part.lower() for part in path.parts]
    return any(part.startswith("__macosx") for part in parts)


def _plain(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, str):
        return str(value)
    if isinstance(value, (list, tuple, MultiValue)):
        return [_plain(item) for item in value]
    return str(value)


__all__ = ["LoadedData", "decode_dicom", "decode_payload", "decode_raster", "decode_state"]
