"""Environment-driven defaults shared by loader and controller modules."""

from __future__ import annotations

from dataclasses import dataclass
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        return default


# Empty string means "let each dataset declare its own charset".
DEFAULT_CHARACTER_SET = os.environ.get("DICOM_INGEST_CHARSET", "").strip()
LOADER_MAX_WORKERS = max(1, _env_int("DICOM_INGEST_MAX_WORKERS", 4))
HTTP_TIMEOUT_SECONDS = _env_float("DICOM_INGEST_HTTP_TIMEOUT", 30.0)
DOWNLOAD_CHUNK_SIZE = max(1024, _env_int("DICOM_INGEST_CHUNK_SIZE", 64 * 1024))
LOG_LEVEL = os.environ.get("DICOM_INGEST_LOG_LEVEL", "INFO").upper()

STATE_EXTENSION = "json"
ARCHIVE_EXTENSION = "zip"
DICOMDIR_SUFFIXES = ("DICOMDIR", ".dcmdir")
RASTER_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "bmp"})


@dataclass(frozen=True)
class KeyCombo:
    """A keyboard shortcut, matched case-insensitively on the key name."""

    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False

    def describe(self) -> str:
        parts = [name for name, on in (("ctrl", self.ctrl), ("shift", self.shift), ("alt", self.alt)) if on]
        parts.append(self.key.lower())
        return "-".join(parts)


CANCEL_KEY_COMBO = KeyCombo(key="x", ctrl=True)
