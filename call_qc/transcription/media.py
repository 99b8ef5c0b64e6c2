"""Audio asset description, supported-format checks and MIME correction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

LOGGER = logging.getLogger("call_qc")

AUDIO_MIME_TYPES: Final[dict[str, str]] = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".wave": "audio/wav",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".webm": "audio/webm",
    ".3gp": "audio/3gpp",
    ".amr": "audio/amr",
    ".wma": "audio/x-ms-wma",
}


@dataclass(frozen=True)
class AudioAsset:
    """An audio file to transcribe."""

    name: str
    mime_type: str = "application/octet-stream"
    path: Path | None = None
    data: bytes | None = None

    @classmethod
    def from_path(cls, path: Path | str) -> AudioAsset:
        p = Path(path)
        return cls(
            name=p.name,
            mime_type=AUDIO_MIME_TYPES.get(p.suffix.lower(), "application/octet-stream"),
            path=p,
        )

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower()

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            message = f"Asset {self.name} has neither data nor a path"
            raise ValueError(message)
        return self.path.read_bytes()


def correct_mime_type(name: str) -> str | None:
    return AUDIO_MIME_TYPES.get(Path(name).suffix.lower())


def is_supported_audio(name: str, mime_type: str = "") -> bool:
    """RU: Проверяет, что файл похож на поддерживаемое аудио.

    Известное расширение принимается даже с «общим» MIME-типом; иначе нужен
    MIME-тип вида audio/*.

    EN: Check whether a file looks like supported audio.

    A known extension is accepted even with a generic MIME type; otherwise
    the MIME type must be audio/*.
    """
    if Path(name).suffix.lower() in AUDIO_MIME_TYPES:
        return True
    return (mime_type or "").lower().startswith("audio/")


def prepare_asset(asset: AudioAsset) -> AudioAsset:
    """Return the asset with its MIME type set from the extension, when known."""
    mime = correct_mime_type(asset.name)
    if mime is None:
        LOGGER.warning("No canonical MIME type for %s; keeping %s", asset.name, asset.mime_type)
        return asset
    if mime != asset.mime_type:
        LOGGER.debug("Correcting MIME type for %s: %s -> %s", asset.name, asset.mime_type, mime)
    return replace(asset, mime_type=mime)
