"""Utilities for persisting user uploads on disk."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Final
from uuid import uuid4

from fastapi import UploadFile

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    if not filename:
        filename = "upload"
    sanitized = Path(filename).name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    sanitized = sanitized.strip("._") or "upload"
    return sanitized


async def save_upload(upload: UploadFile, data_dir: Path | str) -> Path:
    """Persist an uploaded document under *data_dir* with a unique name."""
    directory = Path(data_dir) / "uploads"
    directory.mkdir(parents=True, exist_ok=True)

    sanitized_name = sanitize_filename(upload.filename or "")
    base = Path(sanitized_name).stem or "upload"
    suffix = Path(sanitized_name).suffix
    unique_name = f"{base}-{uuid4().hex}{suffix}" if suffix else f"{base}-{uuid4().hex}"
    destination = directory / unique_name

    contents = await upload.read()
    destination.write_bytes(contents)
    await upload.seek(0)

    return destination.resolve()


__all__ = ["sanitize_filename", "save_upload"]
