# backend/app/storage/uploads.py
"""
Attachment intake.

Uploaded files are written to disk before the mail transaction starts;
the messaging engine only ever sees the resulting ``StoredFile``
descriptors. Files land in ``<upload_dir>/{images,documents,others}``
under a generated name so user-supplied names never touch the filesystem.
"""
from __future__ import annotations

import logging
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import UploadFile

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.security.sanitizer import InputSanitizer

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredFile:
    original_name: str
    file_name: str
    file_path: str
    mime_type: str
    file_size: int


def folder_for(mime_type: str) -> str:
    if mime_type.startswith("image/"):
        return "images"
    if "pdf" in mime_type or "document" in mime_type:
        return "documents"
    return "others"


def unique_name(original_name: str) -> str:
    ext = Path(original_name).suffix.lower()
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def save_uploads(files: Optional[Sequence[UploadFile]], upload_dir: Optional[str] = None) -> List[StoredFile]:
    """
    Write uploads to disk and describe them. On any rejection the files
    already written by this call are removed again.
    """
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > settings.max_attachments:
        raise ValidationFailed(f"Too many attachments (max {settings.max_attachments})")

    root = Path(upload_dir or settings.upload_dir)
    stored: List[StoredFile] = []
    try:
        for upload in files:
            stored.append(_save_one(upload, root))
    except BaseException:
        discard(stored)
        raise
    return stored


def _save_one(upload: UploadFile, root: Path) -> StoredFile:
    try:
        original_name = InputSanitizer.sanitize_filename(upload.filename or "unnamed")
    except ValueError as exc:
        raise ValidationFailed(str(exc))

    mime_type = (upload.content_type or "application/octet-stream").split(";")[0].strip().lower()
    target_dir = root / folder_for(mime_type)
    target_dir.mkdir(parents=True, exist_ok=True)

    file_name = unique_name(original_name)
    target = target_dir / file_name

    size = 0
    too_large = False
    with open(target, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.max_upload_bytes:
                too_large = True
                break
            out.write(chunk)

    if too_large:
        target.unlink(missing_ok=True)
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationFailed(f"File too large (max {limit_mb} MB)")

    return StoredFile(
        original_name=original_name,
        file_name=file_name,
        file_path=target.as_posix(),
        mime_type=mime_type,
        file_size=size,
    )


def discard(files: Sequence[StoredFile]) -> None:
    """Remove files whose mail was never committed."""
    for f in files:
        try:
            os.remove(f.file_path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove orphaned upload %s", f.file_path, exc_info=True)
