"""Zip archives of a session's file set."""

from __future__ import annotations

import io
from typing import Iterable
import zipfile

from appforge.models.files import FileChange, sanitize_path


def build_archive(files: Iterable[FileChange]) -> bytes:
    """Return a zip with one entry per non-delete file at its relative path."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for item in files:
            if item.is_delete:
                continue
            archive.writestr(sanitize_path(item.path), item.content.encode("utf-8"))
    return buffer.getvalue()


def archive_filename(session_id: str) -> str:
    return f"appforge-{session_id}.zip"
