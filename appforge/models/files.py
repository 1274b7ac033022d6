"""Data models for generated project files."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

from appforge.errors import ValidationError


class FileOperation(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


def sanitize_path(path: str) -> str:
    """Return ``path`` normalised as a project-relative POSIX path.

    Raises ValidationError for empty, absolute or traversing paths.
    """
    candidate = path.strip().replace("\\", "/")
    if not candidate:
        raise ValidationError("File path is empty")
    if candidate.startswith("/") or PurePosixPath(candidate).is_absolute():
        raise ValidationError(f"Invalid file path: {path}")
    if len(candidate) > 1 and candidate[1] == ":":
        raise ValidationError(f"Invalid file path: {path}")
    parts = [part for part in candidate.split("/") if part not in ("", ".")]
    if not parts or any(part == ".." for part in parts):
        raise ValidationError(f"Invalid file path: {path}")
    return "/".join(parts)


@dataclass(frozen=True)
class FileChange:
    path: str
    content: str
    operation: FileOperation = FileOperation.CREATE

    @property
    def is_delete(self) -> bool:
        return self.operation == FileOperation.DELETE

    def to_dict(self) -> dict[str, str]:
        return {
            "path": self.path,
            "content": self.content,
            "operation": self.operation.value,
        }
