"""File operations against a live sandbox's project tree."""

from __future__ import annotations

import logging
import posixpath
from typing import Iterable, Sequence

from appforge.models.files import FileChange, FileOperation, sanitize_path
from appforge.providers.sandbox.base import SandboxProvider

logger = logging.getLogger(__name__)

SKIPPED_DIRS = frozenset({"node_modules", ".next", ".git"})
SKIPPED_FILES = frozenset({"package-lock.json"})
SKIPPED_SUFFIXES = (".log",)


class SandboxWorkspace:
    def __init__(self, provider: SandboxProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> SandboxProvider:
        return self._provider

    def list_project_files(self, sandbox_id: str, path: str = ".") -> list[str]:
        """Return project-relative file paths, skipping build output and logs."""
        paths: list[str] = []
        pending = [path]
        while pending:
            directory = pending.pop(0)
            for entry in sorted(
                self._provider.list_files(sandbox_id, directory), key=lambda item: item.name
            ):
                relative = entry.name if directory == "." else posixpath.join(directory, entry.name)
                if entry.is_dir:
                    if entry.name not in SKIPPED_DIRS:
                        pending.append(relative)
                    continue
                if entry.name in SKIPPED_FILES or entry.name.endswith(SKIPPED_SUFFIXES):
                    continue
                paths.append(relative)
        return paths

    def read_files(self, sandbox_id: str, paths: Iterable[str]) -> list[FileChange]:
        files: list[FileChange] = []
        for path in paths:
            try:
                data = self._provider.read_file(sandbox_id, sanitize_path(path))
            except Exception as exc:
                logger.warning(f"Failed to read {path} from sandbox {sandbox_id}: {exc}")
                continue
            files.append(
                FileChange(
                    path=path,
                    content=data.decode("utf-8", errors="replace"),
                    operation=FileOperation.EDIT,
                )
            )
            logger.debug(f"Read {path} ({len(data) / 1024:.1f}KB)")
        return files

    def write_files(self, sandbox_id: str, files: Sequence[FileChange]) -> list[str]:
        """Write every non-delete file; the first failure propagates."""
        written: list[str] = []
        for item in files:
            path = sanitize_path(item.path)
            if item.is_delete:
                self._provider.exec(sandbox_id, ["rm", "-f", path])
                continue
            self._provider.write_file(sandbox_id, path, item.content.encode("utf-8"))
            written.append(path)
        logger.info(f"Wrote {len(written)} file(s) to sandbox {sandbox_id}")
        return written

    def preview_url(self, sandbox_id: str, port: int) -> str | None:
        return self._provider.get_preview_link(sandbox_id, port)
