"""Sandbox provider interface.

Every method is blocking; callers on the event loop wrap them with
``asyncio.to_thread``. Paths are relative to the sandbox root directory
unless absolute.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from appforge.models.sandbox import ExecResult, FileEntry, SandboxResources


class SandboxProvider(Protocol):
    def create_sandbox(
        self,
        name: str,
        resources: SandboxResources,
        image: str | None = None,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Create and start a sandbox, returning its id."""
        ...

    def delete_sandbox(self, sandbox_id: str) -> None:
        ...

    def list_sandboxes(self) -> Sequence[str]:
        """Ids of every sandbox this provider can delete."""
        ...

    def get_root_dir(self, sandbox_id: str) -> str:
        ...

    def exec(
        self,
        sandbox_id: str,
        command: Sequence[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_s: int | None = None,
    ) -> ExecResult:
        """Run ``command`` and wait for it.

        A failing command is reported through ``exit_code``, not raised:
        124 for a timeout and 127 for a missing executable.
        """
        ...

    def read_file(self, sandbox_id: str, path: str) -> bytes:
        ...

    def write_file(
        self,
        sandbox_id: str,
        path: str,
        data: bytes,
        mode: int | None = None,
        append: bool = False,
    ) -> None:
        """Write ``data`` to ``path``, creating parent directories."""
        ...

    def list_files(self, sandbox_id: str, path: str) -> Sequence[FileEntry]:
        """Direct children of ``path``; order is unspecified."""
        ...

    def mkdirs(self, sandbox_id: str, path: str) -> None:
        ...

    def get_preview_link(self, sandbox_id: str, port: int) -> str | None:
        """Public URL for ``port``, or None when the sandbox exposes none."""
        ...
