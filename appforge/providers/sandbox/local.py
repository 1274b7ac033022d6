"""Local sandbox provider implementation.

Each sandbox is a directory under a base dir and commands run as local
subprocesses, each in its own process group. Deleting a sandbox terminates
every group it started, so a backgrounded dev server does not outlive it.
Useful for development without a remote sandbox account.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import shutil
import signal
import subprocess
import tempfile
import time
from typing import Sequence
from uuid import uuid4

from appforge.models.sandbox import ExecResult, FileEntry, SandboxResources
from appforge.providers.sandbox.base import SandboxProvider

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
COMMAND_NOT_FOUND_EXIT_CODE = 127


@dataclass
class _LocalSandbox:
    sandbox_id: str
    root: Path
    env: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    process_groups: list[int] = field(default_factory=list)


class LocalProvider(SandboxProvider):
    def __init__(self, base_dir: str | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path(
            tempfile.mkdtemp(prefix="appforge-local-")
        )
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._sandboxes: dict[str, _LocalSandbox] = {}

    def create_sandbox(
        self,
        name: str,
        resources: SandboxResources,
        image: str | None = None,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        # Resource limits and images have no local equivalent.
        sandbox_id = f"{name}-{uuid4().hex[:8]}"
        root = self._base_dir / sandbox_id
        root.mkdir(parents=True, exist_ok=False)
        self._sandboxes[sandbox_id] = _LocalSandbox(
            sandbox_id=sandbox_id,
            root=root,
            env=dict(env or {}),
            labels={"name": name, **(labels or {})},
        )
        logger.info(f"Created local sandbox {sandbox_id} at {root}")
        return sandbox_id

    def delete_sandbox(self, sandbox_id: str) -> None:
        sandbox = self._get(sandbox_id)
        for group in sandbox.process_groups:
            _terminate_group(group)
        shutil.rmtree(sandbox.root, ignore_errors=True)
        self._sandboxes.pop(sandbox_id, None)
        logger.info(f"Deleted local sandbox {sandbox_id}")

    def list_sandboxes(self) -> Sequence[str]:
        return list(self._sandboxes)

    def get_root_dir(self, sandbox_id: str) -> str:
        return str(self._get(sandbox_id).root)

    def exec(
        self,
        sandbox_id: str,
        command: Sequence[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_s: int | None = None,
    ) -> ExecResult:
        sandbox = self._get(sandbox_id)
        workdir = self._resolve_path(sandbox_id, cwd) if cwd else sandbox.root
        start = time.monotonic()
        try:
            process = subprocess.Popen(
                list(command),
                cwd=workdir,
                env={**os.environ, **sandbox.env, **(env or {})},
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            return ExecResult(COMMAND_NOT_FOUND_EXIT_CODE, "", str(exc), _elapsed_ms(start))
        sandbox.process_groups.append(process.pid)
        try:
            stdout, stderr = process.communicate(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            _terminate_group(process.pid)
            stdout, _ = process.communicate()
            return ExecResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=stdout or "",
                stderr=f"Command timed out after {timeout_s}s",
                duration_ms=_elapsed_ms(start),
            )
        return ExecResult(process.returncode, stdout or "", stderr or "", _elapsed_ms(start))

    def read_file(self, sandbox_id: str, path: str) -> bytes:
        return self._resolve_path(sandbox_id, path).read_bytes()

    def write_file(
        self,
        sandbox_id: str,
        path: str,
        data: bytes,
        mode: int | None = None,
        append: bool = False,
    ) -> None:
        target = self._resolve_path(sandbox_id, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("ab" if append else "wb") as handle:
            handle.write(data)
        if mode is not None:
            os.chmod(target, mode)

    def list_files(self, sandbox_id: str, path: str) -> Sequence[FileEntry]:
        entries: list[FileEntry] = []
        for entry in self._resolve_path(sandbox_id, path).iterdir():
            stat_info = entry.stat()
            entries.append(
                FileEntry(
                    name=entry.name,
                    is_dir=entry.is_dir(),
                    size=stat_info.st_size,
                    mod_time=stat_info.st_mtime,
                )
            )
        return entries

    def mkdirs(self, sandbox_id: str, path: str) -> None:
        self._resolve_path(sandbox_id, path).mkdir(parents=True, exist_ok=True)

    def get_preview_link(self, sandbox_id: str, port: int) -> str | None:
        self._get(sandbox_id)
        return f"http://localhost:{port}"

    def _get(self, sandbox_id: str) -> _LocalSandbox:
        if sandbox_id not in self._sandboxes:
            raise KeyError(f"Unknown sandbox id: {sandbox_id}")
        return self._sandboxes[sandbox_id]

    def _resolve_path(self, sandbox_id: str, path: str) -> Path:
        root = self._get(sandbox_id).root.resolve()
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = candidate.resolve()
        if root != resolved and root not in resolved.parents:
            raise ValueError(f"Path escapes sandbox: {path}")
        return resolved


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _terminate_group(group: int) -> None:
    try:
        os.killpg(group, signal.SIGTERM)
    except (ProcessLookupError, PermissionError):
        # Already exited.
        return
