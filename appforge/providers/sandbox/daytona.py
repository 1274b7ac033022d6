"""Daytona sandbox provider backed by the Daytona Python SDK."""

from __future__ import annotations

import importlib
import importlib.util
import logging
import os
import posixpath
import shlex
import time
from typing import Any, Sequence

from appforge.models.sandbox import ExecResult, FileEntry, SandboxResources
from appforge.providers.sandbox.base import SandboxProvider

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "node:20"


def _load_sdk() -> Any:
    if importlib.util.find_spec("daytona") is None:
        raise RuntimeError("The daytona package must be installed to use DaytonaProvider.")
    return importlib.import_module("daytona")


class DaytonaProvider(SandboxProvider):
    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        target: str | None = None,
    ) -> None:
        api_key = api_key or os.getenv("DAYTONA_API_KEY")
        if not api_key:
            raise ValueError("DAYTONA_API_KEY environment variable is required")
        self._sdk = _load_sdk()
        config_kwargs: dict[str, Any] = {"api_key": api_key}
        if api_url or os.getenv("DAYTONA_API_URL"):
            config_kwargs["api_url"] = api_url or os.getenv("DAYTONA_API_URL")
        if target or os.getenv("DAYTONA_TARGET"):
            config_kwargs["target"] = target or os.getenv("DAYTONA_TARGET")
        self._client = self._sdk.Daytona(self._sdk.DaytonaConfig(**config_kwargs))
        self._sandboxes: dict[str, Any] = {}
        self._roots: dict[str, str] = {}

    def create_sandbox(
        self,
        name: str,
        resources: SandboxResources,
        image: str | None = None,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        params = self._sdk.CreateSandboxFromImageParams(
            image=image or DEFAULT_IMAGE,
            public=True,
            env_vars=env or {},
            labels={"name": name, **(labels or {})},
            resources=self._sdk.Resources(
                cpu=resources.vcpu,
                memory=resources.memory_gib,
                disk=resources.disk_gib,
            ),
        )
        try:
            sandbox = self._client.create(params)
        except Exception as exc:
            if "runner info" in str(exc):
                raise RuntimeError(
                    "Daytona runner not found. Check DAYTONA_TARGET and DAYTONA_API_URL. "
                    f"Original error: {exc}"
                ) from exc
            raise
        self._sandboxes[sandbox.id] = sandbox
        logger.info(f"Created Daytona sandbox {sandbox.id}")
        return sandbox.id

    def delete_sandbox(self, sandbox_id: str) -> None:
        sandbox = self._get_sandbox(sandbox_id)
        self._client.delete(sandbox)
        self._sandboxes.pop(sandbox_id, None)
        self._roots.pop(sandbox_id, None)

    def list_sandboxes(self) -> Sequence[str]:
        response = self._client.list()
        items = getattr(response, "items", response)
        return [sandbox.id for sandbox in items if getattr(sandbox, "id", None)]

    def get_root_dir(self, sandbox_id: str) -> str:
        if sandbox_id not in self._roots:
            sandbox = self._get_sandbox(sandbox_id)
            if hasattr(sandbox, "get_user_home_dir"):
                root = sandbox.get_user_home_dir()
            else:
                root = sandbox.get_user_root_dir()
            if not root:
                raise RuntimeError("Failed to get root directory")
            self._roots[sandbox_id] = root.rstrip("/")
        return self._roots[sandbox_id]

    def exec(
        self,
        sandbox_id: str,
        command: Sequence[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_s: int | None = None,
    ) -> ExecResult:
        sandbox = self._get_sandbox(sandbox_id)
        workdir = self._full_path(sandbox_id, cwd) if cwd else self.get_root_dir(sandbox_id)
        start = time.monotonic()
        response = sandbox.process.exec(
            shlex.join(command), cwd=workdir, env=env, timeout=timeout_s
        )
        return ExecResult(
            exit_code=response.exit_code,
            stdout=response.result or "",
            stderr="",
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def read_file(self, sandbox_id: str, path: str) -> bytes:
        sandbox = self._get_sandbox(sandbox_id)
        return sandbox.fs.download_file(self._full_path(sandbox_id, path))

    def write_file(
        self,
        sandbox_id: str,
        path: str,
        data: bytes,
        mode: int | None = None,
        append: bool = False,
    ) -> None:
        sandbox = self._get_sandbox(sandbox_id)
        full_path = self._full_path(sandbox_id, path)
        if append:
            data = sandbox.fs.download_file(full_path) + data
        sandbox.fs.upload_file(data, full_path)
        if mode is not None:
            sandbox.fs.set_file_permissions(full_path, mode=oct(mode)[2:])

    def list_files(self, sandbox_id: str, path: str) -> Sequence[FileEntry]:
        sandbox = self._get_sandbox(sandbox_id)
        entries: list[FileEntry] = []
        for info in sandbox.fs.list_files(self._full_path(sandbox_id, path)):
            entries.append(
                FileEntry(
                    name=info.name,
                    is_dir=bool(info.is_dir),
                    size=int(info.size or 0),
                    mod_time=None,
                )
            )
        return entries

    def mkdirs(self, sandbox_id: str, path: str) -> None:
        sandbox = self._get_sandbox(sandbox_id)
        sandbox.fs.create_folder(self._full_path(sandbox_id, path), "755")

    def get_preview_link(self, sandbox_id: str, port: int) -> str | None:
        sandbox = self._get_sandbox(sandbox_id)
        return sandbox.get_preview_link(port).url

    def _get_sandbox(self, sandbox_id: str) -> Any:
        if sandbox_id not in self._sandboxes:
            self._sandboxes[sandbox_id] = self._client.get(sandbox_id)
        return self._sandboxes[sandbox_id]

    def _full_path(self, sandbox_id: str, path: str) -> str:
        if path.startswith("/"):
            return path
        return posixpath.join(self.get_root_dir(sandbox_id), path)
