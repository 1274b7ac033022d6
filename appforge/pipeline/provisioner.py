"""Provision an ephemeral sandbox and bring a dev server up inside it.

Stages run strictly in order::

    creating -> uploading -> installing -> starting -> health-checking -> ready

Any failure after the sandbox exists deletes it before the error propagates.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, Sequence

import httpx

from appforge.errors import ProvisioningError
from appforge.models.files import FileChange
from appforge.models.sandbox import (
    HealthCheckResult,
    HealthVerdict,
    ProvisioningStage,
    SandboxHandle,
    SandboxResources,
)
from appforge.pipeline.workspace import SandboxWorkspace
from appforge.providers.sandbox.base import SandboxProvider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
Sleep = Callable[[float], Awaitable[None]]

SERVER_LOG = "dev-server.log"
INSTALL_COMMAND = ("npm", "install")
DEV_COMMAND = "npm run dev"

READY_MARKERS = (
    re.compile(r"\bready\b", re.IGNORECASE),
    re.compile(r"started server on", re.IGNORECASE),
    re.compile(r"\bcompiling\b", re.IGNORECASE),
    re.compile(r"compiled successfully", re.IGNORECASE),
)
FATAL_MARKERS = (
    re.compile(r"EADDRINUSE"),
    re.compile(r"address already in use", re.IGNORECASE),
    re.compile(r"MODULE_NOT_FOUND"),
    re.compile(r"cannot find module", re.IGNORECASE),
    re.compile(r"module not found", re.IGNORECASE),
    re.compile(r"failed to compile", re.IGNORECASE),
    re.compile(r"Error: listen"),
)


def _last_match(markers: Sequence[re.Pattern[str]], log: str) -> re.Match[str] | None:
    latest: re.Match[str] | None = None
    for marker in markers:
        for match in marker.finditer(log):
            if latest is None or match.start() > latest.start():
                latest = match
    return latest


def _line_at(log: str, position: int) -> str:
    start = log.rfind("\n", 0, position) + 1
    end = log.find("\n", position)
    return log[start : end if end != -1 else len(log)].strip()


def classify_server_log(log: str) -> HealthCheckResult:
    """Classify dev-server output as ready, fatal, or ambiguous.

    When both kinds of marker appear, whichever appears last wins.
    """
    ready = _last_match(READY_MARKERS, log)
    fatal = _last_match(FATAL_MARKERS, log)
    if fatal is not None and (ready is None or fatal.start() > ready.start()):
        return HealthCheckResult(HealthVerdict.FATAL, _line_at(log, fatal.start())[:200])
    if ready is not None:
        return HealthCheckResult(HealthVerdict.READY, _line_at(log, ready.start())[:200])
    return HealthCheckResult(HealthVerdict.AMBIGUOUS)


def _is_alive_status(status: int) -> bool:
    # A 404 still proves the server process is answering.
    return 200 <= status < 400 or status == 404


def _noop(message: str) -> None:
    return None


class SandboxProvisioner:
    def __init__(
        self,
        provider: SandboxProvider,
        *,
        port: int = 3000,
        resources: SandboxResources | None = None,
        image: str | None = None,
        install_command: Sequence[str] = INSTALL_COMMAND,
        dev_command: str = DEV_COMMAND,
        install_timeout_s: int = 300,
        settle_delay_s: float = 8.0,
        health_interval_s: float = 2.0,
        health_attempts: int = 30,
        probe_attempts: int = 30,
        probe_timeout_s: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._workspace = SandboxWorkspace(provider)
        self._port = port
        self._resources = resources or SandboxResources()
        self._image = image
        self._install_command = list(install_command)
        self._dev_command = dev_command
        self._install_timeout_s = install_timeout_s
        self._settle_delay_s = settle_delay_s
        self._health_interval_s = health_interval_s
        self._health_attempts = health_attempts
        self._probe_attempts = probe_attempts
        self._probe_timeout_s = probe_timeout_s
        self._http_client = http_client
        self._sleep = sleep

    @property
    def port(self) -> int:
        return self._port

    @property
    def workspace(self) -> SandboxWorkspace:
        return self._workspace

    async def provision(
        self,
        files: Sequence[FileChange],
        on_progress: ProgressCallback | None = None,
        name: str = "appforge",
    ) -> SandboxHandle:
        progress = on_progress or _noop
        stage = ProvisioningStage.CREATING
        progress("Creating sandbox...")
        try:
            sandbox_id = await asyncio.to_thread(
                self._provider.create_sandbox, name, self._resources, self._image
            )
        except Exception as exc:
            logger.error(f"Failed to create sandbox: {exc}")
            raise ProvisioningError(
                f"Failed to create sandbox: {exc}", stage=stage.value
            ) from exc

        try:
            root_dir = await asyncio.to_thread(self._provider.get_root_dir, sandbox_id)

            stage = ProvisioningStage.UPLOADING
            uploads = [item for item in files if not item.is_delete]
            progress(f"Uploading {len(uploads)} file(s) to sandbox...")
            await asyncio.to_thread(self._workspace.write_files, sandbox_id, uploads)
            progress("Files uploaded")

            stage = ProvisioningStage.INSTALLING
            progress("Installing dependencies...")
            install = await asyncio.to_thread(
                self._provider.exec,
                sandbox_id,
                self._install_command,
                None,
                None,
                self._install_timeout_s,
            )
            if install.exit_code != 0:
                output = install.output
                logger.error(f"Install failed in {sandbox_id}: {output[-2000:]}")
                raise ProvisioningError(
                    f"{' '.join(self._install_command)} failed: {output[-1000:]}",
                    stage=stage.value,
                    output=output,
                )
            progress("Dependencies installed")

            stage = ProvisioningStage.STARTING
            progress("Starting dev server...")
            await asyncio.to_thread(
                self._provider.exec,
                sandbox_id,
                ["sh", "-c", f"nohup {self._dev_command} > {SERVER_LOG} 2>&1 &"],
                None,
                {"PORT": str(self._port)},
            )
            progress("Waiting for server to start...")
            await self._sleep(self._settle_delay_s)

            stage = ProvisioningStage.HEALTH_CHECKING
            health = await self.health_check(sandbox_id, progress)
            if health.verdict == HealthVerdict.FATAL:
                progress(f"Critical error: {health.detail[:100]}")
                raise ProvisioningError(
                    f"Server failed to start: {health.detail}", stage=stage.value
                )
            if health.verdict == HealthVerdict.READY:
                progress("Server is running!")
            else:
                progress("Server status unclear, trying preview...")

            stage = ProvisioningStage.READY
            preview_url = await asyncio.to_thread(
                self._provider.get_preview_link, sandbox_id, self._port
            )
            reachable = False
            if preview_url:
                reachable = await self.probe_preview(preview_url, progress)
                if not reachable:
                    progress("Server taking longer than expected...")
        except asyncio.CancelledError:
            await self.teardown(sandbox_id)
            raise
        except ProvisioningError:
            await self.teardown(sandbox_id)
            raise
        except Exception as exc:
            await self.teardown(sandbox_id)
            raise ProvisioningError(
                f"Sandbox {stage.value} failed: {exc}", stage=stage.value
            ) from exc

        logger.info(f"Sandbox {sandbox_id} ready at {preview_url}")
        return SandboxHandle(
            sandbox_id=sandbox_id,
            root_dir=root_dir,
            preview_url=preview_url,
            port=self._port,
            reachable=reachable,
        )

    async def health_check(
        self, sandbox_id: str, on_progress: ProgressCallback | None = None
    ) -> HealthCheckResult:
        """Poll the loopback port and the server log until a verdict is reached.

        Running out of attempts without a verdict yields AMBIGUOUS, since a dev
        server can be healthy without printing anything recognisable.
        """
        progress = on_progress or _noop
        for attempt in range(self._health_attempts):
            status = await self._loopback_status(sandbox_id)
            if status is not None and _is_alive_status(status):
                return HealthCheckResult(HealthVerdict.READY, f"HTTP {status}")
            log = await self._server_log(sandbox_id)
            result = classify_server_log(log)
            if result.verdict != HealthVerdict.AMBIGUOUS:
                return result
            if attempt and attempt % 5 == 0:
                progress(f"Still waiting for server... ({attempt * self._health_interval_s:.0f}s)")
            if attempt < self._health_attempts - 1:
                await self._sleep(self._health_interval_s)
        return HealthCheckResult(
            HealthVerdict.AMBIGUOUS, f"No verdict after {self._health_attempts} attempts"
        )

    async def _loopback_status(self, sandbox_id: str) -> int | None:
        result = await asyncio.to_thread(
            self._provider.exec,
            sandbox_id,
            [
                "curl",
                "-s",
                "-o",
                "/dev/null",
                "-w",
                "%{http_code}",
                f"http://localhost:{self._port}",
            ],
        )
        code = result.stdout.strip()
        if not code.isdigit() or code == "000":
            return None
        return int(code)

    async def _server_log(self, sandbox_id: str) -> str:
        result = await asyncio.to_thread(
            self._provider.exec, sandbox_id, ["cat", SERVER_LOG]
        )
        return result.stdout if result.exit_code == 0 else ""

    async def probe_preview(
        self, url: str, on_progress: ProgressCallback | None = None
    ) -> bool:
        progress = on_progress or _noop
        client = self._http_client or httpx.AsyncClient(timeout=self._probe_timeout_s)
        try:
            for attempt in range(self._probe_attempts):
                try:
                    response = await client.head(url, follow_redirects=True)
                    if _is_alive_status(response.status_code):
                        return True
                except httpx.HTTPError as exc:
                    logger.debug(f"Preview probe {attempt + 1} failed: {exc}")
                    if attempt and attempt % 5 == 0:
                        progress(
                            f"Still waiting for server... ({attempt * self._health_interval_s:.0f}s)"
                        )
                if attempt < self._probe_attempts - 1:
                    await self._sleep(self._health_interval_s)
        finally:
            if self._http_client is None:
                await client.aclose()
        logger.warning(f"Preview {url} not reachable after {self._probe_attempts} attempts")
        return False

    async def teardown(self, sandbox_id: str) -> None:
        try:
            await asyncio.to_thread(self._provider.delete_sandbox, sandbox_id)
            logger.info(f"Cleaned up sandbox {sandbox_id} after failure")
        except Exception as exc:
            logger.error(f"Failed to clean up sandbox {sandbox_id}: {exc}")

    async def cleanup_all(self) -> list[str]:
        """Delete every sandbox the provider knows about."""
        sandbox_ids = await asyncio.to_thread(self._provider.list_sandboxes)
        deleted: list[str] = []
        for sandbox_id in sandbox_ids:
            try:
                await asyncio.to_thread(self._provider.delete_sandbox, sandbox_id)
            except Exception as exc:
                logger.error(f"Failed to delete sandbox {sandbox_id}: {exc}")
                continue
            deleted.append(sandbox_id)
        return deleted
