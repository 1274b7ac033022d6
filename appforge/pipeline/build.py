"""Drive a prompt through generation, parsing and sandbox provisioning."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging

from appforge.errors import AppForgeError, ValidationError
from appforge.models.files import FileChange
from appforge.models.sandbox import SandboxHandle
from appforge.pipeline.parser import parse_response
from appforge.pipeline.prompts import BUILD_CONTRACT, build_conversation
from appforge.pipeline.provisioner import SandboxProvisioner
from appforge.providers.llm.base import CodeGenerator
from appforge.sessions.broadcaster import ProgressBroadcaster
from appforge.sessions.store import validate_session_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOutcome:
    session_id: str
    files: tuple[FileChange, ...]
    handle: SandboxHandle | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.handle is not None and self.error is None


class BuildOrchestrator:
    def __init__(
        self,
        generator: CodeGenerator,
        provisioner: SandboxProvisioner,
        broadcaster: ProgressBroadcaster,
    ) -> None:
        self._generator = generator
        self._provisioner = provisioner
        self._broadcaster = broadcaster
        self._running: dict[str, asyncio.Task[BuildOutcome]] = {}

    def start(self, session_id: str, prompt: str) -> asyncio.Task[BuildOutcome]:
        """Open the session and schedule the build; returns without waiting.

        A session runs at most one build at a time; starting another while
        one is in flight raises ``ValidationError`` and leaves the running
        build and its event log untouched.
        """
        validate_session_id(session_id)
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required")
        if self.is_running(session_id):
            raise ValidationError(f"A build is already running for session {session_id}")
        self._broadcaster.store.open(session_id)
        task = asyncio.create_task(self.run(session_id, prompt), name=f"build-{session_id}")
        self._running[session_id] = task
        task.add_done_callback(lambda done: self._forget(session_id, done))
        logger.info(f"Starting build for session: {session_id}")
        return task

    def is_running(self, session_id: str) -> bool:
        task = self._running.get(session_id)
        return task is not None and not task.done()

    def _forget(self, session_id: str, task: asyncio.Task[BuildOutcome]) -> None:
        if self._running.get(session_id) is task:
            del self._running[session_id]

    async def run(self, session_id: str, prompt: str) -> BuildOutcome:
        publish = self._broadcaster.publish
        store = self._broadcaster.store
        files: tuple[FileChange, ...] = ()
        try:
            publish(session_id, "Calling the code generator...")
            generation = await self._generator.generate(
                build_conversation(prompt), BUILD_CONTRACT, profile="build"
            )
            parsed = parse_response(generation.text)
            files = tuple(parsed.files)
            store.put_files(session_id, files)
            publish(session_id, f"Generated {len(files)} file(s)")
            if not files:
                raise ValidationError("The generator returned no files")

            handle = await self._provisioner.provision(
                files, lambda message: publish(session_id, message)
            )
            try:
                store.attach_sandbox(session_id, handle.sandbox_id)
                url = handle.preview_url or ""
                publish(session_id, f"Preview ready! {url}")
                self._broadcaster.complete(session_id, url)
            except BaseException:
                # Nobody can reach a sandbox whose session never saw it.
                await self._provisioner.teardown(handle.sandbox_id)
                raise
            return BuildOutcome(session_id=session_id, files=files, handle=handle)
        except asyncio.CancelledError:
            self._publish_failure(session_id, "Build cancelled")
            raise
        except AppForgeError as exc:
            return self._fail(session_id, files, str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected build failure for {session_id}")
            return self._fail(session_id, files, str(exc) or type(exc).__name__)

    def _fail(
        self, session_id: str, files: tuple[FileChange, ...], message: str
    ) -> BuildOutcome:
        logger.error(f"Build failed for {session_id}: {message}")
        self._publish_failure(session_id, message)
        return BuildOutcome(session_id=session_id, files=files, error=message)

    def _publish_failure(self, session_id: str, message: str) -> None:
        try:
            self._broadcaster.fail(session_id, message)
        except ValidationError:
            logger.warning(f"Session {session_id} already sealed, dropping failure: {message}")

    async def shutdown(self) -> None:
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
