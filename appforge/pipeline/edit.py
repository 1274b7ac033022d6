"""Apply a follow-up instruction to a live sandbox.

Only the files the targeter selects are sent to the generator, and only the
files it returns are written back. Nothing is written unless generation and
parsing both succeed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Sequence

from appforge.errors import ValidationError
from appforge.models.files import FileChange
from appforge.pipeline.parser import parse_response
from appforge.pipeline.prompts import EDIT_CONTRACT, edit_conversation
from appforge.pipeline.targeter import identify_relevant_files
from appforge.pipeline.workspace import SandboxWorkspace
from appforge.providers.llm.base import CodeGenerator
from appforge.sessions.store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_EXPLANATION = "I've analyzed your request."


@dataclass(frozen=True)
class EditResult:
    explanation: str
    files_changed: int
    paths: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = self.explanation or DEFAULT_EXPLANATION
        if self.files_changed:
            text += (
                f"\n\nUpdated {self.files_changed} file(s). "
                "Changes will appear in the preview momentarily via hot reload."
            )
        return text


def merge_files(
    existing: Sequence[FileChange], updates: Sequence[FileChange]
) -> list[FileChange]:
    """Replace files by path, append new ones, drop deleted ones."""
    by_path = {item.path: item for item in existing}
    for item in updates:
        if item.is_delete:
            by_path.pop(item.path, None)
        else:
            by_path[item.path] = item
    return list(by_path.values())


class EditOrchestrator:
    def __init__(
        self,
        generator: CodeGenerator,
        workspace: SandboxWorkspace,
        store: SessionStore | None = None,
    ) -> None:
        self._generator = generator
        self._workspace = workspace
        self._store = store

    async def apply(
        self,
        message: str,
        sandbox_id: str,
        history: Sequence[Any] | None = None,
        session_id: str | None = None,
    ) -> EditResult:
        if not message or not message.strip():
            raise ValidationError("Missing message")
        if not sandbox_id:
            raise ValidationError("Missing sandboxId")
        tracked = bool(session_id) and self._store is not None
        if tracked:
            self._store.ensure_writable(session_id)
        started = time.monotonic()

        all_paths = await asyncio.to_thread(self._workspace.list_project_files, sandbox_id)
        logger.info(f"Found {len(all_paths)} project files in {sandbox_id}")

        targets = identify_relevant_files(message, all_paths)
        logger.info(f"Targeting {len(targets)} relevant file(s): {', '.join(targets)}")

        current = await asyncio.to_thread(self._workspace.read_files, sandbox_id, targets)
        conversation = edit_conversation(message, current, history)

        generation = await self._generator.generate(conversation, EDIT_CONTRACT, profile="edit")
        parsed = parse_response(generation.text)

        written: list[str] = []
        if parsed.files:
            previous: tuple[FileChange, ...] = ()
            if tracked:
                # Raises before the sandbox is touched if a deploy began meanwhile.
                previous = self._store.get_files(session_id) or ()
                self._store.put_files(session_id, merge_files(previous, parsed.files))
            try:
                written = await asyncio.to_thread(
                    self._workspace.write_files, sandbox_id, parsed.files
                )
            except Exception:
                if tracked:
                    self._restore_files(session_id, previous)
                raise
        else:
            logger.info("No files to write, explanation only")

        logger.info(f"Edit request completed in {time.monotonic() - started:.2f}s")
        return EditResult(
            explanation=parsed.explanation,
            files_changed=len(parsed.files),
            paths=written,
        )

    def _restore_files(self, session_id: str, files: tuple[FileChange, ...]) -> None:
        try:
            self._store.put_files(session_id, files)
        except ValidationError as exc:
            logger.warning(f"Could not restore files for {session_id}: {exc}")
