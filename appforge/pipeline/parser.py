"""Parse generated responses into structured file changes.

A response follows a three-part contract::

    <explanation>...</explanation>     (or <thinking>...</thinking>)
    <files>
    FILE: path/to/file.ext
    ```lang
    contents
    ```
    </files>

The files region is scanned line by line with a small state machine. A block
that is missing its path or its fenced content is dropped without affecting
its neighbours.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import re

from appforge.errors import ValidationError
from appforge.models.files import FileChange, FileOperation, sanitize_path

logger = logging.getLogger(__name__)

FILES_OPEN = "<files>"
FILES_CLOSE = "</files>"
FILE_MARKER = re.compile(r"^\s*FILE:\s*(.*?)\s*$")
FENCE = "```"


class _State(Enum):
    SEEKING_MARKER = "seeking-marker"
    SEEKING_FENCE = "seeking-fence"
    IN_FENCE = "in-fence"
    SKIPPING = "skipping"


@dataclass
class ParsedResponse:
    explanation: str = ""
    thinking: str = ""
    files: list[FileChange] = field(default_factory=list)


def extract_section(text: str, tag: str) -> str:
    match = re.search(rf"<{tag}>(.*?)</{tag}>", text, re.DOTALL)
    return match.group(1).strip() if match else ""


def _files_region(text: str) -> str | None:
    start = text.find(FILES_OPEN)
    if start == -1:
        return None
    end = text.rfind(FILES_CLOSE)
    if end == -1 or end < start:
        return None
    return text[start + len(FILES_OPEN) : end]


class _BlockBuilder:
    def __init__(self) -> None:
        self.files: list[FileChange] = []
        self.state = _State.SEEKING_MARKER
        self.path: str | None = None
        self.lines: list[str] = []

    def start_block(self, raw_path: str) -> None:
        self.abandon()
        self.lines = []
        if not raw_path:
            logger.debug("Dropping file block without a path")
            self.path = None
            self.state = _State.SKIPPING
            return
        try:
            self.path = sanitize_path(raw_path)
        except ValidationError:
            logger.debug(f"Dropping file block with invalid path: {raw_path}")
            self.path = None
            self.state = _State.SKIPPING
            return
        self.state = _State.SEEKING_FENCE

    def finish_block(self) -> None:
        if self.path is not None:
            content = "\n".join(self.lines).strip()
            self.files.append(
                FileChange(path=self.path, content=content, operation=FileOperation.CREATE)
            )
        self.path = None
        self.lines = []
        self.state = _State.SKIPPING

    def abandon(self) -> None:
        if self.state in (_State.SEEKING_FENCE, _State.IN_FENCE) and self.path:
            logger.debug(f"Dropping incomplete file block: {self.path}")
        self.path = None
        self.lines = []


def parse_files(text: str) -> list[FileChange]:
    """Return the files declared in ``text`` in source order.

    A response with no ``<files>`` region yields an empty list.
    """
    region = _files_region(text or "")
    if region is None:
        return []

    builder = _BlockBuilder()
    for line in region.splitlines():
        if builder.state == _State.IN_FENCE:
            if line.strip().startswith(FENCE):
                builder.finish_block()
            else:
                builder.lines.append(line)
            continue

        marker = FILE_MARKER.match(line)
        if marker:
            builder.start_block(marker.group(1))
            continue

        if builder.state == _State.SEEKING_FENCE and line.strip().startswith(FENCE):
            builder.state = _State.IN_FENCE
            # ```single line```
            remainder = line.strip()[len(FENCE) :]
            if FENCE in remainder:
                builder.lines.append(remainder.split(FENCE, 1)[0])
                builder.finish_block()
            continue

    builder.abandon()
    return builder.files


def parse_response(text: str) -> ParsedResponse:
    return ParsedResponse(
        explanation=extract_section(text or "", "explanation"),
        thinking=extract_section(text or "", "thinking"),
        files=parse_files(text),
    )
