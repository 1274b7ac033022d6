"""Response contracts sent to the generation service and conversation helpers."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from appforge.models.files import FileChange

BUILD_CONTRACT = """You are an expert full-stack developer AI assistant that generates complete, production-ready code.

When given a prompt to build an application, you should:
1. Think through the architecture and required files
2. Generate complete, working code for all necessary files
3. Use modern best practices and clean code principles
4. Include proper TypeScript types, error handling, and comments

Format your response EXACTLY as follows:

<thinking>
Your reasoning about the app architecture, tech stack decisions, and implementation approach
</thinking>

<files>
FILE: path/to/file.ext
```
file contents here
```

FILE: path/to/another-file.ext
```
file contents here
```
</files>

Rules:
- Each file must start with "FILE: " followed by the file path
- File content must be wrapped in triple backticks
- Generate complete, runnable code (not pseudocode or TODOs)
- Include all necessary files, including package.json with "dev" and "build" scripts
- Use modern React, TypeScript, and Next.js patterns
- The dev server must listen on the port given by the PORT environment variable"""

EDIT_CONTRACT = """You are an expert full-stack developer AI assistant helping users fix and improve their Next.js applications.

The user has a running Next.js app in a sandbox with hot reload. They may report errors, request changes, or ask for improvements.

When responding:
1. Analyze the current code and the user's request/error
2. Provide a clear explanation of the issue and your solution
3. Generate the updated files that fix the problem

Format your response EXACTLY as follows:

<explanation>
Brief explanation of what you found and how you're fixing it
</explanation>

<files>
FILE: path/to/file.ext
```
updated file contents here
```
</files>

Rules:
- Each file must start with "FILE: " followed by the file path
- File content must be wrapped in triple backticks
- Only include files that need to be changed (not all files)
- Generate complete, working code (not partial changes)
- If no code changes are needed, just provide explanation without <files> section"""

ALLOWED_ROLES = ("user", "assistant")


def format_files_context(files: Iterable[FileChange]) -> str:
    return "\n\n".join(f"FILE: {item.path}\n```\n{item.content}\n```" for item in files)


def normalize_history(history: Sequence[Any] | None) -> list[dict[str, str]]:
    """Keep only well-formed user/assistant turns with text content."""
    messages: list[dict[str, str]] = []
    for turn in history or ():
        if not isinstance(turn, dict):
            continue
        role = turn.get("role")
        content = turn.get("content")
        if role not in ALLOWED_ROLES or not isinstance(content, str) or not content:
            continue
        messages.append({"role": role, "content": content})
    return messages


def build_conversation(prompt: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": prompt}]


def edit_conversation(
    instruction: str,
    files: Sequence[FileChange],
    history: Sequence[Any] | None = None,
) -> list[dict[str, str]]:
    messages = normalize_history(history)
    context = format_files_context(files)
    messages.append(
        {
            "role": "user",
            "content": f"Current application code:\n\n{context}\n\n---\n\nUser request: {instruction}",
        }
    )
    return messages
