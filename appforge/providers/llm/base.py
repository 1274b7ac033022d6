"""Code generation client interface."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from appforge.providers.llm.litellm_client import GenerationResult


class CodeGenerator(Protocol):
    async def generate(
        self,
        conversation: Sequence[dict[str, str]],
        system_contract: str,
        *,
        profile: str = "build",
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> "GenerationResult":
        ...
