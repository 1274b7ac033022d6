"""LiteLLM client wrapper used as the code generation client."""

from __future__ import annotations

from dataclasses import dataclass
import importlib
import importlib.util
import logging
from pathlib import Path
from typing import Any, Sequence

from appforge.errors import UpstreamError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]

DEFAULT_PROFILE: dict[str, Any] = {
    "litellm_model": "anthropic/claude-sonnet-4-20250514",
    "temperature": 1.0,
    "max_output_tokens": 8000,
}


@dataclass(frozen=True)
class GenerationResult:
    text: str
    rationale: str = ""
    model: str = ""


def resolve_config_path(config_path: str) -> Path:
    """Relative paths missing from the working directory resolve against the project root."""
    path = Path(config_path)
    if path.is_absolute() or path.exists():
        return path
    return PROJECT_ROOT / path


class LiteLLMClient:
    def __init__(self, config_path: str = "config/models.yaml") -> None:
        self._config_path = resolve_config_path(config_path)
        self._profiles = self._load_profiles()

    def _load_profiles(self) -> dict[str, dict[str, Any]]:
        if not self._config_path.exists():
            logger.warning(
                f"Model profile config {self._config_path} not found; using default profile"
            )
            return {}
        yaml_spec = importlib.util.find_spec("yaml")
        if yaml_spec is None:
            raise RuntimeError("PyYAML is required to load model profiles.")
        yaml = importlib.import_module("yaml")
        with self._config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        profiles = data.get("profiles", {})
        if not isinstance(profiles, dict):
            return {}
        return profiles

    def get_profile(self, name: str) -> dict[str, Any]:
        profile = self._profiles.get(name)
        if not profile:
            if not self._profiles:
                return DEFAULT_PROFILE
            raise KeyError(f"Unknown model profile: {name}")
        return profile

    def _litellm(self) -> Any:
        litellm_spec = importlib.util.find_spec("litellm")
        if litellm_spec is None:
            raise RuntimeError("litellm must be installed to request completions.")
        return importlib.import_module("litellm")

    def _params(
        self,
        profile_name: str,
        messages: list[dict[str, str]],
        overrides: dict[str, Any],
    ) -> dict[str, Any]:
        profile = self.get_profile(profile_name)
        params: dict[str, Any] = {
            "model": profile["litellm_model"],
            "messages": messages,
            "temperature": profile.get("temperature", 0.2),
            "max_tokens": profile.get("max_output_tokens", 2048),
        }
        params.update({key: value for key, value in overrides.items() if value is not None})
        return params

    async def generate(
        self,
        conversation: Sequence[dict[str, str]],
        system_contract: str,
        *,
        profile: str = "build",
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> GenerationResult:
        """Send ``conversation`` under ``system_contract`` and return the raw text.

        Provider failures surface as UpstreamError; nothing is retried here.
        """
        litellm = self._litellm()
        messages = [{"role": "system", "content": system_contract}, *conversation]
        params = self._params(
            profile,
            messages,
            {"max_tokens": max_tokens, "temperature": temperature, "model": model},
        )
        logger.info(f"Requesting completion from {params['model']} ({len(conversation)} turn(s))")
        try:
            response = await litellm.acompletion(**params)
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            body = getattr(exc, "message", None) or str(exc)
            raise UpstreamError(
                f"Generation API error: {status or 'unknown'} - {body}",
                status=status,
                body=body,
            ) from exc
        return _to_result(response, params["model"])


def _to_result(response: Any, model: str) -> GenerationResult:
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise UpstreamError("Generation API returned no choices.")
    message = choices[0].message
    text = getattr(message, "content", None) or ""
    rationale = getattr(message, "reasoning_content", None) or ""
    return GenerationResult(
        text=text,
        rationale=rationale,
        model=getattr(response, "model", None) or model,
    )
