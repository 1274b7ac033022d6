"""Runtime settings loaded from the environment and an optional YAML overlay."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import importlib
import importlib.util
import logging
import os
from pathlib import Path
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class Settings:
    sandbox_provider: str = "daytona"
    daytona_api_key: str | None = None
    daytona_api_url: str | None = None
    daytona_target: str | None = None
    local_sandbox_dir: str | None = None
    github_token: str | None = None
    github_username: str | None = None
    vercel_token: str | None = None
    vercel_team_id: str | None = None
    models_config: str = "config/models.yaml"
    log_level: str = "INFO"

    dev_port: int = 3000
    install_timeout_s: int = 300
    settle_delay_s: float = 8.0
    health_interval_s: float = 2.0
    health_attempts: int = 30
    preview_probe_attempts: int = 30
    repo_init_delay_s: float = 2.0
    deploy_poll_interval_s: float = 5.0
    deploy_poll_attempts: int = 60
    stream_timeout_s: float = 300.0
    session_grace_s: float = 5.0
    session_max_age_s: float = 3600.0
    eviction_interval_s: float = 30.0

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        overlay_path = env.get("APPFORGE_SETTINGS")
        if overlay_path:
            values.update(_load_yaml(Path(overlay_path)))
        env_map = {
            "sandbox_provider": env.get("APPFORGE_SANDBOX_PROVIDER"),
            "daytona_api_key": env.get("DAYTONA_API_KEY"),
            "daytona_api_url": env.get("DAYTONA_API_URL"),
            "daytona_target": env.get("DAYTONA_TARGET"),
            "local_sandbox_dir": env.get("APPFORGE_LOCAL_SANDBOX_DIR"),
            "github_token": env.get("GITHUB_PAT") or env.get("GITHUB_TOKEN"),
            "github_username": env.get("GITHUB_USERNAME"),
            "vercel_token": env.get("VERCEL_TOKEN"),
            "vercel_team_id": env.get("VERCEL_TEAM_ID"),
            "models_config": env.get("APPFORGE_MODELS_CONFIG"),
            "log_level": env.get("APPFORGE_LOG_LEVEL"),
        }
        values.update({key: value for key, value in env_map.items() if value})
        known = {item.name: item for item in fields(cls)}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in values.items():
            if key not in known or key == "extra":
                extra[key] = value
                continue
            kwargs[key] = _coerce(value, type(getattr(cls, key, None)))
        return cls(extra=extra, **kwargs)


def _coerce(value: Any, target: type) -> Any:
    if target in (int, float) and isinstance(value, str):
        return target(value)
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    yaml_spec = importlib.util.find_spec("yaml")
    if yaml_spec is None:
        raise RuntimeError("PyYAML is required to load settings overlays.")
    yaml = importlib.import_module("yaml")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        return {}
    return data


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
