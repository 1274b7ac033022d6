"""Wiring of stores, providers and orchestrators for the API."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from appforge.config import Settings
from appforge.pipeline.build import BuildOrchestrator
from appforge.pipeline.deploy import DeploymentOrchestrator
from appforge.pipeline.edit import EditOrchestrator
from appforge.pipeline.provisioner import SandboxProvisioner
from appforge.providers.hosting import VercelProvider
from appforge.providers.llm.litellm_client import LiteLLMClient
from appforge.providers.sandbox import DaytonaProvider, LocalProvider, SandboxProvider
from appforge.providers.scm import GitHubProvider
from appforge.sessions.broadcaster import ProgressBroadcaster
from appforge.sessions.store import SessionStore


@dataclass
class Services:
    settings: Settings
    store: SessionStore
    broadcaster: ProgressBroadcaster
    provisioner: SandboxProvisioner
    builds: BuildOrchestrator
    edits: EditOrchestrator
    deploys: DeploymentOrchestrator


def build_sandbox_provider(settings: Settings) -> SandboxProvider:
    if settings.sandbox_provider == "local":
        return LocalProvider(settings.local_sandbox_dir)
    if settings.sandbox_provider == "daytona":
        return DaytonaProvider(
            api_key=settings.daytona_api_key,
            api_url=settings.daytona_api_url,
            target=settings.daytona_target,
        )
    raise ValueError(f"Unknown sandbox provider: {settings.sandbox_provider}")


def build_services(settings: Settings) -> Services:
    store = SessionStore(grace_s=settings.session_grace_s, max_age_s=settings.session_max_age_s)
    broadcaster = ProgressBroadcaster(store, stream_timeout_s=settings.stream_timeout_s)
    generator = LiteLLMClient(settings.models_config)
    provisioner = SandboxProvisioner(
        build_sandbox_provider(settings),
        port=settings.dev_port,
        install_timeout_s=settings.install_timeout_s,
        settle_delay_s=settings.settle_delay_s,
        health_interval_s=settings.health_interval_s,
        health_attempts=settings.health_attempts,
        probe_attempts=settings.preview_probe_attempts,
    )
    deploys = DeploymentOrchestrator(
        store,
        GitHubProvider(token=settings.github_token, username=settings.github_username),
        VercelProvider(token=settings.vercel_token, team_id=settings.vercel_team_id),
        repo_init_delay_s=settings.repo_init_delay_s,
        poll_interval_s=settings.deploy_poll_interval_s,
        poll_attempts=settings.deploy_poll_attempts,
    )
    return Services(
        settings=settings,
        store=store,
        broadcaster=broadcaster,
        provisioner=provisioner,
        builds=BuildOrchestrator(generator, provisioner, broadcaster),
        edits=EditOrchestrator(generator, provisioner.workspace, store),
        deploys=deploys,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
