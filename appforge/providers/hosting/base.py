"""Deployment-hosting provider interface."""

from __future__ import annotations

from typing import Protocol

from appforge.models.deployment import HostingDeployment, HostingProject


class HostingProvider(Protocol):
    def create_project(self, name: str, repo: str) -> HostingProject:
        ...

    def create_deployment(
        self, project: HostingProject, repo: str, ref: str = "main"
    ) -> HostingDeployment:
        ...

    def get_deployment_state(self, deployment_id: str) -> str:
        ...
